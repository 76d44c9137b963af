"""Depth-discontinuity edge detection on an organized grid."""
from __future__ import annotations

import logging

import numpy as np

from common.config import EdgeDetection
from .grid import GridPointBuffer, require_same_shape, shifted_slices

FOUR_NEIGHBORS = ((-1, 0), (1, 0), (0, -1), (0, 1))


def depth_jump_tolerance(z: np.ndarray, cfg: EdgeDetection) -> np.ndarray:
    """Largest depth jump still treated as sensor noise at depth z."""
    return cfg.depth_jump_min + cfg.depth_jump_factor * z * z


def compute_edges(depth: np.ndarray, points: GridPointBuffer, cfg: EdgeDetection) -> np.ndarray:
    """Per-pixel edge strength in [0, 1).

    strength = d / (d + t) for the largest jump d to a 4-neighbor at
    `neighbor_offset` pixels, with the tolerance t taken at the nearer of the
    two depths, so d == t maps to 0.5. Pixels or neighbors without depth
    contribute nothing; missing pixels become barriers through their label.
    """
    require_same_shape(points.shape, depth=depth)
    strength = np.zeros(depth.shape, dtype=np.float64)
    offset = int(cfg.neighbor_offset)

    for dr, dc in FOUR_NEIGHBORS:
        idx = shifted_slices(depth.shape, dr * offset, dc * offset)
        if idx is None:
            continue
        center, neighbor = depth[idx[0]], depth[idx[1]]
        ok = np.isfinite(center) & np.isfinite(neighbor)
        jump = np.where(ok, np.abs(center - neighbor), 0.0)
        tol = depth_jump_tolerance(np.where(ok, np.minimum(center, neighbor), 0.0), cfg)
        view = strength[idx[0]]
        np.maximum(view, np.where(ok, jump / (jump + tol), 0.0), out=view)

    logging.debug("edge detection: %d pixel(s) above %.2f",
                  int((strength > cfg.edge_threshold).sum()), cfg.edge_threshold)
    return strength


def edge_barrier(edges: np.ndarray, threshold: float) -> np.ndarray:
    """Boolean mask of pixels that segmentation must not cross."""
    return edges > threshold
