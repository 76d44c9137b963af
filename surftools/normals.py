"""Edge-aware normal estimation on an organized point cloud.

Neighbors come from the pixel grid (see `neighborhood`), not from a spatial
index, so each pixel costs O(radius^2 / step^2) regardless of cloud size.
The whole grid is processed one offset at a time with numpy, which keeps
every pixel independent of every other.
"""
from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from common.config import NormalEstimation
from .curvature import mean_curvature
from .edges import edge_barrier
from .grid import GridPointBuffer, require_same_shape
from .model import NormalEstimate, PointLabel
from .neighborhood import NeighborMaskCache

# eigenvalue ratio below which a neighborhood counts as collinear
DEGENERATE_RATIO = 1e-8


def initial_labels(
    points: GridPointBuffer,
    barrier: np.ndarray,
    roi: Optional[np.ndarray] = None,
) -> np.ndarray:
    labels = np.full(points.shape, PointLabel.VALID, dtype=np.int32)
    labels[barrier] = PointLabel.EDGE
    labels[~points.valid_mask] = PointLabel.INVALID
    if roi is not None:
        labels[~roi.astype(bool)] = PointLabel.SKIPPED
    return labels


def _accumulate_neighborhoods(pts: np.ndarray, centers: np.ndarray, usable: np.ndarray,
                              mask, skip_distance: float):
    """Sum count, first and second moments of admitted neighbors per pixel.

    Coordinates are taken relative to the center pixel for precision.
    """
    h, w = centers.shape
    r = mask.radius
    padded = np.full((h + 2 * r, w + 2 * r, 3), np.nan)
    padded[r:r + h, r:r + w] = pts
    usable_p = np.zeros((h + 2 * r, w + 2 * r), dtype=bool)
    usable_p[r:r + h, r:r + w] = usable

    center_pts = np.where(centers[..., None], pts, 0.0)
    center_z = pts[..., 2]

    count = np.zeros((h, w), dtype=np.int64)
    first = np.zeros((h, w, 3))
    second = np.zeros((h, w, 3, 3))

    prev_reach = {}
    with np.errstate(invalid="ignore"):
        for _ring, start, stop in mask.ring_slices():
            reach = {}
            for i in range(start, stop):
                dr, dc = mask.offsets[i]
                parent = mask.parents[i]
                parent_ok = centers if parent < 0 else prev_reach[parent]
                nb = padded[r + dr:r + dr + h, r + dc:r + dc + w]
                ok = parent_ok & usable_p[r + dr:r + dr + h, r + dc:r + dc + w]
                ok &= np.abs(nb[..., 2] - center_z) <= skip_distance
                reach[i] = ok
                q = np.where(ok[..., None], nb - center_pts, 0.0)
                count += ok
                first += q
                second += q[..., :, None] * q[..., None, :]
            prev_reach = reach
    return count, first, second


def estimate_normals(
    points: GridPointBuffer,
    edges: np.ndarray,
    cfg: NormalEstimation,
    *,
    edge_threshold: float = 0.5,
    cache: Optional[NeighborMaskCache] = None,
    roi: Optional[np.ndarray] = None,
) -> NormalEstimate:
    """Fit a PCA normal per pixel from its edge-aware grid neighborhood.

    A neighbor is admitted when it has depth, is not an edge pixel (with
    `use_edges`), lies within `skip_distance` in depth of the center, and its
    parent offset on the previous ring was admitted. Pixels with fewer than
    `min_neighbors` admitted neighbors, or a collinear neighborhood, are
    labeled INVALID. Normals point toward the sensor origin.
    """
    require_same_shape(points.shape, edges=edges, roi=roi)
    cache = cache if cache is not None else NeighborMaskCache()
    h, w = points.shape

    barrier = edge_barrier(edges, edge_threshold) if cfg.use_edges else np.zeros((h, w), dtype=bool)
    labels = initial_labels(points, barrier, roi)
    centers = labels == PointLabel.VALID
    usable = points.valid_mask & ~barrier

    pts = points.points
    mask = cache.get(w, cfg.radius, cfg.step)
    count, first, second = _accumulate_neighborhoods(pts, centers, usable, mask, cfg.skip_distance)

    normals = np.full((h, w, 3), np.nan)
    enough = centers & (count >= cfg.min_neighbors)
    if enough.any():
        n = (count[enough] + 1).astype(np.float64)[:, None]  # center sits at the origin
        mean = first[enough] / n
        cov = second[enough] / n[..., None] - mean[:, :, None] * mean[:, None, :]
        evals, evecs = np.linalg.eigh(cov)
        nrm = evecs[:, :, 0]
        spread = evals[:, 2]
        degenerate = (spread <= 0) | (evals[:, 1] <= DEGENERATE_RATIO * np.maximum(spread, 1e-300))
        # orient toward the sensor at the origin
        flip = (nrm * pts[enough]).sum(axis=1) > 0
        nrm[flip] *= -1.0
        nrm /= np.linalg.norm(nrm, axis=1, keepdims=True)
        degenerate |= ~np.isfinite(nrm).all(axis=1)
        nrm[degenerate] = np.nan
        normals[enough] = nrm
        fitted = np.zeros_like(enough)
        fitted[enough] = ~degenerate
        enough = fitted

    labels[centers & ~enough] = PointLabel.INVALID
    normals[labels != PointLabel.VALID] = np.nan

    valid = labels == PointLabel.VALID
    curvature = mean_curvature(pts, normals, valid, max(1, cfg.radius // 2),
                               max_depth_jump=cfg.skip_distance)
    logging.debug("normal estimation: %d valid, %d edge, %d invalid, %d skipped",
                  int(valid.sum()), int((labels == PointLabel.EDGE).sum()),
                  int((labels == PointLabel.INVALID).sum()), int((labels == PointLabel.SKIPPED).sum()))
    return NormalEstimate(normals=normals, labels=labels, curvature=curvature)
