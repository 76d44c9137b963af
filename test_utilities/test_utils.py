from __future__ import annotations

from typing import Sequence

import numpy as np

from common.config import Config, NormalEstimation
from surftools.clusters import ClusterGraph
from surftools.edges import compute_edges
from surftools.grid import GridPointBuffer
from surftools.model import NormalEstimate, PointLabel
from surftools.normals import estimate_normals
from surftools.segmentation import build_adjacency


# ---------------------------------------------------------------------
# Helpers shared by the test modules
# ---------------------------------------------------------------------

def normals_for(grid: GridPointBuffer, cfg: Config = Config()) -> NormalEstimate:
    """Run edge detection + normal estimation with one config."""
    edges = compute_edges(grid.depth_map(), grid, cfg.edge_detection)
    return estimate_normals(grid, edges, cfg.normal_estimation,
                            edge_threshold=cfg.edge_detection.edge_threshold)


def constant_normals(shape, normal=(0.0, 0.0, -1.0), curvature: float = 0.0) -> NormalEstimate:
    """Hand-made estimate: every pixel VALID with the same normal and curvature."""
    h, w = shape
    n = np.asarray(normal, dtype=float)
    n = n / np.linalg.norm(n)
    return NormalEstimate(
        normals=np.broadcast_to(n, (h, w, 3)).copy(),
        labels=np.full((h, w), PointLabel.VALID, dtype=np.int32),
        curvature=np.full((h, w), curvature, dtype=float),
    )


def graph_from_column_strips(grid: GridPointBuffer, normals: NormalEstimate,
                             bounds: Sequence[int], skip_distance: float = 0.05) -> ClusterGraph:
    """One cluster per column strip [bounds[i], bounds[i+1]), then adjacency."""
    h, w = grid.shape
    graph = ClusterGraph(normals.labels)
    cols = np.arange(h * w) % w
    for lo, hi in zip(bounds[:-1], bounds[1:]):
        c = graph.new_cluster()
        idx = np.flatnonzero((cols >= lo) & (cols < hi))
        graph.add_pixels(c.id, idx, grid.points, normals.normals, normals.curvature)
    build_adjacency(graph, grid, skip_distance)
    return graph


def perimeter_mask(h: int, w: int) -> np.ndarray:
    m = np.zeros((h, w), dtype=bool)
    m[0, :] = m[-1, :] = m[:, 0] = m[:, -1] = True
    return m


def partition(labels: np.ndarray) -> set:
    """Cluster membership as a set of pixel sets, independent of the id values."""
    flat = labels.reshape(-1)
    return {frozenset(np.flatnonzero(flat == cid).tolist()) for cid in np.unique(flat[flat >= 0])}

