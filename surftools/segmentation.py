"""Depth segmentation: grow clusters of consistent normal direction on the grid."""
from __future__ import annotations

import logging
import math
from collections import deque

import numpy as np

from common.config import Segmentation
from .clusters import ClusterGraph
from .edges import edge_barrier
from .grid import GridPointBuffer, require_same_shape, shifted_slices
from .model import NormalEstimate, PointLabel

UNVISITED, QUEUED, ASSIGNED = 0, 1, 2

# fixed visit order keeps cluster membership reproducible
NEIGHBOR_ORDER = ((-1, 0), (1, 0), (0, -1), (0, 1))


def _grow(seed: int, h: int, w: int, state: bytearray, admissible: list,
          z: list, nx: list, ny: list, nz: list, threshold: float, skip_distance: float) -> list:
    """Breadth-first growth from `seed`; returns the member flat indices in visit order."""
    members = [seed]
    sx, sy, sz = nx[seed], ny[seed], nz[seed]
    state[seed] = QUEUED
    queue = deque([seed])
    while queue:
        p = queue.popleft()
        state[p] = ASSIGNED
        r, c = divmod(p, w)
        norm = math.sqrt(sx * sx + sy * sy + sz * sz)
        mx, my, mz = sx / norm, sy / norm, sz / norm
        for dr, dc in NEIGHBOR_ORDER:
            rr, cc = r + dr, c + dc
            if rr < 0 or rr >= h or cc < 0 or cc >= w:
                continue
            q = rr * w + cc
            if state[q] != UNVISITED or not admissible[q]:
                continue
            if abs(z[q] - z[p]) > skip_distance:
                continue
            if nx[q] * mx + ny[q] * my + nz[q] * mz < threshold:
                continue
            state[q] = QUEUED
            sx += nx[q]
            sy += ny[q]
            sz += nz[q]
            members.append(q)
            queue.append(q)
    return members


def build_adjacency(graph: ClusterGraph, points: GridPointBuffer, skip_distance: float) -> int:
    """Connect every pair of clusters that touch across a 4-neighbor pixel pair.

    Each edge records how many pixel pairs touch and how many of those have
    no depth jump larger than `skip_distance`. Returns the number of edges.
    """
    labels = graph.labels
    depth = points.points[..., 2]
    firsts, seconds, smooth = [], [], []
    for dr, dc in ((0, 1), (1, 0)):
        idx = shifted_slices(labels.shape, dr, dc)
        if idx is None:
            continue
        la, lb = labels[idx[0]], labels[idx[1]]
        touching = (la >= 0) & (lb >= 0) & (la != lb)
        if not touching.any():
            continue
        a, b = la[touching], lb[touching]
        firsts.append(np.minimum(a, b))
        seconds.append(np.maximum(a, b))
        with np.errstate(invalid="ignore"):
            smooth.append(np.abs(depth[idx[0]][touching] - depth[idx[1]][touching]) <= skip_distance)

    if not firsts:
        return 0
    pairs = np.stack([np.concatenate(firsts), np.concatenate(seconds)], axis=1)
    uniq, inverse = np.unique(pairs, axis=0, return_inverse=True)
    inverse = inverse.reshape(-1)
    n_pairs = np.bincount(inverse, minlength=len(uniq))
    n_smooth = np.bincount(inverse, weights=np.concatenate(smooth).astype(np.float64), minlength=len(uniq))
    for (a, b), n, s in zip(uniq.tolist(), n_pairs.tolist(), n_smooth.tolist()):
        graph.connect(a, b, n_pairs=n, n_smooth=int(s))
    return len(uniq)


def segment(
    points: GridPointBuffer,
    normals: NormalEstimate,
    edges: np.ndarray,
    cfg: Segmentation,
    *,
    edge_threshold: float = 0.5,
    skip_distance: float = 0.05,
) -> ClusterGraph:
    """Partition every admissible pixel into exactly one cluster.

    With `use_edges`, VALID pixels on an edge barrier are relabeled EDGE
    first, so they neither seed nor join a cluster.

    Seeds are taken in row-major order. A neighbor joins the growing cluster
    when it is VALID, not an edge barrier (with `use_edges`), within
    `skip_distance` in depth of the pixel it is reached from, and its normal
    is within `same_direction_threshold` (cosine) of the cluster's running
    mean normal. EDGE, INVALID and SKIPPED pixels never join a cluster.
    """
    require_same_shape(points.shape, edges=edges, labels=normals.labels, normals=normals.normals)
    h, w = points.shape
    labels = normals.labels.copy()
    if cfg.use_edges:
        # barrier pixels the estimator left VALID are edges for segmentation too
        labels[(labels == PointLabel.VALID) & edge_barrier(edges, edge_threshold)] = PointLabel.EDGE
    graph = ClusterGraph(labels)

    admissible = (labels == PointLabel.VALID).reshape(-1)
    adm = admissible.tolist()
    state = bytearray(h * w)
    z = points.points[..., 2].reshape(-1).tolist()
    nrm = np.nan_to_num(normals.normals.reshape(-1, 3))
    nx, ny, nz = nrm[:, 0].tolist(), nrm[:, 1].tolist(), nrm[:, 2].tolist()

    for seed in np.flatnonzero(admissible).tolist():
        if state[seed] != UNVISITED:
            continue
        members = _grow(seed, h, w, state, adm, z, nx, ny, nz,
                        cfg.same_direction_threshold, skip_distance)
        c = graph.new_cluster()
        graph.add_pixels(c.id, np.asarray(members, dtype=np.int64),
                         points.points, normals.normals, normals.curvature)

    n_edges = build_adjacency(graph, points, skip_distance)
    logging.info("segmentation: %d cluster(s), %d adjacency edge(s)", len(graph), n_edges)
    return graph
