"""Curvature-driven merging of over-segmented clusters."""
from __future__ import annotations

import logging
from typing import Optional, Tuple

import numpy as np

from common.config import Refinement
from .clusters import ClusterGraph, GraphEdge
from .grid import GridPointBuffer, require_same_shape
from .model import NormalEstimate


def curvature_score(graph: ClusterGraph, edge: GraphEdge) -> float:
    """Absolute difference of the two clusters' mean curvature."""
    return abs(graph.cluster(edge.a).curvature - graph.cluster(edge.b).curvature)


def compatible(
    graph: ClusterGraph,
    edge: GraphEdge,
    cfg: Refinement,
    same_direction_threshold: float,
) -> Tuple[bool, float]:
    """(merge?, score) for one adjacency edge.

    Clusters only merge across depth-continuous contact. Two planar clusters
    additionally need aligned mean normals, otherwise the faces of a box
    (all curvature ~0) would collapse into one.
    """
    score = curvature_score(graph, edge)
    if score > cfg.curvature_merge_threshold:
        return False, score
    if edge.smooth_fraction < cfg.min_smooth_fraction:
        return False, score
    ca, cb = graph.cluster(edge.a), graph.cluster(edge.b)
    if abs(ca.curvature) < cfg.planar_curvature and abs(cb.curvature) < cfg.planar_curvature:
        if float(np.dot(ca.mean_normal, cb.mean_normal)) < same_direction_threshold:
            return False, score
    return True, score


def _survivor(graph: ClusterGraph, a: int, b: int) -> Tuple[int, int]:
    sa, sb = graph.cluster(a).size, graph.cluster(b).size
    if sa > sb or (sa == sb and a < b):
        return a, b
    return b, a


def refine(
    graph: ClusterGraph,
    points: GridPointBuffer,
    normals: Optional[NormalEstimate],
    cfg: Refinement,
    *,
    same_direction_threshold: float = 0.94,
) -> int:
    """Merge compatible neighbors in place until a fixpoint; returns the merge count.

    Each pass ranks the candidate edges by (score, ids) and merges them in
    that order, re-checking each pair against the current aggregates since
    earlier merges in the pass change them. Stops after a pass without merges
    or after `max_iterations` passes.
    """
    require_same_shape(points.shape, labels=graph.labels,
                       normals=None if normals is None else normals.normals)
    before = len(graph)
    total = 0
    for iteration in range(cfg.max_iterations):
        candidates = []
        for e in graph.edges():
            ok, score = compatible(graph, e, cfg, same_direction_threshold)
            if ok:
                candidates.append((score, e.a, e.b))
        candidates.sort()

        merged = 0
        for _score, a, b in candidates:
            a, b = graph.resolve(a), graph.resolve(b)
            if a == b:
                continue
            e = graph.edge(a, b)
            if e is None or not compatible(graph, e, cfg, same_direction_threshold)[0]:
                continue
            keep, absorb = _survivor(graph, a, b)
            graph.merge(keep, absorb)
            merged += 1
        total += merged
        logging.debug("refinement pass %d: %d merge(s)", iteration + 1, merged)
        if merged == 0:
            break
    else:
        if cfg.max_iterations > 0:
            logging.warning("refinement stopped at the iteration cap (%d)", cfg.max_iterations)

    logging.info("refinement: %d -> %d cluster(s)", before, len(graph))
    return total
