"""Per-cluster surface type classification and border marking."""
from __future__ import annotations

import logging
from collections import Counter
from typing import Dict, Optional

import numpy as np
from scipy import ndimage

from common.config import Classification
from .clusters import Cluster, ClusterGraph
from .curvature import mean_curvature
from .grid import GridPointBuffer, require_same_shape
from .model import ClusterClassification, NormalEstimate, SurfaceType

_CROSS = ndimage.generate_binary_structure(2, 1)
_OUTSIDE_HIGH = np.iinfo(np.int64).max
_OUTSIDE_LOW = np.iinfo(np.int64).min


def mark_borders(labels: np.ndarray) -> np.ndarray:
    """Cluster pixels with a 4-neighbor in another cluster, in no cluster, or off the grid."""
    lab = labels.astype(np.int64)
    if lab.size == 0:
        return np.zeros(lab.shape, dtype=bool)
    hi = ndimage.maximum_filter(lab, footprint=_CROSS, mode="constant", cval=_OUTSIDE_HIGH)
    lo = ndimage.minimum_filter(lab, footprint=_CROSS, mode="constant", cval=_OUTSIDE_LOW)
    return (lab >= 0) & ((hi != lab) | (lo != lab))


def _decide(samples: np.ndarray, near_border: np.ndarray, cfg: Classification):
    planar = cfg.planar_curvature
    border_k = samples[near_border]
    interior_k = samples[~near_border]
    b_mag = float(np.abs(border_k).mean()) if border_k.size else None
    i_mag = float(np.abs(interior_k).mean()) if interior_k.size else None

    if interior_k.size >= cfg.min_samples and border_k.size >= cfg.min_samples:
        if b_mag >= planar and b_mag > cfg.edge_ratio * i_mag and float(border_k.var()) > planar * planar:
            return SurfaceType.EDGE, b_mag, i_mag
    elif float(samples.std()) > planar and float(np.median(np.abs(samples))) >= planar:
        # thin cluster: every sample is near its border
        if max((samples > planar).mean(), (samples < -planar).mean()) < cfg.consistency:
            return SurfaceType.EDGE, b_mag, i_mag

    if abs(float(np.median(samples))) < planar:
        return SurfaceType.PLANAR, b_mag, i_mag
    if (samples > planar).mean() >= cfg.consistency:
        return SurfaceType.CONVEX, b_mag, i_mag
    if (samples < -planar).mean() >= cfg.consistency:
        return SurfaceType.CONCAVE, b_mag, i_mag
    return SurfaceType.UNDEFINED, b_mag, i_mag


def classify_cluster(cluster: Cluster, curvature: np.ndarray, near_border: np.ndarray,
                     cfg: Classification) -> ClusterClassification:
    idx = cluster.indices()
    k = curvature.reshape(-1)[idx]
    finite = np.isfinite(k)
    samples = k[finite]
    if samples.size < cfg.min_samples:
        return ClusterClassification(cluster.id, SurfaceType.UNDEFINED, cluster.size, int(samples.size),
                                     float("nan"), 0.0, 0.0)
    nb = near_border.reshape(-1)[idx][finite]
    surface_type, b_mag, i_mag = _decide(samples, nb, cfg)
    return ClusterClassification(
        cluster_id=cluster.id,
        surface_type=surface_type,
        n_points=cluster.size,
        n_samples=int(samples.size),
        median_curvature=float(np.median(samples)),
        convex_fraction=float((samples > cfg.planar_curvature).mean()),
        concave_fraction=float((samples < -cfg.planar_curvature).mean()),
        border_curvature=b_mag,
        interior_curvature=i_mag,
    )


def classify(
    graph: ClusterGraph,
    points: GridPointBuffer,
    normals: NormalEstimate,
    cfg: Classification,
    *,
    borders: Optional[np.ndarray] = None,
) -> Dict[int, ClusterClassification]:
    """Assign a SurfaceType to every live cluster and record its border pixels.

    Curvature is taken over a baseline of mask_size // 2 pixels, only between
    pixels of the same cluster. Missing data yields UNDEFINED, never an error.
    """
    labels = graph.labels
    require_same_shape(points.shape, labels=labels, normals=normals.normals)
    half = max(1, cfg.mask_size // 2)
    clustered = labels >= 0
    curvature = mean_curvature(points.points, normals.normals, clustered, half, groups=labels)

    borders = mark_borders(labels) if borders is None else borders
    near_border = clustered & ndimage.binary_dilation(borders, structure=_CROSS, iterations=half)

    results: Dict[int, ClusterClassification] = {}
    flat_borders = borders.reshape(-1)
    for c in graph.clusters():
        res = classify_cluster(c, curvature, near_border, cfg)
        c.surface_type = res.surface_type
        idx = c.indices()
        c.border = idx[flat_borders[idx]]
        results[c.id] = res

    tally = Counter(r.surface_type.value for r in results.values())
    logging.info("classification: %s", ", ".join(f"{k}={v}" for k, v in sorted(tally.items())) or "no clusters")
    return results
