"""Output presentation helpers for pipeline results.

Separates printing/formatting logic from core pipeline orchestration.
"""
from __future__ import annotations

from collections import Counter
from typing import Any, Dict

import numpy as np

from .model import PipelineResult


def cluster_summary(result: PipelineResult, cluster_id: int) -> Dict[str, Any]:
    c = result.graph.cluster(cluster_id)
    cls = result.classifications.get(cluster_id)
    return {
        "id": c.id,
        "points": c.size,
        "type": c.surface_type.value,
        "mean_normal": [float(v) for v in c.mean_normal],
        "centroid": [float(v) for v in c.centroid],
        "curvature": float(c.curvature),
        "extent": c.extent,
        "border_pixels": 0 if c.border is None else int(c.border.size),
        "median_curvature": None if cls is None else cls.median_curvature,
    }


def print_cluster_summary(summary: Dict[str, Any]) -> None:
    """Print formatted summary for a single cluster."""
    r0, r1, c0, c1 = summary["extent"]
    nx, ny, nz = summary["mean_normal"]
    print(f"\n  Cluster-{summary['id']} ({summary['type']}):")
    print(f"    Points: {summary['points']}  (border: {summary['border_pixels']})")
    print(f"    Pixel extent: rows {r0}-{r1}, cols {c0}-{c1}")
    print(f"    Mean normal: ({nx:+.3f}, {ny:+.3f}, {nz:+.3f})")
    print(f"    Mean curvature: {summary['curvature']:.4f} 1/m")
    if summary["median_curvature"] is not None and np.isfinite(summary["median_curvature"]):
        print(f"    Median classification curvature: {summary['median_curvature']:.4f} 1/m")


def print_pipeline_header(result: PipelineResult) -> None:
    """Print pipeline analysis header with counts."""
    counts = result.graph.counts()
    h, w = result.labels.shape
    print("\nSurface Classification Results")
    print(f"Grid: {h} x {w}")
    print(f"Clustered pixels: {counts['assigned']} / {h * w}")
    print(f"Edge pixels: {counts['edge_pixels']}, invalid: {counts['invalid']}, skipped: {counts['skipped']}")
    print(f"Number of clusters: {counts['clusters']}")


def print_type_tally(result: PipelineResult) -> None:
    """Print how many clusters ended up with each surface type."""
    tally = Counter(c.surface_type.value for c in result.graph.clusters())
    print("\nSurface types:")
    for name, n in sorted(tally.items()):
        print(f"  {name}: {n}")
