"""Color mapping and export of classification results.

Separates I/O concerns from the core pipeline; nothing here feeds back
into segmentation or classification.
"""
from __future__ import annotations

import colorsys
from typing import Dict, Tuple

import numpy as np

from .grid import GridPointBuffer
from .io import write_point_cloud_from_arrays
from .model import PipelineResult, PointLabel, SurfaceType

TYPE_COLORS: Dict[SurfaceType, Tuple[float, float, float]] = {
    SurfaceType.PLANAR: (0.2, 0.4, 1.0),
    SurfaceType.CONVEX: (1.0, 0.3, 0.2),
    SurfaceType.CONCAVE: (0.2, 0.8, 0.3),
    SurfaceType.EDGE: (1.0, 0.85, 0.1),
    SurfaceType.UNDEFINED: (0.6, 0.6, 0.6),
}
UNCLUSTERED_COLOR = (0.3, 0.3, 0.3)
EDGE_PIXEL_COLOR = (0.0, 0.0, 0.0)
BORDER_COLOR = (1.0, 1.0, 1.0)


def cluster_color(cluster_id: int) -> Tuple[float, float, float]:
    """Stable, well-spread color per cluster id (golden-ratio hue walk)."""
    hue = (cluster_id * 0.618033988749895) % 1.0
    return colorsys.hsv_to_rgb(hue, 0.75, 0.95)


def colorize(result: PipelineResult, mode: str = "type", draw_borders: bool = True) -> np.ndarray:
    """(H, W, 3) colors in [0, 1] for a pipeline result.

    mode "type" colors clusters by surface type, "cluster" by cluster id.
    """
    if mode not in ("type", "cluster"):
        raise ValueError(f"unknown color mode: {mode}")
    labels = result.labels
    colors = np.empty(labels.shape + (3,), dtype=np.float64)
    colors[:] = UNCLUSTERED_COLOR
    colors[labels == PointLabel.EDGE] = EDGE_PIXEL_COLOR

    for c in result.graph.clusters():
        if mode == "type":
            rgb = TYPE_COLORS[c.surface_type]
        else:
            rgb = cluster_color(c.id)
        colors.reshape(-1, 3)[c.indices()] = rgb

    if draw_borders and result.borders is not None:
        colors[result.borders] = BORDER_COLOR
    return colors


def export_classified_cloud(path: str, result: PipelineResult, grid: GridPointBuffer,
                            mode: str = "type", draw_borders: bool = True) -> int:
    """Write the valid points of `grid` colored by `mode`; returns the point count."""
    colors = colorize(result, mode=mode, draw_borders=draw_borders)
    valid = grid.valid_mask
    pts = grid.points[valid]
    write_point_cloud_from_arrays(path, pts, colors[valid])
    return int(pts.shape[0])
