from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, Optional

import numpy as np


class PointLabel(IntEnum):
    """Reserved per-pixel codes. Cluster ids (>= 0) replace VALID after segmentation."""

    VALID = -1
    INVALID = -2
    EDGE = -3
    SKIPPED = -4


class SurfaceType(str, Enum):
    PLANAR = "planar"
    CONVEX = "convex"
    CONCAVE = "concave"
    EDGE = "edge"
    UNDEFINED = "undefined"


@dataclass(frozen=True)
class NormalEstimate:
    """Output of the normal estimator.

    normals: (H, W, 3) unit vectors, NaN where the label is not VALID.
    labels: (H, W) int32 PointLabel codes.
    curvature: (H, W) mean normal-divergence curvature (1/m), NaN where undefined.
    """

    normals: np.ndarray
    labels: np.ndarray
    curvature: np.ndarray

    @property
    def valid_mask(self) -> np.ndarray:
        return self.labels == PointLabel.VALID


@dataclass(frozen=True)
class ClusterClassification:
    cluster_id: int
    surface_type: SurfaceType
    n_points: int
    n_samples: int
    median_curvature: float
    convex_fraction: float
    concave_fraction: float
    border_curvature: Optional[float] = None
    interior_curvature: Optional[float] = None


@dataclass
class PipelineResult:
    """Everything one frame produces. `labels` is the graph's read-only view."""

    labels: np.ndarray
    graph: Any  # ClusterGraph; Any keeps model free of the cluster module
    classifications: Dict[int, ClusterClassification] = field(default_factory=dict)
    edges: Optional[np.ndarray] = None
    normals: Optional[NormalEstimate] = None
    borders: Optional[np.ndarray] = None

    @property
    def n_clusters(self) -> int:
        return len(self.graph)
