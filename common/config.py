import os
import yaml
from dataclasses import dataclass, replace
from typing import Optional


def _read(path: str):
    with open(path, "r") as f:
        return yaml.safe_load(f)


@dataclass(frozen=True)
class Logging:
    level: str = "INFO"

@dataclass(frozen=True)
class EdgeDetection:
    # tolerated jump = depth_jump_min + depth_jump_factor * z^2 (meters)
    depth_jump_min: float = 0.01
    depth_jump_factor: float = 0.02
    neighbor_offset: int = 1
    edge_threshold: float = 0.5

@dataclass(frozen=True)
class NormalEstimation:
    radius: int = 8
    step: int = 1
    min_neighbors: int = 6
    skip_distance: float = 0.05
    use_edges: bool = True

@dataclass(frozen=True)
class Segmentation:
    same_direction_threshold: float = 0.94
    use_edges: bool = True

@dataclass(frozen=True)
class Refinement:
    enabled: bool = True
    curvature_merge_threshold: float = 0.5
    planar_curvature: float = 0.5
    min_smooth_fraction: float = 0.5
    max_iterations: int = 20

@dataclass(frozen=True)
class Classification:
    enabled: bool = True
    mask_size: int = 14
    planar_curvature: float = 0.5
    consistency: float = 0.6
    min_samples: int = 3
    edge_ratio: float = 3.0


@dataclass(frozen=True)
class Config:
    logging: Logging = Logging()
    edge_detection: EdgeDetection = EdgeDetection()
    normal_estimation: NormalEstimation = NormalEstimation()
    segmentation: Segmentation = Segmentation()
    refinement: Refinement = Refinement()
    classification: Classification = Classification()

def load_config(path: Optional[str]) -> Config:
    cfg = Config()
    if path and os.path.isfile(path):
        data = _read(path) or {}
        logging = replace(cfg.logging, **(data.get("logging", {}) or {}))
        edge_detection = replace(cfg.edge_detection, **(data.get("edge_detection", {}) or {}))
        normal_estimation = replace(cfg.normal_estimation, **(data.get("normal_estimation", {}) or {}))
        segmentation = replace(cfg.segmentation, **(data.get("segmentation", {}) or {}))
        refinement = replace(cfg.refinement, **(data.get("refinement", {}) or {}))
        classification = replace(cfg.classification, **(data.get("classification", {}) or {}))
        cfg = replace(cfg, logging=logging, edge_detection=edge_detection, normal_estimation=normal_estimation,
                      segmentation=segmentation, refinement=refinement, classification=classification)
    return cfg
