"""Entry validation for the surface classification pipeline.

All checks run before the first stage; a config with any error never
starts a partial run.
"""
from __future__ import annotations

from typing import List, Optional

from common.config import Config
from validation.validation_helpers import ValidationIssue


def _positive(issues: List[ValidationIssue], path: str, value, *, allow_zero: bool = False) -> None:
    bad = value < 0 if allow_zero else value <= 0
    if bad:
        bound = "non-negative" if allow_zero else "positive"
        issues.append(ValidationIssue(path, "NON_POSITIVE", "error", f"{path} must be {bound}, got {value}"))


def _in_range(issues: List[ValidationIssue], path: str, value: float, lo: float, hi: float) -> None:
    if not (lo <= value <= hi):
        issues.append(ValidationIssue(path, "OUT_OF_RANGE", "error", f"{path} must be in [{lo}, {hi}], got {value}"))


def validate_config(cfg: Config) -> List[ValidationIssue]:
    issues: List[ValidationIssue] = []

    ed = cfg.edge_detection
    _positive(issues, "edge_detection.depth_jump_min", ed.depth_jump_min)
    _positive(issues, "edge_detection.depth_jump_factor", ed.depth_jump_factor, allow_zero=True)
    _positive(issues, "edge_detection.neighbor_offset", ed.neighbor_offset)
    _in_range(issues, "edge_detection.edge_threshold", ed.edge_threshold, 0.0, 1.0)

    ne = cfg.normal_estimation
    _positive(issues, "normal_estimation.radius", ne.radius)
    _positive(issues, "normal_estimation.step", ne.step)
    _positive(issues, "normal_estimation.skip_distance", ne.skip_distance)
    if ne.min_neighbors < 2:
        issues.append(ValidationIssue("normal_estimation.min_neighbors", "OUT_OF_RANGE", "error",
                                      f"at least 2 neighbors are needed to fit a plane, got {ne.min_neighbors}"))
    if ne.step > 0 and ne.radius > 0 and ne.step > ne.radius:
        issues.append(ValidationIssue("normal_estimation.step", "OUT_OF_RANGE", "error",
                                      f"step {ne.step} exceeds radius {ne.radius}; neighborhood would be empty"))

    _in_range(issues, "segmentation.same_direction_threshold", cfg.segmentation.same_direction_threshold, -1.0, 1.0)

    rf = cfg.refinement
    _positive(issues, "refinement.curvature_merge_threshold", rf.curvature_merge_threshold, allow_zero=True)
    _positive(issues, "refinement.planar_curvature", rf.planar_curvature, allow_zero=True)
    _in_range(issues, "refinement.min_smooth_fraction", rf.min_smooth_fraction, 0.0, 1.0)
    _positive(issues, "refinement.max_iterations", rf.max_iterations, allow_zero=True)

    cl = cfg.classification
    _positive(issues, "classification.mask_size", cl.mask_size)
    _positive(issues, "classification.planar_curvature", cl.planar_curvature, allow_zero=True)
    _in_range(issues, "classification.consistency", cl.consistency, 0.0, 1.0)
    _positive(issues, "classification.min_samples", cl.min_samples)
    _positive(issues, "classification.edge_ratio", cl.edge_ratio)
    if 0 < cl.mask_size < 2:
        issues.append(ValidationIssue("classification.mask_size", "OUT_OF_RANGE", "warning",
                                      "mask_size 1 gives a zero-pixel baseline; using 1 pixel instead"))

    return issues


def validate_grid_shape(shape: Optional[tuple]) -> List[ValidationIssue]:
    if shape is None or len(shape) < 2 or shape[0] <= 0 or shape[1] <= 0:
        return [ValidationIssue("grid", "EMPTY_GRID", "error", f"grid must have positive height and width, got {shape}")]
    return []
