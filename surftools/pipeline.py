from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional

import numpy as np

from common.config import Config
from exceptions.exceptions import ConfigurationError
from validation.validate_config import validate_config, validate_grid_shape
from validation.validation_helpers import errors_only, log_issues
from .classifier import classify, mark_borders
from .edges import compute_edges
from .grid import GridPointBuffer, require_same_shape
from .model import PipelineResult
from .neighborhood import NeighborMaskCache
from .normals import estimate_normals
from .refine import refine
from .segmentation import segment


class PipelineBuilder:
    """Fluent API builder for configuring and running surface classification.

    Example:
        result = (PipelineBuilder()
            .with_normal_radius(6)
            .with_same_direction_threshold(0.9)
            .without_refinement()
            .run(grid))
    """

    def __init__(self, config: Optional[Config] = None):
        self.config = config or Config()
        self._cache: Optional[NeighborMaskCache] = None
        self._roi: Optional[np.ndarray] = None

    # Edge detection
    def with_edge_thresholds(self, depth_jump_min: float, depth_jump_factor: float) -> "PipelineBuilder":
        """Tolerated depth jump = depth_jump_min + depth_jump_factor * z^2."""
        ed = replace(self.config.edge_detection, depth_jump_min=depth_jump_min, depth_jump_factor=depth_jump_factor)
        self.config = replace(self.config, edge_detection=ed)
        return self

    def without_edges(self) -> "PipelineBuilder":
        """Ignore the edge map in normal estimation and segmentation."""
        ne = replace(self.config.normal_estimation, use_edges=False)
        seg = replace(self.config.segmentation, use_edges=False)
        self.config = replace(self.config, normal_estimation=ne, segmentation=seg)
        return self

    # Normal estimation
    def with_normal_radius(self, radius: int, step: int = 1) -> "PipelineBuilder":
        """Pixel search radius and subsampling stride of the neighborhood."""
        ne = replace(self.config.normal_estimation, radius=radius, step=step)
        self.config = replace(self.config, normal_estimation=ne)
        return self

    def with_skip_distance(self, skip_distance: float) -> "PipelineBuilder":
        ne = replace(self.config.normal_estimation, skip_distance=skip_distance)
        self.config = replace(self.config, normal_estimation=ne)
        return self

    def with_region_of_interest(self, roi: np.ndarray) -> "PipelineBuilder":
        """Pixels outside the boolean mask are labeled SKIPPED."""
        self._roi = roi
        return self

    def with_mask_cache(self, cache: NeighborMaskCache) -> "PipelineBuilder":
        """Share neighbor masks across frames of the same width."""
        self._cache = cache
        return self

    # Segmentation / refinement / classification
    def with_same_direction_threshold(self, threshold: float) -> "PipelineBuilder":
        seg = replace(self.config.segmentation, same_direction_threshold=threshold)
        self.config = replace(self.config, segmentation=seg)
        return self

    def with_curvature_merge_threshold(self, threshold: float, max_iterations: Optional[int] = None) -> "PipelineBuilder":
        rf = replace(self.config.refinement, enabled=True, curvature_merge_threshold=threshold)
        if max_iterations is not None:
            rf = replace(rf, max_iterations=max_iterations)
        self.config = replace(self.config, refinement=rf)
        return self

    def without_refinement(self) -> "PipelineBuilder":
        self.config = replace(self.config, refinement=replace(self.config.refinement, enabled=False))
        return self

    def with_mask_size(self, mask_size: int) -> "PipelineBuilder":
        """Smoothing mask size used for the classification curvature baseline."""
        cl = replace(self.config.classification, mask_size=mask_size)
        self.config = replace(self.config, classification=cl)
        return self

    def without_classification(self) -> "PipelineBuilder":
        self.config = replace(self.config, classification=replace(self.config.classification, enabled=False))
        return self

    # Execution
    def run(self, grid: GridPointBuffer) -> PipelineResult:
        return run_pipeline(grid, self.config, cache=self._cache, roi=self._roi)


def check_inputs(grid: GridPointBuffer, cfg: Config) -> None:
    """Reject unusable config or an empty grid before any stage runs."""
    issues = validate_grid_shape(grid.shape) + validate_config(cfg)
    if log_issues(issues, "error"):
        raise ConfigurationError(errors_only(issues))


def run_pipeline(
    grid: GridPointBuffer,
    config: Optional[Config] = None,
    *,
    cache: Optional[NeighborMaskCache] = None,
    roi: Optional[np.ndarray] = None,
) -> PipelineResult:
    """Edge detection -> normals -> segmentation -> refinement -> classification.

    Steps:
      1) Validate config and grid; raise ConfigurationError without running
         anything if either is unusable.
      2) Derive the depth map and the per-pixel edge strength.
      3) Estimate edge-aware normals, labels and curvature.
      4) Grow clusters and build the adjacency graph.
      5) Optionally merge curvature-compatible neighbors.
      6) Mark border pixels and optionally classify every cluster.

    Returns:
      PipelineResult with the final labels (read-only), the cluster graph,
      per-cluster classifications and the intermediate buffers.

    Raises:
      ConfigurationError for invalid config or an empty grid.
      InvariantViolation subclasses if a stage broke its contract.
    """
    cfg = config or Config()
    check_inputs(grid, cfg)
    require_same_shape(grid.shape, roi=roi)

    ne = cfg.normal_estimation
    threshold = cfg.edge_detection.edge_threshold

    edges = compute_edges(grid.depth_map(), grid, cfg.edge_detection)
    normals = estimate_normals(grid, edges, ne, edge_threshold=threshold, cache=cache, roi=roi)
    graph = segment(grid, normals, edges, cfg.segmentation,
                    edge_threshold=threshold, skip_distance=ne.skip_distance)

    if cfg.refinement.enabled:
        refine(graph, grid, normals, cfg.refinement,
               same_direction_threshold=cfg.segmentation.same_direction_threshold)

    borders = mark_borders(graph.labels)
    classifications = {}
    if cfg.classification.enabled:
        classifications = classify(graph, grid, normals, cfg.classification, borders=borders)

    graph.check_consistency()
    logging.info("pipeline: %s", graph.counts())
    return PipelineResult(
        labels=graph.labels,
        graph=graph,
        classifications=classifications,
        edges=edges,
        normals=normals,
        borders=borders,
    )
