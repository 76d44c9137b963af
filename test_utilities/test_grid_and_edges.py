import numpy as np
import pytest

from common.config import EdgeDetection
from exceptions.exceptions import GridShapeError
from surftools.edges import compute_edges, depth_jump_tolerance, edge_barrier
from surftools.grid import GridPointBuffer, build_grid_from_depth_source, require_same_shape, shifted_slices
from surftools import synthetic
from surftools.synthetic import planar_grid, step_grid, with_depth_offset, with_invalid_block


def test_build_grid_from_depth_source_marks_missing_pixels():
    def accessor(row, col):
        if (row, col) == (1, 2):
            return None
        return (col * 0.1, row * 0.1, 1.0 + row)

    grid = build_grid_from_depth_source(4, 3, accessor)

    assert grid.shape == (3, 4)
    assert not grid.valid_mask[1, 2]
    assert grid.valid_mask.sum() == 11
    depth = grid.depth_map()
    assert np.isnan(depth[1, 2])
    assert depth[2, 0] == pytest.approx(3.0)


def test_grid_is_read_only_and_normalizes_partial_nans():
    arr = np.ones((2, 2, 3))
    arr[0, 1, 0] = np.nan
    grid = GridPointBuffer.from_array(arr)

    assert np.isnan(grid.points[0, 1]).all()
    with pytest.raises(ValueError):
        grid.points[0, 0, 2] = 5.0


def test_bad_shapes_are_invariant_violations():
    with pytest.raises(GridShapeError):
        GridPointBuffer.from_array(np.zeros((4, 4)))
    with pytest.raises(GridShapeError):
        require_same_shape((4, 4), edges=np.zeros((4, 5)))
    assert shifted_slices((3, 3), 3, 0) is None


def test_flat_plane_has_no_edges():
    grid = planar_grid(10, 10)
    edges = compute_edges(grid.depth_map(), grid, EdgeDetection())
    assert edges.max() == 0.0


def test_step_marks_both_sides_of_the_jump():
    cfg = EdgeDetection()
    grid = step_grid(10, 10, split_col=5)
    edges = compute_edges(grid.depth_map(), grid, cfg)
    barrier = edge_barrier(edges, cfg.edge_threshold)

    assert barrier[:, 5].all()
    assert barrier[:, 4].all()
    assert not barrier[:, [0, 1, 2, 3, 6, 7, 8, 9]].any()
    assert edges.max() < 1.0


def test_edge_strength_is_monotonic_in_jump():
    cfg = EdgeDetection()
    base = planar_grid(6, 10, z=1.5)
    strengths = []
    jump = 0.005
    for _ in range(8):
        grid = with_depth_offset(base, slice(None), slice(5, None), jump)
        edges = compute_edges(grid.depth_map(), grid, cfg)
        strengths.append(edges[3, 5])
        jump *= 2
    assert all(b >= a for a, b in zip(strengths, strengths[1:]))
    assert strengths[-1] > strengths[0]


def test_tolerance_grows_with_depth():
    cfg = EdgeDetection()
    near, far = depth_jump_tolerance(np.array([0.5, 3.0]), cfg)
    assert far > near


def test_missing_depth_produces_no_edge_signal():
    grid = with_invalid_block(planar_grid(10, 10), slice(3, 6), slice(3, 6))
    edges = compute_edges(grid.depth_map(), grid, EdgeDetection())
    assert edges.max() == 0.0


def test_edges_with_offset_larger_than_grid():
    grid = planar_grid(2, 2)
    edges = compute_edges(grid.depth_map(), grid, EdgeDetection(neighbor_offset=5))
    assert edges.shape == (2, 2)
    assert edges.max() == 0.0


def test_synthetic_frames_module_is_documented():
    assert synthetic.__doc__.startswith("Synthetic organized frames")
