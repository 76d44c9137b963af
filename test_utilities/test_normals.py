import numpy as np
import pytest

from common.config import Config, EdgeDetection, NormalEstimation
from surftools.curvature import mean_curvature
from surftools.edges import compute_edges
from surftools.grid import GridPointBuffer
from surftools.model import PointLabel
from surftools.neighborhood import NeighborMaskCache, compute_increasing_mask
from surftools.normals import estimate_normals
from surftools.synthetic import (planar_grid, rotate_grid, rotation_matrix, sphere_cap, step_grid,
                                 with_invalid_block)
from test_utils import normals_for


def test_increasing_mask_rings_and_parents():
    mask = compute_increasing_mask(10, 2, 1)

    assert len(mask) == 24
    assert [ring for ring, _, _ in mask.ring_slices()] == [1, 2]
    assert (mask.rings == 1).sum() == 8
    assert (mask.parents[mask.rings == 1] == -1).all()
    for i in np.flatnonzero(mask.rings == 2):
        parent = mask.offsets[mask.parents[i]]
        assert mask.rings[mask.parents[i]] == 1
        assert np.abs(mask.offsets[i] - parent).max() == 1
    assert (mask.flat == mask.offsets[:, 0] * 10 + mask.offsets[:, 1]).all()


def test_increasing_mask_step_subsamples_offsets():
    mask = compute_increasing_mask(20, 4, 2)
    assert len(mask) == 24
    assert np.abs(mask.offsets).max() == 4
    assert (mask.offsets % 2 == 0).all()


def test_mask_cache_reuses_and_resets_on_width_change():
    cache = NeighborMaskCache()
    first = cache.get(10, 2)
    assert cache.get(10, 2) is first
    cache.get(10, 3)
    assert cache.misses == 2 and len(cache) == 2

    cache.get(12, 2)
    assert cache.misses == 3
    assert len(cache) == 1


def test_plane_normals_point_at_sensor():
    grid = planar_grid(10, 10)
    ne = normals_for(grid)

    assert (ne.labels == PointLabel.VALID).all()
    assert np.allclose(ne.normals.reshape(-1, 3), [0.0, 0.0, -1.0], atol=1e-6)
    assert np.nanmax(np.abs(ne.curvature)) < 1e-6


def test_normals_follow_a_rigid_rotation():
    grid = planar_grid(12, 12, slope=(0.2, 0.1))
    R = rotation_matrix((1.0, 1.0, 0.0), 0.2)
    base = normals_for(grid)
    rotated = normals_for(rotate_grid(grid, R))

    both = base.valid_mask & rotated.valid_mask
    assert both.sum() > 100
    assert np.allclose(rotated.normals[both], base.normals[both] @ R.T, atol=1e-6)


def test_isolated_pixel_is_invalid():
    arr = np.full((7, 7, 3), np.nan)
    arr[3, 3] = (0.0, 0.0, 1.0)
    ne = normals_for(GridPointBuffer.from_array(arr))

    assert (ne.labels == PointLabel.INVALID).all()
    assert np.isnan(ne.normals).all()


def test_collinear_row_is_invalid():
    ne = normals_for(planar_grid(1, 12))
    assert (ne.labels == PointLabel.INVALID).all()


def test_valid_pixels_always_have_unit_normals():
    for grid in (step_grid(10, 10), sphere_cap(20, 20),
                 with_invalid_block(planar_grid(12, 12), slice(4, 8), slice(2, 5))):
        ne = normals_for(grid)
        valid = ne.valid_mask
        assert valid.any()
        assert np.isfinite(ne.normals[valid]).all()
        assert np.allclose(np.linalg.norm(ne.normals[valid], axis=1), 1.0)
        assert np.isnan(ne.normals[~valid]).all()


def test_step_pixels_are_labeled_edge():
    ne = normals_for(step_grid(10, 10, split_col=5))

    assert (ne.labels[:, [4, 5]] == PointLabel.EDGE).all()
    assert (ne.labels[:, :4] == PointLabel.VALID).all()
    assert (ne.labels[:, 6:] == PointLabel.VALID).all()


def test_edges_can_be_ignored():
    cfg = Config(normal_estimation=NormalEstimation(use_edges=False))
    ne = normals_for(step_grid(10, 10, split_col=5), cfg)
    assert not (ne.labels == PointLabel.EDGE).any()


def test_region_of_interest_marks_skipped():
    grid = planar_grid(10, 10)
    roi = np.zeros(grid.shape, dtype=bool)
    roi[2:8, 2:8] = True
    edges = compute_edges(grid.depth_map(), grid, EdgeDetection())
    ne = estimate_normals(grid, edges, NormalEstimation(), roi=roi)

    assert (ne.labels[~roi] == PointLabel.SKIPPED).all()
    assert (ne.labels[roi] == PointLabel.VALID).all()


def test_shared_cache_gives_identical_estimates():
    grid = sphere_cap(16, 16)
    edges = compute_edges(grid.depth_map(), grid, EdgeDetection())
    cache = NeighborMaskCache()
    a = estimate_normals(grid, edges, NormalEstimation(), cache=cache)
    b = estimate_normals(grid, edges, NormalEstimation(), cache=cache)

    assert cache.misses == 1
    assert np.array_equal(a.labels, b.labels)
    assert np.array_equal(a.normals, b.normals, equal_nan=True)


@pytest.mark.parametrize("convex, sign", [(True, 1.0), (False, -1.0)])
def test_curvature_of_exact_sphere_normals(convex, sign):
    radius, apex = 1.0, 2.0
    grid = sphere_cap(20, 20, radius=radius, apex_z=apex, convex=convex)
    pts = grid.points
    center = np.array([0.0, 0.0, apex + radius if convex else apex - radius])
    normals = (pts - center) / radius if convex else (center - pts) / radius

    k = mean_curvature(pts, normals, grid.valid_mask, 3)
    assert np.allclose(k, sign / radius)
