"""Synthetic organized frames for tests.

Utilities to create planar, stepped and spherical grids as a sensor at the
origin looking down +Z would see them, plus helpers to punch holes, inject
depth jumps and rigidly rotate a frame. Designed for deterministic unit tests
of the segmentation pipeline.
"""

from __future__ import annotations

from typing import Optional, Tuple

import numpy as np

from .grid import GridPointBuffer


def _rng(seed: Optional[int] = None) -> np.random.Generator:
    return np.random.default_rng(None if seed is None else int(seed))


def _pixel_xy(height: int, width: int, spacing: float) -> Tuple[np.ndarray, np.ndarray]:
    """Metric x/y per pixel, centered on the grid (rows -> y, columns -> x)."""
    x = (np.arange(width, dtype=float) - (width - 1) / 2.0) * spacing
    y = (np.arange(height, dtype=float) - (height - 1) / 2.0) * spacing
    return np.meshgrid(x, y)


def _stack(xx: np.ndarray, yy: np.ndarray, zz: np.ndarray) -> GridPointBuffer:
    return GridPointBuffer.from_array(np.stack([xx, yy, zz], axis=-1))


def planar_grid(
    height: int = 10,
    width: int = 10,
    *,
    spacing: float = 0.01,
    z: float = 1.0,
    slope: Tuple[float, float] = (0.0, 0.0),
    z_noise: float = 0.0,
    seed: Optional[int] = None,
) -> GridPointBuffer:
    """Plane z = z0 + sx * x + sy * y sampled on a regular pixel grid."""
    xx, yy = _pixel_xy(height, width, spacing)
    zz = z + slope[0] * xx + slope[1] * yy
    if z_noise > 0:
        zz = zz + _rng(seed).normal(0.0, z_noise, size=zz.shape)
    return _stack(xx, yy, zz)


def step_grid(
    height: int = 10,
    width: int = 10,
    *,
    split_col: int = 5,
    z_near: float = 1.0,
    z_far: float = 2.0,
    spacing: float = 0.01,
) -> GridPointBuffer:
    """Two fronto-parallel planes; columns >= split_col sit at z_far."""
    xx, yy = _pixel_xy(height, width, spacing)
    zz = np.where(np.arange(width)[None, :] >= split_col, z_far, z_near) * np.ones_like(xx)
    return _stack(xx, yy, zz)


def sphere_cap(
    height: int = 40,
    width: int = 40,
    *,
    radius: float = 1.0,
    apex_z: float = 2.0,
    spacing: float = 0.01,
    convex: bool = True,
) -> GridPointBuffer:
    """Spherical patch with its apex at (0, 0, apex_z).

    convex=True bulges toward the sensor (ball), convex=False opens toward
    it (bowl). The patch must stay inside the sphere's footprint.
    """
    xx, yy = _pixel_xy(height, width, spacing)
    r2 = xx * xx + yy * yy
    if (r2 >= radius * radius).any():
        raise ValueError("patch extends past the sphere silhouette; reduce spacing or grid size")
    sag = radius - np.sqrt(radius * radius - r2)
    zz = apex_z + sag if convex else apex_z - sag
    return _stack(xx, yy, zz)


def with_invalid_block(grid: GridPointBuffer, rows: slice, cols: slice) -> GridPointBuffer:
    """Copy of `grid` with a rectangular block of missing depth."""
    arr = grid.points.copy()
    arr[rows, cols] = np.nan
    return GridPointBuffer.from_array(arr)


def with_depth_offset(grid: GridPointBuffer, rows: slice, cols: slice, jump: float) -> GridPointBuffer:
    """Copy of `grid` with `jump` added to z inside the block."""
    arr = grid.points.copy()
    arr[rows, cols, 2] += jump
    return GridPointBuffer.from_array(arr)


def rotation_matrix(axis, angle: float) -> np.ndarray:
    """Rodrigues rotation about `axis` by `angle` radians."""
    k = np.asarray(axis, dtype=float)
    k = k / np.linalg.norm(k)
    K = np.array([[0, -k[2], k[1]], [k[2], 0, -k[0]], [-k[1], k[0], 0]])
    return np.eye(3) + np.sin(angle) * K + (1 - np.cos(angle)) * (K @ K)


def rotate_grid(grid: GridPointBuffer, rotation: np.ndarray) -> GridPointBuffer:
    """Rigidly rotate every point about the sensor origin; pixel layout is unchanged."""
    return GridPointBuffer.from_array(grid.points @ rotation.T)
