"""Grid point buffer: one 3D point per pixel of the originating image."""
from __future__ import annotations

from typing import Callable, Optional, Sequence

import numpy as np

from exceptions.exceptions import GridShapeError

NO_DEPTH = np.nan

PointAccessor = Callable[[int, int], Optional[Sequence[float]]]


class GridPointBuffer:
    """Organized point cloud of shape (height, width, 3).

    Invalid pixels carry NaN coordinates. The backing array is read-only, so
    the grid shape and contents stay fixed for the lifetime of a frame.
    """

    def __init__(self, points: np.ndarray):
        arr = np.array(points, dtype=np.float64, copy=True)
        if arr.ndim != 3 or arr.shape[2] != 3:
            raise GridShapeError(f"points must have shape (H, W, 3), got {arr.shape}")
        # a point is only usable when all three coordinates are finite
        arr[~np.isfinite(arr).all(axis=2)] = np.nan
        arr.setflags(write=False)
        self._points = arr

    @classmethod
    def from_array(cls, points: np.ndarray) -> "GridPointBuffer":
        return cls(points)

    @property
    def points(self) -> np.ndarray:
        return self._points

    @property
    def shape(self) -> tuple:
        return self._points.shape[:2]

    @property
    def height(self) -> int:
        return self._points.shape[0]

    @property
    def width(self) -> int:
        return self._points.shape[1]

    @property
    def size(self) -> int:
        return self.height * self.width

    @property
    def valid_mask(self) -> np.ndarray:
        return np.isfinite(self._points[..., 2])

    def depth_map(self) -> np.ndarray:
        """z per pixel, NO_DEPTH where the point is missing."""
        depth = self._points[..., 2].copy()
        depth[~self.valid_mask] = NO_DEPTH
        return depth

    def flat(self) -> np.ndarray:
        return self._points.reshape(-1, 3)

    def __repr__(self) -> str:
        return f"GridPointBuffer({self.height}x{self.width}, valid={int(self.valid_mask.sum())})"


def build_grid_from_depth_source(width: int, height: int, point_accessor: PointAccessor) -> GridPointBuffer:
    """Materialize a grid by asking the caller for each pixel's point.

    The accessor gets (row, col) and returns an (x, y, z) triple, or None
    for a pixel without depth.
    """
    if width < 0 or height < 0:
        raise ValueError(f"grid dimensions must be non-negative, got {width}x{height}")
    arr = np.full((height, width, 3), np.nan, dtype=np.float64)
    for row in range(height):
        for col in range(width):
            p = point_accessor(row, col)
            if p is not None:
                arr[row, col] = p
    return GridPointBuffer(arr)


def _axis_slices(n: int, d: int):
    if d >= 0:
        return slice(0, n - d), slice(d, n)
    return slice(-d, n), slice(0, n + d)


def shifted_slices(shape: tuple, dr: int, dc: int):
    """Index pair (center, neighbor) so that a[center] and a[neighbor] line up
    each pixel (r, c) with its neighbor (r + dr, c + dc).

    Returns None when the displacement does not fit inside the grid.
    """
    h, w = shape[:2]
    if abs(dr) >= h or abs(dc) >= w:
        return None
    rc, rn = _axis_slices(h, dr)
    cc, cn = _axis_slices(w, dc)
    return (rc, cc), (rn, cn)


def require_same_shape(shape: tuple, **buffers: Optional[np.ndarray]) -> None:
    """Raise GridShapeError if any buffer's leading (H, W) differs from `shape`."""
    for name, buf in buffers.items():
        if buf is None:
            continue
        if tuple(buf.shape[:2]) != tuple(shape):
            raise GridShapeError(f"{name} has shape {buf.shape[:2]}, expected {tuple(shape)}")
