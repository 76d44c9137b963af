from __future__ import annotations

import os
from typing import Optional, Tuple

import numpy as np
import open3d as o3d

from exceptions.exceptions import StepPreconditionError
from .grid import GridPointBuffer


def read_point_cloud(path: str) -> o3d.geometry.PointCloud:
    """Read a point cloud from disk using Open3D, keeping NaN points in place.

    Supported formats include PCD/PLY/XYZ depending on Open3D compilation.
    """
    return o3d.io.read_point_cloud(path, remove_nan_points=False, remove_infinite_points=False)


def read_pcd_dimensions(path: str) -> Optional[Tuple[int, int]]:
    """Return (width, height) from a PCD header, or None when unorganized or absent."""
    width = height = None
    with open(path, "rb") as f:
        for raw in f:
            line = raw.decode("ascii", errors="ignore").strip()
            if line.startswith("WIDTH"):
                width = int(line.split()[1])
            elif line.startswith("HEIGHT"):
                height = int(line.split()[1])
            elif line.startswith("DATA"):
                break
    if width is None or height is None or height <= 1:
        return None
    return width, height


def load_organized_cloud(path: str, width: Optional[int] = None, height: Optional[int] = None) -> GridPointBuffer:
    """Load a frame into a GridPointBuffer.

    `.npy` files must hold an (H, W, 3) array. Other formats go through
    Open3D; the grid shape comes from `width`/`height` or, for PCD, from the
    file header.

    Raises:
        StepPreconditionError: missing file, unknown dimensions, or a point
        count that does not fill the grid.
    """
    if not os.path.isfile(path):
        raise StepPreconditionError("INPUT_NOT_FOUND", f"input cloud not found: {path}", context="load_organized_cloud")

    if path.lower().endswith(".npy"):
        arr = np.load(path)
        if arr.ndim != 3 or arr.shape[2] != 3:
            raise StepPreconditionError("SHAPE_MISMATCH", f"expected an (H, W, 3) array in {path}, got {arr.shape}",
                                        context="load_organized_cloud")
        return GridPointBuffer.from_array(arr)

    if (width is None or height is None) and path.lower().endswith(".pcd"):
        dims = read_pcd_dimensions(path)
        if dims is not None:
            width, height = dims
    if width is None or height is None:
        raise StepPreconditionError("MISSING_DIMENSIONS", f"grid width/height unknown for {path}; pass --width/--height",
                                    context="load_organized_cloud")

    pts = np.asarray(read_point_cloud(path).points, dtype=np.float64)
    if pts.shape[0] != width * height:
        raise StepPreconditionError("SHAPE_MISMATCH",
                                    f"{path} has {pts.shape[0]} points, expected {width}x{height}={width * height}",
                                    context="load_organized_cloud")
    return GridPointBuffer.from_array(pts.reshape(height, width, 3))


def write_point_cloud_from_arrays(
    path: str,
    points: np.ndarray,
    colors: np.ndarray | None = None,
) -> None:
    """Write a point cloud to disk from numpy arrays using Open3D.

    Args:
        path: Output file path (e.g., .pcd, .ply). Extension determines format.
        points: Array of shape (N, 3) with XYZ coordinates.
        colors: Optional array of shape (N, 3) with RGB in [0, 1].

    Raises:
        ValueError: If input shapes are invalid or sizes mismatch.
        RuntimeError: If the point cloud cannot be written.
    """
    if points.ndim != 2 or points.shape[1] != 3:
        raise ValueError("points must have shape (N, 3)")
    if colors is not None:
        if colors.ndim != 2 or colors.shape[1] != 3:
            raise ValueError("colors must have shape (N, 3) when provided")
        if colors.shape[0] != points.shape[0]:
            raise ValueError("colors and points must have the same number of rows (N)")

    pc = o3d.geometry.PointCloud()
    pc.points = o3d.utility.Vector3dVector(np.asarray(points, dtype=np.float64))
    if colors is not None and colors.size > 0:
        pc.colors = o3d.utility.Vector3dVector(np.asarray(colors, dtype=np.float64))

    ok = o3d.io.write_point_cloud(path, pc, print_progress=False)
    if not ok:
        raise RuntimeError(f"Failed to write point cloud to {path}")
