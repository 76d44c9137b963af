"""Normal-divergence curvature on the pixel grid.

For a pixel p and a grid neighbor q on the same surface,

    k = ((n_q - n_p) . (x_q - x_p)) / |x_q - x_p|^2

is the normal curvature along the direction p -> q. With normals oriented
toward the sensor, k > 0 on surfaces bulging toward the sensor (convex) and
k < 0 on bowls (concave). Units are 1 / (point units).
"""
from __future__ import annotations

from typing import Optional

import numpy as np

from .grid import shifted_slices


def directional_curvature(
    points: np.ndarray,
    normals: np.ndarray,
    admissible: np.ndarray,
    axis: int,
    offset: int,
    *,
    groups: Optional[np.ndarray] = None,
    max_depth_jump: Optional[float] = None,
) -> np.ndarray:
    """Curvature along rows (axis=0) or columns (axis=1).

    Uses the forward neighbor at `offset` pixels and falls back to the
    backward one. Pairs must both be admissible, share a group value when
    `groups` is given, and stay within `max_depth_jump` in z.
    """
    shape = admissible.shape
    k = np.full(shape, np.nan, dtype=np.float64)
    offset = max(1, int(offset))
    with np.errstate(invalid="ignore", divide="ignore"):
        for d in (offset, -offset):
            idx = shifted_slices(shape, d if axis == 0 else 0, d if axis == 1 else 0)
            if idx is None:
                continue
            c, n = idx
            ok = admissible[c] & admissible[n]
            if groups is not None:
                ok &= groups[c] == groups[n]
            dp = points[n] - points[c]
            if max_depth_jump is not None:
                ok &= np.abs(dp[..., 2]) <= max_depth_jump
            dist2 = (dp * dp).sum(axis=-1)
            ok &= dist2 > 0
            val = ((normals[n] - normals[c]) * dp).sum(axis=-1) / np.where(ok, dist2, 1.0)
            target = k[c]
            fill = ok & np.isnan(target)
            target[fill] = val[fill]
    return k


def mean_curvature(
    points: np.ndarray,
    normals: np.ndarray,
    admissible: np.ndarray,
    offset: int,
    *,
    groups: Optional[np.ndarray] = None,
    max_depth_jump: Optional[float] = None,
) -> np.ndarray:
    """Average of row and column curvature where at least one is defined."""
    kr = directional_curvature(points, normals, admissible, 0, offset, groups=groups, max_depth_jump=max_depth_jump)
    kc = directional_curvature(points, normals, admissible, 1, offset, groups=groups, max_depth_jump=max_depth_jump)
    stack = np.stack([kr, kc])
    cnt = np.isfinite(stack).sum(axis=0)
    total = np.nansum(stack, axis=0)
    return np.where(cnt > 0, total / np.maximum(cnt, 1), np.nan)
