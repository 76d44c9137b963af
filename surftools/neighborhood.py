"""Precomputed pixel-offset masks for organized neighbor lookup.

The neighborhood of a pixel is a set of square rings around it. Offsets are
ordered ring by ring ("increasing mask") and every offset knows its parent on
the previous ring along the ray back to the center, so an admission test can
stop at the first edge or depth jump in each direction.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np


@dataclass(frozen=True)
class NeighborMask:
    radius: int
    step: int
    width: int
    offsets: np.ndarray  # (K, 2) (drow, dcol), ring-ordered
    rings: np.ndarray    # (K,) ring index, 1..radius // step
    parents: np.ndarray  # (K,) index into offsets, -1 for the center
    flat: np.ndarray     # (K,) drow * width + dcol

    def __len__(self) -> int:
        return len(self.offsets)

    def ring_slices(self):
        """Yield (ring, start, stop) ranges over the offset table."""
        if len(self.rings) == 0:
            return
        bounds = np.flatnonzero(np.diff(self.rings)) + 1
        starts = np.concatenate([[0], bounds])
        stops = np.concatenate([bounds, [len(self.rings)]])
        for s, e in zip(starts, stops):
            yield int(self.rings[s]), int(s), int(e)


def _round_half_away(x: float) -> int:
    return int(np.sign(x) * np.floor(abs(x) + 0.5))


def compute_increasing_mask(width: int, radius: int, step: int = 1) -> NeighborMask:
    """Build the ring-ordered offset table for one grid width.

    O(radius^2) work; the result is reused for every pixel of the frame.
    """
    n_rings = radius // step
    offsets = []
    rings = []
    for k in range(1, n_rings + 1):
        ring = []
        for a in range(-k, k + 1):
            for b in range(-k, k + 1):
                if max(abs(a), abs(b)) == k:
                    ring.append((a, b))
        # fixed visit order inside a ring: clockwise angle from "up"
        ring.sort(key=lambda ab: (np.arctan2(ab[1], -ab[0]) % (2 * np.pi), ab))
        offsets.extend(ring)
        rings.extend([k] * len(ring))

    index: Dict[Tuple[int, int], int] = {ab: i for i, ab in enumerate(offsets)}
    parents = np.full(len(offsets), -1, dtype=np.int64)
    for i, (a, b) in enumerate(offsets):
        k = rings[i]
        if k == 1:
            continue
        pa = _round_half_away(a * (k - 1) / k)
        pb = _round_half_away(b * (k - 1) / k)
        parents[i] = index[(pa, pb)]

    off = np.asarray(offsets, dtype=np.int64).reshape(-1, 2) * step
    return NeighborMask(
        radius=radius,
        step=step,
        width=width,
        offsets=off,
        rings=np.asarray(rings, dtype=np.int64),
        parents=parents,
        flat=off[:, 0] * width + off[:, 1],
    )


class NeighborMaskCache:
    """Arena of masks for the current grid width.

    Entries are dropped as soon as a grid of a different width arrives, so
    the cache never outlives the dimensions it was computed for.
    """

    def __init__(self) -> None:
        self._width: Optional[int] = None
        self._masks: Dict[Tuple[int, int], NeighborMask] = {}
        self.misses = 0

    def get(self, width: int, radius: int, step: int = 1) -> NeighborMask:
        if width != self._width:
            self._masks.clear()
            self._width = width
        key = (radius, step)
        mask = self._masks.get(key)
        if mask is None:
            self.misses += 1
            mask = compute_increasing_mask(width, radius, step)
            self._masks[key] = mask
        return mask

    def __len__(self) -> int:
        return len(self._masks)
