"""Cluster arena and adjacency graph.

Clusters live in an arena addressed by stable integer ids. Merging never
deletes an entry; the absorbed id is forwarded to its survivor through a
union-find table, so stale ids resolve instead of dangling. The graph is the
only writer of the per-pixel label buffer: callers get a read-only view and
every change goes through `new_cluster`, `add_pixels` or `merge`.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

import numpy as np

from exceptions.exceptions import DanglingClusterError, GridShapeError, InvariantViolation
from .model import PointLabel, SurfaceType


@dataclass
class Cluster:
    id: int
    size: int = 0
    normal_sum: np.ndarray = field(default_factory=lambda: np.zeros(3))
    point_sum: np.ndarray = field(default_factory=lambda: np.zeros(3))
    curvature_sum: float = 0.0
    curvature_count: int = 0
    row_min: int = np.iinfo(np.int64).max
    row_max: int = -1
    col_min: int = np.iinfo(np.int64).max
    col_max: int = -1
    pixels: List[np.ndarray] = field(default_factory=list)
    border: Optional[np.ndarray] = None
    surface_type: SurfaceType = SurfaceType.UNDEFINED

    @property
    def mean_normal(self) -> np.ndarray:
        norm = np.linalg.norm(self.normal_sum)
        if norm == 0:
            return np.zeros(3)
        return self.normal_sum / norm

    @property
    def centroid(self) -> np.ndarray:
        return self.point_sum / max(self.size, 1)

    @property
    def curvature(self) -> float:
        if self.curvature_count == 0:
            return 0.0
        return self.curvature_sum / self.curvature_count

    @property
    def extent(self) -> Tuple[int, int, int, int]:
        return self.row_min, self.row_max, self.col_min, self.col_max

    def indices(self) -> np.ndarray:
        """Flat pixel indices owned by this cluster."""
        if not self.pixels:
            return np.zeros(0, dtype=np.int64)
        if len(self.pixels) > 1:
            self.pixels = [np.concatenate(self.pixels)]
        return self.pixels[0]


@dataclass
class GraphEdge:
    a: int
    b: int
    weight: float = 0.0
    n_pairs: int = 0
    n_smooth: int = 0

    @property
    def smooth_fraction(self) -> float:
        return self.n_smooth / self.n_pairs if self.n_pairs else 0.0


def normal_angle(n1: np.ndarray, n2: np.ndarray) -> float:
    return float(np.arccos(np.clip(np.dot(n1, n2), -1.0, 1.0)))


def _key(a: int, b: int) -> Tuple[int, int]:
    return (a, b) if a < b else (b, a)


class ClusterGraph:
    def __init__(self, labels: np.ndarray):
        if labels.ndim != 2:
            raise GridShapeError(f"labels must be 2D, got shape {labels.shape}")
        self._labels = np.array(labels, dtype=np.int32, copy=True)
        self._clusters: List[Cluster] = []
        self._parent: List[int] = []
        self._live: Dict[int, Cluster] = {}
        self._edges: Dict[Tuple[int, int], GraphEdge] = {}

    # -- label buffer ---------------------------------------------------
    @property
    def labels(self) -> np.ndarray:
        view = self._labels.view()
        view.setflags(write=False)
        return view

    @property
    def shape(self) -> tuple:
        return self._labels.shape

    # -- arena ----------------------------------------------------------
    def new_cluster(self) -> Cluster:
        cid = len(self._clusters)
        c = Cluster(id=cid)
        self._clusters.append(c)
        self._parent.append(cid)
        self._live[cid] = c
        return c

    def resolve(self, cid: int) -> int:
        """Current representative of `cid` (itself unless absorbed)."""
        if cid < 0 or cid >= len(self._parent):
            raise DanglingClusterError(cid, f"cluster {cid} was never created")
        root = cid
        while self._parent[root] != root:
            root = self._parent[root]
        while self._parent[cid] != root:
            self._parent[cid], cid = root, self._parent[cid]
        return root

    def cluster(self, cid: int) -> Cluster:
        c = self._live.get(cid)
        if c is None:
            raise DanglingClusterError(cid)
        return c

    def is_live(self, cid: int) -> bool:
        return cid in self._live

    def clusters(self) -> Iterator[Cluster]:
        """Live clusters in discovery order."""
        return iter(self._live.values())

    def ids(self) -> List[int]:
        return list(self._live.keys())

    def __len__(self) -> int:
        return len(self._live)

    def __contains__(self, cid: int) -> bool:
        return cid in self._live

    def add_pixels(
        self,
        cid: int,
        flat_idx: np.ndarray,
        points: np.ndarray,
        normals: np.ndarray,
        curvature: Optional[np.ndarray] = None,
    ) -> None:
        """Assign pixels to a live cluster and fold them into its aggregates.

        `points`, `normals` and `curvature` are the full-grid buffers.
        """
        c = self.cluster(cid)
        flat_idx = np.asarray(flat_idx, dtype=np.int64)
        if flat_idx.size == 0:
            return
        flat_labels = self._labels.reshape(-1)
        taken = flat_labels[flat_idx] != PointLabel.VALID
        if taken.any():
            raise InvariantViolation("DOUBLE_ASSIGNMENT",
                                     f"pixel(s) {flat_idx[taken][:5].tolist()} are clustered already or have no valid normal")
        flat_labels[flat_idx] = cid

        w = self._labels.shape[1]
        rows, cols = np.divmod(flat_idx, w)
        c.size += int(flat_idx.size)
        c.normal_sum = c.normal_sum + normals.reshape(-1, 3)[flat_idx].sum(axis=0)
        c.point_sum = c.point_sum + points.reshape(-1, 3)[flat_idx].sum(axis=0)
        if curvature is not None:
            k = curvature.reshape(-1)[flat_idx]
            k = k[np.isfinite(k)]
            c.curvature_sum += float(k.sum())
            c.curvature_count += int(k.size)
        c.row_min = min(c.row_min, int(rows.min()))
        c.row_max = max(c.row_max, int(rows.max()))
        c.col_min = min(c.col_min, int(cols.min()))
        c.col_max = max(c.col_max, int(cols.max()))
        c.pixels.append(flat_idx)

    # -- edges ----------------------------------------------------------
    def connect(self, a: int, b: int, *, n_pairs: int = 1, n_smooth: int = 0,
                weight: Optional[float] = None) -> GraphEdge:
        """Create or strengthen the edge between two live clusters."""
        if a == b:
            raise ValueError("a cluster cannot be adjacent to itself")
        ca, cb = self.cluster(a), self.cluster(b)
        key = _key(a, b)
        e = self._edges.get(key)
        if e is None:
            e = GraphEdge(a=key[0], b=key[1])
            self._edges[key] = e
        e.n_pairs += int(n_pairs)
        e.n_smooth += int(n_smooth)
        e.weight = normal_angle(ca.mean_normal, cb.mean_normal) if weight is None else float(weight)
        return e

    def edge(self, a: int, b: int) -> Optional[GraphEdge]:
        return self._edges.get(_key(a, b))

    def edges(self) -> List[GraphEdge]:
        return list(self._edges.values())

    def neighbors(self, cid: int) -> List[int]:
        self.cluster(cid)
        out = []
        for a, b in self._edges:
            if a == cid:
                out.append(b)
            elif b == cid:
                out.append(a)
        return sorted(out)

    # -- merge ----------------------------------------------------------
    def merge(self, keep: int, absorb: int) -> Cluster:
        """Fold `absorb` into `keep`; relabel its pixels and rewire its edges.

        Duplicate edges produced by the rewiring keep the smaller weight and
        add up their pixel-pair counts.
        """
        if keep == absorb:
            raise ValueError("cannot merge a cluster with itself")
        ck, ca = self.cluster(keep), self.cluster(absorb)

        idx = ca.indices()
        self._labels.reshape(-1)[idx] = keep
        ck.pixels.append(idx)
        ck.size += ca.size
        ck.normal_sum = ck.normal_sum + ca.normal_sum
        ck.point_sum = ck.point_sum + ca.point_sum
        ck.curvature_sum += ca.curvature_sum
        ck.curvature_count += ca.curvature_count
        ck.row_min = min(ck.row_min, ca.row_min)
        ck.row_max = max(ck.row_max, ca.row_max)
        ck.col_min = min(ck.col_min, ca.col_min)
        ck.col_max = max(ck.col_max, ca.col_max)
        ck.border = None

        for key in [k for k in self._edges if absorb in k]:
            e = self._edges.pop(key)
            other = e.b if e.a == absorb else e.a
            if other == keep:
                continue
            nkey = _key(keep, other)
            existing = self._edges.get(nkey)
            if existing is None:
                self._edges[nkey] = GraphEdge(a=nkey[0], b=nkey[1], weight=e.weight,
                                              n_pairs=e.n_pairs, n_smooth=e.n_smooth)
            else:
                existing.weight = min(existing.weight, e.weight)
                existing.n_pairs += e.n_pairs
                existing.n_smooth += e.n_smooth

        ca.pixels = []
        ca.size = 0
        del self._live[absorb]
        self._parent[absorb] = keep
        return ck

    def check_consistency(self) -> None:
        """Raise if labels, cluster pixel sets and edges disagree."""
        flat = self._labels.reshape(-1)
        seen = np.zeros(flat.size, dtype=bool)
        for c in self.clusters():
            idx = c.indices()
            if idx.size != c.size:
                raise InvariantViolation("CLUSTER_SIZE_MISMATCH", f"cluster {c.id} size {c.size} != {idx.size} pixels")
            if seen[idx].any():
                raise InvariantViolation("CLUSTER_OVERLAP", f"cluster {c.id} shares pixels with another cluster")
            seen[idx] = True
            if (flat[idx] != c.id).any():
                raise InvariantViolation("CLUSTER_LABEL_MISMATCH", f"cluster {c.id} pixels carry a different label")
        stray = (flat >= 0) & ~seen
        if stray.any():
            raise DanglingClusterError(int(flat[stray][0]), "label references a cluster that owns no pixel")
        for a, b in self._edges:
            if a not in self._live or b not in self._live:
                raise DanglingClusterError(a if a not in self._live else b, f"edge ({a}, {b}) references a removed cluster")

    def counts(self) -> Dict[str, int]:
        flat = self._labels.reshape(-1)
        return {
            "clusters": len(self),
            "edges": len(self._edges),
            "assigned": int((flat >= 0).sum()),
            "edge_pixels": int((flat == PointLabel.EDGE).sum()),
            "invalid": int((flat == PointLabel.INVALID).sum()),
            "skipped": int((flat == PointLabel.SKIPPED).sum()),
        }
