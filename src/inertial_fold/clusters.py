"""ClusterModel: disjoint, exhaustive partition of the chain positions.

Clusters are boolean masks over the ``size`` positions.  Either they
are generated ("meshing" clusters that thread round-robin through the
whole chain) or supplied by the caller and validated.  Explicit clusters
with only a handful of members are pooled.  Every change produces a fresh
immutable :class:`ClusterIndex` snapshot tagged with a generation
counter, so callers can tell whether a cached lookup is stale.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from .parameters import DEFAULT_PARAMETERS, ParameterRegistry

logger = logging.getLogger(__name__)

__all__ = [
    "ClusterIndex",
    "ClusterModel",
    "validate_partition",
]


# ═══════════════════════════════════════════════════════════════════
# ClusterIndex: immutable lookup snapshot
# ═══════════════════════════════════════════════════════════════════

@dataclass(frozen=True, eq=False)
class ClusterIndex:
    """Position-to-cluster lookup tables for one cluster generation.

    Attributes
    ----------
    generation : int
        Value of :attr:`ClusterModel.generation` when built.
    point_cluster : (size,) int ndarray
        Owning cluster of each position.
    point_offset : (size,) int ndarray
        Rank of each position among the members of its cluster.
    cluster_sizes : (count,) int ndarray
    cluster_offset : (count,) int ndarray
        Start of each cluster when members are laid out cluster by
        cluster (exclusive cumulative sum of ``cluster_sizes``).
    """

    generation: int
    point_cluster: np.ndarray
    point_offset: np.ndarray
    cluster_sizes: np.ndarray
    cluster_offset: np.ndarray

    @classmethod
    def build(cls, masks: Sequence[np.ndarray],
              generation: int) -> "ClusterIndex":
        stack = np.vstack(masks)
        point_cluster = np.argmax(stack, axis=0).astype(np.intp)
        ranks = np.cumsum(stack, axis=1) - 1
        point_offset = ranks[point_cluster,
                             np.arange(stack.shape[1])].astype(np.intp)
        sizes = stack.sum(axis=1).astype(np.intp)
        offsets = np.concatenate([[0], np.cumsum(sizes)[:-1]]).astype(np.intp)
        for arr in (point_cluster, point_offset, sizes, offsets):
            arr.setflags(write=False)
        return cls(generation, point_cluster, point_offset, sizes, offsets)


def validate_partition(masks: Sequence[np.ndarray], size: int) -> Optional[str]:
    """Return ``None`` if *masks* partition ``range(size)``, else a reason."""
    if not masks:
        return "no clusters given"
    for i, m in enumerate(masks):
        if m.shape != (size,):
            return f"cluster {i} has length {m.size}, expected {size}"
        if not m.any():
            return f"cluster {i} is empty"
    counts = np.sum(np.vstack(masks), axis=0)
    if np.any(counts > 1):
        return f"clusters overlap at position {int(np.argmax(counts > 1))}"
    if np.any(counts == 0):
        return f"position {int(np.argmax(counts == 0))} is not covered"
    return None


# ═══════════════════════════════════════════════════════════════════
# ClusterModel
# ═══════════════════════════════════════════════════════════════════

ClusterSpec = Union[int, None, Sequence]


class ClusterModel:
    """Partition of ``size`` chain positions into clusters.

    Parameters
    ----------
    size : int
        Number of positions (rows of the distance matrix).
    clusters : int or sequence, optional
        Passed to :meth:`make_clusters`; ``0`` (the default) picks the
        generated default partition.
    params : ParameterRegistry, optional
        Uses the ``clusters.*`` keys.
    """

    def __init__(self, size: int, clusters: ClusterSpec = 0,
                 params: Optional[ParameterRegistry] = None):
        if size < 1:
            raise ValueError(f"cluster model needs size >= 1, got {size}")
        self.size = int(size)
        self.params = params or DEFAULT_PARAMETERS
        self._masks: List[np.ndarray] = []
        self._generation = 0
        self._index: Optional[ClusterIndex] = None
        self.make_clusters(clusters)

    def __repr__(self) -> str:
        return (f"ClusterModel(size={self.size}, count={self.count}, "
                f"generation={self._generation})")

    # ── access ──────────────────────────────────────────────────

    @property
    def count(self) -> int:
        return len(self._masks)

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def masks(self) -> Tuple[np.ndarray, ...]:
        """Read-only cluster masks."""
        return tuple(self._masks)

    @property
    def index(self) -> ClusterIndex:
        return self._index

    def members(self, cluster: int) -> np.ndarray:
        return np.flatnonzero(self._masks[cluster])

    def cluster_of(self, position: int) -> int:
        return int(self._index.point_cluster[position])

    # ── building ────────────────────────────────────────────────

    def make_clusters(self, clusters: ClusterSpec = 0) -> int:
        """(Re)build the partition and return the number of clusters.

        Parameters
        ----------
        clusters : int or sequence
            An int requests that many round-robin clusters, capped at
            ``size`` (``<= 0`` chooses ``size // clusters.size_divisor + 1``
            with a minimum of ``clusters.min_count``).  A sequence
            gives explicit clusters, each either a boolean mask of
            length ``size`` or a collection of member positions.  An
            invalid explicit partition is reported and replaced by the
            generated default.
        """
        if clusters is None or isinstance(clusters, (int, np.integer)):
            masks = self._generate(int(clusters or 0))
        else:
            masks = [self._as_mask(c) for c in clusters]
            reason = validate_partition(masks, self.size)
            if reason is None:
                masks = self._pool_small(masks)
            else:
                logger.warning(
                    f"make_clusters: invalid explicit clusters ({reason}), "
                    f"using generated clusters")
                masks = self._generate(0)

        self._masks = masks
        for m in self._masks:
            m.setflags(write=False)
        self._generation += 1
        self._index = ClusterIndex.build(self._masks, self._generation)
        return self.count

    def _as_mask(self, spec) -> np.ndarray:
        arr = np.asarray(spec)
        if arr.dtype == bool:
            return arr.copy()
        mask = np.zeros(self.size, dtype=bool)
        idx = arr.astype(np.intp).ravel()
        if idx.size and (idx.min() < 0 or idx.max() >= self.size):
            # out-of-range members make the partition invalid
            return np.zeros(self.size + 1, dtype=bool)
        mask[idx] = True
        return mask

    def _generate(self, count: int) -> List[np.ndarray]:
        if count <= 0:
            count = self.size // self.params.get_int("clusters.size_divisor") + 1
            count = max(count, self.params.get_int("clusters.min_count"))
        count = min(count, self.size)
        owner = np.arange(self.size) % count
        return [owner == c for c in range(count)]

    def _pool_small(self, masks: List[np.ndarray]) -> List[np.ndarray]:
        small_max = self.params.get_int("clusters.small_max")
        kept = [m.copy() for m in masks if m.sum() > small_max]
        pool = np.zeros(self.size, dtype=bool)
        for m in masks:
            if m.sum() <= small_max:
                pool |= m
        if not pool.any():
            return kept
        n_pool = int(pool.sum())
        if not kept:
            logger.debug(f"make_clusters: only small clusters, pooled {n_pool}")
            return [pool]
        if n_pool >= self.params.get_int("clusters.pool_min"):
            kept.append(pool)
        else:
            kept[0] |= pool
        logger.debug(f"make_clusters: pooled {n_pool} members of small clusters")
        return kept
