"""Tangle detection and elimination on secondary-structure tetrahedra.

A chain is *tangled* when a piece of it pierces a tetrahedron erected
on a helix or sheet.  For every secondary-structure cluster ``s`` and
each of its tetrahedra, the engine walks every later cluster ``g`` along
the chain; each pair of consecutive members is a line segment, and the
barycentric coordinates of its end points (obtained by an SVD linear
solve) tell whether some point of the segment lies inside.

Elimination moves the centroids of entangled clusters apart along the
line joining them and repeats detection, within a caller-given budget.

State machine (:class:`TangleState`)::

    IDLE -> DETECTING -> CLEAN
                 |  ^
                 v  |
              ADJUSTING          (budget spent -> EXHAUSTED)

Usage
-----
>>> layout = SegmentLayout(n, [Helix(3, 14)])
>>> tangle_detect(layout, points)                  # True / False
>>> remaining, used = tangle_elim(layout, points, 0.5, 20)
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from .layout import SegmentLayout
from .numeric import SVDecomposition
from .parameters import DEFAULT_PARAMETERS, ParameterRegistry
from .points import PointSet
from .segments import Tetrahedron

logger = logging.getLogger(__name__)

__all__ = [
    "TangleState",
    "TanglePair",
    "TangleResult",
    "TangleEngine",
    "barycentric",
    "segment_pierces",
    "tangle_detect",
    "tangle_elim",
]


class TangleState(enum.Enum):
    IDLE = "idle"
    DETECTING = "detecting"
    ADJUSTING = "adjusting"
    CLEAN = "clean"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class TanglePair:
    """Entangled clusters: *piercing* threads through a tetrahedron of *pierced*."""

    piercing: int
    pierced: int


@dataclass(frozen=True)
class TangleResult:
    """Outcome of :meth:`TangleEngine.eliminate`.

    ``violations`` is the number of entangled pairs seen by the last
    detection pass; ``iterations`` the number of adjustment rounds.
    """

    violations: int
    iterations: int
    state: TangleState
    pairs: Tuple[TanglePair, ...] = ()


# ═══════════════════════════════════════════════════════════════════
# Tetrahedron geometry
# ═══════════════════════════════════════════════════════════════════

def _tetrahedron(coords: np.ndarray, apices: Tetrahedron,
                 eps: float) -> Optional[SVDecomposition]:
    """SVD of the edge matrix ``[P2-P1, P3-P1, P4-P1]`` or None if flat."""
    if coords.shape[1] < 3:
        return None
    p1, p2, p3, p4 = (coords[i] for i in apices)
    try:
        svd = SVDecomposition(np.column_stack([p2 - p1, p3 - p1, p4 - p1]))
    except np.linalg.LinAlgError as exc:
        logger.debug(f"tetrahedron {apices}: {exc}")
        return None
    rank, _ = svd.rank_cond(eps)
    if rank < 3:
        logger.debug(f"tetrahedron {apices}: apices are linearly dependent")
        return None
    return svd


def barycentric(svd: SVDecomposition, origin: np.ndarray, points,
                eps: float) -> np.ndarray:
    """Barycentric coordinates of *points* in a tetrahedron.

    Returns an ``(n, 4)`` array; column 0 belongs to the origin apex and
    each row sums to 1.  Components below *eps* in magnitude are zeroed.
    """
    rel = np.atleast_2d(np.asarray(points, dtype=float)) - origin
    sol = svd.lin_solve(rel.T).T
    sol[np.abs(sol) < eps] = 0.0
    return np.column_stack([1.0 - sol.sum(axis=1), sol])


def segment_pierces(s_prev: np.ndarray, s_next: np.ndarray,
                    eps: float) -> bool:
    """True if the segment between two barycentric points enters the tetrahedron.

    Along ``s(z) = s_prev + z (s_next - s_prev)`` each coordinate is in
    ``[0, 1]`` on an interval of ``z``; the segment is inside where all
    four intervals overlap within ``[0, 1]``.
    """
    z_min, z_max = 0.0, 1.0
    for a, b in zip(s_prev, s_next):
        if (a < 0.0 and b < 0.0) or (a > 1.0 and b > 1.0):
            return False
        slope = b - a
        if abs(slope) < eps:
            lo, hi = 0.0, 1.0
        else:
            lo, hi = sorted((-a / slope, (1.0 - a) / slope))
        z_min = max(z_min, lo)
        z_max = min(z_max, hi)
    return 0.0 <= z_min < z_max <= 1.0


# ═══════════════════════════════════════════════════════════════════
# TangleEngine
# ═══════════════════════════════════════════════════════════════════

class TangleEngine:
    """Detects and removes tangles for one :class:`SegmentLayout`.

    Parameters
    ----------
    layout : SegmentLayout
    params : ParameterRegistry, optional
        Uses the ``tangle.*`` keys.
    """

    def __init__(self, layout: SegmentLayout,
                 params: Optional[ParameterRegistry] = None):
        self.layout = layout
        self.params = params or DEFAULT_PARAMETERS
        self.state = TangleState.IDLE
        self._centroids: Dict[int, np.ndarray] = {}

    def __repr__(self) -> str:
        return f"TangleEngine({self.layout!r}, state={self.state.name})"

    @property
    def can_check(self) -> bool:
        """Detection needs secondary structure and at least two clusters."""
        return (self.layout.cluster_count > 1
                and len(self.layout.secondary_clusters) > 0)

    def _usable(self, points: PointSet) -> bool:
        if len(points) != self.layout.size:
            logger.warning(
                f"tangles: {len(points)} points for a layout of "
                f"{self.layout.size} positions")
            return False
        if points.dim < 3:
            logger.warning(f"tangles: dimension {points.dim} < 3, no check")
            return False
        return True

    # ── detection ───────────────────────────────────────────────

    def find_tangles(self, points: PointSet,
                     exhaustive: bool = True) -> List[TanglePair]:
        """Entangled cluster pairs.

        With ``exhaustive=False`` the search stops at the first pair.
        A pair is recorded once per secondary-structure cluster.
        """
        eps = self.params["tangle.svd_eps"]
        coords = points.coords
        masks = self.layout.masks
        pairs: List[TanglePair] = []

        for si in self.layout.secondary_clusters:
            clashed = set()
            for apices in self.layout.tetrahedra(si):
                svd = _tetrahedron(coords, apices, eps)
                if svd is None:
                    continue
                origin = coords[apices[0]]
                for gi in range(si + 1, self.layout.cluster_count):
                    if gi in clashed or np.any(masks[si] & masks[gi]):
                        continue
                    if self._contains_segment(masks[gi], coords, svd,
                                              origin, eps):
                        pairs.append(TanglePair(gi, si))
                        if not exhaustive:
                            return pairs
                        clashed.add(gi)
        return pairs

    @staticmethod
    def _contains_segment(mask: np.ndarray, coords: np.ndarray,
                          svd: SVDecomposition, origin: np.ndarray,
                          eps: float) -> bool:
        members = np.flatnonzero(mask)
        if members.size < 2:
            return False
        bary = barycentric(svd, origin, coords[members], eps)
        # consecutive chain positions only: gaps split the walk
        linked = np.flatnonzero(np.diff(members) == 1)
        return any(segment_pierces(bary[k], bary[k + 1], eps) for k in linked)

    def detect(self, points: PointSet) -> bool:
        """True as soon as one tangle is found."""
        if not self.can_check or not self._usable(points):
            return False
        self.state = TangleState.DETECTING
        found = bool(self.find_tangles(points, exhaustive=False))
        self.state = TangleState.IDLE
        return found

    # ── elimination ─────────────────────────────────────────────

    def adjust(self, points: PointSet, pairs: Sequence[TanglePair],
               step: float) -> None:
        """Push the clusters of every pair apart by half the gap plus *step*."""
        masks = self.layout.masks
        touched = sorted({p.piercing for p in pairs} | {p.pierced for p in pairs})
        for ci in touched:
            if ci not in self._centroids:
                self._centroids[ci] = points.centroid(points.view(masks[ci]))

        displ = {ci: np.zeros(points.dim) for ci in touched}
        counts = {ci: 0 for ci in touched}
        for pair in pairs:
            half = 0.5 * (self._centroids[pair.piercing]
                          - self._centroids[pair.pierced])
            length = float(np.linalg.norm(half))
            if length > 0.0:
                half *= (length + step) / length
            else:
                logger.debug(f"tangles: clusters {pair} share a centroid")
            displ[pair.piercing] += half
            displ[pair.pierced] -= half
            counts[pair.piercing] += 1
            counts[pair.pierced] += 1

        for ci in touched:
            move = displ[ci] / counts[ci]
            points.translate(move, points.view(masks[ci]))
            self._centroids[ci] = self._centroids[ci] + move

    def eliminate(self, points: PointSet, step: Optional[float] = None,
                  max_iterations: Optional[int] = None) -> TangleResult:
        """Detect and adjust until clean or the budget is spent.

        At least one detection pass is always made.  Centroids are
        computed once per call, the first time a cluster is entangled,
        and then moved along with the cluster.
        """
        if step is None:
            step = self.params["tangle.step"]
        if max_iterations is None:
            max_iterations = self.params.get_int("tangle.max_iterations")
        max_iterations = max(1, int(max_iterations))

        if not self.can_check or not self._usable(points):
            self.state = TangleState.IDLE
            return TangleResult(0, 0, TangleState.IDLE)

        self._centroids = {}
        pairs: List[TanglePair] = []
        for itno in range(max_iterations):
            self.state = TangleState.DETECTING
            pairs = self.find_tangles(points)
            if not pairs:
                self.state = TangleState.CLEAN
                return TangleResult(0, itno, self.state)
            self.state = TangleState.ADJUSTING
            self.adjust(points, pairs, step)

        self.state = TangleState.EXHAUSTED
        logger.info(f"tangles: {len(pairs)} tangle(s) left after "
                    f"{max_iterations} iteration(s)")
        return TangleResult(len(pairs), max_iterations, self.state,
                            tuple(pairs))


# ═══════════════════════════════════════════════════════════════════
# Functional interface
# ═══════════════════════════════════════════════════════════════════

def _as_points(points: Union[PointSet, np.ndarray]) -> PointSet:
    if isinstance(points, PointSet):
        return points
    return PointSet(points, copy=False)


def tangle_detect(layout: SegmentLayout, points,
                  params: Optional[ParameterRegistry] = None) -> bool:
    """True if the structure in *points* is entangled."""
    return TangleEngine(layout, params).detect(_as_points(points))


def tangle_elim(
    layout: SegmentLayout,
    points,
    step: Optional[float] = None,
    max_iterations: Optional[int] = None,
    params: Optional[ParameterRegistry] = None,
) -> Tuple[int, int]:
    """Remove tangles in place; returns ``(violations_left, iterations_used)``.

    *points* is a :class:`PointSet` or a float ``(N+2, D)`` array,
    which is modified in place.  *step* and *max_iterations* default to
    ``tangle.step`` and ``tangle.max_iterations`` of *params*.
    """
    result = TangleEngine(layout, params).eliminate(
        _as_points(points), step, max_iterations)
    return result.violations, result.iterations
