"""ProjectionTrace: audit trail of one ``full_project`` call.

Captures the intermediate decisions of the hierarchic projection (which
route was taken, how much triangle smoothing was needed, the local
dimensions, failed clusters, skeleton size and the mirror flips) in a
single frozen dataclass suitable for debugging and serialisation.

Usage
-----
>>> result = InertialProjector(size).full_project(dist, 0.9, 3)
>>> result.trace.route                # "hierarchic"
>>> result.trace.local_dims           # (3, 3, 2)
>>> result.trace.to_dict()            # JSON-safe dict
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Tuple

__all__ = [
    "ProjectionTrace",
    "ROUTES",
]

ROUTES = ("rejected", "direct", "hierarchic", "fallback", "failed")
"""Possible values of :attr:`ProjectionTrace.route`.

* ``rejected``: input did not match the cluster model size
* ``direct``: single cluster, embedded in one step
* ``hierarchic``: local frames, skeleton, fleshing
* ``fallback``: skeleton embedding failed, full metric embedded directly
* ``failed``: no embedding could be produced
"""


@dataclass(frozen=True)
class ProjectionTrace:
    """Complete audit trail for one projection.

    The trace is frozen (immutable).  Call :meth:`to_dict` for a
    JSON-safe representation and :meth:`summary` for one line of text.
    """

    route: str
    size: int
    n_clusters: int
    fraction: float
    prior_dim: int
    dim: int

    # Triangle smoothing of the full distance matrix
    smoothing_passes: int = 0
    smoothing_violations: int = 0
    diag_shift: float = 0.0

    # Local embedding
    local_dims: Tuple[int, ...] = ()
    local_passes: Tuple[int, ...] = ()
    failed_clusters: Tuple[int, ...] = ()

    # Skeleton and fleshing
    skeleton_size: int = 0
    skeleton_passes: int = 0
    flip_candidates: Tuple[int, ...] = ()
    flipped: Tuple[int, ...] = ()

    params_name: str = "default"
    # (key, value) pairs differing from DEFAULT_PARAMETERS
    overrides: Tuple[Tuple[str, float], ...] = ()
    notes: Tuple[str, ...] = field(default=())

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-safe dict."""
        return {
            "route": self.route,
            "size": self.size,
            "n_clusters": self.n_clusters,
            "fraction": round(self.fraction, 6),
            "prior_dim": self.prior_dim,
            "dim": self.dim,
            "smoothing_passes": self.smoothing_passes,
            "smoothing_violations": self.smoothing_violations,
            "diag_shift": round(self.diag_shift, 6),
            "local_dims": list(self.local_dims),
            "local_passes": list(self.local_passes),
            "failed_clusters": list(self.failed_clusters),
            "skeleton_size": self.skeleton_size,
            "skeleton_passes": self.skeleton_passes,
            "flip_candidates": list(self.flip_candidates),
            "flipped": list(self.flipped),
            "params_name": self.params_name,
            "overrides": dict(self.overrides),
            "notes": list(self.notes),
        }

    def summary(self) -> str:
        """One-line human-readable summary."""
        parts = [
            f"{self.route}: {self.size} pts",
            f"{self.n_clusters} clusters",
            f"dim {self.dim}/{self.prior_dim}",
            f"smoothing {self.smoothing_passes}",
        ]
        if self.skeleton_size:
            parts.append(f"skeleton {self.skeleton_size}")
        if self.flipped:
            parts.append(f"flipped {len(self.flipped)}")
        if self.failed_clusters:
            parts.append(f"failed {len(self.failed_clusters)}")
        if self.overrides:
            parts.append(f"{len(self.overrides)} override(s)")
        return ", ".join(parts)
