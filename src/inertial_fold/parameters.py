"""Tunable constants of the projection and detangling code.

Every public entry point takes ``params=`` and falls back to
:data:`DEFAULT_PARAMETERS`.  Keys are dotted, ``section.name``, with the
sections ``clusters``, ``trineq``, ``embed``, ``flesh`` and ``tangle``.
A registry is never modified in place; :meth:`ParameterRegistry.replace`
derives a new one, and a projection trace records which values differ
from the defaults.

>>> reg = DEFAULT_PARAMETERS.replace({"tangle.step": 1.0}, name="wide")
>>> reg.changed(DEFAULT_PARAMETERS)
{'tangle.step': 1.0}
"""

from __future__ import annotations

import math
from typing import Dict, Optional

import numpy as np

__all__ = [
    "ParameterRegistry",
    "DEFAULT_PARAMETERS",
]


class ParameterRegistry:
    """Read-only table of float parameters.

    Parameters
    ----------
    data : dict[str, float]
    name : str, optional
        Label carried into projection traces.
    """

    def __init__(self, data: Dict[str, float], *, name: str = "custom"):
        self._data: Dict[str, float] = {k: float(v) for k, v in data.items()}
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    def __getitem__(self, key: str) -> float:
        return self._data[key]

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def __repr__(self) -> str:
        return f"ParameterRegistry({self._name!r}, {len(self._data)} keys)"

    def get_int(self, key: str) -> int:
        """Value of *key* truncated to ``int`` (cycle counts, divisors)."""
        return int(self._data[key])

    def replace(self, overrides: Dict[str, float], *,
                name: Optional[str] = None) -> "ParameterRegistry":
        """Return a copy with *overrides* applied.

        Raises ``KeyError`` for a key this registry does not define and
        ``ValueError`` for a value that is not a finite number.  The copy
        is named *name*, or this registry's name with a ``+`` appended.
        """
        for key, value in overrides.items():
            if key not in self._data:
                raise KeyError(
                    f"Unknown parameter key {key!r}. "
                    f"Valid keys: {sorted(self._data)}")
            if not math.isfinite(float(value)):
                raise ValueError(f"parameter {key!r} must be finite, got {value}")
        merged = dict(self._data)
        merged.update(overrides)
        return ParameterRegistry(merged, name=name or (self._name + "+"))

    def changed(self, base: "ParameterRegistry") -> Dict[str, float]:
        """Keys whose value differs from *base*, with this registry's values."""
        return {k: v for k, v in sorted(self._data.items())
                if base._data.get(k) != v}


# ═══════════════════════════════════════════════════════════════════
# DEFAULT_PARAMETERS
# ═══════════════════════════════════════════════════════════════════

_DEFAULT_DATA: Dict[str, float] = {

    # ── clusters: default meshing partition ─────────────────────
    "clusters.size_divisor": 25.0,      # default count = size // 25 + 1
    "clusters.min_count": 2.0,          # never fewer generated clusters
    "clusters.small_max": 3.0,          # clusters this small get pooled
    "clusters.pool_min": 6.0,           # pool of this size stands alone

    # ── trineq: triangle-inequality smoothing ───────────────────
    "trineq.adj_factor": 0.99,          # clamp |cos| to this
    "trineq.cycle_divisor": 10.0,       # default passes = n // 10
    "trineq.min_cycles": 1.0,
    "trineq.max_cycles": 100.0,
    "trineq.cos_tol": 1e-9,             # relative slack on |cos| <= 1
    "trineq.neg_tol": 1e-9,             # relative slack on centroid dist

    # ── embed: spectral embedding ───────────────────────────────
    "embed.eigen_eps": float(np.finfo(np.float32).eps),
    "embed.partial_ratio": 4.0,         # partial eigvecs if 4*k <= n
    "embed.jitter": 1e-10,              # relative retry perturbation
    "embed.seed": 1996.0,
    "embed.skeleton_min_dim": 3.0,      # forbid flat skeletons

    # ── flesh: cluster placement on the skeleton ────────────────
    "flesh.halfval": 0.1,               # w = h / (h + rel_len_err)

    # ── tangle: tetrahedron piercing ────────────────────────────
    "tangle.svd_eps": 1e-7,
    "tangle.step": 0.5,                 # default separation step
    "tangle.max_iterations": 10.0,
}


DEFAULT_PARAMETERS: ParameterRegistry = ParameterRegistry(
    _DEFAULT_DATA, name="default",
)
"""The default parameter registry used by every entry point."""
