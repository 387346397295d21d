"""Distance / metric conversions and triangle-inequality smoothing.

Matrices are full symmetric ``(n, n)`` float arrays.  A *distance*
matrix holds squared inter-point distances; a *metric* (Gram) matrix
holds scalar products about the (optionally mass-weighted) centroid.

The smoothing loop (:func:`trineq_filter`) alternates

    centre_dist -> dist_metric -> trieq_bal -> metric_dist

until a pass finds nothing to correct or the pass budget is spent.
Any diagonal shift applied along the way is returned so that the
spectral step can remove it from the eigenvalues.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from .parameters import DEFAULT_PARAMETERS, ParameterRegistry

logger = logging.getLogger(__name__)

__all__ = [
    "centre_dist",
    "dist_metric",
    "metric_dist",
    "sub_matrix",
    "trieq_bal",
    "trineq_filter",
    "TriangleFilterResult",
]


# ═══════════════════════════════════════════════════════════════════
# Conversions
# ═══════════════════════════════════════════════════════════════════

def centre_dist(dist, mass=None, tol: float = 1e-9) -> Tuple[np.ndarray, int]:
    """Squared distances of each point from the centroid.

    Uses Lagrange's theorem::

        |x_i - c|^2 = sum_j m_j d_ij / M - sum_{j<k} m_j m_k d_jk / M^2

    Parameters
    ----------
    dist : (n, n) array_like
        Squared distances.
    mass : (n,) array_like, optional
        Point masses; unit masses when omitted.  Zero masses are
        allowed (such points do not pull the centroid).
    tol : float
        Values below ``-tol * max|cdist2|`` count as negative.

    Returns
    -------
    cdist2 : (n,) ndarray
    n_negative : int
        Number of negative squared centroid distances.  A non-zero
        count means the input is not Euclidean; it is reported, not
        raised.
    """
    d = np.asarray(dist, dtype=float)
    n = d.shape[0]
    if n == 0:
        return np.zeros(0), 0
    if mass is None:
        cdist2 = d.sum(axis=1) / n - d.sum() / (2.0 * n * n)
    else:
        m = np.asarray(mass, dtype=float)
        total = float(m.sum())
        if m.shape != (n,) or total <= 0.0:
            logger.warning(
                f"centre_dist: unusable masses (shape {m.shape}, "
                f"total {total}), unit masses used")
            return centre_dist(d, None, tol)
        cdist2 = d @ m / total - float(m @ d @ m) / (2.0 * total * total)

    scale = float(np.abs(cdist2).max())
    n_negative = int(np.sum(cdist2 < -tol * scale)) if scale > 0.0 else 0
    if n_negative:
        logger.debug(f"centre_dist: {n_negative} negative centroid distance(s)")
    return cdist2, n_negative


def dist_metric(dist, cdist2=None) -> np.ndarray:
    """Metric matrix ``<x_i - c | x_j - c>`` from squared distances.

    ``cdist2`` is recomputed with unit masses when omitted.
    """
    d = np.asarray(dist, dtype=float)
    if cdist2 is None:
        cdist2, _ = centre_dist(d)
    c = np.asarray(cdist2, dtype=float)
    return 0.5 * (c[:, None] + c[None, :] - d)


def metric_dist(metric) -> np.ndarray:
    """Squared distances ``G_ii + G_jj - 2 G_ij`` from a metric matrix."""
    g = np.asarray(metric, dtype=float)
    diag = np.diag(g)
    d = diag[:, None] + diag[None, :] - 2.0 * g
    np.fill_diagonal(d, 0.0)
    return d


def sub_matrix(mat, mask) -> np.ndarray:
    """Index-compacted copy of the rows/columns selected by *mask*."""
    idx = np.flatnonzero(np.asarray(mask, dtype=bool))
    return np.asarray(mat, dtype=float)[np.ix_(idx, idx)]


# ═══════════════════════════════════════════════════════════════════
# Triangle-inequality balancing
# ═══════════════════════════════════════════════════════════════════

def trieq_bal(
    metric,
    adj_factor: float = 0.99,
    cos_tol: float = 1e-9,
    neg_tol: float = 1e-9,
) -> Tuple[np.ndarray, int, float]:
    """Balance one metric matrix.

    1. If any diagonal entry (squared centroid distance) is negative,
       every diagonal entry is raised by twice the most negative one.
    2. Every off-diagonal entry whose implied cosine leaves ``[-1, 1]``
       is clamped to ``±adj_factor`` times the geometric bound
       ``sqrt(G_ii G_jj)``.

    Returns
    -------
    metric : ndarray
        Balanced copy.
    violations : int
        Negative diagonal entries plus clamped off-diagonal pairs.
    shift : float
        Amount added to the diagonal (0.0 if none).
    """
    g = np.array(metric, dtype=float, copy=True)
    n = g.shape[0]
    if n == 0:
        return g, 0, 0.0

    diag = np.diag(g).copy()
    scale = float(np.abs(diag).max())
    negative = diag < -neg_tol * scale
    violations = int(negative.sum())
    shift = 0.0
    if violations:
        shift = -2.0 * float(diag.min())
        diag += shift
        np.fill_diagonal(g, diag)

    root = np.sqrt(np.outer(np.clip(diag, 0.0, None), np.clip(diag, 0.0, None)))
    bound = root * (1.0 + cos_tol) + cos_tol * scale
    off = ~np.eye(n, dtype=bool)
    high = off & (g > bound)
    low = off & (g < -bound)
    g[high] = adj_factor * root[high]
    g[low] = -adj_factor * root[low]
    # each pair appears twice in the full matrix
    violations += int(high.sum() + low.sum()) // 2
    return g, violations, shift


@dataclass(frozen=True, eq=False)
class TriangleFilterResult:
    """Outcome of :func:`trineq_filter`.

    Attributes
    ----------
    metric : ndarray
        Final (balanced) metric matrix.
    dist : ndarray
        Distance matrix the final metric was derived from.  Equal to the
        input when the first pass found nothing to correct.
    iterations : int
        Correcting passes performed before a clean pass (or the budget
        when none was clean).
    violations : int
        Violations reported by the last pass.
    diag_shift : float
        Total diagonal shift accumulated over all passes.
    """

    metric: np.ndarray
    dist: np.ndarray
    iterations: int
    violations: int
    diag_shift: float

    @property
    def clean(self) -> bool:
        return self.violations == 0


def trineq_filter(
    dist,
    mass=None,
    cycles: int = 0,
    params: Optional[ParameterRegistry] = None,
) -> TriangleFilterResult:
    """Iteratively smooth triangle-inequality violations in *dist*.

    Parameters
    ----------
    dist : (n, n) array_like
        Squared distances; not modified.
    mass : (n,) array_like, optional
        Point masses for the centroid (see :func:`centre_dist`).
    cycles : int
        Pass budget; ``<= 0`` picks ``n // trineq.cycle_divisor``
        clamped to ``[trineq.min_cycles, trineq.max_cycles]``.
    params : ParameterRegistry, optional

    Returns
    -------
    TriangleFilterResult
    """
    params = params or DEFAULT_PARAMETERS
    d = np.array(dist, dtype=float, copy=True)
    n = d.shape[0]
    if cycles <= 0:
        cycles = n // params.get_int("trineq.cycle_divisor")
    cycles = max(params.get_int("trineq.min_cycles"),
                 min(params.get_int("trineq.max_cycles"), cycles))

    adj = params["trineq.adj_factor"]
    cos_tol = params["trineq.cos_tol"]
    neg_tol = params["trineq.neg_tol"]

    total_shift = 0.0
    violations = 0
    metric = np.zeros((n, n))
    iterations = cycles
    for itno in range(cycles):
        cdist2, cviol = centre_dist(d, mass, neg_tol)
        metric = dist_metric(d, cdist2)
        metric, tviol, shift = trieq_bal(metric, adj, cos_tol, neg_tol)
        total_shift += shift
        violations = tviol + cviol
        if not violations:
            iterations = itno
            break
        d = metric_dist(metric)

    if violations:
        logger.debug(
            f"trineq_filter: {violations} violation(s) left after "
            f"{iterations} pass(es)")
    return TriangleFilterResult(metric, d, iterations, violations, total_shift)
