"""Numerical primitives consumed by the projection and detangling code.

Three capabilities, each a thin layer over :mod:`scipy.linalg`:

1. **Symmetric eigen-decomposition** - :func:`eigen_full` and the
   eigenvalue-compatible :func:`eigen_partial` which only builds the
   leading ``k`` eigenvectors.
2. **Singular value decomposition** - :class:`SVDecomposition` with
   :meth:`~SVDecomposition.rank_cond` and
   :meth:`~SVDecomposition.lin_solve`.
3. **Weighted optimal rotation** - :func:`best_rotation`, with or
   without improper rotations (mirrors).

Plus the guarded scalar helpers :func:`safe_div` and :func:`pythag`,
which take their tolerances as arguments.

All decompositions report non-convergence by raising
``numpy.linalg.LinAlgError``; recovery is the caller's business.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from scipy import linalg

logger = logging.getLogger(__name__)

__all__ = [
    "SMALL",
    "safe_div",
    "pythag",
    "eigen_full",
    "eigen_partial",
    "SVDecomposition",
    "RotationFit",
    "best_rotation",
]

SMALL = 1e-12


# ═══════════════════════════════════════════════════════════════════
# Scalar helpers
# ═══════════════════════════════════════════════════════════════════

def safe_div(num: float, den: float, tol: float = SMALL,
             fallback: float = 0.0) -> float:
    """Return ``num / den``, or *fallback* when ``|den| <= tol``."""
    if abs(den) <= tol:
        return fallback
    return num / den


def pythag(a: float, b: float) -> float:
    """Return ``sqrt(a**2 + b**2)`` without intermediate overflow."""
    abs_a, abs_b = abs(a), abs(b)
    if abs_a > abs_b:
        return abs_a * math.sqrt(1.0 + (abs_b / abs_a) ** 2)
    if abs_b == 0.0:
        return 0.0
    return abs_b * math.sqrt(1.0 + (abs_a / abs_b) ** 2)


# ═══════════════════════════════════════════════════════════════════
# Symmetric eigen-decomposition
# ═══════════════════════════════════════════════════════════════════

def _symmetric(mat) -> Optional[np.ndarray]:
    m = np.asarray(mat, dtype=float)
    if m.ndim != 2 or m.shape[0] != m.shape[1]:
        logger.warning(f"eigen: square matrix expected, got shape {m.shape}")
        return None
    if not np.all(np.isfinite(m)):
        raise np.linalg.LinAlgError("matrix has non-finite entries")
    return 0.5 * (m + m.T)


def eigen_full(mat) -> Tuple[np.ndarray, np.ndarray]:
    """Full symmetric eigen-decomposition, eigenvalues descending.

    Parameters
    ----------
    mat : (n, n) array_like
        Symmetric matrix; only its symmetric part is used.

    Returns
    -------
    evals : (n,) ndarray
        Eigenvalues, largest first.
    evecs : (n, n) ndarray
        Eigenvectors as columns, in the same order.  Both are empty
        (with a logged warning) when *mat* is not square.

    Raises
    ------
    numpy.linalg.LinAlgError
        If the underlying LAPACK driver does not converge.
    """
    sym = _symmetric(mat)
    if sym is None:
        return np.zeros(0), np.zeros((0, 0))
    evals, evecs = linalg.eigh(sym)
    return evals[::-1].copy(), evecs[:, ::-1].copy()


def eigen_partial(mat, k: int) -> Tuple[np.ndarray, np.ndarray]:
    """All eigenvalues (descending) but only the leading *k* eigenvectors.

    The eigenvalues are computed exactly as in :func:`eigen_full`, so
    both variants agree on them.
    """
    sym = _symmetric(mat)
    if sym is None:
        return np.zeros(0), np.zeros((0, 0))
    n = sym.shape[0]
    k = max(0, min(int(k), n))
    evals = linalg.eigvalsh(sym)[::-1].copy()
    if k == 0:
        return evals, np.zeros((n, 0))
    _, evecs = linalg.eigh(sym, subset_by_index=[n - k, n - 1])
    return evals, evecs[:, ::-1].copy()


# ═══════════════════════════════════════════════════════════════════
# Singular value decomposition
# ═══════════════════════════════════════════════════════════════════

class SVDecomposition:
    """Thin SVD ``A = U diag(w) V^T`` of an m×n matrix with m >= n.

    Parameters
    ----------
    a : (m, n) array_like

    Attributes
    ----------
    u : (m, n) ndarray
        Orthonormal columns.
    w : (n,) ndarray
        Non-negative singular values; :meth:`rank_cond` may zero some.
    v : (n, n) ndarray
        Orthogonal.

    Raises
    ------
    ValueError
        If ``m < n``.
    numpy.linalg.LinAlgError
        If the decomposition does not converge.
    """

    def __init__(self, a):
        a = np.atleast_2d(np.asarray(a, dtype=float))
        m, n = a.shape
        if m < n:
            raise ValueError(f"SVD needs rows >= columns, got {m}x{n}")
        if not np.all(np.isfinite(a)):
            raise np.linalg.LinAlgError("matrix has non-finite entries")
        u, w, vt = linalg.svd(a, full_matrices=False)
        self.u: np.ndarray = u
        self.w: np.ndarray = w.copy()
        self.v: np.ndarray = vt.T.copy()

    @property
    def shape(self) -> Tuple[int, int]:
        return self.u.shape[0], self.v.shape[0]

    def rank_cond(self, eps: float) -> Tuple[int, float]:
        """Zero singular values below ``eps * max(w)``.

        Returns
        -------
        rank : int
            Number of singular values kept.
        condition : float
            ``max(w) / min(kept w)``; ``inf`` when nothing is kept.
        """
        wmax = float(self.w.max()) if self.w.size else 0.0
        self.w[self.w < eps * wmax] = 0.0
        kept = self.w[self.w > 0.0]
        if kept.size == 0:
            return 0, math.inf
        return int(kept.size), wmax / float(kept.min())

    def lin_solve(self, b) -> np.ndarray:
        """Least-squares solution of ``A x = b`` over the kept weights.

        *b* may be a vector of length m or an (m, k) matrix of
        right-hand sides.  A wrongly sized *b* yields the null vector.
        """
        b = np.asarray(b, dtype=float)
        m, n = self.shape
        if b.shape[0] != m:
            logger.warning(
                f"lin_solve: right-hand side has {b.shape[0]} rows, "
                f"expected {m}")
            return np.zeros((n,) + b.shape[1:])
        winv = np.zeros_like(self.w)
        nz = self.w > 0.0
        winv[nz] = 1.0 / self.w[nz]
        proj = self.u.T @ b
        if proj.ndim == 1:
            return self.v @ (winv * proj)
        return self.v @ (winv[:, None] * proj)


# ═══════════════════════════════════════════════════════════════════
# Weighted optimal rotation
# ═══════════════════════════════════════════════════════════════════

@dataclass(frozen=True, eq=False)
class RotationFit:
    """Result of :func:`best_rotation`.

    ``det_sign`` is the sign of the determinant of the weighted mixed
    tensor (0 when that tensor is rank-deficient, i.e. when the proper
    and improper fits are equally good).
    """

    rotation: np.ndarray
    det_sign: int
    proper: bool
    rms: float


def best_rotation(
    x,
    y,
    weights=None,
    allow_reflection: bool = True,
    rank_tol: float = 1e-10,
) -> RotationFit:
    """Orthogonal R minimising ``sum_k w_k |R x_k - y_k|^2``.

    Both point sets are taken about the origin (no translation).

    Parameters
    ----------
    x, y : (k, d) array_like
        Corresponding points.
    weights : (k,) array_like, optional
        Non-negative weights; uniform when omitted.
    allow_reflection : bool
        If False, the returned matrix always has determinant +1.
    rank_tol : float
        Relative tolerance for the mixed-tensor rank.

    Returns
    -------
    RotationFit
        Mismatched shapes are logged and give the identity with
        ``det_sign == 0`` and an infinite ``rms``.
    """
    x = np.atleast_2d(np.asarray(x, dtype=float))
    y = np.atleast_2d(np.asarray(y, dtype=float))
    if x.shape != y.shape:
        logger.warning(
            f"best_rotation: point sets differ in shape: {x.shape} vs {y.shape}, "
            f"identity returned")
        return _no_fit(x.shape[-1])
    k, d = x.shape
    w = np.ones(k) if weights is None else np.asarray(weights, dtype=float)
    if w.shape != (k,):
        logger.warning(
            f"best_rotation: expected {k} weights, got shape {w.shape}, "
            f"identity returned")
        return _no_fit(d)

    mix = (y * w[:, None]).T @ x
    u, s, vt = linalg.svd(mix)
    if s.size == 0 or s[0] <= 0.0:
        logger.debug("best_rotation: null mixed tensor, identity returned")
        return RotationFit(np.eye(d), 0, True, _weighted_rms(x, y, w, np.eye(d)))

    full_rank = bool(np.all(s > rank_tol * s[0] * d))
    det = np.linalg.det(u) * np.linalg.det(vt)
    det_sign = int(np.sign(det)) if full_rank else 0

    if det < 0.0 and not allow_reflection:
        u = u.copy()
        u[:, -1] *= -1.0
    rot = u @ vt
    proper = bool(np.linalg.det(rot) > 0.0)
    return RotationFit(rot, det_sign, proper, _weighted_rms(x, y, w, rot))


def _no_fit(d: int) -> RotationFit:
    return RotationFit(np.eye(d), 0, True, math.inf)


def _weighted_rms(x: np.ndarray, y: np.ndarray, w: np.ndarray,
                  rot: np.ndarray) -> float:
    wsum = float(w.sum())
    if wsum <= 0.0:
        return 0.0
    resid = ((x @ rot.T - y) ** 2).sum(axis=1)
    return math.sqrt(float(w @ resid) / wsum)
