"""Spectral embedding of metric matrices, globally and per cluster.

:func:`metric_project` turns a metric (Gram) matrix into coordinates:
eigenvectors scaled by the square roots of their eigenvalues, keeping
just enough axes to explain the requested fraction of the positive
eigenvalue mass.  :func:`embed_clusters` applies it cluster by cluster
and records each cluster's :class:`LocalFrame` (local coordinates and
inertial moments) together with the local distances that later replace
the intra-cluster entries of the chain distance matrix.

Failure policy
--------------
A decomposition that does not converge is retried once on a slightly
perturbed (seeded, symmetric) matrix.  If that also fails,
:func:`metric_project` returns ``None`` and :func:`embed_clusters`
records the cluster as failed and collapses it onto its centroid.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np
from scipy.spatial.distance import pdist, squareform

from .metric import sub_matrix, trineq_filter
from .numeric import eigen_full, eigen_partial
from .parameters import DEFAULT_PARAMETERS, ParameterRegistry

logger = logging.getLogger(__name__)

__all__ = [
    "EmbeddingResult",
    "metric_project",
    "LocalFrame",
    "LocalEmbedding",
    "embed_clusters",
    "apply_local_distances",
]


# ═══════════════════════════════════════════════════════════════════
# Spectral projection
# ═══════════════════════════════════════════════════════════════════

@dataclass(frozen=True, eq=False)
class EmbeddingResult:
    """Coordinates produced by :func:`metric_project`.

    Attributes
    ----------
    coords : (n, dim) ndarray
    moments : (dim,) ndarray
        Square roots of the kept eigenvalues (inertial moments).
    dim : int
    n_positive : int
        Positive eigenvalues found within the allowed dimension range.
    eigenvalues : ndarray
        All eigenvalues after un-shifting, descending.
    """

    coords: np.ndarray
    moments: np.ndarray
    dim: int
    n_positive: int
    eigenvalues: np.ndarray = field(default=None, repr=False)


def _decompose(g: np.ndarray, k: int, partial: bool):
    if partial:
        return eigen_partial(g, k)
    return eigen_full(g)


def metric_project(
    metric,
    fraction: float,
    min_dim: int,
    max_dim: int,
    diag_shift: float = 0.0,
    params: Optional[ParameterRegistry] = None,
) -> Optional[EmbeddingResult]:
    """Embed a metric matrix into a low-dimensional Euclidean space.

    Parameters
    ----------
    metric : (n, n) array_like
    fraction : float
        Fraction of the summed positive eigenvalues the kept axes must
        explain.
    min_dim : int
        Lower bound on the dimension; lowered (with a warning) when
        fewer positive eigenvalues exist.
    max_dim : int
        Inclusive upper bound; further capped at ``n - 1``.
    diag_shift : float
        Shift previously added to the diagonal; subtracted from every
        eigenvalue.
    params : ParameterRegistry, optional
        Uses the ``embed.*`` keys.

    Returns
    -------
    EmbeddingResult or None
        ``None`` when *metric* is not square or the decomposition failed
        even after the retry.

    Notes
    -----
    Every axis is sign-flipped so that point 0 has a non-negative
    coordinate on it.
    """
    params = params or DEFAULT_PARAMETERS
    g = np.asarray(metric, dtype=float)
    if g.ndim != 2 or g.shape[0] != g.shape[1]:
        logger.warning(
            f"metric_project: square matrix expected, got shape {g.shape}")
        return None
    n = g.shape[0]
    if n == 0:
        logger.warning("metric_project: empty metric matrix")
        return None

    hi = max(1, min(int(max_dim), n - 1))
    lo = min(max(1, int(min_dim)), hi)
    partial = params["embed.partial_ratio"] * hi <= n

    try:
        evals, evecs = _decompose(g, hi, partial)
    except np.linalg.LinAlgError as exc:
        logger.warning(f"metric_project: {exc}, retrying on perturbed matrix")
        rng = np.random.default_rng(params.get_int("embed.seed"))
        noise = rng.standard_normal((n, n))
        amp = params["embed.jitter"] * max(float(np.abs(g).max()), 1.0)
        try:
            evals, evecs = _decompose(g + 0.5 * amp * (noise + noise.T),
                                      hi, partial)
        except np.linalg.LinAlgError as exc2:
            logger.warning(f"metric_project: giving up ({exc2})")
            return None

    evals = evals - diag_shift
    eps = params["embed.eigen_eps"] * max(float(np.abs(evals).max()), 1e-300)
    n_positive = int(np.sum(evals[:hi] > eps))
    if n_positive == 0:
        logger.warning("metric_project: no positive eigenvalues, "
                       "all points placed at the origin")
        return EmbeddingResult(np.zeros((n, 1)), np.zeros(1), 1, 0, evals)
    if n_positive < lo:
        logger.warning(
            f"metric_project: only {n_positive} positive eigenvalue(s), "
            f"cannot embed in {lo} dimensions")
        lo = n_positive

    cums = np.cumsum(evals[:n_positive])
    dim = int(np.searchsorted(cums, fraction * cums[-1], side="left")) + 1
    dim = max(lo, min(dim, n_positive, hi))

    moments = np.sqrt(evals[:dim])
    vecs = evecs[:, :dim].copy()
    vecs[:, vecs[0] < 0.0] *= -1.0
    return EmbeddingResult(vecs * moments, moments, dim, n_positive, evals)


# ═══════════════════════════════════════════════════════════════════
# Local (per-cluster) embedding
# ═══════════════════════════════════════════════════════════════════

@dataclass(frozen=True, eq=False)
class LocalFrame:
    """Local coordinates and inertial moments of one cluster."""

    members: np.ndarray
    coords: np.ndarray
    moments: np.ndarray

    @property
    def dim(self) -> int:
        return int(self.moments.size)

    @property
    def size(self) -> int:
        return int(self.members.size)


@dataclass(frozen=True, eq=False)
class LocalEmbedding:
    """All local frames of one projection pass.

    Attributes
    ----------
    frames : tuple of LocalFrame
        One per cluster, in cluster order.
    local_dist : (size, size) ndarray
        Squared local distances for intra-cluster pairs, 0 elsewhere.
    skeleton_size : int
        ``sum(1 + frame.dim)`` over all clusters.
    max_local_dim : int
    failed : tuple of int
        Clusters whose embedding failed (treated as zero-dimensional).
    smoothing_passes : tuple of int
        Triangle-smoothing passes per cluster.
    """

    frames: Tuple[LocalFrame, ...]
    local_dist: np.ndarray = field(repr=False)
    skeleton_size: int
    max_local_dim: int
    failed: Tuple[int, ...] = ()
    smoothing_passes: Tuple[int, ...] = ()

    @property
    def dims(self) -> Tuple[int, ...]:
        return tuple(f.dim for f in self.frames)


def embed_clusters(
    dist,
    masks: Sequence[np.ndarray],
    max_dim: int,
    params: Optional[ParameterRegistry] = None,
) -> LocalEmbedding:
    """Embed every cluster in its own local frame.

    Each cluster's distance sub-matrix is triangle-smoothed and
    projected with ``fraction=1.0``, ``min_dim=1`` and
    ``max_dim=min(max_dim, cluster_size - 1)``.  One-member clusters
    are zero-dimensional.
    """
    params = params or DEFAULT_PARAMETERS
    d = np.asarray(dist, dtype=float)
    local_dist = np.zeros_like(d)
    frames: List[LocalFrame] = []
    failed: List[int] = []
    passes: List[int] = []

    for ci, mask in enumerate(masks):
        members = np.flatnonzero(mask)
        if members.size == 1:
            frames.append(LocalFrame(members, np.zeros((1, 0)), np.zeros(0)))
            passes.append(0)
            continue

        smoothed = trineq_filter(sub_matrix(d, mask), params=params)
        passes.append(smoothed.iterations)
        res = metric_project(
            smoothed.metric, 1.0, 1, min(max_dim, members.size - 1),
            smoothed.diag_shift, params)
        if res is None or res.n_positive == 0:
            logger.warning(
                f"embed_clusters: cluster {ci} could not be embedded, "
                f"collapsed onto its centroid")
            failed.append(ci)
            frames.append(LocalFrame(members, np.zeros((members.size, 0)),
                                     np.zeros(0)))
            continue

        frames.append(LocalFrame(members, res.coords, res.moments))
        local_dist[np.ix_(members, members)] = squareform(
            pdist(res.coords, "sqeuclidean"))

    skeleton_size = sum(1 + f.dim for f in frames)
    max_local_dim = max((f.dim for f in frames), default=0)
    return LocalEmbedding(tuple(frames), local_dist, skeleton_size,
                          max_local_dim, tuple(failed), tuple(passes))


def apply_local_distances(dist, local_dist) -> np.ndarray:
    """Copy of *dist* with every positive local distance written in."""
    out = np.array(dist, dtype=float, copy=True)
    keep = np.asarray(local_dist) > 0.0
    out[keep] = np.asarray(local_dist)[keep]
    return out
