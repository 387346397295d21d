"""Skeleton metric and skeleton embedding.

The skeleton has one *centroid* point per cluster followed by one
*inertial satellite* per local axis.  With local coordinates ``L`` and
inertial moments ``m`` of a cluster whose members have centroid ``c``,
satellite ``p`` sits at::

    s_p = c + (1 / m_p) * sum_i L_ip (x_i - c)

which for an exactly embeddable cluster is ``c + m_p u_p``, ``u_p``
being the unit vector of local axis ``p``.  Every skeleton point is
therefore a fixed linear combination of chain points, and the skeleton
metric is ``Q G Q^T`` for the chain metric ``G`` and the combination
matrix ``Q`` built by :func:`skeleton_operator`.  Satellite pairs of
the same cluster are then reset to their ideal values (orthogonal axes
of length ``m_p``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from .embedding import LocalEmbedding, metric_project
from .metric import metric_dist, trineq_filter
from .parameters import DEFAULT_PARAMETERS, ParameterRegistry

logger = logging.getLogger(__name__)

__all__ = [
    "Skeleton",
    "skeleton_offsets",
    "skeleton_operator",
    "skeleton_metric",
    "embed_skeleton",
]


@dataclass(frozen=True, eq=False)
class Skeleton:
    """Embedded skeleton of one projection pass.

    Attributes
    ----------
    coords : (skeleton_size, dim) ndarray
    offsets : (n_clusters,) int ndarray
        Row of each cluster's centroid; its satellites follow.
    metric : ndarray
        Skeleton metric matrix before smoothing.
    dim : int
    smoothing_passes : int
    """

    coords: np.ndarray
    offsets: np.ndarray
    metric: np.ndarray = field(repr=False)
    dim: int
    smoothing_passes: int = 0

    @property
    def size(self) -> int:
        return self.coords.shape[0]

    def centre(self, cluster: int) -> np.ndarray:
        return self.coords[self.offsets[cluster]]

    def satellites(self, cluster: int, count: int) -> np.ndarray:
        a0 = self.offsets[cluster]
        return self.coords[a0 + 1:a0 + 1 + count]


def skeleton_offsets(local: LocalEmbedding) -> np.ndarray:
    sizes = np.array([1 + f.dim for f in local.frames], dtype=np.intp)
    return np.concatenate([[0], np.cumsum(sizes)[:-1]]).astype(np.intp)


def skeleton_operator(local: LocalEmbedding, size: int) -> np.ndarray:
    """Matrix ``Q`` expressing skeleton points in chain points."""
    q = np.zeros((local.skeleton_size, size))
    row = 0
    for frame in local.frames:
        centre = np.zeros(size)
        centre[frame.members] = 1.0 / frame.size
        q[row] = centre
        for p in range(frame.dim):
            lp = frame.coords[:, p]
            sat = centre * (1.0 - lp.sum() / frame.moments[p])
            sat[frame.members] += lp / frame.moments[p]
            q[row + 1 + p] = sat
        row += 1 + frame.dim
    return q


def skeleton_metric(metric, local: LocalEmbedding) -> np.ndarray:
    """Skeleton metric matrix from the chain metric and the local frames."""
    g = np.asarray(metric, dtype=float)
    q = skeleton_operator(local, g.shape[0])
    sk = q @ g @ q.T
    for a0, frame in zip(skeleton_offsets(local), local.frames):
        d = frame.dim
        if d == 0:
            continue
        sats = slice(a0 + 1, a0 + 1 + d)
        to_centre = sk[sats, a0]
        ideal = (to_centre[:, None] + to_centre[None, :] - sk[a0, a0]
                 + np.diag(frame.moments ** 2))
        sk[sats, sats] = ideal
    return 0.5 * (sk + sk.T)


def embed_skeleton(
    metric,
    local: LocalEmbedding,
    fraction: float,
    max_dim: int,
    params: Optional[ParameterRegistry] = None,
) -> Optional[Skeleton]:
    """Smooth and embed the skeleton.

    Skeleton distances are triangle-smoothed with centroid masses equal
    to the cluster sizes (satellites weightless), then projected with a
    minimum dimension of ``max(embed.skeleton_min_dim, max_local_dim)``.
    Returns ``None`` if the projection fails.
    """
    params = params or DEFAULT_PARAMETERS
    sk_metric = skeleton_metric(metric, local)
    offsets = skeleton_offsets(local)

    mass = np.zeros(local.skeleton_size)
    for a0, frame in zip(offsets, local.frames):
        mass[a0] = frame.size

    smoothed = trineq_filter(metric_dist(sk_metric), mass=mass, params=params)
    min_dim = max(params.get_int("embed.skeleton_min_dim"), local.max_local_dim)
    res = metric_project(smoothed.metric, fraction, min_dim, max_dim,
                         smoothed.diag_shift, params)
    if res is None:
        logger.warning("embed_skeleton: skeleton projection failed")
        return None
    logger.debug(
        f"embed_skeleton: {local.skeleton_size} points in {res.dim} dims, "
        f"{smoothed.iterations} smoothing pass(es)")
    return Skeleton(res.coords, offsets, sk_metric, res.dim,
                    smoothed.iterations)
