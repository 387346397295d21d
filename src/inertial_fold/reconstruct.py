"""Fleshing: put each cluster's local structure onto the skeleton.

For every cluster with at least two members the *ideal* frame (local
axes scaled to the inertial moments) is fitted onto the *distorted*
frame read off the embedded skeleton (satellites minus centroid).
Axes whose skeleton length deviates from the moment get less weight::

    w_p = h / (h + |len_p - m_p| / m_p)        (h = flesh.halfval)

The fit may be an improper rotation.  Afterwards a greedy pass tries
the opposite handedness for every cluster whose fit had a definite
determinant sign and keeps a flip only when it strictly lowers the
cluster's boundary-distance error (:func:`cluster_quality`).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
from scipy.spatial.distance import cdist

from .embedding import LocalEmbedding
from .numeric import RotationFit, best_rotation
from .parameters import DEFAULT_PARAMETERS, ParameterRegistry
from .skeleton import Skeleton

logger = logging.getLogger(__name__)

__all__ = [
    "FleshResult",
    "cluster_quality",
    "flesh_skeleton",
]


def cluster_quality(mask, coords, dist) -> float:
    """Mean ``|d2_model - d2_target|`` over pairs straddling the cluster.

    Returns 0.0 when the cluster is empty or covers every point.
    """
    inside = np.asarray(mask, dtype=bool)
    outside = ~inside
    if not inside.any() or not outside.any():
        return 0.0
    xyz = np.asarray(coords, dtype=float)
    model = cdist(xyz[inside], xyz[outside], "sqeuclidean")
    target = np.asarray(dist, dtype=float)[np.ix_(inside, outside)]
    return float(np.mean(np.abs(model - target)))


@dataclass
class _ClusterFit:
    cluster: int
    ideal: np.ndarray
    distorted: np.ndarray
    weights: np.ndarray
    det_sign: int
    quality: float = 0.0
    flipped: bool = False


@dataclass(frozen=True, eq=False)
class FleshResult:
    """Full-chain coordinates and the mirror decisions behind them."""

    coords: np.ndarray
    candidates: Tuple[int, ...] = ()
    flipped: Tuple[int, ...] = ()
    qualities: Dict[int, float] = field(default_factory=dict)


def _place(rotation: np.ndarray, ideal: np.ndarray, local: np.ndarray,
           centre: np.ndarray) -> np.ndarray:
    axes = rotation @ ideal.T
    norms = np.linalg.norm(axes, axis=0)
    nz = norms > 0.0
    axes[:, nz] /= norms[nz]
    return local @ axes.T + centre


def flesh_skeleton(
    skeleton: Skeleton,
    local: LocalEmbedding,
    dist,
    params: Optional[ParameterRegistry] = None,
) -> FleshResult:
    """Assemble full coordinates from the skeleton and the local frames.

    Parameters
    ----------
    skeleton : Skeleton
    local : LocalEmbedding
    dist : (size, size) array_like
        Target squared distances used to judge mirror flips.
    params : ParameterRegistry, optional
        Uses ``flesh.halfval``.
    """
    params = params or DEFAULT_PARAMETERS
    halfval = params["flesh.halfval"]
    d = np.asarray(dist, dtype=float)
    dim = skeleton.dim
    coords = np.zeros((d.shape[0], dim))
    fits: List[_ClusterFit] = []

    for ci, frame in enumerate(local.frames):
        centre = skeleton.centre(ci)
        if frame.size == 1 or frame.dim == 0:
            coords[frame.members] = centre
            continue

        da = min(frame.dim, dim)
        if da < frame.dim:
            logger.debug(
                f"flesh_skeleton: cluster {ci} local dim {frame.dim} "
                f"truncated to {dim}")
        moments = frame.moments[:da]
        ideal = np.zeros((da, dim))
        ideal[np.arange(da), np.arange(da)] = moments
        distorted = skeleton.satellites(ci, da) - centre
        rel_err = np.abs(np.linalg.norm(distorted, axis=1) - moments) / moments
        weights = halfval / (halfval + rel_err)

        fit = best_rotation(ideal, distorted, weights, allow_reflection=True)
        coords[frame.members] = _place(fit.rotation, ideal,
                                       frame.coords[:, :da], centre)
        if fit.det_sign != 0:
            fits.append(_ClusterFit(ci, ideal, distorted, weights,
                                    fit.det_sign))

    if not fits:
        return FleshResult(coords)

    masks = [np.isin(np.arange(d.shape[0]), f.members) for f in local.frames]
    coords = _resolve_mirrors(coords, fits, skeleton, local, masks, d)
    return FleshResult(
        coords,
        candidates=tuple(f.cluster for f in fits),
        flipped=tuple(f.cluster for f in fits if f.flipped),
        qualities={f.cluster: f.quality for f in fits},
    )


def _resolve_mirrors(coords, fits, skeleton, local, masks, dist) -> np.ndarray:
    current = coords.copy()
    while True:
        for f in fits:
            if not f.flipped:
                f.quality = cluster_quality(masks[f.cluster], current, dist)
        # stable sort keeps cluster order among equal qualities
        order = sorted(fits, key=lambda f: -f.quality)

        accepted = False
        for f in order:
            if f.flipped:
                continue
            ideal = f.ideal.copy()
            if f.det_sign > 0:
                last = ideal.shape[0] - 1
                ideal[last, last] *= -1.0
            fit: RotationFit = best_rotation(ideal, f.distorted, f.weights,
                                             allow_reflection=False)
            frame = local.frames[f.cluster]
            trial = current.copy()
            trial[frame.members] = _place(
                fit.rotation, ideal, frame.coords[:, :ideal.shape[0]],
                skeleton.centre(f.cluster))
            q_flip = cluster_quality(masks[f.cluster], trial, dist)
            if q_flip < f.quality:
                logger.debug(
                    f"flesh_skeleton: cluster {f.cluster} mirrored "
                    f"({f.quality:.4g} -> {q_flip:.4g})")
                current = trial
                f.quality = q_flip
                f.flipped = True
                accepted = True
                break
        if not accepted:
            return current
