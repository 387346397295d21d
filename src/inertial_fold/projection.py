"""Hierarchic inertial projection: squared distances to coordinates.

Pipeline of :meth:`InertialProjector.full_project`:

1. Triangle-smooth the full distance matrix.
2. With one cluster, embed its metric directly (``min_dim=3``).
3. Otherwise embed each cluster locally, write the local distances back
   into the matrix, embed the skeleton of centroids and satellites, and
   flesh the clusters onto it.

Nothing here raises on bad input: a size mismatch yields dimension 0
and a failed skeleton falls back to a direct embedding of the full
metric.  Every decision is recorded in the returned
:class:`~inertial_fold.trace.ProjectionTrace`.

Usage
-----
>>> proj = InertialProjector(dist.shape[0])
>>> result = proj.full_project(dist, fraction=0.9, prior_dim=3)
>>> result.dim, result.coords.shape
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from .clusters import ClusterModel, ClusterSpec
from .embedding import apply_local_distances, embed_clusters, metric_project
from .metric import dist_metric, trineq_filter
from .parameters import DEFAULT_PARAMETERS, ParameterRegistry
from .points import PointSet
from .reconstruct import flesh_skeleton
from .skeleton import embed_skeleton
from .trace import ProjectionTrace

logger = logging.getLogger(__name__)

__all__ = [
    "ProjectionResult",
    "InertialProjector",
    "full_project",
]


@dataclass(frozen=True, eq=False)
class ProjectionResult:
    """Output of :meth:`InertialProjector.full_project`.

    ``dim == 0`` signals that no projection was possible.
    """

    dim: int
    points: PointSet
    trace: ProjectionTrace

    @property
    def coords(self) -> np.ndarray:
        return self.points.coords


class InertialProjector:
    """Projects squared-distance matrices of a fixed size.

    Parameters
    ----------
    size : int
        Number of points (rows of every distance matrix passed in).
    clusters : int or sequence, optional
        Initial partition, see :meth:`ClusterModel.make_clusters`.
    params : ParameterRegistry, optional
    """

    def __init__(self, size: int, clusters: ClusterSpec = 0,
                 params: Optional[ParameterRegistry] = None):
        self.params = params or DEFAULT_PARAMETERS
        self.model = ClusterModel(size, clusters, self.params)

    def __repr__(self) -> str:
        return f"InertialProjector({self.model!r})"

    @property
    def size(self) -> int:
        return self.model.size

    def make_clusters(self, clusters: ClusterSpec = 0) -> int:
        """Re-partition the points; returns the new cluster count."""
        return self.model.make_clusters(clusters)

    # ── projection ──────────────────────────────────────────────

    def full_project(self, dist, fraction: float = 1.0,
                     prior_dim: int = 3) -> ProjectionResult:
        """Project the squared-distance matrix *dist*.

        Parameters
        ----------
        dist : (size, size) array_like
            Squared distances; need not be metric.  Not modified.
        fraction : float
            Fraction of positive eigenvalue mass to keep, in (0, 1].
        prior_dim : int
            Upper bound on the embedding dimension.

        Returns
        -------
        ProjectionResult
        """
        d = np.asarray(dist, dtype=float)
        size = self.size
        notes: List[str] = []

        if d.shape != (size, size):
            logger.warning(
                f"full_project: distance matrix of shape {d.shape} does not "
                f"match size {size}, nothing done")
            trace = ProjectionTrace("rejected", size, self.model.count,
                                    float(fraction), int(prior_dim), 0,
                                    params_name=self.params.name,
                                    overrides=self._overrides())
            return ProjectionResult(0, PointSet.zeros(size, 0), trace)

        if not 0.0 < fraction <= 1.0:
            clipped = float(np.clip(fraction, 1e-6, 1.0))
            notes.append(f"fraction {fraction} clipped to {clipped}")
            logger.warning(f"full_project: {notes[-1]}")
            fraction = clipped
        if prior_dim < 1:
            notes.append(f"prior_dim {prior_dim} raised to 1")
            logger.warning(f"full_project: {notes[-1]}")
            prior_dim = 1

        smoothed = trineq_filter(d, params=self.params)
        base = dict(
            size=size,
            n_clusters=self.model.count,
            fraction=float(fraction),
            prior_dim=int(prior_dim),
            smoothing_passes=smoothed.iterations,
            smoothing_violations=smoothed.violations,
            diag_shift=smoothed.diag_shift,
            params_name=self.params.name,
            overrides=self._overrides(),
        )

        if self.model.count == 1:
            res = metric_project(smoothed.metric, fraction, 3, prior_dim,
                                 smoothed.diag_shift, self.params)
            return self._finish("direct", res, base, notes)

        local = embed_clusters(smoothed.dist, self.model.masks, prior_dim,
                               self.params)
        dm = apply_local_distances(smoothed.dist, local.local_dist)
        skeleton = embed_skeleton(dist_metric(dm), local, fraction, prior_dim,
                                  self.params)
        base.update(
            local_dims=local.dims,
            local_passes=local.smoothing_passes,
            failed_clusters=local.failed,
            skeleton_size=local.skeleton_size,
        )
        if skeleton is None:
            notes.append("skeleton embedding failed, full metric embedded")
            res = metric_project(smoothed.metric, fraction, 3, prior_dim,
                                 smoothed.diag_shift, self.params)
            return self._finish("fallback", res, base, notes)

        flesh = flesh_skeleton(skeleton, local, dm, self.params)
        trace = ProjectionTrace(
            route="hierarchic",
            dim=skeleton.dim,
            skeleton_passes=skeleton.smoothing_passes,
            flip_candidates=flesh.candidates,
            flipped=flesh.flipped,
            notes=tuple(notes),
            **base,
        )
        return ProjectionResult(skeleton.dim, PointSet(flesh.coords, copy=False),
                                trace)

    def _overrides(self):
        return tuple(self.params.changed(DEFAULT_PARAMETERS).items())

    def _finish(self, route, res, base, notes) -> ProjectionResult:
        if res is None:
            notes.append("embedding failed")
            trace = ProjectionTrace(route="failed", dim=0, notes=tuple(notes),
                                    **base)
            return ProjectionResult(0, PointSet.zeros(self.size, 0), trace)
        trace = ProjectionTrace(route=route, dim=res.dim, notes=tuple(notes),
                                **base)
        return ProjectionResult(res.dim, PointSet(res.coords, copy=False),
                                trace)


def full_project(
    dist,
    fraction: float = 1.0,
    prior_dim: int = 3,
    clusters: ClusterSpec = 0,
    params: Optional[ParameterRegistry] = None,
) -> Tuple[int, np.ndarray]:
    """Project *dist* and return ``(new_dim, coords)``.

    Convenience wrapper building a throw-away :class:`InertialProjector`.
    A non-square input returns ``(0, empty array)``.
    """
    d = np.asarray(dist, dtype=float)
    if d.ndim != 2 or d.shape[0] != d.shape[1] or d.shape[0] == 0:
        logger.warning(f"full_project: square matrix expected, got {d.shape}")
        return 0, np.zeros((0, 0))
    result = InertialProjector(d.shape[0], clusters, params).full_project(
        d, fraction, prior_dim)
    return result.dim, result.coords
