"""PointSet: chain coordinates with an explicit active subset.

A :class:`PointSet` holds ``(length, dim)`` coordinates plus a boolean
``active`` flag per point.  Geometric operations act on the active
points only.  Sub-selections are made with :meth:`PointSet.view`, which
returns an immutable :class:`ActiveView` (indices + length) that is
passed around by value; the set itself never carries a hidden mask.

Usage
-----
>>> ps = PointSet(np.random.rand(10, 3))
>>> cluster = ps.view(mask)            # ActiveView
>>> ps.translate(-ps.centroid(cluster), cluster)
>>> d2 = ps.dist_mat2()                # (10, 10) squared distances
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
from scipy.spatial.distance import pdist, squareform

logger = logging.getLogger(__name__)

__all__ = [
    "ActiveView",
    "PointSet",
]


# ═══════════════════════════════════════════════════════════════════
# ActiveView
# ═══════════════════════════════════════════════════════════════════

@dataclass(frozen=True, eq=False)
class ActiveView:
    """Immutable selection of point indices."""

    indices: np.ndarray

    def __post_init__(self):
        idx = np.asarray(self.indices, dtype=np.intp).ravel()
        idx.setflags(write=False)
        object.__setattr__(self, "indices", idx)

    @classmethod
    def from_mask(cls, mask) -> "ActiveView":
        return cls(np.flatnonzero(np.asarray(mask, dtype=bool)))

    @property
    def length(self) -> int:
        return int(self.indices.size)

    def __len__(self) -> int:
        return self.length

    def mask(self, size: int) -> np.ndarray:
        """Return the selection as a boolean mask of length *size*."""
        out = np.zeros(size, dtype=bool)
        out[self.indices] = True
        return out


# ═══════════════════════════════════════════════════════════════════
# PointSet
# ═══════════════════════════════════════════════════════════════════

class PointSet:
    """Ordered points of uniform dimension with per-point active flags.

    Parameters
    ----------
    coords : (length, dim) array_like
    active : (length,) array_like of bool, optional
        All points are active when omitted.
    copy : bool
        If False and *coords* is already a float array, the set works on
        the caller's storage directly.
    """

    def __init__(self, coords, active=None, copy: bool = True):
        arr = np.array(coords, dtype=float, copy=True) if copy \
            else np.asarray(coords, dtype=float)
        if arr.ndim == 1:
            arr = arr.reshape(-1, 1)
        if arr.ndim != 2:
            raise ValueError(f"coordinates must be 2-D, got shape {arr.shape}")
        self.coords: np.ndarray = arr
        if active is None:
            self.active = np.ones(arr.shape[0], dtype=bool)
        else:
            act = np.array(active, dtype=bool)
            if act.shape != (arr.shape[0],):
                raise ValueError(
                    f"active flags must have length {arr.shape[0]}")
            self.active = act

    @classmethod
    def zeros(cls, length: int, dim: int) -> "PointSet":
        return cls(np.zeros((length, dim)))

    def __len__(self) -> int:
        return self.coords.shape[0]

    def __repr__(self) -> str:
        return (f"PointSet(length={len(self)}, dim={self.dim}, "
                f"active={self.active_len})")

    @property
    def dim(self) -> int:
        return self.coords.shape[1]

    @property
    def active_len(self) -> int:
        return int(self.active.sum())

    def copy(self) -> "PointSet":
        return PointSet(self.coords, self.active, copy=True)

    def set_dim(self, dim: int) -> None:
        """Change the dimension, zero-padding or truncating coordinates."""
        cur = self.dim
        if dim == cur:
            return
        if dim < cur:
            self.coords = self.coords[:, :dim].copy()
        else:
            pad = np.zeros((len(self), dim - cur))
            self.coords = np.hstack([self.coords, pad])

    # ── selections ──────────────────────────────────────────────

    def view(self, mask=None) -> ActiveView:
        """Active points, optionally intersected with *mask*."""
        sel = self.active.copy()
        if mask is not None:
            m = np.asarray(mask, dtype=bool)
            if m.shape != sel.shape:
                logger.warning(
                    f"PointSet.view: mask length {m.size} != {sel.size}, "
                    f"empty view returned")
                return ActiveView(np.zeros(0, dtype=np.intp))
            sel &= m
        return ActiveView(np.flatnonzero(sel))

    def _resolve(self, view: Optional[ActiveView]) -> np.ndarray:
        return self.view().indices if view is None else view.indices

    def active_coords(self, view: Optional[ActiveView] = None) -> np.ndarray:
        return self.coords[self._resolve(view)]

    # ── geometry ────────────────────────────────────────────────

    def centroid(self, view: Optional[ActiveView] = None) -> np.ndarray:
        """Mean of the selected points (null vector if none)."""
        idx = self._resolve(view)
        if idx.size == 0:
            logger.debug("PointSet.centroid: no active points")
            return np.zeros(self.dim)
        return self.coords[idx].mean(axis=0)

    def translate(self, vec, view: Optional[ActiveView] = None) -> None:
        vec = np.asarray(vec, dtype=float)
        if vec.shape != (self.dim,):
            logger.warning(
                f"PointSet.translate: vector of shape {vec.shape} "
                f"does not match dim {self.dim}")
            return
        self.coords[self._resolve(view)] += vec

    def scale(self, factor: float, view: Optional[ActiveView] = None) -> None:
        self.coords[self._resolve(view)] *= factor

    def premultiply(self, mat, view: Optional[ActiveView] = None) -> None:
        """Replace each selected point ``x`` by ``mat @ x``."""
        mat = np.asarray(mat, dtype=float)
        if mat.shape != (self.dim, self.dim):
            logger.warning(
                f"PointSet.premultiply: matrix of shape {mat.shape} "
                f"does not match dim {self.dim}")
            return
        idx = self._resolve(view)
        self.coords[idx] = self.coords[idx] @ mat.T

    def dist_mat2(self, view: Optional[ActiveView] = None) -> np.ndarray:
        """Squared pairwise distances among the selected points."""
        pts = self.coords[self._resolve(view)]
        if pts.shape[0] < 2 or pts.shape[1] == 0:
            return np.zeros((pts.shape[0], pts.shape[0]))
        return squareform(pdist(pts, "sqeuclidean"))
