"""Tests for spectral embedding (global and per cluster)."""

import numpy as np
import pytest
from scipy.spatial.distance import pdist, squareform

from inertial_fold.embedding import (
    apply_local_distances,
    embed_clusters,
    metric_project,
)
from inertial_fold.metric import dist_metric
from inertial_fold.parameters import DEFAULT_PARAMETERS


def _sqdist(x):
    return squareform(pdist(x, "sqeuclidean"))


@pytest.fixture
def flat_cloud():
    """20 points stretched along x, squeezed along z."""
    rng = np.random.default_rng(21)
    return rng.standard_normal((20, 3)) * [10.0, 1.0, 0.1]


# ═══════════════════════════════════════════════════════════════════
# metric_project
# ═══════════════════════════════════════════════════════════════════

class TestMetricProject:

    def test_collinear_points(self):
        x = np.arange(4.0).reshape(-1, 1)
        res = metric_project(dist_metric(_sqdist(x)), 1.0, 1, 3)
        assert res.dim == 1
        assert res.n_positive == 1
        assert np.allclose(_sqdist(res.coords), _sqdist(x))
        assert np.allclose(np.sort(np.abs(res.coords[:, 0])),
                           [0.5, 0.5, 1.5, 1.5])

    def test_first_point_non_negative(self, flat_cloud):
        res = metric_project(dist_metric(_sqdist(flat_cloud)), 1.0, 1, 3)
        assert np.all(res.coords[0] >= 0.0)

    def test_full_fraction_reproduces_distances(self, flat_cloud):
        d = _sqdist(flat_cloud)
        res = metric_project(dist_metric(d), 1.0, 1, 3)
        assert res.dim == 3
        assert np.allclose(_sqdist(res.coords), d, atol=1e-8)

    def test_fraction_selects_dimension(self, flat_cloud):
        g = dist_metric(_sqdist(flat_cloud))
        assert metric_project(g, 0.5, 1, 3).dim == 1
        assert metric_project(g, 0.5, 2, 3).dim == 2

    def test_max_dim_is_inclusive_bound(self, flat_cloud):
        g = dist_metric(_sqdist(flat_cloud))
        assert metric_project(g, 1.0, 1, 2).dim == 2
        assert metric_project(g, 1.0, 1, 10).dim == 3

    def test_moments_are_root_eigenvalues(self, flat_cloud):
        res = metric_project(dist_metric(_sqdist(flat_cloud)), 1.0, 1, 3)
        assert np.allclose(res.moments ** 2, res.eigenvalues[:3])
        assert np.allclose(np.linalg.norm(res.coords, axis=0), res.moments)

    def test_partial_and_full_agree(self, flat_cloud):
        g = dist_metric(_sqdist(flat_cloud))
        full = DEFAULT_PARAMETERS.replace({"embed.partial_ratio": 1e6})
        a = metric_project(g, 1.0, 1, 3)
        b = metric_project(g, 1.0, 1, 3, params=full)
        assert a.dim == b.dim
        assert np.allclose(_sqdist(a.coords), _sqdist(b.coords), atol=1e-8)

    def test_diag_shift_removed(self, flat_cloud):
        g = dist_metric(_sqdist(flat_cloud))
        plain = metric_project(g, 1.0, 1, 3)
        shifted = metric_project(g + 5.0 * np.eye(20), 1.0, 1, 3,
                                 diag_shift=5.0)
        assert np.allclose(plain.eigenvalues, shifted.eigenvalues)
        assert shifted.dim == 3

    def test_no_positive_eigenvalues(self, caplog):
        res = metric_project(-np.eye(4), 1.0, 1, 3)
        assert res.dim == 1
        assert res.n_positive == 0
        assert np.all(res.coords == 0.0)
        assert "no positive eigenvalues" in caplog.text

    def test_min_dim_lowered_to_positive_count(self):
        x = np.arange(5.0).reshape(-1, 1)
        res = metric_project(dist_metric(_sqdist(x)), 1.0, 3, 3)
        assert res.dim == 1

    def test_empty_metric(self):
        assert metric_project(np.zeros((0, 0)), 1.0, 1, 3) is None

    def test_non_square_metric(self, caplog):
        assert metric_project(np.eye(4)[:3], 1.0, 1, 3) is None
        assert "square matrix expected" in caplog.text


# ═══════════════════════════════════════════════════════════════════
# Local embedding
# ═══════════════════════════════════════════════════════════════════

class TestEmbedClusters:

    @pytest.fixture
    def setup(self):
        rng = np.random.default_rng(8)
        x = rng.standard_normal((7, 3)) * 3.0
        masks = [np.arange(7) < 6, np.arange(7) == 6]
        return x, _sqdist(x), masks

    def test_frames(self, setup):
        _, d, masks = setup
        local = embed_clusters(d, masks, 3)
        assert local.dims == (3, 0)
        assert local.skeleton_size == 5
        assert local.max_local_dim == 3
        assert local.failed == ()
        assert len(local.smoothing_passes) == 2

    def test_local_distances_exact(self, setup):
        _, d, masks = setup
        local = embed_clusters(d, masks, 3)
        idx = np.flatnonzero(masks[0])
        assert np.allclose(local.local_dist[np.ix_(idx, idx)],
                           d[np.ix_(idx, idx)], atol=1e-8)
        assert np.all(local.local_dist[6] == 0.0)

    def test_max_dim_caps_local_frames(self, setup):
        _, d, masks = setup
        local = embed_clusters(d, masks, 2)
        assert local.dims == (2, 0)

    def test_singleton_frame(self, setup):
        _, d, masks = setup
        frame = embed_clusters(d, masks, 3).frames[1]
        assert frame.size == 1
        assert frame.coords.shape == (1, 0)

    def test_apply_local_distances(self):
        d = np.full((3, 3), 7.0)
        local = np.zeros((3, 3))
        local[0, 1] = local[1, 0] = 2.0
        out = apply_local_distances(d, local)
        assert out[0, 1] == 2.0
        assert out[0, 2] == 7.0
        assert d[0, 1] == 7.0
