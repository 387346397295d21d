"""Tests for fleshing the skeleton and the mirror-resolution pass."""

import dataclasses

import numpy as np
import pytest
from scipy.spatial.distance import pdist, squareform

from inertial_fold.embedding import embed_clusters
from inertial_fold.metric import dist_metric
from inertial_fold.reconstruct import cluster_quality, flesh_skeleton
from inertial_fold.skeleton import embed_skeleton


def _sqdist(x):
    return squareform(pdist(x, "sqeuclidean"))


@pytest.fixture
def chiral_blobs():
    """Two asymmetric 8-point clusters in 3-D plus their masks."""
    rng = np.random.default_rng(2024)
    a = rng.standard_normal((8, 3)) * [4.0, 2.0, 1.0]
    b = rng.standard_normal((8, 3)) * [3.0, 1.5, 0.7] + [0.0, 25.0, 5.0]
    x = np.vstack([a, b])
    masks = [np.arange(16) < 8, np.arange(16) >= 8]
    return x, _sqdist(x), masks


class TestClusterQuality:

    def test_exact_coordinates(self, chiral_blobs):
        x, d, masks = chiral_blobs
        assert cluster_quality(masks[0], x, d) == pytest.approx(0.0, abs=1e-9)

    def test_degenerate_masks(self, chiral_blobs):
        x, d, _ = chiral_blobs
        assert cluster_quality(np.ones(16, dtype=bool), x, d) == 0.0
        assert cluster_quality(np.zeros(16, dtype=bool), x, d) == 0.0

    def test_mirrored_cluster_is_worse(self, chiral_blobs):
        x, d, masks = chiral_blobs
        bad = x.copy()
        centre = bad[:8].mean(axis=0)
        bad[:8, 2] = 2.0 * centre[2] - bad[:8, 2]
        assert cluster_quality(masks[0], bad, d) > 1.0


class TestFleshSkeleton:

    @pytest.fixture
    def parts(self, chiral_blobs):
        x, d, masks = chiral_blobs
        local = embed_clusters(d, masks, 3)
        skel = embed_skeleton(dist_metric(d), local, 1.0, 3)
        return x, d, local, skel

    def test_exact_reconstruction(self, parts):
        _, d, local, skel = parts
        res = flesh_skeleton(skel, local, d)
        assert res.coords.shape == (16, 3)
        assert np.allclose(_sqdist(res.coords), d, atol=1e-6)

    def test_no_flip_when_exact(self, parts):
        _, d, local, skel = parts
        res = flesh_skeleton(skel, local, d)
        assert set(res.candidates) == {0, 1}
        assert res.flipped == ()
        assert set(res.qualities) == set(res.candidates)
        assert all(q < 1e-6 for q in res.qualities.values())

    def test_flipped_subset_of_candidates(self, parts):
        _, d, local, skel = parts
        noisy = d + np.random.default_rng(1).uniform(0.0, 2.0, d.shape)
        noisy = 0.5 * (noisy + noisy.T)
        np.fill_diagonal(noisy, 0.0)
        res = flesh_skeleton(skel, local, noisy)
        assert set(res.flipped) <= set(res.candidates)

    def test_mirrored_satellite_is_flipped_back(self, parts):
        _, d, local, skel = parts
        coords = skel.coords.copy()
        a0 = skel.offsets[0]
        # reflect the last satellite of cluster 0 through its centroid
        coords[a0 + 3] = 2.0 * coords[a0] - coords[a0 + 3]
        mirrored = dataclasses.replace(skel, coords=coords)
        res = flesh_skeleton(mirrored, local, d)
        assert 0 in res.candidates
        assert res.flipped == (0,)
        assert res.qualities[0] < 1e-6
        assert np.allclose(_sqdist(res.coords), d, atol=1e-6)

    def test_singleton_sits_on_centroid(self):
        rng = np.random.default_rng(4)
        x = rng.standard_normal((9, 3)) * 2.0
        d = _sqdist(x)
        masks = [np.arange(9) < 8, np.arange(9) == 8]
        local = embed_clusters(d, masks, 3)
        skel = embed_skeleton(dist_metric(d), local, 1.0, 3)
        res = flesh_skeleton(skel, local, d)
        assert np.allclose(res.coords[8], skel.centre(1))
