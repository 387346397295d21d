"""Tests for the numerical primitives (eigen, SVD, optimal rotation)."""

import math

import numpy as np
import pytest

from inertial_fold.numeric import (
    SVDecomposition,
    best_rotation,
    eigen_full,
    eigen_partial,
    pythag,
    safe_div,
)


def _rot_z(angle):
    c, s = math.cos(angle), math.sin(angle)
    return np.array([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])


# ═══════════════════════════════════════════════════════════════════
# Scalar helpers
# ═══════════════════════════════════════════════════════════════════

class TestScalarHelpers:

    def test_safe_div(self):
        assert safe_div(6.0, 3.0) == 2.0
        assert safe_div(1.0, 0.0) == 0.0
        assert safe_div(1.0, 1e-15, fallback=-1.0) == -1.0
        assert safe_div(1.0, 0.5, tol=1.0) == 0.0

    def test_pythag(self):
        assert pythag(3.0, 4.0) == pytest.approx(5.0)
        assert pythag(-4.0, 3.0) == pytest.approx(5.0)
        assert pythag(0.0, 0.0) == 0.0
        assert pythag(1e200, 1e200) == pytest.approx(math.sqrt(2.0) * 1e200)


# ═══════════════════════════════════════════════════════════════════
# Eigen-decomposition
# ═══════════════════════════════════════════════════════════════════

class TestEigen:

    @pytest.fixture
    def sym(self):
        rng = np.random.default_rng(7)
        a = rng.standard_normal((12, 12))
        return a + a.T

    def test_full_descending(self, sym):
        evals, evecs = eigen_full(sym)
        assert np.all(np.diff(evals) <= 1e-12)
        assert np.allclose(sym @ evecs, evecs * evals, atol=1e-9)

    def test_diagonal(self):
        evals, _ = eigen_full(np.diag([1.0, 3.0, 2.0]))
        assert np.allclose(evals, [3.0, 2.0, 1.0])

    def test_partial_agrees_with_full(self, sym):
        full_vals, full_vecs = eigen_full(sym)
        part_vals, part_vecs = eigen_partial(sym, 3)
        assert np.allclose(full_vals, part_vals)
        assert part_vecs.shape == (12, 3)
        for k in range(3):
            assert abs(abs(full_vecs[:, k] @ part_vecs[:, k]) - 1.0) < 1e-8

    def test_partial_zero_vectors(self, sym):
        _, vecs = eigen_partial(sym, 0)
        assert vecs.shape == (12, 0)

    def test_non_square_logged(self, caplog):
        evals, evecs = eigen_full(np.zeros((2, 3)))
        assert evals.size == 0
        assert evecs.shape == (0, 0)
        vals, _ = eigen_partial(np.zeros((4, 2)), 1)
        assert vals.size == 0
        assert "square matrix expected" in caplog.text

    def test_non_finite_raises(self):
        m = np.eye(3)
        m[0, 1] = m[1, 0] = np.nan
        with pytest.raises(np.linalg.LinAlgError):
            eigen_full(m)


# ═══════════════════════════════════════════════════════════════════
# SVD
# ═══════════════════════════════════════════════════════════════════

class TestSVDecomposition:

    def test_reconstructs(self):
        rng = np.random.default_rng(3)
        a = rng.standard_normal((5, 3))
        svd = SVDecomposition(a)
        assert svd.shape == (5, 3)
        assert np.allclose(svd.u @ np.diag(svd.w) @ svd.v.T, a)

    def test_wide_matrix_raises(self):
        with pytest.raises(ValueError):
            SVDecomposition(np.zeros((2, 3)))

    def test_rank_cond(self):
        svd = SVDecomposition(np.array([[2.0, 0.0], [0.0, 1e-12], [0.0, 0.0]]))
        rank, cond = svd.rank_cond(1e-7)
        assert rank == 1
        assert cond == pytest.approx(1.0)

    def test_rank_cond_null_matrix(self):
        rank, cond = SVDecomposition(np.zeros((3, 3))).rank_cond(1e-7)
        assert rank == 0
        assert math.isinf(cond)

    def test_lin_solve_vector_and_matrix(self):
        a = np.array([[2.0, 0.0, 0.0], [0.0, 4.0, 0.0], [0.0, 0.0, 5.0]])
        svd = SVDecomposition(a)
        assert np.allclose(svd.lin_solve([2.0, 4.0, 5.0]), [1.0, 1.0, 1.0])
        rhs = np.column_stack([[2.0, 4.0, 5.0], [4.0, 0.0, 0.0]])
        assert np.allclose(svd.lin_solve(rhs),
                           [[1.0, 2.0], [1.0, 0.0], [1.0, 0.0]])

    def test_lin_solve_wrong_size(self):
        svd = SVDecomposition(np.eye(3))
        out = svd.lin_solve(np.ones(4))
        assert np.array_equal(out, np.zeros(3))


# ═══════════════════════════════════════════════════════════════════
# Optimal rotation
# ═══════════════════════════════════════════════════════════════════

class TestBestRotation:

    @pytest.fixture
    def points(self):
        return np.random.default_rng(11).standard_normal((6, 3))

    def test_recovers_rotation(self, points):
        rot = _rot_z(0.6)
        fit = best_rotation(points, points @ rot.T)
        assert np.allclose(fit.rotation, rot, atol=1e-9)
        assert fit.det_sign == 1
        assert fit.proper
        assert fit.rms == pytest.approx(0.0, abs=1e-9)

    def test_reflection_allowed(self, points):
        mirror = np.diag([1.0, 1.0, -1.0])
        fit = best_rotation(points, points @ mirror)
        assert fit.det_sign == -1
        assert not fit.proper
        assert fit.rms == pytest.approx(0.0, abs=1e-9)

    def test_reflection_forbidden(self, points):
        mirror = np.diag([1.0, 1.0, -1.0])
        fit = best_rotation(points, points @ mirror, allow_reflection=False)
        assert fit.proper
        assert np.linalg.det(fit.rotation) == pytest.approx(1.0)
        assert fit.rms > 1e-3

    def test_weights_shape_logged(self, points, caplog):
        fit = best_rotation(points, points, weights=np.ones(2))
        assert np.array_equal(fit.rotation, np.eye(3))
        assert fit.det_sign == 0
        assert "weights" in caplog.text

    def test_shape_mismatch_gives_identity(self, points, caplog):
        fit = best_rotation(points, points[:-1])
        assert np.array_equal(fit.rotation, np.eye(3))
        assert fit.det_sign == 0
        assert fit.proper
        assert math.isinf(fit.rms)
        assert "differ in shape" in caplog.text

    def test_rank_deficient_has_no_sign(self):
        x = np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]])
        fit = best_rotation(x, x)
        assert fit.det_sign == 0

    def test_null_tensor_gives_identity(self):
        fit = best_rotation(np.zeros((3, 3)), np.zeros((3, 3)))
        assert np.array_equal(fit.rotation, np.eye(3))
