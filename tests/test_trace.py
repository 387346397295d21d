"""Tests for ProjectionTrace.

Covers:
1. ProjectionTrace: construction, immutability, serialisation
2. Integration: a trace is produced by every full_project call
"""

import dataclasses
import json

import numpy as np
import pytest
from scipy.spatial.distance import pdist, squareform

from inertial_fold.parameters import DEFAULT_PARAMETERS
from inertial_fold.projection import InertialProjector
from inertial_fold.trace import ROUTES, ProjectionTrace


# ═══════════════════════════════════════════════════════════════════
# Fixtures
# ═══════════════════════════════════════════════════════════════════

@pytest.fixture
def sample_trace():
    """A manually constructed ProjectionTrace for unit tests."""
    return ProjectionTrace(
        route="hierarchic", size=40, n_clusters=2, fraction=0.9,
        prior_dim=3, dim=3,
        smoothing_passes=2, smoothing_violations=0, diag_shift=0.125,
        local_dims=(3, 2), local_passes=(0, 1), failed_clusters=(),
        skeleton_size=7, skeleton_passes=0,
        flip_candidates=(0, 1), flipped=(1,),
        notes=("fraction 2.0 clipped to 1.0",),
    )


@pytest.fixture
def cloud():
    x = np.random.default_rng(12).standard_normal((30, 3)) * [4.0, 2.0, 1.0]
    return squareform(pdist(x, "sqeuclidean"))


# ═══════════════════════════════════════════════════════════════════
# 1. ProjectionTrace
# ═══════════════════════════════════════════════════════════════════

class TestProjectionTrace:

    def test_frozen(self, sample_trace):
        with pytest.raises(dataclasses.FrozenInstanceError):
            sample_trace.dim = 1

    def test_defaults(self):
        trace = ProjectionTrace("direct", 10, 1, 1.0, 3, 3)
        assert trace.local_dims == ()
        assert trace.flipped == ()
        assert trace.params_name == "default"

    def test_to_dict_is_json_safe(self, sample_trace):
        d = sample_trace.to_dict()
        assert json.loads(json.dumps(d)) == d
        assert d["local_dims"] == [3, 2]
        assert d["flipped"] == [1]
        assert d["diag_shift"] == 0.125

    def test_to_dict_covers_every_field(self, sample_trace):
        names = {f.name for f in dataclasses.fields(ProjectionTrace)}
        assert set(sample_trace.to_dict()) == names

    def test_summary(self, sample_trace):
        text = sample_trace.summary()
        assert text.startswith("hierarchic: 40 pts")
        assert "dim 3/3" in text
        assert "skeleton 7" in text
        assert "flipped 1" in text
        assert "failed" not in text

    def test_routes(self):
        assert ROUTES == ("rejected", "direct", "hierarchic", "fallback", "failed")


# ═══════════════════════════════════════════════════════════════════
# 2. Integration
# ═══════════════════════════════════════════════════════════════════

class TestTraceIntegration:

    def test_hierarchic_projection(self, cloud):
        result = InertialProjector(30).full_project(cloud, 0.9, 3)
        trace = result.trace
        assert trace.route == "hierarchic"
        assert trace.size == 30
        assert trace.dim == result.dim
        assert trace.fraction == 0.9
        assert len(trace.local_dims) == trace.n_clusters
        assert trace.skeleton_size == sum(1 + d for d in trace.local_dims)
        assert set(trace.flipped) <= set(trace.flip_candidates)

    def test_params_name_recorded(self, cloud):
        reg = DEFAULT_PARAMETERS.replace({"flesh.halfval": 0.2}, name="wide")
        result = InertialProjector(30, params=reg).full_project(cloud, 1.0, 3)
        assert result.trace.params_name == "wide"

    def test_trace_serialises(self, cloud):
        result = InertialProjector(30).full_project(cloud, 1.0, 2)
        json.dumps(result.trace.to_dict())
