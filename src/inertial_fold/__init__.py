"""inertial_fold: hierarchic inertial projection and chain detangling.

Turns a (possibly non-Euclidean) matrix of squared inter-residue
distances into low-dimensional coordinates by embedding clusters in
their own local frames, embedding a skeleton of cluster centroids and
inertial satellites, and fleshing the clusters back onto it.  A
separate tangle engine finds chain pieces threading through helix and
sheet tetrahedra and pushes the offending clusters apart.
"""
# Parameters and audit trail
from .parameters import ParameterRegistry, DEFAULT_PARAMETERS
from .trace import ProjectionTrace, ROUTES

# Numerical primitives
from .numeric import (
    safe_div, pythag, eigen_full, eigen_partial,
    SVDecomposition, RotationFit, best_rotation,
)
from .points import ActiveView, PointSet

# Hierarchic projection
from .clusters import ClusterIndex, ClusterModel, validate_partition
from .metric import (
    centre_dist, dist_metric, metric_dist, sub_matrix,
    trieq_bal, trineq_filter, TriangleFilterResult,
)
from .embedding import (
    EmbeddingResult, metric_project,
    LocalFrame, LocalEmbedding, embed_clusters, apply_local_distances,
)
from .skeleton import Skeleton, skeleton_metric, embed_skeleton
from .reconstruct import FleshResult, cluster_quality, flesh_skeleton
from .projection import ProjectionResult, InertialProjector, full_project

# Secondary structure and tangles
from .segments import (
    SegmentKind, Sense, HELIX_GEOMETRY, make_helix,
    Helix, Strand, Sheet, Coil,
)
from .layout import ClusterType, SegmentLayout, parse_secondary
from .tangles import (
    TangleState, TanglePair, TangleResult, TangleEngine,
    tangle_detect, tangle_elim,
)

__version__ = "0.4.0"

__all__ = [
    # Parameters and audit trail
    "ParameterRegistry", "DEFAULT_PARAMETERS",
    "ProjectionTrace", "ROUTES",
    # Numerical primitives
    "safe_div", "pythag", "eigen_full", "eigen_partial",
    "SVDecomposition", "RotationFit", "best_rotation",
    "ActiveView", "PointSet",
    # Hierarchic projection
    "ClusterIndex", "ClusterModel", "validate_partition",
    "centre_dist", "dist_metric", "metric_dist", "sub_matrix",
    "trieq_bal", "trineq_filter", "TriangleFilterResult",
    "EmbeddingResult", "metric_project",
    "LocalFrame", "LocalEmbedding", "embed_clusters", "apply_local_distances",
    "Skeleton", "skeleton_metric", "embed_skeleton",
    "FleshResult", "cluster_quality", "flesh_skeleton",
    "ProjectionResult", "InertialProjector", "full_project",
    # Secondary structure and tangles
    "SegmentKind", "Sense", "HELIX_GEOMETRY", "make_helix",
    "Helix", "Strand", "Sheet", "Coil",
    "ClusterType", "SegmentLayout", "parse_secondary",
    "TangleState", "TanglePair", "TangleResult", "TangleEngine",
    "tangle_detect", "tangle_elim",
]
