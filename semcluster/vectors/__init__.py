"""Vector math and embedding value types."""

from semcluster.vectors.models import AnalysisType, SemanticEmbedding
from semcluster.vectors.ops import Vector, VectorLike

__all__ = [
    "AnalysisType",
    "SemanticEmbedding",
    "Vector",
    "VectorLike",
]
