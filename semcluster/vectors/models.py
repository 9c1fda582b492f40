"""Embedding data models."""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field

from semcluster.logging_config import get_logger
from semcluster.vectors import ops

logger = get_logger(__name__)


class AnalysisType(str, Enum):
    """Kind of analysis that produced an embedding."""

    DOCUMENT = "document"
    IMAGE = "image"


class SemanticEmbedding(BaseModel):
    """Semantic analysis result for one content item.

    Attributes:
        vector: Dense vector, already fitted to the shared dimension.
        keywords: Extracted keywords (document analysis).
        labels: Extracted labels (image analysis).
        analysis_type: The analysis that produced the vector.
        confidence: Strength of the analysis, 0 when unknown.
        analyzed_at: When the analysis was performed.
    """

    vector: list[float] = Field(description="Embedding vector")
    keywords: list[str] = Field(default_factory=list, description="Keywords")
    labels: list[str] = Field(default_factory=list, description="Labels")
    analysis_type: AnalysisType = Field(description="Analysis type")
    confidence: float = Field(default=0.0, description="Analysis confidence")
    analyzed_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="Analysis timestamp",
    )

    @classmethod
    def from_vector(
        cls,
        vector: ops.VectorLike,
        dimension: int,
        analysis_type: AnalysisType = AnalysisType.DOCUMENT,
        **kwargs: object,
    ) -> "SemanticEmbedding":
        """Build an embedding, truncating or zero-padding to ``dimension``."""
        if len(vector) != dimension:
            logger.debug(
                "Fitting embedding to shared dimension",
                extra={"received": len(vector), "dimension": dimension},
            )
        return cls(
            vector=ops.fit_to_dimension(vector, dimension),
            analysis_type=analysis_type,
            **kwargs,
        )

    @classmethod
    def empty(
        cls,
        dimension: int,
        analysis_type: AnalysisType = AnalysisType.DOCUMENT,
        **kwargs: object,
    ) -> "SemanticEmbedding":
        """Zero-vector embedding, the marker for "no usable vector"."""
        return cls(vector=[0.0] * dimension, analysis_type=analysis_type, **kwargs)

    @classmethod
    def from_safe(
        cls,
        vector: ops.VectorLike | None,
        dimension: int,
        analysis_type: AnalysisType = AnalysisType.DOCUMENT,
        **kwargs: object,
    ) -> "SemanticEmbedding":
        """Accept only exact-dimension vectors; anything else becomes empty."""
        if vector is not None and len(vector) == dimension:
            return cls(vector=list(vector), analysis_type=analysis_type, **kwargs)
        logger.debug(
            "Invalid or missing embedding vector; using zero vector",
            extra={"dimension": dimension},
        )
        return cls.empty(dimension, analysis_type, **kwargs)

    @property
    def dimension(self) -> int:
        return len(self.vector)

    @property
    def is_zero_vector(self) -> bool:
        return ops.is_zero_vector(self.vector)

    @property
    def normalized_vector(self) -> list[float]:
        return ops.normalize(self.vector)

    def cosine_similarity(self, other: "SemanticEmbedding") -> float:
        """Cosine similarity to another embedding (0.0 if incomparable)."""
        return ops.cosine_similarity(self.vector, other.vector)

    @property
    def summary(self) -> str:
        """Short textual summary for logging."""
        keywords = ", ".join(self.keywords) or "none"
        labels = ", ".join(self.labels) or "none"
        return (
            f"SemanticEmbedding(type: {self.analysis_type.value}, "
            f"confidence: {self.confidence:.2f}, "
            f"keywords: [{keywords}], labels: [{labels}])"
        )
