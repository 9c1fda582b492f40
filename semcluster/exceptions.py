"""Application exception hierarchy.

All custom exceptions inherit from SemClusterError.
Each exception has an error code for structured error handling.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Error codes for structured error handling."""

    # General errors (1xxx)
    INTERNAL_ERROR = "SCL-1000"
    CONFIGURATION_ERROR = "SCL-1001"
    VALIDATION_ERROR = "SCL-1002"
    INVARIANT_VIOLATION = "SCL-1003"

    # Clustering errors (2xxx)
    INSUFFICIENT_DATA = "SCL-2000"
    NO_EMBEDDINGS_FOUND = "SCL-2001"
    CLUSTERING_CANCELLED = "SCL-2002"

    # Embedding errors (3xxx)
    EMBEDDING_SERVICE_ERROR = "SCL-3000"
    EMBEDDING_DIMENSION_MISMATCH = "SCL-3001"
    ITEM_NOT_READABLE = "SCL-3002"

    # Workspace errors (4xxx)
    WORKSPACE_NOT_FOUND = "SCL-4000"
    WORKSPACE_EXISTS = "SCL-4001"
    PERSISTENCE_ERROR = "SCL-4002"


class SemClusterError(Exception):
    """Base exception for all clustering service errors.

    Attributes:
        message: Human-readable error message.
        code: Structured error code.
        details: Additional error context.
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": {
                "code": self.code.value,
                "message": self.message,
                "details": self.details,
            }
        }


class ConfigurationError(SemClusterError):
    """Configuration or environment error."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR, details)


class ValidationError(SemClusterError):
    """Input validation error."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.VALIDATION_ERROR, details)


class InvariantViolationError(SemClusterError):
    """Internal state that should be unreachable was observed."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.INVARIANT_VIOLATION, details)


class ClusteringError(SemClusterError):
    """Batch clustering error."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INSUFFICIENT_DATA,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class InsufficientDataError(ClusteringError):
    """Clustering was requested over an empty item list."""

    def __init__(
        self,
        message: str = "Insufficient data provided for clustering",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.INSUFFICIENT_DATA, details)


class NoEmbeddingsFoundError(ClusteringError):
    """None of the items to cluster carries a usable vector.

    Recoverable: callers treat this as "no clusters yet".
    """

    def __init__(
        self,
        message: str = "No embeddings available among the provided items",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.NO_EMBEDDINGS_FOUND, details)


class ClusteringCancelledError(ClusteringError):
    """Clustering was cancelled between merge steps."""

    def __init__(
        self,
        message: str = "Clustering was cancelled",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.CLUSTERING_CANCELLED, details)


class EmbeddingError(SemClusterError):
    """Embedding service error."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.EMBEDDING_SERVICE_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class WorkspaceError(SemClusterError):
    """Workspace lookup or lifecycle error."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.WORKSPACE_NOT_FOUND,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class PersistenceError(SemClusterError):
    """Workspace storage error."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.PERSISTENCE_ERROR, details)
