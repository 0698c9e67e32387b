"""Application exception hierarchy.

All custom exceptions inherit from RAGPlatformError.
Each exception has an error code for structured error handling.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Error codes for structured error handling."""

    # General errors (1xxx)
    INTERNAL_ERROR = "RAG-1000"
    CONFIGURATION_ERROR = "RAG-1001"
    VALIDATION_ERROR = "RAG-1002"

    # Ingestion errors (2xxx)
    INGESTION_ERROR = "RAG-2000"
    INGESTION_ID_MISMATCH = "RAG-2001"

    # Embedding errors (3xxx)
    EMBEDDING_SERVICE_ERROR = "RAG-3000"
    EMBEDDING_DIMENSION_MISMATCH = "RAG-3001"
    EMBEDDING_COUNT_MISMATCH = "RAG-3002"

    # Vector store errors (4xxx)
    VECTOR_STORE_ERROR = "RAG-4000"
    COLLECTION_NOT_FOUND = "RAG-4001"
    COLLECTION_EXISTS = "RAG-4002"

    # Generation errors (5xxx)
    GENERATION_SERVICE_ERROR = "RAG-5000"
    GENERATION_TIMEOUT = "RAG-5001"
    GENERATION_RATE_LIMIT = "RAG-5002"
    GENERATION_EMPTY_RESPONSE = "RAG-5003"

    # Retrieval errors (6xxx)
    RETRIEVAL_ERROR = "RAG-6000"
    INVALID_SCORE = "RAG-6001"


class PipelineStage(str, Enum):
    """Pipeline stage a failure occurred in."""

    INGESTION = "ingestion"
    RETRIEVAL = "retrieval"
    GENERATION = "generation"
    CLEAR = "clear"


class RAGPlatformError(Exception):
    """Base exception for all platform errors.

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

    @property
    def stage(self) -> str | None:
        """Pipeline stage the error was raised in, if known."""
        return self.details.get("stage")

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": {
                "code": self.code.value,
                "message": self.message,
                "details": self.details,
            }
        }


class ConfigurationError(RAGPlatformError):
    """Configuration or environment error."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.CONFIGURATION_ERROR, details)


class ValidationError(RAGPlatformError):
    """Input validation error."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.VALIDATION_ERROR, details)


class EmbeddingError(RAGPlatformError):
    """Embedding provider failed to vectorize text."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.EMBEDDING_SERVICE_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class VectorStoreError(RAGPlatformError):
    """Vector store collection management error."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VECTOR_STORE_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class IngestionError(RAGPlatformError):
    """Vector store rejected a write."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INGESTION_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class RetrievalError(RAGPlatformError):
    """Vector store unreachable or query malformed."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.RETRIEVAL_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class GenerationError(RAGPlatformError):
    """Generation call failed or returned no content."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.GENERATION_SERVICE_ERROR,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)
