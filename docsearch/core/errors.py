"""Error taxonomy for the retrieval engine."""
from enum import Enum


class ErrorKind(str, Enum):
    """Kinds of upstream failure, used for degradation decisions."""
    EMBEDDING_UNAVAILABLE = "embedding_unavailable"
    INVALID_EMBEDDING = "invalid_embedding"
    VECTOR_STORE_UNAVAILABLE = "vector_store_unavailable"
    KEYWORD_STORE_UNAVAILABLE = "keyword_store_unavailable"
    STAGE_FAILURE = "stage_failure"
    VALIDATION = "validation"
    UPSTREAM_ERROR = "upstream_error"


class SearchError(Exception):
    """Base exception for retrieval failures."""

    kind: ErrorKind = ErrorKind.UPSTREAM_ERROR


class EmbeddingUnavailable(SearchError):
    """Embedding provider failed for the primary query."""

    kind = ErrorKind.EMBEDDING_UNAVAILABLE


class InvalidEmbedding(EmbeddingUnavailable):
    """Embedding has the wrong dimension or non-finite values."""

    kind = ErrorKind.INVALID_EMBEDDING


class VectorStoreUnavailable(SearchError):
    kind = ErrorKind.VECTOR_STORE_UNAVAILABLE


class KeywordStoreUnavailable(SearchError):
    kind = ErrorKind.KEYWORD_STORE_UNAVAILABLE


class StageFailure(SearchError):
    """A funnel stage could not complete."""

    kind = ErrorKind.STAGE_FAILURE


class SearchValidationError(SearchError):
    """Request parameters are unusable."""

    kind = ErrorKind.VALIDATION


__all__ = [
    "ErrorKind",
    "SearchError",
    "EmbeddingUnavailable",
    "InvalidEmbedding",
    "VectorStoreUnavailable",
    "KeywordStoreUnavailable",
    "StageFailure",
    "SearchValidationError",
]
