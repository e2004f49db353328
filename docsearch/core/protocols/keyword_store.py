"""Keyword store protocol for dependency injection."""
from typing import Optional, Protocol, runtime_checkable

from ..models.document import KeywordHit


@runtime_checkable
class KeywordStoreProtocol(Protocol):
    """Protocol for sparse/full-text search."""

    def search(
        self,
        query: str,
        scope: str,
        document_ids: Optional[list[str]],
        limit: int,
    ) -> list[KeywordHit]:
        """Search documents by text.

        Args:
            query: Raw query text.
            scope: Owner/tenant the documents must belong to.
            document_ids: Optional allowlist of documents.
            limit: Maximum number of documents.

        Returns:
            Matching documents.

        Raises:
            KeywordStoreUnavailable: If the backend cannot be queried.
        """
        ...
