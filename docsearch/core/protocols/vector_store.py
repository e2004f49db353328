"""Vector store protocol for dependency injection."""
from typing import Optional, Protocol, runtime_checkable

from ..models.document import ChunkHit


@runtime_checkable
class VectorStoreProtocol(Protocol):
    """Protocol for approximate nearest-neighbor search over chunks."""

    def search(
        self,
        vector: list[float],
        scope: str,
        document_ids: Optional[list[str]],
        threshold: float,
        limit: int,
    ) -> list[ChunkHit]:
        """Search chunks by embedding.

        Args:
            vector: Query vector.
            scope: Owner/tenant the chunks must belong to.
            document_ids: Optional allowlist of parent documents.
            threshold: Minimum similarity.
            limit: Maximum number of chunks.

        Returns:
            Chunk hits ordered by similarity (highest first).

        Raises:
            VectorStoreUnavailable: If the backend cannot be queried.
        """
        ...
