import logging
from typing import Optional

import requests

from docsearch.core.errors import SearchError, VectorStoreUnavailable
from docsearch.core.models.document import ChunkHit

logger = logging.getLogger(__name__)


def scope_filter(scope: str, document_ids: Optional[list[str]]) -> dict:
    """Chroma metadata filter for an owner and an optional document allowlist."""
    clauses = [{"owner_id": scope}]
    if document_ids:
        clauses.append({"document_id": {"$in": list(document_ids)}})
    return clauses[0] if len(clauses) == 1 else {"$and": clauses}


class ChromaCollection:
    """Read access to one collection of the ChromaDB HTTP API."""

    unavailable: type[SearchError] = VectorStoreUnavailable

    def __init__(
        self,
        host: str = "localhost",
        port: int = 8001,
        collection_name: str = "document_chunks",
        tenant: str = "default_tenant",
        database: str = "default_database",
        timeout: float = 10.0,
    ):
        """Initialize ChromaDB client.

        Args:
            host: ChromaDB host.
            port: ChromaDB port.
            collection_name: Collection name.
            tenant: Tenant name.
            database: Database name.
            timeout: HTTP timeout in seconds.
        """
        self._base_url = f"http://{host}:{port}/api/v2"
        self._tenant = tenant
        self._database = database
        self._collection_name = collection_name
        self._timeout = timeout
        self._collection_id: Optional[str] = None

    @property
    def _collections_url(self) -> str:
        return f"{self._base_url}/tenants/{self._tenant}/databases/{self._database}/collections"

    def _ensure_collection(self) -> str:
        """Look up the collection ID."""
        if self._collection_id:
            return self._collection_id

        resp = requests.get(self._collections_url, timeout=self._timeout)
        resp.raise_for_status()
        for col in resp.json():
            if col["name"] == self._collection_name:
                self._collection_id = col["id"]
                return self._collection_id

        raise self.unavailable(f"Collection not found: {self._collection_name}")

    def _post(self, action: str, payload: dict) -> dict:
        """POST to a collection endpoint, wrapping transport errors."""
        try:
            col_id = self._ensure_collection()
            resp = requests.post(
                f"{self._collections_url}/{col_id}/{action}",
                json=payload,
                timeout=self._timeout,
            )
            resp.raise_for_status()
            return resp.json()
        except requests.RequestException as e:
            raise self.unavailable(f"Chroma {action} failed: {e}") from e
        except ValueError as e:
            raise self.unavailable(f"Chroma {action} returned invalid JSON: {e}") from e


class ChromaVectorStore(ChromaCollection):
    """Vector store using ChromaDB HTTP API."""

    def search(
        self,
        vector: list[float],
        scope: str,
        document_ids: Optional[list[str]],
        threshold: float,
        limit: int,
    ) -> list[ChunkHit]:
        """Search chunks by embedding."""
        data = self._post(
            "query",
            {
                "query_embeddings": [list(vector)],
                "n_results": limit,
                "where": scope_filter(scope, document_ids),
                "include": ["documents", "metadatas", "distances"],
            },
        )

        hits = []
        if data.get("ids") and data["ids"][0]:
            for i, chunk_id in enumerate(data["ids"][0]):
                similarity = 1.0 - data["distances"][0][i]
                if similarity < threshold:
                    continue

                meta = data["metadatas"][0][i] or {}
                hits.append(
                    ChunkHit(
                        chunk_id=chunk_id,
                        document_id=str(meta.get("document_id", chunk_id)),
                        text=data["documents"][0][i] or "",
                        similarity=similarity,
                        position_index=int(meta.get("chunk_index", 0)),
                        token_count=int(meta.get("token_count", 0)),
                        title=meta.get("title"),
                        filename=meta.get("filename") or meta.get("source"),
                        created_at=meta.get("created_at"),
                    )
                )

        logger.debug(f"Chroma query: {len(hits)} chunks >= {threshold:.2f}")
        return hits
