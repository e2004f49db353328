import logging
from typing import Optional

from docsearch.core.errors import KeywordStoreUnavailable
from docsearch.core.models.document import KeywordHit
from docsearch.core.text_utils import query_terms
from docsearch.infrastructure.vector_stores.chroma_store import (
    ChromaCollection,
    scope_filter,
)

logger = logging.getLogger(__name__)


def contains_filter(query: str, max_terms: int = 8) -> Optional[dict]:
    """where_document filter matching any query term.

    $contains is case-sensitive, so each term is also tried capitalized.
    """
    patterns: list[str] = []
    for term in query_terms(query)[:max_terms]:
        for pattern in (term, term.capitalize()):
            if pattern not in patterns:
                patterns.append(pattern)

    if not patterns:
        return None
    if len(patterns) == 1:
        return {"$contains": patterns[0]}
    return {"$or": [{"$contains": p} for p in patterns]}


class ChromaKeywordStore(ChromaCollection):
    """Full-text lookup over the chunk collection, grouped per document."""

    unavailable = KeywordStoreUnavailable

    def __init__(self, *args, chunks_per_document: int = 5, **kwargs):
        """Initialize keyword store.

        Args:
            chunks_per_document: Chunks fetched per requested document.
            *args, **kwargs: Passed to ChromaCollection.
        """
        super().__init__(*args, **kwargs)
        self._chunks_per_document = chunks_per_document

    def search(
        self,
        query: str,
        scope: str,
        document_ids: Optional[list[str]],
        limit: int,
    ) -> list[KeywordHit]:
        """Find documents whose chunks contain query terms."""
        where_document = contains_filter(query)
        if where_document is None:
            return []

        data = self._post(
            "get",
            {
                "where": scope_filter(scope, document_ids),
                "where_document": where_document,
                "limit": limit * self._chunks_per_document,
                "include": ["documents", "metadatas"],
            },
        )

        terms = query_terms(query)
        phrase = " ".join(query.lower().split())
        best: dict[str, tuple[int, KeywordHit]] = {}
        for chunk_id, text, meta in zip(
            data.get("ids") or [], data.get("documents") or [], data.get("metadatas") or []
        ):
            meta = meta or {}
            text = text or ""
            document_id = str(meta.get("document_id", chunk_id))
            text_lower = text.lower()
            matches = sum(1 for t in terms if t in text_lower)
            exact = bool(phrase) and phrase in " ".join(text_lower.split())

            current = best.get(document_id)
            if current is not None and current[0] >= matches:
                continue

            best[document_id] = (
                matches,
                KeywordHit(
                    document_id=document_id,
                    title=meta.get("title") or meta.get("filename") or "Untitled",
                    text=text,
                    filename=meta.get("filename") or meta.get("source"),
                    created_at=meta.get("created_at"),
                    match_type="exact" if exact else "token",
                ),
            )

        ranked = sorted(best.values(), key=lambda item: item[0], reverse=True)
        hits = [hit for _, hit in ranked[:limit]]
        logger.debug(f"Chroma keyword get: {len(hits)} documents for '{query[:50]}'")
        return hits
