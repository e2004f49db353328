"""Concurrent vector and keyword candidate retrieval."""

import asyncio
import logging
from typing import Optional

from ..errors import ErrorKind, SearchError
from ..models.document import ChunkHit, KeywordHit
from ..models.response import CandidateSet
from ..protocols.keyword_store import KeywordStoreProtocol
from ..protocols.vector_store import VectorStoreProtocol
from ..resilience import Deadline, RetryPolicy, call_with_retry

logger = logging.getLogger(__name__)


def _path_kind(error: SearchError, default: ErrorKind) -> ErrorKind:
    """Error kind of a failed path; unspecific errors take the path's kind."""
    return default if error.kind is ErrorKind.UPSTREAM_ERROR else error.kind


class CandidateRetriever:
    """Fan out to the vector and keyword stores and join both.

    Never raises: each path reports its own error kind in the CandidateSet.
    """

    def __init__(
        self,
        vector_store: VectorStoreProtocol,
        keyword_store: KeywordStoreProtocol,
        vector_timeout: float = 5.0,
        keyword_timeout: float = 5.0,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self._vector_store = vector_store
        self._keyword_store = keyword_store
        self._vector_timeout = vector_timeout
        self._keyword_timeout = keyword_timeout
        self._retry_policy = retry_policy or RetryPolicy()

    async def retrieve(
        self,
        query: str,
        embedding: Optional[list[float]],
        scope: str,
        threshold: float,
        vector_limit: int,
        keyword_limit: int,
        document_ids: Optional[list[str]] = None,
        deadline: Optional[Deadline] = None,
        use_vector: bool = True,
        use_keyword: bool = True,
        embedding_error: Optional[ErrorKind] = None,
    ) -> CandidateSet:
        """Run both lookups concurrently.

        Args:
            query: Query text for the keyword path.
            embedding: Composite query embedding; None marks the vector path failed.
            scope: Owner/tenant filter.
            threshold: Minimum vector similarity.
            vector_limit: Maximum chunks from the vector store.
            keyword_limit: Maximum documents from the keyword store.
            document_ids: Optional document allowlist.
            deadline: Request deadline.
            use_vector: Query the vector store.
            use_keyword: Query the keyword store.
            embedding_error: Why the embedding is missing.

        Returns:
            Hits of both paths with per-path errors.
        """
        vector, keyword = await asyncio.gather(
            self.vector_candidates(
                embedding, scope, document_ids, threshold, vector_limit, deadline,
                use_vector, embedding_error,
            ),
            self.keyword_candidates(
                query, scope, document_ids, keyword_limit, deadline, use_keyword
            ),
        )
        return self.join(vector, keyword, threshold)

    def join(
        self,
        vector: tuple[list[ChunkHit], Optional[ErrorKind]],
        keyword: tuple[list[KeywordHit], Optional[ErrorKind]],
        threshold: float,
    ) -> CandidateSet:
        """Combine the outcomes of both paths into one CandidateSet."""
        vector_hits, vector_error = vector
        keyword_hits, keyword_error = keyword

        logger.info(
            f"[retrieve] vector={len(vector_hits)} chunks"
            f"{' (' + vector_error.value + ')' if vector_error else ''}, "
            f"keyword={len(keyword_hits)} docs"
            f"{' (' + keyword_error.value + ')' if keyword_error else ''}"
        )

        return CandidateSet(
            vector_hits=vector_hits,
            keyword_hits=keyword_hits,
            vector_error=vector_error,
            keyword_error=keyword_error,
            threshold=threshold,
        )

    async def vector_candidates(
        self,
        embedding: Optional[list[float]],
        scope: str,
        document_ids: Optional[list[str]],
        threshold: float,
        limit: int,
        deadline: Optional[Deadline],
        enabled: bool,
        embedding_error: Optional[ErrorKind],
    ) -> tuple[list[ChunkHit], Optional[ErrorKind]]:
        if not enabled:
            return [], None
        if embedding is None:
            return [], embedding_error or ErrorKind.EMBEDDING_UNAVAILABLE

        try:
            hits = await call_with_retry(
                self._vector_store.search,
                embedding,
                scope,
                document_ids,
                threshold,
                limit,
                timeout=self._vector_timeout,
                policy=self._retry_policy,
                deadline=deadline,
            )
        except SearchError as e:
            logger.error(f"[retrieve] vector search failed: {e}")
            return [], _path_kind(e, ErrorKind.VECTOR_STORE_UNAVAILABLE)
        except Exception as e:
            logger.error(f"[retrieve] vector search failed: {e!r}")
            return [], ErrorKind.VECTOR_STORE_UNAVAILABLE

        pruned = [h for h in hits if h.similarity >= threshold]
        if document_ids:
            allowed = set(document_ids)
            pruned = [h for h in pruned if h.document_id in allowed]
        return pruned[:limit], None

    async def keyword_candidates(
        self,
        query: str,
        scope: str,
        document_ids: Optional[list[str]],
        limit: int,
        deadline: Optional[Deadline],
        enabled: bool,
    ) -> tuple[list[KeywordHit], Optional[ErrorKind]]:
        if not enabled or not query.strip():
            return [], None

        try:
            hits = await call_with_retry(
                self._keyword_store.search,
                query,
                scope,
                document_ids,
                limit,
                timeout=self._keyword_timeout,
                policy=self._retry_policy,
                deadline=deadline,
            )
        except SearchError as e:
            logger.error(f"[retrieve] keyword search failed: {e}")
            return [], _path_kind(e, ErrorKind.KEYWORD_STORE_UNAVAILABLE)
        except Exception as e:
            logger.error(f"[retrieve] keyword search failed: {e!r}")
            return [], ErrorKind.KEYWORD_STORE_UNAVAILABLE

        return hits[:limit], None
