"""Shared fixtures: in-memory providers and a fast engine."""

import hashlib

import numpy as np
import pytest

from docsearch.config.settings import Settings
from docsearch.core.models.document import ChunkHit, KeywordHit
from docsearch.core.resilience import RetryPolicy
from docsearch.core.services.engine import RetrievalEngine
from docsearch.infrastructure.cache.ttl_cache import InMemoryTTLCache

QUERY_PREFIX = "query: "


class FakeEmbedder:
    """Deterministic embedder; texts in `failing` raise."""

    def __init__(self, dimension: int = 3, vectors: dict | None = None, failing=()):
        self._dimension = dimension
        self.vectors = vectors or {}
        self.failing = set(failing)
        self.calls: list[str] = []

    @property
    def dimension(self) -> int:
        return self._dimension

    def warmup(self) -> None:
        pass

    def encode(self, texts):
        text = texts.removeprefix(QUERY_PREFIX)
        self.calls.append(text)
        if text in self.failing:
            raise RuntimeError(f"embedding backend down for '{text}'")
        if text in self.vectors:
            return np.asarray(self.vectors[text], dtype=np.float32)

        digest = hashlib.sha256(text.encode("utf-8")).digest()
        return np.asarray([b / 255 for b in digest[: self._dimension]], dtype=np.float32)


class FakeVectorStore:
    def __init__(self, hits: list[ChunkHit] | None = None, error: Exception | None = None):
        self.hits = hits or []
        self.error = error
        self.calls: list[dict] = []

    def search(self, vector, scope, document_ids, threshold, limit):
        self.calls.append(
            {"scope": scope, "document_ids": document_ids, "threshold": threshold, "limit": limit}
        )
        if self.error is not None:
            raise self.error
        return [h for h in self.hits if h.similarity >= threshold][:limit]


class FakeKeywordStore:
    def __init__(self, hits: list[KeywordHit] | None = None, error: Exception | None = None):
        self.hits = hits or []
        self.error = error
        self.calls: list[dict] = []

    def search(self, query, scope, document_ids, limit):
        self.calls.append({"query": query, "scope": scope, "limit": limit})
        if self.error is not None:
            raise self.error
        return self.hits[:limit]


def chunk(document_id: str, similarity: float, position: int = 0, text: str = "", title=None):
    return ChunkHit(
        chunk_id=f"{document_id}-{position}",
        document_id=document_id,
        text=text or f"Abschnitt {position} von {document_id}.",
        similarity=similarity,
        position_index=position,
        title=title or f"Dokument {document_id}",
    )


@pytest.fixture
def fast_settings() -> Settings:
    return Settings(retry_attempts=1, retry_backoff_min=0, retry_backoff_max=0)


@pytest.fixture
def fast_retry() -> RetryPolicy:
    return RetryPolicy(attempts=1, backoff_min=0, backoff_max=0)


@pytest.fixture
def make_engine(fast_settings):
    """Factory for an engine over fake providers."""

    def _make(
        vector_hits=None,
        keyword_hits=None,
        vector_error=None,
        keyword_error=None,
        embedder=None,
        cache=None,
        variant_generator=None,
        settings=None,
    ):
        embedder = embedder or FakeEmbedder()
        vector_store = FakeVectorStore(vector_hits, vector_error)
        keyword_store = FakeKeywordStore(keyword_hits, keyword_error)
        engine = RetrievalEngine(
            embedder=embedder,
            vector_store=vector_store,
            keyword_store=keyword_store,
            settings=settings or fast_settings,
            cache=cache if cache is not None else InMemoryTTLCache(),
            variant_generator=variant_generator,
        )
        engine.fakes = (embedder, vector_store, keyword_store)
        return engine

    return _make
