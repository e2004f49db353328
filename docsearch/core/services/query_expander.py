"""Query expansion into weighted variants and a composite embedding."""

import asyncio
import logging
from typing import Optional, Sequence

import numpy as np

from ..errors import EmbeddingUnavailable, InvalidEmbedding
from ..models.query import ExpandedQuery, QueryVariant
from ..protocols.cache import CacheProtocol
from ..protocols.embedder import EmbedderProtocol
from ..protocols.variant_generator import QueryVariantGeneratorProtocol
from ..resilience import Deadline, RetryPolicy, call_with_retry, call_with_timeout
from ..text_utils import stable_hash

logger = logging.getLogger(__name__)

MAX_VARIANTS = 5


def expansion_weight(rank: int) -> float:
    """Raw weight of the rank-th expansion (1-based); the original has 1.0."""
    if rank <= 0:
        return 1.0
    return max(0.3, 0.8 - (rank - 1) * 0.2)


def validate_embedding(vector, dimension: int) -> np.ndarray:
    """Check an embedding for shape and finite values.

    Args:
        vector: Embedding as returned by the provider.
        dimension: Fixed model dimension.

    Returns:
        The embedding as a 1-D float64 array.

    Raises:
        InvalidEmbedding: On a dimension mismatch or NaN/inf components.
    """
    try:
        array = np.asarray(vector, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise InvalidEmbedding(f"Embedding is not numeric: {e}") from e

    if array.ndim == 2 and array.shape[0] == 1:
        array = array[0]

    if array.ndim != 1 or array.shape[0] != dimension:
        raise InvalidEmbedding(
            f"Embedding has shape {array.shape}, expected ({dimension},)"
        )
    if not np.all(np.isfinite(array)):
        raise InvalidEmbedding("Embedding contains non-finite values")
    return array


def weighted_average_embedding(
    embeddings: Sequence[np.ndarray], weights: Sequence[float]
) -> list[float]:
    """Average embeddings dimension-wise with weights normalized to sum 1."""
    if not embeddings or len(embeddings) != len(weights):
        raise ValueError("Need one weight per embedding")

    total = float(sum(weights))
    if total <= 0:
        raise ValueError("Weights must sum to a positive value")

    result = np.zeros_like(np.asarray(embeddings[0], dtype=np.float64))
    for embedding, weight in zip(embeddings, weights):
        result += np.asarray(embedding, dtype=np.float64) * (weight / total)
    return result.tolist()


class QueryExpander:
    """Turn a query into weighted variants and one composite embedding.

    Expansion results are cached per (query, scope, content type, count).
    """

    def __init__(
        self,
        embedder: EmbedderProtocol,
        generator: Optional[QueryVariantGeneratorProtocol] = None,
        cache: Optional[CacheProtocol] = None,
        default_variants: int = 4,
        cache_ttl: int = 900,
        embed_timeout: float = 5.0,
        expansion_timeout: float = 8.0,
        retry_policy: Optional[RetryPolicy] = None,
        query_prefix: str = "query: ",
    ):
        """Initialize expander.

        Args:
            embedder: Embedding provider.
            generator: Source of query variants; None disables expansion.
            cache: Expansion cache.
            default_variants: Variant count when the caller sets none.
            cache_ttl: Cache entry lifetime in seconds.
            embed_timeout: Per-call embedding timeout.
            expansion_timeout: Timeout of variant generation.
            retry_policy: Retries for embedding calls.
            query_prefix: Instruction prefix of the embedding model.
        """
        self._embedder = embedder
        self._generator = generator
        self._cache = cache
        self._default_variants = default_variants
        self._cache_ttl = cache_ttl
        self._embed_timeout = embed_timeout
        self._expansion_timeout = expansion_timeout
        self._retry_policy = retry_policy or RetryPolicy()
        self._query_prefix = query_prefix

    async def expand(
        self,
        query: str,
        scope: str,
        variant_count: Optional[int] = None,
        content_type: str = "document",
        deadline: Optional[Deadline] = None,
    ) -> ExpandedQuery:
        """Expand query and compute its composite embedding.

        Args:
            query: Raw query.
            scope: Owner/tenant of the search.
            variant_count: Desired number of expansions, clamped to 1..5.
            content_type: Kind of content searched.
            deadline: Request deadline.

        Returns:
            Expanded query with normalized weights.

        Raises:
            EmbeddingUnavailable: If the original query cannot be embedded.
        """
        count = variant_count if variant_count is not None else self._default_variants
        count = max(1, min(MAX_VARIANTS, count))
        normalized = " ".join(query.lower().split())
        key = stable_hash("expansion", normalized, scope, content_type, count)

        if self._cache is not None:
            cached = self._cache.get(key)
            if cached is not None:
                logger.debug(f"[expand] cache hit for '{query[:60]}'")
                return cached

        try:
            original = await self._embed(query, deadline)
        except EmbeddingUnavailable:
            raise
        except Exception as e:
            raise EmbeddingUnavailable(f"Embedding failed for query: {e!r}") from e

        candidates = await self._generate(query, count, deadline)

        texts = [query]
        vectors = [original]
        raw_weights = [expansion_weight(0)]
        sources = ["original"]
        failures = 0

        embedded = await asyncio.gather(
            *(self._embed(text, deadline) for text in candidates),
            return_exceptions=True,
        )
        for rank, (text, vector) in enumerate(zip(candidates, embedded), start=1):
            if isinstance(vector, BaseException):
                failures += 1
                logger.warning(f"[expand] skipping variant '{text[:60]}': {vector!r}")
                continue
            texts.append(text)
            vectors.append(vector)
            raw_weights.append(expansion_weight(rank))
            sources.append("expansion")

        if len(vectors) == 1:
            result = ExpandedQuery(
                original=query,
                variants=[QueryVariant(query, 1.0)],
                embedding=original.tolist(),
                expanded=False,
                sources=sources,
            )
        else:
            total = sum(raw_weights)
            result = ExpandedQuery(
                original=query,
                variants=[QueryVariant(t, w / total) for t, w in zip(texts, raw_weights)],
                embedding=weighted_average_embedding(vectors, raw_weights),
                expanded=True,
                sources=sources,
            )

        logger.info(
            f"[expand] '{query[:60]}': {len(result.variants)} variant(s), "
            f"{failures} skipped"
        )

        if self._cache is not None and failures == 0:
            self._cache.set(key, result, ttl=self._cache_ttl)
        return result

    async def _embed(self, text: str, deadline: Optional[Deadline]) -> np.ndarray:
        vector = await call_with_retry(
            self._encode,
            f"{self._query_prefix}{text}",
            timeout=self._embed_timeout,
            policy=self._retry_policy,
            deadline=deadline,
        )
        return vector

    def _encode(self, text: str) -> np.ndarray:
        return validate_embedding(self._embedder.encode(text), self._embedder.dimension)

    async def _generate(
        self, query: str, count: int, deadline: Optional[Deadline]
    ) -> list[str]:
        if self._generator is None:
            return []

        try:
            variants = await call_with_timeout(
                self._generator.generate,
                query,
                count,
                timeout=self._expansion_timeout,
                deadline=deadline,
            )
        except Exception as e:
            logger.warning(f"[expand] variant generation failed, using original only: {e!r}")
            return []

        seen = {query.strip().lower()}
        distinct = []
        for variant in variants:
            text = variant.strip()
            if text and text.lower() not in seen:
                seen.add(text.lower())
                distinct.append(text)
        return distinct[:count]
