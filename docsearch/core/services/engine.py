"""Retrieval engine facade."""

import logging
from typing import Optional

from ...config.settings import Settings
from ..models.query import FunnelOptions, SearchMode, SearchOptions
from ..models.response import FunnelResponse, MultiQueryResponse, SearchResponse
from ..protocols.cache import CacheProtocol
from ..protocols.embedder import EmbedderProtocol
from ..protocols.keyword_store import KeywordStoreProtocol
from ..protocols.variant_generator import QueryVariantGeneratorProtocol
from ..protocols.vector_store import VectorStoreProtocol
from ..resilience import RetryPolicy
from ..strategies.expansion import SynonymVariantGenerator
from ..strategies.funnel_stages import (
    ContextualRerankStage,
    DiversityInjectionStage,
    SemanticFilterStage,
)
from ..strategies.scoring import FusionConfig, FusionMethod, HybridWeights, ScoreWeights
from ..strategies.threshold import ThresholdCalculator
from .aggregator import ResultAggregator
from .candidate_retriever import CandidateRetriever
from .funnel_service import MultiStageFunnel
from .multi_query_service import MultiQueryAggregator
from .query_expander import QueryExpander
from .search_service import SearchService

logger = logging.getLogger(__name__)


class RetrievalEngine:
    """Entry point for search, multi-stage search and multi-query search.

    Receives the three external providers explicitly; everything else is
    built from settings.
    """

    def __init__(
        self,
        embedder: EmbedderProtocol,
        vector_store: VectorStoreProtocol,
        keyword_store: KeywordStoreProtocol,
        settings: Optional[Settings] = None,
        cache: Optional[CacheProtocol] = None,
        variant_generator: Optional[QueryVariantGeneratorProtocol] = None,
    ):
        """Initialize engine.

        Args:
            embedder: Embedding provider.
            vector_store: Chunk vector store.
            keyword_store: Full-text store.
            settings: Tunables; defaults when None.
            cache: Expansion cache; expansion results are not cached when None.
            variant_generator: Query variant source; synonym table when None.
        """
        settings = settings or Settings()
        self._cache = cache

        retry_policy = RetryPolicy(
            attempts=settings.retry_attempts,
            backoff_min=settings.retry_backoff_min,
            backoff_max=settings.retry_backoff_max,
        )

        expander = QueryExpander(
            embedder=embedder,
            generator=variant_generator or SynonymVariantGenerator(),
            cache=cache,
            default_variants=settings.expansion_variants,
            cache_ttl=settings.expansion_cache_ttl,
            embed_timeout=settings.embed_timeout,
            expansion_timeout=settings.expansion_timeout,
            retry_policy=retry_policy,
        )
        retriever = CandidateRetriever(
            vector_store=vector_store,
            keyword_store=keyword_store,
            vector_timeout=settings.vector_timeout,
            keyword_timeout=settings.keyword_timeout,
            retry_policy=retry_policy,
        )
        aggregator = ResultAggregator(
            score_weights=ScoreWeights(
                max_weight=settings.score_max_weight,
                avg_weight=settings.score_avg_weight,
                position_weight=settings.score_position_weight,
                position_decay=settings.score_position_decay,
                position_floor=settings.score_position_floor,
                diversity_per_chunk=settings.score_diversity_per_chunk,
                diversity_cap=settings.score_diversity_cap,
            ),
            hybrid_weights=HybridWeights(
                vector=settings.hybrid_vector_weight,
                keyword=settings.hybrid_keyword_weight,
            ),
            fusion=FusionConfig(
                method=FusionMethod(settings.hybrid_fusion),
                rrf_k=settings.hybrid_rrf_k,
                min_keyword_results=settings.hybrid_rrf_min_keyword_results,
                fallback_weights=HybridWeights(
                    vector=settings.hybrid_fallback_vector_weight,
                    keyword=settings.hybrid_fallback_keyword_weight,
                ),
                confidence_weighting=settings.hybrid_confidence_weighting,
                confidence_boost=settings.hybrid_confidence_boost,
                confidence_penalty=settings.hybrid_confidence_penalty,
                quality_gate=settings.hybrid_quality_gate,
                min_final_score=settings.hybrid_min_final_score,
                min_vector_only_final_score=settings.hybrid_min_vector_only_final_score,
                dynamic_threshold=settings.hybrid_dynamic_threshold,
                min_vector_with_text_threshold=settings.hybrid_min_vector_with_text_threshold,
                min_vector_only_threshold=settings.hybrid_min_vector_only_threshold,
            ),
        )
        threshold = ThresholdCalculator(
            base=settings.threshold_base,
            minimum=settings.threshold_min,
            maximum=settings.threshold_max,
            two_word_adjustment=settings.threshold_two_word_adjustment,
            long_query_adjustment=settings.threshold_long_query_adjustment,
            domain_adjustment=settings.threshold_domain_adjustment,
        )

        self._search_service = SearchService(
            expander=expander,
            retriever=retriever,
            aggregator=aggregator,
            threshold_calculator=threshold,
            default_limit=settings.search_default_limit,
            max_limit=settings.search_max_limit,
            max_query_length=settings.search_max_query_length,
            vector_multiplier=settings.search_vector_multiplier,
            keyword_multiplier=settings.search_keyword_multiplier,
            deadline_seconds=settings.search_deadline,
            expansion_variants=settings.expansion_variants,
        )
        self._funnel = MultiStageFunnel(
            search_service=self._search_service,
            semantic_filter=SemanticFilterStage(min_retention=settings.funnel_min_retention),
            reranker=ContextualRerankStage(
                term_boost=settings.funnel_term_boost,
                term_boost_cap=settings.funnel_term_boost_cap,
            ),
            diversity=DiversityInjectionStage(
                overlap_cutoff=settings.funnel_overlap_cutoff,
                key_term_limit=settings.funnel_key_terms,
            ),
            approximate_threshold=settings.funnel_threshold,
            candidate_multiplier=settings.funnel_candidate_multiplier,
        )
        self._multi_query = MultiQueryAggregator(
            search_service=self._search_service,
            per_call_limit=settings.multi_query_per_call_limit,
            concurrency=settings.multi_query_concurrency,
        )

    @property
    def search_service(self) -> SearchService:
        return self._search_service

    async def search(
        self, query: str, scope: str, options: Optional[SearchOptions] = None
    ) -> SearchResponse:
        return await self._search_service.search(query, scope, options)

    async def multi_stage_search(
        self, query: str, scope: str, options: Optional[FunnelOptions] = None
    ) -> FunnelResponse:
        return await self._funnel.search(query, scope, options)

    async def multi_query_search(
        self,
        sub_queries: list[str],
        scope: str,
        target_limit: int,
        mode: SearchMode = SearchMode.VECTOR,
    ) -> MultiQueryResponse:
        return await self._multi_query.search(sub_queries, scope, target_limit, mode=mode)

    def cache_stats(self) -> dict:
        """Expansion cache counters, empty when the cache keeps none."""
        stats = getattr(self._cache, "stats", None)
        return stats() if callable(stats) else {}

    def clear_cache(self) -> None:
        clear = getattr(self._cache, "clear", None)
        if callable(clear):
            clear()
            logger.info("Expansion cache cleared")
