"""Search service - retrieval strategies composed as a fallback chain."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from ..errors import EmbeddingUnavailable, SearchValidationError
from ..models.query import SearchMode, SearchOptions
from ..models.response import CandidateSet, RetrievalOutcome, SearchResponse, SearchType
from ..resilience import Deadline
from ..strategies.scoring import FusionMethod, HybridWeights, dynamic_threshold, plan_fusion
from ..strategies.threshold import ThresholdCalculator
from .aggregator import ResultAggregator
from .candidate_retriever import CandidateRetriever
from .query_expander import QueryExpander

logger = logging.getLogger(__name__)


@dataclass
class _SearchContext:
    """Per-request state shared by the strategies of one chain."""
    query: str
    limit: int
    threshold: float
    weights: HybridWeights
    candidates: CandidateSet
    variant_count: int = 0
    stats: dict = field(default_factory=dict)


Strategy = Callable[[_SearchContext], RetrievalOutcome]


class SearchService:
    """Single-pass search with graceful degradation.

    Candidates are retrieved once per request; strategies then derive their
    outcome from them in fallback order until one produces results.
    """

    def __init__(
        self,
        expander: QueryExpander,
        retriever: CandidateRetriever,
        aggregator: ResultAggregator,
        threshold_calculator: Optional[ThresholdCalculator] = None,
        default_limit: int = 5,
        max_limit: int = 50,
        max_query_length: int = 500,
        vector_multiplier: int = 3,
        keyword_multiplier: int = 2,
        deadline_seconds: float = 15.0,
        expansion_variants: Optional[int] = None,
    ):
        """Initialize search service.

        Args:
            expander: Query expander.
            retriever: Candidate retriever.
            aggregator: Result aggregator.
            threshold_calculator: Similarity threshold policy.
            default_limit: Results when the caller sets no limit.
            max_limit: Upper bound of the result limit.
            max_query_length: Longer queries are truncated.
            vector_multiplier: Vector chunk limit relative to the result limit.
            keyword_multiplier: Keyword document limit relative to the result limit.
            deadline_seconds: Default request deadline.
            expansion_variants: Variants requested from the expander.
        """
        self._expander = expander
        self._retriever = retriever
        self._aggregator = aggregator
        self._threshold = threshold_calculator or ThresholdCalculator()
        self._default_limit = default_limit
        self._max_limit = max_limit
        self._max_query_length = max_query_length
        self._vector_multiplier = vector_multiplier
        self._keyword_multiplier = keyword_multiplier
        self._deadline_seconds = deadline_seconds
        self._expansion_variants = expansion_variants

        self._strategies: dict[SearchType, Strategy] = {
            SearchType.HYBRID: self._hybrid,
            SearchType.VECTOR: self._vector,
            SearchType.KEYWORD_FALLBACK: self._keyword,
        }
        self._chains: dict[SearchMode, list[SearchType]] = {
            SearchMode.HYBRID: [
                SearchType.HYBRID, SearchType.VECTOR, SearchType.KEYWORD_FALLBACK,
            ],
            SearchMode.VECTOR: [SearchType.VECTOR, SearchType.KEYWORD_FALLBACK],
            SearchMode.KEYWORD: [SearchType.KEYWORD_FALLBACK],
        }

    def clamp_limit(self, limit: Optional[int]) -> int:
        if limit is None:
            return self._default_limit
        return max(1, min(self._max_limit, int(limit)))

    def new_deadline(self, timeout: Optional[float]) -> Deadline:
        return Deadline(timeout if timeout is not None else self._deadline_seconds)

    def threshold_for(self, query: str) -> float:
        """Similarity threshold calculated for the query."""
        return self._threshold.calculate(query)

    async def search(
        self, query: str, scope: str, options: Optional[SearchOptions] = None
    ) -> SearchResponse:
        """Search documents, degrading through the fallback chain.

        Args:
            query: Search query.
            scope: Owner/tenant of the documents.
            options: Request options.

        Returns:
            Well-formed response; never raises.
        """
        options = options or SearchOptions()
        started = time.perf_counter()

        try:
            mode = SearchMode(options.mode)
        except ValueError:
            return self._rejected(query, SearchValidationError(f"Unknown search mode: {options.mode}"))

        if not scope:
            return self._rejected(query, SearchValidationError("Search scope is required"))

        query = (query or "").strip()[: self._max_query_length]
        if not query:
            return SearchResponse(
                success=True,
                results=[],
                search_type=self._chains[mode][0],
                message="Empty query",
                query=query,
            )

        limit = self.clamp_limit(options.limit)
        deadline = self.new_deadline(options.timeout)
        threshold = (
            self._threshold.clamp(options.threshold)
            if options.threshold is not None
            else self._threshold.calculate(query)
        )
        weights = HybridWeights(
            vector=(
                options.vector_weight
                if options.vector_weight is not None
                else self._aggregator.hybrid_weights.vector
            ),
            keyword=(
                options.keyword_weight
                if options.keyword_weight is not None
                else self._aggregator.hybrid_weights.keyword
            ),
        )

        try:
            context = await self._prepare(
                query, scope, mode, limit, threshold, weights, options.document_ids, deadline
            )
            response = self._run_chain(context, mode)
        except Exception as e:
            logger.error(f"Search error: {e!r}")
            response = SearchResponse(
                success=False,
                results=[],
                search_type=SearchType.ERROR_FALLBACK,
                message="Search failed",
                query=query,
                error=str(e),
            )
            context = None

        elapsed_ms = (time.perf_counter() - started) * 1000
        if context is not None:
            response.stats = {**context.stats, "elapsed_ms": round(elapsed_ms, 1)}

        logger.info(
            f"Search: returned {len(response.results)}/{limit} docs via "
            f"{response.search_type.value} for '{query[:50]}' ({elapsed_ms:.0f} ms)"
        )
        return response

    @staticmethod
    def _rejected(query: Optional[str], error: SearchValidationError) -> SearchResponse:
        logger.warning(f"Search rejected: {error}")
        return SearchResponse(
            success=False,
            results=[],
            search_type=SearchType.ERROR_FALLBACK,
            message=str(error),
            query=query or "",
            error=error.kind.value,
        )

    async def broad_vector_search(
        self,
        query: str,
        scope: str,
        limit: int,
        threshold: float,
        candidate_limit: int,
        document_ids: Optional[list[str]] = None,
        deadline: Optional[Deadline] = None,
    ) -> RetrievalOutcome:
        """Vector-only recall pass with an explicit threshold.

        The threshold is passed as given, so callers may go below the
        calculator's range on purpose.
        """
        context = await self._prepare(
            query,
            scope,
            SearchMode.VECTOR,
            limit,
            threshold,
            self._aggregator.hybrid_weights,
            document_ids,
            deadline or self.new_deadline(None),
            use_keyword=False,
            vector_limit=candidate_limit,
        )
        return self._vector(context)

    async def _prepare(
        self,
        query: str,
        scope: str,
        mode: SearchMode,
        limit: int,
        threshold: float,
        weights: HybridWeights,
        document_ids: Optional[list[str]],
        deadline: Deadline,
        use_keyword: bool = True,
        vector_limit: Optional[int] = None,
    ) -> _SearchContext:
        embedding = None
        embedding_error = None
        variant_count = 0
        use_vector = mode != SearchMode.KEYWORD

        # keyword lookup does not depend on the embedding
        keyword_task = asyncio.create_task(
            self._retriever.keyword_candidates(
                query,
                scope,
                document_ids,
                limit * self._keyword_multiplier,
                deadline,
                use_keyword,
            )
        )

        try:
            if use_vector:
                try:
                    expanded = await self._expander.expand(
                        query, scope, self._expansion_variants, deadline=deadline
                    )
                    embedding = expanded.embedding
                    variant_count = len(expanded.variants)
                except EmbeddingUnavailable as e:
                    logger.warning(f"Embedding unavailable, continuing keyword-only: {e}")
                    embedding_error = e.kind

            vector = await self._retriever.vector_candidates(
                embedding,
                scope,
                document_ids,
                threshold,
                vector_limit or limit * self._vector_multiplier,
                deadline,
                use_vector,
                embedding_error,
            )
        except BaseException:
            keyword_task.cancel()
            raise

        candidates = self._retriever.join(vector, await keyword_task, threshold)

        degraded = [
            kind.value
            for kind in (candidates.vector_error, candidates.keyword_error)
            if kind is not None
        ]
        stats = {
            "vector_hits": len(candidates.vector_hits),
            "keyword_hits": len(candidates.keyword_hits),
            "threshold": round(threshold, 4),
            "variants": variant_count,
            "degraded": degraded,
        }
        return _SearchContext(
            query=query,
            limit=limit,
            threshold=threshold,
            weights=weights,
            candidates=candidates,
            variant_count=variant_count,
            stats=stats,
        )

    def _run_chain(self, context: _SearchContext, mode: SearchMode) -> SearchResponse:
        first_empty: Optional[RetrievalOutcome] = None
        errors: list[str] = []

        for search_type in self._chains[mode]:
            outcome = self._strategies[search_type](context)

            if not outcome.ok:
                errors.append(f"{search_type.value}: {outcome.error.value}")
                logger.warning(f"Strategy {search_type.value} failed ({outcome.error.value})")
                continue

            if not outcome.results:
                first_empty = first_empty or outcome
                continue

            context.stats["merged"] = len(outcome.results)
            return SearchResponse(
                success=True,
                results=outcome.results[: context.limit],
                search_type=outcome.search_type,
                message=f"Found {min(len(outcome.results), context.limit)} document(s)",
                query=context.query,
            )

        if first_empty is not None:
            context.stats["merged"] = 0
            return SearchResponse(
                success=True,
                results=[],
                search_type=first_empty.search_type,
                message="No matching documents",
                query=context.query,
            )

        logger.error(f"All retrieval paths failed: {', '.join(errors)}")
        return SearchResponse(
            success=False,
            results=[],
            search_type=SearchType.ERROR_FALLBACK,
            message="All retrieval paths failed",
            query=context.query,
            error="; ".join(errors),
        )

    def _hybrid(self, context: _SearchContext) -> RetrievalOutcome:
        candidates = context.candidates
        if not candidates.vector_ok:
            return RetrievalOutcome.failure(SearchType.HYBRID, candidates.vector_error)
        if not candidates.keyword_ok:
            return RetrievalOutcome.failure(SearchType.HYBRID, candidates.keyword_error)

        fusion = self._aggregator.fusion
        keyword_hits = candidates.keyword_hits
        has_keyword_matches = bool(keyword_hits)
        has_exact_matches = any(h.match_type != "token" for h in keyword_hits)

        cutoff = dynamic_threshold(context.threshold, has_keyword_matches, fusion)
        vector_hits = [h for h in candidates.vector_hits if h.similarity >= cutoff]

        plan = plan_fusion(fusion, context.weights, len(keyword_hits), has_exact_matches)
        vector_results = self._aggregator.aggregate_vector(vector_hits)
        keyword_results = self._aggregator.aggregate_keyword(context.query, keyword_hits)
        if plan.method == FusionMethod.RRF:
            results = self._aggregator.merge_rrf(vector_results, keyword_results)
        else:
            results = self._aggregator.merge_hybrid(
                vector_results, keyword_results, plan.weights
            )
        results = self._aggregator.apply_quality_gate(results, has_keyword_matches)

        context.stats.update(
            {
                "fusion_method": plan.method.value,
                "fusion_auto_switched": plan.auto_switched,
                "hybrid_threshold": round(cutoff, 4),
            }
        )
        return RetrievalOutcome(SearchType.HYBRID, results)

    def _vector(self, context: _SearchContext) -> RetrievalOutcome:
        candidates = context.candidates
        if not candidates.vector_ok:
            return RetrievalOutcome.failure(SearchType.VECTOR, candidates.vector_error)
        return RetrievalOutcome(
            SearchType.VECTOR, self._aggregator.aggregate_vector(candidates.vector_hits)
        )

    def _keyword(self, context: _SearchContext) -> RetrievalOutcome:
        candidates = context.candidates
        if not candidates.keyword_ok:
            return RetrievalOutcome.failure(
                SearchType.KEYWORD_FALLBACK, candidates.keyword_error
            )
        return RetrievalOutcome(
            SearchType.KEYWORD_FALLBACK,
            self._aggregator.aggregate_keyword(context.query, candidates.keyword_hits),
        )
