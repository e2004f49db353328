"""Multi-stage search funnel."""

import logging
import time
from typing import Optional

from ..errors import StageFailure
from ..models.document import SearchResult
from ..models.query import FunnelOptions, SearchMode, SearchOptions
from ..models.response import FunnelPerformance, FunnelResponse, SearchType
from ..resilience import Deadline
from ..strategies.funnel_stages import (
    ContextualRerankStage,
    DiversityInjectionStage,
    FunnelStage,
    SemanticFilterStage,
)
from .search_service import SearchService

logger = logging.getLogger(__name__)

STAGE_APPROXIMATE = "approximate"


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


class MultiStageFunnel:
    """Broad recall narrowed by filter, rerank and diversity stages.

    A failing refinement stage is skipped and its input passed on.
    """

    def __init__(
        self,
        search_service: SearchService,
        semantic_filter: Optional[SemanticFilterStage] = None,
        reranker: Optional[FunnelStage] = None,
        diversity: Optional[FunnelStage] = None,
        approximate_threshold: float = 0.15,
        candidate_multiplier: int = 20,
    ):
        """Initialize funnel.

        Args:
            search_service: Source of candidates and of the plain fallback.
            semantic_filter: Stage 2.
            reranker: Stage 3.
            diversity: Stage 4.
            approximate_threshold: Similarity cutoff of the recall pass.
            candidate_multiplier: Recall pass size relative to the limit.
        """
        self._search_service = search_service
        self._semantic_filter = semantic_filter or SemanticFilterStage()
        self._reranker = reranker or ContextualRerankStage()
        self._diversity = diversity or DiversityInjectionStage()
        self._approximate_threshold = approximate_threshold
        self._candidate_multiplier = candidate_multiplier

    async def search(
        self, query: str, scope: str, options: Optional[FunnelOptions] = None
    ) -> FunnelResponse:
        """Run the funnel.

        Args:
            query: Search query.
            scope: Owner/tenant of the documents.
            options: Limit, stage toggles and filters.

        Returns:
            Ranked results with per-stage performance; never raises.
        """
        options = options or FunnelOptions()
        started = time.perf_counter()
        performance = FunnelPerformance()
        limit = self._search_service.clamp_limit(options.limit)
        query = (query or "").strip()

        if not scope or not query:
            plain = await self._search_service.search(
                query, scope, SearchOptions(limit=limit, mode=SearchMode.VECTOR)
            )
            performance.total_time_ms = _elapsed_ms(started)
            return FunnelResponse(
                success=plain.success,
                results=plain.results,
                search_type=plain.search_type,
                message=plain.message,
                query=query,
                performance=performance,
            )

        deadline = self._search_service.new_deadline(options.timeout)
        stages = options.stages

        stage_started = time.perf_counter()
        candidates: list[SearchResult] = []
        if stages.approximate:
            candidates = await self._approximate(
                query, scope, limit, options, deadline, self._approximate_threshold
            )
            performance.stage_times_ms[STAGE_APPROXIMATE] = _elapsed_ms(stage_started)
            performance.per_stage_counts[STAGE_APPROXIMATE] = len(candidates)

            if not candidates:
                return await self._fallback(query, scope, limit, options, performance, started)
        else:
            # Same recall size, at the regular threshold of the query
            performance.skipped_stages.append(STAGE_APPROXIMATE)
            candidates = await self._approximate(
                query,
                scope,
                limit,
                options,
                deadline,
                self._search_service.threshold_for(query),
            )
            performance.stage_times_ms[STAGE_APPROXIMATE] = _elapsed_ms(stage_started)
            performance.per_stage_counts[STAGE_APPROXIMATE] = len(candidates)

        performance.detected_category = self._semantic_filter.detect_category(query)

        refinements = [
            (self._semantic_filter, stages.semantic_filter),
            (self._reranker, stages.contextual_rerank),
            (self._diversity, stages.diversity),
        ]
        results = candidates
        for stage, enabled in refinements:
            if not enabled:
                performance.skipped_stages.append(stage.name)
                continue
            results = self._run_stage(stage, query, results, limit, performance)

        results = results[:limit]
        performance.total_time_ms = _elapsed_ms(started)

        logger.info(
            f"[funnel] '{query[:50]}': {performance.per_stage_counts} "
            f"in {performance.total_time_ms:.0f} ms"
        )

        return FunnelResponse(
            success=True,
            results=results,
            search_type=SearchType.MULTI_STAGE,
            message=f"Found {len(results)} document(s)",
            query=query,
            performance=performance,
        )

    async def _approximate(
        self,
        query: str,
        scope: str,
        limit: int,
        options: FunnelOptions,
        deadline: Deadline,
        threshold: float,
    ) -> list[SearchResult]:
        candidate_limit = limit * self._candidate_multiplier
        try:
            outcome = await self._search_service.broad_vector_search(
                query,
                scope,
                limit=candidate_limit,
                threshold=threshold,
                candidate_limit=candidate_limit,
                document_ids=options.document_ids,
                deadline=deadline,
            )
        except Exception as e:
            logger.error(f"[funnel] approximate search failed: {e!r}")
            return []

        if not outcome.ok:
            logger.warning(f"[funnel] approximate search failed ({outcome.error.value})")
            return []
        return outcome.results[:candidate_limit]

    async def _fallback(
        self,
        query: str,
        scope: str,
        limit: int,
        options: FunnelOptions,
        performance: FunnelPerformance,
        started: float,
    ) -> FunnelResponse:
        logger.warning(f"[funnel] no broad candidates for '{query[:50]}', plain vector search")
        performance.fallback_used = True

        plain = await self._search_service.search(
            query,
            scope,
            SearchOptions(
                limit=limit,
                mode=SearchMode.VECTOR,
                document_ids=options.document_ids,
                timeout=options.timeout,
            ),
        )
        performance.total_time_ms = _elapsed_ms(started)
        return FunnelResponse(
            success=plain.success,
            results=plain.results,
            search_type=plain.search_type,
            message=plain.message,
            query=query,
            performance=performance,
        )

    def _run_stage(
        self,
        stage: FunnelStage,
        query: str,
        results: list[SearchResult],
        limit: int,
        performance: FunnelPerformance,
    ) -> list[SearchResult]:
        started = time.perf_counter()
        try:
            output = stage.apply(query, results, limit)
        except Exception as e:
            failure = StageFailure(f"{stage.name}: {e!r}")
            logger.warning(f"[funnel] stage failed, passing input through: {failure}")
            performance.failed_stages.append(stage.name)
            performance.per_stage_counts[stage.name] = len(results)
            performance.stage_times_ms[stage.name] = _elapsed_ms(started)
            return results

        if output.bypassed:
            performance.bypassed_stages.append(stage.name)
        performance.per_stage_counts[stage.name] = len(output.results)
        performance.stage_times_ms[stage.name] = _elapsed_ms(started)
        return output.results
