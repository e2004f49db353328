"""Merge several independently worded searches."""

import asyncio
import logging
from dataclasses import replace
from typing import Optional

from ..models.document import SearchResult
from ..models.query import SearchMode, SearchOptions
from ..models.response import MultiQueryResponse
from .search_service import SearchService

logger = logging.getLogger(__name__)


def dedupe_by_id(results: list[SearchResult]) -> list[SearchResult]:
    """Keep one result per id, the one with the highest combined_score."""
    best: dict[str, SearchResult] = {}
    for result in results:
        existing = best.get(result.id)
        if existing is None or result.combined_score > existing.combined_score:
            best[result.id] = result
    return list(best.values())


class MultiQueryAggregator:
    """Run sub-queries concurrently through the search service and merge."""

    def __init__(
        self,
        search_service: SearchService,
        per_call_limit: int = 5,
        concurrency: int = 3,
    ):
        self._search_service = search_service
        self._per_call_limit = min(per_call_limit, 5)
        self._concurrency = max(1, concurrency)

    async def search(
        self,
        sub_queries: list[str],
        scope: str,
        target_limit: int,
        mode: SearchMode = SearchMode.VECTOR,
        timeout: Optional[float] = None,
    ) -> MultiQueryResponse:
        """Search every sub-query and merge the hits.

        Args:
            sub_queries: Independently worded queries.
            scope: Owner/tenant of the documents.
            target_limit: Number of merged results.
            mode: Search mode of each sub-query.
            timeout: Deadline of each sub-query.

        Returns:
            Merged results with contributing queries and dedup counts.
        """
        queries = []
        for q in sub_queries or []:
            q = (q or "").strip()
            if q and q not in queries:
                queries.append(q)

        if not queries:
            return MultiQueryResponse(
                success=True,
                results=[],
                contributing_queries=[],
                before_dedup_count=0,
                after_dedup_count=0,
            )

        semaphore = asyncio.Semaphore(self._concurrency)
        options = SearchOptions(limit=self._per_call_limit, mode=mode, timeout=timeout)

        async def run(q: str):
            async with semaphore:
                return await self._search_service.search(q, scope, options)

        responses = await asyncio.gather(*(run(q) for q in queries), return_exceptions=True)

        collected: list[SearchResult] = []
        failed: list[str] = []
        for q, response in zip(queries, responses):
            if isinstance(response, BaseException):
                logger.error(f"[multi-query] '{q[:50]}' raised: {response!r}")
                failed.append(q)
                continue
            if not response.success:
                failed.append(q)
                continue
            collected.extend(replace(r, matched_query=q) for r in response.results)

        deduped = dedupe_by_id(collected)
        merged = sorted(deduped, key=lambda r: r.combined_score, reverse=True)
        merged = merged[: max(0, target_limit)]

        contributing = [q for q in queries if any(r.matched_query == q for r in merged)]

        logger.info(
            f"[multi-query] {len(queries)} queries, {len(collected)} → "
            f"{len(deduped)} after dedup, {len(failed)} failed"
        )

        return MultiQueryResponse(
            success=len(failed) < len(queries),
            results=merged,
            contributing_queries=contributing,
            before_dedup_count=len(collected),
            after_dedup_count=len(deduped),
            failed_queries=failed,
        )
