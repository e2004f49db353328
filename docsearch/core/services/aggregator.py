"""Per-document aggregation of chunk hits and hybrid merging."""

import logging
from dataclasses import replace
from typing import Optional

from ..models.document import ChunkHit, DocumentGroup, KeywordHit, SearchResult
from ..strategies.scoring import (
    FusionConfig,
    HybridWeights,
    ScoreWeights,
    combine_scores,
    keyword_coverage,
    passes_quality_gate,
    rrf_score,
    score_document,
)
from ..text_utils import EXCERPT_SEPARATOR, extract_around_query, extract_excerpt

logger = logging.getLogger(__name__)

SOURCE_VECTOR = "vector"
SOURCE_KEYWORD = "keyword"


def group_by_document(hits: list[ChunkHit]) -> list[DocumentGroup]:
    """Group chunk hits by parent document, in order of first appearance."""
    groups: dict[str, DocumentGroup] = {}
    for hit in hits:
        group = groups.get(hit.document_id)
        if group is None:
            group = DocumentGroup(
                document_id=hit.document_id,
                title=hit.title,
                filename=hit.filename,
                created_at=hit.created_at,
            )
            groups[hit.document_id] = group
        group.chunks.append(hit)
    return list(groups.values())


def sort_by_score(results: list[SearchResult]) -> list[SearchResult]:
    return sorted(results, key=lambda r: r.combined_score, reverse=True)


def _absorb_keyword(existing: SearchResult, kw: SearchResult) -> None:
    """Add the keyword evidence of kw to a vector result of the same document."""
    existing.keyword_score = kw.keyword_score
    existing.search_sources = [SOURCE_VECTOR, SOURCE_KEYWORD]
    if len(kw.excerpt) > len(existing.excerpt):
        existing.excerpt = kw.excerpt
    existing.relevance_info = (
        f"{existing.relevance_info}; keyword match {kw.keyword_score:.0%}"
    )


class ResultAggregator:
    """Build ranked SearchResults from raw candidates."""

    def __init__(
        self,
        score_weights: Optional[ScoreWeights] = None,
        hybrid_weights: Optional[HybridWeights] = None,
        excerpt_chunks: int = 3,
        excerpt_length: int = 300,
        keyword_excerpt_length: int = 500,
        keyword_floor: float = 0.5,
        fusion: Optional[FusionConfig] = None,
    ):
        """Initialize aggregator.

        Args:
            score_weights: Constants of the document score.
            hybrid_weights: Default vector/keyword split.
            excerpt_chunks: Chunks per document shown in the excerpt.
            excerpt_length: Max characters per excerpt chunk.
            keyword_excerpt_length: Max characters of keyword excerpts.
            keyword_floor: Keyword score of a store match without term evidence.
            fusion: Hybrid fusion method and quality gate.
        """
        self._score_weights = score_weights or ScoreWeights()
        self._hybrid_weights = hybrid_weights or HybridWeights()
        self._excerpt_chunks = excerpt_chunks
        self._excerpt_length = excerpt_length
        self._keyword_excerpt_length = keyword_excerpt_length
        self._keyword_floor = keyword_floor
        self._fusion = fusion or FusionConfig()

    @property
    def hybrid_weights(self) -> HybridWeights:
        return self._hybrid_weights

    @property
    def fusion(self) -> FusionConfig:
        return self._fusion

    def aggregate_vector(self, hits: list[ChunkHit]) -> list[SearchResult]:
        """Score each document from its own chunks and rank."""
        results = []
        for group in group_by_document(hits):
            breakdown = score_document(group.chunks, self._score_weights)
            results.append(
                SearchResult(
                    document_id=group.document_id,
                    title=group.title or group.filename or "Untitled",
                    excerpt=self._build_excerpt(group.chunks),
                    combined_score=breakdown.final_score,
                    vector_score=breakdown.final_score,
                    max_similarity=breakdown.max_similarity,
                    avg_similarity=breakdown.avg_similarity,
                    position_score=breakdown.position_score,
                    diversity_bonus=breakdown.diversity_bonus,
                    chunk_count=len(group.chunks),
                    filename=group.filename,
                    created_at=group.created_at,
                    search_sources=[SOURCE_VECTOR],
                    relevance_info=(
                        f"{len(group.chunks)} relevant section(s), "
                        f"best match {breakdown.max_similarity:.0%}"
                    ),
                )
            )

            if logger.isEnabledFor(logging.DEBUG):
                logger.debug(
                    f"[aggregate] {group.document_id}: final={breakdown.final_score:.3f} "
                    f"max={breakdown.max_similarity:.3f} avg={breakdown.avg_similarity:.3f} "
                    f"pos={breakdown.position_score:.3f} div={breakdown.diversity_bonus:.2f}"
                )

        return sort_by_score(results)

    def aggregate_keyword(self, query: str, hits: list[KeywordHit]) -> list[SearchResult]:
        """Rank keyword-only hits by their keyword score."""
        best: dict[str, SearchResult] = {}
        for hit in hits:
            score = hit.score
            if score is None:
                score = keyword_coverage(query, f"{hit.title} {hit.text}", self._keyword_floor)
            score = max(0.0, min(1.0, score))

            existing = best.get(hit.document_id)
            if existing is not None and existing.combined_score >= score:
                continue

            best[hit.document_id] = SearchResult(
                document_id=hit.document_id,
                title=hit.title or hit.filename or "Untitled",
                excerpt=extract_around_query(hit.text, query, self._keyword_excerpt_length),
                combined_score=score,
                vector_score=0.0,
                keyword_score=score,
                filename=hit.filename,
                created_at=hit.created_at,
                search_sources=[SOURCE_KEYWORD],
                relevance_info=f"Keyword match, {score:.0%} of query terms",
            )

        return sort_by_score(list(best.values()))

    def merge_hybrid(
        self,
        vector_results: list[SearchResult],
        keyword_results: list[SearchResult],
        weights: Optional[HybridWeights] = None,
    ) -> list[SearchResult]:
        """Fuse vector and keyword results per document.

        Documents found by only one path get zero for the other signal.
        """
        weights = weights or self._hybrid_weights
        merged: dict[str, SearchResult] = {}

        for result in vector_results:
            merged[result.document_id] = replace(
                result,
                combined_score=combine_scores(result.vector_score, None, weights),
                search_sources=[SOURCE_VECTOR],
            )

        for kw in keyword_results:
            existing = merged.get(kw.document_id)
            if existing is None:
                merged[kw.document_id] = replace(
                    kw,
                    combined_score=combine_scores(0.0, kw.keyword_score, weights),
                    vector_score=0.0,
                    search_sources=[SOURCE_KEYWORD],
                )
                continue

            _absorb_keyword(existing, kw)
            existing.combined_score = combine_scores(
                existing.vector_score, kw.keyword_score, weights
            )

        return sort_by_score(list(merged.values()))

    def merge_rrf(
        self, vector_results: list[SearchResult], keyword_results: list[SearchResult]
    ) -> list[SearchResult]:
        """Reciprocal rank fusion of both ranked lists.

        Documents found by both paths get the confidence boost, vector-only
        documents the penalty, keyword-only documents neither.
        """
        config = self._fusion
        boost = config.confidence_boost if config.confidence_weighting else 1.0
        penalty = config.confidence_penalty if config.confidence_weighting else 1.0

        merged: dict[str, SearchResult] = {}
        raw: dict[str, float] = {}
        confidence: dict[str, float] = {}

        for rank, result in enumerate(vector_results, start=1):
            merged[result.document_id] = replace(result, search_sources=[SOURCE_VECTOR])
            raw[result.document_id] = rrf_score(rank, config.rrf_k)
            confidence[result.document_id] = penalty

        for rank, kw in enumerate(keyword_results, start=1):
            contribution = rrf_score(rank, config.rrf_k)
            existing = merged.get(kw.document_id)
            if existing is None:
                merged[kw.document_id] = replace(
                    kw, vector_score=0.0, search_sources=[SOURCE_KEYWORD]
                )
                raw[kw.document_id] = contribution
                confidence[kw.document_id] = 1.0
                continue

            _absorb_keyword(existing, kw)
            raw[kw.document_id] += contribution
            confidence[kw.document_id] = boost

        for document_id, result in merged.items():
            result.combined_score = raw[document_id] * confidence[document_id]

        return sort_by_score(list(merged.values()))

    def apply_quality_gate(
        self, results: list[SearchResult], has_keyword_matches: bool
    ) -> list[SearchResult]:
        """Drop fused results below the configured minimum scores."""
        if not self._fusion.quality_gate:
            return results

        kept = [
            r
            for r in results
            if passes_quality_gate(
                r.combined_score,
                r.search_sources == [SOURCE_VECTOR],
                has_keyword_matches,
                self._fusion,
            )
        ]
        if len(kept) < len(results):
            logger.debug(f"[aggregate] quality gate kept {len(kept)}/{len(results)}")
        return kept

    def _build_excerpt(self, chunks: list[ChunkHit]) -> str:
        top = sorted(chunks, key=lambda c: c.similarity, reverse=True)[: self._excerpt_chunks]
        return EXCERPT_SEPARATOR.join(
            extract_excerpt(c.text, self._excerpt_length) for c in top
        )
