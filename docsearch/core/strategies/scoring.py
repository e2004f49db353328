
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Sequence

from ..models.document import ChunkHit, ScoreBreakdown
from ..text_utils import query_terms

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoreWeights:
    """Constants of the enhanced document score."""

    max_weight: float = 0.5
    avg_weight: float = 0.3
    position_weight: float = 0.2
    position_decay: float = 0.1
    position_floor: float = 0.3
    diversity_per_chunk: float = 0.05
    diversity_cap: float = 0.2


@dataclass(frozen=True)
class HybridWeights:
    """Split between vector and keyword evidence."""

    vector: float = 0.7
    keyword: float = 0.3


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def position_weight(position_index: int, weights: ScoreWeights) -> float:
    """Earlier chunks weigh more, never below the floor."""
    return max(weights.position_floor, 1.0 - position_index * weights.position_decay)


def diversity_bonus(chunk_count: int, weights: ScoreWeights) -> float:
    """Bonus for several independently matching chunks, capped."""
    return min(weights.diversity_cap, chunk_count * weights.diversity_per_chunk)


def score_document(
    chunks: Sequence[ChunkHit], weights: ScoreWeights | None = None
) -> ScoreBreakdown:
    """Compute the enhanced score of one document from its own chunks.

    Args:
        chunks: Retrieved chunks of a single document.
        weights: Score constants.

    Returns:
        Final score in [0, 1] and its components.
    """
    weights = weights or ScoreWeights()

    if not chunks:
        return ScoreBreakdown(0.0, 0.0, 0.0, 0.0, 0.0)

    similarities = [c.similarity for c in chunks]
    max_similarity = max(similarities)
    avg_similarity = sum(similarities) / len(similarities)

    position_score = sum(
        c.similarity * position_weight(c.position_index, weights) for c in chunks
    ) / len(chunks)

    bonus = diversity_bonus(len(chunks), weights)

    final_score = clamp01(
        max_similarity * weights.max_weight
        + avg_similarity * weights.avg_weight
        + position_score * weights.position_weight
        + bonus
    )

    return ScoreBreakdown(
        final_score=final_score,
        max_similarity=max_similarity,
        avg_similarity=avg_similarity,
        position_score=position_score,
        diversity_bonus=bonus,
    )


def keyword_coverage(query: str, text: str, floor: float = 0.5) -> float:
    """Share of query terms present in text.

    The keyword store already matched the document, so a hit without
    per-term evidence still gets the floor value.
    """
    terms = query_terms(query)
    if not terms:
        return floor

    text_lower = (text or "").lower()
    matched = sum(1 for t in terms if t in text_lower)
    return max(floor, matched / len(terms))


def combine_scores(
    vector_score: float, keyword_score: float | None, weights: HybridWeights
) -> float:
    """Weighted fusion of vector and keyword scores."""
    return vector_score * weights.vector + (keyword_score or 0.0) * weights.keyword


class FusionMethod(str, Enum):
    WEIGHTED = "weighted"
    RRF = "rrf"


@dataclass(frozen=True)
class FusionConfig:
    """How hybrid results are fused and gated.

    Weighted fusion is the default. RRF falls back to weighted fusion with
    fallback_weights when the keyword side is too thin to rank by.
    """

    method: FusionMethod = FusionMethod.WEIGHTED
    rrf_k: int = 60
    min_keyword_results: int = 3
    fallback_weights: HybridWeights = field(
        default_factory=lambda: HybridWeights(vector=0.85, keyword=0.15)
    )
    confidence_weighting: bool = True
    confidence_boost: float = 1.2
    confidence_penalty: float = 0.7
    quality_gate: bool = False
    min_final_score: float = 0.008
    min_vector_only_final_score: float = 0.010
    dynamic_threshold: bool = False
    min_vector_with_text_threshold: float = 0.35
    min_vector_only_threshold: float = 0.55


@dataclass(frozen=True)
class FusionPlan:
    method: FusionMethod
    weights: HybridWeights
    auto_switched: bool = False


def rrf_score(rank: int, k: int = 60) -> float:
    """Reciprocal rank contribution of a 1-based rank."""
    return 1.0 / (k + rank)


def plan_fusion(
    config: FusionConfig,
    weights: HybridWeights,
    keyword_count: int,
    has_exact_matches: bool,
) -> FusionPlan:
    """Pick the fusion method for one request.

    RRF needs a ranked keyword list: with fewer than min_keyword_results
    hits, or with token-only matches, weighted fusion is used instead.
    """
    if config.method != FusionMethod.RRF:
        return FusionPlan(FusionMethod.WEIGHTED, weights)

    if keyword_count < config.min_keyword_results or not has_exact_matches:
        logger.debug(
            f"RRF needs ranked keyword hits ({keyword_count}, exact={has_exact_matches}), "
            "using weighted fusion"
        )
        return FusionPlan(FusionMethod.WEIGHTED, config.fallback_weights, auto_switched=True)

    return FusionPlan(FusionMethod.RRF, weights)


def dynamic_threshold(base: float, has_keyword_matches: bool, config: FusionConfig) -> float:
    """Stricter vector cutoff for hybrid search, tighter without keyword support."""
    if not config.dynamic_threshold:
        return base
    if has_keyword_matches:
        return max(base, config.min_vector_with_text_threshold)
    return max(base, config.min_vector_only_threshold)


def passes_quality_gate(
    score: float, vector_only: bool, has_keyword_matches: bool, config: FusionConfig
) -> bool:
    if not config.quality_gate:
        return True
    if score < config.min_final_score:
        return False
    if vector_only and not has_keyword_matches:
        return score >= config.min_vector_only_final_score
    return True
