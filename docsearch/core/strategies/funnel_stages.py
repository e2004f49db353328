
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Optional

from ..models.document import SearchResult
from ..text_utils import count_occurrences, key_terms, query_terms
from .vocabulary import DEFAULT_INTENT_CATEGORIES

logger = logging.getLogger(__name__)


@dataclass
class StageOutput:
    """Results of a stage; bypassed means the input was passed through."""
    results: list[SearchResult]
    bypassed: bool = False


class FunnelStage(ABC):
    """Base class for refinement stages of the multi-stage funnel."""

    name: str = "stage"

    @abstractmethod
    def apply(self, query: str, results: list[SearchResult], limit: int) -> StageOutput:
        """Refine results; must not mutate the input list or its items."""
        ...


class SemanticFilterStage(FunnelStage):
    """Keep candidates matching the topical category of the query."""

    name = "semantic_filter"

    def __init__(
        self,
        categories: Optional[dict[str, tuple[str, ...]]] = None,
        min_retention: float = 0.3,
    ):
        """Initialize stage.

        Args:
            categories: Category name -> lowercase stems.
            min_retention: Smallest retained share before the filter is bypassed.
        """
        self._categories = categories or DEFAULT_INTENT_CATEGORIES
        self._min_retention = min_retention

    def detect_category(self, query: str) -> Optional[str]:
        """Category with the most stem matches in the query, first wins ties."""
        query_lower = query.lower()
        best, best_hits = None, 0
        for category, stems in self._categories.items():
            hits = sum(1 for stem in stems if stem in query_lower)
            if hits > best_hits:
                best, best_hits = category, hits
        return best

    def apply(self, query: str, results: list[SearchResult], limit: int) -> StageOutput:
        if not results:
            return StageOutput(results)

        category = self.detect_category(query)
        if category is None:
            logger.info("[funnel] semantic filter: no category detected, bypassing")
            return StageOutput(results, bypassed=True)

        stems = self._categories[category]
        kept = [
            r for r in results
            if any(stem in f"{r.title} {r.excerpt}".lower() for stem in stems)
        ]

        if len(kept) < self._min_retention * len(results):
            logger.warning(
                f"[funnel] semantic filter '{category}' would keep "
                f"{len(kept)}/{len(results)}, bypassing"
            )
            return StageOutput(results, bypassed=True)

        logger.info(f"[funnel] semantic filter '{category}': {len(results)} → {len(kept)}")
        return StageOutput(kept)


class ContextualRerankStage(FunnelStage):
    """Rescore candidates by query-term evidence in their excerpts."""

    name = "contextual_rerank"

    def __init__(
        self,
        term_boost: float = 0.1,
        term_boost_cap: float = 0.3,
        position_boost: float = 0.1,
        diversity_carry_over: float = 0.5,
    ):
        """Initialize stage.

        Args:
            term_boost: Boost per term occurrence.
            term_boost_cap: Max boost of a single term.
            position_boost: Max boost for a match at the start of the excerpt.
            diversity_carry_over: Share of the diversity bonus carried over.
        """
        self._term_boost = term_boost
        self._term_boost_cap = term_boost_cap
        self._position_boost = position_boost
        self._diversity_carry_over = diversity_carry_over

    def contextual_score(self, terms: list[str], result: SearchResult) -> float:
        excerpt_lower = result.excerpt.lower()

        frequency_boost = sum(
            min(count_occurrences(t, excerpt_lower) * self._term_boost, self._term_boost_cap)
            for t in terms
        )

        offsets = [i for i in (excerpt_lower.find(t) for t in terms) if i >= 0]
        position_boost = 0.0
        if offsets and excerpt_lower:
            position_boost = self._position_boost * (1 - min(offsets) / len(excerpt_lower))

        carry_over = self._diversity_carry_over * result.diversity_bonus

        return min(1.0, result.combined_score + frequency_boost + position_boost + carry_over)

    def apply(self, query: str, results: list[SearchResult], limit: int) -> StageOutput:
        terms = query_terms(query)
        rescored = [
            replace(r, contextual_score=self.contextual_score(terms, r)) for r in results
        ]
        rescored.sort(key=lambda r: r.contextual_score, reverse=True)
        return StageOutput(rescored)


class DiversityInjectionStage(FunnelStage):
    """Greedy selection of topically distinct results."""

    name = "diversity"

    def __init__(
        self,
        overlap_cutoff: float = 0.7,
        key_term_limit: int = 10,
        relaxed_factor: float = 0.5,
    ):
        """Initialize stage.

        Args:
            overlap_cutoff: Max share of a candidate's key terms already covered.
            key_term_limit: Key terms extracted per candidate.
            relaxed_factor: Scale of diversity_score for fill-in picks.
        """
        self._overlap_cutoff = overlap_cutoff
        self._key_term_limit = key_term_limit
        self._relaxed_factor = relaxed_factor

    def _key_terms(self, result: SearchResult) -> set[str]:
        return set(key_terms(f"{result.title} {result.excerpt}", self._key_term_limit))

    @staticmethod
    def overlap(terms: set[str], covered: set[str]) -> float:
        if not terms:
            return 0.0
        return len(terms & covered) / len(terms)

    def apply(self, query: str, results: list[SearchResult], limit: int) -> StageOutput:
        selected: list[SearchResult] = []
        leftovers: list[tuple[SearchResult, set[str]]] = []
        titles: set[str] = set()
        covered: set[str] = set()

        for result in results:
            terms = self._key_terms(result)
            title = result.title.strip().lower()
            overlap = self.overlap(terms, covered)

            if len(selected) >= limit or title in titles or overlap > self._overlap_cutoff:
                leftovers.append((result, terms))
                continue

            selected.append(replace(result, diversity_score=1.0 - overlap))
            titles.add(title)
            covered |= terms

        relaxed = 0
        for result, terms in leftovers:
            if len(selected) >= limit:
                break
            score = self._relaxed_factor * (1.0 - self.overlap(terms, covered))
            selected.append(replace(result, diversity_score=score))
            covered |= terms
            relaxed += 1

        logger.info(
            f"[funnel] diversity: {len(results)} → {len(selected)} ({relaxed} relaxed)"
        )
        return StageOutput(selected)
