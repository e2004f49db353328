"""Dynamic similarity threshold."""

import logging
from dataclasses import dataclass
from typing import Iterable

from .vocabulary import DEFAULT_DOMAIN_TERMS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ThresholdCalculator:
    """Derive a vector similarity cutoff from the shape of the query.

    Longer queries are more specific and get a more permissive cutoff;
    queries on the corpus' own topics are matched more permissively too.
    The result is always clamped to [minimum, maximum].
    """

    base: float = 0.3
    minimum: float = 0.2
    maximum: float = 0.8
    two_word_adjustment: float = 0.05
    long_query_adjustment: float = -0.10
    long_query_words: int = 5
    domain_adjustment: float = -0.05
    domain_terms: tuple[str, ...] = DEFAULT_DOMAIN_TERMS

    def calculate(self, query: str) -> float:
        words = query.split()
        word_count = len(words)

        length_adjustment = 0.0
        if word_count == 2:
            length_adjustment = self.two_word_adjustment
        elif word_count >= self.long_query_words:
            length_adjustment = self.long_query_adjustment

        content_adjustment = 0.0
        if self._matches_domain(query.lower(), self.domain_terms):
            content_adjustment = self.domain_adjustment

        threshold = self.clamp(self.base + length_adjustment + content_adjustment)

        logger.debug(
            f"Threshold: words={word_count} length_adj={length_adjustment:+.2f} "
            f"content_adj={content_adjustment:+.2f} -> {threshold:.2f}"
        )
        return threshold

    def clamp(self, value: float) -> float:
        return max(self.minimum, min(self.maximum, value))

    @staticmethod
    def _matches_domain(query_lower: str, terms: Iterable[str]) -> bool:
        return any(term in query_lower for term in terms)
