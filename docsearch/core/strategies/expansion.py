
import logging

from .vocabulary import DEFAULT_SYNONYMS, POLITICAL_TERMS

logger = logging.getLogger(__name__)


class SynonymVariantGenerator:
    """Expand queries with domain synonyms of recognized terms."""

    def __init__(
        self,
        synonyms: dict[str, list[str]] | None = None,
        context_terms: tuple[str, ...] = POLITICAL_TERMS,
        context_suffix: str = "grüne politik",
    ):
        """Initialize generator.

        Args:
            synonyms: Term -> synonyms ordered by relevance.
            context_terms: Terms marking a policy-related query.
            context_suffix: Appended to policy-related queries lacking it.
        """
        self._synonyms = synonyms or DEFAULT_SYNONYMS
        self._context_terms = context_terms
        self._context_suffix = context_suffix

    async def generate(self, query: str, max_variants: int) -> list[str]:
        """Generate up to max_variants expanded queries."""
        if max_variants <= 0 or not query.strip():
            return []

        query_lower = query.lower()
        matched = [
            [s for s in synonyms if s not in query_lower]
            for term, synonyms in self._synonyms.items()
            if term in query_lower
        ]

        variants: list[str] = []
        seen = {query_lower}

        # Best synonym of every matched term first, then the runners-up
        depth = max((len(m) for m in matched), default=0)
        for rank in range(depth):
            for candidates in matched:
                if rank >= len(candidates):
                    continue
                variant = f"{query} {candidates[rank]}"
                if variant.lower() not in seen:
                    seen.add(variant.lower())
                    variants.append(variant)

        is_political = any(term in query_lower for term in self._context_terms)
        if is_political and "grün" not in query_lower:
            variants.append(f"{query} {self._context_suffix}")

        return variants[:max_variants]
