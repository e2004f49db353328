"""Query variant generator protocol for dependency injection."""
from typing import Protocol, runtime_checkable


@runtime_checkable
class QueryVariantGeneratorProtocol(Protocol):
    """Protocol for producing alternative phrasings of a query."""

    async def generate(self, query: str, max_variants: int) -> list[str]:
        """Generate related queries.

        Args:
            query: Original query.
            max_variants: Maximum number of variants (original excluded).

        Returns:
            Variants ordered by decreasing confidence.
        """
        ...
