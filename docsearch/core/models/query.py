"""Query and search option models."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class SearchMode(str, Enum):
    """Retrieval mode requested by the caller."""
    VECTOR = "vector"
    HYBRID = "hybrid"
    KEYWORD = "keyword"


@dataclass(frozen=True)
class QueryVariant:
    """One phrasing of the query and its normalized weight."""
    text: str
    weight: float


@dataclass
class ExpandedQuery:
    """Result of query expansion."""
    original: str
    variants: list[QueryVariant]
    embedding: list[float]
    expanded: bool = False
    sources: list[str] = field(default_factory=list)


@dataclass
class SearchOptions:
    """Per-request search configuration.

    Unset values fall back to the service defaults.
    """
    limit: Optional[int] = None
    threshold: Optional[float] = None
    mode: SearchMode = SearchMode.VECTOR
    document_ids: Optional[list[str]] = None
    vector_weight: Optional[float] = None
    keyword_weight: Optional[float] = None
    timeout: Optional[float] = None


@dataclass
class StageToggles:
    """Enable flags for the funnel stages."""
    approximate: bool = True
    semantic_filter: bool = True
    contextual_rerank: bool = True
    diversity: bool = True


@dataclass
class FunnelOptions:
    """Options for multi-stage search."""
    limit: Optional[int] = None
    stages: StageToggles = field(default_factory=StageToggles)
    document_ids: Optional[list[str]] = None
    timeout: Optional[float] = None
