"""Domain models."""
from .document import ChunkHit, DocumentGroup, KeywordHit, ScoreBreakdown, SearchResult
from .query import (
    ExpandedQuery,
    FunnelOptions,
    QueryVariant,
    SearchMode,
    SearchOptions,
    StageToggles,
)
from .response import (
    CandidateSet,
    FunnelPerformance,
    FunnelResponse,
    MultiQueryResponse,
    RetrievalOutcome,
    SearchResponse,
    SearchType,
)

__all__ = [
    "ChunkHit",
    "DocumentGroup",
    "KeywordHit",
    "ScoreBreakdown",
    "SearchResult",
    "ExpandedQuery",
    "FunnelOptions",
    "QueryVariant",
    "SearchMode",
    "SearchOptions",
    "StageToggles",
    "CandidateSet",
    "FunnelPerformance",
    "FunnelResponse",
    "MultiQueryResponse",
    "RetrievalOutcome",
    "SearchResponse",
    "SearchType",
]
