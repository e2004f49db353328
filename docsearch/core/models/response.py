"""Response models returned by the engine."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..errors import ErrorKind
from .document import ChunkHit, KeywordHit, SearchResult


class SearchType(str, Enum):
    """Strategy that actually produced a response."""
    VECTOR = "vector"
    HYBRID = "hybrid"
    KEYWORD_FALLBACK = "keyword_fallback"
    MULTI_STAGE = "multi_stage"
    ERROR_FALLBACK = "error_fallback"


@dataclass
class CandidateSet:
    """Raw hits from both retrieval paths.

    A path with a non-None error failed; its hit list is then empty.
    """
    vector_hits: list[ChunkHit] = field(default_factory=list)
    keyword_hits: list[KeywordHit] = field(default_factory=list)
    vector_error: Optional[ErrorKind] = None
    keyword_error: Optional[ErrorKind] = None
    threshold: Optional[float] = None

    @property
    def vector_ok(self) -> bool:
        return self.vector_error is None

    @property
    def keyword_ok(self) -> bool:
        return self.keyword_error is None


@dataclass
class RetrievalOutcome:
    """Result of one retrieval strategy: results or an error kind."""
    search_type: SearchType
    results: list[SearchResult] = field(default_factory=list)
    error: Optional[ErrorKind] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, search_type: SearchType, error: ErrorKind) -> "RetrievalOutcome":
        return cls(search_type=search_type, error=error)


@dataclass
class SearchResponse:
    """Response of a single search."""
    success: bool
    results: list[SearchResult]
    search_type: SearchType
    message: str
    query: str = ""
    stats: Optional[dict] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "results": [r.to_dict() for r in self.results],
            "searchType": self.search_type.value,
            "message": self.message,
            "query": self.query,
            "stats": self.stats,
            "error": self.error,
        }


@dataclass
class FunnelPerformance:
    """Per-stage bookkeeping of a multi-stage search."""
    per_stage_counts: dict[str, int] = field(default_factory=dict)
    stage_times_ms: dict[str, float] = field(default_factory=dict)
    total_time_ms: float = 0.0
    skipped_stages: list[str] = field(default_factory=list)
    failed_stages: list[str] = field(default_factory=list)
    bypassed_stages: list[str] = field(default_factory=list)
    fallback_used: bool = False
    detected_category: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "perStageCounts": dict(self.per_stage_counts),
            "stageTimesMs": dict(self.stage_times_ms),
            "totalTimeMs": self.total_time_ms,
            "skippedStages": list(self.skipped_stages),
            "failedStages": list(self.failed_stages),
            "bypassedStages": list(self.bypassed_stages),
            "fallbackUsed": self.fallback_used,
            "detectedCategory": self.detected_category,
        }


@dataclass
class FunnelResponse:
    """Response of a multi-stage search."""
    success: bool
    results: list[SearchResult]
    search_type: SearchType
    message: str
    query: str = ""
    performance: FunnelPerformance = field(default_factory=FunnelPerformance)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "results": [r.to_dict() for r in self.results],
            "searchType": self.search_type.value,
            "message": self.message,
            "query": self.query,
            "performance": self.performance.to_dict(),
        }


@dataclass
class MultiQueryResponse:
    """Merged response of several independently worded searches."""
    success: bool
    results: list[SearchResult]
    contributing_queries: list[str]
    before_dedup_count: int
    after_dedup_count: int
    failed_queries: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "results": [r.to_dict() for r in self.results],
            "contributingQueries": list(self.contributing_queries),
            "beforeDedupCount": self.before_dedup_count,
            "afterDedupCount": self.after_dedup_count,
            "failedQueries": list(self.failed_queries),
        }
