"""Document domain models."""
from dataclasses import asdict, dataclass, field
from typing import Optional


@dataclass
class ChunkHit:
    """Chunk returned by the vector store for a query."""
    chunk_id: str
    document_id: str
    text: str
    similarity: float
    position_index: int = 0
    token_count: int = 0
    title: Optional[str] = None
    filename: Optional[str] = None
    created_at: Optional[str] = None


@dataclass
class KeywordHit:
    """Document returned by the keyword store."""
    document_id: str
    title: str
    text: str
    filename: Optional[str] = None
    created_at: Optional[str] = None
    score: Optional[float] = None
    # "exact" when the whole query occurs in the text, "token" for term-only matches
    match_type: Optional[str] = None


@dataclass
class DocumentGroup:
    """Chunks of one document retrieved for a single query."""
    document_id: str
    title: Optional[str] = None
    filename: Optional[str] = None
    created_at: Optional[str] = None
    chunks: list[ChunkHit] = field(default_factory=list)


@dataclass(frozen=True)
class ScoreBreakdown:
    """Enhanced per-document score and its components."""
    final_score: float
    max_similarity: float
    avg_similarity: float
    position_score: float
    diversity_bonus: float


@dataclass
class SearchResult:
    """Ranked document returned to the caller."""
    document_id: str
    title: str
    excerpt: str
    combined_score: float
    vector_score: float = 0.0
    keyword_score: Optional[float] = None
    max_similarity: float = 0.0
    avg_similarity: float = 0.0
    position_score: float = 0.0
    diversity_bonus: float = 0.0
    chunk_count: int = 0
    filename: Optional[str] = None
    created_at: Optional[str] = None
    search_sources: list[str] = field(default_factory=list)
    relevance_info: str = ""
    contextual_score: Optional[float] = None
    diversity_score: Optional[float] = None
    matched_query: Optional[str] = None

    @property
    def id(self) -> str:
        return self.document_id

    @property
    def score(self) -> float:
        """Final score (contextual if reranked, else combined)."""
        if self.contextual_score is not None:
            return self.contextual_score
        return self.combined_score

    def to_dict(self) -> dict:
        return asdict(self)
