"""Core business services."""
from .search_service import SearchService
from .query_expander import QueryExpander
from .candidate_retriever import CandidateRetriever
from .aggregator import ResultAggregator
from .funnel_service import MultiStageFunnel
from .multi_query_service import MultiQueryAggregator
from .engine import RetrievalEngine

__all__ = [
    "SearchService",
    "QueryExpander",
    "CandidateRetriever",
    "ResultAggregator",
    "MultiStageFunnel",
    "MultiQueryAggregator",
    "RetrievalEngine",
]
