"""Protocol interfaces for dependency injection."""
from .embedder import EmbedderProtocol
from .vector_store import VectorStoreProtocol
from .keyword_store import KeywordStoreProtocol
from .cache import CacheProtocol
from .variant_generator import QueryVariantGeneratorProtocol

__all__ = [
    "EmbedderProtocol",
    "VectorStoreProtocol",
    "KeywordStoreProtocol",
    "CacheProtocol",
    "QueryVariantGeneratorProtocol",
]
