import logging
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar

from .config.settings import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Container:
    _factories: dict[type, Callable[[], Any]] = field(default_factory=dict)
    _singletons: dict[type, Any] = field(default_factory=dict)
    _singleton_flags: set[type] = field(default_factory=set)

    def register(
        self, interface: type[T], factory: Callable[[], T], singleton: bool = False
    ) -> None:
        """Register factory for interface.

        Args:
            interface: Interface type.
            factory: Factory function.
            singleton: Whether to cache instance.
        """
        self._factories[interface] = factory
        if singleton:
            self._singleton_flags.add(interface)

    def resolve(self, interface: type[T]) -> T:
        if interface in self._singletons:
            return self._singletons[interface]

        if interface not in self._factories:
            raise KeyError(f"No factory registered for {interface}")

        instance = self._factories[interface]()

        if interface in self._singleton_flags:
            self._singletons[interface] = instance

        return instance

    def reset(self) -> None:
        """Reset singletons (for testing)."""
        self._singletons.clear()


def configure_container(settings: Settings) -> Container:
    """Build a container wired from settings.

    Args:
        settings: Application settings.

    Returns:
        Configured container.
    """
    from .core.protocols.cache import CacheProtocol
    from .core.protocols.embedder import EmbedderProtocol
    from .core.protocols.keyword_store import KeywordStoreProtocol
    from .core.protocols.variant_generator import QueryVariantGeneratorProtocol
    from .core.protocols.vector_store import VectorStoreProtocol
    from .core.services.engine import RetrievalEngine
    from .core.strategies.expansion import SynonymVariantGenerator
    from .infrastructure.cache.ttl_cache import InMemoryTTLCache
    from .infrastructure.embeddings.sentence_transformer import (
        SentenceTransformerEmbedder,
    )
    from .infrastructure.keyword_stores.chroma_keyword_store import ChromaKeywordStore
    from .infrastructure.llm.ollama_expander import OllamaVariantGenerator
    from .infrastructure.vector_stores.chroma_store import ChromaVectorStore

    container = Container()

    container.register(
        EmbedderProtocol,
        lambda: SentenceTransformerEmbedder(
            settings.embedding_model, dimension=settings.embedding_dimension
        ),
        singleton=True,
    )

    container.register(
        VectorStoreProtocol,
        lambda: ChromaVectorStore(
            host=settings.chroma_host,
            port=settings.chroma_port,
            collection_name=settings.chroma_collection,
            timeout=settings.chroma_request_timeout,
        ),
        singleton=True,
    )

    container.register(
        KeywordStoreProtocol,
        lambda: ChromaKeywordStore(
            host=settings.chroma_host,
            port=settings.chroma_port,
            collection_name=settings.chroma_collection,
            timeout=settings.chroma_request_timeout,
        ),
        singleton=True,
    )

    container.register(
        CacheProtocol,
        lambda: InMemoryTTLCache(
            max_size=settings.expansion_cache_size,
            ttl_seconds=settings.expansion_cache_ttl,
        ),
        singleton=True,
    )

    if settings.llm_expansion_enabled:
        container.register(
            QueryVariantGeneratorProtocol,
            lambda: OllamaVariantGenerator(
                base_url=settings.llm_base_url,
                model=settings.llm_model,
                max_tokens=settings.llm_max_tokens,
                temperature=settings.llm_temperature,
                timeout=settings.expansion_timeout,
            ),
            singleton=True,
        )
    else:
        container.register(
            QueryVariantGeneratorProtocol, SynonymVariantGenerator, singleton=True
        )

    container.register(
        RetrievalEngine,
        lambda: RetrievalEngine(
            embedder=container.resolve(EmbedderProtocol),
            vector_store=container.resolve(VectorStoreProtocol),
            keyword_store=container.resolve(KeywordStoreProtocol),
            settings=settings,
            cache=container.resolve(CacheProtocol),
            variant_generator=container.resolve(QueryVariantGeneratorProtocol),
        ),
        singleton=True,
    )

    logger.info("Container configured")
    return container
