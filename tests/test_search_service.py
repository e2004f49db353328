"""Tests for single-pass search and its fallback chain."""

import time

import pytest

from conftest import FakeEmbedder, chunk
from docsearch.config.settings import Settings
from docsearch.core.errors import KeywordStoreUnavailable, SearchError, VectorStoreUnavailable
from docsearch.core.models.document import KeywordHit
from docsearch.core.models.query import SearchMode, SearchOptions
from docsearch.core.models.response import SearchType


def keyword_hit(
    document_id: str, text: str = "Klimaschutz in der Stadt", score=None, match_type=None
):
    return KeywordHit(
        document_id=document_id,
        title=f"Dokument {document_id}",
        text=text,
        score=score,
        match_type=match_type,
    )


class SlowEmbedder(FakeEmbedder):
    """Embedder that blocks longer than the request deadline."""

    def __init__(self, delay: float):
        super().__init__()
        self.delay = delay

    def encode(self, texts):
        time.sleep(self.delay)
        return super().encode(texts)


def fusion_settings(**overrides) -> Settings:
    return Settings(retry_attempts=1, retry_backoff_min=0, retry_backoff_max=0, **overrides)


class TestVectorSearch:
    """Tests for vector mode."""

    @pytest.mark.asyncio
    async def test_documents_ranked_by_enhanced_score(self, make_engine):
        """A document with several strong early chunks outranks a weak one."""
        hits = [
            chunk("A", 0.9, 0),
            chunk("A", 0.6, 1),
            chunk("A", 0.85, 2),
            chunk("B", 0.5, 0),
        ]
        engine = make_engine(vector_hits=hits)

        response = await engine.search("Klimaschutz", "user-1", SearchOptions(limit=2))

        assert response.success is True
        assert response.search_type == SearchType.VECTOR
        assert [r.id for r in response.results] == ["A", "B"]
        a, b = response.results
        assert a.combined_score > b.combined_score
        assert a.chunk_count == 3
        assert a.diversity_bonus == pytest.approx(0.15)
        assert a.combined_score == pytest.approx(0.9763, abs=1e-4)
        assert b.combined_score == pytest.approx(0.55)

    @pytest.mark.asyncio
    async def test_empty_query_returns_empty_success(self, make_engine):
        """Empty query is a legitimate empty result, not an error."""
        engine = make_engine(vector_hits=[chunk("A", 0.9)])

        response = await engine.search("", "user-1")

        assert response.success is True
        assert response.results == []
        _, vector_store, keyword_store = engine.fakes
        assert vector_store.calls == []
        assert keyword_store.calls == []

    @pytest.mark.asyncio
    async def test_excerpt_joins_top_three_chunks(self, make_engine):
        hits = [chunk("A", s, i, text=f"Satz {i}.") for i, s in enumerate([0.5, 0.9, 0.7, 0.8])]
        engine = make_engine(vector_hits=hits)

        response = await engine.search("Klimaschutz", "user-1")

        assert response.results[0].excerpt == "Satz 1.\n\n---\n\nSatz 3.\n\n---\n\nSatz 2."

    @pytest.mark.asyncio
    async def test_limit_and_threshold_passed_to_store(self, make_engine):
        engine = make_engine(vector_hits=[chunk("A", 0.9)])

        await engine.search("Klimaschutz", "user-1", SearchOptions(limit=4))

        _, vector_store, keyword_store = engine.fakes
        assert vector_store.calls[0]["limit"] == 12
        assert vector_store.calls[0]["threshold"] == pytest.approx(0.25)
        assert vector_store.calls[0]["scope"] == "user-1"
        assert keyword_store.calls[0]["limit"] == 8

    @pytest.mark.asyncio
    async def test_explicit_threshold_is_clamped(self, make_engine):
        engine = make_engine(vector_hits=[chunk("A", 0.9)])

        await engine.search("Klimaschutz", "user-1", SearchOptions(threshold=0.05))

        _, vector_store, _ = engine.fakes
        assert vector_store.calls[0]["threshold"] == pytest.approx(0.2)

    @pytest.mark.asyncio
    async def test_limit_clamped_to_maximum(self, make_engine):
        hits = [chunk(f"D{i}", 0.9) for i in range(80)]
        engine = make_engine(vector_hits=hits)

        response = await engine.search("Klimaschutz", "user-1", SearchOptions(limit=500))

        assert len(response.results) == 50


class TestFallbackChain:
    """Tests for degradation between retrieval paths."""

    @pytest.mark.asyncio
    async def test_vector_failure_falls_back_to_keyword(self, make_engine):
        """Vector store error with two keyword hits yields keyword_fallback."""
        engine = make_engine(
            vector_error=VectorStoreUnavailable("connection refused"),
            keyword_hits=[keyword_hit("K1"), keyword_hit("K2")],
        )

        response = await engine.search("Klimaschutz", "user-1")

        assert response.success is True
        assert response.search_type == SearchType.KEYWORD_FALLBACK
        assert len(response.results) == 2
        assert response.stats["degraded"] == ["vector_store_unavailable"]
        for result in response.results:
            assert result.vector_score == 0.0
            assert result.search_sources == ["keyword"]

    @pytest.mark.asyncio
    async def test_unexpected_store_exception_is_contained(self, make_engine):
        engine = make_engine(
            vector_error=RuntimeError("boom"),
            keyword_hits=[keyword_hit("K1")],
        )

        response = await engine.search("Klimaschutz", "user-1")

        assert response.search_type == SearchType.KEYWORD_FALLBACK
        assert len(response.results) == 1

    @pytest.mark.asyncio
    async def test_embedding_failure_degrades_to_keyword(self, make_engine):
        embedder = FakeEmbedder(failing={"Klimaschutz"})
        engine = make_engine(
            embedder=embedder,
            vector_hits=[chunk("A", 0.9)],
            keyword_hits=[keyword_hit("K1")],
        )

        response = await engine.search("Klimaschutz", "user-1")

        assert response.search_type == SearchType.KEYWORD_FALLBACK
        assert [r.id for r in response.results] == ["K1"]
        _, vector_store, _ = engine.fakes
        assert vector_store.calls == []
        assert response.stats["degraded"] == ["embedding_unavailable"]

    @pytest.mark.asyncio
    async def test_empty_vector_result_tries_keyword(self, make_engine):
        engine = make_engine(vector_hits=[], keyword_hits=[keyword_hit("K1")])

        response = await engine.search("Klimaschutz", "user-1")

        assert response.search_type == SearchType.KEYWORD_FALLBACK
        assert len(response.results) == 1

    @pytest.mark.asyncio
    async def test_nothing_found_is_success(self, make_engine):
        engine = make_engine(vector_hits=[], keyword_hits=[])

        response = await engine.search("Klimaschutz", "user-1")

        assert response.success is True
        assert response.results == []
        assert response.search_type == SearchType.VECTOR

    @pytest.mark.asyncio
    async def test_all_paths_failing_is_error_fallback(self, make_engine):
        """Both stores down: explicit failure, no exception."""
        engine = make_engine(
            vector_error=VectorStoreUnavailable("down"),
            keyword_error=KeywordStoreUnavailable("down"),
        )

        response = await engine.search("Klimaschutz", "user-1")

        assert response.success is False
        assert response.results == []
        assert response.search_type == SearchType.ERROR_FALLBACK
        assert "vector_store_unavailable" in response.error
        assert response.to_dict()["searchType"] == "error_fallback"

    @pytest.mark.asyncio
    async def test_generic_store_error_labelled_by_path(self, make_engine):
        """An unspecific error from the keyword store degrades the keyword path."""
        engine = make_engine(
            vector_hits=[chunk("A", 0.9, 0)],
            keyword_error=SearchError("index offline"),
        )

        response = await engine.search(
            "Klimaschutz", "user-1", SearchOptions(mode=SearchMode.HYBRID)
        )

        assert response.search_type == SearchType.VECTOR
        assert response.stats["degraded"] == ["keyword_store_unavailable"]

    @pytest.mark.asyncio
    async def test_missing_scope_is_rejected(self, make_engine):
        engine = make_engine(vector_hits=[chunk("A", 0.9)])

        response = await engine.search("Klimaschutz", "")

        assert response.success is False
        assert response.search_type == SearchType.ERROR_FALLBACK
        assert response.error == "validation"

    @pytest.mark.asyncio
    async def test_unknown_mode_is_rejected(self, make_engine):
        engine = make_engine(vector_hits=[chunk("A", 0.9)])

        response = await engine.search("Klimaschutz", "user-1", SearchOptions(mode="fuzzy"))

        assert response.success is False
        assert response.error == "validation"


class TestHybridSearch:
    """Tests for hybrid mode."""

    @pytest.mark.asyncio
    async def test_scores_fused_per_document(self, make_engine):
        engine = make_engine(
            vector_hits=[chunk("A", 0.9, 0)],
            keyword_hits=[keyword_hit("A", score=1.0), keyword_hit("K", score=1.0)],
        )

        response = await engine.search(
            "Klimaschutz", "user-1", SearchOptions(mode=SearchMode.HYBRID)
        )

        assert response.search_type == SearchType.HYBRID
        by_id = {r.id: r for r in response.results}
        assert by_id["A"].combined_score == pytest.approx(0.95 * 0.7 + 1.0 * 0.3)
        assert by_id["A"].search_sources == ["vector", "keyword"]
        assert by_id["K"].combined_score == pytest.approx(0.3)
        assert by_id["K"].vector_score == 0.0
        assert by_id["K"].search_sources == ["keyword"]
        assert [r.id for r in response.results] == ["A", "K"]

    @pytest.mark.asyncio
    async def test_custom_weights(self, make_engine):
        engine = make_engine(
            vector_hits=[chunk("A", 0.9, 0)],
            keyword_hits=[keyword_hit("A", score=0.5)],
        )

        response = await engine.search(
            "Klimaschutz",
            "user-1",
            SearchOptions(mode=SearchMode.HYBRID, vector_weight=0.5, keyword_weight=0.5),
        )

        assert response.results[0].combined_score == pytest.approx(0.95 * 0.5 + 0.5 * 0.5)

    @pytest.mark.asyncio
    async def test_rrf_fusion(self, make_engine):
        engine = make_engine(
            settings=fusion_settings(hybrid_fusion="rrf"),
            vector_hits=[chunk("A", 0.9, 0), chunk("B", 0.8, 0)],
            keyword_hits=[
                keyword_hit("B", score=1.0),
                keyword_hit("C", score=0.9),
                keyword_hit("D", score=0.8),
            ],
        )

        response = await engine.search(
            "Klimaschutz", "user-1", SearchOptions(mode=SearchMode.HYBRID)
        )

        assert response.search_type == SearchType.HYBRID
        assert [r.id for r in response.results] == ["B", "C", "D", "A"]
        assert response.results[0].combined_score == pytest.approx((1 / 62 + 1 / 61) * 1.2)
        assert response.stats["fusion_method"] == "rrf"
        assert response.stats["fusion_auto_switched"] is False

    @pytest.mark.asyncio
    async def test_rrf_switches_to_weighted_on_token_matches(self, make_engine):
        engine = make_engine(
            settings=fusion_settings(hybrid_fusion="rrf"),
            vector_hits=[chunk("A", 0.9, 0)],
            keyword_hits=[
                keyword_hit(doc_id, score=1.0, match_type="token") for doc_id in "ABC"
            ],
        )

        response = await engine.search(
            "Klimaschutz", "user-1", SearchOptions(mode=SearchMode.HYBRID)
        )

        by_id = {r.id: r for r in response.results}
        assert by_id["A"].combined_score == pytest.approx(0.95 * 0.85 + 1.0 * 0.15)
        assert response.stats["fusion_method"] == "weighted"
        assert response.stats["fusion_auto_switched"] is True

    @pytest.mark.asyncio
    async def test_weighted_fusion_is_default(self, make_engine):
        engine = make_engine(
            vector_hits=[chunk("A", 0.9, 0)], keyword_hits=[keyword_hit("A", score=1.0)]
        )

        response = await engine.search(
            "Klimaschutz", "user-1", SearchOptions(mode=SearchMode.HYBRID)
        )

        assert response.stats["fusion_method"] == "weighted"
        assert response.stats["hybrid_threshold"] == pytest.approx(0.25)

    @pytest.mark.asyncio
    async def test_dynamic_threshold_prunes_weak_vector_hits(self, make_engine):
        engine = make_engine(
            settings=fusion_settings(hybrid_dynamic_threshold=True),
            vector_hits=[chunk("A", 0.9, 0), chunk("B", 0.3, 0)],
            keyword_hits=[keyword_hit("K", score=1.0)],
        )

        response = await engine.search(
            "Klimaschutz", "user-1", SearchOptions(mode=SearchMode.HYBRID)
        )

        assert [r.id for r in response.results] == ["A", "K"]
        assert response.stats["hybrid_threshold"] == pytest.approx(0.35)

    @pytest.mark.asyncio
    async def test_quality_gate_drops_weak_fused_results(self, make_engine):
        engine = make_engine(
            settings=fusion_settings(hybrid_quality_gate=True, hybrid_min_final_score=0.5),
            vector_hits=[chunk("A", 0.9, 0)],
            keyword_hits=[keyword_hit("K", score=1.0)],
        )

        response = await engine.search(
            "Klimaschutz", "user-1", SearchOptions(mode=SearchMode.HYBRID)
        )

        assert [r.id for r in response.results] == ["A"]

    @pytest.mark.asyncio
    async def test_keyword_failure_degrades_to_vector(self, make_engine):
        engine = make_engine(
            vector_hits=[chunk("A", 0.9, 0)],
            keyword_error=KeywordStoreUnavailable("down"),
        )

        response = await engine.search(
            "Klimaschutz", "user-1", SearchOptions(mode=SearchMode.HYBRID)
        )

        assert response.success is True
        assert response.search_type == SearchType.VECTOR
        assert response.results[0].combined_score == pytest.approx(0.95)

    @pytest.mark.asyncio
    async def test_keyword_mode_skips_embedding(self, make_engine):
        engine = make_engine(keyword_hits=[keyword_hit("K1")])

        response = await engine.search(
            "Klimaschutz", "user-1", SearchOptions(mode=SearchMode.KEYWORD)
        )

        embedder, vector_store, _ = engine.fakes
        assert response.search_type == SearchType.KEYWORD_FALLBACK
        assert embedder.calls == []
        assert vector_store.calls == []


class TestExpansionCache:
    """Tests for the engine's expansion cache handling."""

    @pytest.mark.asyncio
    async def test_repeated_query_hits_cache(self, make_engine):
        engine = make_engine(vector_hits=[chunk("A", 0.9)])

        await engine.search("Klimaschutz", "user-1")
        await engine.search("Klimaschutz", "user-1")

        assert engine.cache_stats()["hits"] == 1
        engine.clear_cache()
        assert engine.cache_stats()["size"] == 0

    @pytest.mark.asyncio
    async def test_stats_reported(self, make_engine):
        engine = make_engine(vector_hits=[chunk("A", 0.9)])

        response = await engine.search("Klimaschutz", "user-1")

        assert response.stats["vector_hits"] == 1
        assert response.stats["variants"] == 5
        assert response.stats["merged"] == 1
        assert response.stats["elapsed_ms"] >= 0


class TestRequestDeadline:
    """Tests for partial results when the deadline runs out."""

    @pytest.mark.asyncio
    async def test_slow_embedder_still_returns_keyword_results(self, make_engine):
        """Keyword lookup runs while the embedder is still busy."""
        engine = make_engine(
            embedder=SlowEmbedder(delay=0.5),
            vector_hits=[chunk("A", 0.9)],
            keyword_hits=[keyword_hit("K1"), keyword_hit("K2")],
        )

        response = await engine.search(
            "Klimaschutz", "user-1", SearchOptions(mode=SearchMode.HYBRID, timeout=0.2)
        )

        assert response.success is True
        assert response.search_type == SearchType.KEYWORD_FALLBACK
        assert sorted(r.id for r in response.results) == ["K1", "K2"]
        assert response.stats["degraded"] == ["embedding_unavailable"]
        _, vector_store, keyword_store = engine.fakes
        assert vector_store.calls == []
        assert len(keyword_store.calls) == 1
