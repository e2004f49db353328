"""Tests for document scoring, thresholds and aggregation."""

import pytest

from conftest import chunk
from docsearch.core.models.document import KeywordHit, SearchResult
from docsearch.core.services.aggregator import ResultAggregator, group_by_document
from docsearch.core.strategies.scoring import (
    FusionConfig,
    FusionMethod,
    HybridWeights,
    ScoreWeights,
    dynamic_threshold,
    plan_fusion,
    rrf_score,
    diversity_bonus,
    keyword_coverage,
    position_weight,
    score_document,
)
from docsearch.core.strategies.threshold import ThresholdCalculator
from docsearch.core.text_utils import extract_around_query, extract_excerpt, key_terms


class TestThresholdCalculator:
    """Tests for ThresholdCalculator."""

    def setup_method(self):
        self.calculator = ThresholdCalculator()

    @pytest.mark.parametrize(
        "query, expected",
        [
            ("Haushalt", 0.3),
            ("Haushalt Stadt", 0.35),
            ("Haushalt der Stadt im Jahr", 0.2),
            ("Klimaschutz", 0.25),
            ("Klimaschutz Stadt", 0.3),
            ("", 0.3),
        ],
    )
    def test_adjustments(self, query, expected):
        assert self.calculator.calculate(query) == pytest.approx(expected)

    def test_long_domain_query_clamped(self):
        assert self.calculator.calculate("Was plant die Regierung beim Klima") == 0.2

    @pytest.mark.parametrize(
        "query",
        ["", "a", "a b", "a b c d e f g h", "Klimaschutz Energie Bildung Politik Wahl", "x" * 1000],
    )
    def test_always_in_range(self, query):
        assert 0.2 <= self.calculator.calculate(query) <= 0.8

    def test_custom_constants_still_clamped(self):
        calculator = ThresholdCalculator(base=0.95)

        assert calculator.calculate("Haushalt") == 0.8


class TestScoreDocument:
    """Tests for score_document."""

    def test_components(self):
        breakdown = score_document([chunk("A", 0.9, 0), chunk("A", 0.6, 1), chunk("A", 0.85, 2)])

        assert breakdown.max_similarity == 0.9
        assert breakdown.avg_similarity == pytest.approx(0.78333, abs=1e-5)
        assert breakdown.position_score == pytest.approx((0.9 + 0.54 + 0.68) / 3)
        assert breakdown.diversity_bonus == pytest.approx(0.15)

    def test_final_score_clamped_to_one(self):
        breakdown = score_document([chunk("A", 1.0, i) for i in range(6)])

        assert breakdown.final_score == 1.0

    @pytest.mark.parametrize("similarity", [0.0, 0.2, 0.5, 0.99, 1.0])
    @pytest.mark.parametrize("count", [1, 2, 5, 12])
    def test_final_score_in_unit_interval(self, similarity, count):
        breakdown = score_document([chunk("A", similarity, i) for i in range(count)])

        assert 0.0 <= breakdown.final_score <= 1.0

    def test_empty_document(self):
        assert score_document([]).final_score == 0.0

    def test_position_weight_floor(self):
        weights = ScoreWeights()

        assert position_weight(0, weights) == 1.0
        assert position_weight(3, weights) == pytest.approx(0.7)
        assert position_weight(50, weights) == 0.3

    def test_diversity_bonus_monotone_and_capped(self):
        weights = ScoreWeights()
        bonuses = [diversity_bonus(n, weights) for n in range(1, 9)]

        assert bonuses == sorted(bonuses)
        assert bonuses[:4] == pytest.approx([0.05, 0.1, 0.15, 0.2])
        assert all(b == 0.2 for b in bonuses[3:])


class TestKeywordCoverage:
    def test_share_of_terms(self):
        assert keyword_coverage("Klimaschutz Kommune Haushalt Stadt", "klimaschutz kommune haushalt") == 0.75

    def test_floor(self):
        assert keyword_coverage("Klimaschutz Kommune", "nichts davon") == 0.5


class TestResultAggregator:
    """Tests for ResultAggregator."""

    def setup_method(self):
        self.aggregator = ResultAggregator()

    def test_groups_keep_first_appearance_order(self):
        groups = group_by_document([chunk("B", 0.5), chunk("A", 0.9), chunk("B", 0.4, 1)])

        assert [g.document_id for g in groups] == ["B", "A"]
        assert len(groups[0].chunks) == 2

    def test_scores_use_only_own_chunks(self):
        alone = self.aggregator.aggregate_vector([chunk("A", 0.7)])
        together = self.aggregator.aggregate_vector([chunk("A", 0.7), chunk("B", 0.95)])

        a_alone = alone[0]
        a_together = next(r for r in together if r.id == "A")
        assert a_alone.combined_score == a_together.combined_score

    def test_keyword_results_deduplicated(self):
        hits = [
            KeywordHit(document_id="K", title="K", text="a", score=0.4),
            KeywordHit(document_id="K", title="K", text="b", score=0.9),
        ]

        results = self.aggregator.aggregate_keyword("a", hits)

        assert len(results) == 1
        assert results[0].keyword_score == 0.9

    def test_keyword_excerpt_cut_around_match(self):
        text = "x" * 600 + " Klimaschutz " + "y" * 600
        hits = [KeywordHit(document_id="K", title="K", text=text)]

        excerpt = self.aggregator.aggregate_keyword("Klimaschutz", hits)[0].excerpt

        assert "Klimaschutz" in excerpt
        assert excerpt.startswith("...") and excerpt.endswith("...")

    def test_hybrid_merge_prefers_longer_excerpt(self):
        vector = self.aggregator.aggregate_vector([chunk("A", 0.9, text="kurz.")])
        keyword = self.aggregator.aggregate_keyword(
            "lang", [KeywordHit(document_id="A", title="A", text="ein langer Text", score=1.0)]
        )

        merged = self.aggregator.merge_hybrid(vector, keyword)

        assert merged[0].excerpt == "ein langer Text"
        assert vector[0].excerpt == "kurz."


def ranked(source: str, *doc_ids: str) -> list[SearchResult]:
    results = []
    for i, doc_id in enumerate(doc_ids):
        score = 0.9 - i * 0.1
        results.append(
            SearchResult(
                document_id=doc_id,
                title=doc_id,
                excerpt=f"{source} {doc_id}",
                combined_score=score,
                vector_score=score if source == "vector" else 0.0,
                keyword_score=score if source == "keyword" else None,
                search_sources=[source],
            )
        )
    return results


class TestHybridFusion:
    """Tests for RRF, fusion selection and the quality gate."""

    def test_rrf_with_confidence_weighting(self):
        aggregator = ResultAggregator(fusion=FusionConfig(method=FusionMethod.RRF))

        merged = aggregator.merge_rrf(
            ranked("vector", "A", "B"), ranked("keyword", "B", "C")
        )

        by_id = {r.id: r for r in merged}
        assert [r.id for r in merged] == ["B", "C", "A"]
        assert by_id["B"].combined_score == pytest.approx((1 / 62 + 1 / 61) * 1.2)
        assert by_id["A"].combined_score == pytest.approx(1 / 61 * 0.7)
        assert by_id["C"].combined_score == pytest.approx(1 / 62)
        assert by_id["B"].search_sources == ["vector", "keyword"]
        assert by_id["C"].vector_score == 0.0

    def test_rrf_without_confidence_weighting(self):
        aggregator = ResultAggregator(
            fusion=FusionConfig(method=FusionMethod.RRF, confidence_weighting=False)
        )

        merged = aggregator.merge_rrf(ranked("vector", "A"), ranked("keyword", "K"))

        assert [r.combined_score for r in merged] == [pytest.approx(1 / 61)] * 2

    def test_rrf_score(self):
        assert rrf_score(1) == pytest.approx(1 / 61)
        assert rrf_score(3, k=10) == pytest.approx(1 / 13)

    def test_weighted_config_keeps_caller_weights(self):
        weights = HybridWeights(0.6, 0.4)

        plan = plan_fusion(FusionConfig(), weights, keyword_count=0, has_exact_matches=False)

        assert plan.method == FusionMethod.WEIGHTED
        assert plan.weights == weights
        assert plan.auto_switched is False

    def test_rrf_switches_to_weighted_with_few_keyword_hits(self):
        config = FusionConfig(method=FusionMethod.RRF)

        plan = plan_fusion(config, HybridWeights(), keyword_count=2, has_exact_matches=True)

        assert plan.method == FusionMethod.WEIGHTED
        assert plan.weights == HybridWeights(0.85, 0.15)
        assert plan.auto_switched is True

    def test_rrf_switches_to_weighted_on_token_only_matches(self):
        config = FusionConfig(method=FusionMethod.RRF)

        plan = plan_fusion(config, HybridWeights(), keyword_count=5, has_exact_matches=False)

        assert plan.method == FusionMethod.WEIGHTED

    def test_rrf_kept_with_enough_exact_matches(self):
        config = FusionConfig(method=FusionMethod.RRF)

        plan = plan_fusion(config, HybridWeights(), keyword_count=3, has_exact_matches=True)

        assert plan.method == FusionMethod.RRF
        assert plan.auto_switched is False

    def test_dynamic_threshold(self):
        enabled = FusionConfig(dynamic_threshold=True)

        assert dynamic_threshold(0.25, True, FusionConfig()) == 0.25
        assert dynamic_threshold(0.25, True, enabled) == 0.35
        assert dynamic_threshold(0.25, False, enabled) == 0.55
        assert dynamic_threshold(0.6, True, enabled) == 0.6

    def test_quality_gate(self):
        aggregator = ResultAggregator(fusion=FusionConfig(quality_gate=True))
        results = [
            SearchResult("low", "low", "", 0.005, search_sources=["vector", "keyword"]),
            SearchResult("vec", "vec", "", 0.009, search_sources=["vector"]),
            SearchResult("kw", "kw", "", 0.009, search_sources=["keyword"]),
        ]

        assert [r.id for r in aggregator.apply_quality_gate(results, False)] == ["kw"]
        assert [r.id for r in aggregator.apply_quality_gate(results, True)] == ["vec", "kw"]

    def test_quality_gate_off_by_default(self):
        results = [SearchResult("low", "low", "", 0.001)]

        assert ResultAggregator().apply_quality_gate(results, False) == results


class TestTextUtils:
    def test_excerpt_trimmed_at_sentence(self):
        text = "A" * 250 + ". " + "B" * 200

        assert extract_excerpt(text, 300) == "A" * 250 + "."

    def test_excerpt_without_late_sentence_gets_ellipsis(self):
        text = "A" * 100 + ". " + "B" * 400

        assert extract_excerpt(text, 300).endswith("...")
        assert len(extract_excerpt(text, 300)) == 303

    def test_short_text_unchanged(self):
        assert extract_excerpt("Kurz.", 300) == "Kurz."

    def test_around_query_without_match(self):
        assert extract_around_query("abc", "zzz", 500) == "abc"

    def test_key_terms_skip_stopwords_and_short_words(self):
        terms = key_terms("Die Energiewende und die Windkraft werden über Energiewende gefördert")

        assert terms == ["energiewende", "windkraft", "gefördert"]
