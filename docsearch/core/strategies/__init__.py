"""Scoring, expansion and funnel strategies."""
from .scoring import FusionConfig, FusionMethod, HybridWeights, ScoreWeights, score_document
from .threshold import ThresholdCalculator
from .expansion import SynonymVariantGenerator
from .funnel_stages import (
    ContextualRerankStage,
    DiversityInjectionStage,
    FunnelStage,
    SemanticFilterStage,
)

__all__ = [
    "FusionConfig",
    "FusionMethod",
    "HybridWeights",
    "ScoreWeights",
    "score_document",
    "ThresholdCalculator",
    "SynonymVariantGenerator",
    "ContextualRerankStage",
    "DiversityInjectionStage",
    "FunnelStage",
    "SemanticFilterStage",
]
