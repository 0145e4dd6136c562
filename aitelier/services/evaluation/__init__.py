"""Blind A/B evaluation of a fine-tuned model against its baseline."""

from aitelier.services.evaluation.framework import EvaluationEngine, ModelOption, build_model_options, resolve_pair
from aitelier.services.evaluation.report import EvaluationResults, ReportGenerator, TrendPoint
from aitelier.services.evaluation.scorer import AutoScorer, is_left_model

__all__ = [
    "AutoScorer",
    "EvaluationEngine",
    "EvaluationResults",
    "ModelOption",
    "ReportGenerator",
    "TrendPoint",
    "build_model_options",
    "is_left_model",
    "resolve_pair",
]
