"""Symmetric coach core: live-set fatigue phases and gated coaching insights."""

from .cancellation import CancellationToken, InsightCancelledError
from .fatigue_detector import (
    FatigueDebug,
    FatigueDetector,
    FatigueDetectorConfig,
    FatigueSample,
    PhaseTransition,
)
from .fatigue_zones import RepFeature, TargetRange, determine_zone, find_fatigue_rep
from .insight_models import Insight, InsightContext
from .insight_pipeline import InsightPipeline

__all__ = [
    "CancellationToken",
    "FatigueDebug",
    "FatigueDetector",
    "FatigueDetectorConfig",
    "FatigueSample",
    "Insight",
    "InsightCancelledError",
    "InsightContext",
    "InsightPipeline",
    "PhaseTransition",
    "RepFeature",
    "TargetRange",
    "determine_zone",
    "find_fatigue_rep",
]
