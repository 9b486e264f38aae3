"""Gating policy: skip, fall back, or call the generation service.

Pure function of the request context, the pipeline's per-set session state,
and the current time. No side effects.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Literal

from .insight_models import FallbackReason, InsightContext

PolicyAction = Literal["skip", "fallback", "call"]

CONFIDENCE_THRESHOLDS: dict[str, float] = {
    "rising": 0.60,
    "plateauing": 0.60,
    "falling": 0.70,
}
# No phase estimate yet: hold it to the strictest bar.
_UNKNOWN_PHASE_THRESHOLD = max(CONFIDENCE_THRESHOLDS.values())

MIN_SIGNAL_CHANGE_PCT = 7.0


@dataclass(frozen=True)
class SessionState:
    last_insight_at: float = -math.inf
    insights_this_set: int = 0
    last_phase: str | None = None
    last_reason: str | None = None


@dataclass(frozen=True)
class PolicyDecision:
    action: PolicyAction
    reason: FallbackReason | None = None


def _finite_or_none(value: float | None) -> float | None:
    if value is None or not math.isfinite(value):
        return None
    return value


def confidence_threshold(phase: str) -> float:
    return CONFIDENCE_THRESHOLDS.get(phase, _UNKNOWN_PHASE_THRESHOLD)


def evaluate_policy(context: InsightContext, session: SessionState, now: float) -> PolicyDecision:
    if context.exercise.phase != "set":
        return PolicyDecision("skip")

    if session.insights_this_set >= context.limits.max_messages_per_set:
        return PolicyDecision("skip")

    if now - session.last_insight_at < context.limits.speak_min_gap_sec:
        return PolicyDecision("skip")

    artifact = _finite_or_none(context.metrics.motion_artifact) or 0.0
    if artifact >= context.limits.artifact_threshold:
        return PolicyDecision("fallback", "artifact")

    if context.confidence < confidence_threshold(context.phase):
        return PolicyDecision("fallback", "low_confidence")

    change = _finite_or_none(context.metrics.rms_change_pct_last_8s)
    if change is None:
        return PolicyDecision("fallback", "no_signal")

    if abs(change) < MIN_SIGNAL_CHANGE_PCT:
        return PolicyDecision("fallback", "noise")

    return PolicyDecision("call")
