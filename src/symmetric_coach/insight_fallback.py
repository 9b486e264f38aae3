"""Deterministic fallback insights.

Used whenever a generated insight is unavailable: poor signal, low
confidence, a timeout, or an unusable response. Selection is by reason
first, then by phase.
"""

from __future__ import annotations

from .insight_models import SIGNAL_QUALITY_REASONS, Insight, InsightContext, phase_tag
from .insight_parsing import collapse_whitespace

FALLBACK_DEFAULT_HEADLINE = "Hold steady and reset for your next clean reps."

_SIGNAL_QUALITY_LINES = (
    "Not enough signal yet, hold your form steady.",
    "We'll flag the moment the data stabilizes.",
)

_PHASE_LINES: dict[str, tuple[str, str]] = {
    "rising": (
        "Form is dialed in, keep the tempo right where it is.",
        "Stay smooth and we'll cue the next adjustment when it's needed.",
    ),
    "plateauing": (
        "You're holding steady and pacing well.",
        "Keep it tidy and stay smooth.",
    ),
    "falling": (
        "Quality is slipping as activation falls.",
        "Let's rack there to protect output.",
    ),
    "unknown": (
        "Nice work.",
        "Keep things smooth between reps.",
    ),
}


def build_fallback(context: InsightContext, reason: str) -> Insight:
    phase = context.phase
    signal_quality = reason in SIGNAL_QUALITY_REASONS

    lines = _SIGNAL_QUALITY_LINES if signal_quality else _PHASE_LINES.get(phase, _PHASE_LINES["unknown"])
    headline = collapse_whitespace(" ".join(lines))

    if phase == "falling":
        insight_type = "caution"
    elif signal_quality:
        insight_type = "info"
    else:
        insight_type = "suggestion"

    return Insight(
        source="fallback",
        phase=phase,
        type=insight_type,
        headline=headline or FALLBACK_DEFAULT_HEADLINE,
        tags=[phase_tag(phase)],
        actions=["end_set"] if phase == "falling" else [],
        rest_seconds=max(0.0, float(context.rest_seconds or 0.0)),
        confidence=max(0.0, min(1.0, context.confidence)),
        cited_metric=None,
    )
