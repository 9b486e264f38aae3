"""Tests for deterministic fallback insights."""

import pytest

from symmetric_coach.insight_fallback import build_fallback
from symmetric_coach.insight_models import InsightContext


def _context(**overrides) -> InsightContext:
    return InsightContext.model_validate({"phase": "rising", "confidence": 0.75, **overrides})


@pytest.mark.parametrize("reason", ["artifact", "low_confidence", "no_signal", "noise"])
def test_signal_quality_reasons_share_template(reason):
    insight = build_fallback(_context(), reason)
    assert insight.headline == (
        "Not enough signal yet, hold your form steady. We'll flag the moment the data stabilizes."
    )
    assert insight.type == "info"
    assert insight.source == "fallback"


@pytest.mark.parametrize("reason", ["timeout", "error"])
def test_service_failures_use_phase_template(reason):
    insight = build_fallback(_context(phase="plateauing"), reason)
    assert insight.headline == "You're holding steady and pacing well. Keep it tidy and stay smooth."
    assert insight.type == "suggestion"
    assert insight.tags == ["Plateauing"]


def test_falling_is_always_caution_with_end_set():
    for reason in ("noise", "timeout"):
        insight = build_fallback(_context(phase="falling"), reason)
        assert insight.type == "caution"
        assert insight.actions == ["end_set"]


def test_non_falling_has_no_actions():
    assert build_fallback(_context(), "error").actions == []


def test_unknown_phase():
    insight = build_fallback(_context(phase="unknown"), "error")
    assert insight.tags == ["NoFatigue"]
    assert insight.headline == "Nice work. Keep things smooth between reps."


def test_rest_and_confidence_are_clamped():
    insight = build_fallback(_context(rest_seconds=-10, confidence=1.7), "error")
    assert insight.rest_seconds == 0.0
    assert insight.confidence == 1.0

    insight = build_fallback(_context(rest_seconds=90, confidence=-0.2), "error")
    assert insight.rest_seconds == 90.0
    assert insight.confidence == 0.0


def test_no_cited_metric():
    assert build_fallback(_context(), "timeout").cited_metric is None
