"""Display envelope for an insight.

Turns a pipeline Insight into the final message the host renders: trimmed to
the tier's character budget, stripped of banned phrasing, with the follow-up
ask the UI should offer.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

from .insight_models import Insight
from .insight_parsing import collapse_whitespace

MessageTier = Literal["in_set", "post_set"]
CoachAsk = Literal["rest_60_90s", "load_minus_5", "form_focus", "none"]

CHARACTER_LIMITS: dict[str, int] = {
    "in_set": 140,
    "post_set": 160,
}

BANNED_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"next optimal session", re.IGNORECASE),
)

_ELLIPSIS = "…"


@dataclass(frozen=True)
class CoachMessage:
    id: str
    tier: str
    headline: str
    actions: tuple[str, ...]
    ask: str


@dataclass(frozen=True)
class CoachMessageEnvelope:
    message: CoachMessage
    source: str
    phase: str
    type: str
    confidence: float


def strip_banned_phrases(text: str) -> str:
    for pattern in BANNED_PATTERNS:
        text = pattern.sub("", text)
    return collapse_whitespace(text)


def trim_to_limit(line: str, limit: int) -> str:
    if len(line) <= limit:
        return line
    if limit <= 1:
        return line[: max(0, limit)]
    head = line[: limit - 1]
    last_space = head.rfind(" ")
    # Prefer a word boundary unless it would throw away most of the line.
    if last_space > 24:
        return f"{head[:last_space]}{_ELLIPSIS}"
    return f"{head}{_ELLIPSIS}"


def _filter_actions(insight: Insight) -> tuple[str, ...]:
    if insight.phase != "falling":
        return ()
    allowed: list[str] = []
    for action in insight.actions:
        if action not in allowed:
            allowed.append(action)
    return tuple(allowed)


def determine_ask(insight: Insight, actions: tuple[str, ...]) -> str:
    if insight.phase == "falling":
        return "rest_60_90s" if "end_set" in actions else "form_focus"
    if insight.phase == "rising":
        return "form_focus"
    if insight.phase == "plateauing" and insight.type == "suggestion":
        return "form_focus"
    if (
        insight.type == "suggestion"
        and insight.cited_metric is not None
        and insight.cited_metric.name == "RMS"
    ):
        return "load_minus_5"
    return "none"


def compose_coach_message(insight: Insight, tier: MessageTier, message_id: str) -> CoachMessageEnvelope:
    limit = CHARACTER_LIMITS[tier]
    headline = trim_to_limit(strip_banned_phrases(insight.headline), limit)
    actions = _filter_actions(insight)

    return CoachMessageEnvelope(
        message=CoachMessage(
            id=message_id,
            tier=tier,
            headline=headline,
            actions=actions,
            ask=determine_ask(insight, actions),
        ),
        source=insight.source,
        phase=insight.phase,
        type=insight.type,
        confidence=insight.confidence,
    )
