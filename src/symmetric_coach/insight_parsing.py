"""Tolerant parsing and normalization of generation-service responses.

The service is asked for JSON but may answer with a bare string, an object
using legacy field names, or plain prose. Plain prose becomes the headline
verbatim; only an empty payload, a non-string JSON scalar, or an object
without any headline field is unusable.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from .insight_models import (
    INSIGHT_ACTIONS,
    INSIGHT_TAGS,
    INSIGHT_TYPES,
    CitedMetric,
    Insight,
    InsightContext,
    phase_tag,
)

DEFAULT_HEADLINE = "Hold that quality. Rest up and stay sharp."

_WHITESPACE_RE = re.compile(r"\s+")

# Candidate field names, in priority order.
HEADLINE_FIELDS: tuple[str, ...] = ("headline", "primary", "text")
SUBLINE_FIELDS: tuple[str, ...] = ("subline", "secondary")
REST_FIELDS: tuple[str, ...] = ("rest_seconds", "restSeconds")
METRIC_FIELDS: tuple[str, ...] = ("metric_cited", "metricCited")

_MISSING = object()


@dataclass
class ParsedResponse:
    headline: str
    subline: str | None = None
    tip: str | None = None
    tags: list[str] | None = None
    actions: list[str] | None = None
    rest_seconds: float | None = None
    type: str | None = None
    cited_metric: CitedMetric | None = None


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def _first_text(record: dict[str, Any], names: tuple[str, ...]) -> str | None:
    for name in names:
        value = record.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _first_number(record: dict[str, Any], names: tuple[str, ...]) -> float | None:
    for name in names:
        value = record.get(name)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        return float(value)
    return None


def _tags(value: Any) -> list[str] | None:
    if not isinstance(value, list):
        return None
    valid = [tag.strip() for tag in value if isinstance(tag, str) and tag.strip() in INSIGHT_TAGS]
    return valid or None


def _actions(value: Any) -> list[str] | None:
    if not isinstance(value, list):
        return None
    return [action for action in value if action in INSIGHT_ACTIONS]


def _metric(value: Any) -> CitedMetric | None | object:
    """CitedMetric, None (explicit null or invalid), or _MISSING (absent/unusable)."""
    if value is None:
        return None
    if not isinstance(value, dict):
        return _MISSING
    try:
        return CitedMetric.model_validate(value)
    except ValidationError:
        return None


def _from_record(record: dict[str, Any]) -> ParsedResponse | None:
    headline = _first_text(record, HEADLINE_FIELDS)
    if not headline:
        return None

    tip = record.get("tip")
    insight_type = record.get("type")

    metric: CitedMetric | None = None
    for name in METRIC_FIELDS:
        if name not in record:
            continue
        candidate = _metric(record[name])
        if candidate is not _MISSING:
            metric = candidate  # type: ignore[assignment]
            if candidate is not None:
                break

    return ParsedResponse(
        headline=headline,
        subline=_first_text(record, SUBLINE_FIELDS),
        tip=tip if isinstance(tip, str) and tip.strip() else None,
        tags=_tags(record.get("tags")),
        actions=_actions(record.get("actions")),
        rest_seconds=_first_number(record, REST_FIELDS),
        type=insight_type if insight_type in INSIGHT_TYPES else None,
        cited_metric=metric,
    )


def _parse_structured(text: str) -> ParsedResponse | None | object:
    try:
        data = json.loads(text)
    except ValueError:
        return _MISSING

    if isinstance(data, str):
        headline = data.strip()
        return ParsedResponse(headline=headline) if headline else None
    if isinstance(data, dict):
        return _from_record(data)
    return None


# Tried in order; the first extractor returning something other than _MISSING wins.
_EXTRACTORS: tuple[Callable[[str], ParsedResponse | None | object], ...] = (
    _parse_structured,
    lambda text: ParsedResponse(headline=text),
)


def parse_model_response(raw: Any) -> ParsedResponse | None:
    """Parse a raw service payload. Returns None when nothing usable came back."""
    trimmed = raw.strip() if isinstance(raw, str) else ""
    if not trimmed:
        return None

    for extractor in _EXTRACTORS:
        result = extractor(trimmed)
        if result is not _MISSING:
            return result  # type: ignore[return-value]
    return None


def normalize_model_response(parsed: ParsedResponse, context: InsightContext) -> Insight:
    tags = parsed.tags or [phase_tag(context.phase)]

    rest = parsed.rest_seconds
    if rest is None or not math.isfinite(rest) or rest < 0:
        rest = max(0.0, float(context.rest_seconds or 0.0))

    actions = [action for action in (parsed.actions or []) if action in INSIGHT_ACTIONS]
    insight_type = parsed.type or ("caution" if "end_set" in actions else "suggestion")

    parts = [part.strip() for part in (parsed.headline, parsed.subline or "") if part and part.strip()]
    combined = collapse_whitespace(" ".join(parts))

    return Insight(
        source="generated",
        phase=context.phase,
        type=insight_type,
        headline=combined or DEFAULT_HEADLINE,
        tags=tags,
        actions=actions,
        rest_seconds=rest,
        confidence=context.confidence,
        cited_metric=parsed.cited_metric,
    )


def extract_text(payload: Any) -> str:
    """Pull the response text out of a transport payload.

    Accepts a plain string, an object/dict with a ``text`` field, or a
    generateContent-style body with ``candidates[].content.parts[].text``.
    """
    if payload is None:
        return ""
    if isinstance(payload, str):
        return payload

    text = payload.get("text") if isinstance(payload, dict) else getattr(payload, "text", None)
    if isinstance(text, str):
        return text

    body = payload.get("response", payload) if isinstance(payload, dict) else payload
    if not isinstance(body, dict):
        return ""
    if isinstance(body.get("text"), str):
        return body["text"]

    chunks: list[str] = []
    for candidate in body.get("candidates") or []:
        if not isinstance(candidate, dict):
            continue
        content = candidate.get("content")
        parts = content.get("parts") if isinstance(content, dict) else candidate.get("parts")
        for part in parts or []:
            if isinstance(part, dict) and isinstance(part.get("text"), str):
                chunks.append(part["text"])
        if chunks:
            break
    return "".join(chunks)
