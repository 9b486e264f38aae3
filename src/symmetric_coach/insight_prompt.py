"""Prompt construction for between-rep coaching insights.

One request = fixed system instruction + fixed few-shot exchanges + a freshly
rendered context block. Numbers are rounded to 2 decimals, missing values are
rendered as explicit nulls, booleans as lowercase literals.
"""

from __future__ import annotations

import math
from typing import Any

from .fatigue_detector import phase_label
from .insight_models import InsightContext

SYSTEM_INSTRUCTION = """You are a sports scientist coaching an athlete DURING a working set.

TONE
- Calm, human, encouraging. A smart coach standing next to the rack.
- Evidence-based but plainspoken. Use contractions. No emojis, no hype.

OUTPUT
- A single JSON object, nothing else:
  {"headline": str, "subline": str, "tags": [str], "actions": [str],
   "rest_seconds": number, "type": "info" | "suggestion" | "caution",
   "metric_cited": {"name": "RMS" | "MDF" | "RoR" | "Symmetry", "value": str} | null}
- headline + subline together are at most TWO short sentences.
- tags only from: Rising, Plateauing, Falling, SymmetryOff, NoFatigue.
- actions only from: continue_anyway, end_set.

DATA YOU MAY USE (provided in the user message)
- phase: Rising | Plateauing | Falling | Unknown
- readiness / baselineReadiness: 0-100
- fatigueDetected: true | false
- rir: integer or null
- symmetryPct: percent or null
- rorTrend: "up" | "flat" | "down" | null
- strain: 0-100 or null
- restSeconds: seconds or 0
- notes: short free-text context or null

STRICT RULES
- Never invent numbers or causes. Mention notes at most once.
- Safety first: if fatigueDetected=true or phase=Falling, advise ending the set (action end_set, type caution).
- If symmetryPct < 90, add a brief setup or stance cue and tag SymmetryOff.
- If rorTrend="down", cue a sharper first second on the next rep.
- If restSeconds > 0, mention it naturally."""

FEW_SHOT_EXAMPLES: tuple[tuple[str, str], ...] = (
    (
        "PHASE: Falling\n"
        "SIGNALS: readiness 89, baselineReadiness 72, fatigueDetected true, rir 0, "
        "symmetryPct 95, rorTrend flat, strain 52, restSeconds 120, notes \"had coffee\"",
        '{"headline": "That was productive fatigue at high readiness, nice work finding the line.", '
        '"subline": "Rack it there, rest 120s, and go again once it feels sharp.", '
        '"tags": ["Falling"], "actions": ["end_set"], "rest_seconds": 120, "type": "caution", '
        '"metric_cited": {"name": "RMS", "value": "falling"}}',
    ),
    (
        "PHASE: Plateauing\n"
        "SIGNALS: readiness 74, baselineReadiness 70, fatigueDetected false, rir 2, "
        "symmetryPct 87, rorTrend down, strain 40, restSeconds 0, notes null",
        '{"headline": "Output is steady, but left and right drifted to about 87%.", '
        '"subline": "Reset your stance and drive the first second of each rep.", '
        '"tags": ["Plateauing", "SymmetryOff"], "actions": [], "rest_seconds": 0, '
        '"type": "suggestion", "metric_cited": {"name": "Symmetry", "value": "87%"}}',
    ),
)


def format_signal_value(value: Any, fallback: str = "null") -> str:
    if value is None:
        return fallback
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return fallback
        rendered = f"{round(float(value), 2):.2f}".rstrip("0").rstrip(".")
        return "0" if rendered in ("", "-0") else rendered
    text = str(value).strip()
    return text or fallback


def render_context_block(context: InsightContext) -> str:
    symmetry_diff = context.metrics.symmetry_pct_diff
    computed_symmetry = (
        100.0 - abs(symmetry_diff)
        if symmetry_diff is not None and math.isfinite(symmetry_diff)
        else None
    )
    symmetry = context.symmetry_pct if context.symmetry_pct is not None else computed_symmetry
    fatigue_detected = (
        context.fatigue_detected
        if context.fatigue_detected is not None
        else context.phase == "falling"
    )
    ror_trend = context.ror_trend or context.metrics.ror_trend

    return "\n".join([
        "Write one in-set coaching message using the system instruction.",
        "",
        f"PHASE: {phase_label(context.phase)}",
        "",
        "SIGNALS:",
        f"- readiness: {format_signal_value(context.readiness)}",
        f"- baselineReadiness: {format_signal_value(context.baseline_readiness)}",
        f"- fatigueDetected: {format_signal_value(fatigue_detected, 'false')}",
        f"- rir: {format_signal_value(context.rir)}",
        f"- symmetryPct: {format_signal_value(symmetry)}",
        f"- rorTrend: {format_signal_value(ror_trend)}",
        f"- strain: {format_signal_value(context.strain)}",
        f"- restSeconds: {format_signal_value(context.rest_seconds, '0')}",
        f"- notes: {format_signal_value(context.notes)}",
        f"- confidence: {format_signal_value(context.confidence)}",
        f"- rmsChangePctLast8s: {format_signal_value(context.metrics.rms_change_pct_last_8s)}",
        f"- mdfChangePctLast8s: {format_signal_value(context.metrics.mdf_change_pct_last_8s)}",
        "",
        "CONSTRAINTS:",
        "- Two short sentences max across headline and subline.",
        "- If restSeconds > 0, include it naturally.",
        "- If symmetryPct < 90, add a brief setup or stance cue.",
        "- No jargon; sound like a calm, human coach.",
    ])


def build_prompt(context: InsightContext) -> str:
    """Assemble the single textual prompt sent to the generation service."""
    sections = [SYSTEM_INSTRUCTION]
    for index, (request, response) in enumerate(FEW_SHOT_EXAMPLES, start=1):
        sections.append(f"EXAMPLE {index}\n{request}\nRESPONSE:\n{response}")
    sections.append(render_context_block(context))
    return "\n\n".join(sections)
