"""Request/response contracts for coaching insights."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator

InsightSource = Literal["generated", "fallback"]
InsightType = Literal["info", "suggestion", "caution"]
InsightAction = Literal["continue_anyway", "end_set"]
InsightTag = Literal["Rising", "Plateauing", "Falling", "SymmetryOff", "NoFatigue"]
MetricName = Literal["RMS", "MDF", "RoR", "Symmetry"]
RorTrend = Literal["down", "flat", "up"]
Trigger = Literal["state", "checkpoint", "prefailure"]

FallbackReason = Literal["artifact", "low_confidence", "no_signal", "noise", "timeout", "error"]

INSIGHT_TAGS: tuple[str, ...] = ("Rising", "Plateauing", "Falling", "SymmetryOff", "NoFatigue")
INSIGHT_ACTIONS: tuple[str, ...] = ("continue_anyway", "end_set")
INSIGHT_TYPES: tuple[str, ...] = ("info", "suggestion", "caution")
METRIC_NAMES: tuple[str, ...] = ("RMS", "MDF", "RoR", "Symmetry")

SIGNAL_QUALITY_REASONS: frozenset[str] = frozenset({"artifact", "low_confidence", "no_signal", "noise"})


class UserInfo(BaseModel):
    id: str = "anon"
    experience: str = "intermediate"


class ExerciseInfo(BaseModel):
    name: str = ""
    phase: str = "set"
    rep: int = 0


class InsightMetrics(BaseModel):
    rms_change_pct_last_8s: float | None = None
    mdf_change_pct_last_8s: float | None = None
    ror_trend: RorTrend | None = None
    symmetry_pct_diff: float | None = None
    motion_artifact: float | None = None


class InsightLimits(BaseModel):
    speak_min_gap_sec: float = 6.0
    max_messages_per_set: int = 3
    artifact_threshold: float = 0.3


class InsightContext(BaseModel):
    """Everything the pipeline needs to gate and phrase one insight."""

    user: UserInfo = Field(default_factory=UserInfo)
    exercise: ExerciseInfo = Field(default_factory=ExerciseInfo)
    phase: Literal["unknown", "rising", "plateauing", "falling"]
    confidence: float
    readiness: float | None = None
    baseline_readiness: float | None = None
    fatigue_detected: bool | None = None
    rir: float | None = None
    symmetry_pct: float | None = None
    ror_trend: RorTrend | None = None
    strain: float | None = None
    rest_seconds: float | None = None
    notes: str | None = None
    metrics: InsightMetrics = Field(default_factory=InsightMetrics)
    limits: InsightLimits = Field(default_factory=InsightLimits)

    @field_validator("notes")
    @classmethod
    def trim_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None


class CitedMetric(BaseModel):
    name: MetricName
    value: str

    @field_validator("value")
    @classmethod
    def validate_value(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("value must not be empty")
        return cleaned


class Insight(BaseModel):
    source: InsightSource
    phase: str
    type: InsightType
    headline: str
    tags: list[InsightTag]
    actions: list[InsightAction] = Field(default_factory=list)
    rest_seconds: float = 0.0
    confidence: float
    cited_metric: CitedMetric | None = None


_PHASE_TAGS: dict[str, str] = {
    "rising": "Rising",
    "plateauing": "Plateauing",
    "falling": "Falling",
}


def phase_tag(phase: str) -> str:
    """Tag for a phase; no estimate yet reads as NoFatigue."""
    return _PHASE_TAGS.get(phase, "NoFatigue")
