"""Rep-level fatigue zone classification from normalized RMS.

Complements the continuous estimator: once a set is segmented into reps,
each rep carries its RMS normalized to the session and a signal-confidence
score. The classifier places the set relative to a target rep window
(default reps 7-10) where productive fatigue should first show up.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal

Zone = Literal["building", "in_zone", "too_heavy_early", "too_light", "low_signal", "fall"]

ZONES: tuple[str, ...] = ("building", "in_zone", "too_heavy_early", "too_light", "low_signal", "fall")

EARLY_WINDOW_MAX_REP = 3
IN_ZONE_DRMS_MIN = 0.10
IN_ZONE_SLOPE_MIN = 0.02
DROP_AFTER_PEAK = 0.10
TOO_LIGHT_DRMS_MAX = 0.06
LOW_SIGNAL = 0.70
CONFIRM_REPS = 2
FALL_REP = 9

# An early surge has to clear the in-zone bars by this margin.
_EARLY_RISE_MARGIN = 0.08
_EARLY_SLOPE_MARGIN = 0.01


@dataclass(frozen=True)
class RepFeature:
    idx: int
    rms_norm: float
    signal_confidence: float
    rep_tempo_ok: bool | None = None
    rep_velocity: float | None = None


@dataclass(frozen=True)
class TargetRange:
    min_rep: int = 7
    max_rep: int = 10


TARGET_RANGE = TargetRange()


def _pct(a: float, b: float) -> float:
    return (b - a) / max(1e-6, a)


def _confirmed_rise(baseline: float, a: RepFeature, b: RepFeature, peak: float) -> bool:
    """Both reps clear the rise bar, the last step still climbs, and no drop off the peak."""
    dropped = _pct(peak, b.rms_norm) <= -DROP_AFTER_PEAK
    return (
        _pct(baseline, a.rms_norm) >= IN_ZONE_DRMS_MIN
        and _pct(baseline, b.rms_norm) >= IN_ZONE_DRMS_MIN
        and _pct(a.rms_norm, b.rms_norm) >= IN_ZONE_SLOPE_MIN
        and not dropped
    )


def determine_zone(reps: Sequence[RepFeature], target: TargetRange = TARGET_RANGE) -> Zone:
    n = len(reps)
    if not n:
        return "building"

    last = reps[-1]
    if last.signal_confidence < LOW_SIGNAL:
        return "low_signal"

    baseline = reps[0].rms_norm

    if last.idx <= EARLY_WINDOW_MAX_REP and n >= CONFIRM_REPS:
        prev = reps[-2]
        if (
            _pct(baseline, last.rms_norm) >= IN_ZONE_DRMS_MIN + _EARLY_RISE_MARGIN
            and _pct(prev.rms_norm, last.rms_norm) >= IN_ZONE_SLOPE_MIN + _EARLY_SLOPE_MARGIN
        ):
            return "too_heavy_early"

    if target.min_rep <= last.idx <= target.max_rep and n >= CONFIRM_REPS:
        peak = max(rep.rms_norm for rep in reps)
        if _confirmed_rise(baseline, reps[-2], last, peak):
            return "in_zone"

    if last.idx >= target.max_rep and _pct(baseline, last.rms_norm) < TOO_LIGHT_DRMS_MAX:
        return "too_light"

    if last.idx >= FALL_REP:
        return "fall"

    return "building"


def find_fatigue_rep(reps: Sequence[RepFeature], target: TargetRange = TARGET_RANGE) -> int | None:
    """Index of the first rep confirming productive fatigue inside the target window.

    Long sets (FALL_REP reps or more) without a confirmed rise fall back to the
    last rep's index.
    """
    if len(reps) < CONFIRM_REPS:
        return None

    baseline = reps[0].rms_norm
    for i in range(max(2, target.min_rep), min(target.max_rep, len(reps)) + 1):
        a, b = reps[i - 2], reps[i - 1]
        peak = max((rep.rms_norm for rep in reps[: b.idx]), default=b.rms_norm)
        if _confirmed_rise(baseline, a, b, peak):
            return b.idx

    if len(reps) >= FALL_REP:
        return reps[-1].idx
    return None
