"""Online fatigue phase estimator for a single working set.

Consumes a normalized activation signal (RMS) sample by sample, smooths it
with an EWMA, estimates slope and curvature over short lookbacks, and drives
a hysteresis state machine over three live phases:

  - rising: activation climbing steadily (recruitment building)
  - plateauing: activation flat with little curvature (holding output)
  - falling: activation dropping, optionally confirmed by a falling MDF

Memory is bounded by the history window; every update is O(window).
"""

from __future__ import annotations

import logging
import math
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, Literal, TypeVar

logger = logging.getLogger(__name__)

Phase = Literal["unknown", "rising", "plateauing", "falling"]

PHASES: tuple[str, ...] = ("unknown", "rising", "plateauing", "falling")

PHASE_LABELS: dict[str, str] = {
    "unknown": "Unknown",
    "rising": "Rising",
    "plateauing": "Plateauing",
    "falling": "Falling",
}

# Confidence belongs to the phase, not to the estimate quality.
PHASE_CONFIDENCE: dict[str, float] = {
    "rising": 0.75,
    "plateauing": 0.70,
    "falling": 0.80,
}

MDF_LOOKBACK_SEC = 8.0
_EPSILON_SEC = 1e-3


def phase_label(phase: str) -> str:
    return PHASE_LABELS.get(phase, "Unknown")


@dataclass(frozen=True)
class FatigueDetectorConfig:
    ewma_alpha: float = 0.25
    slope_lookback_sec: float = 3.0
    curvature_lookback_sec: float = 6.0
    history_window_sec: float = 12.0
    noise_threshold: float = 0.07
    rise_slope_threshold: float = 1.0
    rise_min_duration_sec: float = 3.0
    plateau_slope_threshold: float = 0.25
    plateau_curvature_threshold: float = 0.15
    plateau_min_duration_sec: float = 6.0
    fall_slope_threshold: float = -0.8
    fall_min_duration_sec: float = 3.0
    mdf_fall_slope_threshold: float = -0.5
    require_mdf_confirmation: bool = True

    def __post_init__(self) -> None:
        if not 0.0 < self.ewma_alpha <= 1.0:
            raise ValueError(f"ewma_alpha must be in (0, 1], got {self.ewma_alpha}")
        if self.history_window_sec <= 0.0:
            raise ValueError("history_window_sec must be positive")
        if self.slope_lookback_sec < 0.0 or self.curvature_lookback_sec < 0.0:
            raise ValueError("lookback windows must not be negative")
        if self.noise_threshold < 0.0:
            raise ValueError("noise_threshold must not be negative")


@dataclass(frozen=True)
class FatigueSample:
    time_sec: float
    raw_value: float
    secondary_value: float | None = None


@dataclass(frozen=True)
class HistoryPoint:
    time: float
    raw_value: float
    smoothed_value: float
    secondary_value: float | None = None


@dataclass(frozen=True)
class PhaseTransition:
    phase: str
    confidence: float
    previous_phase: str
    time_in_previous_phase_sec: float


@dataclass(frozen=True)
class FatigueDebug:
    slope: float
    curvature: float
    secondary_slope: float | None = None


E = TypeVar("E")


class ListenerRegistry(Generic[E]):
    """Ordered listener set that tolerates (un)subscription during dispatch.

    Dispatch iterates over a snapshot taken when emit() starts, so a listener
    removing itself (or another listener) never disturbs the loop. A listener
    removed mid-dispatch that has not yet been called is skipped.
    """

    def __init__(self) -> None:
        self._slots: dict[int, Callable[[E], None]] = {}
        self._next_id = 0

    def __len__(self) -> int:
        return len(self._slots)

    def subscribe(self, listener: Callable[[E], None]) -> Callable[[], None]:
        slot = self._next_id
        self._next_id += 1
        self._slots[slot] = listener

        def unsubscribe() -> None:
            self._slots.pop(slot, None)

        return unsubscribe

    def emit(self, event: E) -> None:
        for slot, listener in list(self._slots.items()):
            if slot not in self._slots:
                continue
            try:
                listener(event)
            except Exception:
                logger.exception("Fatigue listener %r failed", listener)


def _finite(value: float | None) -> bool:
    return value is not None and isinstance(value, (int, float)) and math.isfinite(value)


class FatigueDetector:
    """Hysteresis-based fatigue phase estimator.

    Usage:
        detector = FatigueDetector()
        unsubscribe = detector.on_transition(lambda event: print(event.phase))
        detector.update(FatigueSample(time_sec=0.0, raw_value=0.42))
    """

    def __init__(self, config: FatigueDetectorConfig | None = None) -> None:
        self.config = config or FatigueDetectorConfig()
        self._history: deque[HistoryPoint] = deque()
        self._transition_listeners: ListenerRegistry[PhaseTransition] = ListenerRegistry()
        self._debug_listeners: ListenerRegistry[FatigueDebug] = ListenerRegistry()
        self.reset()

    def reset(self) -> None:
        self._history.clear()
        self._phase: str = "unknown"
        self._phase_entered_at: float | None = None
        self._last_update_sec: float | None = None
        self._rise_accum = 0.0
        self._plateau_accum = 0.0
        self._fall_accum = 0.0
        self._last_slope: float | None = None
        self._previous_slope: float | None = None

    @property
    def phase(self) -> str:
        return self._phase

    @property
    def confidence(self) -> float:
        return PHASE_CONFIDENCE.get(self._phase, 0.0)

    @property
    def history(self) -> tuple[HistoryPoint, ...]:
        return tuple(self._history)

    def time_in_phase(self, now_sec: float) -> float:
        if self._phase_entered_at is None:
            return 0.0
        return max(0.0, now_sec - self._phase_entered_at)

    def on_transition(self, listener: Callable[[PhaseTransition], None]) -> Callable[[], None]:
        return self._transition_listeners.subscribe(listener)

    def on_debug(self, listener: Callable[[FatigueDebug], None]) -> Callable[[], None]:
        return self._debug_listeners.subscribe(listener)

    def update(self, sample: FatigueSample) -> None:
        now = sample.time_sec
        if not _finite(now) or not _finite(sample.raw_value):
            return
        if self._last_update_sec is not None and now < self._last_update_sec:
            return
        self._last_update_sec = now

        cfg = self.config
        raw = float(sample.raw_value)
        secondary = float(sample.secondary_value) if _finite(sample.secondary_value) else None

        prev_smoothed = self._history[-1].smoothed_value if self._history else raw
        smoothed = prev_smoothed + cfg.ewma_alpha * (raw - prev_smoothed)

        self._history.append(
            HistoryPoint(time=now, raw_value=raw, smoothed_value=smoothed, secondary_value=secondary)
        )
        while self._history and now - self._history[0].time > cfg.history_window_sec:
            self._history.popleft()

        if len(self._history) < 2:
            return

        slope = self._compute_slope(now)
        curvature = self._compute_curvature(now)
        secondary_slope = self._compute_secondary_slope(now)

        reference = self._point_at(now - cfg.slope_lookback_sec).smoothed_value
        effective_slope = 0.0 if abs(smoothed - reference) < cfg.noise_threshold else slope

        self._update_accumulators(now, effective_slope, curvature)
        next_phase = self._decide_phase(secondary_slope)

        if next_phase != self._phase:
            previous = self._phase
            time_in_previous = (
                now - self._phase_entered_at if self._phase_entered_at is not None else 0.0
            )
            self._phase = next_phase
            self._phase_entered_at = now
            self._transition_listeners.emit(
                PhaseTransition(
                    phase=next_phase,
                    confidence=PHASE_CONFIDENCE[next_phase],
                    previous_phase=previous,
                    time_in_previous_phase_sec=time_in_previous,
                )
            )

        self._debug_listeners.emit(
            FatigueDebug(slope=effective_slope, curvature=curvature, secondary_slope=secondary_slope)
        )

    def _point_at(self, target_time: float) -> HistoryPoint:
        """Most recent point at or before target_time, else the oldest point."""
        for point in reversed(self._history):
            if point.time <= target_time:
                return point
        return self._history[0]

    def _compute_slope(self, now: float) -> float:
        earlier = self._point_at(now - self.config.slope_lookback_sec)
        latest = self._history[-1]
        delta_time = max(_EPSILON_SEC, latest.time - earlier.time)
        slope = (latest.smoothed_value - earlier.smoothed_value) / delta_time * 100.0
        self._previous_slope = self._last_slope
        self._last_slope = slope
        return slope

    def _compute_curvature(self, now: float) -> float:
        if self._previous_slope is None or self._last_slope is None:
            return 0.0
        delta_time = now - self._history[-2].time
        return (self._last_slope - self._previous_slope) / max(_EPSILON_SEC, delta_time)

    def _compute_secondary_slope(self, now: float) -> float | None:
        latest = self._history[-1]
        if latest.secondary_value is None:
            return None
        earlier = self._point_at(now - MDF_LOOKBACK_SEC)
        if earlier.secondary_value is None:
            return None
        delta_time = max(_EPSILON_SEC, latest.time - earlier.time)
        return (latest.secondary_value - earlier.secondary_value) / delta_time * 100.0

    def _update_accumulators(self, now: float, slope: float, curvature: float) -> None:
        cfg = self.config
        elapsed = now - self._history[-2].time

        if slope >= cfg.rise_slope_threshold:
            self._rise_accum += elapsed
        else:
            self._rise_accum = 0.0

        if abs(slope) <= cfg.plateau_slope_threshold and abs(curvature) <= cfg.plateau_curvature_threshold:
            self._plateau_accum += elapsed
        else:
            self._plateau_accum = 0.0

        if slope <= cfg.fall_slope_threshold:
            self._fall_accum += elapsed
        else:
            self._fall_accum = 0.0

    def _decide_phase(self, secondary_slope: float | None) -> str:
        cfg = self.config

        # Nearly flat window (e.g. right after reset): hold whatever we have.
        total_delta = abs(self._history[-1].smoothed_value - self._history[0].smoothed_value)
        if total_delta < cfg.noise_threshold:
            return self._phase

        if self._fall_accum >= cfg.fall_min_duration_sec:
            if (
                not cfg.require_mdf_confirmation
                or secondary_slope is None
                or secondary_slope <= cfg.mdf_fall_slope_threshold
            ):
                return "falling"

        if self._rise_accum >= cfg.rise_min_duration_sec:
            return "rising"

        if self._plateau_accum >= cfg.plateau_min_duration_sec:
            return "plateauing"

        return self._phase
