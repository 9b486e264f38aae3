"""Tests for the online fatigue phase estimator."""

import math

import pytest

from symmetric_coach.fatigue_detector import (
    FatigueDebug,
    FatigueDetector,
    FatigueDetectorConfig,
    FatigueSample,
    ListenerRegistry,
    PhaseTransition,
    phase_label,
)


def _detector(**overrides) -> FatigueDetector:
    defaults = dict(
        ewma_alpha=1.0,
        slope_lookback_sec=1.0,
        curvature_lookback_sec=2.0,
        plateau_curvature_threshold=1.0,
        plateau_slope_threshold=0.5,
        rise_min_duration_sec=1.0,
        plateau_min_duration_sec=1.0,
        fall_min_duration_sec=1.0,
        require_mdf_confirmation=False,
        noise_threshold=0.01,
    )
    defaults.update(overrides)
    return FatigueDetector(FatigueDetectorConfig(**defaults))


def _feed(detector: FatigueDetector, samples) -> None:
    for t, value, *rest in samples:
        secondary = rest[0] if rest else None
        detector.update(FatigueSample(time_sec=t, raw_value=value, secondary_value=secondary))


def _record_transitions(detector: FatigueDetector) -> list[PhaseTransition]:
    events: list[PhaseTransition] = []
    detector.on_transition(events.append)
    return events


def _rise_plateau_fall(secondary=None):
    """Ramp up for 6s, hold for 8s, then drop for 4s (one sample per second)."""
    samples = []
    for i in range(6):
        samples.append((float(i), i * 0.05, secondary(i) if secondary else None))
    for i in range(6, 14):
        samples.append((float(i), 0.35, secondary(i) if secondary else None))
    for i in range(14, 18):
        samples.append((float(i), 0.35 - (i - 13) * 0.06, secondary(i) if secondary else None))
    return samples


class TestConfig:
    def test_defaults(self):
        cfg = FatigueDetectorConfig()
        assert cfg.ewma_alpha == 0.25
        assert cfg.history_window_sec == 12.0
        assert cfg.fall_slope_threshold == -0.8
        assert cfg.require_mdf_confirmation is True

    @pytest.mark.parametrize("alpha", [0.0, -0.1, 1.5])
    def test_rejects_alpha_outside_unit_interval(self, alpha):
        with pytest.raises(ValueError, match="ewma_alpha"):
            FatigueDetectorConfig(ewma_alpha=alpha)

    def test_rejects_non_positive_window(self):
        with pytest.raises(ValueError, match="history_window_sec"):
            FatigueDetectorConfig(history_window_sec=0.0)


class TestTransitions:
    def test_steep_ramp_reaches_rising_with_exactly_one_event(self):
        detector = _detector(
            plateau_curvature_threshold=10.0,
            plateau_slope_threshold=1.0,
            plateau_min_duration_sec=0.1,
            noise_threshold=0.07,
        )
        events = _record_transitions(detector)

        _feed(detector, [(0, 0.0), (1, 0.2), (2, 0.4), (3, 0.6), (4, 0.8), (5, 1.0)])

        assert detector.phase == "rising"
        assert [e.phase for e in events] == ["rising"]
        assert events[0].previous_phase == "unknown"
        assert events[0].confidence == 0.75
        assert events[0].time_in_previous_phase_sec == 0.0

    def test_plateau_after_ramp(self):
        detector = _detector()
        events = _record_transitions(detector)

        for i in range(6):
            detector.update(FatigueSample(time_sec=float(i), raw_value=i * 0.08))
        for i in range(6, 30):
            detector.update(FatigueSample(time_sec=float(i), raw_value=0.48 + math.sin(i) * 0.003))

        phases = [e.phase for e in events]
        assert "plateauing" in phases
        assert phases[0] == "rising"
        plateau = next(e for e in events if e.phase == "plateauing")
        assert plateau.previous_phase == "rising"
        assert plateau.confidence == 0.70
        assert plateau.time_in_previous_phase_sec > 0.0

    def test_fall_after_plateau(self):
        detector = _detector()
        events = _record_transitions(detector)

        _feed(detector, _rise_plateau_fall())

        assert [e.phase for e in events] == ["rising", "plateauing", "falling"]
        assert events[-1].confidence == 0.80
        assert detector.phase == "falling"

    def test_fall_needs_sustained_duration(self):
        detector = _detector(fall_min_duration_sec=3.0)
        events = _record_transitions(detector)

        # Only two seconds of falling slope before the signal recovers.
        samples = _rise_plateau_fall()[:16] + [(16.0, 0.23), (17.0, 0.23)]
        _feed(detector, samples)

        assert "falling" not in [e.phase for e in events]

    def test_fall_blocked_when_mdf_does_not_confirm(self):
        detector = _detector(require_mdf_confirmation=True)
        events = _record_transitions(detector)

        _feed(detector, _rise_plateau_fall(secondary=lambda i: 0.5))

        assert "falling" not in [e.phase for e in events]
        assert detector.phase == "plateauing"

    def test_fall_confirmed_by_falling_mdf(self):
        detector = _detector(require_mdf_confirmation=True)
        events = _record_transitions(detector)

        _feed(
            detector,
            _rise_plateau_fall(secondary=lambda i: 0.5 if i < 14 else 0.5 - (i - 13) * 0.05),
        )

        assert events[-1].phase == "falling"

    def test_fall_allowed_when_mdf_unavailable(self):
        detector = _detector(require_mdf_confirmation=True)
        events = _record_transitions(detector)

        _feed(detector, _rise_plateau_fall())

        assert events[-1].phase == "falling"

    def test_sub_noise_signal_never_transitions(self):
        detector = _detector()
        events = _record_transitions(detector)

        for i in range(20):
            detector.update(FatigueSample(time_sec=i * 0.5, raw_value=0.002 * math.sin(i)))

        assert events == []
        assert detector.phase == "unknown"

    def test_constant_signal_never_transitions(self):
        detector = _detector(plateau_min_duration_sec=2.0)
        events = _record_transitions(detector)

        for i in range(30):
            detector.update(FatigueSample(time_sec=float(i), raw_value=0.4))

        assert events == []


class TestSampleHandling:
    def test_out_of_order_sample_is_ignored(self):
        detector = _detector()
        debug: list[FatigueDebug] = []
        _feed(detector, [(0, 0.0), (1, 0.2), (2, 0.4)])
        detector.on_debug(debug.append)

        before = (detector.history, detector.phase, detector.time_in_phase(2.0))
        detector.update(FatigueSample(time_sec=1.5, raw_value=5.0))

        assert (detector.history, detector.phase, detector.time_in_phase(2.0)) == before
        assert debug == []

    def test_equal_timestamp_is_accepted(self):
        detector = _detector()
        _feed(detector, [(0, 0.0), (1, 0.2)])
        detector.update(FatigueSample(time_sec=1.0, raw_value=0.3))
        assert len(detector.history) == 3

    def test_non_finite_values_are_ignored(self):
        detector = _detector()
        detector.update(FatigueSample(time_sec=0.0, raw_value=float("nan")))
        detector.update(FatigueSample(time_sec=float("inf"), raw_value=0.1))
        assert detector.history == ()

        detector.update(FatigueSample(time_sec=0.0, raw_value=0.1, secondary_value=float("nan")))
        assert detector.history[0].secondary_value is None

    def test_ewma_seeds_with_first_value(self):
        detector = FatigueDetector(FatigueDetectorConfig(ewma_alpha=0.5))
        _feed(detector, [(0, 0.4), (1, 0.8)])
        smoothed = [p.smoothed_value for p in detector.history]
        assert smoothed[0] == pytest.approx(0.4)
        assert smoothed[1] == pytest.approx(0.6)

    def test_history_evicts_points_outside_window(self):
        detector = FatigueDetector(FatigueDetectorConfig(history_window_sec=3.0))
        _feed(detector, [(float(i), 0.1 * i) for i in range(10)])
        times = [p.time for p in detector.history]
        assert times == [6.0, 7.0, 8.0, 9.0]


class TestDebugChannel:
    def test_debug_emitted_for_every_sample_after_the_first(self):
        detector = _detector()
        debug: list[FatigueDebug] = []
        detector.on_debug(debug.append)

        _feed(detector, [(0, 0.0), (1, 0.2), (2, 0.4), (3, 0.4)])

        assert len(debug) == 3
        assert debug[0].slope == pytest.approx(20.0)
        assert debug[0].curvature == 0.0
        assert debug[0].secondary_slope is None

    def test_noise_gate_zeroes_slope_but_not_curvature(self):
        detector = _detector(noise_threshold=0.05)
        debug: list[FatigueDebug] = []
        detector.on_debug(debug.append)

        _feed(detector, [(0, 0.0), (1, 0.2), (2, 0.21)])

        assert debug[-1].slope == 0.0
        assert debug[-1].curvature == pytest.approx(-19.0)

    def test_secondary_slope_uses_eight_second_lookback(self):
        detector = _detector()
        debug: list[FatigueDebug] = []
        detector.on_debug(debug.append)

        _feed(detector, [(float(i), 0.1, 1.0 - 0.01 * i) for i in range(10)])

        # Latest t=9, reference t=1 → (0.91 - 0.99) / 8 * 100
        assert debug[-1].secondary_slope == pytest.approx(-1.0)


class TestStateAccessors:
    def test_time_in_phase(self):
        detector = _detector(
            plateau_curvature_threshold=10.0,
            plateau_slope_threshold=1.0,
            noise_threshold=0.07,
        )
        assert detector.time_in_phase(5.0) == 0.0
        _feed(detector, [(0, 0.0), (1, 0.2), (2, 0.4)])
        assert detector.phase == "rising"
        assert detector.time_in_phase(4.0) == pytest.approx(3.0)
        assert detector.confidence == 0.75

    def test_reset_clears_everything(self):
        detector = _detector()
        _feed(detector, _rise_plateau_fall())
        detector.reset()

        assert detector.phase == "unknown"
        assert detector.history == ()
        assert detector.time_in_phase(100.0) == 0.0

        # Earlier timestamps are accepted again after a reset.
        detector.update(FatigueSample(time_sec=0.0, raw_value=0.1))
        assert len(detector.history) == 1

    def test_phase_labels(self):
        assert phase_label("rising") == "Rising"
        assert phase_label("plateauing") == "Plateauing"
        assert phase_label("falling") == "Falling"
        assert phase_label("unknown") == "Unknown"


class TestListenerRegistry:
    def test_dispatch_in_registration_order(self):
        registry: ListenerRegistry[int] = ListenerRegistry()
        calls: list[str] = []
        registry.subscribe(lambda e: calls.append("a"))
        registry.subscribe(lambda e: calls.append("b"))
        registry.subscribe(lambda e: calls.append("c"))

        registry.emit(1)

        assert calls == ["a", "b", "c"]

    def test_listener_can_unsubscribe_itself_mid_dispatch(self):
        registry: ListenerRegistry[int] = ListenerRegistry()
        calls: list[str] = []
        handles = {}

        def once(event):
            calls.append("once")
            handles["once"]()

        handles["once"] = registry.subscribe(once)
        registry.subscribe(lambda e: calls.append("always"))

        registry.emit(1)
        registry.emit(2)

        assert calls == ["once", "always", "always"]
        assert len(registry) == 1

    def test_listener_removed_mid_dispatch_is_skipped(self):
        registry: ListenerRegistry[int] = ListenerRegistry()
        calls: list[str] = []
        handles = {}

        def first(event):
            calls.append("first")
            handles["second"]()

        registry.subscribe(first)
        handles["second"] = registry.subscribe(lambda e: calls.append("second"))

        registry.emit(1)

        assert calls == ["first"]

    def test_unsubscribe_is_idempotent(self):
        registry: ListenerRegistry[int] = ListenerRegistry()
        unsubscribe = registry.subscribe(lambda e: None)
        unsubscribe()
        unsubscribe()
        assert len(registry) == 0

    def test_failing_listener_does_not_block_others(self):
        registry: ListenerRegistry[int] = ListenerRegistry()
        calls: list[int] = []

        def boom(event):
            raise RuntimeError("listener bug")

        registry.subscribe(boom)
        registry.subscribe(calls.append)

        registry.emit(7)

        assert calls == [7]

    def test_detector_unsubscribe_handle(self):
        detector = _detector()
        debug: list[FatigueDebug] = []
        unsubscribe = detector.on_debug(debug.append)

        _feed(detector, [(0, 0.0), (1, 0.2)])
        unsubscribe()
        _feed(detector, [(2, 0.4)])

        assert len(debug) == 1
