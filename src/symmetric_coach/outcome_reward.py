"""Reward scoring for how a coaching message played out.

Each positive outcome adds a fixed weight, so the score is monotonic: adding
any single positive signal never lowers it.
"""

from __future__ import annotations

from dataclasses import dataclass

REWARD_WEIGHTS: dict[str, float] = {
    "plan_followed": 1.0,
    "quality_improved": 0.8,
    "readiness_rebounded": 0.5,
    "thumbs_up": 0.5,
    "dwell": 0.2,
}

MIN_DWELL_MS = 2500


@dataclass(frozen=True)
class OutcomeSignal:
    plan_followed: bool = False
    quality_improved: bool = False
    readiness_rebounded: bool = False
    thumbs_up: bool = False
    dwell_ms: float | None = None


def compute_reward(signal: OutcomeSignal) -> float:
    reward = 0.0
    if signal.plan_followed:
        reward += REWARD_WEIGHTS["plan_followed"]
    if signal.quality_improved:
        reward += REWARD_WEIGHTS["quality_improved"]
    if signal.readiness_rebounded:
        reward += REWARD_WEIGHTS["readiness_rebounded"]
    if signal.thumbs_up:
        reward += REWARD_WEIGHTS["thumbs_up"]
    if (signal.dwell_ms or 0) > MIN_DWELL_MS:
        reward += REWARD_WEIGHTS["dwell"]
    return reward
