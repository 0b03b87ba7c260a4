"""
Lifecycle classification for sounds.

The stage is recomputed from scratch on every metrics pass; nothing is
carried over from the previous stage.
"""

from __future__ import annotations

from datetime import date

from trendintel.core.enums import LifecycleStage, TrendCycle

MAINSTREAM_PEAK_USAGE = 100_000
EMERGING_MAX_HISTORY = 3


def classify_lifecycle(
    peak_date: date | None,
    latest_date: date | None,
    velocity_7d: float,
    velocity_14d: float,
    history_length: int,
) -> LifecycleStage:
    """
    Map peak position and velocity to a lifecycle stage.

    - at peak and rising: growing if accelerating (v7 > v14), else peaking
    - past peak: declining
    - short history: emerging
    - otherwise: stable
    """
    at_peak = peak_date == latest_date
    if at_peak and velocity_7d > 0:
        if velocity_7d > velocity_14d:
            return LifecycleStage.GROWING
        return LifecycleStage.PEAKING
    if not at_peak:
        return LifecycleStage.DECLINING
    if history_length <= EMERGING_MAX_HISTORY:
        return LifecycleStage.EMERGING
    return LifecycleStage.STABLE


def derive_trend_cycle(stage: LifecycleStage, peak_usage: int) -> TrendCycle:
    """Social-context tier for a stage. Stable sounds read as declining."""
    if stage == LifecycleStage.EMERGING:
        return TrendCycle.EMERGING
    if stage == LifecycleStage.GROWING:
        return TrendCycle.GROWING
    if stage == LifecycleStage.PEAKING:
        return TrendCycle.PEAKING
    if stage == LifecycleStage.DECLINING and peak_usage > MAINSTREAM_PEAK_USAGE:
        return TrendCycle.MAINSTREAM
    return TrendCycle.DECLINING
