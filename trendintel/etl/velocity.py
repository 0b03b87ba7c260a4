"""
Growth velocity estimation.

Sounds: multi-window growth rates (count/day) over a daily usage history.
Templates: daily/weekly growth and a combined velocity score over daily views.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Mapping

from trendintel.core.enums import TrendDirection
from trendintel.etl.dto import TrendDataDTO
from trendintel.etl.errors import ValidationError

VELOCITY_WINDOWS = (7, 14, 30)

# How far the nearest history date may sit from a window's target date
WINDOW_TOLERANCE_DAYS = 3


@dataclass(frozen=True)
class VelocityEstimate:
    velocity_7d: float = 0.0
    velocity_14d: float = 0.0
    velocity_30d: float = 0.0
    # Windows that found a history date within tolerance
    windows: tuple[int, ...] = ()
    trend: TrendDirection = TrendDirection.STABLE
    peak_usage: int = 0
    peak_date: date | None = None
    latest_date: date | None = None
    history_length: int = 0
    has_sufficient_history: bool = False

    def velocity(self, window: int) -> float:
        return {7: self.velocity_7d, 14: self.velocity_14d, 30: self.velocity_30d}[window]

    def window_has_data(self, window: int) -> bool:
        return window in self.windows


@dataclass(frozen=True)
class TemplateVelocity:
    daily_growth: float = 0.0
    weekly_growth: float = 0.0
    velocity_score: float = 0.0
    data_points: int = 0
    notes: tuple[str, ...] = field(default_factory=tuple)


def _parse_history(history: Mapping[date | str, int]) -> dict[date, int]:
    parsed: dict[date, int] = {}
    for key, value in history.items():
        if isinstance(key, date):
            day = key
        else:
            try:
                day = date.fromisoformat(str(key)[:10])
            except ValueError as e:
                raise ValidationError(
                    f"Unparseable usage history date: {key!r}", original_error=e
                ) from e
        parsed[day] = value
    return parsed


def find_window_date(dates: list[date], latest: date, days_ago: int) -> date | None:
    """
    Return the history date closest to `latest - days_ago`.

    Only dates within WINDOW_TOLERANCE_DAYS of the target qualify. On an
    exact tie the earliest date (first in sorted order) wins.
    """
    target = latest - timedelta(days=days_ago)
    closest = None
    min_diff = None
    for day in dates:
        diff = abs((day - target).days)
        if min_diff is None or diff < min_diff:
            min_diff = diff
            closest = day
    if min_diff is None or min_diff > WINDOW_TOLERANCE_DAYS:
        return None
    return closest


def estimate_velocity(usage_history: Mapping[date | str, int]) -> VelocityEstimate:
    """
    Estimate 7/14/30-day growth velocity from a usage history.

    With fewer than two distinct dates there is nothing to measure: the
    estimate is all zeros with has_sufficient_history=False.

    Raises:
        ValidationError: If a history key is not an ISO date
    """
    history = _parse_history(usage_history)
    dates = sorted(history)

    if len(dates) < 2:
        only = dates[0] if dates else None
        return VelocityEstimate(
            peak_usage=history[only] if only else 0,
            peak_date=only,
            latest_date=only,
            history_length=len(dates),
        )

    latest = dates[-1]
    latest_value = history[latest]

    velocities: dict[int, float] = {}
    windows = []
    for window in VELOCITY_WINDOWS:
        found = find_window_date(dates, latest, window)
        if found is None:
            velocities[window] = 0.0
            continue
        windows.append(window)
        days_diff = (latest - found).days
        velocities[window] = (
            (latest_value - history[found]) / days_diff if days_diff > 0 else 0.0
        )

    if velocities[7] > 0:
        trend = TrendDirection.RISING
    elif velocities[7] < 0:
        trend = TrendDirection.FALLING
    else:
        trend = TrendDirection.STABLE

    # Strict ">" keeps the earliest date on ties; an all-zero history peaks at latest
    peak_usage = 0
    peak_date = latest
    for day in dates:
        if history[day] > peak_usage:
            peak_usage = history[day]
            peak_date = day

    return VelocityEstimate(
        velocity_7d=velocities[7],
        velocity_14d=velocities[14],
        velocity_30d=velocities[30],
        windows=tuple(windows),
        trend=trend,
        peak_usage=peak_usage,
        peak_date=peak_date,
        latest_date=latest,
        history_length=len(dates),
        has_sufficient_history=True,
    )


def estimate_template_velocity(trend_data: TrendDataDTO) -> TemplateVelocity:
    """
    Score how fast a template is trending.

    daily_growth is the % change between the last two daily-view points,
    weekly_growth is the stored growth_rate, and the score rewards
    acceleration (daily outpacing weekly).
    """
    weekly_growth = trend_data.growth_rate
    dates = sorted(trend_data.daily_views)

    if len(dates) < 2:
        return TemplateVelocity(
            weekly_growth=weekly_growth,
            data_points=len(dates),
            notes=("insufficient daily views",),
        )

    last_value = trend_data.daily_views[dates[-1]] or 0
    prev_value = trend_data.daily_views[dates[-2]] or 0
    daily_growth = ((last_value - prev_value) / prev_value) * 100 if prev_value > 0 else 0.0

    velocity_score = (daily_growth + weekly_growth) / 2
    if daily_growth > weekly_growth:
        velocity_score += (daily_growth - weekly_growth) / 2

    return TemplateVelocity(
        daily_growth=daily_growth,
        weekly_growth=weekly_growth,
        velocity_score=velocity_score,
        data_points=len(dates),
    )
