"""
Statistics and trends over past heart-rate readings.

All functions are pure and operate on in-memory ``HeartRateReading`` lists;
storing readings is up to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, NamedTuple, Optional, Sequence

from rppg_monitor.rate_estimator import Confidence, HeartRateResult

STABLE_CHANGE_PERCENT = 5
MIN_TREND_READINGS = 4


@dataclass(frozen=True)
class HeartRateReading:
    bpm: int
    measured_at: datetime
    confidence: Optional[Confidence] = None
    method: str = "webcam"

    @classmethod
    def from_result(
        cls, result: HeartRateResult, measured_at: datetime | None = None
    ) -> "HeartRateReading":
        if not result.valid:
            raise ValueError("Cannot record an invalid heart-rate result.")
        return cls(
            bpm=result.bpm,
            measured_at=measured_at or datetime.now(),
            confidence=result.confidence,
        )


class HeartRateStats(NamedTuple):
    average: int
    minimum: int
    maximum: int
    count: int
    latest: Optional[HeartRateReading]


class Trend(NamedTuple):
    direction: str       # "up" | "down" | "stable"
    change: int          # absolute percent change, 0 when stable


class GroupAverage(NamedTuple):
    label: str
    average: int
    readings: int


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values)


def summarize(readings: Sequence[HeartRateReading]) -> HeartRateStats:
    if not readings:
        return HeartRateStats(0, 0, 0, 0, None)
    bpms = [r.bpm for r in readings]
    return HeartRateStats(
        average=int(round(_mean(bpms))),
        minimum=min(bpms),
        maximum=max(bpms),
        count=len(bpms),
        latest=max(readings, key=lambda r: r.measured_at),
    )


def calculate_trend(readings: Sequence[HeartRateReading]) -> Trend:
    """
    Compare the newer half of *readings* with the older half.

    *readings* must be ordered newest first.  Fewer than four readings or a
    change under 5 % counts as stable.
    """
    if len(readings) < MIN_TREND_READINGS:
        return Trend("stable", 0)

    mid = len(readings) // 2
    recent_avg = _mean([r.bpm for r in readings[:mid]])
    older_avg = _mean([r.bpm for r in readings[mid:]])
    if older_avg == 0:
        return Trend("stable", 0)

    change = int(round((recent_avg - older_avg) / older_avg * 100))
    if abs(change) < STABLE_CHANGE_PERCENT:
        return Trend("stable", 0)
    return Trend("up" if change > 0 else "down", abs(change))


def daily_averages(
    readings: Sequence[HeartRateReading],
    group_by: str = "day",
    limit: int = 14,
) -> List[GroupAverage]:
    """
    Average BPM per calendar day (``"day"``) or ISO week (``"week"``), in
    chronological order, keeping the last *limit* groups.
    """
    if group_by not in ("day", "week"):
        raise ValueError(f"group_by must be 'day' or 'week', got {group_by!r}")

    groups: dict[str, List[int]] = {}
    for reading in sorted(readings, key=lambda r: r.measured_at):
        if group_by == "day":
            label = reading.measured_at.strftime("%b ") + str(reading.measured_at.day)
        else:
            label = f"W{reading.measured_at.isocalendar()[1]}"
        groups.setdefault(label, []).append(reading.bpm)

    averages = [
        GroupAverage(label, int(round(_mean(bpms))), len(bpms))
        for label, bpms in groups.items()
    ]
    return averages[-limit:]


def health_insight(stats: HeartRateStats, trend: Trend) -> str:
    avg = stats.average
    if avg == 0:
        return "Keep measuring to get personalized insights."

    if avg < 60:
        insight = (
            "Your resting heart rate is below average. This could indicate "
            "excellent cardiovascular fitness, or consult a healthcare provider "
            "if you feel symptoms."
        )
    elif avg <= 80:
        insight = (
            "Your heart rate is within the optimal resting range. This indicates "
            "good cardiovascular health."
        )
    elif avg <= 100:
        insight = (
            "Your heart rate is on the higher end of normal. Regular exercise and "
            "stress management can help lower it."
        )
    else:
        insight = (
            "Your average heart rate is elevated. Consider consulting a healthcare "
            "provider and focusing on relaxation techniques."
        )

    if trend.direction == "down" and trend.change > 5:
        insight += " Your heart rate has been trending lower, which is generally positive."
    elif trend.direction == "up" and trend.change > 10:
        insight += " Your heart rate has been trending upward. Monitor for stress or other factors."
    return insight
