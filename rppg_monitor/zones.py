"""Heart-rate zone lookup for display."""

from __future__ import annotations

from typing import NamedTuple


class HeartRateZone(NamedTuple):
    name: str
    color: str
    description: str


# (exclusive upper bound, zone); the last entry catches everything above
_ZONES = (
    (60, HeartRateZone("Resting", "blue", "Below normal resting rate")),
    (100, HeartRateZone("Normal", "green", "Healthy resting heart rate")),
    (140, HeartRateZone("Elevated", "yellow", "Moderate activity or stress")),
    (170, HeartRateZone("High", "orange", "Vigorous activity")),
)
_MAX_ZONE = HeartRateZone("Max", "red", "Maximum effort zone")


def heart_rate_zone(bpm: float) -> HeartRateZone:
    for upper, zone in _ZONES:
        if bpm < upper:
            return zone
    return _MAX_ZONE
