"""Contention-free score bound used to gauge how much a schedule can still gain."""

from __future__ import annotations

from greenwave.network.domain_types import ScoringRules
from greenwave.network.road_network import RoadNetwork


def calculate_score_upper_bound(network: RoadNetwork, rules: ScoringRules) -> int:
    """Score if every car met green lights and empty intersections all the way.

    Cars whose minimum driving time already exceeds the horizon contribute
    nothing. No schedule can score above this value.
    """
    upper_bound = 0
    for car in network.cars:
        drive_time = car.time_needed_to_drive(rules.cars_start_queued)
        if drive_time > rules.duration:
            continue
        upper_bound += rules.bonus_per_car + (rules.duration - drive_time)
    return upper_bound


def score_headroom(score: int, upper_bound: int) -> float:
    """Fraction of the upper bound not yet achieved (0.0 when the bound is 0)."""
    if upper_bound <= 0:
        return 0.0
    return max(0.0, (upper_bound - score) / upper_bound)


__all__ = ["calculate_score_upper_bound", "score_headroom"]
