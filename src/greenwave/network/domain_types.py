"""Core dataclasses shared across the network package."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Tuple


@dataclass(eq=False)
class Street:
    """Directed street between two intersections.

    ``incoming_usage_count`` and ``cars_on_start`` are derived from the vehicle
    set by :class:`~greenwave.network.road_network.RoadNetwork` and are not
    part of the constructor.
    """

    name: str
    start_intersection: int
    end_intersection: int
    length: int
    incoming_usage_count: int = field(default=0, init=False)
    cars_on_start: int = field(default=0, init=False)

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.name} ({self.start_intersection}->{self.end_intersection}, {self.length})"


@dataclass
class Intersection:
    """Node of the road network with its incoming and outgoing streets."""

    id: int
    incoming_streets: List[Street] = field(default_factory=list)
    outgoing_streets: List[Street] = field(default_factory=list)


@dataclass(frozen=True)
class Car:
    """Vehicle identified by its ordered route."""

    streets: Tuple[Street, ...]
    index: int

    @property
    def route_length(self) -> int:
        return len(self.streets)

    @property
    def final_street(self) -> Street:
        return self.streets[-1]

    def time_needed_to_drive(self, start_queued: bool = False) -> int:
        """Minimum completion tick when no intersection ever makes the car wait."""
        route = self.streets[1:] if start_queued else self.streets
        return sum(street.length for street in route)


@dataclass(frozen=True)
class ScoringRules:
    """Simulation horizon and per-car bonus.

    With ``cars_start_queued`` every car begins at the end of its first street,
    queued in vehicle order; otherwise it enters the first street at tick 0.
    """

    duration: int
    bonus_per_car: int
    cars_start_queued: bool = False

    def __post_init__(self) -> None:
        if self.duration < 0:
            raise ValueError("Simulation duration must be non-negative.")
        if self.bonus_per_car < 0:
            raise ValueError("bonus_per_car must be non-negative.")

    def score_for(self, completion_tick: int) -> int:
        """Points earned by a car that reaches the end of its route at ``completion_tick``."""
        if completion_tick > self.duration:
            return 0
        return self.bonus_per_car + (self.duration - completion_tick)
