"""Tick-by-tick traffic simulation under a signal schedule.

Two modes share one loop:

* :meth:`TrafficSimulator.run_simulation` scores a schedule and records, per
  intersection, every tick in which a car wanted to cross but could not. The
  schedule is left untouched.
* :meth:`TrafficSimulator.optimize_green_light_order` runs the same loop but,
  when a car waits on a red street, tries to swap that street's phase into the
  active slot. Only phases of equal duration are swapped and only while
  neither phase has let a car through in this run, so every intersection keeps
  its cycle length and phase-change timing. The schedule is mutated in place.

Ordering rules
--------------
At every tick the intersections first advance their phases, then the cars
whose arrival tick has come are processed in ``(arrival_tick, car index)``
order. An intersection lets at most one car through per tick. A car that
reaches its final street leaves the simulation; it completes when it reaches
the end of that street and earns ``bonus + (duration - completion_tick)`` if
that is within the horizon.
"""

from __future__ import annotations

import heapq
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

import pandas as pd

from greenwave.network.domain_types import ScoringRules
from greenwave.network.road_network import RoadNetwork
from greenwave.schedule.signal_schedule import GreenLightPhase, SignalSchedule

logger = logging.getLogger(__name__)


@dataclass
class IntersectionResult:
    """Blocked-traffic log for a single intersection."""

    intersection_id: int
    blocked_traffic: Counter = field(default_factory=Counter)

    def add_blocked_traffic(self, street_name: str) -> None:
        self.blocked_traffic[street_name] += 1

    @property
    def total_blocked(self) -> int:
        return sum(self.blocked_traffic.values())


@dataclass
class SimulationResult:
    """Score and diagnostics of one simulation run."""

    score: int
    intersection_results: List[IntersectionResult]
    completion_ticks: Dict[int, int] = field(default_factory=dict)
    cars_finished: int = 0
    ticks_simulated: int = 0

    @classmethod
    def empty(cls, num_intersections: int) -> "SimulationResult":
        return cls(
            score=0,
            intersection_results=[IntersectionResult(i) for i in range(num_intersections)],
        )

    def blocked_counts(self, intersection_id: int) -> Dict[str, int]:
        return dict(self.intersection_results[intersection_id].blocked_traffic)

    @property
    def total_blocked(self) -> int:
        return sum(result.total_blocked for result in self.intersection_results)

    def most_blocked(self, limit: int = 10) -> List[Tuple[int, str, int]]:
        """Top ``(intersection_id, street, blocked_ticks)`` entries."""
        entries = [
            (result.intersection_id, street, count)
            for result in self.intersection_results
            for street, count in result.blocked_traffic.items()
        ]
        entries.sort(key=lambda entry: (-entry[2], entry[0], entry[1]))
        return entries[:limit]

    def blocked_traffic_dataframe(self) -> pd.DataFrame:
        rows = [
            {"intersection_id": result.intersection_id, "street": street, "blocked_ticks": count}
            for result in self.intersection_results
            for street, count in result.blocked_traffic.items()
        ]
        df = pd.DataFrame(rows, columns=["intersection_id", "street", "blocked_ticks"])
        if df.empty:
            return df
        df = df.sort_values(
            ["intersection_id", "blocked_ticks", "street"], ascending=[True, False, True]
        )
        return df.reset_index(drop=True)


class TrafficSimulator:
    """Discrete-time simulator for one road network and scoring rules."""

    def __init__(self, network: RoadNetwork, rules: ScoringRules) -> None:
        self.network = network
        self.rules = rules

    # ---------------------------------------------------------------------- API --
    def run_simulation(self, schedule: SignalSchedule) -> SimulationResult:
        """Score ``schedule`` without modifying it."""
        return self._simulate(schedule, reorder_green_lights=False)

    def optimize_green_light_order(self, schedule: SignalSchedule) -> int:
        """Simulate while reordering equal-duration phases in place; return the run's score.

        A single run can score below :meth:`run_simulation` on the starting
        schedule: a swap that lets a waiting car through may hold back a later
        car on the swapped-out street.
        """
        return self.run_reordering_simulation(schedule).score

    def run_reordering_simulation(self, schedule: SignalSchedule) -> SimulationResult:
        """Same as :meth:`optimize_green_light_order` but with the full diagnostics."""
        return self._simulate(schedule, reorder_green_lights=True)

    # ----------------------------------------------------------------- internal --
    def _simulate(self, schedule: SignalSchedule, reorder_green_lights: bool) -> SimulationResult:
        schedule.validate(self.network)
        rules = self.rules
        cars = self.network.cars
        result = SimulationResult.empty(self.network.num_intersections)

        # Signal state lives here, never on the schedule.
        current_phase: Dict[int, int] = {}
        phase_changes: List[Tuple[int, int]] = []
        for intersection_id, phase_list in schedule.phases.items():
            if not phase_list:
                continue
            current_phase[intersection_id] = 0
            phase_changes.append((phase_list[0].duration, intersection_id))
        heapq.heapify(phase_changes)
        used_phases: Set[int] = set()

        street_numbers = [0] * len(cars)
        waiting: List[Tuple[int, int]] = []
        for car in cars:
            if car.route_length == 1:
                self._finish_car(result, car.index, car.time_needed_to_drive(rules.cars_start_queued))
                continue
            if rules.cars_start_queued:
                arrival = car.index - (len(cars) + 1)
            else:
                arrival = car.streets[0].length
            waiting.append((arrival, car.index))
        heapq.heapify(waiting)

        tick = 0
        while tick <= rules.duration and waiting:
            while phase_changes and phase_changes[0][0] <= tick:
                _, intersection_id = heapq.heappop(phase_changes)
                phase_list = schedule.phases[intersection_id]
                next_phase = (current_phase[intersection_id] + 1) % len(phase_list)
                current_phase[intersection_id] = next_phase
                heapq.heappush(phase_changes, (tick + phase_list[next_phase].duration, intersection_id))

            due: List[Tuple[int, int]] = []
            while waiting and waiting[0][0] <= tick:
                due.append(heapq.heappop(waiting))

            crossed: Set[int] = set()
            requeue: List[Tuple[int, int]] = []
            for arrival, index in due:
                car = cars[index]
                street = car.streets[street_numbers[index]]
                intersection_id = street.end_intersection
                intersection_result = result.intersection_results[intersection_id]

                if intersection_id in crossed:
                    intersection_result.add_blocked_traffic(street.name)
                    requeue.append((arrival, index))
                    continue

                phase_list = schedule.phases.get(intersection_id)
                if not phase_list:
                    intersection_result.add_blocked_traffic(street.name)
                    requeue.append((arrival, index))
                    continue

                active = current_phase[intersection_id]
                if phase_list[active].street != street.name:
                    rescued = reorder_green_lights and self._swap_into_active_slot(
                        schedule, intersection_id, active, street.name, used_phases
                    )
                    if not rescued:
                        intersection_result.add_blocked_traffic(street.name)
                        requeue.append((arrival, index))
                        continue

                crossed.add(intersection_id)
                if reorder_green_lights:
                    used_phases.add(id(phase_list[active]))

                street_numbers[index] += 1
                new_arrival = tick + car.streets[street_numbers[index]].length
                if street_numbers[index] == car.route_length - 1:
                    self._finish_car(result, index, new_arrival)
                else:
                    requeue.append((new_arrival, index))

            for entry in requeue:
                heapq.heappush(waiting, entry)
            tick += 1

        result.ticks_simulated = tick
        logger.debug(
            "Simulation %s: score=%d, cars finished=%d/%d, blocked=%d",
            "with reordering" if reorder_green_lights else "read-only",
            result.score,
            result.cars_finished,
            len(cars),
            result.total_blocked,
        )
        return result

    def _finish_car(self, result: SimulationResult, index: int, completion_tick: int) -> None:
        result.completion_ticks[index] = completion_tick
        if completion_tick <= self.rules.duration:
            result.cars_finished += 1
            result.score += self.rules.score_for(completion_tick)

    @staticmethod
    def _swap_into_active_slot(
        schedule: SignalSchedule,
        intersection_id: int,
        active: int,
        street_name: str,
        used_phases: Set[int],
    ) -> bool:
        phase_list = schedule.phases[intersection_id]
        active_phase = phase_list[active]
        if id(active_phase) in used_phases:
            return False

        required: Optional[int] = _find_phase(phase_list, street_name)
        if required is None:
            return False
        required_phase = phase_list[required]
        if id(required_phase) in used_phases:
            return False
        if required_phase.duration != active_phase.duration:
            return False

        schedule.swap_phases(intersection_id, active, required)
        return True


def _find_phase(phase_list: List[GreenLightPhase], street_name: str) -> Optional[int]:
    for position, phase in enumerate(phase_list):
        if phase.street == street_name:
            return position
    return None


__all__ = ["IntersectionResult", "SimulationResult", "TrafficSimulator"]
