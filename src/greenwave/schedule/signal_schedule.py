"""Signal schedule: ordered green-light phases per intersection."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Iterable, List, Mapping, Tuple

if TYPE_CHECKING:  # pragma: no cover
    from greenwave.network.road_network import RoadNetwork


@dataclass(frozen=True)
class GreenLightPhase:
    """One street holding the right of way for ``duration`` ticks.

    Phases are immutable; optimizers only move them between positions.
    """

    street: str
    duration: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "street", str(self.street))
        if isinstance(self.duration, bool) or not isinstance(self.duration, int):
            raise TypeError(f"Phase duration for {self.street!r} must be an integer.")
        if self.duration < 1:
            raise ValueError(f"Phase duration for {self.street!r} must be >= 1.")

    def to_dict(self) -> Dict[str, object]:
        return {"street": self.street, "duration": self.duration}


@dataclass
class SignalSchedule:
    """Green-light phases keyed by intersection id.

    Intersections without an entry have no phases and keep every incoming
    street red for the whole run.
    """

    phases: Dict[int, List[GreenLightPhase]] = field(default_factory=dict)

    # ---------------------------------------------------------------- builders --
    @classmethod
    def from_mapping(cls, payload: Mapping[object, Iterable[object]]) -> "SignalSchedule":
        """Build a schedule from ``{intersection: [(street, duration) | {...}, ...]}``."""
        phases: Dict[int, List[GreenLightPhase]] = {}
        for raw_id, raw_phases in payload.items():
            try:
                intersection_id = int(raw_id)
            except (TypeError, ValueError) as exc:
                raise ValueError(f"Invalid intersection id {raw_id!r}.") from exc
            if intersection_id in phases:
                raise ValueError(f"Intersection {intersection_id} listed twice.")
            phases[intersection_id] = [_coerce_phase(raw, intersection_id) for raw in raw_phases]
        return cls(phases=phases)

    def to_mapping(self) -> Dict[int, List[Tuple[str, int]]]:
        return {
            intersection_id: [(phase.street, phase.duration) for phase in phase_list]
            for intersection_id, phase_list in sorted(self.phases.items())
            if phase_list
        }

    def copy(self) -> "SignalSchedule":
        """Deep copy with independent phase lists and phase records."""
        return SignalSchedule(phases=copy.deepcopy(self.phases))

    # --------------------------------------------------------------- accessors --
    def phases_for(self, intersection_id: int) -> List[GreenLightPhase]:
        return self.phases.get(intersection_id, [])

    def cycle_length(self, intersection_id: int) -> int:
        return sum(phase.duration for phase in self.phases_for(intersection_id))

    def total_cycle_lengths(self) -> Dict[int, int]:
        return {intersection_id: self.cycle_length(intersection_id) for intersection_id in self.phases}

    def scheduled_intersections(self) -> List[int]:
        return sorted(intersection_id for intersection_id, p in self.phases.items() if p)

    # ---------------------------------------------------------------- mutation --
    def swap_phases(self, intersection_id: int, first: int, second: int) -> None:
        """Exchange two phase positions; only equal durations may trade places."""
        phase_list = self.phases_for(intersection_id)
        a, b = phase_list[first], phase_list[second]
        if a.duration != b.duration:
            raise ValueError(
                f"Cannot swap phases {first} and {second} at intersection {intersection_id}: "
                f"durations differ ({a.duration} != {b.duration})."
            )
        phase_list[first], phase_list[second] = b, a

    # -------------------------------------------------------------- validation --
    def validate(self, network: "RoadNetwork") -> None:
        """Reject phases that reference unknown or non-incoming streets."""
        for intersection_id, phase_list in self.phases.items():
            if intersection_id < 0 or intersection_id >= network.num_intersections:
                raise ValueError(
                    f"Schedule intersection {intersection_id} is out of range "
                    f"[0, {network.num_intersections})."
                )
            for phase in phase_list:
                if phase.street not in network.streets:
                    raise ValueError(
                        f"Schedule for intersection {intersection_id} references "
                        f"unknown street {phase.street!r}."
                    )
                if not network.is_incoming_street(intersection_id, phase.street):
                    raise ValueError(
                        f"Street {phase.street!r} does not end at intersection {intersection_id}."
                    )
                if phase.duration < 1:
                    raise ValueError(
                        f"Phase {phase.street!r} at intersection {intersection_id} "
                        "must last at least one tick."
                    )


def _coerce_phase(raw: object, intersection_id: int) -> GreenLightPhase:
    if isinstance(raw, GreenLightPhase):
        return GreenLightPhase(street=raw.street, duration=raw.duration)
    if isinstance(raw, Mapping):
        if "street" not in raw or "duration" not in raw:
            raise ValueError(
                f"Phase entries for intersection {intersection_id} need 'street' and 'duration'."
            )
        street, duration = raw["street"], raw["duration"]
    else:
        try:
            street, duration = raw  # type: ignore[misc]
        except (TypeError, ValueError) as exc:
            raise ValueError(
                f"Invalid phase {raw!r} for intersection {intersection_id}; "
                "expected (street, duration)."
            ) from exc
    try:
        duration_value = int(duration)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid duration {duration!r} for street {street!r}.") from exc
    return GreenLightPhase(street=str(street), duration=duration_value)


__all__ = ["GreenLightPhase", "SignalSchedule"]
