"""Road network builder: intersections, streets and the vehicles routed over them."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, Iterable, List, Sequence, Tuple, Union

import pandas as pd

from .domain_types import Car, Intersection, Street

logger = logging.getLogger(__name__)

StreetRecord = Union[Street, Tuple[int, int, str, int]]


class RoadNetwork:
    """Static road network plus the vehicle routes driven over it.

    The network is validated on construction; once built it is treated as
    immutable apart from :meth:`prune_unused_streets`, which only shrinks the
    per-intersection incoming lists used by reporting and optimization code.
    """

    def __init__(
        self,
        num_intersections: int,
        streets: Dict[str, Street],
        cars: List[Car],
    ) -> None:
        if num_intersections < 0:
            raise ValueError("num_intersections must be non-negative.")
        self.num_intersections = int(num_intersections)
        self.streets = dict(streets)
        self.cars = list(cars)

        self._validate()

        self.intersections: List[Intersection] = [
            Intersection(id=i) for i in range(self.num_intersections)
        ]
        for street in self.streets.values():
            self.intersections[street.start_intersection].outgoing_streets.append(street)
            self.intersections[street.end_intersection].incoming_streets.append(street)
        # Pruning never touches this, schedules are checked against it.
        self._all_incoming = {
            intersection.id: frozenset(s.name for s in intersection.incoming_streets)
            for intersection in self.intersections
        }

        self._compute_usage_counters()
        logger.debug(
            "Built road network: %d intersections, %d streets, %d cars",
            self.num_intersections,
            len(self.streets),
            len(self.cars),
        )

    # ------------------------------------------------------------------ builders
    @classmethod
    def build(
        cls,
        num_intersections: int,
        streets: Iterable[StreetRecord],
        routes: Iterable[Sequence[str]],
    ) -> "RoadNetwork":
        """Build a network from street records and routes given as street names.

        Street records are either :class:`Street` objects or
        ``(start, end, name, length)`` tuples.
        """
        street_map: Dict[str, Street] = {}
        for record in streets:
            # Counters are per network, caller's Street objects are never shared.
            street = replace(record) if isinstance(record, Street) else _street_from_tuple(record)
            if street.name in street_map:
                raise ValueError(f"Duplicate street name {street.name!r}.")
            street_map[street.name] = street

        cars: List[Car] = []
        for index, route in enumerate(routes):
            if isinstance(route, str):
                raise TypeError(f"Route of car {index} must be a sequence of street names.")
            resolved = []
            for name in route:
                street = street_map.get(str(name))
                if street is None:
                    raise ValueError(f"Car {index} references unknown street {name!r}.")
                resolved.append(street)
            cars.append(Car(streets=tuple(resolved), index=index))
        return cls(num_intersections, street_map, cars)

    def _validate(self) -> None:
        for name, street in self.streets.items():
            if name != street.name:
                raise ValueError(f"Street registered as {name!r} is named {street.name!r}.")
            for label, node in (
                ("start", street.start_intersection),
                ("end", street.end_intersection),
            ):
                if node < 0 or node >= self.num_intersections:
                    raise ValueError(
                        f"Street {street.name!r} {label} intersection {node} is out of range "
                        f"[0, {self.num_intersections})."
                    )
            if street.length < 1:
                raise ValueError(f"Street {street.name!r} must have length >= 1.")

        for position, car in enumerate(self.cars):
            if car.index != position:
                raise ValueError(f"Car at position {position} carries index {car.index}.")
            if not car.streets:
                raise ValueError(f"Car {position} has an empty route.")
            for street in car.streets:
                if self.streets.get(street.name) is not street:
                    raise ValueError(
                        f"Car {position} references street {street.name!r} "
                        "which is not part of the network."
                    )

    def _compute_usage_counters(self) -> None:
        for street in self.streets.values():
            street.incoming_usage_count = 0
            street.cars_on_start = 0
        for car in self.cars:
            # The final street is never crossed, so it does not count as incoming traffic.
            for street in car.streets[:-1]:
                street.incoming_usage_count += 1
            car.streets[0].cars_on_start += 1

    # --------------------------------------------------------------------- API --
    def street(self, name: str) -> Street:
        try:
            return self.streets[name]
        except KeyError:
            raise KeyError(f"Unknown street {name!r}.") from None

    def is_incoming_street(self, intersection_id: int, street_name: str) -> bool:
        """True if the street ends at the intersection, ignoring any pruning."""
        return street_name in self._all_incoming.get(intersection_id, frozenset())

    def prune_unused_streets(self) -> int:
        """Drop incoming streets that no car ever crosses; return how many were dropped."""
        removed = 0
        for intersection in self.intersections:
            kept = [s for s in intersection.incoming_streets if s.incoming_usage_count > 0]
            removed += len(intersection.incoming_streets) - len(kept)
            intersection.incoming_streets = kept
        logger.info("Pruned %d unused incoming streets", removed)
        return removed

    def intersections_with_traffic(self) -> List[int]:
        """Ids of intersections that at least one car has to cross."""
        return [
            intersection.id
            for intersection in self.intersections
            if any(s.incoming_usage_count > 0 for s in intersection.incoming_streets)
        ]

    def usage_dataframe(self) -> pd.DataFrame:
        rows = [
            {
                "street": street.name,
                "start_intersection": street.start_intersection,
                "end_intersection": street.end_intersection,
                "length": street.length,
                "incoming_usage_count": street.incoming_usage_count,
                "cars_on_start": street.cars_on_start,
            }
            for street in self.streets.values()
        ]
        return pd.DataFrame(
            rows,
            columns=[
                "street",
                "start_intersection",
                "end_intersection",
                "length",
                "incoming_usage_count",
                "cars_on_start",
            ],
        )


def _street_from_tuple(record: Tuple[int, int, str, int]) -> Street:
    try:
        start, end, name, length = record
        return Street(
            name=str(name),
            start_intersection=int(start),
            end_intersection=int(end),
            length=int(length),
        )
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid street record {record!r}.") from exc


__all__ = ["RoadNetwork", "StreetRecord"]
