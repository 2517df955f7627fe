"""Road network and vehicle route model."""

from .domain_types import Car, Intersection, ScoringRules, Street
from .road_network import RoadNetwork

__all__ = [
    "Car",
    "Intersection",
    "RoadNetwork",
    "ScoringRules",
    "Street",
]
