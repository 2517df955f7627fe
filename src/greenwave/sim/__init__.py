"""Simulation engine, schedule optimizer and score bounds."""

from .score_bounds import calculate_score_upper_bound, score_headroom
from .traffic_simulator import IntersectionResult, SimulationResult, TrafficSimulator

__all__ = [
    "IntersectionResult",
    "OptimizationRunResult",
    "ScheduleOptimizer",
    "SimulationResult",
    "TrafficSimulator",
    "calculate_score_upper_bound",
    "score_headroom",
]


def __getattr__(name):
    if name in {"ScheduleOptimizer", "OptimizationRunResult"}:
        from .schedule_optimizer import OptimizationRunResult, ScheduleOptimizer

        return {
            "ScheduleOptimizer": ScheduleOptimizer,
            "OptimizationRunResult": OptimizationRunResult,
        }[name]
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
