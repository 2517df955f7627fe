"""Repeated green-light order optimization with budget and best-so-far tracking.

:class:`ScheduleOptimizer` drives :meth:`TrafficSimulator.optimize_green_light_order`
until the evaluated score stops improving or the iteration/time budget runs
out, then hands back the best schedule it has seen together with its
read-only evaluation.

Each iteration
--------------
1. Run the reordering simulation on the working schedule (mutates phase order).
2. Evaluate the reordered schedule without mutation; this is the score that
   counts.
3. Keep a deep copy of the schedule whenever the evaluated score strictly
   improves on the best so far.

The working schedule passed by the caller ends in the best phase order found,
so it can be reused directly as the improved candidate. Durations and phase
membership never change, only order.

Example
-------
>>> network = RoadNetwork.build(2, [(0, 1, "in", 2), (1, 0, "out", 3)], [["in", "out"]])
>>> rules = ScoringRules(duration=10, bonus_per_car=1000)
>>> schedule = SignalSchedule.from_mapping({1: [("in", 3)]})
>>> result = ScheduleOptimizer(network, rules).run(schedule, OptimizerConfig(show_progress=False))
>>> result.best_score
1005
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from time import perf_counter
from typing import Dict, List

import pandas as pd
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)

from greenwave.network.domain_types import ScoringRules
from greenwave.network.road_network import RoadNetwork
from greenwave.schedule.optimizer_config import OptimizerConfig
from greenwave.schedule.signal_schedule import SignalSchedule

from .score_bounds import calculate_score_upper_bound, score_headroom
from .traffic_simulator import SimulationResult, TrafficSimulator

logger = logging.getLogger(__name__)

HISTORY_COLUMNS = [
    "iteration",
    "optimizer_score",
    "evaluated_score",
    "best_score",
    "improved",
    "elapsed_seconds",
]


@dataclass(frozen=True)
class OptimizationRunResult:
    """Structured payload returned by :meth:`ScheduleOptimizer.run`."""

    schedule: SignalSchedule
    simulation: SimulationResult
    initial_score: int
    upper_bound: int
    iterations: int
    history: pd.DataFrame
    stop_reason: str

    @property
    def best_score(self) -> int:
        return self.simulation.score

    @property
    def improvement(self) -> int:
        return self.best_score - self.initial_score

    @property
    def headroom(self) -> float:
        return score_headroom(self.best_score, self.upper_bound)


class ScheduleOptimizer:
    """Runs the reordering simulation until no further gain or the budget is spent."""

    def __init__(
        self,
        network: RoadNetwork,
        rules: ScoringRules,
        *,
        simulator: TrafficSimulator | None = None,
    ) -> None:
        self._network = network
        self._rules = rules
        self._simulator = simulator or TrafficSimulator(network, rules)

    def run(
        self,
        schedule: SignalSchedule,
        config: OptimizerConfig | None = None,
    ) -> OptimizationRunResult:
        """Optimize ``schedule`` in place and return the best evaluated schedule.

        Parameters
        ----------
        schedule:
            Starting schedule; left holding the best phase order found.
        config:
            Iteration/time budget and reporting options. Defaults to
            :class:`OptimizerConfig` defaults.
        """
        config = config or OptimizerConfig()
        simulator = self._simulator

        baseline = simulator.run_simulation(schedule)
        upper_bound = calculate_score_upper_bound(self._network, self._rules)
        logger.info(
            "Initial score %d (upper bound %d, headroom %.2f%%)",
            baseline.score,
            upper_bound,
            100.0 * score_headroom(baseline.score, upper_bound),
        )

        best_simulation = baseline
        best_schedule = schedule.copy()
        rows: List[Dict[str, object]] = []
        iterations = 0
        stale = 0
        stop_reason = "max_iterations"
        started = perf_counter()

        console = Console(stderr=True)
        progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("{task.completed}/{task.total}"),
            TimeElapsedColumn(),
            console=console,
            transient=True,
            disable=not (config.show_progress and console.is_terminal),
        )

        with progress:
            task_id = progress.add_task("Optimizing green-light order", total=config.max_iterations)
            for iteration in range(1, config.max_iterations + 1):
                optimizer_score = simulator.optimize_green_light_order(schedule)
                evaluation = simulator.run_simulation(schedule)
                improved = evaluation.score > best_simulation.score
                if improved:
                    best_simulation = evaluation
                    best_schedule = schedule.copy()
                    stale = 0
                else:
                    stale += 1

                elapsed = perf_counter() - started
                iterations = iteration
                rows.append(
                    {
                        "iteration": iteration,
                        "optimizer_score": optimizer_score,
                        "evaluated_score": evaluation.score,
                        "best_score": best_simulation.score,
                        "improved": improved,
                        "elapsed_seconds": elapsed,
                    }
                )
                progress.advance(task_id)
                if config.log_every and iteration % config.log_every == 0:
                    logger.info(
                        "Iteration %d: optimizer=%d evaluated=%d best=%d",
                        iteration,
                        optimizer_score,
                        evaluation.score,
                        best_simulation.score,
                    )

                if config.stop_when_no_improvement and stale >= config.patience:
                    stop_reason = "no_improvement"
                    break
                if config.time_budget_seconds is not None and elapsed >= config.time_budget_seconds:
                    stop_reason = "time_budget"
                    break

        schedule.phases = best_schedule.copy().phases
        logger.info(
            "Optimization stopped after %d iterations (%s): %d -> %d",
            iterations,
            stop_reason,
            baseline.score,
            best_simulation.score,
        )
        return OptimizationRunResult(
            schedule=best_schedule,
            simulation=best_simulation,
            initial_score=baseline.score,
            upper_bound=upper_bound,
            iterations=iterations,
            history=pd.DataFrame(rows, columns=HISTORY_COLUMNS),
            stop_reason=stop_reason,
        )


__all__ = ["OptimizationRunResult", "ScheduleOptimizer"]
