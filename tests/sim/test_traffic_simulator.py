from __future__ import annotations

import pytest

from greenwave.network.domain_types import ScoringRules
from greenwave.network.road_network import RoadNetwork
from greenwave.schedule.signal_schedule import SignalSchedule
from greenwave.sim.score_bounds import calculate_score_upper_bound, score_headroom
from greenwave.sim.traffic_simulator import TrafficSimulator


def _make_corridor(routes) -> RoadNetwork:
    # 0 --in(2)--> 1 --out(3)--> 0
    return RoadNetwork.build(2, [(0, 1, "in", 2), (1, 0, "out", 3)], routes)


def _make_junction(routes, b_length: int = 1) -> RoadNetwork:
    # Two approaches into intersection 1, one exit back to 0.
    return RoadNetwork.build(
        3,
        [(0, 1, "a", 1), (2, 1, "b", b_length), (1, 0, "c", 1)],
        routes,
    )


def _simulator(network: RoadNetwork, duration: int, bonus: int, queued: bool = False) -> TrafficSimulator:
    return TrafficSimulator(
        network, ScoringRules(duration=duration, bonus_per_car=bonus, cars_start_queued=queued)
    )


def test_single_car_crosses_green_intersection():
    network = _make_corridor([["in", "out"]])
    schedule = SignalSchedule.from_mapping({1: [("in", 3)]})

    result = _simulator(network, 10, 1000).run_simulation(schedule)

    assert result.score == 1005
    assert result.cars_finished == 1
    assert result.completion_ticks == {0: 5}
    assert result.total_blocked == 0


def test_second_car_waits_one_tick_at_shared_intersection():
    network = _make_corridor([["in", "out"], ["in", "out"]])
    schedule = SignalSchedule.from_mapping({1: [("in", 3)]})

    result = _simulator(network, 10, 1000).run_simulation(schedule)

    # Car 0 wins the tie on its index; car 1 loses one tick of bonus.
    assert result.completion_ticks == {0: 5, 1: 6}
    assert result.score == 1005 + 1004
    assert result.blocked_counts(1) == {"in": 1}
    assert result.blocked_counts(0) == {}


def test_evaluation_is_repeatable_and_read_only():
    network = _make_junction([["a", "c"], ["b", "c"], ["b", "c"]])
    schedule = SignalSchedule.from_mapping({1: [("a", 2), ("b", 2)]})
    simulator = _simulator(network, 12, 50)

    first = simulator.run_simulation(schedule)
    second = simulator.run_simulation(schedule)

    assert first.score == second.score
    assert first.completion_ticks == second.completion_ticks
    assert first.blocked_counts(1) == second.blocked_counts(1)
    assert schedule.to_mapping() == {1: [("a", 2), ("b", 2)]}


def test_phases_rotate_round_robin():
    network = _make_junction([["b", "c"]])
    schedule = SignalSchedule.from_mapping({1: [("a", 2), ("b", 2)]})

    result = _simulator(network, 10, 100).run_simulation(schedule)

    # "b" reaches the light at tick 1 while "a" is green, crosses at tick 2.
    assert result.blocked_counts(1) == {"b": 1}
    assert result.completion_ticks == {0: 3}
    assert result.score == 107


def test_intersection_without_phases_blocks_forever():
    network = _make_corridor([["in", "out"]])

    result = _simulator(network, 10, 1000).run_simulation(SignalSchedule())

    assert result.score == 0
    assert result.cars_finished == 0
    assert result.completion_ticks == {}
    assert result.blocked_counts(1) == {"in": 9}  # ticks 2..10


@pytest.mark.parametrize(
    "duration, queued, expected",
    [
        (10, False, 1000 + 7),
        (3, False, 1000),
        (2, False, 0),
        (10, True, 1000 + 10),
    ],
)
def test_single_street_route(duration, queued, expected):
    network = _make_corridor([["out"]])

    result = _simulator(network, duration, 1000, queued).run_simulation(SignalSchedule())

    assert result.score == expected


def test_late_completion_scores_nothing():
    network = _make_corridor([["in", "out"]])
    schedule = SignalSchedule.from_mapping({1: [("in", 1)]})

    result = _simulator(network, 4, 1000).run_simulation(schedule)

    assert result.score == 0
    assert result.cars_finished == 0
    assert result.completion_ticks == {0: 5}


def test_queued_start_orders_cars_by_index():
    network = _make_corridor([["in", "out"], ["in", "out"]])
    schedule = SignalSchedule.from_mapping({1: [("in", 3)]})

    result = _simulator(network, 10, 1000, queued=True).run_simulation(schedule)

    assert result.completion_ticks == {0: 3, 1: 4}
    assert result.score == 1007 + 1006


def test_at_most_one_car_per_intersection_per_tick():
    routes = [["a", "c"], ["a", "c"], ["a", "c"]]
    network = _make_junction(routes)
    schedule = SignalSchedule.from_mapping({1: [("a", 1)]})

    result = _simulator(network, 20, 10).run_simulation(schedule)

    ticks = sorted(result.completion_ticks.values())
    assert ticks == [2, 3, 4]
    assert result.blocked_counts(1) == {"a": 3}


def test_blocked_traffic_dataframe_and_most_blocked():
    network = _make_corridor([["in", "out"], ["in", "out"]])
    schedule = SignalSchedule.from_mapping({1: [("in", 3)]})
    result = _simulator(network, 10, 1000).run_simulation(schedule)

    df = result.blocked_traffic_dataframe()

    assert list(df.columns) == ["intersection_id", "street", "blocked_ticks"]
    assert df.to_dict("records") == [{"intersection_id": 1, "street": "in", "blocked_ticks": 1}]
    assert result.most_blocked(5) == [(1, "in", 1)]


def test_blocked_traffic_dataframe_empty_without_blocking():
    network = _make_corridor([["in", "out"]])
    schedule = SignalSchedule.from_mapping({1: [("in", 3)]})

    df = _simulator(network, 10, 1000).run_simulation(schedule).blocked_traffic_dataframe()

    assert df.empty
    assert list(df.columns) == ["intersection_id", "street", "blocked_ticks"]


def test_invalid_schedule_rejected_before_running():
    network = _make_corridor([["in", "out"]])
    schedule = SignalSchedule.from_mapping({1: [("out", 1)]})

    with pytest.raises(ValueError):
        _simulator(network, 10, 1000).run_simulation(schedule)


# --------------------------------------------------------------- reordering --
def test_optimizer_swaps_waiting_street_into_active_slot():
    network = _make_junction([["b", "c"]])
    schedule = SignalSchedule.from_mapping({1: [("a", 2), ("b", 2)]})
    simulator = _simulator(network, 10, 100)
    evaluated = simulator.run_simulation(schedule).score

    score = simulator.optimize_green_light_order(schedule)

    assert score == 108
    assert score >= evaluated
    assert schedule.to_mapping() == {1: [("b", 2), ("a", 2)]}
    assert schedule.cycle_length(1) == 4
    assert simulator.run_simulation(schedule).score == 108


def test_optimizer_never_swaps_unequal_durations():
    network = _make_junction([["b", "c"]])
    schedule = SignalSchedule.from_mapping({1: [("a", 2), ("b", 3)]})
    simulator = _simulator(network, 10, 100)

    score = simulator.optimize_green_light_order(schedule)

    assert score == simulator.run_simulation(schedule).score == 107
    assert schedule.to_mapping() == {1: [("a", 2), ("b", 3)]}


def test_optimizer_keeps_phase_that_already_let_a_car_through():
    # Car 0 uses the "a" phase at tick 1; car 1 reaches the light at tick 4
    # while "a" is green again and must not steal the slot.
    network = _make_junction([["a", "c"], ["b", "c"]], b_length=4)
    schedule = SignalSchedule.from_mapping({1: [("a", 2), ("b", 2)]})
    simulator = _simulator(network, 10, 100)
    evaluated = simulator.run_simulation(schedule)

    score = simulator.optimize_green_light_order(schedule)

    assert evaluated.completion_ticks == {0: 2, 1: 7}
    assert evaluated.blocked_counts(1) == {"b": 2}
    assert score == evaluated.score == 108 + 103
    assert schedule.to_mapping() == {1: [("a", 2), ("b", 2)]}


def test_optimizer_preserves_cycle_lengths():
    routes = [["a", "c"], ["b", "c"], ["b", "c"], ["a", "c"], ["b", "c"]]
    network = _make_junction(routes, b_length=2)
    schedule = SignalSchedule.from_mapping({1: [("a", 1), ("b", 1), ("a", 2), ("b", 2)], 0: [("c", 3)]})
    before = schedule.total_cycle_lengths()
    simulator = _simulator(network, 30, 10)

    for _ in range(3):
        simulator.optimize_green_light_order(schedule)

    assert schedule.total_cycle_lengths() == before
    assert sorted(schedule.to_mapping()[1]) == sorted([("a", 1), ("b", 1), ("a", 2), ("b", 2)])


def test_reordering_leaves_car_waiting_when_street_has_no_phase():
    network = _make_junction([["b", "c"]])
    schedule = SignalSchedule.from_mapping({1: [("a", 1)]})

    result = _simulator(network, 5, 100).run_reordering_simulation(schedule)

    assert result.score == 0
    assert result.completion_ticks == {}
    assert result.blocked_counts(1) == {"b": 5}  # ticks 1..5
    assert schedule.to_mapping() == {1: [("a", 1)]}


def test_reordering_cannot_reuse_phase_that_already_let_a_car_through():
    # Three cars on "b" reach the light at tick 2. Two cross during the "b"
    # phase; the third is still waiting when "a" turns green at tick 4, but
    # the "b" phase record has been used and cannot be swapped forward.
    network = _make_junction([["b", "c"], ["b", "c"], ["b", "c"]], b_length=2)
    schedule = SignalSchedule.from_mapping({1: [("a", 2), ("b", 2)]})
    simulator = _simulator(network, 10, 100)

    result = simulator.run_reordering_simulation(schedule)

    assert result.completion_ticks == {0: 3, 1: 4, 2: 7}
    assert result.blocked_counts(1) == {"b": 5}
    assert result.score == 107 + 106 + 103
    assert schedule.to_mapping() == {1: [("a", 2), ("b", 2)]}
    assert simulator.run_simulation(schedule).score == result.score


def test_reordering_with_intersection_without_phases():
    network = _make_corridor([["in", "out"]])
    schedule = SignalSchedule()

    result = _simulator(network, 10, 1000).run_reordering_simulation(schedule)

    assert result.score == 0
    assert result.completion_ticks == {}
    assert result.blocked_counts(1) == {"in": 9}
    assert schedule.phases == {}


def test_single_reordering_run_can_score_below_evaluation():
    # Swapping "b" forward at tick 1 helps car 0 but leaves car 2, which
    # arrives on "b" one tick later, waiting for the next "b" phase.
    network = RoadNetwork.build(
        4,
        [(0, 1, "a", 1), (2, 1, "b", 1), (3, 2, "d", 1), (1, 0, "c", 1)],
        [["b", "c"], ["a", "c"], ["d", "b", "c"]],
    )
    schedule = SignalSchedule.from_mapping({1: [("a", 2), ("b", 2)], 2: [("d", 1)]})
    simulator = _simulator(network, 20, 100)

    evaluated = simulator.run_simulation(schedule)
    reordered = simulator.run_reordering_simulation(schedule)

    assert evaluated.completion_ticks == {0: 3, 1: 2, 2: 4}
    assert evaluated.score == 351
    assert reordered.completion_ticks == {0: 2, 1: 3, 2: 5}
    assert reordered.score == 350
    assert schedule.to_mapping() == {1: [("b", 2), ("a", 2)], 2: [("d", 1)]}
    assert schedule.total_cycle_lengths() == {1: 4, 2: 1}


# ------------------------------------------------------------- upper bound --
def test_upper_bound_matches_uncontended_score():
    network = _make_corridor([["in", "out"]])
    rules = ScoringRules(duration=10, bonus_per_car=1000)

    assert calculate_score_upper_bound(network, rules) == 1005


def test_upper_bound_skips_unreachable_cars_and_bounds_score():
    network = _make_corridor([["in", "out"], ["in", "out"], ["in", "out", "in", "out", "in", "out"]])
    rules = ScoringRules(duration=10, bonus_per_car=1000)
    schedule = SignalSchedule.from_mapping({1: [("in", 3)], 0: [("out", 1)]})

    bound = calculate_score_upper_bound(network, rules)
    score = TrafficSimulator(network, rules).run_simulation(schedule).score

    assert bound == 1005 * 2  # third car needs 15 ticks
    assert score <= bound


def test_upper_bound_with_queued_start():
    network = _make_corridor([["in", "out"], ["in", "out"]])
    rules = ScoringRules(duration=10, bonus_per_car=1000, cars_start_queued=True)

    assert calculate_score_upper_bound(network, rules) == 1007 * 2


def test_score_headroom():
    assert score_headroom(50, 200) == pytest.approx(0.75)
    assert score_headroom(200, 200) == 0.0
    assert score_headroom(0, 0) == 0.0
