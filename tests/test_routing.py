"""
Tests for route assignment.

The interesting failures are seating ones: a full table, a pair meeting
twice, or a group not hosting its own course. Each test checks the
resulting routes directly rather than trusting the engine's bookkeeping.
"""

import inspect
import sys
from collections import Counter

import pytest

from runningdinner.errors import RouteAssignmentError, ValidationError
from runningdinner.models import MEALS, TABLE_SIZE, Route, RouteStop, SolverSettings
from runningdinner.routing import assign_routes, count_meetings


def assert_valid_routes(result, groups, event_config):
    meal_of = {g.group_number: g.assigned_meal for g in groups}
    assert sorted(r.group_id for r in result.routes) == sorted(meal_of)

    seats = Counter()
    for route in result.routes:
        assert [stop.meal for stop in route.stops] == list(MEALS)
        for stop in route.stops:
            assert meal_of[stop.host_group_id] == stop.meal
            assert stop.start_time == event_config.menu[stop.meal].start_time
            assert stop.end_time == event_config.menu[stop.meal].end_time
            seats[(stop.meal, stop.host_group_id)] += 1
        own = next(stop for stop in route.stops if stop.meal == meal_of[route.group_id])
        assert own.host_group_id == route.group_id

    assert all(count == TABLE_SIZE for count in seats.values())
    assert len(seats) == len(groups)


class TestValidation:
    def test_missing_meal(self, event_config, groups_factory):
        groups = groups_factory(1)
        groups[0].assigned_meal = None
        with pytest.raises(ValidationError, match="missing meal"):
            assign_routes(event_config, groups, rng=0)

    def test_unbalanced_meals(self, event_config, groups_factory):
        groups = groups_factory(2)
        groups[0].assigned_meal = "dessert"
        with pytest.raises(ValidationError, match="Unbalanced"):
            assign_routes(event_config, groups, rng=0)

    def test_no_groups(self, event_config):
        with pytest.raises(ValidationError, match="at least 3 groups"):
            assign_routes(event_config, [], rng=0)

    def test_duplicate_group_numbers(self, event_config, groups_factory):
        groups = groups_factory(2)
        groups[1].group_number = groups[0].group_number
        with pytest.raises(ValidationError, match="unique"):
            assign_routes(event_config, groups, rng=0)

    def test_menu_must_cover_every_course(self, event_config, groups_factory):
        del event_config.menu["dessert"]
        with pytest.raises(ValidationError, match="dessert"):
            assign_routes(event_config, groups_factory(1), rng=0)


class TestAssignment:
    def test_three_groups_share_every_table(self, event_config, groups_factory):
        groups = groups_factory(1)

        result = assign_routes(event_config, groups, rng=0)

        assert_valid_routes(result, groups, event_config)
        assert set(count_meetings(result.routes).values()) == {3}
        assert any("single table per course" in w for w in result.warnings)

    def test_six_groups_meet_at_most_twice(self, event_config, groups_factory):
        groups = groups_factory(2)

        result = assign_routes(event_config, groups, rng=0)

        assert_valid_routes(result, groups, event_config)
        assert max(count_meetings(result.routes).values()) <= 2
        assert any("mathematically impossible" in w for w in result.warnings)

    @pytest.mark.parametrize("per_meal", [3, 4, 6])
    def test_nine_or_more_groups_never_meet_twice(self, event_config, groups_factory, per_meal):
        groups = groups_factory(per_meal)

        result = assign_routes(event_config, groups, rng=per_meal)

        assert_valid_routes(result, groups, event_config)
        assert max(count_meetings(result.routes).values()) == 1
        assert result.duplicate_meetings == 0
        assert result.warnings == []

    def test_routes_are_ordered_by_group(self, event_config, groups_factory):
        result = assign_routes(event_config, groups_factory(3), rng=1)
        assert [r.group_id for r in result.routes] == list(range(1, 10))

    def test_same_seed_same_routes(self, event_config, groups_factory):
        first = assign_routes(event_config, groups_factory(3), rng=42)
        second = assign_routes(event_config, groups_factory(3), rng=42)
        assert first.routes == second.routes

    def test_impossible_ceiling_raises_with_diagnostics(self, event_config, groups_factory):
        # Six groups each meet six times but have only five others
        settings = SolverSettings(max_attempts=3, max_meetings=1)

        with pytest.raises(RouteAssignmentError) as excinfo:
            assign_routes(event_config, groups_factory(2), rng=0, settings=settings)

        error = excinfo.value
        assert error.attempts == 3
        assert error.total_groups == 6
        assert error.seated < 6
        assert error.failure_reasons
        counts = [count for _, count in error.failure_reasons]
        assert counts == sorted(counts, reverse=True)
        assert "Top failure reasons" in str(error)

    def test_search_does_not_deepen_the_call_stack(self, event_config, groups_factory):
        # 90 groups would need 90 nested frames if each seated group recursed
        groups = groups_factory(30)
        limit = sys.getrecursionlimit()
        sys.setrecursionlimit(len(inspect.stack(0)) + 60)
        try:
            result = assign_routes(event_config, groups, rng=0)
        finally:
            sys.setrecursionlimit(limit)

        assert_valid_routes(result, groups, event_config)
        assert result.duplicate_meetings == 0

    def test_step_budget_is_reported(self, event_config, groups_factory):
        settings = SolverSettings(max_attempts=2, max_steps=2)

        with pytest.raises(RouteAssignmentError) as excinfo:
            assign_routes(event_config, groups_factory(3), rng=0, settings=settings)

        reasons = dict(excinfo.value.failure_reasons)
        assert "Backtracking step budget exhausted" in reasons


class TestCountMeetings:
    def test_counts_every_pair_at_a_table(self):
        def route(gid, starter, main, dessert):
            hosts = dict(zip(MEALS, (starter, main, dessert)))
            return Route(
                group_id=gid,
                stops=[RouteStop(meal, hosts[meal], "18:00", "19:00") for meal in MEALS],
            )

        routes = [
            route(1, 1, 2, 3),
            route(2, 1, 2, 3),
            route(3, 1, 4, 3),
            route(4, 1, 4, 3),
        ]

        meetings = count_meetings(routes)

        assert meetings[(1, 2)] == 3
        assert meetings[(3, 4)] == 3
        assert meetings[(1, 3)] == 2
        assert meetings[(2, 4)] == 2
        assert all(a < b for a, b in meetings)

    def test_no_routes(self):
        assert count_meetings([]) == {}
