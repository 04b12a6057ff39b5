"""Randomized backtracking search for progressive dinner routes."""

import itertools
import logging
from collections import Counter, defaultdict
from collections.abc import Iterator

import numpy as np

from runningdinner.errors import RouteAssignmentError, ValidationError
from runningdinner.models import (
    MEALS,
    TABLE_SIZE,
    DinnerGroup,
    EventConfig,
    MealType,
    Route,
    RouteStop,
    RoutingResult,
    SolverSettings,
)

logger = logging.getLogger(__name__)

# Fewest groups (3 per course) for which no pair ever has to meet twice
MIN_GROUPS_FOR_UNIQUE_MEETINGS = 9
RELAXED_MAX_MEETINGS = 2

MEAL_LABELS: dict[str, str] = {
    "starter": "Starter",
    "mainCourse": "Main course",
    "dessert": "Dessert",
}


def assign_routes(
    config: EventConfig,
    groups: list[DinnerGroup],
    rng: np.random.Generator | int | None = None,
    settings: SolverSettings | None = None,
) -> RoutingResult:
    """
    Assign every group a host for each course.

    Each group hosts its own course and visits one other host for each of
    the remaining two. Every table seats exactly three groups and no pair of
    groups shares a table more often than the meeting ceiling allows.

    Raises ValidationError for unusable input and RouteAssignmentError when
    every search attempt failed.
    """
    rng = np.random.default_rng(rng)
    settings = settings or SolverSettings()
    warnings: list[str] = []

    missing = [g for g in groups if g.assigned_meal not in MEALS]
    if missing:
        raise ValidationError(
            f"All groups must have an assigned meal. "
            f"{len(missing)} groups are missing meal assignments."
        )

    hosts: dict[MealType, list[int]] = {
        meal: [g.group_number for g in groups if g.assigned_meal == meal] for meal in MEALS
    }
    if len({len(ids) for ids in hosts.values()}) != 1:
        raise ValidationError(
            "Unbalanced meal assignments. Need equal groups per meal. "
            + ", ".join(f"{MEAL_LABELS[meal]}: {len(hosts[meal])}" for meal in MEALS)
        )

    num_groups = len(groups)
    if num_groups < len(MEALS):
        raise ValidationError("Need at least 3 groups (one per meal type).")

    numbers = [g.group_number for g in groups]
    if len(set(numbers)) != num_groups:
        raise ValidationError("Group numbers must be unique.")

    missing_menu = [meal for meal in MEALS if meal not in config.menu]
    if missing_menu:
        raise ValidationError(f"Event menu has no time window for: {', '.join(missing_menu)}")

    ceiling = _meeting_ceiling(num_groups, settings, warnings)
    search = _RouteSearch(groups, hosts, ceiling, settings.max_steps)

    logger.info("Assigning routes for %d groups (meeting ceiling %d)", num_groups, ceiling)

    seating = None
    attempts = 0
    for attempts in range(1, settings.max_attempts + 1):
        order = [groups[i] for i in rng.permutation(num_groups)]
        seating = search.run(order, rng)
        if seating is not None:
            break
        logger.debug("Route attempt %d failed after %d steps", attempts, search.last_steps)

    if seating is None:
        logger.warning("Route assignment failed after %d attempts", attempts)
        raise RouteAssignmentError(
            attempts=attempts,
            steps=search.total_steps,
            seated=search.best_seated,
            total_groups=num_groups,
            failure_reasons=search.reasons.most_common(5),
            suggestions=_suggestions(num_groups, hosts),
        )

    logger.info("Found routes on attempt %d", attempts)
    routes = _build_routes(config, groups, seating)

    meetings = count_meetings(routes)
    repeated = sorted(pair for pair, count in meetings.items() if count > 1)
    if repeated:
        warnings.append(
            "Groups sharing a table more than once: "
            + ", ".join(f"{a} & {b} ({meetings[(a, b)]}x)" for a, b in repeated)
        )

    return RoutingResult(routes=routes, warnings=warnings, duplicate_meetings=len(repeated))


def count_meetings(routes: list[Route]) -> dict[tuple[int, int], int]:
    """
    Count how often each pair of groups shares a table.

    Returns a dict mapping (lower group id, higher group id) -> count for
    every pair that met at least once.
    """
    ids = sorted(route.group_id for route in routes)
    index = {gid: i for i, gid in enumerate(ids)}

    tables: dict[tuple[str, int], list[int]] = defaultdict(list)
    for route in routes:
        for stop in route.stops:
            tables[(stop.meal, stop.host_group_id)].append(route.group_id)

    matrix = np.zeros((len(ids), len(ids)), dtype=np.int64)
    for seated in tables.values():
        idx = [index[gid] for gid in seated]
        matrix[np.ix_(idx, idx)] += 1
    np.fill_diagonal(matrix, 0)

    rows, cols = np.nonzero(np.triu(matrix, k=1))
    return {(ids[i], ids[j]): int(matrix[i, j]) for i, j in zip(rows, cols)}


def _meeting_ceiling(num_groups: int, settings: SolverSettings, warnings: list[str]) -> int:
    if settings.max_meetings is not None:
        return settings.max_meetings

    if num_groups // len(MEALS) == 1:
        warnings.append(
            f"With only {num_groups} groups there is a single table per course, "
            f"so every group shares all {len(MEALS)} courses with every other group."
        )
        return len(MEALS)

    if num_groups < MIN_GROUPS_FOR_UNIQUE_MEETINGS:
        warnings.append(
            f"With only {num_groups} groups, it's mathematically impossible to ensure no "
            f"group meets another group more than once. Each group meets 2 others at each "
            f"meal (6 meetings total), but there are only {num_groups - 1} other groups. "
            f"For guaranteed no-duplicate assignments, you need at least "
            f"{MIN_GROUPS_FOR_UNIQUE_MEETINGS} groups (3 per meal type). "
            f"Groups may share a table up to {RELAXED_MAX_MEETINGS} times."
        )
        return RELAXED_MAX_MEETINGS

    return 1


def _suggestions(num_groups: int, hosts: dict[MealType, list[int]]) -> list[str]:
    suggestions: list[str] = []
    if num_groups < MIN_GROUPS_FOR_UNIQUE_MEETINGS:
        suggestions.append(
            f"You have only {num_groups} groups. For no-duplicate meetings, you need at "
            f"least {MIN_GROUPS_FOR_UNIQUE_MEETINGS} groups."
        )
    suggestions.append("Try reassigning meals to balance the groups differently")
    suggestions.append(
        "Current distribution: "
        + ", ".join(f"{len(hosts[meal])} {MEAL_LABELS[meal].lower()}" for meal in MEALS)
    )
    suggestions.append(
        f"Each meal location must host exactly {TABLE_SIZE} groups (host + 2 visitors)"
    )
    return suggestions


def _build_routes(
    config: EventConfig,
    groups: list[DinnerGroup],
    seating: dict[int, dict[MealType, int]],
) -> list[Route]:
    routes: list[Route] = []
    for group in sorted(groups, key=lambda g: g.group_number):
        stops = [
            RouteStop(
                meal=meal,
                host_group_id=seating[group.group_number][meal],
                start_time=config.menu[meal].start_time,
                end_time=config.menu[meal].end_time,
            )
            for meal in MEALS
        ]
        routes.append(Route(group_id=group.group_number, stops=stops))
    return routes


class _RouteSearch:
    """
    Backtracking state for one route assignment.

    ``tables[meal][host]`` lists the groups seated at a table, host first.
    ``meetings`` counts shared tables per pair of groups and is updated by
    explicit seat/unseat calls so a dead end can be undone exactly.
    """

    def __init__(
        self,
        groups: list[DinnerGroup],
        hosts: dict[MealType, list[int]],
        ceiling: int,
        max_steps: int,
    ):
        self.meal_of: dict[int, MealType] = {g.group_number: g.assigned_meal for g in groups}
        self.index = {g.group_number: i for i, g in enumerate(groups)}
        self.hosts = hosts
        self.ceiling = ceiling
        self.max_steps = max_steps

        self.reasons: Counter[str] = Counter()
        self.total_steps = 0
        self.last_steps = 0
        self.best_seated = 0

    def run(
        self,
        order: list[DinnerGroup],
        rng: np.random.Generator,
    ) -> dict[int, dict[MealType, int]] | None:
        """Search once with groups seated in ``order``; None on failure."""
        self.order = [g.group_number for g in order]
        self.rng = rng
        self.steps = 0
        # Hosts always sit at their own table
        self.tables: dict[MealType, dict[int, list[int]]] = {
            meal: {host: [host] for host in self.hosts[meal]} for meal in MEALS
        }
        self.choice: dict[int, dict[MealType, int]] = {
            gid: {meal: gid} for gid, meal in self.meal_of.items()
        }
        size = len(self.index)
        self.meetings = np.zeros((size, size), dtype=np.int64)

        found = self._search()
        self.last_steps = self.steps
        self.total_steps += self.steps
        if not found:
            return None
        return {gid: dict(stops) for gid, stops in self.choice.items()}

    def _search(self) -> bool:
        """Seat groups in ``self.order`` depth first, backtracking on dead ends."""
        # One frame per group being seated: (group id, untried seatings).
        # ``taken`` holds the seating in use for every frame below the top.
        frames: list[tuple[int, Iterator[list[tuple[MealType, int]]]]] = []
        taken: list[list[tuple[MealType, int]]] = []
        while True:
            depth = len(frames)
            self.steps += 1
            self.best_seated = max(self.best_seated, depth)
            if depth == len(self.order):
                return True
            if self.steps > self.max_steps:
                self.reasons["Backtracking step budget exhausted"] += 1
                return False

            gid = self.order[depth]
            candidates = self._candidates(gid)
            if not candidates:
                self.reasons[f"No valid seating left for group {gid}"] += 1
            frames.append((gid, iter(candidates)))

            while frames:
                gid, remaining = frames[-1]
                seats = next(remaining, None)
                if seats is not None:
                    self._seat(gid, seats)
                    taken.append(seats)
                    break
                frames.pop()
                if frames:
                    self._unseat(frames[-1][0], taken.pop())
            else:
                return False

    def _candidates(self, gid: int) -> list[list[tuple[MealType, int]]]:
        """Valid (meal, host) seatings for ``gid``, fewest repeat meetings first."""
        visits = [meal for meal in MEALS if meal != self.meal_of[gid]]
        open_hosts: list[list[int]] = []
        for meal in visits:
            available = []
            for host in self.hosts[meal]:
                if len(self.tables[meal][host]) >= TABLE_SIZE:
                    self.reasons[f"{MEAL_LABELS[meal]} table of group {host} is full"] += 1
                else:
                    available.append(host)
            open_hosts.append(available)

        row = self.meetings[self.index[gid]]
        scored: list[tuple[int, list[tuple[MealType, int]]]] = []
        for combo in itertools.product(*open_hosts):
            seats = list(zip(visits, combo))
            company = Counter(other for meal, host in seats for other in self.tables[meal][host])
            blocked = next(
                (
                    other
                    for other, times in company.items()
                    if row[self.index[other]] + times > self.ceiling
                ),
                None,
            )
            if blocked is not None:
                met = int(row[self.index[blocked]])
                self.reasons[f"Group {gid} already met group {blocked} {met} time(s)"] += 1
                continue
            score = int(sum(row[self.index[other]] * times for other, times in company.items()))
            scored.append((score, seats))

        # Random order among equally good seatings
        shuffled = [scored[i] for i in self.rng.permutation(len(scored))]
        shuffled.sort(key=lambda item: item[0])
        return [seats for _, seats in shuffled]

    def _seat(self, gid: int, seats: list[tuple[MealType, int]]) -> None:
        gi = self.index[gid]
        for meal, host in seats:
            table = self.tables[meal][host]
            for other in table:
                oi = self.index[other]
                self.meetings[gi, oi] += 1
                self.meetings[oi, gi] += 1
            table.append(gid)
            self.choice[gid][meal] = host

    def _unseat(self, gid: int, seats: list[tuple[MealType, int]]) -> None:
        gi = self.index[gid]
        for meal, host in reversed(seats):
            table = self.tables[meal][host]
            table.pop()
            for other in table:
                oi = self.index[other]
                self.meetings[gi, oi] -= 1
                self.meetings[oi, gi] -= 1
            del self.choice[gid][meal]
