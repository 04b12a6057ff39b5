"""Data models for runningdinner."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

MealType = Literal["starter", "mainCourse", "dessert"]

# Course order is also the route stop order
MEALS: tuple[MealType, ...] = ("starter", "mainCourse", "dessert")

ACTIVE_STATUSES = frozenset({"active", "confirmed", "pending"})

# Groups seated at one table: the host plus two visitors
TABLE_SIZE = 3

DEFAULT_MAX_ATTEMPTS = 100
DEFAULT_MAX_STEPS = 100_000
DEFAULT_REBALANCE_ITERATIONS = 100


@dataclass
class Participant:
    """A registered participant."""

    id: int
    email: str
    name: str
    partner_preference: str = ""  # comma-separated emails or names
    meal_preference: MealType | None = None
    status: str = "active"
    registered_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status.lower() in ACTIVE_STATUSES


@dataclass
class TimeWindow:
    """Start and end time of one course."""

    start_time: str
    end_time: str


@dataclass
class AfterParty:
    """Optional after-party details, passed through untouched."""

    time: str
    location: str
    description: str | None = None


@dataclass
class EventConfig:
    """Per-event configuration."""

    preferred_group_size: int
    menu: dict[str, TimeWindow] = field(default_factory=dict)
    after_party: AfterParty | None = None


@dataclass
class SolverSettings:
    """Bounds for the randomized searches."""

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    max_steps: int = DEFAULT_MAX_STEPS
    max_meetings: int | None = None  # None = derived from the group count
    rebalance_iterations: int = DEFAULT_REBALANCE_ITERATIONS


@dataclass
class PreferenceGraph:
    """Partner preferences between participants.

    ``mutual`` is symmetric. ``one_sided`` maps a participant to the people
    they named who did not name them back.
    """

    mutual: dict[int, set[int]] = field(default_factory=dict)
    one_sided: dict[int, set[int]] = field(default_factory=dict)

    def add_mutual(self, a: int, b: int) -> None:
        self.mutual.setdefault(a, set()).add(b)
        self.mutual.setdefault(b, set()).add(a)
        self.one_sided.get(a, set()).discard(b)
        self.one_sided.get(b, set()).discard(a)

    def add_one_sided(self, source: int, target: int) -> None:
        if target in self.mutual.get(source, ()):
            return
        self.one_sided.setdefault(source, set()).add(target)

    def mutual_partners(self, pid: int) -> set[int]:
        return self.mutual.get(pid, set())

    def partners(self, pid: int) -> set[int]:
        """Everyone ``pid`` named, mutual or not."""
        return self.mutual.get(pid, set()) | self.one_sided.get(pid, set())

    def admirers(self, pid: int) -> set[int]:
        """Everyone who named ``pid`` without being named back."""
        return {source for source, targets in self.one_sided.items() if pid in targets}

    def linked(self, pid: int) -> set[int]:
        """Everyone connected to ``pid`` by an edge in either direction."""
        return (self.partners(pid) | self.admirers(pid)) - {pid}

    def has_links(self, pid: int) -> bool:
        return bool(self.linked(pid))

    def restricted(self, ids: set[int]) -> "PreferenceGraph":
        """Return the sub-graph on ``ids``."""
        graph = PreferenceGraph()
        for source, targets in self.mutual.items():
            if source in ids:
                kept = {t for t in targets if t in ids}
                if kept:
                    graph.mutual[source] = kept
        for source, targets in self.one_sided.items():
            if source in ids:
                kept = {t for t in targets if t in ids}
                if kept:
                    graph.one_sided[source] = kept
        return graph


@dataclass
class DinnerGroup:
    """A cooking group. ``group_number`` doubles as the group id."""

    group_number: int
    member_ids: list[int]
    assigned_meal: MealType | None = None
    host_id: int | None = None


@dataclass
class RouteStop:
    """One course of a route."""

    meal: MealType
    host_group_id: int
    start_time: str
    end_time: str


@dataclass
class Route:
    """The three stops of one group, starter first."""

    group_id: int
    stops: list[RouteStop]


@dataclass
class GroupingResult:
    """Result of group formation."""

    groups: list[DinnerGroup]
    warnings: list[str] = field(default_factory=list)
    waitlisted_ids: list[int] = field(default_factory=list)


@dataclass
class RoutingResult:
    """Result of route assignment."""

    routes: list[Route]
    warnings: list[str] = field(default_factory=list)
    duplicate_meetings: int = 0  # number of group pairs sharing a table 2+ times
