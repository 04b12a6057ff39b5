"""CSV and YAML parsing for runningdinner."""

import csv
from datetime import datetime
from pathlib import Path

import yaml

from runningdinner.models import (
    MEALS,
    AfterParty,
    EventConfig,
    MealType,
    Participant,
    SolverSettings,
    TimeWindow,
)

# Free-text meal preference -> meal type (None = no preference)
MEAL_ALIASES: dict[str, MealType | None] = {
    "starter": "starter",
    "appetizer": "starter",
    "maincourse": "mainCourse",
    "main course": "mainCourse",
    "main": "mainCourse",
    "dessert": "dessert",
    "none": None,
    "no preference": None,
    "": None,
}

DEFAULT_MENU: dict[str, TimeWindow] = {
    "starter": TimeWindow(start_time="18:00", end_time="19:30"),
    "mainCourse": TimeWindow(start_time="19:45", end_time="21:15"),
    "dessert": TimeWindow(start_time="21:30", end_time="23:00"),
}

DEFAULT_GROUP_SIZE = 2


def parse_meal(raw: str | None) -> MealType | None:
    """Map a free-text meal preference to a meal type."""
    key = (raw or "").strip().lower()
    if key not in MEAL_ALIASES:
        raise ValueError(f"Unknown meal preference: {raw!r}")
    return MEAL_ALIASES[key]


def parse_roster_csv(csv_path: Path) -> list[Participant]:
    """
    Parse the roster CSV file.

    Expected columns: id, email, name, status, registered_at,
    meal_preference, partner_preference. Rows without an id are skipped.
    """
    participants: list[Participant] = []

    with csv_path.open(newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        for line, row in enumerate(reader, start=2):
            raw_id = (row.get("id") or "").strip()
            if not raw_id:
                continue

            registered = (row.get("registered_at") or "").strip()
            try:
                participants.append(
                    Participant(
                        id=int(raw_id),
                        email=(row.get("email") or "").strip(),
                        name=(row.get("name") or "").strip(),
                        partner_preference=(row.get("partner_preference") or "").strip(),
                        meal_preference=parse_meal(row.get("meal_preference")),
                        status=(row.get("status") or "active").strip() or "active",
                        registered_at=datetime.fromisoformat(registered) if registered else None,
                    )
                )
            except ValueError as e:
                raise ValueError(f"line {line}: {e}") from e

    return participants


def _clock(value) -> str:
    """Render a YAML time value as HH:MM.

    YAML 1.1 reads an unquoted 18:30 as the base-60 integer 1110.
    """
    if isinstance(value, int):
        return f"{value // 60:02d}:{value % 60:02d}"
    return str(value)


def parse_event_yaml(yaml_path: Path) -> tuple[EventConfig, SolverSettings]:
    """Parse the event configuration YAML file."""
    with yaml_path.open(encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    menu = dict(DEFAULT_MENU)
    for meal, window in (data.get("menu") or {}).items():
        if meal not in MEALS:
            raise ValueError(f"Unknown meal in menu: {meal!r}")
        menu[meal] = TimeWindow(
            start_time=_clock(window["start_time"]),
            end_time=_clock(window["end_time"]),
        )

    after_party = None
    if data.get("after_party"):
        entry = data["after_party"]
        after_party = AfterParty(
            time=_clock(entry["time"]),
            location=entry["location"],
            description=entry.get("description"),
        )

    config = EventConfig(
        preferred_group_size=int(data.get("preferred_group_size", DEFAULT_GROUP_SIZE)),
        menu=menu,
        after_party=after_party,
    )

    solver = data.get("solver") or {}
    settings = SolverSettings()
    for key in ("max_attempts", "max_steps", "max_meetings", "rebalance_iterations"):
        if solver.get(key) is not None:
            setattr(settings, key, int(solver[key]))

    return config, settings


def create_event_template(output_path: Path, group_size: int = DEFAULT_GROUP_SIZE):
    """Create an event configuration template YAML file."""
    template = {
        "preferred_group_size": group_size,
        "menu": {
            meal: {"start_time": window.start_time, "end_time": window.end_time}
            for meal, window in DEFAULT_MENU.items()
        },
        "after_party": {
            "time": "23:15",
            "location": "Community hall",
            "description": "Everyone meets after dessert",
        },
    }

    header = f"""\
# Event configuration for runningdinner
#
# preferred_group_size: people per cooking group
# menu: start and end time of each course ({", ".join(MEALS)})
# after_party: optional, copied into the output unchanged
#
# Optional search tuning:
#   solver:
#     max_attempts: 100        # reshuffled route searches
#     max_steps: 100000        # backtracking steps per search
#     max_meetings: 1          # override the meeting ceiling
#     rebalance_iterations: 100

"""

    with output_path.open("w", encoding="utf-8") as f:
        f.write(header)
        yaml.dump(template, f, default_flow_style=False, sort_keys=False)
