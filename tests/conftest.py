"""Shared fixtures for runningdinner tests."""

from datetime import datetime, timedelta

import pytest

from runningdinner.models import MEALS, DinnerGroup, EventConfig, Participant
from runningdinner.parser import DEFAULT_MENU

BASE_TIME = datetime(2026, 3, 1, 12, 0)


def make_participant(pid: int, **kwargs) -> Participant:
    """Participant with unambiguous name and email derived from ``pid``."""
    defaults = {
        "email": f"guest{pid:03d}@example.com",
        "name": f"Guest{pid:03d} Tester",
        "registered_at": BASE_TIME + timedelta(minutes=pid),
    }
    defaults.update(kwargs)
    return Participant(id=pid, **defaults)


def make_roster(count: int, start: int = 1) -> list[Participant]:
    return [make_participant(pid) for pid in range(start, start + count)]


def make_groups(per_meal: int) -> list[DinnerGroup]:
    """``per_meal`` groups for every course, numbered from 1."""
    groups = []
    for meal in MEALS:
        for _ in range(per_meal):
            number = len(groups) + 1
            groups.append(
                DinnerGroup(
                    group_number=number,
                    member_ids=[number * 10, number * 10 + 1],
                    assigned_meal=meal,
                    host_id=number * 10,
                )
            )
    return groups


@pytest.fixture
def participant_factory():
    return make_participant


@pytest.fixture
def roster_factory():
    return make_roster


@pytest.fixture
def groups_factory():
    return make_groups


@pytest.fixture
def event_config():
    return EventConfig(preferred_group_size=3, menu=dict(DEFAULT_MENU))
