"""Tests for roster CSV and event YAML parsing."""

from datetime import datetime

import pytest

from runningdinner.parser import (
    DEFAULT_MENU,
    create_event_template,
    parse_event_yaml,
    parse_meal,
    parse_roster_csv,
)

ROSTER = """\
id,email,name,status,registered_at,meal_preference,partner_preference
1,ann@example.com,Ann Bell,active,2026-03-01T10:00:00,starter,"bob@example.com, Cat Dune"
2,bob@example.com,Bob Cole,confirmed,2026-03-02T11:30:00,Main Course,Ann Bell
3,cat@example.com,Cat Dune,,,none,
,ghost@example.com,No Id,active,,,
"""


class TestParseMeal:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("starter", "starter"),
            ("Main course", "mainCourse"),
            ("mainCourse", "mainCourse"),
            (" DESSERT ", "dessert"),
            ("none", None),
            ("", None),
            (None, None),
        ],
    )
    def test_aliases(self, raw, expected):
        assert parse_meal(raw) == expected

    def test_unknown_meal_raises(self):
        with pytest.raises(ValueError, match="Unknown meal"):
            parse_meal("breakfast")


class TestParseRosterCsv:
    def test_parses_rows(self, tmp_path):
        path = tmp_path / "roster.csv"
        path.write_text(ROSTER, encoding="utf-8")

        participants = parse_roster_csv(path)

        assert [p.id for p in participants] == [1, 2, 3]
        ann, bob, cat = participants
        assert ann.partner_preference == "bob@example.com, Cat Dune"
        assert ann.meal_preference == "starter"
        assert ann.registered_at == datetime(2026, 3, 1, 10, 0)
        assert bob.meal_preference == "mainCourse"
        assert bob.status == "confirmed"
        assert cat.status == "active"
        assert cat.meal_preference is None
        assert cat.registered_at is None

    def test_bad_row_reports_line(self, tmp_path):
        path = tmp_path / "roster.csv"
        path.write_text(
            "id,email,name,meal_preference\n1,a@example.com,A,brunch\n", encoding="utf-8"
        )
        with pytest.raises(ValueError, match="line 2"):
            parse_roster_csv(path)


class TestEventYaml:
    def test_template_can_be_read_back(self, tmp_path):
        path = tmp_path / "event.yaml"
        create_event_template(path, group_size=3)

        config, settings = parse_event_yaml(path)

        assert path.read_text(encoding="utf-8").startswith("# Event configuration")
        assert config.preferred_group_size == 3
        assert config.menu == DEFAULT_MENU
        assert config.after_party is not None
        assert settings.max_attempts == 100

    def test_menu_solver_and_defaults(self, tmp_path):
        path = tmp_path / "event.yaml"
        path.write_text(
            """\
preferred_group_size: 2
menu:
  dessert:
    start_time: "22:00"
    end_time: "23:30"
solver:
  max_attempts: 5
  max_meetings: 2
""",
            encoding="utf-8",
        )

        config, settings = parse_event_yaml(path)

        assert config.menu["dessert"].start_time == "22:00"
        assert config.menu["starter"] == DEFAULT_MENU["starter"]
        assert config.after_party is None
        assert settings.max_attempts == 5
        assert settings.max_meetings == 2
        assert settings.max_steps == 100_000

    def test_unknown_course_raises(self, tmp_path):
        path = tmp_path / "event.yaml"
        path.write_text(
            "menu:\n  brunch:\n    start_time: '10:00'\n    end_time: '11:00'\n",
            encoding="utf-8",
        )
        with pytest.raises(ValueError, match="brunch"):
            parse_event_yaml(path)
