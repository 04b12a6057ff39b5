"""Command-line interface for runningdinner."""

import argparse
import logging
import sys
from pathlib import Path

from runningdinner.errors import RouteAssignmentError, ValidationError
from runningdinner.grouping import form_groups
from runningdinner.models import EventConfig, SolverSettings
from runningdinner.output import (
    format_groups,
    format_routes,
    format_routes_csv,
    format_warnings,
)
from runningdinner.parser import (
    DEFAULT_GROUP_SIZE,
    DEFAULT_MENU,
    create_event_template,
    parse_event_yaml,
    parse_roster_csv,
)
from runningdinner.routing import assign_routes


def main(argv: list[str] | None = None) -> int:
    """Main entry point for runningdinner CLI."""
    parser = argparse.ArgumentParser(
        description="Form cooking groups and progressive routes for a running dinner.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""\
Examples:
  runningdinner roster.csv --event event.yaml
  runningdinner roster.csv --event event.yaml --seed 42 --csv
  runningdinner roster.csv --group-size 3 --groups-only
""",
    )
    parser.add_argument(
        "roster_csv",
        type=Path,
        help="Path to the CSV file with registered participants",
    )
    parser.add_argument(
        "--event",
        type=Path,
        help="Path to the event configuration YAML file",
    )
    parser.add_argument(
        "--group-size",
        type=int,
        default=None,
        help="People per cooking group (overrides the event file)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed for reproducible groups and routes",
    )
    parser.add_argument(
        "--max-attempts",
        type=int,
        default=None,
        help="Reshuffled route searches before giving up (default: 100)",
    )
    parser.add_argument(
        "--output-template",
        type=Path,
        help="Path for event template (default: event_template.yaml)",
    )
    parser.add_argument(
        "--groups-only",
        action="store_true",
        help="Stop after forming groups",
    )
    parser.add_argument(
        "--csv",
        action="store_true",
        help="Print routes as CSV instead of text",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show debug logging",
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    # Validate roster CSV exists
    if not args.roster_csv.exists():
        print(f"Error: Roster file not found: {args.roster_csv}", file=sys.stderr)
        return 1

    try:
        participants = parse_roster_csv(args.roster_csv)
    except Exception as e:
        print(f"Error parsing roster CSV: {e}", file=sys.stderr)
        return 1

    print(f"Loaded {len(participants)} participants", file=sys.stderr)

    # Parse or create event configuration
    if args.event:
        if not args.event.exists():
            print(f"Error: Event file not found: {args.event}", file=sys.stderr)
            return 1
        try:
            config, settings = parse_event_yaml(args.event)
        except Exception as e:
            print(f"Error parsing event YAML: {e}", file=sys.stderr)
            return 1
    else:
        template_path = args.output_template or Path("event_template.yaml")
        create_event_template(template_path, args.group_size or DEFAULT_GROUP_SIZE)
        print(f"\nNo event file provided. Created template at: {template_path}", file=sys.stderr)
        print("Edit this file to set course times, then run again.\n", file=sys.stderr)
        config = EventConfig(preferred_group_size=DEFAULT_GROUP_SIZE, menu=dict(DEFAULT_MENU))
        settings = SolverSettings()

    if args.group_size is not None:
        config.preferred_group_size = args.group_size
    if args.max_attempts is not None:
        settings.max_attempts = args.max_attempts

    try:
        grouping = form_groups(config, participants, rng=args.seed, settings=settings)
    except ValidationError as e:
        print(f"Error forming groups: {e}", file=sys.stderr)
        return 1

    routing = None
    if not args.groups_only:
        try:
            routing = assign_routes(config, grouping.groups, rng=args.seed, settings=settings)
        except (ValidationError, RouteAssignmentError) as e:
            print(f"Error assigning routes: {e}", file=sys.stderr)
            return 1

    warnings = list(grouping.warnings)
    if routing is not None:
        warnings.extend(routing.warnings)

    if args.csv and routing is not None:
        print(format_routes_csv(routing.routes))
    else:
        print(format_groups(grouping, participants))
        if routing is not None:
            print()
            print(format_routes(routing, grouping.groups))

    if warnings:
        print(file=sys.stderr)
        print(format_warnings(warnings), file=sys.stderr)

    return 0


if __name__ == "__main__":
    sys.exit(main())
