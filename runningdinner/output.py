"""Output formatting for runningdinner."""

from runningdinner.models import (
    DinnerGroup,
    GroupingResult,
    Participant,
    Route,
    RoutingResult,
)
from runningdinner.routing import MEAL_LABELS


def format_groups(result: GroupingResult, participants: list[Participant]) -> str:
    """Format formed groups for display."""
    by_id = {p.id: p for p in participants}

    def label(pid: int) -> str:
        participant = by_id.get(pid)
        return participant.name if participant else f"#{pid}"

    lines = ["=== Dinner Groups ==="]
    for group in result.groups:
        meal = MEAL_LABELS.get(group.assigned_meal or "", "unassigned")
        lines.append(f"Group {group.group_number} ({meal}):")
        for pid in group.member_ids:
            suffix = " (host)" if pid == group.host_id else ""
            lines.append(f"    - {label(pid)}{suffix}")

    if result.waitlisted_ids:
        lines.append("")
        lines.append("=== Waitlist ===")
        for pid in result.waitlisted_ids:
            lines.append(f"    - {label(pid)}")

    return "\n".join(lines)


def format_routes(result: RoutingResult, groups: list[DinnerGroup]) -> str:
    """Format routes for display, one block per group."""
    hosts = {g.group_number: g for g in groups}
    lines = ["=== Routes ==="]
    lines.append(f"Repeated meetings: {result.duplicate_meetings}")
    lines.append("")

    for route in result.routes:
        lines.append(f"--- Group {route.group_id} ---")
        for stop in route.stops:
            where = "at home" if stop.host_group_id == route.group_id else f"at group {stop.host_group_id}"
            host = hosts.get(stop.host_group_id)
            host_suffix = f" (host #{host.host_id})" if host and host.host_id is not None else ""
            lines.append(
                f"  {stop.start_time}-{stop.end_time} {MEAL_LABELS[stop.meal]}: {where}{host_suffix}"
            )
        lines.append("")

    return "\n".join(lines).rstrip()


def format_warnings(warnings: list[str]) -> str:
    if not warnings:
        return ""
    lines = ["=== Warnings ==="]
    lines.extend(f"  - {warning}" for warning in warnings)
    return "\n".join(lines)


def format_routes_csv(routes: list[Route]) -> str:
    """Format routes as CSV for export."""
    lines: list[str] = ["group,meal,host_group,start_time,end_time"]
    for route in sorted(routes, key=lambda r: r.group_id):
        for stop in route.stops:
            lines.append(
                f"{route.group_id},{stop.meal},{stop.host_group_id},{stop.start_time},{stop.end_time}"
            )
    return "\n".join(lines)
