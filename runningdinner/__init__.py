"""Group formation and route assignment for running dinner events."""

from runningdinner.errors import RouteAssignmentError, ValidationError
from runningdinner.grouping import form_groups
from runningdinner.preferences import build_preference_graph, report_mismatches
from runningdinner.routing import assign_routes, count_meetings

__all__ = [
    "RouteAssignmentError",
    "ValidationError",
    "assign_routes",
    "build_preference_graph",
    "count_meetings",
    "form_groups",
    "report_mismatches",
]
