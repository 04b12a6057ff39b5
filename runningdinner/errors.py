"""Exceptions raised by the grouping and routing engines."""


class ValidationError(ValueError):
    """Input violates a precondition; raised before any computation."""


class RouteAssignmentError(RuntimeError):
    """The route search ran out of attempts without a valid seating."""

    def __init__(
        self,
        attempts: int,
        steps: int,
        seated: int,
        total_groups: int,
        failure_reasons: list[tuple[str, int]],
        suggestions: list[str] | None = None,
    ):
        self.attempts = attempts
        self.steps = steps
        self.seated = seated
        self.total_groups = total_groups
        self.failure_reasons = failure_reasons
        self.suggestions = suggestions or []
        super().__init__(self._format())

    def _format(self) -> str:
        lines = [
            "Could not find a valid route assignment.",
            f"Attempted {self.attempts} search(es) with {self.steps} backtracking steps.",
            f"Seated at most {self.seated} out of {self.total_groups} groups.",
        ]
        if self.failure_reasons:
            lines.append("Top failure reasons:")
            for reason, count in self.failure_reasons:
                lines.append(f"  - {reason}: {count} times")
        if self.suggestions:
            lines.append("Suggestions:")
            for suggestion in self.suggestions:
                lines.append(f"  - {suggestion}")
        return "\n".join(lines)
