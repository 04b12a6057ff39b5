"""Partition a roster into fixed-size cooking groups balanced over the courses."""

import logging
from collections import Counter

import numpy as np

from runningdinner.errors import ValidationError
from runningdinner.models import (
    MEALS,
    DinnerGroup,
    EventConfig,
    GroupingResult,
    MealType,
    Participant,
    PreferenceGraph,
    SolverSettings,
)
from runningdinner.preferences import (
    build_preference_graph,
    preference_clusters,
    report_mismatches,
)

logger = logging.getLogger(__name__)

# Waitlist keep-score weights: higher = more worth keeping
MUTUAL_WEIGHT = 3
ONE_SIDED_WEIGHT = 1
ADMIRED_WEIGHT = 1


def form_groups(
    config: EventConfig,
    roster: list[Participant],
    rng: np.random.Generator | int | None = None,
    settings: SolverSettings | None = None,
) -> GroupingResult:
    """
    Form cooking groups from a roster.

    Participants beyond the largest multiple of three full groups go to the
    waitlist. The rest are bucketed by course, keeping preference clusters
    together, and each bucket is cut into groups of exactly
    ``config.preferred_group_size``.

    Raises ValidationError if there are fewer active participants than one
    group per course needs.
    """
    rng = np.random.default_rng(rng)
    settings = settings or SolverSettings()
    group_size = config.preferred_group_size
    if group_size < 1:
        raise ValidationError(f"Preferred group size must be at least 1, got {group_size}.")

    active = [p for p in roster if p.is_active]
    min_participants = len(MEALS) * group_size
    if len(active) < min_participants:
        raise ValidationError(
            f"Need at least {min_participants} participants "
            f"(3 meals x {group_size} people per group). Currently have {len(active)}."
        )

    # Group count must be a multiple of 3 so every course has the same number of hosts
    ideal_group_count = len(active) // group_size
    usable_group_count = ideal_group_count - ideal_group_count % len(MEALS)
    ideal_participant_count = usable_group_count * group_size

    warnings: list[str] = []
    working = active
    waitlisted_ids: list[int] = []
    if len(active) > ideal_participant_count:
        excess = len(active) - ideal_participant_count
        working, waitlisted = _select_waitlist(active, excess, rng, warnings)
        waitlisted_ids = [p.id for p in waitlisted]

    logger.info(
        "Forming %d groups of %d from %d participants (%d waitlisted)",
        usable_group_count,
        group_size,
        len(working),
        len(waitlisted_ids),
    )

    graph = build_preference_graph(working)
    by_id = {p.id: p for p in working}
    groups_per_meal = usable_group_count // len(MEALS)
    bucket_target = groups_per_meal * group_size

    shuffled = [working[i] for i in rng.permutation(len(working))]
    buckets = _bucket_by_meal(shuffled, graph, by_id, bucket_target)
    _rebalance(buckets, graph, by_id, bucket_target, settings.rebalance_iterations, warnings)

    groups: list[DinnerGroup] = []
    for meal in MEALS:
        for members in _split_bucket(buckets[meal], graph, group_size):
            group = DinnerGroup(
                group_number=len(groups) + 1,
                member_ids=members,
                assigned_meal=meal,
            )
            if len(members) != group_size:
                warnings.append(
                    f"Incomplete group {group.group_number} with {len(members)} members "
                    f"(expected {group_size})"
                )
            groups.append(group)

    for group in groups:
        group.host_id = int(rng.choice(group.member_ids))

    warnings.extend(report_mismatches(groups, graph, by_id))

    return GroupingResult(groups=groups, warnings=warnings, waitlisted_ids=waitlisted_ids)


def _select_waitlist(
    active: list[Participant],
    excess: int,
    rng: np.random.Generator,
    warnings: list[str],
) -> tuple[list[Participant], list[Participant]]:
    """Split ``active`` into (kept, waitlisted), waitlisting ``excess`` people."""
    graph = build_preference_graph(active)
    admired = Counter(target for targets in graph.one_sided.values() for target in targets)
    jitter = rng.random(len(active))

    def sort_key(idx: int) -> tuple[int, float, float]:
        p = active[idx]
        keep_score = (
            MUTUAL_WEIGHT * len(graph.mutual_partners(p.id) - {p.id})
            + ONE_SIDED_WEIGHT * len(graph.one_sided.get(p.id, ()))
            + ADMIRED_WEIGHT * admired[p.id]
        )
        # Most recent registrations first; unknown dates count as oldest
        registered = p.registered_at.timestamp() if p.registered_at else float("-inf")
        return keep_score, -registered, float(jitter[idx])

    ranked = sorted(range(len(active)), key=sort_key)
    waitlisted_idx = set(ranked[:excess])
    waitlisted = [active[i] for i in ranked[:excess]]
    kept = [p for i, p in enumerate(active) if i not in waitlisted_idx]

    warnings.append(
        f"{excess} participant(s) moved to waitlist to achieve group balance "
        f"(need a multiple of 3 groups)"
    )
    for p in waitlisted:
        if graph.mutual_partners(p.id) - {p.id}:
            warnings.append(f"{p.name} was waitlisted despite having a mutual partner preference")

    return kept, waitlisted


def _meal_preference(participant: Participant) -> MealType | None:
    """Stated course preference; 'none' and unknown values mean no preference."""
    preference = participant.meal_preference
    return preference if preference in MEALS else None


def _cluster_meal(
    participant: Participant,
    graph: PreferenceGraph,
    by_id: dict[int, Participant],
) -> MealType | None:
    """Pick the course for a participant's cluster from stated preferences."""
    for partner_id in sorted(graph.mutual_partners(participant.id)):
        preference = _meal_preference(by_id[partner_id])
        if preference:
            return preference
    own = _meal_preference(participant)
    if own:
        return own
    for partner_id in sorted(graph.one_sided.get(participant.id, ())):
        preference = _meal_preference(by_id[partner_id])
        if preference:
            return preference
    return None


def _bucket_by_meal(
    participants: list[Participant],
    graph: PreferenceGraph,
    by_id: dict[int, Participant],
    bucket_target: int,
) -> dict[MealType, list[int]]:
    """Assign every participant to a course bucket, clusters first."""
    buckets: dict[MealType, list[int]] = {meal: [] for meal in MEALS}
    placed: set[int] = set()

    def smallest() -> MealType:
        return min(MEALS, key=lambda meal: len(buckets[meal]))

    def place(meal: MealType, ids: list[int]) -> None:
        buckets[meal].extend(ids)
        placed.update(ids)

    clusters = preference_clusters(graph, [p.id for p in participants])
    cluster_of = {pid: cluster for cluster in clusters for pid in cluster}

    for p in participants:
        if p.id in placed or not graph.has_links(p.id):
            continue
        cluster = [pid for pid in cluster_of[p.id] if pid not in placed]
        if len(cluster) > bucket_target:
            # Too big for one course: keep only the direct partners together
            cluster = [p.id] + [
                pid for pid in sorted(graph.partners(p.id)) if pid not in placed and pid != p.id
            ]
        place(_cluster_meal(p, graph, by_id) or smallest(), cluster)

    for p in participants:
        preference = _meal_preference(p)
        if p.id not in placed and preference:
            place(preference, [p.id])

    for p in participants:
        if p.id not in placed:
            place(smallest(), [p.id])

    return buckets


def _rebalance(
    buckets: dict[MealType, list[int]],
    graph: PreferenceGraph,
    by_id: dict[int, Participant],
    bucket_target: int,
    max_iterations: int,
    warnings: list[str],
) -> None:
    """Move participants between buckets until each holds ``bucket_target``."""
    # Every move shrinks the total surplus, so one move per participant is enough
    iterations = max(max_iterations, len(by_id))
    for _ in range(iterations):
        surplus = {meal: len(buckets[meal]) - bucket_target for meal in MEALS}
        if not any(surplus.values()):
            return

        moved = False
        for source in sorted((m for m in MEALS if surplus[m] > 0), key=lambda m: -surplus[m]):
            for dest in sorted((m for m in MEALS if surplus[m] < 0), key=lambda m: surplus[m]):
                limit = min(surplus[source], -surplus[dest])
                ids = _movable(buckets[source], dest, graph, by_id, limit)
                if ids:
                    _move(buckets, source, dest, ids, by_id, warnings)
                    moved = True
                    break
            if moved:
                break

        if not moved:
            # No legal move left: split the loosest link so every course still
            # gets the same number of full groups
            source = max(MEALS, key=lambda m: surplus[m])
            dest = min(MEALS, key=lambda m: surplus[m])
            pid = _loosest(buckets[source], graph)
            warnings.append(
                "Could not perfectly balance meal groups without separating partner "
                f"preferences: moved {by_id[pid].name} from {source} to {dest}"
            )
            _move(buckets, source, dest, [pid], by_id, warnings)

    warnings.append(
        f"Could not perfectly balance meal groups within {iterations} iterations"
    )


def _movable(
    bucket: list[int],
    dest: MealType,
    graph: PreferenceGraph,
    by_id: dict[int, Participant],
    limit: int,
) -> list[int]:
    """
    Find participants that can leave ``bucket`` together.

    A single participant qualifies when it has no preference link to anyone
    else in the bucket. Failing that, a whole cluster no larger than
    ``limit`` may move as a unit.
    """
    members = set(bucket)

    def rank(pid: int) -> int:
        preference = _meal_preference(by_id[pid])
        if preference == dest:
            return 0
        return 1 if preference is None else 2

    singles = [pid for pid in bucket if not (graph.linked(pid) & members)]
    if singles:
        return [min(singles, key=rank)]

    clusters = [c for c in preference_clusters(graph, bucket) if len(c) <= limit]
    if not clusters:
        return []
    return min(clusters, key=lambda c: (len(c), sum(rank(pid) for pid in c)))


def _loosest(bucket: list[int], graph: PreferenceGraph) -> int:
    """The bucket member whose departure breaks the fewest preferences."""
    members = set(bucket)

    def cost(pid: int) -> tuple[int, int]:
        mutual = len((graph.mutual_partners(pid) - {pid}) & members)
        return mutual, len(graph.linked(pid) & members)

    return min(bucket, key=cost)


def _move(
    buckets: dict[MealType, list[int]],
    source: MealType,
    dest: MealType,
    ids: list[int],
    by_id: dict[int, Participant],
    warnings: list[str],
) -> None:
    moving = set(ids)
    buckets[source] = [pid for pid in buckets[source] if pid not in moving]
    buckets[dest].extend(ids)
    for pid in ids:
        participant = by_id[pid]
        preference = _meal_preference(participant)
        if preference and preference != dest:
            warnings.append(
                f"{participant.name} assigned {dest} instead of preferred "
                f"{preference} to balance meals"
            )
    logger.debug("Moved %s from %s to %s", ids, source, dest)


def _split_bucket(bucket: list[int], graph: PreferenceGraph, group_size: int) -> list[list[int]]:
    """
    Cut one course bucket into groups of ``group_size``.

    Mutual clusters are seated first, then one-sided clusters, then whoever
    is left in bucket order. Fillers are taken from participants without
    any preference links before anyone else. A participant joins a group
    through a one-sided link only together with their unseated mutual
    partners, so a mutual pair with room left is never split that way.
    """
    members_in_bucket = set(bucket)
    assigned: set[int] = set()
    groups: list[list[int]] = []

    def grow(group: list[int], candidates) -> None:
        for pid in candidates:
            if len(group) >= group_size:
                return
            if pid in members_in_bucket and pid not in assigned:
                group.append(pid)
                assigned.add(pid)

    def mutual_unit(pid: int) -> list[int]:
        unit = [pid]
        i = 0
        while i < len(unit):
            for other in sorted(graph.mutual_partners(unit[i])):
                if other in members_in_bucket and other not in assigned and other not in unit:
                    unit.append(other)
            i += 1
        return unit

    def grow_units(group: list[int], candidates) -> None:
        for pid in candidates:
            if pid not in members_in_bucket or pid in assigned:
                continue
            unit = mutual_unit(pid)
            if len(group) + len(unit) <= group_size:
                grow(group, unit)

    def expand(group: list[int], neighbours, add=grow) -> None:
        i = 0
        while i < len(group) and len(group) < group_size:
            add(group, sorted(neighbours(group[i])))
            i += 1

    def fill(group: list[int]) -> None:
        grow(group, [pid for pid in bucket if not graph.has_links(pid)])
        grow_units(group, bucket)
        grow(group, bucket)

    def open_links(pid: int, neighbours) -> bool:
        return any(
            other in members_in_bucket and other not in assigned and other != pid
            for other in neighbours(pid)
        )

    for pid in bucket:
        if pid in assigned or not open_links(pid, graph.mutual_partners):
            continue
        group: list[int] = []
        grow(group, [pid])
        expand(group, graph.mutual_partners)
        expand(group, graph.partners, add=grow_units)
        fill(group)
        groups.append(group)

    for pid in bucket:
        if pid in assigned or not open_links(pid, graph.linked):
            continue
        group = []
        grow(group, [pid])
        expand(group, graph.linked)
        fill(group)
        groups.append(group)

    rest = [pid for pid in bucket if pid not in assigned]
    for start in range(0, len(rest), group_size):
        groups.append(rest[start : start + group_size])

    return groups
