"""Partner-preference parsing and preference-graph utilities."""

import logging
from collections.abc import Iterable

import numpy as np
from scipy.sparse import coo_matrix
from scipy.sparse.csgraph import connected_components

from runningdinner.models import DinnerGroup, Participant, PreferenceGraph

logger = logging.getLogger(__name__)


def normalize_name(name: str) -> str:
    """Lowercase a name and collapse runs of whitespace."""
    return " ".join(name.lower().split())


def split_preferences(text: str | None) -> list[str]:
    """Split a free-text preference field into trimmed, non-empty entries."""
    if not text:
        return []
    return [entry.strip() for entry in text.split(",") if entry.strip()]


class PreferenceResolver:
    """
    Resolve free-text partner entries to participant ids.

    Entries containing ``@`` are looked up by email. Anything else is tried
    as an exact name, then with its whitespace collapsed, then with its
    tokens reversed ("Lastname Firstname"). When two participants share a
    normalized name or email, the one indexed last wins.
    """

    def __init__(self, participants: Iterable[Participant]):
        self.by_email: dict[str, int] = {}
        self.by_name: dict[str, int] = {}
        for p in participants:
            if p.email:
                self.by_email[p.email.strip().lower()] = p.id
            if p.name:
                self.by_name[normalize_name(p.name)] = p.id

    def resolve(self, text: str) -> int | None:
        entry = text.strip().lower()
        if not entry:
            return None
        if "@" in entry:
            return self.by_email.get(entry)

        if entry in self.by_name:
            return self.by_name[entry]
        tokens = entry.split()
        rejoined = " ".join(tokens)
        if rejoined in self.by_name:
            return self.by_name[rejoined]
        reversed_name = " ".join(reversed(tokens))
        return self.by_name.get(reversed_name)


def _names_source(text: str, source: Participant) -> bool:
    """Whether a raw preference field mentions ``source`` by name or email."""
    haystack = text.lower()
    name = source.name.strip().lower()
    email = source.email.strip().lower()
    return bool((name and name in haystack) or (email and email in haystack))


def build_preference_graph(participants: list[Participant]) -> PreferenceGraph:
    """
    Build the preference graph for a list of participants.

    An edge source -> target is mutual when the target's own preference text
    mentions the source's name or email, otherwise it is one-sided.
    Unresolvable entries are dropped.
    """
    resolver = PreferenceResolver(participants)
    by_id = {p.id: p for p in participants}
    graph = PreferenceGraph()

    for participant in participants:
        for entry in split_preferences(participant.partner_preference):
            target_id = resolver.resolve(entry)
            if target_id is None:
                logger.debug("Dropping unresolved preference %r of %s", entry, participant.email)
                continue

            target = by_id[target_id]
            if _names_source(target.partner_preference or "", participant):
                graph.add_mutual(participant.id, target_id)
            else:
                graph.add_one_sided(participant.id, target_id)

    return graph


def preference_clusters(graph: PreferenceGraph, ids: Iterable[int]) -> list[list[int]]:
    """
    Group ``ids`` into preference clusters.

    A cluster is a weakly connected component of the preference relation
    restricted to ``ids``. Members keep the order of ``ids``; clusters are
    ordered by their first member.
    """
    ordered = list(dict.fromkeys(ids))
    if not ordered:
        return []
    index = {pid: i for i, pid in enumerate(ordered)}

    rows: list[int] = []
    cols: list[int] = []
    for edges in (graph.mutual, graph.one_sided):
        for source, targets in edges.items():
            if source not in index:
                continue
            for target in targets:
                if target in index:
                    rows.append(index[source])
                    cols.append(index[target])

    size = len(ordered)
    adjacency = coo_matrix(
        (np.ones(len(rows), dtype=np.int8), (rows, cols)),
        shape=(size, size),
    )
    _, labels = connected_components(adjacency, directed=True, connection="weak")

    clusters: dict[int, list[int]] = {}
    for pid, label in zip(ordered, labels):
        clusters.setdefault(int(label), []).append(pid)
    return list(clusters.values())


def report_mismatches(
    groups: list[DinnerGroup],
    graph: PreferenceGraph,
    participants: dict[int, Participant],
) -> list[str]:
    """Warn about every member whose mutual partner ended up in another group."""
    warnings: list[str] = []
    for group in groups:
        members = set(group.member_ids)
        for pid in group.member_ids:
            missing = graph.mutual_partners(pid) - members
            if not missing:
                continue
            participant = participants.get(pid)
            label = participant.name if participant else f"Participant {pid}"
            warnings.append(
                f"{label} (group {group.group_number}) has mutual preferences not in their group"
            )
    return warnings
