"""Parent/child link aggregation ("enlaces").

A ticket's linked count is the number of links in which it is the child.
Counts are computed once per link set and served from an immutable mapping.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass
from types import MappingProxyType

from ticketflow.models import ParentChildLink


@dataclass(frozen=True)
class LinkGroup:
    """Links sharing one child (linked) request id, in input order."""

    linked_id: str
    relationships: tuple[ParentChildLink, ...]

    @property
    def count(self) -> int:
        return len(self.relationships)


class RelationshipAggregator:
    def __init__(self, links: Iterable[ParentChildLink] = ()):
        self._links = tuple(links)
        self._counts = MappingProxyType(
            dict(Counter(link.child_request_id for link in self._links))
        )

    def __len__(self) -> int:
        return len(self._links)

    def linked_counts(self) -> MappingProxyType:
        """``{request_id: count}`` of links where the id is the child."""
        return self._counts

    def linked_count(self, request_id: str | None) -> int:
        if request_id is None:
            return 0
        return self._counts.get(request_id, 0)

    def group_by_linked_id(self) -> list[LinkGroup]:
        """Group links by child id, groups ordered by first appearance."""
        groups: dict[str, list[ParentChildLink]] = {}
        for link in self._links:
            groups.setdefault(link.child_request_id, []).append(link)
        return [LinkGroup(linked_id, tuple(rels)) for linked_id, rels in groups.items()]
