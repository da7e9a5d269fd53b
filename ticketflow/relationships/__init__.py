"""Parent/child ticket relationships."""

from ticketflow.relationships.aggregator import LinkGroup, RelationshipAggregator

__all__ = ["LinkGroup", "RelationshipAggregator"]
