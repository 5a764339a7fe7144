"""Search and category filtering over a catalog snapshot."""
from typing import Optional, Sequence, Tuple

from catalog.models import EventRecord, FilterCriteria


def _normalized_category(category: Optional[str]) -> Optional[str]:
    if category is None or not category.strip():
        return None
    return category.lower()


def matches_query(record: EventRecord, query: str) -> bool:
    """
    Check whether a lowercased query appears in any searchable field.

    Args:
        record: Event to test
        query: Already lowercased search text

    Returns:
        True if title, category, location or description contains it
    """
    return (
        query in record.title.lower() or
        query in record.category.lower() or
        query in record.location.lower() or
        query in record.description.lower()
    )


def filter_events(
    snapshot: Sequence[EventRecord],
    criteria: FilterCriteria
) -> Tuple[EventRecord, ...]:
    """
    Compute the visible subset of a snapshot.

    Category and query are independent predicates and must both hold
    when both are set. With neither set the snapshot comes back whole,
    in its original order.

    Args:
        snapshot: Catalog snapshot, newest first
        criteria: Search text and optional category

    Returns:
        Tuple of matching records in snapshot order
    """
    category = _normalized_category(criteria.category)
    query = (criteria.query or '').strip().lower()

    records = tuple(snapshot)

    if category is not None:
        records = tuple(
            record for record in records
            if record.category.lower() == category
        )

    if query:
        records = tuple(
            record for record in records
            if matches_query(record, query)
        )

    return records
