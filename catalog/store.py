"""Local mirror of the remote event catalog."""
import dataclasses
import logging
import threading
from collections.abc import Mapping
from typing import Any, Iterable, List, Tuple

from catalog.models import ChangeEvent, Deleted, EventRecord, Inserted, Updated

logger = logging.getLogger(__name__)

OPTIONAL_STR_FIELDS = frozenset({'image_url'})


def _valid_value(field: str, value: Any) -> bool:
    """Check a field value from an update payload against EventRecord's types."""
    if field == 'price':
        return (
            isinstance(value, (int, float)) and not isinstance(value, bool)
            and value >= 0
        )
    if field == 'max_attendees':
        return value is None or (
            isinstance(value, int) and not isinstance(value, bool) and value >= 1
        )
    if field in OPTIONAL_STR_FIELDS:
        return value is None or isinstance(value, str)
    return isinstance(value, str)


class CatalogStore:
    """
    Snapshot of all known events, newest first.

    The store only mirrors what the remote store reports. Inconsistent
    change events are logged and dropped, never raised, since the next
    full fetch replaces the snapshot anyway.
    """

    IMMUTABLE_FIELDS = frozenset({'id', 'organizer_id'})
    MUTABLE_FIELDS = frozenset(
        f.name for f in dataclasses.fields(EventRecord)
    ) - IMMUTABLE_FIELDS

    def __init__(self):
        self._records: List[EventRecord] = []
        self._lock = threading.Lock()

    def initialize(self, records: Iterable[EventRecord]) -> None:
        """
        Replace the whole snapshot with the result of a full fetch.

        Args:
            records: Events ordered by creation time, newest first
        """
        seen = set()
        fresh = []
        for record in records:
            if record.id in seen:
                logger.warning(f"Duplicate event id in full fetch: {record.id}")
                continue
            seen.add(record.id)
            fresh.append(record)

        with self._lock:
            self._records = fresh
        logger.info(f"Catalog initialized with {len(fresh)} events")

    def apply_change(self, change: ChangeEvent) -> None:
        """
        Apply one remote change to the snapshot.

        Args:
            change: Inserted, Updated or Deleted event
        """
        with self._lock:
            if isinstance(change, Inserted):
                self._apply_insert(change.record)
            elif isinstance(change, Updated):
                self._apply_update(change)
            elif isinstance(change, Deleted):
                self._apply_delete(change.event_id)
            else:
                logger.warning(f"Ignoring unknown change event: {change!r}")

    def snapshot(self) -> Tuple[EventRecord, ...]:
        with self._lock:
            return tuple(self._records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def _index_of(self, event_id: str) -> int:
        for index, record in enumerate(self._records):
            if record.id == event_id:
                return index
        return -1

    def _apply_insert(self, record: EventRecord) -> None:
        if not isinstance(record, EventRecord):
            logger.warning(f"Ignoring insert with malformed record: {record!r}")
            return

        index = self._index_of(record.id)
        if index >= 0:
            logger.warning(
                f"Insert for already known event {record.id}, overwriting"
            )
            self._records[index] = record
            return

        self._records.insert(0, record)

    def _apply_update(self, change: Updated) -> None:
        changes = change.changes
        if not isinstance(changes, Mapping):
            logger.warning(f"Ignoring update with malformed payload: {changes!r}")
            return

        event_id = changes.get('id')
        index = self._index_of(event_id) if event_id else -1
        if index < 0:
            logger.warning(f"Ignoring update for unknown event: {event_id}")
            return

        current = self._records[index]
        if changes.get('organizer_id', current.organizer_id) != current.organizer_id:
            logger.warning(f"Ignoring organizer change for event {event_id}")

        # Shallow merge: fields absent from the payload keep their value
        merged = {
            key: value for key, value in changes.items()
            if key in self.MUTABLE_FIELDS
        }

        invalid = [
            key for key, value in merged.items()
            if not _valid_value(key, value)
        ]
        if invalid:
            logger.warning(
                f"Ignoring update for event {event_id} with invalid fields: "
                f"{', '.join(sorted(invalid))}"
            )
            return

        self._records[index] = dataclasses.replace(current, **merged)

    def _apply_delete(self, event_id: str) -> None:
        index = self._index_of(event_id)
        if index < 0:
            logger.debug(f"Delete for unknown event {event_id}, nothing to do")
            return
        del self._records[index]
