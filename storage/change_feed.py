"""Change feed derived by polling the remote store and diffing snapshots."""
import logging
import threading
from typing import Callable, Dict, List, Optional, Sequence

from catalog.models import ChangeEvent, Deleted, EventRecord, Inserted, Updated

logger = logging.getLogger(__name__)

ChangeHandler = Callable[[ChangeEvent], None]


def records_differ(record1: EventRecord, record2: EventRecord) -> bool:
    """
    Compare two versions of an event.

    Compares all fields except the updated_at timestamp.

    Args:
        record1: First version
        record2: Second version

    Returns:
        True if records differ, False otherwise
    """
    return (
        record1.title != record2.title or
        record1.description != record2.description or
        record1.date != record2.date or
        record1.location != record2.location or
        record1.category != record2.category or
        record1.image_url != record2.image_url or
        record1.price != record2.price or
        record1.max_attendees != record2.max_attendees or
        record1.organizer_id != record2.organizer_id or
        record1.created_at != record2.created_at
    )


def diff_snapshots(
    previous: Dict[str, EventRecord],
    current: Sequence[EventRecord]
) -> List[ChangeEvent]:
    """
    Compute the change events turning one snapshot into the next.

    Args:
        previous: Last known events keyed by id
        current: Fresh fetch, newest first

    Returns:
        Inserts, then updates, then deletes
    """
    current_ids = {record.id for record in current}

    # Inserted records are prepended by the catalog, so emit the
    # oldest first to end up newest first
    inserts = [
        Inserted(record) for record in reversed(current)
        if record.id not in previous
    ]

    updates = [
        Updated(record.to_dict()) for record in current
        if record.id in previous and records_differ(record, previous[record.id])
    ]

    deletes = [
        Deleted(event_id) for event_id in previous
        if event_id not in current_ids
    ]

    return inserts + updates + deletes


class PollingSubscription:
    """
    Delivers change events by polling ``fetch_all`` on a background thread.

    Events are delivered in order on the polling thread. ``cancel()``
    joins the thread, so no event is delivered once it returns.

    With ``wait_for_seed`` the thread does not poll until ``seed()`` hands
    over the records the caller built its catalog from; the first poll
    then diffs against exactly those. Otherwise the first poll records
    its own baseline.
    """

    def __init__(
        self,
        fetch_all: Callable[[], Sequence[EventRecord]],
        handler: ChangeHandler,
        interval: float = 5.0,
        wait_for_seed: bool = False
    ):
        """
        Initialize the subscription without starting it.

        Args:
            fetch_all: Callable returning all events, newest first
            handler: Callable receiving each change event
            interval: Seconds between polls
            wait_for_seed: Hold the first poll until seed() is called
        """
        self.fetch_all = fetch_all
        self.handler = handler
        self.interval = interval
        self._known: Optional[Dict[str, EventRecord]] = None
        self._generation = 0
        self._lock = threading.Lock()
        self._seeded = threading.Event()
        if not wait_for_seed:
            self._seeded.set()
        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self._run,
            name='catalog-change-feed',
            daemon=True
        )

    @property
    def active(self) -> bool:
        return self._thread.is_alive() and not self._stop_event.is_set()

    def start(self) -> 'PollingSubscription':
        logger.info(f"Starting change feed polling every {self.interval}s")
        self._thread.start()
        return self

    def seed(self, records: Sequence[EventRecord]) -> None:
        """
        Make the given records the baseline for the next poll.

        A poll whose fetch was in flight when seed() ran is discarded.

        Args:
            records: Events the caller's catalog now holds
        """
        with self._lock:
            self._known = {record.id: record for record in records}
            self._generation += 1
        self._seeded.set()
        logger.debug(f"Change feed seeded with {len(records)} events")

    def cancel(self) -> None:
        """Stop polling and wait for the polling thread to exit."""
        self._stop_event.set()
        # Wake a thread still waiting for its seed
        self._seeded.set()
        if self._thread.is_alive() and threading.current_thread() is not self._thread:
            self._thread.join()
        logger.info("Change feed polling stopped")

    def poll_once(self) -> int:
        """
        Fetch once and deliver the changes since the previous poll.

        Without a seed the first poll only records a baseline. A handler
        failure is logged and does not hold back the rest of the batch.

        Returns:
            Number of change events delivered
        """
        with self._lock:
            generation = self._generation

        records = list(self.fetch_all())

        with self._lock:
            if generation != self._generation:
                logger.debug("Change feed reseeded during fetch, discarding poll")
                return 0

            if self._known is None:
                self._known = {record.id: record for record in records}
                return 0

            changes = diff_snapshots(self._known, records)
            self._known = {record.id: record for record in records}

        delivered = 0
        for change in changes:
            if self._stop_event.is_set() or generation != self._generation:
                break
            try:
                self.handler(change)
            except Exception as e:
                logger.error(f"Change handler failed for {change!r}: {e}", exc_info=True)
                continue
            delivered += 1

        if delivered:
            logger.info(f"Delivered {delivered} change events")
        return delivered

    def _run(self) -> None:
        self._seeded.wait()
        while not self._stop_event.is_set():
            try:
                self.poll_once()
            except Exception as e:
                # Transient remote failures are retried on the next tick
                logger.warning(f"Change feed poll failed: {e}")
            self._stop_event.wait(self.interval)
