"""View coordinator keeping a filtered catalog view in sync with the remote store."""
import logging
import threading
from typing import Any, Callable, List, Optional

from catalog.filters import filter_events
from catalog.models import CatalogView, ChangeEvent, FilterCriteria, ViewStatus
from catalog.store import CatalogStore

logger = logging.getLogger(__name__)

Listener = Callable[[CatalogView], None]


class ViewCoordinator:
    """
    Owns one subscription and one catalog snapshot.

    The remote store must provide ``fetch_all()``,
    ``subscribe_to_changes(handler)`` and ``unsubscribe(handle)``.
    Every recomputation of the visible list is pushed to the registered
    listeners; ``current_view()`` can be polled instead.
    """

    def __init__(
        self,
        remote_store: Any,
        criteria: Optional[FilterCriteria] = None,
        store: Optional[CatalogStore] = None
    ):
        """
        Initialize the coordinator.

        Args:
            remote_store: Remote store collaborator
            criteria: Initial filter criteria (default: no filtering)
            store: Catalog store to mirror into (default: a new one)
        """
        self.remote_store = remote_store
        self.store = store if store is not None else CatalogStore()
        self._criteria = criteria or FilterCriteria()
        self._status = ViewStatus.IDLE
        self._error: Optional[str] = None
        self._visible = ()
        self._subscription = None
        self._stopped = True
        self._listeners: List[Listener] = []
        self._lock = threading.RLock()

    @property
    def criteria(self) -> FilterCriteria:
        return self._criteria

    def start(self, subscribe: bool = True) -> CatalogView:
        """
        Subscribe to changes and load the full catalog.

        The subscription is opened before the fetch so changes committed
        while the fetch is in flight are applied to the snapshot as they
        arrive. The fetched snapshot replaces whatever they produced.
        Subscriptions that derive changes by polling are seeded with the
        fetched records so their first diff starts from the same state.

        Args:
            subscribe: Keep the view live; False loads a one-shot view

        Returns:
            The view after the initial load finished or failed
        """
        with self._lock:
            self._stopped = False
            self._status = ViewStatus.LOADING
            self._error = None
            self._publish()

        try:
            with self._lock:
                if subscribe and self._subscription is None:
                    self._subscription = self.remote_store.subscribe_to_changes(
                        self._handle_change
                    )

            logger.info("Fetching full event catalog")
            records = self.remote_store.fetch_all()
        except Exception as e:
            logger.error(
                f"Failed to fetch event catalog: {str(e)}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )
            with self._lock:
                if not self._stopped:
                    self._status = ViewStatus.FAILED
                    self._error = str(e)
                    self._publish()
                return self.current_view()

        with self._lock:
            if self._stopped:
                logger.info("Coordinator stopped during initial fetch")
                return self.current_view()
            self.store.initialize(records)
            seed = getattr(self._subscription, 'seed', None)
            if seed is not None:
                seed(records)
            self._status = ViewStatus.READY
            self._publish()
            logger.info(f"Event catalog ready with {len(records)} events")
            return self.current_view()

    def stop(self) -> None:
        """Release the subscription. Safe to call more than once."""
        with self._lock:
            if self._stopped and self._subscription is None:
                return
            self._stopped = True
            if self._status == ViewStatus.LOADING:
                self._status = ViewStatus.IDLE
            subscription = self._subscription
            self._subscription = None

        if subscription is not None:
            self.remote_store.unsubscribe(subscription)
            logger.info("Unsubscribed from event changes")

    def update_criteria(self, criteria: FilterCriteria) -> CatalogView:
        """
        Replace the filter criteria and recompute the visible list.

        Args:
            criteria: New search text and category

        Returns:
            The recomputed view
        """
        with self._lock:
            self._criteria = criteria
            self._publish()
            return self.current_view()

    def current_view(self) -> CatalogView:
        with self._lock:
            return CatalogView(
                status=self._status,
                visible_records=self._visible,
                error=self._error
            )

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """
        Register a callback invoked with the new view after each recomputation.

        Args:
            listener: Callable taking a CatalogView

        Returns:
            Function removing the listener again
        """
        with self._lock:
            self._listeners.append(listener)

        def remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return remove

    def _handle_change(self, change: ChangeEvent) -> None:
        # Runs on the subscription's delivery thread
        with self._lock:
            if self._stopped:
                logger.debug(f"Dropping change after stop: {change!r}")
                return
            self.store.apply_change(change)
            self._publish()

    def _publish(self) -> None:
        self._visible = filter_events(self.store.snapshot(), self._criteria)
        view = self.current_view()

        for listener in list(self._listeners):
            try:
                listener(view)
            except Exception as e:
                logger.warning(f"Catalog view listener failed: {e}", exc_info=True)
