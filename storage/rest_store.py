"""REST remote store for hosted Postgres backends exposing a PostgREST API."""
import logging
import time
from typing import Any, Dict, List, Mapping, Optional

import requests

from catalog.exceptions import PermissionDeniedError, RemoteStoreError
from catalog.models import EventRecord, Registration
from processor.event_processor import EventProcessor
from storage.change_feed import ChangeHandler, PollingSubscription

logger = logging.getLogger(__name__)


class RestEventStore:
    """Remote store talking to ``{base_url}/events`` and ``{base_url}/registrations``."""

    MAX_RETRIES = 3
    BASE_DELAY = 1  # seconds

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: int = 30,
        poll_interval: float = 5.0,
        processor: Optional[EventProcessor] = None,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the REST client.

        Args:
            base_url: REST endpoint root, e.g. ``https://xyz.example.co/rest/v1``
            api_key: API key sent as ``apikey`` and bearer token
            timeout: HTTP request timeout in seconds (default: 30)
            poll_interval: Seconds between change feed polls
            processor: Row processor (default: a new EventProcessor)
            session: HTTP session to reuse (default: a new one)
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.processor = processor or EventProcessor()
        self.session = session or requests.Session()
        self.session.headers.update({
            'apikey': api_key,
            'Authorization': f"Bearer {api_key}",
            'Content-Type': 'application/json'
        })

    def fetch_all(self) -> List[EventRecord]:
        """
        Fetch every event, newest first.

        Returns:
            List of EventRecord objects
        """
        rows = self._request(
            'GET', 'events',
            params={'select': '*', 'order': 'created_at.desc'}
        )
        return self.processor.parse_records(rows or [])

    def get_event(self, event_id: str) -> Optional[EventRecord]:
        rows = self._request(
            'GET', 'events',
            params={'select': '*', 'id': f"eq.{event_id}"}
        )
        if not rows:
            return None
        return self.processor.parse_record(rows[0])

    def subscribe_to_changes(self, handler: ChangeHandler) -> PollingSubscription:
        return PollingSubscription(
            self.fetch_all,
            handler,
            interval=self.poll_interval,
            wait_for_seed=True
        ).start()

    def unsubscribe(self, subscription: PollingSubscription) -> None:
        subscription.cancel()

    def insert(self, draft: Mapping[str, Any], organizer_id: str) -> EventRecord:
        """
        Create a new event.

        Args:
            draft: Event fields submitted by the organizer
            organizer_id: Signed-in user creating the event

        Returns:
            The stored EventRecord as echoed by the server
        """
        row = self.processor.build_row(draft, organizer_id)
        rows = self._request('POST', 'events', json=[row], representation=True)
        logger.info(f"Created event {row['id']} for organizer {organizer_id}")
        return self.processor.parse_record(rows[0] if rows else row)

    def update(
        self,
        event_id: str,
        changes: Mapping[str, Any],
        organizer_id: str
    ) -> EventRecord:
        """
        Apply an organizer's edit to an event.

        Args:
            event_id: Event to edit
            changes: Edited fields
            organizer_id: Signed-in user editing the event

        Returns:
            The updated EventRecord
        """
        current = self._owned_event(event_id, organizer_id)
        if current is None:
            raise RemoteStoreError(f"Event not found: {event_id}", status_code=404)

        row = self.processor.apply_edit(current, changes)
        patch = {key: row[key] for key in changes}
        patch['updated_at'] = row['updated_at']

        rows = self._request(
            'PATCH', 'events',
            params={'id': f"eq.{event_id}", 'organizer_id': f"eq.{organizer_id}"},
            json=patch,
            representation=True
        )
        logger.info(f"Updated event {event_id}")
        return self.processor.parse_record(rows[0] if rows else row)

    def delete(self, event_id: str, organizer_id: str) -> bool:
        """
        Delete an event owned by the caller.

        Args:
            event_id: Event to delete
            organizer_id: Signed-in user deleting the event

        Returns:
            True if the event was deleted, False if it did not exist
        """
        if self._owned_event(event_id, organizer_id) is None:
            return False

        self._request(
            'DELETE', 'events',
            params={'id': f"eq.{event_id}", 'organizer_id': f"eq.{organizer_id}"}
        )
        logger.info(f"Deleted event {event_id}")
        return True

    def list_registrations(
        self,
        event_id: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> List[Registration]:
        params = {'select': '*'}
        if event_id is not None:
            params['event_id'] = f"eq.{event_id}"
        if user_id is not None:
            params['user_id'] = f"eq.{user_id}"

        rows = self._request('GET', 'registrations', params=params) or []
        return [self._row_to_registration(row) for row in rows]

    def insert_registration(
        self,
        event_id: str,
        user_id: str,
        ticket_quantity: int
    ) -> Registration:
        payload = {
            'event_id': event_id,
            'user_id': user_id,
            'ticket_quantity': ticket_quantity
        }
        rows = self._request(
            'POST', 'registrations', json=[payload], representation=True
        )
        if not rows:
            raise RemoteStoreError('Registration was not returned by the server')
        return self._row_to_registration(rows[0])

    def _owned_event(self, event_id: str, organizer_id: str) -> Optional[EventRecord]:
        current = self.get_event(event_id)
        if current is not None and current.organizer_id != organizer_id:
            raise PermissionDeniedError(
                f"Event {event_id} is not owned by {organizer_id}"
            )
        return current

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        representation: bool = False
    ) -> Any:
        """
        Send a request with retry logic for transient failures.

        Args:
            method: HTTP method
            path: Table path below the base URL
            params: Query parameters (PostgREST filters)
            json: JSON body
            representation: Ask the server to echo written rows

        Returns:
            Decoded JSON body, or None for empty responses

        Raises:
            RemoteStoreError: On client errors or once all retries fail
        """
        url = f"{self.base_url}/{path}"
        headers = {'Prefer': 'return=representation'} if representation else {}

        for attempt in range(self.MAX_RETRIES):
            try:
                response = self.session.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    headers=headers,
                    timeout=self.timeout
                )
                if response.status_code >= 500:
                    raise RemoteStoreError(
                        self._error_message(response),
                        status_code=response.status_code
                    )
            except (requests.RequestException, RemoteStoreError) as e:
                if attempt < self.MAX_RETRIES - 1:
                    # Calculate exponential backoff delay
                    delay = self.BASE_DELAY * (2 ** attempt)
                    logger.warning(
                        f"{method} {path} failed (attempt {attempt + 1}/"
                        f"{self.MAX_RETRIES}): {e}. Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                    continue
                logger.error(
                    f"All {self.MAX_RETRIES} attempts of {method} {path} failed. "
                    f"Last error: {e}"
                )
                if isinstance(e, RemoteStoreError):
                    raise
                raise RemoteStoreError(str(e)) from e

            if response.status_code >= 400:
                raise RemoteStoreError(
                    self._error_message(response),
                    status_code=response.status_code
                )

            if not response.content:
                return None
            return response.json()

    def _error_message(self, response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or f"HTTP {response.status_code}"
        if isinstance(body, dict) and body.get('message'):
            return str(body['message'])
        return response.text or f"HTTP {response.status_code}"

    def _row_to_registration(self, row: Mapping[str, Any]) -> Registration:
        return Registration(
            id=str(row['id']),
            event_id=str(row['event_id']),
            user_id=str(row['user_id']),
            ticket_quantity=int(row['ticket_quantity']),
            created_at=str(row.get('created_at') or '')
        )
