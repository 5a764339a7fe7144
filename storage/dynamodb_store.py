"""DynamoDB-backed remote store for events and registrations."""
import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError

from catalog.exceptions import PermissionDeniedError, RemoteStoreError
from catalog.models import EventRecord, Registration
from processor.event_processor import EventProcessor
from storage.change_feed import ChangeHandler, PollingSubscription

logger = logging.getLogger(__name__)


class DynamoDBEventStore:
    """Remote store keeping events and registrations in DynamoDB tables."""

    def __init__(
        self,
        table_name: str,
        registrations_table_name: str,
        poll_interval: float = 5.0,
        processor: Optional[EventProcessor] = None
    ):
        """
        Initialize DynamoDB resource and table references.

        Args:
            table_name: Name of the events table (hash key ``id``)
            registrations_table_name: Name of the registrations table (hash key ``id``)
            poll_interval: Seconds between change feed polls
            processor: Row processor (default: a new EventProcessor)
        """
        self.table_name = table_name
        self.poll_interval = poll_interval
        self.processor = processor or EventProcessor()
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        self.registrations_table = self.dynamodb.Table(registrations_table_name)
        logger.info(f"Initialized DynamoDBEventStore for table: {table_name}")

    def fetch_all(self) -> List[EventRecord]:
        """
        Retrieve all events using a Scan operation.

        Returns:
            EventRecords ordered by creation time, newest first
        """
        logger.debug("Scanning DynamoDB table for all events")

        try:
            items = self._scan(self.table)
        except ClientError as e:
            logger.error(f"Error scanning DynamoDB table: {e}")
            raise

        records = self.processor.parse_records(
            self._item_to_row(item) for item in items
        )
        records.sort(key=lambda record: record.created_at, reverse=True)
        logger.debug(f"Retrieved {len(records)} events from DynamoDB")
        return records

    def get_event(self, event_id: str) -> Optional[EventRecord]:
        try:
            response = self.table.get_item(Key={'id': event_id})
        except ClientError as e:
            logger.error(f"Error reading event {event_id}: {e}")
            raise

        item = response.get('Item')
        if not item:
            return None
        return self.processor.parse_record(self._item_to_row(item))

    def subscribe_to_changes(self, handler: ChangeHandler) -> PollingSubscription:
        """
        Start delivering change events to a handler.

        Polling begins once the subscription is seeded with the records
        the caller loaded.

        Args:
            handler: Callable receiving each ChangeEvent

        Returns:
            Subscription handle for unsubscribe()
        """
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
            The stored EventRecord
        """
        row = self.processor.build_row(draft, organizer_id)

        try:
            self.table.put_item(
                Item=self._row_to_item(row),
                ConditionExpression=Attr('id').not_exists()
            )
        except ClientError as e:
            logger.error(f"Error creating event '{row['title']}': {e}")
            raise

        logger.info(f"Created event {row['id']} for organizer {organizer_id}")
        return self.processor.parse_record(row)

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

        try:
            self.table.put_item(
                Item=self._row_to_item(row),
                ConditionExpression=Attr('organizer_id').eq(organizer_id)
            )
        except ClientError as e:
            logger.error(f"Error updating event {event_id}: {e}")
            raise

        logger.info(f"Updated event {event_id}")
        return self.processor.parse_record(row)

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

        try:
            self.table.delete_item(
                Key={'id': event_id},
                ConditionExpression=Attr('organizer_id').eq(organizer_id)
            )
        except ClientError as e:
            logger.error(f"Error deleting event {event_id}: {e}")
            raise

        logger.info(f"Deleted event {event_id}")
        return True

    def list_registrations(
        self,
        event_id: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> List[Registration]:
        """
        Retrieve registrations, optionally narrowed by event and/or user.

        Args:
            event_id: Only registrations for this event
            user_id: Only registrations made by this user

        Returns:
            List of Registration objects
        """
        condition = None
        if event_id is not None:
            condition = Attr('event_id').eq(event_id)
        if user_id is not None:
            user_condition = Attr('user_id').eq(user_id)
            condition = user_condition if condition is None else condition & user_condition

        try:
            items = self._scan(self.registrations_table, condition)
        except ClientError as e:
            logger.error(f"Error scanning registrations: {e}")
            raise

        return [self._item_to_registration(item) for item in items]

    def insert_registration(
        self,
        event_id: str,
        user_id: str,
        ticket_quantity: int
    ) -> Registration:
        registration = Registration(
            id=str(uuid.uuid4()),
            event_id=event_id,
            user_id=user_id,
            ticket_quantity=ticket_quantity,
            created_at=self.processor.timestamp()
        )

        try:
            self.registrations_table.put_item(Item=registration.to_dict())
        except ClientError as e:
            logger.error(f"Error registering user {user_id} for {event_id}: {e}")
            raise

        return registration

    def _owned_event(self, event_id: str, organizer_id: str) -> Optional[EventRecord]:
        current = self.get_event(event_id)
        if current is not None and current.organizer_id != organizer_id:
            raise PermissionDeniedError(
                f"Event {event_id} is not owned by {organizer_id}"
            )
        return current

    def _scan(self, table, condition=None) -> List[dict]:
        """
        Scan a whole table, following pagination.

        Args:
            table: DynamoDB table resource
            condition: Optional filter condition

        Returns:
            List of raw items
        """
        kwargs = {}
        if condition is not None:
            kwargs['FilterExpression'] = condition

        response = table.scan(**kwargs)
        items = response.get('Items', [])

        # Handle pagination
        while 'LastEvaluatedKey' in response:
            response = table.scan(
                ExclusiveStartKey=response['LastEvaluatedKey'],
                **kwargs
            )
            items.extend(response.get('Items', []))

        return items

    def _item_to_row(self, item: dict) -> Dict[str, Any]:
        """
        Convert a DynamoDB item into a plain row.

        Args:
            item: DynamoDB item dictionary

        Returns:
            Row dictionary with Decimals turned back into numbers
        """
        row = dict(item)
        if isinstance(row.get('price'), Decimal):
            row['price'] = float(row['price'])
        if isinstance(row.get('max_attendees'), Decimal):
            row['max_attendees'] = int(row['max_attendees'])
        return row

    def _row_to_item(self, row: Mapping[str, Any]) -> dict:
        """
        Convert a row into a DynamoDB item.

        Args:
            row: Row dictionary

        Returns:
            DynamoDB item dictionary
        """
        item = {
            key: value for key, value in row.items()
            if value is not None
        }
        if 'price' in item:
            item['price'] = Decimal(str(item['price']))
        return item

    def _item_to_registration(self, item: dict) -> Registration:
        return Registration(
            id=item['id'],
            event_id=item['event_id'],
            user_id=item['user_id'],
            ticket_quantity=int(item['ticket_quantity']),
            created_at=item.get('created_at', '')
        )
