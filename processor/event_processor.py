"""Event processor for validating and normalizing event rows."""
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from catalog.models import (
    DEFAULT_IMAGE_URL,
    ChangeEvent,
    Deleted,
    EventRecord,
    Inserted,
    Updated,
)
from catalog.exceptions import ValidationError

logger = logging.getLogger(__name__)


class EventProcessor:
    """Processor turning remote rows and payloads into catalog types."""

    MAX_TITLE_LENGTH = 200
    MAX_DESCRIPTION_LENGTH = 2000
    MIN_DESCRIPTION_LENGTH = 10
    REQUIRED_FIELDS = ('id', 'title', 'date', 'organizer_id')
    DRAFT_REQUIRED_FIELDS = ('title', 'category', 'location', 'date')
    EDITABLE_FIELDS = (
        'title', 'description', 'date', 'location',
        'category', 'image_url', 'price', 'max_attendees'
    )

    def parse_records(self, rows: Iterable[Mapping[str, Any]]) -> List[EventRecord]:
        """
        Convert raw rows from the remote store into EventRecords.

        Args:
            rows: Rows as returned by the remote store

        Returns:
            List of valid EventRecord objects, in input order
        """
        rows = list(rows)
        records = []

        for row in rows:
            record = self.parse_record(row)
            if record:
                records.append(record)

        if len(records) != len(rows):
            logger.warning(
                f"Skipped {len(rows) - len(records)} invalid rows out of "
                f"{len(rows)} total rows"
            )
        return records

    def parse_record(self, row: Mapping[str, Any]) -> Optional[EventRecord]:
        """
        Convert a single row into an EventRecord.

        Args:
            row: Row dictionary

        Returns:
            EventRecord object or None if the row is unusable
        """
        if not isinstance(row, Mapping):
            logger.warning(f"Row is not a mapping: {row!r}")
            return None

        for name in self.REQUIRED_FIELDS:
            value = row.get(name)
            if value is None or not str(value).strip():
                logger.warning(
                    f"Event row {row.get('id')!r} missing required field: {name}"
                )
                return None

        try:
            price = self._coerce_price(row.get('price', 0))
            max_attendees = self._coerce_max_attendees(row.get('max_attendees'))
        except (TypeError, ValueError) as e:
            logger.warning(f"Invalid numeric field in event {row['id']}: {e}")
            return None

        return EventRecord(
            id=str(row['id']),
            title=str(row['title']),
            description=str(row.get('description') or ''),
            date=str(row['date']),
            location=str(row.get('location') or ''),
            category=str(row.get('category') or ''),
            image_url=row.get('image_url') or None,
            price=price,
            max_attendees=max_attendees,
            organizer_id=str(row['organizer_id']),
            created_at=str(row.get('created_at') or ''),
            updated_at=str(row.get('updated_at') or '')
        )

    def parse_change(self, payload: Mapping[str, Any]) -> Optional[ChangeEvent]:
        """
        Convert a realtime change payload into a ChangeEvent.

        Accepts ``{"eventType": ..., "new": {...}, "old": {...}}`` as well
        as ``{"type": ..., "record": {...}, "old_record": {...}}``.

        Args:
            payload: Change notification from the remote store

        Returns:
            Inserted, Updated or Deleted, or None if the payload is malformed
        """
        if not isinstance(payload, Mapping):
            logger.warning(f"Change payload is not a mapping: {payload!r}")
            return None

        kind = str(payload.get('eventType') or payload.get('type') or '').upper()
        new = payload.get('new') or payload.get('record') or {}
        old = payload.get('old') or payload.get('old_record') or {}

        if kind == 'INSERT':
            record = self.parse_record(new)
            return Inserted(record) if record else None

        if kind == 'UPDATE':
            if not isinstance(new, Mapping) or not new.get('id'):
                logger.warning(f"Update payload without id: {payload!r}")
                return None
            try:
                return Updated(self.normalize_changes(new))
            except (TypeError, ValueError) as e:
                logger.warning(f"Invalid update payload for {new.get('id')}: {e}")
                return None

        if kind == 'DELETE':
            event_id = old.get('id') if isinstance(old, Mapping) else None
            if not event_id:
                logger.warning(f"Delete payload without id: {payload!r}")
                return None
            return Deleted(str(event_id))

        logger.warning(f"Unknown change type: {kind!r}")
        return None

    def normalize_changes(self, changes: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Coerce the fields present in a partial row the way parse_record does.

        Args:
            changes: Partial row

        Returns:
            New dictionary with text and numeric fields normalized

        Raises:
            ValueError: If a required field is blank or a number is invalid
        """
        normalized = dict(changes)
        for name in ('title', 'date'):
            if name in normalized:
                value = normalized[name]
                if value is None or not str(value).strip():
                    raise ValueError(f"{name} cannot be empty")
                normalized[name] = str(value)
        for name in ('description', 'location', 'category', 'created_at', 'updated_at'):
            if name in normalized:
                normalized[name] = str(normalized[name] or '')
        if 'image_url' in normalized:
            normalized['image_url'] = (
                str(normalized['image_url']) if normalized['image_url'] else None
            )
        if 'price' in normalized:
            normalized['price'] = self._coerce_price(normalized['price'])
        if 'max_attendees' in normalized:
            normalized['max_attendees'] = self._coerce_max_attendees(
                normalized['max_attendees']
            )
        if 'id' in normalized:
            normalized['id'] = str(normalized['id'])
        return normalized

    def validate_draft(self, draft: Mapping[str, Any]) -> List[str]:
        """
        Validate a new event submitted by an organizer.

        Args:
            draft: Event fields (without id, owner or timestamps)

        Returns:
            List of error messages, empty when the draft is valid
        """
        errors = [
            f"{name.capitalize()} is required"
            for name in self.DRAFT_REQUIRED_FIELDS
            if not str(draft.get(name) or '').strip()
        ]

        errors.extend(self.validate_changes(draft, check_required=False))

        if draft.get('description') is None:
            errors.append(
                f"Description must be at least "
                f"{self.MIN_DESCRIPTION_LENGTH} characters"
            )

        return errors

    def validate_changes(
        self,
        changes: Mapping[str, Any],
        check_required: bool = True
    ) -> List[str]:
        """
        Validate the fields present in an edit.

        Args:
            changes: Partial event fields
            check_required: Reject blanked-out required fields

        Returns:
            List of error messages, empty when the changes are valid
        """
        errors = []

        if check_required:
            for name in self.DRAFT_REQUIRED_FIELDS:
                if name in changes and not str(changes[name] or '').strip():
                    errors.append(f"{name.capitalize()} is required")

        description = changes.get('description')
        if description is not None and (
            len(str(description).strip()) < self.MIN_DESCRIPTION_LENGTH
        ):
            errors.append(
                f"Description must be at least "
                f"{self.MIN_DESCRIPTION_LENGTH} characters"
            )

        if changes.get('date') and not self._normalize_date(str(changes['date'])):
            errors.append(f"Invalid date: {changes['date']}")

        if 'price' in changes:
            try:
                price = float(changes['price'])
            except (TypeError, ValueError):
                errors.append('Price must be a number')
            else:
                if price < 0:
                    errors.append('Price must be 0 or greater')

        if changes.get('max_attendees') is not None:
            try:
                if int(changes['max_attendees']) < 1:
                    errors.append('Maximum attendees must be at least 1')
            except (TypeError, ValueError):
                errors.append('Maximum attendees must be a whole number')

        return errors

    def build_row(self, draft: Mapping[str, Any], organizer_id: str) -> Dict[str, Any]:
        """
        Build the full row for a new event.

        Args:
            draft: Event fields submitted by the organizer
            organizer_id: Signed-in user creating the event

        Returns:
            Row dictionary with a fresh id and timestamps

        Raises:
            ValidationError: If the draft is invalid
        """
        errors = self.validate_draft(draft)
        if not organizer_id:
            errors.append('You must be logged in to create an event')
        if errors:
            raise ValidationError(errors)

        now = self.timestamp()
        return {
            'id': str(uuid.uuid4()),
            'title': str(draft['title']).strip()[:self.MAX_TITLE_LENGTH],
            'description': str(draft['description'])[:self.MAX_DESCRIPTION_LENGTH],
            'date': self._normalize_date(str(draft['date'])),
            'location': str(draft['location']).strip(),
            'category': str(draft['category']).strip(),
            'image_url': draft.get('image_url') or DEFAULT_IMAGE_URL,
            'price': self._coerce_price(draft.get('price', 0)),
            'max_attendees': self._coerce_max_attendees(draft.get('max_attendees')),
            'organizer_id': str(organizer_id),
            'created_at': now,
            'updated_at': now
        }

    def apply_edit(
        self,
        current: EventRecord,
        changes: Mapping[str, Any]
    ) -> Dict[str, Any]:
        """
        Merge an organizer's edit onto the current version of an event.

        Args:
            current: Event as currently stored
            changes: Edited fields

        Returns:
            Full row dictionary with updated_at bumped

        Raises:
            ValidationError: If a field is read-only or invalid
        """
        errors = [
            f"Field cannot be changed: {name}"
            for name in changes if name not in self.EDITABLE_FIELDS
        ]
        errors.extend(self.validate_changes(changes))
        if errors:
            raise ValidationError(errors)

        edit = self.normalize_changes(changes)
        if 'title' in edit:
            edit['title'] = str(edit['title']).strip()[:self.MAX_TITLE_LENGTH]
        if 'description' in edit:
            edit['description'] = str(edit['description'])[:self.MAX_DESCRIPTION_LENGTH]
        if 'date' in edit:
            edit['date'] = self._normalize_date(str(edit['date']))

        row = current.to_dict()
        row.update(edit)
        row['updated_at'] = self.timestamp()
        return row

    def timestamp(self) -> str:
        """Current time as an ISO 8601 UTC timestamp."""
        return datetime.now(timezone.utc).isoformat()

    def _normalize_date(self, date_str: str) -> Optional[str]:
        """
        Normalize a start timestamp to ISO 8601.

        Args:
            date_str: Timestamp in ISO 8601 or a common date format

        Returns:
            ISO 8601 string or None if parsing fails
        """
        date_str = date_str.strip()
        try:
            return datetime.fromisoformat(date_str.replace('Z', '+00:00')).isoformat()
        except ValueError:
            pass

        # Try common date formats
        date_formats = [
            '%m/%d/%Y %I:%M %p',
            '%m/%d/%Y',
            '%B %d, %Y',
            '%b %d, %Y',
        ]

        for fmt in date_formats:
            try:
                return datetime.strptime(date_str, fmt).isoformat()
            except ValueError:
                continue

        return None

    def _coerce_price(self, value: Any) -> float:
        if value is None or value == '':
            return 0.0
        if isinstance(value, bool):
            raise ValueError(f"invalid price: {value!r}")
        price = float(value)
        if price < 0:
            raise ValueError(f"negative price: {value!r}")
        return price

    def _coerce_max_attendees(self, value: Any) -> Optional[int]:
        if value is None or value == '':
            return None
        max_attendees = int(value)
        if max_attendees < 1:
            raise ValueError(f"max_attendees must be positive: {value!r}")
        return max_attendees
