"""Shared fixtures for catalog tests."""
import pytest

from catalog.models import EventRecord


@pytest.fixture
def make_record():
    """Factory building EventRecords with sensible defaults."""
    def _make_record(event_id, **overrides):
        fields = {
            'id': event_id,
            'title': f'Event {event_id}',
            'description': f'Description of event {event_id}',
            'date': '2024-06-01T18:00:00+00:00',
            'location': 'Town Hall',
            'category': 'Conference',
            'image_url': None,
            'price': 0.0,
            'max_attendees': None,
            'organizer_id': 'organizer-1',
            'created_at': '2024-01-01T00:00:00+00:00',
            'updated_at': '2024-01-01T00:00:00+00:00'
        }
        fields.update(overrides)
        return EventRecord(**fields)

    return _make_record
