"""Unit tests for DynamoDBEventStore."""
import boto3
import pytest
from moto import mock_aws

from catalog.exceptions import PermissionDeniedError, RemoteStoreError, ValidationError
from catalog.models import Inserted
from storage.change_feed import PollingSubscription
from storage.dynamodb_store import DynamoDBEventStore


@pytest.fixture
def aws_env(monkeypatch):
    """Fake credentials so boto3 never reaches a real account."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')


@pytest.fixture
def dynamodb_tables(aws_env):
    """Create mock events and registrations tables."""
    with mock_aws():
        dynamodb = boto3.resource('dynamodb', region_name='us-east-1')
        for name in ('test-events', 'test-registrations'):
            dynamodb.create_table(
                TableName=name,
                KeySchema=[{'AttributeName': 'id', 'KeyType': 'HASH'}],
                AttributeDefinitions=[{'AttributeName': 'id', 'AttributeType': 'S'}],
                BillingMode='PAY_PER_REQUEST'
            )
        yield dynamodb


@pytest.fixture
def store(dynamodb_tables):
    return DynamoDBEventStore('test-events', 'test-registrations', poll_interval=0.01)


@pytest.fixture
def draft():
    return {
        'title': 'Tech Talk',
        'description': 'A talk about distributed systems',
        'date': '2024-05-01T18:00:00+00:00',
        'location': 'Auditorium',
        'category': 'Conference',
        'price': 12.5,
        'max_attendees': 50
    }


def test_fetch_all_empty_table(store):
    """Test fetch_all returns an empty list for an empty table."""
    assert store.fetch_all() == []


def test_insert_and_fetch(store, draft):
    """Test that inserted events come back from fetch_all."""
    record = store.insert(draft, 'user-1')

    records = store.fetch_all()

    assert records == [record]
    assert record.price == 12.5
    assert record.max_attendees == 50
    assert record.organizer_id == 'user-1'


def test_fetch_all_orders_newest_first(store, dynamodb_tables):
    """Test that events are sorted by created_at descending."""
    table = dynamodb_tables.Table('test-events')
    for index, created_at in enumerate(['2024-01-02', '2024-01-03', '2024-01-01']):
        table.put_item(Item={
            'id': f'evt-{index}',
            'title': f'Event {index}',
            'date': '2024-06-01',
            'organizer_id': 'user-1',
            'created_at': created_at
        })

    records = store.fetch_all()

    assert [record.id for record in records] == ['evt-1', 'evt-0', 'evt-2']


def test_fetch_all_skips_invalid_items(store, dynamodb_tables):
    """Test that items missing required fields are skipped."""
    dynamodb_tables.Table('test-events').put_item(Item={'id': 'broken'})

    assert store.fetch_all() == []


def test_insert_invalid_draft(store, draft):
    """Test that invalid drafts are rejected before writing."""
    draft['price'] = -1

    with pytest.raises(ValidationError):
        store.insert(draft, 'user-1')

    assert store.fetch_all() == []


def test_get_event(store, draft):
    """Test reading a single event."""
    record = store.insert(draft, 'user-1')

    assert store.get_event(record.id) == record
    assert store.get_event('missing') is None


def test_update_by_owner(store, draft):
    """Test that the organizer can edit their event."""
    record = store.insert(draft, 'user-1')

    updated = store.update(record.id, {'price': 25, 'max_attendees': None}, 'user-1')

    assert updated.price == 25.0
    assert updated.max_attendees is None
    assert updated.title == 'Tech Talk'
    assert store.get_event(record.id) == updated


def test_update_by_other_user(store, draft):
    """Test that non-owners cannot edit."""
    record = store.insert(draft, 'user-1')

    with pytest.raises(PermissionDeniedError):
        store.update(record.id, {'price': 0}, 'user-2')


def test_update_missing_event(store):
    """Test that editing an unknown event fails."""
    with pytest.raises(RemoteStoreError):
        store.update('missing', {'price': 0}, 'user-1')


def test_delete_by_owner(store, draft):
    """Test that the organizer can delete their event."""
    record = store.insert(draft, 'user-1')

    assert store.delete(record.id, 'user-1') is True
    assert store.fetch_all() == []
    assert store.delete(record.id, 'user-1') is False


def test_delete_by_other_user(store, draft):
    """Test that non-owners cannot delete."""
    record = store.insert(draft, 'user-1')

    with pytest.raises(PermissionDeniedError):
        store.delete(record.id, 'user-2')

    assert len(store.fetch_all()) == 1


def test_registrations(store):
    """Test storing and filtering registrations."""
    store.insert_registration('evt-1', 'user-1', 2)
    store.insert_registration('evt-1', 'user-2', 3)
    store.insert_registration('evt-2', 'user-1', 1)

    assert len(store.list_registrations()) == 3
    assert sum(r.ticket_quantity for r in store.list_registrations(event_id='evt-1')) == 5
    mine = store.list_registrations(event_id='evt-1', user_id='user-1')
    assert [(r.event_id, r.ticket_quantity) for r in mine] == [('evt-1', 2)]


def test_subscribe_and_unsubscribe(store, draft, monkeypatch):
    """Test that the change feed reports inserts until unsubscribed."""
    # Drive polls by hand instead of from the background thread
    monkeypatch.setattr(PollingSubscription, 'start', lambda self: self)
    changes = []
    subscription = store.subscribe_to_changes(changes.append)
    subscription.seed(store.fetch_all())

    record = store.insert(draft, 'user-1')
    subscription.poll_once()
    store.unsubscribe(subscription)

    assert Inserted(record) in changes
    assert not subscription.active
