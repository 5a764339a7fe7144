"""Unit tests for the polling change feed."""
import threading
from unittest.mock import Mock

from catalog.models import Deleted, Inserted, Updated
from catalog.store import CatalogStore
from storage.change_feed import PollingSubscription, diff_snapshots, records_differ


class TestDiffSnapshots:
    """Test cases for diff_snapshots."""

    def test_equal_snapshots_produce_no_changes(self, make_record):
        """Test that nothing changes between identical fetches."""
        records = [make_record('1'), make_record('2')]
        previous = {record.id: record for record in records}

        assert diff_snapshots(previous, records) == []

    def test_updated_at_alone_is_not_a_change(self, make_record):
        """Test that a bumped timestamp without content changes is ignored."""
        old = make_record('1')
        new = make_record('1', updated_at='2024-02-02T00:00:00+00:00')

        assert not records_differ(old, new)
        assert diff_snapshots({'1': old}, [new]) == []

    def test_detects_inserts_updates_and_deletes(self, make_record):
        """Test a fetch with one of each kind of change."""
        previous = {
            '1': make_record('1', price=0.0),
            '2': make_record('2'),
        }
        current = [
            make_record('4'),
            make_record('3'),
            make_record('1', price=25.0),
        ]

        changes = diff_snapshots(previous, current)

        assert changes[0] == Inserted(current[1])
        assert changes[1] == Inserted(current[0])
        assert isinstance(changes[2], Updated)
        assert changes[2].changes['id'] == '1'
        assert changes[2].changes['price'] == 25.0
        assert changes[3] == Deleted('2')
        assert len(changes) == 4

    def test_applying_diff_reproduces_remote_order(self, make_record):
        """Test that a store fed the diff ends up newest first."""
        store = CatalogStore()
        store.initialize([make_record('1')])
        current = [make_record('3'), make_record('2'), make_record('1')]

        for change in diff_snapshots({'1': make_record('1')}, current):
            store.apply_change(change)

        assert [record.id for record in store.snapshot()] == ['3', '2', '1']


class TestPollingSubscription:
    """Test cases for PollingSubscription class."""

    def test_first_poll_is_baseline(self, make_record):
        """Test that the first poll delivers nothing."""
        handler = Mock()
        subscription = PollingSubscription(lambda: [make_record('1')], handler)

        assert subscription.poll_once() == 0
        handler.assert_not_called()

    def test_poll_delivers_changes_in_order(self, make_record):
        """Test that changes since the previous poll reach the handler."""
        fetches = [
            [make_record('1')],
            [make_record('2'), make_record('1', title='Renamed')],
            [make_record('2', title='Renamed too')],
        ]
        fetch_all = Mock(side_effect=fetches)
        delivered = []
        subscription = PollingSubscription(fetch_all, delivered.append)

        subscription.poll_once()
        assert subscription.poll_once() == 2
        assert subscription.poll_once() == 2

        assert isinstance(delivered[0], Inserted)
        assert delivered[0].record.id == '2'
        assert delivered[1].changes['title'] == 'Renamed'
        assert delivered[2].changes['title'] == 'Renamed too'
        assert delivered[3] == Deleted('1')

    def test_background_thread_delivers_and_cancel_stops(self, make_record):
        """Test the polling thread end to end."""
        state = {'records': [make_record('1')]}
        delivered = threading.Event()
        changes = []

        def handler(change):
            changes.append(change)
            delivered.set()

        subscription = PollingSubscription(
            lambda: list(state['records']),
            handler,
            interval=0.01
        )
        subscription.poll_once()
        subscription.start()
        assert subscription.active

        state['records'] = [make_record('2'), make_record('1')]
        assert delivered.wait(timeout=5)

        subscription.cancel()
        count = len(changes)
        state['records'] = []

        assert not subscription.active
        assert len(changes) == count
        assert changes[0].record.id == '2'

    def test_failed_poll_is_retried(self, make_record):
        """Test that a fetch error does not kill the polling thread."""
        delivered = threading.Event()
        fetch_all = Mock(side_effect=[
            [make_record('1')],
            Exception('network error'),
            [make_record('1', title='Changed')],
            [make_record('1', title='Changed')],
        ] + [[make_record('1', title='Changed')]] * 1000)

        subscription = PollingSubscription(
            fetch_all,
            lambda change: delivered.set(),
            interval=0.01
        ).start()

        assert delivered.wait(timeout=5)
        subscription.cancel()

    def test_seed_replaces_first_baseline(self, make_record):
        """Test that a seeded subscription diffs its first poll against the seed."""
        delivered = []
        subscription = PollingSubscription(
            lambda: [make_record('2'), make_record('1')],
            delivered.append,
            wait_for_seed=True
        )
        subscription.seed([make_record('1')])

        assert subscription.poll_once() == 1
        assert delivered == [Inserted(make_record('2'))]

    def test_seed_during_fetch_discards_that_poll(self, make_record):
        """Test that a fetch overtaken by a seed delivers nothing."""
        delivered = []
        subscription = PollingSubscription(lambda: [], delivered.append)
        subscription.seed([make_record('1')])

        def fetch_all():
            subscription.seed([make_record('1'), make_record('2')])
            return [make_record('1')]

        subscription.fetch_all = fetch_all

        assert subscription.poll_once() == 0
        assert delivered == []

    def test_unseeded_thread_does_not_poll(self, make_record):
        """Test that a subscription waiting for its seed never fetches."""
        fetch_all = Mock(return_value=[make_record('1')])
        subscription = PollingSubscription(
            fetch_all,
            Mock(),
            interval=0.01,
            wait_for_seed=True
        ).start()

        subscription.cancel()

        fetch_all.assert_not_called()
        assert not subscription.active

    def test_failing_handler_does_not_drop_the_batch(self, make_record):
        """Test that one handler error still delivers the remaining changes."""
        delivered = []

        def handler(change):
            if isinstance(change, Inserted) and change.record.id == '2':
                raise RuntimeError('boom')
            delivered.append(change)

        subscription = PollingSubscription(
            Mock(side_effect=[
                [make_record('1')],
                [make_record('3'), make_record('2')],
            ]),
            handler
        )
        subscription.poll_once()

        assert subscription.poll_once() == 2
        assert delivered == [Inserted(make_record('3')), Deleted('1')]
