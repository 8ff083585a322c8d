import threading
import time
from datetime import datetime, timedelta, timezone
import pytest
from queue_manager.services import aggregation
from queue_manager.services.feed import ADDED, MODIFIED, REMOVED, ChangeEvent, TicketFeed

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def _loader(*docs):
    return lambda: [(d['ticket_id'], d) for d in docs]


def test_first_snapshot_is_full_then_incremental():
    feed = TicketFeed()
    sub = feed.subscribe(_loader({'ticket_id': 'A', 'status': 'waiting'}))
    first = sub.get(timeout=0)
    assert first.full is True
    assert set(first.docs) == {'A'}
    feed.publish(ChangeEvent(ADDED, 'B', {'ticket_id': 'B', 'status': 'waiting'}))
    feed.publish(ChangeEvent(MODIFIED, 'A', {'ticket_id': 'A', 'status': 'serving'}))
    second = sub.get(timeout=1)
    assert second.full is False
    assert [c.doc_id for c in second.changes] == ['B', 'A']
    # Snapshot carries the whole folded view, not just the delta
    assert {k: v['status'] for k, v in second.docs.items()} == {'A': 'serving', 'B': 'waiting'}
    sub.cancel()


def test_get_times_out_with_none_when_idle():
    feed = TicketFeed()
    sub = feed.subscribe(_loader())
    sub.get(timeout=0)
    assert sub.get(timeout=0.01) is None
    sub.cancel()


def test_predicate_filters_and_evicts():
    feed = TicketFeed()
    sub = feed.subscribe(_loader(), predicate=lambda d: d['status'] == 'waiting')
    sub.get(timeout=0)
    feed.publish(ChangeEvent(ADDED, 'A', {'ticket_id': 'A', 'status': 'waiting'}))
    assert set(sub.get(timeout=1).docs) == {'A'}
    # Leaving the predicate removes the doc from the view
    feed.publish(ChangeEvent(MODIFIED, 'A', {'ticket_id': 'A', 'status': 'completed'}))
    assert sub.get(timeout=1).docs == {}
    # Events that never touch the view produce no snapshot
    feed.publish(ChangeEvent(ADDED, 'B', {'ticket_id': 'B', 'status': 'completed'}))
    assert sub.get(timeout=0.05) is None
    sub.cancel()


def test_removed_event_drops_doc():
    feed = TicketFeed()
    sub = feed.subscribe(_loader({'ticket_id': 'A', 'status': 'waiting'}))
    sub.get(timeout=0)
    feed.publish(ChangeEvent(REMOVED, 'A'))
    assert sub.get(timeout=1).docs == {}
    sub.cancel()


def test_cancel_is_permanent_and_detaches():
    feed = TicketFeed()
    sub = feed.subscribe(_loader({'ticket_id': 'A', 'status': 'waiting'}))
    assert feed.subscriber_count == 1
    assert next(iter(sub)).full
    sub.cancel()
    assert sub.cancelled
    assert feed.subscriber_count == 0
    with pytest.raises(StopIteration):
        sub.get(timeout=0)
    # Not restartable: iterating again yields nothing
    assert list(sub) == []


def test_cancel_wakes_blocked_iterator():
    feed = TicketFeed()
    sub = feed.subscribe(_loader())
    received = []

    def consume():
        for snap in sub:
            received.append(snap)

    worker = threading.Thread(target=consume)
    worker.start()
    feed.publish(ChangeEvent(ADDED, 'A', {'ticket_id': 'A', 'status': 'waiting'}))
    sub.cancel()
    worker.join(timeout=2)
    assert not worker.is_alive()
    assert received[0].full


def test_filtered_event_storm_still_times_out():
    feed = TicketFeed()
    sub = feed.subscribe(_loader(), predicate=lambda d: False)
    sub.get(timeout=0)
    stop = threading.Event()

    def flood():
        n = 0
        while not stop.is_set():
            n += 1
            feed.publish(ChangeEvent(ADDED, f'T{n}', {'ticket_id': f'T{n}', 'status': 'waiting'}))
            time.sleep(0.0005)

    worker = threading.Thread(target=flood)
    worker.start()
    try:
        started = time.monotonic()
        assert sub.get(timeout=0.5) is None
        assert time.monotonic() - started < 2
    finally:
        stop.set()
        worker.join(timeout=2)
        sub.cancel()


def test_window_evicts_docs_that_age_out(monkeypatch):
    clock = {'now': T0}
    monkeypatch.setattr(aggregation, 'utcnow', lambda: clock['now'])
    old = {'ticket_id': 'OLD', 'status': 'waiting', 'created_at': T0 - timedelta(hours=23)}
    feed = TicketFeed()
    sub = feed.subscribe(_loader(old), predicate=aggregation.created_within(1))
    assert set(sub.get(timeout=0).docs) == {'OLD'}

    clock['now'] = T0 + timedelta(hours=2)
    new = {'ticket_id': 'NEW', 'status': 'waiting', 'created_at': clock['now']}
    feed.publish(ChangeEvent(ADDED, 'NEW', new))
    snap = sub.get(timeout=1)
    assert set(snap.docs) == {'NEW'}
    assert ('removed', 'OLD') in [(c.kind, c.doc_id) for c in snap.changes]
    assert aggregation.compute_aggregates(snap.values())['total'] == 1

    # With no traffic at all, the next wait still reports the expiry
    clock['now'] = T0 + timedelta(days=2)
    idle = sub.get(timeout=0.01)
    assert idle is not None and idle.docs == {}
    assert sub.get(timeout=0.01) is None
    sub.cancel()
