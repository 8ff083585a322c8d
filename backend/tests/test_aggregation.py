from datetime import datetime, timedelta, timezone
from queue_manager.services.aggregation import (
    average_wait_by_day, compute_aggregates, created_within, status_counts, tickets_by_day,
)

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def _doc(status, created, completed=None):
    return {'status': status, 'created_at': created, 'completed_at': completed}


def test_status_counts_zero_filled():
    counts = status_counts([_doc('waiting', T0), _doc('waiting', T0), _doc('no-show', T0)])
    assert counts == {'waiting': 2, 'serving': 0, 'completed': 0, 'no-show': 1, 'cancelled': 0, 'in-progress': 0}


def test_status_counts_include_legacy_in_progress():
    docs = [_doc('in-progress', T0), _doc('waiting', T0), _doc('serving', T0)]
    agg = compute_aggregates(docs)
    assert agg['status_counts']['in-progress'] == 1
    assert sum(agg['status_counts'].values()) == agg['total'] == 3


def test_tickets_by_day_uses_utc_date():
    late = datetime(2026, 3, 1, 23, 30, tzinfo=timezone(timedelta(hours=-5)))  # 04:30 UTC next day
    naive = datetime(2026, 3, 1, 10, 0)  # stored without tzinfo, read as UTC
    assert tickets_by_day([_doc('waiting', T0), _doc('waiting', late), _doc('waiting', naive)]) == {
        '2026-03-01': 2, '2026-03-02': 1,
    }


def test_average_wait_only_counts_completed():
    docs = [
        _doc('completed', T0, T0 + timedelta(minutes=10)),
        _doc('completed', T0, T0 + timedelta(minutes=15)),
        _doc('no-show', T0, T0 + timedelta(minutes=90)),
        _doc('completed', T0),  # missing completion time is skipped
    ]
    assert average_wait_by_day(docs) == {'2026-03-01': 12}


def test_compute_aggregates_is_a_full_recount():
    docs = [_doc('waiting', T0), _doc('completed', T0, T0 + timedelta(minutes=4))]
    first = compute_aggregates(docs)
    again = compute_aggregates(iter(docs))
    assert first == again
    assert first['total'] == 2
    assert first['average_wait_by_day'] == {'2026-03-01': 4}
    assert compute_aggregates([])['status_counts']['waiting'] == 0


def test_created_within_window():
    now = T0 + timedelta(days=7)
    in_window = created_within(7, now)
    assert in_window(_doc('waiting', T0))
    assert not in_window(_doc('waiting', T0 - timedelta(seconds=1)))
    assert not in_window({'status': 'waiting'})
