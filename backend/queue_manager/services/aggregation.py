from __future__ import annotations
"""Queue statistics recomputed from scratch over a set of ticket documents.

Every function here is a full pass over its input: O(n) per call, no state
carried between calls. Day buckets use the UTC calendar date of createdAt.
"""
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from queue_manager.models.queue_ticket import QueueTicket
from queue_manager.utils.timeutil import as_utc, minutes_between, utcnow

Doc = Dict[str, Any]


def status_counts(docs: Iterable[Doc]) -> Dict[str, int]:
    counts = {status: 0 for status in QueueTicket.ALL_STATUSES + (QueueTicket.STATUS_IN_PROGRESS,)}
    for doc in docs:
        status = doc.get('status')
        if status in counts:
            counts[status] += 1
    return counts


def _day(doc: Doc) -> Optional[str]:
    created = as_utc(doc.get('created_at'))
    return created.date().isoformat() if created else None


def tickets_by_day(docs: Iterable[Doc]) -> Dict[str, int]:
    per_day: Dict[str, int] = defaultdict(int)
    for doc in docs:
        day = _day(doc)
        if day:
            per_day[day] += 1
    return dict(sorted(per_day.items()))


def average_wait_by_day(docs: Iterable[Doc]) -> Dict[str, int]:
    """Mean createdAt -> completedAt minutes of completed tickets, rounded."""
    samples: Dict[str, List[float]] = defaultdict(list)
    for doc in docs:
        if doc.get('status') != QueueTicket.STATUS_COMPLETED:
            continue
        day = _day(doc)
        wait = minutes_between(doc.get('created_at'), doc.get('completed_at'))
        if day and wait is not None:
            samples[day].append(wait)
    return {day: round(sum(v) / len(v)) for day, v in sorted(samples.items())}


def compute_aggregates(docs: Iterable[Doc]) -> Dict[str, Any]:
    docs = list(docs)
    return {
        'total': len(docs),
        'status_counts': status_counts(docs),
        'tickets_by_day': tickets_by_day(docs),
        'average_wait_by_day': average_wait_by_day(docs),
    }


def created_within(days: int, now: Optional[datetime] = None):
    """Predicate for docs created in the trailing `days` window."""
    def predicate(doc: Doc) -> bool:
        cutoff = (now or utcnow()) - timedelta(days=days)
        created = as_utc(doc.get('created_at'))
        return created is not None and created >= cutoff
    return predicate


__all__ = ['status_counts', 'tickets_by_day', 'average_wait_by_day', 'compute_aggregates', 'created_within']
