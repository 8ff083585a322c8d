from __future__ import annotations
"""In-process change feed for queue tickets.

Writers publish a ChangeEvent after each committed ticket mutation. Readers
subscribe and get a Subscription: an iterator that first yields a full
Snapshot (from the loader they pass in) and then one Snapshot per batch of
changes, always carrying the complete folded view of the tickets they watch.
Consumers recompute whatever they need from `snapshot.docs`; they never patch
aggregates from deltas.

A Subscription is single-use. After cancel() it is exhausted for good, and
iterating it again does not start over.

Events from different processes are not seen here; each process folds only
what it published itself plus what its loader read.
"""
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

ADDED = 'added'
MODIFIED = 'modified'
REMOVED = 'removed'

Doc = Dict[str, Any]
Predicate = Callable[[Doc], bool]

_CLOSED = object()


@dataclass(frozen=True)
class ChangeEvent:
    kind: str
    doc_id: str
    doc: Optional[Doc] = None


@dataclass(frozen=True)
class Snapshot:
    docs: Mapping[str, Doc]
    changes: Tuple[ChangeEvent, ...] = ()
    full: bool = False

    def values(self) -> List[Doc]:
        return list(self.docs.values())


class Subscription:
    def __init__(self, feed: 'TicketFeed', initial: Iterable[Tuple[str, Doc]], predicate: Optional[Predicate] = None):
        self._feed = feed
        self._predicate = predicate
        self._events: 'queue.Queue[Any]' = queue.Queue()
        self._docs: Dict[str, Doc] = {}
        self._initial = list(initial)
        self._started = False
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def _deliver(self, event: ChangeEvent):
        if not self._cancelled:
            self._events.put(event)

    def cancel(self):
        if self._cancelled:
            return
        self._cancelled = True
        self._feed._detach(self)
        self._events.put(_CLOSED)

    def _accepts(self, doc: Optional[Doc]) -> bool:
        return doc is not None and (self._predicate is None or self._predicate(doc))

    def _apply(self, event: ChangeEvent) -> bool:
        """Fold one event into the view; True when the view changed."""
        if event.kind != REMOVED and self._accepts(event.doc):
            self._docs[event.doc_id] = dict(event.doc)
            return True
        return self._docs.pop(event.doc_id, None) is not None

    def _prune(self) -> List[ChangeEvent]:
        """Evict docs that no longer pass the predicate, e.g. aged out of a time window."""
        if self._predicate is None:
            return []
        stale = [doc_id for doc_id, doc in self._docs.items() if not self._predicate(doc)]
        for doc_id in stale:
            del self._docs[doc_id]
        return [ChangeEvent(REMOVED, doc_id) for doc_id in stale]

    def _full_snapshot(self) -> Snapshot:
        self._started = True
        for doc_id, doc in self._initial:
            if self._accepts(doc):
                self._docs[doc_id] = dict(doc)
        self._initial = []
        return Snapshot(docs=dict(self._docs), full=True)

    def get(self, timeout: Optional[float] = None) -> Optional[Snapshot]:
        """Next snapshot, or None when nothing arrived within timeout.

        Raises StopIteration once cancelled.
        """
        if self._cancelled:
            raise StopIteration
        if not self._started:
            return self._full_snapshot()
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            try:
                first = self._events.get(timeout=remaining)
            except queue.Empty:
                evicted = self._prune()
                if evicted:
                    return Snapshot(docs=dict(self._docs), changes=tuple(evicted))
                return None
            batch = [first]
            while True:
                try:
                    batch.append(self._events.get_nowait())
                except queue.Empty:
                    break
            changes = []
            for item in batch:
                if item is _CLOSED:
                    raise StopIteration
                if self._apply(item):
                    changes.append(item)
            changes.extend(self._prune())
            if changes:
                return Snapshot(docs=dict(self._docs), changes=tuple(changes))
            if deadline is not None and time.monotonic() >= deadline:
                return None

    def __iter__(self):
        return self

    def __next__(self) -> Snapshot:
        snap = None
        while snap is None:
            snap = self.get(timeout=None)
        return snap


class TicketFeed:
    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: List[Subscription] = []

    def subscribe(self, loader: Callable[[], Iterable[Tuple[str, Doc]]], predicate: Optional[Predicate] = None) -> Subscription:
        # Attach before loading so nothing committed in between is missed
        sub = Subscription(self, [], predicate)
        with self._lock:
            self._subscribers.append(sub)
        sub._initial = list(loader())
        return sub

    def _detach(self, sub: Subscription):
        with self._lock:
            if sub in self._subscribers:
                self._subscribers.remove(sub)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event: ChangeEvent):
        with self._lock:
            targets = list(self._subscribers)
        for sub in targets:
            sub._deliver(event)


__all__ = ['ADDED', 'MODIFIED', 'REMOVED', 'ChangeEvent', 'Snapshot', 'Subscription', 'TicketFeed']
