from __future__ import annotations
"""Audit logging decorator for state-changing route handlers.

Usage:

@audit_log('QUEUE.TICKET.SERVE', entity='QueueTicket', entity_id_key='ticket_id',
           diff_keys=['status'], pre_fetch=lambda a, kw: _prefetch_ticket(kw.get('ticket_id')))
def serve_ticket(ticket_id): ...

Parameters:
  action: required audit action code
  entity: optional entity label
  entity_id_key: key in the returned JSON object whose value becomes entity_id
  entity_id_arg: view keyword argument used when entity_id_key is absent
  meta_keys: keys projected from the returned JSON into meta
  meta_builder: callable (data, rv, args, kwargs) -> meta; overrides meta_keys
  diff_keys / pre_fetch: before/after snapshot recorded under meta['changes']

Views return dict, (dict, status) or (dict, status, headers); the first element
is inspected and the original return value is passed through untouched.
"""

from functools import wraps
from typing import Any, Callable, Iterable, Optional, Dict

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from queue_manager.services.audit import add_audit
from queue_manager import get_db


def _extract_payload(rv: Any):
    if isinstance(rv, tuple) and rv:
        return rv[0]
    return rv


def _lookup(data: dict, key: str):
    # Lifecycle responses nest the ticket under 'ticket'
    if key in data:
        return data.get(key)
    nested = data.get('ticket')
    if isinstance(nested, dict):
        return nested.get(key)
    return None


def audit_log(
    action: str,
    *,
    entity: Optional[str] = None,
    entity_id_key: Optional[str] = None,
    entity_id_arg: Optional[str] = None,
    meta_keys: Optional[Iterable[str]] = None,
    meta_builder: Optional[Callable[[dict, Any, tuple, dict], dict]] = None,
    diff_keys: Optional[Iterable[str]] = None,
    pre_fetch: Optional[Callable[[tuple, dict], Dict[str, Any]]] = None,
):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            before_snapshot = pre_fetch(args, kwargs) if (diff_keys and pre_fetch) else None
            rv = fn(*args, **kwargs)
            data = _extract_payload(rv)
            if not isinstance(data, dict):
                add_audit(action, entity, None, None)
            else:
                entity_id = None
                if entity_id_key:
                    entity_id = _lookup(data, entity_id_key)
                if entity_id is None and entity_id_arg:
                    entity_id = kwargs.get(entity_id_arg)
                meta = None
                if meta_builder:
                    meta = meta_builder(data, rv, args, kwargs)
                elif meta_keys:
                    meta = {k: _lookup(data, k) for k in meta_keys}
                if diff_keys and isinstance(before_snapshot, dict):
                    changes = {}
                    for k in diff_keys:
                        after = _lookup(data, k)
                        if k in before_snapshot and before_snapshot.get(k) != after:
                            changes[k] = {'before': before_snapshot.get(k), 'after': after}
                    if changes:
                        meta = dict(meta or {})
                        meta['changes'] = changes
                add_audit(action, entity, entity_id, meta)
            try:
                get_db().commit()
            except SQLAlchemyError:
                # The mutation is already committed; a lost audit row must not fail the response
                get_db().rollback()
                current_app.logger.exception('Audit write failed for %s', action)
            return rv
        return wrapper
    return outer
