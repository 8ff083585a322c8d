from __future__ import annotations
import json
from datetime import timedelta
from flask import Blueprint, Response, request, abort, current_app, stream_with_context
from flask_jwt_extended import get_jwt
from sqlalchemy import select
from queue_manager.decorators.auth import require_permissions
from queue_manager.decorators.audit import audit_log
from queue_manager.config.pagination import HISTORY_LIMIT
from queue_manager.services.aggregation import compute_aggregates, created_within
from queue_manager.services.policy import current_profile, current_uid, is_admin
from queue_manager.services.queue import (
    OperatorContext, all_ticket_docs, call_next, complete_current, create_ticket, current_serving,
    leave_queue, live_rank, load_location, load_ticket, mark_no_show, serve_ticket, ticket_json,
    waiting_tickets,
)
from queue_manager.utils.timeutil import utcnow
from queue_manager.utils.validation import parse_positive_int
from queue_manager import get_db
from queue_manager.models.queue_ticket import QueueTicket

queue_bp = Blueprint('queues', __name__)

KEEPALIVE_SECONDS = 15
MAX_WINDOW_DAYS = 365


def _operator(location_id: str | None = None) -> OperatorContext:
    return OperatorContext(uid=current_uid(), email=get_jwt().get('email'), location_id=location_id)


def _prefetch_ticket(ticket_id: str):
    t = get_db().get(QueueTicket, ticket_id)
    if not t:
        return {}
    return {'status': t.status}


def _prefetch_serving(location_id: str):
    t = current_serving(location_id)
    return {'status': t.status} if t else {}


def _envelope(t: QueueTicket | None, **extra):
    body = {'ticket': ticket_json(t, live_rank(t)) if t is not None else None}
    body.update(extra)
    return body


# --- Customer ---

@queue_bp.post('/tickets')
@require_permissions('QUEUE.JOIN')
@audit_log('QUEUE.TICKET.CREATE', entity='QueueTicket', entity_id_key='ticket_id', meta_keys=['location_id', 'service', 'position'])
def join_queue():
    data = request.get_json(silent=True) or {}
    location_id = data.get('location_id'); service = data.get('service')
    if not isinstance(location_id, str) or not location_id.strip() or not isinstance(service, str) or not service.strip():
        abort(400, description='location_id and service required')
    profile = current_profile()
    if profile is None:
        abort(404, description='Profile not found')
    t = create_ticket(profile, location_id.strip(), service.strip())
    return _envelope(t), 201


@queue_bp.get('/tickets/<ticket_id>')
@require_permissions('QUEUE.READ')
def get_ticket(ticket_id: str):
    t = load_ticket(ticket_id)
    if t.user_id != current_uid() and not is_admin():
        abort(403, description='Record ownership required')
    return ticket_json(t, live_rank(t))


@queue_bp.get('/mine')
@require_permissions('QUEUE.READ')
def my_tickets():
    scope = request.args.get('scope', 'active')
    q = select(QueueTicket).where(QueueTicket.user_id == current_uid())
    if scope == 'active':
        q = q.where(QueueTicket.status.in_(QueueTicket.ACTIVE_STATUSES))
    elif scope == 'history':
        q = q.where(QueueTicket.status.in_(QueueTicket.HISTORY_STATUSES)).limit(HISTORY_LIMIT)
    else:
        abort(400, description='scope must be active or history')
    q = q.order_by(QueueTicket.created_at.desc(), QueueTicket.ticket_id.desc())
    rows = get_db().execute(q).scalars().all()
    return {'scope': scope, 'data': [ticket_json(t, live_rank(t)) for t in rows]}


@queue_bp.post('/tickets/<ticket_id>/leave')
@require_permissions('QUEUE.JOIN')
@audit_log('QUEUE.TICKET.LEAVE', entity='QueueTicket', entity_id_key='ticket_id', diff_keys=['status'], pre_fetch=lambda a, kw: _prefetch_ticket(kw.get('ticket_id')), meta_keys=['status'])
def leave(ticket_id: str):
    t = leave_queue(current_uid(), ticket_id)
    return _envelope(t)


# --- Operator ---

@queue_bp.get('/locations/<location_id>/waiting')
@require_permissions('QUEUE.MANAGE')
def waiting_list(location_id: str):
    loc = load_location(location_id)
    rows = waiting_tickets(loc.id)
    return {
        'location_id': loc.id,
        'data': [ticket_json(t, rank) for rank, t in enumerate(rows, start=1)],
    }


@queue_bp.get('/locations/<location_id>/serving')
@require_permissions('QUEUE.MANAGE')
def serving_ticket(location_id: str):
    loc = load_location(location_id)
    return _envelope(current_serving(loc.id))


@queue_bp.post('/locations/<location_id>/call-next')
@require_permissions('QUEUE.MANAGE')
@audit_log('QUEUE.TICKET.CALL_NEXT', entity='QueueTicket', entity_id_key='ticket_id', meta_keys=['status', 'served_by'])
def call_next_ticket(location_id: str):
    t = call_next(_operator(location_id))
    if t is None:
        return {'ticket': None, 'message': 'No customers waiting in queue'}
    return _envelope(t)


@queue_bp.post('/tickets/<ticket_id>/serve')
@require_permissions('QUEUE.MANAGE')
@audit_log('QUEUE.TICKET.SERVE', entity='QueueTicket', entity_id_key='ticket_id', diff_keys=['status'], pre_fetch=lambda a, kw: _prefetch_ticket(kw.get('ticket_id')), meta_keys=['status', 'served_by'])
def serve(ticket_id: str):
    data = request.get_json(silent=True) or {}
    location_id = data.get('location_id')
    t = serve_ticket(_operator(location_id if isinstance(location_id, str) else None), ticket_id)
    return _envelope(t)


@queue_bp.post('/locations/<location_id>/complete-current')
@require_permissions('QUEUE.MANAGE')
@audit_log('QUEUE.TICKET.COMPLETE', entity='QueueTicket', entity_id_key='ticket_id', diff_keys=['status'], pre_fetch=lambda a, kw: _prefetch_serving(kw.get('location_id')), meta_keys=['status', 'completed_by'])
def complete(location_id: str):
    t, total_wait = complete_current(_operator(location_id))
    return _envelope(t, total_wait_minutes=total_wait)


@queue_bp.post('/locations/<location_id>/no-show')
@require_permissions('QUEUE.MANAGE')
@audit_log('QUEUE.TICKET.NO_SHOW', entity='QueueTicket', entity_id_key='ticket_id', diff_keys=['status'], pre_fetch=lambda a, kw: _prefetch_serving(kw.get('location_id')), meta_keys=['status', 'completed_by'])
def no_show(location_id: str):
    t = mark_no_show(_operator(location_id))
    return _envelope(t)


# --- Live statistics ---

def _window(days):
    """Loader and predicate for the trailing `days` window; all tickets when None."""
    if days is None:
        return all_ticket_docs, None
    since = utcnow() - timedelta(days=days)
    return (lambda: all_ticket_docs(since)), created_within(days)


def _days_arg():
    return parse_positive_int(request.args.get('days'), 'days', 0, maximum=MAX_WINDOW_DAYS) or None


@queue_bp.get('/stats')
@require_permissions('QUEUE.MANAGE')
def stats():
    loader, predicate = _window(_days_arg())
    docs = [doc for _, doc in loader() if predicate is None or predicate(doc)]
    return compute_aggregates(docs)


@queue_bp.get('/stats/stream')
@require_permissions('QUEUE.MANAGE')
def stats_stream():
    loader, predicate = _window(_days_arg())
    feed = current_app.extensions['ticket_feed']
    sub = feed.subscribe(loader, predicate)
    keepalive = float(current_app.config.get('STATS_KEEPALIVE_SECONDS', KEEPALIVE_SECONDS))

    def generate():
        try:
            while True:
                try:
                    snap = sub.get(timeout=keepalive)
                except StopIteration:
                    return
                if snap is None:
                    yield ': keep-alive\n\n'
                    continue
                yield f"data: {json.dumps(compute_aggregates(snap.values()))}\n\n"
        finally:
            sub.cancel()

    return Response(
        stream_with_context(generate()),
        mimetype='text/event-stream',
        headers={'Cache-Control': 'no-cache', 'X-Accel-Buffering': 'no'},
    )
