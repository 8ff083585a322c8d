from __future__ import annotations
"""Queue ticket lifecycle.

    waiting --serve / call next--> serving --complete--> completed
                                           --no-show---> no-show
    waiting --leave (owner)------> cancelled

Every transition is a single conditional UPDATE whose WHERE clause carries
the precondition (current status, ownership, free serving slot), so two
operators racing on the same location cannot both win. When the UPDATE
matches nothing the ticket is re-read to tell the caller why: gone (404 with
refresh), wrong state (400), or slot taken (409).

Operator identity and the location being worked are passed in explicitly as
an OperatorContext; nothing here keeps "current" state between calls.
"""
import secrets
import string
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from flask import abort, current_app
from sqlalchemy import func, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import aliased
from werkzeug.exceptions import BadRequest, NotFound

from queue_manager import get_db
from queue_manager.models.authz import Profile
from queue_manager.models.location import Location
from queue_manager.models.queue_ticket import QueueTicket
from queue_manager.services import notifications
from queue_manager.services.feed import ADDED, MODIFIED, ChangeEvent
from queue_manager.utils.fsm import TransitionValidator
from queue_manager.utils.timeutil import iso, minutes_between, stamp_after, utcnow

TICKET_FSM = TransitionValidator({
    QueueTicket.STATUS_WAITING: {QueueTicket.STATUS_SERVING, QueueTicket.STATUS_CANCELLED},
    QueueTicket.STATUS_SERVING: {QueueTicket.STATUS_COMPLETED, QueueTicket.STATUS_NO_SHOW},
    QueueTicket.STATUS_COMPLETED: set(),
    QueueTicket.STATUS_NO_SHOW: set(),
    QueueTicket.STATUS_CANCELLED: set(),
})

_ID_ALPHABET = string.digits + string.ascii_uppercase
_ID_SUFFIX_LEN = 5
SLOT_TAKEN = 'Another ticket is already being served at this location'


class StaleRecord(NotFound):
    """The record vanished between read and write; clients should reload."""
    refresh = True


@dataclass(frozen=True)
class OperatorContext:
    uid: str
    email: Optional[str]
    location_id: Optional[str] = None

    @property
    def label(self) -> str:
        return self.email or self.uid


def generate_ticket_id(now=None) -> str:
    now = now or utcnow()
    suffix = ''.join(secrets.choice(_ID_ALPHABET) for _ in range(_ID_SUFFIX_LEN))
    return f"T{int(now.timestamp() * 1000)}{suffix}"


def ticket_doc(t: QueueTicket) -> Dict[str, Any]:
    """Plain dict view used by the feed and aggregation (datetimes kept)."""
    return {
        'ticket_id': t.ticket_id,
        'user_id': t.user_id,
        'location_id': t.location_id,
        'location_name': t.location_name,
        'service': t.service,
        'status': t.status,
        'position': t.position,
        'created_at': t.created_at,
        'served_at': t.served_at,
        'completed_at': t.completed_at,
        'updated_at': t.updated_at,
    }


def ticket_json(t: QueueTicket, live_rank: Optional[int] = None) -> Dict[str, Any]:
    return {
        'ticket_id': t.ticket_id,
        'user_id': t.user_id,
        'customer_name': t.customer_name,
        'customer_email': t.customer_email,
        'location_id': t.location_id,
        'location_name': t.location_name,
        'service': t.service,
        'status': t.status,
        'position': t.position,
        'live_rank': live_rank,
        'estimated_wait': t.estimated_wait,
        'is_first_queue': t.is_first_queue,
        'created_at': iso(t.created_at),
        'updated_at': iso(t.updated_at),
        'served_at': iso(t.served_at),
        'served_by': t.served_by,
        'completed_at': iso(t.completed_at),
        'completed_by': t.completed_by,
        'email': {
            'welcome_sent': t.welcome_email_sent,
            'welcome_sent_at': iso(t.welcome_email_sent_at),
            'welcome_error': t.welcome_email_error,
            'simulated': t.email_simulated,
            'thank_you_sent': t.thank_you_email_sent,
            'thank_you_sent_at': iso(t.thank_you_email_sent_at),
            'thank_you_error': t.thank_you_email_error,
        },
    }


def load_location(location_id: str) -> Location:
    loc = get_db().get(Location, location_id)
    if loc is None:
        raise StaleRecord(description='Location not found')
    return loc


def load_ticket(ticket_id: str, fresh: bool = False) -> QueueTicket:
    t = get_db().get(QueueTicket, ticket_id, populate_existing=fresh)
    if t is None:
        raise StaleRecord(description='Ticket not found')
    return t


def active_count(location_id: str) -> int:
    """Tickets ahead of a newcomer: waiting or in-progress, never serving."""
    return get_db().execute(
        select(func.count()).select_from(QueueTicket).where(
            QueueTicket.location_id == location_id,
            QueueTicket.status.in_(QueueTicket.POSITION_STATUSES),
        )
    ).scalar_one()


def estimated_wait_for(position: int) -> int:
    return (position - 1) * int(current_app.config.get('QUEUE_SERVICE_MINUTES', 5))


def _fifo(q):
    return q.order_by(QueueTicket.created_at.asc(), QueueTicket.ticket_id.asc())


def waiting_tickets(location_id: str) -> List[QueueTicket]:
    q = select(QueueTicket).where(
        QueueTicket.location_id == location_id,
        QueueTicket.status == QueueTicket.STATUS_WAITING,
    )
    return list(get_db().execute(_fifo(q)).scalars())


def live_rank(t: QueueTicket) -> Optional[int]:
    """Current 1-based rank among waiting tickets at the ticket's location."""
    if t.status != QueueTicket.STATUS_WAITING:
        return None
    ahead = get_db().execute(
        select(func.count()).select_from(QueueTicket).where(
            QueueTicket.location_id == t.location_id,
            QueueTicket.status == QueueTicket.STATUS_WAITING,
            (QueueTicket.created_at < t.created_at)
            | ((QueueTicket.created_at == t.created_at) & (QueueTicket.ticket_id < t.ticket_id)),
        )
    ).scalar_one()
    return ahead + 1


def current_serving(location_id: str) -> Optional[QueueTicket]:
    return get_db().execute(
        select(QueueTicket).where(
            QueueTicket.location_id == location_id,
            QueueTicket.status == QueueTicket.STATUS_SERVING,
        )
    ).scalars().first()


def all_ticket_docs(since=None) -> Iterable[Tuple[str, Dict[str, Any]]]:
    q = select(QueueTicket)
    if since is not None:
        q = q.where(QueueTicket.created_at >= since)
    return [(t.ticket_id, ticket_doc(t)) for t in get_db().execute(q).scalars()]


def _publish(kind: str, t: QueueTicket):
    feed = current_app.extensions.get('ticket_feed')
    if feed is not None:
        feed.publish(ChangeEvent(kind, t.ticket_id, ticket_doc(t)))


def _log_transition(t: QueueTicket, before: str, actor: str):
    current_app.logger.info('ticket %s %s -> %s by %s', t.ticket_id, before, t.status, actor)


def _recipient(t: QueueTicket) -> Optional[str]:
    if t.customer_email:
        return t.customer_email
    profile = get_db().get(Profile, t.user_id)
    return profile.email if profile else None


def _explain_miss(ticket_id: str, target: str, owner_uid: Optional[str] = None,
                  conflict: str = 'Ticket changed concurrently, please retry'):
    """Raise the reason a conditional transition matched no row."""
    t = load_ticket(ticket_id, fresh=True)
    if owner_uid is not None and t.user_id != owner_uid:
        abort(403, description='Record ownership required')
    TICKET_FSM.assert_can_transition(t.status, target)
    abort(409, description=conflict)


def create_ticket(profile: Profile, location_id: str, service: str) -> QueueTicket:
    """Join a location's queue. Position is fixed here and never recomputed."""
    session = get_db()
    loc = load_location(location_id)
    if service not in loc.service_list:
        abort(400, description='Service not offered at this location')
    prior = session.execute(
        select(func.count()).select_from(QueueTicket).where(QueueTicket.user_id == profile.uid)
    ).scalar_one()
    position = active_count(location_id) + 1
    now = utcnow()
    ticket_id = generate_ticket_id(now)
    try:
        # Plain INSERT: a duplicate id must fail, never overwrite
        session.execute(insert(QueueTicket).values(
            ticket_id=ticket_id,
            user_id=profile.uid,
            customer_email=profile.email,
            customer_name=profile.name or 'Customer',
            location_id=loc.id,
            location_name=loc.display_name,
            service=service,
            status=QueueTicket.STATUS_WAITING,
            position=position,
            estimated_wait=estimated_wait_for(position),
            is_first_queue=prior == 0,
            created_at=now,
            updated_at=now,
            welcome_email_sent=False,
            email_simulated=False,
            thank_you_email_sent=False,
        ))
        if prior == 0:
            profile.first_queue_completed = True
        session.commit()
    except IntegrityError:
        session.rollback()
        abort(409, description='Ticket id already exists, please retry')
    t = load_ticket(ticket_id)
    current_app.logger.info('ticket %s created for %s at %s (position %s)', t.ticket_id, profile.uid, loc.id, position)
    _publish(ADDED, t)
    app = current_app._get_current_object()
    notifications.dispatch(
        app, t.ticket_id, notifications.TEMPLATE_QUEUE_JOINED, _recipient(t),
        notifications.queue_joined_params(t, app.config, now),
    )
    return t


def serve_ticket(ctx: OperatorContext, ticket_id: str) -> QueueTicket:
    """waiting -> serving, only while the location's serving slot is free."""
    session = get_db()
    t = load_ticket(ticket_id)
    if ctx.location_id and t.location_id != ctx.location_id:
        abort(400, description='Ticket belongs to another location')
    busy = aliased(QueueTicket)
    slot_taken = select(busy.ticket_id).where(
        busy.location_id == t.location_id,
        busy.status == QueueTicket.STATUS_SERVING,
    ).exists()
    now = stamp_after(t.created_at, t.updated_at)
    stmt = (
        update(QueueTicket)
        .where(
            QueueTicket.ticket_id == ticket_id,
            QueueTicket.status == QueueTicket.STATUS_WAITING,
            ~slot_taken,
        )
        .values(status=QueueTicket.STATUS_SERVING, served_at=now, served_by=ctx.label, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    try:
        result = session.execute(stmt)
        session.commit()
    except IntegrityError:
        # Unique serving-slot index caught a concurrent serve
        session.rollback()
        abort(409, description=SLOT_TAKEN)
    if result.rowcount == 0:
        _explain_miss(ticket_id, QueueTicket.STATUS_SERVING, conflict=SLOT_TAKEN)
    t = load_ticket(ticket_id, fresh=True)
    _log_transition(t, QueueTicket.STATUS_WAITING, ctx.label)
    _publish(MODIFIED, t)
    return t


def call_next(ctx: OperatorContext) -> Optional[QueueTicket]:
    """Serve the oldest waiting ticket at ctx.location_id; None when nobody waits."""
    load_location(ctx.location_id)
    skipped: List[str] = []
    while True:
        q = select(QueueTicket.ticket_id).where(
            QueueTicket.location_id == ctx.location_id,
            QueueTicket.status == QueueTicket.STATUS_WAITING,
        )
        if skipped:
            q = q.where(QueueTicket.ticket_id.notin_(skipped))
        ticket_id = get_db().execute(_fifo(q).limit(1)).scalars().first()
        if ticket_id is None:
            return None
        try:
            return serve_ticket(ctx, ticket_id)
        except (BadRequest, NotFound):
            # Picked ticket left the queue (cancelled or deleted) before the serve landed
            current_app.logger.info('call-next at %s skipped %s, no longer waiting', ctx.location_id, ticket_id)
            skipped.append(ticket_id)


def _finish_serving(ctx: OperatorContext, target: str) -> QueueTicket:
    session = get_db()
    t = current_serving(ctx.location_id)
    if t is None:
        abort(409, description='No ticket is currently being served at this location')
    now = stamp_after(t.created_at, t.served_at, t.updated_at)
    result = session.execute(
        update(QueueTicket)
        .where(QueueTicket.ticket_id == t.ticket_id, QueueTicket.status == QueueTicket.STATUS_SERVING)
        .values(status=target, completed_at=now, completed_by=ctx.label, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    session.commit()
    if result.rowcount == 0:
        _explain_miss(t.ticket_id, target)
    t = load_ticket(t.ticket_id, fresh=True)
    _log_transition(t, QueueTicket.STATUS_SERVING, ctx.label)
    _publish(MODIFIED, t)
    return t


def complete_current(ctx: OperatorContext) -> Tuple[QueueTicket, int]:
    """serving -> completed; sends the one completion email. Returns total wait minutes."""
    t = _finish_serving(ctx, QueueTicket.STATUS_COMPLETED)
    total_wait = round(minutes_between(t.created_at, t.completed_at) or 0)
    app = current_app._get_current_object()
    notifications.dispatch(
        app, t.ticket_id, notifications.TEMPLATE_SERVICE_COMPLETED, _recipient(t),
        notifications.service_completed_params(t, total_wait, app.config, utcnow()),
    )
    return t, total_wait


def mark_no_show(ctx: OperatorContext) -> QueueTicket:
    return _finish_serving(ctx, QueueTicket.STATUS_NO_SHOW)


def leave_queue(uid: str, ticket_id: str) -> QueueTicket:
    """Customer cancels their own waiting ticket."""
    session = get_db()
    t = load_ticket(ticket_id)
    now = stamp_after(t.created_at, t.updated_at)
    result = session.execute(
        update(QueueTicket)
        .where(
            QueueTicket.ticket_id == ticket_id,
            QueueTicket.user_id == uid,
            QueueTicket.status == QueueTicket.STATUS_WAITING,
        )
        .values(status=QueueTicket.STATUS_CANCELLED, completed_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    session.commit()
    if result.rowcount == 0:
        _explain_miss(ticket_id, QueueTicket.STATUS_CANCELLED, owner_uid=uid)
    t = load_ticket(ticket_id, fresh=True)
    _log_transition(t, QueueTicket.STATUS_WAITING, uid)
    _publish(MODIFIED, t)
    return t


__all__ = [
    'TICKET_FSM', 'StaleRecord', 'OperatorContext', 'generate_ticket_id', 'ticket_doc', 'ticket_json',
    'load_location', 'load_ticket', 'active_count', 'estimated_wait_for', 'waiting_tickets', 'live_rank',
    'current_serving', 'all_ticket_docs', 'create_ticket', 'serve_ticket', 'call_next', 'complete_current',
    'mark_no_show', 'leave_queue',
]
