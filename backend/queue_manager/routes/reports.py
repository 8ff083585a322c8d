from __future__ import annotations
from datetime import datetime, timedelta
from flask import Blueprint, request, current_app
from sqlalchemy import func, select
from queue_manager.decorators.auth import require_permissions
from queue_manager.utils.listing import cached_list, request_pagination
from queue_manager.utils.validation import parse_positive_int
from queue_manager.services.aggregation import compute_aggregates, created_within
from queue_manager.services.queue import all_ticket_docs
from queue_manager.utils.timeutil import utcnow
from queue_manager import get_db
from queue_manager.models.queue_ticket import QueueTicket

rpt_bp = Blueprint('reports', __name__)

MAX_WINDOW_DAYS = 365


def _parse_date(value: str):
    if not value:
        return None
    for fmt in ('%Y-%m-%d', '%Y-%m-%dT%H:%M:%S', '%Y-%m-%dT%H:%M:%S%z'):
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None


@rpt_bp.get('/analytics')
@require_permissions('RPT.READ')
def analytics():
    """Aggregates over tickets created in the trailing `days` window."""
    days = parse_positive_int(
        request.args.get('days'), 'days', int(current_app.config.get('ANALYTICS_WINDOW_DAYS', 7)),
        maximum=MAX_WINDOW_DAYS,
    )
    now = utcnow()
    in_window = created_within(days, now)
    docs = [doc for _, doc in all_ticket_docs(now - timedelta(days=days)) if in_window(doc)]
    body = compute_aggregates(docs)
    body['window_days'] = days
    return body


def _gather_metrics(start_date=None, end_date=None):
    session = get_db()
    q = session.query(QueueTicket.location_id, QueueTicket.location_name, QueueTicket.status, func.count(QueueTicket.ticket_id))
    if start_date:
        q = q.filter(QueueTicket.created_at >= start_date)
    if end_date:
        q = q.filter(QueueTicket.created_at <= end_date)
    q = q.group_by(QueueTicket.location_id, QueueTicket.location_name, QueueTicket.status)
    metrics = [
        {'id': f"{loc_id}:{status}", 'location_id': loc_id, 'location_name': loc_name, 'status': status, 'count': int(count)}
        for loc_id, loc_name, status, count in q.all()
    ]
    # Deterministic ordering
    metrics.sort(key=lambda m: (m['location_id'], m['status']))
    latest_ts = session.execute(select(func.max(QueueTicket.updated_at))).scalar_one_or_none()
    return metrics, latest_ts


def _metrics_response(head: bool):
    start_date = _parse_date(request.args.get('start_date'))
    end_date = _parse_date(request.args.get('end_date'))
    metrics, latest_ts = _gather_metrics(start_date, end_date)
    limit, offset = request_pagination()
    total = len(metrics)
    sliced = metrics[offset:offset + limit]
    return cached_list(sliced, total, limit, offset, latest_ts, head=head)


@rpt_bp.get('/metrics')
@require_permissions('RPT.READ')
def list_metrics():
    return _metrics_response(head=False)


@rpt_bp.route('/metrics', methods=['HEAD'])
@require_permissions('RPT.READ')
def head_metrics():
    return _metrics_response(head=True)
