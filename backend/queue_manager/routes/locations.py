from __future__ import annotations
from flask import Blueprint, request, abort, current_app
from sqlalchemy import String, cast, func, or_, select
from queue_manager.decorators.auth import require_permissions
from queue_manager.utils.listing import apply_pagination, cached_list
from queue_manager.utils.sorting import apply_multi_sort
from queue_manager.utils.geo import extract_location_coordinates
from queue_manager import get_db
from queue_manager.models.location import Location
from queue_manager.services.queue import active_count, load_location

loc_bp = Blueprint('locations', __name__)

SORT_FIELDS = {
    'name': Location.name,
    'category': Location.category,
    'updated_at': Location.updated_at,
    'id': Location.id,
}


def _location_json(loc: Location):
    coords = extract_location_coordinates({'coords': loc.coords})
    return {
        'id': loc.id,
        'name': loc.display_name,
        'category': loc.category_or_other,
        'services': loc.service_list,
        'address': loc.address,
        'phone': loc.phone,
        'hours': loc.hours,
        'coords': coords.as_dict() if coords else None,
        'has_map_location': coords is not None,
    }


def _filtered_query():
    session = get_db()
    q = session.query(Location)
    category = (request.args.get('category') or '').strip().lower()
    if category:
        if category not in Location.ALL_CATEGORIES:
            abort(400, description='category invalid')
        stored = func.lower(Location.category)
        if category == Location.CATEGORY_OTHER:
            # Unknown categories are displayed as "other"
            known = [c for c in Location.ALL_CATEGORIES if c != Location.CATEGORY_OTHER]
            q = q.filter(stored.notin_(known))
        else:
            q = q.filter(stored == category)
    term = (request.args.get('q') or '').strip()
    if term:
        like = f"%{term.lower()}%"
        q = q.filter(or_(
            func.lower(Location.name).like(like),
            func.lower(Location.address).like(like),
            func.lower(cast(Location.services, String)).like(like),
        ))
    return apply_multi_sort(q, request.args.get('sort'), SORT_FIELDS, Location.id)


def _list_response(head: bool):
    paged_q, total, limit, offset = apply_pagination(_filtered_query())
    rows = paged_q.all()
    rows_json = [_location_json(loc) for loc in rows]
    latest_ts = get_db().execute(select(func.max(Location.updated_at))).scalar_one_or_none()
    return cached_list(rows_json, total, limit, offset, latest_ts, head=head)


@loc_bp.get('')
@require_permissions('QUEUE.READ')
def list_locations():
    return _list_response(head=False)


@loc_bp.route('', methods=['HEAD'])
@require_permissions('QUEUE.READ')
def head_locations():
    return _list_response(head=True)


@loc_bp.get('/<location_id>')
@require_permissions('QUEUE.READ')
def get_location(location_id: str):
    loc = load_location(location_id)
    waiting = active_count(loc.id)
    body = _location_json(loc)
    body['queue'] = {
        'active_count': waiting,
        'estimated_wait': waiting * int(current_app.config.get('QUEUE_SERVICE_MINUTES', 5)),
    }
    return body
