from __future__ import annotations
from typing import Iterable, Optional, Tuple
from flask import request, abort, make_response
from sqlalchemy.orm import Query
from queue_manager.config.pagination import normalize_pagination
import hashlib
from datetime import datetime, timezone, timedelta
from email.utils import parsedate_to_datetime, format_datetime

TIMESTAMP_TOLERANCE = timedelta(seconds=1)

def canonicalize_timestamp(dt: datetime) -> datetime:
    """Return UTC tz-aware timestamp truncated to whole seconds (microseconds removed)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0)

def request_pagination(default_limit: Optional[int] = None) -> Tuple[int, int]:
    try:
        if default_limit is None:
            return normalize_pagination(request.args.get('limit'), request.args.get('offset'))
        return normalize_pagination(request.args.get('limit'), request.args.get('offset'), default_limit)
    except ValueError as e:
        abort(400, description=str(e))

def apply_pagination(q: Query) -> Tuple[Query, int, int, int]:
    limit, offset = request_pagination()
    total = q.count()
    return q.offset(offset).limit(limit), total, limit, offset

def compute_etag(ids: Iterable, total: int, limit: int, offset: int, latest_ts: Optional[str] = '') -> str:
    seed = f"{list(ids)}|{total}|{limit}|{offset}|{latest_ts or ''}"
    return hashlib.sha256(seed.encode()).hexdigest()[:32]

def build_list_payload(rows: list, total: int, limit: int, offset: int):
    return {
        'data': rows,
        'pagination': {
            'total': total,
            'limit': limit,
            'offset': offset,
            'returned': len(rows)
        }
    }

def _http_date(dt: datetime) -> str:
    """Return RFC1123 HTTP-date string in GMT."""
    return format_datetime(dt, usegmt=True)

def _iso_z(dt: datetime) -> str:
    return dt.isoformat().replace('+00:00', 'Z')

def make_cached_list_response(rows: list, total: int, limit: int, offset: int, latest_ts: Optional[datetime] = None, id_key: str = 'id'):
    ids = [r.get(id_key) for r in rows]
    latest_ts_c = canonicalize_timestamp(latest_ts) if isinstance(latest_ts, datetime) else None
    latest_iso = _iso_z(latest_ts_c) if latest_ts_c else ''
    # Keep ETag seed stable using ISO canonical form
    etag = compute_etag(ids, total, limit, offset, latest_iso)
    resp = make_response(build_list_payload(rows, total, limit, offset))
    resp.headers['ETag'] = etag
    if latest_ts_c:
        resp.headers['Last-Modified'] = _http_date(latest_ts_c)
        resp.headers['X-Last-Modified-ISO'] = latest_iso
    return resp, etag

def _parse_if_modified_since(header_val: str) -> Optional[datetime]:
    if not header_val:
        return None
    # Try ISO 8601 first
    try:
        dt = datetime.fromisoformat(header_val.replace('Z', '+00:00'))
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt
    except ValueError:
        pass
    # Then HTTP-date (RFC 1123)
    try:
        dt = parsedate_to_datetime(header_val)
    except (TypeError, ValueError):
        return None
    if dt and dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt

def _not_modified(etag_value: str, latest_ts: Optional[datetime]):
    resp = make_response('', 304)
    resp.headers['ETag'] = etag_value
    if latest_ts:
        latest_c = canonicalize_timestamp(latest_ts)
        resp.headers['Last-Modified'] = _http_date(latest_c)
        resp.headers['X-Last-Modified-ISO'] = _iso_z(latest_c)
    return resp

def handle_conditional(etag_value: str, latest_ts: Optional[datetime]):
    """Evaluate conditional request headers.

    If-None-Match takes precedence over If-Modified-Since (RFC 9110).
    Returns a 304 response object if conditions satisfied, else None.
    """
    inm = request.headers.get('If-None-Match')
    if inm and inm.strip('"') == etag_value:
        return _not_modified(etag_value, latest_ts)
    ims_raw = request.headers.get('If-Modified-Since')
    if ims_raw and latest_ts:
        ims_dt = _parse_if_modified_since(ims_raw)
        if ims_dt and canonicalize_timestamp(latest_ts) <= canonicalize_timestamp(ims_dt) + TIMESTAMP_TOLERANCE:
            return _not_modified(etag_value, latest_ts)
    return None

def cached_list(rows: list, total: int, limit: int, offset: int, latest_ts: Optional[datetime] = None, id_key: str = 'id', head: bool = False):
    """GET/HEAD helper: build the cached list response, honouring conditional headers."""
    resp, etag = make_cached_list_response(rows, total, limit, offset, latest_ts, id_key=id_key)
    cond = handle_conditional(etag, latest_ts)
    if cond:
        if head:
            cond.set_data(b'')
        return cond
    if head:
        resp.set_data(b'')
    return resp
