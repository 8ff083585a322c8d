from __future__ import annotations
from typing import Any, Dict, Optional
from flask_jwt_extended import get_jwt
from queue_manager import get_db
from queue_manager.models.audit import AuditLog


def add_audit(action: str, entity: Optional[str] = None, entity_id: Optional[str] = None, meta: Optional[Dict[str, Any]] = None):
    """Persist an audit log entry within the current DB session.

    Parameters:
      action: short action code e.g. QUEUE.TICKET.SERVE
      entity: optional entity name (QueueTicket, Profile)
      entity_id: optional primary key string
      meta: additional JSON-safe dictionary (shallow copied)
    """
    session = get_db()
    try:
        claims = get_jwt() or {}
    except RuntimeError:
        claims = {}  # outside a verified request (scripts, background work)
    log = AuditLog(
        actor_uid=str(claims.get('sub') or 'system'),
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        perms_snapshot={'perms': claims.get('perms', [])},
        meta=dict(meta or {}),
    )
    session.add(log)
    # No commit here; caller's transaction boundary controls durability.
    return log
