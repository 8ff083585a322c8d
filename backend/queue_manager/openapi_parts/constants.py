"""Centralized constants for the OpenAPI spec builder.

Tests depend on deterministic ordering and content.
"""
from typing import Dict, List, Tuple

# Entity registry: (SchemaName, id field)
ENTITIES: List[Tuple[str, str]] = [
    ("Profile", "uid"),
    ("Location", "id"),
    ("QueueTicket", "ticket_id"),
]

# Operator actions scoped to a location: (path suffix, summary, audit action)
LOCATION_ACTIONS: List[Tuple[str, str, str]] = [
    ("call-next", "Serve the oldest waiting ticket", "QUEUE.TICKET.CALL_NEXT"),
    ("complete-current", "Complete the ticket being served", "QUEUE.TICKET.COMPLETE"),
    ("no-show", "Mark the ticket being served as no-show", "QUEUE.TICKET.NO_SHOW"),
]

SORT_DETAILS: Dict[str, str] = {
    "SortLocationsParam": "Multi-field sort (name,category,updated_at,id). Prefix - for desc",
}

__all__ = [
    "ENTITIES",
    "LOCATION_ACTIONS",
    "SORT_DETAILS",
]
