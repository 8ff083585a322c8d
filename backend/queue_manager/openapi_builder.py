"""Minimal deterministic OpenAPI spec builder.

Scope:
- Auth endpoints under /auth
- Locations list (GET & HEAD with caching headers) and detail
- Queue ticket customer + operator endpoints, live stats
- Reports analytics and metrics

This is the canonical builder module; `queue_manager/openapi.py` re-exports from here.
"""
from typing import Any, Dict
from .openapi_parts.constants import ENTITIES, LOCATION_ACTIONS, SORT_DETAILS
from .openapi_parts.helpers import schema_minimal, caching_headers, path_param, error_responses, json_body
from .models.queue_ticket import QueueTicket
from .services.queue import TICKET_FSM

__all__ = ["build_openapi_spec"]


def _ok(description: str = "OK", schema_ref: str = None) -> Dict[str, Any]:
    resp: Dict[str, Any] = {"description": description}
    if schema_ref:
        resp["content"] = {"application/json": {"schema": {"$ref": f"#/components/schemas/{schema_ref}"}}}
    return resp


def _auth_paths() -> Dict[str, Any]:
    credentials = json_body({"email": {"type": "string"}, "password": {"type": "string"}}, ["email", "password"])
    signup = json_body(
        {"email": {"type": "string"}, "password": {"type": "string"}, "name": {"type": "string"}},
        ["email", "password"],
    )
    return {
        "/auth/signup": {"post": {"summary": "Create a customer account", "requestBody": signup,
                                  "responses": {"201": _ok("Session issued", "Session"), **error_responses("400", "409")}}},
        "/auth/login": {"post": {"summary": "Email + password sign-in", "requestBody": credentials,
                                 "responses": {"200": _ok("Session issued", "Session"), **error_responses("400", "401", "403")}}},
        "/auth/admin/login": {"post": {"summary": "Operator sign-in (admins only)", "requestBody": credentials,
                                       "responses": {"200": _ok("Session issued", "Session"), **error_responses("400", "401", "403")}}},
        "/auth/federated": {"post": {"summary": "Federated sign-in with a third-party ID token",
                                     "requestBody": json_body({"id_token": {"type": "string"}}, ["id_token"]),
                                     "responses": {"200": _ok("Session issued", "Session"), **error_responses("400", "401", "503")}}},
        "/auth/session": {"get": {"summary": "Current session and profile",
                                  "responses": {"200": _ok("OK", "Session"), **error_responses("401")}}},
        "/auth/logout": {"post": {"summary": "Sign out (revokes the presented token)",
                                  "responses": {"200": _ok(), **error_responses("401")}}},
    }


def _location_paths() -> Dict[str, Any]:
    list_params = [
        {"$ref": "#/components/parameters/LimitParam"},
        {"$ref": "#/components/parameters/OffsetParam"},
        {"$ref": "#/components/parameters/SortLocationsParam"},
        {"name": "category", "in": "query", "schema": {"type": "string"}},
        {"name": "q", "in": "query", "schema": {"type": "string"}},
    ]
    return {
        "/locations": {
            "get": {
                "summary": "List locations",
                "parameters": list_params,
                "x-required-permissions": ["QUEUE.READ"],
                "responses": {
                    "200": {
                        "description": "OK",
                        "headers": caching_headers(),
                        "content": {"application/json": {"schema": {
                            "type": "object",
                            "properties": {
                                "data": {"type": "array", "items": {"$ref": "#/components/schemas/Location"}},
                                "pagination": {"$ref": "#/components/schemas/Pagination"},
                            },
                        }}},
                    },
                    "304": {"description": "Not Modified"},
                    **error_responses("400"),
                },
            },
            "head": {
                "summary": "Location list validators",
                "x-required-permissions": ["QUEUE.READ"],
                "responses": {
                    "200": {"description": "Headers only", "headers": caching_headers()},
                    "304": {"description": "Not Modified"},
                },
            },
        },
        "/locations/{location_id}": {
            "get": {
                "summary": "Get location with current queue length",
                "parameters": [path_param("location_id")],
                "x-required-permissions": ["QUEUE.READ"],
                "responses": {"200": _ok("OK", "Location"), **error_responses("404")},
            },
        },
    }


def _queue_paths() -> Dict[str, Any]:
    ticket = _ok("OK", "TicketEnvelope")
    paths: Dict[str, Any] = {
        "/queues/tickets": {"post": {
            "summary": "Join a location's queue",
            "requestBody": json_body({"location_id": {"type": "string"}, "service": {"type": "string"}}, ["location_id", "service"]),
            "x-required-permissions": ["QUEUE.JOIN"],
            "responses": {"201": _ok("Ticket created", "TicketEnvelope"), **error_responses("400", "404", "409")},
        }},
        "/queues/tickets/{ticket_id}": {"get": {
            "summary": "Get a ticket (owner or admin)",
            "parameters": [path_param("ticket_id")],
            "x-required-permissions": ["QUEUE.READ"],
            "responses": {"200": _ok("OK", "QueueTicket"), **error_responses("403", "404")},
        }},
        "/queues/tickets/{ticket_id}/leave": {"post": {
            "summary": "Leave the queue (waiting -> cancelled)",
            "parameters": [path_param("ticket_id")],
            "x-required-permissions": ["QUEUE.JOIN"],
            "responses": {"200": ticket, **error_responses("400", "403", "404")},
        }},
        "/queues/tickets/{ticket_id}/serve": {"post": {
            "summary": "Serve a specific waiting ticket",
            "parameters": [path_param("ticket_id")],
            "x-required-permissions": ["QUEUE.MANAGE"],
            "responses": {"200": ticket, **error_responses("400", "403", "404", "409")},
        }},
        "/queues/mine": {"get": {
            "summary": "Current user's tickets",
            "parameters": [{"name": "scope", "in": "query", "schema": {"type": "string", "enum": ["active", "history"]}}],
            "x-required-permissions": ["QUEUE.READ"],
            "responses": {"200": _ok(), **error_responses("400")},
        }},
        "/queues/locations/{location_id}/waiting": {"get": {
            "summary": "Waiting tickets in FIFO order with live rank",
            "parameters": [path_param("location_id")],
            "x-required-permissions": ["QUEUE.MANAGE"],
            "responses": {"200": _ok(), **error_responses("403", "404")},
        }},
        "/queues/locations/{location_id}/serving": {"get": {
            "summary": "Ticket currently being served",
            "parameters": [path_param("location_id")],
            "x-required-permissions": ["QUEUE.MANAGE"],
            "responses": {"200": ticket, **error_responses("403", "404")},
        }},
    }
    for suffix, summary, action in LOCATION_ACTIONS:
        paths[f"/queues/locations/{{location_id}}/{suffix}"] = {"post": {
            "summary": summary,
            "parameters": [path_param("location_id")],
            "x-required-permissions": ["QUEUE.MANAGE"],
            "x-audit-action": action,
            "responses": {"200": ticket, **error_responses("400", "403", "404", "409")},
        }}
    window = [{"name": "days", "in": "query", "schema": {"type": "integer"}}]
    paths["/queues/stats"] = {"get": {
        "summary": "Ticket aggregates",
        "parameters": window,
        "x-required-permissions": ["QUEUE.MANAGE"],
        "responses": {"200": _ok("OK", "Aggregates")},
    }}
    paths["/queues/stats/stream"] = {"get": {
        "summary": "Live ticket aggregates (Server-Sent Events)",
        "parameters": window,
        "x-required-permissions": ["QUEUE.MANAGE"],
        "responses": {"200": {"description": "Event stream", "content": {"text/event-stream": {"schema": {"type": "string"}}}}},
    }}
    return paths


def _report_paths() -> Dict[str, Any]:
    return {
        "/reports/analytics": {"get": {
            "summary": "Aggregates over the trailing window",
            "parameters": [{"name": "days", "in": "query", "schema": {"type": "integer", "default": 7}}],
            "x-required-permissions": ["RPT.READ"],
            "responses": {"200": _ok("OK", "Aggregates"), **error_responses("400")},
        }},
        "/reports/metrics": {
            "get": {
                "summary": "Ticket counts per location and status",
                "parameters": [
                    {"$ref": "#/components/parameters/LimitParam"},
                    {"$ref": "#/components/parameters/OffsetParam"},
                    {"name": "start_date", "in": "query", "schema": {"type": "string"}},
                    {"name": "end_date", "in": "query", "schema": {"type": "string"}},
                ],
                "x-required-permissions": ["RPT.READ"],
                "responses": {"200": {"description": "OK", "headers": caching_headers()}, "304": {"description": "Not Modified"}},
            },
            "head": {
                "summary": "Metrics validators",
                "x-required-permissions": ["RPT.READ"],
                "responses": {"200": {"description": "Headers only", "headers": caching_headers()}, "304": {"description": "Not Modified"}},
            },
        },
    }


def build_openapi_spec() -> Dict[str, Any]:
    schemas = {name: schema_minimal(name, id_field) for name, id_field in ENTITIES}
    ticket_schema = schemas["QueueTicket"]
    ticket_schema["properties"].update({
        "status": {"type": "string", "enum": list(QueueTicket.ALL_STATUSES)},
        "position": {"type": "integer", "description": "Rank at join time; never recomputed"},
        "live_rank": {"type": "integer", "nullable": True, "description": "Current rank among waiting tickets"},
        "estimated_wait": {"type": "integer"},
    })
    # Lifecycle metadata aligned with the runtime FSM
    ticket_schema["x-transitions"] = list(QueueTicket.ALL_STATUSES)
    ticket_schema["x-transition-graph"] = {s: sorted(t) for s, t in sorted(TICKET_FSM.graph.items())}
    schemas["Location"]["properties"].update({
        "coords": {"type": "object", "nullable": True,
                   "properties": {"lat": {"type": "number"}, "lng": {"type": "number"}}},
        "has_map_location": {"type": "boolean"},
    })

    components: Dict[str, Any] = {
        "schemas": schemas
        | {
            "Pagination": {
                "type": "object",
                "properties": {
                    "total": {"type": "integer"},
                    "limit": {"type": "integer"},
                    "offset": {"type": "integer"},
                    "returned": {"type": "integer"},
                },
                "required": ["total", "limit", "offset", "returned"],
            },
            "TicketEnvelope": {
                "type": "object",
                "properties": {
                    "ticket": {"$ref": "#/components/schemas/QueueTicket"},
                    "message": {"type": "string"},
                    "total_wait_minutes": {"type": "integer"},
                },
            },
            "Session": {
                "type": "object",
                "properties": {
                    "uid": {"type": "string"},
                    "role": {"type": "string"},
                    "perms": {"type": "array", "items": {"type": "string"}},
                    "access_token": {"type": "string"},
                },
            },
            "Aggregates": {
                "type": "object",
                "properties": {
                    "total": {"type": "integer"},
                    "status_counts": {"type": "object", "additionalProperties": {"type": "integer"}},
                    "tickets_by_day": {"type": "object", "additionalProperties": {"type": "integer"}},
                    "average_wait_by_day": {"type": "object", "additionalProperties": {"type": "integer"}},
                },
            },
            "Error": {
                "type": "object",
                "properties": {"error": {"type": "object", "properties": {
                    "status": {"type": "integer"},
                    "title": {"type": "string"},
                    "detail": {"type": "string"},
                    "refresh": {"type": "boolean"},
                }}},
                "required": ["error"],
            },
        },
        "responses": {
            "Error": {"description": "Error", "content": {"application/json": {"schema": {"$ref": "#/components/schemas/Error"}}}},
        },
        "securitySchemes": {"BearerAuth": {"type": "http", "scheme": "bearer", "bearerFormat": "JWT"}},
        "parameters": {
            "LimitParam": {"name": "limit", "in": "query", "schema": {"type": "integer", "default": 50}},
            "OffsetParam": {"name": "offset", "in": "query", "schema": {"type": "integer", "default": 0}},
        },
    }
    for pname, desc in SORT_DETAILS.items():
        components["parameters"][pname] = {"name": "sort", "in": "query", "schema": {"type": "string"}, "description": desc}

    paths: Dict[str, Any] = {"/healthz": {"get": {"summary": "Liveness probe", "security": [], "responses": {"200": _ok()}}}}
    for frag in (_auth_paths(), _location_paths(), _queue_paths(), _report_paths()):
        paths.update(frag)
    for public in ("/auth/signup", "/auth/login", "/auth/admin/login", "/auth/federated"):
        paths[public]["post"]["security"] = []

    # Add operationIds & tags
    tag_desc: Dict[str, str] = {}
    for path, ops in paths.items():
        tag = path.split("/")[1].capitalize()
        for method, od in ops.items():
            rid = path.strip("/").replace("/", "_").replace("{", "").replace("}", "").replace("-", "_")
            od["operationId"] = f"auto_{method}_{rid}"
            od["tags"] = [tag]
        tag_desc[tag] = f"{tag} endpoints"

    return {
        "openapi": "3.0.3",
        "info": {"title": "Virtual Queue Manager API", "version": "0.1.0"},
        "paths": paths,
        "components": components,
        "security": [{"BearerAuth": []}],
        "tags": [{"name": n, "description": d} for n, d in sorted(tag_desc.items())],
    }
