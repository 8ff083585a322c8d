"""Helper functions for the OpenAPI builder."""
from typing import Any, Dict, List


def schema_minimal(name: str, id_field: str = "id") -> Dict[str, Any]:
    return {"type": "object", "properties": {id_field: {"type": "string"}}, "required": [id_field]}


def caching_headers() -> Dict[str, Any]:
    return {
        "ETag": {"schema": {"type": "string"}},
        "Last-Modified": {"schema": {"type": "string"}},
        "X-Last-Modified-ISO": {"schema": {"type": "string"}},
    }


def path_param(name: str) -> Dict[str, Any]:
    return {"name": name, "in": "path", "required": True, "schema": {"type": "string"}}


def error_responses(*codes: str) -> Dict[str, Any]:
    return {code: {"$ref": "#/components/responses/Error"} for code in codes}


def json_body(properties: Dict[str, Any], required: List[str]) -> Dict[str, Any]:
    return {
        "required": True,
        "content": {"application/json": {"schema": {"type": "object", "properties": properties, "required": required}}},
    }


__all__ = ["schema_minimal", "caching_headers", "path_param", "error_responses", "json_body"]
