from __future__ import annotations
"""Reusable validation helpers for request payloads and domain values.

Keeps 400 error semantics consistent across blueprints.
"""
from typing import Any, Optional
from flask import abort


def require_text(data: dict, field_name: str, message: Optional[str] = None) -> str:
    """Return a stripped non-empty string field or abort with 400."""
    value: Any = data.get(field_name)
    if not isinstance(value, str) or not value.strip():
        abort(400, description=message or f"{field_name} required")
    return value.strip()


def parse_positive_int(raw, field_name: str, default: int, maximum: Optional[int] = None) -> int:
    if raw is None or raw == '':
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        abort(400, description=f"{field_name} must be int")
    if value < 1:
        abort(400, description=f"{field_name} must be positive")
    if maximum is not None:
        value = min(value, maximum)
    return value

__all__ = ['require_text', 'parse_positive_int']
