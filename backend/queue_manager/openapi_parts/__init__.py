"""Constants and helpers imported by the programmatic OpenAPI builder."""

__all__ = [
    "constants",
    "helpers",
]
