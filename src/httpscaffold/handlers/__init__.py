"""
Built-in route handlers.

Every server starts with two routes, registered before the caller's:

    GET /health  →  health_check        200 {"status": "healthy"}
    /            →  not_found_handler   404 "Resource not found"
"""

from .health import HEALTH_PATTERN, health_check
from .not_found import NOT_FOUND_PATTERN, not_found_handler

__all__ = [
    "HEALTH_PATTERN",
    "NOT_FOUND_PATTERN",
    "health_check",
    "not_found_handler",
]
