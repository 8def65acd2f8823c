"""
Catch-all handler, registered on "/" before any caller route.

Any request no other pattern claims ends here. A caller route for "/"
replaces it (same pattern, later registration wins).
"""

from ..http import envelope
from ..http.request import Request
from ..http.writer import ResponseWriter


NOT_FOUND_PATTERN = "/"


def not_found_handler(w: ResponseWriter, r: Request) -> None:
    envelope.not_found(w, "Resource not found")
