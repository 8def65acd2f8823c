"""
=============================================================================
HEALTH CHECK HANDLER
=============================================================================

Registered by every server as "GET /health".

Load balancers and orchestrators poll it to decide whether to send
traffic. It answers as long as the process can serve requests at all:

    GET /health  →  200
    {"code": 200, "message": "OK", "details": {}, "data": {"status": "healthy"}}

Health responses must never be cached: a cached "healthy" from a dead
instance keeps traffic flowing to it. Hence Cache-Control: no-store.

=============================================================================
"""

from ..http import envelope
from ..http.request import Request
from ..http.writer import ResponseWriter


HEALTH_PATTERN = "GET /health"


def health_check(w: ResponseWriter, r: Request) -> None:
    """Report the server as healthy."""
    w.headers.set("Cache-Control", "no-store")
    envelope.ok(w, {"status": "healthy"})
