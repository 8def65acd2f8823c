"""
=============================================================================
REQUEST LOGGING MIDDLEWARE
=============================================================================

Emits one structured access record per request, after the response has
been produced.

=============================================================================
HOW THE STATUS AND SIZE ARE OBSERVED
=============================================================================

Handlers write straight to the ResponseWriter; nothing is returned for
the middleware to inspect. So the middleware hands downstream a
DECORATED writer that forwards everything and keeps two counters:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                 InstrumentedResponseWriter                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   handler ──► write_header(404) ──► record status (first wins) ──┐  │
    │          ──► write(b"...")      ──► add bytes accepted ───────────┤  │
    │                                                                   ▼  │
    │                                                     underlying writer│
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

One instance per request; it is never shared between requests.

=============================================================================
LOG RECORD
=============================================================================

Logger "httpscaffold.access", level INFO, message "request", with these
fields in the record's extra:

    endpoint        request URI as sent   "/api/users?page=2"
    method          HTTP method           "GET"
    status          final status code     200
    duration        handler time          "0.412 ms"
    response_size   body bytes written    "57 bytes"
    client_ip       peer IP, no port      "10.0.0.7"
    user_agent      User-Agent header     "curl/8.4.0"

If something downstream raises, the record is still written (status 500
when nothing was sent yet) and the exception keeps propagating to the
recovery middleware placed outside.

=============================================================================
"""

from http import HTTPStatus
import logging
import time

from ..http.addr import client_ip
from ..http.request import Request
from ..http.router import Handler
from ..http.writer import Headers, ResponseWriter


# ═══════════════════════════════════════════════════════════════════════════
# Dedicated access logger so it can be routed separately:
#   logging.getLogger("httpscaffold.access").addHandler(file_handler)
# ═══════════════════════════════════════════════════════════════════════════
logger = logging.getLogger("httpscaffold.access")


class InstrumentedResponseWriter(ResponseWriter):
    """
    ResponseWriter decorator recording status code and body size.

    Attributes:
        status_code:   First status written; 0 until something is written.
        response_size: Total bytes accepted by the wrapped writer.
    """

    def __init__(self, wrapped: ResponseWriter):
        self.wrapped = wrapped
        self.status_code = 0
        self.response_size = 0

    @property
    def headers(self) -> Headers:
        return self.wrapped.headers

    def write_header(self, status: int) -> None:
        if not self.status_code:
            self.status_code = status
        self.wrapped.write_header(status)

    def write(self, data: bytes) -> int:
        # Implicit 200, same as the wrapped writer will do
        if not self.status_code:
            self.status_code = HTTPStatus.OK
        size = self.wrapped.write(data)
        self.response_size += size
        return size


def logging_middleware(next_handler: Handler) -> Handler:
    """Log every request that passes through with timing and size."""

    def handler(w: ResponseWriter, r: Request) -> None:
        start = time.perf_counter()
        lrw = InstrumentedResponseWriter(w)

        failed = True
        try:
            next_handler(lrw, r)
            failed = False
        finally:
            duration_ms = (time.perf_counter() - start) * 1000

            status = lrw.status_code
            if not status:
                status = HTTPStatus.INTERNAL_SERVER_ERROR if failed else HTTPStatus.OK

            logger.info(
                "request",
                extra={
                    "endpoint": r.request_uri,
                    "method": r.method,
                    "status": int(status),
                    "duration": f"{duration_ms:.3f} ms",
                    "response_size": f"{lrw.response_size} bytes",
                    "client_ip": client_ip(r.remote_addr),
                    "user_agent": r.user_agent,
                },
            )

    return handler
