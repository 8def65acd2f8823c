"""
=============================================================================
RECOVERY MIDDLEWARE
=============================================================================

Turns an unhandled exception anywhere downstream into a 500 response.

    ┌─────────────────────────────────────────────────────────────────────┐
    │   recover_middleware                                                │
    │   ┌─────────────────────────────────────────────────────────────┐   │
    │   │  try:                                                       │   │
    │   │      logging → cors → router → handler   raises ValueError  │   │
    │   │  except Exception:                                          │   │
    │   │      log "recovered from panic" (error + stack)             │   │
    │   │      write 500 envelope                                     │   │
    │   └─────────────────────────────────────────────────────────────┘   │
    └─────────────────────────────────────────────────────────────────────┘

Put it FIRST in the middleware list so it wraps everything else. The
exception is not re-raised: the request ends with a 500 and the server
keeps serving.

KeyboardInterrupt and SystemExit are not Exception subclasses and pass
straight through.

If the handler had already started writing before it failed, the status
line is already out; the 500 envelope is appended to whatever was
written.

=============================================================================
"""

import logging
import traceback

from ..http import envelope
from ..http.request import Request
from ..http.router import Handler
from ..http.writer import ResponseWriter


logger = logging.getLogger("httpscaffold.recovery")


def recover_middleware(next_handler: Handler) -> Handler:
    """Catch exceptions from downstream and answer 500."""

    def handler(w: ResponseWriter, r: Request) -> None:
        try:
            next_handler(w, r)
        except Exception as e:
            logger.error(
                "recovered from panic",
                extra={
                    "error": str(e) or repr(e),
                    "stack": traceback.format_exc(),
                    "endpoint": r.request_uri,
                    "method": r.method,
                },
            )
            envelope.internal_server_error(w)

    return handler
