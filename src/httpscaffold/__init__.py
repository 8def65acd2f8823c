"""
=============================================================================
HTTPSCAFFOLD - HTTP Service Scaffolding
=============================================================================

A small HTTP service framework: route table, composable middleware,
uniform JSON envelopes and a graceful start/stop lifecycle, on top of the
standard library's threading HTTP server.

=============================================================================
PROJECT OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      HTTPSCAFFOLD ARCHITECTURE                      │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   1. HANDLERS                                                        │
    │      - handler(w: ResponseWriter, r: Request) -> None               │
    │      - responses written as JSON envelopes                          │
    │                                                                      │
    │   2. MIDDLEWARE                                                      │
    │      - Handler -> Handler, composed in list order                   │
    │      - recovery, access logging, CORS                               │
    │                                                                      │
    │   3. ROUTING                                                         │
    │      - "[METHOD ]/path" patterns, :param and *rest segments         │
    │      - built-in GET /health and "/" not-found catch-all             │
    │                                                                      │
    │   4. LIFECYCLE                                                       │
    │      - run(stop_event) blocks, then drains in-flight requests       │
    │      - one-shot: a stopped server is not restarted                  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    httpscaffold/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m httpscaffold)
    ├── server.py            # Server lifecycle
    ├── config.py            # Options dataclass
    ├── errors.py            # Exception hierarchy
    ├── log.py               # Logging setup (text / JSON)
    ├── core/
    │   └── transport.py     # ThreadingHTTPServer adapter
    ├── http/
    │   ├── request.py       # Request model
    │   ├── writer.py        # ResponseWriter, Headers, ResponseRecorder
    │   ├── envelope.py      # JSON response envelopes
    │   ├── router.py        # Pattern routing
    │   └── addr.py          # host:port helpers
    ├── middleware/
    │   ├── base.py          # chain() and MiddlewarePipeline
    │   ├── cors.py          # CORS
    │   ├── logging.py       # Access log + instrumented writer
    │   └── recovery.py      # Exception → 500
    └── handlers/
        ├── health.py        # GET /health
        └── not_found.py     # "/" → 404

=============================================================================
QUICK START
=============================================================================

    from httpscaffold import (
        Options, Route, envelope, new, signal_event,
        recover_middleware, logging_middleware,
    )

    def hello(w, r):
        envelope.ok(w, {"hello": r.get_query("name", "world")})

    server = new(
        Options(
            address="127.0.0.1:8080",
            middlewares=[recover_middleware, logging_middleware],
        ),
        Route("GET /hello", hello),
    )
    server.run(signal_event())

=============================================================================
"""

__version__ = "1.0.0"

from .config import Options
from .errors import ConfigError, ServerClosedError, ServerError, ServerStartError, ShutdownTimeoutError
from .http import (
    Envelope,
    Headers,
    Request,
    RequestError,
    ResponseRecorder,
    ResponseWriter,
    Route,
    Router,
    envelope,
)
from .middleware import (
    CorsOptions,
    Middleware,
    MiddlewarePipeline,
    allow_any_cors,
    allow_cors,
    chain,
    logging_middleware,
    recover_middleware,
)
from .server import Server, ServerState, new, signal_event

__all__ = [
    # Lifecycle
    "Server",
    "ServerState",
    "Options",
    "new",
    "signal_event",

    # Errors
    "ServerError",
    "ServerStartError",
    "ServerClosedError",
    "ShutdownTimeoutError",
    "ConfigError",

    # HTTP
    "Request",
    "RequestError",
    "ResponseWriter",
    "ResponseRecorder",
    "Headers",
    "Route",
    "Router",
    "Envelope",
    "envelope",

    # Middleware
    "Middleware",
    "MiddlewarePipeline",
    "chain",
    "CorsOptions",
    "allow_cors",
    "allow_any_cors",
    "logging_middleware",
    "recover_middleware",
]
