"""
=============================================================================
CORS (Cross-Origin Resource Sharing) MIDDLEWARE
=============================================================================

Lets a browser page served from one origin call this server.

=============================================================================
WHAT THIS MIDDLEWARE DOES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        PER-REQUEST FLOW                             │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Origin header                                                      │
    │        │                                                             │
    │        ▼                                                             │
    │   options valid AND origin matches?                                  │
    │        │ yes                              │ no                       │
    │        ▼                                  │                          │
    │   Access-Control-Allow-Origin: <origin>   │                          │
    │        │                                  │                          │
    │        ├── OPTIONS? ──► 204 envelope, STOP (preflight answered)     │
    │        │                                  │                          │
    │        ▼                                  ▼                          │
    │   Access-Control-Allow-Methods / -Headers  (always)                 │
    │        │                                                             │
    │        ▼                                                             │
    │   next handler                                                       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

A preflight from a non-matching origin is NOT short-circuited: it goes on
to the router like any other request, and the browser blocks the call
because the allow-origin header is missing.

=============================================================================
ORIGIN VALIDATION
=============================================================================

The configured origin must look like one of:

    *                              any origin
    http(s)://203.0.113.7[:port]   IPv4 host
    http(s)://app.example[:port]   hostname

Anything else (a path, a trailing slash, a bare hostname) fails
validate(). That never breaks construction: the middleware is still
built, it just never emits Access-Control-Allow-Origin.

The wildcard "*" matches every request that carries an Origin header
and is echoed back as "*".

=============================================================================
"""

from dataclasses import dataclass, field
from typing import List
import os
import re

from ..http import envelope
from ..http.request import Request
from ..http.router import Handler
from ..http.writer import ResponseWriter
from .base import Middleware


_ORIGIN_PATTERN = re.compile(
    r"^(\*"
    r"|https?://(?:\d{1,3}\.){3}\d{1,3}(?::\d+)?"
    r"|https?://[a-zA-Z0-9.-]+(?::\d+)?)$"
)

DEFAULT_METHODS = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
DEFAULT_HEADERS = ["Content-Type", "Authorization"]


def validate_cors_origin(origin: str) -> bool:
    """True if origin is "*" or scheme://host[:port] with an http(s) scheme."""
    return _ORIGIN_PATTERN.match(origin) is not None


@dataclass(frozen=True)
class CorsOptions:
    """
    CORS configuration, captured once when the middleware is built.

    Example:
        CorsOptions(
            allowed_origin="http://localhost:3000",
            allowed_methods=["GET", "POST", "OPTIONS"],
            allowed_headers=["Content-Type", "Authorization"],
        )
    """

    # ─────────────────────────────────────────────────────────────────────
    # The single origin allowed to call us. Empty = never emit the header.
    # ─────────────────────────────────────────────────────────────────────
    allowed_origin: str = ""

    allowed_methods: List[str] = field(default_factory=lambda: list(DEFAULT_METHODS))
    allowed_headers: List[str] = field(default_factory=lambda: list(DEFAULT_HEADERS))

    def validate(self) -> bool:
        """False only when an origin is configured and it is malformed."""
        if self.allowed_origin and not validate_cors_origin(self.allowed_origin):
            return False
        return True

    def matches(self, origin: str) -> bool:
        """Whether a request Origin gets the allow-origin header."""
        if not self.allowed_origin or not self.validate():
            return False
        if self.allowed_origin == "*":
            return bool(origin)
        return origin == self.allowed_origin

    @classmethod
    def from_env(cls) -> "CorsOptions":
        """
        Read CORS settings from the environment.

            CORS_ALLOWED_ORIGIN   e.g. http://localhost:3000
            CORS_ALLOWED_METHODS  comma separated (default GET,POST,PUT,DELETE,OPTIONS)
            CORS_ALLOWED_HEADERS  comma separated (default Content-Type,Authorization)
        """
        def _list(name: str, default: List[str]) -> List[str]:
            raw = os.getenv(name)
            if raw is None:
                return list(default)
            return [item.strip() for item in raw.split(",") if item.strip()]

        return cls(
            allowed_origin=os.getenv("CORS_ALLOWED_ORIGIN", ""),
            allowed_methods=_list("CORS_ALLOWED_METHODS", DEFAULT_METHODS),
            allowed_headers=_list("CORS_ALLOWED_HEADERS", DEFAULT_HEADERS),
        )


def allow_cors(options: CorsOptions) -> Middleware:
    """
    Build a CORS middleware for the given options.

    Usage:
        cors = allow_cors(CorsOptions(allowed_origin="http://localhost:3000"))
        server = Server(Options(middlewares=[recover_middleware, cors]))
    """
    methods = ", ".join(options.allowed_methods)
    headers = ", ".join(options.allowed_headers)

    def cors_middleware(next_handler: Handler) -> Handler:
        def handler(w: ResponseWriter, r: Request) -> None:
            origin = r.headers.get("Origin")

            if options.matches(origin):
                w.headers.set("Access-Control-Allow-Origin", options.allowed_origin)

                # Preflight: answer here, the route never sees it
                if r.method == "OPTIONS":
                    envelope.no_content(w)
                    return

            w.headers.set("Access-Control-Allow-Methods", methods)
            w.headers.set("Access-Control-Allow-Headers", headers)

            next_handler(w, r)

        return handler

    return cors_middleware


def allow_any_cors(next_handler: Handler) -> Handler:
    """
    Permissive CORS for local development.

    Every response allows any origin with the default method and header
    lists, and OPTIONS requests end here with an empty 200.
    """
    def handler(w: ResponseWriter, r: Request) -> None:
        w.headers.set("Access-Control-Allow-Origin", "*")
        w.headers.set("Access-Control-Allow-Methods", ", ".join(DEFAULT_METHODS))
        w.headers.set("Access-Control-Allow-Headers", ", ".join(DEFAULT_HEADERS))

        if r.method == "OPTIONS":
            return

        next_handler(w, r)

    return handler
