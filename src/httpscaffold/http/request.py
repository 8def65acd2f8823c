"""
=============================================================================
HTTP REQUEST MODEL
=============================================================================

The request object every handler and middleware receives.

The transport parses the wire format (request line, headers, body) and
fills one of these in. Handlers never see raw bytes.

=============================================================================
REQUEST ANATOMY
=============================================================================

    GET /api/users?page=1 HTTP/1.1\r\n          ─┐
    Host: localhost:8080\r\n                     │  request line +
    User-Agent: curl/8.0\r\n                     │  headers
    Origin: http://localhost:3000\r\n            │
    \r\n                                        ─┘
    [body]                                       ── Content-Length bytes

    Request(
        method="GET",
        path="/api/users",                ← decoded, no query string
        request_uri="/api/users?page=1",  ← as sent by the client
        query_params={"page": ["1"]},
        headers=Headers({...}),
        remote_addr="127.0.0.1:52341",    ← "host:port" of the peer
    )

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union
from urllib.parse import parse_qs, unquote, urlsplit
import json

from .writer import Headers


class RequestError(Exception):
    """
    A request that cannot be processed as sent.

    Carries the HTTP status the transport should answer with
    (400 for malformed input, 413 for oversized bodies, ...).
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class Request:
    """
    A parsed HTTP request.

    Attributes:
        method:       HTTP method, upper case (GET, POST, ...)
        path:         Decoded path without the query string
        request_uri:  Request target exactly as received; defaults to path
        version:      "HTTP/1.1" or "HTTP/1.0"
        headers:      Case-insensitive header map
        query_params: Query string as dict of lists
        body:         Raw body bytes
        path_params:  Segments captured by the router (":id" → {"id": ...})
        remote_addr:  Peer address as "host:port"
    """

    method: str
    path: str
    request_uri: str = ""
    version: str = "HTTP/1.1"
    headers: Union[Headers, Dict[str, str]] = field(default_factory=Headers)
    query_params: Dict[str, List[str]] = field(default_factory=dict)
    body: bytes = b""
    path_params: Dict[str, str] = field(default_factory=dict)
    remote_addr: str = ""

    _body_json: Optional[Any] = field(default=None, repr=False)

    def __post_init__(self):
        self.method = self.method.upper()
        if not isinstance(self.headers, Headers):
            self.headers = Headers(self.headers)
        if not self.request_uri:
            self.request_uri = self.path

    @classmethod
    def from_target(cls, method: str, target: str, **kwargs: Any) -> "Request":
        """
        Build a request from a raw request target such as "/a%20b?x=1".

        The path is percent-decoded and the query string parsed; the
        target itself is kept as request_uri.
        """
        parts = urlsplit(target)
        return cls(
            method=method,
            path=unquote(parts.path) or "/",
            request_uri=target,
            query_params=parse_qs(parts.query, keep_blank_values=True),
            **kwargs,
        )

    # =========================================================================
    # HEADER SHORTCUTS
    # =========================================================================

    @property
    def content_type(self) -> Optional[str]:
        """Content-Type without parameters ("application/json; charset=..." → "application/json")."""
        ct = self.headers.get("Content-Type").split(";")[0].strip().lower()
        return ct or None

    @property
    def content_length(self) -> int:
        """Content-Length as int; 0 when missing or invalid."""
        try:
            return int(self.headers.get("Content-Length", "0"))
        except ValueError:
            return 0

    @property
    def host(self) -> str:
        return self.headers.get("Host")

    @property
    def user_agent(self) -> str:
        return self.headers.get("User-Agent")

    @property
    def origin(self) -> str:
        return self.headers.get("Origin")

    @property
    def is_json(self) -> bool:
        return self.content_type == "application/json"

    @property
    def json(self) -> Any:
        """
        Body decoded as JSON (parsed once, then cached).

        Raises:
            RequestError: If the body is not valid UTF-8 JSON.
        """
        if self._body_json is None and self.body:
            try:
                self._body_json = json.loads(self.body.decode("utf-8"))
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise RequestError(f"Invalid JSON body: {e}")
        return self._body_json

    # =========================================================================
    # ACCESSORS
    # =========================================================================

    def get_header(self, name: str, default: str = "") -> str:
        return self.headers.get(name, default)

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """First value of a query parameter."""
        values = self.query_params.get(name, [])
        return values[0] if values else default

    def get_query_list(self, name: str) -> List[str]:
        return self.query_params.get(name, [])
