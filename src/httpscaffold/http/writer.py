"""
=============================================================================
RESPONSE WRITERS
=============================================================================

Handlers do not return response objects. They write to a ResponseWriter,
the same way a handler writes to a socket, one piece at a time:

    def ping(w: ResponseWriter, r: Request) -> None:
        w.headers.set("Content-Type", "text/plain")
        w.write_header(200)
        w.write(b"pong")

=============================================================================
WHY A WRITER INSTEAD OF A RETURN VALUE?
=============================================================================

A writer can be DECORATED. Middleware that needs to observe the response
(status code, byte count) wraps the writer it received and passes the
wrapper downstream:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     WRITER DECORATION                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   transport writer ◄── InstrumentedResponseWriter ◄── handler       │
    │        (socket)          counts status + bytes        w.write(...)  │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The transport writer never changes; the observer just forwards.

=============================================================================
WRITER RULES
=============================================================================

1. headers may be edited freely until write_header() is called.
   Edits after that point do not reach the client.
2. The FIRST write_header() wins. Later calls are ignored.
3. write() without a prior write_header() implies 200 OK.
4. write() returns the number of body bytes accepted. Statuses that
   forbid a body (1xx, 204, 304) accept nothing and return 0.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterator, List, Optional, Tuple
import json
import logging


logger = logging.getLogger(__name__)


def canonical_header_key(name: str) -> str:
    """
    Canonical form of a header name: "content-type" → "Content-Type".

    Header names are case-insensitive (RFC 7230), so every lookup goes
    through this normalization.
    """
    return "-".join(part.capitalize() for part in name.strip().split("-"))


def body_allowed(status: int) -> bool:
    """Whether a response with this status may carry a body."""
    if 100 <= status < 200:
        return False
    return status not in (204, 304)


class Headers:
    """
    Case-insensitive, multi-valued header map.

    Keys are stored in canonical form; each key maps to a list of values
    so repeated headers (Set-Cookie, Vary) survive.
    """

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._values: Dict[str, List[str]] = {}
        if initial:
            for name, value in initial.items():
                self.add(name, value)

    def get(self, name: str, default: str = "") -> str:
        """First value for the header, or default."""
        values = self._values.get(canonical_header_key(name))
        return values[0] if values else default

    def get_all(self, name: str) -> List[str]:
        return list(self._values.get(canonical_header_key(name), []))

    def set(self, name: str, value: str) -> None:
        """Replace all values of the header with a single value."""
        self._values[canonical_header_key(name)] = [value]

    def add(self, name: str, value: str) -> None:
        """Append a value, keeping any existing ones."""
        self._values.setdefault(canonical_header_key(name), []).append(value)

    def delete(self, name: str) -> None:
        self._values.pop(canonical_header_key(name), None)

    def items(self) -> Iterator[Tuple[str, str]]:
        """Yield (name, value) once per value."""
        for name, values in self._values.items():
            for value in values:
                yield name, value

    def copy(self) -> "Headers":
        clone = Headers()
        clone._values = {name: list(values) for name, values in self._values.items()}
        return clone

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and canonical_header_key(name) in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"Headers({dict(self._values)!r})"


class ResponseWriter(ABC):
    """
    The response sink a handler writes to.

    Implementations: the transport's connection writer, the
    InstrumentedResponseWriter used by logging middleware, and
    ResponseRecorder for in-process dispatch and tests.
    """

    @property
    @abstractmethod
    def headers(self) -> Headers:
        """Mutable response headers (effective until write_header)."""

    @abstractmethod
    def write_header(self, status: int) -> None:
        """Send the status line and headers. Only the first call counts."""

    @abstractmethod
    def write(self, data: bytes) -> int:
        """Append body bytes. Returns the number of bytes accepted."""


class ResponseRecorder(ResponseWriter):
    """
    In-memory ResponseWriter.

    Records what a handler produced without any socket involved. Handy for
    calling a handler chain directly:

        recorder = ResponseRecorder()
        server.handler(recorder, Request(method="GET", path="/health"))
        assert recorder.status_code == 200
        assert recorder.json()["data"] == {"status": "healthy"}
    """

    def __init__(self):
        self._headers = Headers()
        self._sent_headers: Optional[Headers] = None
        self.status_code = 200
        self.body = b""
        self.wrote_header = False

    @property
    def headers(self) -> Headers:
        return self._headers

    @property
    def result_headers(self) -> Headers:
        """Headers as the client would see them (snapshot at write_header)."""
        if self._sent_headers is not None:
            return self._sent_headers
        return self._headers

    def write_header(self, status: int) -> None:
        if self.wrote_header:
            logger.debug(f"Superfluous write_header({status}) ignored")
            return
        self.wrote_header = True
        self.status_code = status
        self._sent_headers = self._headers.copy()

    def write(self, data: bytes) -> int:
        if not self.wrote_header:
            self.write_header(200)
        if not body_allowed(self.status_code):
            return 0
        self.body += data
        return len(data)

    @property
    def text(self) -> str:
        return self.body.decode("utf-8")

    def json(self):
        """Decode the recorded body as JSON."""
        return json.loads(self.body.decode("utf-8"))
