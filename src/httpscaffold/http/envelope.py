"""
=============================================================================
JSON RESPONSE ENVELOPE
=============================================================================

Every response the scaffold produces has the same JSON shape:

    {
        "code":    404,                    ← mirrors the HTTP status
        "message": "Resource not found",   ← human readable (or an object)
        "details": {},                     ← field errors; never null
        "data":    {}                      ← payload
    }

Clients can branch on "code" without looking at the status line, and
error responses always have somewhere to put validation details.

=============================================================================
CONSTRUCTORS
=============================================================================

    ┌──────────────────────────┬──────┬───────────────────────────────────┐
    │  Function                │ Code │ Message                           │
    ├──────────────────────────┼──────┼───────────────────────────────────┤
    │  ok(w, data)             │ 200  │ "OK"                              │
    │  no_content(w)           │ 204  │ "No Content"                      │
    │  bad_request(w, ...)     │ 400  │ default "Bad Request"             │
    │  unauthorized(w, ...)    │ 401  │ default "Unauthorized"            │
    │  not_found(w, ...)       │ 404  │ default "Not Found"               │
    │  method_not_allowed(...) │ 405  │ "Method Not Allowed"              │
    │  internal_server_error(w)│ 500  │ "Internal Server Error" (fixed)   │
    └──────────────────────────┴──────┴───────────────────────────────────┘

Each one sets Content-Type: application/json, writes the status, then
writes the encoded envelope followed by a newline.

Note: a 204 response cannot carry a body, so the envelope written by
no_content() is accepted by the writer and dropped on the wire.

=============================================================================
"""

from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any, Dict, Iterable, Optional
import json

from .writer import ResponseWriter


CONTENT_TYPE_JSON = "application/json"


@dataclass
class Envelope:
    """The uniform response body. Built once per response and discarded."""

    code: int
    message: Any
    details: Any = field(default_factory=dict)
    data: Any = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": int(self.code),
            "message": self.message,
            "details": {} if self.details is None else self.details,
            "data": self.data,
        }

    def to_json(self) -> bytes:
        """Encode as UTF-8 JSON terminated by a newline."""
        return (json.dumps(self.to_dict(), ensure_ascii=False) + "\n").encode("utf-8")


def send(w: ResponseWriter, envelope: Envelope) -> None:
    """Write an envelope with its code as the HTTP status."""
    w.headers.set("Content-Type", CONTENT_TYPE_JSON)
    w.write_header(int(envelope.code))
    w.write(envelope.to_json())


def ok(w: ResponseWriter, data: Any = None) -> None:
    """200 OK with a payload."""
    send(w, Envelope(code=HTTPStatus.OK, message="OK", data=data))


def no_content(w: ResponseWriter) -> None:
    """204 No Content. Used for answered CORS preflights."""
    send(w, Envelope(code=HTTPStatus.NO_CONTENT, message="No Content"))


def bad_request(
    w: ResponseWriter,
    message: Optional[str] = None,
    errors: Optional[Dict[str, str]] = None,
) -> None:
    """
    400 Bad Request.

    Args:
        message: Error summary; "Bad Request" when omitted.
        errors: Per-field problems, placed in "details".
    """
    send(w, Envelope(
        code=HTTPStatus.BAD_REQUEST,
        message=message if message is not None else "Bad Request",
        details=dict(errors or {}),
    ))


def unauthorized(
    w: ResponseWriter,
    message: str = "Unauthorized",
    errors: Optional[Dict[str, str]] = None,
) -> None:
    """401 Unauthorized: the caller is not authenticated."""
    send(w, Envelope(
        code=HTTPStatus.UNAUTHORIZED,
        message=message,
        details=dict(errors or {}),
    ))


def not_found(w: ResponseWriter, message: str = "") -> None:
    """404 Not Found. An empty message becomes "Not Found"."""
    send(w, Envelope(code=HTTPStatus.NOT_FOUND, message=message or "Not Found"))


def method_not_allowed(w: ResponseWriter, allowed: Iterable[str]) -> None:
    """405 Method Not Allowed, with the Allow header RFC 7231 requires."""
    methods = sorted(set(allowed))
    w.headers.set("Allow", ", ".join(methods))
    send(w, Envelope(
        code=HTTPStatus.METHOD_NOT_ALLOWED,
        message="Method Not Allowed",
        details={"allowed": methods},
    ))


def internal_server_error(w: ResponseWriter) -> None:
    """500 Internal Server Error. The message is fixed; no internals leak."""
    send(w, Envelope(
        code=HTTPStatus.INTERNAL_SERVER_ERROR,
        message="Internal Server Error",
    ))
