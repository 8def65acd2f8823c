"""
=============================================================================
HTTP PRIMITIVES
=============================================================================

The pieces a handler touches:

    Request          parsed request (method, path, headers, body, peer)
    ResponseWriter   the sink a handler writes its response to
    Headers          case-insensitive header map
    envelope         the uniform JSON body + status constructors
    Router           pattern → handler dispatch

A handler is any callable taking (writer, request):

    def ping(w: ResponseWriter, r: Request) -> None:
        envelope.ok(w, "pong")

=============================================================================
"""

from . import envelope
from .addr import client_ip, join_host_port, split_host_port
from .envelope import Envelope
from .request import Request, RequestError
from .router import Handler, Route, RouteMatch, Router
from .writer import Headers, ResponseRecorder, ResponseWriter, body_allowed

__all__ = [
    # Request side
    "Request",
    "RequestError",

    # Response side
    "ResponseWriter",
    "ResponseRecorder",
    "Headers",
    "body_allowed",
    "envelope",
    "Envelope",

    # Routing
    "Handler",
    "Route",
    "RouteMatch",
    "Router",

    # Addresses
    "client_ip",
    "join_host_port",
    "split_host_port",
]
