"""
=============================================================================
HTTP TRANSPORT
=============================================================================

The part that talks to sockets. Built on the standard library's
ThreadingHTTPServer: one thread per connection, HTTP/1.1 keep-alive,
request line and header parsing from http.server.

Everything above this module only ever sees a Request and a
ResponseWriter.

=============================================================================
CONNECTION STATES
=============================================================================

Every open connection is tracked so shutdown can tell "busy" from "idle":

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      CONNECTION LIFECYCLE                           │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   accept ──► IDLE ──(request line read)──► ACTIVE                   │
    │                ▲                              │                      │
    │                └────────(response sent)───────┘                      │
    │                                                                      │
    │   IDLE + draining    → socket shut down, thread exits               │
    │   ACTIVE + draining  → finishes the request, then closes            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
TIMEOUTS
=============================================================================

Socket timeouts are switched as the connection moves through a request:

    waiting for request line   idle timeout (falls back to read timeout)
    reading headers + body     read timeout
    sending the response       write timeout

A timeout closes the connection.

=============================================================================
RESPONSE BUFFERING
=============================================================================

The handler's output is buffered and sent in one go with an exact
Content-Length, so keep-alive works without chunked encoding. HEAD
requests and statuses without a body (1xx, 204, 304) send headers only.

=============================================================================
"""

from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Dict, Optional, Tuple
import logging
import socket
import socketserver
import sys
import threading

from ..config import Options
from ..http import envelope
from ..http.addr import join_host_port
from ..http.request import Request, RequestError
from ..http.router import HTTP_METHODS, Handler
from ..http.writer import Headers, ResponseWriter, body_allowed


logger = logging.getLogger(__name__)

# Headers the transport computes itself
_MANAGED_HEADERS = ("Content-Length", "Connection", "Date", "Server", "Transfer-Encoding")

# Oversized bodies up to this size are drained before the 413 goes out
_MAX_DISCARD = 256 * 1024

_HEX_DIGITS = b"0123456789abcdefABCDEF"


def _shutdown_socket(sock: socket.socket) -> None:
    """Shut down both directions; a blocked reader sees EOF."""
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        pass  # Already closed by the peer


# =============================================================================
# CONNECTION TRACKING
# =============================================================================

class ConnectionTracker:
    """
    Knows every open connection and whether it is mid-request.

    Shared by all connection threads; every method takes the lock.
    """

    def __init__(self):
        self._cond = threading.Condition()
        self._connections: Dict[socket.socket, bool] = {}
        self.draining = False

    def register(self, sock: socket.socket) -> None:
        with self._cond:
            self._connections[sock] = False

    def unregister(self, sock: socket.socket) -> None:
        with self._cond:
            self._connections.pop(sock, None)
            self._cond.notify_all()

    def mark_active(self, sock: socket.socket) -> None:
        with self._cond:
            if sock in self._connections:
                self._connections[sock] = True

    def mark_idle(self, sock: socket.socket) -> None:
        with self._cond:
            if sock in self._connections:
                self._connections[sock] = False
            self._cond.notify_all()

    def active_count(self) -> int:
        with self._cond:
            return sum(1 for active in self._connections.values() if active)

    def __len__(self) -> int:
        with self._cond:
            return len(self._connections)

    def start_draining(self) -> None:
        """Refuse further requests and close connections that are idle."""
        with self._cond:
            self.draining = True
            for sock, active in self._connections.items():
                if not active:
                    _shutdown_socket(sock)

    def wait_idle(self, timeout: Optional[float]) -> bool:
        """Block until no request is in flight. False on timeout."""
        with self._cond:
            return self._cond.wait_for(
                lambda: not any(self._connections.values()),
                timeout,
            )

    def close_all(self) -> None:
        with self._cond:
            for sock in self._connections:
                _shutdown_socket(sock)


# =============================================================================
# RESPONSE WRITER
# =============================================================================

class ConnectionWriter(ResponseWriter):
    """
    Buffers one response for a connection.

    write_header() freezes status and headers; the transport sends
    everything once the handler returns.
    """

    def __init__(self, head_only: bool = False):
        self._headers = Headers()
        self.sent_headers: Optional[Headers] = None
        self.status_code = 200
        self.wrote_header = False
        self.head_only = head_only
        self.body = bytearray()

    @property
    def headers(self) -> Headers:
        return self._headers

    def write_header(self, status: int) -> None:
        if self.wrote_header:
            logger.debug(f"Superfluous write_header({status}) ignored")
            return
        self.wrote_header = True
        self.status_code = int(status)
        self.sent_headers = self._headers.copy()

    def write(self, data: bytes) -> int:
        if not self.wrote_header:
            self.write_header(200)
        if not body_allowed(self.status_code):
            return 0
        self.body += data
        return len(data)


# =============================================================================
# PER-CONNECTION HANDLER
# =============================================================================

class ConnectionHandler(BaseHTTPRequestHandler):
    """
    Runs on the connection's thread, once per connection.

    http.server drives the keep-alive loop (handle → handle_one_request
    until close_connection); the hooks below add tracking, timeouts and
    dispatch into the application handler.
    """

    protocol_version = "HTTP/1.1"
    server: "TransportServer"

    # ─────────────────────────────────────────────────────────────────────
    # Connection lifecycle
    # ─────────────────────────────────────────────────────────────────────

    def setup(self) -> None:
        super().setup()
        self.server.tracker.register(self.connection)

    def finish(self) -> None:
        try:
            super().finish()
        except OSError:
            pass  # Peer went away before the final flush
        finally:
            self.server.tracker.unregister(self.connection)

    def handle_one_request(self) -> None:
        if self.server.tracker.draining:
            self.close_connection = True
            return
        self.connection.settimeout(self.server.options.idle_socket_timeout)
        super().handle_one_request()

    def parse_request(self) -> bool:
        # The request line is in: this connection is now busy
        self.server.tracker.mark_active(self.connection)
        self.connection.settimeout(self.server.options.read_socket_timeout)
        return super().parse_request()

    # ─────────────────────────────────────────────────────────────────────
    # Request handling
    # ─────────────────────────────────────────────────────────────────────

    def _dispatch(self) -> None:
        try:
            try:
                body = self._read_body()
            except RequestError as e:
                self.send_error(e.status_code, str(e))
                return

            request = Request.from_target(
                self.command,
                self.path,
                version=self.request_version,
                headers=self._request_headers(),
                body=body,
                remote_addr=join_host_port(*self.client_address[:2]),
            )
            writer = ConnectionWriter(head_only=self.command == "HEAD")

            try:
                self.server.app(writer, request)
            except Exception as e:
                logger.exception(f"Unhandled error for {self.command} {self.path}: {e}")
                writer = ConnectionWriter(head_only=self.command == "HEAD")
                writer.headers.set("Connection", "close")
                envelope.internal_server_error(writer)

            self._send(writer)
        except OSError as e:
            # Timeouts and resets: nothing more can be said to this client
            logger.debug(f"Connection error from {self.address_string()}: {e}")
            self.close_connection = True
        finally:
            self.server.tracker.mark_idle(self.connection)

    def _request_headers(self) -> Headers:
        headers = Headers()
        for name, value in self.headers.items():
            headers.add(name, value)
        return headers

    def _read_body(self) -> bytes:
        """
        Read the request body according to Content-Length or chunked
        Transfer-Encoding.

        Raises:
            RequestError: 400 for a bad length, 413 when too large.
        """
        limit = self.server.options.max_request_size

        if "chunked" in self.headers.get("Transfer-Encoding", "").lower():
            return self._read_chunked(limit)

        raw_length = self.headers.get("Content-Length")
        if raw_length is None:
            return b""

        try:
            length = int(raw_length)
        except ValueError:
            raise RequestError(f"Invalid Content-Length: {raw_length!r}")
        if length < 0:
            raise RequestError(f"Invalid Content-Length: {raw_length!r}")
        if length > limit:
            if length <= _MAX_DISCARD:
                self.rfile.read(length)
            raise RequestError(
                f"Request body too large: {length} > {limit} bytes",
                status_code=413,
            )

        body = self.rfile.read(length)
        if len(body) < length:
            raise RequestError("Request body shorter than Content-Length")
        return body

    def _read_chunked(self, limit: int) -> bytes:
        body = bytearray()
        while True:
            line = self.rfile.readline(65537)
            token = line.split(b";")[0].strip()
            # Plain hex digits only: int() would also take "-1", "+a" or "0x10"
            if not token or token.strip(_HEX_DIGITS):
                raise RequestError(f"Invalid chunk size: {token!r}")
            size = int(token, 16)

            if size == 0:
                # Skip trailers up to the blank line
                while self.rfile.readline(65537) not in (b"\r\n", b"\n", b""):
                    pass
                return bytes(body)

            if len(body) + size > limit:
                raise RequestError(f"Request body too large: > {limit} bytes", status_code=413)

            chunk = self.rfile.read(size)
            if len(chunk) < size:
                raise RequestError("Chunk shorter than its declared size")
            body += chunk
            self.rfile.readline(65537)

    def _send(self, writer: ConnectionWriter) -> None:
        if not writer.wrote_header:
            writer.write_header(200)

        self.connection.settimeout(self.server.options.write_socket_timeout)

        status = writer.status_code
        headers = writer.sent_headers or Headers()

        self.send_response(status)
        for name, value in headers.items():
            if name not in _MANAGED_HEADERS:
                self.send_header(name, value)

        if body_allowed(status):
            self.send_header("Content-Length", str(len(writer.body)))

        if (
            self.server.tracker.draining
            or headers.get("Connection").lower() == "close"
        ):
            # send_header also flips close_connection
            self.send_header("Connection", "close")

        self.end_headers()

        if writer.body and not writer.head_only and body_allowed(status):
            self.wfile.write(bytes(writer.body))
        self.wfile.flush()

    def send_error(self, code: int, message: Optional[str] = None, explain: Optional[str] = None) -> None:
        """Protocol-level errors (400, 413, 501, ...) as JSON envelopes."""
        self.log_error("code %d, message %s", code, message)
        writer = ConnectionWriter(head_only=self.command == "HEAD")
        writer.headers.set("Connection", "close")
        envelope.send(
            writer,
            envelope.Envelope(code=code, message=message or self.responses.get(code, ("Error",))[0]),
        )
        self._send(writer)

    def version_string(self) -> str:
        return self.server.options.server_name

    def log_message(self, format: str, *args) -> None:
        logger.debug(f"{self.address_string()} - {format % args}")


# One do_<METHOD> per known method, all going through _dispatch
for _method in HTTP_METHODS:
    setattr(ConnectionHandler, f"do_{_method}", ConnectionHandler._dispatch)
del _method


# =============================================================================
# SERVER
# =============================================================================

class TransportServer(ThreadingHTTPServer):
    """
    Listening socket plus a thread per connection.

    Binds in the constructor; serve_forever() runs the accept loop.
    """

    daemon_threads = True
    block_on_close = False
    allow_reuse_address = True
    allow_reuse_port = False

    def __init__(self, server_address: Tuple[str, int], app: Handler, options: Options):
        self.app = app
        self.options = options
        self.tracker = ConnectionTracker()

        if ":" in server_address[0]:
            self.address_family = socket.AF_INET6

        super().__init__(server_address, ConnectionHandler)

    def server_bind(self) -> None:
        # HTTPServer.server_bind would call getfqdn(), which can stall on DNS
        socketserver.TCPServer.server_bind(self)
        host, port = self.server_address[:2]
        self.server_name = host
        self.server_port = port

    def handle_error(self, request, client_address) -> None:
        error = sys.exc_info()[1]
        if isinstance(error, OSError):
            logger.debug(f"Connection from {client_address} dropped: {error}")
            return
        logger.error(f"Error handling connection from {client_address}", exc_info=True)
