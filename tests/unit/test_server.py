"""
Tests for the server lifecycle, run against real sockets.
"""

import socket
import threading
import time
from typing import Tuple

import pytest

from httpscaffold import (
    CorsOptions,
    Options,
    Route,
    Server,
    ServerState,
    allow_cors,
    logging_middleware,
    new,
    recover_middleware,
)
from httpscaffold.errors import ServerClosedError, ServerStartError, ShutdownTimeoutError
from httpscaffold.http import Request, ResponseRecorder, envelope
from httpscaffold.http.addr import split_host_port


def wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


def panic(w, r):
    raise RuntimeError("handler exploded")


def echo(w, r):
    envelope.ok(w, {"body": r.body.decode("utf-8"), "id": r.path_params.get("id")})


def raw_exchange(srv, payload: bytes, half_close: bool = False) -> Tuple[int, bytes]:
    """Send raw bytes, read until the server closes, return (status, body)."""
    with socket.create_connection((srv.host, srv.port), timeout=5.0) as sock:
        sock.sendall(payload)
        if half_close:
            sock.shutdown(socket.SHUT_WR)
        data = b""
        while True:
            received = sock.recv(65536)
            if not received:
                break
            data += received
    head, _, body = data.partition(b"\r\n\r\n")
    return int(head.split()[1]), body


CHUNKED_HEAD = (
    b"POST /echo/1 HTTP/1.1\r\n"
    b"Host: localhost\r\n"
    b"Transfer-Encoding: chunked\r\n"
    b"\r\n"
)


class BlockingHandler:
    """Handler that holds its request open until released."""

    def __init__(self):
        self.entered = threading.Event()
        self.release = threading.Event()

    def __call__(self, w, r):
        self.entered.set()
        self.release.wait(5.0)
        envelope.ok(w, "done")


class TestConstruction:
    """Tests for building a server."""

    def test_no_network_activity(self):
        """Test construction does not bind."""
        server = Server(Options(address="192.0.2.1:1"))
        assert server.state is ServerState.CONSTRUCTED
        assert server.address == "192.0.2.1:1"

    def test_new_is_server(self):
        assert isinstance(new(Options()), Server)

    def test_builtin_routes(self):
        patterns = [r.pattern for r in Server().router.routes()]
        assert patterns == ["GET /health", "/"]

    def test_tuple_routes(self):
        server = Server(Options(), ("GET /echo/:id", echo))
        recorder = ResponseRecorder()
        server.handler(recorder, Request(method="GET", path="/echo/9"))
        assert recorder.json()["data"]["id"] == "9"

    def test_options_copied(self):
        """Test later changes to the caller's options are not seen."""
        options = Options(middlewares=[])
        server = Server(options)
        options.middlewares.append(recover_middleware)
        options.address = ":1"

        assert server.options.middlewares == ()
        assert server.options.address == "127.0.0.1:8080"

    def test_in_process_dispatch(self):
        """Test the composed handler without any socket."""
        server = Server(Options(middlewares=[recover_middleware]), Route("GET /panic", panic))

        recorder = ResponseRecorder()
        server.handler(recorder, Request(method="GET", path="/panic"))
        assert recorder.status_code == 500


class TestBuiltinRoutes:
    """Tests for the routes every server has."""

    def test_health(self, live_server):
        srv = live_server()
        response = srv.request("GET", "/health")

        assert response.status == 200
        assert response.headers["Content-Type"] == "application/json"
        assert response.headers["Cache-Control"] == "no-store"
        assert response.json() == {
            "code": 200,
            "message": "OK",
            "details": {},
            "data": {"status": "healthy"},
        }

    def test_unknown_path(self, live_server):
        srv = live_server()
        response = srv.request("GET", "/does/not/exist")

        assert response.status == 404
        assert response.json()["message"] == "Resource not found"

    def test_caller_overrides_catch_all(self, live_server):
        def index(w, r):
            envelope.ok(w, "home")

        srv = live_server(Options(), Route("/", index))
        response = srv.request("GET", "/anything")

        assert response.status == 200
        assert response.json()["data"] == "home"

    def test_server_header(self, live_server):
        srv = live_server(Options(server_name="test-server"))
        assert srv.request("GET", "/health").headers["Server"] == "test-server"


class TestTransport:
    """Tests for request/response handling over the wire."""

    def test_path_params_and_body(self, live_server):
        srv = live_server(Options(), Route("POST /echo/:id", echo))
        response = srv.request("POST", "/echo/42", body=b"hello")

        assert response.status == 200
        assert response.json()["data"] == {"body": "hello", "id": "42"}

    def test_head_has_no_body(self, live_server):
        srv = live_server()
        response = srv.request("HEAD", "/health")

        assert response.status == 200
        assert response.body == b""
        assert int(response.headers["Content-Length"]) > 0

    def test_body_too_large(self, live_server):
        srv = live_server(Options(max_request_size=10), Route("POST /echo/:id", echo))
        response = srv.request("POST", "/echo/1", body=b"x" * 100)

        assert response.status == 413
        assert response.json()["code"] == 413

    def test_keep_alive(self, live_server):
        """Test several requests share one connection."""
        srv = live_server()
        conn = srv.connection()
        try:
            for _ in range(3):
                conn.request("GET", "/health")
                response = conn.getresponse()
                response.read()
                assert response.status == 200
                assert response.headers.get("Connection") != "close"
        finally:
            conn.close()

    def test_unhandled_error_without_recovery(self, live_server):
        """Test the transport still answers 500 and keeps serving."""
        srv = live_server(Options(), Route("GET /panic", panic))

        response = srv.request("GET", "/panic")
        assert response.status == 500
        assert response.json()["message"] == "Internal Server Error"
        assert srv.request("GET", "/health").status == 200


class TestChunkedBody:
    """Tests for Transfer-Encoding: chunked request bodies."""

    @pytest.fixture
    def srv(self, live_server):
        return live_server(Options(max_request_size=16), Route("POST /echo/:id", echo))

    def test_chunked_body(self, srv):
        response = srv.request("POST", "/echo/5", body=iter([b"hel", b"lo"]))

        assert response.status == 200
        assert response.json()["data"] == {"body": "hello", "id": "5"}

    def test_chunk_extension_and_trailer(self, srv):
        status, body = raw_exchange(
            srv,
            CHUNKED_HEAD + b"5;name=value\r\nhello\r\n0\r\nX-Trailer: 1\r\n\r\n",
            half_close=True,
        )
        assert status == 200
        assert b'"hello"' in body

    def test_chunked_body_too_large(self, srv):
        status, body = raw_exchange(srv, CHUNKED_HEAD + b"40\r\n")
        assert status == 413
        assert b'"code": 413' in body

    def test_chunks_add_up_past_limit(self, srv):
        status, _ = raw_exchange(srv, CHUNKED_HEAD + b"a\r\n0123456789\r\na\r\n")
        assert status == 413

    def test_negative_chunk_size(self, srv):
        """Test "-1" is rejected instead of reading to end of stream."""
        status, _ = raw_exchange(srv, CHUNKED_HEAD + b"-1\r\n")
        assert status == 400

        srv.server.shutdown(timeout=1.0)
        assert srv.server.state is ServerState.STOPPED

    @pytest.mark.parametrize("token", [b"+a", b"0x5", b"z", b""])
    def test_malformed_chunk_size(self, srv, token):
        status, _ = raw_exchange(srv, CHUNKED_HEAD + token + b"\r\n")
        assert status == 400

    def test_truncated_chunk(self, srv):
        status, _ = raw_exchange(srv, CHUNKED_HEAD + b"a\r\nabc", half_close=True)
        assert status == 400


class TestMiddlewareStack:
    """Tests for the recommended middleware composition over the wire."""

    @pytest.fixture
    def srv(self, live_server):
        options = Options(middlewares=[
            recover_middleware,
            logging_middleware,
            allow_cors(CorsOptions(allowed_origin="http://localhost:3000")),
        ])
        return live_server(options, Route("GET /panic", panic))

    def test_panic_recovered(self, srv, caplog):
        """Test a raising handler gives 500 and the server keeps serving."""
        response = srv.request("GET", "/panic")

        assert response.status == 500
        assert response.json() == {
            "code": 500,
            "message": "Internal Server Error",
            "details": {},
            "data": {},
        }
        assert srv.request("GET", "/health").status == 200

        errors = [r for r in caplog.records if r.name == "httpscaffold.recovery"]
        assert errors and errors[0].stack

    def test_preflight(self, srv):
        response = srv.request("OPTIONS", "/anything", headers={
            "Origin": "http://localhost:3000",
            "Access-Control-Request-Method": "POST",
        })

        assert response.status == 204
        assert response.body == b""
        assert response.headers["Access-Control-Allow-Origin"] == "http://localhost:3000"

    def test_cors_headers_on_normal_request(self, srv):
        response = srv.request("GET", "/health", headers={"Origin": "http://localhost:3000"})

        assert response.headers["Access-Control-Allow-Origin"] == "http://localhost:3000"
        assert response.headers["Access-Control-Allow-Methods"] == "GET, POST, PUT, DELETE, OPTIONS"


class TestLifecycle:
    """Tests for start, run and shutdown."""

    def test_run_until_stopped(self):
        stop = threading.Event()
        server = Server(Options(address="127.0.0.1:0"))
        thread = threading.Thread(target=server.run, args=(stop,), daemon=True)
        thread.start()

        assert wait_for(lambda: server.is_running)
        assert split_host_port(server.address)[1] != "0"

        stop.set()
        thread.join(5.0)
        assert not thread.is_alive()
        assert server.state is ServerState.STOPPED

    def test_listen_and_serve(self):
        server = Server(Options(address="127.0.0.1:0"))
        thread = threading.Thread(target=server.listen_and_serve, daemon=True)
        thread.start()

        assert wait_for(lambda: server.is_running)
        server.shutdown(timeout=5.0)
        thread.join(5.0)
        assert not thread.is_alive()

    def test_bind_failure(self, live_server):
        """Test a busy port raises ServerStartError."""
        srv = live_server()
        server = Server(Options(address=f"127.0.0.1:{srv.port}"))

        with pytest.raises(ServerStartError):
            server.start()
        assert server.state is ServerState.STOPPED

    def test_run_bind_failure(self, live_server):
        srv = live_server()
        server = Server(Options(address=f"127.0.0.1:{srv.port}"))

        with pytest.raises(ServerStartError):
            server.run(threading.Event())

    def test_shutdown_never_started(self):
        server = Server()
        server.shutdown()
        assert server.state is ServerState.STOPPED

    def test_shutdown_twice(self, live_server):
        srv = live_server()
        srv.server.shutdown()

        started = time.monotonic()
        srv.server.shutdown()
        assert time.monotonic() - started < 1.0
        assert srv.server.state is ServerState.STOPPED

    def test_one_shot(self, live_server):
        srv = live_server()
        srv.stop()

        with pytest.raises(ServerClosedError):
            srv.server.start()
        with pytest.raises(ServerClosedError):
            srv.server.listen_and_serve()

    def test_shutdown_waits_for_stop_event(self, live_server):
        srv = live_server()
        stop = threading.Event()
        thread = threading.Thread(target=srv.server.shutdown, args=(stop,), daemon=True)
        thread.start()

        time.sleep(0.1)
        assert srv.server.is_running

        stop.set()
        thread.join(5.0)
        assert srv.server.state is ServerState.STOPPED

    def test_listener_closed_after_shutdown(self, live_server):
        srv = live_server()
        srv.stop()

        with pytest.raises(OSError):
            srv.request("GET", "/health")


class TestGracefulShutdown:
    """Tests for draining in-flight requests."""

    def test_in_flight_request_completes(self, live_server):
        blocking = BlockingHandler()
        srv = live_server(Options(), Route("GET /slow", blocking))
        responses = []

        client = threading.Thread(
            target=lambda: responses.append(srv.request("GET", "/slow")),
            daemon=True,
        )
        client.start()
        assert blocking.entered.wait(5.0)

        stopper = threading.Thread(target=srv.server.shutdown, kwargs={"timeout": 5.0}, daemon=True)
        stopper.start()
        time.sleep(0.2)
        assert stopper.is_alive()

        blocking.release.set()
        stopper.join(5.0)
        client.join(5.0)

        assert not stopper.is_alive()
        assert responses[0].status == 200
        assert responses[0].headers["Connection"] == "close"
        assert srv.server.state is ServerState.STOPPED

    def test_timeout(self, live_server):
        """Test a stuck request makes shutdown report a timeout."""
        blocking = BlockingHandler()
        srv = live_server(Options(), Route("GET /slow", blocking))
        errors = []

        def call():
            try:
                srv.request("GET", "/slow")
            except OSError as e:
                errors.append(e)

        client = threading.Thread(target=call, daemon=True)
        client.start()
        assert blocking.entered.wait(5.0)

        try:
            with pytest.raises(ShutdownTimeoutError) as exc_info:
                srv.server.shutdown(timeout=0.2)
        finally:
            blocking.release.set()
            client.join(5.0)

        assert exc_info.value.pending == 1
        assert exc_info.value.timeout == 0.2
        assert srv.server.state is ServerState.STOPPED

    def test_concurrent_shutdown_reports_timeout(self, live_server):
        """Test a second caller during the drain also sees the timeout."""
        blocking = BlockingHandler()
        srv = live_server(Options(), Route("GET /slow", blocking))
        outcomes = []

        def call():
            try:
                srv.request("GET", "/slow")
            except OSError:
                pass

        def first_shutdown():
            try:
                srv.server.shutdown(timeout=1.0)
                outcomes.append(None)
            except ShutdownTimeoutError as e:
                outcomes.append(e)

        client = threading.Thread(target=call, daemon=True)
        client.start()
        assert blocking.entered.wait(5.0)

        first = threading.Thread(target=first_shutdown, daemon=True)
        first.start()
        assert wait_for(lambda: srv.server.state is ServerState.SHUTTING_DOWN)

        try:
            with pytest.raises(ShutdownTimeoutError):
                srv.server.shutdown(timeout=0.1)
            with pytest.raises(ShutdownTimeoutError):
                srv.server.shutdown(timeout=5.0)
        finally:
            blocking.release.set()
            first.join(5.0)
            client.join(5.0)

        assert isinstance(outcomes[0], ShutdownTimeoutError)
        assert srv.server.state is ServerState.STOPPED

    def test_idle_keep_alive_closed(self, live_server):
        """Test an idle keep-alive connection does not hold up shutdown."""
        srv = live_server()
        conn = srv.connection()
        try:
            conn.request("GET", "/health")
            conn.getresponse().read()

            started = time.monotonic()
            srv.server.shutdown(timeout=5.0)
            assert time.monotonic() - started < 2.0
        finally:
            conn.close()
