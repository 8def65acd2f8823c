"""
pytest configuration and fixtures.
"""

import http.client
import json
from typing import Callable, Dict, Generator, List, Optional
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from httpscaffold import Options, Server
from httpscaffold.http import Request, ResponseRecorder
from httpscaffold.http.addr import split_host_port


@pytest.fixture
def recorder() -> ResponseRecorder:
    """Fresh in-memory response writer."""
    return ResponseRecorder()


@pytest.fixture
def get_request() -> Request:
    """Sample GET request as the transport would build it."""
    return Request.from_target(
        "GET",
        "/api/users?page=1&limit=10",
        headers={
            "Host": "localhost:8080",
            "User-Agent": "pytest",
            "Accept": "application/json",
        },
        remote_addr="127.0.0.1:52341",
    )


@pytest.fixture
def post_request() -> Request:
    """Sample POST request with a JSON body."""
    body = b'{"name": "John", "email": "john@example.com"}'
    return Request.from_target(
        "POST",
        "/api/users",
        headers={
            "Host": "localhost:8080",
            "Content-Type": "application/json",
            "Content-Length": str(len(body)),
        },
        body=body,
        remote_addr="127.0.0.1:52342",
    )


class LiveResponse:
    """What http.client got back, read eagerly."""

    def __init__(self, response: http.client.HTTPResponse):
        self.status = response.status
        self.headers = response.headers
        self.body = response.read()

    def json(self):
        return json.loads(self.body.decode("utf-8"))


class LiveServer:
    """A started Server on an ephemeral port plus a small HTTP client."""

    def __init__(self, server: Server):
        self.server = server
        self.host = ""
        self.port = 0

    def start(self) -> "LiveServer":
        self.server.start()
        self.host, port = split_host_port(self.server.address)
        self.port = int(port)
        return self

    def connection(self, timeout: float = 5.0) -> http.client.HTTPConnection:
        return http.client.HTTPConnection(self.host, self.port, timeout=timeout)

    def request(
        self,
        method: str,
        path: str,
        body: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> LiveResponse:
        conn = self.connection()
        try:
            conn.request(method, path, body=body, headers=headers or {})
            return LiveResponse(conn.getresponse())
        finally:
            conn.close()

    def stop(self):
        self.server.shutdown(timeout=5.0)


@pytest.fixture
def live_server() -> Generator[Callable[..., LiveServer], None, None]:
    """
    Factory for running servers; everything started is shut down after
    the test.

        srv = live_server(Options(middlewares=[...]), Route("GET /x", handler))
        response = srv.request("GET", "/x")
    """
    started: List[LiveServer] = []

    def factory(options: Optional[Options] = None, *routes) -> LiveServer:
        options = options or Options()
        options.address = "127.0.0.1:0"
        live = LiveServer(Server(options, *routes)).start()
        started.append(live)
        return live

    yield factory

    for live in started:
        live.stop()
