"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Everything a Server needs to know before it starts, in one dataclass.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m httpscaffold --address 0.0.0.0:3000              │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── HTTP_ADDRESS=0.0.0.0:3000 python -m httpscaffold           │
    │                                                                      │
    │   3. Defaults (in this dataclass)                                   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
TIMEOUTS
=============================================================================

All timeouts are in seconds. Zero or negative means "no timeout".

    read_timeout      reading one request (headers + body)
    write_timeout     sending one response
    idle_timeout      waiting for the next request on a keep-alive
                      connection; 0 falls back to read_timeout
    shutdown_timeout  graceful drain budget used by Server.run()

The shutdown budget is deliberately separate from, and normally shorter
than, the request timeouts.

=============================================================================
"""

from dataclasses import dataclass, field, replace
from typing import Optional, Sequence, Tuple
import os

from .errors import ConfigError
from .http.addr import split_host_port
from .middleware.base import Middleware


DEFAULT_SHUTDOWN_TIMEOUT = 5.0


def _timeout(value: float) -> Optional[float]:
    """Socket timeout for a configured value: None when disabled."""
    return value if value > 0 else None


@dataclass
class Options:
    """
    Server options.

    Example:
        Options(
            address="0.0.0.0:8080",
            read_timeout=5,
            write_timeout=10,
            idle_timeout=15,
            middlewares=[recover_middleware, logging_middleware],
        )

    The Server keeps its own copy, so changing an Options instance after
    constructing a Server has no effect on it.
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    address: str = "127.0.0.1:8080"
    """
    "host:port" to listen on.
    - ":8080"          all interfaces
    - "127.0.0.1:0"    localhost, OS-assigned port (tests)
    - ""               all interfaces, port 80
    """

    read_timeout: float = 0.0
    write_timeout: float = 0.0
    idle_timeout: float = 0.0

    # ─────────────────────────────────────────────────────────────────────
    # REQUEST PROCESSING
    # ─────────────────────────────────────────────────────────────────────

    middlewares: Sequence[Middleware] = field(default_factory=list)
    """Applied in order: the first entry is the outermost."""

    max_request_size: int = 10 * 1024 * 1024
    """Largest accepted request body in bytes; bigger bodies get 413."""

    # ─────────────────────────────────────────────────────────────────────
    # LIFECYCLE
    # ─────────────────────────────────────────────────────────────────────

    shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT
    """How long Server.run() waits for in-flight requests when stopping."""

    server_name: str = "httpscaffold/1.0"
    """Value of the Server response header."""

    # =========================================================================
    # DERIVED VALUES
    # =========================================================================

    def host_port(self) -> Tuple[str, int]:
        """
        Parse address into (host, port).

        Raises:
            ConfigError: If the address is malformed or the port invalid.
        """
        if not self.address:
            return "", 80

        try:
            host, port = split_host_port(self.address)
        except ValueError as e:
            raise ConfigError(f"Invalid address {self.address!r}: {e}")

        if not port:
            return host, 80

        try:
            port_number = int(port)
        except ValueError:
            raise ConfigError(f"Invalid port in address {self.address!r}")

        if not 0 <= port_number < 65536:
            raise ConfigError(f"Invalid port: {port_number}. Must be 0-65535.")

        return host, port_number

    @property
    def read_socket_timeout(self) -> Optional[float]:
        return _timeout(self.read_timeout)

    @property
    def write_socket_timeout(self) -> Optional[float]:
        return _timeout(self.write_timeout)

    @property
    def idle_socket_timeout(self) -> Optional[float]:
        """Idle timeout, falling back to read_timeout when zero."""
        if self.idle_timeout == 0:
            return self.read_socket_timeout
        return _timeout(self.idle_timeout)

    def copy(self) -> "Options":
        """Detached copy; the middleware list becomes a tuple."""
        return replace(self, middlewares=tuple(self.middlewares))

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def validate(self) -> None:
        """
        Fail fast on bad configuration.

        Raises:
            ConfigError: On the first invalid value found.
        """
        self.host_port()

        if self.shutdown_timeout <= 0:
            raise ConfigError("shutdown_timeout must be > 0")

        if self.max_request_size < 1:
            raise ConfigError("max_request_size must be >= 1")

        for middleware in self.middlewares:
            if not callable(middleware):
                raise ConfigError(f"middleware is not callable: {middleware!r}")

    @classmethod
    def from_env(cls) -> "Options":
        """
        Create options from environment variables.

            HTTP_ADDRESS           listen address (default 127.0.0.1:8080)
            HTTP_READ_TIMEOUT      seconds (default 0, no timeout)
            HTTP_WRITE_TIMEOUT     seconds (default 0)
            HTTP_IDLE_TIMEOUT      seconds (default 0)
            HTTP_SHUTDOWN_TIMEOUT  seconds (default 5)
            HTTP_MAX_REQUEST_SIZE  bytes (default 10 MiB)

        Middleware is code, not configuration: pass it separately.

        Raises:
            ConfigError: If a numeric variable does not parse.
        """
        def _number(name: str, default: str, kind=float):
            raw = os.getenv(name, default)
            try:
                return kind(raw)
            except ValueError:
                raise ConfigError(f"{name} must be a number, got {raw!r}")

        return cls(
            address=os.getenv("HTTP_ADDRESS", "127.0.0.1:8080"),
            read_timeout=_number("HTTP_READ_TIMEOUT", "0"),
            write_timeout=_number("HTTP_WRITE_TIMEOUT", "0"),
            idle_timeout=_number("HTTP_IDLE_TIMEOUT", "0"),
            shutdown_timeout=_number("HTTP_SHUTDOWN_TIMEOUT", str(DEFAULT_SHUTDOWN_TIMEOUT)),
            max_request_size=_number("HTTP_MAX_REQUEST_SIZE", str(10 * 1024 * 1024), int),
        )
