"""
=============================================================================
SERVER ERRORS
=============================================================================

Exceptions that reach the operator.

Per-request failures never show up here: they are turned into HTTP
responses and log records by the recovery middleware (or, as a last
resort, by the transport). Only startup, shutdown and configuration
problems surface to the caller of the lifecycle methods.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        ERROR TAXONOMY                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   ServerError                                                        │
    │     ├── ServerStartError      bind / accept loop failure (fatal)    │
    │     ├── ServerClosedError     server already shut down (one-shot)   │
    │     └── ShutdownTimeoutError  drain did not finish in time          │
    │                                                                      │
    │   ConfigError (ValueError)    invalid Options, raised at startup    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""


class ServerError(Exception):
    """Base class for lifecycle errors raised by the server."""


class ServerStartError(ServerError):
    """The listener could not be bound or the accept loop died."""


class ServerClosedError(ServerError):
    """
    The server has already been shut down.

    A server is one-shot: once stopped it cannot serve again.
    Build a new one instead.
    """


class ShutdownTimeoutError(ServerError):
    """
    Graceful drain did not finish within the shutdown timeout.

    The server is still considered stopped when this is raised;
    the connections that were still open have been closed forcibly.
    """

    def __init__(self, timeout: float, pending: int):
        super().__init__(
            f"shutdown timed out after {timeout:.1f}s "
            f"with {pending} request(s) still in flight"
        )
        self.timeout = timeout
        self.pending = pending


class ConfigError(ValueError):
    """Invalid server configuration."""
