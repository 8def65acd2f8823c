"""Socket-level transport: connection threads, timeouts, graceful drain."""

from .transport import ConnectionTracker, ConnectionWriter, TransportServer

__all__ = ["ConnectionTracker", "ConnectionWriter", "TransportServer"]
