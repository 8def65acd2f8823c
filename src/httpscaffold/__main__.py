"""
=============================================================================
HTTPSCAFFOLD CLI ENTRY POINT
=============================================================================

Runs a demo server with the recommended middleware stack.

=============================================================================
USAGE
=============================================================================

    # Defaults (127.0.0.1:8080, or HTTP_ADDRESS / HTTP_* from the environment)
    python -m httpscaffold

    # Listen on all interfaces (for containers)
    python -m httpscaffold --address 0.0.0.0:8080

    # Allow a browser app on another origin
    python -m httpscaffold --cors-origin http://localhost:3000

    # JSON logs for a log shipper
    python -m httpscaffold --log-format json

Routes:

    GET /health   200 {"status": "healthy"}
    GET /ping     200 "pong"
    GET /panic    raises; recovery answers 500 and the server keeps going
    anything else 404 "Resource not found"

Ctrl+C (SIGINT) or SIGTERM stops the server gracefully.

=============================================================================
"""

import argparse
import logging
import sys

from .config import Options
from .errors import ConfigError, ServerError
from .http import envelope
from .http.request import Request
from .http.router import Route
from .http.writer import ResponseWriter
from .log import setup_logging
from .middleware import CorsOptions, allow_cors, logging_middleware, recover_middleware
from .server import new, signal_event


logger = logging.getLogger("httpscaffold.cli")


def ping(w: ResponseWriter, r: Request) -> None:
    envelope.ok(w, "pong")


def panic(w: ResponseWriter, r: Request) -> None:
    raise RuntimeError("panic route called")


def build_parser() -> argparse.ArgumentParser:
    defaults = Options.from_env()
    cors_defaults = CorsOptions.from_env()

    parser = argparse.ArgumentParser(
        prog="httpscaffold",
        description="Demo HTTP server with CORS, access logging and panic recovery",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m httpscaffold                                   # Run with defaults
  python -m httpscaffold --address 0.0.0.0:3000            # All interfaces
  python -m httpscaffold --cors-origin http://localhost:3000
  python -m httpscaffold --log-level DEBUG --log-format json
        """,
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--address", "-a",
        default=defaults.address,
        help=f"host:port to listen on (default: {defaults.address})",
    )
    parser.add_argument("--read-timeout", type=float, default=defaults.read_timeout,
                        help="Seconds to read a request, 0 = none")
    parser.add_argument("--write-timeout", type=float, default=defaults.write_timeout,
                        help="Seconds to write a response, 0 = none")
    parser.add_argument("--idle-timeout", type=float, default=defaults.idle_timeout,
                        help="Keep-alive idle seconds, 0 = use read timeout")
    parser.add_argument("--shutdown-timeout", type=float, default=defaults.shutdown_timeout,
                        help=f"Graceful drain seconds (default: {defaults.shutdown_timeout:g})")

    # ─────────────────────────────────────────────────────────────────────
    # CORS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--cors-origin",
        default=cors_defaults.allowed_origin,
        help="Allowed CORS origin, e.g. http://localhost:3000 or *",
    )

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default="text",
        help="Log output format (default: text)",
    )

    return parser


def main(argv=None) -> int:
    try:
        parser = build_parser()
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    args = parser.parse_args(argv)
    setup_logging(args.log_level, args.log_format)

    cors = CorsOptions.from_env()
    cors = CorsOptions(
        allowed_origin=args.cors_origin,
        allowed_methods=cors.allowed_methods,
        allowed_headers=cors.allowed_headers,
    )
    if not cors.validate():
        logger.warning(f"Invalid CORS origin {args.cors_origin!r}, Access-Control-Allow-Origin disabled")

    options = Options(
        address=args.address,
        read_timeout=args.read_timeout,
        write_timeout=args.write_timeout,
        idle_timeout=args.idle_timeout,
        shutdown_timeout=args.shutdown_timeout,
        middlewares=[recover_middleware, logging_middleware, allow_cors(cors)],
    )

    try:
        server = new(options, Route("GET /ping", ping), Route("GET /panic", panic))
        server.run(signal_event())
    except (ConfigError, ServerError) as e:
        logger.error(f"Server error: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
