"""
=============================================================================
MIDDLEWARE
=============================================================================

Cross-cutting request processing, composed around the router.

    recover_middleware   exceptions → 500 envelope + error log
    logging_middleware   one access record per request
    allow_cors(options)  CORS headers + preflight short-circuit
    allow_any_cors       permissive CORS for development

Recommended order (first = outermost):

    Options(middlewares=[
        recover_middleware,
        logging_middleware,
        allow_cors(CorsOptions(allowed_origin="http://localhost:3000")),
    ])

=============================================================================
"""

from .base import Middleware, MiddlewarePipeline, chain
from .cors import CorsOptions, allow_any_cors, allow_cors, validate_cors_origin
from .logging import InstrumentedResponseWriter, logging_middleware
from .recovery import recover_middleware

__all__ = [
    # Composition
    "Middleware",
    "MiddlewarePipeline",
    "chain",

    # Built-in middleware
    "CorsOptions",
    "allow_cors",
    "allow_any_cors",
    "validate_cors_origin",
    "InstrumentedResponseWriter",
    "logging_middleware",
    "recover_middleware",
]
