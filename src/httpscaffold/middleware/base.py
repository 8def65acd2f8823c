"""
=============================================================================
MIDDLEWARE CHAIN
=============================================================================

A middleware is a function from handler to handler:

    Middleware = Callable[[Handler], Handler]

It receives the next handler in the chain and returns a new handler that
does some work before and/or after calling it:

    def timing(next_handler: Handler) -> Handler:
        def handler(w: ResponseWriter, r: Request) -> None:
            start = time.perf_counter()          # before
            next_handler(w, r)                   # continue the chain
            elapsed = time.perf_counter() - start  # after
        return handler

Configuration is captured at construction time by closing over it
(see allow_cors(options)). A middleware keeps no per-request state
between requests.

=============================================================================
COMPOSITION ORDER
=============================================================================

Given [m0, m1, m2] and a terminal handler H, the chain is

    m0(m1(m2(H)))

so the FIRST listed middleware is the OUTERMOST:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        REQUEST FLOW                                 │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Request ───►  m0 (before) ───► m1 (before) ───► m2 (before) ──┐   │
    │                                                                  │   │
    │                                                              H (exec)│
    │                                                                  │   │
    │   Response ◄──  m0 (after)  ◄─── m1 (after)  ◄─── m2 (after)  ◄─┘   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

To build that, the fold runs from the END of the list backward:

    current = H
    current = m2(current)
    current = m1(current)
    current = m0(current)

The chain itself catches nothing and performs no I/O. Failure isolation
is the recovery middleware's job, which is why it goes FIRST in the list.

=============================================================================
"""

from typing import Callable, Iterable, Iterator, List
import logging

from ..http.router import Handler


logger = logging.getLogger(__name__)


Middleware = Callable[[Handler], Handler]


def middleware_name(middleware: Middleware) -> str:
    """Readable name for debug logs (functions, partials, callables)."""
    return getattr(middleware, "__name__", None) or type(middleware).__name__


def chain(middlewares: Iterable[Middleware], handler: Handler) -> Handler:
    """
    Wrap a handler with middleware, first-listed outermost.

    Args:
        middlewares: Ordered middleware list
        handler: Terminal handler (usually the router)

    Returns:
        The composed handler
    """
    current = handler
    for middleware in reversed(list(middlewares)):
        current = middleware(current)
    return current


class MiddlewarePipeline:
    """
    Ordered middleware collection; the object form of chain().

        pipeline = MiddlewarePipeline()
        pipeline.add(recover_middleware)      # outermost
        pipeline.add(logging_middleware)
        pipeline.add(allow_cors(options))     # closest to the handler

        handler = pipeline.wrap(router.handle)
    """

    def __init__(self, middlewares: Iterable[Middleware] = ()):
        self._middleware: List[Middleware] = []
        self.use(*middlewares)

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        """Append a middleware (it runs inside every one added before it)."""
        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {middleware_name(middleware)}")
        return self

    def use(self, *middlewares: Middleware) -> "MiddlewarePipeline":
        for middleware in middlewares:
            self.add(middleware)
        return self

    def wrap(self, handler: Handler) -> Handler:
        """Compose all middleware around the handler."""
        return chain(self._middleware, handler)

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self) -> Iterator[Middleware]:
        return iter(self._middleware)
