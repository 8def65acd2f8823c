"""
=============================================================================
URL ROUTER
=============================================================================

Maps route patterns to handlers and dispatches each request to the most
specific match.

=============================================================================
PATTERN SYNTAX
=============================================================================

    "[METHOD ]/path"

    ┌──────────────────────┬───────────────────────────────────────────────┐
    │  Pattern             │  Matches                                      │
    ├──────────────────────┼───────────────────────────────────────────────┤
    │  /users              │  /users (any method)                          │
    │  GET /health         │  GET /health (and HEAD /health)               │
    │  /users/:id          │  /users/42         → {"id": "42"}             │
    │  /static/*filepath   │  /static/css/a.css → {"filepath": "css/a.css"}│
    │  /docs/              │  /docs/ and everything below it (subtree)     │
    │  /                   │  everything (catch-all)                       │
    └──────────────────────┴───────────────────────────────────────────────┘

=============================================================================
CONFLICT RESOLUTION
=============================================================================

1. Registering the SAME pattern twice replaces the first handler
   (later registration wins). This is how caller routes override the
   server's built-in "/" catch-all.

2. When several DIFFERENT patterns match a request, the most specific
   one is used:

       exact path  >  subtree ("/docs/", "/")
       more literal characters  >  fewer
       method-specific  >  any method
       later registration  >  earlier   (tie-break)

   So with "/" and "GET /health" registered, GET /health reaches the
   health handler and GET /anything-else falls to "/".

3. No match at all:
       path matches under another method  →  405 + Allow header
       path matches nothing               →  404 envelope

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set, Tuple
import itertools
import re

from . import envelope
from .request import Request
from .writer import ResponseWriter


# Handler: the signature every route handler and every middleware-wrapped
# handler follows.
Handler = Callable[[ResponseWriter, Request], None]

HTTP_METHODS = ("GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "CONNECT", "TRACE")


@dataclass(frozen=True)
class Route:
    """
    A pattern bound to a handler.

        Route("GET /ping", ping)
        Route("/", not_found_handler)
    """

    pattern: str
    handler: Handler


@dataclass
class _CompiledRoute:
    method: Optional[str]
    path: str
    handler: Handler
    seq: int
    subtree: bool = False
    literal_length: int = 0
    _regex: Optional[re.Pattern] = field(default=None, repr=False)

    def specificity(self) -> Tuple[int, int, int, int]:
        return (
            0 if self.subtree else 1,
            self.literal_length,
            1 if self.method else 0,
            self.seq,
        )

    def allows(self, method: str) -> bool:
        if self.method is None or self.method == method:
            return True
        return method == "HEAD" and self.method == "GET"


@dataclass
class RouteMatch:
    """The route that won, plus the path parameters it captured."""

    route: _CompiledRoute
    params: Dict[str, str]


def parse_pattern(pattern: str) -> Tuple[Optional[str], str]:
    """
    Split "GET /path" into ("GET", "/path"); "/path" gives (None, "/path").

    Raises:
        ValueError: For an empty pattern, an unknown method, or a path
                    that does not start with "/".
    """
    pattern = pattern.strip()
    method: Optional[str] = None
    path = pattern

    if " " in pattern:
        method, _, path = pattern.partition(" ")
        method = method.upper()
        path = path.strip()
        if method not in HTTP_METHODS:
            raise ValueError(f"invalid method {method!r} in pattern {pattern!r}")

    if not path.startswith("/"):
        raise ValueError(f"pattern path must start with '/': {pattern!r}")

    return method, path


def _param_name(name: str, path: str, seen: Set[str]) -> str:
    if not name.isidentifier():
        raise ValueError(f"invalid parameter name {name!r} in path {path!r}")
    if name in seen:
        raise ValueError(f"duplicate parameter name {name!r} in path {path!r}")
    seen.add(name)
    return name


def _compile_path(path: str) -> Tuple[re.Pattern, bool, int]:
    """
    Compile a pattern path into (regex, is_subtree, literal_length).

        /users/:id/posts  →  ^/users/(?P<id>[^/]+)/posts$
        /static/*rest     →  ^/static/(?P<rest>.*)$
        /docs/            →  ^/docs/          (prefix match)
    """
    subtree = path.endswith("/")
    regex_parts = ["^"]
    literal_length = 0
    wildcard = False
    seen: Set[str] = set()

    for segment in path.split("/"):
        if not segment:
            continue

        regex_parts.append("/")
        literal_length += 1

        if segment.startswith(":"):
            name = _param_name(segment[1:], path, seen)
            regex_parts.append(f"(?P<{name}>[^/]+)")
        elif segment.startswith("*"):
            name = _param_name(segment[1:] or "wildcard", path, seen)
            regex_parts.append(f"(?P<{name}>.*)")
            wildcard = True
            break
        else:
            regex_parts.append(re.escape(segment))
            literal_length += len(segment)

    if subtree and not wildcard:
        regex_parts.append("/")
        literal_length += 1
    else:
        regex_parts.append("$")

    return re.compile("".join(regex_parts)), subtree and not wildcard, literal_length


class Router:
    """
    Pattern → handler dispatcher.

    Usage:
        router = Router()
        router.add_route("GET /health", health_check)
        router.add_route("/", not_found_handler)

        @router.post("/users")
        def create_user(w, r):
            envelope.ok(w, {"id": 1})

        router.handle(writer, request)
    """

    def __init__(self):
        self._routes: Dict[Tuple[Optional[str], str], _CompiledRoute] = {}
        self._seq = itertools.count()

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    def add_route(self, pattern: str, handler: Handler, method: Optional[str] = None) -> Route:
        """
        Register a handler for a pattern.

        Args:
            pattern: "[METHOD ]/path"
            handler: Callable taking (writer, request)
            method: Alternative to putting the method in the pattern

        Returns:
            The registered Route. Re-registering an identical pattern
            replaces the previous handler.

        Raises:
            ValueError: For a malformed pattern or a parameter name that is
                        not an identifier or appears twice.
        """
        if method:
            pattern = f"{method.upper()} {pattern}"

        route_method, path = parse_pattern(pattern)
        regex, subtree, literal_length = _compile_path(path)

        self._routes[(route_method, path)] = _CompiledRoute(
            method=route_method,
            path=path,
            handler=handler,
            seq=next(self._seq),
            subtree=subtree,
            literal_length=literal_length,
            _regex=regex,
        )
        return Route(pattern=pattern, handler=handler)

    def route(self, pattern: str, method: Optional[str] = None) -> Callable[[Handler], Handler]:
        """Decorator form of add_route."""
        def decorator(handler: Handler) -> Handler:
            self.add_route(pattern, handler, method)
            return handler
        return decorator

    def get(self, path: str) -> Callable[[Handler], Handler]:
        return self.route(path, "GET")

    def post(self, path: str) -> Callable[[Handler], Handler]:
        return self.route(path, "POST")

    def put(self, path: str) -> Callable[[Handler], Handler]:
        return self.route(path, "PUT")

    def patch(self, path: str) -> Callable[[Handler], Handler]:
        return self.route(path, "PATCH")

    def delete(self, path: str) -> Callable[[Handler], Handler]:
        return self.route(path, "DELETE")

    # =========================================================================
    # MATCHING
    # =========================================================================

    def match(self, method: str, path: str) -> Optional[RouteMatch]:
        """Most specific route for (method, path), or None."""
        method = method.upper()
        best: Optional[RouteMatch] = None

        for route in self._routes.values():
            if not route.allows(method):
                continue
            m = route._regex.match(path)
            if not m:
                continue
            if best is None or route.specificity() > best.route.specificity():
                best = RouteMatch(route=route, params=m.groupdict())

        return best

    def get_allowed_methods(self, path: str) -> List[str]:
        """Methods registered for patterns matching this path (for 405 Allow)."""
        methods = set()
        for route in self._routes.values():
            if route._regex.match(path):
                if route.method is None:
                    return list(HTTP_METHODS)
                methods.add(route.method)
                if route.method == "GET":
                    methods.add("HEAD")
        return sorted(methods)

    def handle(self, w: ResponseWriter, request: Request) -> None:
        """Dispatch a request. Usable directly as a Handler."""
        match = self.match(request.method, request.path)

        if match:
            request.path_params = match.params
            match.route.handler(w, request)
            return

        allowed = self.get_allowed_methods(request.path)
        if allowed:
            envelope.method_not_allowed(w, allowed)
            return

        envelope.not_found(w)

    __call__ = handle

    def routes(self) -> List[Route]:
        """Registered routes in registration order."""
        ordered = sorted(self._routes.values(), key=lambda r: r.seq)
        return [
            Route(pattern=f"{r.method} {r.path}" if r.method else r.path, handler=r.handler)
            for r in ordered
        ]
