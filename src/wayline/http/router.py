"""
=============================================================================
ROUTE TABLE
=============================================================================

Maps an exact (method, path) pair to one handler.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        ROUTE TABLE                                  │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Incoming: GET /users                                               │
    │        │                                                             │
    │        ▼                                                             │
    │   ┌──────────────────────────────────────────────┐                  │
    │   │ ("GET",  "/health") → health                 │                  │
    │   │ ("GET",  "/users")  → list_users   ← MATCH   │                  │
    │   │ ("POST", "/users")  → create_user            │                  │
    │   └──────────────────────────────────────────────┘                  │
    │                                                                      │
    │   GET /users/   → no match (no trailing-slash folding)               │
    │   PUT /users    → no match (method is part of the key)               │
    │   GET /users/42 → no match (no parameters, no wildcards)             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Lookup is a single dict access, so route order never matters. Registering
the same key again replaces the previous handler: the last registration
wins.

=============================================================================
REGISTRATION WINDOW
=============================================================================

The table is only writable before the server starts. HTTPServer.start()
calls freeze(); from then on add_route() raises LifecycleError. Because
the table never changes while requests are being served, worker threads
read it without locking.

=============================================================================
"""

from typing import Callable, Dict, Iterator, Optional, TYPE_CHECKING
import logging

from ..exceptions import LifecycleError

if TYPE_CHECKING:
    from .context import Context


logger = logging.getLogger(__name__)


# A handler receives the request Context and writes its response through it.
Handler = Callable[["Context"], None]

# (method, pattern), e.g. ("GET", "/health")
RouteKey = tuple[str, str]


class Router:
    """
    Exact-match route table.

    Usage:

        router = Router()
        router.add_route("PUT", "/items", put_item)

        router.get("/health", health)       # direct

        @router.post("/items")              # decorator
        def create_item(ctx):
            ...

        handler = router.lookup("GET", "/health")
    """

    def __init__(self):
        self._routes: Dict[RouteKey, Handler] = {}
        self._frozen = False

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    def add_route(self, method: str, pattern: str, handler: Handler) -> RouteKey:
        """
        Register ``handler`` under ``(method, pattern)``.

        Both strings are stored exactly as given. An existing handler for
        the same key is replaced.

        Raises:
            LifecycleError: If the table has been frozen.
        """
        if self._frozen:
            raise LifecycleError(
                f"Cannot register {method} {pattern}: routes are frozen once the server starts"
            )

        key = (method, pattern)
        if key in self._routes:
            logger.debug(f"Replacing handler for {method} {pattern}")
        self._routes[key] = handler
        return key

    def route(self, method: str, pattern: str, handler: Optional[Handler] = None):
        """
        Register a handler, or return a decorator that does.

            router.route("DELETE", "/items", delete_item)

            @router.route("DELETE", "/items")
            def delete_item(ctx): ...
        """
        if handler is not None:
            self.add_route(method, pattern, handler)
            return handler

        def decorator(func: Handler) -> Handler:
            self.add_route(method, pattern, func)
            return func
        return decorator

    def get(self, pattern: str, handler: Optional[Handler] = None):
        """Register a GET route."""
        return self.route("GET", pattern, handler)

    def post(self, pattern: str, handler: Optional[Handler] = None):
        """Register a POST route."""
        return self.route("POST", pattern, handler)

    def freeze(self) -> None:
        """Reject further registrations."""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    # =========================================================================
    # LOOKUP
    # =========================================================================

    def lookup(self, method: str, path: str) -> Optional[Handler]:
        """Handler registered for exactly ``(method, path)``, or None."""
        return self._routes.get((method, path))

    def routes(self) -> list[RouteKey]:
        """Registered keys in registration order."""
        return list(self._routes)

    def items(self) -> Iterator[tuple[RouteKey, Handler]]:
        return iter(list(self._routes.items()))

    def __len__(self) -> int:
        return len(self._routes)

    def __contains__(self, key: object) -> bool:
        return key in self._routes
