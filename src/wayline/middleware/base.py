"""
=============================================================================
MIDDLEWARE PROTOCOL AND PIPELINE
=============================================================================

A middleware is a transformation: give it the next handler and it hands
back a handler that wraps it. The pipeline applies those transformations
around each route handler, first-registered outermost:

        pipeline.add(LoggingMiddleware())     # m0, outermost
        pipeline.add(RecoveryMiddleware())    # m1
        pipeline.add(AuthMiddleware())        # m2, closest to the handler

        composed = m0(m1(m2(handler)))

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       ONION EXECUTION ORDER                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Request ──►  m0.pre ──► m1.pre ──► m2.pre ──► handler              │
    │                                                    │                 │
    │   Response ◄── m0.post ◄── m1.post ◄── m2.post ◄───┘                 │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Handlers return nothing; the response travels in the Context. "Post"
logic therefore runs after next(ctx) returns and reads ctx.response.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, Iterator, List, Optional, Union
import logging

from ..exceptions import LifecycleError
from ..http.context import Context
from ..http.router import Handler


logger = logging.getLogger(__name__)


# The next handler in the chain. Call it to continue processing.
NextHandler = Handler

MiddlewareFunc = Callable[[Context, NextHandler], None]


class Middleware(ABC):
    """
    Abstract base class for middleware.

        class Timing(Middleware):
            def __call__(self, ctx, next):
                started = time.perf_counter()     # pre
                next(ctx)                         # continue
                if ctx.response is not None:      # post
                    ctx.response.set_header("X-Elapsed", ...)

    Not calling ``next`` short-circuits the chain; the middleware must then
    write a response itself.
    """

    @abstractmethod
    def __call__(self, ctx: Context, next: NextHandler) -> None:
        """Process ``ctx``, calling ``next(ctx)`` to continue the chain."""

    def wrap(self, next_handler: NextHandler) -> Handler:
        """Return a handler that runs this middleware around ``next_handler``."""
        def wrapped(ctx: Context) -> None:
            self(ctx, next_handler)

        return wrapped

    @property
    def name(self) -> str:
        return self.__class__.__name__


class FunctionMiddleware(Middleware):
    """
    Adapts a plain ``(ctx, next)`` function to the Middleware interface.

        def add_header(ctx, next):
            next(ctx)
            if ctx.response is not None:
                ctx.response.set_header("X-Custom", "value")

        server.use(add_header)   # wrapped automatically
    """

    def __init__(self, func: MiddlewareFunc, name: Optional[str] = None):
        self._func = func
        self._name = name or getattr(func, "__name__", type(func).__name__)

    def __call__(self, ctx: Context, next: NextHandler) -> None:
        self._func(ctx, next)

    @property
    def name(self) -> str:
        return self._name


def function_middleware(func: MiddlewareFunc) -> FunctionMiddleware:
    """Decorator form of FunctionMiddleware."""
    return FunctionMiddleware(func)


class MiddlewarePipeline:
    """
    Ordered middleware list that wraps handlers.

    Position 0 is always the outermost layer, however many middleware are
    added after it. The list is append-only and is frozen when the server
    starts.
    """

    def __init__(self):
        self._middleware: List[Middleware] = []
        self._frozen = False

    def add(self, middleware: Union[Middleware, MiddlewareFunc]) -> "MiddlewarePipeline":
        """
        Append middleware (innermost so far).

        Plain callables are wrapped in FunctionMiddleware.

        Raises:
            LifecycleError: If the pipeline has been frozen.
        """
        if self._frozen:
            raise LifecycleError("Cannot add middleware: the server has already started")

        if not isinstance(middleware, Middleware):
            if not callable(middleware):
                raise TypeError(f"Middleware must be callable, got {middleware!r}")
            middleware = FunctionMiddleware(middleware)

        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {middleware.name}")
        return self

    def use(self, *middleware: Union[Middleware, MiddlewareFunc]) -> "MiddlewarePipeline":
        for mw in middleware:
            self.add(mw)
        return self

    def wrap(self, handler: Handler) -> Handler:
        """
        Compose every middleware around ``handler``.

        Given [m0, m1, m2]:

            current = handler
            current = m2.wrap(current)
            current = m1.wrap(current)
            current = m0.wrap(current)    → m0(m1(m2(handler)))

        Wrapping in reverse makes the first-added middleware outermost.
        """
        current = handler
        for middleware in reversed(self._middleware):
            current = middleware.wrap(current)
        return current

    def freeze(self) -> None:
        self._frozen = True

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self) -> Iterator[Middleware]:
        return iter(self._middleware)
