"""
Procedure Pipeline

Composes middleware around RPC-style handlers.

A middleware is an async callable ``(call, next_) -> Result``. It may:
- return early (e.g. a cache hit) without calling ``next_``
- call ``next_`` with a new Call carrying an augmented input
- inspect the Result on the way out (cache writes, purges)

Results are tagged: Hit (served from the application cache), Miss
(computed by the handler) or Failure (the handler raised).

Usage:
    public = ProcedureBuilder().use(apply_user_preferences(source))

    @public.use(cache_it(ttl=60)).query("image.getInfinite")
    async def get_infinite(input, ctx):
        ...

    result = await get_infinite.run({"limit": 20}, ctx)
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, ClassVar, Dict, Mapping, Optional, Sequence, Union

from pipecache.context import ExecutionContext


logger = logging.getLogger(__name__)


# =============================================================================
# Results
# =============================================================================

@dataclass(frozen=True)
class Hit:
    """Payload served from the application cache."""
    data: Any
    ok: ClassVar[bool] = True


@dataclass(frozen=True)
class Miss:
    """Payload computed by the handler."""
    data: Any
    ok: ClassVar[bool] = True


@dataclass(frozen=True)
class Failure:
    """The handler (or a middleware) raised."""
    error: Exception
    ok: ClassVar[bool] = False


Result = Union[Hit, Miss, Failure]


# =============================================================================
# Calls
# =============================================================================

@dataclass(frozen=True)
class Call:
    """One procedure invocation as seen by middleware."""
    path: str
    input: Mapping[str, Any] = field(default_factory=dict)
    ctx: ExecutionContext = field(default_factory=ExecutionContext)

    def with_input(self, **changes: Any) -> "Call":
        """Copy of this call with fields added to or replaced in the input."""
        return replace(self, input={**self.input, **changes})


Next = Callable[[Call], Awaitable[Result]]
Middleware = Callable[[Call, Next], Awaitable[Result]]
Handler = Callable[[Dict[str, Any], ExecutionContext], Awaitable[Any]]


class Procedure:
    """A handler wrapped in an ordered middleware chain."""

    def __init__(
        self,
        path: str,
        handler: Handler,
        middlewares: Sequence[Middleware] = (),
        mutation: bool = False,
    ):
        self.path = path
        self.handler = handler
        self.middlewares = tuple(middlewares)
        self.mutation = mutation

    async def _invoke(self, call: Call) -> Result:
        try:
            data = await self.handler(dict(call.input), call.ctx)
        except Exception as e:
            logger.debug(f"Procedure {self.path} failed: {e!r}")
            return Failure(e)
        return Miss(data)

    async def _dispatch(self, index: int, call: Call) -> Result:
        if index == len(self.middlewares):
            return await self._invoke(call)

        async def next_(next_call: Call) -> Result:
            return await self._dispatch(index + 1, next_call)

        return await self.middlewares[index](call, next_)

    async def run(
        self,
        input: Optional[Mapping[str, Any]] = None,
        ctx: Optional[ExecutionContext] = None,
    ) -> Result:
        """
        Run the chain and return a tagged Result.

        Never raises for handler or middleware errors; they come back as
        Failure. Cancellation still propagates.
        """
        call = Call(path=self.path, input=dict(input or {}), ctx=ctx or ExecutionContext())
        try:
            return await self._dispatch(0, call)
        except Exception as e:
            logger.warning(f"Middleware error in {self.path}: {e!r}")
            return Failure(e)

    async def __call__(
        self,
        input: Optional[Mapping[str, Any]] = None,
        ctx: Optional[ExecutionContext] = None,
    ) -> Any:
        """Run the chain and unwrap: return the payload or raise the error."""
        result = await self.run(input, ctx)
        if isinstance(result, Failure):
            raise result.error
        return result.data

    def __repr__(self) -> str:
        kind = "mutation" if self.mutation else "query"
        return f"<Procedure {kind} {self.path} middlewares={len(self.middlewares)}>"


class ProcedureBuilder:
    """Accumulates middleware, then binds it to handlers."""

    def __init__(self, middlewares: Sequence[Middleware] = ()):
        self.middlewares = tuple(middlewares)

    def use(self, middleware: Middleware) -> "ProcedureBuilder":
        """New builder with `middleware` appended (runs after existing ones)."""
        return ProcedureBuilder(self.middlewares + (middleware,))

    def query(self, path: str) -> Callable[[Handler], Procedure]:
        def decorator(handler: Handler) -> Procedure:
            return Procedure(path, handler, self.middlewares)
        return decorator

    def mutation(self, path: str) -> Callable[[Handler], Procedure]:
        def decorator(handler: Handler) -> Procedure:
            return Procedure(path, handler, self.middlewares, mutation=True)
        return decorator
