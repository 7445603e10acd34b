"""Minimal procedure builder for composing middlewares around a resolver.

Mirrors how an RPC framework runs a procedure: middlewares wrap the
resolver outermost-first, and whatever the resolver raises is turned into a
structured outcome before it reaches the middlewares.

    get_user = (
        Procedure("user.get", ProcedureType.QUERY)
        .use(create_monitoring_middleware(logger=log))
        .resolve(load_user)
    )
    outcome = await get_user({"db": db}, {"id": 1})
"""

import inspect
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Protocol

from rpcwatch.errors import ErrorCode, ProcedureError
from rpcwatch.outcome import HandledFailure, ProcedureOutcome, ProcedureType, Success

Resolver = Callable[[dict[str, Any], Any], Any]


class Middleware(Protocol):
    """Callable accepted by ``Procedure.use``."""

    def __call__(
        self,
        *,
        path: str,
        type: ProcedureType | str,
        next: Callable[[dict[str, Any]], Awaitable[ProcedureOutcome]],
        ctx: Mapping[str, Any] | None = None,
        input: Any = None,
    ) -> Awaitable[ProcedureOutcome]: ...


class Procedure:
    """Immutable procedure definition: path, type and middleware chain."""

    def __init__(
        self,
        path: str,
        type: ProcedureType | str,
        middlewares: tuple[Middleware, ...] = (),
    ) -> None:
        self.path = path
        self.type = ProcedureType(type)
        self.middlewares = middlewares

    def use(self, middleware: Middleware) -> "Procedure":
        """Return a new procedure with ``middleware`` appended to the chain."""
        return Procedure(self.path, self.type, (*self.middlewares, middleware))

    def resolve(self, resolver: Resolver) -> Callable[..., Awaitable[ProcedureOutcome]]:
        """Bind a resolver and return the callable procedure.

        The resolver receives ``(ctx, input)`` and may be sync or async.
        """

        async def call(ctx: Mapping[str, Any] | None = None, input: Any = None) -> ProcedureOutcome:
            return await self._run(0, dict(ctx or {}), input, resolver)

        call.__name__ = getattr(resolver, "__name__", "procedure")
        call.__qualname__ = call.__name__
        return call

    async def _run(
        self,
        index: int,
        ctx: dict[str, Any],
        input: Any,
        resolver: Resolver,
    ) -> ProcedureOutcome:
        if index == len(self.middlewares):
            return await _invoke_resolver(resolver, ctx, input)

        async def next_(next_ctx: dict[str, Any]) -> ProcedureOutcome:
            return await self._run(index + 1, {**ctx, **next_ctx}, input, resolver)

        return await self.middlewares[index](
            path=self.path,
            type=self.type,
            next=next_,
            ctx=ctx,
            input=input,
        )

    def __repr__(self) -> str:
        return f"Procedure(path={self.path!r}, type={self.type.value!r}, middlewares={len(self.middlewares)})"


async def _invoke_resolver(resolver: Resolver, ctx: dict[str, Any], input: Any) -> ProcedureOutcome:
    """Run the resolver and convert its result or error into an outcome."""
    try:
        result = resolver(ctx, input)
        if inspect.isawaitable(result):
            result = await result
    except ProcedureError as exc:
        return HandledFailure(exc)
    except Exception as exc:
        return HandledFailure(
            ProcedureError(ErrorCode.INTERNAL_SERVER_ERROR, str(exc) or type(exc).__name__, cause=exc)
        )
    return Success(result)
