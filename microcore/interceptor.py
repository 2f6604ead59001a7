"""Chainable request interceptors for HTTP handlers."""

from __future__ import annotations

from functools import partial
from typing import Any, Callable

from microcore.metadata import Context

Handler = Callable[[Context, Any], Any]
Interceptor = Callable[[Context, Any, Handler], Any]


def nop_interceptor(ctx: Context, req: Any, handler: Handler) -> Any:
    """Call ``handler`` unchanged."""
    return handler(ctx, req)


def params_interceptor(ctx: Context, req: Any, handler: Handler) -> Any:
    """Let a request with ``set_params(ctx)`` fill itself before ``handler`` runs."""
    set_params = getattr(req, "set_params", None)
    if callable(set_params):
        set_params(ctx)
    return handler(ctx, req)


def chain_interceptors(*args: Interceptor) -> Interceptor:
    """Combine interceptors so the first given runs outermost."""
    interceptors = tuple(args)

    def chained(ctx: Context, req: Any, handler: Handler) -> Any:
        chain = handler
        for current in reversed(interceptors):
            chain = partial(_invoke, current, chain)
        return chain(ctx, req)

    return chained


def _invoke(current: Interceptor, nxt: Handler, ctx: Context, req: Any) -> Any:
    return current(ctx, req, nxt)