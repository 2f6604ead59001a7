"""Logging and metadata interceptors for unary RPC calls."""

from __future__ import annotations

import time
import traceback
from typing import Any, Callable

from microcore import log
from microcore.metadata import (
    MD,
    Context,
    Metadata,
    from_incoming_context,
    metadata_from_context,
    new_context_from_metadata,
    new_outgoing_context,
)
from microcore.utils import must_string

LOG_LEN_LIMIT = 3072

Invoker = Callable[[Context, str, Any], Any]
ClientInterceptor = Callable[[Context, str, Any, Invoker], Any]
Handler = Callable[[Context, Any], Any]
ServerInterceptor = Callable[[Context, Any, str, Handler], Any]

_LINE = "method:%s req:%s reply:%s err:%s elapsed:%s"


def get_method(method: str) -> str:
    """Return the last path segment of a full method name."""
    return method.split("/")[-1]


def log_cut_off(reply: Any) -> Any:
    """Render ``reply`` as JSON cut to the log length limit; return it as is if it cannot be."""
    try:
        text = must_string(reply)
    except (TypeError, ValueError):
        return reply
    if len(text) > LOG_LEN_LIMIT:
        text = text[:LOG_LEN_LIMIT] + "..."
    return text


def _elapsed(start: float) -> str:
    return f"{time.perf_counter() - start:.6f}s"


def unary_client_interceptor() -> ClientInterceptor:
    """Log every outgoing call with its request, reply and duration."""

    def interceptor(ctx: Context, method: str, req: Any, invoker: Invoker) -> Any:
        start = time.perf_counter()
        try:
            reply = invoker(ctx, method, req)
        except Exception as err:
            log.error(ctx, _LINE, get_method(method), req, None, err, _elapsed(start))
            raise
        log.info(ctx, _LINE, get_method(method), req, log_cut_off(reply), None, _elapsed(start))
        return reply

    return interceptor


def unary_server_interceptor() -> ServerInterceptor:
    """Log every handled call; failures are logged with their stack and re-raised."""

    def interceptor(ctx: Context, req: Any, full_method: str, handler: Handler) -> Any:
        start = time.perf_counter()
        try:
            resp = handler(ctx, req)
        except Exception as err:
            log.error(ctx, _LINE, get_method(full_method), req, None, err, _elapsed(start))
            log.error(ctx, "err: %s, req: %s stack info %s", err, req, traceback.format_exc())
            raise
        log.info(ctx, _LINE, get_method(full_method), req, resp, None, _elapsed(start))
        return resp

    return interceptor


def metadata_client_interceptor() -> ClientInterceptor:
    """Forward HTTP metadata found in the context as outgoing RPC metadata."""

    def interceptor(ctx: Context, method: str, req: Any, invoker: Invoker) -> Any:
        md = metadata_from_context(ctx)
        if md is not None:
            ctx = new_outgoing_context(ctx, MD(md))
        return invoker(ctx, method, req)

    return interceptor


def metadata_server_interceptor() -> ServerInterceptor:
    """Expose incoming RPC metadata to handlers as HTTP metadata."""

    def interceptor(ctx: Context, req: Any, full_method: str, handler: Handler) -> Any:
        md = from_incoming_context(ctx)
        if md is not None:
            ctx = new_context_from_metadata(ctx, Metadata(md))
        return handler(ctx, req)

    return interceptor