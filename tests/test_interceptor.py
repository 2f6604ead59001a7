import pytest

from microcore.interceptor import chain_interceptors, nop_interceptor, params_interceptor
from microcore.metadata import Context


def _recording(name, calls):
    def interceptor(ctx, req, handler):
        calls.append(name)
        return handler(ctx, req)

    return interceptor


def test_nop_interceptor_passes_through():
    assert nop_interceptor(Context(), 3, lambda ctx, req: req * 2) == 6


def test_chain_runs_in_order():
    calls = []

    def handler(ctx, req):
        calls.append("handler")
        return req

    chained = chain_interceptors(_recording("a", calls), _recording("b", calls))
    assert chained(Context(), "req", handler) == "req"
    assert calls == ["a", "b", "handler"]


def test_empty_chain_calls_handler():
    assert chain_interceptors()(Context(), 5, lambda ctx, req: req + 1) == 6


def test_interceptor_can_replace_context():
    def tagger(ctx, req, handler):
        return handler(ctx.with_value("tag", "t"), req)

    result = chain_interceptors(tagger)(Context(), None, lambda ctx, req: ctx.value("tag"))
    assert result == "t"


class _Request:
    def __init__(self, fail=False):
        self.fail = fail
        self.seen = None

    def set_params(self, ctx):
        if self.fail:
            raise ValueError("bad params")
        self.seen = ctx.value("p")


def test_params_interceptor_sets_params():
    req = _Request()
    ctx = Context().with_value("p", "v")
    assert params_interceptor(ctx, req, lambda c, r: r.seen) == "v"


def test_params_interceptor_error_stops_handler():
    called = []
    with pytest.raises(ValueError):
        params_interceptor(Context(), _Request(fail=True), lambda c, r: called.append(r))
    assert called == []