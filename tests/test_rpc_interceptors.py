import json
import os

import pytest

from microcore import log
from microcore.log import LogOption
from microcore.metadata import (
    MD,
    Context,
    from_outgoing_context,
    metadata_from_context,
    new_context_from_metadata,
    new_incoming_context,
)
from microcore.rpc_interceptors import (
    LOG_LEN_LIMIT,
    get_method,
    log_cut_off,
    metadata_client_interceptor,
    metadata_server_interceptor,
    unary_client_interceptor,
    unary_server_interceptor,
)


def _records(directory):
    return [
        json.loads(line)
        for path in sorted(directory.glob("*.log"))
        for line in path.read_text(encoding="utf-8").splitlines()
    ]


@pytest.fixture
def log_dir(tmp_path):
    log.init_logger(LogOption(dir_path=str(tmp_path) + os.sep))
    return tmp_path


def test_get_method():
    assert get_method("/pkg.Greeter/SayHello") == "SayHello"
    assert get_method("plain") == "plain"


def test_log_cut_off_short_value():
    assert json.loads(log_cut_off({"a": 1})) == {"a": 1}


def test_log_cut_off_truncates():
    result = log_cut_off("x" * (LOG_LEN_LIMIT * 2))
    assert len(result) == LOG_LEN_LIMIT + 3
    assert result.endswith("...")


def test_log_cut_off_unserialisable_returned_as_is():
    value = object()
    assert log_cut_off(value) is value


def test_client_interceptor_returns_reply_and_logs(log_dir):
    reply = unary_client_interceptor()(
        Context(), "/svc.S/Echo", "ping", lambda ctx, method, req: req + "!"
    )
    assert reply == "ping!"
    records = _records(log_dir)
    assert records[-1]["level"] == "info"
    assert records[-1]["message"].startswith("method:Echo req:ping")


def test_client_interceptor_logs_error_and_reraises(log_dir):
    def invoker(ctx, method, req):
        raise RuntimeError("down")

    with pytest.raises(RuntimeError):
        unary_client_interceptor()(Context(), "/svc.S/Echo", "ping", invoker)
    assert _records(log_dir)[-1]["level"] == "error"


def test_server_interceptor_returns_response(log_dir):
    resp = unary_server_interceptor()(Context(), 2, "/svc.S/Double", lambda ctx, req: req * 2)
    assert resp == 4
    assert "method:Double" in _records(log_dir)[-1]["message"]


def test_server_interceptor_reraises_failures(log_dir):
    def handler(ctx, req):
        raise KeyError("gone")

    with pytest.raises(KeyError):
        unary_server_interceptor()(Context(), 1, "/svc.S/Fail", handler)
    assert {r["level"] for r in _records(log_dir)} == {"error"}


def test_metadata_server_interceptor_exposes_incoming():
    ctx = new_incoming_context(Context(), MD.pairs("sid-user", "u1"))
    seen = metadata_server_interceptor()(
        ctx, None, "/svc.S/M", lambda c, req: metadata_from_context(c)
    )
    assert seen == {"sid-user": ["u1"]}


def test_metadata_client_interceptor_forwards_metadata():
    ctx = new_context_from_metadata(Context(), {"sid-user": ["u1"]})
    seen = metadata_client_interceptor()(
        ctx, "/svc.S/M", None, lambda c, method, req: from_outgoing_context(c)
    )
    assert seen == {"sid-user": ["u1"]}


def test_metadata_client_interceptor_without_metadata():
    seen = metadata_client_interceptor()(
        Context(), "/svc.S/M", None, lambda c, method, req: from_outgoing_context(c)
    )
    assert seen is None