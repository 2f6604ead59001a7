import io
import json
import os

import pytest

from microcore import log
from microcore.log import LogOption, Logger, context_fields, new_logger
from microcore.metadata import MD, Context, new_incoming_context, new_outgoing_context


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


def test_context_fields_prefers_outgoing_metadata():
    ctx = new_incoming_context(Context(), MD.pairs("request_id", "in"))
    ctx = new_outgoing_context(ctx, MD.pairs("request_id", "out"))
    assert context_fields(ctx) == {"request_id": "out"}


def test_context_fields_from_incoming_and_value():
    ctx = new_incoming_context(Context(), MD.pairs("request_id", "in"))
    assert context_fields(ctx) == {"request_id": "in"}
    assert context_fields(Context().with_value("request_id", "rid")) == {"request_id": "rid"}
    assert context_fields(None) == {"request_id": ""}


def test_new_logger_fills_defaults(tmp_path):
    option = LogOption(dir_path=str(tmp_path) + os.sep)
    logger = new_logger(option)
    assert isinstance(logger, Logger)
    assert (option.max_file_size, option.level, option.rotate_duration) == ("500M", "info", "1h")


def test_new_logger_returns_none_when_dir_fails(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x")
    assert new_logger(LogOption(dir_path=str(blocker) + os.sep)) is None


def test_info_written_to_file_with_request_id(log_dir):
    ctx = new_outgoing_context(Context(), MD.pairs("request_id", "abc"))
    log.info(ctx, "hello %s", "world")
    records = _records(log_dir)
    assert len(records) == 1
    assert records[0]["message"] == "hello world"
    assert records[0]["request_id"] == "abc"
    assert records[0]["level"] == "info"


def test_debug_filtered_until_level_lowered(log_dir):
    log.debug(None, "hidden")
    assert _records(log_dir) == []
    log.set_level("debug")
    log.debug(None, "shown")
    assert [r["message"] for r in _records(log_dir)] == ["shown"]


def test_unknown_level_is_ignored(log_dir):
    log.set_level("nonsense")
    log.debug(None, "hidden")
    log.warn(None, "visible")
    assert [r["level"] for r in _records(log_dir)] == ["warn"]


def test_fatal_logs_and_exits(log_dir):
    with pytest.raises(SystemExit):
        log.fatal(None, "bye")
    assert _records(log_dir)[-1]["level"] == "fatal"


def test_console_format():
    stream = io.StringIO()
    logger = Logger(stream=stream)
    logger.error(Context().with_value("request_id", "abc"), "broken")
    line = stream.getvalue()
    assert "| ERROR |" in line
    assert line.rstrip().endswith("broken request_id:abc;")


def test_get_instance_after_init(log_dir):
    instance = log.get_instance()
    instance.info(None, "via instance")
    assert [r["message"] for r in _records(log_dir)] == ["via instance"]