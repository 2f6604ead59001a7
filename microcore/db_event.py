"""SQL event receiver that logs slow and failed statements."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

from microcore import log

UNIT_TEST_MOD = "ut"
RELEASE_MOD = "release"


def _millis(nanoseconds: int) -> int:
    whole = abs(nanoseconds) // 1_000_000
    return -whole if nanoseconds < 0 else whole


def _fraction(value: int, unit: int) -> str:
    whole, rest = divmod(value, unit)
    if not rest:
        return str(whole)
    digits = str(rest).rjust(len(str(unit)) - 1, "0").rstrip("0")
    return f"{whole}.{digits}"


def _format_duration(nanoseconds: int) -> str:
    if nanoseconds == 0:
        return "0s"
    sign = "-" if nanoseconds < 0 else ""
    value = abs(nanoseconds)
    if value < 1_000:
        return f"{sign}{value}ns"
    if value < 1_000_000:
        return f"{sign}{_fraction(value, 1_000)}µs"
    if value < 1_000_000_000:
        return f"{sign}{_fraction(value, 1_000_000)}ms"
    hours, rest = divmod(value, 3_600_000_000_000)
    minutes, rest = divmod(rest, 60_000_000_000)
    out = sign
    if hours:
        out += f"{hours}h"
    if hours or minutes:
        out += f"{minutes}m"
    return out + f"{_fraction(rest, 1_000_000_000)}s"


@dataclass
class SQLEventReceiver:
    """Receives database events and logs them; slow statements above a threshold in ms."""

    cost_threshold: int
    log_length: int
    mod: str = RELEASE_MOD
    dbname: str = ""

    def event(self, event_name: str) -> None:
        """Log a plain event."""
        log.info(None, "DB Event name %s", event_name)

    def event_kv(self, event_name: str, kvs: Mapping[str, str]) -> None:
        """Log an event with key/value data."""
        log.info(None, "DB EventKv name %s kv %s", event_name, dict(kvs))

    def event_err(self, event_name: str, err: BaseException) -> BaseException:
        """Log an error and hand it back."""
        log.error(None, "DB EventErr name:%s err:%s", event_name, err)
        return err

    def event_err_kv(
        self, event_name: str, err: BaseException | None, kvs: Mapping[str, str]
    ) -> BaseException | None:
        """Log an error with key/value data; duplicate-entry errors are only warnings."""
        if err is not None and "Duplicate entry" in str(err):
            log.warn(None, "DB EventErr name:%s err:%s kvs:%s", event_name, err, dict(kvs))
        else:
            log.error(None, "DB EventErr name:%s err:%s kvs:%s", event_name, err, dict(kvs))
        return err

    def timing(self, event_name: str, nanoseconds: int) -> None:
        """Log the duration of an event if it exceeds the cost threshold."""
        if _millis(nanoseconds) > self.cost_threshold:
            log.info(
                None, "DB Timing name:%s cost:%s", event_name, _format_duration(nanoseconds)
            )

    def timing_kv(self, event_name: str, nanoseconds: int, kvs: Mapping[str, str]) -> None:
        """Log a slow event with its data, long values cut to ``log_length``."""
        shown = dict(kvs)
        if _millis(nanoseconds) > self.cost_threshold:
            shown = {
                key: val[: self.log_length] + "..." if len(val) > self.log_length else val
                for key, val in shown.items()
            }
            log.info(
                None,
                "DB TimingKv name:%s kv:%s cost:%s",
                event_name,
                shown,
                _format_duration(nanoseconds),
            )
        if self.mod == UNIT_TEST_MOD:
            log.info(None, "DB TimingKv name:%s kv:%s", event_name, shown)


def new_event_receiver(dbname: str, cost_threshold: int, len_threshold: int) -> SQLEventReceiver:
    """Build a receiver; the ``env`` variable ``unittest`` selects unit-test mode."""
    mod = UNIT_TEST_MOD if os.environ.get("env") == "unittest" else RELEASE_MOD
    return SQLEventReceiver(
        cost_threshold=cost_threshold, log_length=len_threshold, mod=mod, dbname=dbname
    )


def table(query: str) -> tuple[str, str]:
    """Guess the table and operation of a SQL statement.

    Returns ``(query, " ")`` when the statement is not recognised.
    """
    words = query.split(" ")
    last = len(words) - 1
    for i, word in enumerate(words):
        if word in ("FROM", "from") and i < last:
            if words[0] in ("DELETE", "delete"):
                return words[i + 1].replace("`", ""), "DELETE"
            if words[0] in ("SELECT", "select"):
                return words[i + 1], "SELECT"
        if word in ("UPDATE", "update") and i < last:
            return words[i + 1].replace("`", ""), "UPDATE"
        if word in ("INSERT", "insert") and i < last - 1 and words[i + 1] in ("INTO", "into"):
            return words[i + 2].replace("`", ""), "INSERT"
    return query, " "


def db_name(data_source: str) -> str:
    """Return the database name of a ``.../name?params`` data source."""
    idx = data_source.find("/")
    if idx == -1:
        raise ValueError(f"datasource err:{data_source}")
    rest = data_source[idx + 1 :]
    idx = rest.find("?")
    if idx == -1:
        raise ValueError(f"datasource err:{rest}")
    return rest[:idx]