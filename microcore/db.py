"""MySQL connections configured from :class:`DBOption`."""

from __future__ import annotations

import dataclasses
import re
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from urllib.parse import parse_qsl

import pymysql

from microcore.db_event import SQLEventReceiver, db_name, new_event_receiver
from microcore.options import DBOption

_TIME_FORMAT = "%Y-%m-%d %H:%M:%S.%f"
_SECONDS = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_UNIT = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def build_data_source(option: DBOption) -> str:
    """Return the option's data source, or build one from its host and credentials."""
    if option.data_source:
        return option.data_source
    host = option.host or "localhost"
    port = option.port or 3306
    dsn = (
        f"{option.user_name}:{option.password}@tcp({host}:{port})/{option.db_name}"
        "?charset=utf8mb4&parseTime=true&loc=Local"
    )
    dsn += f"&timeout={option.timeout or 3}s"
    dsn += f"&readTimeout={option.read_timeout or 8}s"
    dsn += f"&writeTimeout={option.write_timeout or 8}s"
    return dsn


def apply_defaults(option: DBOption) -> DBOption:
    """Return a copy of ``option`` with every default filled in."""
    filled = dataclasses.replace(
        option,
        port=option.port or 3306,
        host=option.host or "localhost",
        driver=option.driver or "mysql",
        max_idle_conns=option.max_idle_conns or 200,
        max_open_conns=option.max_open_conns or 200,
        conn_max_lifetime=option.conn_max_lifetime or 600,
    )
    return dataclasses.replace(filled, data_source=build_data_source(filled))


def encode_time(moment: datetime) -> str:
    """Render a time as a quoted SQL literal with microseconds."""
    return "'" + moment.strftime(_TIME_FORMAT) + "'"


def _seconds(text: str) -> float:
    match = _SECONDS.fullmatch(text.strip())
    if match is None:
        raise ValueError(f"invalid duration {text!r}")
    return float(match.group(1)) * _UNIT[match.group(2)]


def _parse_dsn(dsn: str) -> dict[str, Any]:
    slash = dsn.rfind("/")
    if slash == -1:
        raise ValueError(f"invalid DSN: missing the slash separating the database name: {dsn}")
    prefix = dsn[:slash]
    database, _, query = dsn[slash + 1 :].partition("?")

    user = password = ""
    at = prefix.rfind("@")
    if at >= 0:
        user, _, password = prefix[:at].partition(":")
        prefix = prefix[at + 1 :]

    net, addr = prefix, ""
    if "(" in prefix:
        if not prefix.endswith(")"):
            raise ValueError(f"invalid DSN: network address not terminated: {dsn}")
        net, _, addr = prefix[:-1].partition("(")
    net = net or "tcp"

    args: dict[str, Any] = {
        "user": user,
        "password": password,
        "database": database or None,
        "charset": "utf8mb4",
        "connect_timeout": 10,
    }
    if net == "tcp":
        host, sep, port = (addr or "127.0.0.1:3306").rpartition(":")
        if not sep:
            host, port = port, "3306"
        try:
            args["port"] = int(port)
        except ValueError:
            raise ValueError(f"invalid DSN: bad port {port!r}") from None
        args["host"] = host.strip("[]") or "127.0.0.1"
    elif net == "unix":
        args["unix_socket"] = addr or "/tmp/mysql.sock"
    else:
        raise ValueError(f"invalid DSN: unknown network {net!r}")

    for key, value in parse_qsl(query, keep_blank_values=True):
        if key == "charset":
            args["charset"] = value.split(",")[0]
        elif key == "timeout":
            args["connect_timeout"] = _seconds(value)
        elif key == "readTimeout":
            args["read_timeout"] = _seconds(value)
        elif key == "writeTimeout":
            args["write_timeout"] = _seconds(value)
    return args


class _Session:
    """One database connection whose statements are reported to an event receiver."""

    def __init__(self, conn: Any, receiver: SQLEventReceiver) -> None:
        self._conn = conn
        self._receiver = receiver

    @property
    def closed(self) -> bool:
        return not self._conn.open

    def execute(self, query: str, params: Any = None) -> list[tuple[Any, ...]]:
        """Run ``query`` and return its rows."""
        kvs = {"sql": query}
        start = time.perf_counter_ns()
        try:
            with self._conn.cursor() as cursor:
                cursor.execute(query, params)
                rows = list(cursor.fetchall())
        except pymysql.err.Error as err:
            self._receiver.event_err_kv("dbr.exec", err, kvs)
            raise
        self._receiver.timing_kv("dbr.exec", time.perf_counter_ns() - start, kvs)
        return rows

    def commit(self) -> None:
        self._conn.commit()

    def rollback(self) -> None:
        self._conn.rollback()

    def close(self) -> None:
        if self._conn.open:
            self._conn.close()

    def __enter__(self) -> _Session:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


@dataclass
class Connection:
    """A configured database handle; sessions open actual connections."""

    option: DBOption
    event_receiver: SQLEventReceiver
    connect_args: dict[str, Any]
    _sessions: list[_Session] = field(default_factory=list, init=False, repr=False)

    def new_session(self) -> _Session:
        """Open a connection and return it as a session."""
        conn = pymysql.connect(**self.connect_args)
        session = _Session(conn, self.event_receiver)
        self._sessions = [s for s in self._sessions if not s.closed]
        self._sessions.append(session)
        return session

    def stop(self) -> None:
        """Close every session this handle opened."""
        sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()


def open_db(option: DBOption) -> Connection:
    """Validate ``option`` and build a connection handle from it."""
    filled = apply_defaults(option)
    if filled.driver != "mysql":
        raise ValueError(f"sql: unknown driver {filled.driver!r}")
    receiver = new_event_receiver(db_name(filled.data_source), 200, 200)
    return Connection(
        option=filled,
        event_receiver=receiver,
        connect_args=_parse_dsn(filled.data_source),
    )