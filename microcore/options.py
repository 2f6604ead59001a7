"""Connection settings read from the YAML configuration."""

from __future__ import annotations

import re
import ssl
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from typing import Any, Callable, TypeVar

T = TypeVar("T")

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def _norm(key: Any) -> str:
    return str(key).lower().replace("_", "").replace("-", "")


def _to_str(name: str, value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (Mapping, list, tuple)):
        raise ValueError(f"{name}: expected a string, got {type(value).__name__}")
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _to_int(name: str, value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, bool):
        raise ValueError(f"{name}: expected an integer, got a boolean")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip(), 10)
        except ValueError:
            pass
    raise ValueError(f"{name}: expected an integer, got {value!r}")


def _to_bool(name: str, value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ValueError(f"{name}: expected a boolean, got {value!r}")


def _to_str_list(name: str, value: Any) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"{name}: expected a list, got {type(value).__name__}")
    return [_to_str(name, item) for item in value]


def _parse_duration(name: str, text: str) -> float:
    raw = text.strip()
    sign = 1.0
    if raw[:1] in ("+", "-"):
        sign = -1.0 if raw[0] == "-" else 1.0
        raw = raw[1:]
    if raw == "0":
        return 0.0
    pos = 0
    total = 0.0
    while pos < len(raw):
        match = _DURATION_PART.match(raw, pos)
        if match is None:
            raise ValueError(f"{name}: invalid duration {text!r}")
        total += float(match.group(1)) * _UNITS[match.group(2)]
        pos = match.end()
    if not raw:
        raise ValueError(f"{name}: invalid duration {text!r}")
    return sign * total


def _to_duration(name: str, value: Any) -> float:
    """Convert to seconds: numbers are seconds, strings use forms like ``1m30s``."""
    if value is None:
        return 0.0
    if isinstance(value, bool):
        raise ValueError(f"{name}: expected a duration, got a boolean")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        return _parse_duration(name, value)
    raise ValueError(f"{name}: expected a duration, got {value!r}")


def _opt(default: Any, convert: Callable[[str, Any], Any]) -> Any:
    return field(default=default, metadata={"convert": convert})


def _populate(cls: type[T], data: Mapping[str, Any] | None) -> T:
    if data is None:
        return cls()
    if not isinstance(data, Mapping):
        raise ValueError(f"{cls.__name__}: expected a mapping, got {type(data).__name__}")
    by_key = {_norm(f.name): f for f in fields(cls) if "convert" in f.metadata}
    values: dict[str, Any] = {}
    for key, raw in data.items():
        target = by_key.get(_norm(key))
        if target is None:
            continue
        values[target.name] = target.metadata["convert"](target.name, raw)
    return cls(**values)


@dataclass
class DBOption:
    """MySQL connection settings; timeouts are whole seconds."""

    driver: str = _opt("mysql", _to_str)
    data_source: str = _opt("", _to_str)
    db_name: str = _opt("", _to_str)
    user_name: str = _opt("", _to_str)
    password: str = _opt("", _to_str)
    host: str = _opt("", _to_str)
    port: int = _opt(0, _to_int)
    read_host: str = _opt("", _to_str)
    max_idle_conns: int = _opt(0, _to_int)
    max_open_conns: int = _opt(0, _to_int)
    conn_max_lifetime: int = _opt(0, _to_int)
    read_timeout: int = _opt(0, _to_int)
    write_timeout: int = _opt(0, _to_int)
    timeout: int = _opt(0, _to_int)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> DBOption:
        """Build from a configuration mapping; keys match case and underscores loosely."""
        return _populate(cls, data)


@dataclass
class PostgresqlOption:
    """PostgreSQL connection settings; durations are in seconds."""

    network: str = _opt("", _to_str)
    addr: str = _opt("", _to_str)
    user: str = _opt("", _to_str)
    password: str = _opt("", _to_str)
    database: str = _opt("", _to_str)
    application_name: str = _opt("", _to_str)
    tls_config: ssl.SSLContext | None = None
    dial_timeout: float = _opt(0.0, _to_duration)
    read_timeout: float = _opt(0.0, _to_duration)
    write_timeout: float = _opt(0.0, _to_duration)
    max_retries: int = _opt(0, _to_int)
    retry_statement_timeout: bool = _opt(False, _to_bool)
    min_retry_backoff: float = _opt(0.0, _to_duration)
    max_retry_backoff: float = _opt(0.0, _to_duration)
    pool_size: int = _opt(0, _to_int)
    min_idle_conns: int = _opt(0, _to_int)
    max_conn_age: float = _opt(0.0, _to_duration)
    pool_timeout: float = _opt(0.0, _to_duration)
    idle_timeout: float = _opt(0.0, _to_duration)
    idle_check_frequency: float = _opt(0.0, _to_duration)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> PostgresqlOption:
        """Build from a configuration mapping."""
        return _populate(cls, data)


@dataclass
class RedisOption:
    """Redis connection settings, for a single node or a cluster."""

    cluster_addr: list[str] = field(
        default_factory=list, metadata={"convert": _to_str_list}
    )
    addr: str = _opt("", _to_str)
    password: str = _opt("", _to_str)
    db: int = _opt(0, _to_int)
    dial_timeout: int = _opt(0, _to_int)
    pool_timeout: int = _opt(0, _to_int)
    pool_size: int = _opt(0, _to_int)
    idle_timeout: int = _opt(0, _to_int)
    read_timeout: int = _opt(0, _to_int)
    write_timeout: int = _opt(0, _to_int)
    max_retries: int = _opt(0, _to_int)
    is_cluster_mode: bool = _opt(False, _to_bool)
    is_elasticache: bool = _opt(False, _to_bool)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> RedisOption:
        """Build from a configuration mapping."""
        return _populate(cls, data)


@dataclass
class HttpClientConfig:
    """HTTP client settings; ``timeout`` is in seconds."""

    max_connection_num: int = _opt(0, _to_int)
    timeout: float = _opt(0.0, _to_duration)
    name: str = _opt("", _to_str)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> HttpClientConfig:
        """Build from a configuration mapping."""
        return _populate(cls, data)