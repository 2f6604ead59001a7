"""Factories that turn configuration sections into injectable clients and connections."""

from __future__ import annotations

import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, TypeVar

import redis
import redis.cluster

from microcore import log
from microcore.constants import CONFIG_HTTP_CLIENT, CONFIG_KEY_MYSQL, CONFIG_KEY_REDIS
from microcore.core import Config, InjectObject, Provider, new_provider, register_provider
from microcore.db import open_db
from microcore.httpclient import ClientOptions, HttpClient
from microcore.options import DBOption, HttpClientConfig, RedisOption
from microcore.registry import Node, Service
from microcore.utils import new_uuid

T = TypeVar("T")

REGISTRY_KEY = "registry"
DEFAULT_REGISTRY_TTL = 30
_DEFAULT_REDIS_ADDR = "localhost:6379"
_DEFAULT_REDIS_READ_TIMEOUT = 3.0


class _LazyProvider:
    """Builds its objects only when asked to provide them."""

    def __init__(self, build: Callable[[], list[InjectObject]]) -> None:
        self._build = build

    def provide(self) -> list[InjectObject]:
        return self._build()


def _named_sections(
    config: Config, key: str, parse: Callable[[Mapping[str, Any] | None], T]
) -> dict[str, T] | None:
    if not config.has(key):
        return None
    raw = config.get(key)
    if not isinstance(raw, Mapping):
        raise ValueError(f"{key}: expected a mapping of named sections")
    return {str(name): parse(section) for name, section in raw.items()}


class MySQLFactory:
    """Opens one database handle per entry of the ``db`` section, named ``db.<entry>``."""

    def new_provider(self, config: Config) -> Provider | None:
        opts = _named_sections(config, CONFIG_KEY_MYSQL, DBOption.from_mapping)
        if opts is None:
            return None

        def build() -> list[InjectObject]:
            return [
                InjectObject(open_db(opt), name=f"{CONFIG_KEY_MYSQL}.{name}")
                for name, opt in opts.items()
            ]

        return _LazyProvider(build)


class RedisFactory:
    """Connects one Redis client per entry of the ``redis`` section, named ``redis.<entry>``."""

    def new_provider(self, config: Config) -> Provider | None:
        opts = _named_sections(config, CONFIG_KEY_REDIS, RedisOption.from_mapping)
        if opts is None:
            return None

        def build() -> list[InjectObject]:
            return [
                InjectObject(new_redis_client(opt), name=f"{CONFIG_KEY_REDIS}.{name}")
                for name, opt in opts.items()
            ]

        return _LazyProvider(build)


class HttpClientFactory:
    """Provides one HTTP client configured from the ``httpclient`` section."""

    def new_provider(self, config: Config) -> Provider | None:
        return new_provider(new_http_client(get_client_config(config)))


def _split_addr(addr: str) -> tuple[str, int]:
    host, sep, port_text = (addr or _DEFAULT_REDIS_ADDR).rpartition(":")
    if not sep:
        return port_text, 6379
    try:
        return host or "localhost", int(port_text)
    except ValueError:
        raise ValueError(f"redis: invalid address {addr!r}") from None


def _read_timeout(value: int) -> float | None:
    # The configured value is a count of nanoseconds; 0 keeps the default, -1 disables it.
    if value == 0:
        return _DEFAULT_REDIS_READ_TIMEOUT
    if value < 0:
        return None
    return value / 1e9


def new_redis_client(option: RedisOption) -> Any:
    """Build a Redis client (cluster, TLS single node or plain) and check it with a ping.

    Exits through the fatal log when the server does not answer.
    """
    timeout = _read_timeout(option.read_timeout)
    extra: dict[str, Any] = {}
    if option.pool_size:
        extra["max_connections"] = option.pool_size

    if option.is_cluster_mode:
        nodes = [redis.cluster.ClusterNode(*_split_addr(a)) for a in option.cluster_addr]
        if option.max_retries > 0:
            extra["cluster_error_retry_attempts"] = option.max_retries
        client = redis.cluster.RedisCluster(
            startup_nodes=nodes,
            password=option.password or None,
            socket_timeout=timeout,
            ssl=True,
            ssl_cert_reqs="none",
            **extra,
        )
    else:
        host, port_number = _split_addr(option.addr)
        if option.is_elasticache:
            extra["ssl"] = True
            extra["ssl_cert_reqs"] = "none"
        client = redis.Redis(
            host=host,
            port=port_number,
            password=option.password or None,
            socket_timeout=timeout,
            **extra,
        )

    try:
        client.ping()
    except redis.RedisError:
        log.fatal(None, "failed to connect to redis; configs: %s", option)
    return client


def get_client_config(config: Config) -> HttpClientConfig:
    """Read the ``httpclient`` section; the connection limit is left at the client default."""
    if not config.has(CONFIG_HTTP_CLIENT):
        return HttpClientConfig()
    parsed = HttpClientConfig.from_mapping(config.get(CONFIG_HTTP_CLIENT))
    return HttpClientConfig(max_connection_num=0, timeout=parsed.timeout, name=parsed.name)


def new_http_client(cfg: HttpClientConfig) -> HttpClient:
    """Build an HTTP client, overriding only the settings ``cfg`` gives."""
    options = ClientOptions()
    if cfg.max_connection_num != 0:
        options.max_connection_num = cfg.max_connection_num
    if cfg.timeout != 0:
        options.timeout = cfg.timeout
    if cfg.name:
        options.name = cfg.name
    return HttpClient(options)


@dataclass
class RegistryConfig:
    """Service registry endpoints and the lease TTL in seconds."""

    addrs: list[str] = field(default_factory=list)
    registry_ttl: int = 0
    name: str = ""


def _registry_from_mapping(data: Mapping[str, Any]) -> RegistryConfig:
    cfg = RegistryConfig()
    for key, value in data.items():
        norm = str(key).lower().replace("_", "").replace("-", "")
        if norm == "addrs":
            if value is None:
                continue
            if not isinstance(value, (list, tuple)):
                raise ValueError("addrs: expected a list")
            cfg.addrs = [str(item) for item in value]
        elif norm == "registryttl":
            if value is None:
                continue
            if isinstance(value, bool):
                raise ValueError("registry_ttl: expected an integer")
            cfg.registry_ttl = int(value)
        elif norm == "name":
            cfg.name = "" if value is None else str(value)
    return cfg


def get_registry_config(config: Config) -> RegistryConfig | None:
    """Read the ``registry`` section; ``None`` when it is absent or malformed."""
    if not config.has(REGISTRY_KEY):
        return None
    raw = config.get(REGISTRY_KEY)
    if not isinstance(raw, Mapping):
        return None
    try:
        cfg = _registry_from_mapping(raw)
    except (TypeError, ValueError):
        return None
    if cfg.registry_ttl == 0:
        cfg.registry_ttl = DEFAULT_REGISTRY_TTL
    return cfg


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def get_registry_service(config: Config, suffix: str) -> Service:
    """Describe this service for registration, with one node under a fresh id."""
    return Service(
        name=_text(config.get("name")) + suffix,
        version=_text(config.get("version")),
        metadata={},
        nodes=[Node(id=new_uuid(), address="", port=0, metadata={})],
    )


def port(addr: str) -> str:
    """Resolve a listen address, letting ``PORT_<addr>`` or ``PORT`` override it."""
    value = os.environ.get("PORT_" + addr, "")
    if value:
        return ":" + value
    value = os.environ.get("PORT", "")
    if value:
        return ":" + value
    return addr


register_provider(MySQLFactory(), RedisFactory(), HttpClientFactory())