"""Small helpers: JSON rendering, identifiers and network address discovery."""

from __future__ import annotations

import dataclasses
import ipaddress
import json
import socket
import uuid
from typing import Any, Callable, TypeVar

import psutil

T = TypeVar("T")

_PRIVATE_BLOCKS = tuple(
    ipaddress.ip_network(block)
    for block in ("10.0.0.0/8", "172.16.0.0/12", "192.168.0.0/16")
)


def _json_default(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def must_string(value: Any) -> str:
    """Render ``value`` as compact JSON, raising ``TypeError`` if it cannot be encoded."""
    return json.dumps(value, default=_json_default, separators=(",", ":"))


def new_uuid() -> str:
    """Return a random UUID as 32 hex digits without dashes."""
    return uuid.uuid4().hex


def listen(addr: str, fn: Callable[[str], T]) -> T:
    """Bind with ``fn`` to ``host:port`` or to the first free port of ``host:min-max``.

    ``fn`` receives a concrete address and raises on failure. With a port range,
    the error of the last attempted port is raised when none can be bound.
    """
    parts = addr.split(":")
    if len(parts) < 2:
        return fn(addr)

    ports = parts[-1].split("-")
    if len(ports) < 2:
        return fn(addr)

    try:
        low = int(ports[0])
        high = int(ports[1])
    except ValueError:
        raise ValueError("unable to extract port range") from None

    host = ":".join(parts[:-1])
    for port in range(low, high + 1):
        try:
            return fn(f"{host}:{port}")
        except Exception:
            if port == high:
                raise

    raise OSError(f"unable to bind to {addr}")


def listen_addr(port: str, fn: Callable[[str], T]) -> tuple[str, T]:
    """Bind on the local private IP plus ``port``; return the IP and what ``fn`` returned."""
    ip = get_local_ip()
    return ip, listen(ip + port, fn)


def get_local_ip() -> str:
    """Return the first private IPv4 address of an up, broadcast-capable, non-docker interface."""
    try:
        interfaces = psutil.net_if_addrs()
        stats = psutil.net_if_stats()
    except OSError as err:
        raise OSError(f"Failed to get interfaces! Err: {err}") from err

    for name, addrs in interfaces.items():
        stat = stats.get(name)
        if stat is None or not stat.isup or "docker" in name:
            continue
        if not any(getattr(a, "broadcast", None) for a in addrs):
            continue
        for addr in addrs:
            if addr.family != socket.AF_INET:
                continue
            if is_private_ip(addr.address):
                return addr.address

    raise OSError("No private IP address found, and explicit IP not provided")


def is_private_ip(ip_addr: str) -> bool:
    """Tell whether ``ip_addr`` lies in 10/8, 172.16/12 or 192.168/16."""
    try:
        ip = ipaddress.ip_address(ip_addr)
    except ValueError:
        return False
    if isinstance(ip, ipaddress.IPv6Address):
        if ip.ipv4_mapped is None:
            return False
        ip = ip.ipv4_mapped
    return any(ip in block for block in _PRIVATE_BLOCKS)