"""Service discovery model and the registry interface."""

from __future__ import annotations

import json
import ssl
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any


class NotFoundError(LookupError):
    """Raised when a registry has no entry for a lookup."""

    def __init__(self, message: str = "not found") -> None:
        super().__init__(message)


@dataclass
class Node:
    """One instance of a service."""

    id: str = ""
    address: str = ""
    port: int = 0
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class Service:
    """A named, versioned service and its nodes."""

    name: str = ""
    version: str = ""
    metadata: dict[str, str] = field(default_factory=dict)
    nodes: list[Node] = field(default_factory=list)

    def to_json(self) -> str:
        """Encode the service as JSON."""
        return json.dumps(asdict(self), separators=(",", ":"))

    @classmethod
    def from_json(cls, data: str | bytes) -> Service:
        """Decode a service from JSON; raise ``ValueError`` on malformed input."""
        raw = json.loads(data)
        if not isinstance(raw, dict):
            raise ValueError("service JSON must be an object")
        nodes = [_node_from_mapping(n) for n in raw.get("nodes") or []]
        return cls(
            name=raw.get("name") or "",
            version=raw.get("version") or "",
            metadata=dict(raw.get("metadata") or {}),
            nodes=nodes,
        )


def _node_from_mapping(raw: Any) -> Node:
    if not isinstance(raw, dict):
        raise ValueError("node JSON must be an object")
    return Node(
        id=raw.get("id") or "",
        address=raw.get("address") or "",
        port=int(raw.get("port") or 0),
        metadata=dict(raw.get("metadata") or {}),
    )


@dataclass
class Result:
    """A change reported by a watcher: ``create``, ``update`` or ``delete``."""

    action: str
    service: Service


@dataclass
class Options:
    """Connection options of a registry."""

    addrs: list[str] = field(default_factory=list)
    timeout: float = 0.0
    secure: bool = False
    tls_config: ssl.SSLContext | None = None


@dataclass
class RegisterOptions:
    """Options of a single registration; ``ttl`` is the lease time in seconds."""

    ttl: float = 30.0


@dataclass
class WatchOptions:
    """Options of a watch; an empty ``service`` watches every service."""

    service: str = ""


class Watcher(ABC):
    """Source of registry changes."""

    @abstractmethod
    def next(self) -> Result:
        """Block until the next change and return it."""

    @abstractmethod
    def stop(self) -> None:
        """Stop watching."""


class Registry(ABC):
    """Service discovery backend."""

    @abstractmethod
    def options(self) -> Options:
        """Return the options the registry was built with."""

    @abstractmethod
    def register(self, service: Service, ttl: float | None = None) -> None:
        """Register ``service`` with a lease of ``ttl`` seconds."""

    @abstractmethod
    def deregister(self, service: Service) -> None:
        """Remove ``service`` from the registry."""

    @abstractmethod
    def get_service(self, name: str) -> list[Service]:
        """Return every registered instance of ``name``."""

    @abstractmethod
    def list_services(self) -> list[Service]:
        """Return every registered service."""

    @abstractmethod
    def watch(self, service: str) -> Watcher:
        """Return a watcher for changes of ``service``."""