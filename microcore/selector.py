"""Node selection over a registry: strategies and filters."""

from __future__ import annotations

import dataclasses
import random
import threading
from dataclasses import dataclass, field
from typing import Callable, Iterable, Protocol

from microcore.registry import Node, Service

Next = Callable[[], Node]
Filter = Callable[[list[Service]], list[Service]]
Strategy = Callable[[list[Service]], Next]


class NoneAvailableError(LookupError):
    """Raised when no node is left to choose from."""

    def __init__(self, message: str = "none available") -> None:
        super().__init__(message)


class _ServiceSource(Protocol):
    def get_service(self, name: str) -> list[Service]: ...


def _all_nodes(services: Iterable[Service]) -> list[Node]:
    return [node for service in services for node in service.nodes]


def random_strategy(services: list[Service]) -> Next:
    """Return a picker choosing a random node among all services' nodes."""
    nodes = _all_nodes(services)

    def pick() -> Node:
        if not nodes:
            raise NoneAvailableError()
        return random.choice(nodes)

    return pick


def round_robin(services: list[Service]) -> Next:
    """Return a picker cycling over all nodes from a random starting point."""
    nodes = _all_nodes(services)
    position = random.getrandbits(62)
    lock = threading.Lock()

    def pick() -> Node:
        nonlocal position
        if not nodes:
            raise NoneAvailableError()
        with lock:
            node = nodes[position % len(nodes)]
            position += 1
        return node

    return pick


def filter_endpoint(name: str) -> Filter:
    """Keep services having a node whose address equals ``name``."""

    def apply(services: list[Service]) -> list[Service]:
        return [s for s in services if any(n.address == name for n in s.nodes)]

    return apply


def filter_label(key: str, val: str) -> Filter:
    """Keep only nodes labelled ``key=val``; drop services left without nodes."""

    def apply(services: list[Service]) -> list[Service]:
        kept = []
        for service in services:
            nodes = [
                n
                for n in service.nodes
                if n.metadata is not None and n.metadata.get(key, "") == val
            ]
            if nodes:
                kept.append(dataclasses.replace(service, nodes=nodes))
        return kept

    return apply


def filter_version(version: str) -> Filter:
    """Keep services of the given version."""

    def apply(services: list[Service]) -> list[Service]:
        return [s for s in services if s.version == version]

    return apply


@dataclass
class Selector:
    """Picks nodes of a service found in a registry."""

    registry: _ServiceSource | None = None
    strategy: Strategy = field(default=random_strategy)
    marks: dict[str, dict[str, BaseException | None]] = field(
        default_factory=dict, init=False, repr=False
    )
    closed: bool = field(default=False, init=False)

    def select(
        self,
        service: str,
        filters: Iterable[Filter] = (),
        strategy: Strategy | None = None,
    ) -> Next:
        """Look ``service`` up, apply ``filters`` and return a node picker."""
        if self.closed:
            raise RuntimeError("selector is closed")
        if self.registry is None:
            raise RuntimeError("selector has no registry")
        services = self.registry.get_service(service)
        for apply in filters:
            services = apply(services)
        if not services:
            raise NoneAvailableError()
        return (strategy or self.strategy)(services)

    def mark(self, service: str, node: Node, error: BaseException | None) -> None:
        """Record the outcome of the last call to ``node`` of ``service``."""
        self.marks.setdefault(service, {})[node.id] = error

    def reset(self, service: str) -> None:
        """Forget every outcome recorded for ``service``."""
        self.marks.pop(service, None)

    def close(self) -> None:
        """Drop recorded state and make the selector unusable."""
        self.marks.clear()
        self.closed = True

    def __str__(self) -> str:
        return "default"


def new_selector(
    registry: _ServiceSource | None = None, strategy: Strategy = random_strategy
) -> Selector:
    """Build a selector over ``registry`` using ``strategy`` by default."""
    return Selector(registry=registry, strategy=strategy)


DEFAULT_SELECTOR = new_selector()