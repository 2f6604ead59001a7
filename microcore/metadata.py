"""Request metadata and a small immutable context that carries it."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

_INCOMING_KEY = object()
_OUTGOING_KEY = object()


class MD(dict[str, list[str]]):
    """Transport metadata: lower-case keys mapped to lists of values."""

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, str]) -> MD:
        """Build metadata from single values, lower-casing the keys."""
        md = cls()
        for key, val in mapping.items():
            md.setdefault(key.lower(), []).append(val)
        return md

    @classmethod
    def pairs(cls, *args: str) -> MD:
        """Build metadata from alternating keys and values."""
        if len(args) % 2 == 1:
            raise ValueError(
                "metadata: Pairs got the odd number of input pairs for metadata: "
                f"{len(args)}"
            )
        md = cls()
        for key, val in zip(args[::2], args[1::2]):
            md.setdefault(key.lower(), []).append(val)
        return md

    def first(self, key: str) -> str:
        """Return the first value of ``key`` or an empty string."""
        values = self.get(key.lower())
        return values[0] if values else ""

    def put(self, key: str, val: str) -> None:
        """Replace the values of ``key`` with ``val``; empty values are ignored."""
        if not val:
            return
        self[key.lower()] = [val]

    def copy(self) -> MD:
        """Return an independent copy."""
        return join(self)


class Metadata(dict[str, list[str]]):
    """HTTP-side metadata built from headers, query and path parameters."""

    def first(self, key: str) -> str:
        """Return the first value of ``key`` or an empty string."""
        values = self.get(key.lower())
        return values[0] if values else ""

    def put(self, key: str, val: str) -> None:
        """Replace the values of ``key`` with ``val``."""
        self[key.lower()] = [val]


class Context:
    """An immutable bag of request-scoped values."""

    __slots__ = ("_values",)

    def __init__(self, values: Mapping[Any, Any] | None = None) -> None:
        self._values = dict(values or {})

    def with_value(self, key: Any, value: Any) -> Context:
        """Return a new context holding ``value`` under ``key``."""
        values = dict(self._values)
        values[key] = value
        return Context(values)

    def value(self, key: Any) -> Any:
        """Return the value stored under ``key`` or ``None``."""
        return self._values.get(key)


def join(*args: Mapping[str, list[str]]) -> MD:
    """Merge metadata, concatenating values in argument order."""
    out = MD()
    for md in args:
        for key, values in md.items():
            out.setdefault(key, []).extend(values)
    return out


def join_metadata(*args: Mapping[str, list[str]]) -> Metadata:
    """Merge metadata, lower-casing keys and concatenating values in order."""
    out = Metadata()
    for md in args:
        for key, values in md.items():
            out.setdefault(key.lower(), []).extend(values)
    return out


def _as_list(value: str | Iterable[str]) -> list[str]:
    if isinstance(value, str):
        return [value]
    return list(value)


def metadata_from_headers(
    headers: Mapping[str, str | Iterable[str]], prefix: str
) -> Metadata:
    """Keep the headers named ``<prefix>-...``, with lower-cased names."""
    md = Metadata()
    wanted = prefix.lower() + "-"
    for key, value in headers.items():
        name = key.lower()
        if name.startswith(wanted):
            md[name] = _as_list(value)
    return md


def _ctx(ctx: Context | None) -> Context:
    return ctx if ctx is not None else Context()


def new_incoming_context(ctx: Context | None, md: Mapping[str, list[str]]) -> Context:
    """Attach ``md`` as incoming metadata."""
    return _ctx(ctx).with_value(_INCOMING_KEY, MD(md))


def new_outgoing_context(ctx: Context | None, md: Mapping[str, list[str]]) -> Context:
    """Attach ``md`` as outgoing metadata, replacing any already attached."""
    return _ctx(ctx).with_value(_OUTGOING_KEY, MD(md))


def from_incoming_context(ctx: Context | None) -> MD | None:
    """Return the incoming metadata of ``ctx`` or ``None``."""
    return _ctx(ctx).value(_INCOMING_KEY)


def from_outgoing_context(ctx: Context | None) -> MD | None:
    """Return the outgoing metadata of ``ctx`` or ``None``."""
    return _ctx(ctx).value(_OUTGOING_KEY)


def metadata_from_context(ctx: Context | None) -> MD | None:
    """Return the metadata an HTTP handler attached to ``ctx``."""
    return from_outgoing_context(ctx)


def new_context_from_metadata(ctx: Context | None, md: Mapping[str, list[str]]) -> Context:
    """Attach HTTP metadata to ``ctx`` as outgoing metadata."""
    return new_outgoing_context(ctx, MD(md))