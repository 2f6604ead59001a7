"""Encoding of handler replies and decoding of request bodies."""

from __future__ import annotations

import dataclasses
import json
from abc import ABC, abstractmethod
from typing import Any


def error_payload(error: BaseException) -> dict[str, str]:
    """Split an error text ``"code: message"`` into a code/message mapping."""
    text = str(error)
    parts = text.split(": ")
    if len(parts) > 1:
        return {"code": parts[0].strip(), "message": ": ".join(parts[1:]).strip()}
    return {"code": "", "message": text}


class Codec(ABC):
    """Turns replies into response bodies and request bodies into values."""

    content_type = "application/json"

    @abstractmethod
    def encode(self, value: Any) -> bytes:
        """Encode a reply or an error as a response body."""

    @abstractmethod
    def decode(self, body: bytes | str) -> Any:
        """Decode a request body."""


def _default(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class JSONCodec(Codec):
    """JSON codec; errors become ``{"code": ..., "message": ...}``."""

    def encode(self, value: Any) -> bytes:
        if isinstance(value, BaseException):
            value = error_payload(value)
        text = json.dumps(value, default=_default, separators=(",", ":"))
        return (text + "\n").encode("utf-8")

    def decode(self, body: bytes | str) -> Any:
        return json.loads(body)