"""Request and listing models of the OpenAI-style API."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .keyv import Keyv


def _field(data: dict, key: str, kind: type | tuple, default: Any) -> Any:
    value = data.get(key)
    if value is None:
        return default
    if isinstance(value, bool) and kind is not bool and bool not in (kind if isinstance(kind, tuple) else (kind,)):
        raise ValueError(f"field '{key}' has the wrong type")
    if not isinstance(value, kind):
        raise ValueError(f"field '{key}' has the wrong type")
    return value


def _objects(data: dict, key: str) -> list[Keyv]:
    values = data.get(key)
    if values is None:
        return []
    if not isinstance(values, list) or not all(isinstance(v, dict) for v in values):
        raise ValueError(f"field '{key}' must be a list of objects")
    return [Keyv(v) for v in values]


def _require_dict(data: Any) -> dict:
    if not isinstance(data, dict):
        raise ValueError("request body must be a JSON object")
    return data


@dataclass
class Model:
    id: str
    object: str = "model"
    created: int = 0
    owned_by: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "object": self.object,
            "created": self.created,
            "owned_by": self.owned_by,
        }


@dataclass
class Completion:
    system: str = ""
    messages: list[Keyv] = field(default_factory=list)
    tools: list[Keyv] = field(default_factory=list)
    model: str = ""
    max_tokens: int = 0
    stop_sequences: list[str] = field(default_factory=list)
    temperature: float = 0.0
    top_k: int = 0
    top_p: float = 0.0
    stream: bool = False
    tool_choice: Any = None

    @classmethod
    def from_dict(cls, data: dict) -> "Completion":
        data = _require_dict(data)
        stop = data.get("stop") or []
        if not isinstance(stop, list) or not all(isinstance(s, str) for s in stop):
            raise ValueError("field 'stop' must be a list of strings")
        return cls(
            system=_field(data, "system", str, ""),
            messages=_objects(data, "messages"),
            tools=_objects(data, "tools"),
            model=_field(data, "model", str, ""),
            max_tokens=_field(data, "max_tokens", int, 0),
            stop_sequences=list(stop),
            temperature=float(_field(data, "temperature", (int, float), 0.0)),
            top_k=_field(data, "top_k", int, 0),
            top_p=float(_field(data, "top_p", (int, float), 0.0)),
            stream=_field(data, "stream", bool, False),
            tool_choice=data.get("tool_choice"),
        )


@dataclass
class Generation:
    model: str = ""
    message: str = ""
    n: int = 0
    size: str = ""
    style: str = ""
    quality: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "Generation":
        data = _require_dict(data)
        return cls(
            model=_field(data, "model", str, ""),
            message=_field(data, "prompt", str, ""),
            n=_field(data, "n", int, 0),
            size=_field(data, "size", str, ""),
            style=_field(data, "style", str, ""),
            quality=_field(data, "quality", str, ""),
        )


@dataclass
class Embed:
    input: Any = None
    model: str = ""
    encoding_format: str = ""
    dimensions: int = 0
    user: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "Embed":
        data = _require_dict(data)
        return cls(
            input=data.get("input"),
            model=_field(data, "model", str, ""),
            encoding_format=_field(data, "encoding_format", str, ""),
            dimensions=_field(data, "dimensions", int, 0),
            user=_field(data, "user", str, ""),
        )