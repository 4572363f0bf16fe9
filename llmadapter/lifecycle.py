"""Configuration environment and start-up / shut-down hooks."""

from __future__ import annotations

import os
import signal
import sys
from typing import Any, Callable

import yaml


def _lower_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k).lower(): _lower_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_lower_keys(v) for v in value]
    return value


class Environment:
    """Nested configuration addressed by case-insensitive dotted keys."""

    def __init__(self, data: dict | None = None):
        self._data: dict = _lower_keys(data or {})

    @classmethod
    def load(cls, path: str) -> "Environment":
        if not os.path.exists(path):
            return cls()
        with open(path, encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
        if not isinstance(data, dict):
            raise ValueError(f"configuration in {path} must be a mapping")
        return cls(data)

    def get(self, key: str, default: Any = None) -> Any:
        node: Any = self._data
        for part in key.lower().split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    def get_string(self, key: str) -> str:
        value = self.get(key)
        if value is None:
            return ""
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (str, int, float)):
            return str(value)
        return ""

    def get_bool(self, key: str) -> bool:
        value = self.get(key)
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)):
            return value != 0
        if isinstance(value, str):
            return value.strip().lower() in ("1", "t", "true")
        return False

    def get_int(self, key: str) -> int:
        value = self.get(key)
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, (int, float)):
            return int(value)
        if isinstance(value, str):
            try:
                return int(value.strip())
            except ValueError:
                return 0
        return 0

    def get_string_map(self, key: str) -> dict:
        value = self.get(key)
        return dict(value) if isinstance(value, dict) else {}

    def set(self, key: str, value: Any) -> None:
        parts = key.lower().split(".")
        node = self._data
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = _lower_keys(value)


_inits: list[Callable[[Environment], None]] = []
_exits: list[Callable[[Environment], None]] = []


def add_initialized(apply: Callable[[Environment], None]) -> None:
    _inits.append(apply)


def add_exited(apply: Callable[[Environment], None]) -> None:
    _exits.append(apply)


def initialized(env: Environment) -> None:
    """Run start-up hooks and arrange for exit hooks on SIGINT/SIGTERM."""
    for apply in list(_inits):
        apply(env)

    def _on_signal(signum, frame):
        for apply in list(_exits):
            apply(env)
        sys.exit(0)

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            signal.signal(sig, _on_signal)
        except ValueError:
            # not in the main thread; signals cannot be hooked here
            pass