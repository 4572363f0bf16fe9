"""A string-keyed dictionary with typed accessors."""

from __future__ import annotations

import json
from typing import Any


def _deep_equal(a: Any, b: Any) -> bool:
    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b
    return a == b


class Keyv(dict):
    """Dictionary used for loosely typed JSON objects."""

    def get_keyv(self, key: str) -> "Keyv":
        """Return the nested mapping at ``key``, shared with this one."""
        value = self.get(key)
        if isinstance(value, Keyv):
            return value
        if isinstance(value, dict):
            wrapped = Keyv(value)
            self[key] = wrapped
            return wrapped
        return Keyv()

    def get_slice(self, key: str) -> list:
        value = self.get(key)
        return value if isinstance(value, list) else []

    def get_string(self, key: str) -> str:
        value = self.get(key)
        return value if isinstance(value, str) else ""

    def get_int(self, key: str) -> int:
        value = self.get(key)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        return 0

    def matches(self, key: str, value: Any) -> bool:
        return key in self and _deep_equal(self[key], value)

    def one_of(self, key: str, *args: Any) -> bool:
        return key in self and any(_deep_equal(self[key], v) for v in args)

    def is_string(self, key: str) -> bool:
        return isinstance(self.get(key), str)

    def is_blank(self, key: str) -> bool:
        """True unless ``key`` holds a string with non-blank text."""
        value = self.get(key)
        if isinstance(value, str):
            return value.strip() == ""
        return True

    def clone(self) -> "Keyv":
        return Keyv(self)

    def __str__(self) -> str:
        return json.dumps(self, ensure_ascii=False, separators=(",", ":"))