"""Per-request context holding shared values and the response being built."""

from __future__ import annotations

import json
from typing import Any

from .keyv import Keyv
from .models import Completion, Embed, Generation

GIN_COMPLETION = "__completion__"
GIN_GENERATION = "__generation__"
GIN_EMBEDDING = "__embedding__"
GIN_MATCHERS = "__matchers__"
GIN_COMPLETION_USAGE = "__completion-usage__"
GIN_DEBUGGER = "__debug__"
GIN_ECHO = "__echo__"
GIN_TOOL = "__tool__"
GIN_CLOSE = "__close__"
GIN_CHAR_SEQUENCES = "__char_sequences__"
GIN_COZE_WEBSDK = "__coze_websdk__"
GIN_CANCEL_FUNC = "__cancelFunc__"
GIN_CLAUDE_MESSAGES = "__claude_messages__"


class RequestContext:
    """Values shared during one request plus its response status, headers and body."""

    def __init__(self, method: str = "GET", path: str = "/", request_headers: dict | None = None):
        self.method = method
        self.path = path
        self.request_headers = dict(request_headers or {})
        self.values: dict[str, Any] = {}
        self.status = 200
        self.headers: dict[str, str] = {}
        self.body = bytearray()

    def set(self, key: str, value: Any) -> None:
        self.values[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    def get_bool(self, key: str) -> bool:
        return self.values.get(key) is True

    def get_string(self, key: str) -> str:
        value = self.values.get(key)
        return value if isinstance(value, str) else ""

    def write(self, data: str | bytes) -> None:
        if isinstance(data, str):
            data = data.encode("utf-8")
        self.body.extend(data)

    def json(self, status: int, body: Any) -> None:
        self.status = status
        self.headers["Content-Type"] = "application/json; charset=utf-8"
        self.write(json.dumps(body, ensure_ascii=False))


def get_completion(ctx: RequestContext) -> Completion:
    value = ctx.get(GIN_COMPLETION)
    return value if isinstance(value, Completion) else Completion()


def get_embedding(ctx: RequestContext) -> Embed:
    value = ctx.get(GIN_EMBEDDING)
    return value if isinstance(value, Embed) else Embed()


def get_generation(ctx: RequestContext) -> Generation:
    value = ctx.get(GIN_GENERATION)
    return value if isinstance(value, Generation) else Generation()


def get_matchers(ctx: RequestContext) -> list:
    value = ctx.get(GIN_MATCHERS)
    return value if isinstance(value, list) else []


def get_completion_usage(ctx: RequestContext) -> dict | None:
    value = ctx.get(GIN_COMPLETION_USAGE)
    return value if isinstance(value, dict) else None


def get_tool_value(ctx: RequestContext) -> Keyv:
    value = ctx.get(GIN_TOOL)
    if isinstance(value, Keyv):
        return value
    return Keyv({"id": "-1", "enabled": False, "tasks": False})


def is_coze_websdk(ctx: RequestContext) -> bool:
    return ctx.get_bool(GIN_COZE_WEBSDK)