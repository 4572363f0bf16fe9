"""Writing OpenAI-style JSON and server-sent-event responses."""

from __future__ import annotations

import json
import logging
import time
from typing import Any

from .common import random_hex
from .context import GIN_CLOSE, RequestContext, get_completion, get_completion_usage

log = logging.getLogger("llmadapter.response")

STOP = "stop"
TOOL_CALLS = "tool_calls"
CAN_RESPONSE = "__can-response__"
EOF = "<CHAR_trun>"
UNAUTHORIZED_ERROR = PermissionError("unauthorized error")

_ROLES = ("user", "system", "assistant", "tool", "function")
_SSE_CHUNK = 1000
_DONE = "[DONE]"


def _body(model: str, created: int, obj: str, choices: list, usage: dict | None) -> dict:
    body = {
        "id": f"chatcmpl-{created}",
        "object": obj,
        "created": created,
        "model": model,
        "choices": choices,
    }
    if usage:
        body["usage"] = usage
    return body


def _message(role: str = "", content: str = "", tool_calls: list | None = None) -> dict:
    message: dict[str, Any] = {}
    if role:
        message["role"] = role
    if content:
        message["content"] = content
    if tool_calls:
        message["tool_calls"] = tool_calls
    return message


def message_validator(ctx: RequestContext) -> bool:
    """Check the completion's messages; on failure write an error and return False."""
    messages = get_completion(ctx).messages
    if not messages:
        error(ctx, -1, "[] is too short - 'messages'")
        return False

    for index, message in enumerate(messages):
        if message.get_string("role") not in _ROLES:
            error(ctx, -1, f"'{message.get('role', '')}' is not in ['system', 'assistant', "
                           f"'user', 'tool', 'function'] - 'messages.[{index}].role'")
            return False
    return True


def error(ctx: RequestContext, code: int, err: Any) -> None:
    """Write ``{"error": {"message": ...}}``; a code of -1 means 500."""
    ctx.set(CAN_RESPONSE, "No!")
    if code == -1:
        code = 500
    ctx.json(code, {"error": {"message": str(err)}})


def respond(ctx: RequestContext, model: str, content: str) -> None:
    """Write a complete, non-streamed chat completion."""
    ctx.set(CAN_RESPONSE, "No!")
    created = int(time.time())
    choice = {"index": 0, "message": _message("assistant", content), "finish_reason": STOP}
    ctx.json(200, _body(model, created, "chat.completion", [choice], get_completion_usage(ctx)))


def echo(ctx: RequestContext, model: str, content: str, sse: bool) -> None:
    """Send ``content`` as one response, or as SSE chunks followed by a stop chunk."""
    if not sse:
        respond(ctx, model, content)
        return

    created = int(time.time())
    pieces = [content[i:i + _SSE_CHUNK] for i in range(0, len(content), _SSE_CHUNK)] or [""]
    for piece in pieces:
        sse_response(ctx, model, piece, created)
    sse_response(ctx, model, _DONE, created)


def sse_response(ctx: RequestContext, model: str, content: str, created: int) -> None:
    """Send one SSE content chunk; ``[DONE]`` sends the stop chunk and the end marker."""
    ctx.set(CAN_RESPONSE, "No!")
    _set_sse_header(ctx)
    if content == "":
        return

    done = content == _DONE
    if done:
        content = ""

    choice = {"index": 0, "delta": _message("assistant", content), "finish_reason": None}
    usage = None
    if done:
        choice["finish_reason"] = STOP
        usage = get_completion_usage(ctx)

    event(ctx, "", _body(model, created, "chat.completion.chunk", [choice], usage))
    if done:
        time.sleep(0.1)
        event(ctx, "", _DONE)


def tool_call_response(ctx: RequestContext, model: str, name: str, args: str) -> None:
    """Write a non-streamed completion carrying a single tool call."""
    ctx.set(CAN_RESPONSE, "No!")
    created = int(time.time())
    tool_call = {
        "id": "call_" + random_hex(5),
        "type": "function",
        "function": {"name": name, "arguments": args},
    }
    choice = {
        "index": 0,
        "message": _message("assistant", tool_calls=[tool_call]),
        "finish_reason": STOP,
    }
    ctx.json(200, _body(model, created, "chat.completion", [choice], get_completion_usage(ctx)))


def sse_tool_call_response(ctx: RequestContext, model: str, name: str, args: str,
                           created: int) -> None:
    """Stream a single tool call: name, arguments, finish reason, end marker."""
    ctx.set(CAN_RESPONSE, "No!")
    _set_sse_header(ctx)
    usage = get_completion_usage(ctx)

    opening = {
        "index": 0,
        "type": "function",
        "id": "call_" + random_hex(5),
        "function": {"name": name, "arguments": ""},
    }
    choice = {"index": 0, "delta": _message("assistant", tool_calls=[opening]),
              "finish_reason": None}
    event(ctx, "", _body(model, created, "chat.completion.chunk", [choice], None))

    arguments = {"index": 0, "function": {"arguments": args}}
    choice = {"index": 0, "delta": _message(tool_calls=[arguments]), "finish_reason": None}
    event(ctx, "", _body(model, created, "chat.completion.chunk", [choice], None))

    choice = {"index": 0, "finish_reason": TOOL_CALLS}
    event(ctx, "", _body(model, created, "chat.completion.chunk", [choice], usage))

    event(ctx, "", _DONE)


def not_response(ctx: RequestContext) -> bool:
    """True when nothing has been written to the response yet."""
    return ctx.get_string(CAN_RESPONSE) == "" and not_sse_header(ctx)


def not_sse_header(ctx: RequestContext) -> bool:
    return _not_header(ctx, "text/event-stream")


def _not_header(ctx: RequestContext, *types: str) -> bool:
    content_type = ctx.headers.get("Content-Type", "")
    if not content_type:
        return True
    return not any(t in content_type for t in types)


def _set_sse_header(ctx: RequestContext) -> None:
    if ctx.headers.get("Content-Type", ""):
        return
    ctx.headers.update({
        "Content-Type": "text/event-stream",
        "Transfer-Encoding": "chunked",
        "Cache-Control": "no-cache",
        "Connection": "keep-alive",
        "X-Accel-Buffering": "no",
    })


def event(ctx: RequestContext, event: str, data: Any) -> None:
    """Write one SSE event; strings are sent as-is, other data as JSON."""
    ctx.set(CAN_RESPONSE, "No!")
    _set_sse_header(ctx)

    if isinstance(data, str):
        # plain string payloads are written without an event line
        ctx.write(f"data: {data}\n\n")
        return

    try:
        payload = json.dumps(data, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as exc:
        log.error("%s", exc)
        ctx.set(GIN_CLOSE, True)
        return

    prefix = f"event: {event}\n" if event else ""
    ctx.write(f"{prefix}data: {payload}\n\n")