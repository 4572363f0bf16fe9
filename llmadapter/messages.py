"""Flattening chat messages into text, control-tag handling and role formats."""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Iterator, TypeVar

from .common import is_nil
from .context import (
    GIN_DEBUGGER,
    GIN_ECHO,
    GIN_TOOL,
    RequestContext,
    get_completion,
    is_coze_websdk,
)
from .keyv import Keyv
from .lifecycle import Environment
from .models import Completion
from .tokenizer import Elem, Kind, Parser, join_string

log = logging.getLogger("llmadapter.messages")

T = TypeVar("T")

ENV_KEY = "__environment__"
END = "<|end|>\n\n"
DELIMITER = "\n\n"
SCHEMAS = (
    "debug",        # debug marker
    "toolChoice",   # tool selection
    "echo",         # return the processed context without calling the model
    "specialized",  # switch special handling on or off
)

_IS_CLAUDE_KEY = "__is-claude__"
_REGEX_LITERAL = re.compile(r"^/(.+)/([a-z]*)\Z")
_CLEARS = (
    re.compile(r"<notes>\n*</notes>"),
    re.compile(r"<example>\n*</example>"),
    re.compile(r"\n{3,}"),
)
_CHUNK_MARKERS = {
    "assistant": "\n\nassistant: ",
    "user": "\n\nuser: ",
    "system": "\n\nsystem: ",
}
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


def claude_role_fmt(role: str) -> str:
    return f"\n\r\n{role}: "


def gpt_role_fmt(role: str) -> str:
    return f"<|start|>{role}\n"


def role_fmt(role: str) -> str:
    return f"<|{role}|>\n"


def bing_role_fmt(role: str) -> str:
    if role == "user":
        return "Hu: "
    if role == "assistant":
        return "Ai: "
    return "Sys: "


def _environment(ctx: RequestContext) -> Environment:
    env = ctx.get(ENV_KEY)
    return env if isinstance(env, Environment) else Environment()


def _join_message(message: Keyv, clear: bool = False) -> str:
    content = message.get_string("content").strip()
    if not content:
        return ""
    if clear:
        for pattern in _CLEARS:
            content = pattern.sub(DELIMITER, content)
    return f"{message.get_string('role')}: {content}"


Transform = Callable[[list, str], list]


class ContentHolder:
    """Turns a completion's messages into the messages sent upstream.

    ``transform`` rewrites the unmerged messages when special handling is on
    for Claude models; by default they pass through unchanged.
    """

    def __init__(self, env: Environment | None = None, transform: Transform | None = None):
        self.env = env if env is not None else Environment()
        self.transform = transform

    def handle(self, ctx: RequestContext, completion: Completion) -> list[Keyv]:
        if not isinstance(ctx.get(ENV_KEY), Environment):
            ctx.set(ENV_KEY, self.env)

        content = DELIMITER.join(_join_message(m) for m in completion.messages)
        content, _ = parse_messages(ctx, Parser(*SCHEMAS), content, None, self.env)

        if ctx.get_bool("specialized") and is_claude(ctx, completion.model):
            messages = split_to_messages(content, False)
            if self.transform is not None:
                messages = [Keyv(m) for m in self.transform(messages, "txt")]
            if messages and not completion.model.startswith("you/"):
                messages[0].pop("chat", None)
                messages[0].pop("query", None)
            return messages

        return split_to_messages(content, True)


def parse_messages(
    ctx: RequestContext,
    parser: Parser,
    content: str,
    exec_fn: Callable[[Elem, Callable[[], None]], T] | None = None,
    env: Environment | None = None,
) -> tuple[str, list[T]]:
    """Apply control tags found in ``content``; return the remaining text and handler results."""
    if env is None:
        env = _environment(ctx)
    elems = parser.parse(content)
    handlers: list[T] = []

    def clean(index: int) -> None:
        if 0 <= index < len(elems):
            del elems[index]

    specialized = env.get_bool("specialized")
    ctx.set("specialized", specialized)

    # the first element is never treated as a control tag
    for i in range(len(elems) - 1, 0, -1):
        elem = elems[i]
        if elem.kind != Kind.IDENT:
            continue

        label = elem.label
        if label == "debug":
            ctx.set(GIN_DEBUGGER, True)
            clean(i)
            continue

        if label == "echo":
            ctx.set(GIN_ECHO, True)
            clean(i)
            continue

        if label == "toolChoice":
            tool_id = elem.str_attr("id")
            tasks = elem.bool_attr("tasks")
            enabled = elem.bool_attr("enabled")
            clean(i)
            ctx.set(GIN_TOOL, Keyv({
                "id": tool_id if tool_id is not None else "-1",
                "tasks": tasks if tasks is not None else False,
                "enabled": enabled if enabled is not None else False,
            }))
            continue

        if label == "specialized":
            value = elem.bool_attr("enabled")
            if value is not None:
                specialized = value
            clean(i)
            ctx.set("specialized", specialized)
            continue

        if exec_fn is not None:
            result = exec_fn(elem, lambda index=i: clean(index))
            if not is_nil(result):
                handlers.append(result)

    handlers.reverse()
    return join_string(elems), handlers


def convert_role(ctx: RequestContext, role: str) -> tuple[str, str]:
    """The role prefix and message terminator used for the current model."""
    model = get_completion(ctx).model
    if is_claude(ctx, model):
        if role == "user":
            return claude_role_fmt("Human"), ""
        if role == "assistant":
            return claude_role_fmt("Assistant"), ""
        return claude_role_fmt("SYSTEM"), ""

    if is_bing(model):
        return bing_role_fmt(role), ""

    if is_gpt(model):
        if role in ("user", "assistant"):
            return gpt_role_fmt(role), END
        return gpt_role_fmt("system"), END

    return role_fmt(role), END


def is_bing(model: str) -> bool:
    return model == "bing"


def is_gpt(model: str) -> bool:
    model = model.lower()
    return "openai" in model or "gpt" in model


def is_claude(ctx: RequestContext, model: str) -> bool:
    """Whether ``model`` is served by a Claude model; positive answers are remembered."""
    if ctx.get_bool(_IS_CLAUDE_KEY):
        return True

    if model == "coze/websdk" or is_coze_websdk(ctx):
        websdk_model = _environment(ctx).get_string("coze.websdk.model")
        return "claude" in websdk_model.lower()

    if "claude" in model.lower():
        ctx.set(_IS_CLAUDE_KEY, True)
        return True

    if model.startswith("coze/"):
        values = model[5:].split("-")
        if len(values) > 3 and values[3] == "w" and "[claude=true]" in ctx.get_string("token"):
            ctx.set(_IS_CLAUDE_KEY, True)
            return True
    return False


def _chunks(content: str) -> Iterator[str]:
    rest = content
    while rest:
        positions = [p for p in (rest.find(m) for m in _CHUNK_MARKERS.values()) if p >= 0]
        if not positions:
            yield rest
            return
        first = min(positions)
        yield rest[:first]
        rest = rest[first + 2:]


def _join_content(previous: str, text: str) -> str:
    for pattern in _CLEARS:
        text = pattern.sub("", text)
    text = text.strip()
    if not previous:
        return text
    return previous + DELIMITER + text


def split_to_messages(content: str, merge: bool) -> list[Keyv]:
    """Split ``role: text`` blocks back into messages, merging same-role runs if asked."""
    messages: list[Keyv] = []

    def add(message: Keyv) -> None:
        if not message.is_blank("content"):
            messages.append(message)

    message = Keyv()
    for chunk in _chunks(content):
        if not chunk:
            continue

        role = ""
        for name, marker in _CHUNK_MARKERS.items():
            prefix = marker[2:]
            if chunk.startswith(prefix):
                chunk = chunk[len(prefix):]
                role = name
                break

        if role == "" or message.is_blank("role") or message.matches("role", role):
            if message.is_blank("role"):
                role = role or "user"
                message["role"] = role
            if merge:
                message["content"] = _join_content(message.get_string("content"), chunk)
                continue

        add(message)
        message = Keyv({"role": role, "content": _join_content("", chunk)})

    add(message)
    return messages


def at(text: str) -> bool:
    """True for ``@`` followed by a 64-bit integer, as in ``@3``."""
    if not text.startswith("@"):
        return False
    number = text[1:]
    if not re.fullmatch(r"[+-]?[0-9]+", number):
        return False
    return _INT64_MIN <= int(number) <= _INT64_MAX


def regex_scope(regex: str) -> str:
    """Turn ``/pattern/flags`` into ``(?flags)pattern``; other text is returned as is."""
    matched = _REGEX_LITERAL.match(regex.strip())
    if matched is None:
        return regex
    pattern, scope = matched.group(1), matched.group(2)
    flags = "".join(flag for flag in "smi" if flag in scope)
    return (f"(?{flags})" if flags else "") + pattern