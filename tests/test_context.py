import json

from llmadapter.context import (
    GIN_COMPLETION,
    GIN_COMPLETION_USAGE,
    GIN_COZE_WEBSDK,
    GIN_MATCHERS,
    GIN_TOOL,
    RequestContext,
    get_completion,
    get_completion_usage,
    get_embedding,
    get_generation,
    get_matchers,
    get_tool_value,
    is_coze_websdk,
)
from llmadapter.keyv import Keyv
from llmadapter.models import Completion


def test_set_get_typed():
    ctx = RequestContext()
    ctx.set("a", True)
    ctx.set("b", "text")
    assert ctx.get_bool("a") and not ctx.get_bool("b")
    assert ctx.get_string("b") == "text" and ctx.get_string("a") == ""
    assert ctx.get("missing", 7) == 7


def test_json_response():
    ctx = RequestContext()
    ctx.json(201, {"k": "v"})
    assert ctx.status == 201
    assert json.loads(bytes(ctx.body)) == {"k": "v"}
    assert ctx.headers["Content-Type"].startswith("application/json")


def test_write_appends():
    ctx = RequestContext()
    ctx.write("ab")
    ctx.write(b"cd")
    assert bytes(ctx.body) == b"abcd"


def test_completion_lookup():
    ctx = RequestContext()
    assert get_completion(ctx) == Completion()
    c = Completion(model="m")
    ctx.set(GIN_COMPLETION, c)
    assert get_completion(ctx) is c
    assert get_embedding(ctx).model == ""
    assert get_generation(ctx).model == ""


def test_tool_value_default_and_set():
    ctx = RequestContext()
    assert get_tool_value(ctx) == {"id": "-1", "enabled": False, "tasks": False}
    tool = Keyv(id="x", enabled=True, tasks=False)
    ctx.set(GIN_TOOL, tool)
    assert get_tool_value(ctx) is tool


def test_usage_matchers_websdk():
    ctx = RequestContext()
    assert get_completion_usage(ctx) is None
    assert get_matchers(ctx) == []
    assert not is_coze_websdk(ctx)
    ctx.set(GIN_COMPLETION_USAGE, {"total_tokens": 1})
    ctx.set(GIN_MATCHERS, ["m"])
    ctx.set(GIN_COZE_WEBSDK, True)
    assert get_completion_usage(ctx) == {"total_tokens": 1}
    assert get_matchers(ctx) == ["m"]
    assert is_coze_websdk(ctx)