import pytest

from llmadapter.context import GIN_COMPLETION, GIN_DEBUGGER, GIN_TOOL, RequestContext
from llmadapter.keyv import Keyv
from llmadapter.lifecycle import Environment
from llmadapter.messages import (
    END,
    ContentHolder,
    at,
    convert_role,
    is_bing,
    is_claude,
    is_gpt,
    parse_messages,
    regex_scope,
    split_to_messages,
)
from llmadapter.models import Completion
from llmadapter.tokenizer import Parser


def make_ctx(model="x", **values):
    ctx = RequestContext()
    ctx.set(GIN_COMPLETION, Completion(model=model))
    for key, value in values.items():
        ctx.set(key, value)
    return ctx


def test_split_roles():
    result = split_to_messages("user: hi\n\nassistant: hello\n\nuser: bye", True)
    assert result == [
        {"role": "user", "content": "hi"},
        {"role": "assistant", "content": "hello"},
        {"role": "user", "content": "bye"},
    ]


def test_split_merge_same_role():
    assert split_to_messages("user: a\n\nuser: b", True) == [{"role": "user", "content": "a\n\nb"}]
    assert split_to_messages("user: a\n\nuser: b", False) == [
        {"role": "user", "content": "a"},
        {"role": "user", "content": "b"},
    ]


def test_split_without_role_defaults_to_user():
    assert split_to_messages("hello", True) == [{"role": "user", "content": "hello"}]


def test_split_drops_blank_and_clears_notes():
    assert split_to_messages("user: \n\nassistant: ok", True) == [{"role": "assistant", "content": "ok"}]
    assert split_to_messages("user: <notes>\n</notes>x", True) == [{"role": "user", "content": "x"}]


def test_at():
    assert at("@12") is True
    assert at("@x") is False
    assert at("") is False
    assert at("12") is False


def test_regex_scope():
    assert regex_scope("/abc/gi") == "(?i)abc"
    assert regex_scope("/a/sm") == "(?sm)a"
    assert regex_scope("plain") == "plain"


def test_model_kinds():
    assert is_gpt("GPT-4") is True
    assert is_gpt("claude") is False
    assert is_bing("bing") is True


@pytest.mark.parametrize(
    "model, role, expected",
    [
        ("gpt-4", "user", ("<|start|>user\n", END)),
        ("gpt-4", "tool", ("<|start|>system\n", END)),
        ("claude-3", "user", ("\n\r\nHuman: ", "")),
        ("claude-3", "tool", ("\n\r\nSYSTEM: ", "")),
        ("bing", "user", ("Hu: ", "")),
        ("other", "user", ("<|user|>\n", END)),
    ],
)
def test_convert_role(model, role, expected):
    assert convert_role(make_ctx(model), role) == expected


def test_is_claude_coze_token():
    ctx = make_ctx(token="[claude=true]")
    assert is_claude(ctx, "coze/bot-space-1000-w") is True
    assert is_claude(ctx, "anything") is True
    assert is_claude(make_ctx(), "coze/bot-space-1000-w") is False


def test_parse_messages_debug():
    ctx = make_ctx()
    result, handlers = parse_messages(ctx, Parser("debug"), "hello <debug />", None, Environment())
    assert result == "hello "
    assert handlers == []
    assert ctx.get_bool(GIN_DEBUGGER) is True


def test_parse_messages_tool_choice():
    ctx = make_ctx()
    result, _ = parse_messages(
        ctx, Parser("toolChoice"), 'x <toolChoice tasks enabled id="abc"/>', None, Environment()
    )
    assert result == "x "
    assert ctx.get(GIN_TOOL) == {"id": "abc", "tasks": True, "enabled": True}


def test_parse_messages_specialized_flag():
    ctx = make_ctx()
    parse_messages(ctx, Parser("specialized"), "x <specialized enabled/>", None, Environment())
    assert ctx.get_bool("specialized") is True


def test_parse_messages_exec_order():
    ctx = make_ctx()
    result, handlers = parse_messages(
        ctx, Parser("a", "b"), "x <a/> y <b/>", lambda elem, clean: elem.label, Environment()
    )
    assert handlers == ["a", "b"]
    assert "x " in result


def test_content_holder_handle():
    ctx = make_ctx()
    completion = Completion(
        model="x",
        messages=[Keyv(role="user", content="hi <debug/>"), Keyv(role="assistant", content="ok")],
    )
    messages = ContentHolder(Environment()).handle(ctx, completion)
    assert messages == [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "ok"}]
    assert ctx.get_bool(GIN_DEBUGGER) is True


def _tag(messages, mode):
    assert mode == "txt"
    return [dict(m, chat="c", query="q") for m in messages]


def test_content_holder_specialized_claude():
    env = Environment({"specialized": True})
    completion = Completion(model="claude-3", messages=[Keyv(role="user", content="hi")])
    messages = ContentHolder(env, _tag).handle(make_ctx("claude-3"), completion)
    assert messages == [{"role": "user", "content": "hi"}]

    completion = Completion(model="you/claude", messages=[Keyv(role="user", content="hi")])
    messages = ContentHolder(env, _tag).handle(make_ctx("you/claude"), completion)
    assert messages[0]["chat"] == "c"