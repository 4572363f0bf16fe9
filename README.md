# llmadapter

Building blocks for a server that speaks a common completion-style chat API:
request models, a per-request context, control tags inside message text,
flattening messages for an upstream model, stream matchers that hold back or
stop generated text, JSON and server-sent-event responses, and round-robin
selection over a pool of accounts.

## Installing

```
pip install .
```

## Modules

- `llmadapter.models`: `Completion`, `Generation` and `Embed` with
  `from_dict` for parsing request bodies (raising `ValueError` on wrong
  types), and `Model` with `to_dict` for model listings.
- `llmadapter.keyv`: `Keyv`, a `dict` with typed accessors such as
  `get_string`, `get_keyv`, `get_slice`, `get_int`, `matches`, `one_of` and
  `is_blank`.
- `llmadapter.context`: `RequestContext` holds values shared during one
  request (`set`, `get`, `get_bool`, `get_string`) and the response being built
  (`status`, `headers`, `body`, `write`, `json`). Helpers such as
  `get_completion` and `get_tool_value` read the well-known keys.
- `llmadapter.lifecycle`: `Environment` loads `config.yaml`-style YAML
  (`Environment.load(path)` gives an empty environment when the file is
  missing) and reads nested values by case-insensitive dotted keys
  (`get_string("server.proxied")`, `get_bool`, `get_int`, `get_string_map`,
  `set`). `add_initialized` and `add_exited` register hooks;
  `initialized(env)` runs the start-up hooks and runs the exit hooks on
  SIGINT or SIGTERM before exiting.
- `llmadapter.tokenizer`: `Parser(*schemas).parse(text)` splits text into
  `StrElem` and `NodeElem` items, recognising only the tag names given (or
  accepted by a callable schema). `NodeElem` offers `str_attr`, `int_attr`
  and `bool_attr`; `join_string` puts the text back together.
- `llmadapter.messages`: `ContentHolder(env).handle(ctx, completion)`
  flattens the messages into `role: text` blocks, applies the control tags
  and splits the text back into messages, merging runs of the same role.
  Also `convert_role`, `is_claude`, `is_gpt`, `is_bing`,
  `split_to_messages`, `at` and `regex_scope`.
- `llmadapter.matcher`: `SymbolMatcher`, `new_matchers(ctx, callback)` and
  `exec_matchers(matchers, raw, done)`. Matchers built from the request's
  stop sequences and role prefixes replace the text with `response.EOF` when
  they hit. Rewrite rules come from the `matcher` list in the configuration
  (`match`, `over`, `notice`, `regex` written as `"pattern": "replacement"`,
  `max`) or from `init_matchers`.
- `llmadapter.response`: `respond`, `echo`, `sse_response`,
  `tool_call_response`, `sse_tool_call_response`, `error`, `event` and
  `message_validator` write OpenAI-style bodies into a `RequestContext`.
  Streamed content is sent in pieces of at most 1000 characters, followed by a
  stop chunk and `data: [DONE]`.
- `llmadapter.poll`: `PollContainer` hands out values in turn that pass its
  `condition`, marks them in use and returns them to the ready state
  `reset_time` seconds after they were marked. It raises `PollError` when
  nothing can be handed out.
- `llmadapter.common`: `random_hex`, `calc_hex` (SHA-1), `save_base64` and
  `download` (both write into `tmp/YYYY/MM/DD/`), `new_ppl_session` for a
  proxy taken from the `ppl` endpoint, and `exec_helper` / `exit_helper` for
  the browser helper under `bin/`. Importing it registers start-up hooks that
  build the shared HTTP sessions and, when `browser-less.enabled` is set,
  start the helper.
- `llmadapter.logger`: `init_logger(base_path, level)` logs to a file rotated
  daily (seven kept) and to stdout, through `CallerFormatter`.

## Control tags in messages

The text of a message may hold tags that `ContentHolder.handle` takes out
before the conversation goes on. A tag at the very start of the flattened
text is left alone.

- `<debug />` sets the debug flag in the context
- `<echo />` sets the echo flag
- `<toolChoice id="..." tasks enabled />` stores the tool settings
- `<specialized enabled="false" />` turns special handling on or off

## Example

```python
from llmadapter.context import GIN_DEBUGGER, RequestContext
from llmadapter.messages import ContentHolder
from llmadapter.models import Completion

completion = Completion.from_dict({
    "model": "gpt-4o",
    "messages": [{"role": "user", "content": "hello <debug />"}],
})
ctx = RequestContext("POST", "/v1/chat/completions")
messages = ContentHolder().handle(ctx, completion)
# messages == [{"role": "user", "content": "hello"}]
# ctx.get_bool(GIN_DEBUGGER) is True
```

## What this package does not do

It is a library. It has no command to run, no HTTP server or routing of
requests to model adapters, no tool-call planning and no cache of planned
tool tasks. It provides the pieces such a server is built from; serving
requests is left to the application that uses it.