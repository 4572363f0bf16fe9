"""Stream matchers that hold back, rewrite or stop generated text."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from .context import RequestContext, get_completion
from .lifecycle import Environment, add_initialized
from .messages import convert_role
from .response import EOF

log = logging.getLogger("llmadapter.matcher")

MAT_DEFAULT = 0   # not hit, try the next matcher
MAT_MATCHING = 1  # partially hit, text is held back
MAT_MATCHED = 2   # hit, no further matcher runs

_RULE_FORMAT = re.compile(r'"(.+)" *: *"(.*)"')
_REPLACEMENT_REF = re.compile(r"\$(\$|&|\d+|\{(\w+)\})")

Handler = Callable[[int, str], "tuple[int, str, str]"]


class Matcher(Protocol):
    def match(self, content: str, over: bool) -> tuple[int, str]:
        """Feed the next piece of text; return the state and the text to emit."""
        ...


class SymbolMatcher:
    """Matches a fixed text block going forward; ``*`` or an empty find matches anything."""

    def __init__(self, find: str, handler: Handler | None = None):
        self.find = find
        self.handler = handler
        self.cache = ""

    def match(self, content: str, over: bool) -> tuple[int, str]:
        content = self.cache + content
        find = self.find
        state = MAT_DEFAULT
        index = 0

        if find in ("", "*"):
            state = MAT_MATCHED
        else:
            pos = 0
            last = -1
            for index, ch in enumerate(content):
                if pos == len(find):
                    if content.endswith(find):
                        state = MAT_MATCHED
                    if self.handler is not None:
                        break
                    continue
                if find[pos] != ch:
                    pos = 0
                    last = -1
                    state = MAT_DEFAULT
                    continue
                if last == -1 or last == index - 1:
                    pos += 1
                    last = index
                    state = MAT_MATCHING

        if state == MAT_DEFAULT:
            self.cache = ""
            return MAT_DEFAULT, content

        if state == MAT_MATCHING:
            self.cache = content
            if find not in content:
                return MAT_MATCHING, ""
            state = MAT_MATCHED

        if self.handler is None:
            self.cache = ""
            return state, content

        state, leave_cache, result = self.handler(index, content)
        if state == MAT_MATCHED:
            self.cache = leave_cache
            return state, result
        if state == MAT_MATCHING:
            if over:
                return MAT_DEFAULT, content
            self.cache = result
            return MAT_MATCHING, ""
        return state, content


@dataclass
class MatcherRule:
    """A configured rewrite: ``regex`` is written as ``"pattern": "replacement"``."""

    match: str = ""
    over: str = ""
    notice: str = ""
    regex: str = ""
    max: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> "MatcherRule":
        if not isinstance(data, dict):
            raise ValueError("matcher entries must be mappings")
        return cls(
            match=str(data.get("match") or ""),
            over=str(data.get("over") or ""),
            notice=str(data.get("notice") or ""),
            regex=str(data.get("regex") or ""),
            max=int(data.get("max") or 0),
        )


_rules: list[MatcherRule] = []


def init_matchers(rules: list[MatcherRule]) -> None:
    """Set the configured rules used by every new set of matchers."""
    _rules[:] = list(rules)


def _substitute(replacement: str, found: re.Match) -> str:
    def ref(m: re.Match) -> str:
        token = m.group(1)
        if token == "$":
            return "$"
        if token == "&":
            return found.group(0)
        name = m.group(2) if m.group(2) is not None else token
        try:
            group = int(name) if name.isdigit() else name
            return found.group(group) or ""
        except (IndexError, error_types):
            return m.group(0)

    return _REPLACEMENT_REF.sub(ref, replacement)


error_types = (KeyError,)


def _rule_matcher(index: int, rule: MatcherRule, callback: Callable[[str], Any]) -> SymbolMatcher | None:
    if not rule.regex:
        log.error("no regular processing is configured: matcher[%d].regex", index)
        return None

    parts = _RULE_FORMAT.search(rule.regex)
    if parts is None:
        log.error("the format has not been written correctly: matcher[%d].regex", index)
        return None

    pattern, replacement = parts.group(1), parts.group(2)
    try:
        compiled = re.compile(pattern)
    except re.error as exc:
        raise ValueError(f"invalid pattern in matcher[{index}].regex: {exc}") from exc

    max_len = rule.max or 5
    notified = False

    def handler(position: int, content: str) -> tuple[int, str, str]:
        nonlocal notified
        if not notified:
            notified = True
            if rule.notice:
                callback(rule.notice)

        cache = ""
        if rule.over:
            if rule.over not in content:
                return MAT_MATCHING, "", content
            end = content.rfind(rule.over) + len(rule.over)
            cache = content[end:]
            content = content[:end]
        elif position + max_len > len(content) - 1:
            return MAT_MATCHING, "", content

        log.info("execute matcher[%s] content:\n%s", rule.match, content)
        result = compiled.sub(lambda m: _substitute(replacement, m), content, count=1)
        return MAT_MATCHED, cache, result

    return SymbolMatcher(rule.match, handler)


def _new_cancel(ctx: RequestContext) -> list[SymbolMatcher]:
    user_role, _ = convert_role(ctx, "user")
    system_role, _ = convert_role(ctx, "system")
    assistant_role, _ = convert_role(ctx, "assistant")
    sequences = list(get_completion(ctx).stop_sequences)
    first = {"pending": True}

    def make(match: str) -> SymbolMatcher:
        def handler(position: int, content: str) -> tuple[int, str, str]:
            if first["pending"] and match == user_role:
                first["pending"] = False
                return MAT_MATCHED, "", content.replace(match, "")
            log.info("matched block [%s], will response stop ...", match)
            return MAT_MATCHED, "", EOF

        return SymbolMatcher(match, handler)

    matchers = []
    for raw in sequences + [user_role, system_role, assistant_role, "H:", "A:"]:
        match = raw.strip()
        if match:
            matchers.append(make(match))
    return matchers


def new_matchers(ctx: RequestContext, callback: Callable[[str], Any]) -> list[SymbolMatcher]:
    """Configured rule matchers followed by stop-sequence matchers for this request."""
    matchers: list[SymbolMatcher] = []
    for index, rule in enumerate(_rules):
        matcher = _rule_matcher(index, rule, callback)
        if matcher is not None:
            matchers.append(matcher)
    matchers.extend(_new_cancel(ctx))
    return matchers


def exec_matchers(matchers: list, raw: str, done: bool) -> str:
    """Run matchers in order until one does not return the default state."""
    for matcher in matchers:
        state, raw = matcher.match(raw, done)
        if state != MAT_DEFAULT:
            break
    return raw


def _init_from_env(env: Environment) -> None:
    entries = env.get("matcher") or []
    if not isinstance(entries, list):
        raise ValueError("'matcher' must be a list")
    rules = [MatcherRule.from_dict(entry) for entry in entries]
    if rules:
        init_matchers(rules)


add_initialized(_init_from_env)