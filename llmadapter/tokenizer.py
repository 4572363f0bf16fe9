"""A small lexer and parser for inline control tags such as ``<debug/>``."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable, Iterable, Union

EOF = "EOF"
STR = "str"
IDENT = "ident"
SLASH = "sL"
LT = "Lt"
RT = "Rt"

_NUL = "\0"
_INT_RE = re.compile(r"[+-]?[0-9]+")
_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1
_BOOLS = {
    "1": True, "t": True, "T": True, "TRUE": True, "true": True, "True": True,
    "0": False, "f": False, "F": False, "FALSE": False, "false": False, "False": False,
}

Schema = Union[str, Callable[[str], bool]]


class Kind(IntEnum):
    STR = 0
    IDENT = 1


@dataclass(frozen=True)
class Token:
    kind: str
    literal: str
    pos: int


def _is_letter(ch: str) -> bool:
    return "a" <= ch <= "z" or "A" <= ch <= "Z"


def _is_digit(ch: str) -> bool:
    return "0" <= ch <= "9"


def _is_word(ch: str) -> bool:
    return _is_letter(ch) or _is_digit(ch) or ch == "_"


def _is_tag_name(ch: str) -> bool:
    return _is_word(ch) or ch == "@"


class Lexer:
    """Splits text into tag punctuation, tag names and plain strings."""

    def __init__(self, text: str):
        self._input = text
        self.pos = -1
        self.ch = _NUL

    def next_token(self) -> Token:
        self._read_char()
        ch = self.ch
        if ch == _NUL:
            return self._token(EOF, "")
        if ch == "<":
            return self._token(LT, "<")
        if ch == ">":
            return self._token(RT, ">")
        if ch == "/":
            return self._token(SLASH, "/")

        literal = self._read_identifier()
        if literal:
            return self._token(IDENT, literal)
        return self._token(STR, self._read_string())

    def position(self, pos: int) -> None:
        """Move the cursor to ``pos``, clamped to the input."""
        size = len(self._input)
        pos = max(0, min(pos, size - 1))
        self.pos = pos
        self.ch = self._input[pos] if size else _NUL

    def _token(self, kind: str, literal: str) -> Token:
        return Token(kind, literal, self.pos)

    def _read_char(self) -> None:
        self.pos += 1
        self.ch = self._input[self.pos] if self.pos < len(self._input) else _NUL

    def _peek_char(self) -> str:
        nxt = self.pos + 1
        return self._input[nxt] if nxt < len(self._input) else _NUL

    def _read_identifier(self) -> str:
        text = self._input
        start = self.pos
        if start == 0:
            return ""
        opened = text[start - 1] == "<" or (
            start > 1 and text[start - 1] == "/" and text[start - 2] == "<"
        )
        if not opened:
            return ""

        while True:
            if _is_tag_name(self.ch):
                self._read_char()
                continue
            if self.ch not in (" ", "/", ">"):
                self.pos = start
                self.ch = text[start]
                return ""
            self.position(self.pos - 1)
            return text[start:self.pos + 1]

    def _read_string(self) -> str:
        start = self.pos
        while True:
            nxt = self._peek_char()
            if nxt == "\\":
                self._read_char()
                if self._peek_char() in ("\\", ">"):
                    self._read_char()
            elif nxt in (_NUL, "<", ">", "/"):
                return self._input[start:self.pos + 1]
            else:
                self._read_char()


@dataclass
class StrElem:
    """Plain text between tags."""

    content: str

    @property
    def kind(self) -> Kind:
        return Kind.STR

    def __str__(self) -> str:
        return self.content


@dataclass
class NodeElem:
    """A recognised tag with its attributes and inner content."""

    name: str
    attributes: dict = field(default_factory=dict)
    content: str = ""

    @property
    def kind(self) -> Kind:
        return Kind.IDENT

    @property
    def label(self) -> str:
        return self.name

    def __str__(self) -> str:
        attr = ""
        if self.attributes:
            attr = " " + "".join(f"{k}={v}" for k, v in self.attributes.items())
        if not self.content:
            return f"<{self.name}{attr} />"
        return f"<{self.name}{attr}>{self.content}</{self.name}>"

    def str_attr(self, key: str) -> str | None:
        """The attribute value with surrounding quotes removed, or None if absent."""
        value = self.attributes.get(key)
        if value is None:
            return None
        if len(value) < 2 or value[0] != '"' or value[-1] != '"':
            return value
        return value[1:-1]

    def int_attr(self, key: str) -> int | None:
        """The attribute as a 32-bit integer, or None if absent or invalid."""
        value = self.attributes.get(key)
        if value is None or not _INT_RE.fullmatch(value):
            return None
        number = int(value)
        if not _INT32_MIN <= number <= _INT32_MAX:
            return None
        return number

    def bool_attr(self, key: str) -> bool | None:
        """The attribute as a boolean; a bare attribute is True; None if absent or invalid."""
        value = self.attributes.get(key)
        if value is None:
            return None
        if value == "":
            return True
        return _BOOLS.get(value)


Elem = Union[StrElem, NodeElem]


def _join(tokens: Iterable[Token]) -> str:
    return "".join(tok.literal for tok in tokens)


def _schema_matches(schema: Schema, target: str) -> bool:
    if isinstance(schema, str):
        return schema == target
    if callable(schema):
        return bool(schema(target))
    return False


def _is_closing(ident: str, tokens: list[Token]) -> bool:
    return (
        len(tokens) >= 4
        and tokens[0].kind == LT
        and tokens[1].kind == SLASH
        and tokens[2].kind == IDENT
        and tokens[2].literal == ident
        and tokens[3].kind == RT
    )


def _count_opening(ident: str, tokens: list[Token]) -> int:
    count = 0
    size = len(tokens)
    i = 0
    while i < size - 2:
        if tokens[i].kind == LT and tokens[i + 1].kind == IDENT and tokens[i + 1].literal == ident:
            after = tokens[i + 2].kind
            if after == RT:
                count += 1
                i += 3
                continue
            if after == SLASH:
                if i + 3 >= size:
                    return count
                if tokens[i + 3].kind == RT:
                    count += 1
                    i += 4
                    continue
        i += 1
    return count


class Parser:
    """Parses text into plain strings and the tags named by ``schemas``."""

    def __init__(self, *schemas: Schema):
        self.schemas = schemas
        self._lex: Lexer | None = None
        self._curr: Token | None = None
        self._peek: Token | None = None

    def parse(self, content: str) -> list[Elem]:
        self._lex = Lexer(content)
        self._curr = None
        self._peek = None

        elems: list[Elem] = []
        while not self._curr_is(EOF):
            if self._curr_is(LT):
                elem = self._parse_elem()
                if elem is not None:
                    elems.append(elem)
                    self._next()
                    continue
            elems.append(StrElem(self._curr.literal))
            self._next()
        return elems

    def _next(self) -> None:
        self._curr = self._peek
        self._peek = self._lex.next_token()

    def _seek(self, curr: Token, peek: Token) -> None:
        self._lex.position(peek.pos)
        self._curr = curr
        self._peek = peek

    def _curr_is(self, kind: str) -> bool:
        if self._curr is None:
            self._next()
        if self._curr is None:
            self._next()
        return self._curr.kind == kind

    def _peek_is(self, kind: str) -> bool:
        if self._peek is None:
            self._next()
        return self._peek.kind == kind

    def _each_token_of(self, *kinds: str) -> list[Token] | None:
        curr, peek = self._curr, self._peek
        tokens: list[Token] = []
        while True:
            self._next()
            if self._peek_is(EOF):
                self._seek(curr, peek)
                return None

            tokens.append(self._curr)
            if not self._peek_is(kinds[0]):
                continue

            self._next()
            for kind in kinds[1:]:
                tokens.append(self._curr)
                if not self._peek_is(kind):
                    break
                self._next()
            else:
                tokens.append(self._curr)
                return tokens

    def _parse_elem(self) -> NodeElem | None:
        if not self._curr_is(LT) or not self._peek_is(IDENT):
            return None
        target = self._peek.literal
        if not any(_schema_matches(s, target) for s in self.schemas):
            return None

        curr, peek = self._curr, self._peek
        tokens = self._each_token_of(RT)
        if not tokens:
            return None

        ident = tokens[0].literal
        if len(tokens) > 2 and tokens[-2].kind == SLASH:
            return NodeElem(ident, parse_attributes(_join(tokens[1:-2]).strip()))

        attributes = parse_attributes(_join(tokens[1:-1]).strip())
        depth = -1
        cached: list[Token] = []
        while True:
            chunk = self._each_token_of(LT, SLASH, IDENT, RT)
            if not chunk:
                if depth == -1:
                    self._seek(curr, peek)
                    return None
                return NodeElem(ident, attributes, _join(cached[:-4]))

            cached.extend(chunk)
            if not _is_closing(ident, chunk[-4:]):
                continue

            count = _count_opening(ident, chunk)
            if count > 0 and depth == -1:
                depth = 0
            depth += count
            if depth > 0:
                depth -= 1
                continue
            return NodeElem(ident, attributes, _join(cached[:-4]))


class _AttributeScanner:
    def __init__(self, text: str):
        self.text = text
        self.pos = -1

    def read_char(self) -> str:
        self.pos += 1
        if self.pos >= len(self.text):
            self.pos = len(self.text) - 1
            return _NUL
        return self.text[self.pos]

    def skip_whitespace(self) -> None:
        while True:
            ch = self.read_char()
            if ch == _NUL:
                return
            if ch not in "\t\n\r ":
                self.pos -= 1
                return

    def _read_run(self, accept: Callable[[str], bool], step_back: bool = True) -> str:
        start = self.pos
        found = False
        while True:
            ch = self.read_char()
            if ch == _NUL:
                break
            if accept(ch):
                found = True
                continue
            if step_back:
                self.pos -= 1
            break
        if not found:
            self.pos = start
            return ""
        return self.text[start + 1:self.pos + 1]

    def read_identifier(self) -> str:
        self.skip_whitespace()
        return self._read_run(_is_word)

    def read_digits(self) -> str:
        return self._read_run(_is_digit)

    def read_letters(self) -> str:
        return self._read_run(_is_letter, step_back=False)

    def read_quoted(self) -> str:
        start = self.pos
        while True:
            ch = self.read_char()
            if ch == _NUL:
                return ""
            if ch == "\\":
                self.read_char()
                continue
            if ch != '"':
                continue
            self.read_char()
            break
        return self.text[max(start, 0):self.pos + 1]


def parse_attributes(content: str) -> dict[str, str]:
    """Parse ``key=value`` pairs and bare flags from a tag's attribute text."""
    opts: dict[str, str] = {}
    if not content:
        return opts

    scanner = _AttributeScanner(content)
    while True:
        ident = scanner.read_identifier()
        if not ident:
            return opts

        ch = scanner.read_char()
        if ch != "=":
            if ch in (" ", _NUL):
                opts[ident] = ""
                continue
            return opts

        ch = scanner.read_char()
        if ch == '"':
            literal = scanner.read_quoted()
            if not literal:
                return opts
            opts[ident] = literal
            continue
        scanner.pos -= 1

        value = scanner.read_digits() or scanner.read_letters()
        if not value:
            return opts
        opts[ident] = value


def join_string(elems: Iterable[Elem]) -> str:
    return "".join(str(elem) for elem in elems)


def join_tokenizer(elems: Iterable[Elem]) -> str:
    return "".join(f" `{elem}` " for elem in elems)