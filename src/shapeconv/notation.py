"""Textual type notation.

``parse_type`` reads the same notation ``str(TypeDescriptor)`` writes::

    parse_type("[4]int32")
    parse_type("map[string][]float64")
    parse_type("struct{X int; Y int `json:\\"y\\"`; _hidden bool}")
    parse_type("func(int, ...string) (bool, error)", names={"error": ERR})
    parse_type("*Point", names={"Point": point_t})

Grammar (informal)::

    type      := NAME | "*" type | "[" "]" type | "[" NUMBER "]" type
               | "map" "[" type "]" type
               | "chan" type | "chan" "<-" type | "<-" "chan" type
               | "func" "(" [param {"," param}] ")" [results]
               | "struct" "{" [field {";" field}] "}"
               | "interface" "{" [NAME {";" NAME}] "}"
    param     := ["..."] type
    results   := type | "(" type {"," type} ")"
    field     := NAME type [TAG] | type [TAG]          # second form: embedded

Names resolve against *names* first, then the predeclared types
(``byte``, ``rune`` and ``any`` included).
"""

from __future__ import annotations

from typing import List, Mapping, NamedTuple, Optional

import regex

from .errors import TypeNotationError
from .kinds import ChanDir
from .typedesc import (
    BUILTINS, Field, TypeDescriptor, array_of, chan_of, func_of, interface_of,
    map_of, pointer_to, slice_of, struct_of,
)

_TOKEN = regex.compile(
    r"""
      (?P<ws>\s+)
    | (?P<ellipsis>\.\.\.)
    | (?P<arrow><-)
    | (?P<number>\d+)
    | (?P<name>[^\W\d]\w*(?:\.[^\W\d]\w*)?)
    | (?P<tag>`[^`]*`|"(?:[^"\\]|\\.)*")
    | (?P<punct>[\[\]{}()*,;])
    """,
    regex.VERBOSE,
)


class _Token(NamedTuple):
    kind: str
    text: str
    pos: int


def _tokenize(text: str) -> List[_Token]:
    tokens: List[_Token] = []
    pos = 0
    while pos < len(text):
        m = _TOKEN.match(text, pos)
        if m is None:
            raise TypeNotationError(f"unexpected character {text[pos]!r}", text, pos)
        if m.lastgroup != "ws":
            tokens.append(_Token(m.lastgroup, m.group(), pos))
        pos = m.end()
    tokens.append(_Token("end", "", len(text)))
    return tokens


def _unquote(tag: str) -> str:
    body = tag[1:-1]
    if tag[0] == '"':
        body = regex.sub(r"\\(.)", r"\1", body)
    return body


class _Parser:
    def __init__(self, text: str, names: Mapping[str, TypeDescriptor]) -> None:
        self.text = text
        self.names = names
        self.tokens = _tokenize(text)
        self.i = 0

    # -- token helpers ------------------------------------------------------

    def peek(self, offset: int = 0) -> _Token:
        return self.tokens[min(self.i + offset, len(self.tokens) - 1)]

    def next(self) -> _Token:
        tok = self.peek()
        self.i += 1
        return tok

    def accept(self, text: str) -> bool:
        if self.peek().text == text and self.peek().kind != "tag":
            self.i += 1
            return True
        return False

    def expect(self, text: str) -> _Token:
        tok = self.next()
        if tok.text != text:
            self.fail(f"expected {text!r}, got {tok.text or 'end of input'!r}", tok)
        return tok

    def fail(self, message: str, tok: Optional[_Token] = None) -> None:
        tok = tok or self.peek()
        raise TypeNotationError(message, self.text, tok.pos)

    def starts_type(self) -> bool:
        tok = self.peek()
        return tok.kind == "name" or tok.text in ("*", "[", "<-", "(")

    # -- grammar ------------------------------------------------------------

    def parse(self) -> TypeDescriptor:
        t = self.type()
        if self.peek().kind != "end":
            self.fail(f"unexpected {self.peek().text!r}")
        return t

    def type(self) -> TypeDescriptor:
        tok = self.peek()

        if self.accept("*"):
            return pointer_to(self.type())
        if self.accept("("):
            t = self.type()
            self.expect(")")
            return t
        if self.accept("["):
            if self.accept("]"):
                return slice_of(self.type())
            n = self.next()
            if n.kind != "number":
                self.fail("expected array length", n)
            self.expect("]")
            return array_of(int(n.text), self.type())
        if self.accept("<-"):
            self.expect("chan")
            return chan_of(self.type(), ChanDir.RECV)

        if tok.kind != "name":
            self.fail(f"expected a type, got {tok.text or 'end of input'!r}")
        self.i += 1

        if tok.text == "map":
            self.expect("[")
            key = self.type()
            self.expect("]")
            return map_of(key, self.type())
        if tok.text == "chan":
            if self.accept("<-"):
                return chan_of(self.type(), ChanDir.SEND)
            return chan_of(self.type())
        if tok.text == "func":
            return self.func()
        if tok.text == "struct":
            return self.struct()
        if tok.text == "interface":
            return self.interface()
        return self.lookup(tok)

    def lookup(self, tok: _Token) -> TypeDescriptor:
        t = self.names.get(tok.text) or BUILTINS.get(tok.text)
        if t is None:
            self.fail(f"unknown type {tok.text!r}", tok)
        return t

    def func(self) -> TypeDescriptor:
        self.expect("(")
        params: List[TypeDescriptor] = []
        variadic = False
        if not self.accept(")"):
            while True:
                if variadic:
                    self.fail("variadic parameter must be last")
                if self.accept("..."):
                    variadic = True
                    params.append(slice_of(self.type()))
                else:
                    params.append(self.type())
                if self.accept(")"):
                    break
                self.expect(",")

        results: List[TypeDescriptor] = []
        if self.peek().text == "(":
            self.next()
            if not self.accept(")"):
                while True:
                    results.append(self.type())
                    if self.accept(")"):
                        break
                    self.expect(",")
        elif self.starts_type():
            results.append(self.type())
        return func_of(params, results, variadic)

    def struct(self) -> TypeDescriptor:
        self.expect("{")
        fields: List[Field] = []
        while not self.accept("}"):
            fields.append(self.field())
            if not self.accept(";") and self.peek().text != "}":
                self.fail(f"expected ';' or '}}', got {self.peek().text!r}")
        try:
            return struct_of(*fields)
        except ValueError as e:
            self.fail(str(e))

    def field(self) -> Field:
        tok = self.peek()
        after = self.peek(1)
        named = tok.kind == "name" and after.text not in (";", "}") and after.kind not in ("tag", "end")
        if named and tok.text not in ("map", "chan", "func", "struct", "interface"):
            self.next()
            f = Field(tok.text, self.type())
        else:
            t = self.type()
            base = t.elem if t.kind.name == "POINTER" else t
            if base.name is None:
                self.fail("embedded field must be a named type", tok)
            f = Field(base.name, t, embedded=True)

        if self.peek().kind == "tag":
            f = Field(f.name, f.type, f.embedded, _unquote(self.next().text))
        return f

    def interface(self) -> TypeDescriptor:
        self.expect("{")
        methods: List[str] = []
        while not self.accept("}"):
            tok = self.next()
            if tok.kind != "name":
                self.fail("expected method name", tok)
            methods.append(tok.text)
            if not self.accept(";") and self.peek().text != "}":
                self.fail(f"expected ';' or '}}', got {self.peek().text!r}")
        return interface_of(*methods)


def parse_type(text: str, names: Optional[Mapping[str, TypeDescriptor]] = None) -> TypeDescriptor:
    """Parse type notation *text* into a ``TypeDescriptor``."""
    return _Parser(text, names or {}).parse()
