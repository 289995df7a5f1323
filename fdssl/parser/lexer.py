"""Token stream over FDSSL source text.

Tokenizing is done by lark's basic lexer using the terminals declared in
``grammar/fdssl.lark``. The parsers walk the resulting list through a
``TokenStream`` that supports marking and resetting, so an alternative
that fails can be retried from where it started.
"""

from __future__ import annotations
from pathlib import Path
from typing import Iterable

from lark import Lark, Token
from lark.exceptions import UnexpectedCharacters

from fdssl.parser.ast_nodes import SourceLocation

_GRAMMAR_PATH = Path(__file__).parent.parent / "grammar" / "fdssl.lark"

_lexer = Lark(
    _GRAMMAR_PATH.read_text(encoding="utf-8"),
    parser="lalr",
    lexer="basic",
)

COMMENT_TYPES = frozenset({"LINE_COMMENT", "BLOCK_COMMENT"})

# Human-readable spelling of each terminal, used in error messages.
_DISPLAY = {
    t.name: (f"'{t.pattern.value}'" if t.pattern.type == "str" else t.name.lower())
    for t in _lexer.terminals
}


def describe(token_type: str) -> str:
    return _DISPLAY.get(token_type, token_type)


class ParseError(Exception):
    """Lexical or syntactic failure, positioned in the source text."""

    def __init__(self, message: str, line: int | None = None,
                 column: int | None = None, expected: Iterable[str] = ()):
        self.message = message
        self.line = line
        self.column = column
        self.expected = sorted(set(expected))
        super().__init__(self._format())

    def _format(self) -> str:
        text = self.message
        if self.expected:
            text += f" (expected {', '.join(self.expected)})"
        if self.line is not None:
            text = f"line {self.line}, column {self.column}: {text}"
        return text


def tokenize(source: str) -> list[Token]:
    """Split source text into tokens, keeping comment tokens."""
    try:
        return list(_lexer.lex(source))
    except UnexpectedCharacters as e:
        expected = [describe(name) for name in (e.allowed or ())]
        raise ParseError(f"unexpected character {e.char!r}", e.line, e.column, expected) from e


class TokenStream:
    """Cursor over a token list with furthest-failure error tracking."""

    def __init__(self, source: str):
        self.tokens = tokenize(source)
        self.pos = 0
        lines = source.split("\n")
        self._end = SourceLocation(len(lines), len(lines[-1]) + 1)
        self._fail_index = -1
        self._fail_expected: set[str] = set()
        self._fail_message: str | None = None

    # --- Cursor ---

    def _skip(self, i: int) -> int:
        while i < len(self.tokens) and self.tokens[i].type in COMMENT_TYPES:
            i += 1
        return i

    def peek(self, offset: int = 0) -> Token | None:
        i = self._skip(self.pos)
        for _ in range(offset):
            i = self._skip(i + 1)
        if i < len(self.tokens):
            return self.tokens[i]
        return None

    def at(self, *types: str, offset: int = 0) -> bool:
        tok = self.peek(offset)
        return tok is not None and tok.type in types

    def at_end(self) -> bool:
        return self.peek() is None

    def advance(self) -> Token:
        i = self._skip(self.pos)
        if i >= len(self.tokens):
            raise self.fail("unexpected end of input")
        self.pos = i + 1
        return self.tokens[i]

    def accept(self, token_type: str) -> Token | None:
        if self.at(token_type):
            return self.advance()
        return None

    def expect(self, token_type: str) -> Token:
        if not self.at(token_type):
            raise self.fail(expected=[describe(token_type)])
        return self.advance()

    def comment(self) -> Token | None:
        """Consume a comment token sitting directly at the cursor."""
        if self.pos < len(self.tokens) and self.tokens[self.pos].type in COMMENT_TYPES:
            tok = self.tokens[self.pos]
            self.pos += 1
            return tok
        return None

    def mark(self) -> int:
        return self.pos

    def reset(self, mark: int) -> None:
        self.pos = mark

    # --- Positions and errors ---

    def location(self, token: Token | None = None) -> SourceLocation:
        if token is None:
            token = self.peek()
        if token is None:
            return self._end
        return SourceLocation(token.line, token.column)

    def fail(self, message: str | None = None, expected: Iterable[str] = ()) -> ParseError:
        """Record a failure at the cursor and build the error to raise.

        The returned error always describes the furthest position any
        alternative reached, merging what was expected there.
        """
        index = self._skip(self.pos)
        if index > self._fail_index:
            self._fail_index = index
            self._fail_expected = set(expected)
            self._fail_message = message
        elif index == self._fail_index:
            self._fail_expected.update(expected)
            if message is not None:
                self._fail_message = message

        if self._fail_index < len(self.tokens):
            tok = self.tokens[self._fail_index]
            loc = SourceLocation(tok.line, tok.column)
            found = f"unexpected {tok.value!r}"
        else:
            loc = self._end
            found = "unexpected end of input"
        return ParseError(self._fail_message or found, loc.line, loc.column, self._fail_expected)
