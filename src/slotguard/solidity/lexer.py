"""Tokenizer for Solidity source text.

Produces a flat token list for the declaration parser. Ordinary comments
are dropped; NatSpec comments (``///`` and ``/** */``) are kept as ``doc``
tokens because upgrade annotations live in them.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from slotguard.core.errors import SolidityParseError


class TokenKind(str, Enum):
    IDENTIFIER = "identifier"
    NUMBER = "number"
    STRING = "string"
    HEX_STRING = "hex_string"
    PUNCT = "punct"
    DOC = "doc"
    EOF = "eof"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    value: str
    line: int
    column: int

    def is_punct(self, value: str) -> bool:
        return self.kind == TokenKind.PUNCT and self.value == value

    def is_word(self, value: str) -> bool:
        return self.kind == TokenKind.IDENTIFIER and self.value == value


# Longest first so that greedy matching works
_PUNCTUATION = sorted(
    [
        ">>>=", "<<=", ">>=", ">>>", "**", "=>", "==", "!=", "<=", ">=", "&&", "||",
        "++", "--", "+=", "-=", "*=", "/=", "%=", "|=", "&=", "^=", "<<", ">>", "->",
        ":=", "(", ")", "[", "]", "{", "}", ";", ",", ".", "?", ":", "=", "+", "-",
        "*", "/", "%", "!", "~", "&", "|", "^", "<", ">",
    ],
    key=len,
    reverse=True,
)

_STRING_PREFIXES = ("unicode", "hex")


def _is_ident_start(ch: str) -> bool:
    return ch.isalpha() or ch in "_$"


def _is_ident_part(ch: str) -> bool:
    return ch.isalnum() or ch in "_$"


class _Scanner:
    def __init__(self, text: str, path: str):
        self.text = text
        self.path = path
        self.pos = 0
        self.line = 1
        self.col = 1
        self.tokens: list[Token] = []

    def error(self, message: str, line: int | None = None, col: int | None = None) -> SolidityParseError:
        return SolidityParseError(
            message,
            source_path=self.path,
            line=line or self.line,
            column=col or self.col,
        )

    def peek(self, offset: int = 0) -> str:
        idx = self.pos + offset
        return self.text[idx] if idx < len(self.text) else ""

    def advance(self, count: int = 1) -> str:
        chunk = self.text[self.pos:self.pos + count]
        for ch in chunk:
            if ch == "\n":
                self.line += 1
                self.col = 1
            else:
                self.col += 1
        self.pos += count
        return chunk

    def emit(self, kind: TokenKind, value: str, line: int, col: int) -> None:
        self.tokens.append(Token(kind, value, line, col))

    def run(self) -> list[Token]:
        text = self.text
        while self.pos < len(text):
            ch = self.peek()
            line, col = self.line, self.col

            if ch.isspace():
                self.advance()
            elif text.startswith("///", self.pos) and not text.startswith("////", self.pos):
                self._doc_line(line, col)
            elif text.startswith("//", self.pos):
                while self.pos < len(text) and self.peek() != "\n":
                    self.advance()
            elif text.startswith("/**", self.pos) and not text.startswith("/**/", self.pos):
                self._block_comment(line, col, doc=True)
            elif text.startswith("/*", self.pos):
                self._block_comment(line, col, doc=False)
            elif ch in "\"'":
                self.emit(TokenKind.STRING, self._string(), line, col)
            elif _is_ident_start(ch):
                word = self._identifier()
                if word in _STRING_PREFIXES and self.peek() in ("\"", "'"):
                    kind = TokenKind.HEX_STRING if word == "hex" else TokenKind.STRING
                    self.emit(kind, self._string(), line, col)
                else:
                    self.emit(TokenKind.IDENTIFIER, word, line, col)
            elif ch.isdigit() or (ch == "." and self.peek(1).isdigit()):
                self.emit(TokenKind.NUMBER, self._number(), line, col)
            else:
                for punct in _PUNCTUATION:
                    if text.startswith(punct, self.pos):
                        self.advance(len(punct))
                        self.emit(TokenKind.PUNCT, punct, line, col)
                        break
                else:
                    raise self.error(f"Unexpected character {ch!r}")

        self.emit(TokenKind.EOF, "", self.line, self.col)
        return self.tokens

    def _doc_line(self, line: int, col: int) -> None:
        self.advance(3)
        start = self.pos
        while self.pos < len(self.text) and self.peek() != "\n":
            self.advance()
        self.emit(TokenKind.DOC, self.text[start:self.pos].strip(), line, col)

    def _block_comment(self, line: int, col: int, *, doc: bool) -> None:
        end = self.text.find("*/", self.pos + 2)
        if end < 0:
            raise self.error("Unterminated block comment", line, col)
        body = self.text[self.pos + (3 if doc else 2):end]
        self.advance(end + 2 - self.pos)
        if doc:
            cleaned = []
            for raw in body.splitlines():
                stripped = raw.strip()
                if stripped.startswith("*"):
                    stripped = stripped[1:].strip()
                cleaned.append(stripped)
            self.emit(TokenKind.DOC, "\n".join(cleaned).strip(), line, col)

    def _string(self) -> str:
        quote = self.advance()
        line, col = self.line, self.col - 1
        chars: list[str] = []
        while True:
            ch = self.peek()
            if ch == "" or ch == "\n":
                raise self.error("Unterminated string literal", line, col)
            self.advance()
            if ch == "\\":
                chars.append(self.advance())
                continue
            if ch == quote:
                return "".join(chars)
            chars.append(ch)

    def _identifier(self) -> str:
        start = self.pos
        while self.pos < len(self.text) and _is_ident_part(self.peek()):
            self.advance()
        return self.text[start:self.pos]

    def _number(self) -> str:
        start = self.pos
        if self.peek() == "0" and self.peek(1) in ("x", "X"):
            self.advance(2)
            while self.peek() and (self.peek() in "0123456789abcdefABCDEF_"):
                self.advance()
            return self.text[start:self.pos]
        while self.peek() and (self.peek().isdigit() or self.peek() in "._"):
            # Stop on member access such as `1.foo`; numbers never contain two dots
            if self.peek() == "." and not self.peek(1).isdigit():
                break
            self.advance()
        if self.peek() in "eE" and (self.peek(1).isdigit() or (self.peek(1) == "-" and self.peek(2).isdigit())):
            self.advance(2)
            while self.peek().isdigit():
                self.advance()
        return self.text[start:self.pos]


def tokenize(text: str, path: str = "<memory>") -> list[Token]:
    """Split Solidity source into tokens, ending with an ``eof`` token."""
    return _Scanner(text, path).run()
