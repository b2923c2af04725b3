"""Evaluate integer constant expressions such as array lengths.

Supports number literals (decimal, hex, scientific, with underscores and
ether/time units), references to other integer constants, parentheses,
unary minus and the binary operators ``** * / % + - << >> & ^ |``.
"""

from __future__ import annotations

from collections.abc import Callable

from slotguard.core.errors import SolidityParseError

from .lexer import Token, TokenKind, tokenize

_UNITS = {
    "wei": 1,
    "gwei": 10**9,
    "ether": 10**18,
    "seconds": 1,
    "minutes": 60,
    "hours": 3600,
    "days": 86400,
    "weeks": 604800,
}

# operator -> (binding power, right associative)
_BINARY = {
    "|": (1, False),
    "^": (2, False),
    "&": (3, False),
    "<<": (4, False),
    ">>": (4, False),
    "+": (5, False),
    "-": (5, False),
    "*": (6, False),
    "/": (6, False),
    "%": (6, False),
    "**": (8, True),
}

Lookup = Callable[[str], "int | None"]


def parse_number(text: str) -> int:
    """Parse a Solidity integer literal (``1_000``, ``0xff``, ``2e18``)."""
    cleaned = text.replace("_", "")
    if cleaned.lower().startswith("0x"):
        return int(cleaned, 16)
    if "e" in cleaned.lower():
        mantissa, _, exponent = cleaned.lower().partition("e")
        exp = int(exponent)
        if "." in mantissa:
            whole, _, frac = mantissa.partition(".")
            exp -= len(frac)
            mantissa = whole + frac
        if exp < 0:
            raise ValueError(f"{text} is not an integer")
        return int(mantissa) * 10**exp
    if "." in cleaned:
        raise ValueError(f"{text} is not an integer")
    return int(cleaned)


class _Evaluator:
    def __init__(self, tokens: list[Token], lookup: Lookup, expr: str):
        self.tokens = tokens
        self.pos = 0
        self.lookup = lookup
        self.expr = expr

    def fail(self, message: str) -> SolidityParseError:
        return SolidityParseError(f"{message} in constant expression '{self.expr}'")

    def peek(self) -> Token:
        return self.tokens[self.pos]

    def advance(self) -> Token:
        token = self.tokens[self.pos]
        if token.kind != TokenKind.EOF:
            self.pos += 1
        return token

    def expression(self, min_power: int = 0) -> int:
        left = self.prefix()
        while True:
            token = self.peek()
            if token.kind != TokenKind.PUNCT or token.value not in _BINARY:
                return left
            power, right_assoc = _BINARY[token.value]
            if power < min_power:
                return left
            self.advance()
            right = self.expression(power if right_assoc else power + 1)
            left = self.apply(token.value, left, right)

    def prefix(self) -> int:
        token = self.advance()
        if token.is_punct("("):
            value = self.expression()
            if not self.advance().is_punct(")"):
                raise self.fail("Expected ')'")
            return value
        if token.is_punct("-"):
            return -self.expression(7)
        if token.kind == TokenKind.NUMBER:
            try:
                value = parse_number(token.value)
            except ValueError as exc:
                raise self.fail(str(exc)) from exc
            unit = self.peek()
            if unit.kind == TokenKind.IDENTIFIER and unit.value in _UNITS:
                self.advance()
                value *= _UNITS[unit.value]
            return value
        if token.kind == TokenKind.IDENTIFIER:
            name = token.value
            while self.peek().is_punct("."):
                self.advance()
                name += "." + self.advance().value
            value = self.lookup(name)
            if value is None:
                raise self.fail(f"Unknown constant '{name}'")
            return value
        raise self.fail(f"Unexpected '{token.value or 'end of expression'}'")

    def apply(self, op: str, left: int, right: int) -> int:
        if op in ("/", "%") and right == 0:
            raise self.fail("Division by zero")
        if op == "+":
            return left + right
        if op == "-":
            return left - right
        if op == "*":
            return left * right
        if op == "/":
            # Solidity truncates toward zero
            quotient = abs(left) // abs(right)
            return quotient if (left >= 0) == (right >= 0) else -quotient
        if op == "%":
            remainder = abs(left) % abs(right)
            return remainder if left >= 0 else -remainder
        if op == "**":
            if right < 0:
                raise self.fail("Negative exponent")
            return left**right
        if op == "<<":
            return left << right
        if op == ">>":
            return left >> right
        if op == "&":
            return left & right
        if op == "^":
            return left ^ right
        return left | right


def evaluate_int(expr: str, lookup: Lookup | None = None) -> int:
    """Evaluate *expr* to an integer, resolving identifiers through *lookup*."""
    tokens = tokenize(expr)
    evaluator = _Evaluator(tokens, lookup or (lambda name: None), expr)
    value = evaluator.expression()
    if evaluator.peek().kind != TokenKind.EOF:
        raise evaluator.fail(f"Unexpected '{evaluator.peek().value}'")
    return value
