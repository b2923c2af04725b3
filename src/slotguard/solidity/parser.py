"""Declaration-level Solidity parser.

Parses the parts of a source file that determine storage layout and
initialization behaviour:

* contracts, interfaces and libraries with their inheritance lists
* state variables (type, visibility, constant/immutable/transient, initializer)
* structs, enums, user-defined value types and constants (file or contract level)
* functions, constructors and modifiers with the call sites in their bodies
* NatSpec annotations attached to each declaration

Statements and expressions are not modelled; bodies are scanned for call
sites only. Unknown top-level constructs are skipped with a warning.

Usage::

    from slotguard.solidity.parser import parse_source

    unit = parse_source(Path("contracts/Vault.sol").read_text(), "contracts/Vault.sol")
    for contract in unit.contracts:
        print(contract.name, contract.base_names)
"""

from __future__ import annotations

import logging
import re

from slotguard.core.errors import SolidityParseError

from .lexer import Token, TokenKind, tokenize
from .model import (
    EMPTY_NATSPEC,
    ArrayTypeName,
    ConstantDefinition,
    ContractDefinition,
    ElementaryTypeName,
    EnumDefinition,
    FunctionCall,
    FunctionDefinition,
    FunctionTypeName,
    ImportDirective,
    InheritanceSpecifier,
    MappingTypeName,
    ModifierInvocation,
    NatSpec,
    SourceUnit,
    StateVariable,
    StructDefinition,
    StructMember,
    TypeName,
    UserDefinedTypeName,
    UserValueType,
)

logger = logging.getLogger(__name__)

_SIZED_ELEMENTARY = re.compile(r"^(u?int)(\d{1,3})$|^(bytes)(\d{1,2})$|^(u?fixed)(\d+x\d+)?$")

_VISIBILITY = frozenset({"public", "private", "internal", "external"})
_MUTABILITY = frozenset({"pure", "view", "payable", "nonpayable", "constant"})
_FUNCTION_KEYWORDS = frozenset({"function", "constructor", "modifier", "fallback", "receive"})
_CONTRACT_KEYWORDS = frozenset({"contract", "interface", "library"})
_NOT_CALLS = frozenset({
    "if", "for", "while", "return", "returns", "catch", "try", "assembly",
    "mapping", "function", "unchecked", "do", "else",
})
_CALL_PREFIX_SKIP = frozenset({"emit", "new", "revert", "error", "event"})


def normalize_elementary(name: str) -> str | None:
    """Return the canonical elementary type name, or None if *name* is not one."""
    if name in ("bool", "address", "string", "bytes"):
        return name
    if name == "uint":
        return "uint256"
    if name == "int":
        return "int256"
    if name == "byte":
        return "bytes1"
    if name in ("fixed", "ufixed"):
        return f"{name}128x18"
    match = _SIZED_ELEMENTARY.match(name)
    if not match:
        return None
    if match.group(1):
        bits = int(match.group(2))
        return name if 8 <= bits <= 256 and bits % 8 == 0 else None
    if match.group(3):
        size = int(match.group(4))
        return name if 1 <= size <= 32 else None
    return name


class _Parser:
    def __init__(self, text: str, path: str):
        self.path = path
        self.tokens: list[Token] = []
        self.docs: dict[int, list[str]] = {}

        pending: list[str] = []
        for token in tokenize(text, path):
            if token.kind == TokenKind.DOC:
                pending.append(token.value)
                continue
            if pending:
                self.docs[len(self.tokens)] = pending
                pending = []
            self.tokens.append(token)
        self.pos = 0

    # ------------------------------------------------------------------
    # Cursor helpers
    # ------------------------------------------------------------------

    def peek(self, offset: int = 0) -> Token:
        idx = min(self.pos + offset, len(self.tokens) - 1)
        return self.tokens[idx]

    def advance(self) -> Token:
        token = self.tokens[self.pos]
        if token.kind != TokenKind.EOF:
            self.pos += 1
        return token

    def at_eof(self) -> bool:
        return self.peek().kind == TokenKind.EOF

    def error(self, message: str, token: Token | None = None) -> SolidityParseError:
        token = token or self.peek()
        return SolidityParseError(message, source_path=self.path, line=token.line, column=token.column)

    def expect_punct(self, value: str) -> Token:
        token = self.peek()
        if not token.is_punct(value):
            raise self.error(f"Expected '{value}' but found '{token.value or 'end of file'}'")
        return self.advance()

    def expect_word(self, value: str) -> Token:
        token = self.peek()
        if not token.is_word(value):
            raise self.error(f"Expected '{value}' but found '{token.value or 'end of file'}'")
        return self.advance()

    def expect_identifier(self) -> Token:
        token = self.peek()
        if token.kind != TokenKind.IDENTIFIER:
            raise self.error(f"Expected identifier but found '{token.value or 'end of file'}'")
        return self.advance()

    def natspec_here(self) -> NatSpec:
        docs = self.docs.get(self.pos)
        return NatSpec.parse(docs) if docs else EMPTY_NATSPEC

    def balanced(self, open_: str, close: str) -> list[Token]:
        """Consume a bracketed group starting at *open_*; return the inner tokens."""
        start = self.expect_punct(open_)
        depth = 1
        inner: list[Token] = []
        while True:
            token = self.advance()
            if token.kind == TokenKind.EOF:
                raise self.error(f"Unbalanced '{open_}'", start)
            if token.is_punct(open_):
                depth += 1
            elif token.is_punct(close):
                depth -= 1
                if depth == 0:
                    return inner
            inner.append(token)

    def until_semicolon(self) -> list[Token]:
        """Consume tokens up to and including the next top-depth ';'."""
        start = self.peek()
        depth = 0
        collected: list[Token] = []
        while True:
            token = self.advance()
            if token.kind == TokenKind.EOF:
                raise self.error("Expected ';'", start)
            if token.kind == TokenKind.PUNCT:
                if token.value in "([{":
                    depth += 1
                elif token.value in ")]}":
                    depth -= 1
                elif token.value == ";" and depth == 0:
                    return collected
            collected.append(token)

    def skip_declaration(self) -> None:
        """Skip a construct ending either in ';' or in a balanced '{...}' block."""
        depth = 0
        while not self.at_eof():
            token = self.advance()
            if token.kind != TokenKind.PUNCT:
                continue
            if token.value in "([":
                depth += 1
            elif token.value in ")]":
                depth -= 1
            elif token.value == "{":
                self.pos -= 1
                self.balanced("{", "}")
                if depth == 0:
                    return
            elif token.value == ";" and depth == 0:
                return

    # ------------------------------------------------------------------
    # Source unit
    # ------------------------------------------------------------------

    def parse_source_unit(self) -> SourceUnit:
        unit = SourceUnit(path=self.path)
        while not self.at_eof():
            token = self.peek()
            if token.is_punct(";"):
                self.advance()
            elif token.is_word("pragma") or token.is_word("using"):
                self.until_semicolon()
            elif token.is_word("import"):
                unit.imports.append(self.parse_import())
            elif token.is_word("abstract") or (
                token.kind == TokenKind.IDENTIFIER and token.value in _CONTRACT_KEYWORDS
            ):
                unit.contracts.append(self.parse_contract())
            elif token.is_word("struct"):
                unit.structs.append(self.parse_struct())
            elif token.is_word("enum"):
                unit.enums.append(self.parse_enum())
            elif token.is_word("type") and self.peek(2).is_word("is"):
                unit.value_types.append(self.parse_value_type())
            elif token.is_word("function"):
                self.parse_function()  # free function
            elif token.is_word("error") or token.is_word("event"):
                self.until_semicolon()
            elif token.kind == TokenKind.IDENTIFIER and self._looks_like_constant():
                unit.constants.append(self.parse_file_constant())
            else:
                logger.warning(
                    "skipping unrecognised construct '%s' at %s:%d", token.value, self.path, token.line
                )
                self.skip_declaration()
        return unit

    def _looks_like_constant(self) -> bool:
        depth = 0
        for offset in range(0, 64):
            token = self.peek(offset)
            if token.kind == TokenKind.EOF:
                return False
            if token.kind == TokenKind.PUNCT:
                if token.value in "([":
                    depth += 1
                elif token.value in ")]":
                    depth -= 1
                elif token.value in (";", "{", "="):
                    return False
            if depth == 0 and token.is_word("constant"):
                return True
        return False

    def parse_import(self) -> ImportDirective:
        start = self.expect_word("import")
        tokens = self.until_semicolon()
        for token in tokens:
            if token.kind == TokenKind.STRING:
                return ImportDirective(path=token.value, line=start.line)
        raise self.error("Import directive without a path", start)

    def parse_file_constant(self) -> ConstantDefinition:
        line = self.peek().line
        type_name = self.parse_type_name()
        while self.peek().is_word("constant"):
            self.advance()
        name = self.expect_identifier().value
        self.expect_punct("=")
        value = _join(self.until_semicolon())
        return ConstantDefinition(name=name, type_name=type_name, value=value, line=line)

    # ------------------------------------------------------------------
    # Contracts
    # ------------------------------------------------------------------

    def parse_contract(self) -> ContractDefinition:
        natspec = self.natspec_here()
        start = self.peek()
        abstract = False
        if start.is_word("abstract"):
            abstract = True
            self.advance()
        kind_token = self.advance()
        if kind_token.value not in _CONTRACT_KEYWORDS:
            raise self.error("Expected contract, interface or library", kind_token)
        name = self.expect_identifier().value

        bases: list[InheritanceSpecifier] = []
        if self.peek().is_word("is"):
            self.advance()
            while True:
                line = self.peek().line
                path = self.parse_path()
                has_args = False
                if self.peek().is_punct("("):
                    has_args = bool(self.balanced("(", ")"))
                bases.append(InheritanceSpecifier(name=path[-1], has_arguments=has_args, line=line))
                if self.peek().is_punct(","):
                    self.advance()
                    continue
                break

        state_variables: list[StateVariable] = []
        structs: list[StructDefinition] = []
        enums: list[EnumDefinition] = []
        value_types: list[UserValueType] = []
        constants: list[ConstantDefinition] = []
        functions: list[FunctionDefinition] = []

        self.expect_punct("{")
        while not self.peek().is_punct("}"):
            token = self.peek()
            if token.kind == TokenKind.EOF:
                raise self.error(f"Unterminated contract '{name}'", start)
            if token.is_punct(";"):
                self.advance()
            elif token.is_word("struct"):
                structs.append(self.parse_struct())
            elif token.is_word("enum"):
                enums.append(self.parse_enum())
            elif token.is_word("type") and self.peek(2).is_word("is"):
                value_types.append(self.parse_value_type())
            elif token.kind == TokenKind.IDENTIFIER and token.value in _FUNCTION_KEYWORDS and not (
                token.value == "function" and self._is_function_type_variable()
            ):
                functions.append(self.parse_function())
            elif token.is_word("event") or token.is_word("error") or token.is_word("using"):
                self.until_semicolon()
            else:
                variable = self.parse_state_variable()
                state_variables.append(variable)
                if variable.constant and variable.initial_value is not None:
                    constants.append(ConstantDefinition(
                        name=variable.name,
                        type_name=variable.type_name,
                        value=variable.initial_value,
                        line=variable.line,
                    ))
        self.expect_punct("}")

        return ContractDefinition(
            name=name,
            kind=kind_token.value,
            abstract=abstract,
            bases=tuple(bases),
            state_variables=tuple(state_variables),
            structs=tuple(structs),
            enums=tuple(enums),
            value_types=tuple(value_types),
            constants=tuple(constants),
            functions=tuple(functions),
            natspec=natspec,
            source_path=self.path,
            line=start.line,
        )

    def _is_function_type_variable(self) -> bool:
        # `function (uint) external returns (bool) callback;` vs `function () external {...}`
        if not self.peek(1).is_punct("("):
            return False
        depth = 0
        offset = 1
        while True:
            token = self.peek(offset)
            if token.kind == TokenKind.EOF:
                return False
            if token.is_punct("(") or token.is_punct("["):
                depth += 1
            elif token.is_punct(")") or token.is_punct("]"):
                depth -= 1
            elif depth == 0:
                if token.is_punct("{"):
                    return False
                if token.is_punct("="):
                    return True
                if token.is_punct(";"):
                    before = self.peek(offset - 1)
                    return before.kind == TokenKind.IDENTIFIER and before.value not in (
                        _VISIBILITY | _MUTABILITY | {"virtual", "override"}
                    )
            offset += 1

    def parse_path(self) -> tuple[str, ...]:
        parts = [self.expect_identifier().value]
        while self.peek().is_punct(".") and self.peek(1).kind == TokenKind.IDENTIFIER:
            self.advance()
            parts.append(self.advance().value)
        return tuple(parts)

    # ------------------------------------------------------------------
    # Types
    # ------------------------------------------------------------------

    def parse_type_name(self) -> TypeName:
        token = self.peek()
        base: TypeName
        if token.is_word("mapping"):
            self.advance()
            self.expect_punct("(")
            key = self.parse_type_name()
            if self.peek().kind == TokenKind.IDENTIFIER:
                self.advance()  # named mapping key
            self.expect_punct("=>")
            value = self.parse_type_name()
            if self.peek().kind == TokenKind.IDENTIFIER:
                self.advance()  # named mapping value
            self.expect_punct(")")
            base = MappingTypeName(key=key, value=value)
        elif token.is_word("function"):
            self.advance()
            self.balanced("(", ")")
            visibility = "internal"
            while True:
                nxt = self.peek()
                if nxt.is_word("internal") or nxt.is_word("external"):
                    visibility = self.advance().value
                elif nxt.kind == TokenKind.IDENTIFIER and nxt.value in _MUTABILITY:
                    self.advance()
                elif nxt.is_word("returns"):
                    self.advance()
                    self.balanced("(", ")")
                else:
                    break
            base = FunctionTypeName(visibility=visibility)
        elif token.kind == TokenKind.IDENTIFIER:
            elementary = normalize_elementary(token.value)
            if elementary is not None:
                self.advance()
                payable = False
                if elementary == "address" and self.peek().is_word("payable"):
                    self.advance()
                    payable = True
                base = ElementaryTypeName(name=elementary, payable=payable)
            else:
                base = UserDefinedTypeName(path=self.parse_path())
        else:
            raise self.error(f"Expected type name but found '{token.value or 'end of file'}'")

        while self.peek().is_punct("["):
            inner = self.balanced("[", "]")
            base = ArrayTypeName(base=base, length=_join(inner) if inner else None)
        return base

    def parse_struct(self) -> StructDefinition:
        natspec = self.natspec_here()
        start = self.expect_word("struct")
        name = self.expect_identifier().value
        self.expect_punct("{")
        members: list[StructMember] = []
        while not self.peek().is_punct("}"):
            line = self.peek().line
            type_name = self.parse_type_name()
            member = self.expect_identifier().value
            self.expect_punct(";")
            members.append(StructMember(name=member, type_name=type_name, line=line))
        self.expect_punct("}")
        return StructDefinition(name=name, members=tuple(members), natspec=natspec, line=start.line)

    def parse_enum(self) -> EnumDefinition:
        start = self.expect_word("enum")
        name = self.expect_identifier().value
        inner = self.balanced("{", "}")
        members = tuple(t.value for t in inner if t.kind == TokenKind.IDENTIFIER)
        if not members:
            raise self.error(f"Enum '{name}' has no members", start)
        return EnumDefinition(name=name, members=members, line=start.line)

    def parse_value_type(self) -> UserValueType:
        start = self.expect_word("type")
        name = self.expect_identifier().value
        self.expect_word("is")
        underlying = self.parse_type_name()
        self.expect_punct(";")
        if not isinstance(underlying, ElementaryTypeName):
            raise self.error(f"User-defined value type '{name}' must wrap an elementary type", start)
        return UserValueType(name=name, underlying=underlying, line=start.line)

    # ------------------------------------------------------------------
    # State variables
    # ------------------------------------------------------------------

    def parse_state_variable(self) -> StateVariable:
        natspec = self.natspec_here()
        line = self.peek().line
        type_name = self.parse_type_name()

        visibility = "internal"
        constant = immutable = transient = False
        while True:
            token = self.peek()
            if token.kind != TokenKind.IDENTIFIER:
                break
            if token.value in _VISIBILITY:
                visibility = self.advance().value
            elif token.value == "constant":
                self.advance()
                constant = True
            elif token.value == "immutable":
                self.advance()
                immutable = True
            elif token.value == "transient" and self.peek(1).kind == TokenKind.IDENTIFIER:
                self.advance()
                transient = True
            elif token.value == "override":
                self.advance()
                if self.peek().is_punct("("):
                    self.balanced("(", ")")
            else:
                break

        name = self.expect_identifier().value
        initial_value = None
        if self.peek().is_punct("="):
            self.advance()
            initial_value = _join(self.until_semicolon())
        else:
            self.expect_punct(";")

        return StateVariable(
            name=name,
            type_name=type_name,
            visibility=visibility,
            constant=constant,
            immutable=immutable,
            transient=transient,
            initial_value=initial_value,
            natspec=natspec,
            line=line,
        )

    # ------------------------------------------------------------------
    # Functions
    # ------------------------------------------------------------------

    def parse_function(self) -> FunctionDefinition:
        natspec = self.natspec_here()
        keyword = self.advance()
        kind = keyword.value

        if kind == "function":
            name = self.expect_identifier().value if self.peek().kind == TokenKind.IDENTIFIER else "fallback"
        elif kind == "modifier":
            name = self.expect_identifier().value
        else:
            name = kind

        if kind != "modifier" or self.peek().is_punct("("):
            self.balanced("(", ")")

        visibility = "internal" if kind == "modifier" else "public"
        mutability = "nonpayable"
        virtual = False
        modifiers: list[ModifierInvocation] = []

        while True:
            token = self.peek()
            if token.is_punct("{") or token.is_punct(";"):
                break
            if token.kind != TokenKind.IDENTIFIER:
                raise self.error(f"Unexpected '{token.value}' in {kind} header")
            if token.value in _VISIBILITY:
                visibility = self.advance().value
            elif token.value in _MUTABILITY:
                mutability = self.advance().value
            elif token.value == "virtual":
                self.advance()
                virtual = True
            elif token.value == "override":
                self.advance()
                if self.peek().is_punct("("):
                    self.balanced("(", ")")
            elif token.value == "returns":
                self.advance()
                self.balanced("(", ")")
            else:
                path = self.parse_path()
                arguments = None
                if self.peek().is_punct("("):
                    arguments = _join(self.balanced("(", ")"))
                modifiers.append(ModifierInvocation(name=path[-1], arguments=arguments, line=token.line))

        has_body = True
        body = ""
        calls: tuple[FunctionCall, ...] = ()
        if self.peek().is_punct(";"):
            self.advance()
            has_body = False
        else:
            body_tokens = self.balanced("{", "}")
            body = _join(body_tokens)
            calls = tuple(extract_calls(body_tokens))

        return FunctionDefinition(
            name=name,
            kind=kind if kind != "function" or name != "fallback" else "fallback",
            visibility=visibility,
            mutability=mutability,
            modifiers=tuple(modifiers),
            virtual=virtual,
            has_body=has_body,
            body=body,
            calls=calls,
            natspec=natspec,
            line=keyword.line,
        )


def extract_calls(tokens: list[Token]) -> list[FunctionCall]:
    """Find call sites (``a.b.c(`` or ``x.call{value: v}(``) in a token stream."""
    calls: list[FunctionCall] = []
    count = len(tokens)
    i = 0
    while i < count:
        token = tokens[i]
        prev = tokens[i - 1] if i > 0 else None
        if token.kind != TokenKind.IDENTIFIER or token.value in _NOT_CALLS:
            i += 1
            continue
        if prev is not None and prev.kind == TokenKind.IDENTIFIER and prev.value in _CALL_PREFIX_SKIP:
            i += 1
            continue

        path: list[str]
        if prev is not None and prev.is_punct("."):
            before = tokens[i - 2] if i > 1 else None
            if before is not None and before.kind == TokenKind.IDENTIFIER:
                # Middle of a path already handled from its head
                i += 1
                continue
            path = ["<expr>", token.value]
        else:
            path = [token.value]

        j = i + 1
        while j + 1 < count and tokens[j].is_punct(".") and tokens[j + 1].kind == TokenKind.IDENTIFIER:
            path.append(tokens[j + 1].value)
            j += 2

        # Call options: x.call{value: v}(...)
        if j < count and tokens[j].is_punct("{") and len(path) > 1:
            depth = 0
            while j < count:
                if tokens[j].is_punct("{"):
                    depth += 1
                elif tokens[j].is_punct("}"):
                    depth -= 1
                    if depth == 0:
                        j += 1
                        break
                j += 1

        if j < count and tokens[j].is_punct("("):
            calls.append(FunctionCall(path=tuple(path), line=token.line))
        i += 1
    return calls


def _join(tokens: list[Token]) -> str:
    """Re-assemble tokens into compact source text."""
    out: list[str] = []
    for token in tokens:
        if token.kind == TokenKind.STRING:
            text = '"' + token.value.replace('"', '\\"') + '"'
        elif token.kind == TokenKind.HEX_STRING:
            text = f'hex"{token.value}"'
        else:
            text = token.value
        if out and _needs_space(out[-1], text):
            out.append(" ")
        out.append(text)
    return "".join(out)


def _needs_space(left: str, right: str) -> bool:
    return bool(left) and bool(right) and (left[-1].isalnum() or left[-1] in "_$") and (
        right[0].isalnum() or right[0] in "_$"
    )


def parse_source(text: str, path: str = "<memory>") -> SourceUnit:
    """Parse Solidity source text into a :class:`SourceUnit`."""
    unit = _Parser(text, path).parse_source_unit()
    logger.debug("parsed %s: %d contract(s)", path, len(unit.contracts))
    return unit
