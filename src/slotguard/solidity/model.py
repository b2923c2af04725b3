"""Declarations extracted from Solidity sources.

Frozen dataclasses describing only what storage and initializer analysis
needs: contracts, their bases, state variables, user-defined types,
functions with the calls their bodies make, and NatSpec annotations.
Expressions are kept as raw text; statements are not modelled.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

# ---------------------------------------------------------------------------
# NatSpec
# ---------------------------------------------------------------------------

UNSAFE_ALLOW_TAG = "custom:oz-upgrades-unsafe-allow"
UPGRADES_FROM_TAG = "custom:oz-upgrades-from"
RENAMED_FROM_TAG = "custom:oz-renamed-from"
RETYPED_FROM_TAG = "custom:oz-retyped-from"
STORAGE_LOCATION_TAG = "custom:storage-location"


@dataclass(frozen=True)
class NatSpec:
    """Parsed ``@tag value`` pairs from doc comments.

    A tag may appear several times; values are kept in order.
    """

    tags: tuple[tuple[str, str], ...] = ()

    @classmethod
    def parse(cls, docs: list[str]) -> NatSpec:
        pairs: list[tuple[str, str]] = []
        for doc in docs:
            in_tag = False
            for raw in doc.splitlines():
                line = raw.strip()
                if line.startswith("@"):
                    tag, _, rest = line[1:].partition(" ")
                    pairs.append((tag, rest.strip()))
                    in_tag = True
                elif in_tag and line:
                    # Continuation of the previous tag
                    tag, value = pairs.pop()
                    pairs.append((tag, f"{value} {line}".strip()))
        return cls(tuple(pairs))

    def get_all(self, tag: str) -> list[str]:
        return [value for name, value in self.tags if name == tag]

    def get(self, tag: str) -> str | None:
        values = self.get_all(tag)
        return values[-1] if values else None

    @property
    def unsafe_allow(self) -> frozenset[str]:
        kinds: set[str] = set()
        for value in self.get_all(UNSAFE_ALLOW_TAG):
            kinds.update(value.split())
        return frozenset(kinds)

    @property
    def renamed_from(self) -> str | None:
        return self.get(RENAMED_FROM_TAG)

    @property
    def retyped_from(self) -> str | None:
        return self.get(RETYPED_FROM_TAG)

    @property
    def upgrades_from(self) -> str | None:
        return self.get(UPGRADES_FROM_TAG)

    @property
    def storage_location(self) -> str | None:
        return self.get(STORAGE_LOCATION_TAG)


EMPTY_NATSPEC = NatSpec()


# ---------------------------------------------------------------------------
# Type names
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ElementaryTypeName:
    name: str  # normalised: uint256, int8, address, bool, string, bytes, bytes32 ...
    payable: bool = False

    def __str__(self) -> str:
        return "address payable" if self.payable else self.name


@dataclass(frozen=True)
class UserDefinedTypeName:
    path: tuple[str, ...]  # ("Lib", "Struct") or ("Struct",)

    @property
    def name(self) -> str:
        return ".".join(self.path)

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class MappingTypeName:
    key: TypeName
    value: TypeName

    def __str__(self) -> str:
        return f"mapping({self.key} => {self.value})"


@dataclass(frozen=True)
class ArrayTypeName:
    base: TypeName
    length: str | None = None  # raw constant expression; None for dynamic arrays

    def __str__(self) -> str:
        return f"{self.base}[{self.length or ''}]"


@dataclass(frozen=True)
class FunctionTypeName:
    visibility: str = "internal"  # internal | external

    def __str__(self) -> str:
        return f"function {self.visibility}"


TypeName = Union[ElementaryTypeName, UserDefinedTypeName, MappingTypeName, ArrayTypeName, FunctionTypeName]


# ---------------------------------------------------------------------------
# Declarations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StateVariable:
    name: str
    type_name: TypeName
    visibility: str = "internal"
    constant: bool = False
    immutable: bool = False
    transient: bool = False
    initial_value: str | None = None
    natspec: NatSpec = EMPTY_NATSPEC
    line: int = 0

    @property
    def takes_storage(self) -> bool:
        return not (self.constant or self.immutable or self.transient)


@dataclass(frozen=True)
class StructMember:
    name: str
    type_name: TypeName
    line: int = 0


@dataclass(frozen=True)
class StructDefinition:
    name: str
    members: tuple[StructMember, ...]
    natspec: NatSpec = EMPTY_NATSPEC
    line: int = 0


@dataclass(frozen=True)
class EnumDefinition:
    name: str
    members: tuple[str, ...]
    line: int = 0


@dataclass(frozen=True)
class UserValueType:
    name: str
    underlying: ElementaryTypeName
    line: int = 0


@dataclass(frozen=True)
class ConstantDefinition:
    """File-level or contract-level ``constant`` with its raw value."""

    name: str
    type_name: TypeName
    value: str
    line: int = 0


@dataclass(frozen=True)
class FunctionCall:
    """A call site found in a function body, e.g. ``("super", "initialize")``."""

    path: tuple[str, ...]
    line: int = 0

    @property
    def name(self) -> str:
        return self.path[-1]

    @property
    def qualifier(self) -> str | None:
        return self.path[-2] if len(self.path) > 1 else None

    def __str__(self) -> str:
        return ".".join(self.path)


@dataclass(frozen=True)
class ModifierInvocation:
    name: str
    arguments: str | None = None
    line: int = 0


@dataclass(frozen=True)
class FunctionDefinition:
    name: str
    kind: str = "function"  # function | constructor | modifier | fallback | receive
    visibility: str = "public"
    mutability: str = "nonpayable"
    modifiers: tuple[ModifierInvocation, ...] = ()
    virtual: bool = False
    has_body: bool = True
    body: str = ""  # compact body text, for statement-free checks
    calls: tuple[FunctionCall, ...] = ()
    natspec: NatSpec = EMPTY_NATSPEC
    line: int = 0

    @property
    def modifier_names(self) -> frozenset[str]:
        return frozenset(m.name for m in self.modifiers)

    @property
    def is_public(self) -> bool:
        return self.visibility in ("public", "external")

    def calls_named(self, name: str) -> list[FunctionCall]:
        return [c for c in self.calls if c.name == name]


@dataclass(frozen=True)
class InheritanceSpecifier:
    name: str
    has_arguments: bool = False
    line: int = 0


@dataclass(frozen=True)
class ContractDefinition:
    name: str
    kind: str = "contract"  # contract | interface | library
    abstract: bool = False
    bases: tuple[InheritanceSpecifier, ...] = ()
    state_variables: tuple[StateVariable, ...] = ()
    structs: tuple[StructDefinition, ...] = ()
    enums: tuple[EnumDefinition, ...] = ()
    value_types: tuple[UserValueType, ...] = ()
    constants: tuple[ConstantDefinition, ...] = ()
    functions: tuple[FunctionDefinition, ...] = ()
    natspec: NatSpec = EMPTY_NATSPEC
    source_path: str = "<memory>"
    line: int = 0

    @property
    def base_names(self) -> list[str]:
        return [b.name for b in self.bases]

    @property
    def constructor(self) -> FunctionDefinition | None:
        for fn in self.functions:
            if fn.kind == "constructor":
                return fn
        return None

    def functions_named(self, name: str) -> list[FunctionDefinition]:
        return [f for f in self.functions if f.name == name and f.kind == "function"]

    def find_struct(self, name: str) -> StructDefinition | None:
        return next((s for s in self.structs if s.name == name), None)

    def find_enum(self, name: str) -> EnumDefinition | None:
        return next((e for e in self.enums if e.name == name), None)

    def find_value_type(self, name: str) -> UserValueType | None:
        return next((v for v in self.value_types if v.name == name), None)

    def src(self, line: int | None = None) -> str:
        return f"{self.source_path}:{line if line is not None else self.line}"


@dataclass(frozen=True)
class ImportDirective:
    path: str
    line: int = 0


@dataclass
class SourceUnit:
    """All declarations of one source file."""

    path: str
    contracts: list[ContractDefinition] = field(default_factory=list)
    structs: list[StructDefinition] = field(default_factory=list)
    enums: list[EnumDefinition] = field(default_factory=list)
    value_types: list[UserValueType] = field(default_factory=list)
    constants: list[ConstantDefinition] = field(default_factory=list)
    imports: list[ImportDirective] = field(default_factory=list)

    def find_contract(self, name: str) -> ContractDefinition | None:
        return next((c for c in self.contracts if c.name == name), None)
