"""Solidity source model: tokenizer, declaration parser and source loader."""

from .constexpr import evaluate_int, parse_number
from .lexer import Token, TokenKind, tokenize
from .model import (
    ArrayTypeName,
    ConstantDefinition,
    ContractDefinition,
    ElementaryTypeName,
    EnumDefinition,
    FunctionCall,
    FunctionDefinition,
    FunctionTypeName,
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
from .parser import parse_source
from .sources import SourceSet

__all__ = [
    "ArrayTypeName",
    "ConstantDefinition",
    "ContractDefinition",
    "ElementaryTypeName",
    "EnumDefinition",
    "FunctionCall",
    "FunctionDefinition",
    "FunctionTypeName",
    "InheritanceSpecifier",
    "MappingTypeName",
    "ModifierInvocation",
    "NatSpec",
    "SourceSet",
    "SourceUnit",
    "StateVariable",
    "StructDefinition",
    "StructMember",
    "Token",
    "TokenKind",
    "TypeName",
    "UserDefinedTypeName",
    "UserValueType",
    "evaluate_int",
    "parse_number",
    "parse_source",
    "tokenize",
]
