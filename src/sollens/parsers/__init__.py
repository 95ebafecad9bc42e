"""Solidity parsing and the contract model."""

from .contract_model import (
    ContractKind, ContractModel, EnumDefinition, Event, ExternalCall, Function, FunctionKind,
    Import, Modifier, Parameter, StructDefinition, StructMember, Variable,
)
from .syntax import SyntaxNode, lower, walk
from .solidity_parser import SolidityParser, parse

__all__ = [
    "ContractKind", "ContractModel", "EnumDefinition", "Event", "ExternalCall", "Function",
    "FunctionKind", "Import", "Modifier", "Parameter", "StructDefinition", "StructMember", "Variable",
    "SyntaxNode", "lower", "walk",
    "SolidityParser", "parse",
]
