"""Structured model of a Solidity source unit."""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class ContractKind(str, Enum):
    CONTRACT = "contract"
    INTERFACE = "interface"
    LIBRARY = "library"
    ABSTRACT = "abstract"


class FunctionKind(str, Enum):
    FUNCTION = "function"
    CONSTRUCTOR = "constructor"
    FALLBACK = "fallback"
    RECEIVE = "receive"


VISIBILITIES = ("public", "external", "internal", "private")
MUTABILITIES = ("pure", "view", "nonpayable", "payable")
STORAGE_LOCATIONS = ("memory", "storage", "calldata")


@dataclass(frozen=True)
class Parameter:
    """A function, event or modifier parameter."""
    name: str
    type: str
    storage_location: Optional[str] = None
    indexed: bool = False


@dataclass(frozen=True)
class ExternalCall:
    """A call whose receiver is another contract: ``token.transfer`` or ``IERC20(x).transfer``."""
    contract: str
    function: str

    def __str__(self) -> str:
        return f"{self.contract}.{self.function}"


@dataclass(frozen=True)
class Function:
    """A function, constructor, fallback or receive definition."""
    name: str
    kind: FunctionKind
    visibility: str
    mutability: str
    parameters: Tuple[Parameter, ...]
    returns: Tuple[Parameter, ...]
    modifiers: Tuple[str, ...]
    line_start: int
    line_end: int
    calls: Tuple[str, ...]
    external_calls: Tuple[ExternalCall, ...]
    complexity: int

    @property
    def is_constructor(self) -> bool:
        return self.kind is FunctionKind.CONSTRUCTOR

    @property
    def key(self) -> str:
        """Lookup key: the name, or the kind for unnamed special functions."""
        return self.name or self.kind.value

    @property
    def is_externally_visible(self) -> bool:
        return self.visibility in ("public", "external")


@dataclass(frozen=True)
class Variable:
    """A state variable declaration."""
    name: str
    type: str
    visibility: str
    is_constant: bool
    is_immutable: bool
    line_start: int
    line_end: int


@dataclass(frozen=True)
class Event:
    name: str
    parameters: Tuple[Parameter, ...]
    line_start: int
    line_end: int
    anonymous: bool = False


@dataclass(frozen=True)
class Modifier:
    name: str
    parameters: Tuple[Parameter, ...]
    line_start: int
    line_end: int


@dataclass(frozen=True)
class Import:
    """An import directive. ``symbols`` is empty for bare or default imports."""
    path: str
    symbols: Tuple[str, ...] = ()
    alias: Optional[str] = None


@dataclass(frozen=True)
class StructMember:
    name: str
    type: str


@dataclass(frozen=True)
class StructDefinition:
    name: str
    members: Tuple[StructMember, ...]
    line_start: int
    line_end: int


@dataclass(frozen=True)
class EnumDefinition:
    name: str
    values: Tuple[str, ...]
    line_start: int
    line_end: int


@dataclass(frozen=True)
class ContractModel:
    """Everything the differencers and classifiers need to know about one source unit.

    Built fresh by each parse; never mutated afterwards.
    """
    name: str
    kind: ContractKind
    pragma: str
    imports: Tuple[Import, ...]
    inherited_contracts: Tuple[str, ...]
    functions: Tuple[Function, ...]
    events: Tuple[Event, ...]
    variables: Tuple[Variable, ...]
    modifiers: Tuple[Modifier, ...]
    structs: Tuple[StructDefinition, ...]
    enums: Tuple[EnumDefinition, ...]
    total_lines: int
    complexity: int

    @classmethod
    def empty(cls, name: str = "Unknown") -> "ContractModel":
        """Stand-in for a side whose source could not be parsed."""
        return cls(
            name=name,
            kind=ContractKind.CONTRACT,
            pragma="",
            imports=(),
            inherited_contracts=(),
            functions=(),
            events=(),
            variables=(),
            modifiers=(),
            structs=(),
            enums=(),
            total_lines=0,
            complexity=0,
        )

    def function(self, key: str) -> Optional[Function]:
        """Last function declared under ``key``, if any."""
        found = None
        for fn in self.functions:
            if fn.key == key:
                found = fn
        return found

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
