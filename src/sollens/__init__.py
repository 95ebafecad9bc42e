"""Structural parsing and version diffing of Solidity contracts."""

# parsers must load before analyzers: the parser imports the body analyzers
from .parsers import ContractModel, parse
from .core import (
    ContractDiffEngine, ContractVersion, DiffConfiguration, DiffResult, compare_contracts,
    compare_contracts_with_analysis,
)

__version__ = "0.1.0"
