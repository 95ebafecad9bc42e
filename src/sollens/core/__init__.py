"""Diff orchestration."""

from ..analyzers.semantic_analysis import ContractVersion
from .engine import ContractDiffEngine, DiffConfiguration, DiffResult, compare_contracts, compare_contracts_with_analysis

__all__ = [
    "ContractDiffEngine", "ContractVersion", "DiffConfiguration", "DiffResult",
    "compare_contracts", "compare_contracts_with_analysis",
]
