"""Diff engine: parses both versions, diffs them, and layers impact analysis on top."""

import logging
from concurrent.futures import CancelledError, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Tuple

from ..analyzers.change_classifier import classify_security_impacts, detect_breaking_changes
from ..analyzers.line_differ import LCS_CELL_LIMIT, DiffLine, diff_lines
from ..analyzers.semantic_analysis import (
    DEFAULT_EXCERPT_CHARS, AnalysisRequest, AnalysisResponse, ContractVersion, NullSemanticAnalyzer,
    SemanticAnalysis, SemanticAnalyzer, build_fallback_analysis, merge_analysis,
)
from ..analyzers.structural_differ import DiffChange, DiffStats, DiffSummary, compute_stats, diff_models, summarize
from ..exceptions import CollaboratorFailure, ParseError
from ..parsers.contract_model import ContractModel
from ..parsers.solidity_parser import parse

logger = logging.getLogger(__name__)


@dataclass
class DiffConfiguration:
    """Configuration for contract comparison."""
    lcs_cell_limit: int = LCS_CELL_LIMIT
    analysis_timeout: float = 30.0  # seconds to wait for the semantic analyzer
    source_excerpt_chars: int = DEFAULT_EXCERPT_CHARS
    include_text_diff: bool = True


@dataclass(frozen=True)
class DiffResult:
    """Complete comparison of two contract versions."""
    contract_a: ContractVersion
    contract_b: ContractVersion
    changes: Tuple[DiffChange, ...]
    summary: DiffSummary
    stats: DiffStats
    text_diff: Tuple[DiffLine, ...] = ()
    analysis: Optional[SemanticAnalysis] = None
    fallbacks: Tuple[str, ...] = ()

    @property
    def degraded(self) -> bool:
        return bool(self.fallbacks)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "contract_a": asdict(self.contract_a),
            "contract_b": asdict(self.contract_b),
            "changes": [asdict(c) for c in self.changes],
            "summary": asdict(self.summary),
            "stats": self.stats.to_dict(),
            "text_diff": [asdict(line) for line in self.text_diff],
            "analysis": asdict(self.analysis) if self.analysis is not None else None,
            "fallbacks": list(self.fallbacks),
        }


class ContractDiffEngine:
    """Compares two contract versions.

    The engine holds no state between comparisons; the semantic analyzer is
    reached only through the SemanticAnalyzer interface.
    """

    def __init__(self, config: Optional[DiffConfiguration] = None, analyzer: Optional[SemanticAnalyzer] = None):
        self.config = config or DiffConfiguration()
        self.analyzer = analyzer or NullSemanticAnalyzer()

    def compare(self, contract_a: ContractVersion, contract_b: ContractVersion) -> DiffResult:
        """Rule-based comparison without semantic analysis."""
        fallbacks: List[str] = []
        model_a = self._parse_side(contract_a, "a", fallbacks)
        model_b = self._parse_side(contract_b, "b", fallbacks)
        return self._build_result(contract_a, contract_b, model_a, model_b, fallbacks)

    def compare_with_analysis(self, contract_a: ContractVersion, contract_b: ContractVersion) -> DiffResult:
        """Comparison enriched with security impacts and semantic analysis.

        A failing or slow analyzer degrades the analysis to the rule-only
        fallback; it never fails the comparison.
        """
        fallbacks: List[str] = []
        model_a = self._parse_side(contract_a, "a", fallbacks)
        model_b = self._parse_side(contract_b, "b", fallbacks)
        result = self._build_result(contract_a, contract_b, model_a, model_b, fallbacks)

        impacts = classify_security_impacts(result.changes, model_a, model_b)
        request = AnalysisRequest.build(contract_a, contract_b, result.changes, impacts,
                                        excerpt_chars=self.config.source_excerpt_chars)
        response = self._request_analysis(request)

        if response is None:
            fallbacks.append("semantic-analysis")
            analysis = build_fallback_analysis(result.changes, impacts)
        else:
            analysis = merge_analysis(detect_breaking_changes(result.changes), impacts, response)

        summary = DiffSummary(
            total_changes=result.summary.total_changes,
            added=result.summary.added,
            removed=result.summary.removed,
            modified=result.summary.modified,
            breaking_changes=len(analysis.breaking_changes),
            analysis_summary=analysis.summary,
        )
        return DiffResult(
            contract_a=contract_a,
            contract_b=contract_b,
            changes=result.changes,
            summary=summary,
            stats=result.stats,
            text_diff=result.text_diff,
            analysis=analysis,
            fallbacks=tuple(fallbacks),
        )

    def _parse_side(self, version: ContractVersion, side: str, fallbacks: List[str]) -> ContractModel:
        """Parse one side, substituting an empty model when it cannot be parsed."""
        try:
            return parse(version.source_code)
        except ParseError as e:
            logger.warning(f"Contract {side.upper()} ({version.name}) could not be parsed, using an empty model: {e}")
        except Exception as e:
            # The other side is still compared against an empty model
            logger.error(f"Parser failed on contract {side.upper()} ({version.name}) with "
                         f"{type(e).__name__}, using an empty model: {e}")
        fallbacks.append(f"parser:{side}")
        return ContractModel.empty(version.name or "Unknown")

    def _build_result(self, contract_a, contract_b, model_a, model_b, fallbacks) -> DiffResult:
        changes = diff_models(model_a, model_b)
        text_diff = diff_lines(contract_a.source_code, contract_b.source_code, cell_limit=self.config.lcs_cell_limit)
        return DiffResult(
            contract_a=contract_a,
            contract_b=contract_b,
            changes=tuple(changes),
            summary=summarize(changes),
            stats=compute_stats(changes, text_diff),
            text_diff=tuple(text_diff) if self.config.include_text_diff else (),
            fallbacks=tuple(fallbacks),
        )

    def _request_analysis(self, request: AnalysisRequest) -> Optional[AnalysisResponse]:
        """Run the analyzer on a worker thread, bounded by the configured timeout.

        Returns None whenever the analysis is unavailable.
        """
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="semantic-analysis")
        future = executor.submit(self.analyzer.analyze, request)
        try:
            return future.result(timeout=self.config.analysis_timeout)
        except FutureTimeoutError:
            future.cancel()
            logger.warning(f"Semantic analysis timed out after {self.config.analysis_timeout}s, using rule-based results")
        except CancelledError:
            logger.warning("Semantic analysis was cancelled, using rule-based results")
        except CollaboratorFailure as e:
            logger.info(f"Semantic analysis unavailable, using rule-based results: {e}")
        except Exception as e:
            logger.error(f"Semantic analyzer raised {type(e).__name__}, using rule-based results: {e}")
        finally:
            # Never block on an abandoned worker
            executor.shutdown(wait=False)
        return None


def compare_contracts(contract_a: ContractVersion, contract_b: ContractVersion,
                      config: Optional[DiffConfiguration] = None) -> DiffResult:
    """Rule-based comparison of two versions."""
    return ContractDiffEngine(config).compare(contract_a, contract_b)


def compare_contracts_with_analysis(contract_a: ContractVersion, contract_b: ContractVersion,
                                    analyzer: Optional[SemanticAnalyzer] = None,
                                    config: Optional[DiffConfiguration] = None) -> DiffResult:
    """Comparison with security impacts and (optionally) semantic analysis."""
    return ContractDiffEngine(config, analyzer).compare_with_analysis(contract_a, contract_b)
