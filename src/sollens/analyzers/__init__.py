"""Call graphs, differencing and impact classification."""

from .call_graph_analyzer import CallGraphAnalyzer, CallGraph, Node, Edge, complexity, calls, external_calls
from .line_differ import DiffLine, LineChange, diff_lines, summarize_lines
from .structural_differ import (
    StructuralDiffer, DiffChange, DiffStats, DiffSummary, ChangeCategory, ChangeType, Impact,
    diff_models, index_by_name, compute_stats, summarize,
)
from .change_classifier import (
    ChangeClassifier, SecurityImpact, BreakingChangeDetail, Severity, RiskLevel,
    classify_security_impacts, detect_breaking_changes, assess_risk,
)
from .semantic_analysis import (
    SemanticAnalyzer, NullSemanticAnalyzer, AnalysisRequest, AnalysisResponse, SemanticAnalysis,
    ContractVersion, build_fallback_analysis, merge_analysis,
)
from .llm_analyzer import AnthropicSemanticAnalyzer

__all__ = [
    "CallGraphAnalyzer", "CallGraph", "Node", "Edge", "complexity", "calls", "external_calls",
    "DiffLine", "LineChange", "diff_lines", "summarize_lines",
    "StructuralDiffer", "DiffChange", "DiffStats", "DiffSummary", "ChangeCategory", "ChangeType", "Impact",
    "diff_models", "index_by_name", "compute_stats", "summarize",
    "ChangeClassifier", "SecurityImpact", "BreakingChangeDetail", "Severity", "RiskLevel",
    "classify_security_impacts", "detect_breaking_changes", "assess_risk",
    "SemanticAnalyzer", "NullSemanticAnalyzer", "AnalysisRequest", "AnalysisResponse", "SemanticAnalysis",
    "ContractVersion", "build_fallback_analysis", "merge_analysis",
    "AnthropicSemanticAnalyzer",
]
