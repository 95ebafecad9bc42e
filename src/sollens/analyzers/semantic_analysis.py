"""Semantic analysis capability, response validation, and the rule-only fallback.

The diff engine talks to a semantic analyzer only through ``SemanticAnalyzer``.
Any failure of the analyzer is reported as ``CollaboratorFailure`` and replaced
by ``build_fallback_analysis``.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List, Literal, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..exceptions import CollaboratorFailure
from .change_classifier import (
    BreakingChangeDetail, RiskLevel, SecurityImpact, Severity, assess_risk, detect_breaking_changes,
)
from .structural_differ import DiffChange

logger = logging.getLogger(__name__)

DEFAULT_EXCERPT_CHARS = 8000
FENCED_JSON_PATTERN = re.compile(r'```(?:json)?\s*([\s\S]*?)```')


@dataclass(frozen=True)
class ContractVersion:
    """Identity and source of one side of a comparison."""
    address: str
    name: str
    source_code: str
    network: str = ""


@dataclass(frozen=True)
class AnalysisRequest:
    """Everything a semantic analyzer is given."""
    contract_a: ContractVersion
    contract_b: ContractVersion
    source_a: str
    source_b: str
    changes: Tuple[DiffChange, ...]
    security_impacts: Tuple[SecurityImpact, ...]

    @classmethod
    def build(cls, contract_a: ContractVersion, contract_b: ContractVersion,
              changes: Sequence[DiffChange], security_impacts: Sequence[SecurityImpact],
              excerpt_chars: int = DEFAULT_EXCERPT_CHARS) -> "AnalysisRequest":
        """Request with both sources truncated to ``excerpt_chars`` characters."""
        return cls(
            contract_a=contract_a,
            contract_b=contract_b,
            source_a=contract_a.source_code[:excerpt_chars],
            source_b=contract_b.source_code[:excerpt_chars],
            changes=tuple(changes),
            security_impacts=tuple(security_impacts),
        )


@dataclass(frozen=True)
class AnalysisResponse:
    """What a semantic analyzer returns."""
    summary: str
    breaking_changes: Tuple[BreakingChangeDetail, ...]
    security_impacts: Tuple[SecurityImpact, ...]
    migration_guide: str
    risk_level: RiskLevel


@dataclass(frozen=True)
class SemanticAnalysis:
    """Merged analysis attached to a diff result. ``degraded`` marks the rule-only fallback."""
    summary: str
    breaking_changes: Tuple[BreakingChangeDetail, ...]
    security_impacts: Tuple[SecurityImpact, ...]
    migration_guide: str
    risk_level: RiskLevel
    degraded: bool = False


class SemanticAnalyzer(ABC):
    """Capability interface for narrative analysis of a diff."""

    @abstractmethod
    def analyze(self, request: AnalysisRequest) -> AnalysisResponse:
        """Analyze a diff.

        Raises:
            CollaboratorFailure: the analysis could not be produced
        """


class NullSemanticAnalyzer(SemanticAnalyzer):
    """Rule-only mode: never produces an analysis."""

    def analyze(self, request: AnalysisRequest) -> AnalysisResponse:
        raise CollaboratorFailure("Semantic analysis is disabled")


# ---------------------------------------------------------------------------
# Response validation
# ---------------------------------------------------------------------------

class BreakingChangePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")
    name: str
    category: str
    reason: str
    before: Optional[str] = None
    after: Optional[str] = None


class SecurityImpactPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")
    change: str
    impact: str
    severity: Literal["critical", "high", "medium", "low", "info"]
    recommendation: Optional[str] = None

    @field_validator("severity", mode="before")
    @classmethod
    def lowercase_severity(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value


class AnalysisPayload(BaseModel):
    """Raw analyzer JSON, keyed the way the prompt asks for it."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)
    summary: str = "Analysis complete."
    breaking_changes: List[BreakingChangePayload] = Field(default_factory=list, alias="breakingChanges")
    security_impacts: List[SecurityImpactPayload] = Field(default_factory=list, alias="securityImpacts")
    migration_guide: str = Field(default="", alias="migrationGuide")
    risk_level: Literal["critical", "high", "medium", "low", "none"] = Field(default="low", alias="riskLevel")

    @field_validator("risk_level", mode="before")
    @classmethod
    def lowercase_risk_level(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value


def extract_json(text: str) -> str:
    """JSON text from a reply, unwrapping a fenced code block if there is one."""
    match = FENCED_JSON_PATTERN.search(text)
    return (match.group(1) if match else text).strip()


def parse_response(payload: Union[str, dict]) -> AnalysisResponse:
    """Validate raw analyzer output into an AnalysisResponse.

    Raises:
        CollaboratorFailure: the payload is not valid JSON or does not match the schema
    """
    try:
        data: Any = json.loads(extract_json(payload)) if isinstance(payload, str) else payload
        parsed = AnalysisPayload.model_validate(data)
    except (json.JSONDecodeError, ValidationError) as e:
        raise CollaboratorFailure(f"Malformed semantic analysis response: {e}") from e

    return AnalysisResponse(
        summary=parsed.summary,
        breaking_changes=tuple(BreakingChangeDetail(**item.model_dump()) for item in parsed.breaking_changes),
        security_impacts=tuple(
            SecurityImpact(
                change=item.change,
                impact=item.impact,
                severity=Severity(item.severity),
                recommendation=item.recommendation,
            )
            for item in parsed.security_impacts
        ),
        migration_guide=parsed.migration_guide,
        risk_level=RiskLevel(parsed.risk_level),
    )


# ---------------------------------------------------------------------------
# Fallback and merge
# ---------------------------------------------------------------------------

def build_fallback_analysis(changes: Sequence[DiffChange], impacts: Sequence[SecurityImpact]) -> SemanticAnalysis:
    """Rule-only analysis used whenever the semantic analyzer fails."""
    breaking = detect_breaking_changes(changes)
    if breaking:
        steps = "\n".join(f'- {bc.category} "{bc.name}": {bc.reason}' for bc in breaking)
        migration_guide = f"Review the following breaking changes before upgrading:\n{steps}"
    else:
        migration_guide = "No migration steps required."

    return SemanticAnalysis(
        summary=(f"{len(changes)} change(s) detected: {len(breaking)} breaking. "
                 f"Semantic analysis unavailable, showing rule-based results."),
        breaking_changes=tuple(breaking),
        security_impacts=tuple(impacts),
        migration_guide=migration_guide,
        risk_level=assess_risk(changes, impacts),
        degraded=True,
    )


def merge_breaking_changes(rule_changes: Sequence[BreakingChangeDetail],
                           extra: Sequence[BreakingChangeDetail]) -> List[BreakingChangeDetail]:
    """Rule-based entries plus every extra entry whose (category, name) is new."""
    merged = list(rule_changes)
    seen = {(c.category, c.name) for c in merged}
    for change in extra:
        key = (change.category, change.name)
        if key not in seen:
            seen.add(key)
            merged.append(change)
    return merged


def merge_security_impacts(rule_impacts: Sequence[SecurityImpact],
                           extra: Sequence[SecurityImpact]) -> List[SecurityImpact]:
    """Rule-based impacts plus every extra impact whose change text is new, ignoring case."""
    merged = list(rule_impacts)
    seen = {i.change.lower() for i in merged}
    for impact in extra:
        key = impact.change.lower()
        if key not in seen:
            seen.add(key)
            merged.append(impact)
    return merged


def merge_analysis(rule_breaking: Sequence[BreakingChangeDetail], rule_impacts: Sequence[SecurityImpact],
                   response: AnalysisResponse) -> SemanticAnalysis:
    """Combine rule-based findings with an analyzer response; rule-based entries come first."""
    return SemanticAnalysis(
        summary=response.summary,
        breaking_changes=tuple(merge_breaking_changes(rule_breaking, response.breaking_changes)),
        security_impacts=tuple(merge_security_impacts(rule_impacts, response.security_impacts)),
        migration_guide=response.migration_guide,
        risk_level=response.risk_level,
    )
