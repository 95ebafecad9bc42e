"""Change Classifier - Rule-based security impact and risk classification of structural changes."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence

from ..exceptions import MalformedModelError
from ..parsers.contract_model import ContractModel, ExternalCall, Function
from .call_graph_analyzer import CallGraphAnalyzer
from .structural_differ import ChangeCategory, ChangeType, DiffChange, index_by_name

logger = logging.getLogger(__name__)

# Wider visibility means more possible callers
VISIBILITY_ORDER = {"private": 0, "internal": 1, "external": 2, "public": 3}
READ_ONLY_MUTABILITIES = ("view", "pure")
STATE_CHANGING_MUTABILITIES = ("nonpayable", "payable")


class Severity(str, Enum):
    """Severity levels for security impacts."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


class RiskLevel(str, Enum):
    """Overall risk of upgrading from one version to the other."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NONE = "none"


@dataclass(frozen=True)
class SecurityImpact:
    """A security-relevant finding derived from one or more changes."""
    change: str
    impact: str
    severity: Severity
    recommendation: Optional[str] = None


@dataclass(frozen=True)
class BreakingChangeDetail:
    """A breaking change as exchanged with the semantic analyzer."""
    name: str
    category: str
    reason: str
    before: Optional[str] = None
    after: Optional[str] = None


class ChangeClassifier:
    """Applies independent, additive security rules to a change list."""

    def __init__(self):
        self.graph_analyzer = CallGraphAnalyzer()

    def classify_security_impacts(self, changes: Sequence[DiffChange], model_a: ContractModel,
                                  model_b: ContractModel) -> List[SecurityImpact]:
        impacts: List[SecurityImpact] = []
        impacts.extend(self._removed_modifier_impacts(changes, model_a))
        impacts.extend(self._function_change_impacts(changes, model_a, model_b, self._visibility_impact))
        impacts.extend(self._external_call_impacts(model_a, model_b))
        impacts.extend(self._function_change_impacts(changes, model_a, model_b, self._mutability_impact))
        impacts.extend(self._removed_event_impacts(changes))
        return impacts

    def _removed_modifier_impacts(self, changes: Sequence[DiffChange], model_a: ContractModel) -> List[SecurityImpact]:
        removed = [c.name for c in changes
                   if c.category is ChangeCategory.MODIFIER and c.type is ChangeType.REMOVED]
        if not removed:
            return []

        graph = self.graph_analyzer.build_graph(model_a)
        impacts = []
        for modifier in removed:
            users = graph.callers_of(modifier)
            if not users:
                continue
            impacts.append(SecurityImpact(
                change=f'Modifier "{modifier}" removed',
                impact=(f"{len(users)} function(s) used this modifier: {', '.join(users)}. "
                        f"Access control may be weakened."),
                severity=Severity.HIGH,
                recommendation="Verify that equivalent access control is maintained through other means.",
            ))
        return impacts

    def _function_change_impacts(self, changes, model_a, model_b, rule) -> List[SecurityImpact]:
        """Run a per-function rule over every modified function change."""
        impacts = []
        for change in changes:
            if change.category is not ChangeCategory.FUNCTION or change.type is not ChangeType.MODIFIED:
                continue
            try:
                fn_a = self._function(model_a, change.name, "A")
                fn_b = self._function(model_b, change.name, "B")
            except MalformedModelError as e:
                logger.warning(f"Skipping security rule for function '{change.name}': {e}")
                continue
            impact = rule(change.name, fn_a, fn_b)
            if impact is not None:
                impacts.append(impact)
        return impacts

    @staticmethod
    def _function(model: ContractModel, key: str, side: str) -> Function:
        fn = model.function(key)
        if fn is None:
            raise MalformedModelError(f"function '{key}' is missing from model {side}")
        return fn

    @staticmethod
    def _visibility_impact(name: str, fn_a: Function, fn_b: Function) -> Optional[SecurityImpact]:
        before = VISIBILITY_ORDER.get(fn_a.visibility, 0)
        after = VISIBILITY_ORDER.get(fn_b.visibility, 0)
        if after <= before:
            return None
        return SecurityImpact(
            change=f'Function "{name}" visibility relaxed: {fn_a.visibility} → {fn_b.visibility}',
            impact="Function is now callable by external parties, increasing attack surface.",
            severity=Severity.MEDIUM,
            recommendation="Ensure proper access control modifiers are in place.",
        )

    @staticmethod
    def _mutability_impact(name: str, fn_a: Function, fn_b: Function) -> Optional[SecurityImpact]:
        if fn_a.mutability not in READ_ONLY_MUTABILITIES or fn_b.mutability not in STATE_CHANGING_MUTABILITIES:
            return None
        return SecurityImpact(
            change=f'Function "{name}" mutability changed: {fn_a.mutability} → {fn_b.mutability}',
            impact="Function can now modify state or accept ETH, changing its trust model.",
            # A payable function opens a fund-acceptance path that did not exist before
            severity=Severity.HIGH if fn_b.mutability == "payable" else Severity.MEDIUM,
            recommendation="Review all callers and ensure the state changes are intentional.",
        )

    def _external_call_impacts(self, model_a: ContractModel, model_b: ContractModel) -> List[SecurityImpact]:
        functions_a = index_by_name(model_a.functions, key=lambda fn: fn.key)
        impacts = []
        for key, fn_b in index_by_name(model_b.functions, key=lambda fn: fn.key).items():
            fn_a = functions_a.get(key)
            if fn_a is None or len(fn_b.external_calls) <= len(fn_a.external_calls):
                continue

            known = set(fn_a.external_calls)
            new_calls: List[ExternalCall] = []
            for call in fn_b.external_calls:
                if call not in known and call not in new_calls:
                    new_calls.append(call)
            if not new_calls:
                continue

            impacts.append(SecurityImpact(
                change=f'Function "{key}" has {len(new_calls)} new external call(s)',
                impact=(f"New external calls to: {', '.join(str(c) for c in new_calls)}. "
                        f"May introduce reentrancy or trust assumptions."),
                severity=Severity.MEDIUM,
                recommendation="Review external call ordering and consider reentrancy guards.",
            ))
        return impacts

    @staticmethod
    def _removed_event_impacts(changes: Sequence[DiffChange]) -> List[SecurityImpact]:
        removed = [c.name for c in changes if c.category is ChangeCategory.EVENT and c.type is ChangeType.REMOVED]
        if not removed:
            return []
        return [SecurityImpact(
            change=f"{len(removed)} event(s) removed: {', '.join(removed)}",
            impact="Off-chain monitoring and audit trails may be disrupted.",
            severity=Severity.LOW,
            recommendation="Ensure alternative monitoring mechanisms are in place.",
        )]


def classify_security_impacts(changes: Sequence[DiffChange], model_a: ContractModel,
                              model_b: ContractModel) -> List[SecurityImpact]:
    """Security findings for a change list, in rule order."""
    return ChangeClassifier().classify_security_impacts(changes, model_a, model_b)


def detect_breaking_changes(changes: Sequence[DiffChange]) -> List[BreakingChangeDetail]:
    return [
        BreakingChangeDetail(
            name=c.name,
            category=c.category.value,
            reason=c.explanation or c.description,
            before=c.before,
            after=c.after,
        )
        for c in changes if c.is_breaking
    ]


def assess_risk(changes: Sequence[DiffChange], impacts: Sequence[SecurityImpact]) -> RiskLevel:
    """Overall risk derived from impact severities and breaking changes."""
    severities = {impact.severity for impact in impacts}
    if Severity.CRITICAL in severities:
        return RiskLevel.CRITICAL
    if Severity.HIGH in severities:
        return RiskLevel.HIGH
    if any(c.is_breaking for c in changes):
        return RiskLevel.MEDIUM
    if changes:
        return RiskLevel.LOW
    return RiskLevel.NONE
