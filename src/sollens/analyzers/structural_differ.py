"""Structural comparison of two contract models."""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

from ..exceptions import MalformedModelError
from ..parsers.contract_model import (
    ContractModel, Event, Function, FunctionKind, Import, Modifier, Parameter, Variable,
)
from .line_differ import DiffLine, summarize_lines

logger = logging.getLogger(__name__)

T = TypeVar("T")

PUBLIC_VISIBILITIES = ("public", "external")

# Elementary type aliases and their canonical spelling
TYPE_ALIASES = {
    "uint": "uint256",
    "int": "int256",
    "byte": "bytes1",
    "ufixed": "ufixed128x18",
    "fixed": "fixed128x18",
}
TYPE_ALIAS_PATTERN = re.compile(r'\b(' + '|'.join(TYPE_ALIASES) + r')\b')


class ChangeType(str, Enum):
    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"


class ChangeCategory(str, Enum):
    FUNCTION = "function"
    EVENT = "event"
    VARIABLE = "variable"
    MODIFIER = "modifier"
    IMPORT = "import"
    INHERITANCE = "inheritance"


class Impact(str, Enum):
    BREAKING = "breaking"
    NON_BREAKING = "non-breaking"


@dataclass(frozen=True)
class DiffChange:
    """One structural difference between two models.

    Built only by ``StructuralDiffer``. ``impact`` is derived from the comparison
    rules that produced the change and is never chosen by callers; code that needs
    a different impact should change the rules, not construct a DiffChange.
    """
    type: ChangeType
    category: ChangeCategory
    name: str
    description: str
    impact: Impact
    before: Optional[str] = None
    after: Optional[str] = None
    explanation: Optional[str] = None

    @property
    def is_breaking(self) -> bool:
        return self.impact is Impact.BREAKING


@dataclass(frozen=True)
class DiffSummary:
    total_changes: int
    added: int
    removed: int
    modified: int
    breaking_changes: int
    analysis_summary: str = ""


@dataclass(frozen=True)
class DiffStats:
    """Line totals plus a change count for every (category, type) pair."""
    lines_added: int
    lines_removed: int
    lines_modified: int
    counts: Dict[Tuple[ChangeCategory, ChangeType], int] = field(default_factory=dict)

    def count(self, category, change_type) -> int:
        return self.counts.get((ChangeCategory(category), ChangeType(change_type)), 0)

    def to_dict(self) -> Dict[str, int]:
        result = {
            "lines_added": self.lines_added,
            "lines_removed": self.lines_removed,
            "lines_modified": self.lines_modified,
        }
        for (category, change_type), count in self.counts.items():
            result[f"{category.value}_{change_type.value}"] = count
        return result


# ---------------------------------------------------------------------------
# Signatures
# ---------------------------------------------------------------------------

def canonical_type(type_text: str) -> str:
    """Normalize a type string so that equivalent spellings compare equal.

    Whitespace is collapsed, and the aliases ``uint``, ``int``, ``byte``,
    ``ufixed`` and ``fixed`` are expanded wherever they appear, including
    inside arrays and mappings.
    """
    text = re.sub(r'\s+', ' ', type_text).strip()
    text = re.sub(r'\s*([()\[\],])\s*', r'\1', text)
    text = re.sub(r'\s*=>\s*', '=>', text)
    return TYPE_ALIAS_PATTERN.sub(lambda m: TYPE_ALIASES[m.group(1)], text)


def _canonical_param(param: Parameter) -> str:
    parts = [canonical_type(param.type)]
    if param.storage_location:
        parts.append(param.storage_location)
    if param.indexed:
        parts.append("indexed")
    return " ".join(parts)


def _canonical_params(params: Sequence[Parameter]) -> Tuple[str, ...]:
    return tuple(_canonical_param(p) for p in params)


def _display_params(params: Sequence[Parameter]) -> str:
    rendered = []
    for p in params:
        parts = [p.type]
        if p.storage_location:
            parts.append(p.storage_location)
        if p.indexed:
            parts.append("indexed")
        if p.name:
            parts.append(p.name)
        rendered.append(" ".join(parts))
    return ", ".join(rendered)


def function_signature(fn: Function) -> str:
    """Canonical signature; parameter names are not part of it."""
    params = ",".join(_canonical_params(fn.parameters))
    returns = ",".join(_canonical_params(fn.returns))
    modifiers = " ".join(fn.modifiers)
    return f"{fn.key}({params}) {fn.visibility} {fn.mutability} [{modifiers}] returns({returns})"


def function_display(fn: Function) -> str:
    head = f"function {fn.name}" if fn.kind is FunctionKind.FUNCTION else fn.kind.value
    text = f"{head}({_display_params(fn.parameters)}) {fn.visibility} {fn.mutability}"
    if fn.modifiers:
        text += " " + " ".join(fn.modifiers)
    if fn.returns:
        text += f" returns ({_display_params(fn.returns)})"
    return text


def event_signature(ev: Event) -> str:
    params = ",".join(_canonical_params(ev.parameters))
    return f"{ev.name}({params})" + (" anonymous" if ev.anonymous else "")


def event_display(ev: Event) -> str:
    return f"event {ev.name}({_display_params(ev.parameters)})" + (" anonymous" if ev.anonymous else "")


def variable_display(var: Variable) -> str:
    parts = [var.type, var.visibility, var.name]
    if var.is_constant:
        parts.append("(constant)")
    if var.is_immutable:
        parts.append("(immutable)")
    return " ".join(parts)


def modifier_signature(mod: Modifier) -> str:
    return f"{mod.name}({','.join(_canonical_params(mod.parameters))})"


def modifier_display(mod: Modifier) -> str:
    return f"modifier {mod.name}({_display_params(mod.parameters)})"


def import_display(imp: Import) -> str:
    if imp.symbols:
        return f"import {{{', '.join(imp.symbols)}}} from \"{imp.path}\""
    if imp.alias:
        return f"import \"{imp.path}\" as {imp.alias}"
    return f"import \"{imp.path}\""


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------

def entity_name(entity: Any) -> str:
    return entity.name


def index_by_name(entities: Iterable[T], key: Callable[[T], str] = entity_name) -> Dict[str, T]:
    """Name-keyed lookup; on duplicate names the last entity wins.

    Iteration order is the order in which each name was first declared.
    """
    index: Dict[str, T] = {}
    for entity in entities:
        name = key(entity)
        if name in index:
            logger.debug(f"Duplicate declaration of '{name}', keeping the last one")
        index[name] = entity
    return index


def _resolve(index: Dict[str, T], name: str, side: str) -> T:
    try:
        return index[name]
    except KeyError:
        raise MalformedModelError(f"'{name}' is missing from the lookup of model {side}") from None


# ---------------------------------------------------------------------------
# Comparison
# ---------------------------------------------------------------------------

class StructuralDiffer:
    """Compares two contract models category by category.

    Each category runs under its own guard: a failing comparator is logged and
    contributes no changes while the others still run.
    """

    def diff(self, model_a: ContractModel, model_b: ContractModel) -> List[DiffChange]:
        comparators = [
            (ChangeCategory.FUNCTION, self.compare_functions, model_a.functions, model_b.functions),
            (ChangeCategory.EVENT, self.compare_events, model_a.events, model_b.events),
            (ChangeCategory.VARIABLE, self.compare_variables, model_a.variables, model_b.variables),
            (ChangeCategory.MODIFIER, self.compare_modifiers, model_a.modifiers, model_b.modifiers),
            (ChangeCategory.IMPORT, self.compare_imports, model_a.imports, model_b.imports),
            (ChangeCategory.INHERITANCE, self.compare_inheritance,
             model_a.inherited_contracts, model_b.inherited_contracts),
        ]

        changes: List[DiffChange] = []
        for category, comparator, entities_a, entities_b in comparators:
            try:
                changes.extend(comparator(entities_a, entities_b))
            except Exception as e:
                logger.error(f"Comparing {category.value} declarations failed, reporting no changes for it: {e}")
        return changes

    def _diff_entities(self, category: ChangeCategory, entities_a: Sequence[T], entities_b: Sequence[T],
                       added: Callable[[str, T], DiffChange],
                       removed: Callable[[str, T], DiffChange],
                       modified: Optional[Callable[[str, T, T], Optional[DiffChange]]] = None,
                       key: Callable[[T], str] = entity_name) -> List[DiffChange]:
        """Added in B order, then removed in A order, then modified in A order."""
        index_a = index_by_name(entities_a, key)
        index_b = index_by_name(entities_b, key)
        changes: List[DiffChange] = []

        def collect(name, build):
            try:
                change = build()
            except MalformedModelError as e:
                logger.warning(f"Skipping {category.value} '{name}': {e}")
                return
            if change is not None:
                changes.append(change)

        # Index iteration visits each name once, in first-declared order
        for name in index_b:
            if name not in index_a:
                collect(name, lambda: added(name, _resolve(index_b, name, "B")))

        for name in index_a:
            if name not in index_b:
                collect(name, lambda: removed(name, _resolve(index_a, name, "A")))

        if modified is not None:
            for name in index_a:
                if name in index_b:
                    collect(name, lambda: modified(name, _resolve(index_a, name, "A"),
                                                   _resolve(index_b, name, "B")))

        return changes

    # Functions

    def compare_functions(self, functions_a: Sequence[Function], functions_b: Sequence[Function]) -> List[DiffChange]:
        return self._diff_entities(
            ChangeCategory.FUNCTION, functions_a, functions_b,
            added=self._function_added,
            removed=self._function_removed,
            modified=self._function_modified,
            key=lambda fn: fn.key,
        )

    def _function_added(self, name: str, fn: Function) -> DiffChange:
        return DiffChange(
            type=ChangeType.ADDED,
            category=ChangeCategory.FUNCTION,
            name=name,
            after=function_display(fn),
            description=f"New function added: {name}",
            impact=Impact.NON_BREAKING,
        )

    def _function_removed(self, name: str, fn: Function) -> DiffChange:
        is_public = fn.visibility in PUBLIC_VISIBILITIES
        return DiffChange(
            type=ChangeType.REMOVED,
            category=ChangeCategory.FUNCTION,
            name=name,
            before=function_display(fn),
            description=f"Function removed: {name}",
            impact=Impact.BREAKING if is_public else Impact.NON_BREAKING,
            explanation=(f"Removing this {fn.visibility} function breaks existing callers and integrations."
                         if is_public else f"Removing this {fn.visibility} function has no external impact."),
        )

    def _function_modified(self, name: str, fn_a: Function, fn_b: Function) -> Optional[DiffChange]:
        if function_signature(fn_a) == function_signature(fn_b):
            return None

        params_changed = _canonical_params(fn_a.parameters) != _canonical_params(fn_b.parameters)
        returns_changed = _canonical_params(fn_a.returns) != _canonical_params(fn_b.returns)
        visibility_changed = fn_a.visibility != fn_b.visibility
        mutability_changed = fn_a.mutability != fn_b.mutability
        modifiers_changed = fn_a.modifiers != fn_b.modifiers

        is_public = fn_a.visibility in PUBLIC_VISIBILITIES or fn_b.visibility in PUBLIC_VISIBILITIES
        is_breaking = is_public and (params_changed or returns_changed or visibility_changed or mutability_changed)

        reasons = []
        if params_changed:
            reasons.append("parameters changed")
        if returns_changed:
            reasons.append("return type changed")
        if visibility_changed:
            reasons.append(f"visibility: {fn_a.visibility} → {fn_b.visibility}")
        if mutability_changed:
            reasons.append(f"mutability: {fn_a.mutability} → {fn_b.mutability}")
        if modifiers_changed:
            reasons.append("modifiers changed")

        return DiffChange(
            type=ChangeType.MODIFIED,
            category=ChangeCategory.FUNCTION,
            name=name,
            before=function_display(fn_a),
            after=function_display(fn_b),
            description=f"Function modified: {name} ({', '.join(reasons)})",
            impact=Impact.BREAKING if is_breaking else Impact.NON_BREAKING,
            explanation="Changing the signature of a public function breaks ABI compatibility." if is_breaking else None,
        )

    # Events

    def compare_events(self, events_a: Sequence[Event], events_b: Sequence[Event]) -> List[DiffChange]:
        return self._diff_entities(
            ChangeCategory.EVENT, events_a, events_b,
            added=lambda name, ev: DiffChange(
                type=ChangeType.ADDED,
                category=ChangeCategory.EVENT,
                name=name,
                after=event_display(ev),
                description=f"New event added: {name}",
                impact=Impact.NON_BREAKING,
            ),
            removed=lambda name, ev: DiffChange(
                type=ChangeType.REMOVED,
                category=ChangeCategory.EVENT,
                name=name,
                before=event_display(ev),
                description=f"Event removed: {name}",
                impact=Impact.BREAKING,
                explanation="Removing an event breaks off-chain indexers and listeners that depend on it.",
            ),
            modified=self._event_modified,
        )

    def _event_modified(self, name: str, ev_a: Event, ev_b: Event) -> Optional[DiffChange]:
        if event_signature(ev_a) == event_signature(ev_b):
            return None
        return DiffChange(
            type=ChangeType.MODIFIED,
            category=ChangeCategory.EVENT,
            name=name,
            before=event_display(ev_a),
            after=event_display(ev_b),
            description=f"Event signature changed: {name}",
            impact=Impact.BREAKING,
            explanation="Changing event parameters breaks off-chain indexers that decode these events.",
        )

    # State variables

    def compare_variables(self, variables_a: Sequence[Variable], variables_b: Sequence[Variable]) -> List[DiffChange]:
        return self._diff_entities(
            ChangeCategory.VARIABLE, variables_a, variables_b,
            added=lambda name, var: DiffChange(
                type=ChangeType.ADDED,
                category=ChangeCategory.VARIABLE,
                name=name,
                after=variable_display(var),
                description=f"New state variable: {name}",
                impact=Impact.NON_BREAKING,
            ),
            removed=self._variable_removed,
            modified=self._variable_modified,
        )

    def _variable_removed(self, name: str, var: Variable) -> DiffChange:
        is_public = var.visibility == "public"
        return DiffChange(
            type=ChangeType.REMOVED,
            category=ChangeCategory.VARIABLE,
            name=name,
            before=variable_display(var),
            description=f"State variable removed: {name}",
            impact=Impact.BREAKING if is_public else Impact.NON_BREAKING,
            explanation="Removing a public state variable removes its auto-generated getter function." if is_public else None,
        )

    def _variable_modified(self, name: str, var_a: Variable, var_b: Variable) -> Optional[DiffChange]:
        type_changed = canonical_type(var_a.type) != canonical_type(var_b.type)
        visibility_changed = var_a.visibility != var_b.visibility
        flags_changed = (var_a.is_constant, var_a.is_immutable) != (var_b.is_constant, var_b.is_immutable)

        if type_changed or visibility_changed:
            reasons = []
            if type_changed:
                reasons.append(f"type: {var_a.type} → {var_b.type}")
            if visibility_changed:
                reasons.append(f"visibility: {var_a.visibility} → {var_b.visibility}")
            is_public = var_a.visibility == "public" or var_b.visibility == "public"
            return DiffChange(
                type=ChangeType.MODIFIED,
                category=ChangeCategory.VARIABLE,
                name=name,
                before=variable_display(var_a),
                after=variable_display(var_b),
                description=f"State variable changed: {name} ({', '.join(reasons)})",
                impact=Impact.BREAKING if type_changed or is_public else Impact.NON_BREAKING,
                explanation=("Changing a state variable's type can break storage layout and ABI compatibility."
                             if type_changed else None),
            )

        if flags_changed:
            return DiffChange(
                type=ChangeType.MODIFIED,
                category=ChangeCategory.VARIABLE,
                name=name,
                before=variable_display(var_a),
                after=variable_display(var_b),
                description=f"State variable changed: {name} (constant/immutable flags changed)",
                impact=Impact.NON_BREAKING,
                explanation="The variable moved in or out of contract storage; later storage slots shift.",
            )

        return None

    # Modifiers

    def compare_modifiers(self, modifiers_a: Sequence[Modifier], modifiers_b: Sequence[Modifier]) -> List[DiffChange]:
        return self._diff_entities(
            ChangeCategory.MODIFIER, modifiers_a, modifiers_b,
            added=lambda name, mod: DiffChange(
                type=ChangeType.ADDED,
                category=ChangeCategory.MODIFIER,
                name=name,
                after=modifier_display(mod),
                description=f"New modifier added: {name}",
                impact=Impact.NON_BREAKING,
            ),
            removed=lambda name, mod: DiffChange(
                type=ChangeType.REMOVED,
                category=ChangeCategory.MODIFIER,
                name=name,
                before=modifier_display(mod),
                description=f"Modifier removed: {name}",
                impact=Impact.NON_BREAKING,
                explanation="Modifier removal may weaken access control or validation if used by functions.",
            ),
            modified=self._modifier_modified,
        )

    def _modifier_modified(self, name: str, mod_a: Modifier, mod_b: Modifier) -> Optional[DiffChange]:
        if modifier_signature(mod_a) == modifier_signature(mod_b):
            return None
        return DiffChange(
            type=ChangeType.MODIFIED,
            category=ChangeCategory.MODIFIER,
            name=name,
            before=modifier_display(mod_a),
            after=modifier_display(mod_b),
            description=f"Modifier signature changed: {name}",
            impact=Impact.NON_BREAKING,
        )

    # Imports and inheritance

    def compare_imports(self, imports_a: Sequence[Import], imports_b: Sequence[Import]) -> List[DiffChange]:
        return self._diff_entities(
            ChangeCategory.IMPORT, imports_a, imports_b,
            added=lambda path, imp: DiffChange(
                type=ChangeType.ADDED,
                category=ChangeCategory.IMPORT,
                name=path,
                after=import_display(imp),
                description=f"New import: {path}",
                impact=Impact.NON_BREAKING,
            ),
            removed=lambda path, imp: DiffChange(
                type=ChangeType.REMOVED,
                category=ChangeCategory.IMPORT,
                name=path,
                before=import_display(imp),
                description=f"Import removed: {path}",
                impact=Impact.NON_BREAKING,
            ),
            key=lambda imp: imp.path,
        )

    def compare_inheritance(self, parents_a: Sequence[str], parents_b: Sequence[str]) -> List[DiffChange]:
        return self._diff_entities(
            ChangeCategory.INHERITANCE, parents_a, parents_b,
            added=lambda name, _: DiffChange(
                type=ChangeType.ADDED,
                category=ChangeCategory.INHERITANCE,
                name=name,
                after=name,
                description=f"New base contract: {name}",
                impact=Impact.NON_BREAKING,
            ),
            removed=lambda name, _: DiffChange(
                type=ChangeType.REMOVED,
                category=ChangeCategory.INHERITANCE,
                name=name,
                before=name,
                description=f"Base contract removed: {name}",
                impact=Impact.BREAKING,
                explanation=("Removing an inherited contract may remove functions, events, "
                             "and modifiers that callers depend on."),
            ),
            key=lambda name: name,
        )


def diff_models(model_a: ContractModel, model_b: ContractModel) -> List[DiffChange]:
    """All structural changes from ``model_a`` to ``model_b``."""
    return StructuralDiffer().diff(model_a, model_b)


def summarize(changes: Sequence[DiffChange], analysis_summary: str = "") -> DiffSummary:
    return DiffSummary(
        total_changes=len(changes),
        added=sum(1 for c in changes if c.type is ChangeType.ADDED),
        removed=sum(1 for c in changes if c.type is ChangeType.REMOVED),
        modified=sum(1 for c in changes if c.type is ChangeType.MODIFIED),
        breaking_changes=sum(1 for c in changes if c.is_breaking),
        analysis_summary=analysis_summary,
    )


def compute_stats(changes: Sequence[DiffChange], text_diff: Sequence[DiffLine]) -> DiffStats:
    """Aggregate statistics; ``lines_modified`` estimates rewritten lines as min(added, removed)."""
    lines_added, lines_removed = summarize_lines(list(text_diff))
    counts = {(category, change_type): 0 for category in ChangeCategory for change_type in ChangeType}
    for change in changes:
        counts[(change.category, change.type)] += 1
    return DiffStats(
        lines_added=lines_added,
        lines_removed=lines_removed,
        lines_modified=min(lines_added, lines_removed),
        counts=counts,
    )
