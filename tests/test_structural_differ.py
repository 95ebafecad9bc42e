"""Tests for the structural differ."""

import dataclasses
import logging

import pytest

from sollens.analyzers.line_differ import diff_lines
from sollens.analyzers.structural_differ import (
    ChangeCategory, ChangeType, Impact, StructuralDiffer, canonical_type, compute_stats, diff_models,
    index_by_name, summarize,
)
from sollens.parsers import parse
from sollens.parsers.contract_model import FunctionKind, Import


class TestTypeNormalization:
    """Equivalent spellings compare equal."""

    @pytest.mark.parametrize("alias, canonical", [
        ("uint", "uint256"),
        ("int", "int256"),
        ("byte", "bytes1"),
        ("ufixed", "ufixed128x18"),
        ("fixed", "fixed128x18"),
        ("uint[]", "uint256[]"),
        ("mapping(address => uint)", "mapping(address=>uint256)"),
        ("mapping( address=>mapping(uint => int) )", "mapping(address=>mapping(uint256=>int256))"),
        ("uint8", "uint8"),
        ("bytes32", "bytes32"),
    ])
    def test_canonical_type(self, alias, canonical):
        """Aliases expand wherever they occur; sized types are untouched."""
        assert canonical_type(alias) == canonical


class TestIndexByName:
    """Shared name-keyed lookup."""

    def test_last_wins_in_first_seen_order(self, make_function):
        """Duplicates keep the last entity under the first position."""
        first = make_function("f", visibility="public")
        other = make_function("g")
        second = make_function("f", visibility="external")
        index = index_by_name([first, other, second])
        assert list(index) == ["f", "g"]
        assert index["f"] is second


class TestFunctionComparison:
    """Function added, removed and modified rules."""

    def test_identical_models_have_no_changes(self, token_v1):
        """Diffing a model against itself is empty."""
        model = parse(token_v1)
        assert diff_models(model, model) == []

    def test_remove_external_transfer(self, make_model, make_function):
        """Removing transfer(address,uint256) external returns (bool) is one breaking change."""
        transfer = make_function("transfer", visibility="external",
                                 params=["address to", "uint256 amount"], returns=["bool"])
        changes = diff_models(make_model(functions=[transfer]), make_model())
        assert len(changes) == 1
        change = changes[0]
        assert (change.category, change.type, change.impact) == (
            ChangeCategory.FUNCTION, ChangeType.REMOVED, Impact.BREAKING,
        )
        assert change.before == "function transfer(address to, uint256 amount) external nonpayable returns (bool)"

    def test_remove_public_breaking_private_not(self, make_model, make_function):
        """Only externally visible removals break callers."""
        model_a = make_model(functions=[
            make_function("open", visibility="public"),
            make_function("_hidden", visibility="private"),
        ])
        changes = {c.name: c for c in diff_models(model_a, make_model())}
        assert changes["open"].impact is Impact.BREAKING
        assert changes["_hidden"].impact is Impact.NON_BREAKING

    def test_impact_cannot_be_reassigned(self, make_model, make_function):
        """A change keeps the impact the comparison rules gave it."""
        change = diff_models(make_model(functions=[make_function("open")]), make_model())[0]
        with pytest.raises(dataclasses.FrozenInstanceError):
            change.impact = Impact.NON_BREAKING
        assert change.impact is Impact.BREAKING

    def test_added_function(self, make_model, make_function):
        """Additions are never breaking."""
        changes = diff_models(make_model(), make_model(functions=[make_function("f", visibility="external")]))
        assert [(c.type, c.impact) for c in changes] == [(ChangeType.ADDED, Impact.NON_BREAKING)]

    def test_parameter_type_change_is_breaking(self, make_model, make_function):
        """A public function with new parameter types breaks the ABI."""
        model_a = make_model(functions=[make_function("f", params=["uint256 a"])])
        model_b = make_model(functions=[make_function("f", params=["address a"])])
        [change] = diff_models(model_a, model_b)
        assert change.type is ChangeType.MODIFIED
        assert change.impact is Impact.BREAKING
        assert "parameters changed" in change.description

    def test_parameter_rename_is_not_a_change(self, make_model, make_function):
        """Parameter names are not part of the signature."""
        model_a = make_model(functions=[make_function("f", params=["uint256 amount"])])
        model_b = make_model(functions=[make_function("f", params=["uint256 value"])])
        assert diff_models(model_a, model_b) == []

    def test_uint_alias_is_not_a_change(self, make_model, make_function):
        """uint and uint256 are the same type."""
        model_a = make_model(functions=[make_function("f", params=["uint a"], returns=["uint"])])
        model_b = make_model(functions=[make_function("f", params=["uint256 a"], returns=["uint256"])])
        assert diff_models(model_a, model_b) == []

    def test_storage_location_change(self, make_model, make_function):
        """Moving a parameter from memory to calldata changes the signature."""
        model_a = make_model(functions=[make_function("f", visibility="external", params=["bytes memory data"])])
        model_b = make_model(functions=[make_function("f", visibility="external", params=["bytes calldata data"])])
        [change] = diff_models(model_a, model_b)
        assert change.type is ChangeType.MODIFIED

    def test_modifier_change_alone_is_not_breaking(self, make_model, make_function):
        """Modifier list changes on a public function are non-breaking."""
        model_a = make_model(functions=[make_function("f", modifiers=["onlyOwner"])])
        model_b = make_model(functions=[make_function("f")])
        [change] = diff_models(model_a, model_b)
        assert change.impact is Impact.NON_BREAKING
        assert "modifiers changed" in change.description

    def test_internal_changes_are_not_breaking(self, make_model, make_function):
        """Changes confined to internal functions never break callers."""
        model_a = make_model(functions=[make_function("_f", visibility="internal", params=["uint256 a"])])
        model_b = make_model(functions=[make_function("_f", visibility="private", mutability="view")])
        [change] = diff_models(model_a, model_b)
        assert change.impact is Impact.NON_BREAKING

    def test_visibility_narrowing_is_breaking(self, make_model, make_function):
        """public to internal breaks callers."""
        model_a = make_model(functions=[make_function("f", visibility="public")])
        model_b = make_model(functions=[make_function("f", visibility="internal")])
        [change] = diff_models(model_a, model_b)
        assert change.impact is Impact.BREAKING
        assert "visibility: public → internal" in change.description

    def test_special_functions_keyed_by_kind(self, make_model, make_function):
        """Constructor and receive are compared by kind."""
        constructor = make_function("", kind=FunctionKind.CONSTRUCTOR, params=["address owner"])
        receive = make_function("", kind=FunctionKind.RECEIVE, visibility="external", mutability="payable")
        changes = diff_models(make_model(functions=[constructor, receive]), make_model(functions=[constructor]))
        assert [(c.name, c.type) for c in changes] == [("receive", ChangeType.REMOVED)]
        assert changes[0].before == "receive() external payable"

    def test_duplicate_names_do_not_crash(self, make_model, make_function):
        """Overloads collapse to the last declaration."""
        model_a = make_model(functions=[make_function("f", params=["uint256 a"]), make_function("f")])
        model_b = make_model(functions=[make_function("f")])
        assert diff_models(model_a, model_b) == []


class TestEventComparison:
    """Event rules."""

    def test_parameter_rename_is_not_a_change(self, make_model, make_event):
        """Renaming value to amount keeps the canonical signature."""
        model_a = make_model(events=[make_event(
            "Transfer", params=["address indexed from", "address indexed to", "uint256 value"])])
        model_b = make_model(events=[make_event(
            "Transfer", params=["address indexed from", "address indexed to", "uint256 amount"])])
        assert diff_models(model_a, model_b) == []

    def test_indexed_flag_change_is_breaking(self, make_model, make_event):
        """Indexing a parameter changes how logs decode."""
        model_a = make_model(events=[make_event("Paid", params=["address to", "uint256 value"])])
        model_b = make_model(events=[make_event("Paid", params=["address indexed to", "uint256 value"])])
        [change] = diff_models(model_a, model_b)
        assert (change.type, change.impact) == (ChangeType.MODIFIED, Impact.BREAKING)

    def test_anonymous_flag_change(self, make_model, make_event):
        """Anonymous events have no topic zero."""
        model_a = make_model(events=[make_event("Ping")])
        model_b = make_model(events=[make_event("Ping", anonymous=True)])
        [change] = diff_models(model_a, model_b)
        assert change.impact is Impact.BREAKING

    def test_removal_breaking_addition_not(self, make_model, make_event):
        """Removing an event breaks indexers; adding one does not."""
        changes = diff_models(make_model(events=[make_event("Old")]), make_model(events=[make_event("New")]))
        assert [(c.name, c.type, c.impact) for c in changes] == [
            ("New", ChangeType.ADDED, Impact.NON_BREAKING),
            ("Old", ChangeType.REMOVED, Impact.BREAKING),
        ]


class TestVariableComparison:
    """State variable rules."""

    def test_public_removal_breaking(self, make_model, make_variable):
        """A removed public variable loses its getter."""
        model_a = make_model(variables=[make_variable("owner", "address", "public"), make_variable("_x")])
        changes = {c.name: c for c in diff_models(model_a, make_model())}
        assert changes["owner"].impact is Impact.BREAKING
        assert changes["_x"].impact is Impact.NON_BREAKING

    def test_type_change_breaking(self, make_model, make_variable):
        """Changing the type is breaking even for private variables."""
        model_a = make_model(variables=[make_variable("x", "uint128", "private")])
        model_b = make_model(variables=[make_variable("x", "uint256", "private")])
        [change] = diff_models(model_a, model_b)
        assert change.impact is Impact.BREAKING
        assert change.explanation is not None

    def test_internal_visibility_change_not_breaking(self, make_model, make_variable):
        """internal to private touches no public surface."""
        model_a = make_model(variables=[make_variable("x", visibility="internal")])
        model_b = make_model(variables=[make_variable("x", visibility="private")])
        [change] = diff_models(model_a, model_b)
        assert change.impact is Impact.NON_BREAKING

    def test_alias_type_is_not_a_change(self, make_model, make_variable):
        """mapping(address => uint) equals mapping(address => uint256)."""
        model_a = make_model(variables=[make_variable("b", "mapping(address => uint)", "public")])
        model_b = make_model(variables=[make_variable("b", "mapping(address => uint256)", "public")])
        assert diff_models(model_a, model_b) == []

    def test_constant_flag_flip_reported(self, make_model, make_variable):
        """Becoming immutable is a non-breaking modification."""
        model_a = make_model(variables=[make_variable("fee")])
        model_b = make_model(variables=[make_variable("fee", immutable=True)])
        [change] = diff_models(model_a, model_b)
        assert (change.type, change.impact) == (ChangeType.MODIFIED, Impact.NON_BREAKING)


class TestOtherCategories:
    """Modifiers, imports and inheritance."""

    def test_modifier_changes_never_breaking(self, make_model, make_modifier):
        """Removal carries an explanation; signature changes are non-breaking."""
        model_a = make_model(modifiers=[make_modifier("onlyOwner"), make_modifier("limit", ["uint256 max"])])
        model_b = make_model(modifiers=[make_modifier("limit", ["uint128 max"])])
        changes = diff_models(model_a, model_b)
        assert [(c.name, c.type) for c in changes] == [
            ("onlyOwner", ChangeType.REMOVED), ("limit", ChangeType.MODIFIED),
        ]
        assert all(c.impact is Impact.NON_BREAKING for c in changes)
        assert changes[0].explanation

    def test_imports_by_path(self, make_model):
        """Import changes are path-set differences."""
        model_a = make_model(imports=[Import("./A.sol"), Import("./B.sol", symbols=("B",))])
        model_b = make_model(imports=[Import("./B.sol"), Import("./C.sol")])
        changes = diff_models(model_a, model_b)
        assert [(c.name, c.type) for c in changes] == [("./C.sol", ChangeType.ADDED), ("./A.sol", ChangeType.REMOVED)]
        assert all(c.impact is Impact.NON_BREAKING for c in changes)

    def test_inheritance_removal_breaking(self, make_model):
        """Dropping a base contract is breaking; adding one is not."""
        changes = diff_models(make_model(inherits=["Ownable"]), make_model(inherits=["AccessControl"]))
        assert [(c.name, c.type, c.impact) for c in changes] == [
            ("AccessControl", ChangeType.ADDED, Impact.NON_BREAKING),
            ("Ownable", ChangeType.REMOVED, Impact.BREAKING),
        ]


class TestGuardsAndAggregates:
    """Per-category isolation, summary and statistics."""

    def test_failing_comparator_isolated(self, make_model, make_function, make_event, monkeypatch, caplog):
        """A crashing category reports nothing while the others still run."""
        def explode(self, events_a, events_b):
            raise RuntimeError("boom")

        monkeypatch.setattr(StructuralDiffer, "compare_events", explode)
        model_a = make_model(functions=[make_function("f")], events=[make_event("E")])
        with caplog.at_level(logging.ERROR, logger="sollens.analyzers.structural_differ"):
            changes = diff_models(model_a, make_model())
        assert [c.category for c in changes] == [ChangeCategory.FUNCTION]
        assert "boom" in caplog.text

    def test_category_order(self, make_model, make_function, make_event, make_variable, make_modifier):
        """Categories appear in a fixed order."""
        model_b = make_model(
            functions=[make_function("f")], events=[make_event("E")], variables=[make_variable("v")],
            modifiers=[make_modifier("m")], imports=[Import("./I.sol")], inherits=["Base"],
        )
        changes = diff_models(make_model(), model_b)
        assert [c.category for c in changes] == list(ChangeCategory)

    def test_summary_and_stats(self, token_v1, token_v2):
        """Counts line up with the change list and the text diff."""
        changes = diff_models(parse(token_v1), parse(token_v2))
        text_diff = diff_lines(token_v1, token_v2)
        summary = summarize(changes, "note")
        stats = compute_stats(changes, text_diff)

        assert summary.total_changes == len(changes) == 4
        assert (summary.added, summary.removed, summary.modified) == (0, 3, 1)
        assert summary.breaking_changes == 2
        assert summary.analysis_summary == "note"

        assert stats.count("function", "removed") == 1
        assert stats.count(ChangeCategory.FUNCTION, ChangeType.MODIFIED) == 1
        assert stats.count("event", "removed") == 1
        assert stats.count("modifier", "removed") == 1
        assert stats.count("import", "added") == 0
        assert stats.lines_modified == min(stats.lines_added, stats.lines_removed)
        assert stats.to_dict()["event_removed"] == 1
