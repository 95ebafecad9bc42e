"""Call graph generation and complexity analysis for Solidity functions."""

from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

import networkx as nx

from ..parsers.contract_model import ContractModel, ExternalCall
from ..parsers.syntax import (
    BinaryOp, Call, Conditional, Group, Identifier, IfStatement, Loop, MemberAccess,
    SyntaxNode, walk,
)

# Invariant checks fail the transaction, so each one is a branch
ASSERTION_CALLS = {"require", "assert"}
SHORT_CIRCUIT_OPERATORS = {"&&", "||"}


def complexity(body: Optional[SyntaxNode]) -> int:
    """Cyclomatic complexity of a function body.

    1 plus one for every if, loop, ternary, require/assert call and
    short-circuit boolean operator.
    """
    score = 1
    for node in walk(body):
        if isinstance(node, (IfStatement, Loop, Conditional)):
            score += 1
        elif isinstance(node, Call):
            if isinstance(node.callee, Identifier) and node.callee.name in ASSERTION_CALLS:
                score += 1
        elif isinstance(node, BinaryOp):
            if node.operator in SHORT_CIRCUIT_OPERATORS:
                score += 1
        elif isinstance(node, (Identifier, MemberAccess, Group)):
            pass
        else:
            raise TypeError(f"Unknown syntax node: {type(node).__name__}")
    return score


def calls(body: Optional[SyntaxNode]) -> Tuple[str, ...]:
    """Names of everything called in a body, first-seen order."""
    seen: Dict[str, None] = {}
    for node in walk(body):
        if not isinstance(node, Call):
            continue
        callee = node.callee
        if isinstance(callee, Identifier):
            seen.setdefault(callee.name)
        elif isinstance(callee, MemberAccess):
            seen.setdefault(callee.member)
    return tuple(seen)


def external_calls(body: Optional[SyntaxNode]) -> Tuple[ExternalCall, ...]:
    """Member-access calls on another contract.

    ``token.transfer(...)`` yields ``(token, transfer)`` and
    ``IERC20(addr).transfer(...)`` yields ``(IERC20, transfer)``.
    """
    found: List[ExternalCall] = []
    for node in walk(body):
        if not isinstance(node, Call) or not isinstance(node.callee, MemberAccess):
            continue
        receiver = node.callee.object
        if isinstance(receiver, Identifier):
            found.append(ExternalCall(contract=receiver.name, function=node.callee.member))
        elif isinstance(receiver, Call) and isinstance(receiver.callee, Identifier):
            found.append(ExternalCall(contract=receiver.callee.name, function=node.callee.member))
    return tuple(found)


@dataclass
class Node:
    """Represents a node in the call graph."""
    id: str
    name: str
    type: str  # function, modifier or external
    start_line: int
    end_line: int


@dataclass
class Edge:
    """Represents an edge in the call graph."""
    source: str
    target: str
    type: str  # calls, uses_modifier, external


@dataclass
class CallGraph:
    """Call graph of one contract model."""
    graph: nx.DiGraph
    nodes: Dict[str, Node]
    contract: str

    def callers_of(self, name: str) -> List[str]:
        """Functions with a direct edge into ``name``, in declaration order."""
        if name not in self.graph:
            return []
        callers = set(self.graph.predecessors(name))
        return [node_id for node_id, node in self.nodes.items()
                if node.type == "function" and node_id in callers]

    def reachable_from(self, name: str) -> Set[str]:
        """Everything transitively called from ``name``."""
        if name not in self.graph:
            return set()
        return set(nx.descendants(self.graph, name))

    def summary(self) -> Dict[str, int]:
        """Node and edge counts per type."""
        counts = {"nodes": self.graph.number_of_nodes(), "edges": self.graph.number_of_edges()}
        for node in self.nodes.values():
            counts[f"{node.type}_nodes"] = counts.get(f"{node.type}_nodes", 0) + 1
        for _, _, edge_type in self.graph.edges(data="type"):
            counts[f"{edge_type}_edges"] = counts.get(f"{edge_type}_edges", 0) + 1
        return counts


class CallGraphAnalyzer:
    """Builds call graphs from parsed contract models."""

    def build_graph(self, model: ContractModel) -> CallGraph:
        """Build a call graph for every function and modifier of a model."""
        graph = nx.DiGraph()
        nodes: Dict[str, Node] = {}

        for fn in model.functions:
            node = Node(id=fn.key, name=fn.key, type="function",
                        start_line=fn.line_start, end_line=fn.line_end)
            nodes[node.id] = node
            graph.add_node(node.id, **node.__dict__)

        for mod in model.modifiers:
            # A modifier sharing a function's name would be ambiguous; the function wins
            if mod.name in nodes:
                continue
            node = Node(id=mod.name, name=mod.name, type="modifier",
                        start_line=mod.line_start, end_line=mod.line_end)
            nodes[node.id] = node
            graph.add_node(node.id, **node.__dict__)

        for fn in model.functions:
            for callee in fn.calls:
                target = nodes.get(callee)
                if target is not None and target.type == "function":
                    self._add_edge(graph, Edge(source=fn.key, target=callee, type="calls"))

            for modifier in fn.modifiers:
                target = nodes.get(modifier)
                if target is not None and target.type == "modifier":
                    self._add_edge(graph, Edge(source=fn.key, target=modifier, type="uses_modifier"))
                elif target is None:
                    # Inherited modifier declared outside this source
                    nodes[modifier] = Node(id=modifier, name=modifier, type="modifier",
                                           start_line=0, end_line=0)
                    graph.add_node(modifier, **nodes[modifier].__dict__)
                    self._add_edge(graph, Edge(source=fn.key, target=modifier, type="uses_modifier"))

            for ext in fn.external_calls:
                target_id = str(ext)
                if target_id not in nodes:
                    nodes[target_id] = Node(id=target_id, name=ext.function, type="external",
                                            start_line=0, end_line=0)
                    graph.add_node(target_id, **nodes[target_id].__dict__)
                self._add_edge(graph, Edge(source=fn.key, target=target_id, type="external"))

        return CallGraph(graph=graph, nodes=nodes, contract=model.name)

    @staticmethod
    def _add_edge(graph: nx.DiGraph, edge: Edge):
        graph.add_edge(edge.source, edge.target, **edge.__dict__)
