"""Typed syntax tree for Solidity function bodies.

tree-sitter hands back generic nodes tagged with a ``type`` string. Bodies are
lowered once into the closed set of node classes below, and every walker in the
package dispatches over exactly that set.
"""

from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Tuple, Union

from tree_sitter import Node as TSNode

# tree-sitter node types that only wrap a single inner expression
TRANSPARENT_TYPES = {"expression", "parenthesized_expression"}

LOOP_TYPES = {
    "for_statement": "for",
    "while_statement": "while",
    "do_while_statement": "do-while",
}


@dataclass(frozen=True)
class Identifier:
    """A bare name: ``foo``, ``token``, ``require``."""
    name: str
    line: int


@dataclass(frozen=True)
class MemberAccess:
    """``object.member``."""
    object: "SyntaxNode"
    member: str
    line: int


@dataclass(frozen=True)
class Call:
    """Any invocation ``callee(arguments...)``, including type casts."""
    callee: "SyntaxNode"
    arguments: Tuple["SyntaxNode", ...]
    line: int


@dataclass(frozen=True)
class BinaryOp:
    """Binary operation with its operator text."""
    operator: str
    left: "SyntaxNode"
    right: "SyntaxNode"
    line: int


@dataclass(frozen=True)
class Conditional:
    """Ternary ``condition ? a : b``."""
    condition: "SyntaxNode"
    if_true: "SyntaxNode"
    if_false: "SyntaxNode"
    line: int


@dataclass(frozen=True)
class IfStatement:
    condition: "SyntaxNode"
    body: "SyntaxNode"
    else_body: Optional["SyntaxNode"]
    line: int


@dataclass(frozen=True)
class Loop:
    """``for``, ``while`` and ``do-while`` loops; ``parts`` keeps header and body in source order."""
    kind: str
    parts: Tuple["SyntaxNode", ...]
    line: int


@dataclass(frozen=True)
class Group:
    """Every other construct (blocks, statements, literals, assignments...)."""
    kind: str
    children: Tuple["SyntaxNode", ...]
    line: int


SyntaxNode = Union[Identifier, MemberAccess, Call, BinaryOp, Conditional, IfStatement, Loop, Group]


def children(node: SyntaxNode) -> Tuple[SyntaxNode, ...]:
    """Direct children of a node, in source order."""
    if isinstance(node, Identifier):
        return ()
    elif isinstance(node, MemberAccess):
        return (node.object,)
    elif isinstance(node, Call):
        return (node.callee,) + node.arguments
    elif isinstance(node, BinaryOp):
        return (node.left, node.right)
    elif isinstance(node, Conditional):
        return (node.condition, node.if_true, node.if_false)
    elif isinstance(node, IfStatement):
        if node.else_body is None:
            return (node.condition, node.body)
        return (node.condition, node.body, node.else_body)
    elif isinstance(node, Loop):
        return node.parts
    elif isinstance(node, Group):
        return node.children
    raise TypeError(f"Unknown syntax node: {type(node).__name__}")


def walk(node: Optional[SyntaxNode]) -> Iterator[SyntaxNode]:
    """Pre-order traversal. Iterative so deep expression chains cannot hit the recursion limit."""
    if node is None:
        return
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(children(current)))


# ---------------------------------------------------------------------------
# Lowering from tree-sitter
# ---------------------------------------------------------------------------

def node_text(node: Optional[TSNode]) -> str:
    """Decoded source text of a tree-sitter node."""
    if node is None or node.text is None:
        return ""
    return node.text.decode("utf8")


def _line(node: TSNode) -> int:
    return node.start_point[0] + 1


def _unwrap(node: TSNode) -> TSNode:
    while node.type in TRANSPARENT_TYPES and len(node.named_children) == 1:
        node = node.named_children[0]
    return node


def _field_or_index(node: TSNode, field: str, index: int) -> Optional[TSNode]:
    found = node.child_by_field_name(field)
    if found is not None:
        return found
    named = node.named_children
    if -len(named) <= index < len(named):
        return named[index]
    return None


def _operator(node: TSNode) -> str:
    op = node.child_by_field_name("operator")
    if op is not None:
        return node_text(op)
    for child in node.children:
        if not child.is_named:
            return child.type
    return ""


def _plan(node: TSNode) -> Tuple[Callable[[List[SyntaxNode]], SyntaxNode], List[TSNode]]:
    """Builder for one node plus the tree-sitter children it is built from, in order."""
    kind = node.type
    line = _line(node)

    if kind == "identifier":
        return lambda _: Identifier(name=node_text(node), line=line), []

    if kind == "member_expression":
        obj = _field_or_index(node, "object", 0)
        prop = _field_or_index(node, "property", -1)
        if obj is not None and prop is not None and obj != prop:
            member = node_text(prop)
            return lambda parts: MemberAccess(object=parts[0], member=member, line=line), [obj]

    elif kind == "call_expression":
        callee = _field_or_index(node, "function", 0)
        if callee is not None:
            inputs = [callee] + [c for c in node.named_children if c != callee]
            return lambda parts: Call(callee=parts[0], arguments=tuple(parts[1:]), line=line), inputs

    elif kind == "binary_expression":
        left = _field_or_index(node, "left", 0)
        right = _field_or_index(node, "right", -1)
        if left is not None and right is not None and left != right:
            operator = _operator(node)
            return lambda parts: BinaryOp(operator=operator, left=parts[0], right=parts[1], line=line), [left, right]

    elif kind == "ternary_expression":
        if len(node.named_children) == 3:
            inputs = [
                _field_or_index(node, "condition", 0),
                _field_or_index(node, "consequence", 1),
                _field_or_index(node, "alternative", 2),
            ]
            return lambda parts: Conditional(condition=parts[0], if_true=parts[1], if_false=parts[2], line=line), inputs

    elif kind == "if_statement":
        condition = _field_or_index(node, "condition", 0)
        body = _field_or_index(node, "body", 1)
        if condition is not None and body is not None:
            else_node = node.child_by_field_name("else")
            if else_node is None and len(node.named_children) > 2:
                else_node = node.named_children[2]
            inputs = [condition, body] + ([else_node] if else_node is not None else [])
            return lambda parts: IfStatement(
                condition=parts[0],
                body=parts[1],
                else_body=parts[2] if len(parts) > 2 else None,
                line=line,
            ), inputs

    elif kind in LOOP_TYPES:
        return lambda parts: Loop(kind=LOOP_TYPES[kind], parts=tuple(parts), line=line), list(node.named_children)

    return lambda parts: Group(kind=kind, children=tuple(parts), line=line), list(node.named_children)


def lower(node: TSNode) -> SyntaxNode:
    """Convert a tree-sitter subtree into the typed syntax tree.

    Iterative post-order: long operator chains nest thousands of levels deep,
    well past the interpreter's recursion limit.
    """
    stack = [(_unwrap(node), None)]
    built: List[SyntaxNode] = []
    while stack:
        current, plan = stack.pop()
        if plan is None:
            plan = _plan(current)
            stack.append((current, plan))
            for child in reversed(plan[1]):
                stack.append((_unwrap(child), None))
        else:
            build, inputs = plan
            # Children were built left to right onto the top of ``built``
            start = len(built) - len(inputs)
            parts = built[start:]
            del built[start:]
            built.append(build(parts))
    return built[0]
