"""Tree-sitter based Solidity parsing into a ContractModel."""

import logging
import re
from typing import Iterator, List, Optional, Tuple

from tree_sitter import Node, Tree
from tree_sitter_language_pack import get_parser

from ..analyzers.call_graph_analyzer import calls, complexity, external_calls
from ..exceptions import ParseError
from .contract_model import (
    MUTABILITIES, STORAGE_LOCATIONS, VISIBILITIES,
    ContractKind, ContractModel, EnumDefinition, Event, Function, FunctionKind, Import,
    Modifier, Parameter, StructDefinition, StructMember, Variable,
)
from .syntax import lower, node_text

logger = logging.getLogger(__name__)

CONTRACT_TYPES = {
    "contract_declaration": ContractKind.CONTRACT,
    "interface_declaration": ContractKind.INTERFACE,
    "library_declaration": ContractKind.LIBRARY,
}

# Declarations whose subtree holds nothing else worth extracting
LEAF_DECLARATIONS = {
    "function_definition",
    "constructor_definition",
    "fallback_receive_definition",
    "modifier_definition",
    "event_definition",
    "state_variable_declaration",
    "struct_declaration",
    "enum_declaration",
}

# Comments are removed before the text scans; string literals are kept intact so
# that "https://..." import paths survive.
COMMENT_PATTERN = re.compile(r'("(?:\\.|[^"\\])*"|\'(?:\\.|[^\'\\])*\')|//[^\n]*|/\*.*?\*/', re.DOTALL)
PRAGMA_PATTERN = re.compile(r'pragma\s+solidity\s+([^;]+);')
NAMED_IMPORT_PATTERN = re.compile(r'import\s+\{([^}]+)\}\s+from\s+["\']([^"\']+)["\']')
DEFAULT_IMPORT_PATTERN = re.compile(
    r'import\s+(?:\*\s+as\s+(\w+)\s+from\s+)?["\']([^"\']+)["\'](?:\s+as\s+(\w+))?'
)


def strip_comments(source_code: str) -> str:
    """Remove line and block comments from Solidity code."""
    return COMMENT_PATTERN.sub(lambda m: m.group(1) or "", source_code)


def extract_pragma(source_code: str) -> str:
    """Version constraint of the first ``pragma solidity`` directive."""
    match = PRAGMA_PATTERN.search(strip_comments(source_code))
    return match.group(1).strip() if match else ""


def extract_imports(source_code: str) -> Tuple[Import, ...]:
    """Import directives, named imports first.

    A path already seen as a named import is not added again as a default import.
    """
    text = strip_comments(source_code)
    imports: List[Import] = []

    for match in NAMED_IMPORT_PATTERN.finditer(text):
        symbols = tuple(s.strip() for s in match.group(1).split(",") if s.strip())
        imports.append(Import(path=match.group(2), symbols=symbols))

    named_paths = {imp.path for imp in imports}
    for match in DEFAULT_IMPORT_PATTERN.finditer(text):
        path = match.group(2)
        if path in named_paths:
            continue
        imports.append(Import(path=path, symbols=(), alias=match.group(1) or match.group(3)))

    return tuple(imports)


def normalize_type_text(text: str) -> str:
    """Render a type as a single-line composed string, e.g. ``mapping(address => uint256)``."""
    text = re.sub(r'\s+', ' ', text).strip()
    text = re.sub(r'\s*([()\[\],])\s*', r'\1', text)
    text = re.sub(r'\s*=>\s*', ' => ', text)
    return text.replace(",", ", ")


class SolidityParser:
    """Parser using Tree-sitter's Solidity grammar.

    tree-sitter recovers from syntax errors, so dirty source still produces a
    model of everything that could be recognised.
    """

    def __init__(self):
        self.parser = get_parser("solidity")

    def parse_tree(self, source_code: str) -> Tree:
        """Build the raw tree-sitter tree."""
        try:
            return self.parser.parse(bytes(source_code, "utf8"))
        except (TypeError, ValueError, UnicodeError) as e:
            raise ParseError(f"Failed to parse Solidity source code: {e}") from e

    def parse(self, source_code: str) -> ContractModel:
        """Parse Solidity source into a ContractModel.

        Raises:
            ParseError: nothing at all could be recovered from the source
        """
        tree = self.parse_tree(source_code)
        root = tree.root_node

        contracts: List[Node] = []
        inherited: List[str] = []
        functions: List[Function] = []
        events: List[Event] = []
        variables: List[Variable] = []
        modifiers: List[Modifier] = []
        structs: List[StructDefinition] = []
        enums: List[EnumDefinition] = []

        for node in self._declarations(root):
            kind = node.type
            if kind in CONTRACT_TYPES:
                contracts.append(node)
                for name in self._inheritance(node):
                    if name not in inherited:
                        inherited.append(name)
            elif kind in ("function_definition", "constructor_definition", "fallback_receive_definition"):
                functions.append(self._function(node))
            elif kind == "modifier_definition":
                modifiers.append(self._modifier(node))
            elif kind == "event_definition":
                events.append(self._event(node))
            elif kind == "state_variable_declaration":
                variables.append(self._variable(node))
            elif kind == "struct_declaration":
                structs.append(self._struct(node))
            elif kind == "enum_declaration":
                enums.append(self._enum(node))

        recovered = contracts or functions or events or variables or modifiers or structs or enums
        if root.has_error:
            line, column, message = self._first_error(root)
            if not recovered and source_code.strip():
                logger.error(f"Failed to parse Solidity source: {message}")
                raise ParseError(f"Failed to parse Solidity source code: {message}", line, column)
            logger.warning(f"Recovered from syntax errors in Solidity source: {message}")

        # Multi-contract sources list dependencies first and the primary contract last
        main = self._top_level_contracts(root) or contracts
        main_contract = main[-1] if main else None

        return ContractModel(
            name=self._name(main_contract) if main_contract is not None else "Unknown",
            kind=self._contract_kind(main_contract),
            pragma=extract_pragma(source_code),
            imports=extract_imports(source_code),
            inherited_contracts=tuple(inherited),
            functions=tuple(functions),
            events=tuple(events),
            variables=tuple(variables),
            modifiers=tuple(modifiers),
            structs=tuple(structs),
            enums=tuple(enums),
            total_lines=len(source_code.split("\n")),
            complexity=sum(fn.complexity for fn in functions),
        )

    # ------------------------------------------------------------------
    # Tree traversal
    # ------------------------------------------------------------------

    def _declarations(self, root: Node) -> Iterator[Node]:
        """Declarations in source order, without descending into their bodies."""
        stack = list(reversed(root.children))
        while stack:
            node = stack.pop()
            if node.type in LEAF_DECLARATIONS:
                yield node
                continue
            if node.type in CONTRACT_TYPES:
                yield node
            stack.extend(reversed(node.children))

    def _top_level_contracts(self, root: Node) -> List[Node]:
        return [child for child in root.named_children if child.type in CONTRACT_TYPES]

    def _first_error(self, root: Node) -> Tuple[int, int, str]:
        """Position and description of the first error or missing node."""
        stack = [root]
        while stack:
            node = stack.pop()
            if node.is_missing:
                line, column = node.start_point[0] + 1, node.start_point[1] + 1
                return line, column, f"missing '{node.type}' at line {line}, column {column}"
            if node.type == "ERROR":
                line, column = node.start_point[0] + 1, node.start_point[1] + 1
                snippet = node_text(node).strip().splitlines()
                near = f" near '{snippet[0][:40]}'" if snippet else ""
                return line, column, f"syntax error at line {line}, column {column}{near}"
            stack.extend(reversed(node.children))
        return 0, 0, "syntax error"

    # ------------------------------------------------------------------
    # Extraction helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _name(node: Optional[Node]) -> str:
        if node is None:
            return ""
        name_node = node.child_by_field_name("name")
        if name_node is None:
            name_node = next((c for c in node.named_children if c.type == "identifier"), None)
        return node_text(name_node)

    @staticmethod
    def _lines(node: Node) -> Tuple[int, int]:
        return node.start_point[0] + 1, node.end_point[0] + 1

    @staticmethod
    def _contract_kind(node: Optional[Node]) -> ContractKind:
        if node is None:
            return ContractKind.CONTRACT
        kind = CONTRACT_TYPES.get(node.type, ContractKind.CONTRACT)
        if kind is ContractKind.CONTRACT and any(c.type == "abstract" for c in node.children):
            return ContractKind.ABSTRACT
        return kind

    @staticmethod
    def _inheritance(node: Node) -> List[str]:
        parents = []
        for child in node.children:
            if child.type != "inheritance_specifier":
                continue
            ancestor = child.child_by_field_name("ancestor")
            text = node_text(ancestor) if ancestor is not None else node_text(child).split("(")[0]
            name = re.sub(r'\s+', '', text)
            if name:
                parents.append(name)
        return parents

    def _parameter(self, node: Node) -> Parameter:
        type_node = node.child_by_field_name("type")
        if type_node is None:
            type_node = next((c for c in node.named_children if c.type == "type_name"), None)
        name_node = node.child_by_field_name("name")
        if name_node is None:
            name_node = next((c for c in reversed(node.named_children)
                              if c.type == "identifier" and c != type_node), None)

        location = None
        indexed = False
        for child in node.children:
            if child == type_node or child == name_node:
                continue
            text = node_text(child)
            if text in STORAGE_LOCATIONS:
                location = text
            elif text == "indexed":
                indexed = True

        return Parameter(
            name=node_text(name_node),
            type=normalize_type_text(node_text(type_node)) if type_node is not None else "unknown",
            storage_location=location,
            indexed=indexed,
        )

    def _parameters(self, node: Node) -> Tuple[Parameter, ...]:
        """Parameters directly under a definition (or under a parameter list node)."""
        params = []
        for child in node.children:
            if child.type in ("parameter", "event_parameter"):
                params.append(self._parameter(child))
            elif child.type.endswith("parameter_list"):
                params.extend(self._parameters(child))
        return tuple(params)

    def _function(self, node: Node) -> Function:
        if node.type == "constructor_definition":
            kind = FunctionKind.CONSTRUCTOR
            name = ""
        elif node.type == "fallback_receive_definition":
            is_receive = any(c.type == "receive" or node_text(c) == "receive" for c in node.children)
            kind = FunctionKind.RECEIVE if is_receive else FunctionKind.FALLBACK
            name = ""
        else:
            kind = FunctionKind.FUNCTION
            name = self._name(node)

        visibility = None
        mutability = None
        modifiers: List[str] = []
        returns: Tuple[Parameter, ...] = ()
        body_node = node.child_by_field_name("body")

        for child in node.children:
            if child == body_node or child.type == "function_body":
                body_node = child
            elif child.type == "return_type_definition":
                returns = self._parameters(child)
            elif child.type == "modifier_invocation":
                modifier = re.sub(r'\s+', '', node_text(child).split("(")[0])
                if modifier:
                    modifiers.append(modifier)
            else:
                text = node_text(child)
                if text in VISIBILITIES:
                    visibility = text
                elif text in MUTABILITIES:
                    mutability = text

        body = lower(body_node) if body_node is not None else None
        line_start, line_end = self._lines(node)

        return Function(
            name=name,
            kind=kind,
            visibility=visibility or "public",
            mutability=mutability or "nonpayable",
            parameters=self._parameters(node),
            returns=returns,
            modifiers=tuple(modifiers),
            line_start=line_start,
            line_end=line_end,
            calls=calls(body),
            external_calls=external_calls(body),
            complexity=complexity(body),
        )

    def _modifier(self, node: Node) -> Modifier:
        line_start, line_end = self._lines(node)
        return Modifier(name=self._name(node), parameters=self._parameters(node),
                        line_start=line_start, line_end=line_end)

    def _event(self, node: Node) -> Event:
        line_start, line_end = self._lines(node)
        return Event(
            name=self._name(node),
            parameters=self._parameters(node),
            line_start=line_start,
            line_end=line_end,
            anonymous=any(node_text(c) == "anonymous" for c in node.children),
        )

    def _variable(self, node: Node) -> Variable:
        type_node = node.child_by_field_name("type")
        if type_node is None:
            type_node = next((c for c in node.named_children if c.type == "type_name"), None)
        name_node = node.child_by_field_name("name")
        value_node = node.child_by_field_name("value")

        visibility = "internal"
        is_constant = False
        is_immutable = False
        for child in node.children:
            if child in (type_node, name_node, value_node):
                continue
            text = node_text(child)
            if text in VISIBILITIES:
                visibility = text
            elif text == "constant":
                is_constant = True
            elif text == "immutable":
                is_immutable = True

        line_start, line_end = self._lines(node)
        return Variable(
            name=node_text(name_node) if name_node is not None else self._name(node),
            type=normalize_type_text(node_text(type_node)) if type_node is not None else "unknown",
            visibility=visibility,
            is_constant=is_constant,
            is_immutable=is_immutable,
            line_start=line_start,
            line_end=line_end,
        )

    def _struct(self, node: Node) -> StructDefinition:
        members = []
        stack = list(reversed(node.children))
        while stack:
            child = stack.pop()
            if child.type == "struct_member":
                member_type = child.child_by_field_name("type")
                member_name = child.child_by_field_name("name")
                members.append(StructMember(
                    name=node_text(member_name),
                    type=normalize_type_text(node_text(member_type)) if member_type is not None else "unknown",
                ))
            else:
                stack.extend(reversed(child.children))

        line_start, line_end = self._lines(node)
        return StructDefinition(name=self._name(node), members=tuple(members),
                                line_start=line_start, line_end=line_end)

    def _enum(self, node: Node) -> EnumDefinition:
        body = node.child_by_field_name("body")
        if body is None:
            body = next((c for c in node.named_children if c.type == "enum_body"), None)
        values = []
        if body is not None:
            values = [node_text(c) for c in body.named_children if c.type in ("enum_value", "identifier")]

        line_start, line_end = self._lines(node)
        return EnumDefinition(name=self._name(node), values=tuple(values),
                              line_start=line_start, line_end=line_end)


def parse(source_code: str) -> ContractModel:
    """Parse Solidity source with a fresh parser."""
    return SolidityParser().parse(source_code)
