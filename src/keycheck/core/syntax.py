"""Dart syntax trees and the call-site view that detectors inspect."""

import re
import threading
from dataclasses import dataclass, field
from typing import cast

from tree_sitter import Node, Parser, Tree
from tree_sitter_language_pack import SupportedLanguage, get_parser

ANONYMOUS_CALLBACK = "<anonymous>"
UNKNOWN_TARGET = "<expr>"

_CONSTRUCTION_TYPES = frozenset({"const_object_expression", "new_expression"})
_MEMBER_SELECTORS = frozenset({"unconditional_assignable_selector", "conditional_assignable_selector"})
_NAME_TYPES = frozenset({"identifier", "type_identifier"})
_PRIMARY_TYPES = frozenset({"identifier", "type_identifier", "this", "super"})

_QUOTED = re.compile(
    r"""'''(.*?)'''|\"\"\"(.*?)\"\"\"|'((?:\\.|[^'\\])*)'|"((?:\\.|[^"\\])*)\"""",
    re.S,
)
_INTERPOLATION = re.compile(r"\$\{[^}]*\}|\$[A-Za-z_]\w*")

_local = threading.local()


def get_dart_parser() -> Parser:
    """Parsers are not thread-safe, so each worker thread gets its own."""
    parser = getattr(_local, "parser", None)
    if parser is None:
        parser = get_parser(cast(SupportedLanguage, "dart"))
        _local.parser = parser
    return parser


def parse_source(source: bytes) -> Tree:
    return get_dart_parser().parse(source)


def node_text(node: Node, source: bytes) -> str:
    return source[node.start_byte : node.end_byte].decode("utf-8", errors="replace")


@dataclass(frozen=True)
class Expr:
    """An argument expression, reduced to what key detection cares about.

    kind is one of: string, template, identifier, reference, call, function, other.
    """

    kind: str
    text: str
    value: str | None = None
    call: "CallSite | None" = None

    @property
    def is_string(self) -> bool:
        return self.kind in ("string", "template")

    def callback_name(self) -> str:
        if self.kind in ("identifier", "reference") and self.value:
            return self.value
        if self.kind == "call" and self.call is not None:
            return self.call.callee
        return ANONYMOUS_CALLBACK


@dataclass(frozen=True)
class CallSite:
    callee: str
    is_const: bool
    positional: tuple[Expr, ...]
    named: dict[str, Expr]
    text: str
    line: int
    column: int
    offset: int
    anchor: Node | None = field(default=None, compare=False, repr=False)

    @property
    def name(self) -> str:
        return self.callee.rsplit(".", 1)[-1]

    @property
    def target(self) -> str | None:
        if "." not in self.callee:
            return None
        return self.callee.rsplit(".", 1)[0]

    @property
    def type_name(self) -> str:
        # ElevatedButton.icon(...) builds an ElevatedButton; m.Text(...) builds a Text.
        segments = self.callee.split(".")
        if len(segments) > 1 and segments[0][:1].isupper():
            return segments[0]
        return segments[-1]

    def first_positional(self) -> Expr | None:
        return self.positional[0] if self.positional else None

    def argument(self, label: str) -> Expr | None:
        return self.named.get(label)


def string_expr(node: Node, source: bytes) -> Expr:
    text = node_text(node, source)
    parts = []
    for match in _QUOTED.finditer(text):
        parts.append(next(group for group in match.groups() if group is not None))
    value = "".join(parts)
    raw = text.lstrip().startswith(("r'", 'r"'))
    if not raw and _INTERPOLATION.search(value):
        return Expr("template", text, value=_INTERPOLATION.sub("${...}", value))
    return Expr("string", text, value=value)


def argument_label(named_argument: Node, source: bytes) -> str | None:
    children = named_argument.named_children
    if not children or children[0].type != "label":
        return None
    return node_text(children[0], source).rstrip(":").strip()


def _member_name(selector: Node, source: bytes) -> str | None:
    """Name accessed by a `.name` or `?.name` selector, else None."""
    if selector.type != "selector":
        return None
    node = selector
    while node.named_children:
        first = node.named_children[0]
        if first.type in _MEMBER_SELECTORS:
            identifiers = [c for c in first.named_children if c.type in _NAME_TYPES]
            return node_text(identifiers[-1], source) if identifiers else None
        if first.type in ("argument_part", "arguments", "index_selector"):
            return None
        node = first
    return None


def _arguments_of(node: Node) -> Node | None:
    for child in node.named_children:
        if child.type == "arguments":
            return child
    return None


def expression_from(parts: list[Node], source: bytes) -> Expr:
    parts = [part for part in parts if part.type != "comment"]
    if not parts:
        return Expr("other", "")
    text = source[parts[0].start_byte : parts[-1].end_byte].decode("utf-8", errors="replace")

    if len(parts) == 1:
        node = parts[0]
        if node.type == "string_literal":
            return string_expr(node, source)
        if node.type == "identifier":
            return Expr("identifier", text, value=text)
        if node.type in _CONSTRUCTION_TYPES:
            arguments = _arguments_of(node)
            call = call_site_for(arguments, source) if arguments is not None else None
            return Expr("call", text, call=call)
        if node.type == "function_expression":
            return Expr("function", text)
        if node.type == "parenthesized_expression":
            return expression_from(list(node.named_children), source)
        return Expr("other", text)

    head, rest = parts[0], parts[1:]
    if head.type in _PRIMARY_TYPES and all(part.type == "selector" for part in rest):
        last = rest[-1].named_children
        if last and last[0].type == "argument_part":
            arguments = _arguments_of(last[0])
            call = call_site_for(arguments, source) if arguments is not None else None
            return Expr("call", text, call=call)
        if all(_member_name(part, source) is not None for part in rest):
            return Expr("reference", text, value=re.sub(r"\s+", "", text))
    return Expr("other", text)


def _construction_callee(node: Node, source: bytes) -> tuple[str, Node] | None:
    names = [child for child in node.named_children if child.type in _NAME_TYPES]
    if not names:
        return None
    return ".".join(node_text(name, source) for name in names), names[0]


def _chained_callee(selector: Node, source: bytes) -> tuple[str, Node] | None:
    container = selector.parent
    if container is None:
        return None
    siblings = container.named_children
    position = next((i for i, sibling in enumerate(siblings) if sibling == selector), None)
    if position is None:
        return None

    names: list[str] = []
    start: Node | None = None
    for sibling in reversed(siblings[:position]):
        member = _member_name(sibling, source)
        if member is not None:
            names.insert(0, member)
            start = sibling
            continue
        if sibling.type in _PRIMARY_TYPES:
            names.insert(0, node_text(sibling, source))
        else:
            # a call result, index or parenthesised expression
            names.insert(0, UNKNOWN_TARGET)
        start = sibling
        break
    if not names or start is None:
        return None
    return ".".join(names), start


def call_site_for(arguments: Node, source: bytes) -> CallSite | None:
    """Build a CallSite for an `arguments` node, or None if it is not a call."""
    parent = arguments.parent
    if parent is None:
        return None

    if parent.type in _CONSTRUCTION_TYPES:
        resolved = _construction_callee(parent, source)
        is_const = parent.type == "const_object_expression"
    elif parent.type == "argument_part" and parent.parent is not None and parent.parent.type == "selector":
        resolved = _chained_callee(parent.parent, source)
        is_const = False
    else:
        return None
    if resolved is None:
        return None
    callee, start = resolved

    positional: list[Expr] = []
    named: dict[str, Expr] = {}
    for child in arguments.named_children:
        if child.type == "named_argument":
            label = argument_label(child, source)
            if label is not None:
                named[label] = expression_from(list(child.named_children[1:]), source)
        elif child.type == "argument":
            positional.append(expression_from(list(child.named_children), source))
        elif child.type != "comment":
            positional.append(expression_from([child], source))

    return CallSite(
        callee=callee,
        is_const=is_const,
        positional=tuple(positional),
        named=named,
        text=source[start.start_byte : arguments.end_byte].decode("utf-8", errors="replace"),
        line=start.start_point[0] + 1,
        column=start.start_point[1] + 1,
        offset=start.start_byte,
        anchor=arguments,
    )
