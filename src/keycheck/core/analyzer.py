"""Single-pass analysis of one Dart file."""

import hashlib
import json
from collections import Counter
from collections.abc import Iterable

from tree_sitter import Node

from keycheck.config import ScanConfig
from keycheck.core.detectors import DetectorPipeline
from keycheck.core.packages import WORKSPACE
from keycheck.core.syntax import (
    CallSite,
    argument_label,
    call_site_for,
    expression_from,
    node_text,
    parse_source,
)
from keycheck.errors import ParseError
from keycheck.models import FileAnalysis, HandlerLink, KeyHit, KeyLocation, LinkedHandler, ScanError

HANDLER_TYPES = {
    "onPressed": "press",
    "onTap": "tap",
    "onDoubleTap": "double_tap",
    "onLongPress": "long_press",
    "onChanged": "change",
    "onSubmitted": "submit",
    "onFieldSubmitted": "submit",
    "onEditingComplete": "submit",
    "onSaved": "save",
    "onSelected": "select",
}

_SIGNATURE_KINDS = {
    "method_signature": "method",
    "function_signature": "function",
    "getter_signature": "method",
    "setter_signature": "method",
    "constructor_signature": "method",
    "factory_constructor_signature": "method",
}

_NOT_ELEMENTS = frozenset({"Key", "ValueKey", "GlobalKey", "UniqueKey", "ObjectKey"})


class ElementHeuristic:
    """Decides whether a call constructs a UI element, by type name."""

    def __init__(self, suffixes: Iterable[str], names: Iterable[str]) -> None:
        self.suffixes = tuple(suffixes)
        self.names = frozenset(names)

    def matches(self, type_name: str) -> bool:
        if not type_name[:1].isupper() or type_name in _NOT_ELEMENTS:
            return False
        return type_name in self.names or type_name.endswith(self.suffixes)

    @classmethod
    def from_config(cls, config: ScanConfig) -> "ElementHeuristic":
        return cls(config.element_suffixes, config.element_names)


def _signature_name(signature: Node, source: bytes) -> str | None:
    queue = [signature]
    while queue:
        node = queue.pop(0)
        name = node.child_by_field_name("name")
        if name is not None:
            return node_text(name, source)
        for child in node.named_children:
            if child.type == "identifier":
                return node_text(child, source)
            if child.type in _SIGNATURE_KINDS:
                queue.append(child)
    return None


def _signature_context(signature: Node | None, source: bytes) -> str | None:
    if signature is None or signature.type not in _SIGNATURE_KINDS:
        return None
    name = _signature_name(signature, source)
    if not name:
        return None
    return f"{_SIGNATURE_KINDS[signature.type]}:{name}"


def _first_error_line(root: Node) -> int:
    stack = [root]
    while stack:
        node = stack.pop()
        if node.type == "ERROR" or node.is_missing:
            return node.start_point[0] + 1
        stack.extend(child for child in reversed(node.children) if child.has_error or child.is_missing)
    return root.start_point[0] + 1


class _FileWalk:
    """State of one pre-order traversal. Node indices are assigned in visit order."""

    def __init__(
        self,
        analyzer: "FileAnalyzer",
        source: bytes,
        file: str,
        source_label: str,
    ) -> None:
        self.analyzer = analyzer
        self.source = source
        self.file = file
        self.source_label = source_label
        self.parents: list[int] = []
        self.types: list[str] = []
        self.labels: dict[int, str] = {}
        self.contexts: dict[int, str] = {}
        self.carriers: dict[int, str] = {}
        self.detected: set[int] = set()
        self.pending: list[tuple[int, str, str, int]] = []
        self.hits: list[KeyHit] = []
        self.handlers: list[LinkedHandler] = []
        self.detector_hits: Counter[str] = Counter()
        self.uncovered: set[str] = set()
        self.elements_total = 0
        self.elements_with_key = 0

    def run(self, root: Node) -> None:
        stack = [(root, -1)]
        while stack:
            node, parent = stack.pop()
            index = len(self.parents)
            self.parents.append(parent)
            self.types.append(node.type)
            self._visit(node, index, parent)
            stack.extend((child, index) for child in reversed(node.named_children))

    def _visit(self, node: Node, index: int, parent: int) -> None:
        kind = node.type
        if kind == "class_definition":
            name = node.child_by_field_name("name")
            if name is not None:
                self.contexts[index] = f"class:{node_text(name, self.source)}"
        elif kind == "function_body":
            label = _signature_context(node.prev_named_sibling, self.source)
            if label:
                self.contexts[index] = label
        elif kind == "named_argument":
            label = argument_label(node, self.source)
            if label is None:
                return
            self.labels[index] = label
            if label in HANDLER_TYPES and parent >= 0 and self.types[parent] == "arguments":
                callback = expression_from(list(node.named_children[1:]), self.source).callback_name()
                self.pending.append((parent, HANDLER_TYPES[label], callback, node.start_byte))
        elif kind == "arguments":
            call = call_site_for(node, self.source)
            if call is not None:
                self._visit_call(call, index)

    def _visit_call(self, call: CallSite, index: int) -> None:
        type_name = call.type_name
        if self.analyzer.heuristic.matches(type_name):
            self.elements_total += 1
            if "key" in call.named:
                self.elements_with_key += 1
            else:
                self.uncovered.add(type_name)

        if self._consumed_by_enclosing_detection(index):
            return
        detection = self.analyzer.pipeline.detect(call)
        if detection is None:
            return

        self.detected.add(index)
        self.detector_hits[detection.detector] += 1
        location = KeyLocation(
            file=self.file,
            line=call.line,
            column=call.column,
            detector=detection.detector,
            context=self._context_of(index),
            source=self.source_label,
        )
        self.hits.append(
            KeyHit(
                id=detection.key,
                location=location,
                tags=sorted(detection.tags),
                metadata=dict(detection.metadata),
            )
        )
        owner = self._key_argument_owner(index)
        self.carriers.setdefault(owner if owner is not None else index, detection.key)

    def _consumed_by_enclosing_detection(self, index: int) -> bool:
        # find.byKey(Key('x')) is one usage, recorded at the outer call.
        j = self.parents[index]
        while j >= 0:
            if self.types[j] == "arguments":
                return j in self.detected
            if self.types[j] == "named_argument":
                return False
            j = self.parents[j]
        return False

    def _key_argument_owner(self, index: int) -> int | None:
        """Index of the `arguments` node whose `key:` argument holds this call."""
        j = self.parents[index]
        while j >= 0:
            if self.types[j] == "named_argument":
                return self.parents[j] if self.labels.get(j) == "key" else None
            if self.types[j] == "arguments":
                return None
            j = self.parents[j]
        return None

    def _context_of(self, index: int) -> str:
        j = index
        while j >= 0:
            if j in self.contexts:
                return self.contexts[j]
            j = self.parents[j]
        return "global"

    def link_handlers(self) -> int:
        """Attach each handler to the innermost enclosing keyed construct."""
        linked = 0
        for anchor, interaction, callback, offset in self.pending:
            j = anchor
            while j >= 0 and j not in self.carriers:
                j = self.parents[j]
            if j < 0:
                continue
            linked += 1
            self.handlers.append(
                LinkedHandler(
                    key=self.carriers[j],
                    link=HandlerLink(type=interaction, callback=callback, file=self.file, offset=offset),
                )
            )
        return linked


class FileAnalyzer:
    def __init__(
        self,
        pipeline: DetectorPipeline,
        heuristic: ElementHeuristic,
        *,
        tolerate_syntax_errors: bool = False,
    ) -> None:
        self.pipeline = pipeline
        self.heuristic = heuristic
        self.tolerate_syntax_errors = tolerate_syntax_errors
        self.signature = self._signature()

    def _signature(self) -> str:
        """Fingerprint of everything that shapes an analysis; cached payloads must match it."""
        detectors = [
            [
                detector.name,
                detector.priority,
                getattr(detector, "pattern", None),
                getattr(detector, "extraction", None),
                sorted(getattr(detector, "tags", ())),
            ]
            for detector in self.pipeline.detectors
        ]
        payload = json.dumps(
            [detectors, sorted(self.heuristic.suffixes), sorted(self.heuristic.names), self.tolerate_syntax_errors]
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:12]

    def analyze(
        self,
        data: bytes,
        file: str,
        content_hash: str,
        source_label: str = WORKSPACE,
    ) -> FileAnalysis:
        try:
            data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ParseError(file, f"Not valid UTF-8: {exc}", "decode") from exc

        tree = parse_source(data)
        warnings = []
        if tree.root_node.has_error:
            message = f"Syntax error near line {_first_error_line(tree.root_node)}"
            if not self.tolerate_syntax_errors:
                raise ParseError(file, message, "syntax")
            warnings.append(ScanError(file=file, message=message, type="syntax"))

        walk = _FileWalk(self, data, file, source_label)
        walk.run(tree.root_node)
        linked = walk.link_handlers()

        return FileAnalysis(
            file=file,
            content_hash=content_hash,
            source=source_label,
            signature=self.signature,
            hits=walk.hits,
            handlers=walk.handlers,
            elements_total=walk.elements_total,
            elements_with_key=walk.elements_with_key,
            handlers_total=len(walk.pending),
            handlers_linked=linked,
            detector_hits=dict(walk.detector_hits),
            uncovered_elements=sorted(walk.uncovered),
            warnings=warnings,
        )
