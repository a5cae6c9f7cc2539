"""Key detectors and the priority-ordered pipeline that runs them."""

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Protocol

from keycheck.config import CustomDetectorConfig, ScanConfig
from keycheck.core.syntax import CallSite, Expr
from keycheck.errors import ConfigError

CUSTOM_DETECTOR_PRIORITY = 5

_KEY_CONSTRUCTORS = frozenset({"Key", "ValueKey"})
_GROUP_EXTRACTION = re.compile(r"^group(\d+)$")


@dataclass(frozen=True)
class Detection:
    key: str
    detector: str
    tags: frozenset[str] = frozenset()
    metadata: Mapping[str, str] = field(default_factory=dict)


class KeyDetector(Protocol):
    name: str
    priority: int

    def detect(self, node: CallSite) -> Detection | None: ...


def _is_key_constructor(node: CallSite, names: Iterable[str] = _KEY_CONSTRUCTORS) -> bool:
    # `const Key('x')`, `Key('x')` or a prefixed import such as `w.Key('x')`
    return node.name in names and (node.target is None or node.target[:1].islower())


def _string_key(expr: Expr | None) -> tuple[str, frozenset[str]] | None:
    if expr is None or not expr.is_string or not expr.value:
        return None
    tags = frozenset({"dynamic"}) if expr.kind == "template" else frozenset()
    return expr.value, tags


class ValueKeyDetector:
    name = "ValueKey"
    priority = 10

    def detect(self, node: CallSite) -> Detection | None:
        if not _is_key_constructor(node, ("ValueKey",)):
            return None
        found = _string_key(node.first_positional())
        if found is None:
            return None
        key, tags = found
        if node.is_const:
            tags |= {"const"}
        return Detection(key, self.name, tags)


class PlainKeyDetector:
    name = "Key"
    priority = 9

    def detect(self, node: CallSite) -> Detection | None:
        if not _is_key_constructor(node, ("Key",)):
            return None
        found = _string_key(node.first_positional())
        if found is None:
            return None
        key, tags = found
        if node.is_const:
            tags |= {"const"}
        return Detection(key, self.name, tags)


class KeyConstantDetector:
    """Key constructors whose argument is a constant reference such as `Keys.login`.

    The reference text is the key id; its value is not resolved.
    """

    name = "KeyConstant"
    priority = 8

    def detect(self, node: CallSite) -> Detection | None:
        if not _is_key_constructor(node):
            return None
        argument = node.first_positional()
        if argument is None or argument.kind not in ("identifier", "reference") or not argument.value:
            return None
        return Detection(
            argument.value,
            self.name,
            frozenset({"constant"}),
            {"reference": argument.value, "constructor": node.name},
        )


class SemanticsDetector:
    name = "Semantics"
    priority = 7

    def detect(self, node: CallSite) -> Detection | None:
        if node.name != "Semantics":
            return None
        tags = frozenset({"semantic", "accessibility"})
        identifier = _string_key(node.argument("identifier"))
        if identifier is not None:
            return Detection(identifier[0], self.name, tags | identifier[1])
        label = _string_key(node.argument("label"))
        if label is not None:
            return Detection(f"semantics:{label[0]}", self.name, tags | label[1], {"label": label[0]})
        return None


class FindByKeyDetector:
    name = "FindByKey"
    priority = 6

    def detect(self, node: CallSite) -> Detection | None:
        if node.name not in ("byKey", "byValueKey"):
            return None
        target = node.target or ""
        if target != "find" and not target.endswith(".find"):
            return None
        argument = node.first_positional()
        if argument is None:
            return None
        tags = frozenset({"test", "e2e"})

        found = _string_key(argument)
        if found is not None:
            return Detection(found[0], self.name, tags | found[1])
        if argument.kind == "call" and argument.call is not None and _is_key_constructor(argument.call):
            inner = argument.call.first_positional()
            found = _string_key(inner)
            if found is not None:
                return Detection(found[0], self.name, tags | found[1])
            if inner is not None and inner.kind in ("identifier", "reference") and inner.value:
                return Detection(inner.value, self.name, tags | {"constant"}, {"reference": inner.value})
        if argument.kind in ("identifier", "reference") and argument.value:
            return Detection(argument.value, self.name, tags | {"constant"}, {"reference": argument.value})
        return None


class CustomPatternDetector:
    """A user-supplied regex matched against the start of the call-site text."""

    def __init__(
        self,
        name: str,
        pattern: str,
        extraction: str = "group1",
        priority: int = CUSTOM_DETECTOR_PRIORITY,
        tags: Iterable[str] = (),
    ) -> None:
        try:
            self._regex = re.compile(pattern, re.DOTALL)
        except re.error as exc:
            raise ConfigError(f"Detector '{name}' has an invalid pattern {pattern!r}: {exc}") from exc

        group_match = _GROUP_EXTRACTION.match(extraction)
        group: int | str
        if group_match:
            group = int(group_match.group(1))
            if group > self._regex.groups:
                raise ConfigError(
                    f"Detector '{name}' extracts {extraction} but the pattern has {self._regex.groups} group(s)"
                )
        elif extraction in self._regex.groupindex:
            group = extraction
        else:
            raise ConfigError(f"Detector '{name}' has an unknown extraction rule '{extraction}'")

        self.name = name
        self.priority = priority
        self.pattern = pattern
        self.extraction = extraction
        self.tags = frozenset(tags)
        self._group = group

    def detect(self, node: CallSite) -> Detection | None:
        match = self._regex.match(node.text)
        if match is None:
            return None
        value = match.group(self._group)
        if not value:
            return None
        return Detection(value, self.name, self.tags)

    @classmethod
    def from_config(cls, config: CustomDetectorConfig) -> "CustomPatternDetector":
        return cls(config.name, config.pattern, config.extraction, config.priority, config.tags)


PRESETS: dict[str, CustomDetectorConfig] = {
    "patrol": CustomDetectorConfig(
        name="PatrolFinder",
        pattern=r"""\$\((["'])(.*?)\1\)""",
        extraction="group2",
        tags=["test", "patrol"],
    ),
    "integration_test": CustomDetectorConfig(
        name="IntegrationTestKey",
        pattern=r"""[\w.]+\(\s*key:\s*["']([^"'$]+)["']""",
        tags=["test"],
    ),
    "material": CustomDetectorConfig(
        name="MaterialKey",
        pattern=r"""MaterialKey\(\s*["']([^"']+)["']\s*\)""",
        tags=["material"],
    ),
    "cupertino": CustomDetectorConfig(
        name="CupertinoKey",
        pattern=r"""CupertinoKey\(\s*["']([^"']+)["']\s*\)""",
        tags=["cupertino"],
    ),
}


def builtin_detectors() -> list[KeyDetector]:
    return [
        ValueKeyDetector(),
        PlainKeyDetector(),
        KeyConstantDetector(),
        SemanticsDetector(),
        FindByKeyDetector(),
    ]


class DetectorPipeline:
    """Offers a call site to each detector, highest priority first; first match wins.

    Detectors with equal priority keep their registration order.
    """

    def __init__(self, detectors: Iterable[KeyDetector]) -> None:
        ordered = sorted(detectors, key=lambda detector: -detector.priority)
        seen: set[str] = set()
        for detector in ordered:
            if detector.name in seen:
                raise ConfigError(f"Duplicate detector name '{detector.name}'")
            seen.add(detector.name)
        self._detectors = ordered

    @property
    def detectors(self) -> list[KeyDetector]:
        return list(self._detectors)

    @property
    def names(self) -> list[str]:
        return [detector.name for detector in self._detectors]

    def detect(self, node: CallSite) -> Detection | None:
        for detector in self._detectors:
            detection = detector.detect(node)
            if detection is not None:
                return detection
        return None


def build_pipeline(config: ScanConfig) -> DetectorPipeline:
    detectors = builtin_detectors()
    for preset in config.detector_presets:
        if preset not in PRESETS:
            raise ConfigError(f"Unknown detector preset '{preset}'. Available: {sorted(PRESETS)}")
        detectors.append(CustomPatternDetector.from_config(PRESETS[preset]))
    for custom in config.custom_detectors:
        detectors.append(CustomPatternDetector.from_config(custom))
    return DetectorPipeline(detectors)
