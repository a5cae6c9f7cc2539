"""Tests for single-file analysis: detections, contexts, elements and handler linking."""

import pytest

from keycheck.config import ScanConfig
from keycheck.core.analyzer import ElementHeuristic, FileAnalyzer
from keycheck.core.detectors import build_pipeline
from keycheck.errors import ParseError
from keycheck.models import FileAnalysis


def _analyze(analyzer: FileAnalyzer, code: str, file: str = "lib/sample.dart") -> FileAnalysis:
    return analyzer.analyze(code.encode("utf-8"), file, "0" * 16)


class TestDetections:
    def test_login_screen_keys(self, analyzer: FileAnalyzer, dart_samples: dict[str, str]) -> None:
        analysis = _analyze(analyzer, dart_samples["lib/login_screen.dart"], "lib/login_screen.dart")

        ids = [hit.id for hit in analysis.hits]
        assert ids == ["email_field", "login_button", "help_link"]
        detectors = {hit.id: hit.location.detector for hit in analysis.hits}
        assert detectors == {"email_field": "ValueKey", "login_button": "Key", "help_link": "Semantics"}
        assert analysis.detector_hits == {"ValueKey": 1, "Key": 1, "Semantics": 1}

    def test_locations_carry_file_and_context(self, analyzer: FileAnalyzer, dart_samples: dict[str, str]) -> None:
        analysis = _analyze(analyzer, dart_samples["lib/login_screen.dart"], "lib/login_screen.dart")

        for hit in analysis.hits:
            assert hit.location.file == "lib/login_screen.dart"
            assert hit.location.context == "method:build"
            assert hit.location.source == "workspace"
            assert hit.location.line > 1

    def test_top_level_function_context(self, analyzer: FileAnalyzer, dart_samples: dict[str, str]) -> None:
        analysis = _analyze(analyzer, dart_samples["lib/logout_button.dart"])

        assert len(analysis.hits) == 1
        hit = analysis.hits[0]
        assert hit.id == "Keys.logout"
        assert hit.location.detector == "KeyConstant"
        assert hit.location.context == "function:buildLogout"

    def test_global_context(self, analyzer: FileAnalyzer) -> None:
        analysis = _analyze(analyzer, "final k = const Key('top');\n")
        assert analysis.hits[0].location.context == "global"

    def test_find_by_key_is_one_usage(self, analyzer: FileAnalyzer, dart_samples: dict[str, str]) -> None:
        analysis = _analyze(analyzer, dart_samples["test/login_test.dart"], "test/login_test.dart")

        assert [hit.id for hit in analysis.hits] == ["login_button", "email_field"]
        assert {hit.location.detector for hit in analysis.hits} == {"FindByKey"}

    def test_analysis_is_deterministic(self, analyzer: FileAnalyzer, dart_samples: dict[str, str]) -> None:
        source = dart_samples["lib/login_screen.dart"]
        assert _analyze(analyzer, source) == _analyze(analyzer, source)


class TestElementsAndHandlers:
    def test_element_counts(self, analyzer: FileAnalyzer, dart_samples: dict[str, str]) -> None:
        analysis = _analyze(analyzer, dart_samples["lib/login_screen.dart"])

        # Column, TextField, ElevatedButton, Text, Semantics, GestureDetector, Text
        assert analysis.elements_total == 7
        assert analysis.elements_with_key == 2
        assert "GestureDetector" in analysis.uncovered_elements

    def test_handlers_link_to_enclosing_key(self, analyzer: FileAnalyzer, dart_samples: dict[str, str]) -> None:
        analysis = _analyze(analyzer, dart_samples["lib/login_screen.dart"])

        assert analysis.handlers_total == 3
        assert analysis.handlers_linked == 3
        links = {(linked.key, linked.link.type, linked.link.callback) for linked in analysis.handlers}
        assert links == {
            ("email_field", "change", "_onEmail"),
            ("login_button", "press", "<anonymous>"),
            ("help_link", "tap", "_openHelp"),
        }

    def test_innermost_key_wins(self, analyzer: FileAnalyzer) -> None:
        code = """\
Widget build() {
  return Card(
    key: const Key('outer'),
    child: IconButton(key: const Key('inner'), onPressed: save),
  );
}
"""
        analysis = _analyze(analyzer, code)

        assert [(linked.key, linked.link.callback) for linked in analysis.handlers] == [("inner", "save")]

    def test_unkeyed_handler_is_counted_but_not_linked(self, analyzer: FileAnalyzer) -> None:
        code = "Widget build() {\n  return TextButton(onPressed: save, child: Text('Save'));\n}\n"
        analysis = _analyze(analyzer, code)

        assert analysis.handlers_total == 1
        assert analysis.handlers_linked == 0
        assert analysis.handlers == []

    def test_custom_element_heuristic(self) -> None:
        config = ScanConfig(element_suffixes=["Tile"], element_names=[])
        analyzer = FileAnalyzer(build_pipeline(config), ElementHeuristic.from_config(config))

        analysis = _analyze(analyzer, "Widget build() {\n  return ListTile(title: Text('x'));\n}\n")

        assert analysis.elements_total == 1

    def test_heuristic_skips_lowercase_and_key_types(self) -> None:
        heuristic = ElementHeuristic(["Button"], ["Column"])
        assert heuristic.matches("ElevatedButton") is True
        assert heuristic.matches("Column") is True
        assert heuristic.matches("makeButton") is False
        assert heuristic.matches("ValueKey") is False


class TestParseFailures:
    def test_invalid_utf8_is_parse_error(self, analyzer: FileAnalyzer) -> None:
        with pytest.raises(ParseError) as excinfo:
            analyzer.analyze(b"\xff\xfe\x00 class", "lib/bad.dart", "0" * 16)
        assert excinfo.value.error_type == "decode"
        assert excinfo.value.file == "lib/bad.dart"

    def test_syntax_error_is_parse_error(self, analyzer: FileAnalyzer) -> None:
        with pytest.raises(ParseError) as excinfo:
            _analyze(analyzer, "class Broken {\n  void f( {\n")
        assert excinfo.value.error_type == "syntax"

    def test_syntax_errors_can_be_tolerated(self) -> None:
        config = ScanConfig(tolerate_syntax_errors=True)
        analyzer = FileAnalyzer(
            build_pipeline(config),
            ElementHeuristic.from_config(config),
            tolerate_syntax_errors=True,
        )

        analysis = _analyze(analyzer, "class Broken {\n  void f( {\n")

        assert [warning.type for warning in analysis.warnings] == ["syntax"]
