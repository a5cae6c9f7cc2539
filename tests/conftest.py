"""Shared fixtures and helpers for tests."""

from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

import pytest
from tree_sitter import Parser
from tree_sitter_language_pack import get_parser

from keycheck.config import ScanConfig
from keycheck.core.analyzer import ElementHeuristic, FileAnalyzer
from keycheck.core.detectors import build_pipeline
from keycheck.models import KeyRecord, Snapshot, SnapshotSummary

_REPO_ROOT = Path(__file__).parent.parent


# ---------------------------------------------------------------------------
# Auto-marker: tag tests as "unit" or "integration" based on directory
# ---------------------------------------------------------------------------


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    for item in items:
        test_path = Path(str(item.fspath))
        rel = test_path.relative_to(_REPO_ROOT / "tests")
        parts = rel.parts
        if parts and parts[0] == "integration":
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)


# ---------------------------------------------------------------------------
# Dart sources
# ---------------------------------------------------------------------------

LOGIN_SCREEN = """\
import 'package:flutter/material.dart';

class LoginScreen extends StatelessWidget {
  Widget build(BuildContext context) {
    return Column(
      children: [
        TextField(key: const ValueKey('email_field'), onChanged: _onEmail),
        ElevatedButton(
          key: const Key('login_button'),
          onPressed: () {},
          child: Text('Login'),
        ),
        Semantics(
          identifier: 'help_link',
          child: GestureDetector(onTap: _openHelp, child: Text('Help')),
        ),
      ],
    );
  }
}
"""

PROFILE_PAGE = """\
import 'package:flutter/material.dart';

class ProfilePage extends StatelessWidget {
  Widget build(BuildContext context) {
    return Scaffold(
      appBar: AppBar(title: Text('Profile')),
      body: Column(
        children: [
          Text('Name'),
          Text('Email'),
          Row(children: [Icon(Icons.star), Text('Stars')]),
        ],
      ),
    );
  }
}
"""

LOGOUT_BUTTON = """\
import 'package:flutter/material.dart';

class Keys {
  static const logout = 'logout';
}

Widget buildLogout() {
  return TextButton(key: Key(Keys.logout), onPressed: _logout, child: Text('Logout'));
}
"""

LOGIN_TEST = """\
void main() {
  testWidgets('logs in', (tester) async {
    await tester.tap(find.byKey(const Key('login_button')));
    expect(find.byKey(const ValueKey('email_field')), findsOneWidget);
  });
}
"""


@pytest.fixture
def dart_samples() -> dict[str, str]:
    """Small Flutter files keyed by their path inside a project."""
    return {
        "lib/login_screen.dart": LOGIN_SCREEN,
        "lib/profile_page.dart": PROFILE_PAGE,
        "lib/logout_button.dart": LOGOUT_BUTTON,
        "test/login_test.dart": LOGIN_TEST,
    }


@pytest.fixture
def make_project(tmp_path: Path) -> Callable[[dict[str, str]], Path]:
    """Write files into a fresh project directory and return its root."""

    def _make(files: dict[str, str]) -> Path:
        root = tmp_path / "app"
        for relative, content in files.items():
            path = root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        root.mkdir(parents=True, exist_ok=True)
        return root

    return _make


@pytest.fixture
def dart_parser() -> Parser:
    """Return a tree-sitter parser for Dart."""
    return get_parser("dart")


@pytest.fixture
def analyzer() -> FileAnalyzer:
    """Analyzer with the built-in detectors and default element heuristic."""
    config = ScanConfig()
    return FileAnalyzer(build_pipeline(config), ElementHeuristic.from_config(config))


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------


def _record(item: str | KeyRecord) -> KeyRecord:
    if isinstance(item, KeyRecord):
        return item
    return KeyRecord(id=item, location_count=1)


@pytest.fixture
def make_snapshot() -> Callable[..., Snapshot]:
    """Build a snapshot from key ids or ready-made KeyRecords."""

    def _make(*keys: str | KeyRecord) -> Snapshot:
        records = sorted((_record(item) for item in keys), key=lambda record: record.id)
        summary = SnapshotSummary(
            total_files=1,
            scanned_files=1,
            total_keys=len(records),
            file_coverage=1.0,
            element_coverage=0.0,
            handler_coverage=0.0,
        )
        return Snapshot(timestamp=datetime(2026, 1, 1, tzinfo=timezone.utc), summary=summary, keys=records)

    return _make
