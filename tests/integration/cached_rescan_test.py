"""Repeated scans of one project through the on-disk cache."""

from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

from keycheck.cache import ScanCache
from keycheck.config import KeycheckConfig
from keycheck.core.scan import cache_directory, run_scan

_FIXED_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _screen(index: int) -> str:
    return f"""\
import 'package:flutter/material.dart';

class Screen{index} extends StatelessWidget {{
  Widget build(BuildContext context) {{
    return Column(
      children: [
        Text('Screen {index}'),
        ElevatedButton(key: const Key('screen{index}_submit'), onPressed: _submit{index}, child: Text('Go')),
      ],
    );
  }}
}}
"""


def _ten_file_project(make_project: Callable[[dict[str, str]], Path]) -> Path:
    return make_project({f"lib/screens/screen_{i}.dart": _screen(i) for i in range(10)})


def _open(root: Path, config: KeycheckConfig) -> ScanCache:
    return ScanCache(cache_directory(root, config.cache))


def test_second_scan_is_served_from_cache(make_project: Callable[[dict[str, str]], Path]) -> None:
    root = _ten_file_project(make_project)
    config = KeycheckConfig()

    first = run_scan(root, config, cache=_open(root, config))
    second = run_scan(root, config, cache=_open(root, config))

    assert first.metrics.cache_hits == 0
    assert first.metrics.cache_misses == 10
    assert second.metrics.cache_hits == 10
    assert second.metrics.cache_hit_rate == 1.0
    assert len(second.keys) == 10
    assert second.to_snapshot(timestamp=_FIXED_TIME) == first.to_snapshot(timestamp=_FIXED_TIME)


def test_modified_file_is_reanalysed(make_project: Callable[[dict[str, str]], Path]) -> None:
    root = _ten_file_project(make_project)
    config = KeycheckConfig()
    run_scan(root, config, cache=_open(root, config))

    target = root / "lib" / "screens" / "screen_3.dart"
    target.write_text(_screen(3).replace("screen3_submit", "screen3_confirm"), encoding="utf-8")
    result = run_scan(root, config, cache=_open(root, config))

    assert result.metrics.cache_hits == 9
    assert result.metrics.cache_misses == 1
    assert "screen3_confirm" in result.keys
    assert "screen3_submit" not in result.keys


def test_detector_change_invalidates_entries(make_project: Callable[[dict[str, str]], Path]) -> None:
    root = _ten_file_project(make_project)
    config = KeycheckConfig()
    run_scan(root, config, cache=_open(root, config))

    changed = KeycheckConfig.model_validate({"scan": {"detector_presets": ["material"]}})
    result = run_scan(root, changed, cache=_open(root, changed))

    assert result.metrics.cache_hits == 0
    assert result.metrics.cache_misses == 10


def test_cache_directory_is_not_scanned(make_project: Callable[[dict[str, str]], Path]) -> None:
    root = _ten_file_project(make_project)
    config = KeycheckConfig.model_validate({"cache": {"directory": "tmp_cache"}})
    run_scan(root, config, cache=_open(root, config))

    (root / "tmp_cache" / "stray.dart").write_text("final k = Key('stray');\n", encoding="utf-8")
    result = run_scan(root, config, cache=_open(root, config))

    assert result.metrics.total_files == 10
    assert "stray" not in result.keys


def _pair_finder(extraction: str, tags: list[str] | None = None) -> KeycheckConfig:
    detector = {
        "name": "PairFinder",
        "pattern": r"\$\('([^']*)',\s*'([^']*)'\)",
        "extraction": extraction,
        "tags": tags or [],
    }
    return KeycheckConfig.model_validate({"scan": {"custom_detectors": [detector]}})


def test_custom_detector_extraction_change_invalidates_entries(
    make_project: Callable[[dict[str, str]], Path],
) -> None:
    root = make_project({"lib/finders.dart": "void main() {\n  final finder = $('first', 'second');\n}\n"})
    first_config = _pair_finder("group1")
    first = run_scan(root, first_config, cache=_open(root, first_config))

    second_config = _pair_finder("group2")
    second = run_scan(root, second_config, cache=_open(root, second_config))

    assert list(first.keys) == ["first"]
    assert list(second.keys) == ["second"]
    assert second.metrics.cache_hits == 0


def test_custom_detector_tag_change_invalidates_entries(
    make_project: Callable[[dict[str, str]], Path],
) -> None:
    root = make_project({"lib/finders.dart": "void main() {\n  final finder = $('first', 'second');\n}\n"})
    untagged = _pair_finder("group1")
    run_scan(root, untagged, cache=_open(root, untagged))

    tagged = _pair_finder("group1", ["critical"])
    result = run_scan(root, tagged, cache=_open(root, tagged))

    assert result.metrics.cache_hits == 0
    assert result.keys["first"].tags == ["critical"]


def test_unwritable_cache_still_returns_full_result(
    make_project: Callable[[dict[str, str]], Path], tmp_path: Path
) -> None:
    root = _ten_file_project(make_project)
    blocker = tmp_path / "blocked"
    blocker.write_text("", encoding="utf-8")
    config = KeycheckConfig.model_validate({"cache": {"directory": str(blocker / "cache")}})
    cache = _open(root, config)

    result = run_scan(root, config, cache=cache)

    assert result.metrics.scanned_files == 10
    assert len(result.keys) == 10
    assert cache.stats().write_errors == 11


def test_files_whose_names_sanitise_alike_are_both_cached(
    make_project: Callable[[dict[str, str]], Path],
) -> None:
    root = make_project({"lib/a.b.dart": _screen(1), "lib/a_b.dart": _screen(1)})
    config = KeycheckConfig()
    run_scan(root, config, cache=_open(root, config))

    second = run_scan(root, config, cache=_open(root, config))

    assert second.metrics.cache_hits == 2
    assert second.metrics.cache_hit_rate == 1.0
