import logging
import os
import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from keycheck.config import ScanConfig
from keycheck.core.languages import is_source_file
from keycheck.core.packages import WORKSPACE, load_package_roots
from keycheck.core.ports.changes import ChangedFilesProvider
from keycheck.errors import ConfigError

logger = logging.getLogger(__name__)

SKIP_DIRECTORIES = frozenset({".git", ".dart_tool", "build", ".idea", ".pub-cache", ".keycheck"})
TEST_DIRECTORIES = frozenset({"test", "integration_test", "test_driver"})
GENERATED_SUFFIXES = (".g.dart", ".freezed.dart", ".mocks.dart")


@dataclass(frozen=True)
class SourceFile:
    path: Path
    relative_path: str
    source: str = WORKSPACE


@dataclass(frozen=True)
class SourceSet:
    root: Path
    files: tuple[SourceFile, ...]
    incremental_base: str | None = None
    excluded: int = 0

    def __len__(self) -> int:
        return len(self.files)


def _closing_bracket(pattern: str, start: int) -> int:
    """Index of the `]` ending the class opened at `start`, or -1."""
    i = start + 1
    if i < len(pattern) and pattern[i] in "!^":
        i += 1
    if i < len(pattern) and pattern[i] == "]":
        i += 1
    return pattern.find("]", i)


def _closing_brace(pattern: str, start: int) -> int:
    depth = 0
    for i in range(start, len(pattern)):
        if pattern[i] == "{":
            depth += 1
        elif pattern[i] == "}":
            depth -= 1
            if depth == 0:
                return i
    return -1


def _split_alternatives(body: str) -> list[str]:
    parts: list[str] = []
    current: list[str] = []
    depth = 0
    for char in body:
        if char == "," and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
        current.append(char)
    parts.append("".join(current))
    return parts


def _character_class(body: str) -> str:
    negated = body[:1] in ("!", "^")
    if negated:
        body = body[1:]
    body = body.replace("\\", "\\\\").replace("[", "\\[").replace("]", "\\]")
    # a class never matches the path separator
    return f"[^/{body}]" if negated else f"(?!/)[{body}]"


def _translate(pattern: str) -> str:
    out = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**/", i):
            out.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            out.append(".*")
            i += 2
        elif pattern[i] == "*":
            out.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            out.append("[^/]")
            i += 1
        elif pattern[i] == "[" and _closing_bracket(pattern, i) != -1:
            end = _closing_bracket(pattern, i)
            out.append(_character_class(pattern[i + 1 : end]))
            i = end + 1
        elif pattern[i] == "{" and _closing_brace(pattern, i) != -1:
            end = _closing_brace(pattern, i)
            alternatives = _split_alternatives(pattern[i + 1 : end])
            out.append("(?:" + "|".join(_translate(alternative) for alternative in alternatives) + ")")
            i = end + 1
        else:
            out.append(re.escape(pattern[i]))
            i += 1
    return "".join(out)


@lru_cache(maxsize=256)
def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Translate a glob to a regex over posix relative paths.

    `**/` spans any number of directories, `*` and `?` never cross `/`.
    `[abc]`, `[!abc]` and `[a-z]` match one character of a class, and
    `{gen,l10n}` matches any of its comma-separated alternatives, which may
    nest. An unclosed `[` or `{` is taken literally.
    """
    return re.compile(_translate(pattern) + r"\Z")


def glob_matches(pattern: str, relative_path: str) -> bool:
    if glob_to_regex(pattern).match(relative_path):
        return True
    # Slash-free patterns such as `*.g.dart` also match the bare file name.
    if "/" not in pattern:
        return bool(glob_to_regex(pattern).match(relative_path.rsplit("/", 1)[-1]))
    return False


def is_test_file(relative_path: str) -> bool:
    parts = relative_path.split("/")
    return parts[-1].endswith("_test.dart") or any(part in TEST_DIRECTORIES for part in parts[:-1])


def is_generated_file(relative_path: str) -> bool:
    return relative_path.endswith(GENERATED_SUFFIXES)


class SourceSetResolver:
    def __init__(
        self,
        root: str | Path,
        config: ScanConfig,
        *,
        changed_files: ChangedFilesProvider | None = None,
        cache_dir: Path | None = None,
    ) -> None:
        self.root = Path(root)
        self.config = config
        self._changed_files = changed_files
        self._cache_dir = cache_dir.resolve() if cache_dir is not None else None

    def excluded_by(self, relative_path: str) -> str | None:
        for pattern in self.config.exclude_patterns:
            if glob_matches(pattern, relative_path):
                return pattern
        return None

    def accepts(self, relative_path: str) -> bool:
        pattern = self.excluded_by(relative_path)
        if pattern is not None:
            logger.debug("Excluded %s (pattern %s)", relative_path, pattern)
            return False
        if not self.config.include_tests and is_test_file(relative_path):
            return False
        if not self.config.include_generated and is_generated_file(relative_path):
            return False
        if self.config.include_patterns:
            return any(glob_matches(pattern, relative_path) for pattern in self.config.include_patterns)
        return True

    def resolve(self, since: str | None = None) -> SourceSet:
        if not self.root.is_dir():
            raise ConfigError(f"Project root does not exist: {self.root}")

        if since is not None:
            candidates = self._changed_candidates(since)
        else:
            candidates = [(path, path.relative_to(self.root).as_posix()) for path in self._walk(self.root)]

        files = []
        excluded = 0
        for path, relative in candidates:
            if self.accepts(relative):
                files.append(SourceFile(path=path, relative_path=relative))
            else:
                excluded += 1

        if since is None and self.config.packages == "resolve":
            files.extend(self._dependency_files())

        files.sort(key=lambda source_file: source_file.relative_path)
        logger.info(
            "Resolved %d source files (%d excluded)%s",
            len(files),
            excluded,
            f" changed since {since}" if since else "",
        )
        return SourceSet(root=self.root, files=tuple(files), incremental_base=since, excluded=excluded)

    def _skip_dir(self, directory: Path) -> bool:
        if directory.name in SKIP_DIRECTORIES or directory.name.startswith("."):
            return True
        return self._cache_dir is not None and directory.resolve() == self._cache_dir

    def _walk(self, top: Path) -> list[Path]:
        found = []
        for dirpath, dirnames, filenames in os.walk(top):
            current = Path(dirpath)
            dirnames[:] = sorted(name for name in dirnames if not self._skip_dir(current / name))
            found.extend(current / name for name in sorted(filenames) if is_source_file(current / name))
        return found

    def _changed_candidates(self, since: str) -> list[tuple[Path, str]]:
        provider = self._changed_files
        if provider is None:
            from keycheck.vcs.git import GitChangedFiles

            provider = GitChangedFiles()
        candidates = []
        for changed in provider.changed_files(self.root, since):
            path = changed if changed.is_absolute() else self.root / changed
            if not path.is_file() or not is_source_file(path):
                continue
            relative = path.relative_to(self.root)
            if any(part in SKIP_DIRECTORIES for part in relative.parts[:-1]):
                continue
            candidates.append((path, relative.as_posix()))
        return candidates

    def _dependency_files(self) -> list[SourceFile]:
        files = []
        for package in load_package_roots(self.root):
            if not package.is_dependency:
                continue
            lib_dir = package.lib_dir
            if not lib_dir.is_dir():
                logger.warning("Package %s has no source directory at %s", package.name, lib_dir)
                continue
            for path in self._walk(lib_dir):
                relative = path.relative_to(lib_dir).as_posix()
                if self.excluded_by(relative) is not None or is_generated_file(relative):
                    continue
                files.append(SourceFile(path=path, relative_path=f"package:{package.name}/{relative}", source=package.name))
        return files
