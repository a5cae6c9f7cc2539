import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from keycheck.errors import ConfigError

logger = logging.getLogger(__name__)

SOURCE_PATHSPEC = "*.dart"


@dataclass(frozen=True)
class GitResult:
    returncode: int
    stdout: str
    stderr: str


def _git(root: Path, *args: str) -> GitResult:
    try:
        result = subprocess.run(
            ["git", "-C", str(root), *args],
            check=False,
            capture_output=True,
            text=True,
        )
    except FileNotFoundError as exc:
        raise ConfigError("git executable not found; incremental scans need git") from exc
    return GitResult(result.returncode, result.stdout, result.stderr)


def get_git_repo_root(start_dir: Path) -> Path | None:
    result = _git(start_dir, "rev-parse", "--show-toplevel")
    if result.returncode != 0:
        return None
    root = result.stdout.strip()
    if not root:
        return None
    return Path(root)


def _lines(output: str) -> list[str]:
    return [line.strip() for line in output.splitlines() if line.strip()]


class GitChangedFiles:
    """Files changed in the working tree since a commit-ish, plus untracked ones."""

    def changed_files(self, root: Path, since: str) -> list[Path]:
        if get_git_repo_root(root) is None:
            raise ConfigError(f"{root} is not inside a git repository; cannot resolve '{since}'")

        verify = _git(root, "rev-parse", "--verify", "--quiet", f"{since}^{{commit}}")
        if verify.returncode != 0:
            raise ConfigError(f"Unknown git reference '{since}'")

        diff = _git(root, "diff", "--name-only", "--relative", "--diff-filter=ACMR", since, "--", SOURCE_PATHSPEC)
        if diff.returncode != 0:
            raise ConfigError(f"git diff against '{since}' failed: {diff.stderr.strip()}")

        untracked = _git(root, "ls-files", "--others", "--exclude-standard", "--", SOURCE_PATHSPEC)
        names = set(_lines(diff.stdout))
        if untracked.returncode == 0:
            names.update(_lines(untracked.stdout))

        logger.debug("git reports %d changed source files since %s", len(names), since)
        return [Path(name) for name in sorted(names)]
