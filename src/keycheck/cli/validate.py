from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError

from keycheck.cli.common import console, exit_on_error, render_table, render_validation
from keycheck.cli.scan import ConfigOption, IncludeTestsOption, NoCacheOption, ProjectPath, scan_project
from keycheck.config import PolicyConfig, load_config
from keycheck.core.diff import DEFAULT_RENAME_THRESHOLD, diff_snapshots
from keycheck.core.validate import validate_snapshots
from keycheck.errors import ConfigError, ExitKind, IoError
from keycheck.models import Snapshot
from keycheck.registry.local import FileBaselineProvider


def _override_policy(policy: PolicyConfig, **overrides: object) -> PolicyConfig:
    values = policy.model_dump()
    values.update({name: value for name, value in overrides.items() if value is not None})
    try:
        return PolicyConfig.model_validate(values)
    except ValidationError as exc:
        raise ConfigError(f"Invalid policy options: {exc}") from exc


def validate(
    path: ProjectPath = Path("."),
    config_file: ConfigOption = None,
    baseline: Annotated[Path | None, typer.Option(help="Baseline snapshot (default from config).")] = None,
    no_cache: NoCacheOption = False,
    include_tests: IncludeTestsOption = False,
    fail_on_lost: Annotated[bool | None, typer.Option("--fail-on-lost/--no-fail-on-lost", help="Fail when keys are removed.")] = None,
    fail_on_rename: Annotated[bool | None, typer.Option("--fail-on-rename/--no-fail-on-rename", help="Fail when keys are renamed.")] = None,
    fail_on_extra: Annotated[bool | None, typer.Option("--fail-on-extra/--no-fail-on-extra", help="Fail on keys missing from the baseline.")] = None,
    max_drift: Annotated[float | None, typer.Option(help="Maximum allowed drift percentage.")] = None,
    protected_tag: Annotated[list[str] | None, typer.Option(help="Tag whose keys must never be lost or renamed.")] = None,
    as_json: Annotated[bool, typer.Option("--json", help="Print the validation result as JSON.")] = False,
) -> None:
    """Scan the project and check it against the baseline and policies."""
    with exit_on_error():
        config = load_config(config_file, path)
        if include_tests:
            config.scan.include_tests = True
        policy = _override_policy(
            config.policies,
            fail_on_lost=fail_on_lost,
            fail_on_rename=fail_on_rename,
            fail_on_extra=fail_on_extra,
            max_drift=max_drift,
            protected_tags=protected_tag or None,
        )
        baseline_snapshot = FileBaselineProvider(baseline or path / config.baseline).fetch()
        result = scan_project(path, config, no_cache=no_cache)
        validation = validate_snapshots(baseline_snapshot, result.to_snapshot(), policy)

        if as_json:
            typer.echo(validation.model_dump_json(by_alias=True, indent=2))
        else:
            render_validation(validation)
        if not validation.passed:
            raise typer.Exit(int(ExitKind.POLICY_VIOLATION))


def _read_snapshot(path: Path, role: str) -> Snapshot:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise IoError(f"Cannot read {role} snapshot {path}: {exc}") from exc
    try:
        return Snapshot.from_json(text, role=role)
    except ValueError as exc:
        raise IoError(f"{path} is not a valid snapshot: {exc}") from exc


def diff(
    baseline: Annotated[Path, typer.Argument(help="Baseline snapshot JSON.")],
    current: Annotated[Path, typer.Argument(help="Current snapshot JSON.")],
    rename_threshold: Annotated[
        float, typer.Option(min=0.01, max=1.0, help="Similarity needed to call a lost/added pair a rename.")
    ] = DEFAULT_RENAME_THRESHOLD,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Write the current snapshot with every key of both sides marked by status."),
    ] = None,
) -> None:
    """Compare two snapshot files."""
    with exit_on_error():
        baseline_snapshot = _read_snapshot(baseline, "baseline")
        current_snapshot = _read_snapshot(current, "current")
        result = diff_snapshots(baseline_snapshot, current_snapshot, rename_threshold=rename_threshold)
        if output is not None:
            annotated = current_snapshot.model_copy(update={"keys": result.records()})
            output.parent.mkdir(parents=True, exist_ok=True)
            output.write_text(annotated.to_json() + "\n", encoding="utf-8")
        rows: list[tuple[str, str]] = [("lost", key) for key in result.lost]
        rows.extend(("added", key) for key in result.added)
        rows.extend(("renamed", f"{old} -> {new}") for old, new in result.renamed)
        rows.extend(("relocated", key) for key in result.relocated)
        if rows:
            render_table(["change", "key"], rows)
        console.print(
            f"unchanged {len(result.unchanged)}  lost {len(result.lost)}  added {len(result.added)}  "
            f"renamed {len(result.renamed)}  drift {result.drift_percentage:.1f}%"
        )
