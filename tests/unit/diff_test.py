"""Tests for snapshot diffing, rename matching and drift."""

from collections.abc import Callable

import pytest

from keycheck.core.diff import diff_snapshots, fingerprint, id_tokens, rename_similarity
from keycheck.errors import SchemaMismatchError
from keycheck.models import KeyLocation, KeyRecord, KeyStatus, Snapshot

SnapshotFactory = Callable[..., Snapshot]


def _located(key: str, file: str = "lib/login.dart", context: str = "method:build", tags: list[str] | None = None) -> KeyRecord:
    location = KeyLocation(file=file, line=10, column=5, detector="Key", context=context)
    return KeyRecord(id=key, tags=tags or [], location_count=1, locations=[location])


def test_lost_and_added_keys(make_snapshot: SnapshotFactory) -> None:
    diff = diff_snapshots(make_snapshot("a", "b", "c", "d"), make_snapshot("a", "b", "e"))

    assert diff.unchanged == ("a", "b")
    assert diff.lost == ("c", "d")
    assert diff.added == ("e",)
    assert diff.renamed == ()
    assert diff.drift_percentage == 75.0


def test_identical_snapshots_have_no_drift(make_snapshot: SnapshotFactory) -> None:
    diff = diff_snapshots(make_snapshot("a", "b"), make_snapshot("a", "b"))

    assert diff.has_changes is False
    assert diff.drift_percentage == 0.0


def test_drift_is_clamped(make_snapshot: SnapshotFactory) -> None:
    diff = diff_snapshots(make_snapshot("a"), make_snapshot("x", "y", "z"))
    assert diff.drift_percentage == 100.0


def test_empty_baseline(make_snapshot: SnapshotFactory) -> None:
    diff = diff_snapshots(make_snapshot(), make_snapshot("a"))
    assert diff.added == ("a",)
    assert diff.drift_percentage == 100.0


def test_drift_grows_with_lost_keys(make_snapshot: SnapshotFactory) -> None:
    baseline = make_snapshot("alpha", "bravo", "charlie", "delta", "echo")
    fewer_lost = diff_snapshots(baseline, make_snapshot("alpha", "bravo", "charlie", "delta"))
    more_lost = diff_snapshots(baseline, make_snapshot("alpha", "bravo", "charlie"))

    assert more_lost.drift_percentage > fewer_lost.drift_percentage


def test_rename_detected_by_shared_fingerprint(make_snapshot: SnapshotFactory) -> None:
    baseline = make_snapshot(_located("login_button", tags=["critical"]), _located("email_field"))
    current = make_snapshot(_located("login_btn", tags=["critical"]), _located("email_field"))

    diff = diff_snapshots(baseline, current)

    assert diff.renamed == (("login_button", "login_btn"),)
    assert diff.lost == ()
    assert diff.added == ()
    assert diff.drift_percentage == 50.0


def test_rename_threshold_is_tunable(make_snapshot: SnapshotFactory) -> None:
    baseline = make_snapshot(_located("login_button"))
    current = make_snapshot(_located("login_btn"))

    diff = diff_snapshots(baseline, current, rename_threshold=0.9)

    assert diff.renamed == ()
    assert diff.lost == ("login_button",)
    assert diff.added == ("login_btn",)


def test_unrelated_keys_are_not_renames(make_snapshot: SnapshotFactory) -> None:
    baseline = make_snapshot(_located("login_button", file="lib/login.dart"))
    current = make_snapshot(_located("cart_total", file="lib/cart.dart", context="method:total"))

    diff = diff_snapshots(baseline, current)

    assert diff.renamed == ()


def test_rename_matching_is_one_to_one(make_snapshot: SnapshotFactory) -> None:
    baseline = make_snapshot(_located("save_button"), _located("save_btn_old"))
    current = make_snapshot(_located("save_btn"))

    diff = diff_snapshots(baseline, current)

    assert diff.renamed == (("save_btn_old", "save_btn"),)
    assert diff.lost == ("save_button",)


def test_relocated_keys_stay_unchanged(make_snapshot: SnapshotFactory) -> None:
    baseline = make_snapshot(_located("login", file="lib/a.dart"))
    current = make_snapshot(_located("login", file="lib/b.dart"))

    diff = diff_snapshots(baseline, current)

    assert diff.unchanged == ("login",)
    assert diff.relocated == ("login",)
    assert diff.has_changes is False


def test_records_annotate_status(make_snapshot: SnapshotFactory) -> None:
    diff = diff_snapshots(make_snapshot("a", "b"), make_snapshot("a", "zz"))

    statuses = {record.id: record.status for record in diff.records()}

    assert statuses == {"a": KeyStatus.FOUND, "b": KeyStatus.LOST, "zz": KeyStatus.ADDED}


def test_schema_mismatch_raises(make_snapshot: SnapshotFactory) -> None:
    baseline = make_snapshot("a").model_copy(update={"schema_version": "0.9"})

    with pytest.raises(SchemaMismatchError) as excinfo:
        diff_snapshots(baseline, make_snapshot("a"))

    assert excinfo.value.found == "0.9"
    assert excinfo.value.role == "baseline"


def test_id_tokens_split_separators_and_camel_case() -> None:
    assert id_tokens("loginButton") == {"login", "button"}
    assert id_tokens("checkout.pay_now-btn") == {"checkout", "pay", "now", "btn"}
    assert id_tokens("semantics:Help") == {"semantics", "help"}


def test_similarity_without_fingerprints_uses_ids_only() -> None:
    old = KeyRecord(id="login_button")
    new = KeyRecord(id="button_login")

    assert fingerprint(old) == set()
    assert rename_similarity(old, new) == 1.0
