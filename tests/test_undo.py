"""Tests for reversing operation ledgers."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

from sorty.organization import OperationExecutor, SidecarTagStore, UndoEngine, resolve
from sorty.plan import parse

from conftest import write_file

NOW = datetime(2024, 1, 2, 3, 4, 5)


def _snapshot(root: Path) -> dict[str, str]:
    return {
        path.relative_to(root).as_posix(): path.read_text(encoding="utf-8") if path.is_file() else ""
        for path in sorted(root.rglob("*"))
    }


def _organize(root: Path, files, folders: list[dict], tag_store=None):
    plan = parse(json.dumps({"folders": folders}), files)
    resolved = resolve(plan, root, files=files, now=NOW)
    return OperationExecutor(tag_store).apply(resolved).ledger


def test_invoice_example_round_trip(root: Path, scan) -> None:
    write_file(root, "a.pdf", "invoice")
    ledger = _organize(
        root,
        scan(root),
        [
            {
                "name": "Invoices",
                "files": [{"filename": "a.pdf", "suggested_name": "2024-Invoice.pdf"}],
            }
        ],
    )

    report = UndoEngine().undo(ledger)

    assert report.fully_reversed
    assert report.counts == {"reversed": 2, "conflict": 0, "already_reversed": 0}
    assert (root / "a.pdf").read_text(encoding="utf-8") == "invoice"
    assert not (root / "Invoices").exists()
    assert ledger.reversed_at is not None


def test_round_trip_restores_original_tree(root: Path, scan, tmp_path: Path) -> None:
    write_file(root, "a.txt", "a")
    write_file(root, "b.md", "b")
    write_file(root, "nested/c.csv", "c")
    write_file(root, "Reports/existing.txt", "keep")
    before = _snapshot(root)
    tag_store = SidecarTagStore(tmp_path / "tags.json")

    ledger = _organize(
        root,
        scan(root),
        [
            {
                "name": "Reports",
                "files": [{"filename": "a.txt", "suggested_name": "summary", "tags": ["q1"]}],
                "subfolders": [{"name": "Notes", "files": ["b.md", "c.csv"]}],
            }
        ],
        tag_store,
    )
    assert _snapshot(root) != before

    report = UndoEngine(tag_store).undo(ledger)

    assert report.fully_reversed
    assert _snapshot(root) == before
    assert tag_store.read(root / "Reports" / "summary.txt") == []


def test_replaying_undo_is_idempotent(root: Path, scan) -> None:
    write_file(root, "a.txt")
    ledger = _organize(root, scan(root), [{"name": "Docs", "files": ["a.txt"]}])
    engine = UndoEngine()
    engine.undo(ledger)
    after_first = _snapshot(root)

    second = engine.undo(ledger)

    assert {item.outcome for item in second.outcomes} == {"already_reversed"}
    assert _snapshot(root) == after_first


def test_occupied_original_path_is_a_conflict(root: Path, scan) -> None:
    write_file(root, "a.txt", "moved")
    ledger = _organize(root, scan(root), [{"name": "Docs", "files": ["a.txt"]}])
    write_file(root, "a.txt", "newcomer")

    report = UndoEngine().undo(ledger)

    assert report.counts["conflict"] == 2
    assert (root / "a.txt").read_text(encoding="utf-8") == "newcomer"
    assert (root / "Docs" / "a.txt").read_text(encoding="utf-8") == "moved"
    assert not report.fully_reversed


def test_deleted_file_is_reported_and_other_actions_continue(root: Path, scan) -> None:
    write_file(root, "a.txt")
    write_file(root, "b.txt")
    ledger = _organize(root, scan(root), [{"name": "Docs", "files": ["a.txt", "b.txt"]}])
    (root / "Docs" / "b.txt").unlink()

    report = UndoEngine().undo(ledger)

    outcomes = [(item.action.kind, item.outcome) for item in report.outcomes]
    assert outcomes == [
        ("move_file", "conflict"),
        ("move_file", "reversed"),
        ("create_directory", "reversed"),
    ]
    assert report.conflicts[0].message == "file no longer present"
    assert (root / "a.txt").exists()


def test_directory_with_new_content_is_kept(root: Path, scan) -> None:
    write_file(root, "a.txt")
    ledger = _organize(root, scan(root), [{"name": "Docs", "files": ["a.txt"]}])
    write_file(root, "Docs/added-later.txt")

    report = UndoEngine().undo(ledger)

    assert [item.outcome for item in report.outcomes] == ["reversed", "conflict"]
    assert (root / "a.txt").exists()
    assert (root / "Docs" / "added-later.txt").exists()


def test_dry_run_changes_nothing(root: Path, scan) -> None:
    write_file(root, "a.txt")
    ledger = _organize(root, scan(root), [{"name": "Docs", "files": ["a.txt"]}])
    before = _snapshot(root)

    report = UndoEngine().undo(ledger, dry_run=True)

    assert report.dry_run
    assert report.counts["reversed"] == 1
    assert _snapshot(root) == before
    assert ledger.reversed_at is None


def test_undo_clears_only_the_tags_the_run_added(root: Path, scan, tmp_path: Path) -> None:
    target = write_file(root, "Docs/a.txt")
    tag_store = SidecarTagStore(tmp_path / "tags.json")
    tag_store.add(target, ["mine"])
    ledger = _organize(
        root,
        scan(root),
        [{"name": "Docs", "files": [{"filename": "a.txt", "tags": ["mine", "work"]}]}],
        tag_store,
    )
    tag_store.add(target, ["later"])

    report = UndoEngine(tag_store).undo(ledger)

    assert report.counts == {"reversed": 1, "conflict": 0, "already_reversed": 0}
    assert tag_store.read(target) == ["mine", "later"]
    assert target.exists()
