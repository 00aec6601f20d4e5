"""Tests for the organize/undo service."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

import pytest

from sorty.config.models import SortyConfig
from sorty.errors import RootBusyError
from sorty.organization import SidecarTagStore
from sorty.service import OrganizerService, organize, undo
from sorty.state import InMemoryHistoryStore, JsonHistoryStore, MissingStateError
from sorty.state.journal import LedgerJournal

from conftest import write_file

NOW = datetime(2024, 1, 2, 3, 4, 5)

INVOICE_PLAN = json.dumps(
    {
        "folders": [
            {
                "name": "Invoices",
                "files": [{"filename": "a.pdf", "suggested_name": "2024-Invoice.pdf"}],
            }
        ]
    }
)


def test_organize_then_undo_invoice_example(root: Path, scan) -> None:
    write_file(root, "a.pdf", "invoice")
    store = InMemoryHistoryStore()

    entry = organize(root, scan(root), INVOICE_PLAN, store=store, now=NOW)

    assert entry.status == "completed"
    assert entry.ledger.run_id == entry.id
    assert entry.counts.folders_created == 1
    assert entry.counts.files_renamed == 1
    assert store.get(entry.id).status == "completed"
    assert (root / "Invoices" / "2024-Invoice.pdf").exists()

    report = undo(store.get(entry.id), store=store)

    assert report.fully_reversed
    assert (root / "a.pdf").read_text(encoding="utf-8") == "invoice"
    assert not (root / "Invoices").exists()
    assert store.get(entry.id).status == "undone"


def test_reapplying_same_plan_is_a_no_op(root: Path, scan) -> None:
    write_file(root, "a.pdf", "invoice")
    write_file(root, "b.txt", "notes")
    files = scan(root)
    raw = json.dumps(
        {
            "folders": [
                {
                    "name": "Invoices",
                    "files": [
                        {"filename": "a.pdf", "suggested_name": "2024-Invoice"},
                        "b.txt",
                    ],
                }
            ]
        }
    )
    service = OrganizerService(InMemoryHistoryStore())

    first = service.organize(root, files, raw, now=NOW)
    second = service.organize(root, files, raw, now=NOW)

    assert first.status == "completed"
    assert len(first.ledger.actions) == 3
    assert second.status == "completed"
    assert second.ledger.actions == []
    assert second.counts.skipped == 0
    assert not second.is_undoable
    assert service.store.latest_for(root, undoable_only=True).id == first.id


def test_parse_failure_records_failed_entry(root: Path) -> None:
    store = InMemoryHistoryStore()

    entry = organize(root, [], "no plan here", store=store)

    assert entry.status == "failed"
    assert entry.error.startswith("invalid_json")
    assert entry.ledger is None
    assert store.get(entry.id).raw_response == "no plan here"


def test_missing_root_records_failed_entry(tmp_path: Path) -> None:
    store = InMemoryHistoryStore()

    entry = organize(tmp_path / "missing", [], '{"folders": []}', store=store)

    assert entry.status == "failed"
    assert entry.error.startswith("root_not_writable")


def test_dry_run_is_not_stored(root: Path, scan) -> None:
    write_file(root, "a.pdf")
    store = InMemoryHistoryStore()
    service = OrganizerService(store)

    entry = service.organize(root, scan(root), INVOICE_PLAN, dry_run=True)

    assert entry.status == "completed"
    assert len(entry.ledger.actions) == 2
    assert store.entries() == []
    assert (root / "a.pdf").exists()


def test_preview_resolves_without_side_effects(root: Path, scan) -> None:
    write_file(root, "a.pdf")
    service = OrganizerService(InMemoryHistoryStore())

    resolved = service.preview(root, scan(root), INVOICE_PLAN, now=NOW)

    assert resolved.files[0].destination == root / "Invoices" / "2024-Invoice.pdf"
    assert not (root / "Invoices").exists()


def test_busy_root_marks_entry_failed(root: Path, scan) -> None:
    write_file(root, "a.pdf")
    store = InMemoryHistoryStore()
    service = OrganizerService(store)

    with service.locks.hold(root):
        with pytest.raises(RootBusyError):
            service.organize(root, scan(root), INVOICE_PLAN)

    [entry] = store.entries()
    assert entry.status == "failed"
    assert (root / "a.pdf").exists()


def test_undo_recovers_ledger_from_journal(root: Path, scan, tmp_path: Path) -> None:
    write_file(root, "a.pdf")
    state_dir = tmp_path / "state"
    store = JsonHistoryStore(state_dir / "history.json")
    service = OrganizerService(store, state_dir=state_dir)

    entry = service.organize(root, scan(root), INVOICE_PLAN, now=NOW)
    journal = LedgerJournal.for_run(state_dir, entry.id)
    assert journal.path.exists()

    # Simulate a crash that persisted the journal but not the final entry.
    crashed = store.get(entry.id)
    crashed.ledger = None
    crashed.status = "running"
    store.update(crashed)

    report = service.undo(store.get(entry.id))

    assert report.fully_reversed
    assert (root / "a.pdf").exists()
    assert store.get(entry.id).status == "undone"


def test_undo_without_ledger_or_journal_raises(root: Path) -> None:
    store = InMemoryHistoryStore()
    entry = organize(root, [], "nothing", store=store)

    with pytest.raises(MissingStateError):
        undo(entry, store=store)


def test_partial_undo_keeps_status_and_reports_conflicts(root: Path, scan) -> None:
    write_file(root, "a.pdf")
    store = InMemoryHistoryStore()
    service = OrganizerService(store)
    entry = service.organize(root, scan(root), INVOICE_PLAN, now=NOW)
    write_file(root, "a.pdf", "replacement")

    report = service.undo(entry)

    stored = store.get(entry.id)
    assert not report.fully_reversed
    assert stored.status == "completed"
    assert "could not be reversed" in stored.error


def test_from_config_uses_state_dir(tmp_path: Path, root: Path, scan) -> None:
    write_file(root, "a.pdf")
    config = SortyConfig.model_validate(
        {
            "history": {"state_dir": str(tmp_path / "state")},
            "organization": {"apply_renames": False},
        }
    )
    service = OrganizerService.from_config(config)

    entry = service.organize(root, scan(root), INVOICE_PLAN, now=NOW)

    assert (root / "Invoices" / "a.pdf").exists()
    assert (tmp_path / "state" / "history.json").exists()
    assert (tmp_path / "state" / "ledgers" / f"{entry.id}.jsonl").exists()
    assert isinstance(service.tag_store, SidecarTagStore)


TAGGED_PLAN = json.dumps(
    {"folders": [{"name": "Docs", "files": [{"filename": "a.txt", "tags": ["work"]}]}]}
)


class _FailingTagStore:
    def read(self, path: Path) -> list[str]:
        return []

    def add(self, path: Path, tags) -> list[str]:
        raise RuntimeError("tag backend exploded")

    def remove(self, path: Path, tags) -> list[str]:
        return []


def test_unexpected_error_during_apply_finalizes_entry(root: Path, scan) -> None:
    write_file(root, "a.txt")
    store = InMemoryHistoryStore()
    service = OrganizerService(store, tag_store=_FailingTagStore())

    with pytest.raises(RuntimeError):
        service.organize(root, scan(root), TAGGED_PLAN, now=NOW)

    [entry] = store.entries()
    assert entry.status == "completed_with_errors"
    assert "tag backend exploded" in entry.error
    assert entry.counts.files_moved == 1
    assert entry.is_undoable
    assert (root / "Docs" / "a.txt").exists()

    report = service.undo(entry)

    assert report.fully_reversed
    assert (root / "a.txt").exists()


def test_corrupt_tag_sidecar_is_recorded_per_file(root: Path, scan, tmp_path: Path) -> None:
    write_file(root, "a.txt")
    sidecar = tmp_path / "tags.json"
    sidecar.write_text("{broken", encoding="utf-8")
    store = InMemoryHistoryStore()
    service = OrganizerService(store, tag_store=SidecarTagStore(sidecar))

    entry = service.organize(root, scan(root), TAGGED_PLAN, now=NOW)

    assert entry.status == "completed_with_errors"
    assert store.get(entry.id).status == "completed_with_errors"
    assert entry.counts.files_moved == 1
    assert entry.counts.skipped == 1
