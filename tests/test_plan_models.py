"""Tests for plan models and catalog name matching."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from sorty.catalog.models import FileRecord
from sorty.plan import FileMatcher
from sorty.plan.models import PlanBuilder, PlanNode


def _record(identifier: str, display: str) -> FileRecord:
    stem, _, extension = display.rpartition(".")
    return FileRecord(
        id=identifier,
        path=Path("/data") / display,
        name=stem or display,
        extension=extension if stem else "",
    )


def test_builder_places_each_file_once() -> None:
    builder = PlanBuilder()
    first = builder.add_folder("Docs")
    second = builder.add_folder("Other")

    assert builder.place_file(first, "f1")
    assert not builder.place_file(second, "f1")

    plan = builder.build()
    assert plan.node(first).file_ids == ("f1",)
    assert plan.node(second).file_ids == ()


def test_builder_tracks_hierarchy_in_preorder() -> None:
    builder = PlanBuilder()
    top = builder.add_folder("Top")
    builder.add_folder("Child", parent=top)
    builder.add_folder("Sibling")

    plan = builder.build()

    assert [chain for _, chain in plan.walk()] == [("Top",), ("Top", "Child"), ("Sibling",)]
    assert [node.name for node in plan.children(plan.node(top))] == ["Child"]


def test_builder_drops_renames_and_tags_for_unplaced_files() -> None:
    builder = PlanBuilder()
    folder = builder.add_folder("Docs")
    builder.place_file(folder, "kept")
    builder.set_rename("kept", "renamed")
    builder.set_rename("kept", "ignored")
    builder.set_rename("loose", "never")
    builder.add_tags("kept", ["a", "b"])
    builder.add_tags("kept", ["b", "c"])
    builder.mark_unassigned("loose", "no folder")
    builder.mark_unassigned("kept", "should not apply")

    plan = builder.build()

    assert plan.rename_for("kept").suggested_name == "renamed"
    assert plan.rename_for("loose") is None
    assert plan.tags_for("kept") == ("a", "b", "c")
    assert [entry.file_id for entry in plan.unassigned] == ["loose"]
    assert plan.rename_count == 1


def test_blank_folder_names_are_rejected() -> None:
    with pytest.raises(ValueError):
        PlanBuilder().add_folder("   ")
    with pytest.raises(ValidationError):
        PlanNode(index=0, name="")


def test_matcher_confidence_tiers() -> None:
    files = [
        _record("1", "Report.PDF"),
        _record("2", "report"),
        _record("3", "summary-2024.txt"),
    ]
    matcher = FileMatcher(files)

    assert matcher.find("Report.PDF").id == "1"
    assert matcher.find("report").id == "2"
    assert matcher.find("report.pdf").id == "1"
    assert matcher.find("summary-2024").id == "3"
    assert matcher.find("nothing-like-it.bin") is None
    assert matcher.find("   ") is None
