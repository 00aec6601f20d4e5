"""Resolved plan, execution result, and undo report models."""

from __future__ import annotations

from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import Dict, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from sorty.state.models import OperationLedger, PrimitiveAction, RunStatus, SkippedItem

UndoOutcomeKind = Literal["reversed", "conflict", "already_reversed"]


class ResolvedFile(BaseModel):
    """A file with a concrete destination path.

    Attributes:
        file_id: Catalog identifier of the file.
        source: Current absolute path of the file.
        destination: Absolute path the file should end up at.
        is_rename: Whether the final name differs from the current name.
        tags: Tags to apply after the file is in place.
        suffixed: Whether a collision suffix was added to the name.
        size_bytes: Size recorded when the file was scanned.
        modified_at: Modification time recorded when the file was scanned.
        sha256: Content digest recorded when the file was scanned, if any.
    """

    model_config = ConfigDict(frozen=True)

    file_id: str
    source: Path
    destination: Path
    is_rename: bool = False
    tags: Tuple[str, ...] = ()
    suffixed: bool = False
    size_bytes: Optional[int] = None
    modified_at: Optional[datetime] = None
    sha256: Optional[str] = None


class ResolvedPlan(BaseModel):
    """Concrete, collision-free filesystem targets for an organization plan.

    Attributes:
        root: Root directory the plan was resolved against.
        timestamp: Run timestamp used for collision suffixes.
        directories: Directories to create, parents before children.
        files: Files to move or rename, in plan pre-order.
        satisfied: Files already at their destination; only tags may apply.
        skipped: Files that cannot be placed.
        unassigned: Identifiers of files the plan did not place.
        notes: Diagnostics collected during resolution.
    """

    model_config = ConfigDict(frozen=True)

    root: Path
    timestamp: datetime
    directories: Tuple[Path, ...] = ()
    files: Tuple[ResolvedFile, ...] = ()
    satisfied: Tuple[ResolvedFile, ...] = ()
    skipped: Tuple[SkippedItem, ...] = ()
    unassigned: Tuple[str, ...] = ()
    notes: Tuple[str, ...] = ()

    @property
    def is_noop(self) -> bool:
        """Return ``True`` when nothing needs to be created or moved."""
        return not self.directories and not self.files

    @property
    def satisfied_ids(self) -> Tuple[str, ...]:
        """Identifiers of files already at their destination."""
        return tuple(item.file_id for item in self.satisfied)


class ExecutionResult(BaseModel):
    """Outcome of applying a resolved plan."""

    ledger: OperationLedger
    status: RunStatus
    error: Optional[str] = None
    dry_run: bool = False


class UndoOutcome(BaseModel):
    """Result of reversing a single ledger action."""

    model_config = ConfigDict(frozen=True)

    action: PrimitiveAction
    outcome: UndoOutcomeKind
    message: str = ""


class UndoReport(BaseModel):
    """Per-action results of an undo pass, newest action first."""

    run_id: str
    outcomes: Tuple[UndoOutcome, ...] = ()
    dry_run: bool = False
    finished_at: Optional[datetime] = None

    @property
    def counts(self) -> Dict[str, int]:
        """Number of outcomes per kind."""
        tally = Counter(item.outcome for item in self.outcomes)
        return {kind: tally.get(kind, 0) for kind in ("reversed", "conflict", "already_reversed")}

    @property
    def fully_reversed(self) -> bool:
        """Return ``True`` when no action ended in conflict."""
        return self.counts.get("conflict", 0) == 0

    @property
    def conflicts(self) -> Tuple[UndoOutcome, ...]:
        """Outcomes that could not be reversed."""
        return tuple(item for item in self.outcomes if item.outcome == "conflict")


__all__ = [
    "ExecutionResult",
    "ResolvedFile",
    "ResolvedPlan",
    "UndoOutcome",
    "UndoOutcomeKind",
    "UndoReport",
]
