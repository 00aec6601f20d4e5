"""Ledger and history data models."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any, List, Literal, Optional, Tuple, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, TypeAdapter

if TYPE_CHECKING:
    from .journal import LedgerJournal

ExecutionErrorCode = Literal[
    "permission_denied",
    "source_missing",
    "destination_conflict",
    "path_escape_attempt",
    "os_error",
]

RunStatus = Literal[
    "running",
    "completed",
    "completed_with_errors",
    "failed",
    "cancelled",
    "undone",
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ActionModel(BaseModel):
    """Shared configuration for primitive filesystem actions."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=_utcnow)


class CreateDirectory(ActionModel):
    """A directory created during a run."""

    kind: Literal["create_directory"] = "create_directory"
    path: Path


class MoveFile(ActionModel):
    """A file moved to another folder while keeping its name."""

    kind: Literal["move_file"] = "move_file"
    source: Path
    destination: Path


class RenameFile(ActionModel):
    """A file moved to a path whose final name differs from the original."""

    kind: Literal["rename_file"] = "rename_file"
    source: Path
    destination: Path


class ApplyTags(ActionModel):
    """Tags added to a file; only tags that were not already present are recorded."""

    kind: Literal["apply_tags"] = "apply_tags"
    path: Path
    tags: Tuple[str, ...] = ()


PrimitiveAction = Annotated[
    Union[CreateDirectory, MoveFile, RenameFile, ApplyTags],
    Field(discriminator="kind"),
]

ACTION_ADAPTER: TypeAdapter[PrimitiveAction] = TypeAdapter(PrimitiveAction)


def describe_action(action: PrimitiveAction) -> str:
    """Return a short human-readable description of ``action``."""
    if isinstance(action, CreateDirectory):
        return f"create {action.path}"
    if isinstance(action, ApplyTags):
        return f"tag {action.path} [{', '.join(action.tags)}]"
    verb = "rename" if isinstance(action, RenameFile) else "move"
    return f"{verb} {action.source} -> {action.destination}"


class SkippedItem(BaseModel):
    """A file that could not be placed during resolution or execution.

    Attributes:
        file_id: Catalog identifier of the file when known.
        source: Path of the file at resolution time.
        destination: Intended destination, if one was computed.
        error: Machine-readable failure reason.
        message: Human-readable description.
    """

    model_config = ConfigDict(frozen=True)

    file_id: Optional[str] = None
    source: Path
    destination: Optional[Path] = None
    error: ExecutionErrorCode
    message: str = ""


class RunCounts(BaseModel):
    """Summary counts describing a run."""

    folders_created: int = 0
    files_moved: int = 0
    files_renamed: int = 0
    tags_applied: int = 0
    skipped: int = 0
    unassigned: int = 0


class OperationLedger(BaseModel):
    """Ordered, append-only record of the primitive actions from one run.

    When a journal is attached every action is written to disk before it is
    added to the in-memory list, so persisted state always covers the
    completed prefix of the run.
    """

    run_id: str = Field(default_factory=lambda: uuid4().hex)
    root: Path
    created_at: datetime = Field(default_factory=_utcnow)
    actions: List[PrimitiveAction] = Field(default_factory=list)
    skipped: List[SkippedItem] = Field(default_factory=list)
    reversed_at: Optional[datetime] = None

    _journal: Any = PrivateAttr(default=None)

    def attach(self, journal: "LedgerJournal") -> None:
        """Stream subsequent records to ``journal``."""
        journal.start(self)
        self._journal = journal

    def record(self, action: PrimitiveAction) -> None:
        """Append a completed action."""
        if self._journal is not None:
            self._journal.append_action(action)
        self.actions.append(action)

    def skip(self, item: SkippedItem) -> None:
        """Append a per-file failure."""
        if self._journal is not None:
            self._journal.append_skipped(item)
        self.skipped.append(item)

    @property
    def is_empty(self) -> bool:
        """Return ``True`` when no actions were recorded."""
        return not self.actions

    def counts(self, *, unassigned: int = 0) -> RunCounts:
        """Summarize the ledger into ``RunCounts``."""
        return RunCounts(
            folders_created=sum(isinstance(action, CreateDirectory) for action in self.actions),
            files_moved=sum(isinstance(action, MoveFile) for action in self.actions),
            files_renamed=sum(isinstance(action, RenameFile) for action in self.actions),
            tags_applied=sum(
                len(action.tags) for action in self.actions if isinstance(action, ApplyTags)
            ),
            skipped=len(self.skipped),
            unassigned=unassigned,
        )


class HistoryEntry(BaseModel):
    """Persisted summary of one organize run."""

    id: str = Field(default_factory=lambda: uuid4().hex)
    root: Path
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    status: RunStatus = "running"
    counts: RunCounts = Field(default_factory=RunCounts)
    ledger: Optional[OperationLedger] = None
    error: Optional[str] = None
    notes: str = ""
    raw_response: Optional[str] = None

    def touch(self) -> None:
        """Refresh ``updated_at``."""
        self.updated_at = _utcnow()

    @property
    def is_undoable(self) -> bool:
        """Return whether the entry has recorded actions that were not reversed."""
        if self.ledger is None or self.ledger.is_empty:
            return False
        return self.status in ("completed", "completed_with_errors", "cancelled")


__all__ = [
    "ACTION_ADAPTER",
    "ActionModel",
    "ApplyTags",
    "CreateDirectory",
    "ExecutionErrorCode",
    "HistoryEntry",
    "MoveFile",
    "OperationLedger",
    "PrimitiveAction",
    "RenameFile",
    "RunCounts",
    "RunStatus",
    "SkippedItem",
    "describe_action",
]
