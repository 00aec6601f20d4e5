"""Reverse the actions recorded in an operation ledger."""

from __future__ import annotations

import errno
import logging
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple

from sorty.state.models import (
    ApplyTags,
    CreateDirectory,
    MoveFile,
    OperationLedger,
    PrimitiveAction,
    RenameFile,
)

from .models import UndoOutcome, UndoOutcomeKind, UndoReport
from .tags import TagStore

LOGGER = logging.getLogger(__name__)

Verdict = Tuple[UndoOutcomeKind, str]


class UndoEngine:
    """Replay a ledger newest-first, reversing each action independently.

    A reversal that would clobber something is refused and reported as a
    conflict; the remaining actions are still processed. Replaying a ledger
    that has already been reversed only yields ``already_reversed`` outcomes.
    """

    def __init__(self, tag_store: Optional[TagStore] = None) -> None:
        self.tag_store = tag_store

    def undo(self, ledger: OperationLedger, *, dry_run: bool = False) -> UndoReport:
        """Reverse ``ledger``.

        Args:
            ledger: Ledger produced by the executor.
            dry_run: When true, report what would happen without touching the filesystem.

        Returns:
            UndoReport: Per-action outcomes, newest action first.
        """
        outcomes: List[UndoOutcome] = []
        for action in reversed(ledger.actions):
            try:
                outcome, message = self._reverse(action, dry_run)
            except OSError as exc:
                outcome, message = "conflict", str(exc)
            if outcome == "conflict":
                LOGGER.warning("Undo conflict for %s: %s", action.kind, message)
            outcomes.append(UndoOutcome(action=action, outcome=outcome, message=message))

        finished = datetime.now(timezone.utc)
        if not dry_run:
            ledger.reversed_at = finished
        report = UndoReport(
            run_id=ledger.run_id,
            outcomes=tuple(outcomes),
            dry_run=dry_run,
            finished_at=finished,
        )
        LOGGER.info("Undo of run %s: %s", ledger.run_id, report.counts)
        return report

    def _reverse(self, action: PrimitiveAction, dry_run: bool) -> Verdict:
        if isinstance(action, (MoveFile, RenameFile)):
            return self._reverse_move(action.source, action.destination, dry_run)
        if isinstance(action, CreateDirectory):
            return self._reverse_directory(action.path, dry_run)
        if isinstance(action, ApplyTags):
            return self._reverse_tags(action, dry_run)
        return "conflict", f"unsupported action {action!r}"

    def _reverse_move(self, source: Path, destination: Path, dry_run: bool) -> Verdict:
        destination_present = os.path.lexists(destination)
        source_present = os.path.lexists(source)

        if not destination_present:
            if source_present:
                return "already_reversed", "file is back at its original path"
            return "conflict", "file no longer present"
        if source_present:
            return "conflict", f"original path {source} is occupied"

        if not dry_run:
            source.parent.mkdir(parents=True, exist_ok=True)
            try:
                os.rename(destination, source)
            except OSError as exc:
                if exc.errno != errno.EXDEV:
                    raise
                shutil.move(str(destination), str(source))
        return "reversed", f"restored {source}"

    def _reverse_directory(self, path: Path, dry_run: bool) -> Verdict:
        if not os.path.lexists(path):
            return "already_reversed", "directory already removed"
        if path.is_symlink() or not path.is_dir():
            return "conflict", "path is no longer a directory"
        if any(path.iterdir()):
            return "conflict", "directory is not empty"
        if not dry_run:
            path.rmdir()
        return "reversed", f"removed {path}"

    def _reverse_tags(self, action: ApplyTags, dry_run: bool) -> Verdict:
        if not os.path.lexists(action.path):
            return "already_reversed", "tagged file is no longer at this path"
        if self.tag_store is None:
            return "conflict", "no tag store configured"
        if dry_run:
            present = self.tag_store.read(action.path)
            removed = [tag for tag in action.tags if tag in present]
        else:
            removed = self.tag_store.remove(action.path, action.tags)
        if not removed:
            return "already_reversed", "tags already cleared"
        return "reversed", f"cleared {', '.join(removed)}"


__all__ = ["UndoEngine"]
