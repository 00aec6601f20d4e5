"""Executor for resolved organization plans."""

from __future__ import annotations

import errno
import logging
import os
import shutil
from pathlib import Path
from typing import List, Optional, Set, Tuple

from sorty.catalog.discovery import matches_snapshot
from sorty.errors import SortyError
from sorty.locking import CancelToken
from sorty.state.models import (
    ApplyTags,
    CreateDirectory,
    ExecutionErrorCode,
    MoveFile,
    OperationLedger,
    RenameFile,
    RunStatus,
    SkippedItem,
)

from .models import ExecutionResult, ResolvedFile, ResolvedPlan
from .tags import TagStore

LOGGER = logging.getLogger(__name__)


def _error_code(exc: OSError) -> ExecutionErrorCode:
    if isinstance(exc, PermissionError):
        return "permission_denied"
    if isinstance(exc, FileNotFoundError):
        return "source_missing"
    if isinstance(exc, (FileExistsError, IsADirectoryError, NotADirectoryError)):
        return "destination_conflict"
    return "os_error"


def _below(path: Path, failed: Set[Path]) -> bool:
    return any(parent in failed for parent in path.parents)


def _already_placed(item: ResolvedFile) -> bool:
    if item.size_bytes is None:
        return False
    return matches_snapshot(
        item.destination,
        size_bytes=item.size_bytes,
        modified_at=item.modified_at,
        sha256=item.sha256,
    )


class OperationExecutor:
    """Apply resolved plans, recording every completed action in a ledger.

    Directories are created first, files are moved next, and tags are applied
    last. A failure affecting one file is recorded as a skipped item and the
    run continues; earlier actions are never rolled back.
    """

    def __init__(self, tag_store: Optional[TagStore] = None) -> None:
        self.tag_store = tag_store

    def apply(
        self,
        resolved: ResolvedPlan,
        *,
        ledger: Optional[OperationLedger] = None,
        cancel: Optional[CancelToken] = None,
        dry_run: bool = False,
    ) -> ExecutionResult:
        """Apply ``resolved`` to the filesystem.

        Args:
            resolved: Plan produced by the destination resolver.
            ledger: Ledger to append to; a new one is created when omitted.
            cancel: Token checked between primitive actions.
            dry_run: When true, record the actions that would run without executing them.

        Returns:
            ExecutionResult: Ledger and final run status.
        """
        if ledger is None:
            ledger = OperationLedger(root=resolved.root)

        root = resolved.root
        if not root.is_dir() or not os.access(root, os.W_OK | os.X_OK):
            message = f"Root {root} is missing or not writable"
            LOGGER.error(message)
            return ExecutionResult(ledger=ledger, status="failed", error=message, dry_run=dry_run)

        for item in resolved.skipped:
            ledger.skip(item)

        failed: Set[Path] = set()
        if self._create_directories(resolved, ledger, cancel, dry_run, failed):
            return self._finish(ledger, "cancelled", dry_run)

        placed, cancelled = self._move_files(resolved, ledger, cancel, dry_run, failed)
        if cancelled:
            return self._finish(ledger, "cancelled", dry_run)

        if self._apply_tags(list(placed) + list(resolved.satisfied), ledger, cancel, dry_run):
            return self._finish(ledger, "cancelled", dry_run)

        status: RunStatus = "completed_with_errors" if ledger.skipped else "completed"
        return self._finish(ledger, status, dry_run)

    # ------------------------------------------------------------------ #
    # Phases                                                             #
    # ------------------------------------------------------------------ #

    def _create_directories(
        self,
        resolved: ResolvedPlan,
        ledger: OperationLedger,
        cancel: Optional[CancelToken],
        dry_run: bool,
        failed: Set[Path],
    ) -> bool:
        """Create directories; return ``True`` when cancelled."""
        for directory in resolved.directories:
            if cancel is not None and cancel.cancelled:
                return True
            if _below(directory, failed):
                failed.add(directory)
                continue
            if directory.is_dir():
                continue
            if not dry_run:
                try:
                    directory.mkdir()
                except FileExistsError:
                    if directory.is_dir():
                        continue
                    LOGGER.warning("Cannot create %s: a file is in the way", directory)
                    failed.add(directory)
                    continue
                except OSError as exc:
                    LOGGER.warning("Cannot create %s: %s", directory, exc)
                    failed.add(directory)
                    continue
            ledger.record(CreateDirectory(path=directory))
        return False

    def _move_files(
        self,
        resolved: ResolvedPlan,
        ledger: OperationLedger,
        cancel: Optional[CancelToken],
        dry_run: bool,
        failed: Set[Path],
    ) -> Tuple[List[ResolvedFile], bool]:
        """Move files; return the placed files and whether the run was cancelled."""
        placed: List[ResolvedFile] = []
        for item in resolved.files:
            if cancel is not None and cancel.cancelled:
                return placed, True

            if _below(item.destination, failed):
                self._skip(
                    ledger, item, "destination_conflict", "destination folder was not created"
                )
                continue
            if not os.path.lexists(item.source):
                if _already_placed(item):
                    LOGGER.debug("%s is already at %s", item.source, item.destination)
                    placed.append(item)
                    continue
                self._skip(ledger, item, "source_missing", "source no longer exists")
                continue
            if os.path.lexists(item.destination):
                self._skip(
                    ledger, item, "destination_conflict", "destination appeared after resolution"
                )
                continue

            if not dry_run:
                try:
                    self._move(item.source, item.destination)
                except OSError as exc:
                    self._skip(ledger, item, _error_code(exc), str(exc))
                    continue

            if item.destination.name != item.source.name:
                ledger.record(RenameFile(source=item.source, destination=item.destination))
            else:
                ledger.record(MoveFile(source=item.source, destination=item.destination))
            placed.append(item)
        return placed, False

    def _apply_tags(
        self,
        items: List[ResolvedFile],
        ledger: OperationLedger,
        cancel: Optional[CancelToken],
        dry_run: bool,
    ) -> bool:
        """Apply tags; return ``True`` when cancelled."""
        if self.tag_store is None:
            return False
        for item in items:
            if not item.tags:
                continue
            if cancel is not None and cancel.cancelled:
                return True
            try:
                if dry_run:
                    present = (
                        self.tag_store.read(item.destination)
                        if item.destination.exists()
                        else []
                    )
                    added = [tag for tag in item.tags if tag not in present]
                else:
                    added = self.tag_store.add(item.destination, item.tags)
            except OSError as exc:
                self._skip(ledger, item, _error_code(exc), f"tags not applied: {exc}")
                continue
            except SortyError as exc:
                self._skip(ledger, item, "os_error", f"tags not applied: {exc}")
                continue
            if added:
                ledger.record(ApplyTags(path=item.destination, tags=tuple(added)))
        return False

    # ------------------------------------------------------------------ #
    # Helpers                                                            #
    # ------------------------------------------------------------------ #

    def _move(self, source: Path, destination: Path) -> None:
        try:
            os.rename(source, destination)
        except OSError as exc:
            if exc.errno != errno.EXDEV:
                raise
            shutil.move(str(source), str(destination))

    def _skip(
        self,
        ledger: OperationLedger,
        item: ResolvedFile,
        error: ExecutionErrorCode,
        message: str,
    ) -> None:
        LOGGER.warning("Skipped %s: %s", item.source, message)
        ledger.skip(
            SkippedItem(
                file_id=item.file_id,
                source=item.source,
                destination=item.destination,
                error=error,
                message=message,
            )
        )

    def _finish(self, ledger: OperationLedger, status: RunStatus, dry_run: bool) -> ExecutionResult:
        LOGGER.info(
            "Run %s finished with status %s (%d action(s), %d skipped)",
            ledger.run_id,
            status,
            len(ledger.actions),
            len(ledger.skipped),
        )
        return ExecutionResult(ledger=ledger, status=status, dry_run=dry_run)


__all__ = ["OperationExecutor"]
