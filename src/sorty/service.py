"""Entry points that organize a root and undo previous runs."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

from sorty.catalog.models import FileRecord
from sorty.config.models import SortyConfig
from sorty.errors import ParseError, ResolutionError, RootBusyError
from sorty.locking import LOCK_DIRNAME, CancelToken, RootLockRegistry
from sorty.organization.executor import OperationExecutor
from sorty.organization.models import ResolvedPlan, UndoReport
from sorty.organization.resolver import DestinationResolver
from sorty.organization.tags import TagStore, tag_store_for
from sorty.organization.undo import UndoEngine
from sorty.plan.models import GenerationStats, OrganizationPlan
from sorty.plan.parser import PlanParser
from sorty.state import HISTORY_FILENAME, HistoryStore, JsonHistoryStore
from sorty.state.errors import MissingStateError
from sorty.state.journal import LedgerJournal
from sorty.state.models import HistoryEntry, OperationLedger

LOGGER = logging.getLogger(__name__)


class OrganizerService:
    """Coordinate parsing, resolution, execution, history, and undo.

    The service holds no global state: the history store, tag store, and lock
    registry are injected so that embedding applications and tests control
    where data lives.
    """

    def __init__(
        self,
        store: HistoryStore,
        *,
        tag_store: Optional[TagStore] = None,
        state_dir: Optional[Path] = None,
        locks: Optional[RootLockRegistry] = None,
        parser: Optional[PlanParser] = None,
        resolver: Optional[DestinationResolver] = None,
    ) -> None:
        self.store = store
        self.tag_store = tag_store
        self.state_dir = state_dir
        self.locks = locks or RootLockRegistry()
        self.parser = parser or PlanParser()
        self.resolver = resolver or DestinationResolver()
        self.executor = OperationExecutor(tag_store)
        self.undo_engine = UndoEngine(tag_store)

    @classmethod
    def from_config(cls, config: SortyConfig) -> "OrganizerService":
        """Build a service whose state lives in the configured state directory.

        Args:
            config: Effective Sorty configuration.

        Returns:
            OrganizerService: Service backed by a JSON history store.
        """
        state_dir = Path(config.history.state_dir).expanduser()
        options = config.organization
        store = JsonHistoryStore(
            state_dir / HISTORY_FILENAME, max_entries=config.history.max_entries
        )
        return cls(
            store,
            tag_store=tag_store_for(options.tag_backend, state_dir),
            state_dir=state_dir,
            locks=RootLockRegistry(state_dir / LOCK_DIRNAME),
            resolver=DestinationResolver(
                apply_renames=options.apply_renames,
                apply_tags=options.apply_tags,
                timestamp_format=options.suffix_timestamp_format,
                max_suffix_attempts=options.max_suffix_attempts,
            ),
        )

    def plan(
        self,
        files: Sequence[FileRecord],
        raw_plan_text: str,
        *,
        stats: Optional[GenerationStats] = None,
    ) -> OrganizationPlan:
        """Parse ``raw_plan_text`` against ``files``.

        Raises:
            ParseError: If the text is empty or holds no recoverable plan.
        """
        return self.parser.parse(raw_plan_text, files, stats=stats)

    def preview(
        self,
        root: Path,
        files: Sequence[FileRecord],
        raw_plan_text: str,
        *,
        now: Optional[datetime] = None,
    ) -> ResolvedPlan:
        """Parse and resolve a plan without touching the filesystem or history.

        Raises:
            ParseError: If the text is empty or holds no recoverable plan.
            ResolutionError: If the root is unusable or a destination escapes it.
        """
        plan = self.plan(files, raw_plan_text)
        return self.resolver.resolve(plan, root, files=files, now=now)

    def organize(
        self,
        root: Path,
        files: Sequence[FileRecord],
        raw_plan_text: str,
        *,
        now: Optional[datetime] = None,
        cancel: Optional[CancelToken] = None,
        dry_run: bool = False,
        stats: Optional[GenerationStats] = None,
    ) -> HistoryEntry:
        """Organize ``root`` according to ``raw_plan_text``.

        A ``running`` history entry is stored first and updated once the run
        finishes. Parse and resolution failures produce a ``failed`` entry and
        nothing is executed. Dry runs return an entry that is never stored.

        Args:
            root: Directory to organize.
            files: Catalog describing the files under ``root``.
            raw_plan_text: Raw model response.
            now: Run timestamp used for collision suffixes.
            cancel: Token checked between primitive actions.
            dry_run: When true, compute the ledger without applying it.
            stats: Optional generation statistics to keep with the plan.

        Returns:
            HistoryEntry: Entry describing the run.

        Raises:
            RootBusyError: If another run is active for ``root``.
            Exception: Any unexpected error during execution is re-raised after
                the entry is stored with the actions completed so far.
        """
        root = Path(root).expanduser()
        entry = HistoryEntry(root=root.resolve(), raw_response=raw_plan_text)
        if not dry_run:
            self.store.add(entry)

        try:
            plan = self.parser.parse(raw_plan_text, files, stats=stats)
            resolved = self.resolver.resolve(plan, root, files=files, now=now)
        except (ParseError, ResolutionError) as exc:
            LOGGER.error("Run %s failed before execution: %s", entry.id, exc)
            entry.status = "failed"
            entry.error = f"{exc.code}: {exc}"
            return self._finish(entry, dry_run)

        entry.notes = "\n".join(part for part in (plan.notes, *resolved.notes) if part)
        ledger = OperationLedger(run_id=entry.id, root=resolved.root)
        try:
            with self.locks.hold(resolved.root):
                if not dry_run and self.state_dir is not None:
                    ledger.attach(LedgerJournal.for_run(self.state_dir, ledger.run_id))
                result = self.executor.apply(
                    resolved, ledger=ledger, cancel=cancel, dry_run=dry_run
                )
        except RootBusyError as exc:
            entry.status = "failed"
            entry.error = str(exc)
            self._finish(entry, dry_run)
            raise
        except Exception as exc:
            LOGGER.exception("Run %s stopped during execution", entry.id)
            entry.ledger = ledger
            entry.status = "completed_with_errors" if ledger.actions else "failed"
            entry.error = f"{type(exc).__name__}: {exc}"
            entry.counts = ledger.counts(unassigned=len(resolved.unassigned))
            self._finish(entry, dry_run)
            raise

        entry.ledger = result.ledger
        entry.status = result.status
        entry.error = result.error
        entry.counts = result.ledger.counts(unassigned=len(resolved.unassigned))
        return self._finish(entry, dry_run)

    def undo(self, entry: HistoryEntry, *, dry_run: bool = False) -> UndoReport:
        """Reverse the actions recorded for ``entry``.

        The entry is marked ``undone`` when every action reversed cleanly;
        otherwise its status is kept and ``error`` names the conflict count.

        Args:
            entry: History entry to undo.
            dry_run: When true, report outcomes without touching the filesystem.

        Returns:
            UndoReport: Per-action outcomes.

        Raises:
            MissingStateError: If no ledger is available for the entry.
            RootBusyError: If another run is active for the entry's root.
        """
        ledger = entry.ledger or self._recover_ledger(entry)
        with self.locks.hold(entry.root):
            report = self.undo_engine.undo(ledger, dry_run=dry_run)

        if dry_run:
            return report

        entry.ledger = ledger
        if report.fully_reversed:
            entry.status = "undone"
            entry.error = None
        else:
            entry.error = f"{report.counts['conflict']} action(s) could not be reversed"
        entry.touch()
        self.store.update(entry)
        return report

    # ------------------------------------------------------------------ #
    # Helpers                                                            #
    # ------------------------------------------------------------------ #

    def _recover_ledger(self, entry: HistoryEntry) -> OperationLedger:
        if self.state_dir is None:
            raise MissingStateError(f"History entry {entry.id} has no recorded ledger")
        LOGGER.info("Rebuilding ledger for %s from its journal", entry.id)
        return LedgerJournal.for_run(self.state_dir, entry.id).load()

    def _finish(self, entry: HistoryEntry, dry_run: bool) -> HistoryEntry:
        entry.touch()
        if not dry_run:
            self.store.update(entry)
        return entry


def organize(
    root: Path,
    files: Sequence[FileRecord],
    raw_plan_text: str,
    *,
    store: HistoryStore,
    tag_store: Optional[TagStore] = None,
    now: Optional[datetime] = None,
) -> HistoryEntry:
    """Organize ``root`` with a service built around ``store``."""
    service = OrganizerService(store, tag_store=tag_store)
    return service.organize(root, files, raw_plan_text, now=now)


def undo(
    entry: HistoryEntry,
    *,
    store: HistoryStore,
    tag_store: Optional[TagStore] = None,
) -> UndoReport:
    """Undo ``entry`` with a service built around ``store``."""
    return OrganizerService(store, tag_store=tag_store).undo(entry)


__all__ = ["OrganizerService", "organize", "undo"]
