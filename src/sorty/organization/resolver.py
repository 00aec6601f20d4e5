"""Resolve organization plans into concrete, collision-free destinations."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from itertools import chain
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Set, Tuple

from sorty.catalog.discovery import matches_snapshot
from sorty.catalog.models import FileRecord
from sorty.errors import ResolutionError
from sorty.plan.models import OrganizationPlan, RenameMapping
from sorty.state.models import ExecutionErrorCode, SkippedItem

from .models import ResolvedFile, ResolvedPlan
from .naming import (
    DEFAULT_TIMESTAMP_FORMAT,
    MAX_SUFFIX_ATTEMPTS,
    sanitize_component,
    suffix_candidates,
    timestamp_label,
    with_extension,
)

LOGGER = logging.getLogger(__name__)


@dataclass
class _Claims:
    """Paths taken so far during one resolution pass."""

    directories: Set[Path] = field(default_factory=set)
    files: Set[Path] = field(default_factory=set)
    extra: Set[Path] = field(default_factory=set)

    def taken(self, path: Path) -> bool:
        return path in self.directories or path in self.files


def _absolute(path: Path) -> Path:
    expanded = path.expanduser()
    return expanded.parent.resolve() / expanded.name


def _within(path: Path, root: Path) -> bool:
    return path == root or root in path.parents


def _same_file(left: Path, right: Path) -> bool:
    try:
        return os.path.samefile(left, right)
    except OSError:
        return False


def _matches_record(path: Path, record: FileRecord) -> bool:
    return matches_snapshot(
        path,
        size_bytes=record.size_bytes,
        modified_at=record.modified_at,
        sha256=record.sha256,
    )


class DestinationResolver:
    """Compute destination paths for folders and files of a plan.

    Folders are resolved in a depth-first pre-order walk, then files in the
    same order. Destinations claimed earlier in the walk count as occupied, so
    identical inputs always produce identical results.
    """

    def __init__(
        self,
        *,
        apply_renames: bool = True,
        apply_tags: bool = True,
        timestamp_format: str = DEFAULT_TIMESTAMP_FORMAT,
        max_suffix_attempts: int = MAX_SUFFIX_ATTEMPTS,
    ) -> None:
        self.apply_renames = apply_renames
        self.apply_tags = apply_tags
        self.timestamp_format = timestamp_format
        self.max_suffix_attempts = max_suffix_attempts

    def resolve(
        self,
        plan: OrganizationPlan,
        root: Path,
        existing_paths: Optional[Iterable[Path]] = None,
        *,
        files: Sequence[FileRecord],
        now: Optional[datetime] = None,
    ) -> ResolvedPlan:
        """Resolve ``plan`` against ``root``.

        Args:
            plan: Parsed organization plan.
            root: Directory being organized.
            existing_paths: Extra paths to treat as occupied besides what is on disk.
            files: Catalog the plan's file identifiers refer to.
            now: Run timestamp used for collision suffixes; defaults to the current time.

        Returns:
            ResolvedPlan: Directories to create, files to move, and per-file skips.

        Raises:
            ResolutionError: ``root_not_writable`` when the root is missing or not
                writable, ``path_escape_attempt`` when a destination would land
                outside the root.
        """
        root = self._check_root(root)
        moment = now or datetime.now().astimezone()
        label = timestamp_label(moment, self.timestamp_format)
        claims = _Claims(extra={_absolute(Path(path)) for path in existing_paths or ()})
        catalog: Dict[str, FileRecord] = {}
        for record in files:
            catalog.setdefault(record.id, record)

        notes: List[str] = []
        directories: List[Path] = []
        folder_paths: Dict[int, Optional[Path]] = {}

        for node, chain_names in plan.walk():
            parent = root if node.parent is None else folder_paths.get(node.parent)
            if parent is None:
                folder_paths[node.index] = None
                continue
            candidate = parent / sanitize_component(node.name)
            placed = self._place_directory(candidate, root, label, claims, directories)
            if placed is None:
                LOGGER.warning("No free name for folder %s", candidate)
                notes.append(f"Folder '{'/'.join(chain_names)}' could not be placed.")
            folder_paths[node.index] = placed

        moves: List[ResolvedFile] = []
        satisfied: List[ResolvedFile] = []
        skipped: List[SkippedItem] = []

        def skip(
            record: FileRecord,
            source: Path,
            error: ExecutionErrorCode,
            message: str,
            destination: Optional[Path] = None,
        ) -> None:
            LOGGER.info("Skipping %s: %s", source, message)
            skipped.append(
                SkippedItem(
                    file_id=record.id,
                    source=source,
                    destination=destination,
                    error=error,
                    message=message,
                )
            )

        for node, _ in plan.walk():
            folder = folder_paths.get(node.index)
            for file_id in node.file_ids:
                record = catalog.get(file_id)
                if record is None:
                    LOGGER.warning("Plan references unknown file id %s", file_id)
                    notes.append(f"Ignored unknown file id {file_id}.")
                    continue

                source = _absolute(record.path)
                if not _within(source, root) or source == root:
                    skip(record, source, "path_escape_attempt", "source is outside the root")
                    continue
                if folder is None:
                    skip(
                        record,
                        source,
                        "destination_conflict",
                        "destination folder could not be placed",
                    )
                    continue

                final_name = self._final_name(source, record, plan.rename_for(file_id))
                tags = plan.tags_for(file_id) if self.apply_tags else ()
                candidate = folder / final_name

                if not os.path.lexists(source):
                    match = self._find_satisfied(candidate, record, label, claims)
                    if match is None:
                        skip(record, source, "source_missing", "source no longer exists")
                        continue
                    claims.files.add(match)
                    satisfied.append(
                        ResolvedFile(
                            file_id=record.id,
                            source=source,
                            destination=match,
                            is_rename=match.name != source.name,
                            tags=tags,
                            size_bytes=record.size_bytes,
                            modified_at=record.modified_at,
                            sha256=record.sha256,
                        )
                    )
                    continue

                destination, suffixed = self._place_file(
                    source, candidate, record.id, label, claims
                )
                if destination is None:
                    skip(
                        record,
                        source,
                        "destination_conflict",
                        f"no free name after {self.max_suffix_attempts} attempts",
                        candidate,
                    )
                    continue

                self._ensure_contained(destination, root)
                claims.files.add(destination)
                resolved = ResolvedFile(
                    file_id=record.id,
                    source=source,
                    destination=destination,
                    is_rename=destination.name != source.name,
                    tags=tags,
                    suffixed=suffixed,
                    size_bytes=record.size_bytes,
                    modified_at=record.modified_at,
                    sha256=record.sha256,
                )
                if destination == source or _same_file(source, destination):
                    satisfied.append(resolved)
                    continue
                if suffixed:
                    LOGGER.info("Destination %s is occupied; using %s", candidate, destination)
                moves.append(resolved)

        suffixed_count = sum(item.suffixed for item in moves)
        if suffixed_count:
            notes.append(f"{suffixed_count} file(s) received a collision suffix.")

        return ResolvedPlan(
            root=root,
            timestamp=moment,
            directories=tuple(directories),
            files=tuple(moves),
            satisfied=tuple(satisfied),
            skipped=tuple(skipped),
            unassigned=tuple(entry.file_id for entry in plan.unassigned),
            notes=tuple(notes),
        )

    # ------------------------------------------------------------------ #
    # Helpers                                                            #
    # ------------------------------------------------------------------ #

    def _check_root(self, root: Path) -> Path:
        candidate = root.expanduser()
        if not candidate.is_dir():
            raise ResolutionError(
                "root_not_writable", f"Root {candidate} does not exist or is not a directory"
            )
        if not os.access(candidate, os.W_OK | os.X_OK):
            raise ResolutionError("root_not_writable", f"Root {candidate} is not writable")
        return candidate.resolve()

    def _ensure_contained(self, path: Path, root: Path) -> None:
        resolved = path.resolve()
        if not _within(resolved, root):
            raise ResolutionError(
                "path_escape_attempt", f"Destination {path} resolves outside {root}"
            )

    def _options(
        self,
        candidate: Path,
        label: str,
        identifier: Optional[str],
    ) -> Iterator[Tuple[Path, bool]]:
        alternatives = (
            (candidate.with_name(name), True)
            for name in suffix_candidates(
                candidate.name,
                label,
                identifier,
                max_attempts=self.max_suffix_attempts,
            )
        )
        return chain([(candidate, False)], alternatives)

    def _place_directory(
        self,
        candidate: Path,
        root: Path,
        label: str,
        claims: _Claims,
        directories: List[Path],
    ) -> Optional[Path]:
        for option, _ in self._options(candidate, label, None):
            if option in claims.directories:
                return option
            if option in claims.files:
                continue
            if option.is_dir():
                self._ensure_contained(option, root)
                claims.directories.add(option)
                return option
            if option in claims.extra or os.path.lexists(option):
                continue
            self._ensure_contained(option, root)
            claims.directories.add(option)
            directories.append(option)
            return option
        return None

    def _place_file(
        self,
        source: Path,
        candidate: Path,
        identifier: str,
        label: str,
        claims: _Claims,
    ) -> Tuple[Optional[Path], bool]:
        for option, suffixed in self._options(candidate, label, identifier):
            if claims.taken(option):
                continue
            if os.path.lexists(option) or option in claims.extra:
                if option == source or _same_file(source, option):
                    return option, suffixed
                continue
            return option, suffixed
        return None, False

    def _find_satisfied(
        self,
        candidate: Path,
        record: FileRecord,
        label: str,
        claims: _Claims,
    ) -> Optional[Path]:
        for option, _ in self._options(candidate, label, record.id):
            if claims.taken(option):
                continue
            if _matches_record(option, record):
                return option
        return None

    def _final_name(
        self,
        source: Path,
        record: FileRecord,
        rename: Optional[RenameMapping],
    ) -> str:
        if rename is None or not self.apply_renames:
            return source.name
        proposed = with_extension(rename.suggested_name, record.extension)
        return sanitize_component(proposed, fallback=source.name)


def resolve(
    plan: OrganizationPlan,
    root: Path,
    existing_paths: Optional[Iterable[Path]] = None,
    *,
    files: Sequence[FileRecord],
    now: Optional[datetime] = None,
) -> ResolvedPlan:
    """Resolve ``plan`` with a default ``DestinationResolver``."""
    return DestinationResolver().resolve(plan, root, existing_paths, files=files, now=now)


__all__ = ["DestinationResolver", "resolve"]
