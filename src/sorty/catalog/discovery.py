"""File discovery utilities producing catalog records."""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator

from .models import ContentMetadata, FileRecord

_TEXT_SUFFIXES = {
    ".txt",
    ".md",
    ".csv",
    ".json",
    ".xml",
    ".yaml",
    ".yml",
    ".log",
    ".py",
    ".html",
    ".rst",
}


MTIME_TOLERANCE = 1e-3


def _is_hidden(path: Path) -> bool:
    return any(part.startswith(".") for part in path.parts if part not in (".", ".."))


def sha256_of(path: Path) -> str | None:
    """Return the hex SHA-256 digest of ``path``, or ``None`` if it cannot be read."""
    hasher = hashlib.sha256()
    try:
        with path.open("rb") as handle:
            for chunk in iter(lambda: handle.read(1024 * 1024), b""):
                hasher.update(chunk)
    except OSError:
        return None
    return hasher.hexdigest()


def matches_snapshot(
    path: Path,
    *,
    size_bytes: int,
    modified_at: datetime | None = None,
    sha256: str | None = None,
) -> bool:
    """Return whether ``path`` is a regular file matching a scanned snapshot.

    Size must be equal, the modification time must agree within
    ``MTIME_TOLERANCE`` seconds when known, and the digest must match when known.
    """
    if path.is_symlink() or not path.is_file():
        return False
    try:
        stat = path.stat()
    except OSError:
        return False
    if stat.st_size != size_bytes:
        return False
    if modified_at is not None and abs(stat.st_mtime - modified_at.timestamp()) > MTIME_TOLERANCE:
        return False
    if sha256 is not None and sha256_of(path) != sha256:
        return False
    return True


def record_id_for(relative: Path) -> str:
    """Return the stable identifier used for a file relative to its scan root.

    Args:
        relative: Path of the file relative to the scanned root.

    Returns:
        str: Twelve hex characters derived from the relative POSIX path.
    """
    return hashlib.sha1(relative.as_posix().encode("utf-8")).hexdigest()[:12]


class DirectoryScanner:
    """Discover files within a directory tree subject to configuration filters."""

    def __init__(
        self,
        *,
        recursive: bool = False,
        include_hidden: bool = False,
        follow_symlinks: bool = False,
        max_size_bytes: int | None = None,
        compute_hash: bool = False,
        preview_chars: int = 0,
    ) -> None:
        self.recursive = recursive
        self.include_hidden = include_hidden
        self.follow_symlinks = follow_symlinks
        self.max_size_bytes = max_size_bytes
        self.compute_hash = compute_hash
        self.preview_chars = preview_chars

    def scan(self, root: Path) -> list[FileRecord]:
        """Return records for files under ``root``, sorted by relative path.

        Args:
            root: Directory to scan.

        Returns:
            list[FileRecord]: Catalog entries in a stable order.
        """
        return sorted(self.iter_records(root), key=lambda record: str(record.path))

    def iter_records(self, root: Path) -> Iterator[FileRecord]:
        """Yield records discovered under root respecting configured filters."""
        root = root.expanduser().resolve()
        if not root.exists():
            return

        for path in self._iter_paths(root):
            if not path.exists():
                continue
            if path.is_symlink() and not self.follow_symlinks:
                continue
            if not path.is_file():
                continue
            try:
                relative = path.relative_to(root)
            except ValueError:
                relative = Path(path.name)
            if not self.include_hidden and _is_hidden(relative):
                continue
            try:
                stat = path.stat()
            except OSError:
                continue
            if self.max_size_bytes is not None and stat.st_size > self.max_size_bytes:
                continue

            suffix = path.suffix
            name = path.name[: -len(suffix)] if suffix else path.name
            yield FileRecord(
                id=record_id_for(relative),
                path=path,
                name=name,
                extension=suffix[1:] if suffix else "",
                size_bytes=stat.st_size,
                modified_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                accessed_at=datetime.fromtimestamp(stat.st_atime, tz=timezone.utc),
                content=self._content_for(path),
            )

    def _content_for(self, path: Path) -> ContentMetadata | None:
        digest = sha256_of(path) if self.compute_hash else None
        preview = self._preview(path) if self.preview_chars > 0 else None
        if digest is None and preview is None:
            return None
        return ContentMetadata(sha256=digest, text_preview=preview)

    def _preview(self, path: Path) -> str | None:
        if path.suffix.lower() not in _TEXT_SUFFIXES:
            return None
        try:
            with path.open("r", encoding="utf-8", errors="replace") as handle:
                snippet = handle.read(self.preview_chars).strip()
        except OSError:
            return None
        return snippet or None

    def _iter_paths(self, root: Path) -> Iterable[Path]:
        """Internal helper to iterate candidate paths."""
        if root.is_file():
            yield root
            return

        if self.recursive:
            yield from root.rglob("*")
        else:
            yield from root.iterdir()
