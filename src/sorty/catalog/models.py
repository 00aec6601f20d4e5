"""File catalog models produced by the directory scanner."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ContentMetadata(BaseModel):
    """Optional content-derived details captured during a scan.

    Attributes:
        text_preview: Short textual preview for text-like files.
        sha256: Hex digest of the file contents when hashing is enabled.
        image_width: Pixel width for images.
        image_height: Pixel height for images.
        document_title: Title extracted from document metadata.
        keywords: Keywords extracted from document metadata.
    """

    model_config = ConfigDict(frozen=True)

    text_preview: Optional[str] = None
    sha256: Optional[str] = None
    image_width: Optional[int] = None
    image_height: Optional[int] = None
    document_title: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)


class FileRecord(BaseModel):
    """Immutable snapshot of one scanned file.

    Attributes:
        id: Stable identifier assigned by the scanner.
        path: Absolute path of the file at scan time.
        name: Base name without the extension.
        extension: Extension without the leading dot (may be empty).
        size_bytes: File size in bytes.
        created_at: Creation timestamp when the platform reports one.
        modified_at: Last modification timestamp.
        accessed_at: Last access timestamp.
        content: Optional content metadata.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    path: Path
    name: str
    extension: str = ""
    size_bytes: int = 0
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None
    accessed_at: Optional[datetime] = None
    content: Optional[ContentMetadata] = None

    @property
    def display_name(self) -> str:
        """Return the full file name including the extension."""
        if not self.extension:
            return self.name
        return f"{self.name}.{self.extension}"

    @property
    def sha256(self) -> Optional[str]:
        """Return the content hash if the scanner computed one."""
        return self.content.sha256 if self.content is not None else None

    @property
    def resolution(self) -> Optional[str]:
        """Return ``WIDTHxHEIGHT`` for images with known dimensions."""
        if self.content is None:
            return None
        if self.content.image_width is None or self.content.image_height is None:
            return None
        return f"{self.content.image_width}x{self.content.image_height}"

    @classmethod
    def from_path(cls, path: Path, *, file_id: str | None = None) -> "FileRecord":
        """Build a record from the current state of ``path``.

        Args:
            path: File to describe.
            file_id: Identifier to assign; defaults to the absolute path string.

        Returns:
            FileRecord: Record describing the file.
        """
        expanded = path.expanduser()
        absolute = expanded.parent.resolve() / expanded.name
        stat = absolute.stat()
        extension = absolute.suffix[1:] if absolute.suffix else ""
        name = absolute.name[: -len(absolute.suffix)] if absolute.suffix else absolute.name
        return cls(
            id=file_id or str(absolute),
            path=absolute,
            name=name,
            extension=extension,
            size_bytes=stat.st_size,
            modified_at=datetime.fromtimestamp(stat.st_mtime).astimezone(),
            accessed_at=datetime.fromtimestamp(stat.st_atime).astimezone(),
        )


__all__ = ["ContentMetadata", "FileRecord"]
