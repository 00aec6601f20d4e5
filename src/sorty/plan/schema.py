"""Pydantic models describing the upstream model response formats."""

from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ResponseModel(BaseModel):
    """Lenient base for response payloads; unknown keys are ignored."""

    model_config = ConfigDict(extra="ignore")


class FileEntryPayload(ResponseModel):
    """A file reference inside a folder, optionally with rename and tags."""

    filename: str
    suggested_name: Optional[str] = None
    rename_reason: Optional[str] = None
    tags: List[str] = Field(default_factory=list)

    @field_validator("tags", mode="before")
    @classmethod
    def _only_string_tags(cls, value: Any) -> List[str]:
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, str)]

    @field_validator("suggested_name", "rename_reason", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> Optional[str]:
        return value if isinstance(value, str) else None


def coerce_file_entry(value: Any) -> Optional[FileEntryPayload]:
    """Decode one ``files`` entry, trying a bare string first, then an object.

    Args:
        value: Raw JSON value taken from a ``files`` list.

    Returns:
        Optional[FileEntryPayload]: Decoded entry, or ``None`` for unusable values.
    """
    if isinstance(value, str):
        return FileEntryPayload(filename=value)
    if isinstance(value, dict) and isinstance(value.get("filename"), str):
        return FileEntryPayload.model_validate(value)
    return None


class FolderPayload(ResponseModel):
    """A folder in the full response schema."""

    name: str = ""
    description: Optional[str] = None
    reasoning: Optional[str] = None
    subfolders: List["FolderPayload"] = Field(default_factory=list)
    files: List[FileEntryPayload] = Field(default_factory=list)
    semantic_tags: List[str] = Field(default_factory=list)
    confidence: Optional[float] = None

    @field_validator("name", mode="before")
    @classmethod
    def _name_text(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""

    @field_validator("description", "reasoning", mode="before")
    @classmethod
    def _optional_text(cls, value: Any) -> Optional[str]:
        return value if isinstance(value, str) else None

    @field_validator("files", mode="before")
    @classmethod
    def _coerce_files(cls, value: Any) -> List[FileEntryPayload]:
        if not isinstance(value, list):
            return []
        entries = (coerce_file_entry(item) for item in value)
        return [entry for entry in entries if entry is not None]

    @field_validator("subfolders", mode="before")
    @classmethod
    def _coerce_subfolders(cls, value: Any) -> List[Any]:
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict)]

    @field_validator("semantic_tags", mode="before")
    @classmethod
    def _only_string_tags(cls, value: Any) -> List[str]:
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, str)]

    @field_validator("confidence", mode="before")
    @classmethod
    def _numeric_confidence(cls, value: Any) -> Optional[float]:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        return float(value)


class UnorganizedPayload(ResponseModel):
    """A file the model explicitly chose not to place."""

    filename: str
    reason: str = ""

    @field_validator("reason", mode="before")
    @classmethod
    def _reason_text(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""


class PlanResponse(ResponseModel):
    """Full response schema."""

    folders: List[FolderPayload]
    unorganized: List[UnorganizedPayload] = Field(default_factory=list)
    notes: Optional[str] = None

    @field_validator("folders", mode="before")
    @classmethod
    def _coerce_folders(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return value
        return [item for item in value if isinstance(item, dict)]

    @field_validator("unorganized", mode="before")
    @classmethod
    def _coerce_unorganized(cls, value: Any) -> List[Any]:
        if not isinstance(value, list):
            return []
        return [
            item
            for item in value
            if isinstance(item, dict) and isinstance(item.get("filename"), str)
        ]

    @field_validator("notes", mode="before")
    @classmethod
    def _notes_text(cls, value: Any) -> Optional[str]:
        return value if isinstance(value, str) else None


class CompactFolderPayload(ResponseModel):
    """A folder in the compact single-letter-key schema."""

    n: str
    files: List[str] = Field(default_factory=list)

    @field_validator("files", mode="before")
    @classmethod
    def _only_strings(cls, value: Any) -> List[str]:
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, str)]


class CompactPlanResponse(ResponseModel):
    """Compact response schema used by context-constrained callers."""

    f: List[CompactFolderPayload]

    @field_validator("f", mode="before")
    @classmethod
    def _coerce_folders(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return value
        return [item for item in value if isinstance(item, dict) and isinstance(item.get("n"), str)]


FolderPayload.model_rebuild()


__all__ = [
    "FileEntryPayload",
    "FolderPayload",
    "UnorganizedPayload",
    "PlanResponse",
    "CompactFolderPayload",
    "CompactPlanResponse",
    "coerce_file_entry",
]
