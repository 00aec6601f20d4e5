"""Configuration models describing Sorty settings."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SortyBaseModel(BaseModel):
    """Shared configuration for Sorty settings models."""

    model_config = ConfigDict(extra="forbid")


class OrganizationOptions(SortyBaseModel):
    """Settings that govern how plans are applied.

    Attributes:
        tag_backend: Where file tags are stored (``sidecar`` JSON or ``xattr``).
        apply_tags: Whether tag suggestions are applied.
        apply_renames: Whether rename suggestions are applied.
        suffix_timestamp_format: ``strftime`` format used in collision suffixes.
        max_suffix_attempts: Highest numbered suffix tried before a file is skipped.
    """

    tag_backend: Literal["sidecar", "xattr"] = "sidecar"
    apply_tags: bool = True
    apply_renames: bool = True
    suffix_timestamp_format: str = "%Y%m%d-%H%M%S"
    max_suffix_attempts: int = Field(default=99, ge=2, le=999)

    @field_validator("suffix_timestamp_format")
    @classmethod
    def _format_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("suffix_timestamp_format must not be blank")
        return value


class ScanningOptions(SortyBaseModel):
    """Options for the directory scanner used by the CLI.

    Attributes:
        recurse_directories: Whether to recurse into subdirectories.
        process_hidden_files: Whether hidden files are included.
        follow_symlinks: Whether symbolic links are followed.
        max_file_size_mb: Files larger than this are left out of the catalog.
        compute_hashes: Whether SHA-256 digests are recorded for scanned files.
    """

    recurse_directories: bool = False
    process_hidden_files: bool = False
    follow_symlinks: bool = False
    max_file_size_mb: int = 1024
    compute_hashes: bool = False


class HistorySettings(SortyBaseModel):
    """Run history persistence.

    Attributes:
        max_entries: Entries kept before the oldest are dropped.
        state_dir: Directory holding history, ledgers, tags, locks, and logs.
    """

    max_entries: int = Field(default=100, ge=1)
    state_dir: str = "~/.sorty"


class LoggingSettings(SortyBaseModel):
    """Runtime logging configuration.

    Attributes:
        level: Logging verbosity level.
        max_size_mb: Maximum log size before rotation.
        backup_count: Number of historical log files to retain.
    """

    level: str = "WARNING"
    max_size_mb: int = 10
    backup_count: int = 3


class CLIOptions(SortyBaseModel):
    """CLI behavior defaults and presentation preferences.

    Attributes:
        quiet_default: Whether commands suppress non-error output by default.
        summary_default: Whether commands only print summary lines by default.
        history_limit: Default number of history entries to display.
    """

    quiet_default: bool = False
    summary_default: bool = False
    history_limit: int = 10


class SortyConfig(SortyBaseModel):
    """Top-level configuration struct for Sorty.

    Attributes:
        organization: Plan application settings.
        scanning: Directory scanner settings.
        history: History persistence settings.
        logging: Logging configuration.
        cli: CLI presentation defaults.
    """

    organization: OrganizationOptions = Field(default_factory=OrganizationOptions)
    scanning: ScanningOptions = Field(default_factory=ScanningOptions)
    history: HistorySettings = Field(default_factory=HistorySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    cli: CLIOptions = Field(default_factory=CLIOptions)


__all__ = [
    "SortyBaseModel",
    "OrganizationOptions",
    "ScanningOptions",
    "HistorySettings",
    "LoggingSettings",
    "CLIOptions",
    "SortyConfig",
]
