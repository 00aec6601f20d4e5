"""Configuration management for Sorty."""

from __future__ import annotations

import os
import textwrap
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from .exceptions import ConfigError
from .models import SortyConfig
from .resolver import env_overrides_from, flatten_for_env, resolve_with_precedence

DEFAULT_CONFIG_PATH = Path("~/.sorty/config.yaml")
_CONFIG_HEADER = textwrap.dedent(
    """\
    # Sorty configuration file
    # Manage with `sorty config edit` or `sorty config set KEY --value VALUE`.
    """
)


class ConfigManager:
    """Read, layer, and persist Sorty configuration."""

    def __init__(
        self,
        config_path: Optional[Path] = None,
        *,
        env: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._path = (config_path or DEFAULT_CONFIG_PATH).expanduser()
        self._env = os.environ if env is None else env

    @property
    def config_path(self) -> Path:
        """Return the location of the YAML file."""
        return self._path

    def load(
        self,
        *,
        cli_overrides: Optional[Mapping[str, Any]] = None,
        include_env: bool = True,
        ensure_file: bool = True,
    ) -> SortyConfig:
        """Return the effective configuration.

        Args:
            cli_overrides: Dotted-key overrides with the highest precedence.
            include_env: Whether ``SORTY__`` environment variables are applied.
            ensure_file: Whether to write a default file when none exists.

        Returns:
            SortyConfig: Validated configuration.

        Raises:
            ConfigError: If the file cannot be parsed or values are invalid.
        """
        if ensure_file:
            self.ensure_exists()
        return resolve_with_precedence(
            defaults=SortyConfig(),
            file_overrides=self._read_file(),
            env_overrides=env_overrides_from(self._env) if include_env else None,
            cli_overrides=cli_overrides,
        )

    def load_file_overrides(self) -> dict[str, Any]:
        """Return the raw mapping stored on disk."""
        return self._read_file()

    def save(self, config: SortyConfig | Mapping[str, Any]) -> None:
        """Write ``config`` to disk."""
        data = config.model_dump(mode="python") if isinstance(config, SortyConfig) else dict(config)
        self._write_file(data)

    def ensure_exists(self) -> Path:
        """Create a configuration file holding the defaults if none exists."""
        if not self._path.exists():
            self._write_file(SortyConfig().model_dump(mode="python"))
        return self._path

    def read_text(self) -> str:
        """Return the configuration file contents, or an empty string."""
        if not self._path.exists():
            return ""
        return self._path.read_text(encoding="utf-8")

    def _read_file(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            raw = yaml.safe_load(self.read_text()) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"{self._path} is not valid YAML: {exc}") from exc
        if not isinstance(raw, dict):
            raise ConfigError(f"{self._path} must hold a mapping of sections.")
        return raw

    def _write_file(self, data: Mapping[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        body = yaml.safe_dump(dict(data), sort_keys=False)
        self._path.write_text(
            f"{_CONFIG_HEADER}# Last updated: {stamp}\n{body}", encoding="utf-8"
        )


__all__ = [
    "ConfigError",
    "ConfigManager",
    "DEFAULT_CONFIG_PATH",
    "SortyConfig",
    "env_overrides_from",
    "flatten_for_env",
    "resolve_with_precedence",
]
