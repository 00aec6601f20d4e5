"""Merge configuration layers into a validated ``SortyConfig``."""

from __future__ import annotations

from collections.abc import Mapping as MappingABC
from copy import deepcopy
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

import yaml
from pydantic import ValidationError

from .exceptions import ConfigError
from .models import SortyConfig

ENV_PREFIX = "SORTY__"


def resolve_with_precedence(
    *,
    defaults: SortyConfig,
    file_overrides: Optional[Mapping[str, Any]] = None,
    env_overrides: Optional[Mapping[str, Any]] = None,
    cli_overrides: Optional[Mapping[str, Any]] = None,
) -> SortyConfig:
    """Layer overrides on top of ``defaults`` and validate the result.

    Later layers win: file settings override defaults, environment variables
    override the file, and CLI overrides win over everything. Keys may be
    nested mappings or dotted paths such as ``organization.apply_tags``.

    Args:
        defaults: Baseline configuration.
        file_overrides: Values read from the YAML file.
        env_overrides: Values decoded from ``SORTY__SECTION__KEY`` variables.
        cli_overrides: Values supplied on the command line.

    Returns:
        SortyConfig: Validated configuration.

    Raises:
        ConfigError: If a layer is malformed or the merged values fail validation.
    """
    layers: Iterable[Tuple[str, Optional[Mapping[str, Any]]]] = (
        ("file", file_overrides),
        ("environment", env_overrides),
        ("cli", cli_overrides),
    )
    merged = defaults.model_dump(mode="python")
    for label, layer in layers:
        if layer is not None:
            merged = _merge(merged, _expand(layer, label))

    try:
        return SortyConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration values: {exc}") from exc


def flatten_for_env(config: SortyConfig) -> Dict[str, str]:
    """Render ``config`` as ``SORTY__SECTION__KEY`` environment assignments."""
    flat: Dict[str, str] = {}
    pending = [((str(key),), value) for key, value in config.model_dump(mode="python").items()]
    while pending:
        path, value = pending.pop(0)
        if isinstance(value, dict):
            pending.extend((path + (str(key),), child) for key, child in value.items())
            continue
        name = ENV_PREFIX + "__".join(part.upper() for part in path)
        if isinstance(value, list):
            flat[name] = yaml.safe_dump(value, default_flow_style=True).strip()
        else:
            flat[name] = "null" if value is None else str(value)
    return flat


def env_overrides_from(env: Mapping[str, str]) -> Dict[str, Any]:
    """Decode ``SORTY__`` variables into a nested override mapping.

    Values are parsed as YAML so ``true`` and ``5`` become a bool and an int.
    """
    overrides: Dict[str, Any] = {}
    for key, raw in env.items():
        if not key.startswith(ENV_PREFIX):
            continue
        segments = [segment.lower() for segment in key[len(ENV_PREFIX) :].split("__") if segment]
        if not segments:
            continue
        try:
            value = yaml.safe_load(raw)
        except yaml.YAMLError:
            value = raw
        _place(overrides, segments, value, "environment")
    return overrides


def _expand(layer: Mapping[str, Any], label: str) -> Dict[str, Any]:
    if not isinstance(layer, MappingABC):
        raise ConfigError(f"{label.capitalize()} overrides must be a mapping.")
    expanded: Dict[str, Any] = {}
    for key, value in layer.items():
        if not isinstance(key, str):
            raise ConfigError(f"{label.capitalize()} override keys must be strings.")
        if isinstance(value, MappingABC):
            value = _expand(value, label)
        _place(expanded, key.split("."), value, label)
    return expanded


def _place(target: Dict[str, Any], segments: list[str], value: Any, label: str) -> None:
    node = target
    for segment in segments[:-1]:
        child = node.setdefault(segment, {})
        if not isinstance(child, dict):
            raise ConfigError(
                f"{label.capitalize()} override for {'.'.join(segments)} "
                "conflicts with an existing value."
            )
        node = child
    leaf = segments[-1]
    if isinstance(value, dict) and isinstance(node.get(leaf), dict):
        node[leaf] = _merge(node[leaf], value)
    else:
        node[leaf] = value


def _merge(base: Mapping[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    result = deepcopy(dict(base))
    for key, value in overrides.items():
        current = result.get(key)
        if isinstance(value, MappingABC) and isinstance(current, MappingABC):
            result[key] = _merge(current, value)
        else:
            result[key] = deepcopy(value)
    return result


__all__ = ["ENV_PREFIX", "env_overrides_from", "flatten_for_env", "resolve_with_precedence"]
