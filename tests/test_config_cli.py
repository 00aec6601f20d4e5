"""CLI tests for configuration commands."""

from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from sorty.cli import cli
from sorty.config import ConfigManager


def _config_path(home_env: dict[str, str]) -> Path:
    return Path(home_env["HOME"]) / ".sorty" / "config.yaml"


def test_config_view_creates_and_displays_config(home_env: dict[str, str]) -> None:
    runner = CliRunner()

    result = runner.invoke(cli, ["config", "view"], env=home_env)

    assert result.exit_code == 0
    assert "organization:" in result.output
    assert _config_path(home_env).exists()


def test_config_view_applies_environment(home_env: dict[str, str]) -> None:
    runner = CliRunner()
    env = {**home_env, "SORTY__ORGANIZATION__TAG_BACKEND": "xattr"}

    with_env = runner.invoke(cli, ["config", "view"], env=env)
    without_env = runner.invoke(cli, ["config", "view", "--no-env"], env=env)

    assert "xattr" in with_env.output
    assert "xattr" not in without_env.output


def test_config_set_updates_value_and_writes_diff(home_env: dict[str, str]) -> None:
    runner = CliRunner()

    result = runner.invoke(
        cli, ["config", "set", "organization.max_suffix_attempts", "--value", "12"], env=home_env
    )

    assert result.exit_code == 0
    assert "12" in result.output

    manager = ConfigManager(config_path=_config_path(home_env), env={})
    config = manager.load(include_env=False)
    assert config.organization.max_suffix_attempts == 12


def test_config_set_same_value_reports_no_change(home_env: dict[str, str]) -> None:
    runner = CliRunner()
    args = ["config", "set", "organization.apply_tags", "--value", "true"]

    runner.invoke(cli, args, env=home_env)
    result = runner.invoke(cli, args, env=home_env)

    assert result.exit_code == 0
    assert "No changes applied" in result.output


def test_config_set_rejects_invalid_value(home_env: dict[str, str]) -> None:
    runner = CliRunner()

    result = runner.invoke(
        cli, ["config", "set", "organization.max_suffix_attempts", "--value", "1"], env=home_env
    )

    assert result.exit_code != 0
    assert "Invalid configuration values" in result.output


def test_config_edit_applies_changes(
    home_env: dict[str, str], monkeypatch: pytest.MonkeyPatch
) -> None:
    runner = CliRunner()
    manager = ConfigManager(config_path=_config_path(home_env), env={})
    manager.ensure_exists()

    def _mock_edit(text: str, **_: Any) -> str:
        return text.replace("apply_renames: true", "apply_renames: false")

    monkeypatch.setattr("sorty.cli.click.edit", _mock_edit)

    result = runner.invoke(cli, ["config", "edit"], env=home_env)

    assert result.exit_code == 0
    assert "updated" in result.output.lower()

    config = manager.load(include_env=False)
    assert config.organization.apply_renames is False


def test_config_edit_rejects_non_mapping(
    home_env: dict[str, str], monkeypatch: pytest.MonkeyPatch
) -> None:
    runner = CliRunner()
    monkeypatch.setattr("sorty.cli.click.edit", lambda text, **_: "- just a list\n")

    result = runner.invoke(cli, ["config", "edit"], env=home_env)

    assert result.exit_code != 0
    assert "top-level mapping" in result.output
