"""CLI integration tests for `sorty org`, `sorty undo`, and `sorty history`."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from sorty.cli import cli

from conftest import write_file

INVOICE_PLAN = json.dumps(
    {
        "folders": [
            {
                "name": "Invoices",
                "files": [
                    {
                        "filename": "a.pdf",
                        "suggested_name": "2024-Invoice.pdf",
                        "tags": ["finance"],
                    }
                ],
            }
        ],
        "notes": "Grouped invoices.",
    }
)


@pytest.fixture
def plan_file(tmp_path: Path) -> Path:
    path = tmp_path / "plan.json"
    path.write_text(INVOICE_PLAN, encoding="utf-8")
    return path


def _state_dir(home_env: dict[str, str]) -> Path:
    return Path(home_env["HOME"]) / ".sorty"


def test_org_applies_plan_and_records_history(
    root: Path, plan_file: Path, home_env: dict[str, str]
) -> None:
    write_file(root, "a.pdf", "invoice")
    runner = CliRunner()

    result = runner.invoke(cli, ["org", str(root), "--plan", str(plan_file)], env=home_env)

    assert result.exit_code == 0, result.output
    assert (root / "Invoices" / "2024-Invoice.pdf").read_text(encoding="utf-8") == "invoice"
    assert "files_renamed=1" in result.output
    assert "Grouped invoices." in result.output

    state_dir = _state_dir(home_env)
    history = json.loads((state_dir / "history.json").read_text(encoding="utf-8"))
    [entry] = history["entries"]
    assert entry["status"] == "completed"
    assert (state_dir / "ledgers" / f"{entry['id']}.jsonl").exists()
    tags = json.loads((state_dir / "tags.json").read_text(encoding="utf-8"))
    assert tags["tags"] == {str(root / "Invoices" / "2024-Invoice.pdf"): ["finance"]}


def test_org_json_output(root: Path, plan_file: Path, home_env: dict[str, str]) -> None:
    write_file(root, "a.pdf")
    runner = CliRunner()

    result = runner.invoke(
        cli, ["org", str(root), "--plan", str(plan_file), "--json"], env=home_env
    )

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["context"]["files_scanned"] == 1
    entry = payload["entry"]
    assert entry["status"] == "completed"
    assert [action["kind"] for action in entry["ledger"]["actions"]] == [
        "create_directory",
        "rename_file",
        "apply_tags",
    ]
    assert "raw_response" not in entry


def test_org_dry_run_changes_nothing(
    root: Path, plan_file: Path, home_env: dict[str, str]
) -> None:
    write_file(root, "a.pdf")
    runner = CliRunner()

    result = runner.invoke(
        cli, ["org", str(root), "--plan", str(plan_file), "--dry-run"], env=home_env
    )

    assert result.exit_code == 0, result.output
    assert "dry_run=True" in result.output
    assert (root / "a.pdf").exists()
    assert not (root / "Invoices").exists()
    assert not (_state_dir(home_env) / "history.json").exists()


def test_org_reads_plan_from_stdin(root: Path, home_env: dict[str, str]) -> None:
    write_file(root, "x.txt")
    runner = CliRunner()
    fenced = '```json\n{"folders":[{"name":"Docs","files":["x.txt"]}]}\n```'

    result = runner.invoke(
        cli, ["org", str(root), "--plan", "-", "--summary"], input=fenced, env=home_env
    )

    assert result.exit_code == 0, result.output
    assert (root / "Docs" / "x.txt").exists()
    assert "Organization summary" in result.output


def test_org_invalid_plan_reports_error_code(root: Path, home_env: dict[str, str]) -> None:
    write_file(root, "x.txt")
    runner = CliRunner()

    result = runner.invoke(
        cli, ["org", str(root), "--plan", "-", "--json"], input="no json here", env=home_env
    )

    assert result.exit_code == 1
    payload = json.loads(result.stdout)
    assert payload["error"]["code"] == "invalid_json"
    assert (root / "x.txt").exists()


def test_org_rejects_quiet_with_json(
    root: Path, plan_file: Path, home_env: dict[str, str]
) -> None:
    runner = CliRunner()

    result = runner.invoke(
        cli, ["org", str(root), "--plan", str(plan_file), "--json", "--quiet"], env=home_env
    )

    assert result.exit_code == 1
    assert "--json cannot be combined with --quiet" in result.output


def test_org_quiet_prints_nothing(root: Path, plan_file: Path, home_env: dict[str, str]) -> None:
    write_file(root, "a.pdf")
    runner = CliRunner()

    result = runner.invoke(
        cli, ["org", str(root), "--plan", str(plan_file), "--quiet"], env=home_env
    )

    assert result.exit_code == 0
    assert result.stdout == ""
    assert (root / "Invoices" / "2024-Invoice.pdf").exists()


def test_undo_restores_latest_run(root: Path, plan_file: Path, home_env: dict[str, str]) -> None:
    write_file(root, "a.pdf", "invoice")
    runner = CliRunner()
    runner.invoke(cli, ["org", str(root), "--plan", str(plan_file)], env=home_env)

    result = runner.invoke(cli, ["undo", str(root), "--json"], env=home_env)

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["counts"] == {"reversed": 3, "conflict": 0, "already_reversed": 0}
    assert (root / "a.pdf").read_text(encoding="utf-8") == "invoice"
    assert not (root / "Invoices").exists()
    tags = json.loads((_state_dir(home_env) / "tags.json").read_text(encoding="utf-8"))
    assert tags["tags"] == {}

    again = runner.invoke(cli, ["undo", str(root), "--json"], env=home_env)
    assert again.exit_code == 1
    assert json.loads(again.stdout)["error"]["code"] == "missing_state"


def test_undo_specific_entry_dry_run(
    root: Path, plan_file: Path, home_env: dict[str, str]
) -> None:
    write_file(root, "a.pdf")
    runner = CliRunner()
    org_result = runner.invoke(
        cli, ["org", str(root), "--plan", str(plan_file), "--json"], env=home_env
    )
    entry_id = json.loads(org_result.stdout)["entry"]["id"]

    result = runner.invoke(
        cli, ["undo", str(root), "--entry", entry_id, "--dry-run"], env=home_env
    )

    assert result.exit_code == 0, result.output
    assert "Undo summary" in result.output
    assert (root / "Invoices" / "2024-Invoice.pdf").exists()


def test_undo_without_history_fails(root: Path, home_env: dict[str, str]) -> None:
    runner = CliRunner()

    result = runner.invoke(cli, ["undo", str(root)], env=home_env)

    assert result.exit_code == 1
    assert "No undoable run found" in result.output


def test_history_lists_runs_and_statistics(
    root: Path, plan_file: Path, home_env: dict[str, str]
) -> None:
    write_file(root, "a.pdf")
    runner = CliRunner()
    runner.invoke(cli, ["org", str(root), "--plan", str(plan_file)], env=home_env)
    runner.invoke(cli, ["undo", str(root)], env=home_env)

    result = runner.invoke(cli, ["history", str(root), "--json"], env=home_env)

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert [entry["status"] for entry in payload["entries"]] == ["undone"]
    assert payload["statistics"]["total_sessions"] == 1
    assert payload["statistics"]["reverted_count"] == 1

    table = runner.invoke(cli, ["history"], env=home_env)
    assert table.exit_code == 0
    assert "Organization history" in table.output
    assert "1 run(s)" in table.output


def test_history_empty(home_env: dict[str, str]) -> None:
    result = CliRunner().invoke(cli, ["history"], env=home_env)

    assert result.exit_code == 0
    assert "No organization runs recorded yet" in result.output
