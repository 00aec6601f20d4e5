"""Command line interface for the Sorty project."""

from __future__ import annotations

import difflib
from pathlib import Path
from typing import IO, Any

import click
import yaml
from click.core import ParameterSource
from rich.console import Console
from rich.markup import escape
from rich.syntax import Syntax
from rich.table import Table

from sorty.catalog.discovery import DirectoryScanner
from sorty.config import ConfigError, ConfigManager, SortyConfig, resolve_with_precedence
from sorty.errors import RootBusyError, SortyError
from sorty.logging_setup import LOG_FILENAME, configure_logging
from sorty.service import OrganizerService
from sorty.state import compute_statistics
from sorty.state.errors import MissingStateError, StateError
from sorty.state.models import HistoryEntry, describe_action

console = Console()


def _handle_cli_error(
    message: str,
    *,
    code: str,
    json_output: bool,
    details: Any | None = None,
    original: Exception | None = None,
) -> None:
    """Report a command failure and stop.

    JSON mode prints ``{"error": {"code", "message"}}`` on stdout and exits
    with status 1; otherwise the failure becomes a ``click.ClickException``.

    Raises:
        SystemExit: In JSON mode.
        click.ClickException: In every other mode.
    """
    if not json_output:
        if isinstance(original, click.ClickException):
            raise original
        raise click.ClickException(message) from original

    error: dict[str, Any] = {"code": code, "message": message}
    if details is not None:
        error["details"] = details
    console.print_json(data={"error": error})
    raise SystemExit(1)


def _emit_message(message: Any, *, mode: str, quiet: bool, summary_only: bool) -> None:
    """Print ``message`` unless the active output mode hides it.

    ``mode`` is one of ``detail``, ``summary``, ``warning`` or ``error``.
    Quiet mode keeps errors only; summary mode drops detail output.
    """
    if mode == "error":
        console.print(message)
    elif quiet:
        return
    elif summary_only and mode == "detail":
        return
    else:
        console.print(message)


def _format_summary_line(command: str, root: Path | str, metrics: dict[str, Any]) -> str:
    """Render ``metrics`` as a single ``key=value`` summary line for ``root``."""
    rendered = ", ".join(f"{name}={value}" for name, value in metrics.items())
    return f"[green]{command} summary for {root}: {rendered}.[/green]"


def _output_modes(
    ctx: click.Context,
    config: SortyConfig,
    *,
    quiet: bool,
    summary_mode: bool,
    json_output: bool,
) -> tuple[bool, bool]:
    """Combine CLI flags with configured defaults into quiet/summary switches.

    Raises:
        click.ClickException: If the requested modes conflict.
    """
    explicit_quiet = ctx.get_parameter_source("quiet") == ParameterSource.COMMANDLINE
    explicit_summary = ctx.get_parameter_source("summary_mode") == ParameterSource.COMMANDLINE

    quiet_enabled = quiet if explicit_quiet else config.cli.quiet_default
    summary_only = summary_mode if explicit_summary else config.cli.summary_default

    if json_output:
        if explicit_quiet and quiet_enabled:
            raise click.ClickException("--json cannot be combined with --quiet.")
        if explicit_summary and summary_only:
            raise click.ClickException("--json cannot be combined with --summary.")
        return False, False

    if quiet_enabled and summary_only:
        raise click.ClickException(
            "Quiet and summary modes cannot both be enabled. Adjust CLI defaults or flags."
        )
    return quiet_enabled, summary_only


def _load_config() -> SortyConfig:
    """Load the effective configuration and install logging handlers."""
    manager = ConfigManager()
    manager.ensure_exists()
    config = manager.load()
    state_dir = Path(config.history.state_dir).expanduser()
    configure_logging(config.logging, state_dir / LOG_FILENAME)
    return config


def _scanner_for(config: SortyConfig, recursive: bool) -> DirectoryScanner:
    scanning = config.scanning
    max_size_bytes = None
    if scanning.max_file_size_mb > 0:
        max_size_bytes = scanning.max_file_size_mb * 1024 * 1024
    return DirectoryScanner(
        recursive=recursive or scanning.recurse_directories,
        include_hidden=scanning.process_hidden_files,
        follow_symlinks=scanning.follow_symlinks,
        max_size_bytes=max_size_bytes,
        compute_hash=scanning.compute_hashes,
    )


def _assign_nested(target: dict[str, Any], path: list[str], value: Any) -> None:
    """Set ``target[path[0]][path[1]]...`` to ``value``, creating sections as needed.

    Raises:
        ConfigError: If an intermediate key holds a scalar.
    """
    node = target
    for segment in path[:-1]:
        existing = node.get(segment)
        if existing is None:
            existing = {}
            node[segment] = existing
        elif not isinstance(existing, dict):
            raise ConfigError(
                f"'{segment}' is a value, not a section, in the config file."
            )
        node = existing
    node[path[-1]] = value


def _relative(path: Path | None, root: Path) -> str:
    if path is None:
        return "-"
    try:
        return str(path.relative_to(root))
    except ValueError:
        return str(path)


def _entry_payload(entry: HistoryEntry) -> dict[str, Any]:
    return entry.model_dump(mode="json", exclude={"raw_response"})


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="sorty")
def cli() -> None:
    """Apply model-generated organization plans to folders and undo them."""


@cli.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False, path_type=str))
@click.option(
    "--plan",
    "plan_file",
    type=click.File("r", encoding="utf-8"),
    required=True,
    help="File holding the model's plan response ('-' reads stdin).",
)
@click.option("-r", "--recursive", is_flag=True, help="Include all subdirectories.")
@click.option("--dry-run", is_flag=True, help="Preview changes without modifying files.")
@click.option("--json", "json_output", is_flag=True, help="Emit JSON describing the run.")
@click.option("--summary", "summary_mode", is_flag=True, help="Only emit summary lines.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.pass_context
def org(
    ctx: click.Context,
    path: str,
    plan_file: IO[str],
    recursive: bool,
    dry_run: bool,
    json_output: bool,
    summary_mode: bool,
    quiet: bool,
) -> None:
    """Organize files rooted at PATH according to a plan response.

    Args:
        ctx: Click context used for parameter source inspection.
        path: Root directory to organize.
        plan_file: Open handle to the raw plan text.
        recursive: Whether to include subdirectories during scanning.
        dry_run: If True, skip making filesystem mutations.
        json_output: If True, emit JSON describing planned or applied changes.
        summary_mode: When True, limit output to summary lines and warnings.
        quiet: When True, suppress non-error CLI output entirely.

    Raises:
        click.ClickException: If configuration loading or the run fails.
    """

    json_enabled = json_output
    try:
        config = _load_config()
        quiet_enabled, summary_only = _output_modes(
            ctx, config, quiet=quiet, summary_mode=summary_mode, json_output=json_output
        )

        root = Path(path).expanduser().resolve()
        files = _scanner_for(config, recursive).scan(root)
        raw_plan_text = plan_file.read()

        service = OrganizerService.from_config(config)
        entry = service.organize(root, files, raw_plan_text, dry_run=dry_run)

        if entry.status == "failed":
            code, _, message = (entry.error or "run_failed: unknown error").partition(": ")
            _handle_cli_error(
                f"Organization failed for {root}: {message or code}",
                code=code if message else "run_failed",
                json_output=json_enabled,
                details={"entry_id": entry.id} if not dry_run else None,
            )

        ledger = entry.ledger
        actions = list(ledger.actions) if ledger is not None else []
        skipped = list(ledger.skipped) if ledger is not None else []

        if json_output:
            console.print_json(
                data={
                    "context": {
                        "root": root.as_posix(),
                        "dry_run": dry_run,
                        "files_scanned": len(files),
                    },
                    "entry": _entry_payload(entry),
                }
            )
            return

        table = Table(title=f"{'Planned' if dry_run else 'Applied'} actions for {root}")
        table.add_column("#", justify="right")
        table.add_column("Action")
        table.add_column("Details", overflow="fold")
        for position, action in enumerate(actions, start=1):
            table.add_row(str(position), action.kind, escape(describe_action(action)))
        if actions:
            _emit_message(table, mode="detail", quiet=quiet_enabled, summary_only=summary_only)
        else:
            _emit_message(
                "[yellow]Nothing to do; every file is already in place.[/yellow]",
                mode="detail",
                quiet=quiet_enabled,
                summary_only=summary_only,
            )

        for item in skipped:
            _emit_message(
                f"[yellow]Skipped {escape(_relative(item.source, root))} ({item.error}): "
                f"{escape(item.message)}[/yellow]",
                mode="warning",
                quiet=quiet_enabled,
                summary_only=summary_only,
            )
        for line in entry.notes.splitlines():
            _emit_message(
                f"[cyan]{escape(line)}[/cyan]",
                mode="detail",
                quiet=quiet_enabled,
                summary_only=summary_only,
            )
        if entry.status == "cancelled":
            _emit_message(
                "[yellow]Run was cancelled; completed actions were kept.[/yellow]",
                mode="warning",
                quiet=quiet_enabled,
                summary_only=summary_only,
            )

        metrics: dict[str, Any] = {
            "status": entry.status,
            **entry.counts.model_dump(),
            "dry_run": dry_run,
        }
        if not dry_run:
            metrics["entry"] = entry.id
        _emit_message(
            _format_summary_line("Organization", root, metrics),
            mode="summary",
            quiet=quiet_enabled,
            summary_only=summary_only,
        )
    except RootBusyError as exc:
        _handle_cli_error(str(exc), code="root_busy", json_output=json_enabled, original=exc)
    except (ConfigError, StateError) as exc:
        _handle_cli_error(str(exc), code="state_error", json_output=json_enabled, original=exc)
    except click.ClickException as exc:
        _handle_cli_error(str(exc), code="cli_error", json_output=json_enabled, original=exc)
    except SortyError as exc:
        _handle_cli_error(
            f"Unexpected error while organizing files: {exc}",
            code="internal_error",
            json_output=json_enabled,
            details={"exception": type(exc).__name__},
            original=exc,
        )


@cli.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False, path_type=str))
@click.option("--entry", "entry_id", type=str, help="History entry to undo (defaults to latest).")
@click.option("--dry-run", is_flag=True, help="Preview rollback without applying it.")
@click.option("--json", "json_output", is_flag=True, help="Emit JSON describing the rollback.")
@click.option("--summary", "summary_mode", is_flag=True, help="Only emit summary lines.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.pass_context
def undo(
    ctx: click.Context,
    path: str,
    entry_id: str | None,
    dry_run: bool,
    json_output: bool,
    summary_mode: bool,
    quiet: bool,
) -> None:
    """Roll back an organization run applied to PATH.

    Args:
        ctx: Click context for parameter inspection.
        path: Root directory to roll back.
        entry_id: Specific history entry to undo.
        dry_run: If True, only preview the rollback operations.
        json_output: When True, emit JSON instead of textual output.
        summary_mode: When True, limit output to summary lines and warnings.
        quiet: When True, suppress non-error output entirely.

    Raises:
        click.ClickException: If no run can be undone or rollback fails.
    """

    json_enabled = json_output
    try:
        config = _load_config()
        quiet_enabled, summary_only = _output_modes(
            ctx, config, quiet=quiet, summary_mode=summary_mode, json_output=json_output
        )

        root = Path(path).expanduser().resolve()
        service = OrganizerService.from_config(config)
        if entry_id is not None:
            entry = service.store.get(entry_id)
        else:
            latest = service.store.latest_for(root, undoable_only=True)
            if latest is None:
                raise MissingStateError(
                    f"No undoable run found for {root}. Run `sorty org {root}` first."
                )
            entry = latest

        report = service.undo(entry, dry_run=dry_run)

        if json_output:
            console.print_json(
                data={
                    "context": {"root": root.as_posix(), "entry_id": entry.id},
                    "report": report.model_dump(mode="json"),
                    "counts": report.counts,
                }
            )
            return

        table = Table(title=f"{'Rollback preview' if dry_run else 'Rollback'} for {root}")
        table.add_column("Action", overflow="fold")
        table.add_column("Outcome")
        table.add_column("Message", overflow="fold")
        styles = {"reversed": "green", "conflict": "red", "already_reversed": "dim"}
        for item in report.outcomes:
            style = styles[item.outcome]
            table.add_row(
                escape(describe_action(item.action)),
                f"[{style}]{item.outcome}[/{style}]",
                escape(item.message),
            )
        _emit_message(table, mode="detail", quiet=quiet_enabled, summary_only=summary_only)

        if report.conflicts:
            _emit_message(
                f"[yellow]{len(report.conflicts)} action(s) could not be reversed; "
                "resolve the conflicts and run undo again.[/yellow]",
                mode="warning",
                quiet=quiet_enabled,
                summary_only=summary_only,
            )

        _emit_message(
            _format_summary_line(
                "Undo",
                root,
                {"entry": entry.id, **report.counts, "dry_run": dry_run},
            ),
            mode="summary",
            quiet=quiet_enabled,
            summary_only=summary_only,
        )
    except MissingStateError as exc:
        _handle_cli_error(str(exc), code="missing_state", json_output=json_enabled, original=exc)
    except RootBusyError as exc:
        _handle_cli_error(str(exc), code="root_busy", json_output=json_enabled, original=exc)
    except (ConfigError, StateError) as exc:
        _handle_cli_error(str(exc), code="state_error", json_output=json_enabled, original=exc)
    except click.ClickException as exc:
        _handle_cli_error(str(exc), code="cli_error", json_output=json_enabled, original=exc)
    except SortyError as exc:
        _handle_cli_error(
            f"Unexpected error while rolling back changes: {exc}",
            code="internal_error",
            json_output=json_enabled,
            details={"exception": type(exc).__name__},
            original=exc,
        )


@cli.command()
@click.argument(
    "path",
    required=False,
    type=click.Path(exists=True, file_okay=False, path_type=str),
)
@click.option("--limit", type=click.IntRange(min=1), help="Maximum entries to display.")
@click.option("--json", "json_output", is_flag=True, help="Emit history as JSON.")
def history(path: str | None, limit: int | None, json_output: bool) -> None:
    """Show recent organization runs, optionally only those for PATH.

    Args:
        path: Root directory to filter by.
        limit: Maximum number of entries to show.
        json_output: When True, emit JSON instead of a table.

    Raises:
        click.ClickException: If the history cannot be read.
    """
    try:
        config = _load_config()
        service = OrganizerService.from_config(config)
        entries = service.store.entries()
    except (ConfigError, StateError) as exc:
        _handle_cli_error(str(exc), code="state_error", json_output=json_output, original=exc)
        return

    if path is not None:
        root = Path(path).expanduser().resolve()
        entries = [entry for entry in entries if entry.root.expanduser().resolve() == root]
    statistics = compute_statistics(entries)
    shown = entries[: limit or config.cli.history_limit]

    if json_output:
        console.print_json(
            data={
                "entries": [_entry_payload(entry) for entry in shown],
                "statistics": {
                    **statistics.model_dump(),
                    "success_rate": statistics.success_rate,
                },
            }
        )
        return

    if not shown:
        console.print("[yellow]No organization runs recorded yet.[/yellow]")
        return

    table = Table(title="Organization history")
    table.add_column("Entry")
    table.add_column("When")
    table.add_column("Root", overflow="fold")
    table.add_column("Status")
    table.add_column("Moved", justify="right")
    table.add_column("Renamed", justify="right")
    table.add_column("Folders", justify="right")
    table.add_column("Skipped", justify="right")
    for entry in shown:
        table.add_row(
            entry.id,
            entry.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            str(entry.root),
            entry.status,
            str(entry.counts.files_moved),
            str(entry.counts.files_renamed),
            str(entry.counts.folders_created),
            str(entry.counts.skipped),
        )
    console.print(table)
    console.print(
        f"[cyan]{statistics.total_sessions} run(s), "
        f"{statistics.success_rate:.0%} successful, "
        f"{statistics.total_files_organized} file(s) organized, "
        f"{statistics.reverted_count} undone.[/cyan]"
    )


@cli.group()
def config() -> None:
    """Inspect and change the Sorty configuration file."""


def _save_validated(manager: ConfigManager, data: dict[str, Any]) -> None:
    """Validate ``data`` as file overrides and persist it.

    Raises:
        click.ClickException: If the values do not form a valid configuration.
    """
    try:
        resolve_with_precedence(defaults=SortyConfig(), file_overrides=data)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    manager.save(data)


def _settings_lines(text: str) -> list[str]:
    # The header and timestamp comments change on every save.
    return [line for line in text.splitlines() if not line.startswith("#")]


@config.command("view")
@click.option("--no-env", is_flag=True, help="Show the file values without SORTY__ overrides.")
def config_view(no_env: bool) -> None:
    """Print the effective configuration as YAML."""
    manager = ConfigManager()
    try:
        effective = manager.load(include_env=not no_env)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    rendered = yaml.safe_dump(effective.model_dump(mode="python"), sort_keys=False)
    console.print(Syntax(rendered, "yaml", word_wrap=True))


@config.command("set")
@click.argument("key")
@click.option("--value", required=True, help="YAML literal stored at KEY.")
def config_set(key: str, value: str) -> None:
    """Store VALUE under the dotted KEY (for example ``history.max_entries``).

    Args:
        key: Dotted path of the setting.
        value: YAML literal to parse and store.

    Raises:
        click.ClickException: If KEY is empty, VALUE is not YAML, or the
            result fails validation.
    """
    path = [part.strip() for part in key.split(".") if part.strip()]
    if not path:
        raise click.ClickException("KEY must be a dotted path such as 'history.max_entries'.")
    try:
        parsed = yaml.safe_load(value)
    except yaml.YAMLError as exc:
        raise click.ClickException(f"VALUE is not valid YAML: {exc}") from exc

    manager = ConfigManager()
    manager.ensure_exists()
    previous = manager.read_text()
    try:
        overrides = manager.load_file_overrides()
        _assign_nested(overrides, path, parsed)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    _save_validated(manager, overrides)
    current = manager.read_text()

    if _settings_lines(previous) == _settings_lines(current):
        console.print("[yellow]No changes applied; the value was already set.[/yellow]")
        return

    diff = difflib.unified_diff(
        _settings_lines(previous),
        _settings_lines(current),
        fromfile="config.yaml (before)",
        tofile="config.yaml (after)",
        lineterm="",
    )
    console.print(Syntax("\n".join(diff), "diff"))
    console.print(f"[green]Updated {'.'.join(path)}.[/green]")


@config.command("edit")
def config_edit() -> None:
    """Edit the configuration file in ``$EDITOR`` and validate the result."""
    manager = ConfigManager()
    manager.ensure_exists()
    before = manager.read_text()

    after = click.edit(before, extension=".yaml")
    if after is None or after == before:
        console.print("[yellow]Configuration left unchanged.[/yellow]")
        return

    try:
        data = yaml.safe_load(after) or {}
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Edited file is not valid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise click.ClickException("The configuration must be a top-level mapping.")

    _save_validated(manager, data)
    console.print("[green]Configuration updated.[/green]")


def main() -> None:
    """Console script entry point."""
    cli()


if __name__ == "__main__":
    main()
