"""Invoke tasks for building, testing, and linting Sorty.

Tasks run through `uv` against the project virtual environment.
"""

from __future__ import annotations

import shlex
import shutil
from collections.abc import Mapping
from pathlib import Path

from invoke import Collection, Context, task

PROJECT_ROOT = Path(__file__).parent
DIST_DIR = PROJECT_ROOT / "dist"
SOURCE_DIRS = ("src", "tests")


def _uv(ctx: Context, *args: str, env: Mapping[str, str] | None = None) -> None:
    """Run ``uv ARGS`` in a PTY, layering ``env`` over the configured environment."""
    merged = {**(ctx.config.run.env or {}), **(env or {})}
    ctx.run(shlex.join(("uv", *args)), echo=True, pty=True, env=merged)


@task
def sync(ctx: Context, dev: bool = True) -> None:
    """Synchronize the virtual environment, including the dev extra by default."""
    extras = ("--extra", "dev") if dev else ()
    _uv(ctx, "sync", *extras)


@task(help={"clean": "Remove existing artifacts from dist/ before building."})
def build(ctx: Context, clean: bool = False) -> None:
    """Build the sdist and wheel into `dist/`."""
    if clean and DIST_DIR.exists():
        shutil.rmtree(DIST_DIR)
    _uv(ctx, "build")


@task(
    help={
        "k": "pytest -k expression for test selection.",
        "path": "Path or module to test (defaults to tests/).",
        "options": "Additional CLI flags forwarded verbatim to pytest.",
    }
)
def tests(ctx: Context, k: str = "", path: str = "tests", options: str = "") -> None:
    """Run the pytest suite with debug logging enabled."""
    args: list[str] = ["run", "pytest"]
    if k:
        args.extend(["-k", k])
    if options:
        args.extend(shlex.split(options))
    if path:
        args.append(path)
    _uv(ctx, *args, env={"SORTY__LOGGING__LEVEL": "DEBUG"})


@task(
    help={
        "fix": "Apply auto-fixes where possible (ruff --fix).",
        "check_format": "Run ruff format --check before linting.",
    }
)
def lint(ctx: Context, fix: bool = False, check_format: bool = False) -> None:
    """Run Ruff formatting and lint checks."""
    if check_format:
        _uv(ctx, "run", "ruff", "format", "--check", *SOURCE_DIRS)
    lint_args: list[str] = ["run", "ruff", "check", *SOURCE_DIRS]
    if fix:
        lint_args.append("--fix")
    _uv(ctx, *lint_args)


@task
def mypy(ctx: Context) -> None:
    """Type-check the package sources."""
    _uv(ctx, "run", "mypy", "src")


@task(
    help={
        "root": "Directory to organize.",
        "plan": "File holding a plan response.",
    }
)
def preview(ctx: Context, root: str, plan: str) -> None:
    """Show the actions a plan would take against ROOT without applying them."""
    _uv(ctx, "run", "sorty", "org", root, "--plan", plan, "--dry-run")


@task
def ci(ctx: Context) -> None:
    """Replicate the CI workflow locally."""
    ctx.invoke(lint, check_format=True)
    ctx.invoke(mypy)
    ctx.invoke(tests)


namespace = Collection(sync, build, tests, lint, mypy, preview, ci)
