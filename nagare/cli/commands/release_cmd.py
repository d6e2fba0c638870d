from __future__ import annotations

from dataclasses import replace
from typing import NoReturn

import typer

from nagare.cli.commands._helpers import error_code_for, exit_on_error
from nagare.cli.context import CLIContext, build_context
from nagare.core.errors import ErrorCode
from nagare.git.repository import Repository
from nagare.output.console import Style
from nagare.services.release.model import BumpKind
from nagare.services.release.recovery import RollbackManager
from nagare.services.release.service import ReleaseOutcome, ReleaseService


def _exit(err: str, *, code: ErrorCode) -> NoReturn:
    typer.echo(f"error: {err}", err=True)
    raise typer.Exit(code=int(code))


def _confirm(message: str) -> bool:
    return typer.confirm(message, default=False)


def _decline(_message: str) -> bool:
    return False


def _prompt(message: str) -> str | None:
    typed: str = typer.prompt(message, default="")
    return typed.strip() or None


def _bump_from_flags(*, major: bool, minor: bool, patch: bool) -> BumpKind | None:
    chosen: list[BumpKind] = []
    if major:
        chosen.append("major")
    if minor:
        chosen.append("minor")
    if patch:
        chosen.append("patch")
    if len(chosen) > 1:
        _exit("choose at most one of --major, --minor, --patch", code=ErrorCode.USER_ERROR)
    return chosen[0] if chosen else None


def _with_yes(ctx: CLIContext, yes: bool) -> CLIContext:
    if not yes:
        return ctx
    options = replace(ctx.config.options, skip_confirmation=True)
    return replace(ctx, config=replace(ctx.config, options=options))


def release(
    major: bool = typer.Option(False, "--major", help="Force a major bump"),
    minor: bool = typer.Option(False, "--minor", help="Force a minor bump"),
    patch: bool = typer.Option(False, "--patch", help="Force a patch bump"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print actions without mutating"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompts"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug and audit output"),
) -> None:
    """Bump the version, update files, commit, tag and push a release."""
    bump = _bump_from_flags(major=major, minor=minor, patch=patch)
    ctx = _with_yes(build_context(verbose=verbose), yes)

    service = ReleaseService(
        root=ctx.root,
        config=ctx.config,
        logger=ctx.logger,
        confirm=_confirm,
    )
    outcome = service.release(bump=bump, dry_run=True if dry_run else None)
    if not outcome.success:
        _report_failure(ctx, outcome)

    if outcome.dry_run:
        ctx.console.success(f"dry run: next version would be {outcome.version}")


def preview(
    file: str = typer.Argument(..., help="File to preview, relative to the repository root"),
    key: str = typer.Option("version", "--key", help="Handler pattern key"),
    value: str | None = typer.Option(None, "--value", help="New value (default: next version)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug output"),
) -> None:
    """Show the lines a release would rewrite in FILE."""
    ctx = build_context(verbose=verbose)
    service = ReleaseService(root=ctx.root, config=ctx.config, logger=ctx.logger)

    new_value = value
    if new_value is None:
        next_version = service.next_version()
        exit_on_error(next_version, ctx, ErrorCode.USER_ERROR)
        new_value = next_version.unwrap()

    changes = service.engine.preview_changes(file, key, new_value)
    exit_on_error(changes, ctx, ErrorCode.USER_ERROR)
    entries = changes.unwrap()

    ctx.console.header(f"{file} -> {new_value}")
    for change in entries:
        ctx.console.print(f"{file}:{change.line}", Style.DIM)
        ctx.console.print(f"- {change.original}", Style.REMOVED)
        ctx.console.print(f"+ {change.updated}", Style.ADDED)
    ctx.console.print(f"{len(entries)} line(s) would change", Style.DIM)


def rollback(
    version: str | None = typer.Argument(None, help="Version to roll back (default: last release)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompts"),
    no_interactive: bool = typer.Option(
        False, "--no-interactive", help="Never prompt; fail when input is missing"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug and audit output"),
) -> None:
    """Undo a completed release: delete its tag and reset the release commit."""
    ctx = _with_yes(build_context(verbose=verbose), yes)

    manager = RollbackManager(
        Repository(ctx.root),
        ctx.config.options,
        ctx.logger,
        interactive=not no_interactive,
        prompt=_prompt,
        confirm=_decline if no_interactive else _confirm,
    )
    result = manager.rollback(version)
    if not result.success:
        code = ErrorCode.USER_ERROR if result.error == "cancelled" else ErrorCode.ROLLBACK_ERROR
        raise typer.Exit(code=int(code))

    ctx.console.print("Next steps:", Style.DIM)
    ctx.console.print("  1. Verify your files are in the correct state", Style.DIM)
    ctx.console.print("  2. Fix whatever made the release fail", Style.DIM)
    ctx.console.print("  3. Run the release again when ready", Style.DIM)


def _report_failure(ctx: CLIContext, outcome: ReleaseOutcome) -> NoReturn:
    error = outcome.error
    if error is not None and error.hint:
        ctx.console.print(f"hint: {error.hint}", Style.DIM)

    if outcome.rollback is not None and not outcome.rollback.success:
        raise typer.Exit(code=int(ErrorCode.ROLLBACK_ERROR))
    code = error_code_for(error.kind) if error is not None else ErrorCode.USER_ERROR
    raise typer.Exit(code=int(code))
