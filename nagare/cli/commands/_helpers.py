"""Shared helpers for CLI commands."""

from __future__ import annotations

from typing import TYPE_CHECKING

import typer

from nagare.core.errors import ErrorCode
from nagare.core.result import Err, Result
from nagare.output.console import Style

if TYPE_CHECKING:
    from nagare.cli.context import CLIContext


_CODES: dict[str, ErrorCode] = {
    "invalid_environment": ErrorCode.ENV_ERROR,
    "gh_missing": ErrorCode.ENV_ERROR,
    "gh_auth_required": ErrorCode.ENV_ERROR,
    "git_failed": ErrorCode.GIT_ERROR,
    "release_failed": ErrorCode.NETWORK_ERROR,
    "read_failed": ErrorCode.IO_ERROR,
    "write_failed": ErrorCode.IO_ERROR,
    "file_update_failed": ErrorCode.IO_ERROR,
    "custom_update_failed": ErrorCode.IO_ERROR,
    "backup_create_failed": ErrorCode.IO_ERROR,
    "restore_failed": ErrorCode.IO_ERROR,
    "rollback_partial_failure": ErrorCode.ROLLBACK_ERROR,
}


def error_code_for(kind: str) -> ErrorCode:
    """Exit code for a release error kind; anything unlisted is a user error."""
    return _CODES.get(kind, ErrorCode.USER_ERROR)


def exit_on_error[T, E](
    result: Result[T, E],
    ctx: CLIContext,
    error_code: ErrorCode = ErrorCode.USER_ERROR,
) -> None:
    """Exit with error if result is Err, otherwise return.

    Expects error objects to have 'message' and optional 'hint' attributes.
    """
    if isinstance(result, Err):
        error = result.error
        message: str = getattr(error, "message", str(error))
        hint: str | None = getattr(error, "hint", None)
        ctx.console.error(message)
        if hint:
            ctx.console.print(f"hint: {hint}", Style.DIM)
        raise typer.Exit(code=int(error_code))
