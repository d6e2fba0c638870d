from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import typer

from nagare.core.config import NagareConfig, load_config
from nagare.core.errors import ErrorCode
from nagare.core.result import Err
from nagare.output.console import ConsoleProtocol, RichConsole
from nagare.output.log import ReleaseLogger


@dataclass(frozen=True, slots=True)
class CLIContext:
    root: Path
    config: NagareConfig
    console: ConsoleProtocol
    logger: ReleaseLogger


def build_context(*, verbose: bool = False, root: Path | None = None) -> CLIContext:
    repo_root = (root or Path.cwd()).resolve()
    console = RichConsole()

    config_result = load_config(repo_root)
    if isinstance(config_result, Err):
        typer.echo(f"error: {config_result.error.message}", err=True)
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))

    return CLIContext(
        root=repo_root,
        config=config_result.value,
        console=console,
        logger=ReleaseLogger(console=console, verbose=verbose),
    )
