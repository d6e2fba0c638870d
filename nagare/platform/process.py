"""The one place that starts child processes.

git and gh run non-interactively: a push that needs credentials fails
instead of waiting on a prompt nobody will answer. Failures, timeouts and
missing executables all come back as ``ProcessError`` values.

Usage:
    match run(["git", "rev-parse", "HEAD"], cwd=repo_root, timeout=30.0):
        case Ok(stdout):
            print(stdout.strip())
        case Err(error):
            print(f"git failed: {error.detail}")
"""

from __future__ import annotations

import os
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from nagare.core.result import Err, Ok, Result

__all__ = ["NON_INTERACTIVE_ENV", "NOT_RUN", "ProcessError", "run"]

# Exit status recorded when the process timed out or could not be started.
NOT_RUN = -1

NON_INTERACTIVE_ENV: dict[str, str] = {
    "GIT_TERMINAL_PROMPT": "0",
    "GH_PROMPT_DISABLED": "1",
    "GIT_EDITOR": "true",
}


@dataclass(frozen=True, slots=True)
class ProcessError:
    command: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False

    def __str__(self) -> str:
        cmd_str = " ".join(self.command[:3])
        if len(self.command) > 3:
            cmd_str += " ..."
        if self.timed_out:
            return f"{cmd_str} timed out"
        return f"{cmd_str} failed (exit {self.returncode})"

    @property
    def detail(self) -> str:
        """Best single-line explanation for humans."""
        return self.stderr.strip() or self.stdout.strip() or str(self)


def _environment(extra: Mapping[str, str] | None) -> dict[str, str]:
    env = dict(os.environ)
    env.update(NON_INTERACTIVE_ENV)
    if extra:
        env.update(extra)
    return env


def run(
    cmd: list[str],
    cwd: Path,
    env: Mapping[str, str] | None = None,
    *,
    timeout: float | None = None,
) -> Result[str, ProcessError]:
    """Run ``cmd`` (never through a shell) and return its stdout.

    ``env`` is layered over the inherited environment and the
    non-interactive defaults.
    """
    command = tuple(cmd)
    try:
        proc = subprocess.run(
            cmd,
            cwd=str(cwd),
            env=_environment(env),
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        return Err(
            ProcessError(
                command=command,
                returncode=NOT_RUN,
                stdout=e.stdout if isinstance(e.stdout, str) else "",
                stderr=f"Command timed out after {timeout}s",
                timed_out=True,
            )
        )
    except OSError as e:
        return Err(ProcessError(command=command, returncode=NOT_RUN, stdout="", stderr=str(e)))

    if proc.returncode != 0:
        return Err(ProcessError(command, proc.returncode, proc.stdout, proc.stderr))
    return Ok(proc.stdout)
