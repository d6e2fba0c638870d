"""Console output for the release CLI.

Services and the release logger write through ``ConsoleProtocol``; only
this module knows about Rich. Errors and warnings go to stderr so a
release run piped into another tool keeps a clean stdout.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from rich.console import Console

__all__ = [
    "ConsoleProtocol",
    "MockConsole",
    "OutputRecord",
    "RichConsole",
    "Style",
]


class Style(Enum):
    DEFAULT = auto()
    SUCCESS = auto()
    ERROR = auto()
    WARNING = auto()
    INFO = auto()
    DIM = auto()
    BOLD = auto()
    HEADER = auto()
    ADDED = auto()  # "+" line of a file preview
    REMOVED = auto()  # "-" line of a file preview

    def __str__(self) -> str:
        return self.name.lower()


_RICH_STYLES: dict[Style, str] = {
    Style.DEFAULT: "",
    Style.SUCCESS: "green",
    Style.ERROR: "red bold",
    Style.WARNING: "yellow",
    Style.INFO: "cyan",
    Style.DIM: "dim",
    Style.BOLD: "bold",
    Style.HEADER: "blue bold",
    Style.ADDED: "green",
    Style.REMOVED: "red",
}


class ConsoleProtocol(Protocol):
    """Where release output ends up.

    ``print`` takes the message verbatim: file contents and git output are
    never interpreted as markup.
    """

    def print(self, message: str, style: Style = Style.DEFAULT) -> None: ...

    def success(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...

    def warning(self, message: str) -> None: ...

    def info(self, message: str) -> None: ...

    def header(self, message: str) -> None: ...

    def newline(self) -> None: ...


class RichConsole:
    """Console backed by two Rich consoles, one per output stream."""

    def __init__(self, *, no_color: bool = False) -> None:
        from rich.console import Console

        self._out: Console = Console(highlight=False, no_color=no_color)
        self._err: Console = Console(stderr=True, highlight=False, no_color=no_color)

    def _emit(
        self,
        message: str,
        style: Style,
        *,
        prefix: str = "",
        to_stderr: bool = False,
    ) -> None:
        from rich.text import Text

        rich_style = _RICH_STYLES[style]
        if prefix:
            line = Text.assemble((prefix, rich_style), message)
        else:
            line = Text(message, style=rich_style)
        (self._err if to_stderr else self._out).print(line)

    def print(self, message: str, style: Style = Style.DEFAULT) -> None:
        self._emit(message, style)

    def success(self, message: str) -> None:
        self._emit(message, Style.SUCCESS, prefix="OK ")

    def error(self, message: str) -> None:
        self._emit(message, Style.ERROR, prefix="error: ", to_stderr=True)

    def warning(self, message: str) -> None:
        self._emit(message, Style.WARNING, prefix="warning: ", to_stderr=True)

    def info(self, message: str) -> None:
        self._emit(message, Style.INFO, prefix="info: ")

    def header(self, message: str) -> None:
        self._out.print()
        self._emit(message, Style.HEADER)

    def newline(self) -> None:
        self._out.print()


@dataclass
class OutputRecord:
    message: str
    style: Style


def _empty_outputs() -> list[OutputRecord]:
    return []


@dataclass
class MockConsole:
    """Console that records every line instead of printing it."""

    outputs: list[OutputRecord] = field(default_factory=_empty_outputs)

    def print(self, message: str, style: Style = Style.DEFAULT) -> None:
        self.outputs.append(OutputRecord(message, style))

    def success(self, message: str) -> None:
        self.outputs.append(OutputRecord(f"OK {message}", Style.SUCCESS))

    def error(self, message: str) -> None:
        self.outputs.append(OutputRecord(f"error: {message}", Style.ERROR))

    def warning(self, message: str) -> None:
        self.outputs.append(OutputRecord(f"warning: {message}", Style.WARNING))

    def info(self, message: str) -> None:
        self.outputs.append(OutputRecord(f"info: {message}", Style.INFO))

    def header(self, message: str) -> None:
        self.outputs.append(OutputRecord(message, Style.HEADER))

    def newline(self) -> None:
        self.outputs.append(OutputRecord("", Style.DEFAULT))

    def clear(self) -> None:
        self.outputs.clear()

    @property
    def messages(self) -> list[str]:
        return [o.message for o in self.outputs]

    @property
    def text(self) -> str:
        return "\n".join(self.messages)

    def styled(self, style: Style) -> list[str]:
        return [o.message for o in self.outputs if o.style == style]

    def has_error(self) -> bool:
        return bool(self.styled(Style.ERROR))

    def has_warning(self) -> bool:
        return bool(self.styled(Style.WARNING))

    def find(self, substring: str) -> list[OutputRecord]:
        return [o for o in self.outputs if substring in o.message]
