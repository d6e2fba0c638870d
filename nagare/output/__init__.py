"""Output abstraction layer."""

from .console import (
    ConsoleProtocol,
    MockConsole,
    RichConsole,
    Style,
)
from .log import AuditEntry, ReleaseLogger

__all__ = [
    "AuditEntry",
    "ConsoleProtocol",
    "MockConsole",
    "ReleaseLogger",
    "RichConsole",
    "Style",
]
