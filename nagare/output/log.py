"""Leveled release logging with structured audit entries.

``ReleaseLogger`` sits on top of a console. Info, warnings and errors are
printed as they happen; debug lines only when verbose. Audit entries record
security-relevant actions (file rewrites, resets, tag deletions, rollbacks)
as structured data so callers and tests can inspect them after the fact.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime

from nagare.output.console import ConsoleProtocol, Style

__all__ = ["AuditEntry", "ReleaseLogger"]


@dataclass(frozen=True, slots=True)
class AuditEntry:
    action: str
    details: dict[str, object]
    timestamp: datetime

    def to_json(self) -> str:
        payload = {
            "action": self.action,
            "timestamp": self.timestamp.isoformat(),
            "details": self.details,
        }
        return json.dumps(payload, sort_keys=True, default=str)


def _empty_entries() -> list[AuditEntry]:
    return []


@dataclass
class ReleaseLogger:
    console: ConsoleProtocol
    verbose: bool = False
    entries: list[AuditEntry] = field(default_factory=_empty_entries)

    def debug(self, message: str) -> None:
        if self.verbose:
            self.console.print(message, Style.DIM)

    def info(self, message: str) -> None:
        self.console.print(message)

    def success(self, message: str) -> None:
        self.console.success(message)

    def warn(self, message: str) -> None:
        self.console.warning(message)

    def error(self, message: str) -> None:
        self.console.error(message)

    def audit(self, action: str, details: dict[str, object] | None = None) -> AuditEntry:
        entry = AuditEntry(action=action, details=dict(details or {}), timestamp=datetime.now(UTC))
        self.entries.append(entry)
        self.debug(f"audit: {entry.to_json()}")
        return entry

    def audited(self, action: str) -> list[AuditEntry]:
        return [e for e in self.entries if e.action == action]
