"""Snapshots of files taken before a release rewrites them.

Each snapshot lives in ``<root>/<backup_dir>/<backup_id>/<relative path>``.
A release keeps its snapshot on failure so the files can be recovered by hand
and deletes it on success.
"""

from __future__ import annotations

import secrets
import shutil
import time
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from nagare.core.result import Err, Ok, Result
from nagare.output.log import ReleaseLogger
from nagare.platform.files import atomic_write_bytes
from nagare.platform.paths import relative_to_root, resolve_within
from nagare.services.release.errors import ReleaseError

__all__ = ["BackupEntry", "BackupSet", "BackupStore"]


@dataclass(frozen=True, slots=True)
class BackupEntry:
    original: Path
    snapshot: Path


@dataclass(frozen=True, slots=True)
class BackupSet:
    id: str
    timestamp: datetime
    directory: Path
    entries: tuple[BackupEntry, ...]

    def entry_for(self, path: Path) -> BackupEntry | None:
        for entry in self.entries:
            if entry.original == path:
                return entry
        return None


def _new_backup_id() -> str:
    return f"backup-{int(time.time() * 1000):x}-{secrets.token_hex(4)}"


class BackupStore:
    def __init__(self, root: Path, backup_dir: str, logger: ReleaseLogger) -> None:
        self.root = root
        self.backup_root = root / backup_dir
        self.logger = logger
        self._active: dict[str, BackupSet] = {}

    def create_backup(self, files: Sequence[str | Path]) -> Result[str, ReleaseError]:
        """Snapshot ``files`` and return the new backup id.

        Every path is validated before anything is copied. If copying fails
        part-way, the partial snapshot is removed.
        """
        targets: list[Path] = []
        for file in files:
            resolved = resolve_within(self.root, file)
            if isinstance(resolved, Err):
                return Err(ReleaseError(kind="path_traversal", message=resolved.error.message))
            if not resolved.value.is_file():
                return Err(
                    ReleaseError(
                        kind="backup_create_failed",
                        message=f"cannot back up missing file: {file}",
                    )
                )
            targets.append(resolved.value)

        backup_id = _new_backup_id()
        while backup_id in self._active or (self.backup_root / backup_id).exists():
            backup_id = _new_backup_id()
        directory = self.backup_root / backup_id

        entries: list[BackupEntry] = []
        try:
            self._ensure_root()
            for target in targets:
                snapshot = directory / relative_to_root(self.root, target)
                snapshot.parent.mkdir(parents=True, exist_ok=True)
                shutil.copyfile(target, snapshot)
                entries.append(BackupEntry(original=target, snapshot=snapshot))
        except OSError as e:
            shutil.rmtree(directory, ignore_errors=True)
            self._remove_root_if_empty()
            return Err(
                ReleaseError(kind="backup_create_failed", message=f"failed to create backup: {e}")
            )

        self._active[backup_id] = BackupSet(
            id=backup_id,
            timestamp=datetime.now(UTC),
            directory=directory,
            entries=tuple(entries),
        )
        self.logger.info(f"Created backup {backup_id} for {len(entries)} files")
        return Ok(backup_id)

    def _ensure_root(self) -> None:
        """Create the backup root with a catch-all .gitignore."""
        self.backup_root.mkdir(parents=True, exist_ok=True)
        ignore = self.backup_root / ".gitignore"
        if not ignore.exists():
            ignore.write_text("*\n", encoding="utf-8")

    def restore_backup(self, backup_id: str) -> Result[int, ReleaseError]:
        """Copy every snapshot back; returns the number of restored files."""
        backup = self._active.get(backup_id)
        if backup is None:
            return Err(ReleaseError(kind="restore_failed", message=f"backup {backup_id} not found"))

        restored = 0
        for entry in backup.entries:
            if not entry.snapshot.is_file():
                self.logger.warn(f"Backup entry missing, skipped: {entry.original}")
                continue
            written = self._restore_entry(entry)
            if isinstance(written, Err):
                return written
            restored += 1
        self.logger.info(f"Restored {restored} files from backup {backup_id}")
        return Ok(restored)

    def restore_file(self, backup_id: str, path: str | Path) -> Result[Path, ReleaseError]:
        backup = self._active.get(backup_id)
        if backup is None:
            return Err(ReleaseError(kind="restore_failed", message=f"backup {backup_id} not found"))
        resolved = resolve_within(self.root, path)
        if isinstance(resolved, Err):
            return Err(ReleaseError(kind="path_traversal", message=resolved.error.message))
        entry = backup.entry_for(resolved.value)
        if entry is None or not entry.snapshot.is_file():
            return Err(
                ReleaseError(kind="restore_failed", message=f"{path} is not in backup {backup_id}")
            )
        written = self._restore_entry(entry)
        if isinstance(written, Err):
            return written
        self.logger.debug(f"Restored {entry.original} from backup {backup_id}")
        return Ok(entry.original)

    def cleanup_backup(self, backup_id: str) -> None:
        """Delete a snapshot. Failures are logged, never raised."""
        backup = self._active.get(backup_id)
        if backup is None:
            self.logger.debug(f"Backup {backup_id} not found for cleanup")
            return
        try:
            shutil.rmtree(backup.directory)
        except FileNotFoundError:
            pass
        except OSError as e:
            self.logger.warn(f"Failed to clean up backup {backup_id}: {e}")
            return
        del self._active[backup_id]
        self._remove_root_if_empty()
        self.logger.debug(f"Cleaned up backup {backup_id}")

    def cleanup_all(self) -> None:
        for backup_id in list(self._active):
            self.cleanup_backup(backup_id)

    def get(self, backup_id: str) -> BackupSet | None:
        return self._active.get(backup_id)

    def active_backups(self) -> list[BackupSet]:
        return list(self._active.values())

    def _restore_entry(self, entry: BackupEntry) -> Result[None, ReleaseError]:
        try:
            atomic_write_bytes(entry.original, entry.snapshot.read_bytes())
        except OSError as e:
            return Err(
                ReleaseError(kind="restore_failed", message=f"failed to restore {entry.original}: {e}")
            )
        return Ok(None)

    def _remove_root_if_empty(self) -> None:
        if not self.backup_root.is_dir():
            return
        if any(p.name != ".gitignore" for p in self.backup_root.iterdir()):
            return
        try:
            (self.backup_root / ".gitignore").unlink(missing_ok=True)
            self.backup_root.rmdir()
        except OSError:
            pass
