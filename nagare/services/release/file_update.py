"""Version rewriting across project files.

``FileUpdateEngine`` computes new file contents without touching the disk;
``write`` is the separate, explicit step that persists them. Every path is
confined to the engine root before it is read or written.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

from nagare.core.result import Err, Ok, Result
from nagare.output.log import ReleaseLogger
from nagare.platform.files import atomic_write_text
from nagare.platform.paths import resolve_within
from nagare.services.release.errors import ReleaseError
from nagare.services.release.handlers import (
    FileHandler,
    HandlerRegistry,
    find_matches,
    substitute,
)
from nagare.services.release.model import FileChange, FileUpdateResult

__all__ = ["CustomUpdate", "FileUpdateEngine"]

type CustomUpdate = Callable[[str, str], str]
"""``(content, new_value) -> content`` supplied by the caller for one file."""


def _failure(kind: str, message: str) -> FileUpdateResult:
    return FileUpdateResult(success=False, error=message, error_kind=kind)


class FileUpdateEngine:
    def __init__(
        self,
        root: Path,
        logger: ReleaseLogger,
        registry: HandlerRegistry | None = None,
    ) -> None:
        self.root = root
        self.logger = logger
        self.registry = registry if registry is not None else HandlerRegistry()

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def update_file(
        self,
        path: str | Path,
        key: str,
        new_value: str,
        custom_fn: CustomUpdate | None = None,
    ) -> FileUpdateResult:
        """Compute the content of ``path`` with ``key`` set to ``new_value``.

        Nothing is written. A failing validator leaves ``success`` True and
        reports the problem through ``valid``/``validation_error``.
        """
        loaded = self._load(path, new_value)
        if isinstance(loaded, Err):
            return _failure(loaded.error.kind, loaded.error.message)
        target, content = loaded.value

        if custom_fn is not None:
            try:
                updated = custom_fn(content, new_value)
            except Exception as e:  # noqa: BLE001
                return _failure("custom_update_failed", f"custom update failed for {path}: {e}")
            self.logger.audit(
                "file_updated_custom",
                {"file": str(target), "key": key, "method": "custom_function"},
            )
            return FileUpdateResult(success=True, content=updated)

        resolved = self._resolve_handler(path, key)
        if isinstance(resolved, Err):
            return _failure(resolved.error.kind, resolved.error.message)
        handler = resolved.value

        computed = self._compute(handler, content, key, new_value)
        if isinstance(computed, Err):
            return _failure(computed.error.kind, f"{computed.error.message} in {path}")
        updated, match_count = computed.value

        valid: bool | None = None
        validation_error: str | None = None
        if handler.validate is not None:
            check = handler.validate(updated)
            valid = check.valid
            validation_error = check.error
            if not check.valid:
                self.logger.warn(f"{path}: validation failed after update: {check.error}")

        self.logger.audit(
            "file_updated",
            {
                "file": str(target),
                "key": key,
                "handler": handler.id,
                "match_count": match_count,
            },
        )
        return FileUpdateResult(
            success=True,
            content=updated,
            match_count=match_count,
            valid=valid,
            validation_error=validation_error,
        )

    def preview_changes(
        self,
        path: str | Path,
        key: str,
        new_value: str,
    ) -> Result[list[FileChange], ReleaseError]:
        """Lines ``update_file`` would change, without writing anything."""
        loaded = self._load(path, new_value)
        if isinstance(loaded, Err):
            return loaded
        _, content = loaded.value

        resolved = self._resolve_handler(path, key)
        if isinstance(resolved, Err):
            return resolved
        handler = resolved.value

        computed = self._compute(handler, content, key, new_value)
        if isinstance(computed, Err):
            return computed
        updated, _ = computed.value

        before = content.split("\n")
        after = updated.split("\n")
        touched = {i for i, (a, b) in enumerate(zip(before, after)) if a != b}
        if handler.replacer is None:
            matches = find_matches(content, handler.patterns[key], replace_all=handler.replace_all)
            touched |= {content.count("\n", 0, m.start()) for m in matches}

        return Ok(
            [
                FileChange(line=i + 1, original=before[i].strip(), updated=after[i].strip())
                for i in sorted(touched)
                if i < len(before) and i < len(after)
            ]
        )

    def current_value(self, path: str | Path, key: str) -> Result[str, ReleaseError]:
        """Value ``update_file`` would replace first, e.g. the current version."""
        loaded = self._load(path, None)
        if isinstance(loaded, Err):
            return loaded
        _, content = loaded.value

        resolved = self._resolve_handler(path, key)
        if isinstance(resolved, Err):
            return resolved
        handler = resolved.value

        matches = find_matches(content, handler.patterns[key])
        if not matches:
            return Err(
                ReleaseError(
                    kind="no_matches_found",
                    message=f"pattern for {key!r} found no matches in {path}",
                )
            )
        return Ok(matches[0].group("value").strip())

    def write(self, path: str | Path, content: str) -> Result[Path, ReleaseError]:
        """Atomically replace ``path`` with ``content``."""
        target = resolve_within(self.root, path)
        if isinstance(target, Err):
            return Err(ReleaseError(kind="path_traversal", message=target.error.message))
        try:
            atomic_write_text(target.value, content)
        except OSError as e:
            return Err(ReleaseError(kind="write_failed", message=f"failed to write {path}: {e}"))
        self.logger.debug(f"wrote {target.value}")
        return Ok(target.value)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _load(
        self, path: str | Path, new_value: str | None
    ) -> Result[tuple[Path, str], ReleaseError]:
        target = resolve_within(self.root, path)
        if isinstance(target, Err):
            return Err(ReleaseError(kind="path_traversal", message=target.error.message))
        if new_value is not None and (not new_value or "\n" in new_value or "\r" in new_value):
            return Err(ReleaseError(kind="invalid_input", message=f"invalid value: {new_value!r}"))
        try:
            # Decode bytes directly so line endings survive untouched.
            content = target.value.read_bytes().decode("utf-8")
        except (OSError, UnicodeDecodeError) as e:
            return Err(ReleaseError(kind="read_failed", message=f"failed to read {path}: {e}"))
        return Ok((target.value, content))

    def _resolve_handler(self, path: str | Path, key: str) -> Result[FileHandler, ReleaseError]:
        handler = self.registry.get_handler(str(path))
        if handler is None:
            return Err(ReleaseError(kind="no_handler", message=f"no handler for file type: {path}"))
        if key not in handler.patterns:
            return Err(
                ReleaseError(
                    kind="no_pattern_defined",
                    message=f"no pattern defined for key {key!r} in handler {handler.id!r}",
                )
            )
        return Ok(handler)

    def _compute(
        self,
        handler: FileHandler,
        content: str,
        key: str,
        new_value: str,
    ) -> Result[tuple[str, int], ReleaseError]:
        alternatives = handler.patterns[key]
        matches = find_matches(content, alternatives, replace_all=handler.replace_all)
        if not matches:
            return Err(
                ReleaseError(kind="no_matches_found", message=f"pattern for {key!r} found no matches")
            )
        if handler.replacer is not None:
            return Ok(handler.replacer(content, key, new_value))
        return Ok(substitute(content, alternatives, new_value, replace_all=handler.replace_all))
