"""Per-format file handlers for version rewriting.

A handler knows how to recognise one kind of file, where the version lives in
it (one or more regex alternatives per key, each marking the version with a
``value`` group), and optionally how to check the rewritten content.

Usage:
    registry = HandlerRegistry()
    handler = registry.get_handler("package.json")
    new_content, count = substitute(content, handler.patterns["version"], "1.2.3")
"""

from __future__ import annotations

import ast
import json
import re
import tomllib
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import PurePath

from nagare.core.result import Err, Ok, Result
from nagare.services.release import patterns as p

__all__ = [
    "BUILT_IN_HANDLERS",
    "FileHandler",
    "HandlerRegistry",
    "ValidationResult",
    "find_matches",
    "substitute",
]


@dataclass(frozen=True, slots=True)
class ValidationResult:
    valid: bool
    error: str | None = None


type Detector = Callable[[str], bool]
type Replacer = Callable[[str, str, str], tuple[str, int]]
type Validator = Callable[[str], ValidationResult]


@dataclass(frozen=True, slots=True)
class FileHandler:
    """How to find and rewrite a version in one file format.

    Attributes:
        id: Unique registry key
        name: Human readable format name
        detector: Called with the file path; True when this handler applies
        patterns: Key -> regex alternatives; each marks the version with ``value``
        replacer: Optional ``(content, key, new_value) -> (content, rewrites)`` override
        validate: Optional structural check run on the rewritten content
        file_names: Exact file names this handler owns (looked up first)
        replace_all: Rewrite every match instead of only the first per alternative
    """

    id: str
    name: str
    detector: Detector
    patterns: Mapping[str, tuple[re.Pattern[str], ...]]
    replacer: Replacer | None = None
    validate: Validator | None = None
    file_names: frozenset[str] = field(default_factory=frozenset)
    replace_all: bool = False


# -----------------------------------------------------------------------------
# Substitution
# -----------------------------------------------------------------------------


def find_matches(
    content: str,
    alternatives: Sequence[re.Pattern[str]],
    *,
    replace_all: bool = False,
) -> list[re.Match[str]]:
    """Matches the substitution would rewrite, in document order."""
    found: list[re.Match[str]] = []
    for pattern in alternatives:
        if replace_all:
            found.extend(pattern.finditer(content))
        else:
            m = pattern.search(content)
            if m is not None:
                found.append(m)
    return sorted(found, key=lambda m: m.start())


def substitute(
    content: str,
    alternatives: Sequence[re.Pattern[str]],
    new_value: str,
    *,
    replace_all: bool = False,
) -> tuple[str, int]:
    """Replace the ``value`` span of each match with ``new_value``.

    Only the marked span changes, so running it twice with the same value
    gives the same text.
    """

    def _swap(m: re.Match[str]) -> str:
        start = m.start("value") - m.start()
        end = m.end("value") - m.start()
        whole = m.group(0)
        return whole[:start] + new_value + whole[end:]

    total = 0
    for pattern in alternatives:
        content, n = pattern.subn(_swap, content, count=0 if replace_all else 1)
        total += n
    return content, total


# -----------------------------------------------------------------------------
# Detectors and validators
# -----------------------------------------------------------------------------


def _base(path: str) -> str:
    return PurePath(path.replace("\\", "/")).name


def _named(*names: str) -> Detector:
    lowered = {n.lower() for n in names}
    return lambda path: _base(path).lower() in lowered


def _suffix(*suffixes: str) -> Detector:
    return lambda path: _base(path).lower().endswith(suffixes)


def _is_version_module(path: str) -> bool:
    name = _base(path).lower()
    return name.endswith((".ts", ".js", ".mjs")) and ("version" in name or "constants" in name)


def _is_python_version_module(path: str) -> bool:
    name = _base(path)
    return name in {"__init__.py", "__about__.py", "_version.py", "version.py"}


_JSONC_COMMENTS = re.compile(r'("(?:\\.|[^"\\])*")|//[^\n]*|/\*.*?\*/', re.DOTALL)
_TRAILING_COMMAS = re.compile(r",(\s*[}\]])")


def _strip_jsonc(content: str) -> str:
    stripped = _JSONC_COMMENTS.sub(lambda m: m.group(1) or "", content)
    return _TRAILING_COMMAS.sub(r"\1", stripped)


def _load_json(content: str) -> Result[object, str]:
    try:
        return Ok(json.loads(content))
    except json.JSONDecodeError as e:
        context = content[max(0, e.pos - 30) : e.pos + 30]
        detail = f"{e.msg} at line {e.lineno} column {e.colno}: ...{context}..."
        if "\r" in content[max(0, e.pos - 1) : e.pos + 1]:
            detail += " (carriage return found; the file may use Windows line endings)"
        return Err(detail)


def _validate_json_fields(*required: str) -> Validator:
    def _check(content: str) -> ValidationResult:
        loaded = _load_json(content)
        if isinstance(loaded, Err):
            return ValidationResult(False, loaded.error)
        data = loaded.value
        if not isinstance(data, dict):
            return ValidationResult(False, "top-level value is not an object")
        for name in required:
            if name not in data:
                return ValidationResult(False, f"missing {name} field")
        return ValidationResult(True)

    return _check


def _validate_deno(content: str) -> ValidationResult:
    loaded = _load_json(content)
    if isinstance(loaded, Ok):
        return ValidationResult(True)
    if isinstance(_load_json(_strip_jsonc(content)), Ok):
        return ValidationResult(True)
    return ValidationResult(False, loaded.error)


def _validate_toml(content: str) -> ValidationResult:
    try:
        tomllib.loads(content)
    except tomllib.TOMLDecodeError as e:
        return ValidationResult(False, str(e))
    return ValidationResult(True)


def _validate_python(content: str) -> ValidationResult:
    try:
        ast.parse(content)
    except SyntaxError as e:
        return ValidationResult(False, f"{e.msg} at line {e.lineno}")
    return ValidationResult(True)


_TS_PATTERNS = (
    p.const_assignment("VERSION", exported=True),
    re.compile(r"export\s*\{\s*VERSION\s*\}\s*;\s*const\s+VERSION\s*=\s*[\"'](?P<value>[^\"']+)[\"']"),
    re.compile(r"export\s+default\s+[\"'](?P<value>[^\"']+)[\"']"),
    re.compile(r"module\.exports\.version\s*=\s*[\"'](?P<value>[^\"']+)[\"']"),
)


def _replace_first_alternative(content: str, key: str, new_value: str) -> tuple[str, int]:
    """Rewrite only the first declaration style that appears in the file."""
    for pattern in _TS_PATTERNS:
        if pattern.search(content):
            return substitute(content, (pattern,), new_value)
    return content, 0


_MARKDOWN_PATTERNS = (
    p.version_badge("shields.io"),
    p.version_badge("img.shields.io"),
    re.compile(r"npm/v/(?P<value>\d+\.\d+\.\d+[^/\s)]*)"),
    re.compile(rf"^(#+\s*(?:Version|Release|v\.?)\s*)(?P<value>{p.SEMVER})", re.MULTILINE),
    re.compile(rf"(npm\s+install\s+[^@\s]+@)(?P<value>{p.SEMVER})"),
    re.compile(rf"(yarn\s+add\s+[^@\s]+@)(?P<value>{p.SEMVER})"),
    re.compile(rf"(deno\s+add\s+(?:jsr:)?@?[^@\s]+@)(?P<value>{p.SEMVER})"),
    re.compile(rf"(pip\s+install\s+[A-Za-z0-9_.\-\[\]]+==)(?P<value>{p.SEMVER})"),
)

_JSON_VERSION = {"version": (p.json_version(indent_aware=True),)}
_TOML_VERSION = {"version": (p.toml_version(),)}


BUILT_IN_HANDLERS: tuple[FileHandler, ...] = (
    FileHandler(
        id="deno.json",
        name="Deno Configuration",
        detector=_named("deno.json", "deno.jsonc"),
        patterns=_JSON_VERSION,
        validate=_validate_deno,
        file_names=frozenset({"deno.json", "deno.jsonc"}),
    ),
    FileHandler(
        id="package.json",
        name="NPM Package Configuration",
        detector=_named("package.json"),
        patterns=_JSON_VERSION,
        validate=_validate_json_fields("version"),
        file_names=frozenset({"package.json"}),
    ),
    FileHandler(
        id="jsr.json",
        name="JSR Configuration",
        detector=_named("jsr.json"),
        patterns=_JSON_VERSION,
        validate=_validate_json_fields("version", "name"),
        file_names=frozenset({"jsr.json"}),
    ),
    FileHandler(
        id="cargo.toml",
        name="Rust Cargo Configuration",
        detector=_named("cargo.toml"),
        patterns=_TOML_VERSION,
        validate=_validate_toml,
        file_names=frozenset({"Cargo.toml", "cargo.toml"}),
    ),
    FileHandler(
        id="pyproject.toml",
        name="Python Project Configuration",
        detector=_named("pyproject.toml"),
        patterns=_TOML_VERSION,
        validate=_validate_toml,
        file_names=frozenset({"pyproject.toml"}),
    ),
    FileHandler(
        id="setup.py",
        name="Python Setup Script",
        detector=_named("setup.py"),
        patterns={"version": (re.compile(r"(\bversion\s*=\s*)[\"'](?P<value>[^\"']+)[\"']"),)},
        validate=_validate_python,
        file_names=frozenset({"setup.py"}),
    ),
    FileHandler(
        id="python-version",
        name="Python Version Module",
        detector=_is_python_version_module,
        patterns={
            "version": (p.py_assignment("__version__"), p.py_assignment("VERSION")),
        },
        validate=_validate_python,
    ),
    FileHandler(
        id="typescript-version",
        name="TypeScript Version File",
        detector=_is_version_module,
        patterns={"version": _TS_PATTERNS},
        replacer=_replace_first_alternative,
    ),
    FileHandler(
        id="markdown",
        name="Markdown Documentation",
        detector=_suffix(".md", ".markdown"),
        patterns={"version": _MARKDOWN_PATTERNS},
        replace_all=True,
    ),
    FileHandler(
        id="yaml",
        name="YAML Configuration",
        detector=_suffix(".yaml", ".yml"),
        patterns={
            "version": (p.yaml_version("both"),),
            "appVersion": (p.yaml_version("both", key="appVersion"),),
        },
    ),
    FileHandler(
        id="json",
        name="JSON Configuration",
        detector=_suffix(".json"),
        patterns=_JSON_VERSION,
        validate=_validate_json_fields(),
    ),
)


class HandlerRegistry:
    """Ordered handler lookup.

    Exact file-name owners win over detector matches; among detector matches
    the earliest registered handler wins.
    """

    def __init__(self, handlers: Sequence[FileHandler] = BUILT_IN_HANDLERS) -> None:
        self._handlers: dict[str, FileHandler] = {}
        for handler in handlers:
            registered = self.register(handler)
            if isinstance(registered, Err):
                raise ValueError(registered.error)

    def register(self, handler: FileHandler) -> Result[None, str]:
        if handler.id in self._handlers:
            return Err(f"handler already registered: {handler.id}")
        self._handlers[handler.id] = handler
        return Ok(None)

    def get_handler(self, path: str) -> FileHandler | None:
        name = _base(path)
        for handler in self._handlers.values():
            if name in handler.file_names:
                return handler
        for handler in self._handlers.values():
            if handler.detector(name) or handler.detector(path):
                return handler
        return None

    def has_handler(self, path: str) -> bool:
        return self.get_handler(path) is not None

    def ids(self) -> list[str]:
        return list(self._handlers)
