"""Typed configuration loading and access.

Configuration lives in ``nagare.toml`` at the repository root or, failing
that, in the ``[tool.nagare]`` table of ``pyproject.toml``:

    version_file = "pyproject.toml"

    [project]
    name = "demo"

    [[update_files]]
    path = "README.md"
    key = "version"

    [github]
    create_release = true

    [options]
    tag_prefix = "v"
    git_remote = "origin"
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from .result import Err, Ok, Result
from .structured import StrDict, as_str_dict, get_bool, get_list, get_str, get_table

__all__ = [
    "CONFIG_FILE_NAME",
    "ConfigError",
    "GithubConfig",
    "NagareConfig",
    "OptionsConfig",
    "ProjectConfig",
    "UpdateFileConfig",
    "load_config",
    "load_config_or_default",
]

CONFIG_FILE_NAME = "nagare.toml"

DEFAULT_TAG_PREFIX = "v"
DEFAULT_GIT_REMOTE = "origin"
DEFAULT_BACKUP_DIR = ".nagare-backups"
DEFAULT_VERSION_FILE = "pyproject.toml"
DEFAULT_CHANGELOG = "CHANGELOG.md"


@dataclass(frozen=True, slots=True)
class ConfigError:
    """Error when config cannot be loaded or parsed."""

    message: str
    path: Path | None = None


@dataclass(frozen=True, slots=True)
class ProjectConfig:
    name: str | None = None
    repository: str | None = None


@dataclass(frozen=True, slots=True)
class UpdateFileConfig:
    """An extra file whose ``key`` should follow the released version."""

    path: str
    key: str = "version"


@dataclass(frozen=True, slots=True)
class GithubConfig:
    create_release: bool = False
    owner: str | None = None
    repo: str | None = None
    draft: bool = False

    @property
    def slug(self) -> str | None:
        if self.owner and self.repo:
            return f"{self.owner}/{self.repo}"
        return None


@dataclass(frozen=True, slots=True)
class OptionsConfig:
    tag_prefix: str = DEFAULT_TAG_PREFIX
    git_remote: str = DEFAULT_GIT_REMOTE
    backup_dir: str = DEFAULT_BACKUP_DIR
    changelog: str | None = DEFAULT_CHANGELOG
    skip_confirmation: bool = False
    dry_run: bool = False


@dataclass(frozen=True, slots=True)
class NagareConfig:
    """Main configuration container."""

    project: ProjectConfig = field(default_factory=ProjectConfig)
    version_file: str = DEFAULT_VERSION_FILE
    update_files: tuple[UpdateFileConfig, ...] = ()
    github: GithubConfig = field(default_factory=GithubConfig)
    options: OptionsConfig = field(default_factory=OptionsConfig)

    @property
    def tracked_files(self) -> tuple[str, ...]:
        """Every file a release may rewrite, version file first, deduplicated."""
        out: list[str] = [self.version_file]
        out.extend(f.path for f in self.update_files)
        if self.options.changelog:
            out.append(self.options.changelog)
        seen: set[str] = set()
        unique: list[str] = []
        for p in out:
            if p in seen:
                continue
            seen.add(p)
            unique.append(p)
        return tuple(unique)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> NagareConfig:
        """Create config from a mapping (parsed TOML)."""
        project: StrDict = get_table(data, "project") or {}
        github: StrDict = get_table(data, "github") or {}
        options: StrDict = get_table(data, "options") or {}

        update_files: list[UpdateFileConfig] = []
        for item in get_list(data, "update_files") or []:
            table = as_str_dict(item)
            if table is None:
                raise ValueError("update_files entries must be tables")
            path = get_str(table, "path")
            if path is None:
                raise ValueError("update_files entry is missing 'path'")
            update_files.append(UpdateFileConfig(path=path, key=get_str(table, "key") or "version"))

        changelog: str | None = DEFAULT_CHANGELOG
        if options.get("changelog") is False:
            changelog = None
        elif (value := get_str(options, "changelog")) is not None:
            changelog = value

        return cls(
            project=ProjectConfig(
                name=get_str(project, "name"),
                repository=get_str(project, "repository"),
            ),
            version_file=get_str(data, "version_file") or DEFAULT_VERSION_FILE,
            update_files=tuple(update_files),
            github=GithubConfig(
                create_release=get_bool(github, "create_release") or False,
                owner=get_str(github, "owner"),
                repo=get_str(github, "repo"),
                draft=get_bool(github, "draft") or False,
            ),
            options=OptionsConfig(
                tag_prefix=_get_prefix(options),
                git_remote=get_str(options, "git_remote") or DEFAULT_GIT_REMOTE,
                backup_dir=get_str(options, "backup_dir") or DEFAULT_BACKUP_DIR,
                changelog=changelog,
                skip_confirmation=get_bool(options, "skip_confirmation") or False,
                dry_run=get_bool(options, "dry_run") or False,
            ),
        )


def _get_prefix(options: Mapping[str, object]) -> str:
    # An empty prefix is meaningful (tags like "1.2.3"), so no stripping here.
    value = options.get("tag_prefix")
    if isinstance(value, str):
        return value
    return DEFAULT_TAG_PREFIX


def _parse_toml(path: Path) -> Result[StrDict, ConfigError]:
    import tomllib

    try:
        data_obj: object = tomllib.loads(path.read_bytes().decode("utf-8"))
    except FileNotFoundError:
        return Err(ConfigError(f"Config file not found: {path}", path=path))
    except PermissionError:
        return Err(ConfigError(f"Permission denied reading: {path}", path=path))
    except tomllib.TOMLDecodeError as e:
        return Err(ConfigError(f"Invalid TOML syntax: {e}", path=path))
    except UnicodeDecodeError as e:
        return Err(ConfigError(f"Error reading config: {e}", path=path))

    data = as_str_dict(data_obj)
    if data is None:
        return Err(ConfigError("Config root must be a TOML table", path=path))
    return Ok(data)


def _config_table(root: Path) -> Result[tuple[StrDict, Path] | None, ConfigError]:
    dedicated = root / CONFIG_FILE_NAME
    if dedicated.is_file():
        parsed = _parse_toml(dedicated)
        if isinstance(parsed, Err):
            return parsed
        return Ok((parsed.value, dedicated))

    pyproject = root / "pyproject.toml"
    if pyproject.is_file():
        parsed = _parse_toml(pyproject)
        if isinstance(parsed, Err):
            return parsed
        tool = get_table(parsed.value, "tool") or {}
        table = get_table(tool, "nagare")
        if table is not None:
            return Ok((table, pyproject))

    return Ok(None)


def load_config(root: Path) -> Result[NagareConfig, ConfigError]:
    """Load configuration for the repository at ``root``.

    Returns:
        Ok(NagareConfig) on success (defaults when no config exists),
        Err(ConfigError) when a config file exists but cannot be used.
    """
    found = _config_table(root)
    if isinstance(found, Err):
        return found
    if found.value is None:
        return Ok(NagareConfig())

    table, path = found.value
    try:
        return Ok(NagareConfig.from_dict(table))
    except (KeyError, TypeError, ValueError) as e:
        return Err(ConfigError(f"Invalid config structure: {e}", path=path))


def load_config_or_default(root: Path) -> NagareConfig:
    result = load_config(root)
    if isinstance(result, Ok):
        return result.value
    return NagareConfig()
