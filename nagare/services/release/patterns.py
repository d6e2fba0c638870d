"""Builders for version-matching regular expressions.

Every pattern marks the text to replace with a named group ``value``. The
file update engine only ever rewrites that span, so the surrounding
formatting (indentation, quotes, trailing comments) is preserved and
re-applying the same version is a no-op.
"""

from __future__ import annotations

import re
from typing import Literal

__all__ = [
    "BADGE_COLORS",
    "SEMVER",
    "const_assignment",
    "json_version",
    "py_assignment",
    "toml_version",
    "version_badge",
    "yaml_version",
]

SEMVER = r"\d+\.\d+\.\d+(?:-[0-9A-Za-z.-]+)?(?:\+[0-9A-Za-z.-]+)?"
BADGE_COLORS = "blue|green|red|yellow|orange|brightgreen|lightgrey"

YamlQuoting = Literal["single", "double", "both", "none"]
BadgeService = Literal["shields.io", "img.shields.io", "any"]


def json_version(indent_aware: bool = True, *, key: str = "version") -> re.Pattern[str]:
    """``"version": "1.2.3"``.

    With ``indent_aware`` the key must start its line, which keeps nested
    objects written on one line from matching.
    """
    name = re.escape(key)
    if indent_aware:
        return re.compile(rf'^(\s*)"{name}"\s*:\s*"(?P<value>[^"]+)"', re.MULTILINE)
    return re.compile(rf'"{name}"\s*:\s*"(?P<value>[^"]+)"')


def toml_version(key: str = "version") -> re.Pattern[str]:
    return re.compile(rf'^(\s*{re.escape(key)}\s*=\s*)"(?P<value>[^"]+)"', re.MULTILINE)


def yaml_version(quoted: YamlQuoting = "both", *, key: str = "version") -> re.Pattern[str]:
    name = re.escape(key)
    match quoted:
        case "single":
            body = r"'(?P<value>[^'\n]+)'"
        case "double":
            body = r'"(?P<value>[^"\n]+)"'
        case "none":
            body = r"(?P<value>[^\s'\"#]+)"
        case _:
            body = r"(?P<q>['\"]?)(?P<value>[^'\"\n#]+?)(?P=q)"
    return re.compile(rf"^(\s*{name}:[ \t]*){body}[ \t]*(?:#.*)?$", re.MULTILINE)


def const_assignment(name: str, exported: bool = True) -> re.Pattern[str]:
    """``export const VERSION = "1.2.3"``."""
    export = r"export\s+" if exported else ""
    return re.compile(rf"{export}const\s+{re.escape(name)}\s*=\s*[\"'](?P<value>[^\"']+)[\"']")


def py_assignment(name: str) -> re.Pattern[str]:
    """Module-level ``__version__ = "1.2.3"`` style assignment."""
    return re.compile(
        rf"^{re.escape(name)}\s*(?::\s*str\s*)?=\s*[\"'](?P<value>[^\"']+)[\"']",
        re.MULTILINE,
    )


def version_badge(service: BadgeService = "any") -> re.Pattern[str]:
    match service:
        case "shields.io":
            return re.compile(
                rf"(?:https?://)?(?<!img\.)shields\.io/badge/version-(?P<value>[^-\s]+)-(?:{BADGE_COLORS})"
            )
        case "img.shields.io":
            return re.compile(
                rf"(?:https?://)?img\.shields\.io/badge/v(?:ersion)?-(?P<value>[^-\s]+)-(?:{BADGE_COLORS})"
            )
        case _:
            return re.compile(
                rf"badge/v(?:ersion)?[-/](?P<value>[^-/\s]+)[-/](?:{BADGE_COLORS})"
            )
