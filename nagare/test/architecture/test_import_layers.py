from __future__ import annotations

from nagare.test.architecture._utils import (
    iter_source_files,
    matches_prefix,
    package_root,
    parse_imports,
)

# Lower layers never reach up into the layers that drive them.
_FORBIDDEN: dict[str, tuple[str, ...]] = {
    "core": ("nagare.platform", "nagare.output", "nagare.git", "nagare.services", "nagare.cli"),
    "platform": ("nagare.output", "nagare.git", "nagare.services", "nagare.cli"),
    "output": ("nagare.git", "nagare.services", "nagare.cli"),
    "git": ("nagare.output", "nagare.services", "nagare.cli"),
    "services": ("nagare.cli", "typer"),
}


def test_layers_only_import_downwards() -> None:
    root = package_root()
    offenders: list[str] = []

    for file_path in iter_source_files():
        rel = file_path.relative_to(root)
        layer = rel.parts[0] if len(rel.parts) > 1 else None
        forbidden = _FORBIDDEN.get(layer or "", ())
        for item in parse_imports(file_path):
            if any(matches_prefix(item.module, prefix) for prefix in forbidden):
                offenders.append(f"{rel}:{item.line}: forbidden import '{item.module}'")

    assert not offenders, "layering violations:\n" + "\n".join(offenders)
