from __future__ import annotations

import pytest

from ._utils import iter_source_files, matches_prefix, package_root, parse_imports

# package -> packages it must never import
FORBIDDEN = {
    "core": ("relflow.platform", "relflow.git", "relflow.release", "relflow.cli", "relflow.output"),
    "platform": ("relflow.git", "relflow.release", "relflow.cli"),
    "git": ("relflow.release", "relflow.cli"),
    "output": ("relflow.release", "relflow.cli"),
    "release": ("relflow.cli",),
}


@pytest.mark.parametrize("package", sorted(FORBIDDEN))
def test_lower_layers_do_not_import_upper_layers(package: str) -> None:
    root = package_root()
    offenders: list[str] = []

    for file_path in iter_source_files(root / package):
        rel = file_path.relative_to(root)
        for item in parse_imports(file_path):
            if any(matches_prefix(item.module, p) for p in FORBIDDEN[package]):
                offenders.append(f"{rel}:{item.line}: forbidden import '{item.module}'")

    assert not offenders, f"{package} layering violations:\n" + "\n".join(offenders)


def test_typer_is_confined_to_cli() -> None:
    root = package_root()
    offenders: list[str] = []

    for file_path in iter_source_files(root):
        rel = file_path.relative_to(root)
        if rel.parts[0] == "cli":
            continue
        for item in parse_imports(file_path):
            if matches_prefix(item.module, "typer"):
                offenders.append(f"{rel}:{item.line}: typer import outside cli")

    assert not offenders, "\n".join(offenders)
