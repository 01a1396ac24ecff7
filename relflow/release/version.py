from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Literal

from relflow.core.result import Err, Ok, Result
from relflow.release.errors import FlowError

IncrementField = Literal["major", "minor", "patch"]

SNAPSHOT_SUFFIX = "-SNAPSHOT"

_VERSION_RE = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)(?:\.([1-9]\d*))?(-SNAPSHOT)?$"
)


@dataclass(frozen=True, slots=True)
class Version:
    """A ``major.minor.patch[.hotfix][-SNAPSHOT]`` version.

    ``hotfix`` is only set on hotfix lineages and is then at least 1.
    Instances are immutable; every operation below returns a new Version.
    """

    major: int
    minor: int
    patch: int
    hotfix: int | None = None
    snapshot: bool = False

    def __post_init__(self) -> None:
        if min(self.major, self.minor, self.patch) < 0:
            raise ValueError(f"negative version component: {self.major}.{self.minor}.{self.patch}")
        if self.hotfix is not None and self.hotfix < 1:
            raise ValueError(f"hotfix component must be >= 1, got {self.hotfix}")

    def __str__(self) -> str:
        return format_version(self)

    @property
    def is_hotfix(self) -> bool:
        return self.hotfix is not None


def format_version(v: Version) -> str:
    out = f"{v.major}.{v.minor}.{v.patch}"
    if v.hotfix is not None:
        out += f".{v.hotfix}"
    if v.snapshot:
        out += SNAPSHOT_SUFFIX
    return out


def parse_version(text: str) -> Result[Version, FlowError]:
    """Parse a 3- or 4-component version, with or without ``-SNAPSHOT``."""
    m = _VERSION_RE.match(text.strip())
    if m is None:
        return Err(
            FlowError(
                kind="invalid_version",
                message=f"invalid version: {text!r}",
                hint="Expected MAJOR.MINOR.PATCH[.HOTFIX][-SNAPSHOT]",
            )
        )
    hotfix = int(m.group(4)) if m.group(4) is not None else None
    return Ok(
        Version(
            major=int(m.group(1)),
            minor=int(m.group(2)),
            patch=int(m.group(3)),
            hotfix=hotfix,
            snapshot=m.group(5) is not None,
        )
    )


def parse_release_version(text: str) -> Result[Version, FlowError]:
    """Parse with release rules: exactly three numeric components."""
    parsed = parse_version(text)
    if isinstance(parsed, Err):
        return parsed
    if parsed.value.is_hotfix:
        return Err(
            FlowError(
                kind="invalid_version",
                message=f"hotfix version not allowed for a release: {text!r}",
                hint="Release versions are MAJOR.MINOR.PATCH[-SNAPSHOT]",
            )
        )
    return parsed


def parse_hotfix_version(text: str) -> Result[Version, FlowError]:
    """Parse with hotfix rules: three or four numeric components."""
    return parse_version(text)


def increment(v: Version, field: IncrementField) -> Version:
    """Bump one field, zero the less significant ones and mark as snapshot."""
    match field:
        case "major":
            return Version(v.major + 1, 0, 0, snapshot=True)
        case "minor":
            return Version(v.major, v.minor + 1, 0, snapshot=True)
        case "patch":
            return Version(v.major, v.minor, v.patch + 1, snapshot=True)
        case _:
            raise AssertionError(f"unexpected increment field: {field}")


def strip_snapshot(v: Version) -> Version:
    return replace(v, snapshot=False)


def add_snapshot(v: Version) -> Version:
    return replace(v, snapshot=True)


def next_hotfix(v: Version) -> Version:
    return replace(v, hotfix=(v.hotfix or 0) + 1)


def previous_release(v: Version) -> Version | None:
    """The production version a hotfix lineage was cut from.

    ``2.0.15.2`` came from ``2.0.15.1``, ``2.0.15.1`` from ``2.0.15``, and a
    3-component hotfix ``2.0.16`` from ``2.0.15``. Returns None when there is
    nothing before (``x.y.0`` without a hotfix component).
    """
    base = strip_snapshot(v)
    if base.hotfix is not None:
        if base.hotfix > 1:
            return replace(base, hotfix=base.hotfix - 1)
        return replace(base, hotfix=None)
    if base.patch > 0:
        return replace(base, patch=base.patch - 1)
    return None


def tag_name(prefix: str, v: Version) -> str:
    return f"{prefix}{format_version(strip_snapshot(v))}"


def version_from_tag(*, tag: str, prefix: str) -> Result[Version, FlowError]:
    if not tag.startswith(prefix) or len(tag) == len(prefix):
        return Err(
            FlowError(
                kind="invalid_version",
                message=f"tag {tag!r} does not start with prefix {prefix!r}",
            )
        )
    parsed = parse_version(tag[len(prefix) :])
    if isinstance(parsed, Err):
        return parsed
    if parsed.value.snapshot:
        return Err(
            FlowError(
                kind="invalid_version",
                message=f"snapshot versions are never tagged: {tag}",
            )
        )
    return parsed
