"""Maven descriptor (pom.xml) version editing.

Versions are rewritten in place: only the text between ``<version>`` and
``</version>`` changes, so formatting, comments and ordering survive. The
file is also parsed with ElementTree to reject malformed XML before any
offsets are trusted.

For multi-module builds every module listed under ``<modules>`` is visited
recursively. A module's own ``<version>`` and its ``<parent><version>`` (when
the parent is part of the same reactor) are set to the new version, and so is
any literal ``<dependency><version>`` that points at another reactor module.
Property references such as ``${project.version}`` are left alone. All new
contents are computed first and written together, so a missing or broken
module leaves every descriptor untouched.
"""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path

from relflow.core.result import Err, Ok, Result
from relflow.platform.files import atomic_write_many
from relflow.release.errors import FlowError
from relflow.release.model import ArtifactDescriptor
from relflow.release.version import Version, format_version, parse_version

POM_FILE = "pom.xml"

_MASK_RE = re.compile(r"<!--.*?-->|<\?.*?\?>|<!\[CDATA\[.*?\]\]>|<!DOCTYPE[^>]*>", re.S)
_TAG_RE = re.compile(r"<(/?)([A-Za-z_][\w.:-]*)([^>]*?)(/?)>")

_PROJECT_VERSION = ("project", "version")
_PROJECT_GROUP = ("project", "groupId")
_PROJECT_ARTIFACT = ("project", "artifactId")
_PARENT_VERSION = ("project", "parent", "version")
_PARENT_GROUP = ("project", "parent", "groupId")
_PARENT_ARTIFACT = ("project", "parent", "artifactId")
_MODULE = ("project", "modules", "module")
_DEPENDENCY_PATHS = frozenset(
    {
        ("project", "dependencies", "dependency"),
        ("project", "dependencyManagement", "dependencies", "dependency"),
    }
)


@dataclass(frozen=True, slots=True)
class _Span:
    start: int
    end: int
    value: str


@dataclass(frozen=True, slots=True)
class _Dependency:
    group_id: str | None
    artifact_id: str | None
    version: _Span | None


@dataclass(frozen=True, slots=True)
class PomFile:
    """The parts of a pom.xml that version handling cares about."""

    path: Path
    text: str
    group_id: str | None
    artifact_id: str | None
    version: _Span | None
    parent_group_id: str | None
    parent_artifact_id: str | None
    parent_version: _Span | None
    modules: tuple[str, ...]
    dependencies: tuple[_Dependency, ...] = ()

    @property
    def effective_group_id(self) -> str | None:
        return self.group_id or self.parent_group_id


def _malformed(path: Path, reason: str) -> FlowError:
    return FlowError(
        kind="descriptor_malformed",
        message=f"malformed descriptor {path}: {reason}",
        hint=str(path),
    )


def _dependency(fields: dict[str, _Span]) -> _Dependency:
    def value(key: str) -> str | None:
        span = fields.get(key)
        return span.value if span is not None and span.value else None

    return _Dependency(
        group_id=value("groupId"),
        artifact_id=value("artifactId"),
        version=fields.get("version"),
    )


def _scan(path: Path, text: str) -> Result[PomFile, FlowError]:
    try:
        root = ET.fromstring(text)
    except ET.ParseError as e:
        return Err(_malformed(path, str(e)))
    if root.tag.rsplit("}", 1)[-1] != "project":
        return Err(_malformed(path, f"root element is <{root.tag}>, expected <project>"))

    masked = _MASK_RE.sub(lambda m: " " * len(m.group(0)), text)
    stack: list[tuple[str, int]] = []
    found: dict[tuple[str, ...], _Span] = {}
    modules: list[str] = []
    dependencies: list[_Dependency] = []
    dependency: dict[str, _Span] | None = None

    for m in _TAG_RE.finditer(masked):
        closing, name, _attrs, self_closing = m.group(1), m.group(2), m.group(3), m.group(4)
        name = name.rsplit(":", 1)[-1]
        if self_closing:
            continue
        if not closing:
            stack.append((name, m.end()))
            if tuple(n for n, _ in stack) in _DEPENDENCY_PATHS:
                dependency = {}
            continue
        if not stack or stack[-1][0] != name:
            return Err(_malformed(path, f"unbalanced </{name}>"))
        path_key = tuple(n for n, _ in stack)
        _, content_start = stack.pop()
        span = _Span(content_start, m.start(), text[content_start : m.start()].strip())
        if path_key == _MODULE:
            modules.append(span.value)
        elif dependency is not None and path_key[:-1] in _DEPENDENCY_PATHS:
            dependency.setdefault(path_key[-1], span)
        elif dependency is not None and path_key in _DEPENDENCY_PATHS:
            dependencies.append(_dependency(dependency))
            dependency = None
        elif path_key not in found:
            found[path_key] = span

    def value(key: tuple[str, ...]) -> str | None:
        span = found.get(key)
        return span.value if span is not None and span.value else None

    return Ok(
        PomFile(
            path=path,
            text=text,
            group_id=value(_PROJECT_GROUP),
            artifact_id=value(_PROJECT_ARTIFACT),
            version=found.get(_PROJECT_VERSION),
            parent_group_id=value(_PARENT_GROUP),
            parent_artifact_id=value(_PARENT_ARTIFACT),
            parent_version=found.get(_PARENT_VERSION),
            modules=tuple(modules),
            dependencies=tuple(dependencies),
        )
    )


def load_pom(path: Path) -> Result[PomFile, FlowError]:
    """Read and scan a single pom.xml."""
    if not path.is_file():
        return Err(
            FlowError(
                kind="descriptor_not_found",
                message=f"descriptor not found: {path}",
                hint="Check the module root and the <modules> list.",
            )
        )
    try:
        # Decoded by hand so CRLF line endings survive a rewrite.
        text = path.read_bytes().decode("utf-8")
    except (OSError, UnicodeDecodeError) as e:
        return Err(
            FlowError(
                kind="descriptor_not_found",
                message=f"failed to read {path.name}: {e}",
                hint=str(path),
            )
        )
    return _scan(path, text)


def _module_pom_path(base_dir: Path, module: str) -> Path:
    candidate = base_dir / module
    if module.endswith(".xml"):
        return candidate
    return candidate / POM_FILE


def load_reactor(module_root: Path, *, process_all_modules: bool) -> Result[list[PomFile], FlowError]:
    """Load the root pom and, optionally, every module reachable from it."""
    root = load_pom(module_root / POM_FILE)
    if isinstance(root, Err):
        return root

    poms: list[PomFile] = [root.value]
    if not process_all_modules:
        return Ok(poms)

    seen = {root.value.path.resolve()}
    queue = [root.value]
    while queue:
        current = queue.pop(0)
        for module in current.modules:
            path = _module_pom_path(current.path.parent, module)
            key = path.resolve()
            if key in seen:
                continue
            seen.add(key)
            loaded = load_pom(path)
            if isinstance(loaded, Err):
                return loaded
            poms.append(loaded.value)
            queue.append(loaded.value)
    return Ok(poms)


def read_current_version(module_root: Path) -> Result[Version, FlowError]:
    """Version declared by the root descriptor itself."""
    pom = load_pom(module_root / POM_FILE)
    if isinstance(pom, Err):
        return pom

    if pom.value.version is None:
        return Err(_malformed(pom.value.path, "root descriptor declares no <version> of its own"))
    raw = pom.value.version.value

    parsed = parse_version(raw)
    if isinstance(parsed, Err):
        hint = "Property-based versions are not supported." if raw.startswith("${") else None
        return Err(
            FlowError(
                kind="descriptor_malformed",
                message=f"unsupported version {raw!r} in {pom.value.path}",
                hint=hint,
            )
        )
    return parsed


def expect_version(module_root: Path, expected: Version) -> Result[Version, FlowError]:
    """Fail with ``version_mismatch`` unless the descriptor is at ``expected``."""
    current = read_current_version(module_root)
    if isinstance(current, Err):
        return current
    if current.value != expected:
        return Err(
            FlowError(
                kind="version_mismatch",
                message=(
                    f"descriptor version is {current.value}, expected {format_version(expected)}"
                ),
                hint=str(module_root / POM_FILE),
            )
        )
    return current


def _replace_spans(text: str, spans: list[_Span], new_value: str) -> str:
    out = text
    for span in sorted(spans, key=lambda s: s.start, reverse=True):
        out = out[: span.start] + new_value + out[span.end :]
    return out


def _pins_member(
    pom: PomFile, dep: _Dependency, members: set[tuple[str | None, str | None]]
) -> bool:
    """A literal dependency version on another module of the same reactor."""
    if dep.version is None or dep.version.value.startswith("${"):
        return False
    group_id = dep.group_id
    if group_id in ("${project.groupId}", "${pom.groupId}"):
        group_id = pom.effective_group_id
    return (group_id, dep.artifact_id) in members


def write_version(
    module_root: Path, version: Version, *, process_all_modules: bool
) -> Result[tuple[Path, ...], FlowError]:
    """Set ``version`` on the root descriptor (and all modules if asked).

    Returns the descriptors whose content changed; an empty tuple means the
    version was already in place.
    """
    reactor = load_reactor(module_root, process_all_modules=process_all_modules)
    if isinstance(reactor, Err):
        return reactor

    poms = reactor.value
    root = poms[0]
    if root.version is None:
        return Err(_malformed(root.path, "root descriptor declares no <version> of its own"))

    members = {(p.effective_group_id, p.artifact_id) for p in poms}
    new_value = format_version(version)
    contents: dict[Path, str] = {}

    for pom in poms:
        spans: list[_Span] = []
        if pom.version is not None:
            spans.append(pom.version)
        # An external parent (e.g. a company BOM) keeps its own version.
        if pom.parent_version is not None:
            if (pom.parent_group_id, pom.parent_artifact_id) in members:
                spans.append(pom.parent_version)
        for dep in pom.dependencies:
            if dep.version is not None and _pins_member(pom, dep, members):
                spans.append(dep.version)
        if not spans:
            continue
        updated = _replace_spans(pom.text, spans, new_value)
        if updated != pom.text:
            contents[pom.path] = updated

    if not contents:
        return Ok(())

    try:
        atomic_write_many(contents)
    except OSError as e:
        return Err(
            FlowError(
                kind="descriptor_write_failed",
                message=f"failed to write descriptors: {e}",
                hint="No descriptor was left partially updated.",
            )
        )
    return Ok(tuple(contents))


def read_artifact_descriptor(
    module_root: Path, *, process_all_modules: bool
) -> Result[ArtifactDescriptor, FlowError]:
    reactor = load_reactor(module_root, process_all_modules=process_all_modules)
    if isinstance(reactor, Err):
        return reactor
    root = reactor.value[0]
    group_id = root.effective_group_id
    if group_id is None:
        return Err(_malformed(root.path, "no <groupId> declared"))
    artifact_ids = frozenset(p.artifact_id for p in reactor.value if p.artifact_id is not None)
    return Ok(ArtifactDescriptor(group_id=group_id, artifact_ids=artifact_ids))
