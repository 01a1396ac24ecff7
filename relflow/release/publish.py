"""Publishing gateway.

The orchestrators treat publishing as one opaque call with three possible
outcomes. ``unknown`` (a timeout, a crashed publisher) is kept apart from
``failed`` because artifacts may already be live; neither is ever retried
within the same run.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, Protocol

from relflow.core.result import Err
from relflow.output.console import ConsoleProtocol, Style
from relflow.platform.process import run as run_process
from relflow.release.model import ArtifactDescriptor, Credentials, Invocation
from relflow.release.version import Version

PublishStatus = Literal["published", "failed", "unknown"]

_RELEASE_ID_RE = re.compile(r"(?mi)^\s*release-id:\s*(\S+)\s*$")


@dataclass(frozen=True, slots=True)
class PublishRequest:
    artifact_version: Version
    group_id: str
    tag: str
    credentials: Credentials = field(default_factory=Credentials)
    artifacts: ArtifactDescriptor | None = None
    invocation: Invocation = field(default_factory=Invocation)


@dataclass(frozen=True, slots=True)
class PublishOutcome:
    status: PublishStatus
    release_id: str
    error_detail: str | None = None

    @property
    def success(self) -> bool:
        return self.status == "published"


class PublishGateway(Protocol):
    def publish(self, request: PublishRequest) -> PublishOutcome: ...


class CommandPublishGateway:
    """Runs the configured publish command in the working copy.

    Credentials and invocation fields reach the command as environment
    variables; nothing is written to disk. The release id is read from a
    ``release-id: <id>`` line on stdout and defaults to the tag.
    """

    def __init__(
        self,
        *,
        command: tuple[str, ...],
        cwd: Path,
        console: ConsoleProtocol,
        timeout: float | None,
        base_env: Mapping[str, str] | None = None,
    ) -> None:
        self._command = command
        self._cwd = cwd
        self._console = console
        self._timeout = timeout
        self._base_env = base_env

    def environment(self, request: PublishRequest) -> dict[str, str]:
        env = dict(os.environ if self._base_env is None else self._base_env)
        env["RELFLOW_VERSION"] = str(request.artifact_version)
        env["RELFLOW_GROUP_ID"] = request.group_id
        env["RELFLOW_TAG"] = request.tag
        if request.credentials.username is not None:
            env["RELFLOW_PUBLISH_USERNAME"] = request.credentials.username
        if request.credentials.password is not None:
            env["RELFLOW_PUBLISH_PASSWORD"] = request.credentials.password
        if request.invocation.runner is not None:
            env["RELFLOW_RUNNER"] = request.invocation.runner
        if request.invocation.toolchain_version is not None:
            env["RELFLOW_TOOLCHAIN_VERSION"] = request.invocation.toolchain_version
        return env

    def publish(self, request: PublishRequest) -> PublishOutcome:
        cmd = list(self._command)
        self._console.print(" ".join(cmd), Style.DIM)
        result = run_process(
            cmd, cwd=self._cwd, env=self.environment(request), timeout=self._timeout
        )
        if isinstance(result, Err):
            e = result.error
            return PublishOutcome(
                status="unknown" if e.timed_out else "failed",
                release_id=request.tag,
                error_detail=e.detail(),
            )

        m = _RELEASE_ID_RE.search(result.value)
        release_id = m.group(1) if m is not None else request.tag
        return PublishOutcome(status="published", release_id=release_id)
