"""Release and hotfix orchestration.

Entry points are the start and finish functions of the two flows plus the
recovery paths; each returns a RunResult describing exactly which side
effects happened.
"""

from .errors import ErrorCategory, FlowError, FlowErrorKind
from .hotfix_flow import finish_hotfix, start_hotfix
from .model import (
    Credentials,
    Explicit,
    FlowSettings,
    FlowState,
    HotfixRequest,
    HotfixStartRequest,
    Increment,
    Invocation,
    NextVersionPolicy,
    ReleaseRequest,
    ReleaseStartRequest,
    RunResult,
)
from .publish import CommandPublishGateway, PublishGateway, PublishOutcome, PublishRequest
from .recovery import delete_branch_only, merge_only, republish_only, retag_only
from .release_flow import finish_release, start_release
from .steps import FlowDeps
from .version import Version, parse_version

__all__ = [
    # errors
    "ErrorCategory",
    "FlowError",
    "FlowErrorKind",
    # flows
    "FlowDeps",
    "finish_hotfix",
    "finish_release",
    "start_hotfix",
    "start_release",
    # recovery
    "delete_branch_only",
    "merge_only",
    "republish_only",
    "retag_only",
    # model
    "Credentials",
    "Explicit",
    "FlowSettings",
    "FlowState",
    "HotfixRequest",
    "HotfixStartRequest",
    "Increment",
    "Invocation",
    "NextVersionPolicy",
    "ReleaseRequest",
    "ReleaseStartRequest",
    "RunResult",
    # publish
    "CommandPublishGateway",
    "PublishGateway",
    "PublishOutcome",
    "PublishRequest",
    # version
    "Version",
    "parse_version",
]
