"""Manual recovery commands: rerun one finish step after a failed run."""

from __future__ import annotations

import typer

from relflow.cli.commands._common import confirm_tag, finish_with, next_version_policy
from relflow.cli.context import build_context
from relflow.release.model import BranchKind
from relflow.release.recovery import delete_branch_only, merge_only, republish_only, retag_only
from relflow.release.version import IncrementField

recover_app = typer.Typer(add_completion=False, no_args_is_help=True)


@recover_app.command("retag")
def retag_cmd(
    branch: str = typer.Argument(..., help="Finalized release or hotfix branch"),
    kind: BranchKind = typer.Option(..., "--kind", help="release or hotfix"),
    tag_prefix: str | None = typer.Option(None, "--tag-prefix", help="Tag prefix"),
) -> None:
    """Create and push the tag of a finalized branch."""
    ctx = build_context()
    prefix = ctx.config.repository.tag_prefix if tag_prefix is None else tag_prefix
    result = retag_only(ctx.deps(), kind=kind, branch=branch, tag_prefix=prefix)
    finish_with(result, console=ctx.console)


@recover_app.command("republish")
def republish_cmd(
    tag: str = typer.Argument(..., help="Existing tag to publish, e.g. v2.0.16"),
    kind: BranchKind = typer.Option(..., "--kind", help="release or hotfix"),
    tag_prefix: str | None = typer.Option(None, "--tag-prefix", help="Tag prefix"),
    confirm: str | None = typer.Option(
        None, "--confirm-tag", help="Repeat the tag to confirm (non-interactive)"
    ),
) -> None:
    """Publish the artifacts at an existing tag again."""
    confirm_tag(tag, confirm_tag=confirm)
    ctx = build_context()
    prefix = ctx.config.repository.tag_prefix if tag_prefix is None else tag_prefix
    result = republish_only(ctx.deps(), kind=kind, tag=tag, tag_prefix=prefix)
    finish_with(result, console=ctx.console)


@recover_app.command("merge")
def merge_cmd(
    branch: str = typer.Argument(..., help="Tagged release or hotfix branch"),
    kind: BranchKind = typer.Option(..., "--kind", help="release or hotfix"),
    base: str | None = typer.Option(None, "--base", help="Base branch (default from config)"),
    tag_prefix: str | None = typer.Option(None, "--tag-prefix", help="Tag prefix"),
    increment: IncrementField | None = typer.Option(
        None, "--increment", help="Release only: next development version bump (default: minor)"
    ),
    next_version: str | None = typer.Option(
        None, "--next-version", help="Release only: explicit next version, X.Y.Z-SNAPSHOT"
    ),
    base_tag: str | None = typer.Option(
        None, "--base-tag", help="Hotfix only: tag the hotfix was cut from"
    ),
) -> None:
    """Merge (release) or cherry-pick (hotfix) a tagged branch into base."""
    policy = next_version_policy(increment=increment, next_version=next_version)
    ctx = build_context()
    repo_cfg = ctx.config.repository
    result = merge_only(
        ctx.deps(),
        kind=kind,
        branch=branch,
        base_branch=base or repo_cfg.base_branch,
        tag_prefix=repo_cfg.tag_prefix if tag_prefix is None else tag_prefix,
        policy=policy if kind == "release" else None,
        base_tag=base_tag,
    )
    finish_with(result, console=ctx.console)


@recover_app.command("delete-branch")
def delete_branch_cmd(
    branch: str = typer.Argument(..., help="Branch to delete locally and remotely"),
    kind: BranchKind = typer.Option(..., "--kind", help="release or hotfix"),
    base: str | None = typer.Option(None, "--base", help="Base branch (default from config)"),
    force: bool = typer.Option(False, "--force", help="Delete even with unmerged work"),
) -> None:
    """Delete a finished branch; a missing branch is not an error."""
    ctx = build_context()
    result = delete_branch_only(
        ctx.deps(),
        kind=kind,
        branch=branch,
        base_branch=base or ctx.config.repository.base_branch,
        force=force,
    )
    finish_with(result, console=ctx.console)
