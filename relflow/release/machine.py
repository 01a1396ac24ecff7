from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from relflow.core.result import Err, Result
from relflow.output.console import ConsoleProtocol, Style
from relflow.release.errors import FlowError
from relflow.release.model import BranchKind, FlowState, RunResult, StepRecord, StepStatus


@dataclass(frozen=True, slots=True)
class StepDone:
    status: StepStatus = "done"
    detail: str | None = None


@dataclass(frozen=True, slots=True)
class StepHalt:
    """Stop the run without failing it: earlier side effects stand."""

    error: FlowError


StepOutcome = StepDone | StepHalt
StepHandler = Callable[[], Result[StepOutcome, FlowError]]

DONE = StepDone()


@dataclass
class RunLedger:
    """Side effects recorded by handlers while a run progresses."""

    tag_created: str | None = None
    release_id: str | None = None


def run_steps(
    *,
    kind: BranchKind,
    branch: str,
    steps: Sequence[tuple[FlowState, StepHandler]],
    ledger: RunLedger,
    console: ConsoleProtocol,
) -> RunResult:
    """Execute steps in order, halting at the first failure.

    Nothing is retried. The result names the last completed state so that a
    recovery command can pick up from exactly there.
    """
    records: list[StepRecord] = []
    last: FlowState | None = None

    for state, handler in steps:
        console.print(f"[{kind} {branch}] {state}", Style.DIM)
        outcome = handler()

        if isinstance(outcome, Err):
            return RunResult(
                kind=kind,
                branch=branch,
                outcome="failed",
                last_completed=last,
                failed_at=state,
                tag_created=ledger.tag_created,
                release_id=ledger.release_id,
                error=outcome.error,
                steps=tuple(records),
            )

        if isinstance(outcome.value, StepHalt):
            return RunResult(
                kind=kind,
                branch=branch,
                outcome="partially_merged",
                last_completed=last,
                failed_at=state,
                tag_created=ledger.tag_created,
                release_id=ledger.release_id,
                error=outcome.value.error,
                steps=tuple(records),
            )

        records.append(StepRecord(state=state, status=outcome.value.status, detail=outcome.value.detail))
        last = state

    return RunResult(
        kind=kind,
        branch=branch,
        outcome="done",
        last_completed=last,
        tag_created=ledger.tag_created,
        release_id=ledger.release_id,
        steps=tuple(records),
    )
