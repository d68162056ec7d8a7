from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence

from .state_store import is_step_completed, mark_step_completed

logger = logging.getLogger(__name__)


OUTCOMES = ("ok", "noop", "failed", "skipped")


class Step(Protocol):
    """A single provisioning step; parameters are fixed at construction."""

    step_id: str
    kind: str

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        ...


@dataclass(frozen=True)
class StepResult:
    step_id: str
    kind: str
    outcome: str
    detail: str = ""


@dataclass(frozen=True)
class PipelineResult:
    state: Dict[str, Any]
    ran_steps: List[str]
    skipped_steps: List[str]
    results: List[StepResult]


def _record(state: Dict[str, Any], result: StepResult) -> None:
    state.setdefault("execution", {}).setdefault("results", []).append(asdict(result))


def run_pipeline(
    *,
    state: Dict[str, Any],
    steps: Sequence[Step],
    start_at: Optional[str] = None,
    stop_after: Optional[str] = None,
    force: bool = False,
) -> PipelineResult:
    """Run steps in order; the first exception halts the pipeline.

    A step signals "nothing to do" by setting execution.last_outcome to
    "noop" in the state it returns.
    """

    ids = [s.step_id for s in steps]
    for opt, value in (("start_at", start_at), ("stop_after", stop_after)):
        if value is not None and value not in ids:
            raise ValueError(f"Unknown step for {opt}: {value!r} (known: {', '.join(ids)})")

    ran: List[str] = []
    skipped: List[str] = []
    results: List[StepResult] = []

    started = start_at is None

    for step in steps:
        if not started:
            if step.step_id == start_at:
                started = True
            else:
                continue

        exe = state.setdefault("execution", {})
        exe["current_step"] = step.step_id
        exe["last_outcome"] = None

        if (not force) and is_step_completed(state, step.step_id):
            logger.info("Skipping step %s (already completed)", step.step_id)
            skipped.append(step.step_id)
            result = StepResult(step.step_id, step.kind, "skipped")
        else:
            logger.info("Running step %s (%s)", step.step_id, step.kind)
            try:
                state = step.run(state)
            except Exception as e:
                failed = StepResult(step.step_id, step.kind, "failed", str(e).splitlines()[0] if str(e) else type(e).__name__)
                _record(state, failed)
                results.append(failed)
                raise
            outcome = state.setdefault("execution", {}).pop("last_outcome", None) or "ok"
            mark_step_completed(state, step.step_id)
            ran.append(step.step_id)
            result = StepResult(step.step_id, step.kind, outcome)

        _record(state, result)
        results.append(result)

        if stop_after is not None and step.step_id == stop_after:
            logger.info("Stopping after %s", stop_after)
            break

    exe = state.setdefault("execution", {})
    exe["current_step"] = None
    exe.pop("last_outcome", None)
    return PipelineResult(state=state, ran_steps=ran, skipped_steps=skipped, results=results)
