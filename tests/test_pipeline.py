from dataclasses import dataclass

import pytest

from mpi_provisioner.errors import CompileError
from mpi_provisioner.pipeline import run_pipeline
from mpi_provisioner.state_store import (
    ensure_defaults,
    load_state,
    mark_noop,
    save_state,
)


@dataclass
class RecordingStep:
    step_id: str
    log: list
    fail: bool = False
    noop: bool = False
    kind: str = "package-install"

    def run(self, state):
        self.log.append(self.step_id)
        if self.fail:
            raise CompileError(f"{self.step_id} broke")
        if self.noop:
            mark_noop(state)
        return state


def _steps(log, **flags):
    return [RecordingStep(sid, log, **flags.get(sid, {})) for sid in ("10_a", "20_b", "30_c")]


def test_runs_in_declaration_order():
    log = []
    result = run_pipeline(state=ensure_defaults({}), steps=_steps(log))
    assert log == ["10_a", "20_b", "30_c"]
    assert result.ran_steps == ["10_a", "20_b", "30_c"]
    assert [r.outcome for r in result.results] == ["ok", "ok", "ok"]
    assert result.state["execution"]["current_step"] is None


def test_first_failure_halts():
    log = []
    state = ensure_defaults({})
    with pytest.raises(CompileError):
        run_pipeline(state=state, steps=_steps(log, **{"20_b": {"fail": True}}))
    assert log == ["10_a", "20_b"]
    exe = state["execution"]
    assert exe["current_step"] == "20_b"
    assert exe["completed_steps"] == ["10_a"]
    assert exe["results"][-1] == {
        "step_id": "20_b",
        "kind": "package-install",
        "outcome": "failed",
        "detail": "20_b broke",
    }


def test_noop_outcome_recorded():
    log = []
    result = run_pipeline(state=ensure_defaults({}), steps=_steps(log, **{"20_b": {"noop": True}}))
    assert [r.outcome for r in result.results] == ["ok", "noop", "ok"]
    assert "last_outcome" not in result.state["execution"]


def test_resume_skips_completed_steps():
    log = []
    state = ensure_defaults({})
    state["execution"]["completed_steps"] = ["10_a"]
    result = run_pipeline(state=state, steps=_steps(log))
    assert log == ["20_b", "30_c"]
    assert result.skipped_steps == ["10_a"]

    log.clear()
    run_pipeline(state=state, steps=_steps(log), force=True)
    assert log == ["10_a", "20_b", "30_c"]


def test_start_at_and_stop_after():
    log = []
    run_pipeline(state=ensure_defaults({}), steps=_steps(log), start_at="20_b", stop_after="20_b")
    assert log == ["20_b"]


def test_unknown_step_name():
    with pytest.raises(ValueError, match="start_at"):
        run_pipeline(state=ensure_defaults({}), steps=_steps([]), start_at="99_nope")


@pytest.mark.parametrize("name", ["state.json", "state.yaml"])
def test_state_round_trip(tmp_path, name):
    path = str(tmp_path / "sub" / name)
    state = ensure_defaults({})
    state["execution"]["completed_steps"] = ["10_a"]
    save_state(path, state)
    assert load_state(path)["execution"]["completed_steps"] == ["10_a"]


def test_missing_state_is_empty(tmp_path):
    assert load_state(str(tmp_path / "none.json")) == {}
