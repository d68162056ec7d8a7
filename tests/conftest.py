import logging
import subprocess

import pytest

from mpi_provisioner.lib import command


class FakeRunner:
    """Stands in for subprocess.run; records argv and answers by substring rules."""

    def __init__(self):
        self.calls = []
        self.rules = []

    def on(self, needle, returncode=0, stdout="", stderr=""):
        self.rules.append((needle, returncode, stdout, stderr))
        return self

    def __call__(self, argv, **kwargs):
        argv = list(argv)
        self.calls.append(argv)
        joined = " ".join(argv)
        for needle, rc, out, err in self.rules:
            if needle in joined:
                return subprocess.CompletedProcess(argv, rc, out, err)
        return subprocess.CompletedProcess(argv, 0, "", "")

    @property
    def commands(self):
        return [" ".join(c) for c in self.calls]

    def index_of(self, needle):
        for i, c in enumerate(self.commands):
            if needle in c:
                return i
        raise AssertionError(f"no command containing {needle!r}")

    def ran(self, needle):
        return any(needle in c for c in self.commands)


@pytest.fixture
def fake_run(monkeypatch):
    fake = FakeRunner()
    monkeypatch.setattr(command.subprocess, "run", fake)
    return fake


@pytest.fixture
def state(tmp_path):
    return {
        "config": {"target_root": str(tmp_path / "root"), "package_manager": "dnf", "jobs": 4},
        "execution": {},
    }


@pytest.fixture(autouse=True)
def _reset_root_logger():
    root = logging.getLogger()
    before = list(root.handlers)
    yield
    for h in list(root.handlers):
        if h not in before:
            root.removeHandler(h)
            h.close()
    for attr in ("_mpi_provision_configured", "_mpi_provision_log_path"):
        if hasattr(root, attr):
            delattr(root, attr)
