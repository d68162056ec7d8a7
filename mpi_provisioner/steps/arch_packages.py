from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Tuple

from ..lib.arch import host_arch, normalize_arch
from ..state_store import mark_noop, record_decision
from .install_packages import InstallPackagesStep

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArchGatedInstallStep:
    """Install packages only when the build host matches one architecture.

    A mismatch is not an error: the step is recorded as a no-op.
    """

    step_id: str
    arch: str
    packages: Tuple[str, ...]
    enable_repos: Tuple[str, ...] = ()
    kind: str = "conditional-package-install"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = state.get("config") or {}
        arch = host_arch(cfg.get("arch"))
        matched = normalize_arch(arch) == normalize_arch(self.arch)

        record_decision(
            state,
            self.step_id,
            {"host_arch": arch, "expected_arch": self.arch, "installed": matched},
        )

        if not matched:
            logger.info("Host arch %s != %s; skipping %s", arch, self.arch, ",".join(self.packages))
            mark_noop(state)
            return state

        return InstallPackagesStep(
            step_id=self.step_id,
            packages=self.packages,
            enable_repos=self.enable_repos,
        ).run(state)
