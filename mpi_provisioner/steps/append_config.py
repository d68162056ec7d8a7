from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

from ..errors import InstallError
from ..state_store import mark_noop

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppendConfigStep:
    """Append one literal line to a file in the image, creating it if absent.

    The line is written at most once: if it is already present the step is
    a no-op.
    """

    step_id: str
    path: str
    line: str
    kind: str = "config-append"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = state.get("config") or {}
        target_root = str(cfg.get("target_root") or "/")
        dry_run = bool(cfg.get("dry_run", False))

        p = Path(target_root) / self.path.lstrip("/")
        if dry_run:
            logger.info("Would append %r to %s", self.line, str(p))
            return state

        try:
            existing = p.read_text(encoding="utf-8") if p.exists() else ""
            if self.line in existing.splitlines():
                logger.info("%s already contains %r", str(p), self.line)
                mark_noop(state)
                return state

            p.parent.mkdir(parents=True, exist_ok=True)
            with p.open("a", encoding="utf-8") as fh:
                if existing and not existing.endswith("\n"):
                    fh.write("\n")
                fh.write(self.line + "\n")
        except OSError as e:
            raise InstallError(f"{self.step_id}: cannot write {self.path}: {e}") from e

        logger.info("Appended %r to %s", self.line, str(p))
        return state
