from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass
from typing import Any, Dict, Tuple

from ..lib.chroot import image_cmd
from ..state_store import record_warning

logger = logging.getLogger(__name__)


def _norm(p: str) -> str:
    return posixpath.normpath("/" + p.lstrip("/"))


def _is_protected(path: str, protected: Tuple[str, ...]) -> bool:
    p = _norm(path)
    for keep in protected:
        k = _norm(keep)
        # Removing the prefix itself, or any parent of it, would drop installed files.
        if p == k or p == "/" or k.startswith(p.rstrip("/") + "/"):
            return True
    return False


@dataclass(frozen=True)
class CleanupStep:
    """Best-effort removal of source/staging trees. Never fails the build."""

    step_id: str
    paths: Tuple[str, ...]
    protected: Tuple[str, ...] = ()
    kind: str = "cleanup"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = state.get("config") or {}
        target_root = str(cfg.get("target_root") or "/")
        dry_run = bool(cfg.get("dry_run", False))

        for path in self.paths:
            if _is_protected(path, self.protected):
                logger.warning("Refusing to remove %s (protected install path)", path)
                record_warning(state, {"step": self.step_id, "refused_cleanup": path})
                continue
            try:
                r = image_cmd(target_root, ["rm", "-rf", path], check=False, dry_run=dry_run)
            except OSError as e:
                logger.warning("Cleanup of %s failed: %s", path, e)
                record_warning(state, {"step": self.step_id, "cleanup_failed": path, "error": str(e)})
                continue
            if r.returncode != 0:
                logger.warning("Cleanup of %s exited %d (ignored)", path, r.returncode)
                record_warning(state, {"step": self.step_id, "cleanup_failed": path, "returncode": r.returncode})

        return state
