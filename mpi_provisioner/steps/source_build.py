from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Tuple, Union

from ..errors import PHASE_ERRORS, CommandError, FetchError
from ..lib.chroot import image_cmd, mount_chroot_binds, umount_chroot_binds
from ..lib.fetch import ArchiveSource, GitSource, fetch_source
from ..state_store import record_decision

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildCommand:
    """One configure/make/make-install invocation.

    "{jobs}" inside an argument is replaced by the configured parallelism.
    """

    argv: Tuple[str, ...]
    phase: str = "compile"

    def __post_init__(self) -> None:
        if self.phase not in PHASE_ERRORS:
            raise ValueError(f"Unknown build phase {self.phase!r}")

    def render(self, *, jobs: int) -> list[str]:
        return [a.replace("{jobs}", str(jobs)) for a in self.argv]


def configure_cmd(*argv: str) -> BuildCommand:
    return BuildCommand(tuple(argv), "configure")


def compile_cmd(*argv: str) -> BuildCommand:
    return BuildCommand(tuple(argv), "compile")


def install_cmd(*argv: str) -> BuildCommand:
    return BuildCommand(tuple(argv), "install")


@dataclass(frozen=True)
class SourceBuildStep:
    """Fetch a source tree into source_dir and run its build commands in order.

    Fetch failures are raised before any build command runs.
    """

    step_id: str
    source: Union[GitSource, ArchiveSource]
    source_dir: str
    commands: Tuple[BuildCommand, ...]
    prefix: str
    env: Dict[str, str] = field(default_factory=dict)
    kind: str = "source-build"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = state.get("config") or {}
        target_root = str(cfg.get("target_root") or "/")
        dry_run = bool(cfg.get("dry_run", False))
        jobs = int(cfg.get("jobs") or 1)

        record_decision(
            state,
            self.step_id,
            {"source": self.source.describe(), "prefix": self.prefix, "env": dict(self.env)},
        )

        try:
            try:
                mount_chroot_binds(target_root, dry_run=dry_run)
                fetch_source(target_root, self.source, self.source_dir, dry_run=dry_run)
            except CommandError as e:
                raise FetchError(f"{self.step_id}: failed to fetch {self.source.describe()}\n{e.stderr}") from e

            for cmd in self.commands:
                argv = cmd.render(jobs=jobs)
                try:
                    image_cmd(target_root, argv, cwd=self.source_dir, env=self.env, dry_run=dry_run)
                except CommandError as e:
                    err = PHASE_ERRORS[cmd.phase]
                    raise err(f"{self.step_id}: {cmd.phase} step failed (exit {e.returncode}): {' '.join(argv)}\n{e.stderr}") from e
        finally:
            umount_chroot_binds(target_root, dry_run=dry_run)

        logger.info("Built %s into %s", self.source.describe(), self.prefix)
        return state
