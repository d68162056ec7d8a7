from __future__ import annotations

import logging
from typing import Mapping, Sequence

from .command import CmdResult, fmt_argv, run_cmd

logger = logging.getLogger(__name__)


def is_host_root(target_root: str) -> bool:
    """True when provisioning the running system (inside the image build)."""

    return target_root.rstrip("/") == ""


def image_cmd(
    target_root: str,
    argv: Sequence[str],
    *,
    cwd: str | None = None,
    env: Mapping[str, str] | None = None,
    check: bool = True,
    dry_run: bool = False,
) -> CmdResult:
    """Run a command inside the target image.

    cwd is a path inside the image. For a chroot the working directory and
    environment are set up by a small shell prologue since chroot(8) has
    neither option.
    """

    if is_host_root(target_root):
        return run_cmd(argv, cwd=cwd, env=env, check=check, dry_run=dry_run)

    inner: list[str] = ["env", *[f"{k}={v}" for k, v in (env or {}).items()], *argv]
    if cwd:
        return run_cmd(
            ["chroot", target_root, "/bin/sh", "-c", f"cd {fmt_argv([cwd])} && exec {fmt_argv(inner)}"],
            check=check,
            dry_run=dry_run,
        )
    return run_cmd(["chroot", target_root, *inner], check=check, dry_run=dry_run)


def mount_chroot_binds(target_root: str, *, dry_run: bool = False) -> None:
    if is_host_root(target_root):
        return
    # Minimal bind mounts for package managers, git and compilers
    for src, dst in [
        ("/dev", f"{target_root}/dev"),
        ("/proc", f"{target_root}/proc"),
        ("/sys", f"{target_root}/sys"),
    ]:
        run_cmd(["mount", "--bind", src, dst], dry_run=dry_run)


def umount_chroot_binds(target_root: str, *, dry_run: bool = False) -> None:
    if is_host_root(target_root):
        return
    for p in [f"{target_root}/sys", f"{target_root}/proc", f"{target_root}/dev"]:
        run_cmd(["umount", "-lf", p], check=False, dry_run=dry_run)
