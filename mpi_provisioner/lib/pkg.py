from __future__ import annotations

import logging
from typing import Sequence

from .chroot import image_cmd

logger = logging.getLogger(__name__)


SUPPORTED_MANAGERS = ("dnf", "apt")


def dnf_install(
    target_root: str,
    packages: Sequence[str],
    *,
    enable_repos: Sequence[str] = (),
    with_weak_deps: bool = False,
    dry_run: bool = False,
) -> None:
    if not packages:
        return
    argv = ["dnf", "install", "-y"]
    if not with_weak_deps:
        argv.append("--setopt=install_weak_deps=False")
    argv += [f"--enablerepo={r}" for r in enable_repos]
    image_cmd(target_root, [*argv, *packages], dry_run=dry_run)


def apt_update(target_root: str, *, dry_run: bool = False) -> None:
    image_cmd(target_root, ["apt-get", "update"], dry_run=dry_run)


def apt_install(
    target_root: str,
    packages: Sequence[str],
    *,
    with_recommends: bool = False,
    dry_run: bool = False,
) -> None:
    if not packages:
        return
    argv = [
        "apt-get",
        "install",
        "-y",
    ]
    if not with_recommends:
        argv.append("--no-install-recommends")
    image_cmd(
        target_root,
        [*argv, *packages],
        env={"DEBIAN_FRONTEND": "noninteractive"},
        dry_run=dry_run,
    )


def install_packages(
    target_root: str,
    packages: Sequence[str],
    *,
    manager: str = "dnf",
    enable_repos: Sequence[str] = (),
    dry_run: bool = False,
) -> None:
    """Install OS packages without weak/recommended dependencies.

    apt has no per-command equivalent of enabling a disabled repo, so
    enable_repos only applies to dnf.
    """

    if manager == "dnf":
        dnf_install(target_root, packages, enable_repos=enable_repos, dry_run=dry_run)
    elif manager == "apt":
        if enable_repos:
            logger.warning("apt ignores enable_repos=%s", ",".join(enable_repos))
        apt_update(target_root, dry_run=dry_run)
        apt_install(target_root, packages, dry_run=dry_run)
    else:
        raise ValueError(f"Unsupported package manager {manager!r} (expected one of {SUPPORTED_MANAGERS})")
