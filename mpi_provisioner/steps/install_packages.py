from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Tuple

from ..errors import CommandError, PackageInstallError
from ..lib.chroot import mount_chroot_binds, umount_chroot_binds
from ..lib.pkg import install_packages

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InstallPackagesStep:
    step_id: str
    packages: Tuple[str, ...]
    enable_repos: Tuple[str, ...] = ()
    kind: str = "package-install"

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = state.get("config") or {}
        target_root = str(cfg.get("target_root") or "/")
        manager = str(cfg.get("package_manager") or "dnf")
        dry_run = bool(cfg.get("dry_run", False))

        try:
            mount_chroot_binds(target_root, dry_run=dry_run)
            install_packages(
                target_root,
                list(self.packages),
                manager=manager,
                enable_repos=list(self.enable_repos),
                dry_run=dry_run,
            )
        except CommandError as e:
            raise PackageInstallError(
                f"{self.step_id}: {manager} failed to install {' '.join(self.packages)} (exit {e.returncode})\n{e.stderr}"
            ) from e
        finally:
            umount_chroot_binds(target_root, dry_run=dry_run)

        logger.info("Installed %d packages", len(self.packages))
        return state
