from __future__ import annotations

import hashlib
import logging
import posixpath
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from ..errors import CommandError, VerificationError
from ..lib.chroot import image_cmd, mount_chroot_binds, umount_chroot_binds

logger = logging.getLogger(__name__)


DEFAULT_REQUIRE = ("btl:tcp", "pml:ucx")
PSM2_REQUIRE = ("pml:cm", "mtl:psm2")
DEFAULT_FORBID = ("btl:openib",)


def parse_ompi_components(parsable: str) -> Set[str]:
    """Collect "framework:component" names from `ompi_info --parsable` output."""

    found: Set[str] = set()
    for line in parsable.splitlines():
        parts = line.strip().split(":")
        if len(parts) >= 3 and parts[0] == "mca":
            found.add(f"{parts[1]}:{parts[2]}")
    return found


def parse_mca_params(text: str) -> List[Tuple[str, str]]:
    """key = value pairs of an MCA params file, comments and blanks dropped."""

    pairs: List[Tuple[str, str]] = []
    for raw in text.splitlines():
        line = raw.split("#", 1)[0].strip()
        if not line:
            continue
        key, sep, value = line.partition("=")
        if sep:
            pairs.append((key.strip(), value.strip()))
    return pairs


def _first_line(text: str) -> str:
    return next((ln.strip() for ln in text.splitlines() if ln.strip()), "")


_VERSION_RE = re.compile(r"(\d+(?:\.\d+)+(?:[-.~+]?[0-9A-Za-z]+)*)")


def reported_version(line: str) -> str:
    """Version number in a tool banner ("Open MPI v4.1.6", "# Library version: 1.16.0")."""

    m = _VERSION_RE.search(line)
    return m.group(1) if m else ""


@dataclass(frozen=True)
class VerifyMpiStep:
    step_id: str
    prefix: str
    params_file: str
    rsh_agent_value: str = "false"
    gate_step_id: Optional[str] = None
    pmi2_version: Optional[str] = None
    ompi_version: Optional[str] = None
    ucx_version: Optional[str] = None
    require: Optional[Tuple[str, ...]] = None
    forbid: Optional[Tuple[str, ...]] = None
    kind: str = "verify"

    def _required(self, state: Dict[str, Any]) -> Tuple[str, ...]:
        if self.require is not None:
            return self.require
        decisions = (state.get("execution") or {}).get("decisions") or {}
        gate = decisions.get(self.gate_step_id or "") or {}
        # PSM2 components only exist where the arch gate installed libpsm2.
        if gate.get("installed"):
            return DEFAULT_REQUIRE + PSM2_REQUIRE
        return DEFAULT_REQUIRE

    def check_components(self, components: Iterable[str], state: Dict[str, Any]) -> None:
        have = set(components)
        missing = [c for c in self._required(state) if c not in have]
        present = [c for c in (self.forbid if self.forbid is not None else DEFAULT_FORBID) if c in have]
        if missing or present:
            raise VerificationError(
                f"MPI transport check failed: missing={','.join(missing) or '-'} "
                f"forbidden_present={','.join(present) or '-'}"
            )

    def check_params(self, text: str) -> None:
        agents = [v for k, v in parse_mca_params(text) if k == "plm_rsh_agent"]
        if len(agents) != 1:
            raise VerificationError(
                f"{self.params_file}: expected exactly one plm_rsh_agent line, found {len(agents)}"
            )
        if agents[0] != self.rsh_agent_value:
            raise VerificationError(
                f"{self.params_file}: plm_rsh_agent={agents[0]!r}, expected {self.rsh_agent_value!r}"
            )

    def check_version(self, name: str, reported: str, expected: Optional[str]) -> None:
        if not expected:
            return
        found = reported_version(reported)
        want = expected.strip().lstrip("v")
        # release-candidate tags (v1.17.0-rc1) report the bare release number
        if found != want and not want.startswith(found + "-"):
            raise VerificationError(f"{name}: installed version {found or reported!r}, expected {want!r}")

    def _capture(self, target_root: str, argv: List[str]) -> str:
        try:
            return image_cmd(target_root, argv).stdout
        except CommandError as e:
            raise VerificationError(f"{' '.join(argv)} failed (exit {e.returncode})\n{e.stderr}") from e

    def run(self, state: Dict[str, Any]) -> Dict[str, Any]:
        cfg = state.get("config") or {}
        target_root = str(cfg.get("target_root") or "/")
        if bool(cfg.get("dry_run", False)):
            logger.info("Dry run: skipping MPI verification")
            return state

        params = Path(target_root) / self.params_file.lstrip("/")
        if not params.exists():
            raise VerificationError(f"Missing MCA params file {self.params_file}")
        self.check_params(params.read_text(encoding="utf-8"))

        artifacts: Dict[str, str] = {}
        if self.pmi2_version:
            pmi2_lib = Path(target_root) / self.prefix.lstrip("/") / "lib" / "libpmi2.so"
            if not pmi2_lib.exists():
                raise VerificationError(f"Missing PMI2 library {posixpath.join(self.prefix, 'lib', 'libpmi2.so')}")
            artifacts["libpmi2.so"] = hashlib.sha256(pmi2_lib.read_bytes()).hexdigest()

        bindir = posixpath.join(self.prefix, "bin")
        try:
            try:
                mount_chroot_binds(target_root)
            except CommandError as e:
                raise VerificationError(f"Cannot prepare image for checks (exit {e.returncode})\n{e.stderr}") from e

            parsable = self._capture(target_root, [posixpath.join(bindir, "ompi_info"), "--parsable"])
            components = parse_ompi_components(parsable)
            self.check_components(components, state)

            versions = {
                "openmpi": _first_line(self._capture(target_root, [posixpath.join(bindir, "ompi_info"), "--version"])),
                "ucx": _first_line(self._capture(target_root, [posixpath.join(bindir, "ucx_info"), "-v"])),
            }
        finally:
            umount_chroot_binds(target_root)

        self.check_version("openmpi", versions["openmpi"], self.ompi_version)
        self.check_version("ucx", versions["ucx"], self.ucx_version)
        if self.pmi2_version:
            # libpmi2 reports no version; the pinned Slurm tag stands in and
            # the library checksum identifies the installed build.
            versions["pmi2"] = self.pmi2_version

        exe = state.setdefault("execution", {})
        exe["versions"] = versions
        exe["artifacts"] = artifacts
        exe["mca_components"] = sorted(components)
        logger.info("MPI verification passed (%s)", ", ".join(f"{k}={v}" for k, v in versions.items()))
        return state
