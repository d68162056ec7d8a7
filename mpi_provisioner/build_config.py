from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import yaml

from .errors import ConfigError


@dataclass(frozen=True)
class BuildVars:
    """Pinned versions and paths substituted into the recipe.

    Bound once from defaults, the config file and CLI overrides; never
    changed afterwards.
    """

    ucx_version: str = "v1.16.0"
    ucx_repo: str = "https://github.com/openucx/ucx.git"
    slurm_version: str = "slurm-23-11-7-1"
    slurm_repo: str = "https://github.com/SchedMD/slurm.git"
    ompi_version: str = "4.1.6"
    # Empty means: derive from ompi_version.
    ompi_url: str = ""
    prefix: str = "/usr/local"
    build_dir: str = "/tmp/mpi-build"
    optflags: str = "-O3"
    psm2_arch: str = "x86_64"


VAR_NAMES = tuple(f.name for f in fields(BuildVars))


def default_ompi_url(version: str) -> str:
    series = ".".join(version.split(".")[:2])
    return f"https://download.open-mpi.org/release/open-mpi/v{series}/openmpi-{version}.tar.bz2"


def bind_vars(*layers: Mapping[str, Any]) -> BuildVars:
    """Merge variable layers (later wins) into a BuildVars."""

    merged: Dict[str, str] = {}
    for layer in layers:
        for k, v in (layer or {}).items():
            if k not in VAR_NAMES:
                raise ConfigError(f"Unknown build variable {k!r} (known: {', '.join(VAR_NAMES)})")
            if v is None:
                continue
            merged[k] = str(v).strip()

    bv = BuildVars(**merged)
    if not bv.ompi_url:
        bv = replace(bv, ompi_url=default_ompi_url(bv.ompi_version))
    if not bv.prefix.startswith("/") or not bv.build_dir.startswith("/"):
        raise ConfigError("prefix and build_dir must be absolute paths inside the image")
    return bv


def parse_var_overrides(items: Sequence[str]) -> Dict[str, str]:
    """Parse NAME=VALUE pairs given on the command line."""

    out: Dict[str, str] = {}
    for item in items:
        name, sep, value = item.partition("=")
        if not sep or not name.strip():
            raise ConfigError(f"Expected NAME=VALUE, got {item!r}")
        out[name.strip()] = value
    return out


@dataclass(frozen=True)
class BuildConfig:
    raw: Dict[str, Any]

    @property
    def target_root(self) -> str:
        return str(((self.raw.get("paths") or {}).get("target_root")) or "/")

    @property
    def state_path(self) -> str:
        return str(((self.raw.get("paths") or {}).get("state")) or "build/provision_state.json")

    @property
    def log_path(self) -> str:
        return str(((self.raw.get("paths") or {}).get("log")) or "logs/mpi-provision.log")

    @property
    def package_manager(self) -> str:
        return str(self.raw.get("package_manager") or "dnf")

    @property
    def arch(self) -> Optional[str]:
        v = self.raw.get("arch")
        return str(v) if v else None

    @property
    def jobs(self) -> int:
        v = self.raw.get("jobs")
        if v is None:
            return os.cpu_count() or 1
        try:
            jobs = int(v)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"jobs must be an integer, got {v!r}") from e
        if jobs < 1:
            raise ConfigError("jobs must be >= 1")
        return jobs

    @property
    def vars(self) -> Dict[str, Any]:
        v = self.raw.get("vars") or {}
        if not isinstance(v, dict):
            raise ConfigError("vars must be a mapping")
        return v

    def packages(self, group: str) -> Optional[List[str]]:
        pkgs = (self.raw.get("packages") or {}).get(group)
        if pkgs is None:
            return None
        if not isinstance(pkgs, list):
            raise ConfigError(f"packages.{group} must be a list")
        return [str(p).strip() for p in pkgs if str(p).strip()]

    @property
    def verify_require(self) -> Optional[List[str]]:
        v = (self.raw.get("verify") or {}).get("require")
        return [str(x) for x in v] if v is not None else None

    @property
    def verify_forbid(self) -> Optional[List[str]]:
        v = (self.raw.get("verify") or {}).get("forbid")
        return [str(x) for x in v] if v is not None else None


def load_build_config(path: str, *, required: bool = True) -> BuildConfig:
    p = Path(path)
    if not p.exists():
        if required:
            raise FileNotFoundError(path)
        return BuildConfig(raw={})

    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise ConfigError("build config must be YAML")

    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse {path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must contain a mapping/object")

    return BuildConfig(raw=raw)
