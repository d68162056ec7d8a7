from __future__ import annotations

import platform


def host_arch(override: str | None = None) -> str:
    """Architecture identifier as reported by `uname -m` (e.g. x86_64, aarch64)."""

    if override:
        return override.strip()
    return platform.machine()


def normalize_arch(machine: str) -> str:
    m = machine.lower()
    return {
        "amd64": "x86_64",
        "x86_64": "x86_64",
        "arm64": "aarch64",
        "aarch64": "aarch64",
        "ppc64el": "ppc64le",
        "ppc64le": "ppc64le",
    }.get(m, m)
