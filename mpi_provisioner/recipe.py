from __future__ import annotations

import posixpath
from typing import List, Optional, Sequence

from .build_config import BuildVars
from .errors import ConfigError
from .lib.fetch import ArchiveSource, GitSource
from .pipeline import Step
from .steps import (
    AppendConfigStep,
    ArchGatedInstallStep,
    CleanupStep,
    InstallPackagesStep,
    SourceBuildStep,
    VerifyMpiStep,
    compile_cmd,
    configure_cmd,
    install_cmd,
)


BASE_PACKAGES_BY_MANAGER = {
    # EL 8/9 (dnf)
    "dnf": (
        # toolchain
        "autoconf",
        "automake",
        "libtool",
        "make",
        "gcc",
        "gcc-c++",
        "gcc-gfortran",
        "binutils-devel",
        "perl",
        "which",
        "file",
        # fetch
        "git",
        "curl",
        "ca-certificates",
        "tar",
        "bzip2",
        # runtime libraries OpenMPI/UCX link against
        "numactl-devel",
        "hwloc-devel",
        "libevent-devel",
        "zlib-devel",
        # InfiniBand / RoCE user space
        "rdma-core",
        "rdma-core-devel",
        "libibverbs",
        "libibverbs-utils",
        "librdmacm",
        "librdmacm-utils",
        "infiniband-diags",
        # Ethernet
        "ethtool",
        "iproute",
    ),
    # Debian / Ubuntu (apt)
    "apt": (
        "autoconf",
        "automake",
        "libtool",
        "make",
        "gcc",
        "g++",
        "gfortran",
        "binutils-dev",
        "perl",
        "debianutils",
        "file",
        "git",
        "curl",
        "ca-certificates",
        "tar",
        "bzip2",
        "libnuma-dev",
        "libhwloc-dev",
        "libevent-dev",
        "zlib1g-dev",
        "rdma-core",
        "libibverbs-dev",
        "ibverbs-utils",
        "librdmacm-dev",
        "rdmacm-utils",
        "infiniband-diags",
        "ethtool",
        "iproute2",
    ),
}

# Omni-Path messaging library; only packaged for x86_64.
PSM2_PACKAGES_BY_MANAGER = {
    "dnf": ("libpsm2", "libpsm2-devel"),
    "apt": ("libpsm2-2", "libpsm2-dev"),
}
PSM2_REPOS_BY_MANAGER = {
    "dnf": ("powertools",),
    "apt": (),
}

# Transports excluded from the OpenMPI build: the verbs BTL is superseded by
# UCX, and plm:slurm is not used since the scheduler launches from outside.
OMPI_NO_BUILD = "btl-openib,plm-slurm"

RSH_AGENT_LINE = "plm_rsh_agent = false"

GATE_STEP_ID = "15_install_psm2"


def mca_params_file(prefix: str) -> str:
    return posixpath.join(prefix, "etc", "openmpi-mca-params.conf")


def ucx_steps(v: BuildVars) -> List[Step]:
    src = posixpath.join(v.build_dir, "ucx")
    return [
        SourceBuildStep(
            step_id="20_build_ucx",
            source=GitSource(v.ucx_repo, v.ucx_version),
            source_dir=src,
            prefix=v.prefix,
            commands=(
                configure_cmd("./autogen.sh"),
                configure_cmd("./contrib/configure-release", f"--prefix={v.prefix}"),
                compile_cmd("make", "-j{jobs}"),
                install_cmd("make", "install"),
            ),
        ),
        CleanupStep("25_cleanup_ucx", (src,), protected=(v.prefix,)),
    ]


def pmi2_steps(v: BuildVars) -> List[Step]:
    src = posixpath.join(v.build_dir, "slurm")
    return [
        SourceBuildStep(
            step_id="30_build_pmi2",
            source=GitSource(v.slurm_repo, v.slurm_version),
            source_dir=src,
            prefix=v.prefix,
            commands=(
                configure_cmd("./configure", f"--prefix={v.prefix}"),
                compile_cmd("make", "-C", "contribs/pmi2", "-j{jobs}"),
                install_cmd("make", "-C", "contribs/pmi2", "install"),
            ),
        ),
        CleanupStep("35_cleanup_pmi2", (src,), protected=(v.prefix,)),
    ]


def openmpi_steps(v: BuildVars) -> List[Step]:
    src = posixpath.join(v.build_dir, f"openmpi-{v.ompi_version}")
    return [
        SourceBuildStep(
            step_id="40_build_openmpi",
            source=ArchiveSource(v.ompi_url),
            source_dir=src,
            prefix=v.prefix,
            env={"CFLAGS": v.optflags},
            commands=(
                configure_cmd(
                    "./configure",
                    f"--prefix={v.prefix}",
                    f"--with-ucx={v.prefix}",
                    f"--with-pmi={v.prefix}",
                    "--with-slurm",
                    "--without-verbs",
                    f"--enable-mca-no-build={OMPI_NO_BUILD}",
                    "--disable-pty-support",
                ),
                compile_cmd("make", "-j{jobs}"),
                install_cmd("make", "install"),
            ),
        ),
        CleanupStep("45_cleanup_openmpi", (src, v.build_dir), protected=(v.prefix,)),
        # Default agent is ssh, which the image does not ship.
        AppendConfigStep("50_disable_rsh_agent", mca_params_file(v.prefix), RSH_AGENT_LINE),
    ]


def build_steps(
    v: BuildVars,
    *,
    manager: str = "dnf",
    base_packages: Optional[Sequence[str]] = None,
    psm2_packages: Optional[Sequence[str]] = None,
    verify: bool = True,
    verify_require: Optional[Sequence[str]] = None,
    verify_forbid: Optional[Sequence[str]] = None,
) -> List[Step]:
    """The MPI image recipe in execution order.

    UCX and PMI2 come before OpenMPI because OpenMPI's configure detects
    both under the install prefix.
    """

    if manager not in BASE_PACKAGES_BY_MANAGER:
        raise ConfigError(
            f"Unsupported package manager {manager!r} (expected one of {', '.join(BASE_PACKAGES_BY_MANAGER)})"
        )

    steps: List[Step] = [
        InstallPackagesStep(
            "10_install_base_packages",
            tuple(base_packages if base_packages is not None else BASE_PACKAGES_BY_MANAGER[manager]),
        ),
        ArchGatedInstallStep(
            GATE_STEP_ID,
            arch=v.psm2_arch,
            packages=tuple(psm2_packages if psm2_packages is not None else PSM2_PACKAGES_BY_MANAGER[manager]),
            enable_repos=PSM2_REPOS_BY_MANAGER[manager],
        ),
        *ucx_steps(v),
        *pmi2_steps(v),
        *openmpi_steps(v),
    ]

    if verify:
        steps.append(
            VerifyMpiStep(
                "90_verify_mpi",
                prefix=v.prefix,
                params_file=mca_params_file(v.prefix),
                gate_step_id=GATE_STEP_ID,
                pmi2_version=v.slurm_version,
                ompi_version=v.ompi_version,
                ucx_version=v.ucx_version,
                require=tuple(verify_require) if verify_require is not None else None,
                forbid=tuple(verify_forbid) if verify_forbid is not None else None,
            )
        )
    return steps
