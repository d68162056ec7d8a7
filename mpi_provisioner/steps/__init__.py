from .append_config import AppendConfigStep
from .arch_packages import ArchGatedInstallStep
from .cleanup import CleanupStep
from .install_packages import InstallPackagesStep
from .source_build import BuildCommand, SourceBuildStep, compile_cmd, configure_cmd, install_cmd
from .verify_mpi import VerifyMpiStep

__all__ = [
    "AppendConfigStep",
    "ArchGatedInstallStep",
    "BuildCommand",
    "CleanupStep",
    "InstallPackagesStep",
    "SourceBuildStep",
    "VerifyMpiStep",
    "compile_cmd",
    "configure_cmd",
    "install_cmd",
]
