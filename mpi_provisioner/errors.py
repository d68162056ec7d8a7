from __future__ import annotations

from typing import Sequence


class ProvisionError(RuntimeError):
    """Base class for every fatal provisioning failure."""


class ConfigError(ProvisionError):
    """Build configuration or build variables are invalid."""


class CommandError(ProvisionError):
    def __init__(self, argv: Sequence[str], returncode: int, stderr: str = "") -> None:
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"Command failed ({returncode}): {' '.join(self.argv)}\n{stderr}")


class PackageInstallError(ProvisionError):
    pass


class FetchError(ProvisionError):
    pass


class ConfigureError(ProvisionError):
    pass


class CompileError(ProvisionError):
    pass


class InstallError(ProvisionError):
    pass


class VerificationError(ProvisionError):
    pass


# Build phase -> error raised when a command in that phase exits non-zero.
PHASE_ERRORS = {
    "configure": ConfigureError,
    "compile": CompileError,
    "install": InstallError,
}
