from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional, Sequence, Tuple

DEFAULT_LOG_PATH = "logs/mpi-provision.log"
FALLBACK_LOG_NAME = "mpi-provision.log"

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"


def _open_log_file(candidates: Sequence[str]) -> Tuple[Optional[logging.Handler], str]:
    """First candidate path that can be opened for append, or (None, "")."""

    for path in candidates:
        try:
            Path(os.path.dirname(path) or ".").mkdir(parents=True, exist_ok=True)
            return logging.FileHandler(path), path
        except OSError as e:
            logging.getLogger(__name__).warning("Cannot log to %s: %s", path, e)
    return None, ""


def configure_logging(
    log_path: str = DEFAULT_LOG_PATH,
    level: int = logging.INFO,
    also_console: bool = True,
) -> str:
    """Configure the root logger for a provisioning run.

    Commands and step decisions go to log_path. A read-only build context
    falls back to a file in the working directory, and when neither can be
    opened the run logs to the console only.

    Returns the log file actually used ("" for console only).
    """

    root = logging.getLogger()
    root.setLevel(level)

    # Repeated runs in one process share the first configuration.
    if getattr(root, "_mpi_provision_configured", False):
        return getattr(root, "_mpi_provision_log_path", log_path)

    fmt = logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT)

    file_handler, chosen_path = _open_log_file([log_path, str(Path.cwd() / FALLBACK_LOG_NAME)])
    if file_handler is not None:
        file_handler.setFormatter(fmt)
        root.addHandler(file_handler)

    if also_console or file_handler is None:
        console = logging.StreamHandler()
        console.setFormatter(fmt)
        root.addHandler(console)

    setattr(root, "_mpi_provision_configured", True)
    setattr(root, "_mpi_provision_log_path", chosen_path)

    logging.getLogger(__name__).info(
        "Logging initialized (requested=%s, actual=%s)", log_path, chosen_path or "<console>"
    )
    return chosen_path
