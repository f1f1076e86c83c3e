"""Runtime settings read from the environment."""

from __future__ import annotations

import math
import os
from dataclasses import dataclass
from pathlib import Path

from loguru import logger


LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")
BACKENDS = ("utils", "psutil")

DEFAULT_LOG_LEVEL = "WARNING"
DEFAULT_COMMAND_TIMEOUT = 5.0
DEFAULT_BACKEND = "utils"


@dataclass(frozen=True)
class Settings:
    """Settings shared by the collectors and the CLI.

    Attributes:
        log_level: Minimum level of the console log sink.
        log_file: Optional path of a rotating log file.
        command_timeout: Upper bound in seconds for each external utility call.
        backend: ``utils`` to query ps/nproc/free/iostat, ``psutil`` to
            read the same metrics through psutil.
    """

    log_level: str = DEFAULT_LOG_LEVEL
    log_file: Path | None = None
    command_timeout: float = DEFAULT_COMMAND_TIMEOUT
    backend: str = DEFAULT_BACKEND

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> Settings:
        """Build settings from ``GPUDIAG_*`` variables, ignoring invalid values."""
        env = os.environ if environ is None else environ

        log_level = env.get("GPUDIAG_LOG_LEVEL", DEFAULT_LOG_LEVEL).strip().upper()
        if log_level not in LOG_LEVELS:
            logger.warning("Ignoring unknown GPUDIAG_LOG_LEVEL {!r}", log_level)
            log_level = DEFAULT_LOG_LEVEL

        log_file_raw = env.get("GPUDIAG_LOG_FILE", "").strip()
        log_file = Path(log_file_raw) if log_file_raw else None

        timeout_raw = env.get("GPUDIAG_COMMAND_TIMEOUT", "")
        command_timeout = DEFAULT_COMMAND_TIMEOUT
        if timeout_raw:
            try:
                command_timeout = float(timeout_raw)
            except ValueError:
                logger.warning("Ignoring non-numeric GPUDIAG_COMMAND_TIMEOUT {!r}", timeout_raw)
            if not math.isfinite(command_timeout) or command_timeout <= 0:
                logger.warning("Ignoring out of range GPUDIAG_COMMAND_TIMEOUT {!r}", timeout_raw)
                command_timeout = DEFAULT_COMMAND_TIMEOUT

        backend = env.get("GPUDIAG_BACKEND", DEFAULT_BACKEND).strip().lower()
        if backend not in BACKENDS:
            logger.warning("Ignoring unknown GPUDIAG_BACKEND {!r}", backend)
            backend = DEFAULT_BACKEND

        return cls(
            log_level=log_level,
            log_file=log_file,
            command_timeout=command_timeout,
            backend=backend,
        )
