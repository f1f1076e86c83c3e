"""Bounded invocation of external OS utilities."""

from __future__ import annotations

import os
import shutil
import subprocess
from collections.abc import Sequence

from loguru import logger

from gpudiag.errors import SubprocessFailure


def command_env() -> dict[str, str]:
    """Environment for utilities, pinned to the C locale so numbers use '.'."""
    env = os.environ.copy()
    env["LC_ALL"] = "C"
    env["LANG"] = "C"
    return env


def run_command(args: Sequence[str], timeout: float) -> str:
    """Run a utility and return its standard output as text.

    Raises:
        SubprocessFailure: The executable is missing, exits non-zero, does not
            finish within ``timeout`` seconds, or prints non UTF-8 output.
    """
    executable = shutil.which(args[0])
    if executable is None:
        raise SubprocessFailure(args, "not found in PATH")

    logger.trace("Running {}", " ".join(args))
    try:
        completed = subprocess.run(  # noqa: S603
            [executable, *args[1:]],
            capture_output=True,
            check=False,
            timeout=timeout,
            env=command_env(),
        )
    except subprocess.TimeoutExpired as exc:
        raise SubprocessFailure(args, f"timed out after {timeout:g}s") from exc
    except OSError as exc:
        raise SubprocessFailure(args, f"could not be started: {exc}") from exc

    if completed.returncode != 0:
        raise SubprocessFailure(
            args,
            f"exited with status {completed.returncode}",
            returncode=completed.returncode,
        )

    try:
        return completed.stdout.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise SubprocessFailure(args, "printed non-text output") from exc
