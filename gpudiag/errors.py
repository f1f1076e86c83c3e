"""Error types raised while collecting a diagnostic report."""

from __future__ import annotations

from collections.abc import Sequence


class GpuDiagError(RuntimeError):
    """Base class for all collection errors."""


class InitializationFailure(GpuDiagError):
    """The monitoring session could not be started."""


class UnsupportedFeature(GpuDiagError):
    """A requested report section is not implemented."""


class MetricUnavailable(GpuDiagError):
    """A single metric is not supported or could not be read."""

    def __init__(self, metric: str, reason: object) -> None:
        self.metric = metric
        super().__init__(f"{metric} unavailable: {reason}")


class DeviceReadFailure(GpuDiagError):
    """A device could not be read at all."""

    def __init__(self, index: int, reason: object) -> None:
        self.index = index
        super().__init__(f"GPU {index} could not be read: {reason}")


class SubprocessFailure(GpuDiagError):
    """An external utility is missing, failed, or timed out."""

    def __init__(
        self,
        command: Sequence[str],
        reason: str,
        returncode: int | None = None,
    ) -> None:
        self.command = tuple(command)
        self.returncode = returncode
        super().__init__(f"`{' '.join(self.command)}` {reason}")


class ParseFailure(GpuDiagError):
    """Utility output did not have the expected shape."""

    def __init__(self, what: str, text: str) -> None:
        self.text = text
        super().__init__(f"could not parse {what} from {text.strip()!r}")


class ProcessGone(GpuDiagError):
    """The process exited before it could be inspected."""

    def __init__(self, pid: int) -> None:
        self.pid = pid
        super().__init__(f"process {pid} no longer exists")
