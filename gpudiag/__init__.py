"""gpudiag: one-shot diagnostics of GPUs and the processes using them."""

from importlib.metadata import PackageNotFoundError, version

from gpudiag.diagnostics import Bottleneck, diagnose, diagnose_report
from gpudiag.render import Renderer
from gpudiag.report import ReportBuilder, create_builder
from gpudiag.types import (
    DeviceSnapshot,
    DisplayState,
    DriverVersions,
    HostSnapshot,
    ProcessSnapshot,
    Report,
    ThrottleReason,
)


try:
    __version__ = version("gpudiag")
except PackageNotFoundError:  # pragma: no cover - running from a source tree
    __version__ = "0.0.0"

__all__ = [
    "Bottleneck",
    "DeviceSnapshot",
    "DisplayState",
    "DriverVersions",
    "HostSnapshot",
    "ProcessSnapshot",
    "Renderer",
    "Report",
    "ReportBuilder",
    "ThrottleReason",
    "__version__",
    "create_builder",
    "diagnose",
    "diagnose_report",
]
