"""Collectors for device, host and process metrics."""

from __future__ import annotations

from gpudiag.monitoring.device import PYNVML_AVAILABLE, DeviceMonitor, Session
from gpudiag.monitoring.host import HostMonitor, PsutilHostMonitor, UtilityHostMonitor
from gpudiag.monitoring.process import (
    ProcessInspector,
    PsProcessInspector,
    PsutilProcessInspector,
)


__all__ = [
    "PYNVML_AVAILABLE",
    "DeviceMonitor",
    "HostMonitor",
    "ProcessInspector",
    "PsProcessInspector",
    "PsutilHostMonitor",
    "PsutilProcessInspector",
    "Session",
    "UtilityHostMonitor",
]
