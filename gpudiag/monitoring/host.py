"""Host metrics: core count, RAM capacity and aggregate I/O percentages."""

from __future__ import annotations

from abc import ABC, abstractmethod

import psutil
from loguru import logger

from gpudiag.errors import GpuDiagError, MetricUnavailable, ParseFailure
from gpudiag.monitoring.commands import run_command
from gpudiag.types import HostSnapshot


def parse_core_count(text: str) -> int:
    """Parse ``nproc`` output: a single integer token."""
    tokens = text.split()
    if len(tokens) != 1 or not tokens[0].isdigit():
        raise ParseFailure("core count", text)
    return int(tokens[0])


def parse_ram_capacity(text: str) -> str:
    """Parse ``free -h`` output: the 8th token is total RAM on the ``Mem:`` row."""
    tokens = text.split()
    if len(tokens) < 8 or tokens[6] != "Mem:":
        raise ParseFailure("RAM capacity", text)
    return tokens[7]


def parse_io_stats(text: str) -> tuple[float, float, float]:
    """Parse ``iostat -c`` output: the last three tokens are %iowait %steal %idle."""
    tokens = text.split()
    if len(tokens) < 3:
        raise ParseFailure("I/O statistics", text)
    try:
        iowait, steal, idle = (float(token) for token in tokens[-3:])
    except ValueError as exc:
        raise ParseFailure("I/O statistics", text) from exc
    return iowait, steal, idle


def format_capacity(size: int) -> str:
    """Format bytes in the binary units ``free -h`` prints, e.g. ``31Gi``."""
    value = float(size)
    for unit in ["B", "Ki", "Mi", "Gi", "Ti"]:
        if value < 1024:
            break
        value /= 1024
    else:
        unit = "Pi"
    if unit == "B":
        return f"{int(value)}B"
    return f"{value:.1f}{unit}" if value < 10 else f"{value:.0f}{unit}"


class HostMonitor(ABC):
    """Base host collector; any failure yields no snapshot at all."""

    def collect(self) -> HostSnapshot | None:
        """Collect the host snapshot, or ``None`` when any part fails."""
        try:
            return self._collect()
        except GpuDiagError as exc:
            logger.warning("Host metrics unavailable: {}", exc)
            return None

    @abstractmethod
    def _collect(self) -> HostSnapshot:
        """Collect every host metric or raise a ``GpuDiagError``."""


class UtilityHostMonitor(HostMonitor):
    """Host metrics from ``nproc``, ``free -h`` and ``iostat -c``."""

    def __init__(self, timeout: float = 5.0) -> None:
        self.timeout = timeout

    def _collect(self) -> HostSnapshot:
        cpu_count = parse_core_count(run_command(["nproc"], self.timeout))
        ram_capacity = parse_ram_capacity(run_command(["free", "-h"], self.timeout))
        iowait, steal, idle = parse_io_stats(run_command(["iostat", "-c"], self.timeout))
        return HostSnapshot(
            cpu_count=cpu_count,
            ram_capacity=ram_capacity,
            io_wait_pct=iowait,
            io_steal_pct=steal,
            io_idle_pct=idle,
        )


class PsutilHostMonitor(HostMonitor):
    """Host metrics read through psutil.

    I/O percentages are averages since boot, matching a one-shot ``iostat -c``.
    """

    def _collect(self) -> HostSnapshot:
        try:
            cpu_count = psutil.cpu_count(logical=True)
            total_memory = psutil.virtual_memory().total
            times = psutil.cpu_times()
        except psutil.Error as exc:
            raise MetricUnavailable("host metrics", exc) from exc

        if not cpu_count:
            raise MetricUnavailable("core count", "psutil returned no value")

        # guest time is already included in user and nice on Linux
        total_time = sum(times) - getattr(times, "guest", 0.0) - getattr(times, "guest_nice", 0.0)
        if total_time <= 0:
            raise MetricUnavailable("CPU times", "no time accounted")

        def percent(field: str) -> float:
            return round(getattr(times, field, 0.0) / total_time * 100, 2)

        return HostSnapshot(
            cpu_count=cpu_count,
            ram_capacity=format_capacity(total_memory),
            io_wait_pct=percent("iowait"),
            io_steal_pct=percent("steal"),
            io_idle_pct=percent("idle"),
        )
