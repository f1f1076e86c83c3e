"""Assemble device, process and host metrics into one report."""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from typing import TYPE_CHECKING

from loguru import logger

from gpudiag.errors import DeviceReadFailure, GpuDiagError, ProcessGone
from gpudiag.monitoring import (
    DeviceMonitor,
    PsProcessInspector,
    PsutilHostMonitor,
    PsutilProcessInspector,
    UtilityHostMonitor,
)
from gpudiag.types import DeviceSnapshot, DriverVersions, ProcessSnapshot, Report


if TYPE_CHECKING:
    from gpudiag.config import Settings
    from gpudiag.monitoring import HostMonitor, ProcessInspector, Session
    from gpudiag.types import HostSnapshot


class ReportBuilder:
    """Collect one immutable report per call to :meth:`build`.

    Collection order is devices, then the processes found on them, then host
    metrics. With ``parallel=True`` host metrics are collected in a worker
    thread while the devices are read; the result is the same.
    """

    def __init__(
        self,
        device_monitor: DeviceMonitor,
        process_inspector: ProcessInspector,
        host_monitor: HostMonitor,
        *,
        parallel: bool = False,
    ) -> None:
        self.device_monitor = device_monitor
        self.process_inspector = process_inspector
        self.host_monitor = host_monitor
        self.parallel = parallel

    def build(self) -> Report:
        """Collect a report.

        Raises:
            InitializationFailure: The monitoring session cannot be started.
        """
        if not self.parallel:
            versions, devices = self._collect_devices()
            processes = self._collect_processes(devices)
            host = self.host_monitor.collect()
            return self._assemble(versions, devices, processes, host)

        with ThreadPoolExecutor(max_workers=1, thread_name_prefix="gpudiag-host") as pool:
            host_future: Future[HostSnapshot | None] = pool.submit(self.host_monitor.collect)
            versions, devices = self._collect_devices()
            processes = self._collect_processes(devices)
            host = host_future.result()
        return self._assemble(versions, devices, processes, host)

    def _collect_devices(self) -> tuple[DriverVersions, list[DeviceSnapshot]]:
        with self.device_monitor.initialize() as session:
            versions = self.device_monitor.read_versions(session)
            devices = self._read_devices(session)
        logger.info("Collected {} GPU(s)", len(devices))
        return versions, devices

    def _read_devices(self, session: Session) -> list[DeviceSnapshot]:
        devices: list[DeviceSnapshot] = []
        for index in range(self.device_monitor.device_count(session)):
            try:
                devices.append(self.device_monitor.read_device(session, index))
            except DeviceReadFailure as exc:
                logger.warning("Skipping device: {}", exc)
        return devices

    def _collect_processes(self, devices: list[DeviceSnapshot]) -> list[ProcessSnapshot]:
        """Inspect each distinct pid once, in increasing pid order."""
        pids = sorted({pid for device in devices for pid in device.process_ids})
        processes: list[ProcessSnapshot] = []
        for pid in pids:
            try:
                processes.append(self.process_inspector.inspect(pid))
            except ProcessGone:
                logger.info("Process {} exited before inspection; dropping it", pid)
            except GpuDiagError as exc:
                logger.warning("Dropping process {}: {}", pid, exc)
        return processes

    @staticmethod
    def _assemble(
        versions: DriverVersions,
        devices: list[DeviceSnapshot],
        processes: list[ProcessSnapshot],
        host: HostSnapshot | None,
    ) -> Report:
        return Report(
            versions=versions,
            devices=tuple(devices),
            processes=tuple(processes),
            host=host,
        )


def create_builder(settings: Settings, *, parallel: bool = False) -> ReportBuilder:
    """Wire the collectors selected by ``settings.backend``."""
    if settings.backend == "psutil":
        process_inspector: ProcessInspector = PsutilProcessInspector()
        host_monitor: HostMonitor = PsutilHostMonitor()
    else:
        process_inspector = PsProcessInspector(timeout=settings.command_timeout)
        host_monitor = UtilityHostMonitor(timeout=settings.command_timeout)
    return ReportBuilder(
        DeviceMonitor(),
        process_inspector,
        host_monitor,
        parallel=parallel,
    )
