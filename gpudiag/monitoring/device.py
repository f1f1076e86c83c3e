"""Accelerator metrics read through NVML."""

from __future__ import annotations

from types import TracebackType
from typing import Any, Callable, TypeVar

from loguru import logger

from gpudiag.errors import DeviceReadFailure, InitializationFailure
from gpudiag.types import (
    ComputeCapability,
    DeviceSnapshot,
    DisplayState,
    DriverVersions,
    ThrottleReason,
)


try:
    import pynvml

    PYNVML_AVAILABLE = True
except ImportError:
    pynvml = None
    PYNVML_AVAILABLE = False
    logger.warning("pynvml not available - GPU monitoring disabled")


T = TypeVar("T")


def _decode(value: str | bytes) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


def format_cuda_version(version: int) -> str:
    """Format an NVML CUDA driver version such as ``12040`` as ``12.4``."""
    return f"{version // 1000}.{(version % 1000) // 10}"


class Session:
    """An open NVML session, shut down when the ``with`` block exits."""

    def __init__(self, nvml: Any) -> None:
        self.nvml = nvml
        self._open = True

    @property
    def is_open(self) -> bool:
        return self._open

    def close(self) -> None:
        """Shut NVML down; safe to call more than once."""
        if not self._open:
            return
        self._open = False
        try:
            self.nvml.nvmlShutdown()
            logger.debug("NVML shutdown complete")
        except self.nvml.NVMLError as exc:
            logger.warning("NVML shutdown failed: {}", exc)

    def __enter__(self) -> Session:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


class DeviceMonitor:
    """Enumerate devices and read one snapshot per device.

    Each metric is read on its own: an unsupported metric leaves its field as
    ``None`` instead of failing the device.
    """

    def __init__(self, nvml: Any = None) -> None:
        self._nvml = nvml if nvml is not None else pynvml

    def initialize(self) -> Session:
        """Start NVML.

        Raises:
            InitializationFailure: NVML is missing or cannot be started.
        """
        if self._nvml is None:
            message = "nvidia-ml-py is not installed"
            raise InitializationFailure(message)
        try:
            self._nvml.nvmlInit()
        except self._nvml.NVMLError as exc:
            message = f"NVML initialization failed: {exc}"
            raise InitializationFailure(message) from exc
        logger.debug("NVML initialized")
        return Session(self._nvml)

    def device_count(self, session: Session) -> int:
        """Number of devices visible to NVML."""
        try:
            return int(session.nvml.nvmlDeviceGetCount())
        except session.nvml.NVMLError as exc:
            message = f"could not count devices: {exc}"
            raise InitializationFailure(message) from exc

    def read_versions(self, session: Session) -> DriverVersions:
        """Driver, NVML and CUDA versions; unreadable ones are ``None``."""
        nvml = session.nvml
        read = _MetricReader(nvml, "system").read
        driver = read("driver version", nvml.nvmlSystemGetDriverVersion)
        nvml_version = read("NVML version", nvml.nvmlSystemGetNVMLVersion)
        cuda = read("CUDA version", nvml.nvmlSystemGetCudaDriverVersion)
        return DriverVersions(
            driver=_decode(driver) if driver is not None else None,
            nvml=_decode(nvml_version) if nvml_version is not None else None,
            cuda=format_cuda_version(int(cuda)) if cuda is not None else None,
        )

    def read_device(self, session: Session, index: int) -> DeviceSnapshot:
        """Read every metric of one device.

        Raises:
            DeviceReadFailure: The device handle or its name cannot be read.
        """
        nvml = session.nvml
        try:
            handle = nvml.nvmlDeviceGetHandleByIndex(index)
            name = _decode(nvml.nvmlDeviceGetName(handle))
        except nvml.NVMLError as exc:
            raise DeviceReadFailure(index, exc) from exc

        device = _MetricReader(nvml, f"GPU {index}", handle)
        read = device.read

        temperature = read("temperature", nvml.nvmlDeviceGetTemperature, nvml.NVML_TEMPERATURE_GPU)
        power_usage = read("power usage", nvml.nvmlDeviceGetPowerUsage)
        power_limit = read("power limit", nvml.nvmlDeviceGetEnforcedPowerLimit)

        utilization = read("utilization", nvml.nvmlDeviceGetUtilizationRates)
        gpu_util = int(utilization.gpu) if utilization is not None else None
        memory_util = int(utilization.memory) if utilization is not None else None

        memory_used, memory_total = _read_memory(device)

        capability = read("compute capability", nvml.nvmlDeviceGetCudaComputeCapability)
        cores = read("core count", nvml.nvmlDeviceGetNumGpuCores)
        throttle_mask = read("throttle reasons", nvml.nvmlDeviceGetCurrentClocksThrottleReasons)
        processes = read("compute processes", nvml.nvmlDeviceGetComputeRunningProcesses)

        return DeviceSnapshot(
            index=index,
            name=name,
            temperature_celsius=int(temperature) if temperature is not None else None,
            power_usage_mw=int(power_usage) if power_usage is not None else None,
            power_limit_mw=int(power_limit) if power_limit is not None else None,
            gpu_utilization_pct=gpu_util,
            memory_utilization_pct=memory_util,
            memory_used_bytes=memory_used,
            memory_total_bytes=memory_total,
            compute_capability=(
                ComputeCapability(*capability) if capability is not None else None
            ),
            core_count=int(cores) if cores is not None else None,
            fan_speed_pct=_read_fan_speed(device),
            display_state=_read_display_state(device),
            throttle_reasons=(
                ThrottleReason.from_mask(int(throttle_mask))
                if throttle_mask is not None
                else frozenset()
            ),
            process_ids=frozenset(int(proc.pid) for proc in processes or ()),
        )


class _MetricReader:
    """Read NVML values one at a time, turning NVML errors into ``None``."""

    def __init__(self, nvml: Any, scope: str, handle: Any = None) -> None:
        self.nvml = nvml
        self.scope = scope
        self.handle = handle

    def read(self, metric: str, reader: Callable[..., T], *args: Any) -> T | None:
        if self.handle is not None:
            args = (self.handle, *args)
        try:
            return reader(*args)
        except self.nvml.NVMLError as exc:
            logger.debug("{}: {} unavailable: {}", self.scope, metric, exc)
            return None


def _read_memory(device: _MetricReader) -> tuple[int | None, int | None]:
    info = device.read("memory", device.nvml.nvmlDeviceGetMemoryInfo)
    if info is None:
        return None, None
    used, total = int(info.used), int(info.total)
    if used > total:
        logger.warning("{}: memory used {} exceeds total {}; ignoring", device.scope, used, total)
        return None, None
    return used, total


def _read_fan_speed(device: _MetricReader) -> int | None:
    """Mean of all fan readings floored to whole percent, ``None`` without fans."""
    fan_count = device.read("fan count", device.nvml.nvmlDeviceGetNumFans)
    if not fan_count:
        return None
    speeds = []
    for fan in range(int(fan_count)):
        speed = device.read(f"fan {fan}", device.nvml.nvmlDeviceGetFanSpeed_v2, fan)
        if speed is None:
            return None
        speeds.append(int(speed))
    return sum(speeds) // len(speeds)


def _read_display_state(device: _MetricReader) -> DisplayState | None:
    nvml = device.nvml
    mode = device.read("display mode", nvml.nvmlDeviceGetDisplayMode)
    active = device.read("display active", nvml.nvmlDeviceGetDisplayActive)
    if mode is None and active is None:
        return None
    return DisplayState.resolve(
        connected=mode == nvml.NVML_FEATURE_ENABLED,
        active=active == nvml.NVML_FEATURE_ENABLED,
    )
