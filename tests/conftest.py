"""Shared fakes for NVML, host metrics and process inspection."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Any

import pytest

from gpudiag.errors import ProcessGone
from gpudiag.types import (
    ComputeCapability,
    DeviceSnapshot,
    DisplayState,
    DriverVersions,
    HostSnapshot,
    ProcessSnapshot,
    Report,
    ThrottleReason,
)


class NVMLError(Exception):
    """Stand-in for ``pynvml.NVMLError``."""


class NVMLErrorNotSupported(NVMLError):
    pass


NOT_SUPPORTED = object()


@dataclass
class FakeGpu:
    """Values a fake device reports; ``NOT_SUPPORTED`` raises on read."""

    name: Any = "NVIDIA GeForce RTX 3090"
    temperature: Any = 65
    power_usage: Any = 150000
    power_limit: Any = 350000
    utilization: Any = (80, 40)
    memory: Any = (8 * 1024**3, 24 * 1024**3)
    capability: Any = (8, 6)
    cores: Any = 10496
    throttle: Any = 0
    fans: Any = (40, 50)
    display_mode: Any = 0
    display_active: Any = 0
    pids: Any = (1234,)


@dataclass
class FakeNvml:
    """Minimal in-memory replacement for the pynvml module."""

    gpus: list[FakeGpu] = field(default_factory=lambda: [FakeGpu()])
    init_error: bool = False
    broken_handles: set[int] = field(default_factory=set)
    driver_version: Any = "550.54.14"
    nvml_version: Any = "12.550.54.14"
    cuda_version: Any = 12040
    calls: list[str] = field(default_factory=list)

    NVMLError = NVMLError
    NVML_TEMPERATURE_GPU = 0
    NVML_FEATURE_DISABLED = 0
    NVML_FEATURE_ENABLED = 1

    def _value(self, value: Any) -> Any:
        if value is NOT_SUPPORTED:
            raise NVMLErrorNotSupported("Not Supported")
        return value

    def nvmlInit(self) -> None:
        self.calls.append("init")
        if self.init_error:
            raise NVMLError("Driver Not Loaded")

    def nvmlShutdown(self) -> None:
        self.calls.append("shutdown")

    def nvmlDeviceGetCount(self) -> int:
        return len(self.gpus)

    def nvmlSystemGetDriverVersion(self) -> str:
        return self._value(self.driver_version)

    def nvmlSystemGetNVMLVersion(self) -> str:
        return self._value(self.nvml_version)

    def nvmlSystemGetCudaDriverVersion(self) -> int:
        return self._value(self.cuda_version)

    def nvmlDeviceGetHandleByIndex(self, index: int) -> FakeGpu:
        if index in self.broken_handles:
            raise NVMLError("GPU is lost")
        return self.gpus[index]

    def nvmlDeviceGetName(self, gpu: FakeGpu) -> str:
        return self._value(gpu.name)

    def nvmlDeviceGetTemperature(self, gpu: FakeGpu, sensor: int) -> int:
        return self._value(gpu.temperature)

    def nvmlDeviceGetPowerUsage(self, gpu: FakeGpu) -> int:
        return self._value(gpu.power_usage)

    def nvmlDeviceGetEnforcedPowerLimit(self, gpu: FakeGpu) -> int:
        return self._value(gpu.power_limit)

    def nvmlDeviceGetUtilizationRates(self, gpu: FakeGpu) -> SimpleNamespace:
        gpu_pct, memory_pct = self._value(gpu.utilization)
        return SimpleNamespace(gpu=gpu_pct, memory=memory_pct)

    def nvmlDeviceGetMemoryInfo(self, gpu: FakeGpu) -> SimpleNamespace:
        used, total = self._value(gpu.memory)
        return SimpleNamespace(used=used, total=total, free=total - used)

    def nvmlDeviceGetCudaComputeCapability(self, gpu: FakeGpu) -> tuple[int, int]:
        return self._value(gpu.capability)

    def nvmlDeviceGetNumGpuCores(self, gpu: FakeGpu) -> int:
        return self._value(gpu.cores)

    def nvmlDeviceGetCurrentClocksThrottleReasons(self, gpu: FakeGpu) -> int:
        return self._value(gpu.throttle)

    def nvmlDeviceGetNumFans(self, gpu: FakeGpu) -> int:
        return len(self._value(gpu.fans))

    def nvmlDeviceGetFanSpeed_v2(self, gpu: FakeGpu, fan: int) -> int:
        return self._value(gpu.fans)[fan]

    def nvmlDeviceGetDisplayMode(self, gpu: FakeGpu) -> int:
        return self._value(gpu.display_mode)

    def nvmlDeviceGetDisplayActive(self, gpu: FakeGpu) -> int:
        return self._value(gpu.display_active)

    def nvmlDeviceGetComputeRunningProcesses(self, gpu: FakeGpu) -> list[SimpleNamespace]:
        return [SimpleNamespace(pid=pid, usedGpuMemory=None) for pid in self._value(gpu.pids)]


class FakeProcessInspector:
    """Process inspector answering from a dict; missing pids are gone."""

    def __init__(self, processes: dict[int, ProcessSnapshot]) -> None:
        self.processes = processes
        self.calls: list[int] = []

    def inspect(self, pid: int) -> ProcessSnapshot:
        self.calls.append(pid)
        if pid not in self.processes:
            raise ProcessGone(pid)
        return self.processes[pid]


class FakeHostMonitor:
    def __init__(self, snapshot: HostSnapshot | None) -> None:
        self.snapshot = snapshot
        self.calls = 0

    def collect(self) -> HostSnapshot | None:
        self.calls += 1
        return self.snapshot


def make_process(pid: int, command: str = "python train.py --epochs 10") -> ProcessSnapshot:
    return ProcessSnapshot(
        pid=pid,
        user="alice",
        cpu_pct=99.5,
        mem_pct=2.1,
        elapsed="01:02:03",
        command=command,
    )


HOST = HostSnapshot(
    cpu_count=16,
    ram_capacity="31Gi",
    io_wait_pct=0.12,
    io_steal_pct=0.0,
    io_idle_pct=97.85,
)


@pytest.fixture
def fake_nvml() -> FakeNvml:
    return FakeNvml()


@pytest.fixture
def sample_device() -> DeviceSnapshot:
    return DeviceSnapshot(
        index=0,
        name="NVIDIA GeForce RTX 3090",
        temperature_celsius=65,
        power_usage_mw=150000,
        power_limit_mw=350000,
        gpu_utilization_pct=80,
        memory_utilization_pct=40,
        memory_used_bytes=8_589_934_592,
        memory_total_bytes=25_769_803_776,
        compute_capability=ComputeCapability(8, 6),
        core_count=10496,
        fan_speed_pct=45,
        display_state=DisplayState.CONNECTED,
        throttle_reasons=frozenset({ThrottleReason.SW_POWER_CAP}),
        process_ids=frozenset({1234, 5678}),
    )


@pytest.fixture
def sample_report(sample_device: DeviceSnapshot) -> Report:
    second = DeviceSnapshot(index=1, name="Tesla T4")
    return Report(
        versions=DriverVersions(driver="550.54.14", nvml="12.550.54.14", cuda="12.4"),
        devices=(sample_device, second),
        processes=(make_process(1234), make_process(5678, "/usr/bin/python3 serve.py")),
        host=HOST,
    )
