"""Shared data structures for diagnostic snapshots."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class DisplayState(Enum):
    """Display output state of a device."""

    NONE = "None"
    CONNECTED = "Connected"
    ACTIVE = "Active"

    @classmethod
    def resolve(cls, *, connected: bool, active: bool) -> DisplayState:
        """Pick the strongest state reported by the display flags."""
        if active:
            return cls.ACTIVE
        if connected:
            return cls.CONNECTED
        return cls.NONE


class ThrottleReason(Enum):
    """Clock throttle reasons, valued by their NVML bitmask."""

    GPU_IDLE = 0x0000000000000001
    APPLICATIONS_CLOCKS_SETTING = 0x0000000000000002
    SW_POWER_CAP = 0x0000000000000004
    HW_SLOWDOWN = 0x0000000000000008
    SYNC_BOOST = 0x0000000000000010
    SW_THERMAL_SLOWDOWN = 0x0000000000000020
    HW_THERMAL_SLOWDOWN = 0x0000000000000040
    HW_POWER_BRAKE_SLOWDOWN = 0x0000000000000080
    DISPLAY_CLOCK_SETTING = 0x0000000000000100

    @property
    def label(self) -> str:
        """Human readable explanation of the reason."""
        return _THROTTLE_LABELS[self]

    @classmethod
    def from_mask(cls, mask: int) -> frozenset[ThrottleReason]:
        """Decode an NVML throttle bitmask; unknown bits are ignored."""
        return frozenset(reason for reason in cls if mask & reason.value)


_THROTTLE_LABELS = {
    ThrottleReason.GPU_IDLE: "GPU idle",
    ThrottleReason.APPLICATIONS_CLOCKS_SETTING: "application clocks setting",
    ThrottleReason.SW_POWER_CAP: "software power cap",
    ThrottleReason.HW_SLOWDOWN: "hardware slowdown",
    ThrottleReason.SYNC_BOOST: "sync boost",
    ThrottleReason.SW_THERMAL_SLOWDOWN: "software thermal slowdown",
    ThrottleReason.HW_THERMAL_SLOWDOWN: "hardware thermal slowdown",
    ThrottleReason.HW_POWER_BRAKE_SLOWDOWN: "hardware power brake slowdown",
    ThrottleReason.DISPLAY_CLOCK_SETTING: "display clock setting",
}


@dataclass(frozen=True)
class ComputeCapability:
    """CUDA compute capability of a device."""

    major: int
    minor: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}"


@dataclass(frozen=True)
class DeviceSnapshot:
    """One accelerator device at collection time.

    Metrics the device does not support are ``None``.
    """

    index: int
    name: str
    temperature_celsius: int | None = None
    power_usage_mw: int | None = None
    power_limit_mw: int | None = None
    gpu_utilization_pct: int | None = None
    memory_utilization_pct: int | None = None
    memory_used_bytes: int | None = None
    memory_total_bytes: int | None = None
    compute_capability: ComputeCapability | None = None
    core_count: int | None = None
    fan_speed_pct: int | None = None
    display_state: DisplayState | None = None
    throttle_reasons: frozenset[ThrottleReason] = field(default_factory=frozenset)
    process_ids: frozenset[int] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        used, total = self.memory_used_bytes, self.memory_total_bytes
        if used is not None and total is not None and used > total:
            message = f"GPU {self.index}: memory used ({used}) exceeds total ({total})"
            raise ValueError(message)


@dataclass(frozen=True)
class ProcessSnapshot:
    """One OS process running compute work on a device."""

    pid: int
    user: str
    cpu_pct: float
    mem_pct: float
    elapsed: str  # [[dd-]hh:]mm:ss, as printed by ps
    command: str


@dataclass(frozen=True)
class HostSnapshot:
    """Machine wide metrics independent of any device."""

    cpu_count: int
    ram_capacity: str
    io_wait_pct: float
    io_steal_pct: float
    io_idle_pct: float


@dataclass(frozen=True)
class DriverVersions:
    """Versions reported by the monitoring library."""

    driver: str | None = None
    nvml: str | None = None
    cuda: str | None = None


@dataclass(frozen=True)
class Report:
    """Complete diagnostic snapshot of one run."""

    versions: DriverVersions
    devices: tuple[DeviceSnapshot, ...] = ()
    processes: tuple[ProcessSnapshot, ...] = ()
    host: HostSnapshot | None = None

    @property
    def driver_version(self) -> str | None:
        return self.versions.driver

    @property
    def monitoring_api_version(self) -> str | None:
        return self.versions.nvml
