"""Bottleneck explanations derived from device throttle flags."""

from __future__ import annotations

from typing import NamedTuple

from gpudiag.types import DeviceSnapshot, Report, ThrottleReason


class Bottleneck(NamedTuple):
    """One active throttle reason on one device."""

    device_index: int
    reason: str


def diagnose(device: DeviceSnapshot) -> list[Bottleneck]:
    """List the device's active throttle reasons in declaration order."""
    return [
        Bottleneck(device.index, reason.label)
        for reason in ThrottleReason
        if reason in device.throttle_reasons
    ]


def diagnose_report(report: Report) -> list[Bottleneck]:
    """Diagnose every device, ordered by device index."""
    bottlenecks: list[Bottleneck] = []
    for device in sorted(report.devices, key=lambda d: d.index):
        bottlenecks.extend(diagnose(device))
    return bottlenecks
