"""Unit tests for host metric collection."""

from collections import namedtuple
from unittest.mock import Mock, patch

import psutil
import pytest

from gpudiag.errors import ParseFailure, SubprocessFailure
from gpudiag.monitoring.host import (
    HostMonitor,
    PsutilHostMonitor,
    UtilityHostMonitor,
    format_capacity,
    parse_core_count,
    parse_io_stats,
    parse_ram_capacity,
)


FREE_OUTPUT = """\
               total        used        free      shared  buff/cache   available
Mem:            31Gi        12Gi       2.1Gi       1.0Gi        17Gi        17Gi
Swap:          2.0Gi       512Mi       1.5Gi
"""

IOSTAT_OUTPUT = """\
Linux 6.5.0-26-generic (workstation) \t03/14/2024 \t_x86_64_\t(16 CPU)

avg-cpu:  %user   %nice %system %iowait  %steal   %idle
           1.52    0.01    0.49    0.12    0.00   97.86

"""


class TestParsers:
    """Tests for utility output parsers."""

    def test_core_count(self):
        assert parse_core_count("16\n") == 16

    @pytest.mark.parametrize("text", ["", "sixteen\n", "16 32\n"])
    def test_core_count_rejects_bad_output(self, text):
        with pytest.raises(ParseFailure):
            parse_core_count(text)

    def test_ram_capacity(self):
        assert parse_ram_capacity(FREE_OUTPUT) == "31Gi"

    def test_ram_capacity_rejects_other_layouts(self):
        with pytest.raises(ParseFailure):
            parse_ram_capacity("total used\nSpeicher: 31Gi")

    def test_io_stats(self):
        assert parse_io_stats(IOSTAT_OUTPUT) == (0.12, 0.0, 97.86)

    @pytest.mark.parametrize("text", ["", "0.1 0.2", "avg-cpu: %iowait %steal %idle"])
    def test_io_stats_rejects_bad_output(self, text):
        with pytest.raises(ParseFailure):
            parse_io_stats(text)


@pytest.mark.parametrize(
    ("size", "expected"),
    [
        (512, "512B"),
        (31 * 1024**3, "31Gi"),
        (int(7.7 * 1024**3), "7.7Gi"),
        (512 * 1024**2, "512Mi"),
        (2 * 1024**4, "2.0Ti"),
    ],
)
def test_format_capacity(size, expected):
    assert format_capacity(size) == expected


class TestUtilityHostMonitor:
    """Tests for the nproc/free/iostat backend."""

    @patch("gpudiag.monitoring.host.run_command")
    def test_collect(self, mock_run):
        outputs = {"nproc": "16\n", "free": FREE_OUTPUT, "iostat": IOSTAT_OUTPUT}
        mock_run.side_effect = lambda args, timeout: outputs[args[0]]

        snapshot = UtilityHostMonitor(timeout=2.0).collect()

        assert snapshot is not None
        assert snapshot.cpu_count == 16
        assert snapshot.ram_capacity == "31Gi"
        assert snapshot.io_wait_pct == 0.12
        assert snapshot.io_steal_pct == 0.0
        assert snapshot.io_idle_pct == 97.86
        called = [call.args[0] for call in mock_run.call_args_list]
        assert called == [["nproc"], ["free", "-h"], ["iostat", "-c"]]
        assert all(call.args[1] == 2.0 for call in mock_run.call_args_list)

    @patch("gpudiag.monitoring.host.run_command")
    def test_missing_utility_yields_no_snapshot(self, mock_run):
        def run(args, timeout):
            if args[0] == "iostat":
                raise SubprocessFailure(args, "not found in PATH")
            return {"nproc": "16\n", "free": FREE_OUTPUT}[args[0]]

        mock_run.side_effect = run

        assert UtilityHostMonitor().collect() is None

    @patch("gpudiag.monitoring.host.run_command")
    def test_unparseable_output_yields_no_snapshot(self, mock_run):
        mock_run.return_value = "garbage"

        assert UtilityHostMonitor().collect() is None


CpuTimes = namedtuple(
    "CpuTimes",
    ["user", "nice", "system", "idle", "iowait", "irq", "softirq", "steal", "guest", "guest_nice"],
)


class TestPsutilHostMonitor:
    """Tests for the psutil backend."""

    @patch("gpudiag.monitoring.host.psutil")
    def test_collect(self, mock_psutil):
        mock_psutil.Error = psutil.Error
        mock_psutil.cpu_count.return_value = 8
        mock_psutil.virtual_memory.return_value = Mock(total=16 * 1024**3)
        mock_psutil.cpu_times.return_value = CpuTimes(
            user=10.0, nice=0.0, system=5.0, idle=80.0, iowait=4.0,
            irq=0.0, softirq=0.0, steal=1.0, guest=3.0, guest_nice=0.0,
        )

        snapshot = PsutilHostMonitor().collect()

        assert snapshot is not None
        assert snapshot.cpu_count == 8
        assert snapshot.ram_capacity == "16Gi"
        assert snapshot.io_wait_pct == 4.0
        assert snapshot.io_steal_pct == 1.0
        assert snapshot.io_idle_pct == 80.0

    @patch("gpudiag.monitoring.host.psutil")
    def test_psutil_error_yields_no_snapshot(self, mock_psutil):
        mock_psutil.Error = psutil.Error
        mock_psutil.cpu_count.side_effect = psutil.Error("boom")

        assert PsutilHostMonitor().collect() is None


def test_host_monitor_without_collect_cannot_be_created():
    class Incomplete(HostMonitor):
        pass

    with pytest.raises(TypeError):
        Incomplete()
