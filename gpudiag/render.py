"""Text tables for a diagnostic report."""

from __future__ import annotations

from dataclasses import dataclass
from io import StringIO
from typing import Callable, Generic, TypeVar

from rich import box
from rich.console import Console, RenderableType
from rich.table import Table
from rich.text import Text

from gpudiag.diagnostics import diagnose_report
from gpudiag.types import DeviceSnapshot, ProcessSnapshot, Report


NOT_AVAILABLE = "N/A"
ELLIPSIS = "..."
NO_PROCESSES = "No compute processes found"
# wide enough for the verbose tables, so rich never squeezes a column
CONSOLE_WIDTH = 200

GIB = 1024**3

RowT = TypeVar("RowT")


def fit_cell(value: str, width: int) -> str:
    """Truncate with a trailing ellipsis or right-pad to exactly ``width``."""
    if len(value) > width:
        if width <= len(ELLIPSIS):
            return value[:width]
        return value[: width - len(ELLIPSIS)] + ELLIPSIS
    return value.ljust(width)


def short_name(name: str) -> str:
    """Keep the last two words of a device name: ``RTX 3090``."""
    return " ".join(name.split()[-2:])


def format_temperature(celsius: int | None) -> str:
    return NOT_AVAILABLE if celsius is None else f"{celsius}°C"


def format_power(usage_mw: int | None, limit_mw: int | None) -> str:
    """Whole watts, e.g. ``150W/350W``."""
    if usage_mw is None or limit_mw is None:
        return NOT_AVAILABLE
    return f"{usage_mw / 1000:.0f}W/{limit_mw / 1000:.0f}W"


def format_device_utilization(gpu_pct: int | None, memory_pct: int | None) -> str:
    if gpu_pct is None or memory_pct is None:
        return NOT_AVAILABLE
    return f"GPU {gpu_pct}% VRAM {memory_pct}%"


def format_memory(used_bytes: int | None, total_bytes: int | None) -> str:
    """GiB with two decimals, e.g. ``8.00GB/24.00GB``."""
    if used_bytes is None or total_bytes is None:
        return NOT_AVAILABLE
    return f"{used_bytes / GIB:.2f}GB/{total_bytes / GIB:.2f}GB"


def format_optional(value: object, suffix: str = "") -> str:
    return NOT_AVAILABLE if value is None else f"{value}{suffix}"


def format_pids(pids: frozenset[int]) -> str:
    return ", ".join(str(pid) for pid in sorted(pids))


def format_process_utilization(cpu_pct: float, mem_pct: float) -> str:
    return f"CPU {cpu_pct:.1f}% RAM {mem_pct:.1f}%"


@dataclass(frozen=True)
class Column(Generic[RowT]):
    """A table column with a fixed display width."""

    header: str
    width: int
    value: Callable[[RowT], str]


DEVICE_COLUMNS: tuple[Column[DeviceSnapshot], ...] = (
    Column("IDX", 3, lambda d: str(d.index)),
    Column("NAME", 15, lambda d: short_name(d.name)),
    Column("TEMP", 6, lambda d: format_temperature(d.temperature_celsius)),
    Column("POWER", 11, lambda d: format_power(d.power_usage_mw, d.power_limit_mw)),
    Column(
        "UTILIZATIONS",
        18,
        lambda d: format_device_utilization(d.gpu_utilization_pct, d.memory_utilization_pct),
    ),
    Column("MEMORY", 15, lambda d: format_memory(d.memory_used_bytes, d.memory_total_bytes)),
    Column("CAPABILITY", 10, lambda d: format_optional(d.compute_capability)),
    Column("CORES", 6, lambda d: format_optional(d.core_count)),
    Column("FAN", 4, lambda d: format_optional(d.fan_speed_pct, "%")),
    Column(
        "DISPLAY",
        9,
        lambda d: NOT_AVAILABLE if d.display_state is None else d.display_state.value,
    ),
    Column("PROCESSES", 10, lambda d: format_pids(d.process_ids)),
)
COMPACT_DEVICE_COLUMNS = DEVICE_COLUMNS[:6]


def _process_columns(command_width: int) -> tuple[Column[ProcessSnapshot], ...]:
    return (
        Column("PID", 8, lambda p: str(p.pid)),
        Column("USER", 10, lambda p: p.user),
        Column("UTILIZATIONS", 20, lambda p: format_process_utilization(p.cpu_pct, p.mem_pct)),
        Column("ELAPSED", 11, lambda p: p.elapsed),
        Column("COMMAND", command_width, lambda p: p.command),
    )


PROCESS_COLUMNS = _process_columns(20)
VERBOSE_PROCESS_COLUMNS = _process_columns(75)


def build_table(columns: tuple[Column[RowT], ...], rows: list[RowT] | tuple[RowT, ...]) -> Table:
    """Build an ASCII table whose cells are already fitted to their widths."""
    table = Table(box=box.ASCII, header_style="bold", show_lines=False)
    for column in columns:
        table.add_column(column.header, width=column.width, no_wrap=True, overflow="crop")
    for row in rows:
        # Text cells keep brackets in commands from being read as markup
        table.add_row(*(Text(fit_cell(column.value(row), column.width)) for column in columns))
    return table


class Renderer:
    """Project a report onto text panels for one verbosity level.

    Args:
        verbose: Show every device column and wider commands.
        show_processes: Add the host header and the process table.
        show_bottlenecks: Add one line per active throttle reason.
    """

    def __init__(
        self,
        *,
        verbose: bool = False,
        show_processes: bool = False,
        show_bottlenecks: bool = False,
    ) -> None:
        self.verbose = verbose
        self.show_processes = show_processes
        self.show_bottlenecks = show_bottlenecks

    @property
    def device_columns(self) -> tuple[Column[DeviceSnapshot], ...]:
        return DEVICE_COLUMNS if self.verbose else COMPACT_DEVICE_COLUMNS

    @property
    def process_columns(self) -> tuple[Column[ProcessSnapshot], ...]:
        return VERBOSE_PROCESS_COLUMNS if self.verbose else PROCESS_COLUMNS

    def device_header(self, report: Report) -> str:
        versions = report.versions
        return (
            f"CUDA Version {versions.cuda or NOT_AVAILABLE} | "
            f"Driver Version {versions.driver or NOT_AVAILABLE} | "
            f"NVML Version {versions.nvml or NOT_AVAILABLE}"
        )

    def host_header(self, report: Report) -> str | None:
        host = report.host
        if host is None:
            return None
        return (
            f"Num CPUs {host.cpu_count} | RAM Capacity {host.ram_capacity} | "
            f"IO Wait {host.io_wait_pct:.2f}% | Steal {host.io_steal_pct:.2f}% | "
            f"Idle {host.io_idle_pct:.2f}%"
        )

    def renderables(self, report: Report) -> list[RenderableType]:
        """Panels in display order: devices, bottlenecks, host and processes."""
        items: list[RenderableType] = [
            Text(self.device_header(report)),
            build_table(self.device_columns, report.devices),
        ]

        if self.show_bottlenecks:
            items.extend(
                Text(
                    f"GPU {bottleneck.device_index} is throttling due to: {bottleneck.reason}",
                    style="bold red",
                )
                for bottleneck in diagnose_report(report)
            )

        if self.show_processes:
            header = self.host_header(report)
            if header is not None:
                items.append(Text(header))
            if report.processes:
                items.append(build_table(self.process_columns, report.processes))
            else:
                items.append(Text(NO_PROCESSES))
        return items

    def print(self, report: Report, console: Console) -> None:
        for item in self.renderables(report):
            console.print(item)

    def render(self, report: Report) -> str:
        """Render to plain text without color codes."""
        buffer = StringIO()
        console = Console(
            file=buffer,
            width=CONSOLE_WIDTH,
            color_system=None,
            force_terminal=False,
            highlight=False,
            emoji=False,
        )
        self.print(report, console)
        return buffer.getvalue()
