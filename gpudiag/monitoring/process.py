"""Per-process details for processes running on a device."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod

import psutil

from gpudiag.errors import MetricUnavailable, ParseFailure, ProcessGone, SubprocessFailure
from gpudiag.monitoring.commands import run_command
from gpudiag.types import ProcessSnapshot


PS_COLUMNS = "pid=,user=,%cpu=,%mem=,etime=,command="


def parse_ps_line(text: str, pid: int) -> ProcessSnapshot:
    """Parse one ``ps -o pid=,user=,%cpu=,%mem=,etime=,command=`` line.

    The command is rebuilt by joining the remaining tokens with single spaces,
    so runs of whitespace inside arguments are collapsed.
    """
    tokens = text.split()
    if len(tokens) < 6 or tokens[0] != str(pid):
        raise ParseFailure(f"ps line for pid {pid}", text)
    try:
        cpu_pct = float(tokens[2])
        mem_pct = float(tokens[3])
    except ValueError as exc:
        raise ParseFailure(f"ps line for pid {pid}", text) from exc
    return ProcessSnapshot(
        pid=pid,
        user=tokens[1],
        cpu_pct=cpu_pct,
        mem_pct=mem_pct,
        elapsed=tokens[4],
        command=" ".join(tokens[5:]),
    )


def format_elapsed(seconds: float) -> str:
    """Format a duration like ps ``etime``: ``[[dd-]hh:]mm:ss``."""
    total = max(0, int(seconds))
    days, rest = divmod(total, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, secs = divmod(rest, 60)
    if days:
        return f"{days}-{hours:02d}:{minutes:02d}:{secs:02d}"
    if hours:
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


class ProcessInspector(ABC):
    """Look up one process by id."""

    @abstractmethod
    def inspect(self, pid: int) -> ProcessSnapshot:
        """Return the snapshot of ``pid``.

        Raises:
            ProcessGone: The process has already exited.
        """


class PsProcessInspector(ProcessInspector):
    """Inspect processes with ``ps``."""

    def __init__(self, timeout: float = 5.0) -> None:
        self.timeout = timeout

    def inspect(self, pid: int) -> ProcessSnapshot:
        try:
            output = run_command(["ps", "-p", str(pid), "-o", PS_COLUMNS], self.timeout)
        except SubprocessFailure as exc:
            # ps exits 1 with no output when nothing matches the pid
            if exc.returncode == 1:
                raise ProcessGone(pid) from exc
            raise
        if not output.strip():
            raise ProcessGone(pid)
        return parse_ps_line(output, pid)


class PsutilProcessInspector(ProcessInspector):
    """Inspect processes through psutil, with the same columns as ``ps``."""

    def inspect(self, pid: int) -> ProcessSnapshot:
        try:
            proc = psutil.Process(pid)
            with proc.oneshot():
                create_time = proc.create_time()
                cpu_times = proc.cpu_times()
                user = proc.username()
                mem_pct = proc.memory_percent()
                cmdline = proc.cmdline()
                name = proc.name()
        except (psutil.NoSuchProcess, psutil.ZombieProcess) as exc:
            raise ProcessGone(pid) from exc
        except psutil.AccessDenied as exc:
            raise MetricUnavailable(f"process {pid}", exc) from exc

        elapsed = max(time.time() - create_time, 0.0)
        # ps reports CPU time over lifetime, not a sampled rate
        cpu_pct = (cpu_times.user + cpu_times.system) / elapsed * 100 if elapsed else 0.0
        return ProcessSnapshot(
            pid=pid,
            user=user,
            cpu_pct=round(cpu_pct, 1),
            mem_pct=round(mem_pct, 1),
            elapsed=format_elapsed(elapsed),
            command=" ".join(cmdline) if cmdline else name,
        )
