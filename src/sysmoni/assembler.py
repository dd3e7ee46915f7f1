"""Per-tick orchestration of every source into one Sample."""

import logging
from collections import defaultdict
from datetime import datetime

import psutil

from sysmoni.cgroups import CgroupCache
from sysmoni.formatting import truncate_command
from sysmoni.gpu import GpuSlot
from sysmoni.history import CounterHistory
from sysmoni.models import (
    CgroupAggregate,
    CPUSummary,
    IORates,
    MemorySummary,
    ProcessEntry,
    Sample,
)
from sysmoni.sensors import read_battery, read_inotify, read_temperatures

logger = logging.getLogger(__name__)

TOP_LIMIT = 64
THROTTLED_LIMIT = 32
CGROUP_LIMIT = 16

BYTES_PER_MIB = 1024 * 1024
BITS_PER_MEGABIT = 1e6

PROCESS_ATTRS = ["pid", "name", "cpu_percent", "memory_percent", "nice", "cmdline"]

# Guest time is already included in user/nice on Linux.
_GUEST_FIELDS = ("guest", "guest_nice")


def split_cpu_times(times) -> tuple[float, float]:
    """Return (total, idle) seconds from a psutil cpu_times() tuple."""
    fields = times._asdict()
    total = sum(value for name, value in fields.items() if name not in _GUEST_FIELDS)
    idle = fields.get("idle", 0.0) + fields.get("iowait", 0.0)
    return total, idle


class SnapshotAssembler:
    """
    Builds one Sample per call from psutil, procfs/sysfs and the GPU slot.

    Rates come from differencing cumulative counters against the previous
    call, so the assembler must be driven from a single thread. Any source
    that fails degrades to a zero or empty value for that tick.
    """

    def __init__(
        self,
        interval: float = 1.0,
        gpu_slot: GpuSlot | None = None,
        enable_battery: bool = True,
        cgroup_cache: CgroupCache | None = None,
    ) -> None:
        """
        Initialize the SnapshotAssembler.

        Args:
            interval: Sampling interval in seconds, used as the rate divisor.
            gpu_slot: Slot published by the GPU poller; None disables GPUs.
            enable_battery: Whether to read the battery pseudo-files.
            cgroup_cache: Attribution cache, created if not given.
        """
        self.interval = interval
        self._gpu_slot = gpu_slot
        self._enable_battery = enable_battery
        self._history = CounterHistory()
        self._cgroups = cgroup_cache or CgroupCache()

    @property
    def history(self) -> CounterHistory:
        return self._history

    @property
    def cgroup_cache(self) -> CgroupCache:
        return self._cgroups

    def assemble(self, now: datetime) -> Sample:
        """Read every source once and return the Sample for this tick."""
        cpu = self._collect_cpu()
        memory = self._collect_memory()
        io = IORates(*self._collect_disk(), *self._collect_net())

        self._cgroups.tick()
        top, throttled, cgroups = self._collect_processes()

        gpus = self._gpu_slot.read() if self._gpu_slot is not None else ()
        battery = read_battery() if self._enable_battery else None

        return Sample(
            timestamp=now,
            interval=self.interval,
            cpu=cpu,
            memory=memory,
            io=io,
            gpus=gpus,
            battery=battery,
            top=top,
            throttled=throttled,
            cgroups=cgroups,
            inotify=read_inotify(),
            temps=read_temperatures(),
        )

    def _collect_cpu(self) -> CPUSummary:
        total = 0.0
        try:
            total = self._history.utilization("cpu", *split_cpu_times(psutil.cpu_times()))
        except (psutil.Error, OSError) as exc:
            logger.debug("Aggregate CPU times unavailable: %s", exc)

        per_core: list[float] = []
        try:
            core_times = psutil.cpu_times(percpu=True)
        except (psutil.Error, OSError) as exc:
            logger.debug("Per-core CPU times unavailable: %s", exc)
        else:
            keys = []
            for index, times in enumerate(core_times):
                key = f"core:{index}"
                keys.append(key)
                per_core.append(self._history.utilization(key, *split_cpu_times(times)))
            self._history.forget(keys, "core:")

        try:
            load1, load5, load15 = psutil.getloadavg()
        except (psutil.Error, OSError) as exc:
            logger.debug("Load average unavailable: %s", exc)
            load1 = load5 = load15 = 0.0

        return CPUSummary(
            total=total,
            per_core=tuple(per_core),
            load1=load1,
            load5=load5,
            load15=load15,
        )

    def _collect_memory(self) -> MemorySummary:
        used = total = swap_used = swap_total = 0
        try:
            mem = psutil.virtual_memory()
            used, total = mem.used, mem.total
        except (psutil.Error, OSError) as exc:
            logger.debug("Virtual memory unavailable: %s", exc)
        try:
            swap = psutil.swap_memory()
            swap_used, swap_total = swap.used, swap.total
        except (psutil.Error, OSError) as exc:
            logger.debug("Swap memory unavailable: %s", exc)
        return MemorySummary(
            used_bytes=used,
            total_bytes=total,
            swap_used_bytes=swap_used,
            swap_total_bytes=swap_total,
        )

    def _collect_disk(self) -> tuple[float, float]:
        """Return (read, write) MiB/s summed over non-loop block devices."""
        try:
            counters = psutil.disk_io_counters(perdisk=True) or {}
        except (psutil.Error, OSError) as exc:
            logger.debug("Disk counters unavailable: %s", exc)
            # Baselines are kept so the next successful read still yields a rate.
            return 0.0, 0.0

        read_bytes = write_bytes = 0.0
        keys = []
        for name, stat in counters.items():
            if name.startswith("loop"):
                continue
            keys += [f"disk:{name}:read", f"disk:{name}:write"]
            read_bytes += self._history.observe(f"disk:{name}:read", stat.read_bytes)
            write_bytes += self._history.observe(f"disk:{name}:write", stat.write_bytes)
        self._history.forget(keys, "disk:")

        return (
            read_bytes / self.interval / BYTES_PER_MIB,
            write_bytes / self.interval / BYTES_PER_MIB,
        )

    def _collect_net(self) -> tuple[float, float]:
        """Return (rx, tx) Mbit/s summed over all interfaces."""
        try:
            counters = psutil.net_io_counters(pernic=True) or {}
        except (psutil.Error, OSError) as exc:
            logger.debug("Network counters unavailable: %s", exc)
            return 0.0, 0.0

        rx_bytes = tx_bytes = 0.0
        keys = []
        for nic, stat in counters.items():
            keys += [f"net:{nic}:rx", f"net:{nic}:tx"]
            rx_bytes += self._history.observe(f"net:{nic}:rx", stat.bytes_recv)
            tx_bytes += self._history.observe(f"net:{nic}:tx", stat.bytes_sent)
        self._history.forget(keys, "net:")

        return (
            rx_bytes * 8 / self.interval / BITS_PER_MEGABIT,
            tx_bytes * 8 / self.interval / BITS_PER_MEGABIT,
        )

    def _collect_processes(
        self,
    ) -> tuple[tuple[ProcessEntry, ...], tuple[ProcessEntry, ...], tuple[CgroupAggregate, ...]]:
        """
        Enumerate processes and derive the top, throttled and cgroup lists.

        psutil keeps Process objects between process_iter() calls, so each
        cpu_percent is measured since the previous tick (0.0 the first time a
        process is seen). Processes that vanish or deny access are skipped.
        """
        entries: list[ProcessEntry] = []
        cgroup_cpu: dict[str, float] = defaultdict(float)

        try:
            processes = psutil.process_iter(attrs=PROCESS_ATTRS)
            for proc in processes:
                try:
                    info = proc.info
                    name = info.get("name") or ""
                    if not name:
                        continue

                    cmdline = info.get("cmdline") or []
                    command = " ".join(cmdline) if cmdline else name
                    entry = ProcessEntry(
                        pid=info.get("pid", 0),
                        nice=info.get("nice") or 0,
                        cpu_percent=info.get("cpu_percent") or 0.0,
                        memory_percent=info.get("memory_percent") or 0.0,
                        command=truncate_command(command),
                    )
                except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                    continue

                entries.append(entry)
                leaf = self._cgroups.lookup(entry.pid)
                if leaf is not None:
                    cgroup_cpu[leaf] += entry.cpu_percent
        except (psutil.Error, OSError) as exc:
            logger.debug("Process enumeration interrupted: %s", exc)

        by_cpu = sorted(entries, key=lambda p: p.cpu_percent, reverse=True)
        top = tuple(by_cpu[:TOP_LIMIT])
        throttled = tuple([p for p in by_cpu if p.nice > 0][:THROTTLED_LIMIT])
        cgroups = tuple(
            sorted(
                (CgroupAggregate(name=name, cpu_percent=cpu) for name, cpu in cgroup_cpu.items()),
                key=lambda c: c.cpu_percent,
                reverse=True,
            )[:CGROUP_LIMIT]
        )
        return top, throttled, cgroups
