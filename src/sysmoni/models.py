"""Data models for sysmoni."""

from dataclasses import dataclass
from datetime import datetime

# Sentinel for kill-log lines whose timestamp prefix does not parse.
ZERO_TIMESTAMP = datetime.min


@dataclass(slots=True, frozen=True)
class CPUSummary:
    """Aggregate and per-core utilization plus load averages."""

    total: float  # 0.0 - 100.0
    per_core: tuple[float, ...]  # Ordered by core index
    load1: float
    load5: float
    load15: float


@dataclass(slots=True, frozen=True)
class MemorySummary:
    """Virtual memory and swap usage in bytes."""

    used_bytes: int
    total_bytes: int
    swap_used_bytes: int
    swap_total_bytes: int

    @property
    def percent(self) -> float:
        if self.total_bytes <= 0:
            return 0.0
        return 100.0 * self.used_bytes / self.total_bytes

    @property
    def swap_percent(self) -> float:
        if self.swap_total_bytes <= 0:
            return 0.0
        return 100.0 * self.swap_used_bytes / self.swap_total_bytes


@dataclass(slots=True, frozen=True)
class IORates:
    """Disk throughput in MiB/s and network throughput in Mbit/s."""

    disk_read_mbs: float = 0.0
    disk_write_mbs: float = 0.0
    net_rx_mbps: float = 0.0
    net_tx_mbps: float = 0.0


@dataclass(slots=True, frozen=True)
class GPUReading:
    """One GPU as reported by the vendor query tool."""

    name: str
    utilization: float
    memory_used_mb: float
    memory_total_mb: float
    temperature_c: float


@dataclass(slots=True, frozen=True)
class BatteryReading:
    """Battery charge and raw charge state ('Charging', 'Discharging', ...)."""

    percent: float
    state: str


@dataclass(slots=True, frozen=True)
class ProcessEntry:
    """Immutable per-tick view of a process."""

    pid: int
    nice: int
    cpu_percent: float  # 0.0 - 100.0 * core_count
    memory_percent: float
    command: str  # Truncated for display


@dataclass(slots=True, frozen=True)
class CgroupAggregate:
    """Summed CPU% of the processes attributed to one cgroup leaf."""

    name: str
    cpu_percent: float


@dataclass(slots=True, frozen=True)
class InotifyStats:
    """Kernel inotify limits and current usage."""

    max_user_watches: int = 0
    max_user_instances: int = 0
    nr_watches: int = 0


@dataclass(slots=True, frozen=True)
class ThermalReading:
    """Temperature of one thermal zone in degrees Celsius."""

    zone: str
    celsius: float


@dataclass(slots=True, frozen=True)
class Sample:
    """
    Point-in-time snapshot of the host.

    Built once per tick by the SnapshotAssembler and handed to the consumer
    as-is. Optional sensors that are missing show up as empty tuples or None.
    """

    timestamp: datetime
    interval: float  # Seconds
    cpu: CPUSummary
    memory: MemorySummary
    io: IORates
    gpus: tuple[GPUReading, ...]
    battery: BatteryReading | None
    top: tuple[ProcessEntry, ...]
    throttled: tuple[ProcessEntry, ...]
    cgroups: tuple[CgroupAggregate, ...]
    inotify: InotifyStats
    temps: tuple[ThermalReading, ...]


@dataclass(slots=True, frozen=True)
class KillEvent:
    """An OOM-killer action parsed from the service log."""

    timestamp: datetime  # ZERO_TIMESTAMP when the log prefix did not parse
    pid: int
    command: str
    reason: str
