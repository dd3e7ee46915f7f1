"""sysmoni - Live Textual display of the sample stream."""

import re
from enum import Enum
from queue import Empty

from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal
from textual.widgets import DataTable, Footer, Static

from sysmoni.config import SamplerConfig
from sysmoni.formatting import bar, format_bytes
from sysmoni.models import ProcessEntry, Sample
from sysmoni.sampler import Sampler


class SortKey(Enum):
    """Sort keys for the process table."""

    CPU = "cpu"
    MEM = "mem"
    PID = "pid"


class HeaderStats(Static):
    """Header widget showing CPU, memory, I/O and sensor readings."""

    DEFAULT_CSS = """
    HeaderStats {
        height: auto;
        min-height: 5;
        padding: 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize with no sample yet."""
        super().__init__(*args, **kwargs)
        self._sample: Sample | None = None

    @property
    def sample(self) -> Sample | None:
        """The sample currently shown."""
        return self._sample

    def compose(self) -> ComposeResult:
        """Create the CPU, memory and sensor columns."""
        yield Horizontal(
            Static(self._get_cpu_info(), id="cpu-info"),
            Static(self._get_mem_info(), id="mem-info"),
            Static(self._get_sensor_info(), id="sensor-info"),
        )

    def update_stats(self, sample: Sample) -> None:
        """Update the statistics from a sample."""
        self._sample = sample
        self._refresh_display()

    def _refresh_display(self) -> None:
        """Refresh the column widgets."""
        for widget_id, text in (
            ("#cpu-info", self._get_cpu_info()),
            ("#mem-info", self._get_mem_info()),
            ("#sensor-info", self._get_sensor_info()),
        ):
            try:
                self.query_one(widget_id, Static).update(text)
            except Exception:
                pass  # Widget not mounted yet

    def _get_cpu_info(self) -> str:
        """Get CPU bars and load average text."""
        if self._sample is None:
            return "Loading CPU info..."
        cpu = self._sample.cpu
        # Escaped brackets keep the bar container out of Rich markup
        lines = [f"CPU   \\[{bar(cpu.total)}] {cpu.total:5.1f}%"]
        for i, usage in enumerate(cpu.per_core):
            lines.append(f"CPU{i:<2} \\[{bar(usage)}] {usage:5.1f}%")
        lines.append(f"Load average: {cpu.load1:.2f} {cpu.load5:.2f} {cpu.load15:.2f}")
        return "\n".join(lines)

    def _get_mem_info(self) -> str:
        """Get memory, swap and I/O text."""
        if self._sample is None:
            return "Loading memory info..."
        mem = self._sample.memory
        io = self._sample.io
        inotify = self._sample.inotify
        return (
            f"Mem\\[{bar(mem.percent, color='cyan')}] "
            f"{format_bytes(mem.used_bytes)}/{format_bytes(mem.total_bytes)}\n"
            f"Swp\\[{bar(mem.swap_percent, color='yellow')}] "
            f"{format_bytes(mem.swap_used_bytes)}/{format_bytes(mem.swap_total_bytes)}\n"
            f"Disk R/W: {io.disk_read_mbs:6.1f} / {io.disk_write_mbs:6.1f} MiB/s\n"
            f"Net RX/TX: {io.net_rx_mbps:6.1f} / {io.net_tx_mbps:6.1f} Mbit/s\n"
            f"inotify watches: {inotify.nr_watches}/{inotify.max_user_watches}"
        )

    def _get_sensor_info(self) -> str:
        """Get GPU, battery, thermal and cgroup text."""
        if self._sample is None:
            return ""
        lines = []
        for gpu in self._sample.gpus:
            lines.append(
                f"{gpu.name}: {gpu.utilization:3.0f}% "
                f"{gpu.memory_used_mb:.0f}/{gpu.memory_total_mb:.0f}MB {gpu.temperature_c:.0f}°C"
            )
        battery = self._sample.battery
        if battery is not None:
            lines.append(f"Battery: {battery.percent:.0f}% {battery.state}")
        for temp in self._sample.temps[:4]:
            lines.append(f"{temp.zone}: {temp.celsius:.1f}°C")
        for cgroup in self._sample.cgroups[:3]:
            lines.append(f"{cgroup.name}: {cgroup.cpu_percent:.1f}%")
        return "\n".join(lines)


class ProcessTable(Container):
    """Container for the process data table."""

    DEFAULT_CSS = """
    ProcessTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, sort_key: SortKey = SortKey.CPU, process_filter: str = "", **kwargs) -> None:
        """Initialize with a sort key and an optional command filter regex."""
        super().__init__(*args, **kwargs)
        self._current_pids: set[int] = set()
        self._sort_key = sort_key
        self._filter = re.compile(process_filter) if process_filter else None

    @property
    def sort_key(self) -> SortKey:
        """The current sort key."""
        return self._sort_key

    def cycle_sort(self) -> SortKey:
        """Cycle to the next sort key and return it."""
        keys = list(SortKey)
        self._sort_key = keys[(keys.index(self._sort_key) + 1) % len(keys)]
        return self._sort_key

    def compose(self) -> ComposeResult:
        """Create the data table."""
        yield DataTable(id="process-table")

    def on_mount(self) -> None:
        """Set up table columns when mounted."""
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"

        table.add_column("PID", key="pid", width=8)
        table.add_column("NI", key="nice", width=4)
        table.add_column("CPU%", key="cpu", width=8)
        table.add_column("MEM%", key="mem", width=8)
        table.add_column("Command", key="command")

    def visible(self, processes: tuple[ProcessEntry, ...]) -> list[ProcessEntry]:
        """Apply the name filter and the current sort order."""
        if self._filter is not None:
            processes = [p for p in processes if self._filter.search(p.command)]
        key_func = {
            SortKey.CPU: lambda p: -p.cpu_percent,
            SortKey.MEM: lambda p: -p.memory_percent,
            SortKey.PID: lambda p: p.pid,
        }
        return sorted(processes, key=key_func[self._sort_key])

    def update_processes(self, processes: tuple[ProcessEntry, ...]) -> None:
        """Rebuild the table rows from the sample's top list."""
        table = self.query_one("#process-table", DataTable)
        table.clear()
        rows = self.visible(processes)
        for proc in rows:
            table.add_row(
                str(proc.pid),
                str(proc.nice),
                f"{proc.cpu_percent:5.1f}",
                f"{proc.memory_percent:5.1f}",
                proc.command,
                key=str(proc.pid),
            )
        self._current_pids = {proc.pid for proc in rows}


class SysmoniApp(App):
    """Main sysmoni application."""

    TITLE = "sysmoni"
    SUB_TITLE = "Host resource monitor"

    CSS = """
    Screen {
        layout: vertical;
    }

    #header-stats {
        dock: top;
        height: auto;
        min-height: 6;
    }

    Horizontal {
        height: auto;
    }

    #cpu-info, #mem-info, #sensor-info {
        width: 1fr;
        padding-right: 2;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("f6", "sort", "Sort"),
    ]

    def __init__(self, config: SamplerConfig | None = None, sampler: Sampler | None = None) -> None:
        """Initialize the app with a config and an optional sampler."""
        super().__init__()
        self._config = config or SamplerConfig()
        self._sampler = sampler or Sampler(config=self._config)

    def compose(self) -> ComposeResult:
        """Create the app layout."""
        yield HeaderStats(id="header-stats")
        yield ProcessTable(
            sort_key=SortKey(self._config.sort),
            process_filter=self._config.process_filter,
        )
        yield Footer()

    def on_mount(self) -> None:
        """Start the sampler when the app is mounted."""
        self._sampler.start()
        self.set_interval(0.25, self._check_for_updates)

    def on_unmount(self) -> None:
        """Stop the sampler when the app is unmounted."""
        self._sampler.stop()

    def _check_for_updates(self) -> None:
        """Drain the sample queue and render the most recent one."""
        sample = None
        while True:
            try:
                sample = self._sampler.queue.get_nowait()
            except Empty:
                break
        if sample is not None:
            self.show_sample(sample)

    def show_sample(self, sample: Sample) -> None:
        """Render a sample in the header and the process table."""
        self.query_one("#header-stats", HeaderStats).update_stats(sample)
        self.query_one(ProcessTable).update_processes(sample.top)

    def action_sort(self) -> None:
        """Cycle through sort keys."""
        new_sort_key = self.query_one(ProcessTable).cycle_sort()
        self.notify(f"Sort: {new_sort_key.value.upper()}")

    def action_quit(self) -> None:
        """Stop sampling and exit."""
        self._sampler.stop()
        self.exit()
