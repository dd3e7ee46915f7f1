"""GPU query and the slow-cadence poller that publishes its result."""

import logging
import subprocess
import threading

from sysmoni.models import GPUReading

logger = logging.getLogger(__name__)

GPU_QUERY_COMMAND = [
    "nvidia-smi",
    "--query-gpu=name,utilization.gpu,memory.used,memory.total,temperature.gpu",
    "--format=csv,noheader,nounits",
]
GPU_QUERY_TIMEOUT = 0.4  # Seconds
GPU_POLL_INTERVAL = 2.0  # Seconds


def parse_number(text: str) -> float:
    """Parse a numeric field, tolerating whitespace and a trailing '%'."""
    try:
        return float(text.strip().removesuffix("%"))
    except ValueError:
        return 0.0


def parse_gpu_csv(output: str) -> tuple[GPUReading, ...]:
    """Parse headerless, unitless CSV rows from the GPU query tool."""
    readings: list[GPUReading] = []
    for line in output.splitlines():
        fields = line.split(",")
        if len(fields) < 5:
            continue
        readings.append(
            GPUReading(
                name=fields[0].strip(),
                utilization=parse_number(fields[1]),
                memory_used_mb=parse_number(fields[2]),
                memory_total_mb=parse_number(fields[3]),
                temperature_c=parse_number(fields[4]),
            )
        )
    return tuple(readings)


def query_gpus(timeout: float = GPU_QUERY_TIMEOUT) -> tuple[GPUReading, ...] | None:
    """
    Run the GPU query tool once.

    Returns None when the tool is missing, fails, or exceeds timeout. The
    child process is killed by subprocess.run once the timeout expires.
    """
    try:
        result = subprocess.run(
            GPU_QUERY_COMMAND,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        logger.debug("GPU query failed: %s", exc)
        return None

    if result.returncode != 0:
        logger.debug("GPU query exited with status %d", result.returncode)
        return None
    return parse_gpu_csv(result.stdout)


class GpuSlot:
    """
    Single-value cell holding the most recent completed GPU poll.

    The poller replaces the whole tuple under the lock; readers get either
    the old or the new tuple, never a partial one.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._readings: tuple[GPUReading, ...] = ()
        self._version = 0

    @property
    def version(self) -> int:
        """Number of publishes so far."""
        with self._lock:
            return self._version

    def publish(self, readings: tuple[GPUReading, ...]) -> None:
        with self._lock:
            self._readings = readings
            self._version += 1

    def read(self) -> tuple[GPUReading, ...]:
        with self._lock:
            return self._readings


class GpuPoller:
    """
    Background poller for the GPU slow sensor.

    Fires immediately on start and then every `interval` seconds. A failed
    poll keeps the previously published reading; only the very first attempt
    publishes an empty reading on failure.
    """

    def __init__(
        self,
        slot: GpuSlot,
        interval: float = GPU_POLL_INTERVAL,
        timeout: float = GPU_QUERY_TIMEOUT,
        stop_event: threading.Event | None = None,
    ) -> None:
        """
        Initialize the GpuPoller.

        Args:
            slot: Cell the poller publishes into.
            interval: Seconds between polls.
            timeout: Upper bound for a single query.
            stop_event: Cancellation signal, shared with the sampling loop so
                one signal stops both.
        """
        self._slot = slot
        self._interval = interval
        self._timeout = timeout
        self._stop_event = stop_event or threading.Event()
        self._thread: threading.Thread | None = None
        self._attempts = 0

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return

        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="GpuPoller",
        )
        self._thread.start()

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def poll_once(self) -> None:
        """Run one query and publish its result if it succeeded."""
        readings = query_gpus(self._timeout)
        first_attempt = self._attempts == 0
        self._attempts += 1
        if readings is not None:
            self._slot.publish(readings)
        elif first_attempt:
            self._slot.publish(())

    def _poll_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.poll_once()
            except Exception:
                logger.exception("Unexpected error while polling GPUs")
            self._stop_event.wait(timeout=self._interval)
