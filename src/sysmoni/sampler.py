"""Sampling loop that drives the assembler and publishes Samples."""

import logging
import threading
import time
from collections.abc import Iterator
from datetime import datetime
from enum import Enum
from queue import Empty, Full, Queue

from sysmoni.assembler import SnapshotAssembler
from sysmoni.config import SamplerConfig
from sysmoni.gpu import GpuPoller, GpuSlot
from sysmoni.models import Sample

logger = logging.getLogger(__name__)

# How often a blocked publish or an idle stream re-checks for cancellation.
_CANCEL_CHECK = 0.1


class SamplerState(Enum):
    """Lifecycle of a Sampler."""

    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class Sampler:
    """
    Periodic snapshot producer.

    Runs the SnapshotAssembler in a daemon thread once per interval and puts
    each Sample on a Queue. The default queue holds a single pending Sample:
    when the consumer falls behind, publishing blocks and sampling slows to
    the consumer's pace. The GPU poller runs in its own thread and shares
    the sampler's stop event.
    """

    def __init__(
        self,
        update_queue: Queue[Sample] | None = None,
        config: SamplerConfig | None = None,
        assembler: SnapshotAssembler | None = None,
        poller: GpuPoller | None = None,
    ) -> None:
        """
        Initialize the Sampler.

        Args:
            update_queue: Output channel. Defaults to a Queue of size 1.
            config: Sampling options. Defaults to SamplerConfig().
            assembler: Snapshot assembler; built from config if not given.
            poller: GPU poller; built from config when GPUs are enabled.
        """
        self._config = config or SamplerConfig()
        self._queue: Queue[Sample] = update_queue if update_queue is not None else Queue(maxsize=1)
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._state = SamplerState.IDLE
        self._last_timestamp: datetime | None = None

        if assembler is None:
            gpu_slot = GpuSlot() if self._config.enable_gpu else None
            assembler = SnapshotAssembler(
                interval=self._config.interval,
                gpu_slot=gpu_slot,
                enable_battery=self._config.enable_battery,
            )
            if poller is None and gpu_slot is not None:
                poller = GpuPoller(
                    gpu_slot,
                    interval=self._config.gpu_interval,
                    stop_event=self._stop_event,
                )
        self._assembler = assembler
        self._poller = poller

    @property
    def interval(self) -> float:
        return self._config.interval

    @property
    def queue(self) -> Queue[Sample]:
        return self._queue

    @property
    def state(self) -> SamplerState:
        return self._state

    @property
    def is_running(self) -> bool:
        """Check if the sampling thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the GPU poller and the sampling thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        if self._poller is not None:
            self._poller.start()
        self._thread = threading.Thread(
            target=self._sample_loop,
            daemon=True,
            name="Sampler",
        )
        self._state = SamplerState.RUNNING
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop sampling and GPU polling.

        An in-flight GPU query is not interrupted; the poller exits once the
        query returns or hits its own timeout.

        Args:
            timeout: How long to wait for each thread to stop (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        if self._poller is not None:
            self._poller.join(timeout=timeout)
        if self._state is SamplerState.RUNNING:
            self._state = SamplerState.STOPPED

    def stream(self) -> Iterator[Sample]:
        """Yield Samples in order until the sampler stops and the queue is drained."""
        while True:
            try:
                yield self._queue.get(timeout=_CANCEL_CHECK)
            except Empty:
                if not self.is_running:
                    return

    def sample_now(self) -> Sample:
        """Assemble one Sample synchronously. Must not race the sampling thread."""
        # Aware local time: compares by instant across DST changes and keeps the offset.
        now = datetime.now().astimezone()
        if self._last_timestamp is not None and now < self._last_timestamp:
            # Wall clock stepped backwards; keep timestamps non-decreasing.
            now = self._last_timestamp
        self._last_timestamp = now
        return self._assembler.assemble(now)

    def _sample_loop(self) -> None:
        """Main sampling loop running in the background thread."""
        next_tick = time.monotonic() + self.interval
        while not self._stop_event.wait(timeout=max(0.0, next_tick - time.monotonic())):
            try:
                sample = self.sample_now()
            except Exception:
                # The assembler degrades per source; this keeps the loop alive
                # if something unexpected still escapes.
                logger.exception("Failed to assemble sample")
            else:
                if not self._publish(sample):
                    break

            next_tick += self.interval
            now = time.monotonic()
            if next_tick < now:
                # Fell behind (slow consumer or slow tick); do not replay.
                next_tick = now + self.interval

    def _publish(self, sample: Sample) -> bool:
        """Block until the sample is queued; False if cancelled first."""
        while not self._stop_event.is_set():
            try:
                self._queue.put(sample, timeout=_CANCEL_CHECK)
                return True
            except Full:
                continue
        return False
