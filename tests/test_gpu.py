"""Tests for GPU query parsing and the slow-sensor poller."""

import subprocess
import threading
import time

from sysmoni import gpu
from sysmoni.gpu import GpuPoller, GpuSlot, parse_gpu_csv, query_gpus
from sysmoni.models import GPUReading

SMI_OUTPUT = "NVIDIA GeForce RTX 3080, 37, 2048, 10240, 61\nTesla T4, 0, 0, 15360, 35\n"

READING = GPUReading(
    name="NVIDIA GeForce RTX 3080",
    utilization=37.0,
    memory_used_mb=2048.0,
    memory_total_mb=10240.0,
    temperature_c=61.0,
)


def completed(stdout: str = "", returncode: int = 0) -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(args=gpu.GPU_QUERY_COMMAND, returncode=returncode, stdout=stdout, stderr="")


class TestParseGpuCsv:
    """Tests for nvidia-smi CSV parsing."""

    def test_parses_rows(self):
        readings = parse_gpu_csv(SMI_OUTPUT)

        assert len(readings) == 2
        assert readings[0] == READING
        assert readings[1].name == "Tesla T4"
        assert readings[1].memory_total_mb == 15360.0

    def test_short_rows_skipped(self):
        assert parse_gpu_csv("only, three, fields\n\n") == ()

    def test_unparsable_numbers_become_zero(self):
        (reading,) = parse_gpu_csv("GPU, [N/A], 10 %, 100, 50\n")

        assert reading.utilization == 0.0
        assert reading.temperature_c == 50.0


class TestQueryGpus:
    """Tests for running the external query."""

    def test_success(self, monkeypatch):
        calls = []

        def fake_run(cmd, **kwargs):
            calls.append(kwargs)
            return completed(SMI_OUTPUT)

        monkeypatch.setattr(gpu.subprocess, "run", fake_run)

        assert query_gpus(timeout=0.3)[0] == READING
        assert calls[0]["timeout"] == 0.3

    def test_missing_tool(self, monkeypatch):
        def fake_run(cmd, **kwargs):
            raise FileNotFoundError("nvidia-smi")

        monkeypatch.setattr(gpu.subprocess, "run", fake_run)

        assert query_gpus() is None

    def test_timeout(self, monkeypatch):
        def fake_run(cmd, **kwargs):
            raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

        monkeypatch.setattr(gpu.subprocess, "run", fake_run)

        assert query_gpus() is None

    def test_failed_exit(self, monkeypatch):
        monkeypatch.setattr(gpu.subprocess, "run", lambda cmd, **kwargs: completed("", returncode=9))

        assert query_gpus() is None


class TestGpuSlot:
    """Tests for the shared reading cell."""

    def test_starts_empty(self):
        slot = GpuSlot()

        assert slot.read() == ()
        assert slot.version == 0

    def test_publish_replaces_whole_reading(self):
        slot = GpuSlot()
        slot.publish((READING,))
        slot.publish(())

        assert slot.read() == ()
        assert slot.version == 2

    def test_concurrent_reads_see_complete_publishes(self):
        """Readers only ever observe one of the published tuples."""
        slot = GpuSlot()
        published = [tuple(READING for _ in range(n)) for n in range(1, 6)]
        seen = set()
        done = threading.Event()

        def writer():
            for _ in range(200):
                for readings in published:
                    slot.publish(readings)
            done.set()

        thread = threading.Thread(target=writer)
        thread.start()
        while not done.is_set():
            seen.add(slot.read())
        thread.join()

        assert seen <= set(published) | {()}

    def test_reader_thread_never_sees_partial_reading(self):
        """A reader thread racing a writer only sees whole, distinct publishes."""
        slot = GpuSlot()

        def reading_set(tick: int) -> tuple[GPUReading, ...]:
            # Every GPU in one publish shares the tick, so a mixed tuple is detectable.
            return tuple(
                GPUReading(
                    name=f"gpu{index}",
                    utilization=float(tick % 101),
                    memory_used_mb=float(tick),
                    memory_total_mb=16384.0,
                    temperature_c=float(tick % 90),
                )
                for index in range(tick % 4 + 1)
            )

        published = [reading_set(tick) for tick in range(1000)]
        seen = []
        done = threading.Event()

        def reader():
            while not done.is_set():
                seen.append(slot.read())
            seen.append(slot.read())

        thread = threading.Thread(target=reader)
        thread.start()
        for readings in published:
            slot.publish(readings)
        done.set()
        thread.join(timeout=5.0)

        allowed = set(published) | {()}
        assert not thread.is_alive()
        assert seen[-1] == published[-1]
        for readings in seen:
            assert readings in allowed
            assert len({r.memory_used_mb for r in readings}) <= 1
            assert [r.name for r in readings] == [f"gpu{i}" for i in range(len(readings))]


class TestGpuPoller:
    """Tests for the poller's publish policy."""

    def test_first_failure_publishes_empty(self, monkeypatch):
        monkeypatch.setattr(gpu, "query_gpus", lambda timeout: None)
        slot = GpuSlot()

        GpuPoller(slot).poll_once()

        assert slot.read() == ()
        assert slot.version == 1

    def test_later_failure_keeps_previous_reading(self, monkeypatch):
        results = iter([(READING,), None, None])
        monkeypatch.setattr(gpu, "query_gpus", lambda timeout: next(results))
        slot = GpuSlot()
        poller = GpuPoller(slot)

        poller.poll_once()
        poller.poll_once()
        poller.poll_once()

        assert slot.read() == (READING,)
        assert slot.version == 1

    def test_success_replaces_reading(self, monkeypatch):
        second = GPUReading("Tesla T4", 99.0, 1.0, 2.0, 3.0)
        results = iter([(READING,), (second,)])
        monkeypatch.setattr(gpu, "query_gpus", lambda timeout: next(results))
        slot = GpuSlot()
        poller = GpuPoller(slot)

        poller.poll_once()
        poller.poll_once()

        assert slot.read() == (second,)

    def test_thread_polls_until_stop_event(self, monkeypatch):
        calls = []

        def fake_query(timeout):
            calls.append(timeout)
            return (READING,)

        monkeypatch.setattr(gpu, "query_gpus", fake_query)
        stop = threading.Event()
        slot = GpuSlot()
        poller = GpuPoller(slot, interval=0.05, timeout=0.2, stop_event=stop)

        poller.start()
        try:
            deadline = time.monotonic() + 2.0
            while len(calls) < 3 and time.monotonic() < deadline:
                time.sleep(0.01)
            assert poller.is_running
        finally:
            stop.set()
            poller.join(timeout=2.0)

        assert not poller.is_running
        assert len(calls) >= 3
        assert calls[0] == 0.2
        assert slot.read() == (READING,)
