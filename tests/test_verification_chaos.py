"""Verification Test: Chaos Monkey - Random process termination resilience.

Processes come and go while the sampler enumerates them. A process that
vanishes mid-tick must only drop out of that tick's lists; the sampler has to
keep producing samples.
"""

import multiprocessing
import random
import time
from queue import Empty

import pytest

from sysmoni.config import SamplerConfig
from sysmoni.sampler import Sampler


def dummy_worker(duration: float = 60.0) -> None:
    """A dummy worker process that sleeps for a given duration."""
    try:
        time.sleep(duration)
    except (KeyboardInterrupt, SystemExit):
        pass


class TestChaosMonkey:
    """Chaos Monkey verification suite tests."""

    def test_sampler_survives_process_termination(self):
        processes = []
        for _ in range(40):
            p = multiprocessing.Process(target=dummy_worker, args=(60.0,))
            p.start()
            processes.append(p)

        sampler = Sampler(config=SamplerConfig(interval=0.2, enable_gpu=False))

        try:
            sampler.start()
            assert sampler.queue.get(timeout=5.0) is not None

            for p in random.sample(processes, 20):
                if p.is_alive():
                    p.terminate()
                time.sleep(0.05)

            samples_after_chaos = 0
            deadline = time.time() + 4.0
            while time.time() < deadline:
                try:
                    sample = sampler.queue.get(timeout=1.0)
                except Empty:
                    continue
                samples_after_chaos += 1
                assert len(sample.top) <= 64
                assert isinstance(sample.cgroups, tuple)

            assert samples_after_chaos >= 3, f"Expected at least 3 samples after chaos, got {samples_after_chaos}"
            assert sampler.is_running, "Sampler should still be running after chaos"
        finally:
            sampler.stop()
            for p in processes:
                if p.is_alive():
                    p.terminate()
            for p in processes:
                p.join(timeout=1.0)

    def test_rapid_process_churn(self):
        """Short-lived processes appear and exit between and during ticks."""
        sampler = Sampler(config=SamplerConfig(interval=0.1, enable_gpu=False))
        received = 0

        try:
            sampler.start()
            deadline = time.time() + 3.0
            while time.time() < deadline:
                batch = [multiprocessing.Process(target=dummy_worker, args=(0.05,)) for _ in range(5)]
                for p in batch:
                    p.start()
                for p in batch:
                    p.join(timeout=1.0)
                try:
                    sampler.queue.get_nowait()
                    received += 1
                except Empty:
                    pass
        except Exception as e:
            pytest.fail(f"Sampler crashed with exception: {e}")
        finally:
            sampler.stop()

        assert received > 0
        assert not sampler.is_running
