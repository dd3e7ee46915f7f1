"""Shared fixtures for sysmoni tests."""

from datetime import datetime, timezone

import pytest

from sysmoni.models import CPUSummary, InotifyStats, IORates, MemorySummary, Sample


def build_sample(**overrides) -> Sample:
    fields = dict(
        timestamp=datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc),
        interval=1.0,
        cpu=CPUSummary(total=10.0, per_core=(5.0, 15.0), load1=1.0, load5=0.5, load15=0.25),
        memory=MemorySummary(
            used_bytes=8 * 1024**3,
            total_bytes=16 * 1024**3,
            swap_used_bytes=0,
            swap_total_bytes=4 * 1024**3,
        ),
        io=IORates(),
        gpus=(),
        battery=None,
        top=(),
        throttled=(),
        cgroups=(),
        inotify=InotifyStats(),
        temps=(),
    )
    fields.update(overrides)
    return Sample(**fields)


@pytest.fixture
def make_sample():
    """Factory for Samples with realistic defaults; keyword arguments override fields."""
    return build_sample
