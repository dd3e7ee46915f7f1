"""Conversion of engine records to JSON-ready dictionaries."""

from dataclasses import asdict
from typing import Any

from sysmoni.models import ZERO_TIMESTAMP, KillEvent, Sample


def sample_to_record(sample: Sample) -> dict[str, Any]:
    """
    Flatten a Sample into plain dicts/lists with stable field names.

    The timestamp becomes an ISO-8601 string carrying its UTC offset; an absent
    battery stays None.
    """
    record = asdict(sample)
    record["timestamp"] = sample.timestamp.isoformat()
    record["memory"]["percent"] = sample.memory.percent
    record["memory"]["swap_percent"] = sample.memory.swap_percent
    return record


def kill_event_to_record(event: KillEvent) -> dict[str, Any]:
    record = asdict(event)
    record["timestamp"] = None if event.timestamp == ZERO_TIMESTAMP else event.timestamp.isoformat()
    return record
