"""Readers for battery, thermal-zone and inotify pseudo-files."""

import logging
from pathlib import Path

from sysmoni.models import BatteryReading, InotifyStats, ThermalReading

logger = logging.getLogger(__name__)

POWER_SUPPLY_ROOT = Path("/sys/class/power_supply")
THERMAL_ROOT = Path("/sys/class/thermal")
INOTIFY_ROOT = Path("/proc/sys/fs/inotify")


def _read_number(path: Path) -> float | None:
    try:
        return float(path.read_text().strip().removesuffix("%"))
    except (OSError, ValueError):
        return None


def read_battery(root: Path = POWER_SUPPLY_ROOT) -> BatteryReading | None:
    """Return the first readable BAT* supply, or None if there is none."""
    for capacity_path in sorted(root.glob("BAT*/capacity")):
        percent = _read_number(capacity_path)
        if percent is None:
            continue
        try:
            state = (capacity_path.parent / "status").read_text().strip()
        except OSError:
            state = ""
        return BatteryReading(percent=percent, state=state)
    return None


def read_temperatures(root: Path = THERMAL_ROOT) -> tuple[ThermalReading, ...]:
    """Read every thermal zone, converting millidegrees to degrees."""
    readings: list[ThermalReading] = []
    for temp_path in sorted(root.glob("thermal_zone*/temp")):
        millidegrees = _read_number(temp_path)
        if millidegrees is None:
            logger.debug("Skipping unreadable thermal zone %s", temp_path.parent.name)
            continue
        readings.append(ThermalReading(zone=temp_path.parent.name, celsius=millidegrees / 1000))
    return tuple(readings)


def read_inotify(root: Path = INOTIFY_ROOT) -> InotifyStats:
    """Read inotify limits; unreadable entries are reported as 0."""

    def read_int(name: str) -> int:
        value = _read_number(root / name)
        return int(value) if value is not None else 0

    return InotifyStats(
        max_user_watches=read_int("max_user_watches"),
        max_user_instances=read_int("max_user_instances"),
        nr_watches=read_int("nr_watches"),
    )
