"""Tests for battery, thermal and inotify pseudo-file readers."""

from sysmoni.models import BatteryReading, InotifyStats, ThermalReading
from sysmoni.sensors import read_battery, read_inotify, read_temperatures


def write(path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)


def test_battery_reading(tmp_path):
    write(tmp_path / "AC" / "online", "1\n")
    write(tmp_path / "BAT0" / "capacity", "87\n")
    write(tmp_path / "BAT0" / "status", "Discharging\n")

    assert read_battery(tmp_path) == BatteryReading(percent=87.0, state="Discharging")


def test_battery_without_status(tmp_path):
    write(tmp_path / "BAT1" / "capacity", "40")

    assert read_battery(tmp_path) == BatteryReading(percent=40.0, state="")


def test_battery_skips_unreadable_capacity(tmp_path):
    write(tmp_path / "BAT0" / "capacity", "unknown")
    write(tmp_path / "BAT1" / "capacity", "55")
    write(tmp_path / "BAT1" / "status", "Charging")

    assert read_battery(tmp_path) == BatteryReading(percent=55.0, state="Charging")


def test_no_battery(tmp_path):
    assert read_battery(tmp_path) is None
    assert read_battery(tmp_path / "missing") is None


def test_temperatures_scaled_to_degrees(tmp_path):
    write(tmp_path / "thermal_zone0" / "temp", "45000\n")
    write(tmp_path / "thermal_zone1" / "temp", "51500\n")
    write(tmp_path / "cooling_device0" / "cur_state", "0\n")

    assert read_temperatures(tmp_path) == (
        ThermalReading(zone="thermal_zone0", celsius=45.0),
        ThermalReading(zone="thermal_zone1", celsius=51.5),
    )


def test_temperatures_skip_unreadable_zone(tmp_path):
    write(tmp_path / "thermal_zone0" / "temp", "")
    write(tmp_path / "thermal_zone1" / "temp", "30000")

    assert read_temperatures(tmp_path) == (ThermalReading(zone="thermal_zone1", celsius=30.0),)


def test_no_thermal_zones(tmp_path):
    assert read_temperatures(tmp_path) == ()


def test_inotify(tmp_path):
    write(tmp_path / "max_user_watches", "524288\n")
    write(tmp_path / "max_user_instances", "128\n")

    assert read_inotify(tmp_path) == InotifyStats(
        max_user_watches=524288,
        max_user_instances=128,
        nr_watches=0,
    )
