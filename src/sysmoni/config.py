"""Runtime options for the sampler and its consumers."""

import logging
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, replace

logger = logging.getLogger(__name__)

MIN_INTERVAL = 0.1  # Seconds

ENV_INTERVAL = "SYSMONI_INTERVAL"
ENV_GPU = "SYSMONI_GPU"
ENV_BATTERY = "SYSMONI_BATT"

# Older deployments export these names; the SYSMONI_* names win when both are set.
LEGACY_ENV = {
    ENV_INTERVAL: "SRPS_SYSMON_INTERVAL",
    ENV_GPU: "SRPS_SYSMON_GPU",
    ENV_BATTERY: "SRPS_SYSMON_BATT",
}

SORT_KEYS = ("cpu", "mem")

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ms|h|m|s)")
_UNIT_SECONDS = {"h": 3600, "m": 60, "s": 1}


def parse_interval(value: str) -> float:
    """
    Parse an interval in seconds.

    Accepts bare seconds ("2", "0.5") and durations built from h, m, s and ms
    parts, such as "2s", "500ms", "1m" or "1m30s". Raises ValueError for
    anything else or for non-positive values.
    """
    text = value.strip().lower()
    try:
        seconds = float(text)
    except ValueError:
        seconds = 0.0
        position = 0
        for match in _DURATION_PART.finditer(text):
            if match.start() != position:
                break
            amount, unit = float(match.group(1)), match.group(2)
            seconds += amount / 1000 if unit == "ms" else amount * _UNIT_SECONDS[unit]
            position = match.end()
        if position == 0 or position != len(text):
            raise ValueError(f"invalid interval: {value!r}") from None
    if not 0 < seconds < float("inf"):
        raise ValueError(f"interval must be positive and finite: {value!r}")
    return seconds


def _env_lookup(environ: Mapping[str, str], name: str) -> tuple[str, str | None]:
    """Return the variable name actually set and its value, preferring name."""
    if name not in environ and LEGACY_ENV[name] in environ:
        name = LEGACY_ENV[name]
    return name, environ.get(name)


@dataclass(slots=True, frozen=True)
class SamplerConfig:
    """Sampling and display options."""

    interval: float = 1.0
    enable_gpu: bool = True
    enable_battery: bool = True
    gpu_interval: float = 2.0
    process_filter: str = ""  # Regex applied by the display, not the engine
    sort: str = "cpu"

    def __post_init__(self) -> None:
        if self.interval < MIN_INTERVAL:
            object.__setattr__(self, "interval", MIN_INTERVAL)
        if self.sort not in SORT_KEYS:
            raise ValueError(f"sort must be one of {', '.join(SORT_KEYS)}: {self.sort!r}")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides) -> "SamplerConfig":
        """Build a config from defaults, environment overrides, then keyword overrides."""
        environ = os.environ if environ is None else environ
        config = cls()

        interval_var, raw_interval = _env_lookup(environ, ENV_INTERVAL)
        if raw_interval:
            try:
                config = replace(config, interval=parse_interval(raw_interval))
            except ValueError:
                logger.warning("Ignoring invalid %s=%r", interval_var, raw_interval)
        if _env_lookup(environ, ENV_GPU)[1] == "0":
            config = replace(config, enable_gpu=False)
        if _env_lookup(environ, ENV_BATTERY)[1] == "0":
            config = replace(config, enable_battery=False)

        return replace(config, **overrides)
