"""OOM-killer kill events parsed from the system journal."""

import logging
import re
import subprocess
from datetime import datetime

from sysmoni.models import ZERO_TIMESTAMP, KillEvent

logger = logging.getLogger(__name__)

KILL_PATTERN = re.compile(r"Kill process (\d+) \(([^)]+)\).*?: (.+)")

# journalctl's default "short" output starts with "Mmm dd HH:MM:SS".
TIMESTAMP_WIDTH = 15
TIMESTAMP_FORMAT = "%Y %b %d %H:%M:%S"

DEFAULT_UNIT = "earlyoom"
DEFAULT_LINES = 50
FETCH_TIMEOUT = 2.0  # Seconds


def parse_log_timestamp(line: str, year: int) -> datetime:
    """
    Parse the leading "Mmm dd HH:MM:SS" of a journal line in the given year.

    The journal prefix carries no year, so lines logged in December and read
    in January land in the wrong year. Returns ZERO_TIMESTAMP when the line
    is too short or the prefix does not parse.
    """
    if len(line) <= TIMESTAMP_WIDTH:
        return ZERO_TIMESTAMP
    try:
        return datetime.strptime(f"{year} {line[:TIMESTAMP_WIDTH]}", TIMESTAMP_FORMAT)
    except ValueError:
        return ZERO_TIMESTAMP


def parse_kill_line(line: str, year: int) -> KillEvent | None:
    """Parse one journal line; None if it does not record a kill."""
    match = KILL_PATTERN.search(line)
    if match is None:
        return None
    pid, command, reason = match.groups()
    return KillEvent(
        timestamp=parse_log_timestamp(line, year),
        pid=int(pid),
        command=command,
        reason=reason.strip(),
    )


def parse_kill_log(text: str, year: int | None = None) -> list[KillEvent]:
    """Parse journal output into kill events, newest first."""
    if year is None:
        year = datetime.now().year
    events = [
        event
        for event in (parse_kill_line(line, year) for line in text.splitlines())
        if event is not None
    ]
    # ZERO_TIMESTAMP is datetime.min, so unparsable entries sort last.
    events.sort(key=lambda event: event.timestamp, reverse=True)
    return events


def fetch_kill_events(
    unit: str = DEFAULT_UNIT,
    lines: int = DEFAULT_LINES,
    timeout: float = FETCH_TIMEOUT,
) -> list[KillEvent]:
    """
    Fetch the last `lines` journal lines of `unit` and extract kill events.

    Best effort: a missing journalctl, a missing unit, a non-zero exit or a
    timeout all yield an empty list.
    """
    try:
        result = subprocess.run(
            ["journalctl", "-u", unit, "-n", str(lines), "--no-pager"],
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        logger.debug("Could not read %s journal: %s", unit, exc)
        return []

    if result.returncode != 0:
        logger.debug("journalctl exited with status %d", result.returncode)
        return []
    return parse_kill_log(result.stdout)
