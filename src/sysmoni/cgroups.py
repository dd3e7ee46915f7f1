"""Process id to cgroup leaf attribution with periodic wholesale invalidation."""

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

# Ticks between unconditional cache clears. Bounds memory and limits how
# long a reused pid can be attributed to its previous owner's cgroup.
CLEAR_EVERY = 60


def parse_cgroup_leaf(text: str) -> str | None:
    """
    Return the leaf name of the first cgroup record in /proc/<pid>/cgroup.

    Each record looks like "hierarchy-id:controllers:/path/to/leaf". The leaf
    is the last non-empty path segment; records with an empty path (e.g. the
    root cgroup "0::/") are skipped.
    """
    for line in text.splitlines():
        parts = line.split(":")
        if len(parts) != 3:
            continue
        for segment in reversed(parts[2].split("/")):
            if segment:
                return segment
    return None


class CgroupCache:
    """Bounded pid -> cgroup leaf cache, cleared every CLEAR_EVERY ticks."""

    def __init__(self, proc_root: str | Path = "/proc", clear_every: int = CLEAR_EVERY) -> None:
        self._proc_root = Path(proc_root)
        self._clear_every = clear_every
        self._entries: dict[int, str] = {}
        self._ticks = 0

    def __len__(self) -> int:
        return len(self._entries)

    def tick(self) -> None:
        """Advance one sampling tick, clearing the cache when due."""
        self._ticks += 1
        if self._ticks >= self._clear_every:
            self._entries.clear()
            self._ticks = 0

    def lookup(self, pid: int) -> str | None:
        """
        Return the cgroup leaf for pid, reading it from procfs on a miss.

        Misses that find no cgroup record are not cached, so a process whose
        cgroup becomes readable later is picked up on the next tick.
        """
        cached = self._entries.get(pid)
        if cached is not None:
            return cached

        try:
            text = (self._proc_root / str(pid) / "cgroup").read_text()
        except OSError as exc:
            logger.debug("No cgroup record for pid %d: %s", pid, exc)
            return None

        leaf = parse_cgroup_leaf(text)
        if leaf is not None:
            self._entries[pid] = leaf
        return leaf
