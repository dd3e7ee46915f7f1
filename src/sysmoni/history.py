"""Previous-tick cumulative counters used to derive rates."""

from collections.abc import Iterable


class CounterHistory:
    """
    Store of the last observed value of each cumulative counter.

    Every call both computes a delta against the stored value and replaces
    it with the current one. The first observation of a key establishes the
    baseline and yields 0. Not thread-safe; owned by the sampling thread.
    """

    def __init__(self) -> None:
        self._counters: dict[str, float] = {}
        self._cpu: dict[str, tuple[float, float]] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._counters or key in self._cpu

    def observe(self, key: str, value: float) -> float:
        """
        Record a cumulative counter and return its growth since last tick.

        A counter that went backwards (device reset, wraparound) contributes
        0 rather than a negative delta.
        """
        previous = self._counters.get(key)
        self._counters[key] = value
        if previous is None or value <= previous:
            return 0.0
        return value - previous

    def utilization(self, key: str, total: float, idle: float) -> float:
        """
        Record cumulative CPU total/idle time and return busy percentage.

        Returns 0 on the first observation or when total time did not grow.
        """
        previous = self._cpu.get(key)
        self._cpu[key] = (total, idle)
        if previous is None:
            return 0.0
        prev_total, prev_idle = previous
        delta_total = total - prev_total
        if delta_total <= 0:
            return 0.0
        delta_idle = idle - prev_idle
        percent = 100.0 * (1.0 - delta_idle / delta_total)
        return min(100.0, max(0.0, percent))

    def forget(self, keep: Iterable[str], prefix: str) -> None:
        """Drop keys starting with prefix that are not in keep."""
        keep = set(keep)
        for store in (self._counters, self._cpu):
            for key in [k for k in store if k.startswith(prefix) and k not in keep]:
                del store[key]
