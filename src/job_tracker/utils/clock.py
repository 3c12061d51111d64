from datetime import UTC, datetime, timedelta


class MonotonicClock:
    """UTC ISO-8601 timestamps that never repeat and never go backwards.

    Two calls within the same microsecond (or across a wall-clock step back)
    still produce strictly increasing values, so ``updated_at`` always moves
    forward. All values share one format and therefore compare correctly as
    strings.
    """

    def __init__(self) -> None:
        self._last: datetime | None = None

    def now(self) -> str:
        current = datetime.now(UTC)
        if self._last is not None and current <= self._last:
            current = self._last + timedelta(microseconds=1)
        self._last = current
        return current.isoformat(timespec="microseconds")
