"""
Throttle gate for partial results.

Each partial already holds the full accumulated object, so only the most
recent one matters: values arriving inside the throttle window replace
the pending value instead of queueing behind it.
"""
import json
import time
from typing import Any, Callable, Optional

THROTTLE_MS = 150

_NOTHING = object()


def _fingerprint(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


class ThrottleGate:
    """
    Decides which partial values are forwarded to the client.

    offer() returns the value to send now, or None when it was kept as
    pending. flush() hands back the pending value at the end of a stream.
    """

    def __init__(self, interval_ms: int = THROTTLE_MS, clock: Callable[[], float] = time.monotonic):
        self._interval = interval_ms / 1000
        self._clock = clock
        self._last_sent_at: Optional[float] = None
        self._last_sent: Optional[str] = None
        self._pending: Any = _NOTHING
        self.forwarded = 0
        self.coalesced = 0

    @property
    def has_pending(self) -> bool:
        return self._pending is not _NOTHING

    def offer(self, value: Any, force: bool = False) -> Optional[Any]:
        fingerprint = _fingerprint(value)

        if fingerprint == self._last_sent and not force:
            # Newest state is already on the wire
            self._pending = _NOTHING
            return None

        now = self._clock()
        due = self._last_sent_at is None or now - self._last_sent_at >= self._interval
        if force or due:
            self._pending = _NOTHING
            self._mark_sent(fingerprint, now)
            return value

        if self.has_pending:
            self.coalesced += 1
        self._pending = value
        return None

    def flush(self) -> Optional[Any]:
        if not self.has_pending:
            return None
        value = self._pending
        self._pending = _NOTHING
        self._mark_sent(_fingerprint(value), self._clock())
        return value

    def _mark_sent(self, fingerprint: str, now: float) -> None:
        self._last_sent = fingerprint
        self._last_sent_at = now
        self.forwarded += 1
