import time
from threading import Lock

DEFAULT_TTL = 30.0  # seconds


class RecentlyTouched:
    """
    TTL set of product ids edited or synced during this session.

    Each mark carries its own deadline; expired marks are dropped lazily on
    the next access, so there are no timers left running after a session ends.
    Re-marking an id pushes its deadline out again.
    """

    def __init__(self, ttl: float = DEFAULT_TTL, clock=time.monotonic):
        self._ttl = ttl
        self._clock = clock
        self._deadlines = {}
        self._lock = Lock()

    def mark(self, product_id):
        with self._lock:
            self._deadlines[str(product_id)] = self._clock() + self._ttl

    def discard(self, product_id):
        with self._lock:
            self._deadlines.pop(str(product_id), None)

    def clear(self):
        with self._lock:
            self._deadlines.clear()

    def _purge(self):
        now = self._clock()
        expired = [key for key, deadline in self._deadlines.items() if deadline <= now]
        for key in expired:
            del self._deadlines[key]

    def __contains__(self, product_id) -> bool:
        with self._lock:
            self._purge()
            return str(product_id) in self._deadlines

    def __len__(self) -> int:
        with self._lock:
            self._purge()
            return len(self._deadlines)

    def snapshot(self) -> frozenset:
        """Ids currently marked, for passing into the filter engine."""
        with self._lock:
            self._purge()
            return frozenset(self._deadlines)
