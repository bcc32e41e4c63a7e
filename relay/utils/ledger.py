"""
In-memory idempotency ledger for fulfillment actions.

The webhook and the success page can both confirm the same payment, and the
success page can be reloaded. Entries are keyed by action + session id and
live for a TTL; they are lost on restart.
"""
import time
from typing import Any, Callable, Optional

_PENDING = object()


class IdempotencyLedger:
    """Check-and-set registry of fulfillment results"""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}

    @staticmethod
    def key(action: str, session_id: str) -> str:
        return f"{action}:{session_id}"

    def reserve(self, key: str) -> bool:
        """Marks the key as in progress. False if it is already taken"""
        self._purge()
        if key in self._entries:
            return False
        self._entries[key] = (self._clock(), _PENDING)
        return True

    def complete(self, key: str, result: Any) -> None:
        """Stores the result of a finished action"""
        self._entries[key] = (self._clock(), result)

    def release(self, key: str) -> None:
        """Drops a reservation after a failed action so it can be retried"""
        self._entries.pop(key, None)

    def result(self, key: str) -> Optional[Any]:
        """Returns the stored result, None while pending or unknown"""
        self._purge()
        entry = self._entries.get(key)
        if entry is None or entry[1] is _PENDING:
            return None
        return entry[1]

    def is_pending(self, key: str) -> bool:
        """True while the action holding the key is still running"""
        self._purge()
        entry = self._entries.get(key)
        return entry is not None and entry[1] is _PENDING

    def __len__(self) -> int:
        self._purge()
        return len(self._entries)

    def _purge(self) -> None:
        cutoff = self._clock() - self.ttl_seconds
        expired = [k for k, (created, _) in self._entries.items() if created < cutoff]
        for k in expired:
            del self._entries[k]
