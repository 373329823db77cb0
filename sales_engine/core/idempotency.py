import time
from dataclasses import dataclass
from threading import Lock

from sales_engine.services.errors import DuplicateSubmissionError

PAYLOAD_MISMATCH = "This idempotency key was already used for a different sale"


@dataclass
class _KeyState:
    started_at: float
    sale_id: str | None = None
    fingerprint: str | None = None


class IdempotencyCache:
    """Short-lived record of submission keys supplied by callers.

    A key is "in flight" between begin() and complete()/release() and is
    never pruned while it is. Completed keys replay their sale id until the
    TTL passes, but only for the same payload fingerprint.
    """

    def __init__(self, *, ttl_seconds: int):
        self.ttl_seconds = ttl_seconds
        self._states: dict[str, _KeyState] = {}
        self._lock = Lock()

    def begin(self, key: str, fingerprint: str | None = None) -> str | None:
        """Returns the sale id of a completed submission, otherwise claims the key."""
        now = time.time()
        with self._lock:
            self._prune(now)
            state = self._states.get(key)
            if state is None:
                self._states[key] = _KeyState(started_at=now, fingerprint=fingerprint)
                return None
            if fingerprint is not None and state.fingerprint is not None and fingerprint != state.fingerprint:
                raise DuplicateSubmissionError(key, PAYLOAD_MISMATCH)
            if state.sale_id is None:
                raise DuplicateSubmissionError(key)
            return state.sale_id

    def complete(self, key: str, sale_id: str) -> None:
        with self._lock:
            previous = self._states.get(key)
            self._states[key] = _KeyState(
                started_at=time.time(),
                sale_id=sale_id,
                fingerprint=previous.fingerprint if previous else None,
            )

    def release(self, key: str) -> None:
        with self._lock:
            self._states.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._states.clear()

    def _prune(self, now: float) -> None:
        cutoff = now - self.ttl_seconds
        expired = [
            key
            for key, state in self._states.items()
            if state.sale_id is not None and state.started_at < cutoff
        ]
        for key in expired:
            del self._states[key]
