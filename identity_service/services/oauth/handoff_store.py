"""One-time handoff codes.

The callback redirect carries an opaque code instead of the session token,
keeping the token out of browser history, referrers and access logs. The
frontend trades the code for the token exactly once via the exchange
endpoint.

The store is an explicitly constructed component: the application creates
one at startup, hands it to whoever needs it, and closes it at shutdown,
which stops the expiry sweep.
"""
from __future__ import annotations

import datetime as dt
import logging
import secrets
import threading
from collections.abc import Callable
from dataclasses import dataclass

from identity_service.models.schemas import UserOut

logger = logging.getLogger(__name__)

CODE_BYTES = 32
DEFAULT_TTL = dt.timedelta(minutes=5)
DEFAULT_SWEEP_INTERVAL = dt.timedelta(minutes=1)


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


@dataclass(frozen=True)
class HandoffEntry:
    code: str
    token: str
    user: UserOut
    is_new_user: bool
    state: str
    expires_at: dt.datetime

    def is_expired(self, now: dt.datetime) -> bool:
        return now > self.expires_at


class HandoffStore:
    """
    In-memory, thread-safe map of handoff code -> HandoffEntry.

    A single lock guards every read-modify-write; nothing under the lock
    does I/O.
    """

    def __init__(
        self,
        ttl: dt.timedelta = DEFAULT_TTL,
        sweep_interval: dt.timedelta | None = DEFAULT_SWEEP_INTERVAL,
        clock: Callable[[], dt.datetime] = _utcnow,
    ):
        """
        Args:
            ttl: Lifetime of an unconsumed code
            sweep_interval: Period of the background expiry sweep; None disables the thread
            clock: Source of the current time (tests pass a fake)
        """
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, HandoffEntry] = {}
        self._lock = threading.Lock()
        self._stopped = threading.Event()
        self._sweeper: threading.Thread | None = None
        if sweep_interval is not None:
            self._sweeper = threading.Thread(
                target=self._sweep_loop,
                args=(sweep_interval.total_seconds(),),
                name="handoff-sweeper",
                daemon=True,
            )
            self._sweeper.start()

    def generate(self, token: str, user: UserOut, is_new_user: bool, state: str) -> str:
        code = secrets.token_urlsafe(CODE_BYTES)
        entry = HandoffEntry(
            code=code,
            token=token,
            user=user,
            is_new_user=is_new_user,
            state=state,
            expires_at=self._clock() + self.ttl,
        )
        with self._lock:
            self._entries[code] = entry
        return code

    def consume(self, code: str, expected_state: str = "") -> HandoffEntry | None:
        """
        Atomically take the entry for ``code``.

        Returns None when the code is unknown, expired, or was minted for a
        different state. Callers cannot tell these cases apart. A
        state mismatch leaves the entry in place for its rightful owner.
        """
        now = self._clock()
        with self._lock:
            entry = self._entries.get(code)
            if entry is None:
                return None
            if entry.is_expired(now):
                del self._entries[code]
                return None
            if expected_state and entry.state != expected_state:
                return None
            del self._entries[code]
        return entry

    def sweep(self) -> int:
        """Evict expired entries; returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [code for code, entry in self._entries.items() if entry.is_expired(now)]
            for code in expired:
                del self._entries[code]
        if expired:
            logger.debug("Swept %d expired handoff codes", len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def close(self) -> None:
        self._stopped.set()
        if self._sweeper is not None and self._sweeper is not threading.current_thread():
            self._sweeper.join(timeout=5)

    def _sweep_loop(self, interval: float) -> None:
        while not self._stopped.wait(interval):
            try:
                self.sweep()
            except Exception:  # noqa: BLE001
                logger.exception("Handoff sweep failed")
