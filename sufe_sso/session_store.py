"""In-memory map from browser-facing session ids to upstream session cookies.

Used by the demo server: the browser only ever sees an opaque id, while the
upstream cookie captured at captcha time stays server-side.  Entries are
never mutated.  With ``ttl=None`` they live for the process lifetime;
otherwise they expire ``ttl`` seconds after creation and are evicted lazily
on ``create()`` and ``resolve()``.
"""

import secrets
import threading
import time
from typing import Callable, Dict, Optional, Tuple


class SessionStore:
    """Thread-safe ``session_id -> cookie`` mapping with optional expiry.

    Args:
        ttl:    Seconds an entry stays resolvable, or ``None`` for no expiry.
        clock:  Monotonic time source (injectable for tests).
    """

    def __init__(self, ttl: Optional[float] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.Lock()

    def create(self, cookie: str) -> str:
        """Store ``cookie`` under a freshly minted, unguessable id."""
        if not cookie:
            raise ValueError("cookie must be a non-empty string")
        with self._lock:
            self._purge_locked()
            session_id = secrets.token_urlsafe(16)
            while session_id in self._entries:
                session_id = secrets.token_urlsafe(16)
            self._entries[session_id] = (cookie, self._clock())
            return session_id

    def resolve(self, session_id: Optional[str]) -> Optional[str]:
        """Return the cookie for ``session_id``, or ``None`` if unknown or expired."""
        if not session_id:
            return None
        with self._lock:
            entry = self._entries.get(session_id)
            if entry is None:
                return None
            cookie, created = entry
            if self._expired(created):
                del self._entries[session_id]
                return None
            return cookie

    def purge_expired(self) -> int:
        """Drop every expired entry.  Returns how many were removed."""
        with self._lock:
            return self._purge_locked()

    def __len__(self):
        with self._lock:
            return len(self._entries)

    def _expired(self, created: float) -> bool:
        return self.ttl is not None and self._clock() - created >= self.ttl

    def _purge_locked(self) -> int:
        if self.ttl is None:
            return 0
        stale = [sid for sid, (_, created) in self._entries.items() if self._expired(created)]
        for sid in stale:
            del self._entries[sid]
        return len(stale)
