"""In-memory cache of pending U2F contexts."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from u2fserver import Context


@dataclass
class PendingChallenge:
    context: Context
    issued_at: float
    device_id: Optional[int] = None


class ChallengeCache:
    """Holds one open context per (scope, user) until its response arrives.

    Contexts that are replaced, expired or popped are closed by their owner:
    the cache closes replaced and expired ones, callers close popped ones.
    """

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self._clock = clock
        self._pending: Dict[Tuple[str, str], PendingChallenge] = {}
        self._lock = threading.Lock()

    def issue(
        self,
        scope: str,
        key: str,
        context: Context,
        device_id: Optional[int] = None,
    ) -> PendingChallenge:
        pending = PendingChallenge(context, self._clock(), device_id)
        with self._lock:
            previous = self._pending.pop((scope, key), None)
            self._pending[(scope, key)] = pending
        if previous is not None:
            previous.context.close()
        return pending

    def pop(self, scope: str, key: str) -> PendingChallenge | None:
        with self._lock:
            pending = self._pending.pop((scope, key), None)
        if pending is None:
            return None
        if self._clock() - pending.issued_at > self.ttl:
            pending.context.close()
            return None
        return pending
