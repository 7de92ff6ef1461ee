from __future__ import annotations

import hashlib
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable

from clawd_router.messages import ConversationTurn, last_user_index, serialize_messages

_DEFAULT_SWEEP_EVERY_WRITES = 256


@dataclass(frozen=True, slots=True)
class TurnCacheEntry:
    model_id: str
    expires_at: float


def compute_cache_key(messages: ConversationTurn) -> str:
    """Fingerprint the conversation prefix ending at the last user message."""
    index = last_user_index(messages)
    prefix = messages[: index + 1] if index >= 0 else messages
    return hashlib.sha256(serialize_messages(prefix).encode("utf-8")).hexdigest()


def compute_previous_turn_key(messages: ConversationTurn) -> str | None:
    if len(messages) < 2:
        return None
    return compute_cache_key(messages[:-2])


class TurnCache:
    """TTL memo of routing decisions per conversation turn.

    There is no single-flight: concurrent misses for one key each call the
    oracle and the last ``put`` wins. Expired entries read as absent and are
    swept every ``sweep_every_writes`` writes.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        sweep_every_writes: int = _DEFAULT_SWEEP_EVERY_WRITES,
    ) -> None:
        self._clock = clock
        self._sweep_every_writes = max(1, int(sweep_every_writes))
        self._writes_since_sweep = 0
        self._entries: dict[str, TurnCacheEntry] = {}
        self._lock = Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._entries.get(key)
        if entry is None or self._clock() >= entry.expires_at:
            return None
        return entry.model_id

    def put(self, key: str, model_id: str, ttl_seconds: float) -> None:
        entry = TurnCacheEntry(model_id=model_id, expires_at=self._clock() + ttl_seconds)
        with self._lock:
            self._entries[key] = entry
            self._writes_since_sweep += 1
            if self._writes_since_sweep < self._sweep_every_writes:
                return
            self._writes_since_sweep = 0
            self._purge_expired_locked()

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge_expired_locked()

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._writes_since_sweep = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _purge_expired_locked(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)
