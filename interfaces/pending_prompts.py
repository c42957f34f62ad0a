from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Hashable, List, Optional


@dataclass
class PendingPrompt:
    """A choice prompt shown in a chat, waiting for the user who asked."""

    token: str
    requester_id: str
    values: List[str] = field(default_factory=list)
    created_at: float = 0.0


class PendingPrompts:
    """
    Continuation tokens of unanswered chat prompts, kept server-side under
    a short key (a Discord message ID, a Telegram callback key).

    Entries older than `timeout` are dropped whenever a new prompt is added,
    and are never returned.
    """

    def __init__(self, timeout: float, clock: Callable[[], float] = time.time) -> None:
        self._timeout = timeout
        self._clock = clock
        self._entries: Dict[Hashable, PendingPrompt] = {}
        self._lock = threading.Lock()

    def add(self, key: Hashable, token: str, requester_id: str, values: Optional[List[str]] = None) -> None:
        now = self._clock()
        with self._lock:
            self._prune(now)
            self._entries[key] = PendingPrompt(
                token=token,
                requester_id=requester_id,
                values=list(values or []),
                created_at=now,
            )

    def get(self, key: Hashable) -> Optional[PendingPrompt]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and self._expired(entry, self._clock()):
                del self._entries[key]
                return None
            return entry

    def pop(self, key: Hashable) -> Optional[PendingPrompt]:
        with self._lock:
            entry = self._entries.pop(key, None)
        if entry is None or self._expired(entry, self._clock()):
            return None
        return entry

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _expired(self, entry: PendingPrompt, now: float) -> bool:
        return now - entry.created_at > self._timeout

    def _prune(self, now: float) -> None:
        stale = [key for key, entry in self._entries.items() if self._expired(entry, now)]
        for key in stale:
            del self._entries[key]
