"""Persistent "already welcomed" set.

Entries are ``"roomId:userId"`` strings stored as a JSON array. There is no
removal path: once a pair is marked it stays marked.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from welcome_bot.stores.json_document import JsonDocument

logger = logging.getLogger(__name__)


def dedup_key(room_id: str, user_id: str) -> str:
    return f"{room_id}:{user_id}"


class DedupStore:
    """Durable set of (room, user) pairs that have been welcomed."""

    def __init__(self, path: str | Path) -> None:
        self._document = JsonDocument(path)
        self._lock = threading.Lock()
        self._keys: set[str] = self._load()

    def _load(self) -> set[str]:
        raw = self._document.load(default=[])
        if not isinstance(raw, list):
            logger.warning("Dedup store %s is not a JSON array, starting empty", self._document.path)
            return set()
        keys = {item for item in raw if isinstance(item, str)}
        logger.info("Loaded %d welcomed pair(s) from %s", len(keys), self._document.path)
        return keys

    def has(self, room_id: str, user_id: str) -> bool:
        with self._lock:
            return dedup_key(room_id, user_id) in self._keys

    def mark_and_persist(self, room_id: str, user_id: str) -> None:
        """Mark the pair and write the set to disk before returning.

        Raises:
            PersistenceError: If the write failed; the mark is rolled back.
        """
        key = dedup_key(room_id, user_id)
        with self._lock:
            if key in self._keys:
                return
            self._keys.add(key)
            try:
                self._document.save(sorted(self._keys))
            except Exception:
                self._keys.discard(key)
                raise

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)
