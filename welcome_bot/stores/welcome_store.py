"""Per-scope welcome content store.

Maps a scope key (a room id, or ``GLOBAL_SCOPE``) to a ``WelcomeRecord`` and
persists the whole mapping to a JSON object on disk. The store does not know
about global-welcome mode: callers resolve the scope with ``resolve_scope``
at every read and write site.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from pydantic import ValidationError

from welcome_bot.models.domain import WelcomeRecord
from welcome_bot.stores.json_document import JsonDocument

logger = logging.getLogger(__name__)

GLOBAL_SCOPE = "_global"


def resolve_scope(room_id: str, global_welcome: bool) -> str:
    """Return the scope key under which ``room_id``'s welcome is stored."""
    return GLOBAL_SCOPE if global_welcome else room_id


class WelcomeStore:
    """Durable mapping of scope key -> WelcomeRecord.

    Readers get deep copies, so a snapshot never changes under them and
    nothing outside ``set`` can touch the cached records.
    """

    def __init__(self, path: str | Path) -> None:
        self._document = JsonDocument(path)
        self._lock = threading.Lock()
        self._records: dict[str, WelcomeRecord] = self._load()

    def _load(self) -> dict[str, WelcomeRecord]:
        raw = self._document.load(default={})
        if not isinstance(raw, dict):
            logger.warning("Welcome store %s is not a JSON object, starting empty", self.path)
            return {}

        records: dict[str, WelcomeRecord] = {}
        for scope, data in raw.items():
            try:
                records[str(scope)] = WelcomeRecord.model_validate(data)
            except ValidationError as e:
                logger.warning("Skipping invalid welcome record for %s: %s", scope, e)
        logger.info("Loaded %d welcome record(s) from %s", len(records), self.path)
        return records

    @property
    def path(self) -> Path:
        return self._document.path

    def get(self, scope_key: str) -> WelcomeRecord:
        """Return the record for ``scope_key``, or an empty one."""
        with self._lock:
            record = self._records.get(scope_key)
            if record is None:
                return WelcomeRecord()
            return record.model_copy(deep=True)

    def set(self, scope_key: str, record: WelcomeRecord) -> None:
        """Replace the record for ``scope_key`` and persist before returning.

        Raises:
            PersistenceError: If the write failed; the previous record is kept.
        """
        with self._lock:
            previous = self._records.get(scope_key)
            self._records[scope_key] = record.model_copy(deep=True)
            try:
                self._document.save(self._serialize())
            except Exception:
                if previous is None:
                    self._records.pop(scope_key, None)
                else:
                    self._records[scope_key] = previous
                raise

    def scopes(self) -> list[str]:
        with self._lock:
            return list(self._records)

    def _serialize(self) -> dict:
        return {
            scope: record.model_dump(by_alias=True, exclude_none=True)
            for scope, record in self._records.items()
        }
