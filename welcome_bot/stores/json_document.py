"""Durable JSON documents on local disk.

Both bot stores keep their whole state in one small JSON file. Reads are
tolerant (missing or corrupt file => caller default); writes are atomic: the
document is written to a sibling temp file, fsynced, and renamed over the
target, so a crash leaves either the old or the new document, never a torn
one.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """Raised when a store cannot durably write its document."""


class JsonDocument:
    """One JSON file, loaded once and rewritten atomically on every save."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()

    def load(self, default: Any) -> Any:
        """Load the document, returning ``default`` if missing or unreadable."""
        if not self.path.exists():
            return default
        try:
            with self.path.open("r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(
                "Ignoring unreadable state file %s, starting empty: %s", self.path, e
            )
            return default

    def save(self, data: Any) -> None:
        """Write ``data`` atomically and durably.

        Raises:
            PersistenceError: If the document could not be written.
        """
        tmp_name: str | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
            tmp_name = None
            self._fsync_dir()
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"Failed to write {self.path}: {e}") from e
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass

    def _fsync_dir(self) -> None:
        # Directory fsync makes the rename itself durable; not supported everywhere.
        try:
            dir_fd = os.open(self.path.parent, os.O_RDONLY)
        except OSError:
            return
        try:
            os.fsync(dir_fd)
        except OSError:
            pass
        finally:
            os.close(dir_fd)
