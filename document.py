"""Persisted document buffer."""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path

logger = logging.getLogger(__name__)


class PersistedDocument:
    """The authoritative document text, kept in its own plain-text file.

    The editor writes here on every edit and the insertion step reads from
    here right before merging, so both sides always agree on one copy. The
    file sits next to the settings file but never touches it.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "dictapad" / "document.txt"
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def read(self) -> str:
        with self._lock:
            if not self._path.exists():
                return ""
            try:
                with open(self._path, encoding="utf-8", newline="") as fh:
                    return fh.read()
            except (OSError, UnicodeDecodeError):
                logger.warning("Could not read document %s, starting empty", self._path)
                return ""

    def write(self, text: str) -> None:
        with self._lock:
            tmp = self._path.with_name(self._path.name + ".tmp")
            # newline="" keeps "\r" and "\n" exactly as typed
            with open(tmp, "w", encoding="utf-8", newline="") as fh:
                fh.write(text)
            os.replace(tmp, self._path)

    def clear(self) -> None:
        self.write("")
