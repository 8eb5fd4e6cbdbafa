"""Append-only newline-delimited JSON log.

Used for both the batch-level patch log (``.auto-patch/patch.log``) and the
per-session event logs under ``.auto-patch/logs/``.  Each call to
:meth:`JsonLinesLog.append` writes exactly one line.
"""

from __future__ import annotations

import fcntl
import json
import logging
import threading
from pathlib import Path
from typing import Any, TextIO

logger = logging.getLogger(__name__)


class JsonLinesLog:
    """Append-only JSON-lines file.

    Writes are serialised through a lock *and* an ``fcntl`` advisory lock so
    that two autopatch processes sharing a project directory do not
    interleave partial lines.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.Lock()
        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._path

    def append(self, entry: dict[str, Any]) -> None:
        """Serialise ``entry`` and append it as one line."""
        line = json.dumps(entry, default=str)
        self._append(line + "\n")

    def read_entries(self) -> list[dict[str, Any]]:
        """Parse every well-formed line; malformed lines are skipped."""
        with self._lock:
            if not self._path.exists():
                return []
            text = self._path.read_text(encoding="utf-8")

        entries: list[dict[str, Any]] = []
        for ln in text.splitlines():
            if not ln.strip():
                continue
            try:
                entries.append(json.loads(ln))
            except json.JSONDecodeError:
                logger.debug("Skipping malformed log line in %s", self._path)
        return entries

    def _append(self, text: str) -> None:
        with self._lock:
            fd: TextIO | None = None
            try:
                fd = open(self._path, "a", encoding="utf-8")
                try:
                    fcntl.flock(fd.fileno(), fcntl.LOCK_EX)
                except OSError:
                    logger.debug("Could not lock %s, appending unlocked", self._path)
                fd.write(text)
                fd.flush()
            finally:
                if fd is not None:
                    try:
                        fcntl.flock(fd.fileno(), fcntl.LOCK_UN)
                    except OSError:
                        pass
                    fd.close()
