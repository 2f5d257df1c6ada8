"""
store.py
~~~~~~~~
Whole-document persistence for the status cache and the quota counter.

Both pieces of state are small flat JSON objects that are loaded in full,
mutated in memory and written back in full.  Two adapters share one
interface:

* :class:`MemoryStore`   – process-local, the default for tests.
* :class:`JsonFileStore` – one JSON file per document under
  ``$PERSIST_DIR`` (``local_data/`` when unset).

Every read-modify-write of either document must happen while holding
:data:`WRITE_LOCK`, so two scheduler triggers firing together cannot lose
each other's updates.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Protocol

LOG = logging.getLogger("store")

#: Single writer at a time into the cache and quota documents.
WRITE_LOCK = threading.RLock()


class PersistenceError(RuntimeError):
    """A document could not be read from or written to its backing store."""


class DocumentStore(Protocol):
    """Load/save one flat JSON document."""

    def load(self) -> dict[str, Any]: ...

    def save(self, doc: dict[str, Any]) -> None: ...


def determine_persist_dir(configured: str | None = None) -> Path:
    """
    Resolve (and create) the persistence directory.

    Relative paths are anchored at ``backend/``.  If the directory cannot
    be created we fall back to ``backend/local_data``.
    """
    base = Path(configured or os.getenv("PERSIST_DIR", "local_data")).expanduser()
    if not base.is_absolute():
        base = (Path(__file__).resolve().parent.parent / base).resolve()
    try:
        base.mkdir(parents=True, exist_ok=True)
        return base
    except (PermissionError, OSError):
        fallback = (Path(__file__).resolve().parent.parent / "local_data").resolve()
        fallback.mkdir(parents=True, exist_ok=True)
        LOG.warning("Using %s instead of %s", fallback, base)
        return fallback


class MemoryStore:
    """In-process store; copies on the way in and out like a real file would."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._doc: dict[str, Any] = copy.deepcopy(initial or {})
        self.saves = 0

    def load(self) -> dict[str, Any]:
        return copy.deepcopy(self._doc)

    def save(self, doc: dict[str, Any]) -> None:
        self._doc = copy.deepcopy(doc)
        self.saves += 1


class JsonFileStore:
    """
    One JSON document on disk.

    * A missing file loads as ``{}``.
    * Unreadable / corrupted files raise :class:`PersistenceError`.
    * Writes go to a temp file in the same directory and are moved into
      place with :func:`os.replace`, so readers never see half a document.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def __repr__(self) -> str:
        return f"JsonFileStore({str(self.path)!r})"

    def load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise PersistenceError(f"cannot read {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise PersistenceError(f"{self.path} does not hold a JSON object")
        return data

    def save(self, doc: dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(doc, fh, indent=2, default=str)
                os.replace(tmp, self.path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        except (OSError, TypeError, ValueError) as exc:
            raise PersistenceError(f"cannot write {self.path}: {exc}") from exc
        LOG.debug("[store] saved %s", self.path.name)


__all__ = [
    "WRITE_LOCK",
    "DocumentStore",
    "JsonFileStore",
    "MemoryStore",
    "PersistenceError",
    "determine_persist_dir",
]
