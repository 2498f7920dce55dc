"""Flat JSON documents with whole-snapshot reads and atomic replace writes.

Each document is read in full, mutated in memory and written back through a
temp file that is renamed over the original. Inside one process a lock per
path serialises read-modify-write cycles; across processes the result is
last-writer-wins.

A missing document reads as the default; one that exists but cannot be
parsed raises ``PersistenceError`` and is left untouched.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import threading
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, TypeVar

from .errors import PersistenceError

log = logging.getLogger(__name__)

T = TypeVar("T")

_LOCKS: Dict[str, threading.RLock] = {}
_LOCKS_GUARD = threading.Lock()


def _lock_for(path: Path) -> threading.RLock:
    key = str(path)
    with _LOCKS_GUARD:
        lock = _LOCKS.get(key)
        if lock is None:
            lock = _LOCKS[key] = threading.RLock()
        return lock


class JsonRepository:
    def __init__(self, path: Path | str, default: Any):
        self.path = Path(path).resolve()
        self._default = default
        self._lock = _lock_for(self.path)

    def default(self) -> Any:
        return copy.deepcopy(self._default)

    def read_all(self) -> Any:
        if not self.path.exists():
            return self.default()
        try:
            return json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            # a corrupt document is never treated as empty
            log.error("unreadable document %s: %s", self.path.name, exc)
            raise PersistenceError("No se pudo leer la información guardada.") from exc

    def write_all(self, snapshot: Any) -> None:
        tmp = self.path.with_name(f"{self.path.name}.tmp.{uuid.uuid4().hex}")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(snapshot, indent=2, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp, self.path)
        except (OSError, TypeError, ValueError) as exc:
            log.exception("failed to write %s", self.path.name)
            try:
                tmp.unlink()
            except FileNotFoundError:
                pass
            except OSError:
                log.warning("could not remove temp file %s", tmp.name)
            raise PersistenceError() from exc

    def mutate(self, fn: Callable[[Any], T]) -> T:
        """Run ``fn`` on a fresh snapshot and persist it.

        ``fn`` mutates the snapshot in place and returns whatever the caller
        needs. If it raises, nothing is written.
        """
        with self._lock:
            snapshot = self.read_all()
            result = fn(snapshot)
            self.write_all(snapshot)
            return result
