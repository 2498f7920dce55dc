from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional

from . import config as cfg_defaults
from .repository import JsonRepository
from .types import AttemptCounter

log = logging.getLogger(__name__)


def fingerprint(ip: str, user_agent: str, key_value: str) -> str:
    """Client + attempted key; attempts on different keys never share a counter."""
    raw = f"{ip}{user_agent or 'Desconocido'}{key_value}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class LimitDecision:
    allowed: bool
    retry_after: Optional[timedelta] = None


class AttemptLimiter:
    """Failure counter per fingerprint with a passive, time-based lockout.

    Stale entries (lock elapsed, or window passed without reaching the
    threshold) are dropped lazily whenever they are looked at.
    """

    def __init__(
        self,
        repo: JsonRepository,
        max_attempts: int = cfg_defaults.MAX_FAILED_ATTEMPTS,
        lockout: timedelta = timedelta(minutes=cfg_defaults.LOCKOUT_MINUTES),
        window: timedelta = timedelta(minutes=cfg_defaults.ATTEMPT_WINDOW_MINUTES),
    ):
        self.repo = repo
        self.max_attempts = max_attempts
        self.lockout = lockout
        self.window = window

    def _is_stale(self, entry: AttemptCounter, now: datetime) -> bool:
        if entry.locked_until is not None:
            return entry.locked_until <= now
        return now > entry.first_attempt + self.window

    def check(self, fp: str, now: datetime) -> LimitDecision:
        doc: Dict[str, dict] = self.repo.read_all()
        raw = doc.get(fp)
        if raw is None:
            return LimitDecision(True)
        entry = AttemptCounter.from_dict(raw)
        if entry.locked_until is not None and entry.locked_until > now:
            return LimitDecision(False, entry.locked_until - now)
        if self._is_stale(entry, now):
            self.repo.mutate(lambda d: d.pop(fp, None))
        return LimitDecision(True)

    def record_failure(
        self,
        fp: str,
        now: datetime,
        product: Optional[str] = None,
        key_exists: bool = False,
    ) -> AttemptCounter:
        def _apply(doc: Dict[str, dict]) -> AttemptCounter:
            raw = doc.get(fp)
            entry = AttemptCounter.from_dict(raw) if raw else None
            if entry is None or self._is_stale(entry, now):
                entry = AttemptCounter(count=0, first_attempt=now, last_attempt=now)
            entry.count += 1
            entry.last_attempt = now
            entry.product = product
            entry.key_exists = key_exists
            if entry.count >= self.max_attempts:
                entry.locked_until = now + self.lockout
            doc[fp] = entry.to_dict()
            return entry

        entry = self.repo.mutate(_apply)
        if entry.locked_until is not None:
            log.warning("fingerprint %s locked until %s after %d failures",
                        fp[:12], entry.locked_until.isoformat(), entry.count)
        else:
            log.warning("failed attempt %d/%d for fingerprint %s", entry.count, self.max_attempts, fp[:12])
        return entry

    def record_success(self, fp: str) -> None:
        doc = self.repo.read_all()
        if fp in doc:
            self.repo.mutate(lambda d: d.pop(fp, None))

    def get(self, fp: str) -> Optional[AttemptCounter]:
        raw = self.repo.read_all().get(fp)
        return AttemptCounter.from_dict(raw) if raw else None

    def purge(self, now: datetime) -> int:
        def _apply(doc: Dict[str, dict]) -> int:
            stale = [fp for fp, raw in doc.items() if self._is_stale(AttemptCounter.from_dict(raw), now)]
            for fp in stale:
                doc.pop(fp, None)
            return len(stale)

        return self.repo.mutate(_apply)
