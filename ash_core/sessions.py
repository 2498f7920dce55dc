"""Ephemeral sessions issued after a key passes verification.

A session authorises exactly one diagnostic submission. The TTL is fixed at
creation time. Lookups never reveal why a token is rejected: unknown, expired
and already consumed tokens all surface as ``SESSION_INVALID``.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from . import config as cfg_defaults
from .errors import NotFoundError
from .repository import JsonRepository
from .types import KeyRecord, RequestContext, Session

log = logging.getLogger(__name__)


def _invalid() -> NotFoundError:
    return NotFoundError("Sesión no válida o expirada.", code="SESSION_INVALID")


def _prune(doc: Dict[str, dict], now: datetime) -> int:
    expired = [tok for tok, raw in doc.items() if Session.from_dict(raw).is_expired(now)]
    for tok in expired:
        doc.pop(tok, None)
    return len(expired)


class SessionStore:
    def __init__(self, repo: JsonRepository, ttl: timedelta = timedelta(minutes=cfg_defaults.SESSION_TTL_MINUTES)):
        self.repo = repo
        self.ttl = ttl

    def create(self, key: KeyRecord, email: Optional[str], ctx: RequestContext) -> Session:
        session = Session(
            token=secrets.token_hex(32),
            key_id=key.id,
            key_value=key.value,
            product=key.product,
            email=email or None,
            created_at=ctx.now,
            expires_at=ctx.now + self.ttl,
            client_ip=ctx.ip,
            user_agent=ctx.user_agent,
        )

        def _apply(doc: Dict[str, dict]) -> None:
            _prune(doc, ctx.now)
            doc[session.token] = session.to_dict()

        self.repo.mutate(_apply)
        log.info("session created for key id=%d expires %s", key.id, session.expires_at.isoformat())
        return session

    def get(self, token: str, now: datetime) -> Session:
        raw = self.repo.read_all().get(token) if token else None
        if raw is None:
            raise _invalid()
        session = Session.from_dict(raw)
        if session.is_expired(now):
            self.sweep(now)
            raise _invalid()
        return session

    def consume(self, token: str, now: datetime) -> Session:
        """Fetch and delete in one locked mutation; a token works once."""
        if not token:
            raise _invalid()

        def _apply(doc: Dict[str, dict]) -> Optional[Session]:
            raw = doc.pop(token, None)
            _prune(doc, now)
            if raw is None:
                return None
            session = Session.from_dict(raw)
            return None if session.is_expired(now) else session

        session = self.repo.mutate(_apply)
        if session is None:
            raise _invalid()
        log.info("session consumed for key id=%d", session.key_id)
        return session

    def sweep(self, now: datetime) -> int:
        removed = self.repo.mutate(lambda doc: _prune(doc, now))
        if removed:
            log.info("swept %d expired sessions", removed)
        return removed

    def list_active(self, now: datetime) -> List[Session]:
        doc = self.repo.read_all()
        active = [Session.from_dict(raw) for raw in doc.values()]
        if any(s.is_expired(now) for s in active):
            self.sweep(now)
        out = [s for s in active if not s.is_expired(now)]
        out.sort(key=lambda s: s.created_at, reverse=True)
        return out
