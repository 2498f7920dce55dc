"""Request-level operations tying the stores together.

Each public method is one independent handler invocation: it takes an
explicit ``RequestContext`` (or ``now``), touches the JSON documents through
the stores, and either returns a result or raises an ``AshError``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from . import config as cfg_defaults
from .diagnostics import DiagnosticFilters, DiagnosticPage, DiagnosticStore, new_diagnostic_id
from .errors import NotFoundError, RateLimitedError, StateError, ValidationError
from .keys import KeyStore, validate_format
from .limiter import AttemptLimiter, fingerprint
from .notifier import Notifier, NullNotifier
from .scoring import score, validate_answers
from .sessions import SessionStore
from .types import PRODUCTS, DiagnosticRecord, KeyRecord, Priority, RequestContext, Status

log = logging.getLogger(__name__)

ANONYMOUS_EMAIL = "cliente@diagnostico.ash"


@dataclass(frozen=True)
class VerifyResult:
    token: str
    product: str
    valid_until: datetime
    session_expires_at: datetime


@dataclass(frozen=True)
class SubmitResult:
    diagnostic_id: str
    numeric_id: int
    created_at: datetime
    product: str
    overall_average: float
    status: Status
    priority: Priority
    notified: bool


def normalize_key(raw: Optional[str]) -> str:
    return (raw or "").strip().upper()


class AshService:
    def __init__(
        self,
        keys: KeyStore,
        sessions: SessionStore,
        limiter: AttemptLimiter,
        diagnostics: DiagnosticStore,
        notifier: Optional[Notifier] = None,
    ):
        self.keys = keys
        self.sessions = sessions
        self.limiter = limiter
        self.diagnostics = diagnostics
        self.notifier = notifier or NullNotifier()

    # ---- VerifyKey ----
    def verify_key(self, key: str, product: str, email: Optional[str], ctx: RequestContext) -> VerifyResult:
        value = normalize_key(key)
        if not value or not product:
            raise ValidationError("Clave y producto son requeridos.")
        if product not in PRODUCTS:
            raise ValidationError('Producto inválido. Use "personas" o "empresas".')
        if not validate_format(value, product):
            raise ValidationError(f"Formato de clave inválido para {product}.")

        fp = fingerprint(ctx.ip, ctx.user_agent, value)
        decision = self.limiter.check(fp, ctx.now)
        if not decision.allowed:
            log.warning("verification blocked for %s from %s", value, ctx.ip)
            raise RateLimitedError(decision.retry_after)

        try:
            record = self.keys.verify(value, product, ctx.now)
        except NotFoundError:
            self.limiter.record_failure(fp, ctx.now, product, key_exists=False)
            raise
        except StateError:
            self.limiter.record_failure(fp, ctx.now, product, key_exists=True)
            raise

        self.limiter.record_success(fp)
        session = self.sessions.create(record, email, ctx)
        log.info("key %s verified for %s from %s", value, email or "-", ctx.ip)
        return VerifyResult(
            token=session.token,
            product=record.product,
            valid_until=record.valid_until,
            session_expires_at=session.expires_at,
        )

    # ---- SubmitDiagnostic ----
    def submit_diagnostic(self, token: str, raw_answers: Sequence[Optional[int]], ctx: RequestContext) -> SubmitResult:
        # validate before consuming so a malformed payload does not burn the token
        pending = self.sessions.get(token, ctx.now)
        answers = validate_answers(raw_answers, pending.product)
        session = self.sessions.consume(token, ctx.now)

        result = score(answers, session.product)
        record = DiagnosticRecord(
            id=new_diagnostic_id(ctx.now),
            created_at=ctx.now,
            product=session.product,
            client_email=session.email or ANONYMOUS_EMAIL,
            key_id=session.key_id,
            key_value=session.key_value,
            client_ip=ctx.ip,
            user_agent=ctx.user_agent,
            raw_answers=answers,
            dimension_scores=result.dimension_scores,
            overall_average=result.overall_average,
            status=result.status,
            priority=result.priority,
            findings=result.findings,
            recommendations=result.recommendations,
            system_version=cfg_defaults.SYSTEM_VERSION,
        )
        self.diagnostics.append(record)
        self.mark_key_used(session.key_id, record.id, ctx.now)

        notified = self.notifier.send(record)
        return SubmitResult(
            diagnostic_id=record.id,
            numeric_id=record.numeric_id,
            created_at=record.created_at,
            product=record.product,
            overall_average=record.overall_average,
            status=record.status,
            priority=record.priority,
            notified=notified,
        )

    # ---- MarkKeyUsed (internal) ----
    def mark_key_used(self, key_id: int, diagnostic_id: str, now: datetime) -> KeyRecord:
        return self.keys.mark_used(key_id, diagnostic_id, now)

    # ---- ListDiagnostics ----
    def list_diagnostics(
        self,
        filters: Optional[DiagnosticFilters] = None,
        sort: str = "newest",
        page: int = 1,
        page_size: int = cfg_defaults.PAGE_SIZE_DEFAULT,
    ) -> DiagnosticPage:
        return self.diagnostics.list(filters, sort=sort, page=page, page_size=page_size)

    # ---- GenerateKeys (admin) ----
    def generate_keys(
        self,
        count: int,
        product: str,
        now: datetime,
        validity_days: int = cfg_defaults.KEY_VALIDITY_DAYS,
        client: str = "",
        project: str = "",
        issued_by: str = "sistema",
    ) -> List[KeyRecord]:
        meta: Dict[str, str] = {}
        if client:
            meta["client"] = client.strip()
        if project:
            meta["project"] = project.strip()
        keys = self.keys.issue_batch(count, product, now, validity_days, meta, issued_by)
        log.info("%d keys generated for %s by %s", len(keys), product, issued_by)
        return keys

    # ---- maintenance ----
    def sweep(self, now: datetime) -> Dict[str, int]:
        return {
            "sessions": self.sessions.sweep(now),
            "attempts": self.limiter.purge(now),
        }
