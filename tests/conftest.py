from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from ash_core.diagnostics import EMPTY_DOCUMENT as EMPTY_DIAGNOSTICS, DiagnosticStore
from ash_core.keys import EMPTY_DOCUMENT as EMPTY_KEYS, KeyStore
from ash_core.limiter import AttemptLimiter
from ash_core.repository import JsonRepository
from ash_core.scoring import score
from ash_core.service import AshService
from ash_core.sessions import SessionStore
from ash_core.types import DiagnosticRecord, RequestContext

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)
PINNED_KEY = "ASH-P-AB12-3456-7890"


class RecordingNotifier:
    """Keeps every record it is asked to send; ``ok=False`` simulates a relay outage."""

    def __init__(self, ok: bool = True):
        self.ok = ok
        self.sent: list[DiagnosticRecord] = []

    def send(self, record: DiagnosticRecord) -> bool:
        self.sent.append(record)
        return self.ok


def make_ctx(now: datetime = NOW, ip: str = "10.0.0.7", user_agent: str = "pytest-agent") -> RequestContext:
    return RequestContext(ip=ip, user_agent=user_agent, now=now)


def build_record(
    *,
    record_id: str = "1741608000_abcdef123456",
    product: str = "personas",
    answers: list | None = None,
    created_at: datetime = NOW,
    email: str = "ana@example.com",
    key_value: str | None = None,
) -> DiagnosticRecord:
    """Create a scored diagnostic without going through sessions."""

    raw = answers if answers is not None else [2] * 25
    result = score(raw, product)
    return DiagnosticRecord(
        id=record_id,
        created_at=created_at,
        product=product,
        client_email=email,
        raw_answers=list(raw),
        dimension_scores=result.dimension_scores,
        overall_average=result.overall_average,
        status=result.status,
        priority=result.priority,
        findings=result.findings,
        recommendations=result.recommendations,
        key_value=key_value,
        client_ip="10.0.0.7",
        user_agent="pytest-agent",
        system_version="2.0.0",
    )


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def key_store(tmp_path) -> KeyStore:
    return KeyStore(JsonRepository(tmp_path / "claves.json", EMPTY_KEYS), max_redemptions=5)


@pytest.fixture
def limiter(tmp_path) -> AttemptLimiter:
    return AttemptLimiter(
        JsonRepository(tmp_path / "intentos.json", {}),
        max_attempts=3,
        lockout=timedelta(minutes=15),
        window=timedelta(minutes=60),
    )


@pytest.fixture
def session_store(tmp_path) -> SessionStore:
    return SessionStore(JsonRepository(tmp_path / "sesiones.json", {}), ttl=timedelta(minutes=60))


@pytest.fixture
def diagnostic_store(tmp_path, key_store) -> DiagnosticStore:
    return DiagnosticStore(JsonRepository(tmp_path / "diagnosticos.json", EMPTY_DIAGNOSTICS), keys=key_store)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def service(key_store, session_store, limiter, diagnostic_store, notifier) -> AshService:
    return AshService(key_store, session_store, limiter, diagnostic_store, notifier)
