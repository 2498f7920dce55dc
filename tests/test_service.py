from __future__ import annotations

from datetime import timedelta

import pytest

from ash_core.diagnostics import DiagnosticFilters
from ash_core.errors import NotFoundError, RateLimitedError, StateError, ValidationError
from ash_core.limiter import fingerprint
from ash_core.service import ANONYMOUS_EMAIL, AshService
from ash_core.types import Priority, Status
from tests.conftest import PINNED_KEY, RecordingNotifier, make_ctx


def test_end_to_end_personas(service, key_store, diagnostic_store, notifier, now):
    key_store.issue("personas", now, value=PINNED_KEY)

    verified = service.verify_key(f"  {PINNED_KEY.lower()} ", "personas", "ana@example.com", make_ctx(now))
    assert verified.product == "personas"
    assert verified.session_expires_at == now + timedelta(minutes=60)

    later = now + timedelta(minutes=20)
    result = service.submit_diagnostic(verified.token, [2] * 25, make_ctx(later))
    assert result.overall_average == 3.8
    assert result.status is Status.STABLE
    assert result.priority is Priority.LOW
    assert result.numeric_id == 1
    assert result.notified is True

    stored = diagnostic_store.get(result.diagnostic_id)
    assert set(stored.dimension_scores.values()) == {3.8}
    assert stored.client_email == "ana@example.com"
    assert stored.key_value == PINNED_KEY
    assert stored.created_at == later
    assert stored.system_version == "2.0.0"

    key = key_store.find(PINNED_KEY)
    assert key.used is True
    assert key.diagnostic_id == result.diagnostic_id
    assert [r.id for r in notifier.sent] == [result.diagnostic_id]

    with pytest.raises(NotFoundError) as reuse:
        service.submit_diagnostic(verified.token, [2] * 25, make_ctx(later))
    assert reuse.value.code == "SESSION_INVALID"

    with pytest.raises(StateError) as again:
        service.verify_key(PINNED_KEY, "personas", None, make_ctx(later))
    assert again.value.code == "ALREADY_USED"


def test_submit_after_session_ttl(service, key_store, now):
    key = key_store.issue("personas", now)
    token = service.verify_key(key.value, "personas", None, make_ctx(now)).token
    with pytest.raises(NotFoundError) as exc:
        service.submit_diagnostic(token, [2] * 25, make_ctx(now + timedelta(minutes=61)))
    assert exc.value.code == "SESSION_INVALID"
    assert key_store.get(key.id).used is False


def test_bad_answers_do_not_burn_the_token(service, key_store, now):
    key = key_store.issue("personas", now)
    token = service.verify_key(key.value, "personas", None, make_ctx(now)).token
    with pytest.raises(ValidationError):
        service.submit_diagnostic(token, [7] * 25, make_ctx(now))
    result = service.submit_diagnostic(token, [1] * 25, make_ctx(now))
    assert result.status is Status.ALERT


def test_anonymous_email(service, key_store, diagnostic_store, now):
    key = key_store.issue("empresas", now)
    token = service.verify_key(key.value, "empresas", "", make_ctx(now)).token
    result = service.submit_diagnostic(token, [3] * 25, make_ctx(now))
    assert diagnostic_store.get(result.diagnostic_id).client_email == ANONYMOUS_EMAIL


@pytest.mark.parametrize(
    "key,product",
    [("", "personas"), (PINNED_KEY, ""), (PINNED_KEY, "otro"), (PINNED_KEY, "empresas"), ("ASH-P-123", "personas")],
)
def test_verify_input_validation(service, key, product, now):
    with pytest.raises(ValidationError):
        service.verify_key(key, product, None, make_ctx(now))


def test_format_errors_do_not_count_as_failures(service, key_store, now):
    key_store.issue("personas", now, value=PINNED_KEY)
    for _ in range(5):
        with pytest.raises(ValidationError):
            service.verify_key("ASH-P-AB12", "personas", None, make_ctx(now))
    assert service.verify_key(PINNED_KEY, "personas", None, make_ctx(now)).token


def test_repeated_failures_lock_the_client(service, now):
    unknown = "ASH-P-ZZZZ-0000-0000"
    for _ in range(3):
        with pytest.raises(NotFoundError):
            service.verify_key(unknown, "personas", None, make_ctx(now))
    with pytest.raises(RateLimitedError) as exc:
        service.verify_key(unknown, "personas", None, make_ctx(now + timedelta(minutes=1)))
    assert exc.value.code == "RATE_LIMITED"
    assert exc.value.minutes == 14
    assert exc.value.extra() == {"blocked": True, "minutes_remaining": 14}

    # other clients and other keys keep their own counters
    with pytest.raises(NotFoundError):
        service.verify_key(unknown, "personas", None, make_ctx(now, ip="10.9.9.9"))
    with pytest.raises(NotFoundError):
        service.verify_key("ASH-P-ZZZZ-0000-0001", "personas", None, make_ctx(now))

    with pytest.raises(NotFoundError):
        service.verify_key(unknown, "personas", None, make_ctx(now + timedelta(minutes=15)))


def test_success_clears_failure_count(service, key_store, limiter, now):
    for _ in range(2):
        with pytest.raises(NotFoundError):
            service.verify_key(PINNED_KEY, "personas", None, make_ctx(now))
    fp = fingerprint("10.0.0.7", "pytest-agent", PINNED_KEY)
    assert limiter.get(fp).count == 2

    key_store.issue("personas", now, value=PINNED_KEY)
    service.verify_key(PINNED_KEY, "personas", None, make_ctx(now))
    assert limiter.get(fp) is None


def test_lost_mark_used_race_keeps_the_diagnostic(service, key_store, diagnostic_store, now):
    key = key_store.issue("personas", now)
    first = service.verify_key(key.value, "personas", "a@example.com", make_ctx(now)).token
    second = service.verify_key(key.value, "personas", "b@example.com", make_ctx(now)).token

    winner = service.submit_diagnostic(first, [2] * 25, make_ctx(now))
    with pytest.raises(StateError) as exc:
        service.submit_diagnostic(second, [1] * 25, make_ctx(now))
    assert exc.value.code == "ALREADY_USED"

    assert len(diagnostic_store.all()) == 2
    assert key_store.get(key.id).diagnostic_id == winner.diagnostic_id


def test_notifier_failure_does_not_fail_submission(key_store, session_store, limiter, diagnostic_store, now):
    outage = RecordingNotifier(ok=False)
    svc = AshService(key_store, session_store, limiter, diagnostic_store, outage)
    key = key_store.issue("personas", now)
    token = svc.verify_key(key.value, "personas", None, make_ctx(now)).token
    result = svc.submit_diagnostic(token, [2] * 25, make_ctx(now))
    assert result.notified is False
    assert diagnostic_store.get(result.diagnostic_id) is not None
    assert key_store.get(key.id).used is True


def test_default_notifier_is_silent(key_store, session_store, limiter, diagnostic_store, now):
    svc = AshService(key_store, session_store, limiter, diagnostic_store)
    key = key_store.issue("personas", now)
    token = svc.verify_key(key.value, "personas", None, make_ctx(now)).token
    assert svc.submit_diagnostic(token, [2] * 25, make_ctx(now)).notified is False


def test_mark_key_used_via_service(service, key_store, now):
    key = key_store.issue("empresas", now)
    assert service.mark_key_used(key.id, "d-1", now).diagnostic_id == "d-1"
    with pytest.raises(StateError):
        service.mark_key_used(key.id, "d-2", now)


def test_generate_keys_records_metadata(service, now):
    keys = service.generate_keys(3, "empresas", now, validity_days=30, client=" ACME ", project="Q3", issued_by="ops")
    assert len(keys) == 3
    assert all(k.client_metadata == {"client": "ACME", "project": "Q3"} for k in keys)
    assert all(k.issued_by == "ops" for k in keys)
    assert keys[0].valid_until == now + timedelta(days=30)
    with pytest.raises(ValidationError):
        service.generate_keys(51, "empresas", now)


def test_list_diagnostics_delegates(service, key_store, now):
    key = key_store.issue("personas", now)
    token = service.verify_key(key.value, "personas", None, make_ctx(now)).token
    done = service.submit_diagnostic(token, [3] * 25, make_ctx(now))
    page = service.list_diagnostics(DiagnosticFilters(key_value=key.value))
    assert [r.id for r in page.records] == [done.diagnostic_id]


def test_sweep(service, key_store, now):
    key = key_store.issue("personas", now)
    service.verify_key(key.value, "personas", None, make_ctx(now))
    with pytest.raises(NotFoundError):
        service.verify_key("ASH-P-ZZZZ-0000-0000", "personas", None, make_ctx(now))
    assert service.sweep(now) == {"sessions": 0, "attempts": 0}
    assert service.sweep(now + timedelta(hours=2)) == {"sessions": 1, "attempts": 1}
