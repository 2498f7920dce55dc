from __future__ import annotations

from datetime import timedelta

import pytest

from ash_core.diagnostics import DiagnosticFilters, new_diagnostic_id, stats
from ash_core.errors import ValidationError
from tests.conftest import build_record


def _seed(store, now):
    recs = [
        build_record(record_id="a", created_at=now - timedelta(days=2), answers=[2] * 25, email="ana@example.com"),
        build_record(record_id="b", created_at=now - timedelta(days=1), answers=[0] * 25, email="luis@corp.mx"),
        build_record(record_id="c", created_at=now, product="empresas", answers=[3] * 25, email="ANA@corp.mx"),
    ]
    for r in recs:
        store.append(r)
    return recs


def test_new_diagnostic_id_shape(now):
    a, b = new_diagnostic_id(now), new_diagnostic_id(now)
    assert a.startswith(f"{int(now.timestamp())}_")
    assert len(a.split("_")[1]) == 12
    assert a != b


def test_append_assigns_numeric_ids(diagnostic_store, now):
    recs = _seed(diagnostic_store, now)
    assert [r.numeric_id for r in recs] == [1, 2, 3]
    assert diagnostic_store.get("b").numeric_id == 2
    assert diagnostic_store.get(3).id == "c"
    assert diagnostic_store.get("missing") is None


def test_append_then_list_round_trips(diagnostic_store, now):
    rec = build_record(record_id="x1", key_value="ASH-P-AB12-3456-7890")
    diagnostic_store.append(rec)
    page = diagnostic_store.list(DiagnosticFilters(product="personas", id="x1"))
    assert page.filtered == 1
    assert page.records[0] == rec
    assert page.records[0].to_dict() == rec.to_dict()


def test_filters(diagnostic_store, now):
    _seed(diagnostic_store, now)
    ids = lambda f: sorted(r.id for r in diagnostic_store.filter(f))
    assert ids(DiagnosticFilters(product="personas")) == ["a", "b"]
    assert ids(DiagnosticFilters(email="ana@")) == ["a", "c"]
    day = (now - timedelta(days=1)).date()
    assert ids(DiagnosticFilters(date_from=day.isoformat(), date_to=day.isoformat())) == ["b"]
    assert ids(DiagnosticFilters(date_from=now - timedelta(hours=1))) == ["c"]
    with pytest.raises(ValidationError):
        diagnostic_store.filter(DiagnosticFilters(product="otro"))
    with pytest.raises(ValidationError):
        diagnostic_store.filter(DiagnosticFilters(date_from="ayer"))


def test_key_filter_follows_redemption(diagnostic_store, key_store, now):
    _seed(diagnostic_store, now)
    key = key_store.issue("personas", now)
    key_store.mark_used(key.id, "b", now)
    assert [r.id for r in diagnostic_store.filter(DiagnosticFilters(key_value=key.value))] == ["b"]
    assert diagnostic_store.filter(DiagnosticFilters(key_value="ASH-P-NONE-0000-0000")) == []


@pytest.mark.parametrize(
    "sort,expected",
    [
        ("newest", ["c", "b", "a"]),
        ("oldest", ["a", "b", "c"]),
        ("severity", ["b", "a", "c"]),
        ("score_desc", ["c", "a", "b"]),
        ("score_asc", ["b", "a", "c"]),
    ],
)
def test_sorting(diagnostic_store, now, sort, expected):
    _seed(diagnostic_store, now)
    page = diagnostic_store.list(sort=sort)
    assert [r.id for r in page.records] == expected


def test_bad_sort(diagnostic_store):
    with pytest.raises(ValidationError):
        diagnostic_store.list(sort="random")


def test_paging_clamps(diagnostic_store, now):
    for i in range(12):
        diagnostic_store.append(build_record(record_id=f"r{i:02d}", created_at=now + timedelta(minutes=i)))

    first = diagnostic_store.list(page=0, page_size=5)
    assert first.page == 1 and first.page_size == 5 and first.pages == 3
    assert [r.id for r in first.records] == ["r11", "r10", "r09", "r08", "r07"]

    last = diagnostic_store.list(page=3, page_size=5)
    assert [r.id for r in last.records] == ["r01", "r00"]

    assert diagnostic_store.list(page_size=0).page_size == 1
    assert diagnostic_store.list(page_size=1000).page_size == 100
    assert diagnostic_store.list(page=9).records == []


def test_stats(diagnostic_store, now):
    recs = _seed(diagnostic_store, now)
    page = diagnostic_store.list()
    assert page.total == 3
    assert page.stats == stats(recs)
    assert page.stats["by_product"] == {"personas": 2, "empresas": 1}
    assert page.stats["by_status"] == {"ESTABLE": 1, "CRÍTICO": 1, "EXCELENTE": 1}
    assert page.stats["overall_average"] == 3.4

    narrowed = diagnostic_store.list(DiagnosticFilters(product="empresas"))
    assert narrowed.total == 3
    assert narrowed.filtered == 1
    assert narrowed.stats["total"] == 1


def test_empty_store(diagnostic_store):
    page = diagnostic_store.list()
    assert page.total == 0 and page.pages == 0 and page.records == []
    assert page.stats["overall_average"] == 0
