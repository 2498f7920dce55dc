"""Append-only log of completed diagnostics plus the reporting queries over it.

On disk: ``{"diagnostics": [...], "counter": n}``; ``counter`` feeds the
monotonic ``numeric_id``.
"""

from __future__ import annotations

import logging
import math
import secrets
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from . import config as cfg_defaults
from .errors import ValidationError
from .keys import KeyStore
from .repository import JsonRepository
from .types import PRODUCTS, DiagnosticRecord, Status

log = logging.getLogger(__name__)

EMPTY_DOCUMENT: Dict[str, Any] = {"diagnostics": [], "counter": 0}

SORT_MODES = ("newest", "oldest", "severity", "score_desc", "score_asc")

_SEVERITY_RANK: Dict[Status, int] = {
    Status.CRITICAL: 3,
    Status.ALERT: 2,
    Status.STABLE: 1,
    Status.EXCELLENT: 0,
}

DateLike = Union[date, datetime, str, None]


def new_diagnostic_id(now: datetime) -> str:
    return f"{int(now.timestamp())}_{secrets.token_hex(6)}"


def _as_bound(value: DateLike, end_of_day: bool) -> Optional[datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value) if len(value) > 10 else date.fromisoformat(value)
        except ValueError:
            raise ValidationError(f"Fecha inválida: {value}") from None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return datetime.combine(value, time.max if end_of_day else time.min, tzinfo=timezone.utc)


@dataclass
class DiagnosticFilters:
    product: Optional[str] = None
    date_from: DateLike = None
    date_to: DateLike = None
    email: Optional[str] = None
    key_value: Optional[str] = None
    id: Optional[str] = None


@dataclass
class DiagnosticPage:
    total: int
    filtered: int
    page: int
    page_size: int
    records: List[DiagnosticRecord] = field(default_factory=list)
    stats: Dict[str, Any] = field(default_factory=dict)

    @property
    def pages(self) -> int:
        return math.ceil(self.filtered / self.page_size) if self.page_size else 0


def stats(records: List[DiagnosticRecord]) -> Dict[str, Any]:
    by_product = {p: 0 for p in PRODUCTS}
    by_status: Dict[str, int] = {}
    for rec in records:
        if rec.product in by_product:
            by_product[rec.product] += 1
        by_status[rec.status.value] = by_status.get(rec.status.value, 0) + 1
    mean = sum(r.overall_average for r in records) / len(records) if records else 0
    return {
        "total": len(records),
        "by_product": by_product,
        "by_status": by_status,
        "overall_average": round(mean, 1),
    }


_SORTERS: Dict[str, Callable[[List[DiagnosticRecord]], List[DiagnosticRecord]]] = {
    "newest": lambda rs: sorted(rs, key=lambda r: r.created_at, reverse=True),
    "oldest": lambda rs: sorted(rs, key=lambda r: r.created_at),
    "severity": lambda rs: sorted(rs, key=lambda r: _SEVERITY_RANK.get(r.status, 0), reverse=True),
    "score_desc": lambda rs: sorted(rs, key=lambda r: r.overall_average, reverse=True),
    "score_asc": lambda rs: sorted(rs, key=lambda r: r.overall_average),
}


class DiagnosticStore:
    def __init__(self, repo: JsonRepository, keys: Optional[KeyStore] = None):
        self.repo = repo
        self.keys = keys

    def all(self) -> List[DiagnosticRecord]:
        doc = self.repo.read_all()
        return [DiagnosticRecord.from_dict(r) for r in doc.get("diagnostics", [])]

    def append(self, record: DiagnosticRecord) -> str:
        def _apply(doc: dict) -> int:
            doc.setdefault("diagnostics", [])
            counter = int(doc.get("counter", 0)) + 1
            record.numeric_id = counter
            doc["counter"] = counter
            doc["diagnostics"].append(record.to_dict())
            return counter

        numeric_id = self.repo.mutate(_apply)
        log.info("diagnostic %s stored (#%d, product=%s, status=%s)",
                 record.id, numeric_id, record.product, record.status.value)
        return record.id

    def get(self, diagnostic_id: Union[str, int]) -> Optional[DiagnosticRecord]:
        wanted = str(diagnostic_id)
        for rec in self.all():
            if rec.id == wanted or str(rec.numeric_id) == wanted:
                return rec
        return None

    def _key_target(self, key_value: str) -> Optional[str]:
        if self.keys is None:
            return None
        key = self.keys.find(key_value)
        return key.diagnostic_id if key is not None else None

    def filter(self, filters: DiagnosticFilters) -> List[DiagnosticRecord]:
        records = self.all()
        if filters.id:
            wanted = str(filters.id)
            records = [r for r in records if r.id == wanted or str(r.numeric_id) == wanted]
        if filters.product:
            if filters.product not in PRODUCTS:
                raise ValidationError("Producto inválido")
            records = [r for r in records if r.product == filters.product]
        if filters.key_value:
            target = self._key_target(filters.key_value)
            if target is not None:
                records = [r for r in records if r.id == target]
            else:
                records = [r for r in records if r.key_value == filters.key_value]
        if filters.email:
            needle = filters.email.lower()
            records = [r for r in records if needle in (r.client_email or "").lower()]
        lo = _as_bound(filters.date_from, end_of_day=False)
        hi = _as_bound(filters.date_to, end_of_day=True)
        if lo is not None:
            records = [r for r in records if r.created_at >= lo]
        if hi is not None:
            records = [r for r in records if r.created_at <= hi]
        return records

    def matching(self, filters: Optional[DiagnosticFilters] = None, sort: str = "newest") -> List[DiagnosticRecord]:
        if sort not in _SORTERS:
            raise ValidationError(f"Orden inválido. Use uno de: {', '.join(SORT_MODES)}")
        return _SORTERS[sort](self.filter(filters or DiagnosticFilters()))

    def list(
        self,
        filters: Optional[DiagnosticFilters] = None,
        sort: str = "newest",
        page: int = 1,
        page_size: int = cfg_defaults.PAGE_SIZE_DEFAULT,
    ) -> DiagnosticPage:
        page_size = min(max(int(page_size), 1), cfg_defaults.PAGE_SIZE_MAX)
        page = max(int(page), 1)

        total = len(self.repo.read_all().get("diagnostics", []))
        matched = self.matching(filters, sort)
        offset = (page - 1) * page_size
        return DiagnosticPage(
            total=total,
            filtered=len(matched),
            page=page,
            page_size=page_size,
            records=matched[offset:offset + page_size],
            stats=stats(matched),
        )
