"""Helpers to export diagnostics in JSON/CSV formats."""
from __future__ import annotations

from typing import Iterable, List, Dict, Any
import csv
import io

from .dimensions import dimension_names
from .types import DiagnosticRecord, to_iso

_FIELDS: tuple[str, ...] = (
    "id",
    "numeric_id",
    "created_at",
    "product",
    "client_email",
    "key_value",
    "overall_average",
    "status",
    "priority",
    "findings_count",
    "recommendations_count",
)


def _dimension_columns(records: List[DiagnosticRecord]) -> List[str]:
    cols: List[str] = []
    for product in ("personas", "empresas"):
        if any(r.product == product for r in records):
            cols += [n for n in dimension_names(product) if n not in cols]
    for rec in records:
        cols += [n for n in rec.dimension_scores if n not in cols]
    return cols


def summarize(record: DiagnosticRecord) -> Dict[str, Any]:
    return {
        "id": record.id,
        "numeric_id": record.numeric_id,
        "created_at": to_iso(record.created_at),
        "product": record.product,
        "client_email": record.client_email,
        "key_value": record.key_value or "",
        "overall_average": round(record.overall_average, 2),
        "status": record.status.value,
        "priority": record.priority.value,
        "findings_count": len(record.findings),
        "recommendations_count": len(record.recommendations),
    }


def to_rows(records: Iterable[DiagnosticRecord]) -> List[Dict[str, Any]]:
    recs = list(records)
    dims = _dimension_columns(recs)
    rows: List[Dict[str, Any]] = []
    for rec in recs:
        row = summarize(rec)
        for name in dims:
            val = rec.dimension_scores.get(name)
            row[name] = "" if val is None else val
        rows.append(row)
    return rows


def to_json(records: Iterable[DiagnosticRecord]) -> Dict[str, Any]:
    """Return a JSON-safe payload with full records."""

    return {"diagnostics": [r.to_dict() for r in records]}


def to_csv(records: Iterable[DiagnosticRecord]) -> str:
    """Render diagnostics as CSV: fixed header, then one column per dimension."""

    recs = list(records)
    fields = list(_FIELDS) + _dimension_columns(recs)
    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=fields)
    writer.writeheader()
    for row in to_rows(recs):
        writer.writerow(row)
    return buf.getvalue()


__all__ = ["summarize", "to_rows", "to_json", "to_csv"]
