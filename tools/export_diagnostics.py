from __future__ import annotations
import argparse, json
from pathlib import Path
from ash_core.diagnostics import SORT_MODES, DiagnosticFilters
from ash_core.export import to_csv, to_json
from api.storage import build_service

def main():
    ap = argparse.ArgumentParser(description="Export stored diagnostics")
    ap.add_argument("--format", choices=["csv","json"], default="csv")
    ap.add_argument("--out", default="", help="output file; stdout when empty")
    ap.add_argument("--product", choices=["personas","empresas"])
    ap.add_argument("--from", dest="date_from")
    ap.add_argument("--to", dest="date_to")
    ap.add_argument("--email")
    ap.add_argument("--key")
    ap.add_argument("--sort", choices=list(SORT_MODES), default="newest")
    a = ap.parse_args()

    svc = build_service()
    filters = DiagnosticFilters(product=a.product, date_from=a.date_from, date_to=a.date_to,
                                email=a.email, key_value=(a.key or "").strip().upper() or None)
    records = svc.diagnostics.matching(filters, a.sort)
    if a.format == "json":
        text = json.dumps(to_json(records), ensure_ascii=False, indent=2)
    else:
        text = to_csv(records)
    if not a.out:
        print(text)
        return
    Path(a.out).write_text(text, encoding="utf-8")
    print(f"Wrote {len(records)} diagnostics to {a.out}")

if __name__ == "__main__":
    main()
