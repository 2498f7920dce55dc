from __future__ import annotations
import argparse, json, logging
from ash_core import config as cfg_defaults
from api.storage import build_service, utcnow

def main():
    ap = argparse.ArgumentParser(description="Issue single-use ASH access keys")
    ap.add_argument("--product", choices=["personas","empresas"], default="personas")
    ap.add_argument("--count", type=int, default=1)
    ap.add_argument("--days", type=int, default=cfg_defaults.KEY_VALIDITY_DAYS)
    ap.add_argument("--client", default="")
    ap.add_argument("--project", default="")
    ap.add_argument("--json", action="store_true", help="print full records")
    a = ap.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    svc = build_service()
    keys = svc.generate_keys(a.count, a.product, utcnow(), validity_days=a.days,
                             client=a.client, project=a.project, issued_by="cli")
    if a.json:
        print(json.dumps([k.to_dict() for k in keys], ensure_ascii=False, indent=2))
        return
    for k in keys:
        print(f"{k.value}  {k.product}  valid until {k.valid_until.isoformat()}")

if __name__ == "__main__":
    main()
