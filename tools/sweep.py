from __future__ import annotations
import logging
from api.storage import build_service, utcnow

def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    removed = build_service().sweep(utcnow())
    print(f"Removed {removed['sessions']} expired sessions and {removed['attempts']} stale attempt counters.")

if __name__ == "__main__":
    main()
