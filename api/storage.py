"""Wiring of the flat JSON documents behind the API.

All state lives in four JSON files under ``DATA_DIR``: keys, diagnostics,
sessions and failed-attempt counters. Paths are resolved at import time so
tests can point ``DATA_DIR`` at a temporary directory and reload this module.
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from ash_core import config as cfg_defaults
from ash_core.config import load_config
from ash_core.diagnostics import EMPTY_DOCUMENT as EMPTY_DIAGNOSTICS, DiagnosticStore
from ash_core.keys import EMPTY_DOCUMENT as EMPTY_KEYS, KeyStore
from ash_core.limiter import AttemptLimiter
from ash_core.notifier import Notifier, build_notifier
from ash_core.repository import JsonRepository
from ash_core.service import AshService
from ash_core.sessions import SessionStore


DATA_ROOT = Path(os.getenv("DATA_DIR", cfg_defaults.DATA_DIR)).resolve()
KEYS_PATH = DATA_ROOT / cfg_defaults.KEYS_FILE
DIAGNOSTICS_PATH = DATA_ROOT / cfg_defaults.DIAGNOSTICS_FILE
SESSIONS_PATH = DATA_ROOT / cfg_defaults.SESSIONS_FILE
ATTEMPTS_PATH = DATA_ROOT / cfg_defaults.ATTEMPTS_FILE


def _ensure_dirs() -> None:
    DATA_ROOT.mkdir(parents=True, exist_ok=True)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)



def build_service(notifier: Optional[Notifier] = None) -> AshService:
    _ensure_dirs()
    cfg = load_config()
    keys = KeyStore(JsonRepository(KEYS_PATH, EMPTY_KEYS), max_redemptions=int(cfg["KEY_MAX_REDEMPTIONS"]))
    limiter = AttemptLimiter(
        JsonRepository(ATTEMPTS_PATH, {}),
        max_attempts=int(cfg["MAX_FAILED_ATTEMPTS"]),
        lockout=timedelta(minutes=int(cfg["LOCKOUT_MINUTES"])),
        window=timedelta(minutes=int(cfg["ATTEMPT_WINDOW_MINUTES"])),
    )
    sessions = SessionStore(
        JsonRepository(SESSIONS_PATH, {}),
        ttl=timedelta(minutes=int(cfg["SESSION_TTL_MINUTES"])),
    )
    diagnostics = DiagnosticStore(JsonRepository(DIAGNOSTICS_PATH, EMPTY_DIAGNOSTICS), keys=keys)
    return AshService(keys, sessions, limiter, diagnostics, notifier or build_notifier(cfg))
