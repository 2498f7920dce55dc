from __future__ import annotations
import os, json, pathlib


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


SYSTEM_NAME: str = "ASH Diagnóstico Ejecutivo"
SYSTEM_VERSION: str = "2.0.0"

KEY_PREFIXES: dict[str, str] = {"personas": "ASH-P-", "empresas": "ASH-E-"}
KEY_VALIDITY_DAYS: int = 7
KEY_MAX_REDEMPTIONS: int = 5
GENERATE_MAX: int = 50

MAX_FAILED_ATTEMPTS: int = 3
LOCKOUT_MINUTES: int = 15
ATTEMPT_WINDOW_MINUTES: int = 60

SESSION_TTL_MINUTES: int = 60

PAGE_SIZE_DEFAULT: int = 10
PAGE_SIZE_MAX: int = 100

DATA_DIR: str = "data"
KEYS_FILE: str = "claves.json"
DIAGNOSTICS_FILE: str = "diagnosticos.json"
SESSIONS_FILE: str = "sesiones.json"
ATTEMPTS_FILE: str = "intentos.json"

OPERATOR_EMAIL: str = ""
EMAIL_FROM: str = "sistema@iee.mx"
EMAIL_FROM_NAME: str = "ASH Sistema de Diagnóstico"
SMTP_HOST: str = ""
SMTP_PORT: int = 587
SMTP_USER: str = ""
SMTP_PASS: str = ""
SMTP_USE_TLS: bool = True

API_HOST: str = "127.0.0.1"
API_PORT: int = 8000

ADMIN_TOKEN: str = "dev-local-admin"
ALLOWED_ORIGINS: tuple[str, ...] = (
    "http://localhost",
    "https://localhost",
    "http://localhost:3000",
    "https://iee.mx",
)

# // env overrides for staging/ops; defaults mirror the shipped system.
DATA_DIR = _env_str("DATA_DIR", DATA_DIR)
KEY_VALIDITY_DAYS = _env_int("KEY_VALIDITY_DAYS", KEY_VALIDITY_DAYS)
KEY_MAX_REDEMPTIONS = _env_int("KEY_MAX_REDEMPTIONS", KEY_MAX_REDEMPTIONS)
MAX_FAILED_ATTEMPTS = _env_int("MAX_FAILED_ATTEMPTS", MAX_FAILED_ATTEMPTS)
LOCKOUT_MINUTES = _env_int("LOCKOUT_MINUTES", LOCKOUT_MINUTES)
ATTEMPT_WINDOW_MINUTES = _env_int("ATTEMPT_WINDOW_MINUTES", ATTEMPT_WINDOW_MINUTES)
SESSION_TTL_MINUTES = _env_int("SESSION_TTL_MINUTES", SESSION_TTL_MINUTES)
OPERATOR_EMAIL = _env_str("OPERATOR_EMAIL", OPERATOR_EMAIL)
EMAIL_FROM = _env_str("EMAIL_FROM", EMAIL_FROM)
EMAIL_FROM_NAME = _env_str("EMAIL_FROM_NAME", EMAIL_FROM_NAME)
SMTP_HOST = _env_str("SMTP_HOST", SMTP_HOST)
SMTP_PORT = _env_int("SMTP_PORT", SMTP_PORT)
SMTP_USER = _env_str("SMTP_USER", SMTP_USER)
SMTP_PASS = _env_str("SMTP_PASS", SMTP_PASS)
SMTP_USE_TLS = _env_bool("SMTP_USE_TLS", SMTP_USE_TLS)
API_HOST = _env_str("API_HOST", API_HOST)
API_PORT = _env_int("API_PORT", API_PORT)
ADMIN_TOKEN = _env_str("ADMIN_TOKEN", ADMIN_TOKEN)
if os.getenv("ALLOWED_ORIGINS"):
    ALLOWED_ORIGINS = tuple(o.strip() for o in os.environ["ALLOWED_ORIGINS"].split(",") if o.strip())


_DEFAULTS: dict = {
    "KEY_VALIDITY_DAYS": KEY_VALIDITY_DAYS,
    "KEY_MAX_REDEMPTIONS": KEY_MAX_REDEMPTIONS,
    "MAX_FAILED_ATTEMPTS": MAX_FAILED_ATTEMPTS,
    "LOCKOUT_MINUTES": LOCKOUT_MINUTES,
    "ATTEMPT_WINDOW_MINUTES": ATTEMPT_WINDOW_MINUTES,
    "SESSION_TTL_MINUTES": SESSION_TTL_MINUTES,
    "OPERATOR_EMAIL": OPERATOR_EMAIL,
    "EMAIL_FROM": EMAIL_FROM,
    "EMAIL_FROM_NAME": EMAIL_FROM_NAME,
    "SMTP_HOST": SMTP_HOST,
    "SMTP_PORT": SMTP_PORT,
    "SMTP_USER": SMTP_USER,
    "SMTP_PASS": SMTP_PASS,
    "SMTP_USE_TLS": SMTP_USE_TLS,
}


def load_config(path: str = "config.json") -> dict:
    """Module defaults, overlaid by an optional JSON file.

    Environment variables were already folded into the defaults at import,
    so a key present in the file only wins when the env var is unset.
    """
    cfg = dict(_DEFAULTS)
    p = pathlib.Path(path)
    if p.exists():
        try:
            raw = json.loads(p.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            raw = {}
        if isinstance(raw, dict):
            for k, v in raw.items():
                if k in cfg and os.getenv(k) is None:
                    cfg[k] = v
    return cfg
