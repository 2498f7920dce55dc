"""Single-use access keys: generation, verification and redemption.

On disk the store is one document ``{"keys": [...], "counter": n}`` where
``counter`` is the last numeric id handed out.
"""

from __future__ import annotations

import logging
import re
import secrets
import string
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Set, Tuple

from . import config as cfg_defaults
from .errors import NotFoundError, StateError, ValidationError
from .repository import JsonRepository
from .types import PRODUCTS, KeyRecord

log = logging.getLogger(__name__)

KEY_PATTERN = re.compile(r"^ASH-[PE]-[A-Z0-9]{4}-\d{4}-\d{4}$")
KEY_LENGTH = 20

_ALNUM = string.ascii_uppercase + string.digits

EMPTY_DOCUMENT: Dict[str, object] = {"keys": [], "counter": 0}


def prefix_for(product: str) -> str:
    try:
        return cfg_defaults.KEY_PREFIXES[product]
    except KeyError:
        raise ValidationError('Producto inválido. Use "personas" o "empresas".') from None


def validate_format(value: str, product: str) -> bool:
    if not isinstance(value, str) or len(value) != KEY_LENGTH:
        return False
    return value.startswith(prefix_for(product)) and bool(KEY_PATTERN.match(value))


def _random_value(product: str) -> str:
    head = "".join(secrets.choice(_ALNUM) for _ in range(4))
    return f"{prefix_for(product)}{head}-{secrets.randbelow(10000):04d}-{secrets.randbelow(10000):04d}"


class KeyStore:
    def __init__(self, repo: JsonRepository, max_redemptions: int = cfg_defaults.KEY_MAX_REDEMPTIONS):
        self.repo = repo
        self.max_redemptions = max_redemptions

    # ---- reads ----
    def _records(self) -> List[KeyRecord]:
        doc = self.repo.read_all()
        return [KeyRecord.from_dict(r) for r in doc.get("keys", [])]

    def list_keys(self, product: Optional[str] = None, used: Optional[bool] = None) -> List[KeyRecord]:
        out = []
        for rec in self._records():
            if product is not None and rec.product != product:
                continue
            if used is not None and rec.used != used:
                continue
            out.append(rec)
        return out

    def get(self, key_id: int) -> Optional[KeyRecord]:
        return next((r for r in self._records() if r.id == key_id), None)

    def find(self, value: str) -> Optional[KeyRecord]:
        return next((r for r in self._records() if r.value == value), None)

    # ---- generation ----
    def generate(self, product: str, taken: Optional[Iterable[str]] = None) -> str:
        """Return a fresh value for ``product``, re-rolling on collision."""
        existing: Set[str] = set(taken) if taken is not None else {r.value for r in self._records()}
        while True:
            value = _random_value(product)
            if value not in existing:
                return value
            log.info("key collision on %s, re-rolling", value)

    def issue(
        self,
        product: str,
        now: datetime,
        validity_days: int = cfg_defaults.KEY_VALIDITY_DAYS,
        client_metadata: Optional[Dict[str, str]] = None,
        issued_by: str = "sistema",
        value: Optional[str] = None,
    ) -> KeyRecord:
        """Persist one key; ``value`` pins a pre-printed key instead of a random one."""
        if value is not None and not validate_format(value, product):
            raise ValidationError(f"Formato de clave inválido para {product}.")
        return self.issue_batch(1, product, now, validity_days, client_metadata, issued_by, value)[0]

    def issue_batch(
        self,
        count: int,
        product: str,
        now: datetime,
        validity_days: int = cfg_defaults.KEY_VALIDITY_DAYS,
        client_metadata: Optional[Dict[str, str]] = None,
        issued_by: str = "sistema",
        value: Optional[str] = None,
    ) -> List[KeyRecord]:
        if product not in PRODUCTS:
            raise ValidationError("Producto inválido")
        if not 1 <= int(count) <= cfg_defaults.GENERATE_MAX:
            raise ValidationError(f"Cantidad debe estar entre 1 y {cfg_defaults.GENERATE_MAX}")
        if int(validity_days) < 1:
            raise ValidationError("La vigencia debe ser de al menos 1 día")
        meta = {str(k): str(v) for k, v in (client_metadata or {}).items() if v not in (None, "")}

        def _apply(doc: dict) -> List[KeyRecord]:
            doc.setdefault("keys", [])
            taken = {r["value"] for r in doc["keys"]}
            counter = int(doc.get("counter", 0))
            created: List[KeyRecord] = []
            for _ in range(int(count)):
                if value is not None:
                    if value in taken:
                        raise ValidationError("La clave ya existe.")
                    new_value = value
                else:
                    new_value = self.generate(product, taken)
                taken.add(new_value)
                counter += 1
                rec = KeyRecord(
                    id=counter,
                    value=new_value,
                    product=product,
                    issued_at=now,
                    valid_until=now + timedelta(days=int(validity_days)),
                    client_metadata=dict(meta),
                    issued_by=issued_by,
                )
                doc["keys"].append(rec.to_dict())
                created.append(rec)
            doc["counter"] = counter
            return created

        created = self.repo.mutate(_apply)
        for rec in created:
            log.info("key generated id=%d value=%s product=%s", rec.id, rec.value, rec.product)
        return created

    # ---- redemption ----
    def verify(self, value: str, product: str, now: datetime) -> KeyRecord:
        """Check a key for redemption.

        Raises ``NotFoundError`` (unknown or product mismatch, nothing is
        written) or ``StateError`` with code ``EXPIRED``, ``ALREADY_USED`` or
        ``ATTEMPT_LIMIT_EXCEEDED``. For keys that exist, every call counts
        against ``redemption_attempts`` whether it is accepted or not.
        """
        doc = self.repo.read_all()
        if not any(r.get("value") == value and r.get("product") == product for r in doc.get("keys", [])):
            raise NotFoundError("Clave no registrada en el sistema.", code="NOT_FOUND")

        def _apply(doc: dict) -> Tuple[KeyRecord, Optional[StateError]]:
            for idx, raw in enumerate(doc.get("keys", [])):
                if raw.get("value") == value and raw.get("product") == product:
                    break
            else:
                raise NotFoundError("Clave no registrada en el sistema.", code="NOT_FOUND")
            rec = KeyRecord.from_dict(raw)
            prior = rec.redemption_attempts
            rec.redemption_attempts = prior + 1
            rec.last_attempt = now
            doc["keys"][idx] = rec.to_dict()

            if rec.is_expired(now):
                return rec, StateError("Clave expirada. Contacta a tu consultor para una nueva.", code="EXPIRED")
            if rec.used:
                return rec, StateError("Esta clave ya ha sido utilizada.", code="ALREADY_USED")
            if prior >= self.max_redemptions:
                return rec, StateError("Límite de intentos excedido para esta clave.", code="ATTEMPT_LIMIT_EXCEEDED")
            return rec, None

        rec, err = self.repo.mutate(_apply)
        if err is not None:
            log.info("key %s rejected: %s", value, err.code)
            raise err
        return rec

    def mark_used(self, key_id: int, diagnostic_id: str, now: datetime) -> KeyRecord:
        """Flip ``used`` exactly once; the first caller's diagnostic id sticks."""

        def _apply(doc: dict) -> KeyRecord:
            for idx, raw in enumerate(doc.get("keys", [])):
                if int(raw.get("id", -1)) == int(key_id):
                    break
            else:
                raise NotFoundError("Clave no encontrada en la base de datos.", code="NOT_FOUND")
            rec = KeyRecord.from_dict(raw)
            if rec.used:
                raise StateError("Esta clave ya fue marcada como usada anteriormente.", code="ALREADY_USED")
            rec.used = True
            rec.used_at = now
            rec.diagnostic_id = diagnostic_id
            doc["keys"][idx] = rec.to_dict()
            return rec

        try:
            rec = self.repo.mutate(_apply)
        except StateError:
            log.warning("mark_used lost race for key id=%s (diagnostic %s)", key_id, diagnostic_id)
            raise
        log.info("key id=%d marked used by diagnostic %s", rec.id, diagnostic_id)
        return rec
