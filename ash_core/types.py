from __future__ import annotations
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

Product = Literal["personas", "empresas"]
PRODUCTS: tuple[str, ...] = ("personas", "empresas")
Severity = Literal["crítico", "alto", "moderado"]


class Status(str, Enum):
    EXCELLENT = "EXCELENTE"
    STABLE = "ESTABLE"
    ALERT = "ALERTA"
    CRITICAL = "CRÍTICO"


class Priority(str, Enum):
    LOW = "BAJA"
    MEDIUM = "MEDIA"
    HIGH = "ALTA"
    URGENT = "URGENTE"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt is not None else None


def from_iso(raw: Any) -> Optional[datetime]:
    if raw in (None, ""):
        return None
    if isinstance(raw, datetime):
        dt = raw
    else:
        dt = datetime.fromisoformat(str(raw))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass(frozen=True)
class RequestContext:
    """Client context for one request; handlers never read it from globals."""
    ip: str
    user_agent: str
    now: datetime = field(default_factory=utcnow)


@dataclass
class KeyRecord:
    id: int
    value: str
    product: Product
    issued_at: datetime
    valid_until: datetime
    used: bool = False
    used_at: Optional[datetime] = None
    diagnostic_id: Optional[str] = None
    client_metadata: Dict[str, str] = field(default_factory=dict)
    redemption_attempts: int = 0
    last_attempt: Optional[datetime] = None
    issued_by: str = "sistema"

    def is_expired(self, now: datetime) -> bool:
        return now > self.valid_until

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        for k in ("issued_at", "valid_until", "used_at", "last_attempt"):
            d[k] = to_iso(d[k])
        return d

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "KeyRecord":
        return cls(
            id=int(raw["id"]),
            value=str(raw["value"]),
            product=str(raw["product"]),
            issued_at=from_iso(raw["issued_at"]),
            valid_until=from_iso(raw["valid_until"]),
            used=bool(raw.get("used", False)),
            used_at=from_iso(raw.get("used_at")),
            diagnostic_id=raw.get("diagnostic_id"),
            client_metadata={str(k): str(v) for k, v in (raw.get("client_metadata") or {}).items()},
            redemption_attempts=int(raw.get("redemption_attempts", 0)),
            last_attempt=from_iso(raw.get("last_attempt")),
            issued_by=str(raw.get("issued_by") or "sistema"),
        )


@dataclass
class AttemptCounter:
    count: int
    first_attempt: datetime
    last_attempt: datetime
    locked_until: Optional[datetime] = None
    product: Optional[Product] = None
    key_exists: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "first_attempt": to_iso(self.first_attempt),
            "last_attempt": to_iso(self.last_attempt),
            "locked_until": to_iso(self.locked_until),
            "product": self.product,
            "key_exists": self.key_exists,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "AttemptCounter":
        return cls(
            count=int(raw.get("count", 0)),
            first_attempt=from_iso(raw["first_attempt"]),
            last_attempt=from_iso(raw.get("last_attempt") or raw["first_attempt"]),
            locked_until=from_iso(raw.get("locked_until")),
            product=raw.get("product"),
            key_exists=bool(raw.get("key_exists", False)),
        )


@dataclass
class Session:
    token: str
    key_id: int
    key_value: str
    product: Product
    email: Optional[str]
    created_at: datetime
    expires_at: datetime
    client_ip: str
    user_agent: str

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at < now

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["created_at"] = to_iso(self.created_at)
        d["expires_at"] = to_iso(self.expires_at)
        return d

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Session":
        return cls(
            token=str(raw["token"]),
            key_id=int(raw["key_id"]),
            key_value=str(raw.get("key_value", "")),
            product=str(raw["product"]),
            email=raw.get("email") or None,
            created_at=from_iso(raw["created_at"]),
            expires_at=from_iso(raw["expires_at"]),
            client_ip=str(raw.get("client_ip", "")),
            user_agent=str(raw.get("user_agent", "")),
        )


@dataclass
class Finding:
    dimension: str
    score: float
    severity: Severity
    text: str


@dataclass
class ScoreResult:
    dimension_scores: Dict[str, float]
    overall_average: float
    status: Status
    priority: Priority
    findings: List[Finding] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)


@dataclass
class DiagnosticRecord:
    id: str
    created_at: datetime
    product: Product
    client_email: str
    raw_answers: List[Optional[int]]
    dimension_scores: Dict[str, float]
    overall_average: float
    status: Status
    priority: Priority
    findings: List[Finding] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    numeric_id: int = 0
    key_id: Optional[int] = None
    key_value: Optional[str] = None
    client_ip: str = ""
    user_agent: str = ""
    system_version: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "numeric_id": self.numeric_id,
            "created_at": to_iso(self.created_at),
            "product": self.product,
            "client_email": self.client_email,
            "key_id": self.key_id,
            "key_value": self.key_value,
            "client_ip": self.client_ip,
            "user_agent": self.user_agent,
            "raw_answers": list(self.raw_answers),
            "dimension_scores": dict(self.dimension_scores),
            "overall_average": self.overall_average,
            "status": self.status.value,
            "priority": self.priority.value,
            "findings": [asdict(f) for f in self.findings],
            "recommendations": list(self.recommendations),
            "system_version": self.system_version,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "DiagnosticRecord":
        return cls(
            id=str(raw["id"]),
            numeric_id=int(raw.get("numeric_id", 0)),
            created_at=from_iso(raw["created_at"]),
            product=str(raw["product"]),
            client_email=str(raw.get("client_email", "")),
            key_id=raw.get("key_id"),
            key_value=raw.get("key_value"),
            client_ip=str(raw.get("client_ip", "")),
            user_agent=str(raw.get("user_agent", "")),
            raw_answers=list(raw.get("raw_answers") or []),
            dimension_scores={str(k): float(v) for k, v in (raw.get("dimension_scores") or {}).items()},
            overall_average=float(raw.get("overall_average", 0.0)),
            status=Status(raw["status"]),
            priority=Priority(raw["priority"]),
            findings=[Finding(**f) for f in (raw.get("findings") or [])],
            recommendations=list(raw.get("recommendations") or []),
            system_version=str(raw.get("system_version", "")),
        )
