from __future__ import annotations
from fastapi import FastAPI, Body, Depends, Header, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, EmailStr, Field, StrictInt, field_validator
import logging, secrets, typing as t

from ash_core import config as cfg_defaults
from ash_core.diagnostics import DiagnosticFilters
from ash_core.errors import AshError, NotFoundError, PersistenceError, RateLimitedError
from ash_core.export import summarize, to_csv
from ash_core.service import normalize_key
from ash_core.types import RequestContext
from .storage import build_service, utcnow

log = logging.getLogger(__name__)

SERVICE = build_service()
# swapped by tests to pin the request clock
CLOCK: t.Callable[[], t.Any] = utcnow

# Run with: uvicorn api.app:app --port 8000  (or python -m api.app)
app = FastAPI(title="ASH Diagnostic API", version=cfg_defaults.SYSTEM_VERSION)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(cfg_defaults.ALLOWED_ORIGINS),
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Admin-Token"],
    allow_credentials=True,
    max_age=86400,
)

_HTTP_STATUS: dict[str, int] = {
    "VALIDATION_ERROR": 400,
    "UNAUTHORIZED": 401,
    "SESSION_INVALID": 401,
    "NOT_FOUND": 404,
    "ALREADY_USED": 409,
    "EXPIRED": 409,
    "ATTEMPT_LIMIT_EXCEEDED": 409,
    "RATE_LIMITED": 429,
    "PERSISTENCE_ERROR": 503,
}


@app.exception_handler(AshError)
async def _ash_error(request: Request, exc: AshError):
    status = _HTTP_STATUS.get(exc.code, 400)
    headers = {}
    if isinstance(exc, RateLimitedError):
        headers["Retry-After"] = str(int(exc.retry_after.total_seconds()))
    if isinstance(exc, PersistenceError):
        log.error("persistence failure on %s %s", request.method, request.url.path)
    body = {"success": False, "error": exc.code, "message": exc.message}
    body.update(exc.extra())
    return JSONResponse(status_code=status, content=body, headers=headers)


@app.exception_handler(RequestValidationError)
async def _request_invalid(request: Request, exc: RequestValidationError):
    details = [
        {"loc": [str(p) for p in e.get("loc", ())], "msg": e.get("msg", "")}
        for e in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content={"success": False, "error": "VALIDATION_ERROR", "message": "Datos inválidos.", "details": details},
    )


# ---- Schemas ----
class VerifyReq(BaseModel):
    model_config = ConfigDict(extra="forbid")
    key: str
    product: str
    email: EmailStr | None = None

    @field_validator("email", mode="before")
    @classmethod
    def _blank_email(cls, v):
        return None if isinstance(v, str) and not v.strip() else v


class SubmitReq(BaseModel):
    model_config = ConfigDict(extra="forbid")
    token: str
    answers: list[StrictInt | None]


class GenerateReq(BaseModel):
    model_config = ConfigDict(extra="forbid")
    count: int = 1
    product: str = "personas"
    validity_days: int = Field(default=cfg_defaults.KEY_VALIDITY_DAYS)
    client: str = ""
    project: str = ""


# ---- Helpers ----
def _context(request: Request) -> RequestContext:
    ip = request.client.host if request.client else ""
    return RequestContext(ip=ip, user_agent=request.headers.get("user-agent", "Desconocido"), now=CLOCK())


def _require_admin(x_admin_token: str | None = Header(None)) -> str:
    if not x_admin_token or not secrets.compare_digest(x_admin_token, cfg_defaults.ADMIN_TOKEN):
        raise AshError("Token de administrador requerido.", code="UNAUTHORIZED")
    return "admin"


def _filters(
    product: str | None,
    date_from: str | None,
    date_to: str | None,
    email: str | None,
    key: str | None,
    diagnostic_id: str | None,
) -> DiagnosticFilters:
    return DiagnosticFilters(
        product=None if product in (None, "", "todos", "all") else product,
        date_from=date_from or None,
        date_to=date_to or None,
        email=email or None,
        key_value=normalize_key(key) or None,
        id=diagnostic_id or None,
    )


# ---- Health ----
@app.get("/health")
def health():
    return {"status": "ok", "service": "ash-diagnostic-api", "version": cfg_defaults.SYSTEM_VERSION}


# ---- Visitor flow ----
@app.post("/api/keys/verify")
def verify_key(request: Request, payload: VerifyReq = Body(...)):
    res = SERVICE.verify_key(payload.key, payload.product, payload.email, _context(request))
    return {
        "success": True,
        "message": "Clave verificada exitosamente.",
        "token": res.token,
        "product": res.product,
        "valid_until": res.valid_until.isoformat(),
        "session_expires_at": res.session_expires_at.isoformat(),
    }


@app.post("/api/diagnostics")
def submit_diagnostic(request: Request, payload: SubmitReq = Body(...)):
    res = SERVICE.submit_diagnostic(payload.token, payload.answers, _context(request))
    return {
        "success": True,
        "message": "Diagnóstico guardado exitosamente.",
        "diagnostic": {
            "id": res.diagnostic_id,
            "numeric_id": res.numeric_id,
            "created_at": res.created_at.isoformat(),
            "product": res.product,
            "overall_average": res.overall_average,
            "status": res.status.value,
            "priority": res.priority.value,
        },
        "notification": {"sent": res.notified},
    }


# ---- Reporting (admin) ----
@app.get("/api/diagnostics")
def list_diagnostics(
    sort: str = Query("newest"),
    page: int = Query(1),
    page_size: int = Query(cfg_defaults.PAGE_SIZE_DEFAULT),
    product: str | None = Query(None),
    date_from: str | None = Query(None, alias="from"),
    date_to: str | None = Query(None, alias="to"),
    email: str | None = Query(None),
    key: str | None = Query(None),
    diagnostic_id: str | None = Query(None, alias="id"),
    detail: str | None = Query(None),
    _admin: str = Depends(_require_admin),
):
    filters = _filters(product, date_from, date_to, email, key, diagnostic_id)
    result = SERVICE.list_diagnostics(filters, sort=sort, page=page, page_size=page_size)
    full = detail in ("full", "completo")
    return {
        "success": True,
        "total": result.total,
        "filtered": result.filtered,
        "page": result.page,
        "pages": result.pages,
        "page_size": result.page_size,
        "stats": result.stats,
        "diagnostics": [r.to_dict() if full else summarize(r) for r in result.records],
    }


@app.get("/api/diagnostics/export.csv")
def export_diagnostics(
    sort: str = Query("newest"),
    product: str | None = Query(None),
    date_from: str | None = Query(None, alias="from"),
    date_to: str | None = Query(None, alias="to"),
    email: str | None = Query(None),
    key: str | None = Query(None),
    _admin: str = Depends(_require_admin),
):
    filters = _filters(product, date_from, date_to, email, key, None)
    # not paginated
    records = SERVICE.diagnostics.matching(filters, sort)
    return Response(
        content=to_csv(records),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=\"diagnosticos.csv\""},
    )


@app.get("/api/diagnostics/{diagnostic_id}")
def get_diagnostic(diagnostic_id: str, _admin: str = Depends(_require_admin)):
    record = SERVICE.diagnostics.get(diagnostic_id)
    if record is None:
        raise NotFoundError("Diagnóstico no encontrado.")
    return {"success": True, "diagnostic": record.to_dict()}


# ---- Key administration ----
@app.post("/admin/keys")
def generate_keys(payload: GenerateReq = Body(...), admin: str = Depends(_require_admin)):
    keys = SERVICE.generate_keys(
        payload.count,
        payload.product,
        CLOCK(),
        validity_days=payload.validity_days,
        client=payload.client,
        project=payload.project,
        issued_by=admin,
    )
    return {
        "success": True,
        "keys": [k.to_dict() for k in keys],
        "total": len(SERVICE.keys.list_keys()),
    }


@app.get("/admin/keys")
def list_keys(
    product: str | None = Query(None),
    used: bool | None = Query(None),
    _admin: str = Depends(_require_admin),
):
    keys = SERVICE.keys.list_keys(product=product or None, used=used)
    return {"success": True, "keys": [k.to_dict() for k in keys], "total": len(keys)}


@app.post("/admin/sessions/sweep")
def sweep(_admin: str = Depends(_require_admin)):
    removed = SERVICE.sweep(CLOCK())
    return {"success": True, "removed": removed}


def main() -> None:
    import uvicorn

    uvicorn.run("api.app:app", host=cfg_defaults.API_HOST, port=cfg_defaults.API_PORT)


if __name__ == "__main__":
    main()
