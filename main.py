from __future__ import annotations

from typing import Any, Optional

import structlog
from fastapi import FastAPI, Request, Depends
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from tageskasse.config import settings as app_settings
from tageskasse.config.log_config import configure_logging
from tageskasse.models.base import get_db
from tageskasse.services import admin, audit, entries, profiles, reports
from tageskasse.services.auth import (
    authenticate_user, login_user, logout_user, register_anonymous, register_user,
    require_admin, require_user,
)
from tageskasse.services.db_init import init_db
from tageskasse.services.errors import KasseError, NotAuthenticatedError, ValidationError

configure_logging()
log = structlog.get_logger("tageskasse.api")

# ------------------------------------------------------------------------------
# App / Middleware
# ------------------------------------------------------------------------------
app = FastAPI(title=app_settings.APP_NAME, version=app_settings.APP_VERSION)
app.add_middleware(SessionMiddleware, secret_key=app_settings.SECRET_KEY,
                   session_cookie=app_settings.SESSION_COOKIE)


@app.on_event("startup")
def _startup():
    init_db()


def _fail(request: Request, message: str, status_code: int, kind: str) -> JSONResponse:
    log.warning("request_rejected", path=request.url.path, error=message,
                kind=kind, status=status_code)
    return JSONResponse({"ok": False, "error": message}, status_code=status_code)


@app.exception_handler(KasseError)
async def _kasse_error(request: Request, exc: KasseError):
    return _fail(request, exc.message, exc.status_code, type(exc).__name__)


@app.exception_handler(RequestValidationError)
async def _request_invalid(request: Request, exc: RequestValidationError):
    fields = ", ".join(str(e.get("loc", ["?"])[-1]) for e in exc.errors()) or "?"
    return _fail(request, f"Ungueltige Anfrage ({fields}).", 400, "RequestValidationError")


@app.exception_handler(StarletteHTTPException)
async def _http_error(request: Request, exc: StarletteHTTPException):
    # unbekannte Route, falsche Methode
    return _fail(request, str(exc.detail), exc.status_code, "HTTPException")


async def _json(request: Request) -> dict:
    try:
        payload = await request.json()
    except ValueError:
        raise ValidationError("Ungueltiger JSON-Body.")
    if not isinstance(payload, dict):
        raise ValidationError("JSON-Objekt erwartet.")
    return payload


def _ok(extra: Optional[dict] = None, **kw: Any) -> JSONResponse:
    return JSONResponse({"ok": True} | (extra or {}) | kw)


# Pfad-/Query-Werte kommen roh als str und werden erst nach der Rechtepruefung gelesen
def _int(raw: Optional[str], field: str) -> int:
    if raw is None or not raw.strip():
        raise ValidationError(f"Angabe '{field}' fehlt.")
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"Ungueltige Angabe fuer '{field}'.")


def _opt_int(raw: Optional[str], field: str) -> Optional[int]:
    return None if raw is None or raw == "" else _int(raw, field)


def _year_month(jahr: Optional[str], monat: Optional[str]) -> tuple[int, int]:
    if jahr is None or monat is None:
        raise ValidationError("Jahr und Monat angeben.")
    return _int(jahr, "jahr"), _int(monat, "monat")


# ------------------------------------------------------------------------------
# Auth
# ------------------------------------------------------------------------------
@app.post("/registrieren")
async def signup(request: Request, db: Session = Depends(get_db)):
    payload = await _json(request)
    user = register_user(db, payload.get("email"), payload.get("password") or "")
    login_user(request, user)
    return _ok(profiles.me(db, user))


@app.post("/anmelden")
async def signin(request: Request, db: Session = Depends(get_db)):
    payload = await _json(request)
    user = authenticate_user(db, payload.get("email"), payload.get("password") or "")
    if not user:
        raise NotAuthenticatedError("E-Mail oder Passwort falsch.")
    login_user(request, user)
    return _ok(profiles.me(db, user))


@app.post("/anmelden/anonym")
def signin_anonymous(request: Request, db: Session = Depends(get_db)):
    user = register_anonymous(db)
    login_user(request, user)
    return _ok(profiles.me(db, user))


@app.post("/abmelden")
def signout(request: Request):
    logout_user(request)
    return _ok()


@app.get("/ich")
def whoami(request: Request, db: Session = Depends(get_db)):
    user = require_user(request, db)
    return _ok(profiles.me(db, user))


# ------------------------------------------------------------------------------
# Profil
# ------------------------------------------------------------------------------
@app.post("/profil")
async def profile_create(request: Request, db: Session = Depends(get_db)):
    user = require_user(request, db)
    payload = await _json(request)
    profile = profiles.create_profile(db, user, payload.get("username"))
    return _ok({"profile": profile.to_dict()})


@app.get("/profil")
def profile_read(request: Request, user_id: Optional[str] = None, db: Session = Depends(get_db)):
    user = require_user(request, db)
    return _ok({"profile": profiles.read_profile(db, user, _opt_int(user_id, "user_id"))})


# ------------------------------------------------------------------------------
# Tageseintraege
# ------------------------------------------------------------------------------
@app.get("/eintraege")
def entries_list(request: Request, jahr: Optional[str] = None, monat: Optional[str] = None,
                 user_id: Optional[str] = None, db: Session = Depends(get_db)):
    user = require_user(request, db)
    if (jahr is None) != (monat is None):
        raise ValidationError("Jahr und Monat nur zusammen angeben.")
    year = _opt_int(jahr, "jahr")
    month = _opt_int(monat, "monat")
    rows = entries.list_entries(db, user, _opt_int(user_id, "user_id"), year, month)
    return _ok({"entries": rows})


@app.get("/tag/{datum}")
def day_get(datum: str, request: Request, user_id: Optional[str] = None,
            db: Session = Depends(get_db)):
    user = require_user(request, db)
    return _ok(entries.day_view(db, user, datum, _opt_int(user_id, "user_id")))


@app.post("/tag/{datum}")
async def day_save(datum: str, request: Request, db: Session = Depends(get_db)):
    user = require_user(request, db)
    payload = await _json(request)
    target = payload.get("user_id")
    if target is not None and (isinstance(target, bool) or not isinstance(target, int)):
        raise ValidationError("Ungueltige user_id.")
    entry = entries.upsert_entry(db, user, datum, payload, target)
    return _ok({"entry": entry})


@app.delete("/eintraege/{entry_id}")
def entry_delete(entry_id: str, request: Request, db: Session = Depends(get_db)):
    user = require_user(request, db)
    require_admin(db, user)
    return _ok({"deleted": entries.delete_entry(db, user, _int(entry_id, "entry_id"))})


@app.get("/vorschuesse")
def advances(request: Request, monat: Optional[str] = None, user_id: Optional[str] = None,
             db: Session = Depends(get_db)):
    user = require_user(request, db)
    total = entries.monthly_advances(db, user, monat, _opt_int(user_id, "user_id"))
    return _ok({"year_month": monat, "advances": float(total)})


@app.get("/monat/{jahr}/{monat}")
def month_get(jahr: str, monat: str, request: Request, user_id: Optional[str] = None,
              db: Session = Depends(get_db)):
    user = require_user(request, db)
    year, month = _year_month(jahr, monat)
    return _ok(entries.month_view(db, user, year, month, _opt_int(user_id, "user_id")))


@app.get("/jahr/{jahr}")
def year_get(jahr: str, request: Request, user_id: Optional[str] = None,
             db: Session = Depends(get_db)):
    user = require_user(request, db)
    return _ok(entries.year_overview(db, user, _int(jahr, "jahr"), _opt_int(user_id, "user_id")))


# ------------------------------------------------------------------------------
# Admin (Rechte immer zuerst, dann Eingaben lesen)
# ------------------------------------------------------------------------------
@app.get("/admin/benutzer")
def admin_users(request: Request, db: Session = Depends(get_db)):
    user = require_user(request, db)
    return _ok({"users": admin.list_users(db, user)})


@app.post("/admin/benutzer/{user_id}/name")
async def admin_rename(user_id: str, request: Request, db: Session = Depends(get_db)):
    user = require_user(request, db)
    require_admin(db, user)
    target = _int(user_id, "user_id")
    payload = await _json(request)
    return _ok({"profile": admin.rename_user(db, user, target, payload.get("username"))})


@app.post("/admin/benutzer/{user_id}/abzuege")
async def admin_deductions(user_id: str, request: Request, db: Session = Depends(get_db)):
    user = require_user(request, db)
    require_admin(db, user)
    target = _int(user_id, "user_id")
    payload = await _json(request)
    return _ok({"profile": admin.set_deductions(db, user, target, payload.get("deductions"))})


@app.delete("/admin/benutzer/{user_id}")
def admin_delete_user(user_id: str, request: Request, db: Session = Depends(get_db)):
    user = require_user(request, db)
    require_admin(db, user)
    return _ok(admin.delete_user(db, user, _int(user_id, "user_id")))


@app.post("/admin/reset")
async def admin_reset(request: Request, db: Session = Depends(get_db)):
    user = require_user(request, db)
    require_admin(db, user)
    payload = await _json(request)
    return _ok(admin.reset(db, user, payload.get("variante"), payload.get("bestaetigung")))


@app.get("/admin/monatssummen")
def admin_month_totals(request: Request, jahr: Optional[str] = None, monat: Optional[str] = None,
                       db: Session = Depends(get_db)):
    user = require_user(request, db)
    require_admin(db, user)
    year, month = _year_month(jahr, monat)
    return _ok(admin.month_totals(db, user, year, month))


@app.get("/admin/audit")
def admin_audit(request: Request, limit: Optional[str] = None, db: Session = Depends(get_db)):
    user = require_user(request, db)
    require_admin(db, user)
    n = _opt_int(limit, "limit") or 50
    return _ok({"events": audit.recent(db, max(1, min(n, 500)))})


# ------------------------------------------------------------------------------
# Berichte
# ------------------------------------------------------------------------------
@app.get("/berichte/monat")
def rep_month(request: Request, jahr: Optional[str] = None, monat: Optional[str] = None,
              db: Session = Depends(get_db)):
    user = require_user(request, db)
    require_admin(db, user)
    year, month = _year_month(jahr, monat)
    return _ok(admin.month_summary(db, user, year, month))


@app.get("/berichte/monat.pdf")
def rep_month_pdf(request: Request, jahr: Optional[str] = None, monat: Optional[str] = None,
                  db: Session = Depends(get_db)):
    user = require_user(request, db)
    require_admin(db, user)
    year, month = _year_month(jahr, monat)
    summary = admin.month_summary(db, user, year, month)
    buf = reports.month_summary_pdf(summary)
    return Response(
        content=buf.getvalue(),
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="monat_{year}_{month:02d}.pdf"'},
    )


# ------------------------------------------------------------------------------
# Dev-Server
# ------------------------------------------------------------------------------
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host=app_settings.HOST, port=app_settings.PORT, reload=True)
