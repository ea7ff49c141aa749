# tageskasse/services/admin.py
"""
Admin-Funktionen: Benutzerliste, Umbenennen, feste Abzuege, Benutzer loeschen,
Monatsuebersicht ueber alle Benutzer und die beiden Reset-Varianten.

Jede Funktion prueft den Admin-Status selbst (frisch aus der DB).
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tageskasse.config import settings as app_settings
from tageskasse.models.entities import DailyEntry
from tageskasse.models.user import User, UserProfile
from tageskasse.services import audit
from tageskasse.services.auth import get_profile, require_admin
from tageskasse.services.entries import compute_totals, entry_to_dict
from tageskasse.services.errors import NotFoundError, ValidationError
from tageskasse.services.money import D, ZERO, month_range, parse_amount, round2
from tageskasse.services.profiles import clean_username, ensure_username_free

log = structlog.get_logger(__name__)


# ---------- Benutzer ----------

def list_users(db: Session, actor: User) -> List[Dict[str, Any]]:
    require_admin(db, actor)
    rows = (
        db.query(UserProfile, User)
        .join(User, User.id == UserProfile.user_id)
        .order_by(UserProfile.created_at.asc(), UserProfile.id.asc())
        .all()
    )
    return [
        profile.to_dict() | {"email": user.email, "login": user.display_login}
        for profile, user in rows
    ]


def _target_profile(db: Session, user_id: int) -> UserProfile:
    profile = get_profile(db, user_id)
    if profile is None:
        raise NotFoundError("Benutzer nicht gefunden.")
    return profile


def rename_user(db: Session, actor: User, user_id: int, new_username: Any) -> Dict[str, Any]:
    require_admin(db, actor)
    name = clean_username(new_username)
    profile = _target_profile(db, user_id)
    ensure_username_free(db, name, exclude_user_id=user_id)
    old = profile.username
    profile.username = name
    profile.username_key = name.casefold()
    audit.record(db, actor.id, "user_renamed", "user_profile", user_id, old=old, new=name)
    try:
        db.commit()
    except IntegrityError:
        # username_key zwischen Pruefung und Commit vergeben
        db.rollback()
        raise ValidationError(f"Benutzername '{name}' ist bereits vergeben.")
    log.info("user_renamed", actor_id=actor.id, user_id=user_id)
    return profile.to_dict()


def set_deductions(db: Session, actor: User, user_id: int, deductions: Any) -> Dict[str, Any]:
    require_admin(db, actor)
    amount = parse_amount(deductions, "deductions")
    profile = _target_profile(db, user_id)
    profile.deductions = amount
    audit.record(db, actor.id, "deductions_set", "user_profile", user_id, deductions=str(amount))
    db.commit()
    log.info("deductions_set", actor_id=actor.id, user_id=user_id, deductions=str(amount))
    return profile.to_dict()


def delete_user(db: Session, actor: User, user_id: int) -> Dict[str, Any]:
    """Loescht einen Nicht-Admin samt Profil und allen Tageseintraegen."""
    require_admin(db, actor)
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("Benutzer nicht gefunden.")
    profile = get_profile(db, user_id)
    if profile is not None and profile.is_admin:
        raise ValidationError("Administratoren koennen nicht geloescht werden.")

    entries_deleted = (
        db.query(DailyEntry)
        .filter(DailyEntry.user_id == user_id)
        .delete(synchronize_session=False)
    )
    if profile is not None:
        db.delete(profile)
    db.delete(user)
    audit.record(db, actor.id, "user_deleted", "user", user_id, entries_deleted=entries_deleted)
    db.commit()
    log.info("user_deleted", actor_id=actor.id, user_id=user_id, entries_deleted=entries_deleted)
    return {"user_id": user_id, "entries_deleted": entries_deleted}


# ---------- Reset ----------

def reset(db: Session, actor: User, variant: Any, confirmation: Any) -> Dict[str, Any]:
    """
    'daten': alle Tageseintraege weg, Benutzer bleiben.
    'komplett': zusaetzlich alle Benutzer/Profile ausser dem ausfuehrenden Admin.
    Die Bestaetigung muss exakt (inkl. Gross/Klein) passen, sonst passiert nichts.
    """
    require_admin(db, actor)
    expected = app_settings.RESET_PHRASES.get(variant) if isinstance(variant, str) else None
    if expected is None:
        raise ValidationError("Unbekannte Reset-Variante.")
    if confirmation != expected:
        raise ValidationError(f'Bitte exakt "{expected}" zur Bestaetigung eingeben.')

    entries_deleted = db.query(DailyEntry).delete(synchronize_session=False)
    profiles_deleted = 0
    users_deleted = 0
    if variant == app_settings.RESET_COMPLETE:
        profiles_deleted = (
            db.query(UserProfile)
            .filter(UserProfile.user_id != actor.id)
            .delete(synchronize_session=False)
        )
        users_deleted = (
            db.query(User)
            .filter(User.id != actor.id)
            .delete(synchronize_session=False)
        )
    audit.record(db, actor.id, f"reset_{variant}", "system", None,
                 entries_deleted=entries_deleted, profiles_deleted=profiles_deleted,
                 users_deleted=users_deleted)
    db.commit()
    db.expire_all()
    log.warning("system_reset", actor_id=actor.id, variant=variant,
                entries_deleted=entries_deleted, profiles_deleted=profiles_deleted,
                users_deleted=users_deleted)

    if variant == app_settings.RESET_COMPLETE:
        message = (f"Kompletter Reset: {entries_deleted} Eintraege und "
                   f"{users_deleted} Benutzer geloescht.")
    else:
        message = f"Daten-Reset: {entries_deleted} Eintraege geloescht, Benutzer bleiben erhalten."
    return {
        "variant": variant,
        "entries_deleted": entries_deleted,
        "profiles_deleted": profiles_deleted,
        "users_deleted": users_deleted,
        "message": message,
    }


# ---------- Auswertungen ----------

def month_totals(db: Session, actor: User, year: int, month: int) -> Dict[str, Any]:
    """Summe (Kasse + Netzwerk) je Benutzer fuer einen Monat."""
    require_admin(db, actor)
    start, end = month_range(year, month)
    rows = (
        db.query(DailyEntry)
        .filter(DailyEntry.datum >= start, DailyEntry.datum < end)
        .all()
    )
    by_user: Dict[int, Decimal] = {}
    for e in rows:
        t = compute_totals(e.cash_amount, e.network_amount, e.purchases_amount)
        by_user[e.user_id] = by_user.get(e.user_id, ZERO) + t.total

    profiles = db.query(UserProfile).order_by(UserProfile.created_at.asc(), UserProfile.id.asc()).all()
    return {
        "year": year,
        "month": month,
        "user_totals": [
            {"user_id": p.user_id, "username": p.username,
             "total_amount": float(round2(by_user.get(p.user_id, ZERO)))}
            for p in profiles
        ],
    }


def month_summary(db: Session, actor: User, year: int, month: int) -> Dict[str, Any]:
    """
    Gesamtuebersicht eines Monats ueber alle Benutzer: jede Zeile, Summen pro
    Benutzer (inkl. feste Abzuege) und Gesamtsummen.
    """
    require_admin(db, actor)
    start, end = month_range(year, month)
    rows = (
        db.query(DailyEntry, UserProfile)
        .join(UserProfile, UserProfile.user_id == DailyEntry.user_id)
        .filter(DailyEntry.datum >= start, DailyEntry.datum < end)
        .order_by(DailyEntry.datum.asc(), UserProfile.username.asc())
        .all()
    )

    keys = ("cash", "network", "total", "purchases", "remaining", "advances")
    grand = {k: ZERO for k in keys}
    users: Dict[int, Dict[str, Any]] = {}
    lines = []
    for e, p in rows:
        t = compute_totals(e.cash_amount, e.network_amount, e.purchases_amount)
        vals = {
            "cash": D(e.cash_amount), "network": D(e.network_amount), "total": t.total,
            "purchases": D(e.purchases_amount), "remaining": t.remaining,
            "advances": D(e.advance_amount),
        }
        lines.append(entry_to_dict(e) | {"username": p.username})
        u = users.setdefault(p.user_id, {
            "user_id": p.user_id, "username": p.username, "days": 0,
            "deductions": D(p.deductions), **{k: ZERO for k in keys},
        })
        u["days"] += 1
        for k in keys:
            u[k] += vals[k]
            grand[k] += vals[k]

    def _f(d: Dict[str, Any]) -> Dict[str, Any]:
        return {k: (float(round2(v)) if isinstance(v, Decimal) else v) for k, v in d.items()}

    return {
        "year": year,
        "month": month,
        "entries": lines,
        "users": [_f(u) for u in sorted(users.values(), key=lambda u: u["username"])],
        "totals": _f(grand | {"days": len(lines)}),
    }
