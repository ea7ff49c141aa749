# tageskasse/services/entries.py
"""
Tageseintraege: Upsert pro (User, Datum), Loeschen (nur Admin) und die
Lese-Sichten Jahr / Monat / Tag. Summen werden bei jedem Aufruf frisch
aus den Zeilen berechnet.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tageskasse.models.entities import DailyEntry
from tageskasse.models.user import User
from tageskasse.services import audit
from tageskasse.services.auth import get_profile, is_admin, require_admin, resolve_target
from tageskasse.services.errors import NotFoundError, ValidationError
from tageskasse.services.money import (
    D, ZERO, month_range, parse_amount, parse_day, parse_year_month, round2,
)

log = structlog.get_logger(__name__)

AMOUNT_FIELDS = ("cash_amount", "network_amount", "purchases_amount", "advance_amount")


@dataclass
class EntryTotals:
    total: Decimal       # Kasse + Netzwerk
    remaining: Decimal   # total - Einkaeufe


def compute_totals(cash: Any, network: Any, purchases: Any) -> EntryTotals:
    total = round2(D(cash) + D(network))
    return EntryTotals(total=total, remaining=round2(total - D(purchases)))


def entry_to_dict(e: DailyEntry) -> Dict[str, Any]:
    t = compute_totals(e.cash_amount, e.network_amount, e.purchases_amount)
    return {
        "id": e.id,
        "user_id": e.user_id,
        "date": e.datum.isoformat(),
        "cash_amount": float(D(e.cash_amount)),
        "network_amount": float(D(e.network_amount)),
        "purchases_amount": float(D(e.purchases_amount)),
        "advance_amount": float(D(e.advance_amount)),
        "notes": e.notes or "",
        "total": float(t.total),
        "remaining": float(t.remaining),
    }


def _month_query(db: Session, user_id: int, year: int, month: int):
    start, end = month_range(year, month)
    return (
        db.query(DailyEntry)
        .filter(DailyEntry.user_id == user_id, DailyEntry.datum >= start, DailyEntry.datum < end)
    )


# ---------- Schreiben ----------

def upsert_entry(db: Session, actor: User, datum: str, payload: Dict[str, Any],
                 target_user_id: Optional[int] = None) -> Dict[str, Any]:
    """
    Legt den Eintrag fuer (Ziel-User, Datum) an oder ueberschreibt ihn.
    Validierung komplett vor dem ersten Schreibzugriff, damit nichts halb gespeichert wird.
    """
    day = parse_day(datum)
    values = {f: parse_amount(payload.get(f), f) for f in AMOUNT_FIELDS}
    notes = str(payload.get("notes") or "").strip()
    target_id = resolve_target(db, actor, target_user_id).user_id

    for attempt in (1, 2):
        entry = (
            db.query(DailyEntry)
            .filter(DailyEntry.user_id == target_id, DailyEntry.datum == day)
            .first()
        )
        created = entry is None
        if created:
            entry = DailyEntry(user_id=target_id, datum=day)
            db.add(entry)
        for f, v in values.items():
            setattr(entry, f, v)
        entry.notes = notes
        audit.record(db, actor.id, "entry_created" if created else "entry_updated",
                     "daily_entry", target_id, date=day.isoformat())
        try:
            db.commit()
        except IntegrityError:
            # paralleler Insert fuer denselben Tag: dann eben Update (last write wins)
            db.rollback()
            if attempt == 1:
                continue
            if get_profile(db, target_id) is None:
                raise NotFoundError("Benutzer nicht gefunden.")
            raise ValidationError("Eintrag konnte nicht gespeichert werden.")
        break

    log.info("entry_saved", actor_id=actor.id, user_id=target_id,
             date=day.isoformat(), created=created)
    return entry_to_dict(entry)


def delete_entry(db: Session, actor: User, entry_id: int) -> Dict[str, Any]:
    require_admin(db, actor)
    entry = db.get(DailyEntry, entry_id)
    if entry is None:
        raise NotFoundError("Eintrag nicht gefunden.")
    snapshot = entry_to_dict(entry)
    db.delete(entry)
    audit.record(db, actor.id, "entry_deleted", "daily_entry", entry.user_id,
                 date=snapshot["date"])
    db.commit()
    log.info("entry_deleted", actor_id=actor.id, entry_id=entry_id, user_id=snapshot["user_id"])
    return snapshot


# ---------- Lesen ----------

def list_entries(db: Session, actor: User, target_user_id: Optional[int] = None,
                 year: Optional[int] = None, month: Optional[int] = None) -> List[Dict[str, Any]]:
    """Alle Eintraege eines Users, optional auf einen Monat eingeschraenkt."""
    target = resolve_target(db, actor, target_user_id)
    if year is not None and month is not None:
        q = _month_query(db, target.user_id, year, month)
    else:
        q = db.query(DailyEntry).filter(DailyEntry.user_id == target.user_id)
    return [entry_to_dict(e) for e in q.order_by(DailyEntry.datum.asc()).all()]


def advances_for_month(db: Session, user_id: int, year: int, month: int) -> Decimal:
    start, end = month_range(year, month)
    total = (
        db.query(func.coalesce(func.sum(DailyEntry.advance_amount), 0))
        .filter(DailyEntry.user_id == user_id, DailyEntry.datum >= start, DailyEntry.datum < end)
        .scalar()
    )
    return round2(D(total))


def monthly_advances(db: Session, actor: User, year_month: str,
                     target_user_id: Optional[int] = None) -> Decimal:
    year, month = parse_year_month(year_month)
    target = resolve_target(db, actor, target_user_id)
    return advances_for_month(db, target.user_id, year, month)


def day_view(db: Session, actor: User, datum: str,
             target_user_id: Optional[int] = None) -> Dict[str, Any]:
    day = parse_day(datum)
    target = resolve_target(db, actor, target_user_id)
    entry = (
        db.query(DailyEntry)
        .filter(DailyEntry.user_id == target.user_id, DailyEntry.datum == day)
        .first()
    )
    if entry is not None:
        data = entry_to_dict(entry)
        totals = {"total": data["total"], "remaining": data["remaining"]}
    else:
        data = None
        totals = {"total": 0.0, "remaining": 0.0}
    return {
        "date": day.isoformat(),
        "user_id": target.user_id,
        "username": target.username,
        "entry": data,
        **totals,
        "monthly_advances": float(advances_for_month(db, target.user_id, day.year, day.month)),
        "deductions": float(D(target.deductions)),
    }


def month_view(db: Session, actor: User, year: int, month: int,
               target_user_id: Optional[int] = None) -> Dict[str, Any]:
    """
    Monatsansicht. Umsatzsummen sieht nur der Admin; normale Benutzer sehen
    pro Tag nur, ob erfasst wurde.
    """
    target = resolve_target(db, actor, target_user_id)
    viewer_is_admin = is_admin(db, actor)
    rows = _month_query(db, target.user_id, year, month).order_by(DailyEntry.datum.asc()).all()
    entries = [entry_to_dict(e) for e in rows]

    out: Dict[str, Any] = {
        "year": year,
        "month": month,
        "user_id": target.user_id,
        "username": target.username,
        "entry_count": len(entries),
        "days": [e["date"] for e in entries],
        "monthly_advances": float(advances_for_month(db, target.user_id, year, month)),
        "deductions": float(D(target.deductions)),
    }
    if viewer_is_admin:
        out["entries"] = entries
        out["revenue_total"] = float(round2(sum((D(e["total"]) for e in entries), ZERO)))
    return out


def year_overview(db: Session, actor: User, year: int,
                  target_user_id: Optional[int] = None) -> Dict[str, Any]:
    target = resolve_target(db, actor, target_user_id)
    start, _ = month_range(year, 1)
    _, end = month_range(year, 12)
    rows = (
        db.query(DailyEntry)
        .filter(DailyEntry.user_id == target.user_id, DailyEntry.datum >= start, DailyEntry.datum < end)
        .all()
    )
    months = {
        m: {"month": m, "entry_count": 0, "revenue": ZERO, "purchases": ZERO,
            "remaining": ZERO, "advances": ZERO}
        for m in range(1, 13)
    }
    for e in rows:
        m = months[e.datum.month]
        t = compute_totals(e.cash_amount, e.network_amount, e.purchases_amount)
        m["entry_count"] += 1
        m["revenue"] += t.total
        m["purchases"] += D(e.purchases_amount)
        m["remaining"] += t.remaining
        m["advances"] += D(e.advance_amount)

    def _f(m: dict) -> dict:
        return {k: (float(round2(v)) if isinstance(v, Decimal) else v) for k, v in m.items()}

    return {
        "year": year,
        "user_id": target.user_id,
        "username": target.username,
        "months": [_f(months[m]) for m in range(1, 13)],
    }


