# tageskasse/services/audit.py
from __future__ import annotations

import json
from typing import Any, Optional

from sqlalchemy.orm import Session

from tageskasse.models.entities import Audit


def record(db: Session, actor_id: Optional[int], aktion: str, ziel_typ: str,
           ziel_id: Optional[int] = None, **details: Any) -> None:
    """Audit-Zeile in der laufenden Transaktion; Commit macht der Aufrufer."""
    db.add(Audit(
        user_id=actor_id,
        aktion=aktion,
        ziel_typ=ziel_typ,
        ziel_id=ziel_id,
        details_json=json.dumps(details, default=str, ensure_ascii=False) if details else None,
    ))


def recent(db: Session, limit: int = 50) -> list[dict]:
    rows = db.query(Audit).order_by(Audit.id.desc()).limit(limit).all()
    return [
        {
            "id": r.id,
            "user_id": r.user_id,
            "aktion": r.aktion,
            "ziel_typ": r.ziel_typ,
            "ziel_id": r.ziel_id,
            "timestamp": r.timestamp.isoformat() if r.timestamp else None,
            "details": json.loads(r.details_json) if r.details_json else {},
        }
        for r in rows
    ]
