# tageskasse/services/profiles.py
from __future__ import annotations

import json
from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tageskasse.config import settings as app_settings
from tageskasse.models.entities import Konfig
from tageskasse.models.user import User, UserProfile
from tageskasse.services import audit
from tageskasse.services.auth import get_profile, resolve_target
from tageskasse.services.errors import ValidationError

log = structlog.get_logger(__name__)

USERNAME_MAX = 100


def clean_username(raw: Optional[str]) -> str:
    name = " ".join((raw or "").split())
    if not name:
        raise ValidationError("Bitte einen Benutzernamen eingeben.")
    if len(name) > USERNAME_MAX:
        raise ValidationError(f"Benutzername ist zu lang (max. {USERNAME_MAX} Zeichen).")
    return name


def ensure_username_free(db: Session, name: str, *, exclude_user_id: Optional[int] = None) -> None:
    q = db.query(UserProfile).filter(UserProfile.username_key == name.casefold())
    if exclude_user_id is not None:
        q = q.filter(UserProfile.user_id != exclude_user_id)
    if q.first() is not None:
        raise ValidationError(f"Benutzername '{name}' ist bereits vergeben.")


def _claims_admin(db: Session) -> bool:
    if db.get(Konfig, app_settings.ADMIN_BOOTSTRAP_KEY) is not None:
        return False
    return db.query(UserProfile).count() == 0


def create_profile(db: Session, actor: User, username: Optional[str]) -> UserProfile:
    """
    Legt das eigene Profil an. Das allererste Profil wird Admin; der Konfig-Eintrag
    'admin_bootstrap' (Primaerschluessel) sorgt dafuer, dass das nur einmal gelingt.
    """
    name = clean_username(username)

    for attempt in (1, 2):
        if get_profile(db, actor.id) is not None:
            raise ValidationError("Profil existiert bereits.")
        ensure_username_free(db, name)

        make_admin = attempt == 1 and _claims_admin(db)
        if make_admin:
            db.add(Konfig(key=app_settings.ADMIN_BOOTSTRAP_KEY,
                          value_json=json.dumps({"user_id": actor.id})))
        profile = UserProfile(
            user_id=actor.id,
            username=name,
            username_key=name.casefold(),
            is_admin=make_admin,
        )
        db.add(profile)
        audit.record(db, actor.id, "profile_created", "user_profile", actor.id,
                     username=name, is_admin=make_admin)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            if make_admin:
                # jemand anderes war schneller: nochmals als normaler Benutzer
                log.warning("admin_bootstrap_lost", user_id=actor.id)
                continue
            raise ValidationError("Profil konnte nicht angelegt werden (Name vergeben?).")
        log.info("profile_created", user_id=actor.id, is_admin=make_admin)
        return profile

    raise ValidationError("Profil konnte nicht angelegt werden.")


def me(db: Session, actor: User) -> dict:
    """Entspricht 'loggedInUser': User plus Profil (oder None)."""
    profile = get_profile(db, actor.id)
    return {
        "user_id": actor.id,
        "email": actor.email,
        "login": actor.display_login,
        "is_anonymous": bool(actor.is_anonymous),
        "profile": profile.to_dict() if profile else None,
    }


def read_profile(db: Session, actor: User, target_user_id: Optional[int] = None) -> dict:
    return resolve_target(db, actor, target_user_id).to_dict()
