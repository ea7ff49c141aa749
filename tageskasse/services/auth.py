# tageskasse/services/auth.py
import base64
import hmac
import os
import re
import secrets
from hashlib import pbkdf2_hmac
from typing import Optional

import structlog
from fastapi import Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tageskasse.config import settings as app_settings
from tageskasse.models.user import User, UserProfile
from tageskasse.services.errors import (
    AuthorizationError,
    NotAuthenticatedError,
    NotFoundError,
    ValidationError,
)

log = structlog.get_logger(__name__)

# Session Key (nur die User-ID, niemals eine Rolle)
SESSION_USER_ID = "user_id"

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# ---------- Passwort-Hashing (PBKDF2) ----------
def _b64(b: bytes) -> str:
    return base64.b64encode(b).decode("ascii")

def _unb64(s: str) -> bytes:
    return base64.b64decode(s.encode("ascii"))

def hash_password(plain: str, *, iterations: int = 310_000, salt: bytes | None = None) -> str:
    salt = salt or os.urandom(16)
    dk = pbkdf2_hmac("sha256", plain.encode("utf-8"), salt, iterations)
    return f"pbkdf2${iterations}${_b64(salt)}${_b64(dk)}"

def verify_password(plain: str, stored: Optional[str]) -> bool:
    if not stored:
        return False
    try:
        scheme, s_iter, s_salt, s_hash = stored.split("$", 3)
        if scheme != "pbkdf2":
            return False
        iterations = int(s_iter)
        salt = _unb64(s_salt)
        expected = _unb64(s_hash)
    except (ValueError, TypeError):
        return False
    test = pbkdf2_hmac("sha256", plain.encode("utf-8"), salt, iterations)
    return hmac.compare_digest(test, expected)

# ---------- Registrierung / Login ----------
def _normalize_email(email: Optional[str]) -> str:
    email = (email or "").strip().lower()
    if not _EMAIL_RE.match(email):
        raise ValidationError("Ungueltige E-Mail-Adresse.")
    return email

def register_user(db: Session, email: str, password: str) -> User:
    email = _normalize_email(email)
    if len(password or "") < app_settings.PASSWORD_MIN_LENGTH:
        raise ValidationError(
            f"Passwort muss mindestens {app_settings.PASSWORD_MIN_LENGTH} Zeichen haben."
        )
    if db.query(User).filter(User.email == email).first():
        raise ValidationError("Konto existiert bereits.")
    user = User(email=email, password_hash=hash_password(password), is_anonymous=False)
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationError("Konto existiert bereits.")
    log.info("user_registered", user_id=user.id)
    return user

def register_anonymous(db: Session) -> User:
    user = User(handle=f"anon-{secrets.token_hex(4)}", is_anonymous=True)
    db.add(user)
    db.commit()
    log.info("user_registered", user_id=user.id, anonymous=True)
    return user

def authenticate_user(db: Session, email: str, password: str) -> Optional[User]:
    email = (email or "").strip().lower()
    user = db.query(User).filter(User.email == email).first()
    if not user:
        return None
    if not verify_password(password or "", user.password_hash):
        return None
    return user

def login_user(request: Request, user: User) -> None:
    request.session[SESSION_USER_ID] = user.id

def logout_user(request: Request) -> None:
    request.session.pop(SESSION_USER_ID, None)

def get_current_user(request: Request, db: Session) -> Optional[User]:
    uid = request.session.get(SESSION_USER_ID)
    if not uid:
        return None
    return db.get(User, uid)

def require_user(request: Request, db: Session) -> User:
    user = get_current_user(request, db)
    if user is None:
        raise NotAuthenticatedError("Nicht angemeldet.")
    return user

# ---------- Rechte ----------
def get_profile(db: Session, user_id: int) -> Optional[UserProfile]:
    return db.query(UserProfile).filter(UserProfile.user_id == user_id).first()

def is_admin(db: Session, user: User) -> bool:
    """Immer frisch aus der DB, nie aus Session oder Request."""
    profile = get_profile(db, user.id)
    return bool(profile and profile.is_admin)

def require_profile(db: Session, user: User) -> UserProfile:
    profile = get_profile(db, user.id)
    if profile is None:
        raise NotFoundError("Bitte zuerst ein Benutzerprofil anlegen.")
    return profile

def require_admin(db: Session, user: User) -> UserProfile:
    profile = get_profile(db, user.id)
    if profile is None or not profile.is_admin:
        raise AuthorizationError("Nur fuer Administratoren.")
    return profile

def resolve_target(db: Session, actor: User, target_user_id: Optional[int]) -> UserProfile:
    """
    Ziel-Profil fuer Lese-/Schreibzugriffe auf Tagesdaten.
    Self darf nur sich selbst, Admin darf jeden.
    """
    actor_profile = require_profile(db, actor)
    if target_user_id is None or target_user_id == actor.id:
        return actor_profile
    if not actor_profile.is_admin:
        raise AuthorizationError("Keine Berechtigung fuer Daten anderer Benutzer.")
    target = get_profile(db, target_user_id)
    if target is None:
        raise NotFoundError("Benutzer nicht gefunden.")
    return target
