# tageskasse/models/user.py
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Numeric, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from tageskasse.models.base import Base


class User(Base):
    """Login-Identitaet (E-Mail oder anonymer Handle)."""
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("email", name="uq_users_email"),)

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), nullable=True, index=True)  # NULL bei anonym
    handle = Column(String(64), nullable=True)
    password_hash = Column(String(255), nullable=True)
    is_anonymous = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    profile = relationship(
        "UserProfile", back_populates="user", uselist=False,
        cascade="all, delete-orphan", passive_deletes=True,
    )
    entries = relationship(
        "DailyEntry", back_populates="user",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    @property
    def display_login(self) -> str:
        return self.email or self.handle or f"user-{self.id}"


class UserProfile(Base):
    """Genau ein Profil pro User; Abzuege setzt nur der Admin."""
    __tablename__ = "user_profiles"
    __table_args__ = (UniqueConstraint("user_id", name="uq_user_profiles_user"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    username = Column(String(100), nullable=False)
    # Kleingeschrieben fuer die Eindeutigkeit (case-insensitive)
    username_key = Column(String(100), nullable=False, unique=True)
    is_admin = Column(Boolean, nullable=False, default=False)
    deductions = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    user = relationship("User", back_populates="profile")

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "username": self.username,
            "is_admin": bool(self.is_admin),
            "deductions": float(self.deductions or 0),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
