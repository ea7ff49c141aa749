from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, Text, DateTime, Date, Numeric, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship

from .base import Base

# ---------- Tageseintraege ----------

class DailyEntry(Base):
    __tablename__ = "daily_entries"
    __table_args__ = (UniqueConstraint("user_id", "datum", name="uq_daily_entries_user_datum"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    datum = Column(Date, nullable=False, index=True)
    cash_amount = Column(Numeric(10, 2), nullable=False, default=0)
    network_amount = Column(Numeric(10, 2), nullable=False, default=0)
    purchases_amount = Column(Numeric(10, 2), nullable=False, default=0)
    advance_amount = Column(Numeric(10, 2), nullable=False, default=0)
    notes = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="entries")

# ---------- Konfig / Audit ----------

class Konfig(Base):
    __tablename__ = "konfig"
    key = Column(String(100), primary_key=True)
    value_json = Column(Text, nullable=False)

class Audit(Base):
    __tablename__ = "audit"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer)
    aktion = Column(String(100), nullable=False)
    ziel_typ = Column(String(100), nullable=False)
    ziel_id = Column(Integer)
    timestamp = Column(DateTime, default=datetime.utcnow)
    details_json = Column(Text)
