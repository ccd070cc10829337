"""Checkin ledger model: one row per user and calendar day."""

import enum
from datetime import datetime

from sqlalchemy import Column, Date, DateTime, Enum, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from ..core.database import Base


class CheckinSource(str, enum.Enum):
    """How a checkin entered the ledger."""

    RECORD = "record"
    MAKEUP = "makeup"


class UserCheckin(Base):
    """Append-only attendance ledger."""

    __tablename__ = "user_checkins"
    __table_args__ = (
        UniqueConstraint("user_id", "checkin_date", name="user_checkins_user_date_unique"),
        Index("user_checkins_date_idx", "checkin_date"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    checkin_date = Column(Date, nullable=False)
    source = Column(
        Enum(CheckinSource, name="checkin_source", values_callable=lambda members: [m.value for m in members]),
        nullable=False,
        default=CheckinSource.RECORD,
    )
    record_id = Column(String(64))
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="checkins")
