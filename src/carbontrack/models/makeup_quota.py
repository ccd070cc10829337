"""Monthly makeup-checkin quota tracking model."""

from datetime import datetime

from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import relationship

from ..core.database import Base


class MakeupQuota(Base):
    """Tracks how many makeup checkins a user spent in a month."""

    __tablename__ = "makeup_quota"
    __table_args__ = (
        UniqueConstraint("user_id", "month_bucket", name="makeup_quota_unique"),
        CheckConstraint("used >= 0", name="makeup_quota_used_positive"),
        CheckConstraint("monthly_limit >= 0", name="makeup_quota_limit_positive"),
    )

    quota_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    month_bucket = Column(Date, nullable=False)
    used = Column(Integer, nullable=False, default=0)
    monthly_limit = Column(Integer, nullable=False, default=3)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="makeup_quotas")
