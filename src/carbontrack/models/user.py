"""User, school and avatar models referenced by the leaderboards."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from ..core.database import Base


class School(Base):
    """School a user may belong to."""

    __tablename__ = "schools"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    users = relationship("User", back_populates="school")


class Avatar(Base):
    """Selectable profile picture."""

    __tablename__ = "avatars"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    file_path = Column(String, nullable=False)


class User(Base):
    """Represents a participant whose activity feeds the leaderboards."""

    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("username", name="users_username_unique"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String, nullable=False)
    email = Column(String)
    points = Column(Float, nullable=False, default=0)
    region_code = Column(String(16))
    school_id = Column(Integer, ForeignKey("schools.id", ondelete="SET NULL"))
    avatar_id = Column(Integer, ForeignKey("avatars.id", ondelete="SET NULL"))
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    deleted_at = Column(DateTime)

    school = relationship("School", back_populates="users")
    avatar = relationship("Avatar")
    checkins = relationship("UserCheckin", back_populates="user")
    makeup_quotas = relationship("MakeupQuota", back_populates="user")
