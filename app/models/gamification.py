"""User progression models."""

import uuid

from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, UniqueConstraint, Index

from app.core.database import Base, utcnow


class User(Base):
    """Per-user progression aggregate.

    ``version`` is bumped on every UPDATE and checked in the WHERE clause,
    so two writers racing on the same user cannot both succeed.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    username = Column(String, nullable=False, unique=True)
    level = Column(Integer, nullable=False, default=1)
    experience = Column(Integer, nullable=False, default=0)
    streak_points = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_users_experience", "experience"),
    )


class UserBadge(Base):
    """Badges held by users."""
    __tablename__ = "user_badges"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    badge = Column(String, nullable=False)
    earned_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "badge"),
    )


class Achievement(Base):
    """Append-only log of notable events (level-ups, challenge completions)."""
    __tablename__ = "achievements"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    name = Column(String, nullable=False)
    unlocked_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        Index("ix_achievement_user_unlocked", "user_id", "unlocked_at"),
    )
