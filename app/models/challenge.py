"""Challenge models."""

from datetime import datetime
from enum import Enum
import uuid

from sqlalchemy import Column, String, Integer, DateTime, Boolean, ForeignKey, UniqueConstraint, JSON

from app.core.database import Base, utcnow


class ChallengeType(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class Challenge(Base):
    """Time-boxed challenge with a one-off reward."""
    __tablename__ = "challenges"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(String, nullable=False)
    description = Column(String, nullable=False, default="")
    type = Column(String, nullable=False, default=ChallengeType.DAILY.value)
    requirements = Column(JSON, nullable=False, default=dict)  # habitCategory, targetStreak, completionCount
    reward_experience_points = Column(Integer, nullable=False, default=0)
    reward_badge = Column(String)
    reward_streak_bonus = Column(Integer)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)

    def is_open(self, now: datetime) -> bool:
        """Check if the challenge accepts participants at ``now``."""
        return bool(self.active) and self.start_date <= now <= self.end_date


class ChallengeParticipant(Base):
    """Per-user progress record within a challenge.

    ``id`` is autoincrement so ordering by it reproduces join order.
    ``completed`` only ever flips false -> true, via a conditional UPDATE.
    """
    __tablename__ = "challenge_participants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    challenge_id = Column(String(36), ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    progress = Column(Integer, nullable=False, default=0)
    completed = Column(Boolean, nullable=False, default=False)
    joined_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint("challenge_id", "user_id"),
    )
