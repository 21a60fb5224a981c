"""Habit tracking models."""

from enum import Enum
import uuid

from sqlalchemy import Column, String, Integer, DateTime, Date, Boolean, ForeignKey, UniqueConstraint, Index

from app.core.database import Base, utcnow


class HabitCategory(str, Enum):
    """Habit categories."""
    HEALTH = "health"
    PRODUCTIVITY = "productivity"
    LEARNING = "learning"
    FITNESS = "fitness"
    OTHER = "other"


class Frequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class Habit(Base):
    """A recurring habit owned by one user."""
    __tablename__ = "habits"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(String)
    category = Column(String, nullable=False, default=HabitCategory.OTHER.value)
    frequency = Column(String, nullable=False, default=Frequency.DAILY.value)
    difficulty = Column(String, nullable=False, default=Difficulty.MEDIUM.value)
    streak = Column(Integer, nullable=False, default=0)
    points = Column(Integer, nullable=False, default=15)  # base reward, fixed at creation
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)


class HabitCompletion(Base):
    """One check-in for a habit. At most one row per calendar date."""
    __tablename__ = "habit_completions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    habit_id = Column(String(36), ForeignKey("habits.id", ondelete="CASCADE"), nullable=False)
    completed_on = Column(Date, nullable=False)
    completed = Column(Boolean, nullable=False, default=True)
    completed_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint("habit_id", "completed_on"),
        Index("ix_habit_completion_habit", "habit_id"),
    )
