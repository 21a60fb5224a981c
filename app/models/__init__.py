"""Data models for Habit Progression Service."""

from app.models.gamification import User, UserBadge, Achievement
from app.models.habit import Habit, HabitCompletion, HabitCategory, Frequency, Difficulty
from app.models.challenge import Challenge, ChallengeParticipant, ChallengeType

__all__ = [
    "User",
    "UserBadge",
    "Achievement",
    "Habit",
    "HabitCompletion",
    "HabitCategory",
    "Frequency",
    "Difficulty",
    "Challenge",
    "ChallengeParticipant",
    "ChallengeType",
]
