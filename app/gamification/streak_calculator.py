"""Streak and completion-points rules for habits."""

import math

from app.core.config import settings
from app.models.habit import Difficulty

BASE_POINTS = {
    Difficulty.EASY.value: 10,
    Difficulty.MEDIUM.value: 15,
    Difficulty.HARD.value: 20,
}

DIFFICULTY_MULTIPLIER = {
    Difficulty.EASY.value: 1.0,
    Difficulty.MEDIUM.value: 1.5,
    Difficulty.HARD.value: 2.0,
}


def base_points_for(difficulty: str) -> int:
    """Base reward assigned to a habit when it is created."""
    return BASE_POINTS[Difficulty(difficulty).value]


def compute_streak(current_streak: int, completed_today: bool) -> int:
    """Extend the streak on a completion, reset it otherwise."""
    if completed_today:
        return current_streak + 1
    return 0


def streak_bonus(streak: int) -> float:
    """10% bonus per full week of streak."""
    return (streak // settings.STREAK_BONUS_WEEK_DAYS) * settings.STREAK_BONUS_RATE


def calculate_points(base_points: int, difficulty: str, streak: int) -> int:
    """Points awarded for a completion that leaves the habit at ``streak``.

    Rounds half up, so a medium habit (15 x 1.5 = 22.5) earns 23.
    """
    multiplier = DIFFICULTY_MULTIPLIER[Difficulty(difficulty).value]
    raw = base_points * multiplier * (1 + streak_bonus(streak))
    return int(math.floor(raw + 0.5))
