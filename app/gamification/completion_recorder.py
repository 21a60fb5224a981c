"""Habit completion workflow."""

from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
import structlog

from app.core.config import settings
from app.core.database import transaction, utcnow
from app.core.exceptions import AlreadyCompletedError, NotFoundError
from app.gamification.badge_engine import BadgeEvaluator
from app.gamification.progression_ledger import ProgressionLedger
from app.gamification.streak_calculator import calculate_points, compute_streak
from app.models.habit import Habit, HabitCompletion

logger = structlog.get_logger()


@dataclass
class CompletionResult:
    habit: Habit
    points_earned: int
    new_level: int
    new_experience: int
    leveled_up: bool = False
    badges_unlocked: List[str] = field(default_factory=list)


class CompletionRecorder:
    """Records one habit completion per calendar day.

    The completion row, the habit streak, the user's experience and level,
    and any unlocked badges are committed together or not at all.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.ledger = ProgressionLedger(db)
        self.badges = BadgeEvaluator(db)

    async def record_completion(
        self,
        habit_id: str,
        user_id: str,
        as_of: Optional[date] = None
    ) -> CompletionResult:
        """Complete a habit for ``as_of`` (default: today, UTC)."""
        now = utcnow()
        as_of = as_of or now.date()

        async with transaction(self.db):
            habit = await self._get_owned_habit(habit_id, user_id)

            if await self._completed_on(habit.id, as_of):
                raise AlreadyCompletedError("Habit already completed today")

            self.db.add(HabitCompletion(
                habit_id=habit.id,
                completed_on=as_of,
                completed=True,
                completed_at=now
            ))
            try:
                await self.db.flush()
            except IntegrityError as e:
                # Lost a race with another request for the same day
                raise AlreadyCompletedError("Habit already completed today") from e

            habit.streak = compute_streak(habit.streak, True)
            points = calculate_points(habit.points, habit.difficulty, habit.streak)

            user = await self.ledger.get_user(user_id)
            experience = await self.ledger.credit(user, points)
            user.streak_points += settings.STREAK_POINTS_PER_COMPLETION

            stats = await self.badges.collect_stats(user_id, habit=habit)
            unlocked = await self.badges.evaluate(user_id, stats)

        logger.info(
            "Habit completed",
            habit_id=habit_id,
            user_id=user_id,
            streak=habit.streak,
            points=points,
            level=experience.new_level
        )

        return CompletionResult(
            habit=habit,
            points_earned=points,
            new_level=experience.new_level,
            new_experience=experience.new_experience,
            leveled_up=experience.leveled_up,
            badges_unlocked=unlocked
        )

    async def _get_owned_habit(self, habit_id: str, user_id: str) -> Habit:
        result = await self.db.execute(
            select(Habit).where(
                Habit.id == habit_id,
                Habit.user_id == user_id,
                Habit.active.is_(True)
            )
        )
        habit = result.scalar_one_or_none()
        if habit is None:
            raise NotFoundError("Habit not found")
        return habit

    async def _completed_on(self, habit_id: str, day: date) -> bool:
        result = await self.db.execute(
            select(HabitCompletion.id).where(
                HabitCompletion.habit_id == habit_id,
                HabitCompletion.completed_on == day
            )
        )
        return result.first() is not None
