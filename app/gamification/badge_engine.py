"""Badge awarding and tracking engine."""

from dataclasses import dataclass
from typing import List, Optional, Set

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
import structlog

from app.core.exceptions import ConcurrentUpdateError
from app.models.gamification import UserBadge
from app.models.habit import Habit, HabitCompletion

logger = structlog.get_logger()


@dataclass(frozen=True)
class BadgeStats:
    """Aggregates the badge rules look at."""
    streak: int
    total_completions: int


@dataclass(frozen=True)
class BadgeRule:
    name: str
    description: str
    metric: str  # attribute of BadgeStats
    threshold: int

    def current(self, stats: BadgeStats) -> int:
        return getattr(stats, self.metric)

    def is_met(self, stats: BadgeStats) -> bool:
        return self.current(stats) >= self.threshold


BADGE_RULES = (
    BadgeRule("consistent", "Maintain a 30-day streak", "streak", 30),
    BadgeRule("master", "Maintain a 100-day streak", "streak", 100),
    BadgeRule("achiever", "Complete 100 total habit check-ins", "total_completions", 100),
)


class BadgeEvaluator:
    """Checks every badge rule and unlocks each badge at most once.

    Rules are evaluated on every call, whichever path moved the stats, so a
    badge earned through a challenge payout is never missed. Nothing is
    committed here; the caller owns the transaction.
    """

    def __init__(self, db: AsyncSession, rules=BADGE_RULES):
        self.db = db
        self.rules = rules

    async def collect_stats(self, user_id: str, habit: Optional[Habit] = None) -> BadgeStats:
        """Gather stats for ``user_id``.

        With ``habit`` the streak is that habit's own streak (completion
        path); without it, the longest streak across all the user's habits.
        """
        if habit is not None:
            streak = habit.streak
        else:
            result = await self.db.execute(
                select(func.max(Habit.streak)).where(Habit.user_id == user_id)
            )
            streak = result.scalar() or 0

        return BadgeStats(streak=streak, total_completions=await self.total_completions(user_id))

    async def total_completions(self, user_id: str) -> int:
        result = await self.db.execute(
            select(func.count(HabitCompletion.id))
            .join(Habit, Habit.id == HabitCompletion.habit_id)
            .where(Habit.user_id == user_id, HabitCompletion.completed.is_(True))
        )
        return result.scalar() or 0

    async def held_badges(self, user_id: str) -> Set[str]:
        result = await self.db.execute(
            select(UserBadge.badge).where(UserBadge.user_id == user_id)
        )
        return set(result.scalars().all())

    async def evaluate(self, user_id: str, stats: BadgeStats) -> List[str]:
        """Unlock every badge whose rule holds. Returns newly unlocked names."""
        held = await self.held_badges(user_id)
        unlocked = []

        for rule in self.rules:
            if rule.name in held or not rule.is_met(stats):
                continue
            self.db.add(UserBadge(user_id=user_id, badge=rule.name))
            held.add(rule.name)
            unlocked.append(rule.name)

        if unlocked:
            await self._flush_badges()
            logger.info("Badges unlocked", user_id=user_id, badges=unlocked)

        return unlocked

    async def grant(self, user_id: str, badge: str) -> bool:
        """Add a named badge (e.g. a challenge reward) unless already held."""
        if badge in await self.held_badges(user_id):
            return False

        self.db.add(UserBadge(user_id=user_id, badge=badge))
        await self._flush_badges()
        logger.info("Badge awarded", user_id=user_id, badge_name=badge)
        return True

    async def _flush_badges(self):
        try:
            await self.db.flush()
        except IntegrityError as e:
            # Another request unlocked the same badge first
            raise ConcurrentUpdateError("Badge was awarded by another request") from e
