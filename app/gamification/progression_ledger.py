"""Experience, level and reward bookkeeping for users."""

from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.core.config import settings
from app.core.database import transaction, utcnow
from app.core.exceptions import NotFoundError, ValidationError
from app.gamification.badge_engine import BadgeEvaluator
from app.models.challenge import Challenge
from app.models.gamification import Achievement, User

logger = structlog.get_logger()


@dataclass
class ExperienceResult:
    new_level: int
    new_experience: int
    leveled_up: bool
    levels_gained: int = 0


@dataclass(frozen=True)
class RewardSpec:
    """What a reward source pays out."""
    experience_points: int = 0
    badge: Optional[str] = None
    streak_bonus: Optional[int] = None

    @classmethod
    def from_challenge(cls, challenge: Challenge) -> "RewardSpec":
        return cls(
            experience_points=challenge.reward_experience_points or 0,
            badge=challenge.reward_badge,
            streak_bonus=challenge.reward_streak_bonus,
        )


@dataclass
class RewardResult:
    experience: ExperienceResult
    badges_unlocked: List[str] = field(default_factory=list)
    streak_points: int = 0


def level_threshold(level: int) -> int:
    """Experience needed to advance past ``level``."""
    return level * settings.LEVEL_XP_STEP


class ProgressionLedger:
    """Applies experience deltas and rewards to the user aggregate.

    ``apply_experience`` is a standalone unit of work. ``credit`` and
    ``apply_reward`` join the caller's transaction and never commit.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.badges = BadgeEvaluator(db)

    async def apply_experience(self, user_id: str, delta: int) -> ExperienceResult:
        """Add ``delta`` experience to a user and resolve level-ups."""
        async with transaction(self.db):
            user = await self.get_user(user_id)
            result = await self.credit(user, delta)

        logger.info(
            "Experience applied",
            user_id=user_id,
            delta=delta,
            level=result.new_level,
            leveled_up=result.leveled_up
        )
        return result

    async def get_user(self, user_id: str) -> User:
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    async def credit(self, user: User, delta: int) -> ExperienceResult:
        """Add experience and record every level crossed.

        Loops rather than checking once, so a large delta records one
        "Reached Level N" achievement per level gained. Afterwards
        ``experience < level * LEVEL_XP_STEP`` holds for non-negative deltas.
        """
        if isinstance(delta, bool) or not isinstance(delta, int):
            raise ValidationError("Experience delta must be an integer")

        user.experience += delta
        levels_gained = 0

        while user.experience >= level_threshold(user.level):
            user.level += 1
            levels_gained += 1
            self.record_achievement(user.id, f"Reached Level {user.level}")

        if levels_gained:
            logger.info("Level up", user_id=user.id, level=user.level, levels_gained=levels_gained)

        return ExperienceResult(
            new_level=user.level,
            new_experience=user.experience,
            leveled_up=levels_gained > 0,
            levels_gained=levels_gained
        )

    def record_achievement(self, user_id: str, name: str) -> Achievement:
        achievement = Achievement(user_id=user_id, name=name, unlocked_at=utcnow())
        self.db.add(achievement)
        return achievement

    async def apply_reward(self, user: User, reward: RewardSpec, achievement: Optional[str] = None) -> RewardResult:
        """Pay out a reward through the single shared reward path.

        Experience goes through ``credit``, the reward badge through
        ``BadgeEvaluator.grant``, and the streak bonus onto
        ``streak_points``. Badge rules are re-evaluated afterwards.
        """
        experience = await self.credit(user, reward.experience_points)
        unlocked = []

        if reward.badge and await self.badges.grant(user.id, reward.badge):
            unlocked.append(reward.badge)

        if reward.streak_bonus:
            user.streak_points += reward.streak_bonus

        if achievement:
            self.record_achievement(user.id, achievement)

        stats = await self.badges.collect_stats(user.id)
        unlocked.extend(await self.badges.evaluate(user.id, stats))

        return RewardResult(
            experience=experience,
            badges_unlocked=unlocked,
            streak_points=user.streak_points
        )
