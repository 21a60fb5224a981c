"""Achievement, badge and leaderboard endpoints."""

from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.core.config import settings
from app.core.database import get_db
from app.core.dependencies import get_current_user, require_system
from app.gamification.badge_engine import BADGE_RULES, BadgeEvaluator
from app.gamification.leaderboard import LeaderboardProjector
from app.gamification.progression_ledger import ProgressionLedger, level_threshold
from app.models.gamification import Achievement
from app.schemas.progression import (
    AchievementProgressResponse, AchievementResponse, AchievementsResponse, BadgeProgress,
    ExperienceAward, ExperienceResponse, LeaderboardEntry
)

router = APIRouter()


@router.get("/", response_model=AchievementsResponse)
async def get_achievements(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get the current user's badges and achievements."""
    user_id = current_user["user_id"]
    await ProgressionLedger(db).get_user(user_id)

    result = await db.execute(
        select(Achievement)
        .where(Achievement.user_id == user_id)
        .order_by(Achievement.id)
    )
    badges = await BadgeEvaluator(db).held_badges(user_id)

    return AchievementsResponse(
        badges=sorted(badges),
        achievements=[AchievementResponse.model_validate(a) for a in result.scalars().all()]
    )


@router.get("/progress", response_model=AchievementProgressResponse)
async def get_achievement_progress(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get progress towards the next level and unearned badges."""
    user_id = current_user["user_id"]
    user = await ProgressionLedger(db).get_user(user_id)
    evaluator = BadgeEvaluator(db)

    stats = await evaluator.collect_stats(user_id)
    held = await evaluator.held_badges(user_id)
    required = level_threshold(user.level)

    next_badges = [
        BadgeProgress(
            name=rule.name,
            description=rule.description,
            progress=rule.current(stats) / rule.threshold * 100,
            current=rule.current(stats),
            required=rule.threshold
        )
        for rule in BADGE_RULES
        if rule.name not in held
    ]

    return AchievementProgressResponse(
        next_level={
            "current": user.experience,
            "required": required,
            "percentage": user.experience / required * 100
        },
        streaks={"longest": stats.streak, "total": user.streak_points},
        next_badges=next_badges
    )


@router.get("/leaderboard", response_model=List[LeaderboardEntry])
async def get_global_leaderboard(
    limit: int = Query(settings.LEADERBOARD_SIZE, ge=1, le=100),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get top users by experience."""
    return await LeaderboardProjector(db).global_leaderboard(limit)


@router.post("/experience", response_model=ExperienceResponse)
async def award_experience(
    award: ExperienceAward,
    current_user: dict = Depends(require_system),
    db: AsyncSession = Depends(get_db)
):
    """Apply an experience delta to a user (internal callers only)."""
    result = await ProgressionLedger(db).apply_experience(award.user_id, award.delta)
    return ExperienceResponse(
        new_level=result.new_level,
        new_experience=result.new_experience,
        leveled_up=result.leveled_up
    )
