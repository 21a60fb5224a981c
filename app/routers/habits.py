"""Habit completion endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from app.core.database import get_db
from app.core.dependencies import get_current_user
from app.core.exceptions import NotFoundError
from app.gamification.completion_recorder import CompletionRecorder
from app.gamification.streak_calculator import calculate_points
from app.models.habit import Habit, HabitCompletion
from app.schemas.progression import CompletionResponse, HabitResponse, HabitStatsResponse

router = APIRouter()


@router.post("/{habit_id}/complete", response_model=CompletionResponse)
async def complete_habit(
    habit_id: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Mark a habit as complete for today."""
    recorder = CompletionRecorder(db)
    result = await recorder.record_completion(habit_id, current_user["user_id"])

    return CompletionResponse(
        habit=HabitResponse.model_validate(result.habit),
        points_earned=result.points_earned,
        new_level=result.new_level,
        new_experience=result.new_experience,
        badges_unlocked=result.badges_unlocked
    )


@router.get("/{habit_id}/stats", response_model=HabitStatsResponse)
async def get_habit_stats(
    habit_id: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get completion statistics for a habit."""
    result = await db.execute(
        select(Habit).where(Habit.id == habit_id, Habit.user_id == current_user["user_id"])
    )
    habit = result.scalar_one_or_none()

    if not habit:
        raise NotFoundError("Habit not found")

    completions = await db.execute(
        select(HabitCompletion.completed).where(HabitCompletion.habit_id == habit.id)
    )
    flags = completions.scalars().all()
    total_completions = sum(1 for completed in flags if completed)
    completion_rate = total_completions / len(flags) if flags else 0

    return HabitStatsResponse(
        streak=habit.streak,
        total_completions=total_completions,
        completion_rate=round(completion_rate * 100),
        points=calculate_points(habit.points, habit.difficulty, habit.streak)
    )
