"""Request and response schemas for progression endpoints."""

from datetime import datetime
from typing import List, Optional, Dict, Any

from pydantic import BaseModel, ConfigDict, Field, StrictInt


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class HabitResponse(ORMModel):
    id: str
    user_id: str
    title: str
    description: Optional[str] = None
    category: str
    frequency: str
    difficulty: str
    streak: int
    points: int
    active: bool
    created_at: Optional[datetime] = None


class CompletionResponse(BaseModel):
    habit: HabitResponse
    points_earned: int
    new_level: int
    new_experience: int
    badges_unlocked: List[str] = Field(default_factory=list)


class HabitStatsResponse(BaseModel):
    streak: int
    total_completions: int
    completion_rate: int  # percent
    points: int


class ParticipantResponse(ORMModel):
    user_id: str
    progress: int
    completed: bool
    joined_at: Optional[datetime] = None


class ChallengeResponse(ORMModel):
    id: str
    title: str
    description: str
    type: str
    requirements: Dict[str, Any] = Field(default_factory=dict)
    reward_experience_points: int
    reward_badge: Optional[str] = None
    reward_streak_bonus: Optional[int] = None
    start_date: datetime
    end_date: datetime
    active: bool
    participants: List[ParticipantResponse] = Field(default_factory=list)


class ProgressUpdate(BaseModel):
    progress: StrictInt = Field(..., ge=0, le=100)


class ProgressUpdateResponse(BaseModel):
    challenge: ChallengeResponse
    completed: bool
    progress: int


class ChallengeLeaderboardEntry(BaseModel):
    username: str
    level: int
    progress: int
    completed: bool


class LeaderboardEntry(BaseModel):
    username: str
    level: int
    experience: int
    badges: int
    streak_points: int


class AchievementResponse(ORMModel):
    name: str
    unlocked_at: datetime


class AchievementsResponse(BaseModel):
    badges: List[str]
    achievements: List[AchievementResponse]


class BadgeProgress(BaseModel):
    name: str
    description: str
    progress: float
    current: int
    required: int


class AchievementProgressResponse(BaseModel):
    next_level: Dict[str, Any]
    streaks: Dict[str, int]
    next_badges: List[BadgeProgress]


class ExperienceAward(BaseModel):
    user_id: str
    delta: StrictInt


class ExperienceResponse(BaseModel):
    new_level: int
    new_experience: int
    leveled_up: bool
