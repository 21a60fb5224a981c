"""Challenge participation endpoints."""

from typing import List, Sequence

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.dependencies import get_current_user
from app.gamification.challenge_engine import ChallengeEngine
from app.models.challenge import Challenge, ChallengeParticipant
from app.schemas.progression import (
    ChallengeResponse, ChallengeLeaderboardEntry, ParticipantResponse,
    ProgressUpdate, ProgressUpdateResponse
)

router = APIRouter()


def _challenge_response(challenge: Challenge, participants: Sequence[ChallengeParticipant]) -> ChallengeResponse:
    response = ChallengeResponse.model_validate(challenge)
    response.participants = [ParticipantResponse.model_validate(p) for p in participants]
    return response


@router.get("/active", response_model=List[ChallengeResponse])
async def get_active_challenges(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get all challenges currently open for joining."""
    engine = ChallengeEngine(db)
    challenges = await engine.active_challenges()
    return [_challenge_response(c, await engine.participants(c.id)) for c in challenges]


@router.get("/enrolled", response_model=List[ChallengeResponse])
async def get_enrolled_challenges(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get challenges the current user has joined."""
    engine = ChallengeEngine(db)
    challenges = await engine.enrolled_challenges(current_user["user_id"])
    return [_challenge_response(c, await engine.participants(c.id)) for c in challenges]


@router.post("/{challenge_id}/join", response_model=ChallengeResponse)
async def join_challenge(
    challenge_id: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Join a challenge."""
    engine = ChallengeEngine(db)
    challenge = await engine.join(challenge_id, current_user["user_id"])
    return _challenge_response(challenge, await engine.participants(challenge_id))


@router.post("/{challenge_id}/progress", response_model=ProgressUpdateResponse)
async def update_challenge_progress(
    challenge_id: str,
    update: ProgressUpdate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Update the current user's progress in a challenge."""
    engine = ChallengeEngine(db)
    result = await engine.update_progress(challenge_id, current_user["user_id"], update.progress)

    return ProgressUpdateResponse(
        challenge=_challenge_response(result.challenge, result.participants),
        completed=result.completed,
        progress=result.progress
    )


@router.get("/{challenge_id}/leaderboard", response_model=List[ChallengeLeaderboardEntry])
async def get_challenge_leaderboard(
    challenge_id: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get challenge participants ranked by progress."""
    engine = ChallengeEngine(db)
    rows = await engine.leaderboard(challenge_id)

    return [
        ChallengeLeaderboardEntry(
            username=user.username,
            level=user.level,
            progress=participant.progress,
            completed=participant.completed
        )
        for participant, user in rows
    ]
