"""Challenge participation and reward payout engine."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
import structlog

from app.core.database import transaction, utcnow
from app.core.exceptions import (
    AlreadyJoinedError, InactiveChallengeError, NotFoundError,
    NotParticipantError, ValidationError
)
from app.gamification.progression_ledger import ProgressionLedger, RewardSpec
from app.models.challenge import Challenge, ChallengeParticipant
from app.models.gamification import User

logger = structlog.get_logger()

COMPLETION_THRESHOLD = 100


@dataclass
class ProgressResult:
    challenge: Challenge
    participants: List[ChallengeParticipant]
    completed: bool
    progress: int
    rewarded: bool = False
    badges_unlocked: List[str] = field(default_factory=list)


class ChallengeEngine:
    """State machine per (challenge, user): not-joined -> joined -> completed.

    The joined -> completed step is a compare-and-set on the participant's
    ``completed`` flag; only the request whose UPDATE flips it pays out.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.ledger = ProgressionLedger(db)

    async def join(self, challenge_id: str, user_id: str, now: Optional[datetime] = None) -> Challenge:
        """Add ``user_id`` as a participant with zero progress."""
        now = now or utcnow()

        async with transaction(self.db):
            challenge = await self.get_challenge(challenge_id)

            if not challenge.is_open(now):
                raise InactiveChallengeError("Challenge is not active")

            if await self._get_participant(challenge_id, user_id) is not None:
                raise AlreadyJoinedError("Already participating in this challenge")

            self.db.add(ChallengeParticipant(
                challenge_id=challenge_id,
                user_id=user_id,
                progress=0,
                completed=False,
                joined_at=now
            ))
            try:
                await self.db.flush()
            except IntegrityError as e:
                raise AlreadyJoinedError("Already participating in this challenge") from e

        logger.info("Challenge joined", challenge_id=challenge_id, user_id=user_id)
        return challenge

    async def update_progress(self, challenge_id: str, user_id: str, progress: int) -> ProgressResult:
        """Set a participant's progress and pay out on first completion.

        Progress is not required to be non-decreasing; lowering it after
        completion leaves ``completed`` set.
        """
        if isinstance(progress, bool) or not isinstance(progress, int):
            raise ValidationError("Progress must be an integer")
        if not 0 <= progress <= COMPLETION_THRESHOLD:
            raise ValidationError("Progress must be between 0 and 100")

        rewarded = False
        unlocked: List[str] = []

        async with transaction(self.db):
            challenge = await self.get_challenge(challenge_id)
            participant = await self._get_participant(challenge_id, user_id)
            if participant is None:
                raise NotParticipantError("Not participating in this challenge")

            participant.progress = progress

            if progress >= COMPLETION_THRESHOLD and not participant.completed:
                if await self._mark_completed(participant):
                    user = await self.ledger.get_user(user_id)
                    reward = await self.ledger.apply_reward(
                        user,
                        RewardSpec.from_challenge(challenge),
                        achievement=f"Completed {challenge.title}"
                    )
                    rewarded = True
                    unlocked = reward.badges_unlocked
                    logger.info(
                        "Challenge completed",
                        challenge_id=challenge_id,
                        user_id=user_id,
                        experience=reward.experience.new_experience,
                        badges=unlocked
                    )
                else:
                    logger.info(
                        "Challenge already completed by concurrent update",
                        challenge_id=challenge_id,
                        user_id=user_id
                    )

            await self.db.flush()
            participants = await self.participants(challenge_id)

        return ProgressResult(
            challenge=challenge,
            participants=participants,
            completed=bool(participant.completed),
            progress=participant.progress,
            rewarded=rewarded,
            badges_unlocked=unlocked
        )

    async def leaderboard(self, challenge_id: str) -> List[Tuple[ChallengeParticipant, User]]:
        """Participants by progress descending; ties keep join order."""
        await self.get_challenge(challenge_id)

        result = await self.db.execute(
            select(ChallengeParticipant, User)
            .join(User, User.id == ChallengeParticipant.user_id)
            .where(ChallengeParticipant.challenge_id == challenge_id)
            .order_by(ChallengeParticipant.id)
        )
        rows = [(row[0], row[1]) for row in result.all()]
        # sorted() is stable, reverse=True included
        return sorted(rows, key=lambda row: row[0].progress, reverse=True)

    async def active_challenges(self, now: Optional[datetime] = None) -> List[Challenge]:
        now = now or utcnow()
        result = await self.db.execute(
            select(Challenge).where(
                Challenge.active.is_(True),
                Challenge.start_date <= now,
                Challenge.end_date >= now
            ).order_by(Challenge.start_date)
        )
        return list(result.scalars().all())

    async def enrolled_challenges(self, user_id: str) -> List[Challenge]:
        result = await self.db.execute(
            select(Challenge)
            .join(ChallengeParticipant, ChallengeParticipant.challenge_id == Challenge.id)
            .where(ChallengeParticipant.user_id == user_id, Challenge.active.is_(True))
            .order_by(ChallengeParticipant.joined_at)
        )
        return list(result.scalars().all())

    async def get_challenge(self, challenge_id: str) -> Challenge:
        challenge = await self.db.get(Challenge, challenge_id)
        if challenge is None:
            raise NotFoundError("Challenge not found")
        return challenge

    async def participants(self, challenge_id: str) -> List[ChallengeParticipant]:
        result = await self.db.execute(
            select(ChallengeParticipant)
            .where(ChallengeParticipant.challenge_id == challenge_id)
            .order_by(ChallengeParticipant.id)
        )
        return list(result.scalars().all())

    async def _get_participant(self, challenge_id: str, user_id: str) -> Optional[ChallengeParticipant]:
        result = await self.db.execute(
            select(ChallengeParticipant).where(
                ChallengeParticipant.challenge_id == challenge_id,
                ChallengeParticipant.user_id == user_id
            )
        )
        return result.scalar_one_or_none()

    async def _mark_completed(self, participant: ChallengeParticipant) -> bool:
        """Flip ``completed`` false -> true. True only for the winning writer."""
        result = await self.db.execute(
            update(ChallengeParticipant)
            .where(
                ChallengeParticipant.id == participant.id,
                ChallengeParticipant.completed.is_(False)
            )
            .values(completed=True)
            .execution_options(synchronize_session=False)
        )
        await self.db.refresh(participant, ["completed"])
        return result.rowcount == 1
