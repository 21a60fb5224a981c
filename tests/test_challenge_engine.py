"""Tests for challenge join, progress and payout"""
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from app.core.database import utcnow
from app.core.exceptions import (
    AlreadyJoinedError,
    InactiveChallengeError,
    NotFoundError,
    NotParticipantError,
    ValidationError,
)
from app.gamification.challenge_engine import ChallengeEngine
from app.models import Achievement, ChallengeParticipant, User, UserBadge


async def participant_count(session, challenge_id):
    result = await session.execute(
        select(func.count(ChallengeParticipant.id)).where(ChallengeParticipant.challenge_id == challenge_id)
    )
    return result.scalar()


# ============================================
# Join
# ============================================

@pytest.mark.asyncio
async def test_join(db, make_user, make_challenge):
    user = await make_user()
    challenge = await make_challenge()
    engine = ChallengeEngine(db)

    await engine.join(challenge.id, user.id)

    participants = await engine.participants(challenge.id)
    assert len(participants) == 1
    assert participants[0].user_id == user.id
    assert participants[0].progress == 0
    assert participants[0].completed is False


@pytest.mark.asyncio
async def test_join_twice(db, make_user, make_challenge):
    user = await make_user()
    challenge = await make_challenge()
    challenge_id, user_id = challenge.id, user.id
    engine = ChallengeEngine(db)
    await engine.join(challenge_id, user_id)

    with pytest.raises(AlreadyJoinedError):
        await engine.join(challenge_id, user_id)

    assert await participant_count(db, challenge_id) == 1


@pytest.mark.asyncio
async def test_join_race_lost_on_unique_constraint(db, make_user, make_challenge, monkeypatch):
    user = await make_user()
    challenge = await make_challenge()
    challenge_id, user_id = challenge.id, user.id
    engine = ChallengeEngine(db)
    await engine.join(challenge_id, user_id)

    # The concurrent request's row is not visible to the membership check
    async def not_joined(self, challenge_id, user_id):
        return None
    monkeypatch.setattr(ChallengeEngine, "_get_participant", not_joined)

    with pytest.raises(AlreadyJoinedError):
        await engine.join(challenge_id, user_id)

    assert await participant_count(db, challenge_id) == 1


@pytest.mark.asyncio
async def test_join_after_end_date(db, make_user, make_challenge):
    user = await make_user()
    now = utcnow()
    challenge = await make_challenge(start_date=now - timedelta(days=10), end_date=now - timedelta(days=1))
    challenge_id = challenge.id

    with pytest.raises(InactiveChallengeError):
        await ChallengeEngine(db).join(challenge_id, user.id)

    assert await participant_count(db, challenge_id) == 0


@pytest.mark.asyncio
async def test_join_before_start_date(db, make_user, make_challenge):
    user = await make_user()
    now = utcnow()
    challenge = await make_challenge(start_date=now + timedelta(days=1), end_date=now + timedelta(days=8))

    with pytest.raises(InactiveChallengeError):
        await ChallengeEngine(db).join(challenge.id, user.id)


@pytest.mark.asyncio
async def test_join_disabled_challenge(db, make_user, make_challenge):
    user = await make_user()
    challenge = await make_challenge(active=False)

    with pytest.raises(InactiveChallengeError):
        await ChallengeEngine(db).join(challenge.id, user.id)


@pytest.mark.asyncio
async def test_join_missing_challenge(db, make_user):
    user = await make_user()

    with pytest.raises(NotFoundError):
        await ChallengeEngine(db).join("missing", user.id)


# ============================================
# Progress & payout
# ============================================

@pytest.mark.asyncio
async def test_partial_progress(db, make_user, make_challenge):
    user = await make_user()
    challenge = await make_challenge()
    engine = ChallengeEngine(db)
    await engine.join(challenge.id, user.id)

    result = await engine.update_progress(challenge.id, user.id, 40)

    assert result.progress == 40
    assert result.completed is False
    assert result.rewarded is False


@pytest.mark.asyncio
async def test_progress_requires_participation(db, make_user, make_challenge):
    user = await make_user()
    challenge = await make_challenge()

    with pytest.raises(NotParticipantError):
        await ChallengeEngine(db).update_progress(challenge.id, user.id, 10)


@pytest.mark.asyncio
@pytest.mark.parametrize("progress", [-1, 101, "50", 50.0, True])
async def test_progress_validation(db, make_user, make_challenge, progress):
    user = await make_user()
    challenge = await make_challenge()
    engine = ChallengeEngine(db)
    await engine.join(challenge.id, user.id)

    with pytest.raises(ValidationError):
        await engine.update_progress(challenge.id, user.id, progress)


@pytest.mark.asyncio
async def test_completion_pays_full_reward(db, session_factory, make_user, make_challenge):
    user = await make_user(streak_points=3)
    challenge = await make_challenge(
        title="Sunrise",
        reward_experience_points=150,
        reward_badge="early-bird",
        reward_streak_bonus=10
    )
    engine = ChallengeEngine(db)
    await engine.join(challenge.id, user.id)

    result = await engine.update_progress(challenge.id, user.id, 100)

    assert result.completed is True
    assert result.rewarded is True
    assert result.badges_unlocked == ["early-bird"]

    async with session_factory() as check:
        stored = await check.get(User, user.id)
        assert stored.experience == 150
        assert stored.level == 2
        assert stored.streak_points == 13
        names = await check.execute(
            select(Achievement.name).where(Achievement.user_id == user.id).order_by(Achievement.id)
        )
        assert names.scalars().all() == ["Reached Level 2", "Completed Sunrise"]


@pytest.mark.asyncio
async def test_repeat_completion_pays_once(db, session_factory, make_user, make_challenge):
    user = await make_user()
    challenge = await make_challenge(reward_experience_points=50)
    engine = ChallengeEngine(db)
    await engine.join(challenge.id, user.id)

    first = await engine.update_progress(challenge.id, user.id, 100)
    lowered = await engine.update_progress(challenge.id, user.id, 60)
    again = await engine.update_progress(challenge.id, user.id, 100)

    assert first.rewarded is True
    assert lowered.completed is True
    assert lowered.progress == 60
    assert again.rewarded is False

    async with session_factory() as check:
        stored = await check.get(User, user.id)
        assert stored.experience == 50


@pytest.mark.asyncio
async def test_concurrent_completion_pays_exactly_once(db, session_factory, make_user, make_challenge):
    user = await make_user()
    challenge = await make_challenge(title="Race", reward_experience_points=50, reward_badge="sprinter")
    await ChallengeEngine(db).join(challenge.id, user.id)

    async with session_factory() as first, session_factory() as second:
        # Both requests have read the participant as not yet completed
        for session in (first, second):
            loaded = (await session.execute(select(ChallengeParticipant))).scalars().all()
            assert [p.completed for p in loaded] == [False]
            await session.commit()

        winner = await ChallengeEngine(first).update_progress(challenge.id, user.id, 100)
        loser = await ChallengeEngine(second).update_progress(challenge.id, user.id, 100)

    assert winner.rewarded is True
    assert loser.rewarded is False
    assert loser.completed is True

    async with session_factory() as check:
        stored = await check.get(User, user.id)
        assert stored.experience == 50
        badges = await check.execute(select(UserBadge.badge).where(UserBadge.user_id == user.id))
        assert badges.scalars().all() == ["sprinter"]
        names = await check.execute(select(Achievement.name).where(Achievement.user_id == user.id))
        assert names.scalars().all() == ["Completed Race"]


# ============================================
# Listings & leaderboard
# ============================================

@pytest.mark.asyncio
async def test_leaderboard_orders_by_progress_then_join_order(db, make_user, make_challenge):
    challenge = await make_challenge()
    engine = ChallengeEngine(db)
    a = await make_user("a")
    b = await make_user("b")
    c = await make_user("c")
    for user in (a, b, c):
        await engine.join(challenge.id, user.id)

    await engine.update_progress(challenge.id, a.id, 80)
    await engine.update_progress(challenge.id, b.id, 95)
    await engine.update_progress(challenge.id, c.id, 95)

    rows = await engine.leaderboard(challenge.id)

    assert [user.username for _, user in rows] == ["b", "c", "a"]
    assert [participant.progress for participant, _ in rows] == [95, 95, 80]


@pytest.mark.asyncio
async def test_leaderboard_missing_challenge(db):
    with pytest.raises(NotFoundError):
        await ChallengeEngine(db).leaderboard("missing")


@pytest.mark.asyncio
async def test_active_and_enrolled(db, make_user, make_challenge):
    user = await make_user()
    now = utcnow()
    open_challenge = await make_challenge(title="Open")
    await make_challenge(title="Over", start_date=now - timedelta(days=9), end_date=now - timedelta(days=2))
    await make_challenge(title="Off", active=False)
    engine = ChallengeEngine(db)
    await engine.join(open_challenge.id, user.id)

    active = await engine.active_challenges()
    enrolled = await engine.enrolled_challenges(user.id)

    assert [c.title for c in active] == ["Open"]
    assert [c.title for c in enrolled] == ["Open"]
