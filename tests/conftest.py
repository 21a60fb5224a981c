"""Shared fixtures for progression engine tests."""
import os

os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_FORMAT", "plain")
os.environ.setdefault("ENABLE_METRICS", "false")

from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.core.database import Base, utcnow
from app.gamification.streak_calculator import base_points_for
from app.models import Challenge, Habit, User


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
async def engine(tmp_path):
    """File-backed SQLite so several sessions can share one database"""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'progression.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


# ============================================================================
# Entity Factories
# ============================================================================

@pytest.fixture
def make_user(db):
    """Create and commit a user"""
    async def _make(username="alice", **fields):
        user = User(username=username, **fields)
        db.add(user)
        await db.commit()
        return user
    return _make


@pytest.fixture
def make_habit(db):
    """Create and commit a habit with points derived from difficulty"""
    async def _make(user, difficulty="medium", **fields):
        fields.setdefault("title", f"{difficulty} habit")
        habit = Habit(
            user_id=user.id,
            difficulty=difficulty,
            points=base_points_for(difficulty),
            **fields
        )
        db.add(habit)
        await db.commit()
        return habit
    return _make


@pytest.fixture
def make_challenge(db):
    """Create and commit a challenge open from yesterday to next week"""
    async def _make(title="30 Day Run", **fields):
        now = utcnow()
        fields.setdefault("start_date", now - timedelta(days=1))
        fields.setdefault("end_date", now + timedelta(days=7))
        fields.setdefault("description", "Run every day")
        fields.setdefault("reward_experience_points", 50)
        challenge = Challenge(title=title, **fields)
        db.add(challenge)
        await db.commit()
        return challenge
    return _make
