"""Read-only ranking views."""

from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from app.core.config import settings
from app.models.gamification import User, UserBadge


class LeaderboardProjector:
    """Derived rankings over persisted users. Never writes."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def global_leaderboard(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Top users by experience."""
        if limit is None:
            limit = settings.LEADERBOARD_SIZE
        badge_count = func.count(UserBadge.id).label("badge_count")

        result = await self.db.execute(
            select(
                User.username,
                User.level,
                User.experience,
                User.streak_points,
                badge_count
            )
            .outerjoin(UserBadge, UserBadge.user_id == User.id)
            .group_by(User.id, User.username, User.level, User.experience, User.streak_points)
            .order_by(User.experience.desc(), User.username)
            .limit(limit)
        )

        return [
            {
                "username": row.username,
                "level": row.level,
                "experience": row.experience,
                "badges": row.badge_count,
                "streak_points": row.streak_points
            }
            for row in result
        ]
