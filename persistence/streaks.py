"""
Streak Tracker

Each user has at most one current streak, referenced by
users.current_streak_id. A correct country extends it (creating it if the
user has none), a miss or a stats reset detaches it. Detached streak rows
are kept for best-streak stats.
"""

import logging
import uuid
from typing import Optional

from .database import GameDatabase
from .models import User, Streak, Round
from .records import StreakInfo

logger = logging.getLogger(__name__)


class StreakTracker:
    """Maintains the current streak of each user"""

    def __init__(self, db: GameDatabase):
        self.db = db

    def get_user_streak(self, user_id: str) -> Optional[StreakInfo]:
        """The user's current streak with the location of the round that last extended it"""
        with self.db.session_scope() as session:
            row = session.query(Streak.id, Streak.count, Round.location).join(
                User, User.current_streak_id == Streak.id
            ).join(
                Round, Round.id == Streak.last_round_id
            ).filter(User.id == user_id).first()

            if not row:
                return None
            return StreakInfo(id=row.id, count=row.count, last_location=row.location)

    def add_user_streak(self, user_id: str, round_id: str) -> int:
        """
        Record a correct country for a user.

        Not deduplicated by round: calling this twice for the same round
        counts twice.

        Returns:
            The streak count after the update
        """
        now = self.db.now()
        with self.db.session_scope() as session:
            user = session.get(User, user_id)
            if user is None:
                logger.warning(f"Cannot extend streak of unknown user {user_id}")
                return 0

            streak = session.get(Streak, user.current_streak_id) if user.current_streak_id else None

            if streak is None:
                streak = Streak(
                    id=str(uuid.uuid4()),
                    user_id=user_id,
                    last_round_id=round_id,
                    count=1,
                    created_at=now,
                    updated_at=now,
                )
                session.add(streak)
                user.current_streak_id = streak.id
                logger.info(f"Started streak for {user.username}")
            else:
                streak.count += 1
                streak.last_round_id = round_id
                streak.updated_at = now

            return streak.count

    def reset_user_streak(self, user_id: str) -> None:
        """Detach the user's current streak"""
        with self.db.session_scope() as session:
            session.query(User).filter(User.id == user_id).update({User.current_streak_id: None})
