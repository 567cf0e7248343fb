"""
Stats Aggregator

Per-user and channel-wide stats derived from the guess history.

Guesses and streaks from before a user's reset_at watermark are left out.
Victories are not: a game, once won, stays won.
"""

import logging
from typing import Optional

from sqlalchemy import func, desc

from config import config
from .database import GameDatabase
from .models import User, Guess, Streak, GameWinner
from .records import UserStats, StatLeader, GlobalStats

logger = logging.getLogger(__name__)


class StatsAggregator:
    """
    Read-only stats queries.

    Provides:
    - Lifetime stats for one user (streaks, guesses, perfects, victories)
    - Channel bests (longest streak, most victories, most perfects)
    """

    def __init__(self, db: GameDatabase, perfect_score: int = config.PERFECT_SCORE):
        self.db = db
        self.perfect_score = perfect_score

    def get_user_stats(self, user_id: str) -> Optional[UserStats]:
        """Stats for a user (returns None if the user is unknown)"""
        with self.db.session_scope() as session:
            user = session.get(User, user_id)
            if user is None:
                return None

            reset_at = user.reset_at or 0

            current_streak = 0
            if user.current_streak_id:
                current_streak = session.query(Streak.count).filter(
                    Streak.id == user.current_streak_id
                ).scalar() or 0

            best_streak = session.query(func.max(Streak.count)).filter(
                Streak.user_id == user_id,
                Streak.updated_at > reset_at,
            ).scalar() or 0

            guesses = session.query(Guess).filter(
                Guess.user_id == user_id,
                Guess.created_at > reset_at,
            )
            nb_guesses = guesses.count()
            correct_guesses = guesses.filter(Guess.streak > 0).count()
            perfects = guesses.filter(Guess.score == self.perfect_score).count()
            mean_score = guesses.with_entities(func.avg(Guess.score)).scalar()

            victories = session.query(func.count()).select_from(GameWinner).filter(
                GameWinner.user_id == user_id
            ).scalar() or 0

            return UserStats(
                username=user.username,
                flag=user.flag,
                streak=current_streak,
                best_streak=best_streak,
                correct_guesses=correct_guesses,
                nb_guesses=nb_guesses,
                perfects=perfects,
                mean_score=float(mean_score) if mean_score is not None else None,
                victories=victories,
            )

    def get_global_stats(self) -> GlobalStats:
        """The channel leaders for streaks, victories and perfects"""
        with self.db.session_scope() as session:
            best_streak = func.max(Streak.count).label('value')
            streak_row = session.query(User.id, User.username, best_streak).join(
                Streak, Streak.user_id == User.id
            ).filter(
                Streak.updated_at > func.coalesce(User.reset_at, 0)
            ).group_by(User.id).order_by(desc('value')).first()

            victory_count = func.count().label('value')
            victories_row = session.query(User.id, User.username, victory_count).join(
                GameWinner, GameWinner.user_id == User.id
            ).group_by(User.id).order_by(desc('value')).first()

            perfect_count = func.count(Guess.id).label('value')
            perfects_row = session.query(User.id, User.username, perfect_count).join(
                Guess, Guess.user_id == User.id
            ).filter(
                Guess.score == self.perfect_score,
                Guess.created_at > func.coalesce(User.reset_at, 0),
            ).group_by(User.id).order_by(desc('value')).first()

            return GlobalStats(
                streak=_leader(streak_row),
                victories=_leader(victories_row),
                perfects=_leader(perfects_row),
            )


def _leader(row) -> Optional[StatLeader]:
    if row is None:
        return None
    return StatLeader(id=row.id, username=row.username, value=row.value)
