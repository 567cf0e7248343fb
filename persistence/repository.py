"""
Game Repository - Data Access Layer

Provides the entity operations used while a game is played:
users, games, rounds and guesses, plus the round and game leaderboards.

Lookups return None (or an empty list) when nothing matches. Constraint
violations such as a duplicate game token raise IntegrityError to the
caller; nothing is retried.
"""

import logging
import uuid
from typing import List, Optional, Dict, Any

from sqlalchemy import func, desc, literal_column
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.orm import aliased

from config import config
from engine.leaderboard import rank_round_scores, rank_game_scores
from .database import GameDatabase
from .models import User, Game, Round, Guess, GameWinner
from .records import (
    LatLng, RoundLocation, GameSeed, GuessPayload,
    UserRecord, GameRecord, RoundRecord, GuessRecord,
    RoundParticipant, RoundScore, GameScore, GameWinnerRecord,
)

logger = logging.getLogger(__name__)


class GameRepository:
    """
    Repository for games, rounds, guesses and users.

    Provides methods for:
    - Games and rounds (creation, current round)
    - Guesses (create, lookup, update in place)
    - Users (upsert, flag, locations, stats reset)
    - Round and game leaderboards
    """

    def __init__(self, db: GameDatabase, perfect_score: int = config.PERFECT_SCORE):
        """
        Initialize repository.

        Args:
            db: Open database
            perfect_score: Maximum score of a guess, for leaderboard tie-breaks
        """
        self.db = db
        self.perfect_score = perfect_score

    # =========================================================================
    # Games
    # =========================================================================

    def create_game(self, seed: GameSeed) -> None:
        """Insert a game. A token that already exists raises IntegrityError."""
        with self.db.session_scope() as session:
            session.add(Game(
                id=seed.token,
                map=seed.map,
                map_name=seed.map_name,
                map_bounds=seed.bounds,
                forbid_moving=seed.forbid_moving,
                forbid_panning=seed.forbid_panning,
                forbid_zooming=seed.forbid_zooming,
                time_limit=seed.time_limit,
                created_at=self.db.now(),
            ))
        logger.info(f"Created game {seed.token} on {seed.map_name}")

    def get_game(self, game_id: str) -> Optional[GameRecord]:
        """Get a game (returns None if not found)"""
        with self.db.session_scope() as session:
            game = session.get(Game, game_id)
            return game.to_record() if game else None

    # =========================================================================
    # Rounds
    # =========================================================================

    def create_round(self, game_id: str, location: RoundLocation) -> str:
        """
        Insert a round for a game.

        The game is not looked up: ordering rounds correctly is up to the
        caller.

        Returns:
            The new round id
        """
        round_id = str(uuid.uuid4())
        with self.db.session_scope() as session:
            session.add(Round(
                id=round_id,
                game_id=game_id,
                location=location,
                created_at=self.db.now(),
            ))
        logger.info(f"Created round {round_id} for game {game_id}")
        return round_id

    def get_round(self, round_id: str) -> Optional[RoundRecord]:
        with self.db.session_scope() as session:
            rnd = session.get(Round, round_id)
            return rnd.to_record() if rnd else None

    def get_current_round(self, game_id: str) -> Optional[str]:
        """Id of the most recently created round of a game, if any"""
        with self.db.session_scope() as session:
            return session.query(Round.id).filter(
                Round.game_id == game_id
            ).order_by(desc(Round.created_at), literal_column("rounds.rowid").desc()).limit(1).scalar()

    def get_round_count(self, game_id: str) -> int:
        with self.db.session_scope() as session:
            return session.query(func.count(Round.id)).filter(Round.game_id == game_id).scalar() or 0

    def set_round_country(self, round_id: str, country: Optional[str]) -> None:
        with self.db.session_scope() as session:
            session.query(Round).filter(Round.id == round_id).update({Round.country: country})

    # =========================================================================
    # Guesses
    # =========================================================================

    def create_guess(self, round_id: str, user_id: str, payload: GuessPayload) -> str:
        """
        Insert a guess. Always inserts: callers that allow changing a guess
        look it up with get_user_guess() first and call update_guess().

        Returns:
            The new guess id
        """
        guess_id = str(uuid.uuid4())
        with self.db.session_scope() as session:
            session.add(Guess(
                id=guess_id,
                round_id=round_id,
                user_id=user_id,
                created_at=self.db.now(),
                **self._guess_values(payload),
            ))
        return guess_id

    def get_user_guess(self, round_id: str, user_id: str) -> Optional[GuessRecord]:
        """A user's guess for a round (returns None if not found)"""
        with self.db.session_scope() as session:
            guess = session.query(Guess).filter(
                Guess.round_id == round_id,
                Guess.user_id == user_id,
            ).first()
            return guess.to_record() if guess else None

    def update_guess(self, guess_id: str, payload: GuessPayload) -> None:
        """Overwrite a guess in place. created_at keeps the original submission time."""
        with self.db.session_scope() as session:
            guess = session.get(Guess, guess_id)
            if not guess:
                return
            for key, value in self._guess_values(payload).items():
                setattr(guess, key, value)

    def set_guess_country(self, guess_id: str, country: Optional[str], streak: int) -> None:
        with self.db.session_scope() as session:
            session.query(Guess).filter(Guess.id == guess_id).update({
                Guess.country: country,
                Guess.streak: streak,
            })

    def get_round_guesses(self, round_id: str) -> List[GuessRecord]:
        """All guesses of a round, in submission order"""
        with self.db.session_scope() as session:
            guesses = session.query(Guess).filter(
                Guess.round_id == round_id
            ).order_by(Guess.created_at).all()
            return [g.to_record() for g in guesses]

    @staticmethod
    def _guess_values(payload: GuessPayload) -> Dict[str, Any]:
        return {
            'color': payload.color,
            'flag': payload.flag,
            'location': payload.location,
            'country': payload.country,
            'streak': payload.streak,
            'distance': payload.distance,
            'score': payload.score,
        }

    # =========================================================================
    # Leaderboards
    # =========================================================================

    def get_round_participants(self, round_id: str) -> List[RoundParticipant]:
        """Everyone who guessed in a round, by submission time. No scores included."""
        with self.db.session_scope() as session:
            rows = session.query(
                Guess.id, Guess.user_id, User.username, Guess.color, Guess.flag
            ).join(User, User.id == Guess.user_id).filter(
                Guess.round_id == round_id
            ).order_by(Guess.created_at).all()
            return [
                RoundParticipant(guess_id=r.id, user_id=r.user_id, username=r.username,
                                 color=r.color, flag=r.flag)
                for r in rows
            ]

    def get_round_scores(self, round_id: str) -> List[RoundScore]:
        """The round leaderboard, best first"""
        with self.db.session_scope() as session:
            rows = session.query(Guess, User.username).join(
                User, User.id == Guess.user_id
            ).filter(Guess.round_id == round_id).all()
            scores = [
                RoundScore(
                    guess_id=guess.id,
                    user_id=guess.user_id,
                    username=username,
                    color=guess.color,
                    flag=guess.flag,
                    location=guess.location,
                    streak=guess.streak or 0,
                    distance=guess.distance,
                    score=guess.score,
                    created_at=guess.created_at,
                )
                for guess, username in rows
            ]
        return rank_round_scores(scores, self.perfect_score)

    def get_game_scores(self, game_id: str) -> List[GameScore]:
        """
        The game leaderboard, best total first.

        The streak shown for each user is the one recorded on their latest
        guess in this game.
        """
        with self.db.session_scope() as session:
            latest_guess = aliased(Guess)
            latest_round = aliased(Round)
            latest_streak = session.query(latest_guess.streak).join(
                latest_round, latest_round.id == latest_guess.round_id
            ).filter(
                latest_round.game_id == game_id,
                latest_guess.user_id == User.id,
            ).order_by(desc(latest_guess.created_at)).limit(1).correlate(User).scalar_subquery()

            rows = session.query(
                User.id,
                User.username,
                User.flag,
                func.max(Guess.color).label('color'),
                latest_streak.label('streak'),
                func.count(Guess.id).label('rounds'),
                func.sum(Guess.distance).label('distance'),
                func.sum(Guess.score).label('score'),
            ).join(Guess, Guess.user_id == User.id).join(
                Round, Round.id == Guess.round_id
            ).filter(Round.game_id == game_id).group_by(User.id).all()

            scores = [
                GameScore(
                    user_id=r.id,
                    username=r.username,
                    color=r.color,
                    flag=r.flag,
                    streak=r.streak or 0,
                    rounds=r.rounds,
                    distance=r.distance or 0,
                    score=r.score or 0,
                )
                for r in rows
            ]
        return rank_game_scores(scores)

    def get_game_winners(self, game_id: str) -> List[GameWinnerRecord]:
        """Winners of a completed game; empty while the game has fewer than 5 rounds"""
        with self.db.session_scope() as session:
            winners = session.query(GameWinner).filter(
                GameWinner.game_id == game_id
            ).order_by(GameWinner.user_id).all()
            return [
                GameWinnerRecord(game_id=w.game_id, user_id=w.user_id, score=w.score)
                for w in winners
            ]

    # =========================================================================
    # Users
    # =========================================================================

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        """Get a user (returns None if not found)"""
        with self.db.session_scope() as session:
            user = session.get(User, user_id)
            return user.to_record() if user else None

    def get_or_create_user(self, user_id: str, username: str) -> UserRecord:
        """Create a user, or refresh the display name of an existing one"""
        stmt = insert(User).values(id=user_id, username=username)
        stmt = stmt.on_conflict_do_update(
            index_elements=[User.id],
            set_={'username': username},
        )
        with self.db.session_scope() as session:
            session.execute(stmt)
            return session.get(User, user_id).to_record()

    def migrate_user(self, user_id: str, username: str, legacy_user: Dict[str, Any]) -> UserRecord:
        """
        Insert a user seeded from a legacy store entry.

        Only identity fields are taken from the legacy entry; the user must
        not exist yet (a duplicate id raises IntegrityError).
        """
        previous_guess = legacy_user.get('previousGuess')
        last_location = legacy_user.get('lastLocation')
        with self.db.session_scope() as session:
            user = User(
                id=user_id,
                username=username,
                flag=legacy_user.get('flag'),
                previous_guess=LatLng.from_dict(previous_guess) if previous_guess else None,
                last_location=LatLng.from_dict(last_location) if last_location else None,
                reset_at=0,
            )
            session.add(user)
            session.flush()
            record = user.to_record()
        logger.info(f"Migrated legacy user {username} ({user_id})")
        return record

    def set_user_flag(self, user_id: str, flag: Optional[str]) -> None:
        with self.db.session_scope() as session:
            session.query(User).filter(User.id == user_id).update({User.flag: flag})

    def set_user_previous_guess(self, user_id: str, location: Optional[LatLng]) -> None:
        with self.db.session_scope() as session:
            user = session.get(User, user_id)
            if user:
                user.previous_guess = location

    def set_user_last_location(self, user_id: str, location: Optional[LatLng]) -> None:
        with self.db.session_scope() as session:
            user = session.get(User, user_id)
            if user:
                user.last_location = location

    def reset_user_stats(self, user_id: str) -> None:
        """
        Start a user's stats over: detach the current streak and move the
        reset watermark to now. No history is deleted.
        """
        with self.db.session_scope() as session:
            session.query(User).filter(User.id == user_id).update({
                User.current_streak_id: None,
                User.reset_at: self.db.now(),
            })
        logger.info(f"Reset stats for user {user_id}")
