"""
Database Models for the guessr scoreboard

Tracks:
- Chat users and their current streak
- Games, their rounds and the guesses made in each round
- Streak history
- Game winners (a view over completed games)

The tables themselves are created by the migrations in migrations.py,
never by metadata.create_all(): these classes only map the current schema.
"""

import json
from sqlalchemy import Column, Integer, String, Text, Float, Boolean, ForeignKey
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator

from .records import (
    LatLng, MapBounds, RoundLocation,
    UserRecord, GameRecord, RoundRecord, GuessRecord,
)

Base = declarative_base()


class _JSONRecord(TypeDecorator):
    """
    Stores a record type as a JSON text column.

    Subclasses set `record_type`, which must provide to_dict/from_dict.
    """
    impl = Text
    cache_ok = True
    record_type = None

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return json.dumps(value.to_dict())

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return self.record_type.from_dict(json.loads(value))


class LatLngJSON(_JSONRecord):
    record_type = LatLng


class MapBoundsJSON(_JSONRecord):
    record_type = MapBounds


class RoundLocationJSON(_JSONRecord):
    record_type = RoundLocation


class User(Base):
    """
    A chat user.

    Never deleted: a stats reset only detaches the current streak and
    moves the reset_at watermark forward.
    """
    __tablename__ = 'users'

    id = Column(String, primary_key=True)  # chat account id
    username = Column(String, nullable=False)  # last seen display name
    flag = Column(String)
    previous_guess = Column(LatLngJSON)
    last_location = Column(LatLngJSON)
    reset_at = Column(Integer, default=0)
    current_streak_id = Column(String)

    def __repr__(self):
        return f"<User({self.id}: {self.username})>"

    def to_record(self) -> UserRecord:
        return UserRecord(
            id=self.id,
            username=self.username,
            flag=self.flag,
            previous_guess=self.previous_guess,
            last_location=self.last_location,
            reset_at=self.reset_at or 0,
            current_streak_id=self.current_streak_id,
        )


class Game(Base):
    """A played session, keyed by the game provider's token"""
    __tablename__ = 'games'

    id = Column(String, primary_key=True)
    map = Column(String, nullable=False)
    map_name = Column(String, nullable=False)
    map_bounds = Column(MapBoundsJSON, nullable=False)
    forbid_moving = Column(Boolean, nullable=False)
    forbid_panning = Column(Boolean, nullable=False)
    forbid_zooming = Column(Boolean, nullable=False)
    time_limit = Column(Integer)  # seconds
    created_at = Column(Integer, nullable=False)

    def __repr__(self):
        return f"<Game({self.id} on {self.map_name})>"

    def to_record(self) -> GameRecord:
        return GameRecord(
            id=self.id,
            map=self.map,
            map_name=self.map_name,
            bounds=self.map_bounds,
            forbid_moving=bool(self.forbid_moving),
            forbid_panning=bool(self.forbid_panning),
            forbid_zooming=bool(self.forbid_zooming),
            time_limit=self.time_limit,
            created_at=self.created_at,
        )


class Round(Base):
    """One target location within a game"""
    __tablename__ = 'rounds'

    id = Column(String, primary_key=True)
    game_id = Column(String, ForeignKey('games.id'), nullable=False)
    location = Column(RoundLocationJSON, nullable=False)
    country = Column(String)
    created_at = Column(Integer, nullable=False)

    def __repr__(self):
        return f"<Round({self.id} of {self.game_id})>"

    def to_record(self) -> RoundRecord:
        return RoundRecord(
            id=self.id,
            game_id=self.game_id,
            location=self.location,
            country=self.country,
            created_at=self.created_at,
        )


class Guess(Base):
    """
    One user's guess for a round.

    color and flag are copied from the user when the guess is made, so a
    later flag change does not rewrite history.
    """
    __tablename__ = 'guesses'

    id = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey('users.id'), nullable=False)
    round_id = Column(String, ForeignKey('rounds.id'), nullable=False)
    color = Column(String)
    flag = Column(String)
    location = Column(LatLngJSON, nullable=False)
    country = Column(String)
    streak = Column(Integer, default=0)
    distance = Column(Float, nullable=False)  # metres
    score = Column(Integer, nullable=False)
    created_at = Column(Integer, nullable=False)

    def __repr__(self):
        return f"<Guess({self.user_id} in {self.round_id}: {self.score})>"

    def to_record(self) -> GuessRecord:
        return GuessRecord(
            id=self.id,
            round_id=self.round_id,
            user_id=self.user_id,
            location=self.location,
            distance=self.distance,
            score=self.score,
            streak=self.streak or 0,
            created_at=self.created_at,
            color=self.color,
            flag=self.flag,
            country=self.country,
        )


class Streak(Base):
    """
    A run of correct countries.

    A user may have many streak rows; only the one referenced by
    users.current_streak_id is current.
    """
    __tablename__ = 'streaks'

    id = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey('users.id'), nullable=False)
    last_round_id = Column(String, ForeignKey('rounds.id'), nullable=False)
    count = Column(Integer, nullable=False, default=1)
    created_at = Column(Integer, nullable=False)
    updated_at = Column(Integer, nullable=False)

    def __repr__(self):
        return f"<Streak({self.user_id}: {self.count})>"


class GameWinner(Base):
    """Read-only mapping of the game_winners view"""
    __tablename__ = 'game_winners'

    game_id = Column(String, primary_key=True)
    user_id = Column(String, primary_key=True)
    score = Column(Integer)

    def __repr__(self):
        return f"<GameWinner({self.user_id} won {self.game_id} with {self.score})>"
