"""
Guess Recording

The game-side flow on top of the repository: turning a chat guess into a
stored, scored guess, and settling streaks once a round's country is known.

A user has one guess per round. A second guess in the same round replaces
the first; `modified` on the result tells the chat layer which case
happened.
"""

import logging
from dataclasses import dataclass
from typing import Optional, List, TYPE_CHECKING

from persistence.records import GuessPayload
from .scoring import haversine_distance, calculate_scale, calculate_score

if TYPE_CHECKING:
    from persistence.records import LatLng, GuessRecord
    from persistence.repository import GameRepository
    from persistence.streaks import StreakTracker

logger = logging.getLogger(__name__)


class GuessError(Exception):
    """A guess that cannot be recorded"""


class NoActiveRound(GuessError):
    pass


class PastedPreviousGuess(GuessError):
    """The user sent the same coordinates as their previous guess"""


@dataclass
class SubmittedGuess:
    """Result of a guess submission"""
    guess_id: str
    round_id: str
    user_id: str
    username: str
    color: Optional[str]
    flag: Optional[str]
    location: 'LatLng'
    distance: float  # metres
    score: int
    streak: int
    modified: bool  # True if an earlier guess in this round was replaced


class GuessRecorder:
    """Records guesses for the current round of a game and settles streaks"""

    def __init__(self, repository: 'GameRepository', streaks: 'StreakTracker'):
        self.repository = repository
        self.streaks = streaks

    def submit_guess(self, game_id: str, user_id: str, username: str,
                     location: 'LatLng', color: Optional[str] = None,
                     country: Optional[str] = None) -> SubmittedGuess:
        """
        Store a user's guess for the current round of a game.

        Raises:
            NoActiveRound: the game has no round (or is unknown)
            PastedPreviousGuess: same coordinates as the user's previous guess
        """
        game = self.repository.get_game(game_id)
        round_id = self.repository.get_current_round(game_id)
        if game is None or round_id is None:
            raise NoActiveRound(f"No active round for game {game_id}")
        target = self.repository.get_round(round_id)

        user = self.repository.get_or_create_user(user_id, username)
        if user.previous_guess is not None and user.previous_guess == location:
            raise PastedPreviousGuess(f"{username} pasted their previous guess")

        distance = haversine_distance(location, target.location.position) * 1000
        score = calculate_score(distance, calculate_scale(game.bounds))

        current_streak = self.streaks.get_user_streak(user_id)
        payload = GuessPayload(
            location=location,
            distance=distance,
            score=score,
            color=color,
            flag=user.flag,
            country=country,
            streak=current_streak.count if current_streak else 0,
        )

        existing = self.repository.get_user_guess(round_id, user_id)
        if existing is not None:
            self.repository.update_guess(existing.id, payload)
            guess_id = existing.id
        else:
            guess_id = self.repository.create_guess(round_id, user_id, payload)

        self.repository.set_user_previous_guess(user_id, location)

        logger.info(f"{username} {'changed their guess' if existing else 'guessed'}: "
                    f"{distance:.0f}m, {score} points")

        return SubmittedGuess(
            guess_id=guess_id,
            round_id=round_id,
            user_id=user_id,
            username=user.username,
            color=color,
            flag=user.flag,
            location=location,
            distance=distance,
            score=score,
            streak=payload.streak,
            modified=existing is not None,
        )

    def settle_round(self, round_id: str, country: Optional[str]) -> List['GuessRecord']:
        """
        Close a round once its country is known.

        Every guess in the correct country extends its user's streak, every
        other guess breaks it. Each guess is stamped with the resulting
        streak, so a positive streak marks a correct country.

        Returns:
            The round's guesses after settlement
        """
        self.repository.set_round_country(round_id, country)
        target = self.repository.get_round(round_id)

        for guess in self.repository.get_round_guesses(round_id):
            if country is not None and guess.country == country:
                streak = self.streaks.add_user_streak(guess.user_id, round_id)
            else:
                self.streaks.reset_user_streak(guess.user_id)
                streak = 0
            self.repository.set_guess_country(guess.id, guess.country, streak)
            if target is not None:
                self.repository.set_user_last_location(guess.user_id, target.location.position)

        logger.info(f"Settled round {round_id} (country={country})")
        return self.repository.get_round_guesses(round_id)
