"""
Stats Aggregator Test Suite

Tests for per-user stats, channel bests, victories and the reset
watermark.

Run with: python -m pytest tests/test_stats.py -v
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from persistence import (
    GameDatabase, GameRepository, StreakTracker, StatsAggregator,
    LatLng, MapBounds, RoundLocation, GameSeed, GuessPayload,
)


class FakeClock:
    """Clock that only moves when told to"""

    def __init__(self, start: float = 1_600_000_000.0):
        self.time = start

    def __call__(self) -> float:
        return self.time

    def advance(self, seconds: float = 1.0):
        self.time += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db(clock):
    database = GameDatabase(':memory:', clock=clock).open()
    yield database
    database.close()


@pytest.fixture
def repo(db):
    return GameRepository(db)


@pytest.fixture
def streaks(db):
    return StreakTracker(db)


@pytest.fixture
def stats(db):
    return StatsAggregator(db)


TARGET = RoundLocation(lat=45.0, lng=5.0)


def seed(token: str) -> GameSeed:
    return GameSeed(
        token=token,
        map='world',
        map_name='World',
        bounds=MapBounds(min=LatLng(-90, -180), max=LatLng(90, 180)),
    )


def play_round(repo, clock, game_id, guesses):
    """
    Create a round and record guesses for it.

    Args:
        guesses: {user_id: score} or {user_id: (score, streak)}
    """
    clock.advance()
    round_id = repo.create_round(game_id, TARGET)
    for user_id, value in guesses.items():
        score, streak = value if isinstance(value, tuple) else (value, 0)
        clock.advance()
        repo.get_or_create_user(user_id, user_id.capitalize())
        repo.create_guess(round_id, user_id, GuessPayload(
            location=LatLng(45.0, 5.0),
            distance=float(5000 - score),
            score=score,
            streak=streak,
        ))
    clock.advance()
    return round_id


def play_game(repo, clock, game_id, rounds):
    repo.create_game(seed(game_id))
    for guesses in rounds:
        play_round(repo, clock, game_id, guesses)


# =============================================================================
# USER STATS
# =============================================================================

class TestUserStats:
    """Tests for StatsAggregator.get_user_stats"""

    def test_unknown_user(self, stats):
        assert stats.get_user_stats('nope') is None

    def test_user_without_guesses(self, repo, stats):
        repo.get_or_create_user('alice', 'Alice')

        user_stats = stats.get_user_stats('alice')

        assert user_stats.username == 'Alice'
        assert user_stats.nb_guesses == 0
        assert user_stats.mean_score is None
        assert user_stats.correct_rate is None
        assert user_stats.streak == 0
        assert user_stats.best_streak == 0
        assert user_stats.victories == 0

    def test_counters(self, repo, stats, clock):
        play_game(repo, clock, 'g1', [
            {'alice': (5000, 1)},
            {'alice': (3000, 2)},
            {'alice': (1000, 0)},
            {'alice': (5000, 1)},
        ])

        user_stats = stats.get_user_stats('alice')

        assert user_stats.nb_guesses == 4
        assert user_stats.correct_guesses == 3
        assert user_stats.perfects == 2
        assert user_stats.mean_score == pytest.approx(3500)
        assert user_stats.correct_rate == pytest.approx(75.0)

    def test_current_and_best_streak(self, repo, streaks, stats, clock):
        repo.get_or_create_user('alice', 'Alice')
        round_id = repo.create_round('g1', TARGET)
        for _ in range(3):
            clock.advance()
            streaks.add_user_streak('alice', round_id)
        streaks.reset_user_streak('alice')
        clock.advance()
        streaks.add_user_streak('alice', round_id)

        user_stats = stats.get_user_stats('alice')

        assert user_stats.streak == 1
        assert user_stats.best_streak == 3


# =============================================================================
# VICTORIES
# =============================================================================

class TestVictories:
    """Tests for game winners and victory counts"""

    def test_incomplete_game_has_no_winner(self, repo, stats, clock):
        play_game(repo, clock, 'g1', [{'alice': 5000, 'bob': 100}] * 4)

        assert repo.get_game_winners('g1') == []
        assert stats.get_user_stats('alice').victories == 0

    def test_five_perfects_sole_winner(self, repo, stats, clock):
        play_game(repo, clock, 'g1', [{'alice': 5000}] * 5)

        winners = repo.get_game_winners('g1')

        assert [(w.user_id, w.score) for w in winners] == [('alice', 25000)]
        assert stats.get_user_stats('alice').victories == 1

    def test_tie_gives_several_winners(self, repo, stats, clock):
        play_game(repo, clock, 'g1', [
            {'alice': 5000, 'bob': 4000, 'carol': 4500},
            {'alice': 3000, 'bob': 4000, 'carol': 1000},
            {'alice': 2000, 'bob': 2000, 'carol': 1000},
            {'alice': 2000, 'bob': 2000, 'carol': 1000},
            {'alice': 2000, 'bob': 2000, 'carol': 1000},
        ])

        winners = repo.get_game_winners('g1')

        assert [w.user_id for w in winners] == ['alice', 'bob']
        assert all(w.score == 14000 for w in winners)
        assert stats.get_user_stats('alice').victories == 1
        assert stats.get_user_stats('bob').victories == 1
        assert stats.get_user_stats('carol').victories == 0

    def test_victories_across_games(self, repo, stats, clock):
        play_game(repo, clock, 'g1', [{'alice': 5000, 'bob': 10}] * 5)
        play_game(repo, clock, 'g2', [{'alice': 4000, 'bob': 10}] * 5)
        play_game(repo, clock, 'g3', [{'alice': 10, 'bob': 4000}] * 5)

        assert stats.get_user_stats('alice').victories == 2
        assert stats.get_user_stats('bob').victories == 1


# =============================================================================
# RESET WATERMARK
# =============================================================================

class TestResetWatermark:
    """Tests for stats after a user reset"""

    def test_reset_hides_earlier_guesses(self, repo, stats, clock):
        play_game(repo, clock, 'g1', [{'alice': (5000, 1)}, {'alice': (4000, 2)}])
        repo.reset_user_stats('alice')

        user_stats = stats.get_user_stats('alice')
        assert user_stats.nb_guesses == 0
        assert user_stats.perfects == 0
        assert user_stats.correct_guesses == 0
        assert user_stats.mean_score is None

        # the rows themselves are kept
        assert repo.get_game_scores('g1')[0].rounds == 2

    def test_guesses_after_reset_count(self, repo, stats, clock):
        play_game(repo, clock, 'g1', [{'alice': 5000}, {'alice': 4000}])
        repo.reset_user_stats('alice')
        play_round(repo, clock, 'g1', {'alice': (2000, 1)})

        user_stats = stats.get_user_stats('alice')
        assert user_stats.nb_guesses == 1
        assert user_stats.correct_guesses == 1
        assert user_stats.perfects == 0
        assert user_stats.mean_score == pytest.approx(2000)

    def test_reset_clears_streaks(self, repo, streaks, stats, clock):
        repo.get_or_create_user('alice', 'Alice')
        round_id = repo.create_round('g1', TARGET)
        for _ in range(4):
            clock.advance()
            streaks.add_user_streak('alice', round_id)

        clock.advance()
        repo.reset_user_stats('alice')

        user_stats = stats.get_user_stats('alice')
        assert user_stats.streak == 0
        assert user_stats.best_streak == 0

    def test_victories_survive_reset(self, repo, stats, clock):
        play_game(repo, clock, 'g1', [{'alice': 5000}] * 5)
        repo.reset_user_stats('alice')

        assert stats.get_user_stats('alice').victories == 1


# =============================================================================
# GLOBAL STATS
# =============================================================================

class TestGlobalStats:
    """Tests for the channel bests"""

    def test_empty(self, stats):
        global_stats = stats.get_global_stats()
        assert global_stats.is_empty()

    def test_leaders(self, repo, streaks, stats, clock):
        play_game(repo, clock, 'g1', [{'alice': 5000, 'bob': 4000}] * 5)
        play_game(repo, clock, 'g2', [{'alice': 1000, 'bob': 5000}] * 2)

        round_id = repo.create_round('g2', TARGET)
        for _ in range(2):
            clock.advance()
            streaks.add_user_streak('alice', round_id)
        for _ in range(6):
            clock.advance()
            streaks.add_user_streak('bob', round_id)

        global_stats = stats.get_global_stats()

        assert (global_stats.streak.id, global_stats.streak.value) == ('bob', 6)
        assert global_stats.streak.username == 'Bob'
        assert (global_stats.victories.id, global_stats.victories.value) == ('alice', 1)
        assert (global_stats.perfects.id, global_stats.perfects.value) == ('alice', 5)

    def test_reset_user_excluded(self, repo, streaks, stats, clock):
        play_game(repo, clock, 'g1', [{'alice': 5000, 'bob': 5000}] * 3)
        play_round(repo, clock, 'g1', {'bob': 1000})
        round_id = repo.create_round('g1', TARGET)
        for _ in range(5):
            clock.advance()
            streaks.add_user_streak('alice', round_id)
        clock.advance()
        streaks.add_user_streak('bob', round_id)

        clock.advance()
        repo.reset_user_stats('alice')

        global_stats = stats.get_global_stats()

        assert global_stats.perfects.id == 'bob'
        assert global_stats.perfects.value == 3
        assert global_stats.streak.id == 'bob'
        assert global_stats.streak.value == 1
