"""
Legacy Store Merge Tests

Tests for reading the old JSON store and merging its counters into the
stats computed from the database.

Run with: python -m pytest tests/test_legacy.py -v
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import json

import pytest

from persistence import (
    GameDatabase, GameRepository, StreakTracker, StatsAggregator,
    LegacyStore, JsonLegacyStore, LegacyStatsFacade,
    LatLng, RoundLocation, GuessPayload,
)


class FakeClock:
    """Clock that only moves when told to"""

    def __init__(self, start: float = 1_600_000_000.0):
        self.time = start

    def __call__(self) -> float:
        return self.time

    def advance(self, seconds: float = 1.0):
        self.time += seconds


def legacy_data():
    return {
        'users': {
            'libreanna': {
                'username': 'LibreAnna',
                'flag': 'fr',
                'streak': 3,
                'bestStreak': 12,
                'correctGuesses': 47,
                'nbGuesses': 69,
                'perfects': 4,
                'victories': 2,
                'meanScore': 3321,
                'previousGuess': {'lat': 48.85, 'lng': 2.35},
            },
            'oldtimer': {
                'username': 'OldTimer',
                'bestStreak': 2,
                'correctGuesses': 5,
                'nbGuesses': 10,
                'perfects': 9,
                'victories': 0,
            },
        },
        'lastRoundPlayers': ['libreanna'],
    }


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
def store():
    return LegacyStore(legacy_data())


@pytest.fixture
def facade(db, repo, store):
    return LegacyStatsFacade(repo, StatsAggregator(db), store)


def record_guess(repo, clock, user_id, score, streak):
    clock.advance()
    round_id = repo.create_round('game-1', RoundLocation(lat=0, lng=0))
    clock.advance()
    repo.create_guess(round_id, user_id, GuessPayload(
        location=LatLng(1, 1), distance=100.0, score=score, streak=streak,
    ))
    clock.advance()
    return round_id


# =============================================================================
# STORE
# =============================================================================

class TestLegacyStore:
    """Tests for dotted-path access"""

    def test_get_nested(self, store):
        assert store.get('users.libreanna.nbGuesses') == 69
        assert store.get('lastRoundPlayers') == ['libreanna']

    def test_get_missing(self, store):
        assert store.get('users.nobody') is None
        assert store.get('users.libreanna.nbGuesses.deeper') is None
        assert store.get('unknown') is None

    def test_delete(self, store):
        assert store.delete('users.libreanna') is True
        assert store.get('users.libreanna') is None
        assert store.get('users.oldtimer') is not None
        assert store.delete('users.libreanna') is False

    def test_empty_store(self):
        assert LegacyStore().get('users') is None


class TestJsonLegacyStore:
    """Tests for the JSON file backed store"""

    def test_missing_file_is_empty(self, tmp_path):
        store = JsonLegacyStore(tmp_path / 'config.json')
        assert store.get('users') is None

    def test_load(self, tmp_path):
        path = tmp_path / 'config.json'
        path.write_text(json.dumps(legacy_data()), encoding='utf-8')

        store = JsonLegacyStore(path)

        assert store.get('users.libreanna.username') == 'LibreAnna'

    def test_delete_is_saved(self, tmp_path):
        path = tmp_path / 'config.json'
        path.write_text(json.dumps(legacy_data()), encoding='utf-8')

        JsonLegacyStore(path).delete('users.libreanna')

        reloaded = JsonLegacyStore(path)
        assert reloaded.get('users.libreanna') is None
        assert reloaded.get('users.oldtimer.nbGuesses') == 10


# =============================================================================
# USER MIGRATION
# =============================================================================

class TestGetOrMigrateUser:
    """Tests for creating database users from legacy entries"""

    def test_migrates_identity(self, facade):
        legacy_user, user = facade.get_or_migrate_user('42', 'libreanna', 'LibreAnna')

        assert legacy_user['nbGuesses'] == 69
        assert user.id == '42'
        assert user.username == 'LibreAnna'
        assert user.flag == 'fr'
        assert user.previous_guess == LatLng(48.85, 2.35)

    def test_existing_user_wins(self, facade, repo):
        """A database user is never rewritten from the legacy entry"""
        repo.get_or_create_user('42', 'Anna')
        repo.set_user_flag('42', 'be')

        legacy_user, user = facade.get_or_migrate_user('42', 'libreanna', 'LibreAnna2')

        assert legacy_user is None
        assert user.username == 'LibreAnna2'
        assert user.flag == 'be'

    def test_migrates_once(self, facade):
        facade.get_or_migrate_user('42', 'libreanna', 'LibreAnna')
        legacy_user, user = facade.get_or_migrate_user('42', 'libreanna', 'LibreAnna')

        assert legacy_user is None
        assert user.flag == 'fr'

    def test_no_legacy_entry(self, facade):
        legacy_user, user = facade.get_or_migrate_user('7', 'newcomer', 'Newcomer')

        assert legacy_user is None
        assert user.username == 'Newcomer'
        assert user.flag is None


# =============================================================================
# STATS MERGE
# =============================================================================

class TestUserStatsMerge:
    """Tests for LegacyStatsFacade.get_user_stats"""

    def test_counters_are_added(self, facade, repo, clock):
        facade.get_or_migrate_user('42', 'libreanna', 'LibreAnna')
        record_guess(repo, clock, '42', 4000, 1)

        user_stats = facade.get_user_stats('42', 'libreanna')

        assert user_stats.correct_guesses == 48
        assert user_stats.nb_guesses == 70
        assert user_stats.perfects == 4
        assert user_stats.victories == 2

    def test_best_streak_is_max(self, facade, repo, db, clock):
        facade.get_or_migrate_user('42', 'libreanna', 'LibreAnna')
        streaks = StreakTracker(db)
        round_id = record_guess(repo, clock, '42', 4000, 1)
        for _ in range(3):
            clock.advance()
            streaks.add_user_streak('42', round_id)

        user_stats = facade.get_user_stats('42', 'libreanna')

        assert user_stats.best_streak == 12
        assert user_stats.streak == 3

    def test_database_identity_wins(self, facade, repo):
        repo.get_or_create_user('42', 'Anna')

        user_stats = facade.get_user_stats('42', 'libreanna')

        assert user_stats.username == 'Anna'
        assert user_stats.flag is None

    def test_legacy_only(self, facade):
        user_stats = facade.get_user_stats('42', 'libreanna')

        assert user_stats.username == 'LibreAnna'
        assert user_stats.nb_guesses == 69
        assert user_stats.best_streak == 12
        assert user_stats.mean_score == 3321

    def test_database_only(self, facade, repo, clock):
        repo.get_or_create_user('7', 'Newcomer')
        record_guess(repo, clock, '7', 5000, 1)

        user_stats = facade.get_user_stats('7', 'newcomer')

        assert user_stats.nb_guesses == 1
        assert user_stats.perfects == 1

    def test_unknown_everywhere(self, facade):
        assert facade.get_user_stats('7', 'newcomer') is None


class TestGlobalStatsMerge:
    """Tests for LegacyStatsFacade.get_global_stats"""

    def test_legacy_leaders_when_database_empty(self, facade):
        global_stats = facade.get_global_stats()

        assert (global_stats.streak.id, global_stats.streak.value) == ('libreanna', 12)
        assert global_stats.streak.username == 'LibreAnna'
        assert (global_stats.victories.id, global_stats.victories.value) == ('libreanna', 2)
        assert (global_stats.perfects.id, global_stats.perfects.value) == ('oldtimer', 9)

    def test_higher_database_value_kept(self, facade, repo, db, clock):
        repo.get_or_create_user('7', 'Newcomer')
        streaks = StreakTracker(db)
        round_id = record_guess(repo, clock, '7', 4000, 1)
        for _ in range(15):
            clock.advance()
            streaks.add_user_streak('7', round_id)

        global_stats = facade.get_global_stats()

        assert (global_stats.streak.id, global_stats.streak.value) == ('7', 15)

    def test_equal_legacy_value_does_not_replace(self, facade, repo, db, clock):
        repo.get_or_create_user('7', 'Newcomer')
        streaks = StreakTracker(db)
        round_id = record_guess(repo, clock, '7', 4000, 1)
        for _ in range(12):
            clock.advance()
            streaks.add_user_streak('7', round_id)

        assert facade.get_global_stats().streak.id == '7'

    def test_no_legacy_users(self, db, repo):
        facade = LegacyStatsFacade(repo, StatsAggregator(db), LegacyStore())
        assert facade.get_global_stats().is_empty()


# =============================================================================
# CLEARING
# =============================================================================

class TestClear:
    """Tests for clearing stats"""

    def test_clear_user(self, facade, repo, store, clock):
        facade.get_or_migrate_user('42', 'libreanna', 'LibreAnna')
        record_guess(repo, clock, '42', 4000, 1)

        cleared = facade.clear_user('42', 'libreanna')

        assert cleared.id == '42'
        assert store.get('users.libreanna') is None
        user_stats = facade.get_user_stats('42', 'libreanna')
        assert user_stats.nb_guesses == 0
        assert user_stats.correct_guesses == 0
        assert user_stats.best_streak == 0

    def test_clear_legacy_only_user(self, facade, store):
        """Legacy counters go even if the user never reached the database"""
        assert facade.clear_user('42', 'libreanna') is None
        assert store.get('users.libreanna') is None
        assert facade.get_user_stats('42', 'libreanna') is None

    def test_clear_all(self, facade, store):
        facade.clear_all()
        assert store.get('users') is None
        assert store.get('lastRoundPlayers') is None
