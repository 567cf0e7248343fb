"""
Persistence Module

SQLite database for tracking:
- Users, games, rounds and guesses
- Streaks
- Game winners and per-user / channel stats
- Counters left over in the legacy JSON store
"""

from .records import (
    LatLng,
    MapBounds,
    RoundLocation,
    GameSeed,
    GuessPayload,
    UserRecord,
    GameRecord,
    RoundRecord,
    GuessRecord,
    StreakInfo,
    RoundParticipant,
    RoundScore,
    GameScore,
    GameWinnerRecord,
    UserStats,
    StatLeader,
    GlobalStats,
)
from .database import GameDatabase
from .migrations import MIGRATIONS, MigrationError, run_migrations
from .repository import GameRepository
from .streaks import StreakTracker
from .stats import StatsAggregator
from .legacy import LegacyStore, JsonLegacyStore, LegacyStatsFacade

__all__ = [
    # Records
    'LatLng',
    'MapBounds',
    'RoundLocation',
    'GameSeed',
    'GuessPayload',
    'UserRecord',
    'GameRecord',
    'RoundRecord',
    'GuessRecord',
    'StreakInfo',
    'RoundParticipant',
    'RoundScore',
    'GameScore',
    'GameWinnerRecord',
    'UserStats',
    'StatLeader',
    'GlobalStats',
    # Database
    'GameDatabase',
    'MIGRATIONS',
    'MigrationError',
    'run_migrations',
    # Repositories
    'GameRepository',
    'StreakTracker',
    'StatsAggregator',
    # Legacy store
    'LegacyStore',
    'JsonLegacyStore',
    'LegacyStatsFacade',
]
