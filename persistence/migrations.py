"""
Schema Migrations

The schema version lives in SQLite's user_version pragma. Each migration
runs in its own transaction together with the version bump, so a failed
migration leaves the database at the last version that fully applied.

NEVER modify a released migration, ONLY append new ones.
"""

import logging
from typing import Callable, List, Sequence

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine

logger = logging.getLogger(__name__)

Migration = Callable[[Connection], None]


class MigrationError(RuntimeError):
    """A migration failed; the database was left at `version`"""

    def __init__(self, version: int, name: str):
        super().__init__(f"Migration {version + 1} ({name}) failed, database left at version {version}")
        self.version = version
        self.name = name


def initial_setup(conn: Connection) -> None:
    conn.execute(text("""
        CREATE TABLE users (
            -- Chat account id
            id TEXT PRIMARY KEY NOT NULL,
            -- Display name, last seen value wins
            username TEXT NOT NULL,
            flag TEXT DEFAULT NULL,
            -- JSON {lat, lng}
            previous_guess TEXT DEFAULT NULL,
            -- JSON {lat, lng}
            last_location TEXT DEFAULT NULL,
            -- Epoch ms; guesses before this are ignored by stats
            reset_at INT DEFAULT 0
        )
    """))
    conn.execute(text("""
        CREATE TABLE games (
            -- Game provider token
            id TEXT PRIMARY KEY NOT NULL,
            map TEXT NOT NULL,
            map_name TEXT NOT NULL,
            -- JSON bounds {min, max}, each {lat, lng}
            map_bounds TEXT NOT NULL,
            forbid_moving INT NOT NULL,
            forbid_panning INT NOT NULL,
            forbid_zooming INT NOT NULL,
            -- Seconds
            time_limit INT DEFAULT NULL,
            created_at INT NOT NULL
        )
    """))
    conn.execute(text("""
        CREATE TABLE rounds (
            -- UUID
            id TEXT PRIMARY KEY NOT NULL,
            game_id TEXT NOT NULL,
            -- JSON {lat, lng, panoId, heading, pitch}
            location TEXT NOT NULL,
            country TEXT DEFAULT NULL,
            created_at INT NOT NULL,

            FOREIGN KEY(game_id) REFERENCES games(id)
        )
    """))
    conn.execute(text("""
        CREATE TABLE guesses (
            -- UUID
            id TEXT PRIMARY KEY NOT NULL,
            user_id TEXT NOT NULL,
            round_id TEXT NOT NULL,
            -- User color and flag when the guess was made
            color TEXT DEFAULT NULL,
            flag TEXT DEFAULT NULL,
            -- JSON {lat, lng}
            location TEXT NOT NULL,
            country TEXT DEFAULT NULL,
            streak INT DEFAULT 0,
            -- Metres
            distance REAL NOT NULL,
            score INT NOT NULL,
            created_at INT NOT NULL,

            FOREIGN KEY(user_id) REFERENCES users(id),
            FOREIGN KEY(round_id) REFERENCES rounds(id)
        )
    """))


def create_search_indices(conn: Connection) -> None:
    conn.execute(text("CREATE INDEX guess_user_id ON guesses(user_id)"))
    conn.execute(text("CREATE INDEX guess_round_id ON guesses(round_id)"))
    conn.execute(text("CREATE INDEX round_game_id ON rounds(game_id)"))


def create_streaks(conn: Connection) -> None:
    conn.execute(text("""
        CREATE TABLE streaks (
            id TEXT PRIMARY KEY NOT NULL,
            user_id TEXT NOT NULL,
            last_round_id TEXT NOT NULL,
            count INT NOT NULL DEFAULT 1,
            created_at INT NOT NULL,
            updated_at INT NOT NULL,

            FOREIGN KEY(user_id) REFERENCES users(id),
            FOREIGN KEY(last_round_id) REFERENCES rounds(id)
        )
    """))
    conn.execute(text("ALTER TABLE users ADD COLUMN current_streak_id TEXT DEFAULT NULL"))


def create_game_winners(conn: Connection) -> None:
    conn.execute(text("""
        CREATE VIEW game_winners (game_id, user_id, score) AS
        -- Only games with at least 5 rounds are complete, others have no winner yet
        WITH completed_games AS (
            SELECT game_id
            FROM rounds
            GROUP BY game_id
            HAVING COUNT(id) >= 5
        ),
        game_scores AS (
            SELECT rounds.game_id, guesses.user_id, SUM(guesses.score) AS score
            FROM completed_games
            JOIN rounds ON rounds.game_id = completed_games.game_id
            JOIN guesses ON guesses.round_id = rounds.id
            GROUP BY rounds.game_id, guesses.user_id
        )
        -- Everyone tied at the top score wins
        SELECT game_scores.game_id, game_scores.user_id, game_scores.score
        FROM game_scores
        JOIN (
            SELECT game_id, MAX(score) AS score
            FROM game_scores
            GROUP BY game_id
        ) top_scores
          ON top_scores.game_id = game_scores.game_id
         AND top_scores.score = game_scores.score
    """))


def create_streak_user_index(conn: Connection) -> None:
    conn.execute(text("CREATE INDEX streak_user_id ON streaks(user_id)"))


MIGRATIONS: List[Migration] = [
    initial_setup,
    create_search_indices,
    create_streaks,
    create_game_winners,
    create_streak_user_index,
]


def get_schema_version(engine: Engine) -> int:
    """Read the schema version stored in the database"""
    with engine.connect() as conn:
        return conn.exec_driver_sql("PRAGMA user_version").scalar() or 0


def run_migrations(engine: Engine, migrations: Sequence[Migration] = MIGRATIONS) -> int:
    """
    Apply every pending migration, in order.

    Args:
        engine: Engine for the database file
        migrations: Ordered migration list; index i upgrades version i to i+1

    Returns:
        The schema version after migrating

    Raises:
        MigrationError: if a migration fails. Its transaction, version bump
            included, is rolled back.
    """
    version = get_schema_version(engine)

    if version > len(migrations):
        logger.warning(f"Database schema version {version} is newer than this application ({len(migrations)})")
        return version

    while version < len(migrations):
        migration = migrations[version]
        name = getattr(migration, '__name__', repr(migration))
        try:
            with engine.begin() as conn:
                migration(conn)
                conn.exec_driver_sql(f"PRAGMA user_version = {version + 1:d}")
        except Exception as e:
            logger.error(f"Migration {version + 1} ({name}) failed, rolled back: {e}")
            raise MigrationError(version, name) from e

        version += 1
        logger.info(f"Applied migration {version}: {name}")

    return version
