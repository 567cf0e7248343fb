"""
Legacy Store Merge

Versions before the SQLite database kept per-user counters in a JSON
key-value store, under `users.<login>`. Until a user clears their stats,
those counters are added to the ones computed from the database.

The database is always authoritative for identity (username, flag); the
legacy side only contributes counters, and identity fields once, when a
user is first created from a legacy entry.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from .records import UserRecord, UserStats, StatLeader, GlobalStats
from .repository import GameRepository
from .stats import StatsAggregator

logger = logging.getLogger(__name__)


class LegacyStore:
    """
    In-memory key-value store addressed with dotted paths.

    get('users.libreanna') returns the nested value or None.
    """

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = data if data is not None else {}

    def get(self, path: str) -> Any:
        node: Any = self._data
        for key in path.split('.'):
            if not isinstance(node, dict) or key not in node:
                return None
            node = node[key]
        return node

    def delete(self, path: str) -> bool:
        """Delete the value at path. Returns True if something was removed."""
        *parents, member = path.split('.')
        node: Any = self._data
        for key in parents:
            if not isinstance(node, dict) or key not in node:
                return False
            node = node[key]
        if not isinstance(node, dict) or member not in node:
            return False
        del node[member]
        self._changed()
        return True

    def _changed(self) -> None:
        """Hook for stores that persist their data"""


class JsonLegacyStore(LegacyStore):
    """Legacy store backed by the JSON file the old versions wrote"""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        super().__init__(self._load())

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            logger.info(f"No legacy store found at {self.path}")
            return {}

        with open(self.path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        logger.debug(f"Loaded legacy store from {self.path}")
        return data if isinstance(data, dict) else {}

    def _changed(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w', encoding='utf-8') as f:
            json.dump(self._data, f, indent=2)
        logger.debug(f"Saved legacy store to {self.path}")


class LegacyStatsFacade:
    """Combines database stats with counters left in the legacy store"""

    def __init__(self, repository: GameRepository, stats: StatsAggregator, store: LegacyStore):
        self.repository = repository
        self.stats = stats
        self.store = store

    def _legacy_user(self, login: str) -> Optional[Dict[str, Any]]:
        entry = self.store.get(f'users.{login}')
        return entry if isinstance(entry, dict) else None

    def get_or_migrate_user(self, user_id: str, login: str,
                            display_name: str) -> Tuple[Optional[Dict[str, Any]], UserRecord]:
        """
        Get a database user, creating it from the legacy entry if needed.

        Args:
            user_id: Chat account id
            login: Lowercase login, the legacy store key
            display_name: Current display name

        Returns:
            Tuple of (legacy entry used for the migration or None, database user)
        """
        if self.repository.get_user(user_id) is not None:
            return None, self.repository.get_or_create_user(user_id, display_name)

        legacy_user = self._legacy_user(login)
        if legacy_user is None:
            return None, self.repository.get_or_create_user(user_id, display_name)

        return legacy_user, self.repository.migrate_user(user_id, display_name, legacy_user)

    def get_user_stats(self, user_id: str, login: str) -> Optional[UserStats]:
        """
        Database stats plus legacy counters.

        Counters are added; best streak is the larger of the two.

        Returns:
            None if the user is unknown to both stores
        """
        db_stats = self.stats.get_user_stats(user_id)
        legacy_user = self._legacy_user(login)

        if legacy_user is None:
            return db_stats

        if db_stats is None:
            return UserStats(
                username=legacy_user.get('username') or login,
                flag=legacy_user.get('flag'),
                streak=_count(legacy_user, 'streak'),
                best_streak=_count(legacy_user, 'bestStreak'),
                correct_guesses=_count(legacy_user, 'correctGuesses'),
                nb_guesses=_count(legacy_user, 'nbGuesses'),
                perfects=_count(legacy_user, 'perfects'),
                mean_score=legacy_user.get('meanScore'),
                victories=_count(legacy_user, 'victories'),
            )

        mean_score = db_stats.mean_score
        if mean_score is None:
            mean_score = legacy_user.get('meanScore')

        return UserStats(
            username=db_stats.username,
            flag=db_stats.flag,
            streak=db_stats.streak,
            best_streak=max(db_stats.best_streak, _count(legacy_user, 'bestStreak')),
            correct_guesses=db_stats.correct_guesses + _count(legacy_user, 'correctGuesses'),
            nb_guesses=db_stats.nb_guesses + _count(legacy_user, 'nbGuesses'),
            perfects=db_stats.perfects + _count(legacy_user, 'perfects'),
            mean_score=mean_score,
            victories=db_stats.victories + _count(legacy_user, 'victories'),
        )

    def get_global_stats(self) -> GlobalStats:
        """Channel bests; a legacy user takes a spot only with a strictly higher value"""
        global_stats = self.stats.get_global_stats()
        legacy_users = self.store.get('users')
        if not isinstance(legacy_users, dict):
            return global_stats

        streak = global_stats.streak
        victories = global_stats.victories
        perfects = global_stats.perfects

        for login, entry in legacy_users.items():
            if not isinstance(entry, dict):
                continue
            username = entry.get('username') or login
            streak = _best(streak, login, username, _count(entry, 'bestStreak'))
            victories = _best(victories, login, username, _count(entry, 'victories'))
            perfects = _best(perfects, login, username, _count(entry, 'perfects'))

        return GlobalStats(streak=streak, victories=victories, perfects=perfects)

    def clear_user(self, user_id: str, login: str) -> Optional[UserRecord]:
        """
        Clear a user's stats in both stores.

        Returns:
            The database user, or None if they never guessed
        """
        if self.store.delete(f'users.{login}'):
            logger.info(f"Removed legacy stats for {login}")

        user = self.repository.get_user(user_id)
        if user is not None:
            self.repository.reset_user_stats(user_id)
        return user

    def clear_all(self) -> None:
        """Drop everything the legacy store still holds about users"""
        self.store.delete('users')
        self.store.delete('lastRoundPlayers')
        logger.info("Cleared legacy user stats")


def _count(entry: Dict[str, Any], key: str) -> int:
    value = entry.get(key)
    return int(value) if value else 0


def _best(current: Optional[StatLeader], login: str, username: str, value: int) -> Optional[StatLeader]:
    if value > 0 and (current is None or value > current.value):
        return StatLeader(id=login, username=username, value=value)
    return current
