import os
from dataclasses import dataclass


@dataclass
class Config:
    """Configuration for the guessr scoreboard"""

    # Paths
    BASE_DIR: str = os.path.dirname(os.path.abspath(__file__))
    DATA_DIR: str = os.environ.get('GUESSR_DATA_DIR', os.path.join(BASE_DIR, 'data'))
    LOG_DIR: str = os.environ.get('GUESSR_LOG_DIR', os.path.join(BASE_DIR, 'logs'))

    # Storage files (relative to DATA_DIR)
    DATABASE_FILE: str = os.environ.get('GUESSR_DATABASE_FILE', 'scores.db')
    # JSON store used by versions before the SQLite database existed
    LEGACY_STORE_FILE: str = os.environ.get('GUESSR_LEGACY_STORE_FILE', 'config.json')

    LOG_LEVEL: str = os.environ.get('GUESSR_LOG_LEVEL', 'INFO')

    # Game rules
    PERFECT_SCORE: int = 5000         # Maximum score for a single guess
    COMPLETED_GAME_ROUNDS: int = 5    # A game has a winner once it has this many rounds

    # Chat commands
    USER_STATS_CMD: str = os.environ.get('GUESSR_USER_STATS_CMD', '!me')
    BEST_STATS_CMD: str = os.environ.get('GUESSR_BEST_STATS_CMD', '!best')
    USER_CLEAR_STATS_CMD: str = os.environ.get('GUESSR_USER_CLEAR_STATS_CMD', '!clear')

    @property
    def DATABASE_PATH(self) -> str:
        return os.path.join(self.DATA_DIR, self.DATABASE_FILE)

    @property
    def LEGACY_STORE_PATH(self) -> str:
        return os.path.join(self.DATA_DIR, self.LEGACY_STORE_FILE)

    def ensure_dirs(self):
        """Ensure directories exist"""
        os.makedirs(self.DATA_DIR, exist_ok=True)
        os.makedirs(self.LOG_DIR, exist_ok=True)


# Create global config instance
config = Config()
