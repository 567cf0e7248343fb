"""
Chat Command Handler

Processes incoming chat messages and answers the stats commands:
- personal stats (default `!me`)
- channel bests (default `!best`)
- clearing your own stats (default `!clear`)
"""

import logging
from dataclasses import dataclass
from typing import Callable, TYPE_CHECKING

from config import config

if TYPE_CHECKING:
    from persistence.legacy import LegacyStatsFacade
    from persistence.records import UserStats, GlobalStats

logger = logging.getLogger(__name__)

BROADCASTER_ID = 'BROADCASTER'


@dataclass
class ChatUser:
    """The author of a chat message"""
    user_id: str
    login: str  # lowercase account name, the legacy store key
    display_name: str
    is_broadcaster: bool = False

    @property
    def stats_id(self) -> str:
        """The broadcaster plays under a fixed id, whatever account they stream from"""
        return BROADCASTER_ID if self.is_broadcaster else self.user_id


def format_user_stats(stats: 'UserStats') -> str:
    correct = f"{stats.correct_guesses}/{stats.nb_guesses}"
    if stats.correct_rate is not None:
        correct += f" ({stats.correct_rate:.2f}%)."
    else:
        correct += "."
    mean_score = round(stats.mean_score) if stats.mean_score is not None else 0
    return (
        f"{stats.username} : Current streak: {stats.streak}. "
        f"Best streak: {stats.best_streak}. "
        f"Correct countries: {correct} "
        f"Avg. score: {mean_score}. "
        f"Victories: {stats.victories}. "
        f"Perfects: {stats.perfects}."
    )


def format_global_stats(stats: 'GlobalStats') -> str:
    parts = []
    if stats.streak:
        parts.append(f"Streak: {stats.streak.value} ({stats.streak.username}).")
    if stats.victories:
        parts.append(f"Victories: {stats.victories.value} ({stats.victories.username}).")
    if stats.perfects:
        parts.append(f"Perfects: {stats.perfects.value} ({stats.perfects.username}).")
    return "Channels best: " + " ".join(parts)


class CommandHandler:
    """
    Handles stats commands from chat.

    Commands are matched case-insensitively against the whole message.
    """

    def __init__(self, stats: 'LegacyStatsFacade', say: Callable[[str], None],
                 user_stats_cmd: str = config.USER_STATS_CMD,
                 best_stats_cmd: str = config.BEST_STATS_CMD,
                 clear_stats_cmd: str = config.USER_CLEAR_STATS_CMD):
        """
        Initialize command handler.

        Args:
            stats: Stats source (database merged with the legacy store)
            say: Sends a message to the chat
            user_stats_cmd: Command showing a user's stats
            best_stats_cmd: Command showing the channel bests
            clear_stats_cmd: Command clearing a user's stats
        """
        self.stats = stats
        self.say = say
        self.user_stats_cmd = user_stats_cmd.lower()
        self.best_stats_cmd = best_stats_cmd.lower()
        self.clear_stats_cmd = clear_stats_cmd.lower()

    def handle_message(self, user: ChatUser, message: str) -> bool:
        """
        Handle a single chat message.

        Returns:
            True if the message was a stats command
        """
        if not message.startswith('!'):
            return False

        command = message.strip().lower()

        if command == self.user_stats_cmd:
            self._cmd_user_stats(user)
        elif command == self.best_stats_cmd:
            self._cmd_best()
        elif command == self.clear_stats_cmd:
            self._cmd_clear(user)
        else:
            return False

        logger.info(f"Handled {command} from {user.login}")
        return True

    # =========================================================================
    # Command Implementations
    # =========================================================================

    def _cmd_user_stats(self, user: ChatUser) -> None:
        stats = self.stats.get_user_stats(user.stats_id, user.login)
        if stats is None:
            self.say(f"{user.display_name} you've never guessed yet.")
            return
        self.say(format_user_stats(stats))

    def _cmd_best(self) -> None:
        stats = self.stats.get_global_stats()
        if stats.is_empty():
            self.say("No stats available.")
            return
        self.say(format_global_stats(stats))

    def _cmd_clear(self, user: ChatUser) -> None:
        cleared = self.stats.clear_user(user.stats_id, user.login)
        if cleared is None:
            self.say(f"{user.display_name} you've never guessed yet.")
            return
        self.say(f"{user.display_name} 🗑️ stats cleared !")
