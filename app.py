#!/usr/bin/env python3
"""
Guessr Scoreboard - command line access to the scores database

Usage:
    python app.py migrate
    python app.py stats USER_ID [--login LOGIN]
    python app.py best
    python app.py round ROUND_ID
    python app.py game GAME_ID
"""

import argparse
import logging
import os
import sys

from config import config
from persistence import (
    GameDatabase, GameRepository, StatsAggregator,
    JsonLegacyStore, LegacyStatsFacade, MigrationError,
)
from chat.command_handler import format_user_stats, format_global_stats

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger(__name__)


def setup_logging(level: str = config.LOG_LEVEL) -> None:
    """Log to the console and to a file in the log directory"""
    config.ensure_dirs()
    log_file_path = os.path.join(config.LOG_DIR, 'scoreboard.log')
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(log_file_path),
            logging.StreamHandler()
        ]
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Inspect the guessr scores database')
    parser.add_argument('--database', default=None,
                        help=f'Database file (default: {config.DATABASE_PATH})')
    parser.add_argument('--legacy-store', default=None,
                        help=f'Legacy JSON store (default: {config.LEGACY_STORE_PATH})')
    parser.add_argument('--log-level', default=config.LOG_LEVEL)

    commands = parser.add_subparsers(dest='command', required=True)

    commands.add_parser('migrate', help='Open the database and apply pending migrations')

    stats_cmd = commands.add_parser('stats', help='Show stats for a user')
    stats_cmd.add_argument('user_id')
    stats_cmd.add_argument('--login', default=None,
                           help='Lowercase login, to include legacy store counters')

    commands.add_parser('best', help='Show the channel bests')

    round_cmd = commands.add_parser('round', help='Show a round leaderboard')
    round_cmd.add_argument('round_id')

    game_cmd = commands.add_parser('game', help='Show a game leaderboard and its winners')
    game_cmd.add_argument('game_id')

    return parser


def run(args: argparse.Namespace, db: GameDatabase, out=sys.stdout) -> int:
    repository = GameRepository(db)
    stats = StatsAggregator(db)
    facade = LegacyStatsFacade(repository, stats,
                               JsonLegacyStore(args.legacy_store or config.LEGACY_STORE_PATH))

    if args.command == 'migrate':
        print(f"Schema version: {db.schema_version()}", file=out)

    elif args.command == 'stats':
        if args.login:
            user_stats = facade.get_user_stats(args.user_id, args.login)
        else:
            user_stats = stats.get_user_stats(args.user_id)
        if user_stats is None:
            print(f"No stats for {args.user_id}", file=out)
            return 1
        print(format_user_stats(user_stats), file=out)

    elif args.command == 'best':
        global_stats = facade.get_global_stats()
        if global_stats.is_empty():
            print("No stats available.", file=out)
        else:
            print(format_global_stats(global_stats), file=out)

    elif args.command == 'round':
        for rank, entry in enumerate(repository.get_round_scores(args.round_id), 1):
            print(f"{rank:>3}. {entry.username:<25} {entry.score:>5} {entry.distance:>12.0f}m", file=out)

    elif args.command == 'game':
        for rank, entry in enumerate(repository.get_game_scores(args.game_id), 1):
            print(f"{rank:>3}. {entry.username:<25} {entry.score:>6} "
                  f"({entry.rounds} rounds, streak {entry.streak})", file=out)
        rounds = repository.get_round_count(args.game_id)
        if rounds < config.COMPLETED_GAME_ROUNDS:
            print(f"In progress: {rounds}/{config.COMPLETED_GAME_ROUNDS} rounds", file=out)
        else:
            winners = repository.get_game_winners(args.game_id)
            print("Winners: " + ", ".join(w.user_id for w in winners), file=out)

    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    try:
        with GameDatabase(args.database or config.DATABASE_PATH) as db:
            return run(args, db)
    except MigrationError as e:
        logger.error(f"Cannot open database: {e}")
        return 2


if __name__ == '__main__':
    sys.exit(main())
