"""
Leaderboard Ranking

Orders round guesses and game totals for display.

Round leaderboards sort by score, best first. Ties are broken differently
depending on the tied score:
- perfect scores: earliest submission first. At a few metres the measured
  distance is not precise enough to separate two perfect guesses.
- any other score: closest guess first.

Perfect and non-perfect guesses never have the same score, so they are
only ever compared by score.
"""

from typing import List, Sequence, TYPE_CHECKING

from config import config

if TYPE_CHECKING:
    from persistence.records import RoundScore, GameScore

PERFECT_SCORE = config.PERFECT_SCORE


def round_sort_key(entry: 'RoundScore', perfect_score: int = PERFECT_SCORE):
    """Sort key for one row of a round leaderboard"""
    if entry.score >= perfect_score:
        tie_break = entry.created_at
    else:
        tie_break = entry.distance
    return (-entry.score, tie_break, entry.created_at)


def rank_round_scores(scores: Sequence['RoundScore'],
                      perfect_score: int = PERFECT_SCORE) -> List['RoundScore']:
    """
    Order the guesses of a round into a leaderboard.

    Args:
        scores: Guesses of one round, in any order
        perfect_score: Score at or above which ties are broken by time

    Returns:
        New list, best guess first
    """
    return sorted(scores, key=lambda entry: round_sort_key(entry, perfect_score))


def rank_game_scores(scores: Sequence['GameScore']) -> List['GameScore']:
    """Order per-user game totals, highest total score first"""
    return sorted(scores, key=lambda entry: -entry.score)


def is_perfect(score: int, perfect_score: int = PERFECT_SCORE) -> bool:
    return score >= perfect_score
