"""
Standings ranking for League Scoring

Pure functions: no database access. Callers aggregate one points total per
user and pass it in; see LedgerRepository.list_user_point_totals().
"""

import logging
from dataclasses import asdict, dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserPointTotal:
    user_id: int
    username: str
    points: int
    rounds_participated: int = 0


@dataclass(frozen=True)
class StandingsEntry:
    user_id: int
    username: str
    total_points: int
    rank: int
    is_tied: bool
    rounds_participated: int = 0

    def to_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class StandingsSummary:
    total_participants: int = 0
    max_points: int = 0
    average_points: float = 0.0

    def to_dict(self):
        return asdict(self)


def _as_total(item):
    if isinstance(item, UserPointTotal):
        return item
    user_id, username, points = item[:3]
    return UserPointTotal(user_id=user_id, username=username, points=points)


def _sort_key(total):
    # Points descending, then username ascending; user id keeps equal names stable
    return (-total.points, total.username or "", total.user_id)


def rank_standings(totals):
    """
    Rank users by points using standard competition ranking ("1224").

    Args:
        totals: iterable of UserPointTotal or (user_id, username, points) tuples

    Returns:
        list[StandingsEntry] in ranked order
    """
    ordered = sorted((_as_total(t) for t in totals), key=_sort_key)

    entries = []
    rank = 1
    for index, total in enumerate(ordered):
        if index > 0 and total.points != ordered[index - 1].points:
            rank = index + 1

        tied_above = index > 0 and ordered[index - 1].points == total.points
        tied_below = (
            index + 1 < len(ordered) and ordered[index + 1].points == total.points
        )

        entries.append(
            StandingsEntry(
                user_id=total.user_id,
                username=total.username,
                total_points=total.points,
                rank=rank,
                is_tied=tied_above or tied_below,
                rounds_participated=total.rounds_participated,
            )
        )

    return entries


def identify_winners(entries, number_of_winners=None):
    """
    Return every entry sharing rank 1.

    number_of_winners is advisory: a tied group for first place is never
    truncated to fit it.
    """
    if not entries:
        return []

    winners = [entry for entry in entries if entry.rank == 1]

    if not winners:
        logger.warning("No entries with rank 1 found in standings")
        return []

    if number_of_winners is not None and number_of_winners < len(winners):
        logger.warning(
            f"{len(winners)} users tied for first place but {number_of_winners} "
            f"winner(s) requested - including all tied users"
        )

    return winners


def summarize_standings(entries):
    """Participant count, top score and mean score for a ranked list"""
    if not entries:
        return StandingsSummary()

    total = sum(entry.total_points for entry in entries)
    return StandingsSummary(
        total_participants=len(entries),
        max_points=entries[0].total_points,
        average_points=round(total / len(entries), 2),
    )
