from league_scoring import db  # noqa: F401 - imported for model imports

from .betting_round import ROUND_STATUSES, BettingRound
from .competition import Competition
from .fixture import Fixture
from .season import Season
from .season_winner import SeasonWinner
from .user import User
from .user_bet import UserBet
from .user_point_record import (
    COMPETITION_TYPES,
    LAST_ROUND_SPECIAL,
    LEAGUE,
    UserPointRecord,
)

__all__ = [
    "User",
    "Competition",
    "Season",
    "BettingRound",
    "Fixture",
    "UserBet",
    "UserPointRecord",
    "SeasonWinner",
    "ROUND_STATUSES",
    "COMPETITION_TYPES",
    "LEAGUE",
    "LAST_ROUND_SPECIAL",
]
