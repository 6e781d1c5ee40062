"""
Ledger data access for standings, winner determination and backfill

Every query the scoring services need goes through LedgerRepository, so the
services themselves never touch the session. SQLAlchemy errors are turned
into StoreFailure (or ConflictingWrite for unique-constraint rejections).
"""

import functools
import logging
from datetime import datetime, timezone

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from league_scoring import db
from league_scoring.errors import ConflictingWrite, StoreFailure
from league_scoring.models import (
    LAST_ROUND_SPECIAL,
    BettingRound,
    Competition,
    Fixture,
    Season,
    SeasonWinner,
    User,
    UserBet,
    UserPointRecord,
)
from league_scoring.utils.standings import UserPointTotal

logger = logging.getLogger(__name__)


def store_call(func_):
    """Translate SQLAlchemy errors raised by a ledger method into StoreFailure"""

    @functools.wraps(func_)
    def wrapper(self, *args, **kwargs):
        try:
            return func_(self, *args, **kwargs)
        except IntegrityError as e:
            self.session.rollback()
            logger.warning(f"{func_.__name__} rejected by constraint: {e.orig}")
            raise ConflictingWrite(
                f"{func_.__name__} conflicted with an existing row: {e.orig}"
            ) from e
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"{func_.__name__} failed: {e}")
            raise StoreFailure(f"{func_.__name__} failed: {e}") from e

    return wrapper


class LedgerRepository:
    """Reads point ledgers and writes winner and bet batches"""

    def __init__(self, session=None):
        self.session = session or db.session

    # Seasons and competitions

    @store_call
    def find_season(self, season_id):
        return self.session.get(Season, season_id)

    @store_call
    def find_competition(self, competition_id):
        return self.session.get(Competition, competition_id)

    @store_call
    def list_eligible_seasons(self, competition_type):
        """Completed seasons (with the cup activated, for the cup) by ascending id"""
        query = self.session.query(Season.id).filter(Season.completed_at.isnot(None))

        if competition_type == LAST_ROUND_SPECIAL:
            query = query.filter(Season.last_round_special_activated.is_(True))

        return [row.id for row in query.order_by(Season.id.asc()).all()]

    @store_call
    def get_competition_context(self, season_id=None, competition_id=None):
        """
        Resolve the competition and season a backfill applies to

        Args:
            season_id: use this season
            competition_id: use the latest season of this competition

        Without either, the most recently created season wins.

        Returns:
            dict with competition_id, competition_name, season_id; or None
        """
        query = self.session.query(Season).join(
            Competition, Competition.id == Season.competition_id
        )

        if season_id is not None:
            query = query.filter(Season.id == season_id)
        elif competition_id is not None:
            query = query.filter(Season.competition_id == competition_id)

        season = query.order_by(Season.created_at.desc(), Season.id.desc()).first()
        if season is None:
            return None

        return {
            "competition_id": season.competition_id,
            "competition_name": season.competition.name,
            "season_id": season.id,
        }

    # Standings and winners

    @store_call
    def list_user_point_totals(self, season_id, competition_type):
        """One aggregated total per user for a season and competition type"""
        rows = (
            self.session.query(
                User.id,
                User.username,
                func.coalesce(func.sum(UserPointRecord.points), 0).label("points"),
                func.count(func.distinct(UserPointRecord.betting_round_id)).label(
                    "rounds"
                ),
            )
            .join(UserPointRecord, UserPointRecord.user_id == User.id)
            .filter(
                UserPointRecord.season_id == season_id,
                UserPointRecord.competition_type == competition_type,
            )
            .group_by(User.id, User.username)
            .all()
        )

        return [
            UserPointTotal(
                user_id=row.id,
                username=row.username,
                points=int(row.points),
                rounds_participated=int(row.rounds),
            )
            for row in rows
        ]

    @store_call
    def list_existing_winners(self, season_id, competition_type):
        return (
            self.session.query(SeasonWinner)
            .join(User, User.id == SeasonWinner.user_id)
            .filter(
                SeasonWinner.season_id == season_id,
                SeasonWinner.competition_type == competition_type,
            )
            .order_by(SeasonWinner.total_points.desc(), User.username.asc())
            .all()
        )

    @store_call
    def list_all_winners(self, competition_type=None, limit=20, offset=0):
        """
        Page through every recorded winner, newest first

        Returns:
            (rows, total) where total counts all matching rows
        """
        query = self.session.query(SeasonWinner)
        if competition_type is not None:
            query = query.filter(SeasonWinner.competition_type == competition_type)

        total = query.count()
        rows = (
            query.order_by(SeasonWinner.created_at.desc(), SeasonWinner.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return rows, total

    @store_call
    def list_winner_stats(self, competition_type=None, limit=50):
        """Per-user win counts, most wins first"""
        wins = func.count(SeasonWinner.id)
        query = (
            self.session.query(
                User.id,
                User.username,
                wins.label("wins"),
                func.sum(
                    case((SeasonWinner.competition_type == LAST_ROUND_SPECIAL, 0), else_=1)
                ).label("league_wins"),
                func.sum(
                    case((SeasonWinner.competition_type == LAST_ROUND_SPECIAL, 1), else_=0)
                ).label("cup_wins"),
                func.coalesce(func.sum(SeasonWinner.total_points), 0).label("points"),
                func.max(SeasonWinner.created_at).label("last_win"),
            )
            .join(SeasonWinner, SeasonWinner.user_id == User.id)
        )
        if competition_type is not None:
            query = query.filter(SeasonWinner.competition_type == competition_type)

        rows = (
            query.group_by(User.id, User.username)
            .order_by(
                wins.desc(),
                func.coalesce(func.sum(SeasonWinner.total_points), 0).desc(),
                User.username.asc(),
            )
            .limit(limit)
            .all()
        )

        return [
            {
                "user_id": row.id,
                "username": row.username,
                "wins": int(row.wins),
                "league_wins": int(row.league_wins or 0),
                "cup_wins": int(row.cup_wins or 0),
                "total_winning_points": int(row.points),
                "last_win_at": row.last_win.isoformat() if row.last_win else None,
            }
            for row in rows
        ]

    @store_call
    def insert_winners(self, season_id, competition_type, entries, determined_at=None):
        """
        Claim the season's determination stamp and insert the full winner
        set in one transaction.

        The stamp is set only while it is still empty, so exactly one writer
        per (season, competition type) gets past the claim; any other writer
        gets ConflictingWrite, whoever its winners are. Either every row
        commits or none does.
        """
        determined_at = determined_at or datetime.now(timezone.utc)
        stamp = Season.winner_stamp_column(competition_type)
        rows = [
            SeasonWinner(
                season_id=season_id,
                competition_type=competition_type,
                user_id=entry.user_id,
                total_points=entry.total_points,
                rank=entry.rank,
                winner_count=len(entries),
                created_at=determined_at,
            )
            for entry in entries
        ]

        try:
            claimed = self.session.execute(
                update(Season)
                .where(Season.id == season_id, stamp.is_(None))
                .values({stamp: determined_at})
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount == 0:
                self.session.rollback()
                raise ConflictingWrite(
                    f"Winners for season {season_id} ({competition_type}) "
                    "were already claimed",
                    season_id=season_id,
                )

            self.session.add_all(rows)
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise

        return rows

    # Users, rounds and bets

    @store_call
    def find_user(self, user_id):
        return self.session.get(User, user_id)

    @store_call
    def list_users_joined_after(self, joined_after):
        return (
            self.session.query(User)
            .filter(User.created_at >= joined_after)
            .order_by(User.created_at.asc(), User.id.asc())
            .all()
        )

    def _user_bet_round_ids(self, user_id):
        return (
            select(Fixture.betting_round_id)
            .join(UserBet, UserBet.fixture_id == Fixture.id)
            .where(UserBet.user_id == user_id)
        )

    @store_call
    def list_scored_rounds_without_user_bet(
        self, user_id, competition_id, from_round_id=None
    ):
        """Scored rounds of a competition where the user has no bet on any fixture"""
        query = (
            self.session.query(BettingRound.id, BettingRound.name)
            .join(Season, Season.id == BettingRound.season_id)
            .filter(
                Season.competition_id == competition_id,
                BettingRound.status == "scored",
                BettingRound.id.notin_(self._user_bet_round_ids(user_id)),
            )
        )

        if from_round_id is not None:
            query = query.filter(BettingRound.id >= from_round_id)

        return [
            {"round_id": row.id, "round_name": row.name}
            for row in query.order_by(BettingRound.id.asc()).all()
        ]

    @store_call
    def count_user_bets_in_competition(self, user_id, competition_id):
        return (
            self.session.query(func.count(UserBet.id))
            .join(Fixture, Fixture.id == UserBet.fixture_id)
            .join(BettingRound, BettingRound.id == Fixture.betting_round_id)
            .join(Season, Season.id == BettingRound.season_id)
            .filter(UserBet.user_id == user_id, Season.competition_id == competition_id)
            .scalar()
        )

    @store_call
    def list_round_fixtures(self, round_id):
        rows = (
            self.session.query(Fixture.id)
            .filter(Fixture.betting_round_id == round_id)
            .order_by(Fixture.id.asc())
            .all()
        )
        return [row.id for row in rows]

    @store_call
    def list_existing_participant_totals(self, round_id, exclude_user_id=None):
        """Each participant's points summed over the round's fixtures"""
        query = (
            self.session.query(
                UserBet.user_id,
                func.coalesce(func.sum(UserBet.points_awarded), 0).label("points"),
            )
            .join(Fixture, Fixture.id == UserBet.fixture_id)
            .filter(Fixture.betting_round_id == round_id)
        )

        if exclude_user_id is not None:
            query = query.filter(UserBet.user_id != exclude_user_id)

        rows = query.group_by(UserBet.user_id).order_by(UserBet.user_id).all()
        return [int(row.points) for row in rows]

    @store_call
    def insert_user_bets(self, bets):
        """Insert a batch of bets atomically. Each bet is a dict of UserBet columns."""
        rows = [UserBet(**bet) for bet in bets]

        try:
            self.session.add_all(rows)
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise

        return rows
