"""
Season winner determination

Turns a season's point ledger into ranked standings and records the rank-1
users as the season's winners for a competition type. The committed
SeasonWinner rows are the only record of "already determined": a second
call for the same key reads them back instead of recomputing.
"""

from dataclasses import dataclass, field

from league_scoring.errors import (
    ConflictingWrite,
    InvariantViolation,
    NotFound,
    ScoringError,
    StoreFailure,
)
from league_scoring.models import COMPETITION_TYPES, LEAGUE
from league_scoring.services.ledger import LedgerRepository
from league_scoring.utils.logging_config import ContextualLogger
from league_scoring.utils.standings import (
    StandingsEntry,
    StandingsSummary,
    identify_winners,
    rank_standings,
    summarize_standings,
)


@dataclass
class WinnerDeterminationResult:
    season_id: int
    competition_type: str = LEAGUE
    winners: list = field(default_factory=list)
    total_participants: int = 0
    is_already_determined: bool = False
    errors: list = field(default_factory=list)
    summary: StandingsSummary = field(default_factory=StandingsSummary)

    @property
    def is_tied(self):
        return len(self.winners) > 1

    def to_dict(self):
        return {
            "season_id": self.season_id,
            "competition_type": self.competition_type,
            "winners": [winner.to_dict() for winner in self.winners],
            "total_participants": self.total_participants,
            "is_already_determined": self.is_already_determined,
            "is_tied": self.is_tied,
            "errors": list(self.errors),
            "summary": self.summary.to_dict(),
        }


@dataclass
class BatchDeterminationResult:
    competition_type: str = LEAGUE
    results: list = field(default_factory=list)
    errors: list = field(default_factory=list)

    @property
    def seasons_processed(self):
        return len(self.results)

    @property
    def newly_determined(self):
        return [
            r.season_id
            for r in self.results
            if r.winners and not r.is_already_determined and not r.errors
        ]

    def to_dict(self):
        return {
            "competition_type": self.competition_type,
            "seasons_processed": self.seasons_processed,
            "newly_determined": self.newly_determined,
            "results": [result.to_dict() for result in self.results],
            "errors": list(self.errors),
        }


def _check_competition_type(competition_type):
    if competition_type not in COMPETITION_TYPES:
        raise ValueError(
            f"Unknown competition type '{competition_type}', "
            f"expected one of {', '.join(COMPETITION_TYPES)}"
        )


class WinnerDeterminationService:
    """Determines and records season winners for the league and the cup"""

    def __init__(self, ledger=None):
        self.ledger = ledger or LedgerRepository()

    def determine_winners(self, season_id, competition_type=LEAGUE):
        """
        Determine the winners of one season for one competition type.

        Safe to call any number of times: once winners are committed, later
        calls return them with is_already_determined=True and write nothing.

        Args:
            season_id: season to determine
            competition_type: "league" or "last_round_special"

        Returns:
            WinnerDeterminationResult; failures are reported in its errors
        """
        _check_competition_type(competition_type)
        log = ContextualLogger(
            __name__, {"season_id": season_id, "competition_type": competition_type}
        )
        result = WinnerDeterminationResult(
            season_id=season_id, competition_type=competition_type
        )

        try:
            if self.ledger.find_season(season_id) is None:
                raise NotFound(f"Season {season_id} not found")

            existing = self._load_existing_winners(season_id, competition_type)
            if existing:
                log.info(f"Winners already determined ({len(existing)} winner(s))")
                result.winners = existing
                result.is_already_determined = True
                return result

            totals = self.ledger.list_user_point_totals(season_id, competition_type)
            standings = rank_standings(totals)
            result.total_participants = len(standings)
            result.summary = summarize_standings(standings)

            if not standings:
                log.info("No participants, nothing to determine")
                return result

            winners = identify_winners(standings)
            if not winners:
                raise InvariantViolation(
                    "Ranking produced no rank-1 entries", season_id=season_id
                )

            try:
                self.ledger.insert_winners(season_id, competition_type, winners)
            except ConflictingWrite:
                log.warning("Winners were recorded concurrently, reading them back")
                stored = self._load_existing_winners(season_id, competition_type)
                if not stored:
                    raise InvariantViolation(
                        "Season is stamped as determined but has no stored winners",
                        season_id=season_id,
                    )
                result.winners = stored
                result.is_already_determined = True
                return result

            result.winners = winners
            log.info(
                f"Recorded {len(winners)} winner(s) with {winners[0].total_points} "
                f"points{' (tied for first place)' if len(winners) > 1 else ''}"
            )

        except ScoringError as e:
            log.error(f"Winner determination failed: {e.message}")
            error = e.to_dict()
            error.setdefault("season_id", season_id)
            result.errors.append(error)

        return result

    def determine_for_eligible_seasons(self, competition_type=LEAGUE):
        """
        Determine winners for every eligible season, oldest first.

        Eligible means completed, and for the cup also activated. A failure in
        one season is recorded and the sweep moves on to the next.
        """
        _check_competition_type(competition_type)
        log = ContextualLogger(__name__, {"competition_type": competition_type})
        batch = BatchDeterminationResult(competition_type=competition_type)

        season_ids = self.ledger.list_eligible_seasons(competition_type)
        log.info(f"Processing {len(season_ids)} eligible season(s)")

        for season_id in season_ids:
            try:
                result = self.determine_winners(season_id, competition_type)
            except Exception as e:
                self.ledger.session.rollback()
                log.error(
                    f"Unexpected error determining season {season_id}: {e}",
                    exc_info=True,
                )
                result = WinnerDeterminationResult(
                    season_id=season_id, competition_type=competition_type
                )
                result.errors.append(
                    {
                        "kind": StoreFailure.kind,
                        "message": f"Unexpected error: {e}",
                        "season_id": season_id,
                    }
                )

            batch.results.append(result)
            batch.errors.extend(result.errors)

        log.info(
            f"Sweep finished: {len(batch.newly_determined)} newly determined, "
            f"{len(batch.errors)} error(s)"
        )
        return batch

    def get_standings(self, season_id, competition_type=LEAGUE):
        """Ranked standings for a season, computed fresh from the ledger"""
        _check_competition_type(competition_type)
        if self.ledger.find_season(season_id) is None:
            raise NotFound(f"Season {season_id} not found", season_id=season_id)

        totals = self.ledger.list_user_point_totals(season_id, competition_type)
        standings = rank_standings(totals)
        return standings, summarize_standings(standings)

    def get_season_winners(self, season_id, competition_type=LEAGUE):
        """Committed winners for a season; empty while undetermined"""
        _check_competition_type(competition_type)
        if self.ledger.find_season(season_id) is None:
            raise NotFound(f"Season {season_id} not found", season_id=season_id)

        return self._load_existing_winners(season_id, competition_type)

    def list_hall_of_fame(self, competition_type=None, limit=20, offset=0):
        """Recorded winners across all seasons, newest first, with the total count"""
        if competition_type is not None:
            _check_competition_type(competition_type)

        rows, total = self.ledger.list_all_winners(
            competition_type=competition_type, limit=limit, offset=offset
        )
        winners = []
        for row in rows:
            data = row.to_dict()
            data["season_name"] = row.season.name if row.season else None
            winners.append(data)
        return winners, total

    def get_hall_of_fame_stats(self, competition_type=None, limit=50):
        """Users ranked by number of recorded wins"""
        if competition_type is not None:
            _check_competition_type(competition_type)

        return self.ledger.list_winner_stats(competition_type=competition_type, limit=limit)

    def _load_existing_winners(self, season_id, competition_type):
        rows = self.ledger.list_existing_winners(season_id, competition_type)
        if not rows:
            return []

        expected = {row.winner_count for row in rows}
        if expected != {len(rows)}:
            raise InvariantViolation(
                f"Partial winner set: {len(rows)} row(s) stored, "
                f"expected {sorted(expected)}",
                season_id=season_id,
            )

        if any(row.rank != 1 for row in rows):
            raise InvariantViolation(
                "Stored winner with rank other than 1", season_id=season_id
            )

        if len({row.total_points for row in rows}) > 1:
            raise InvariantViolation(
                "Stored winners have unequal points", season_id=season_id
            )

        is_tied = len(rows) > 1
        return [
            StandingsEntry(
                user_id=row.user_id,
                username=row.user.username if row.user else None,
                total_points=row.total_points,
                rank=row.rank,
                is_tied=is_tied,
            )
            for row in rows
        ]
