"""
Retroactive points for late joiners

A user who joins a competition after rounds were scored gets, for each
scored round they missed, the same total as the round's lowest-scoring
participant. Points land as retroactive UserBets, one per fixture, so the
round's own scoring remains the source of truth for everyone else.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone

from league_scoring.errors import NotFound, ScoringError
from league_scoring.services.ledger import LedgerRepository
from league_scoring.utils.fair_share import build_round_plan
from league_scoring.utils.logging_config import ContextualLogger


@dataclass
class RetroactivePointsResult:
    user_id: int
    rounds_missed: int = 0
    rounds_processed: int = 0
    total_points_awarded: int = 0
    rounds: list = field(default_factory=list)  # [RoundPlan, ...]
    errors: list = field(default_factory=list)
    warnings: list = field(default_factory=list)
    competition_context: dict = None
    dry_run: bool = False

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "rounds_missed": self.rounds_missed,
            "rounds_processed": self.rounds_processed,
            "total_points_awarded": self.total_points_awarded,
            "rounds": [plan.to_dict() for plan in self.rounds],
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "competition_context": self.competition_context,
            "dry_run": self.dry_run,
        }


@dataclass
class BulkRetroactivePointsResult:
    total_users_processed: int = 0
    total_rounds_processed: int = 0
    total_points_awarded: int = 0
    user_results: list = field(default_factory=list)
    errors: list = field(default_factory=list)
    dry_run: bool = False

    def to_dict(self):
        return {
            "total_users_processed": self.total_users_processed,
            "total_rounds_processed": self.total_rounds_processed,
            "total_points_awarded": self.total_points_awarded,
            "user_results": [r.to_dict() for r in self.user_results],
            "errors": list(self.errors),
            "dry_run": self.dry_run,
        }


class RetroactivePointsService:
    """Backfills missed rounds for users who joined late"""

    def __init__(self, ledger=None):
        self.ledger = ledger or LedgerRepository()

    def get_missed_rounds(self, user_id, competition_id, from_round_id=None):
        """Scored rounds in the competition with no bet from the user, by ascending id"""
        return self.ledger.list_scored_rounds_without_user_bet(
            user_id, competition_id, from_round_id=from_round_id
        )

    def apply_for_user(
        self, user_id, competition_id=None, dry_run=False, from_round_id=None
    ):
        """
        Award fair-share points for every round the user missed.

        Args:
            user_id: the late joiner
            competition_id: competition to backfill; the latest season's
                competition when omitted
            dry_run: compute the plan without writing anything
            from_round_id: only rounds with id >= this

        Returns:
            RetroactivePointsResult. A failing round adds one error string and
            the remaining rounds are still processed.
        """
        log = ContextualLogger(
            __name__,
            {"user_id": user_id, "competition_id": competition_id, "dry_run": dry_run},
        )
        result = RetroactivePointsResult(user_id=user_id, dry_run=dry_run)

        try:
            if self.ledger.find_user(user_id) is None:
                raise NotFound(f"User {user_id} not found")

            if competition_id is not None:
                if self.ledger.find_competition(competition_id) is None:
                    raise NotFound(f"Competition {competition_id} not found")
                context = self.ledger.get_competition_context(
                    competition_id=competition_id
                )
            else:
                context = self.ledger.get_competition_context()

            if context is None:
                message = "No competition context found, nothing to backfill"
                log.warning(message)
                result.warnings.append(message)
                return result

            result.competition_context = context
            missed = self.get_missed_rounds(
                user_id, context["competition_id"], from_round_id=from_round_id
            )

        except ScoringError as e:
            log.error(f"Backfill aborted: {e.message}")
            result.errors.append(e.message)
            return result

        result.rounds_missed = len(missed)
        if not missed:
            log.info("No missed rounds")
            return result

        log.info(f"Found {len(missed)} missed round(s)")
        for round_info in missed:
            round_id = round_info["round_id"]
            try:
                plan = self._process_round(user_id, round_info, dry_run)
            except ScoringError as e:
                message = f"Failed to process round {round_id}: {e.message}"
                log.error(message)
                result.errors.append(message)
                continue
            except Exception as e:
                self.ledger.session.rollback()
                message = f"Failed to process round {round_id}: {e}"
                log.error(message, exc_info=True)
                result.errors.append(message)
                continue

            result.rounds.append(plan)
            result.rounds_processed += 1
            result.total_points_awarded += plan.points_awarded

        log.info(
            f"{'Previewed' if dry_run else 'Applied'} {result.total_points_awarded} "
            f"point(s) over {result.rounds_processed} round(s), "
            f"{len(result.errors)} error(s)"
        )
        return result

    def preview_for_user(self, user_id, competition_id=None, from_round_id=None):
        return self.apply_for_user(
            user_id, competition_id=competition_id, dry_run=True, from_round_id=from_round_id
        )

    def check_if_user_needs_backfill(self, user_id, competition_id=None):
        """Summary of what a backfill would do, without writing anything"""
        preview = self.preview_for_user(user_id, competition_id=competition_id)
        return {
            "needs_backfill": preview.rounds_missed > 0,
            "missed_rounds": preview.rounds_missed,
            "estimated_points_to_award": preview.total_points_awarded,
            "competition_context": preview.competition_context,
            "errors": preview.errors,
        }

    def is_user_first_bet_in_competition(self, user_id, competition_id):
        return self.ledger.count_user_bets_in_competition(user_id, competition_id) == 0

    def apply_for_new_users(
        self, joined_after, competition_id=None, from_round_id=None, dry_run=False
    ):
        """Backfill every user created at or after joined_after, oldest first"""
        log = ContextualLogger(
            __name__, {"joined_after": joined_after, "dry_run": dry_run}
        )
        bulk = BulkRetroactivePointsResult(dry_run=dry_run)

        try:
            users = self.ledger.list_users_joined_after(joined_after)
        except ScoringError as e:
            log.error(f"Failed to fetch new users: {e.message}")
            bulk.errors.append(f"Failed to fetch new users: {e.message}")
            return bulk

        if not users:
            log.info("No users joined in the window")
            return bulk

        for user in users:
            try:
                user_result = self.apply_for_user(
                    user.id,
                    competition_id=competition_id,
                    dry_run=dry_run,
                    from_round_id=from_round_id,
                )
            except Exception as e:
                self.ledger.session.rollback()
                log.error(f"Backfill for user {user.id} failed: {e}", exc_info=True)
                user_result = RetroactivePointsResult(user_id=user.id, dry_run=dry_run)
                user_result.errors.append(f"Unexpected error: {e}")

            bulk.user_results.append(user_result)
            bulk.total_users_processed += 1
            bulk.total_rounds_processed += user_result.rounds_processed
            bulk.total_points_awarded += user_result.total_points_awarded
            bulk.errors.extend(f"User {user.id}: {err}" for err in user_result.errors)

        log.info(
            f"Processed {bulk.total_users_processed} user(s), "
            f"{bulk.total_points_awarded} point(s) awarded"
        )
        return bulk

    def _process_round(self, user_id, round_info, dry_run):
        round_id = round_info["round_id"]
        participant_totals = self.ledger.list_existing_participant_totals(
            round_id, exclude_user_id=user_id
        )
        fixture_ids = self.ledger.list_round_fixtures(round_id)

        plan = build_round_plan(
            round_id, round_info["round_name"], participant_totals, fixture_ids
        )

        if not dry_run and plan.fixture_points:
            now = datetime.now(timezone.utc)
            self.ledger.insert_user_bets(
                [
                    {
                        "user_id": user_id,
                        "fixture_id": fixture_id,
                        "prediction": None,
                        "points_awarded": points,
                        "is_retroactive": True,
                        "submitted_at": now,
                        "created_at": now,
                        "updated_at": now,
                    }
                    for fixture_id, points in plan.fixture_points
                ]
            )

        return plan
