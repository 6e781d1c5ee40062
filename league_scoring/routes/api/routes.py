import hmac
from datetime import datetime
from functools import wraps

from flask import current_app, jsonify, request

from league_scoring import db
from league_scoring.errors import ScoringError
from league_scoring.models import COMPETITION_TYPES, LEAGUE, Season
from league_scoring.routes.api import bp
from league_scoring.services.retroactive_points import RetroactivePointsService
from league_scoring.services.winner_determination import WinnerDeterminationService
from league_scoring.utils.logging_config import get_logger

logger = get_logger(__name__)

ERROR_STATUS = {
    "not_found": 404,
    "invariant_violation": 409,
    "conflicting_write": 409,
    "store_failure": 503,
}

BACKFILL_ACTIONS = ("apply_user", "preview_user", "check_user", "apply_bulk")


def require_cron_secret(f):
    """Reject requests without the shared CRON_SECRET"""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        expected = current_app.config.get("CRON_SECRET") or ""
        provided = request.headers.get("X-Cron-Secret", "")

        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            provided = auth_header[len("Bearer ") :]

        if not expected or not hmac.compare_digest(provided, expected):
            logger.warning(f"Rejected unauthorized request to {request.path}")
            return jsonify({"error": "Unauthorized"}), 401

        return f(*args, **kwargs)

    return decorated_function


def _error_response(error):
    return jsonify({"error": error.to_dict()}), ERROR_STATUS.get(error.kind, 500)


def _competition_type_arg(value):
    competition_type = value or LEAGUE
    if competition_type not in COMPETITION_TYPES:
        return None
    return competition_type


def _bad_competition_type():
    return (
        jsonify(
            {
                "error": "Invalid competition_type",
                "allowed": list(COMPETITION_TYPES),
            }
        ),
        400,
    )


def _optional_int(data, key):
    """Integer value of a JSON field, None when absent; ValueError otherwise"""
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, (bool, float)):
        raise ValueError(f"{key} must be an integer")
    return int(value)


def _hall_of_fame_type_arg():
    """None for 'all' (the default), the type itself when valid, False when not"""
    value = request.args.get("competition_type", "all")
    if value == "all":
        return None
    if value not in COMPETITION_TYPES:
        return False
    return value


@bp.route("/standings")
def standings():
    """Current standings for a season"""
    season_id = request.args.get("season_id", type=int)
    if season_id is None:
        return jsonify({"error": "season_id is required"}), 400

    competition_type = _competition_type_arg(request.args.get("competition_type"))
    if competition_type is None:
        return _bad_competition_type()

    try:
        entries, summary = WinnerDeterminationService().get_standings(
            season_id, competition_type
        )
    except ScoringError as e:
        return _error_response(e)

    return jsonify(
        {
            "season_id": season_id,
            "competition_type": competition_type,
            "standings": [entry.to_dict() for entry in entries],
            "summary": summary.to_dict(),
        }
    )


@bp.route("/hall-of-fame")
def hall_of_fame():
    """All recorded winners, newest first, paginated"""
    competition_type = _hall_of_fame_type_arg()
    if competition_type is False:
        return _bad_competition_type()

    limit = min(max(request.args.get("limit", 20, type=int), 1), 100)
    offset = max(request.args.get("offset", 0, type=int), 0)

    try:
        winners, total = WinnerDeterminationService().list_hall_of_fame(
            competition_type=competition_type, limit=limit, offset=offset
        )
    except ScoringError as e:
        return _error_response(e)

    return jsonify(
        {
            "competition_type": competition_type or "all",
            "winners": winners,
            "pagination": {
                "total_items": total,
                "total_pages": (total + limit - 1) // limit,
                "current_page": offset // limit + 1,
                "page_size": limit,
                "has_more": offset + limit < total,
            },
        }
    )


@bp.route("/hall-of-fame/stats")
def hall_of_fame_stats():
    """Users ranked by number of wins"""
    competition_type = _hall_of_fame_type_arg()
    if competition_type is False:
        return _bad_competition_type()

    limit = min(max(request.args.get("limit", 50, type=int), 1), 100)

    try:
        stats = WinnerDeterminationService().get_hall_of_fame_stats(
            competition_type=competition_type, limit=limit
        )
    except ScoringError as e:
        return _error_response(e)

    return jsonify(
        {
            "competition_type": competition_type or "all",
            "users": stats,
            "total_users": len(stats),
        }
    )


@bp.route("/hall-of-fame/seasons/<int:season_id>")
def season_hall_of_fame(season_id):
    """Recorded winners for a season"""
    competition_type = _competition_type_arg(request.args.get("competition_type"))
    if competition_type is None:
        return _bad_competition_type()

    try:
        winners = WinnerDeterminationService().get_season_winners(
            season_id, competition_type
        )
    except ScoringError as e:
        return _error_response(e)

    season = db.session.get(Season, season_id)
    return jsonify(
        {
            "season": season.to_dict() if season else None,
            "competition_type": competition_type,
            "is_determined": bool(winners),
            "is_tied": len(winners) > 1,
            "winners": [winner.to_dict() for winner in winners],
        }
    )


@bp.route("/cron/winner-determination", methods=["POST"])
@require_cron_secret
def cron_winner_determination():
    """
    Determine winners.

    With season_id in the JSON body only that season is processed; otherwise
    every eligible season is swept, for one competition type or for all.
    """
    data = request.get_json(silent=True) or {}
    service = WinnerDeterminationService()

    requested_type = data.get("competition_type")
    if requested_type is not None and requested_type not in COMPETITION_TYPES:
        return _bad_competition_type()

    season_id = data.get("season_id")
    if season_id is not None:
        try:
            season_id = int(season_id)
        except (TypeError, ValueError):
            return jsonify({"error": "season_id must be an integer"}), 400

        result = service.determine_winners(season_id, requested_type or LEAGUE)
        status = 200 if not result.errors else 207
        return jsonify({"success": not result.errors, "result": result.to_dict()}), status

    competition_types = [requested_type] if requested_type else list(COMPETITION_TYPES)
    batches = {}
    try:
        for competition_type in competition_types:
            batches[competition_type] = service.determine_for_eligible_seasons(
                competition_type
            )
    except ScoringError as e:
        return _error_response(e)

    has_errors = any(batch.errors for batch in batches.values())
    logger.info(
        f"Cron winner determination finished for {', '.join(competition_types)}"
    )
    return (
        jsonify(
            {
                "success": not has_errors,
                "results": {key: batch.to_dict() for key, batch in batches.items()},
            }
        ),
        207 if has_errors else 200,
    )


@bp.route("/admin/retroactive-points", methods=["POST"])
@require_cron_secret
def admin_retroactive_points():
    """Run, preview or check a retroactive points backfill"""
    data = request.get_json(silent=True)
    if not data:
        return jsonify({"error": "JSON body required"}), 400

    action = data.get("action")
    if action not in BACKFILL_ACTIONS:
        return (
            jsonify({"error": "Invalid action", "allowed": list(BACKFILL_ACTIONS)}),
            400,
        )

    try:
        user_id = _optional_int(data, "user_id")
        competition_id = _optional_int(data, "competition_id")
        from_round_id = _optional_int(data, "from_round_id")
    except (TypeError, ValueError):
        return (
            jsonify(
                {"error": "user_id, competition_id and from_round_id must be integers"}
            ),
            400,
        )

    service = RetroactivePointsService()

    if action == "apply_bulk":
        try:
            joined_after = datetime.fromisoformat(data.get("joined_after", ""))
        except (TypeError, ValueError):
            return jsonify({"error": "joined_after must be an ISO date"}), 400

        result = service.apply_for_new_users(
            joined_after,
            competition_id=competition_id,
            from_round_id=from_round_id,
            dry_run=bool(data.get("dry_run", False)),
        )
        return jsonify({"success": not result.errors, "result": result.to_dict()})

    if user_id is None:
        return jsonify({"error": "user_id is required"}), 400

    if action == "check_user":
        check = service.check_if_user_needs_backfill(
            user_id, competition_id=competition_id
        )
        return jsonify({"success": not check["errors"], "result": check})

    if action == "preview_user":
        result = service.preview_for_user(
            user_id, competition_id=competition_id, from_round_id=from_round_id
        )
    else:
        result = service.apply_for_user(
            user_id, competition_id=competition_id, from_round_id=from_round_id
        )

    return jsonify({"success": not result.errors, "result": result.to_dict()})
