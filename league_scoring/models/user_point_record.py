from datetime import datetime, timezone

from league_scoring import db

# Point categories
LEAGUE = "league"
LAST_ROUND_SPECIAL = "last_round_special"
COMPETITION_TYPES = (LEAGUE, LAST_ROUND_SPECIAL)


class UserPointRecord(db.Model):
    """Points a user earned in one round for one competition type

    Written by round scoring; only read here.
    """

    __tablename__ = "user_point_records"

    id = db.Column(db.Integer, primary_key=True)

    # Links
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    season_id = db.Column(db.Integer, db.ForeignKey("seasons.id"), nullable=False)
    betting_round_id = db.Column(
        db.Integer, db.ForeignKey("betting_rounds.id"), nullable=False
    )
    competition_type = db.Column(db.String(30), nullable=False, default=LEAGUE)

    points = db.Column(db.Integer, nullable=False, default=0)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    # Constraints and indexes
    __table_args__ = (
        db.UniqueConstraint(
            "user_id",
            "betting_round_id",
            "competition_type",
            name="unique_user_round_points",
        ),
        db.Index("idx_points_season_type", "season_id", "competition_type"),
    )

    def __repr__(self):
        return f"<UserPointRecord user={self.user_id} round={self.betting_round_id} {self.competition_type}={self.points}>"
