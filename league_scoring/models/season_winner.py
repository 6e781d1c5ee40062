"""Season Winner Model - Hall of Fame entries per season and competition type"""

from datetime import datetime, timezone

from league_scoring import db

from .user_point_record import LEAGUE


class SeasonWinner(db.Model):
    """One row per winner; a (season, competition type) has zero rows or a full set"""

    __tablename__ = "season_winners"

    id = db.Column(db.Integer, primary_key=True)

    # Winner identification
    season_id = db.Column(db.Integer, db.ForeignKey("seasons.id"), nullable=False)
    competition_type = db.Column(db.String(30), nullable=False, default=LEAGUE)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    # Stats at time of win
    total_points = db.Column(db.Integer, nullable=False, default=0)
    rank = db.Column(db.Integer, nullable=False, default=1)
    winner_count = db.Column(db.Integer, nullable=False, default=1)  # size of the set

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    season = db.relationship("Season", backref="winners")
    user = db.relationship("User", backref="season_wins")

    # Constraints
    __table_args__ = (
        db.UniqueConstraint(
            "season_id",
            "competition_type",
            "user_id",
            name="unique_season_competition_winner",
        ),
        db.Index("idx_winner_season_type", "season_id", "competition_type"),
        db.Index("idx_winner_user", "user_id"),
    )

    def __repr__(self):
        return f"<SeasonWinner season={self.season_id} {self.competition_type}: User {self.user_id}>"

    def to_dict(self):
        """Convert to dictionary"""
        return {
            "id": self.id,
            "season_id": self.season_id,
            "competition_type": self.competition_type,
            "user_id": self.user_id,
            "username": self.user.username if self.user else None,
            "total_points": self.total_points,
            "rank": self.rank,
            "winner_count": self.winner_count,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
