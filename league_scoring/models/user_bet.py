from datetime import datetime, timezone

from league_scoring import db


class UserBet(db.Model):
    __tablename__ = "user_bets"

    id = db.Column(db.Integer, primary_key=True)

    # Bet identification
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    fixture_id = db.Column(db.Integer, db.ForeignKey("fixtures.id"), nullable=False)

    # Bet details - '1', 'X' or '2'; null for retroactive bets
    prediction = db.Column(db.String(1), nullable=True)

    # Results (calculated after the round is scored)
    points_awarded = db.Column(db.Integer, nullable=True)
    is_retroactive = db.Column(db.Boolean, default=False, nullable=False)

    # Timestamps
    submitted_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Constraints and indexes
    __table_args__ = (
        db.UniqueConstraint("user_id", "fixture_id", name="unique_user_fixture_bet"),
        db.Index("idx_bet_user", "user_id"),
        db.Index("idx_bet_fixture", "fixture_id"),
    )

    def __repr__(self):
        return f"<UserBet user_id={self.user_id} fixture_id={self.fixture_id} points={self.points_awarded}>"

    def to_dict(self):
        """Convert bet to dictionary for API responses"""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "fixture_id": self.fixture_id,
            "prediction": self.prediction,
            "points_awarded": self.points_awarded,
            "is_retroactive": self.is_retroactive,
            "submitted_at": self.submitted_at.isoformat() if self.submitted_at else None,
        }
