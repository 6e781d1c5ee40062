from datetime import datetime, timezone

from league_scoring import db


class Season(db.Model):
    __tablename__ = "seasons"

    id = db.Column(db.Integer, primary_key=True)
    competition_id = db.Column(
        db.Integer, db.ForeignKey("competitions.id"), nullable=False
    )
    name = db.Column(db.String(50), nullable=False)  # e.g., "2025/26"

    # Status
    completed_at = db.Column(db.DateTime, nullable=True)
    last_round_special_activated = db.Column(db.Boolean, default=False, nullable=False)
    last_round_special_activated_at = db.Column(db.DateTime, nullable=True)

    # Set in the same transaction as the winner rows
    winner_determined_at = db.Column(db.DateTime, nullable=True)
    cup_winner_determined_at = db.Column(db.DateTime, nullable=True)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    rounds = db.relationship(
        "BettingRound", backref="season", lazy="dynamic", cascade="all, delete-orphan"
    )

    # Database indexes and constraints
    __table_args__ = (
        db.Index("idx_season_competition", "competition_id"),
        db.Index("idx_season_completed", "completed_at"),
    )

    def __repr__(self):
        return f"<Season {self.name}>"

    @property
    def is_complete(self):
        return self.completed_at is not None

    def mark_complete(self, completed_at=None):
        """Mark season as complete. No-op if already complete."""
        if self.is_complete:
            return False

        self.completed_at = completed_at or datetime.now(timezone.utc)
        return True

    def activate_last_round_special(self, activated_at=None):
        """Activate the cup sub-competition. No-op if already active."""
        if self.last_round_special_activated:
            return False

        self.last_round_special_activated = True
        self.last_round_special_activated_at = activated_at or datetime.now(
            timezone.utc
        )
        return True

    @classmethod
    def winner_stamp_column(cls, competition_type):
        """Column recording when winners were committed for a competition type"""
        from .user_point_record import LAST_ROUND_SPECIAL

        if competition_type == LAST_ROUND_SPECIAL:
            return cls.cup_winner_determined_at
        return cls.winner_determined_at

    def to_dict(self):
        """Convert season to dictionary for API responses"""
        return {
            "id": self.id,
            "competition_id": self.competition_id,
            "name": self.name,
            "is_complete": self.is_complete,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "last_round_special_activated": self.last_round_special_activated,
            "winner_determined_at": (
                self.winner_determined_at.isoformat()
                if self.winner_determined_at
                else None
            ),
            "cup_winner_determined_at": (
                self.cup_winner_determined_at.isoformat()
                if self.cup_winner_determined_at
                else None
            ),
        }
