from datetime import datetime, timezone

from league_scoring import db

ROUND_STATUSES = ("open", "scoring", "scored")


class BettingRound(db.Model):
    __tablename__ = "betting_rounds"

    id = db.Column(db.Integer, primary_key=True)
    season_id = db.Column(db.Integer, db.ForeignKey("seasons.id"), nullable=False)
    name = db.Column(db.String(100), nullable=False)  # e.g., "Round 7"

    # Status - moves forward only: open -> scoring -> scored
    status = db.Column(db.String(20), nullable=False, default="open")
    scored_at = db.Column(db.DateTime, nullable=True)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    fixtures = db.relationship(
        "Fixture",
        backref="betting_round",
        lazy="dynamic",
        cascade="all, delete-orphan",
        order_by="Fixture.id",
    )

    # Indexes
    __table_args__ = (
        db.Index("idx_round_season_status", "season_id", "status"),
        db.CheckConstraint(
            "status IN ('open', 'scoring', 'scored')", name="valid_round_status"
        ),
    )

    def __repr__(self):
        return f"<BettingRound {self.name} ({self.status})>"

    @property
    def is_scored(self):
        return self.status == "scored"

    def advance_status(self, new_status):
        """Move the round forward. Raises ValueError on unknown or backward moves."""
        if new_status not in ROUND_STATUSES:
            raise ValueError(f"Unknown round status: {new_status}")

        current = ROUND_STATUSES.index(self.status or "open")
        target = ROUND_STATUSES.index(new_status)

        if target < current:
            raise ValueError(
                f"Round {self.id} cannot move from '{self.status}' back to '{new_status}'"
            )

        self.status = new_status
        if new_status == "scored" and self.scored_at is None:
            self.scored_at = datetime.now(timezone.utc)

    def to_dict(self):
        """Convert round to dictionary for API responses"""
        return {
            "id": self.id,
            "season_id": self.season_id,
            "name": self.name,
            "status": self.status,
            "scored_at": self.scored_at.isoformat() if self.scored_at else None,
            "fixture_count": self.fixtures.count(),
        }
