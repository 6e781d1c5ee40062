from datetime import datetime, timezone

from league_scoring import db


class Fixture(db.Model):
    __tablename__ = "fixtures"

    id = db.Column(db.Integer, primary_key=True)
    betting_round_id = db.Column(
        db.Integer, db.ForeignKey("betting_rounds.id"), nullable=False
    )

    # Match details
    home_team = db.Column(db.String(100), nullable=False)
    away_team = db.Column(db.String(100), nullable=False)
    kickoff_at = db.Column(db.DateTime, nullable=True)

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    bets = db.relationship(
        "UserBet", backref="fixture", lazy="dynamic", cascade="all, delete-orphan"
    )

    # Indexes
    __table_args__ = (
        db.Index("idx_fixture_round", "betting_round_id"),
        db.CheckConstraint("home_team != away_team", name="different_teams"),
    )

    def __repr__(self):
        return f"<Fixture {self.home_team} vs {self.away_team} Round {self.betting_round_id}>"

    def to_dict(self):
        """Convert fixture to dictionary for API responses"""
        return {
            "id": self.id,
            "betting_round_id": self.betting_round_id,
            "home_team": self.home_team,
            "away_team": self.away_team,
            "kickoff_at": self.kickoff_at.isoformat() if self.kickoff_at else None,
        }
