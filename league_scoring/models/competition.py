from datetime import datetime, timezone

from league_scoring import db


class Competition(db.Model):
    __tablename__ = "competitions"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)  # e.g., "Allsvenskan"

    # Timestamps
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    seasons = db.relationship(
        "Season", backref="competition", lazy="dynamic", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<Competition {self.name}>"

    def to_dict(self):
        """Convert competition to dictionary for API responses"""
        return {
            "id": self.id,
            "name": self.name,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
