from datetime import datetime, timedelta, timezone

import pytest

from league_scoring import create_app
from league_scoring import db as _db
from league_scoring.models import (
    LEAGUE,
    BettingRound,
    Competition,
    Fixture,
    Season,
    User,
    UserBet,
    UserPointRecord,
)

CRON_HEADERS = {"Authorization": "Bearer test-cron-secret"}


@pytest.fixture
def app():
    app = create_app("testing")
    with app.app_context():
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db(app):
    return _db


class Seeder:
    """Creates committed rows for tests"""

    def __init__(self, session):
        self.session = session
        self._clock = datetime(2025, 1, 1, tzinfo=timezone.utc)

    def _tick(self):
        self._clock += timedelta(minutes=1)
        return self._clock

    def _save(self, obj):
        self.session.add(obj)
        self.session.commit()
        return obj

    def user(self, username, created_at=None):
        return self._save(
            User(username=username, created_at=created_at or self._tick())
        )

    def competition(self, name="Allsvenskan"):
        return self._save(Competition(name=name))

    def season(self, competition=None, name="2025", completed=False, cup=False):
        competition = competition or self.competition()
        season = Season(
            competition_id=competition.id, name=name, created_at=self._tick()
        )
        if completed:
            season.mark_complete()
        if cup:
            season.activate_last_round_special()
        return self._save(season)

    def round(self, season, name="Round 1", status="scored", fixtures=3):
        betting_round = self._save(
            BettingRound(season_id=season.id, name=name, status=status)
        )
        for index in range(fixtures):
            self._save(
                Fixture(
                    betting_round_id=betting_round.id,
                    home_team=f"Home {index}",
                    away_team=f"Away {index}",
                )
            )
        return betting_round

    def fixture_ids(self, betting_round):
        return [fixture.id for fixture in betting_round.fixtures]

    def bet(self, user, fixture_id, points=0, prediction="1"):
        return self._save(
            UserBet(
                user_id=user.id,
                fixture_id=fixture_id,
                prediction=prediction,
                points_awarded=points,
            )
        )

    def round_total(self, user, betting_round, total):
        """Bets on every fixture of the round summing to total"""
        for fixture_id in self.fixture_ids(betting_round):
            points = 1 if total > 0 else 0
            total -= points
            self.bet(user, fixture_id, points=points)

    def points(self, user, season, betting_round, points, competition_type=LEAGUE):
        return self._save(
            UserPointRecord(
                user_id=user.id,
                season_id=season.id,
                betting_round_id=betting_round.id,
                competition_type=competition_type,
                points=points,
            )
        )


@pytest.fixture
def seed(app):
    return Seeder(_db.session)
