import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from league_scoring.errors import ConflictingWrite, StoreFailure
from league_scoring.models import LAST_ROUND_SPECIAL, LEAGUE, Season, SeasonWinner
from league_scoring.services.ledger import LedgerRepository
from league_scoring.services.winner_determination import WinnerDeterminationService
from league_scoring.utils.standings import StandingsEntry


@pytest.fixture
def service(app):
    return WinnerDeterminationService()


def _season_with_points(seed, points_by_user, completed=True, cup=False, name="2025"):
    season = seed.season(name=name, completed=completed, cup=cup)
    betting_round = seed.round(season)
    users = {}
    for username, points in points_by_user.items():
        user = seed.user(f"{username}-{name}")
        seed.points(user, season, betting_round, points)
        users[username] = user
    return season, users


def test_single_winner_is_recorded(seed, service, db):
    season, users = _season_with_points(seed, {"alice": 30, "bob": 25, "carol": 10})

    result = service.determine_winners(season.id)

    assert result.errors == []
    assert result.is_already_determined is False
    assert result.total_participants == 3
    assert [w.user_id for w in result.winners] == [users["alice"].id]
    assert result.winners[0].is_tied is False

    rows = SeasonWinner.query.filter_by(season_id=season.id).all()
    assert len(rows) == 1
    assert rows[0].winner_count == 1
    assert db.session.get(Season, season.id).winner_determined_at is not None


def test_tied_winners_are_all_recorded(seed, service):
    season, users = _season_with_points(seed, {"alice": 50, "bob": 50, "carol": 50, "dave": 40})

    result = service.determine_winners(season.id)

    assert len(result.winners) == 3
    assert all(w.is_tied and w.rank == 1 for w in result.winners)
    assert result.to_dict()["is_tied"] is True
    assert SeasonWinner.query.filter_by(season_id=season.id).count() == 3


def test_second_call_returns_stored_winners(seed, service):
    season, users = _season_with_points(seed, {"alice": 20, "bob": 20})

    first = service.determine_winners(season.id)
    second = service.determine_winners(season.id)

    assert second.is_already_determined is True
    assert second.errors == []
    assert {w.user_id for w in second.winners} == {w.user_id for w in first.winners}
    assert all(w.is_tied for w in second.winners)
    assert SeasonWinner.query.filter_by(season_id=season.id).count() == 2


def test_stored_winners_survive_later_point_changes(seed, service):
    season, users = _season_with_points(seed, {"alice": 20, "bob": 10})
    service.determine_winners(season.id)

    late_round = seed.round(season, name="Round 2")
    seed.points(users["bob"], season, late_round, 50)

    result = service.determine_winners(season.id)

    assert result.is_already_determined is True
    assert [w.user_id for w in result.winners] == [users["alice"].id]


def test_no_participants_records_nothing(seed, service):
    season = seed.season(completed=True)

    result = service.determine_winners(season.id)

    assert result.winners == []
    assert result.errors == []
    assert result.total_participants == 0
    assert SeasonWinner.query.count() == 0


def test_unknown_season_is_reported(service):
    result = service.determine_winners(999)

    assert result.winners == []
    assert result.errors[0]["kind"] == "not_found"
    assert result.errors[0]["season_id"] == 999


def test_partial_winner_set_is_an_invariant_violation(seed, service, db):
    season, users = _season_with_points(seed, {"alice": 20, "bob": 20})
    service.determine_winners(season.id)

    db.session.delete(
        SeasonWinner.query.filter_by(season_id=season.id, user_id=users["bob"].id).one()
    )
    db.session.commit()

    result = service.determine_winners(season.id)

    assert result.winners == []
    assert result.errors[0]["kind"] == "invariant_violation"
    assert SeasonWinner.query.filter_by(season_id=season.id).count() == 1


def test_competition_types_are_independent(seed, service, db):
    season, users = _season_with_points(seed, {"alice": 30, "bob": 10}, cup=True)
    cup_round = seed.round(season, name="Cup Round")
    seed.points(users["bob"], season, cup_round, 9, competition_type=LAST_ROUND_SPECIAL)
    seed.points(users["alice"], season, cup_round, 2, competition_type=LAST_ROUND_SPECIAL)

    league = service.determine_winners(season.id, LEAGUE)
    cup = service.determine_winners(season.id, LAST_ROUND_SPECIAL)

    assert [w.user_id for w in league.winners] == [users["alice"].id]
    assert [w.user_id for w in cup.winners] == [users["bob"].id]
    assert db.session.get(Season, season.id).cup_winner_determined_at is not None


def test_unknown_competition_type_is_rejected(service):
    with pytest.raises(ValueError):
        service.determine_winners(1, "friendly")


def test_sweep_processes_only_eligible_seasons_in_order(seed, service):
    done, _ = _season_with_points(seed, {"a": 1}, name="2023")
    open_season, _ = _season_with_points(seed, {"b": 1}, completed=False, name="2024")
    also_done, _ = _season_with_points(seed, {"c": 2}, name="2025")

    batch = service.determine_for_eligible_seasons(LEAGUE)

    assert [r.season_id for r in batch.results] == [done.id, also_done.id]
    assert batch.newly_determined == [done.id, also_done.id]
    assert SeasonWinner.query.filter_by(season_id=open_season.id).count() == 0


def test_cup_sweep_requires_activation(seed, service):
    plain, _ = _season_with_points(seed, {"a": 1}, name="2024")
    cup_season, _ = _season_with_points(seed, {"b": 1}, cup=True, name="2025")

    batch = service.determine_for_eligible_seasons(LAST_ROUND_SPECIAL)

    assert [r.season_id for r in batch.results] == [cup_season.id]
    assert plain.id not in [r.season_id for r in batch.results]


def test_sweep_continues_after_store_failure(seed, monkeypatch):
    first, _ = _season_with_points(seed, {"a": 3}, name="2024")
    second, users = _season_with_points(seed, {"b": 4}, name="2025")

    original = LedgerRepository.list_user_point_totals

    def flaky(self, season_id, competition_type):
        if season_id == first.id:
            raise StoreFailure("database unavailable")
        return original(self, season_id, competition_type)

    monkeypatch.setattr(LedgerRepository, "list_user_point_totals", flaky)

    batch = WinnerDeterminationService().determine_for_eligible_seasons(LEAGUE)

    assert len(batch.errors) == 1
    assert batch.errors[0]["kind"] == "store_failure"
    assert batch.errors[0]["season_id"] == first.id
    assert batch.newly_determined == [second.id]
    assert SeasonWinner.query.filter_by(season_id=first.id).count() == 0


def test_concurrent_insert_falls_back_to_stored_winners(seed, monkeypatch):
    season, users = _season_with_points(seed, {"alice": 8, "bob": 3})

    original_read = LedgerRepository.list_existing_winners
    original_insert = LedgerRepository.insert_winners
    calls = []

    def racing_read(self, season_id, competition_type):
        calls.append(season_id)
        if len(calls) == 1:
            # another writer commits the same winner between our read and insert
            entries, _ = WinnerDeterminationService(self).get_standings(
                season_id, competition_type
            )
            original_insert(self, season_id, competition_type, entries[:1])
            return []
        return original_read(self, season_id, competition_type)

    monkeypatch.setattr(LedgerRepository, "list_existing_winners", racing_read)

    result = WinnerDeterminationService().determine_winners(season.id)

    assert result.errors == []
    assert result.is_already_determined is True
    assert [w.user_id for w in result.winners] == [users["alice"].id]
    assert SeasonWinner.query.filter_by(season_id=season.id).count() == 1


def test_get_standings_and_hall_of_fame_reads(seed, service):
    season, users = _season_with_points(seed, {"alice": 5, "bob": 7})

    entries, summary = service.get_standings(season.id)
    assert [e.username for e in entries] == ["bob-2025", "alice-2025"]
    assert summary.max_points == 7

    assert service.get_season_winners(season.id) == []
    service.determine_winners(season.id)
    winners = service.get_season_winners(season.id)
    assert [w.user_id for w in winners] == [users["bob"].id]


def test_sweep_continues_after_unexpected_error(seed, monkeypatch):
    first, _ = _season_with_points(seed, {"a": 3}, name="2024")
    second, users = _season_with_points(seed, {"b": 4}, name="2025")

    original = LedgerRepository.list_user_point_totals

    def broken(self, season_id, competition_type):
        if season_id == first.id:
            raise RuntimeError("unexpected ledger shape")
        return original(self, season_id, competition_type)

    monkeypatch.setattr(LedgerRepository, "list_user_point_totals", broken)

    batch = WinnerDeterminationService().determine_for_eligible_seasons(LEAGUE)

    assert [r.season_id for r in batch.results] == [first.id, second.id]
    assert len(batch.errors) == 1
    assert batch.errors[0]["kind"] == "store_failure"
    assert batch.errors[0]["season_id"] == first.id
    assert "unexpected ledger shape" in batch.errors[0]["message"]
    assert batch.newly_determined == [second.id]
    assert [w.user_id for w in batch.results[1].winners] == [users["b"].id]


def test_concurrent_writer_with_different_winner_wins_the_claim(seed, monkeypatch):
    season, users = _season_with_points(seed, {"alice": 8, "bob": 3})

    original_read = LedgerRepository.list_existing_winners
    original_insert = LedgerRepository.insert_winners
    calls = []

    def racing_read(self, season_id, competition_type):
        calls.append(season_id)
        if len(calls) == 1:
            # a writer working from different standings records bob first
            bob = StandingsEntry(
                user_id=users["bob"].id,
                username=users["bob"].username,
                total_points=3,
                rank=1,
                is_tied=False,
            )
            original_insert(self, season_id, competition_type, [bob])
            return []
        return original_read(self, season_id, competition_type)

    monkeypatch.setattr(LedgerRepository, "list_existing_winners", racing_read)

    result = WinnerDeterminationService().determine_winners(season.id)

    assert result.errors == []
    assert result.is_already_determined is True
    assert [w.user_id for w in result.winners] == [users["bob"].id]
    rows = SeasonWinner.query.filter_by(season_id=season.id).all()
    assert [row.user_id for row in rows] == [users["bob"].id]


def test_insert_winners_refuses_a_claimed_season(seed, db):
    season, users = _season_with_points(seed, {"alice": 8, "bob": 3})
    ledger = LedgerRepository()

    def entry(user, points):
        return StandingsEntry(
            user_id=user.id,
            username=user.username,
            total_points=points,
            rank=1,
            is_tied=False,
        )

    ledger.insert_winners(season.id, LEAGUE, [entry(users["alice"], 8)])

    with pytest.raises(ConflictingWrite):
        ledger.insert_winners(season.id, LEAGUE, [entry(users["bob"], 3)])

    rows = SeasonWinner.query.filter_by(season_id=season.id).all()
    assert [row.user_id for row in rows] == [users["alice"].id]

    # the cup stamp is a separate key
    ledger.insert_winners(season.id, LAST_ROUND_SPECIAL, [entry(users["bob"], 3)])
    assert db.session.get(Season, season.id).cup_winner_determined_at is not None


def test_stamp_without_winner_rows_is_an_invariant_violation(seed, service, db):
    season, _ = _season_with_points(seed, {"alice": 8})
    season.winner_determined_at = season.completed_at
    db.session.commit()

    result = service.determine_winners(season.id)

    assert result.winners == []
    assert result.errors[0]["kind"] == "invariant_violation"
    assert SeasonWinner.query.count() == 0


def test_failed_commit_leaves_no_winners_and_no_stamp(seed, service, db, monkeypatch):
    season, _ = _season_with_points(seed, {"alice": 9, "bob": 9, "carol": 1})

    def failing_commit(self):
        self.flush()
        raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(Session, "commit", failing_commit)

    result = service.determine_winners(season.id)

    assert result.winners == []
    assert result.errors[0]["kind"] == "store_failure"
    assert SeasonWinner.query.count() == 0
    assert db.session.get(Season, season.id).winner_determined_at is None

    monkeypatch.undo()
    retry = service.determine_winners(season.id)

    assert retry.errors == []
    assert len(retry.winners) == 2
    assert SeasonWinner.query.count() == 2


def test_hall_of_fame_lists_winners_newest_first(seed, service):
    older, older_users = _season_with_points(seed, {"alice": 5, "bob": 2}, name="2024")
    newer, newer_users = _season_with_points(
        seed, {"carol": 4, "dave": 4}, cup=True, name="2025"
    )
    cup_round = seed.round(newer, name="Cup Round")
    seed.points(newer_users["dave"], newer, cup_round, 6, competition_type=LAST_ROUND_SPECIAL)
    service.determine_winners(older.id)
    service.determine_winners(newer.id)
    service.determine_winners(newer.id, LAST_ROUND_SPECIAL)

    winners, total = service.list_hall_of_fame()
    assert total == 4
    assert winners[0]["season_id"] == newer.id
    assert winners[-1]["user_id"] == older_users["alice"].id
    assert winners[-1]["season_name"] == "2024"

    page, total = service.list_hall_of_fame(competition_type=LEAGUE, limit=1, offset=2)
    assert total == 3
    assert [w["user_id"] for w in page] == [older_users["alice"].id]

    cup, total = service.list_hall_of_fame(competition_type=LAST_ROUND_SPECIAL)
    assert total == 1
    assert cup[0]["user_id"] == newer_users["dave"].id


def test_hall_of_fame_stats_count_wins_per_user(seed, service):
    first, users = _season_with_points(seed, {"alice": 5, "bob": 2}, cup=True, name="2024")
    cup_round = seed.round(first, name="Cup Round")
    seed.points(users["alice"], first, cup_round, 3, competition_type=LAST_ROUND_SPECIAL)
    second = seed.season(name="2025", completed=True)
    second_round = seed.round(second)
    seed.points(users["bob"], second, second_round, 7)
    service.determine_for_eligible_seasons(LEAGUE)
    service.determine_for_eligible_seasons(LAST_ROUND_SPECIAL)

    stats = service.get_hall_of_fame_stats()

    assert [s["user_id"] for s in stats] == [users["alice"].id, users["bob"].id]
    assert stats[0]["wins"] == 2
    assert stats[0]["league_wins"] == 1
    assert stats[0]["cup_wins"] == 1
    assert stats[0]["total_winning_points"] == 8
    assert stats[1]["wins"] == 1
    assert stats[1]["cup_wins"] == 0

    cup_only = service.get_hall_of_fame_stats(competition_type=LAST_ROUND_SPECIAL)
    assert [s["user_id"] for s in cup_only] == [users["alice"].id]
    assert service.get_hall_of_fame_stats(limit=1)[0]["user_id"] == users["alice"].id
