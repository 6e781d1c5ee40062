from collections import Counter

from league_scoring.utils.standings import (
    StandingsEntry,
    UserPointTotal,
    identify_winners,
    rank_standings,
    summarize_standings,
)


def _ranks(entries):
    return [entry.rank for entry in entries]


def _ties(entries):
    return [entry.is_tied for entry in entries]


def test_competition_ranking_with_tie_in_the_middle():
    entries = rank_standings(
        [(1, "alice", 30), (2, "bob", 25), (3, "carol", 25), (4, "dave", 10)]
    )

    assert _ranks(entries) == [1, 2, 2, 4]
    assert _ties(entries) == [False, True, True, False]
    assert [e.username for e in entries] == ["alice", "bob", "carol", "dave"]


def test_three_way_tie_for_first():
    entries = rank_standings(
        [(1, "carol", 50), (2, "alice", 50), (3, "bob", 50), (4, "dave", 40)]
    )

    assert _ranks(entries) == [1, 1, 1, 4]
    assert _ties(entries) == [True, True, True, False]
    assert [e.username for e in entries[:3]] == ["alice", "bob", "carol"]


def test_tie_at_the_bottom_is_flagged():
    entries = rank_standings([(1, "a", 9), (2, "b", 3), (3, "c", 3)])

    assert _ranks(entries) == [1, 2, 2]
    assert _ties(entries) == [False, True, True]


def test_empty_and_single_entry():
    assert rank_standings([]) == []

    (only,) = rank_standings([(7, "solo", 0)])
    assert only.rank == 1
    assert only.is_tied is False


def test_all_zero_points_share_first_place():
    entries = rank_standings([(1, "a", 0), (2, "b", 0)])

    assert _ranks(entries) == [1, 1]
    assert all(e.is_tied for e in entries)


def test_output_preserves_inputs_and_ranks_are_monotonic():
    totals = [
        UserPointTotal(user_id=i, username=f"user{i:02d}", points=(i * 7) % 5)
        for i in range(1, 21)
    ]

    entries = rank_standings(totals)

    assert len(entries) == len(totals)
    assert Counter((e.user_id, e.total_points) for e in entries) == Counter(
        (t.user_id, t.points) for t in totals
    )
    for previous, current in zip(entries, entries[1:]):
        assert previous.total_points >= current.total_points
        assert previous.rank <= current.rank
        if previous.total_points == current.total_points:
            assert previous.rank == current.rank
    for position, entry in enumerate(entries):
        if position == 0 or entries[position - 1].total_points != entry.total_points:
            assert entry.rank == position + 1


def test_missing_username_sorts_first_among_equals():
    entries = rank_standings([(1, "zed", 5), (2, None, 5)])

    assert [e.user_id for e in entries] == [2, 1]


def test_equal_names_fall_back_to_numeric_user_id():
    entries = rank_standings([(10, None, 5), (2, None, 5), (100, "same", 5), (9, "same", 5)])

    assert [e.user_id for e in entries] == [2, 10, 9, 100]


def test_rounds_participated_is_carried_through():
    (entry,) = rank_standings(
        [UserPointTotal(user_id=1, username="a", points=4, rounds_participated=3)]
    )

    assert entry.rounds_participated == 3


def test_identify_winners_returns_whole_tied_group():
    entries = rank_standings([(1, "a", 10), (2, "b", 10), (3, "c", 5)])

    winners = identify_winners(entries, number_of_winners=1)

    assert [w.user_id for w in winners] == [1, 2]


def test_identify_winners_handles_missing_first_place():
    assert identify_winners([]) == []

    orphan = StandingsEntry(
        user_id=1, username="a", total_points=3, rank=2, is_tied=False
    )
    assert identify_winners([orphan]) == []


def test_summarize_standings():
    entries = rank_standings([(1, "a", 10), (2, "b", 5), (3, "c", 0)])

    summary = summarize_standings(entries)

    assert summary.total_participants == 3
    assert summary.max_points == 10
    assert summary.average_points == 5.0
    assert summarize_standings([]).total_participants == 0
