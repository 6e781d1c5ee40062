"""
Fair-share calculation for retroactive points

A user backfilled into a round gets exactly the total of the worst existing
participant in that round, spread over the round's fixtures at no more than
MAX_POINTS_PER_FIXTURE each.
"""

from dataclasses import asdict, dataclass, field

from league_scoring.errors import InvariantViolation

# Round scoring awards 0 or 1 point per fixture
MAX_POINTS_PER_FIXTURE = 1


@dataclass(frozen=True)
class FairShare:
    minimum_participant_score: int
    participant_count: int
    fixture_points: list = field(default_factory=list)  # [(fixture_id, points), ...]

    @property
    def points_awarded(self):
        return sum(points for _, points in self.fixture_points)


@dataclass(frozen=True)
class RoundPlan:
    round_id: int
    round_name: str
    points_awarded: int
    minimum_participant_score: int
    participant_count: int
    fixture_points: list = field(default_factory=list)

    def to_dict(self):
        data = asdict(self)
        data["fixture_points"] = [
            {"fixture_id": fixture_id, "points": points}
            for fixture_id, points in self.fixture_points
        ]
        return data


def calculate_fair_share(participant_totals, fixture_ids):
    """
    Work out what a late joiner gets for one round.

    Args:
        participant_totals: each existing participant's points for the round
        fixture_ids: the round's fixture ids (sorted ascending here)

    Returns:
        FairShare whose fixture points sum to the minimum participant total

    Raises:
        InvariantViolation: the minimum cannot be spread over the fixtures
    """
    totals = list(participant_totals)
    fixtures = sorted(fixture_ids)
    minimum = min(totals) if totals else 0

    if minimum < 0:
        raise InvariantViolation(
            f"Negative minimum participant score {minimum} cannot be backfilled"
        )

    capacity = len(fixtures) * MAX_POINTS_PER_FIXTURE
    if minimum > capacity:
        raise InvariantViolation(
            f"Minimum participant score {minimum} exceeds what {len(fixtures)} "
            f"fixture(s) can hold at {MAX_POINTS_PER_FIXTURE} point(s) each"
        )

    fixture_points = []
    remaining = minimum
    for fixture_id in fixtures:
        points = min(MAX_POINTS_PER_FIXTURE, remaining)
        fixture_points.append((fixture_id, points))
        remaining -= points

    return FairShare(
        minimum_participant_score=minimum,
        participant_count=len(totals),
        fixture_points=fixture_points,
    )


def build_round_plan(round_id, round_name, participant_totals, fixture_ids):
    """Fair share for a round, packaged with the round's identity"""
    share = calculate_fair_share(participant_totals, fixture_ids)
    return RoundPlan(
        round_id=round_id,
        round_name=round_name,
        points_awarded=share.points_awarded,
        minimum_participant_score=share.minimum_participant_score,
        participant_count=share.participant_count,
        fixture_points=share.fixture_points,
    )
