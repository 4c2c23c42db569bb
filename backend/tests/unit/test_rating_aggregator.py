import pytest

from app.domain.rating.aggregator import RatingBounds, aggregate, relative_adjustment
from app.domain.rating.models import ComponentScores, TIERS, tier_for

BOUNDS = RatingBounds()


def test_aggregate_sums_components_inside_reference_band():
    result = aggregate(ComponentScores(study=20.0, plan=10.0), 1000, BOUNDS)
    assert result.total_dps == 30.0
    assert result.breakdown.relative_adjustment == 0.0
    assert result.new_rating == 1030
    assert result.change == 30


def test_aggregate_clamps_raw_dps():
    result = aggregate(ComponentScores(discipline_penalty=-480.0), 1200, BOUNDS)
    assert result.total_dps == -100.0
    assert result.new_rating == 1100


def test_aggregate_caps_daily_change():
    bounds = RatingBounds(max_daily_change=25)
    up = aggregate(ComponentScores(study=30.0, plan=25.0), 1000, bounds)
    down = aggregate(ComponentScores(discipline_penalty=-50.0, plan=-25.0), 1000, bounds)
    assert up.change == 25
    assert down.change == -25


def test_aggregate_applies_scaling_factor_with_half_up_rounding():
    bounds = RatingBounds(scaling_factor=0.5)
    result = aggregate(ComponentScores(study=5.0), 1000, bounds)
    assert result.change == 3


def test_rating_stays_within_floor_and_ceiling():
    low = aggregate(ComponentScores(discipline_penalty=-100.0), 20, BOUNDS)
    high = aggregate(ComponentScores(study=30.0), 3990, BOUNDS)
    assert low.new_rating == 0
    assert low.change == -20
    assert high.new_rating == 4000
    assert high.change == 10


@pytest.mark.parametrize(
    "raw,old,expected",
    [
        (40.0, 1200, 0.0),
        (40.0, 1600, -8.0),
        (-40.0, 1600, 0.0),
        (40.0, 800, 0.0),
        (-40.0, 800, 8.0),
        (60.0, 3000, -30.0),
    ],
)
def test_relative_adjustment_damps_away_from_band(raw, old, expected):
    assert relative_adjustment(raw, old) == expected


def test_damped_gain_above_band():
    result = aggregate(ComponentScores(study=30.0, plan=10.0), 1600, BOUNDS)
    assert result.breakdown.relative_adjustment == -8.0
    assert result.total_dps == 32.0
    assert result.new_rating == 1632


def test_aggregate_is_deterministic():
    scores = ComponentScores(study=12.5, plan=-3.0, budget=20.0, activity=-4.5, discipline_penalty=-8.0)
    first = aggregate(scores, 1450, BOUNDS)
    second = aggregate(scores, 1450, BOUNDS)
    assert first == second


def test_breakdown_round_trips_through_json():
    result = aggregate(ComponentScores(study=10.0, degraded=("budget",)), 1000, BOUNDS)
    payload = result.breakdown.to_json()
    assert payload["version"] == 1
    assert type(result.breakdown).from_json(payload) == result.breakdown


@pytest.mark.parametrize(
    "rating,name",
    [
        (0, "Newbie"),
        (799, "Newbie"),
        (800, "Beginner"),
        (1000, "Pupil"),
        (1199, "Pupil"),
        (1200, "Specialist"),
        (1400, "Expert"),
        (1600, "Candidate Master"),
        (1900, "Master"),
        (2400, "Grandmaster"),
        (4000, "Legendary"),
    ],
)
def test_tier_thresholds(rating, name):
    assert tier_for(rating).name == name


def test_tiers_ascend():
    thresholds = [tier.min_rating for tier in TIERS]
    assert thresholds == sorted(thresholds)
