"""Tests for the Trend Opportunity Score.

Covers the sub-scores, composite weighting, classification thresholds and
the zero-score fallback for unusable series.
"""

import pytest

from config import CLASSIFICATIONS, settings
from engine.errors import InvalidArgumentError
from engine.score import (
    ScoreBreakdown,
    acceleration_score,
    breadth_score,
    classify,
    composite,
    consistency_score,
    raw_slope,
    score_points,
    score_series,
    slope_score,
)
from engine.series import normalize

from conftest import daily


def _series(values, window="30d"):
    return normalize(daily(values), window)


class TestRising:
    def test_rising_series_is_breakout(self):
        result = score_series(_series([10, 20, 40, 70]), "30d", query_id="q1")
        assert result.score >= 80
        assert result.classification == "breakout"
        assert result.slope_per_day > 0
        assert result.score == pytest.approx(97.53, abs=0.05)

    def test_breakdown_values(self):
        b = score_series(_series([10, 20, 40, 70]), "30d").breakdown
        assert b.slope == 100.0
        assert b.acceleration == 100.0
        assert b.consistency == pytest.approx(83.5, abs=0.1)
        assert b.breadth == 100.0


class TestFalling:
    def test_falling_series_is_declining(self):
        result = score_series(_series([50, 48, 45, 40]), "30d")
        assert result.classification == "declining"
        assert result.slope_per_day < 0
        assert result.score == pytest.approx(31.21, abs=0.05)

    def test_negative_slope_clamps_to_zero(self):
        assert slope_score(_series([50, 48, 45, 40]), "30d", settings) == 0.0


class TestMonotonicShift:
    @pytest.mark.parametrize("values", [[10, 20, 40, 70], [50, 48, 45, 40], [3, 9, 2, 8, 1, 7], [0, 0, 1, 0]])
    @pytest.mark.parametrize("window", ["30d", "90d", "12m"])
    def test_raising_all_values_never_lowers_score(self, values, window):
        base = score_series(_series(values, window), window).score
        for shift in (1, 10, 50):
            shifted = score_series(_series([v + shift for v in values], window), window).score
            assert shifted >= base


class TestSubScores:
    def test_raw_slope_of_line(self):
        assert raw_slope(_series([1, 3, 5, 7])) == pytest.approx(2.0)

    def test_slope_uses_day_spacing(self):
        pts = [{"date": "2026-09-01", "value": 0}, {"date": "2026-09-11", "value": 10}]
        assert raw_slope(normalize(pts, "90d")) == pytest.approx(1.0)

    def test_acceleration_neutral_for_short_series(self):
        assert acceleration_score(_series([1, 2, 3]), "30d", settings) == 50.0

    def test_acceleration_neutral_for_straight_line(self):
        assert acceleration_score(_series([1, 2, 3, 4, 5, 6]), "30d", settings) == pytest.approx(50.0)

    def test_consistency_zero_for_all_zero(self):
        assert consistency_score(_series([0, 0, 0])) == 0.0

    def test_consistency_full_for_perfect_line(self):
        assert consistency_score(_series([10, 20, 30, 40])) == pytest.approx(100.0)

    def test_breadth_counts_weeks_above_floor(self):
        # two 7-day buckets: first at 0, second at 20
        values = [0] * 7 + [20] * 7
        assert breadth_score(_series(values), "30d", settings) == 50.0


class TestClassify:
    def test_breakout_needs_positive_slope(self):
        assert classify(85.0, 0.5, settings) == "breakout"
        assert classify(85.0, 0.0, settings) == "growing"
        assert classify(85.0, -1.0, settings) == "growing"

    def test_thresholds(self):
        assert classify(60.0, 1.0, settings) == "growing"
        assert classify(59.99, 1.0, settings) == "stable"
        assert classify(40.0, -1.0, settings) == "stable"
        assert classify(39.99, 1.0, settings) == "declining"

    def test_labels_come_from_config(self):
        labels = [classify(s, 1.0, settings) for s in (95.0, 65.0, 45.0, 5.0)]
        assert tuple(labels) == CLASSIFICATIONS


class TestComposite:
    def test_weights_per_window(self):
        b = ScoreBreakdown(slope=100, acceleration=0, consistency=0, breadth=0)
        assert composite(b, "30d", settings) == 40.0
        assert composite(b, "90d", settings) == 35.0
        assert composite(b, "12m", settings) == 25.0

    def test_weights_sum_to_one(self):
        for w in settings.tos_weights.values():
            assert sum(w.values()) == pytest.approx(1.0)


class TestDegraded:
    def test_single_point_scores_zero(self):
        result = score_points(daily([42]), "30d", query_id="lonely")
        assert result.score == 0.0
        assert result.classification == "declining"
        assert result.degraded is True
        assert result.query_id == "lonely"

    def test_empty_series_is_degraded(self):
        result = score_series([], "90d", query_id="x")
        assert result.degraded is True

    def test_bad_window_raises(self):
        with pytest.raises(InvalidArgumentError):
            score_points(daily([1, 2, 3]), "1y")

    def test_as_dict_shape(self):
        d = score_points(daily([1, 2, 3, 4]), "30d", query_id="q").as_dict()
        assert set(d) == {
            "query_id", "score", "classification", "breakdown",
            "window", "slope_per_day", "degraded", "calculated_at",
        }
        assert set(d["breakdown"]) == {"slope", "acceleration", "consistency", "breadth"}
