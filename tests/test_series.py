"""Tests for raw-point normalization."""

from datetime import date, datetime, timedelta, timezone

import pytest

from engine.errors import InvalidArgumentError, InvalidInputError
from engine.series import SeriesPoint, normalize, parse_date, parse_timestamp, snapshots_to_points
from models import TrendSnapshot

from conftest import daily


class TestNormalize:
    def test_sorts_by_date(self):
        pts = [
            {"date": "2026-09-03", "value": 30},
            {"date": "2026-09-01", "value": 10},
            {"date": "2026-09-02", "value": 20},
        ]
        series = normalize(pts, "30d")
        assert [p.date for p in series] == [date(2026, 9, 1), date(2026, 9, 2), date(2026, 9, 3)]
        assert [p.value for p in series] == [10.0, 20.0, 30.0]

    def test_duplicate_date_keeps_latest_capture(self):
        early = datetime(2026, 9, 5, 8, 0, tzinfo=timezone.utc)
        late = early + timedelta(hours=3)
        pts = [
            {"date": "2026-09-01", "value": 99, "captured_at": late},
            {"date": "2026-09-01", "value": 11, "captured_at": early},
            {"date": "2026-09-02", "value": 20},
        ]
        series = normalize(pts, "30d")
        assert len(series) == 2
        assert series[0].value == 99.0

    def test_duplicate_without_capture_time_keeps_last_seen(self):
        pts = [
            {"date": "2026-09-01", "value": 1},
            {"date": "2026-09-01", "value": 2},
            {"date": "2026-09-02", "value": 3},
        ]
        assert normalize(pts, "30d")[0].value == 2.0

    def test_mixed_capture_time_types_compare(self):
        pts = [
            {"date": "2026-09-01", "value": 5, "captured_at": "2026-09-02T00:00:00"},
            {"date": "2026-09-01", "value": 7, "captured_at": datetime(2026, 9, 3, tzinfo=timezone.utc)},
            {"date": "2026-09-01", "value": 6, "captured_at": "2026-09-02T21:00:00-02:00"},
            {"date": "2026-09-02", "value": 9},
        ]
        assert normalize(pts, "30d")[0].value == 7.0

    def test_unparseable_capture_time_raises(self):
        pts = [
            {"date": "2026-09-01", "value": 5, "captured_at": "yesterday"},
            {"date": "2026-09-02", "value": 9},
        ]
        with pytest.raises(InvalidInputError):
            normalize(pts, "30d")

    def test_gaps_are_not_filled(self):
        pts = [{"date": "2026-09-01", "value": 10}, {"date": "2026-09-10", "value": 40}]
        series = normalize(pts, "90d")
        assert len(series) == 2
        assert (series[1].date - series[0].date).days == 9

    def test_missing_value_is_zero(self):
        pts = [{"date": "2026-09-01", "value": None}, {"date": "2026-09-02", "value": 5}]
        assert normalize(pts, "30d")[0].value == 0.0

    def test_single_date_raises(self):
        with pytest.raises(InvalidInputError):
            normalize([{"date": "2026-09-01", "value": 10}], "30d")

    def test_same_date_twice_is_still_one_point(self):
        pts = [{"date": "2026-09-01", "value": 1}, {"date": "2026-09-01", "value": 2}]
        with pytest.raises(InvalidInputError):
            normalize(pts, "30d")

    def test_empty_raises(self):
        with pytest.raises(InvalidInputError):
            normalize([], "30d")

    def test_nan_value_raises(self):
        pts = [{"date": "2026-09-01", "value": float("nan")}, {"date": "2026-09-02", "value": 5}]
        with pytest.raises(InvalidInputError):
            normalize(pts, "30d")

    def test_bad_window_raises(self):
        with pytest.raises(InvalidArgumentError):
            normalize(daily([1, 2, 3]), "7d")

    def test_idempotent(self):
        pts = daily([5, 3, 8, 1]) + [{"date": "2026-09-02", "value": 7}]
        once = normalize(pts, "30d")
        assert normalize(once, "30d") == once

    def test_accepts_objects(self):
        series = normalize([SeriesPoint(date(2026, 9, 1), 1.0), SeriesPoint(date(2026, 9, 2), 2.0)], "12m")
        assert [p.value for p in series] == [1.0, 2.0]


class TestParseDate:
    def test_iso_string(self):
        assert parse_date("2026-09-01") == date(2026, 9, 1)

    def test_datetime_string_with_z(self):
        assert parse_date("2026-09-01T10:00:00Z") == date(2026, 9, 1)

    def test_garbage_raises(self):
        with pytest.raises(InvalidInputError):
            parse_date("yesterday")


class TestParseTimestamp:
    def test_none_passes_through(self):
        assert parse_timestamp(None) is None

    def test_aware_is_shifted_to_utc(self):
        assert parse_timestamp("2026-09-01T10:00:00+02:00") == datetime(2026, 9, 1, 8, 0)

    def test_plain_date_is_midnight(self):
        assert parse_timestamp(date(2026, 9, 1)) == datetime(2026, 9, 1)

    def test_number_raises(self):
        with pytest.raises(InvalidInputError):
            parse_timestamp(12345)


class TestSnapshotsToPoints:
    def _snap(self, day, value, region=None):
        return TrendSnapshot(query_id="q", date=date(2026, 9, day), interest_value=value, window="30d", region=region)

    def test_prefers_global_rows(self):
        snaps = [self._snap(1, 10), self._snap(1, 80, region="US"), self._snap(2, 20)]
        pts = snapshots_to_points(snaps)
        assert [p["value"] for p in pts] == [10, 20]

    def test_explicit_region(self):
        snaps = [self._snap(1, 10), self._snap(1, 80, region="US")]
        pts = snapshots_to_points(snaps, region="US")
        assert [p["value"] for p in pts] == [80]

    def test_regional_only(self):
        snaps = [self._snap(1, 10, region="US"), self._snap(2, 20, region="US")]
        assert len(snapshots_to_points(snaps)) == 2

    def test_regions_are_never_mixed(self):
        # same six dates in two regions, GB captured later
        us = [self._snap(d, 10 * d, region="US") for d in range(1, 7)]
        gb = [self._snap(d, 1, region="GB") for d in range(1, 7)]
        for s in gb:
            s.created_at = datetime(2026, 9, 30, tzinfo=timezone.utc)
        series = normalize(snapshots_to_points(us + gb), "30d")
        values = {p.value for p in series}
        assert values in ({1.0}, {10.0, 20.0, 30.0, 40.0, 50.0, 60.0})

    def test_tied_regions_pick_first_by_name(self):
        us = [self._snap(d, 10 * d, region="US") for d in range(1, 4)]
        gb = [self._snap(d, 1, region="GB") for d in range(1, 4)]
        assert [p["value"] for p in snapshots_to_points(us + gb)] == [1, 1, 1]

    def test_region_with_most_rows_wins(self):
        us = [self._snap(d, 10 * d, region="US") for d in range(1, 5)]
        gb = [self._snap(d, 1, region="GB") for d in range(1, 3)]
        assert [p["value"] for p in snapshots_to_points(gb + us)] == [10, 20, 30, 40]
