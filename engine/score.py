from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

import numpy as np

from config import CLASSIFICATIONS, WINDOW_DAYS, Settings, settings as default_settings
from engine.errors import InvalidInputError
from engine.series import SeriesPoint, normalize, validate_window

logger = logging.getLogger(__name__)


@dataclass
class ScoreBreakdown:
    slope: float = 0.0
    acceleration: float = 0.0
    consistency: float = 0.0
    breadth: float = 0.0

    def as_dict(self) -> Dict[str, float]:
        return {
            "slope": self.slope,
            "acceleration": self.acceleration,
            "consistency": self.consistency,
            "breadth": self.breadth,
        }


@dataclass
class TrendScoreResult:
    query_id: str
    score: float
    classification: str
    breakdown: ScoreBreakdown
    window: str
    slope_per_day: float = 0.0  # raw least-squares slope, signed
    degraded: bool = False
    calculated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_dict(self) -> Dict[str, Any]:
        return {
            "query_id": self.query_id,
            "score": self.score,
            "classification": self.classification,
            "breakdown": self.breakdown.as_dict(),
            "window": self.window,
            "slope_per_day": self.slope_per_day,
            "degraded": self.degraded,
            "calculated_at": self.calculated_at.isoformat(),
        }


def _clamp100(x: float) -> float:
    return max(0.0, min(100.0, float(x)))


def _xy(series: Sequence[SeriesPoint]):
    # x is measured in days from the first sample, so gaps carry no weight
    d0 = series[0].date
    x = np.array([(p.date - d0).days for p in series], dtype=float)
    y = np.array([p.value for p in series], dtype=float)
    return x, y


def _fit(x: np.ndarray, y: np.ndarray):
    """Least-squares line on centered data. Returns (slope, residuals)."""
    xc = x - x.mean()
    yc = y - y.mean()
    sxx = float(np.dot(xc, xc))
    if len(x) < 2 or sxx <= 0:
        return 0.0, yc
    slope = float(np.dot(xc, yc)) / sxx
    return slope, yc - slope * xc


def _max_slope(window: str, cfg: Settings) -> float:
    # full value range traversed over the window length
    return cfg.value_range / float(WINDOW_DAYS[window])


def raw_slope(series: Sequence[SeriesPoint]) -> float:
    if len(series) < 2:
        return 0.0
    x, y = _xy(series)
    return _fit(x, y)[0]


def slope_score(series: Sequence[SeriesPoint], window: str, cfg: Settings) -> float:
    slope = raw_slope(series)
    return _clamp100(100.0 * slope / _max_slope(window, cfg))


def acceleration_score(series: Sequence[SeriesPoint], window: str, cfg: Settings) -> float:
    # neutral when the halves cannot each hold a line
    if len(series) < 4:
        return 50.0
    mid = len(series) // 2
    accel = raw_slope(series[mid:]) - raw_slope(series[:mid])
    return _clamp100(50.0 + 50.0 * accel / _max_slope(window, cfg))


def consistency_score(series: Sequence[SeriesPoint]) -> float:
    """
    Noise around the fitted trend relative to the mean level.
    A smooth climb scores high; a spiky series with the same net slope scores low.
    """
    x, y = _xy(series)
    mean = float(y.mean())
    if mean <= 0:
        return 0.0
    _, residuals = _fit(x, y)
    if len(residuals) < 2:
        return 100.0
    cv = float(np.std(residuals, ddof=1)) / mean
    return _clamp100(100.0 * (1.0 - cv))


def breadth_score(series: Sequence[SeriesPoint], window: str, cfg: Settings) -> float:
    period = max(1, int(cfg.breadth_period_days[window]))
    d0 = series[0].date
    buckets: Dict[int, List[float]] = {}
    for p in series:
        buckets.setdefault((p.date - d0).days // period, []).append(p.value)

    hits = sum(1 for vals in buckets.values() if sum(vals) / len(vals) > cfg.breadth_floor)
    return _clamp100(100.0 * hits / len(buckets))


def classify(score: float, slope: float, cfg: Settings) -> str:
    breakout, growing, stable, declining = CLASSIFICATIONS
    if score >= cfg.breakout_min and slope > 0:
        return breakout
    if score >= cfg.growing_min:
        return growing
    if score >= cfg.stable_min:
        return stable
    return declining


def composite(breakdown: ScoreBreakdown, window: str, cfg: Settings) -> float:
    w = cfg.tos_weights[window]
    total = (
        w["slope"] * breakdown.slope
        + w["acceleration"] * breakdown.acceleration
        + w["consistency"] * breakdown.consistency
        + w["breadth"] * breakdown.breadth
    )
    return round(_clamp100(total), 2)


def degraded_result(query_id: str, window: str) -> TrendScoreResult:
    return TrendScoreResult(
        query_id=query_id,
        score=0.0,
        classification=CLASSIFICATIONS[-1],
        breakdown=ScoreBreakdown(),
        window=window,
        degraded=True,
    )


def score_series(
    series: Sequence[SeriesPoint],
    window: str,
    query_id: str = "",
    cfg: Optional[Settings] = None,
) -> TrendScoreResult:
    """Compute the Trend Opportunity Score (0-100) for a normalized series."""
    cfg = cfg or default_settings
    validate_window(window)
    if len(series) < 2:
        logger.warning("query %s: %d point(s) in %s series, returning zero score", query_id, len(series), window)
        return degraded_result(query_id, window)

    breakdown = ScoreBreakdown(
        slope=round(slope_score(series, window, cfg), 2),
        acceleration=round(acceleration_score(series, window, cfg), 2),
        consistency=round(consistency_score(series), 2),
        breadth=round(breadth_score(series, window, cfg), 2),
    )
    slope = raw_slope(series)
    score = composite(breakdown, window, cfg)

    return TrendScoreResult(
        query_id=query_id,
        score=score,
        classification=classify(score, slope, cfg),
        breakdown=breakdown,
        window=window,
        slope_per_day=round(slope, 4),
    )


def score_points(
    raw_points: Iterable[Any],
    window: str,
    query_id: str = "",
    cfg: Optional[Settings] = None,
) -> TrendScoreResult:
    """Normalize then score; an unusable series yields a zero `declining` result."""
    validate_window(window)
    try:
        series = normalize(raw_points, window)
    except InvalidInputError as e:
        logger.warning("query %s: %s", query_id, e)
        return degraded_result(query_id, window)
    return score_series(series, window, query_id=query_id, cfg=cfg)
