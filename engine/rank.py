from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Union

from config import Settings, settings as default_settings
from engine.score import TrendScoreResult

logger = logging.getLogger(__name__)

MICROS_PER_UNIT = 1_000_000


@dataclass
class AdsMetrics:
    avg_monthly_searches: Optional[float] = None
    top_of_page_bid_low_micros: Optional[int] = None
    top_of_page_bid_high_micros: Optional[int] = None
    competition: Optional[str] = None  # LOW|MEDIUM|HIGH


@dataclass
class OpportunityRow:
    query_id: str
    opportunity_score: float
    efficiency_score: float
    demand_score: float
    momentum_score: float
    cpc_score: float
    # momentum sub-scores, carried for explainability
    slope: float = 0.0
    acceleration: float = 0.0
    consistency: float = 0.0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "query_id": self.query_id,
            "opportunity_score": self.opportunity_score,
            "efficiency_score": self.efficiency_score,
            "demand_score": self.demand_score,
            "momentum_score": self.momentum_score,
            "cpc_score": self.cpc_score,
            "slope": self.slope,
            "acceleration": self.acceleration,
            "consistency": self.consistency,
        }


def _clamp100(x: float) -> float:
    return max(0.0, min(100.0, x))


def _finite(x: Any) -> Optional[float]:
    if x is None:
        return None
    v = float(x)
    if math.isnan(v) or math.isinf(v) or v < 0:
        return None
    return v


def bid_currency(m: AdsMetrics) -> Optional[float]:
    """Midpoint of the top-of-page bid range, in currency units."""
    low = _finite(m.top_of_page_bid_low_micros)
    high = _finite(m.top_of_page_bid_high_micros)
    bids = [b for b in (low, high) if b is not None]
    if not bids:
        return None
    return (sum(bids) / len(bids)) / MICROS_PER_UNIT


def demand_score(volume: Optional[float], ceiling: float) -> float:
    v = _finite(volume)
    if not v:
        return 0.0
    return _clamp100(100.0 * math.log1p(v) / math.log1p(max(ceiling, 1.0)))


def cpc_scores(bids: Mapping[str, float]) -> Dict[str, float]:
    """Inverse min-max within this batch: the cheapest bid scores 100, the dearest 0."""
    if not bids:
        return {}
    lo, hi = min(bids.values()), max(bids.values())
    if hi <= lo:
        return {qid: 100.0 for qid in bids}
    return {qid: _clamp100(100.0 * (hi - b) / (hi - lo)) for qid, b in bids.items()}


def _momentum(value: Union[TrendScoreResult, float, None]):
    if isinstance(value, TrendScoreResult):
        return float(value.score), value.breakdown
    return float(value or 0.0), None


def rank_opportunities(
    query_scores: Mapping[str, Union[TrendScoreResult, float, None]],
    ads_metrics: Mapping[str, Optional[AdsMetrics]],
    cfg: Optional[Settings] = None,
) -> List[OpportunityRow]:
    """
    Combine TOS momentum with demand/CPC signals into an opportunity score.
    Every query in `query_scores` yields a row; missing or unusable ads data
    gives demand_score = cpc_score = 0. CPC normalization covers exactly the
    rows passed in, so scores compare only within one call.
    """
    cfg = cfg or default_settings

    volumes: Dict[str, Optional[float]] = {}
    bids: Dict[str, float] = {}
    for qid in query_scores:
        m = ads_metrics.get(qid)
        if m is None:
            continue
        try:
            volumes[qid] = _finite(m.avg_monthly_searches)
            bid = bid_currency(m)
        except (TypeError, ValueError) as e:
            logger.warning("query %s: unusable ads metrics (%s), ranking on momentum only", qid, e)
            volumes.pop(qid, None)
            continue
        if bid is not None:
            bids[qid] = bid

    cpc = cpc_scores(bids)

    rows: List[OpportunityRow] = []
    for qid, value in query_scores.items():
        momentum, breakdown = _momentum(value)
        momentum = _clamp100(momentum)
        demand = demand_score(volumes.get(qid), cfg.demand_volume_ceiling)
        cpc_s = cpc.get(qid, 0.0)

        efficiency = _clamp100(cfg.w_eff_demand * demand + cfg.w_eff_cpc * cpc_s)
        opportunity = _clamp100(
            cfg.w_momentum * momentum
            + cfg.w_demand * demand
            + cfg.w_efficiency * efficiency
        )

        rows.append(
            OpportunityRow(
                query_id=qid,
                opportunity_score=round(opportunity, 2),
                efficiency_score=round(efficiency, 2),
                demand_score=round(demand, 2),
                momentum_score=round(momentum, 2),
                cpc_score=round(cpc_s, 2),
                slope=breakdown.slope if breakdown else 0.0,
                acceleration=breakdown.acceleration if breakdown else 0.0,
                consistency=breakdown.consistency if breakdown else 0.0,
            )
        )

    rows.sort(key=lambda r: (-r.opportunity_score, r.query_id))
    logger.info("ranked %d queries (%d with ads metrics)", len(rows), len(volumes))
    return rows
