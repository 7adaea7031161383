from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from models.query import _utcnow


class AdsKeywordMetrics(SQLModel, table=True):
    query_id: str = Field(foreign_key="query.id", primary_key=True)
    avg_monthly_searches: Optional[int] = None
    competition: Optional[str] = None  # LOW|MEDIUM|HIGH
    top_of_page_bid_low_micros: Optional[int] = None
    top_of_page_bid_high_micros: Optional[int] = None
    currency_code: str = "USD"
    fetched_at: datetime = Field(default_factory=_utcnow, index=True)


class OpportunityScore(SQLModel, table=True):
    query_id: str = Field(foreign_key="query.id", primary_key=True)
    window: str = Field(primary_key=True)

    opportunity_score: float = Field(default=0.0, index=True)
    efficiency_score: float = 0.0
    demand_score: float = 0.0
    momentum_score: float = 0.0
    cpc_score: float = 0.0

    # explainability: momentum sub-scores
    slope: float = 0.0
    acceleration: float = 0.0
    consistency: float = 0.0

    calculated_at: datetime = Field(default_factory=_utcnow, index=True)
