import datetime as dt
from typing import Optional

from sqlmodel import Field, SQLModel

from models.query import _utcnow


class TrendSnapshot(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    query_id: str = Field(foreign_key="query.id", index=True)
    date: dt.date = Field(index=True)
    interest_value: float = 0.0
    window: str = Field(index=True)  # 30d|90d|12m
    region: Optional[str] = None
    created_at: dt.datetime = Field(default_factory=_utcnow, index=True)


class TrendScore(SQLModel, table=True):
    # latest write per (query, window) wins
    query_id: str = Field(foreign_key="query.id", primary_key=True)
    window: str = Field(primary_key=True)
    score: float
    classification: str
    slope: float = 0.0
    acceleration: float = 0.0
    consistency: float = 0.0
    breadth: float = 0.0
    slope_per_day: float = 0.0
    calculated_at: dt.datetime = Field(default_factory=_utcnow, index=True)
