from datetime import datetime

from sqlmodel import Field, SQLModel

from models.query import _utcnow


class ClusterQueryLink(SQLModel, table=True):
    cluster_id: str = Field(foreign_key="opportunity_cluster.id", primary_key=True)
    query_id: str = Field(foreign_key="query.id", primary_key=True)
    position: int = 0  # keeps the ordered-set order on read-back


class ClusterRecord(SQLModel, table=True):
    __tablename__ = "opportunity_cluster"

    id: str = Field(primary_key=True)
    name: str
    intent_type: str = Field(index=True)
    average_score: float = Field(default=0.0, index=True)
    created_at: datetime = Field(default_factory=_utcnow, index=True)
    updated_at: datetime = Field(default_factory=_utcnow)
