from datetime import datetime, timezone
from uuid import uuid4

from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Query(SQLModel, table=True):
    id: str = Field(default_factory=lambda: uuid4().hex, primary_key=True)
    text: str = Field(index=True, unique=True)
    created_at: datetime = Field(default_factory=_utcnow, index=True)


class IntentClassification(SQLModel, table=True):
    query_id: str = Field(foreign_key="query.id", primary_key=True)
    intent_type: str = Field(index=True)  # pain|tool|transition|education
    confidence: float = 50.0
    created_at: datetime = Field(default_factory=_utcnow)
