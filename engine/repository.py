from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from config import INTENT_TYPES
from engine.cluster import OpportunityCluster
from engine.errors import InvalidArgumentError, InvalidInputError
from engine.rank import AdsMetrics, OpportunityRow
from engine.score import TrendScoreResult
from engine.series import parse_date, parse_timestamp, parse_value, point_field, validate_window
from models import Query, TrendSnapshot


class OpportunityRepository:
    """
    Storage collaborator the engine reads from (and the calling layer writes to).
    Implementations: InMemoryRepository below, engine.store.SqlRepository.
    """

    # ---- reads used by the engine ----

    def get_all_queries(self) -> List[Query]:
        raise NotImplementedError

    def get_query(self, query_id: str) -> Optional[Query]:
        raise NotImplementedError

    def get_snapshots(self, query_id: str, window: str) -> List[TrendSnapshot]:
        raise NotImplementedError

    def get_intent_classification(self, query_id: str) -> Optional[str]:
        raise NotImplementedError

    def get_ads_metrics(self, query_id: str) -> Optional[AdsMetrics]:
        raise NotImplementedError

    def get_clusters(self) -> List[OpportunityCluster]:
        raise NotImplementedError

    # ---- writes/read-backs used by the calling layer ----

    def add_query(self, text: str) -> Query:
        raise NotImplementedError

    def add_snapshots(self, query_id: str, window: str, points: Iterable[Any], region: Optional[str] = None) -> int:
        raise NotImplementedError

    def set_intent_classification(self, query_id: str, intent_type: str, confidence: float = 50.0) -> None:
        raise NotImplementedError

    def set_ads_metrics(self, query_id: str, metrics: AdsMetrics) -> None:
        raise NotImplementedError

    def save_trend_scores(self, results: Iterable[TrendScoreResult]) -> int:
        raise NotImplementedError

    def get_trend_scores(self, window: str) -> List[TrendScoreResult]:
        raise NotImplementedError

    def replace_clusters(self, clusters: Iterable[OpportunityCluster]) -> int:
        raise NotImplementedError

    def save_opportunity_rows(self, rows: Iterable[OpportunityRow], window: str) -> int:
        raise NotImplementedError

    def get_opportunity_rows(self, window: str, limit: int = 50) -> List[OpportunityRow]:
        raise NotImplementedError


def clean_query_text(text: str) -> str:
    cleaned = " ".join((text or "").split())
    if not cleaned:
        raise InvalidInputError("Query text must not be empty.")
    return cleaned


def validate_intent(intent_type: str) -> str:
    if intent_type not in INTENT_TYPES:
        raise InvalidArgumentError(f"Invalid intent '{intent_type}'. Allowed: {list(INTENT_TYPES)}")
    return intent_type


def snapshot_rows(query_id: str, window: str, points: Iterable[Any], region: Optional[str]) -> List[TrendSnapshot]:
    validate_window(window)
    now = datetime.now(timezone.utc)
    rows = []
    for p in points or []:
        rows.append(
            TrendSnapshot(
                query_id=query_id,
                date=parse_date(point_field(p, "date")),
                interest_value=parse_value(point_field(p, "value")),
                window=window,
                region=region,
                created_at=parse_timestamp(point_field(p, "captured_at")) or now,
            )
        )
    return rows


class InMemoryRepository(OpportunityRepository):
    def __init__(self):
        self.queries: Dict[str, Query] = {}
        self.snapshots: List[TrendSnapshot] = []
        self.intents: Dict[str, str] = {}
        self.ads: Dict[str, AdsMetrics] = {}
        self.scores: Dict[Tuple[str, str], TrendScoreResult] = {}
        self.clusters: List[OpportunityCluster] = []
        self.opportunities: Dict[Tuple[str, str], OpportunityRow] = {}

    def get_all_queries(self) -> List[Query]:
        return sorted(self.queries.values(), key=lambda q: q.id)

    def get_query(self, query_id: str) -> Optional[Query]:
        return self.queries.get(query_id)

    def get_snapshots(self, query_id: str, window: str) -> List[TrendSnapshot]:
        return [s for s in self.snapshots if s.query_id == query_id and s.window == window]

    def get_intent_classification(self, query_id: str) -> Optional[str]:
        return self.intents.get(query_id)

    def get_ads_metrics(self, query_id: str) -> Optional[AdsMetrics]:
        return self.ads.get(query_id)

    def get_clusters(self) -> List[OpportunityCluster]:
        return list(self.clusters)

    def add_query(self, text: str, query_id: Optional[str] = None) -> Query:
        text = clean_query_text(text)
        for q in self.queries.values():
            if q.text == text:
                return q
        q = Query(text=text) if query_id is None else Query(id=query_id, text=text)
        self.queries[q.id] = q
        return q

    def add_snapshots(self, query_id: str, window: str, points: Iterable[Any], region: Optional[str] = None) -> int:
        rows = snapshot_rows(query_id, window, points, region)
        self.snapshots.extend(rows)
        return len(rows)

    def set_intent_classification(self, query_id: str, intent_type: str, confidence: float = 50.0) -> None:
        self.intents[query_id] = validate_intent(intent_type)

    def set_ads_metrics(self, query_id: str, metrics: AdsMetrics) -> None:
        self.ads[query_id] = metrics

    def save_trend_scores(self, results: Iterable[TrendScoreResult]) -> int:
        n = 0
        for r in results:
            self.scores[(r.query_id, r.window)] = r
            n += 1
        return n

    def get_trend_scores(self, window: str) -> List[TrendScoreResult]:
        out = [r for (_, w), r in self.scores.items() if w == window]
        return sorted(out, key=lambda r: (-r.score, r.query_id))

    def replace_clusters(self, clusters: Iterable[OpportunityCluster]) -> int:
        self.clusters = list(clusters)
        return len(self.clusters)

    def save_opportunity_rows(self, rows: Iterable[OpportunityRow], window: str) -> int:
        n = 0
        for r in rows:
            self.opportunities[(r.query_id, window)] = r
            n += 1
        return n

    def get_opportunity_rows(self, window: str, limit: int = 50) -> List[OpportunityRow]:
        out = [r for (_, w), r in self.opportunities.items() if w == window]
        return sorted(out, key=lambda r: (-r.opportunity_score, r.query_id))[:limit]
