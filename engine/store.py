from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlmodel import delete, select

from database import get_session
from engine.cluster import OpportunityCluster
from engine.errors import MissingDataError
from engine.rank import AdsMetrics, OpportunityRow
from engine.repository import OpportunityRepository, clean_query_text, snapshot_rows, validate_intent
from engine.score import ScoreBreakdown, TrendScoreResult
from models import (
    AdsKeywordMetrics,
    ClusterQueryLink,
    ClusterRecord,
    IntentClassification,
    OpportunityScore,
    Query,
    TrendScore,
    TrendSnapshot,
)

logger = logging.getLogger(__name__)


class SqlRepository(OpportunityRepository):
    """SQLModel-backed repository. `bind` defaults to the engine in database.py."""

    def __init__(self, bind=None):
        self.bind = bind

    def _session(self):
        return get_session(self.bind)

    def _require_query(self, session, query_id: str) -> Query:
        q = session.get(Query, query_id)
        if q is None:
            raise MissingDataError(f"Unknown query id: {query_id}")
        return q

    # ---- reads ----

    def get_all_queries(self) -> List[Query]:
        with self._session() as session:
            return list(session.exec(select(Query).order_by(Query.id)).all())

    def get_query(self, query_id: str) -> Optional[Query]:
        with self._session() as session:
            return session.get(Query, query_id)

    def get_snapshots(self, query_id: str, window: str) -> List[TrendSnapshot]:
        with self._session() as session:
            return list(
                session.exec(
                    select(TrendSnapshot)
                    .where(TrendSnapshot.query_id == query_id)
                    .where(TrendSnapshot.window == window)
                    .order_by(TrendSnapshot.id)
                ).all()
            )

    def get_intent_classification(self, query_id: str) -> Optional[str]:
        with self._session() as session:
            row = session.get(IntentClassification, query_id)
            return row.intent_type if row else None

    def get_ads_metrics(self, query_id: str) -> Optional[AdsMetrics]:
        with self._session() as session:
            row = session.get(AdsKeywordMetrics, query_id)
        if row is None:
            return None
        return AdsMetrics(
            avg_monthly_searches=row.avg_monthly_searches,
            top_of_page_bid_low_micros=row.top_of_page_bid_low_micros,
            top_of_page_bid_high_micros=row.top_of_page_bid_high_micros,
            competition=row.competition,
        )

    def get_clusters(self) -> List[OpportunityCluster]:
        with self._session() as session:
            records = session.exec(
                select(ClusterRecord).order_by(ClusterRecord.average_score.desc(), ClusterRecord.id)
            ).all()
            links = session.exec(select(ClusterQueryLink).order_by(ClusterQueryLink.position)).all()

        members: Dict[str, List[str]] = {}
        for link in links:
            members.setdefault(link.cluster_id, []).append(link.query_id)

        return [
            OpportunityCluster(
                id=r.id,
                name=r.name,
                intent_type=r.intent_type,
                average_score=r.average_score,
                queries=members.get(r.id, []),
                created_at=r.created_at,
            )
            for r in records
        ]

    # ---- writes ----

    def add_query(self, text: str) -> Query:
        text = clean_query_text(text)
        with self._session() as session:
            existing = session.exec(select(Query).where(Query.text == text)).first()
            if existing:
                return existing
            q = Query(text=text)
            session.add(q)
            session.commit()
            session.refresh(q)
            logger.info("added query %s: %s", q.id, text)
            return q

    def add_snapshots(self, query_id: str, window: str, points: Iterable[Any], region: Optional[str] = None) -> int:
        rows = snapshot_rows(query_id, window, points, region)
        with self._session() as session:
            self._require_query(session, query_id)
            session.add_all(rows)
            session.commit()
        return len(rows)

    def set_intent_classification(self, query_id: str, intent_type: str, confidence: float = 50.0) -> None:
        validate_intent(intent_type)
        with self._session() as session:
            self._require_query(session, query_id)
            row = session.get(IntentClassification, query_id)
            if row:
                row.intent_type = intent_type
                row.confidence = confidence
            else:
                session.add(IntentClassification(query_id=query_id, intent_type=intent_type, confidence=confidence))
            session.commit()

    def set_ads_metrics(self, query_id: str, metrics: AdsMetrics) -> None:
        with self._session() as session:
            self._require_query(session, query_id)
            row = session.get(AdsKeywordMetrics, query_id) or AdsKeywordMetrics(query_id=query_id)
            row.avg_monthly_searches = metrics.avg_monthly_searches
            row.competition = metrics.competition
            row.top_of_page_bid_low_micros = metrics.top_of_page_bid_low_micros
            row.top_of_page_bid_high_micros = metrics.top_of_page_bid_high_micros
            row.fetched_at = datetime.now(timezone.utc)
            session.add(row)
            session.commit()

    def save_trend_scores(self, results: Iterable[TrendScoreResult]) -> int:
        n = 0
        with self._session() as session:
            for r in results:
                row = session.get(TrendScore, (r.query_id, r.window)) or TrendScore(
                    query_id=r.query_id, window=r.window, score=0.0, classification="declining"
                )
                row.score = r.score
                row.classification = r.classification
                row.slope = r.breakdown.slope
                row.acceleration = r.breakdown.acceleration
                row.consistency = r.breakdown.consistency
                row.breadth = r.breakdown.breadth
                row.slope_per_day = r.slope_per_day
                row.calculated_at = r.calculated_at
                session.add(row)
                n += 1
            session.commit()
        return n

    def get_trend_scores(self, window: str) -> List[TrendScoreResult]:
        with self._session() as session:
            rows = session.exec(
                select(TrendScore).where(TrendScore.window == window).order_by(TrendScore.score.desc(), TrendScore.query_id)
            ).all()
        return [
            TrendScoreResult(
                query_id=r.query_id,
                score=r.score,
                classification=r.classification,
                breakdown=ScoreBreakdown(
                    slope=r.slope, acceleration=r.acceleration, consistency=r.consistency, breadth=r.breadth
                ),
                window=r.window,
                slope_per_day=r.slope_per_day,
                calculated_at=r.calculated_at,
            )
            for r in rows
        ]

    def replace_clusters(self, clusters: Iterable[OpportunityCluster]) -> int:
        created = 0
        now = datetime.now(timezone.utc)
        with self._session() as session:
            session.execute(delete(ClusterQueryLink))
            session.execute(delete(ClusterRecord))

            # one transaction: a failed insert keeps the previous clusters
            for c in clusters:
                session.add(
                    ClusterRecord(
                        id=c.id,
                        name=c.name,
                        intent_type=c.intent_type,
                        average_score=c.average_score,
                        created_at=c.created_at,
                        updated_at=now,
                    )
                )
                session.add_all(
                    ClusterQueryLink(cluster_id=c.id, query_id=qid, position=i) for i, qid in enumerate(c.queries)
                )
                created += 1
            session.commit()
        return created

    def save_opportunity_rows(self, rows: Iterable[OpportunityRow], window: str) -> int:
        n = 0
        now = datetime.now(timezone.utc)
        with self._session() as session:
            for r in rows:
                row = session.get(OpportunityScore, (r.query_id, window)) or OpportunityScore(
                    query_id=r.query_id, window=window
                )
                row.opportunity_score = r.opportunity_score
                row.efficiency_score = r.efficiency_score
                row.demand_score = r.demand_score
                row.momentum_score = r.momentum_score
                row.cpc_score = r.cpc_score
                row.slope = r.slope
                row.acceleration = r.acceleration
                row.consistency = r.consistency
                row.calculated_at = now
                session.add(row)
                n += 1
            session.commit()
        return n

    def get_opportunity_rows(self, window: str, limit: int = 50) -> List[OpportunityRow]:
        with self._session() as session:
            rows = session.exec(
                select(OpportunityScore)
                .where(OpportunityScore.window == window)
                .order_by(OpportunityScore.opportunity_score.desc(), OpportunityScore.query_id)
                .limit(limit)
            ).all()
        return [
            OpportunityRow(
                query_id=r.query_id,
                opportunity_score=r.opportunity_score,
                efficiency_score=r.efficiency_score,
                demand_score=r.demand_score,
                momentum_score=r.momentum_score,
                cpc_score=r.cpc_score,
                slope=r.slope,
                acceleration=r.acceleration,
                consistency=r.consistency,
            )
            for r in rows
        ]
