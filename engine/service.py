from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Optional, Sequence

from config import Settings, settings as default_settings
from engine.actions import Action, actions_by_type, generate_actions, top_actions, validate_action_type
from engine.cluster import OpportunityCluster, cluster_queries, recluster_queries, validate_threshold
from engine.errors import InvalidInputError, MissingDataError
from engine.intent import classify_intent
from engine.rank import AdsMetrics, OpportunityRow, rank_opportunities
from engine.recommend import feature_recommendations, tutorial_recommendations
from engine.repository import OpportunityRepository
from engine.score import TrendScoreResult, degraded_result, score_points
from engine.series import snapshots_to_points, validate_window
from engine.templates import GeneratedQuery

logger = logging.getLogger(__name__)


class OpportunityEngine:
    """
    Scoring, clustering and ranking over an injected repository.

    Holds no state between calls; every operation reads current inputs from
    the repository and returns fresh results. Persisting them is up to the caller.
    """

    def __init__(self, repository: OpportunityRepository, cfg: Optional[Settings] = None):
        self.repository = repository
        self.cfg = cfg or default_settings

    def _window(self, window: Optional[str]) -> str:
        return validate_window(window or self.cfg.default_window)

    def require_query(self, query_id: str):
        q = self.repository.get_query(query_id)
        if q is None:
            raise MissingDataError(f"Unknown query id: {query_id}")
        return q

    # ---- scoring ----

    def _score(self, query_id: str, window: str) -> TrendScoreResult:
        try:
            self.require_query(query_id)
            points = snapshots_to_points(self.repository.get_snapshots(query_id, window))
            return score_points(points, window, query_id=query_id, cfg=self.cfg)
        except (MissingDataError, InvalidInputError) as e:
            logger.warning("query %s: %s, returning zero score", query_id, e)
            return degraded_result(query_id, window)

    def score_one(self, query_id: str, window: Optional[str] = None) -> TrendScoreResult:
        return self._score(query_id, self._window(window))

    def score_many(
        self,
        query_ids: Sequence[str],
        window: Optional[str] = None,
        max_workers: Optional[int] = None,
    ) -> List[TrendScoreResult]:
        """One result per id, in input order. A bad query degrades, it never aborts the batch."""
        w = self._window(window)
        ids = list(query_ids or [])
        workers = max_workers if max_workers is not None else self.cfg.score_workers

        if workers > 1 and len(ids) > 1:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                results = list(executor.map(lambda qid: self._score(qid, w), ids))
        else:
            results = [self._score(qid, w) for qid in ids]

        degraded = sum(1 for r in results if r.degraded)
        logger.info("scored %d queries (%s), %d degraded", len(results), w, degraded)
        return results

    def top_queries(self, limit: int = 10, window: Optional[str] = None, min_score: float = 0.0) -> List[TrendScoreResult]:
        ids = [q.id for q in self.repository.get_all_queries()]
        scores = [s for s in self.score_many(ids, window) if s.score >= min_score]
        scores.sort(key=lambda s: (-s.score, s.query_id))
        return scores[: max(0, int(limit))]

    # ---- clustering ----

    def _cluster_inputs(self):
        queries = self.repository.get_all_queries()
        ids = [q.id for q in queries]
        reference = self.score_many(ids, self.cfg.cluster_reference_window)
        # unscorable queries stay out of the score map and count as 0
        scores = {r.query_id: r.score for r in reference if not r.degraded}
        intents = {qid: self.repository.get_intent_classification(qid) for qid in ids}
        return queries, scores, intents

    def cluster(self, threshold: Optional[float] = None) -> List[OpportunityCluster]:
        t = validate_threshold(self.cfg.cluster_threshold if threshold is None else threshold)
        queries, scores, intents = self._cluster_inputs()
        return cluster_queries(t, queries, scores=scores, intents=intents, cfg=self.cfg)

    def recluster(self, threshold: Optional[float] = None) -> List[OpportunityCluster]:
        t = validate_threshold(self.cfg.cluster_threshold if threshold is None else threshold)
        prior = self.repository.get_clusters()
        queries, scores, intents = self._cluster_inputs()
        return recluster_queries(t, queries, prior, scores=scores, intents=intents, cfg=self.cfg)

    # ---- ranking ----

    def _ads(self, query_id: str) -> Optional[AdsMetrics]:
        try:
            return self.repository.get_ads_metrics(query_id)
        except MissingDataError:
            return None

    def rank(self, query_ids: Optional[Iterable[str]] = None, window: Optional[str] = None) -> List[OpportunityRow]:
        w = self._window(window)
        ids = list(query_ids) if query_ids is not None else [q.id for q in self.repository.get_all_queries()]
        ids = list(dict.fromkeys(ids))

        scores = {r.query_id: r for r in self.score_many(ids, w)}
        ads = {qid: self._ads(qid) for qid in ids}
        return rank_opportunities(scores, ads, cfg=self.cfg)

    # ---- recommendations ----

    def recommendations(self, limit: int = 10, window: Optional[str] = None) -> Dict[str, list]:
        queries = self.repository.get_all_queries()
        texts = {q.id: q.text for q in queries}
        intents = {q.id: self.repository.get_intent_classification(q.id) for q in queries}

        scores = self.score_many(list(texts), window)
        clusters = self.repository.get_clusters()
        return {
            "tutorials": tutorial_recommendations(scores, texts, intents, limit, self.cfg.tutorial_min_score),
            "features": feature_recommendations(
                clusters, texts, limit, self.cfg.feature_min_score, self.cfg.feature_min_queries
            ),
        }

    # ---- actions ----

    def actions(
        self,
        action_type: Optional[str] = None,
        limit: Optional[int] = None,
        window: Optional[str] = None,
    ) -> List[Action]:
        """Every action of one type, or the top `limit` actions across types."""
        if action_type is not None:
            validate_action_type(action_type)
        queries = self.repository.get_all_queries()
        texts = {q.id: q.text for q in queries}
        intents = {q.id: self.repository.get_intent_classification(q.id) for q in queries}

        scores = self.score_many(list(texts), window)
        actions = generate_actions(scores, texts, intents, self.repository.get_clusters(), self.cfg)
        if action_type is not None:
            return actions_by_type(actions, action_type)
        return top_actions(actions, self.cfg.action_limit if limit is None else limit)

    # ---- queries ----

    def add_query(self, text: str, intent: Optional[str] = None):
        """Store a query; without a known intent the keyword classifier supplies one."""
        q = self.repository.add_query(text)
        if intent:
            self.repository.set_intent_classification(q.id, intent, 100.0)
        elif self.repository.get_intent_classification(q.id) is None:
            guess = classify_intent(q.text)
            self.repository.set_intent_classification(q.id, guess.intent_type, guess.confidence)
        return q

    def add_generated_queries(self, generated: Iterable[GeneratedQuery]) -> list:
        added = [self.add_query(g.text) for g in generated]
        logger.info("stored %d generated queries", len(added))
        return added
