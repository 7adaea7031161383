from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional

from config import CLASSIFICATIONS, Settings, settings as default_settings
from engine.cluster import DEFAULT_INTENT, OpportunityCluster
from engine.errors import InvalidArgumentError
from engine.score import TrendScoreResult

logger = logging.getLogger(__name__)

ACTION_TYPES = ("content", "product", "alert")

CONTENT_BY_INTENT = {
    "education": "tutorial",
    "tool": "comparison",
    "pain": "checklist",
}

ALERT_PRIORITY = {"breakout": 100.0, "threshold": 70.0}


@dataclass
class Action:
    type: str  # content|product|alert
    category: str
    title: str
    description: str
    priority: float
    query_ids: List[str] = field(default_factory=list)
    cluster_id: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "category": self.category,
            "title": self.title,
            "description": self.description,
            "priority": self.priority,
            "query_ids": list(self.query_ids),
            "cluster_id": self.cluster_id,
        }


def _plural(n: int, one: str, many: str) -> str:
    return f"{n} {one if n == 1 else many}"


def _scored(scores: Iterable[TrendScoreResult], texts: Mapping[str, str]) -> List[TrendScoreResult]:
    # query id order, degraded and unknown queries left out
    by_id = {s.query_id: s for s in scores if not s.degraded and s.query_id in texts}
    return [by_id[qid] for qid in sorted(by_id)]


def content_actions(
    scores: Iterable[TrendScoreResult],
    texts: Mapping[str, str],
    intents: Mapping[str, Optional[str]],
    clusters: Iterable[OpportunityCluster],
    cfg: Optional[Settings] = None,
) -> List[Action]:
    """Content ideas for breakout/growing queries plus a series per strong cluster."""
    cfg = cfg or default_settings
    breakout, growing = CLASSIFICATIONS[:2]

    out = []
    for s in _scored(scores, texts):
        if s.classification not in (breakout, growing):
            continue
        text = texts[s.query_id]
        category = CONTENT_BY_INTENT.get(intents.get(s.query_id) or DEFAULT_INTENT, "blog")
        out.append(
            Action(
                type="content",
                category=category,
                title=f"Create {category} about: {text}",
                description=f"High interest query (TOS: {s.score:g}) - {text}",
                priority=s.score,
                query_ids=[s.query_id],
            )
        )

    for c in clusters:
        if c.average_score >= cfg.series_min_score and len(c.queries) >= cfg.series_min_queries:
            out.append(
                Action(
                    type="content",
                    category="blog",
                    title=f"Content series: {c.name}",
                    description=(
                        f"Cluster of {len(c.queries)} related queries with average TOS of {c.average_score:g}"
                    ),
                    priority=c.average_score,
                    query_ids=list(c.queries),
                    cluster_id=c.id,
                )
            )
    return out


def product_actions(
    scores: Iterable[TrendScoreResult],
    texts: Mapping[str, str],
    intents: Mapping[str, Optional[str]],
    clusters: Iterable[OpportunityCluster],
    cfg: Optional[Settings] = None,
) -> List[Action]:
    cfg = cfg or default_settings
    scored = _scored(scores, texts)

    out = []
    for s in scored:
        if intents.get(s.query_id) == "tool" and s.score >= cfg.product_feature_min_score:
            text = texts[s.query_id]
            out.append(
                Action(
                    type="product",
                    category="feature",
                    title=f"Consider feature: {text}",
                    description=f"High demand for tool/solution (TOS: {s.score:g}) - {text}",
                    priority=s.score,
                    query_ids=[s.query_id],
                )
            )

    for s in scored:
        if intents.get(s.query_id) == "pain" and s.score >= cfg.product_template_min_score:
            text = texts[s.query_id]
            out.append(
                Action(
                    type="product",
                    category="template",
                    title=f"Create template/automation for: {text}",
                    description=f"High pain point (TOS: {s.score:g}) - {text}",
                    priority=s.score,
                    query_ids=[s.query_id],
                )
            )

    for c in clusters:
        if c.average_score >= cfg.roadmap_min_score and len(c.queries) >= cfg.roadmap_min_queries:
            out.append(
                Action(
                    type="product",
                    category="roadmap",
                    title=f"Roadmap consideration: {c.name}",
                    description=f"Strong cluster signal (TOS: {c.average_score:g}, {len(c.queries)} queries)",
                    priority=c.average_score,
                    query_ids=list(c.queries),
                    cluster_id=c.id,
                )
            )
    return out


def alert_actions(
    scores: Iterable[TrendScoreResult],
    texts: Mapping[str, str],
    cfg: Optional[Settings] = None,
) -> List[Action]:
    """At most two alerts: one for all breakout queries, one for queries just below breakout."""
    cfg = cfg or default_settings
    scored = _scored(scores, texts)
    breakout = CLASSIFICATIONS[0]

    out = []
    hot = [s.query_id for s in scored if s.classification == breakout]
    if hot:
        out.append(
            Action(
                type="alert",
                category="breakout",
                title=_plural(len(hot), "breakout opportunity", "breakout opportunities"),
                description=f"New breakout queries detected: {', '.join(texts[q] for q in hot)}",
                priority=ALERT_PRIORITY["breakout"],
                query_ids=hot,
            )
        )

    rising = [s.query_id for s in scored if cfg.growing_min <= s.score < cfg.breakout_min]
    if rising:
        out.append(
            Action(
                type="alert",
                category="threshold",
                title=f"{_plural(len(rising), 'query', 'queries')} showing growing demand",
                description=(
                    f"Queries with TOS from {cfg.growing_min:g} up to {cfg.breakout_min:g}: "
                    f"{', '.join(texts[q] for q in rising)}"
                ),
                priority=ALERT_PRIORITY["threshold"],
                query_ids=rising,
            )
        )
    return out


def generate_actions(
    scores: Iterable[TrendScoreResult],
    texts: Mapping[str, str],
    intents: Mapping[str, Optional[str]],
    clusters: Iterable[OpportunityCluster],
    cfg: Optional[Settings] = None,
) -> List[Action]:
    """All content, product and alert actions, highest priority first (stable within a priority)."""
    scores = list(scores)
    clusters = list(clusters)
    actions = (
        content_actions(scores, texts, intents, clusters, cfg)
        + product_actions(scores, texts, intents, clusters, cfg)
        + alert_actions(scores, texts, cfg)
    )
    actions.sort(key=lambda a: -a.priority)
    logger.info("generated %d actions from %d scores and %d clusters", len(actions), len(scores), len(clusters))
    return actions


def validate_action_type(action_type: str) -> str:
    if action_type not in ACTION_TYPES:
        raise InvalidArgumentError(f"Invalid action type '{action_type}'. Allowed: {list(ACTION_TYPES)}")
    return action_type


def actions_by_type(actions: Iterable[Action], action_type: str) -> List[Action]:
    validate_action_type(action_type)
    return [a for a in actions if a.type == action_type]


def top_actions(actions: Iterable[Action], limit: int = 20) -> List[Action]:
    return list(actions)[: max(0, int(limit))]
