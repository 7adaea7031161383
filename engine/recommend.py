from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional

from engine.cluster import OpportunityCluster
from engine.score import TrendScoreResult


@dataclass
class TutorialRecommendation:
    title: str
    description: str
    query: str
    score: float
    evidence: List[str]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "query": self.query,
            "score": self.score,
            "evidence": list(self.evidence),
        }


@dataclass
class FeatureRecommendation:
    title: str
    description: str
    cluster: str
    average_score: float
    query_count: int
    evidence: List[str]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "cluster": self.cluster,
            "average_score": self.average_score,
            "query_count": self.query_count,
            "evidence": list(self.evidence),
        }


def tutorial_recommendations(
    scores: Iterable[TrendScoreResult],
    texts: Mapping[str, str],
    intents: Mapping[str, Optional[str]],
    limit: int = 10,
    min_score: float = 60.0,
) -> List[TutorialRecommendation]:
    """One tutorial idea per high-momentum query, best first."""
    ranked = sorted(
        (s for s in scores if s.score >= min_score and s.query_id in texts),
        key=lambda s: (-s.score, s.query_id),
    )

    out = []
    for s in ranked[:limit]:
        text = texts[s.query_id]
        out.append(
            TutorialRecommendation(
                title=f"Tutorial: {text}",
                description=f'Create a tutorial addressing "{text}" - high interest query with TOS of {s.score:g}',
                query=text,
                score=s.score,
                evidence=[
                    f"TOS Score: {s.score:g} ({s.classification})",
                    f"Intent: {intents.get(s.query_id) or 'unknown'}",
                    f"Window: {s.window}",
                ],
            )
        )
    return out


def feature_recommendations(
    clusters: Iterable[OpportunityCluster],
    texts: Mapping[str, str],
    limit: int = 10,
    min_score: float = 60.0,
    min_queries: int = 3,
) -> List[FeatureRecommendation]:
    """Feature ideas from clusters with enough validating queries."""
    eligible = sorted(
        (c for c in clusters if c.average_score >= min_score and len(c.queries) >= min_queries),
        key=lambda c: (-c.average_score, c.id),
    )

    out = []
    for c in eligible[:limit]:
        samples = [texts[q] for q in c.queries if q in texts][:3]
        evidence = [
            f"Average TOS: {c.average_score:g}",
            f"{len(c.queries)} validating queries",
            f"Intent type: {c.intent_type}",
        ]
        if samples:
            evidence.append(f"Sample queries: {', '.join(samples)}")
        out.append(
            FeatureRecommendation(
                title=f"Feature: {c.name}",
                description=f'Consider building features addressing "{c.name}" - cluster of {len(c.queries)} related queries',
                cluster=c.name,
                average_score=c.average_score,
                query_count=len(c.queries),
                evidence=evidence,
            )
        )
    return out
