from __future__ import annotations

import hashlib
import logging
import re
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from config import Settings, settings as default_settings
from engine.errors import InvalidArgumentError

logger = logging.getLogger(__name__)

DEFAULT_INTENT = "education"

INTENT_NAMES = {
    "pain": "Pain Points",
    "tool": "Tool Needs",
    "transition": "Business Transitions",
    "education": "Learning Topics",
}

# Function words that carry no topic signal in search queries.
STOPWORDS = frozenset({
    "a", "an", "the", "and", "or", "but", "if", "of", "in", "on", "at", "to",
    "for", "from", "by", "with", "without", "about", "into", "over", "under",
    "is", "are", "was", "were", "be", "been", "being", "am", "do", "does", "did",
    "i", "me", "my", "we", "our", "you", "your", "it", "its", "they", "their",
    "this", "that", "these", "those", "there", "here",
    "how", "what", "why", "when", "where", "which", "who", "whom",
    "can", "could", "should", "would", "will", "shall", "may", "might", "must",
    "not", "no", "so", "than", "too", "very", "vs", "versus",
})

_PUNCT = re.compile(r"[^\w\s]+")


@dataclass
class OpportunityCluster:
    id: str
    name: str
    intent_type: str
    average_score: float
    queries: List[str]  # ordered set of query ids
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "intent_type": self.intent_type,
            "average_score": self.average_score,
            "queries": list(self.queries),
            "created_at": self.created_at.isoformat(),
        }


def tokenize(text: str) -> FrozenSet[str]:
    cleaned = _PUNCT.sub(" ", (text or "").lower())
    return frozenset(t for t in cleaned.split() if t not in STOPWORDS)


def jaccard(a: FrozenSet[str], b: FrozenSet[str]) -> float:
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def validate_threshold(threshold: float) -> float:
    try:
        t = float(threshold)
    except (TypeError, ValueError):
        raise InvalidArgumentError(f"Threshold must be a number in [0, 1], got {threshold!r}")
    if not (0.0 <= t <= 1.0):
        raise InvalidArgumentError(f"Threshold must be in [0, 1], got {t}")
    return t


class _UnionFind:
    def __init__(self, items: Iterable[str]):
        self.parent = {x: x for x in items}

    def find(self, x: str) -> str:
        root = x
        while self.parent[root] != root:
            root = self.parent[root]
        while self.parent[x] != root:
            self.parent[x], x = root, self.parent[x]
        return root

    def union(self, a: str, b: str) -> None:
        ra, rb = self.find(a), self.find(b)
        if ra == rb:
            return
        # smaller id becomes the root, keeps roots independent of visit order
        if rb < ra:
            ra, rb = rb, ra
        self.parent[rb] = ra


def _candidate_pairs(ids: Sequence[str], tokens: Mapping[str, FrozenSet[str]], threshold: float) -> Iterable[Tuple[str, str]]:
    if threshold <= 0.0:
        # every pair clears a zero threshold
        for i, a in enumerate(ids):
            for b in ids[i + 1:]:
                yield a, b
        return

    # a positive threshold needs at least one shared token
    by_token: Dict[str, List[str]] = defaultdict(list)
    for qid in ids:
        for tok in tokens[qid]:
            by_token[tok].append(qid)

    seen: Set[Tuple[str, str]] = set()
    for tok in sorted(by_token):
        members = by_token[tok]
        for i, a in enumerate(members):
            for b in members[i + 1:]:
                if (a, b) not in seen:
                    seen.add((a, b))
                    yield a, b


def link_components(queries: Sequence[Any], threshold: float) -> List[List[str]]:
    """
    Connected components of the similarity graph.
    Two queries are linked when the Jaccard index of their token sets >= threshold.
    Returns member-id lists (sorted), ordered by their first member id.
    """
    t = validate_threshold(threshold)
    texts = {q.id: q.text for q in queries}
    ids = sorted(texts)
    tokens = {qid: tokenize(texts[qid]) for qid in ids}

    uf = _UnionFind(ids)
    for a, b in _candidate_pairs(ids, tokens, t):
        sim = jaccard(tokens[a], tokens[b])
        if sim >= t:
            logger.debug("link %s ~ %s (%.3f)", a, b, sim)
            uf.union(a, b)

    groups: Dict[str, List[str]] = defaultdict(list)
    for qid in ids:
        groups[uf.find(qid)].append(qid)
    return sorted(groups.values(), key=lambda members: members[0])


def cluster_uid(query_ids: Iterable[str]) -> str:
    core = "|".join(sorted(query_ids))
    return hashlib.sha256(core.encode("utf-8")).hexdigest()[:24]


def dominant_intent(member_ids: Sequence[str], intents: Mapping[str, Optional[str]]) -> str:
    seen = [intents[q] for q in member_ids if intents.get(q)]
    if not seen:
        return DEFAULT_INTENT
    counts = Counter(seen)
    top = max(counts.values())
    # first-seen among the tied intents
    return next(i for i in seen if counts[i] == top)


def _clean_name(text: str, max_len: int) -> str:
    name = " ".join(_PUNCT.sub(" ", text or "").split())
    if len(name) > max_len:
        name = name[:max_len].rsplit(" ", 1)[0] or name[:max_len]
    return name[:1].upper() + name[1:]


def cluster_name(
    member_ids: Sequence[str],
    texts: Mapping[str, str],
    scores: Mapping[str, float],
    intent: str,
    max_len: int = 60,
) -> str:
    scored = [q for q in member_ids if q in scores]
    if not scored:
        return INTENT_NAMES.get(intent, "Opportunity Cluster")
    top = max(scores[q] for q in scored)
    best = next(q for q in scored if scores[q] == top)
    return _clean_name(texts[best], max_len) or INTENT_NAMES.get(intent, "Opportunity Cluster")


def build_cluster(
    member_ids: Sequence[str],
    texts: Mapping[str, str],
    scores: Mapping[str, float],
    intents: Mapping[str, Optional[str]],
    cfg: Settings,
    cluster_id: Optional[str] = None,
    created_at: Optional[datetime] = None,
) -> OpportunityCluster:
    members = sorted(member_ids)
    # unscored members count as 0
    avg = sum(float(scores.get(q, 0.0)) for q in members) / len(members)
    intent = dominant_intent(members, intents)
    return OpportunityCluster(
        id=cluster_id or cluster_uid(members),
        name=cluster_name(members, texts, scores, intent, cfg.cluster_name_max_len),
        intent_type=intent,
        average_score=round(avg, 2),
        queries=members,
        created_at=created_at or datetime.now(timezone.utc),
    )


def _sort_clusters(clusters: List[OpportunityCluster]) -> List[OpportunityCluster]:
    return sorted(clusters, key=lambda c: (-c.average_score, c.queries[0]))


def _unique_queries(queries: Iterable[Any]) -> List[Any]:
    by_id = {}
    for q in queries or []:
        by_id.setdefault(q.id, q)
    return [by_id[k] for k in sorted(by_id)]


def cluster_queries(
    threshold: float,
    queries: Iterable[Any],
    scores: Optional[Mapping[str, float]] = None,
    intents: Optional[Mapping[str, Optional[str]]] = None,
    cfg: Optional[Settings] = None,
) -> List[OpportunityCluster]:
    """
    Group queries into opportunity clusters (connected components of the link graph).

    queries: objects with `id` and `text`
    scores: query_id -> latest TOS composite (missing ids count as 0)
    intents: query_id -> intent label assigned upstream
    """
    cfg = cfg or default_settings
    validate_threshold(threshold)
    qs = _unique_queries(queries)
    if not qs:
        return []

    scores = scores or {}
    intents = intents or {}
    texts = {q.id: q.text for q in qs}

    clusters = [
        build_cluster(members, texts, scores, intents, cfg)
        for members in link_components(qs, threshold)
    ]
    logger.info("clustered %d queries into %d clusters (threshold=%.2f)", len(qs), len(clusters), threshold)
    return _sort_clusters(clusters)


def member_overlap(a: Set[str], b: Set[str]) -> Tuple[float, float]:
    """(shared / smaller set, shared / union) for two member sets."""
    if not a or not b:
        return 0.0, 0.0
    shared = len(a & b)
    return shared / min(len(a), len(b)), shared / len(a | b)


def recluster_queries(
    threshold: float,
    queries: Iterable[Any],
    prior_clusters: Iterable[OpportunityCluster],
    scores: Optional[Mapping[str, float]] = None,
    intents: Optional[Mapping[str, Optional[str]]] = None,
    cfg: Optional[Settings] = None,
) -> List[OpportunityCluster]:
    """
    Same grouping as cluster_queries, but a new cluster inherits the id (and
    created_at) of a prior cluster when their member sets are identical or
    overlap by more than `recluster_min_overlap`. Overlap is measured against
    the smaller set, so a cluster that only grew or only shrank keeps its id.
    """
    cfg = cfg or default_settings
    validate_threshold(threshold)
    qs = _unique_queries(queries)
    if not qs:
        return []

    scores = scores or {}
    intents = intents or {}
    texts = {q.id: q.text for q in qs}
    components = link_components(qs, threshold)
    priors = sorted(prior_clusters or [], key=lambda c: c.id)

    candidates = []
    for idx, members in enumerate(components):
        mset = set(members)
        for prior in priors:
            ov, jaccard = member_overlap(mset, set(prior.queries))
            if ov > cfg.recluster_min_overlap:
                candidates.append((-ov, -jaccard, idx, prior.id, prior))

    matched: Dict[int, OpportunityCluster] = {}
    taken: Set[str] = set()
    for _, _, idx, prior_id, prior in sorted(candidates, key=lambda c: c[:4]):
        if idx in matched or prior_id in taken:
            continue
        matched[idx] = prior
        taken.add(prior_id)

    clusters = []
    for idx, members in enumerate(components):
        prior = matched.get(idx)
        if prior is not None:
            clusters.append(build_cluster(members, texts, scores, intents, cfg, prior.id, prior.created_at))
            continue
        new_id = cluster_uid(members)
        if new_id in taken:
            new_id = cluster_uid(members + ["~recluster"])
        taken.add(new_id)
        clusters.append(build_cluster(members, texts, scores, intents, cfg, new_id))

    logger.info(
        "reclustered %d queries into %d clusters, %d identifiers preserved",
        len(qs), len(clusters), len(matched),
    )
    return _sort_clusters(clusters)


def top_clusters(clusters: Iterable[OpportunityCluster], limit: int = 10) -> List[OpportunityCluster]:
    return _sort_clusters(list(clusters))[: max(0, int(limit))]
