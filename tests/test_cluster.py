"""Tests for query clustering and cluster-identity preservation."""

from datetime import datetime, timezone

import pytest

from engine.cluster import (
    INTENT_NAMES,
    OpportunityCluster,
    cluster_queries,
    cluster_uid,
    dominant_intent,
    jaccard,
    recluster_queries,
    tokenize,
    top_clusters,
)
from engine.errors import InvalidArgumentError
from models import Query


def _q(qid, text):
    return Query(id=qid, text=text)


CASH_A = _q("a", "how to reduce cash flow issues")
CASH_B = _q("b", "fix cash flow problems")
CRM = _q("c", "best CRM software")


def _memberships(clusters):
    return sorted(tuple(c.queries) for c in clusters)


class TestTokenize:
    def test_drops_stopwords_and_punctuation(self):
        assert tokenize("How to reduce cash-flow issues?") == {"reduce", "cash", "flow", "issues"}

    def test_lowercases(self):
        assert tokenize("Best CRM Software") == {"best", "crm", "software"}

    def test_jaccard_empty(self):
        assert jaccard(frozenset(), frozenset()) == 0.0


class TestClusterQueries:
    def test_shared_tokens_join(self):
        clusters = cluster_queries(0.3, [CASH_A, CASH_B, CRM])
        assert _memberships(clusters) == [("a", "b"), ("c",)]

    def test_threshold_one_keeps_singletons(self):
        clusters = cluster_queries(1.0, [CASH_A, CASH_B, CRM])
        assert len(clusters) == 3

    def test_threshold_zero_joins_everything(self):
        clusters = cluster_queries(0.0, [CASH_A, CASH_B, CRM])
        assert _memberships(clusters) == [("a", "b", "c")]

    def test_transitive_linking(self):
        qs = [_q("1", "cash flow"), _q("2", "flow chart"), _q("3", "chart design")]
        clusters = cluster_queries(0.3, qs)
        assert _memberships(clusters) == [("1", "2", "3")]

    def test_deterministic_membership(self):
        qs = [CASH_A, CASH_B, CRM, _q("d", "crm software pricing")]
        first = cluster_queries(0.3, qs)
        second = cluster_queries(0.3, list(reversed(qs)))
        assert _memberships(first) == _memberships(second)
        assert [c.id for c in first] == [c.id for c in second]

    def test_every_query_in_exactly_one_cluster(self):
        qs = [CASH_A, CASH_B, CRM, _q("d", "crm software pricing"), _q("e", "")]
        clusters = cluster_queries(0.3, qs)
        members = [qid for c in clusters for qid in c.queries]
        assert sorted(members) == ["a", "b", "c", "d", "e"]

    def test_duplicate_ids_collapse(self):
        clusters = cluster_queries(0.3, [CASH_A, CASH_A])
        assert _memberships(clusters) == [("a",)]

    def test_empty_input(self):
        assert cluster_queries(0.3, []) == []

    @pytest.mark.parametrize("threshold", [-0.1, 1.5, "abc"])
    def test_bad_threshold_raises(self, threshold):
        with pytest.raises(InvalidArgumentError):
            cluster_queries(threshold, [CASH_A])

    def test_average_counts_missing_scores_as_zero(self):
        clusters = cluster_queries(0.3, [CASH_A, CASH_B], scores={"a": 80.0})
        assert clusters[0].average_score == 40.0

    def test_sorted_by_average_score(self):
        clusters = cluster_queries(0.3, [CASH_A, CASH_B, CRM], scores={"a": 10.0, "b": 10.0, "c": 90.0})
        assert clusters[0].queries == ["c"]

    def test_id_is_hash_of_members(self):
        clusters = cluster_queries(0.3, [CASH_A, CASH_B])
        assert clusters[0].id == cluster_uid(["b", "a"])


class TestNamingAndIntent:
    def test_name_from_top_scoring_member(self):
        clusters = cluster_queries(0.3, [CASH_A, CASH_B], scores={"a": 20.0, "b": 70.0})
        assert clusters[0].name == "Fix cash flow problems"

    def test_name_tie_goes_to_first_id(self):
        clusters = cluster_queries(0.3, [CASH_A, CASH_B], scores={"a": 50.0, "b": 50.0})
        assert clusters[0].name == "How to reduce cash flow issues"

    def test_placeholder_name_without_scores(self):
        clusters = cluster_queries(0.3, [CRM], intents={"c": "tool"})
        assert clusters[0].name == INTENT_NAMES["tool"]

    def test_name_is_truncated(self):
        long_text = " ".join(["opportunity"] * 20)
        clusters = cluster_queries(0.3, [_q("x", long_text)], scores={"x": 1.0})
        assert len(clusters[0].name) <= 60

    def test_majority_intent(self):
        assert dominant_intent(["a", "b", "c"], {"a": "tool", "b": "pain", "c": "pain"}) == "pain"

    def test_intent_tie_goes_to_first_seen(self):
        assert dominant_intent(["a", "b"], {"a": "tool", "b": "pain"}) == "tool"

    def test_intent_defaults_to_education(self):
        assert dominant_intent(["a"], {}) == "education"


class TestRecluster:
    def _prior(self, cid, members):
        return OpportunityCluster(
            id=cid,
            name="old",
            intent_type="pain",
            average_score=0.0,
            queries=members,
            created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        )

    def test_identical_membership_keeps_id(self):
        prior = self._prior("kept-id", ["a", "b"])
        clusters = recluster_queries(0.3, [CASH_A, CASH_B, CRM], [prior])
        cash = next(c for c in clusters if c.queries == ["a", "b"])
        assert cash.id == "kept-id"
        assert cash.created_at == prior.created_at

    def test_majority_overlap_keeps_id(self):
        prior = self._prior("kept-id", ["a", "b"])
        qs = [CASH_A, CASH_B, _q("d", "cash flow forecast")]
        clusters = recluster_queries(0.3, qs, [prior])
        assert clusters[0].queries == ["a", "b", "d"]
        assert clusters[0].id == "kept-id"

    def test_singleton_that_grew_keeps_id(self):
        prior = self._prior("solo-id", ["a"])
        clusters = recluster_queries(0.3, [CASH_A, CASH_B], [prior])
        assert clusters[0].queries == ["a", "b"]
        assert clusters[0].id == "solo-id"

    def test_shrunk_cluster_keeps_id(self):
        prior = self._prior("big-id", ["a", "b", "x"])
        clusters = recluster_queries(0.3, [CASH_A, CASH_B], [prior])
        assert clusters[0].id == "big-id"

    def test_closest_prior_wins_overlap_tie(self):
        loose = self._prior("loose-id", ["a"])
        exact = self._prior("exact-id", ["a", "b"])
        clusters = recluster_queries(0.3, [CASH_A, CASH_B], [loose, exact])
        assert clusters[0].id == "exact-id"

    def test_small_overlap_gets_new_id(self):
        prior = self._prior("old-id", ["a", "x", "y"])
        clusters = recluster_queries(0.3, [CASH_A, CASH_B], [prior])
        assert clusters[0].id != "old-id"

    def test_new_ids_are_distinct(self):
        prior = self._prior("only", ["a", "c"])
        clusters = recluster_queries(1.0, [CASH_A, CRM], [prior])
        ids = [c.id for c in clusters]
        assert len(set(ids)) == 2

    def test_without_priors_matches_cluster(self):
        qs = [CASH_A, CASH_B, CRM]
        assert [c.id for c in recluster_queries(0.3, qs, [])] == [c.id for c in cluster_queries(0.3, qs)]


class TestTopClusters:
    def test_limit(self):
        clusters = cluster_queries(1.0, [CASH_A, CASH_B, CRM], scores={"a": 1.0, "b": 2.0, "c": 3.0})
        top = top_clusters(clusters, 2)
        assert [c.queries for c in top] == [["c"], ["b"]]
