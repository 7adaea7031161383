from models.query import IntentClassification, Query
from models.trend import TrendScore, TrendSnapshot
from models.cluster import ClusterQueryLink, ClusterRecord
from models.ads import AdsKeywordMetrics, OpportunityScore

__all__ = [
    "Query",
    "IntentClassification",
    "TrendSnapshot",
    "TrendScore",
    "ClusterRecord",
    "ClusterQueryLink",
    "AdsKeywordMetrics",
    "OpportunityScore",
]
