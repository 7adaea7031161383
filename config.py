from typing import Dict

from pydantic import BaseModel
from dotenv import load_dotenv
import os

load_dotenv()

WINDOWS = ("30d", "90d", "12m")

WINDOW_DAYS = {"30d": 30, "90d": 90, "12m": 365}

INTENT_TYPES = ("pain", "tool", "transition", "education")

CLASSIFICATIONS = ("breakout", "growing", "stable", "declining")


class Settings(BaseModel):
    app_name: str = "Trend Opportunity Radar"
    db_url: str = os.getenv("OR_DB_URL", "sqlite:///./opportunity_radar.db")
    log_level: str = os.getenv("OR_LOG_LEVEL", "INFO").upper()

    default_window: str = os.getenv("OR_DEFAULT_WINDOW", "90d")
    score_workers: int = int(os.getenv("OR_SCORE_WORKERS", "1"))

    # Clustering
    cluster_threshold: float = float(os.getenv("OR_CLUSTER_THRESHOLD", "0.3"))
    cluster_reference_window: str = os.getenv("OR_CLUSTER_WINDOW", "30d")
    cluster_name_max_len: int = 60
    recluster_min_overlap: float = 0.5

    # TOS: slope/acceleration are per-day rates measured against this range
    value_range: float = 100.0

    # TOS weights per window (slope, acceleration, consistency, breadth)
    tos_weights: Dict[str, Dict[str, float]] = {
        "30d": {"slope": 0.40, "acceleration": 0.30, "consistency": 0.15, "breadth": 0.15},
        "90d": {"slope": 0.35, "acceleration": 0.25, "consistency": 0.20, "breadth": 0.20},
        "12m": {"slope": 0.25, "acceleration": 0.15, "consistency": 0.30, "breadth": 0.30},
    }

    # Breadth: sub-period length (days) and the interest floor a sub-period must clear
    breadth_period_days: Dict[str, int] = {"30d": 7, "90d": 7, "12m": 30}
    breadth_floor: float = float(os.getenv("OR_BREADTH_FLOOR", "5.0"))

    # Classification thresholds on the composite score
    breakout_min: float = 80.0
    growing_min: float = 60.0
    stable_min: float = 40.0

    # Ranker weights (fixed v1)
    w_momentum: float = 0.40
    w_demand: float = 0.35
    w_efficiency: float = 0.25
    w_eff_demand: float = 0.60
    w_eff_cpc: float = 0.40
    demand_volume_ceiling: float = 1_000_000.0

    # Recommendations
    tutorial_min_score: float = 60.0
    feature_min_score: float = 60.0
    feature_min_queries: int = 3

    # Actions
    action_limit: int = 20
    series_min_score: float = 60.0
    series_min_queries: int = 3
    product_feature_min_score: float = 60.0
    product_template_min_score: float = 70.0
    roadmap_min_score: float = 70.0
    roadmap_min_queries: int = 5

    # Template query generation
    generated_query_limit: int = 50


settings = Settings()
