from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from config import INTENT_TYPES, WINDOWS
from engine.intent import classify_intent
from engine.rank import AdsMetrics

logger = logging.getLogger(__name__)


# ---- Data model ----

@dataclass(frozen=True)
class QuerySeed:
    text: str
    intent: Optional[str] = None
    series: Tuple[Tuple[str, Tuple[Dict[str, Any], ...]], ...] = ()  # (window, points)
    ads: Optional[AdsMetrics] = None


@dataclass(frozen=True)
class SeedConfig:
    version: int
    queries: Tuple[QuerySeed, ...]


# ---- Loader ----

class SeedConfigError(ValueError):
    pass


ADS_FIELDS = ("avg_monthly_searches", "top_of_page_bid_low_micros", "top_of_page_bid_high_micros", "competition")


def _validate_points(raw: Any, text: str, window: str) -> Tuple[Dict[str, Any], ...]:
    if not isinstance(raw, list):
        raise SeedConfigError(f"Series '{window}' for '{text}' must be a list of {{date, value}} points.")
    points = []
    for p in raw:
        if not isinstance(p, dict) or "date" not in p:
            raise SeedConfigError(f"Point in series '{window}' for '{text}' must be a mapping with a 'date'.")
        points.append({"date": p["date"], "value": p.get("value")})
    return tuple(points)


def _validate_ads(raw: Any, text: str) -> Optional[AdsMetrics]:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise SeedConfigError(f"'ads' for '{text}' must be a mapping.")
    unknown = sorted(set(raw) - set(ADS_FIELDS))
    if unknown:
        raise SeedConfigError(f"Unknown ads fields for '{text}': {unknown}. Allowed: {list(ADS_FIELDS)}")
    return AdsMetrics(**{k: raw.get(k) for k in ADS_FIELDS})


def _validate_query(raw: Any) -> QuerySeed:
    if isinstance(raw, str):
        raw = {"text": raw}
    if not isinstance(raw, dict):
        raise SeedConfigError("Each query must be a string or a mapping/dict.")

    text = " ".join(str(raw.get("text", "")).split())
    if not text:
        raise SeedConfigError("Missing 'text' in query entry.")

    intent = raw.get("intent")
    if intent is not None and intent not in INTENT_TYPES:
        raise SeedConfigError(f"Invalid intent '{intent}' for '{text}'. Allowed: {list(INTENT_TYPES)}")

    series_raw = raw.get("series") or {}
    if not isinstance(series_raw, dict):
        raise SeedConfigError(f"'series' for '{text}' must map window -> points.")
    series = []
    for window, pts in series_raw.items():
        window = str(window)
        if window not in WINDOWS:
            raise SeedConfigError(f"Invalid window '{window}' for '{text}'. Allowed: {list(WINDOWS)}")
        series.append((window, _validate_points(pts, text, window)))

    return QuerySeed(text=text, intent=intent, series=tuple(series), ads=_validate_ads(raw.get("ads"), text))


def load_seed_file(path: str | Path = "seed.yaml") -> SeedConfig:
    p = Path(path)
    if not p.exists():
        raise SeedConfigError(f"Seed file not found: {p.resolve()}")

    data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise SeedConfigError("Top-level YAML must be a mapping/dict.")

    version = int(data.get("version", 1))
    queries_raw = data.get("queries")
    if not isinstance(queries_raw, list) or not queries_raw:
        raise SeedConfigError("Missing or invalid 'queries' list in seed file.")

    return SeedConfig(version=version, queries=tuple(_validate_query(q) for q in queries_raw))


def apply_seed(cfg: SeedConfig, repository) -> Dict[str, int]:
    """Write seeded queries, series, intents and ads metrics through the repository."""
    counts = {"queries": 0, "snapshots": 0, "intents": 0, "ads": 0}
    for qs in cfg.queries:
        q = repository.add_query(qs.text)
        counts["queries"] += 1

        for window, points in qs.series:
            counts["snapshots"] += repository.add_snapshots(q.id, window, points)

        if qs.intent:
            repository.set_intent_classification(q.id, qs.intent, 100.0)
        else:
            guess = classify_intent(qs.text)
            repository.set_intent_classification(q.id, guess.intent_type, guess.confidence)
        counts["intents"] += 1

        if qs.ads is not None:
            repository.set_ads_metrics(q.id, qs.ads)
            counts["ads"] += 1

    logger.info("seeded %(queries)d queries, %(snapshots)d snapshots, %(ads)d ads rows", counts)
    return counts
