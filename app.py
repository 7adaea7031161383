import datetime as dt
from typing import List, Optional

import uvicorn
from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field

from config import settings
from database import create_db_and_tables
from engine.cluster import top_clusters
from engine.errors import InvalidArgumentError, InvalidInputError, MissingDataError
from engine.repository import OpportunityRepository
from engine.series import validate_window
from engine.service import OpportunityEngine
from engine.store import SqlRepository
from engine.templates import QUERY_TEMPLATES, expansion_dimensions, generate_queries_from_templates

app = FastAPI(title=settings.app_name)


def get_repository() -> OpportunityRepository:
    return SqlRepository()


def get_engine(repo: OpportunityRepository = Depends(get_repository)) -> OpportunityEngine:
    return OpportunityEngine(repo, settings)


def _bad_request(e: Exception):
    raise HTTPException(status_code=400, detail=str(e))


# ---- request bodies ----

class QueryIn(BaseModel):
    text: str
    intent: Optional[str] = None


class PointIn(BaseModel):
    date: dt.date
    value: Optional[float] = None


class TrendsIn(BaseModel):
    window: str = settings.default_window
    region: Optional[str] = None
    points: List[PointIn] = Field(default_factory=list)


class ScoreIn(BaseModel):
    queryIds: List[str] = Field(default_factory=list)
    window: str = settings.default_window


class ClusterIn(BaseModel):
    recluster: bool = False
    threshold: float = settings.cluster_threshold
    top: Optional[int] = None


class OpportunityIn(BaseModel):
    window: str = settings.default_window
    queryIds: Optional[List[str]] = None
    limit: int = 50


class ActionsIn(BaseModel):
    type: Optional[str] = None
    limit: Optional[int] = None
    window: str = settings.default_window


class GenerateIn(BaseModel):
    templates: Optional[List[str]] = None
    includeStages: bool = True
    includeFunctions: bool = True
    includePains: bool = True
    maxQueries: Optional[int] = None
    save: bool = False


@app.on_event("startup")
def startup():
    create_db_and_tables()


@app.get("/health")
def health():
    return {"status": "ok", "app": settings.app_name}


@app.get("/api/queries")
def list_queries(repo: OpportunityRepository = Depends(get_repository)):
    queries = repo.get_all_queries()
    return {
        "success": True,
        "queries": [
            {"id": q.id, "text": q.text, "intent_type": repo.get_intent_classification(q.id)}
            for q in queries
        ],
    }


@app.post("/api/queries")
def add_query(body: QueryIn, engine: OpportunityEngine = Depends(get_engine)):
    try:
        q = engine.add_query(body.text, body.intent)
    except (InvalidInputError, InvalidArgumentError) as e:
        _bad_request(e)
    return {"success": True, "query": {"id": q.id, "text": q.text}}


@app.get("/api/query-templates")
def query_templates():
    return {"success": True, "templates": list(QUERY_TEMPLATES), "dimensions": expansion_dimensions()}


@app.post("/api/generate-queries")
def generate_queries(body: GenerateIn, engine: OpportunityEngine = Depends(get_engine)):
    try:
        generated = generate_queries_from_templates(
            body.templates,
            include_stages=body.includeStages,
            include_functions=body.includeFunctions,
            include_pains=body.includePains,
            max_queries=body.maxQueries,
            cfg=engine.cfg,
        )
        saved = engine.add_generated_queries(generated) if body.save else []
    except (InvalidInputError, InvalidArgumentError) as e:
        _bad_request(e)
    return {
        "success": True,
        "queries": [g.as_dict() for g in generated],
        "count": len(generated),
        "saved": [{"id": q.id, "text": q.text} for q in saved],
    }


@app.post("/api/trends/{query_id}")
def add_trend_points(query_id: str, body: TrendsIn, repo: OpportunityRepository = Depends(get_repository)):
    try:
        n = repo.add_snapshots(query_id, body.window, [p.model_dump() for p in body.points], region=body.region)
    except MissingDataError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (InvalidInputError, InvalidArgumentError) as e:
        _bad_request(e)
    return {"success": True, "stored": n}


@app.post("/api/score")
def score(body: ScoreIn, engine: OpportunityEngine = Depends(get_engine)):
    if not body.queryIds:
        raise HTTPException(status_code=400, detail="queryIds array is required")
    try:
        scores = engine.score_many(body.queryIds, body.window)
    except InvalidArgumentError as e:
        _bad_request(e)
    engine.repository.save_trend_scores(scores)
    return {"success": True, "scores": [s.as_dict() for s in scores]}


@app.get("/api/score")
def get_scores(
    queryId: Optional[str] = None,
    window: str = settings.default_window,
    refresh: bool = False,
    engine: OpportunityEngine = Depends(get_engine),
):
    try:
        if queryId:
            engine.require_query(queryId)
            stored = {s.query_id: s for s in engine.repository.get_trend_scores(window)}
            if refresh or queryId not in stored:
                result = engine.score_one(queryId, window)
                engine.repository.save_trend_scores([result])
            else:
                result = stored[queryId]
            return {"success": True, "score": result.as_dict()}

        validate_window(window)
        scores = engine.repository.get_trend_scores(window)
    except MissingDataError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidArgumentError as e:
        _bad_request(e)
    return {"success": True, "scores": [s.as_dict() for s in scores]}


@app.post("/api/cluster")
def cluster(body: ClusterIn, engine: OpportunityEngine = Depends(get_engine)):
    try:
        clusters = engine.recluster(body.threshold) if body.recluster else engine.cluster(body.threshold)
    except InvalidArgumentError as e:
        _bad_request(e)
    engine.repository.replace_clusters(clusters)

    if body.top:
        clusters = top_clusters(clusters, body.top)
    return {"success": True, "clusters": [c.as_dict() for c in clusters], "count": len(clusters)}


@app.get("/api/cluster")
def get_clusters(top: Optional[int] = None, repo: OpportunityRepository = Depends(get_repository)):
    clusters = repo.get_clusters()
    if top:
        clusters = top_clusters(clusters, top)
    return {"success": True, "clusters": [c.as_dict() for c in clusters], "count": len(clusters)}


@app.post("/api/opportunity/refresh")
def refresh_opportunities(body: OpportunityIn, engine: OpportunityEngine = Depends(get_engine)):
    try:
        rows = engine.rank(body.queryIds, body.window)
    except InvalidArgumentError as e:
        _bad_request(e)
    updated = engine.repository.save_opportunity_rows(rows, body.window)
    return {
        "success": True,
        "message": f"Updated opportunity scores for {updated} queries",
        "updated": updated,
        "top": [r.as_dict() for r in rows[: body.limit]],
    }


@app.get("/api/opportunity")
def get_opportunities(
    window: str = settings.default_window,
    limit: int = 50,
    repo: OpportunityRepository = Depends(get_repository),
):
    texts = {q.id: q.text for q in repo.get_all_queries()}
    top = repo.get_opportunity_rows(window, limit)
    return {
        "success": True,
        "window": window,
        "top": [{**r.as_dict(), "query_text": texts.get(r.query_id, "Unknown")} for r in top],
    }


@app.get("/api/recommendations")
def recommendations(
    limit: int = 10,
    window: str = settings.default_window,
    engine: OpportunityEngine = Depends(get_engine),
):
    try:
        recs = engine.recommendations(limit=limit, window=window)
    except InvalidArgumentError as e:
        _bad_request(e)
    return {
        "success": True,
        "tutorials": [r.as_dict() for r in recs["tutorials"]],
        "features": [r.as_dict() for r in recs["features"]],
    }


def _actions(engine: OpportunityEngine, action_type: Optional[str], limit: Optional[int], window: Optional[str]):
    try:
        actions = engine.actions(action_type, limit, window)
    except InvalidArgumentError as e:
        _bad_request(e)
    return {"success": True, "actions": [a.as_dict() for a in actions], "count": len(actions)}


@app.get("/api/actions")
def get_actions(
    type: Optional[str] = None,
    limit: Optional[int] = None,
    window: str = settings.default_window,
    engine: OpportunityEngine = Depends(get_engine),
):
    return _actions(engine, type, limit, window)


@app.post("/api/actions")
def post_actions(body: ActionsIn, engine: OpportunityEngine = Depends(get_engine)):
    return _actions(engine, body.type, body.limit, body.window)


def run_server(host: str = "127.0.0.1", port: int = 8000):
    uvicorn.run("app:app", host=host, port=port, reload=False)
