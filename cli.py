import argparse
import json
import logging

from config import WINDOWS, settings
from engine.actions import ACTION_TYPES


def setup_logging(level: str = None):
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def _engine():
    from engine.service import OpportunityEngine
    from engine.store import SqlRepository

    return OpportunityEngine(SqlRepository(), settings)


def seed(path: str):
    from engine.seed import apply_seed, load_seed_file
    from engine.store import SqlRepository

    return apply_seed(load_seed_file(path), SqlRepository())


def score(window: str, query_ids=None):
    eng = _engine()
    ids = query_ids or [q.id for q in eng.repository.get_all_queries()]
    results = eng.score_many(ids, window)
    eng.repository.save_trend_scores(results)
    return results


def cluster(threshold: float, recluster: bool = False):
    eng = _engine()
    clusters = eng.recluster(threshold) if recluster else eng.cluster(threshold)
    eng.repository.replace_clusters(clusters)
    return clusters


def rank(window: str):
    eng = _engine()
    rows = eng.rank(window=window)
    eng.repository.save_opportunity_rows(rows, window)
    return rows


def generate_queries(templates=None, save: bool = False, **options):
    from engine.templates import generate_queries_from_templates

    generated = generate_queries_from_templates(templates, **options)
    if save:
        _engine().add_generated_queries(generated)
    return generated


def main():
    parser = argparse.ArgumentParser(prog="opportunity_radar")
    parser.add_argument("--log-level", default=None)
    sub = parser.add_subparsers(dest="cmd", required=True)

    sub.add_parser("init-db")

    p_seed = sub.add_parser("seed")
    p_seed.add_argument("--file", default="seed.yaml")

    p_score = sub.add_parser("score")
    p_score.add_argument("--window", choices=WINDOWS, default=settings.default_window)
    p_score.add_argument("--query-id", action="append", dest="query_ids")

    for name in ("cluster", "recluster"):
        p = sub.add_parser(name)
        p.add_argument("--threshold", type=float, default=settings.cluster_threshold)
        p.add_argument("--top", type=int, default=10)

    p_rank = sub.add_parser("rank")
    p_rank.add_argument("--window", choices=WINDOWS, default=settings.default_window)
    p_rank.add_argument("--top", type=int, default=20)

    p_rec = sub.add_parser("recommend")
    p_rec.add_argument("--window", choices=WINDOWS, default=settings.default_window)
    p_rec.add_argument("--limit", type=int, default=10)

    p_act = sub.add_parser("actions")
    p_act.add_argument("--type", choices=ACTION_TYPES, default=None)
    p_act.add_argument("--limit", type=int, default=settings.action_limit)
    p_act.add_argument("--window", choices=WINDOWS, default=settings.default_window)

    p_gen = sub.add_parser("generate-queries")
    p_gen.add_argument("--template", action="append", dest="templates")
    p_gen.add_argument("--max", type=int, default=settings.generated_query_limit)
    p_gen.add_argument("--no-stages", action="store_true")
    p_gen.add_argument("--no-functions", action="store_true")
    p_gen.add_argument("--no-pains", action="store_true")
    p_gen.add_argument("--save", action="store_true")

    p_serve = sub.add_parser("serve")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=8000)

    args = parser.parse_args()
    setup_logging(args.log_level)

    from database import create_db_and_tables

    if args.cmd == "init-db":
        create_db_and_tables()
        print("DB initialized.")
        return

    create_db_and_tables()

    if args.cmd == "seed":
        from engine.seed import SeedConfigError

        try:
            counts = seed(args.file)
        except SeedConfigError as e:
            raise SystemExit(f"Invalid seed file: {e}")
        print(f"Seeded {counts['queries']} queries, {counts['snapshots']} snapshots, {counts['ads']} ads rows.")
        return

    if args.cmd == "score":
        results = score(args.window, args.query_ids)
        for r in sorted(results, key=lambda r: (-r.score, r.query_id)):
            flag = " (degraded)" if r.degraded else ""
            print(f"{r.score:6.2f}  {r.classification:<9}  {r.query_id}{flag}")
        return

    if args.cmd in ("cluster", "recluster"):
        from engine.cluster import top_clusters

        clusters = cluster(args.threshold, recluster=args.cmd == "recluster")
        print(f"Built clusters: {len(clusters)}")
        for c in top_clusters(clusters, args.top):
            print(f"{c.average_score:6.2f}  {c.intent_type:<10}  {c.name}  ({len(c.queries)} queries)")
        return

    if args.cmd == "rank":
        rows = rank(args.window)
        print(f"Updated opportunity scores for {len(rows)} queries")
        for r in rows[: args.top]:
            print(f"{r.opportunity_score:6.2f}  {r.query_id}  momentum={r.momentum_score:g} demand={r.demand_score:g} cpc={r.cpc_score:g}")
        return

    if args.cmd == "recommend":
        recs = _engine().recommendations(limit=args.limit, window=args.window)
        print(json.dumps(
            {k: [r.as_dict() for r in v] for k, v in recs.items()},
            indent=2,
        ))
        return

    if args.cmd == "actions":
        actions = _engine().actions(args.type, args.limit, args.window)
        print(f"Actions: {len(actions)}")
        for a in actions:
            print(f"{a.priority:6.2f}  {a.type:<7}  {a.category:<10}  {a.title}")
        return

    if args.cmd == "generate-queries":
        from engine.errors import InvalidArgumentError

        try:
            generated = generate_queries(
                args.templates,
                max_queries=args.max,
                include_stages=not args.no_stages,
                include_functions=not args.no_functions,
                include_pains=not args.no_pains,
                save=args.save,
            )
        except InvalidArgumentError as e:
            raise SystemExit(f"Invalid template options: {e}")
        for g in generated:
            print(g.text)
        if args.save:
            print(f"Stored {len(generated)} queries.")
        return

    if args.cmd == "serve":
        from app import run_server

        run_server(host=args.host, port=args.port)
        return


if __name__ == "__main__":
    main()
