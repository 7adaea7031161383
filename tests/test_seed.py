import textwrap

import pytest

from engine.seed import SeedConfigError, apply_seed, load_seed_file


def _write(tmp_path, body):
    p = tmp_path / "seed.yaml"
    p.write_text(textwrap.dedent(body), encoding="utf-8")
    return p


def test_load_and_apply(tmp_path, repo):
    path = _write(tmp_path, """
        version: 1
        queries:
          - text: "small business cash flow problem"
            intent: pain
            series:
              30d:
                - {date: "2026-09-01", value: 20}
                - {date: "2026-09-02", value: 30}
            ads:
              avg_monthly_searches: 1200
              top_of_page_bid_low_micros: 900000
          - "best crm for consultants"
    """)
    cfg = load_seed_file(path)
    assert cfg.version == 1
    assert len(cfg.queries) == 2
    assert cfg.queries[1].text == "best crm for consultants"

    counts = apply_seed(cfg, repo)
    assert counts == {"queries": 2, "snapshots": 2, "intents": 2, "ads": 1}

    by_text = {q.text: q for q in repo.get_all_queries()}
    cash = by_text["small business cash flow problem"]
    crm = by_text["best crm for consultants"]
    assert repo.get_intent_classification(cash.id) == "pain"
    assert repo.get_intent_classification(crm.id) == "tool"
    assert repo.get_ads_metrics(cash.id).avg_monthly_searches == 1200
    assert len(repo.get_snapshots(cash.id, "30d")) == 2


def test_missing_file(tmp_path):
    with pytest.raises(SeedConfigError):
        load_seed_file(tmp_path / "nope.yaml")


@pytest.mark.parametrize(
    "body",
    [
        "version: 1\n",
        "queries: []\n",
        "queries:\n  - text: ''\n",
        "queries:\n  - {text: q, intent: gossip}\n",
        "queries:\n  - {text: q, series: {7d: []}}\n",
        "queries:\n  - {text: q, ads: {clicks: 3}}\n",
        "queries:\n  - {text: q, series: {30d: [{value: 3}]}}\n",
    ],
)
def test_invalid_seed(tmp_path, body):
    with pytest.raises(SeedConfigError):
        load_seed_file(_write(tmp_path, body))
