from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from config import Settings, settings as default_settings
from engine.errors import InvalidArgumentError

QUERY_TEMPLATES = (
    "how to get {result}",
    "how to fix {problem}",
    "best way to manage {thing}",
    "software for {job}",
    "why is {metric} low",
    "how to exit {business_type}",
)

STAGES = ("idea", "early-stage", "growth", "scaling", "exit")
FUNCTIONS = ("sales", "marketing", "finance", "operations", "hiring", "leadership")
PAINS = ("cash flow", "customer acquisition", "churn", "follow-up", "delegation", "burnout")
ASSETS = ("CRM", "dashboard", "spreadsheet", "automation", "AI assistant")
METRICS = ("revenue", "growth", "conversion", "retention", "engagement")
BUSINESS_TYPES = ("SaaS", "e-commerce", "consulting", "agency", "marketplace")

# checked in this order; a template expands on the first one it contains
PLACEHOLDERS = ("result", "problem", "thing", "job", "metric", "business_type")

_PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")


@dataclass(frozen=True)
class GeneratedQuery:
    text: str
    template: str
    stage: Optional[str] = None
    function: Optional[str] = None
    pain: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        meta = {"template": self.template}
        for key in ("stage", "function", "pain"):
            value = getattr(self, key)
            if value is not None:
                meta[key] = value
        return {"text": self.text, "metadata": meta}


def _stage_result(stage: str) -> str:
    return "first customers" if stage == "early-stage" else f"{stage} funding"


def template_placeholder(template: str) -> str:
    found = set(_PLACEHOLDER_RE.findall(template or ""))
    for name in PLACEHOLDERS:
        if name in found:
            return name
    raise InvalidArgumentError(f"Template {template!r} has none of the placeholders {list(PLACEHOLDERS)}")


def _expand(
    template: str,
    include_stages: bool,
    include_functions: bool,
    include_pains: bool,
) -> List[GeneratedQuery]:
    name = template_placeholder(template)
    slot = "{" + name + "}"

    def fill(value: str, **meta) -> GeneratedQuery:
        return GeneratedQuery(text=template.replace(slot, value, 1), template=template, **meta)

    if name == "result":
        out = []
        if include_stages:
            out += [fill(_stage_result(s), stage=s) for s in STAGES]
        if include_functions:
            out += [fill(f"{f} leads", function=f) for f in FUNCTIONS]
        return out
    if name == "problem":
        return [fill(p, pain=p) for p in PAINS] if include_pains else []
    if name in ("thing", "job"):
        return [fill(f, function=f) for f in FUNCTIONS] if include_functions else []
    if name == "metric":
        return [fill(m) for m in METRICS]
    return [fill(b) for b in BUSINESS_TYPES]


def generate_queries_from_templates(
    templates: Optional[Iterable[str]] = None,
    include_stages: bool = True,
    include_functions: bool = True,
    include_pains: bool = True,
    max_queries: Optional[int] = None,
    cfg: Optional[Settings] = None,
) -> List[GeneratedQuery]:
    """
    Expand search-query templates over the founder dimensions.

    Templates are expanded in the order given, each on its first known
    placeholder. Repeated texts are kept once and the result is capped at
    `max_queries` (settings.generated_query_limit by default).
    """
    cfg = cfg or default_settings
    limit = cfg.generated_query_limit if max_queries is None else int(max_queries)
    if limit < 0:
        raise InvalidArgumentError(f"max_queries must be >= 0, got {limit}")

    out: List[GeneratedQuery] = []
    seen = set()
    for template in list(templates) if templates else QUERY_TEMPLATES:
        for q in _expand(template, include_stages, include_functions, include_pains):
            if q.text in seen:
                continue
            seen.add(q.text)
            out.append(q)
    return out[:limit]


def expansion_dimensions() -> Dict[str, List[str]]:
    return {
        "stages": list(STAGES),
        "functions": list(FUNCTIONS),
        "pains": list(PAINS),
        "assets": list(ASSETS),
        "metrics": list(METRICS),
        "business_types": list(BUSINESS_TYPES),
    }
