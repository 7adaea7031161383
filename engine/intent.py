from dataclasses import dataclass
from typing import Dict, List

# Keyword cues per intent; order doubles as the tie-break order.
INTENT_KEYWORDS: Dict[str, List[str]] = {
    "pain": [
        "problem", "issue", "struggle", "difficulty", "challenge", "pain",
        "cash flow", "churn", "burnout", "stress", "failing", "losing",
        "can't", "unable", "stuck", "blocked",
    ],
    "tool": [
        "software", "tool", "system", "platform", "app", "solution",
        "crm", "dashboard", "automation", "integration", "plugin",
    ],
    "transition": [
        "exit", "scale", "grow", "expand", "transition", "change",
        "next step", "move to", "upgrade", "migrate", "switch",
    ],
    "education": [
        "how to", "learn", "guide", "tutorial", "best practice",
        "tips", "strategy", "method", "approach", "way to",
    ],
}


@dataclass
class IntentResult:
    intent_type: str
    confidence: float  # 0..100


def classify_intent(text: str) -> IntentResult:
    """Rule-based intent: most keyword hits wins, confidence = winner's share of hits."""
    t = (text or "").lower()
    hits = {intent: sum(1 for kw in kws if kw in t) for intent, kws in INTENT_KEYWORDS.items()}
    total = sum(hits.values())
    if total == 0:
        return IntentResult(intent_type="education", confidence=50.0)

    best = max(hits.values())
    intent = next(i for i in INTENT_KEYWORDS if hits[i] == best)
    return IntentResult(intent_type=intent, confidence=round(min(100.0, 100.0 * best / total), 2))
