"""Keyword and phrase tables for entity extraction, sentiment and stage rules.

The defaults target Hebrew sales calls.  They are data, not logic: a
deployment can replace any table by pointing ``KEYWORDS_FILE`` at a JSON
object whose keys are field names of :class:`KeywordTables`.
"""

import json
import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KeywordTables:
    # Ordered: the first pattern whose capture passes validation wins.
    name_patterns: tuple = (
        r"קוראים לי ([א-ת]+)",
        r"אני ([א-ת]+)",
        r"שמי ([א-ת]+)",
        r"זה ([א-ת]+)",
        r"^([א-ת]+)$",
    )
    name_stopwords: frozenset = frozenset({
        "כן", "לא", "טוב", "רע", "אוקיי", "בסדר", "הלו", "שלום",
    })

    need_keywords: tuple = (
        "צריך", "רוצה", "מחפש", "מעוניין", "בעיה", "קשה", "חשוב", "דרוש",
    )
    objection_keywords: tuple = (
        "יקר", "לא בטוח", "לא מתאים", "לא מעוניין",
        "אין לי זמן", "לא עכשיו", "צריך לחשוב", "לא בשבילי",
    )
    interest_keywords: tuple = ("מעניין", "נשמע טוב", "אהבתי", "נחמד", "כן")

    positive_words: tuple = (
        "מעולה", "נהדר", "כן", "בטח", "מעניין", "טוב", "מצוין",
        "אהבתי", "נחמד", "כיף", "שמח", "תודה", "נשמע טוב",
    )
    negative_words: tuple = (
        "לא", "רע", "גרוע", "לא מעניין", "אין", "בעיה", "קשה",
        "יקר", "לא בשבילי", "לא מתאים", "לא בטוח",
    )

    greeting_phrases: tuple = ("הלו", "שלום", "היי", "מה נשמע", "בוקר טוב", "ערב טוב")
    agreement_phrases: tuple = (
        "כן", "בטח", "אוקיי", "טוב", "נשמע טוב", "בסדר", "מעולה", "נהדר",
    )
    negation_words: tuple = ("לא",)
    needs_time_phrases: tuple = ("אחשוב", "אחזור", "תן לי זמן", "נדבר", "מחר", "אשקול")
    refusal_phrases: tuple = ("לא", "לא מעוניין", "לא בשבילי", "לא מתאים", "תודה אבל")

    follow_up_note: str = "Follow up in 1-2 days"

    @classmethod
    def load(cls, path) -> "KeywordTables":
        """Build tables from a JSON file, overriding defaults key by key."""
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(raw, dict):
            raise ValueError(f"Keyword file {path} must contain a JSON object")

        known = {f.name: f for f in fields(cls)}
        overrides = {}
        for key, value in raw.items():
            if key not in known:
                raise ValueError(f"Unknown keyword table '{key}' in {path}")
            if key == "follow_up_note":
                if not isinstance(value, str):
                    raise ValueError("follow_up_note must be a string")
                overrides[key] = value
                continue
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                raise ValueError(f"Keyword table '{key}' must be a list of strings")
            overrides[key] = frozenset(value) if key == "name_stopwords" else tuple(value)

        logger.info("Loaded keyword overrides from %s: %s", path, sorted(overrides))
        return replace(cls(), **overrides)


def contains_any(text: str, phrases) -> bool:
    """Case-normalized substring containment (not word-boundary matching)."""
    lower = text.lower()
    return any(p.lower() in lower for p in phrases)


def count_matches(text: str, phrases) -> int:
    """Number of distinct phrases contained in text."""
    lower = text.lower()
    return sum(1 for p in phrases if p.lower() in lower)
