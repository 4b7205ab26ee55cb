import re
from typing import Optional

from callai.keywords import KeywordTables, count_matches

SEGMENT_SPLIT = re.compile(r"[.!?]")


class SignalExtractor:
    """Pulls name, needs/objections/interests and sentiment out of an utterance.

    Pluggable: ConversationMemory only relies on the four public methods, so a
    different language or a model-backed extractor can be swapped in.
    """

    def __init__(self, tables: Optional[KeywordTables] = None):
        self.tables = tables or KeywordTables()
        self._name_patterns = [re.compile(p) for p in self.tables.name_patterns]

    def extract_name(self, text: str) -> str:
        """Return the first pattern capture that looks like a name, else ""."""
        for pattern in self._name_patterns:
            match = pattern.search(text)
            if not match or not match.group(1):
                continue
            candidate = match.group(1)
            if candidate in self.tables.name_stopwords or len(candidate) < 2:
                continue
            return candidate
        return ""

    def needs(self, text: str) -> list[str]:
        return self._keyword_segments(text, self.tables.need_keywords)

    def objections(self, text: str) -> list[str]:
        return self._keyword_segments(text, self.tables.objection_keywords)

    def interests(self, text: str) -> list[str]:
        return self._keyword_segments(text, self.tables.interest_keywords)

    def sentiment(self, text: str) -> str:
        """Majority of positive vs negative phrase hits; tie is neutral."""
        positive = count_matches(text, self.tables.positive_words)
        negative = count_matches(text, self.tables.negative_words)
        if positive > negative:
            return "positive"
        if negative > positive:
            return "negative"
        return "neutral"

    @staticmethod
    def _keyword_segments(text: str, keywords) -> list[str]:
        """For each keyword present, the first sentence-like segment containing it."""
        lower = text.lower()
        segments = SEGMENT_SPLIT.split(text)
        found = []
        for keyword in keywords:
            kw = keyword.lower()
            if kw not in lower:
                continue
            segment = next((s for s in segments if kw in s.lower()), None)
            if segment is None:
                continue
            segment = segment.strip()
            if segment and segment not in found:
                found.append(segment)
        return found
