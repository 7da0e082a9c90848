"""Rule-based classification of research queries.

Query type and intent come from ordered pattern tables (first match wins),
so each pattern can be tested and extended independently.
"""

import re
from typing import List

from research_pipeline.constants import (
    COMPLEX_MIN_KEY_TERMS,
    COMPLEX_MIN_QUERY_CHARS,
    MIN_KEY_TERM_CHARS,
    SIMPLE_MAX_KEY_TERMS,
    SIMPLE_MAX_QUERY_CHARS,
)
from research_pipeline.models.scoring_models import (
    QueryAnalysis,
    QueryComplexity,
    QueryIntent,
    QueryType,
)


class QueryAnalyzer:
    """Classify a query's type, intent and complexity and extract key terms."""

    QUERY_TYPE_PATTERNS: List[tuple[str, QueryType]] = [
        (r"\b(?:what is|define|meaning of|explain|definition)\b", QueryType.DEFINITION),
        (
            r"\b(?:how to|how do|tutorial|guide|steps|instructions)\b",
            QueryType.HOW_TO,
        ),
        (r"\b(?:vs|versus|difference|compare|better|best)\b", QueryType.COMPARISON),
        (
            r"\b(?:api|code|programming|syntax|implementation|library|framework)\b",
            QueryType.TECHNICAL,
        ),
        (
            r"\b(?:concept|theory|principle|why|when|where|philosophy)\b",
            QueryType.CONCEPTUAL,
        ),
    ]

    QUERY_INTENT_PATTERNS: List[tuple[str, QueryIntent]] = [
        (r"\b(?:learn|understand|know|explain|what)\b", QueryIntent.LEARN),
        (r"\b(?:solve|fix|error|problem|issue|debug)\b", QueryIntent.SOLVE),
        (r"\b(?:compare|vs|versus|difference|better|best)\b", QueryIntent.COMPARE),
        (
            r"\b(?:implement|build|create|make|develop|code)\b",
            QueryIntent.IMPLEMENT,
        ),
        (r"\b(?:why|when|where|concept|theory|principle)\b", QueryIntent.UNDERSTAND),
    ]

    COMPLEXITY_MARKERS = r"\b(?:advanced|complex|detailed|comprehensive)\b"

    STOP_WORDS = frozenset(
        (
            "what", "is", "how", "to", "the", "a", "an", "and", "or", "but",
            "in", "on", "at", "for", "with", "by",
        )
    )

    _TERM_RE = re.compile(r"[a-z0-9][a-z0-9+#._-]*")

    def __init__(self) -> None:
        """Initialize the analyzer with compiled pattern tables."""
        self._type_patterns = [
            (re.compile(pattern, re.IGNORECASE), query_type)
            for pattern, query_type in self.QUERY_TYPE_PATTERNS
        ]
        self._intent_patterns = [
            (re.compile(pattern, re.IGNORECASE), intent)
            for pattern, intent in self.QUERY_INTENT_PATTERNS
        ]
        self._complexity_markers = re.compile(self.COMPLEXITY_MARKERS, re.IGNORECASE)

    def analyze(self, query: str) -> QueryAnalysis:
        """Analyze a query.

        Args:
            query: The user's research query

        Returns:
            QueryAnalysis (general/learn defaults when nothing matches)
        """
        query = query.strip()
        key_terms = self.extract_key_terms(query)
        return QueryAnalysis(
            type=self.classify_type(query),
            key_terms=key_terms,
            intent=self.classify_intent(query),
            complexity=self.classify_complexity(query, key_terms),
        )

    def classify_type(self, query: str) -> QueryType:
        for pattern, query_type in self._type_patterns:
            if pattern.search(query):
                return query_type
        return QueryType.GENERAL

    def classify_intent(self, query: str) -> QueryIntent:
        for pattern, intent in self._intent_patterns:
            if pattern.search(query):
                return intent
        return QueryIntent.LEARN

    def extract_key_terms(self, query: str) -> List[str]:
        """Lowercased, stop-word-filtered, deduplicated terms in query order."""
        seen: set[str] = set()
        terms: List[str] = []
        for token in self._TERM_RE.findall(query.lower()):
            term = token.strip("._-")
            if (
                len(term) < MIN_KEY_TERM_CHARS
                or term in self.STOP_WORDS
                or term in seen
            ):
                continue
            seen.add(term)
            terms.append(term)
        return terms

    def classify_complexity(self, query: str, key_terms: List[str]) -> QueryComplexity:
        if len(query) < SIMPLE_MAX_QUERY_CHARS and len(key_terms) <= SIMPLE_MAX_KEY_TERMS:
            return QueryComplexity.SIMPLE
        if (
            len(query) > COMPLEX_MIN_QUERY_CHARS
            or len(key_terms) > COMPLEX_MIN_KEY_TERMS
            or self._complexity_markers.search(query)
        ):
            return QueryComplexity.COMPLEX
        return QueryComplexity.MODERATE
