"""Tests for rule-based query analysis."""

import pytest

from research_pipeline.constants import COMPLEX_MIN_KEY_TERMS, SIMPLE_MAX_QUERY_CHARS

from research_pipeline.models.scoring_models import (
    QueryComplexity,
    QueryIntent,
    QueryType,
)
from research_pipeline.services.query_analyzer import QueryAnalyzer


@pytest.fixture
def analyzer() -> QueryAnalyzer:
    return QueryAnalyzer()


@pytest.mark.parametrize(
    "query,expected_type",
    [
        ("What is a qubit", QueryType.DEFINITION),
        ("how to fix a segfault in C", QueryType.HOW_TO),
        ("python vs rust for web services", QueryType.COMPARISON),
        ("numpy library performance", QueryType.TECHNICAL),
        ("why do qubits decohere", QueryType.CONCEPTUAL),
        ("sourdough starter hydration", QueryType.GENERAL),
    ],
)
def test_classify_type(analyzer, query, expected_type):
    assert analyzer.classify_type(query) == expected_type


def test_type_patterns_first_match_wins(analyzer):
    # "explain" (definition) is listed before "best" (comparison)
    assert analyzer.classify_type("explain the best sorting algorithm") == QueryType.DEFINITION


@pytest.mark.parametrize(
    "query,expected_intent",
    [
        ("What is a qubit", QueryIntent.LEARN),
        ("how to fix a segfault in C", QueryIntent.SOLVE),
        ("python vs rust for web services", QueryIntent.COMPARE),
        ("build a rate limiter in go", QueryIntent.IMPLEMENT),
        ("why do qubits decohere", QueryIntent.UNDERSTAND),
        ("sourdough starter hydration", QueryIntent.LEARN),
    ],
)
def test_classify_intent(analyzer, query, expected_intent):
    assert analyzer.classify_intent(query) == expected_intent


class TestKeyTerms:
    def test_filters_stop_words_and_short_terms(self, analyzer):
        assert analyzer.extract_key_terms("What is the best way to do it") == ["best", "way"]

    def test_lowercases_and_deduplicates(self, analyzer):
        assert analyzer.extract_key_terms("Qubits and QUBITS and qubits") == ["qubits"]

    def test_keeps_technical_tokens(self, analyzer):
        assert analyzer.extract_key_terms("C++ and C# vs Node.js: Node.js") == ["c++", "node.js"]


class TestComplexity:
    def test_short_query_is_simple(self, analyzer):
        assert analyzer.analyze("What is a qubit").complexity == QueryComplexity.SIMPLE

    def test_many_terms_is_complex(self, analyzer):
        analysis = analyzer.analyze(
            "How does quantum error correction work in superconducting qubits"
        )

        assert len(analysis.key_terms) > 5
        assert analysis.complexity == QueryComplexity.COMPLEX

    def test_long_query_is_complex(self, analyzer):
        query = "tell me everything about " + "the history of " * 6 + "computing"

        assert len(query) > 80
        assert analyzer.analyze(query).complexity == QueryComplexity.COMPLEX

    def test_marker_word_is_complex(self, analyzer):
        assert analyzer.analyze("advanced rust lifetimes guide").complexity == (
            QueryComplexity.COMPLEX
        )

    def test_otherwise_moderate(self, analyzer):
        assert analyzer.analyze("quantum computing basics explained").complexity == (
            QueryComplexity.MODERATE
        )

    def test_key_term_threshold_comes_from_constants(self, analyzer):
        query = "quantum computing basics explained"
        terms = [f"term{i}" for i in range(COMPLEX_MIN_KEY_TERMS + 1)]

        assert len(query) >= SIMPLE_MAX_QUERY_CHARS
        assert analyzer.classify_complexity(query, terms[:-1]) == QueryComplexity.MODERATE
        assert analyzer.classify_complexity(query, terms) == QueryComplexity.COMPLEX


def test_analyze_defaults(analyzer):
    analysis = analyzer.analyze("   sourdough starter hydration  ")

    assert analysis.type == QueryType.GENERAL
    assert analysis.intent == QueryIntent.LEARN
    assert analysis.key_terms == ["sourdough", "starter", "hydration"]


def test_analyze_is_deterministic(analyzer):
    query = "compare postgres and mysql replication"

    assert analyzer.analyze(query) == analyzer.analyze(query)
