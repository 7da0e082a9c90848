"""Tests for pipeline models."""

import json

import pytest
from hypothesis import given, strategies as st
from pydantic import ValidationError

from fakes import make_chunk
from research_pipeline.models.content_models import ChunkedContent
from research_pipeline.models.pipeline_models import (
    ProcessingOutcome,
    ProcessingResult,
    ProcessingSummary,
    SourceMetadata,
)
from research_pipeline.models.scoring_models import (
    ChunkLimits,
    ChunkPreview,
    ChunkRelevanceScore,
    QueryAnalysis,
    QueryComplexity,
    RankedChunk,
)
from research_pipeline.models.scraper_models import ScrapedDocument, SearchResult


class TestScrapedDocument:
    def test_succeeded_counts_words(self):
        document = ScrapedDocument.succeeded("https://a.example.com", "A", "one two three", 12)

        assert document.success
        assert document.word_count == 3
        assert document.error_message is None

    def test_failed_has_empty_body(self):
        document = ScrapedDocument.failed("https://a.example.com", "timeout", 40)

        assert not document.success
        assert document.raw_content == ""
        assert document.word_count == 0
        assert document.error_message == "timeout"
        assert document.elapsed_time_ms == 40


class TestSearchResult:
    def test_link_is_required(self):
        with pytest.raises(ValidationError):
            SearchResult(title="No link")

    def test_defaults(self):
        result = SearchResult(link="https://a.example.com")

        assert result.title == ""
        assert result.position is None


class TestChunkRelevanceScore:
    def test_scores_are_clamped(self):
        score = ChunkRelevanceScore(chunk_index=1, relevance_score=1.4, quality_score=-0.2)

        assert score.relevance_score == 1.0
        assert score.quality_score == 0.0

    def test_missing_scores_are_neutral(self):
        score = ChunkRelevanceScore(chunk_index=1)

        assert score.relevance_score == 0.5
        assert score.quality_score == 0.5

    def test_string_lists_are_coerced(self):
        score = ChunkRelevanceScore(chunk_index=1, reasons="not a list", key_matches=["a", None, 3])

        assert score.reasons == []
        assert score.key_matches == ["a", "3"]

    def test_neutral(self):
        score = ChunkRelevanceScore.neutral(4, "why")

        assert (score.chunk_index, score.relevance_score, score.reasons) == (4, 0.5, ["why"])


def test_chunk_preview_index_is_one_based():
    with pytest.raises(ValidationError):
        ChunkPreview(chunk_index=0, preview="x")


def test_chunk_limits_per_complexity():
    limits = ChunkLimits()

    assert [limits.for_complexity(c) for c in QueryComplexity] == [3, 4, 5]


def test_ranked_chunk_rejects_out_of_range_scores():
    with pytest.raises(ValidationError):
        RankedChunk(
            chunk=make_chunk(),
            relevance_score=1.2,
            quality_score=0.5,
            diversity_score=1.0,
            position_score=1.0,
            final_score=0.8,
            rank=1,
        )


def test_chunked_content_empty():
    content = ChunkedContent.empty("failed", 120)

    assert content.chunks == []
    assert content.total_chunks == 0
    assert content.chunking_strategy == "failed"
    assert content.original_length == 120


class TestProcessingResult:
    def _result(self, outcome: ProcessingOutcome) -> ProcessingResult:
        ranked = [
            RankedChunk(
                chunk=make_chunk(),
                relevance_score=0.9,
                quality_score=0.8,
                diversity_score=1.0,
                position_score=1.0,
                final_score=0.89,
                rank=1,
            )
        ]
        return ProcessingResult(
            query="What is a qubit",
            ranked_chunks=ranked if outcome == ProcessingOutcome.RANKED else [],
            source_metadata=[SourceMetadata(url="https://a.example.com")],
            query_analysis=QueryAnalysis(),
            summary=ProcessingSummary(total_urls=1, successful_urls=1),
            outcome=outcome,
        )

    def test_has_relevant_content(self):
        assert self._result(ProcessingOutcome.RANKED).has_relevant_content
        assert not self._result(ProcessingOutcome.INSUFFICIENT_CONTENT).has_relevant_content

    def test_serializes_to_json(self):
        payload = json.loads(self._result(ProcessingOutcome.RANKED).model_dump_json())

        assert payload["outcome"] == "ranked"
        assert payload["stage"] == "complete"
        assert payload["ranked_chunks"][0]["chunk"]["chunking_method"] == "sentence-boundary"
        assert payload["ranked_chunks"][0]["chunk"]["id"] == "0-chunk-1"
        assert "timestamp" in payload["summary"]


@given(
    total_urls=st.integers(min_value=0, max_value=100),
    efficiency=st.integers(min_value=0, max_value=100),
)
def test_processing_summary_properties(total_urls: int, efficiency: int):
    """Property: summaries accept any non-negative counts and percentages."""
    summary = ProcessingSummary(total_urls=total_urls, chunk_filtering_efficiency=efficiency)

    assert summary.total_urls == total_urls
    assert summary.chunk_filtering_efficiency == efficiency
    assert summary.timestamp.tzinfo is not None
