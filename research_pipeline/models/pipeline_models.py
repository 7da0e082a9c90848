"""Models for the result of a full content processing run."""

from datetime import datetime, timezone
from enum import Enum
from typing import List

from pydantic import BaseModel, Field

from research_pipeline.models.scoring_models import (
    FilteringStats,
    QueryAnalysis,
    QueryComplexity,
    QueryType,
    RankedChunk,
)


class PipelineStage(str, Enum):
    """How far the pipeline got. A returned result is always complete."""

    SCRAPING = "scraping"
    CLEANING = "cleaning"
    CHUNKING = "chunking"
    SCORING = "scoring"
    COMPLETE = "complete"


class ProcessingOutcome(str, Enum):
    """Distinguishes a usable result from the expected empty outcomes."""

    RANKED = "ranked"
    # Chunks were produced but none cleared the relevance filter
    INSUFFICIENT_CONTENT = "insufficient_content"
    # No source yielded any chunk (all fetches failed or pages were empty)
    NO_CONTENT = "no_content"


class SourceMetadata(BaseModel):
    """Per-source word counts and stage timings."""

    url: str
    title: str = ""
    original_word_count: int = Field(default=0, ge=0)
    cleaned_word_count: int = Field(default=0, ge=0)
    total_chunks: int = Field(default=0, ge=0)
    average_chunk_size: int = Field(default=0, ge=0)
    scraping_time_ms: int = Field(default=0, ge=0)
    cleaning_time_ms: int = Field(default=0, ge=0)
    chunking_time_ms: int = Field(default=0, ge=0)
    content_reduction: int = Field(default=0, description="Percent of text removed")
    cleaning_fallback: bool = Field(
        default=False, description="Raw text was kept because cleaning failed"
    )


class FailedSource(BaseModel):
    """A URL that could not be scraped."""

    url: str
    error_message: str


class ProcessingSummary(BaseModel):
    """Aggregate statistics over the whole run."""

    total_urls: int = 0
    successful_urls: int = 0
    failed_urls: int = 0
    total_chunks: int = 0
    selected_chunks: int = 0
    chunk_filtering_efficiency: int = Field(
        default=0, description="Percent of chunks removed by filtering"
    )
    original_total_words: int = 0
    cleaned_total_words: int = 0
    final_selected_words: int = 0
    average_original_words_per_url: int = 0
    average_cleaned_words_per_url: int = 0
    average_chunks_per_url: float = 0.0
    average_selected_chunk_size: int = 0
    average_relevance_score: float = 0.0
    average_content_reduction: int = 0
    query_complexity: QueryComplexity = QueryComplexity.MODERATE
    query_type: QueryType = QueryType.GENERAL
    processing_time_ms: int = 0
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ProcessingResult(BaseModel):
    """Ranked chunks with per-source metadata and run statistics."""

    query: str
    ranked_chunks: List[RankedChunk] = Field(default_factory=list)
    source_metadata: List[SourceMetadata] = Field(default_factory=list)
    failed_urls: List[FailedSource] = Field(default_factory=list)
    filtering_stats: FilteringStats = Field(default_factory=FilteringStats)
    query_analysis: QueryAnalysis
    summary: ProcessingSummary
    stage: PipelineStage = PipelineStage.COMPLETE
    outcome: ProcessingOutcome = ProcessingOutcome.RANKED

    @property
    def has_relevant_content(self) -> bool:
        return self.outcome == ProcessingOutcome.RANKED
