"""Models for query analysis, chunk scoring and ranking."""

import math
from enum import Enum
from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from research_pipeline.constants import (
    COMPLEX_QUERY_CHUNK_LIMIT,
    DIVERSITY_FLOOR,
    DIVERSITY_PENALTY_PER_CHUNK,
    DIVERSITY_WEIGHT,
    FILTERING_STRATEGY,
    MIN_FINAL_SCORE,
    MIN_QUALITY_SCORE,
    MIN_RELEVANCE_SCORE,
    MODERATE_QUERY_CHUNK_LIMIT,
    NEUTRAL_SCORE,
    POSITION_FLOOR,
    POSITION_PENALTY_PER_STEP,
    POSITION_WEIGHT,
    QUALITY_WEIGHT,
    RELEVANCE_WEIGHT,
    SIMPLE_QUERY_CHUNK_LIMIT,
)
from research_pipeline.models.content_models import TextChunk


def clamp_score(value: Any) -> float:
    """Clamp a score to [0, 1]; non-numeric and NaN values become neutral."""
    try:
        score = float(value)
    except (TypeError, ValueError):
        return NEUTRAL_SCORE
    if math.isnan(score):
        return NEUTRAL_SCORE
    return min(1.0, max(0.0, score))


class QueryType(str, Enum):
    DEFINITION = "definition"
    HOW_TO = "how-to"
    COMPARISON = "comparison"
    TECHNICAL = "technical"
    CONCEPTUAL = "conceptual"
    GENERAL = "general"


class QueryIntent(str, Enum):
    LEARN = "learn"
    SOLVE = "solve"
    COMPARE = "compare"
    IMPLEMENT = "implement"
    UNDERSTAND = "understand"


class QueryComplexity(str, Enum):
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


class QueryAnalysis(BaseModel):
    """Classification of a research query, computed once per request."""

    model_config = ConfigDict(frozen=True)

    type: QueryType = QueryType.GENERAL
    key_terms: List[str] = Field(default_factory=list)
    intent: QueryIntent = QueryIntent.LEARN
    complexity: QueryComplexity = QueryComplexity.MODERATE


class ChunkPreview(BaseModel):
    """Truncated chunk content sent to the semantic scorer."""

    chunk_index: int = Field(..., ge=1, description="1-based index within the batch")
    preview: str
    source_title: str = ""


class ChunkRelevanceScore(BaseModel):
    """Semantic scorer verdict for one chunk preview.

    The scorer is an unreliable external capability, so validation is
    lenient: out-of-range scores are clamped to [0, 1] and missing,
    non-numeric or NaN scores become neutral.
    """

    chunk_index: int = Field(..., description="1-based index of the scored preview")
    relevance_score: float = Field(
        default=NEUTRAL_SCORE, description="How well the chunk answers the query, 0-1"
    )
    quality_score: float = Field(
        default=NEUTRAL_SCORE, description="Informativeness and clarity of the text, 0-1"
    )
    reasons: List[str] = Field(
        default_factory=list, description="Short justifications for the scores"
    )
    key_matches: List[str] = Field(
        default_factory=list, description="Query terms or concepts found in the chunk"
    )

    @field_validator("relevance_score", "quality_score", mode="before")
    @classmethod
    def _clamp_score(cls, value: Any) -> float:
        return clamp_score(value)

    @field_validator("reasons", "key_matches", mode="before")
    @classmethod
    def _coerce_string_list(cls, value: Any) -> List[str]:
        if not isinstance(value, (list, tuple)):
            return []
        return [str(item) for item in value if item is not None]

    @classmethod
    def neutral(cls, chunk_index: int, reason: str) -> "ChunkRelevanceScore":
        return cls(
            chunk_index=chunk_index,
            relevance_score=NEUTRAL_SCORE,
            quality_score=NEUTRAL_SCORE,
            reasons=[reason],
        )


class ScoringWeights(BaseModel):
    """Weights of the composite score. Relevance must dominate."""

    model_config = ConfigDict(frozen=True)

    relevance: float = Field(default=RELEVANCE_WEIGHT, ge=0, le=1)
    quality: float = Field(default=QUALITY_WEIGHT, ge=0, le=1)
    diversity: float = Field(default=DIVERSITY_WEIGHT, ge=0, le=1)
    position: float = Field(default=POSITION_WEIGHT, ge=0, le=1)

    @model_validator(mode="after")
    def _relevance_dominates(self) -> "ScoringWeights":
        if self.relevance <= max(self.quality, self.diversity, self.position):
            raise ValueError(
                "relevance weight must be greater than every other scoring weight"
            )
        return self


class ScoreHeuristics(BaseModel):
    """Floors and slopes of the diversity and position scores."""

    model_config = ConfigDict(frozen=True)

    diversity_floor: float = Field(default=DIVERSITY_FLOOR, ge=0, le=1)
    diversity_penalty: float = Field(default=DIVERSITY_PENALTY_PER_CHUNK, ge=0, le=1)
    position_floor: float = Field(default=POSITION_FLOOR, ge=0, le=1)
    position_penalty: float = Field(default=POSITION_PENALTY_PER_STEP, ge=0, le=1)

    def diversity(self, same_source_count: int) -> float:
        return max(
            self.diversity_floor, 1.0 - (same_source_count - 1) * self.diversity_penalty
        )

    def position(self, position: int) -> float:
        return max(self.position_floor, 1.0 - (position - 1) * self.position_penalty)


class FilterThresholds(BaseModel):
    """Minimum scores; a chunk must clear all three."""

    model_config = ConfigDict(frozen=True)

    min_relevance: float = Field(default=MIN_RELEVANCE_SCORE, ge=0, le=1)
    min_quality: float = Field(default=MIN_QUALITY_SCORE, ge=0, le=1)
    min_final: float = Field(default=MIN_FINAL_SCORE, ge=0, le=1)

    def passes(self, relevance: float, quality: float, final: float) -> bool:
        return (
            relevance >= self.min_relevance
            and quality >= self.min_quality
            and final >= self.min_final
        )


class ChunkLimits(BaseModel):
    """Maximum ranked chunks returned per query complexity."""

    model_config = ConfigDict(frozen=True)

    simple: int = Field(default=SIMPLE_QUERY_CHUNK_LIMIT, ge=1)
    moderate: int = Field(default=MODERATE_QUERY_CHUNK_LIMIT, ge=1)
    complex: int = Field(default=COMPLEX_QUERY_CHUNK_LIMIT, ge=1)

    def for_complexity(self, complexity: QueryComplexity) -> int:
        return {
            QueryComplexity.SIMPLE: self.simple,
            QueryComplexity.MODERATE: self.moderate,
            QueryComplexity.COMPLEX: self.complex,
        }[complexity]


class RankedChunk(BaseModel):
    """A chunk that survived filtering, with its scores and 1-based rank."""

    chunk: TextChunk
    relevance_score: float = Field(..., ge=0, le=1)
    quality_score: float = Field(..., ge=0, le=1)
    diversity_score: float = Field(..., ge=0, le=1)
    position_score: float = Field(..., ge=0, le=1)
    final_score: float = Field(..., ge=0, le=1)
    reasons: List[str] = Field(default_factory=list)
    key_matches: List[str] = Field(default_factory=list)
    rank: int = Field(..., ge=1)


class FilteringStats(BaseModel):
    """Counts and timing of one score-and-filter run."""

    total_chunks: int = 0
    passed_threshold_chunks: int = 0
    filtered_chunks: int = 0
    average_relevance: float = 0.0
    filtering_strategy: str = FILTERING_STRATEGY
    processing_time_ms: int = 0
    used_fallback_scoring: bool = False


class RelevanceScoringResult(BaseModel):
    """Ranked chunks plus the statistics and query analysis behind them."""

    ranked_chunks: List[RankedChunk] = Field(default_factory=list)
    filtering_stats: FilteringStats = Field(default_factory=FilteringStats)
    query_analysis: QueryAnalysis
