"""Application configuration using Pydantic BaseSettings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from research_pipeline.constants import (
    CHUNK_OVERLAP_WORDS,
    COMPLEX_QUERY_CHUNK_LIMIT,
    DEFAULT_SCORING_MODEL,
    DEFAULT_SEARCH_RESULT_LIMIT,
    DIVERSITY_FLOOR,
    DIVERSITY_PENALTY_PER_CHUNK,
    DIVERSITY_WEIGHT,
    MAX_CHUNK_SIZE_WORDS,
    MAX_CONCURRENT_PAGES,
    MAX_CONCURRENT_SCORING_BATCHES,
    MAX_POOL_BROWSERS,
    MIN_CHUNK_SIZE_WORDS,
    MIN_FINAL_SCORE,
    MIN_QUALITY_SCORE,
    MIN_RELEVANCE_SCORE,
    MODERATE_QUERY_CHUNK_LIMIT,
    NAVIGATION_TIMEOUT_SECONDS,
    PAGE_SETTLE_SECONDS,
    POSITION_FLOOR,
    POSITION_PENALTY_PER_STEP,
    POSITION_WEIGHT,
    QUALITY_WEIGHT,
    RELEVANCE_WEIGHT,
    SCORING_BATCH_SIZE,
    SCORING_TIMEOUT_SECONDS,
    SCRAPE_TIMEOUT_SECONDS,
    SEARCH_TIMEOUT_SECONDS,
    SIMPLE_QUERY_CHUNK_LIMIT,
    TARGET_CHUNK_SIZE_WORDS,
)
from research_pipeline.models.scoring_models import (
    ChunkLimits,
    FilterThresholds,
    ScoreHeuristics,
    ScoringWeights,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        # Load .env first, then .env.local (for local/test overrides)
        # Later files override earlier ones, so .env.local takes precedence
        env_file=[".env", ".env.local"],
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: Literal["local", "test", "prod"] = Field(
        default="local", description="Current environment"
    )
    log_level: str = Field(default="INFO", description="Python logging level")

    # Logfire Configuration
    logfire_token: str | None = Field(
        default=None, description="Pydantic Logfire token for cloud logging"
    )

    # Web Search (Serper)
    serper_api_key: str | None = Field(
        default=None, description="Serper.dev API key for web search"
    )
    search_result_limit: int = Field(
        default=DEFAULT_SEARCH_RESULT_LIMIT,
        ge=1,
        description="Max number of organic search results to return",
    )
    search_timeout_seconds: float = Field(
        default=SEARCH_TIMEOUT_SECONDS, gt=0, description="Search API timeout"
    )

    # Semantic Scoring (PydanticAI)
    scoring_model: str = Field(
        default=DEFAULT_SCORING_MODEL,
        description="PydanticAI model string used to score chunk relevance",
    )
    scoring_enabled: bool = Field(
        default=True,
        description="Disable to rank with neutral fallback scores (no LLM calls)",
    )

    # ==========================================================================
    # Browser Configuration
    # ==========================================================================

    browser_headless: bool = Field(default=True, description="Run Chromium headless")
    max_concurrent_pages: int = Field(
        default=MAX_CONCURRENT_PAGES,
        ge=1,
        description="Pages pre-created on the shared browser",
    )
    max_pool_browsers: int = Field(
        default=MAX_POOL_BROWSERS,
        ge=1,
        description="Max browsers in the fallback pool",
    )
    navigation_timeout_seconds: float = Field(
        default=NAVIGATION_TIMEOUT_SECONDS, gt=0, description="page.goto() timeout"
    )
    scrape_timeout_seconds: float = Field(
        default=SCRAPE_TIMEOUT_SECONDS,
        gt=0,
        description="Timeout around the whole fetch of one URL",
    )
    page_settle_seconds: float = Field(
        default=PAGE_SETTLE_SECONDS,
        ge=0,
        description="Wait after DOMContentLoaded for deferred rendering",
    )

    # ==========================================================================
    # Chunking Configuration (words)
    # ==========================================================================

    target_chunk_size: int = Field(default=TARGET_CHUNK_SIZE_WORDS, ge=1)
    min_chunk_size: int = Field(default=MIN_CHUNK_SIZE_WORDS, ge=1)
    max_chunk_size: int = Field(default=MAX_CHUNK_SIZE_WORDS, ge=1)
    chunk_overlap: int = Field(default=CHUNK_OVERLAP_WORDS, ge=0)

    # ==========================================================================
    # Relevance Scoring Configuration
    # ==========================================================================

    scoring_batch_size: int = Field(default=SCORING_BATCH_SIZE, ge=1)
    max_concurrent_scoring_batches: int = Field(
        default=MAX_CONCURRENT_SCORING_BATCHES, ge=1
    )
    scoring_timeout_seconds: float = Field(default=SCORING_TIMEOUT_SECONDS, gt=0)

    relevance_weight: float = Field(default=RELEVANCE_WEIGHT, ge=0, le=1)
    quality_weight: float = Field(default=QUALITY_WEIGHT, ge=0, le=1)
    diversity_weight: float = Field(default=DIVERSITY_WEIGHT, ge=0, le=1)
    position_weight: float = Field(default=POSITION_WEIGHT, ge=0, le=1)

    min_relevance_score: float = Field(default=MIN_RELEVANCE_SCORE, ge=0, le=1)
    min_quality_score: float = Field(default=MIN_QUALITY_SCORE, ge=0, le=1)
    min_final_score: float = Field(default=MIN_FINAL_SCORE, ge=0, le=1)

    simple_query_chunk_limit: int = Field(default=SIMPLE_QUERY_CHUNK_LIMIT, ge=1)
    moderate_query_chunk_limit: int = Field(default=MODERATE_QUERY_CHUNK_LIMIT, ge=1)
    complex_query_chunk_limit: int = Field(default=COMPLEX_QUERY_CHUNK_LIMIT, ge=1)

    # Diversity and position heuristics (starting policy, not tuned)
    diversity_floor: float = Field(default=DIVERSITY_FLOOR, ge=0, le=1)
    diversity_penalty: float = Field(default=DIVERSITY_PENALTY_PER_CHUNK, ge=0, le=1)
    position_floor: float = Field(default=POSITION_FLOOR, ge=0, le=1)
    position_penalty: float = Field(default=POSITION_PENALTY_PER_STEP, ge=0, le=1)

    @model_validator(mode="after")
    def _check_chunk_sizes(self) -> "Settings":
        if not self.min_chunk_size <= self.target_chunk_size <= self.max_chunk_size:
            raise ValueError(
                "chunk sizes must satisfy min_chunk_size <= target_chunk_size <= max_chunk_size"
            )
        # Fails loudly if relevance does not dominate
        self.scoring_weights()
        return self

    def scoring_weights(self) -> ScoringWeights:
        """Composite score weights as a validated value object."""
        return ScoringWeights(
            relevance=self.relevance_weight,
            quality=self.quality_weight,
            diversity=self.diversity_weight,
            position=self.position_weight,
        )

    def filter_thresholds(self) -> FilterThresholds:
        """Minimum scores a chunk needs to survive filtering."""
        return FilterThresholds(
            min_relevance=self.min_relevance_score,
            min_quality=self.min_quality_score,
            min_final=self.min_final_score,
        )

    def score_heuristics(self) -> ScoreHeuristics:
        return ScoreHeuristics(
            diversity_floor=self.diversity_floor,
            diversity_penalty=self.diversity_penalty,
            position_floor=self.position_floor,
            position_penalty=self.position_penalty,
        )

    def chunk_limits(self) -> ChunkLimits:
        """Ranked chunks returned per query complexity."""
        return ChunkLimits(
            simple=self.simple_query_chunk_limit,
            moderate=self.moderate_query_chunk_limit,
            complex=self.complex_query_chunk_limit,
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
