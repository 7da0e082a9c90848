"""Semantic scoring of chunk previews against a query.

The ranker depends only on the SemanticScorer protocol. PydanticAIScorer
asks a hosted model through a PydanticAI agent with structured output;
NeutralScorer is the deterministic fallback used when scoring is disabled
or unavailable. Whatever a scorer returns goes through normalize_scores(),
which guarantees exactly one clamped score per preview.
"""

import logging
from typing import Any, Iterable, List, Protocol

import logfire
from pydantic import ValidationError
from pydantic_ai import Agent
from pydantic_ai.settings import ModelSettings

from research_pipeline.config import Settings, get_settings
from research_pipeline.constants import CHUNK_PREVIEW_CHARS, SCORING_TEMPERATURE
from research_pipeline.models.content_models import TextChunk
from research_pipeline.models.scoring_models import (
    ChunkPreview,
    ChunkRelevanceScore,
    QueryAnalysis,
)

logger = logging.getLogger(__name__)

FALLBACK_REASON = "Fallback scoring - semantic scorer unavailable"
MISSING_SCORE_REASON = "No score returned"

SCORING_SYSTEM_PROMPT = """\
You are an expert content relevance analyzer. You rate how relevant text
chunks are to a search query.

For each chunk, consider:
1. RELEVANCE: How directly does this chunk answer or relate to the query?
2. QUALITY: How informative, accurate, and well-structured is the content?
3. KEY MATCHES: Which key terms or concepts from the query are present?
4. VALUE: How useful would this be for someone with the identified intent?

Return exactly one score object per chunk, using the chunk's number as
chunk_index. relevance_score and quality_score are between 0.0 and 1.0.
Keep reasons short (a few words each)."""


class ScoringUnavailableError(Exception):
    """Raised when the semantic scoring capability cannot produce scores."""

    pass


class SemanticScorer(Protocol):
    """Protocol for the external semantic scoring capability."""

    async def score(
        self,
        query: str,
        analysis: QueryAnalysis,
        previews: List[ChunkPreview],
    ) -> List[ChunkRelevanceScore]:
        """Score a batch of chunk previews.

        Args:
            query: The research query
            analysis: Analysis of the query
            previews: Chunk previews with 1-based chunk_index values

        Returns:
            Scores keyed by chunk_index (may be incomplete or out of range;
            callers normalize)

        Raises:
            ScoringUnavailableError: If no scores can be produced
        """
        ...


def build_previews(chunks: List[TextChunk]) -> List[ChunkPreview]:
    """Create 1-based previews of a batch, truncated to CHUNK_PREVIEW_CHARS."""
    previews = []
    for index, chunk in enumerate(chunks, start=1):
        preview = chunk.content[:CHUNK_PREVIEW_CHARS]
        if len(chunk.content) > CHUNK_PREVIEW_CHARS:
            preview += "..."
        previews.append(
            ChunkPreview(chunk_index=index, preview=preview, source_title=chunk.source_title)
        )
    return previews


def build_scoring_prompt(
    query: str, analysis: QueryAnalysis, previews: List[ChunkPreview]
) -> str:
    """Render the user prompt for one scoring batch."""
    chunk_sections = "\n\n".join(
        f'CHUNK {preview.chunk_index} (from "{preview.source_title}"):\n"{preview.preview}"'
        for preview in previews
    )
    return (
        f'SEARCH QUERY: "{query}"\n'
        f"QUERY TYPE: {analysis.type.value}\n"
        f"KEY TERMS: {', '.join(analysis.key_terms)}\n"
        f"USER INTENT: {analysis.intent.value}\n\n"
        f"CHUNKS TO SCORE:\n\n{chunk_sections}\n\n"
        f"Return exactly {len(previews)} score objects, one for each chunk."
    )


def fallback_scores(previews: List[ChunkPreview]) -> List[ChunkRelevanceScore]:
    """Neutral 0.5/0.5 scores for every preview."""
    return [
        ChunkRelevanceScore.neutral(preview.chunk_index, FALLBACK_REASON)
        for preview in previews
    ]


def normalize_scores(
    raw_scores: Iterable[Any] | None, expected_count: int
) -> List[ChunkRelevanceScore]:
    """Return exactly one valid score per index 1..expected_count.

    Invalid entries, out-of-range indices and duplicates (after the first)
    are dropped; missing indices get a neutral score.

    Args:
        raw_scores: Scorer output (ChunkRelevanceScore objects or dicts)
        expected_count: Number of previews that were scored

    Returns:
        Scores ordered by chunk_index
    """
    by_index: dict[int, ChunkRelevanceScore] = {}
    dropped = 0
    for entry in raw_scores or []:
        if isinstance(entry, ChunkRelevanceScore):
            score = entry
        else:
            try:
                score = ChunkRelevanceScore.model_validate(entry)
            except ValidationError:
                dropped += 1
                continue
        if not 1 <= score.chunk_index <= expected_count or score.chunk_index in by_index:
            dropped += 1
            continue
        by_index[score.chunk_index] = score

    missing = expected_count - len(by_index)
    if missing or dropped:
        logfire.warn(
            "Semantic scores incomplete, filling with neutral scores",
            expected=expected_count,
            missing=missing,
            dropped=dropped,
        )

    return [
        by_index.get(index) or ChunkRelevanceScore.neutral(index, MISSING_SCORE_REASON)
        for index in range(1, expected_count + 1)
    ]


class NeutralScorer:
    """Deterministic scorer giving every preview the neutral fallback score."""

    async def score(
        self,
        query: str,
        analysis: QueryAnalysis,
        previews: List[ChunkPreview],
    ) -> List[ChunkRelevanceScore]:
        return fallback_scores(previews)


class PydanticAIScorer:
    """Score chunk previews with a hosted model through a PydanticAI agent."""

    def __init__(
        self,
        model: str | None = None,
        temperature: float = SCORING_TEMPERATURE,
        retries: int = 2,
        agent: Agent | None = None,
    ):
        """
        Initialize the scorer.

        Args:
            model: PydanticAI model string (e.g. 'anthropic:claude-3-5-sonnet-latest').
                   Defaults to settings.scoring_model
            temperature: Sampling temperature; low for consistent scores
            retries: Output validation retries
            agent: Prebuilt agent (mainly for tests); built lazily otherwise
        """
        self._model = model or get_settings().scoring_model
        self._temperature = temperature
        self._retries = retries
        self._agent = agent

    def _get_agent(self) -> Agent:
        if self._agent is None:
            self._agent = Agent(
                self._model,
                output_type=List[ChunkRelevanceScore],
                system_prompt=SCORING_SYSTEM_PROMPT,
                retries=self._retries,
                model_settings=ModelSettings(temperature=self._temperature),
            )
            logger.info(f"Semantic scoring agent initialized with model: {self._model}")
        return self._agent

    async def score(
        self,
        query: str,
        analysis: QueryAnalysis,
        previews: List[ChunkPreview],
    ) -> List[ChunkRelevanceScore]:
        if not previews:
            return []

        prompt = build_scoring_prompt(query, analysis, previews)
        try:
            result = await self._get_agent().run(prompt)
        except Exception as e:
            logger.error(f"Semantic scoring error: {e}")
            raise ScoringUnavailableError(f"Semantic scoring failed: {e}") from e

        return normalize_scores(result.output, len(previews))


# Factory function for dependency injection
def get_semantic_scorer(settings: Settings | None = None) -> SemanticScorer:
    """Get the configured semantic scorer."""
    settings = settings or get_settings()
    if not settings.scoring_enabled:
        logfire.info("Semantic scoring disabled, using neutral scores")
        return NeutralScorer()
    return PydanticAIScorer(model=settings.scoring_model)
