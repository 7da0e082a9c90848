"""Score, filter and rank chunks against a research query.

RelevanceRanker combines the semantic scorer's relevance and quality with
two local heuristics:
- diversity: penalizes sources that contribute many candidate chunks
- position: favours chunks early in their source document

Chunks must clear all three thresholds (relevance, quality, final score).
Survivors are sorted by final score and capped by query complexity. An
empty ranking is a valid result, not an error.
"""

import asyncio
import time
from collections import Counter
from typing import List, NamedTuple

import logfire

from research_pipeline.config import Settings, get_settings
from research_pipeline.constants import (
    MAX_CONCURRENT_SCORING_BATCHES,
    SCORING_BATCH_SIZE,
    SCORING_TIMEOUT_SECONDS,
)
from research_pipeline.models.content_models import TextChunk
from research_pipeline.models.scoring_models import (
    ChunkLimits,
    ChunkRelevanceScore,
    FilteringStats,
    FilterThresholds,
    QueryAnalysis,
    RankedChunk,
    RelevanceScoringResult,
    ScoreHeuristics,
    ScoringWeights,
    clamp_score,
)
from research_pipeline.services.query_analyzer import QueryAnalyzer
from research_pipeline.services.semantic_scorer import (
    NeutralScorer,
    SemanticScorer,
    build_previews,
    fallback_scores,
    get_semantic_scorer,
    normalize_scores,
)


class InvalidQueryError(ValueError):
    """Raised when chunks are scored against an empty query."""

    pass


class BatchScores(NamedTuple):
    """Scores of one batch.

    Attributes:
        scores: One score per chunk of the batch, in batch order.
        used_fallback: Whether the neutral fallback replaced the scorer.
    """

    scores: List[ChunkRelevanceScore]
    used_fallback: bool


class RelevanceRanker:
    """Select and order the chunks most worth summarizing for a query.

    The semantic scorer is injected so the composite scoring and filtering
    logic can be tested with a deterministic fake.
    """

    def __init__(
        self,
        scorer: SemanticScorer | None = None,
        analyzer: QueryAnalyzer | None = None,
        weights: ScoringWeights | None = None,
        thresholds: FilterThresholds | None = None,
        limits: ChunkLimits | None = None,
        heuristics: ScoreHeuristics | None = None,
        batch_size: int = SCORING_BATCH_SIZE,
        max_concurrent_batches: int = MAX_CONCURRENT_SCORING_BATCHES,
        scoring_timeout_seconds: float = SCORING_TIMEOUT_SECONDS,
    ):
        """Initialize the ranker.

        Args:
            scorer: Semantic scoring capability (defaults to get_semantic_scorer())
            analyzer: Query analyzer (defaults to QueryAnalyzer)
            weights: Composite score weights
            thresholds: Minimum relevance, quality and final scores
            limits: Chunk caps per query complexity
            heuristics: Diversity and position score policy
            batch_size: Chunks per scoring call
            max_concurrent_batches: Scoring calls in flight at once
            scoring_timeout_seconds: Timeout for one scoring call
        """
        self._scorer = scorer or get_semantic_scorer()
        self._analyzer = analyzer or QueryAnalyzer()
        self._weights = weights or ScoringWeights()
        self._thresholds = thresholds or FilterThresholds()
        self._limits = limits or ChunkLimits()
        self._heuristics = heuristics or ScoreHeuristics()
        self._batch_size = batch_size
        self._max_concurrent_batches = max_concurrent_batches
        self._scoring_timeout_seconds = scoring_timeout_seconds

    @classmethod
    def from_settings(
        cls, settings: Settings | None = None, scorer: SemanticScorer | None = None
    ) -> "RelevanceRanker":
        settings = settings or get_settings()
        return cls(
            scorer=scorer or get_semantic_scorer(settings),
            weights=settings.scoring_weights(),
            thresholds=settings.filter_thresholds(),
            limits=settings.chunk_limits(),
            heuristics=settings.score_heuristics(),
            batch_size=settings.scoring_batch_size,
            max_concurrent_batches=settings.max_concurrent_scoring_batches,
            scoring_timeout_seconds=settings.scoring_timeout_seconds,
        )

    def analyze_query(self, query: str) -> QueryAnalysis:
        return self._analyzer.analyze(query)

    async def score_and_filter(
        self, chunks: List[TextChunk], query: str
    ) -> RelevanceScoringResult:
        """Score every chunk, filter by thresholds, rank and cap.

        Args:
            chunks: Candidate chunks from all documents
            query: The research query

        Returns:
            RelevanceScoringResult; ranked_chunks is empty when nothing
            clears the thresholds

        Raises:
            InvalidQueryError: If chunks are given with an empty query
        """
        started = time.perf_counter()
        if not chunks:
            analysis = self.analyze_query(query or "")
            return RelevanceScoringResult(query_analysis=analysis)
        if not query or not query.strip():
            raise InvalidQueryError("Cannot score chunks against an empty query")

        analysis = self.analyze_query(query)
        with logfire.span(
            "Scoring chunks",
            chunk_count=len(chunks),
            query_type=analysis.type.value,
            complexity=analysis.complexity.value,
        ):
            scores, used_fallback = await self._score_all(chunks, query, analysis)

        source_counts = Counter(chunk.source_url for chunk in chunks)
        candidates = [
            self._compose(chunk, score, source_counts[chunk.source_url])
            for chunk, score in zip(chunks, scores)
        ]
        passed = [
            candidate
            for candidate in candidates
            if self._thresholds.passes(
                candidate.relevance_score,
                candidate.quality_score,
                candidate.final_score,
            )
        ]

        # sorted() is stable: equal scores keep candidate order
        ordered = sorted(passed, key=lambda candidate: -candidate.final_score)
        limit = self._limits.for_complexity(analysis.complexity)
        ranked = [
            candidate.model_copy(update={"rank": rank})
            for rank, candidate in enumerate(ordered[:limit], start=1)
        ]

        average_relevance = (
            round(sum(r.relevance_score for r in ranked) / len(ranked), 3)
            if ranked
            else 0.0
        )
        stats = FilteringStats(
            total_chunks=len(chunks),
            passed_threshold_chunks=len(passed),
            filtered_chunks=len(ranked),
            average_relevance=average_relevance,
            processing_time_ms=int((time.perf_counter() - started) * 1000),
            used_fallback_scoring=used_fallback,
        )

        if ranked:
            logfire.info(
                "Relevance ranking complete",
                total_chunks=stats.total_chunks,
                passed=stats.passed_threshold_chunks,
                returned=stats.filtered_chunks,
                limit=limit,
                average_relevance=average_relevance,
            )
        else:
            logfire.warn(
                "No chunks cleared the relevance thresholds",
                total_chunks=stats.total_chunks,
                query_type=analysis.type.value,
            )

        return RelevanceScoringResult(
            ranked_chunks=ranked,
            filtering_stats=stats,
            query_analysis=analysis,
        )

    def _compose(
        self, chunk: TextChunk, score: ChunkRelevanceScore, same_source_count: int
    ) -> RankedChunk:
        relevance = clamp_score(score.relevance_score)
        quality = clamp_score(score.quality_score)
        diversity = self._heuristics.diversity(same_source_count)
        position = self._heuristics.position(chunk.position)
        final = clamp_score(
            relevance * self._weights.relevance
            + quality * self._weights.quality
            + diversity * self._weights.diversity
            + position * self._weights.position
        )
        # Rank is assigned after sorting
        return RankedChunk(
            chunk=chunk,
            relevance_score=relevance,
            quality_score=quality,
            diversity_score=diversity,
            position_score=position,
            final_score=final,
            reasons=score.reasons,
            key_matches=score.key_matches,
            rank=1,
        )

    async def _score_all(
        self, chunks: List[TextChunk], query: str, analysis: QueryAnalysis
    ) -> tuple[List[ChunkRelevanceScore], bool]:
        """Score chunks in batches with bounded concurrency.

        Returns:
            Tuple of (one score per chunk in input order, whether any batch
            fell back to neutral scores)
        """
        batches = [
            chunks[start : start + self._batch_size]
            for start in range(0, len(chunks), self._batch_size)
        ]
        semaphore = asyncio.Semaphore(self._max_concurrent_batches)
        # The neutral scorer is itself the fallback
        neutral = isinstance(self._scorer, NeutralScorer)

        async def score_batch(batch_number: int, batch: List[TextChunk]) -> BatchScores:
            previews = build_previews(batch)
            async with semaphore:
                try:
                    raw = await asyncio.wait_for(
                        self._scorer.score(query, analysis, previews),
                        timeout=self._scoring_timeout_seconds,
                    )
                except Exception as e:
                    logfire.warn(
                        "Scoring batch failed, using fallback scores",
                        batch=batch_number,
                        batch_size=len(batch),
                        error=str(e) or type(e).__name__,
                        error_type=type(e).__name__,
                    )
                    return BatchScores(fallback_scores(previews), True)
            return BatchScores(normalize_scores(raw, len(previews)), neutral)

        results = await asyncio.gather(
            *(score_batch(number, batch) for number, batch in enumerate(batches, start=1))
        )
        scores = [score for result in results for score in result.scores]
        return scores, any(result.used_fallback for result in results)
