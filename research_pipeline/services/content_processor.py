"""Content processing pipeline orchestration.

ContentProcessor turns a list of URLs and a research query into ranked,
attributed chunks:
1. Scrape every URL (WebScraper)
2. Clean and chunk each successful document, documents concurrently
   (ContentCleaner, TextChunker)
3. Score, filter and rank all chunks against the query (RelevanceRanker)
4. Assemble per-source metadata and run statistics

Per-item failures (a URL, a document, a scoring batch) are recorded in the
result and never abort the run. Only malformed input raises.
"""

import asyncio
import time
from typing import List, NamedTuple

import logfire

from research_pipeline.config import Settings, get_settings
from research_pipeline.models.content_models import ChunkedContent, CleanedDocument
from research_pipeline.models.pipeline_models import (
    FailedSource,
    PipelineStage,
    ProcessingOutcome,
    ProcessingResult,
    ProcessingSummary,
    SourceMetadata,
)
from research_pipeline.models.scoring_models import RelevanceScoringResult
from research_pipeline.models.scraper_models import ScrapedDocument
from research_pipeline.services.browser_manager import BrowserManagerError
from research_pipeline.services.content_cleaner import ContentCleaner
from research_pipeline.services.page_fetcher import WebScraper
from research_pipeline.services.progress import ProgressCallbacks
from research_pipeline.services.relevance_scorer import RelevanceRanker
from research_pipeline.services.semantic_scorer import SemanticScorer
from research_pipeline.services.text_chunker import (
    FAILED_CHUNKING_STRATEGY,
    ChunkInput,
    TextChunker,
)


class ContentProcessorError(Exception):
    """Base exception for ContentProcessor errors."""

    pass


class InvalidPipelineInputError(ContentProcessorError, ValueError):
    """Raised when the pipeline is called with an empty query or URL list."""

    pass


class ProcessedSource(NamedTuple):
    """Intermediate results for one successfully scraped document.

    Attributes:
        document: The scraped document
        cleaned: Cleaned text (raw text when cleaning fell back)
        chunked: Chunks of the cleaned text (empty when chunking failed)
    """

    document: ScrapedDocument
    cleaned: CleanedDocument
    chunked: ChunkedContent


def _average(total: float, count: int) -> int:
    return round(total / count) if count else 0


class ContentProcessor:
    """Orchestrate scrape, clean, chunk and rank for one research request.

    Every stage is injectable so the pipeline can run against fake browsers
    and a deterministic scorer in tests.

    Example:
        >>> processor = ContentProcessor.from_settings()
        >>> result = await processor.process(urls, "what is HTTP/3")
        >>> result.has_relevant_content
    """

    def __init__(
        self,
        scraper: WebScraper | None = None,
        cleaner: ContentCleaner | None = None,
        chunker: TextChunker | None = None,
        ranker: RelevanceRanker | None = None,
    ):
        """Initialize the processor.

        Args:
            scraper: Batch web scraper (defaults to WebScraper)
            cleaner: Text cleaner (defaults to ContentCleaner)
            chunker: Text chunker (defaults to TextChunker)
            ranker: Relevance ranker (defaults to RelevanceRanker)
        """
        self._scraper = scraper or WebScraper()
        self._cleaner = cleaner or ContentCleaner()
        self._chunker = chunker or TextChunker()
        self._ranker = ranker or RelevanceRanker()

    @classmethod
    def from_settings(
        cls, settings: Settings | None = None, scorer: SemanticScorer | None = None
    ) -> "ContentProcessor":
        settings = settings or get_settings()
        return cls(
            scraper=WebScraper.from_settings(settings),
            cleaner=ContentCleaner(),
            chunker=TextChunker(
                target_size=settings.target_chunk_size,
                min_size=settings.min_chunk_size,
                max_size=settings.max_chunk_size,
                overlap=settings.chunk_overlap,
            ),
            ranker=RelevanceRanker.from_settings(settings, scorer=scorer),
        )

    async def process(
        self,
        urls: List[str],
        query: str,
        callbacks: ProgressCallbacks | None = None,
    ) -> ProcessingResult:
        """Run the full pipeline for one request.

        Args:
            urls: URLs already discovered by search
            query: The research query
            callbacks: Optional progress hooks, invoked at stage boundaries

        Returns:
            ProcessingResult with stage COMPLETE. Its outcome is RANKED when
            chunks survived filtering, INSUFFICIENT_CONTENT when chunks were
            produced but none were relevant enough, and NO_CONTENT when no
            source produced any chunk.

        Raises:
            InvalidPipelineInputError: If the query or URL list is empty, or
                a URL is not a non-empty string
        """
        self._validate(urls, query)
        callbacks = callbacks or ProgressCallbacks()
        started = time.perf_counter()

        with logfire.span("Processing content", url_count=len(urls), query=query):
            callbacks.scraping_start(urls)
            documents = await self._scrape(urls, callbacks)
            successful = [document for document in documents if document.success]
            failed = [document for document in documents if not document.success]
            for document in failed:
                callbacks.error(
                    f"Failed to scrape {document.url}: {document.error_message}",
                    PipelineStage.SCRAPING.value,
                )
            logfire.info(
                "Scraping stage complete",
                successful=len(successful),
                failed=len(failed),
                total=len(urls),
            )

            callbacks.processing_start(len(successful))
            sources = await self._clean_and_chunk_all(successful)
            self._report_degraded_sources(sources, callbacks)
            all_chunks = [chunk for source in sources for chunk in source.chunked.chunks]

            callbacks.analysis_start()
            scoring = await self._ranker.score_and_filter(all_chunks, query)
            if scoring.filtering_stats.used_fallback_scoring:
                callbacks.error(
                    "Semantic scoring unavailable, ranked with neutral scores",
                    PipelineStage.SCORING.value,
                )

        result = self._assemble(
            query=query,
            urls=urls,
            failed=failed,
            sources=sources,
            total_chunks=len(all_chunks),
            scoring=scoring,
            processing_time_ms=int((time.perf_counter() - started) * 1000),
        )
        self._log_result(result)
        return result

    @staticmethod
    def _validate(urls: List[str], query: str) -> None:
        if not isinstance(query, str) or not query.strip():
            raise InvalidPipelineInputError("Query must be a non-empty string")
        if not urls:
            raise InvalidPipelineInputError("At least one URL is required")
        if isinstance(urls, str):
            raise InvalidPipelineInputError("URLs must be a list of strings, not a string")
        for url in urls:
            if not isinstance(url, str) or not url.strip():
                raise InvalidPipelineInputError(f"Invalid URL: {url!r}")

    async def _scrape(
        self, urls: List[str], callbacks: ProgressCallbacks
    ) -> List[ScrapedDocument]:
        try:
            return await self._scraper.scrape_urls(list(urls), callbacks)
        except BrowserManagerError as e:
            # Both browser strategies failed: every URL fails, the run continues
            logfire.error(
                "Browser unavailable, all URLs failed",
                error=str(e),
                error_type=type(e).__name__,
                url_count=len(urls),
            )
            return [ScrapedDocument.failed(url, str(e)) for url in urls]

    async def _clean_and_chunk_all(
        self, documents: List[ScrapedDocument]
    ) -> List[ProcessedSource]:
        """Clean and chunk documents concurrently, one worker thread each."""
        return list(
            await asyncio.gather(
                *(
                    asyncio.to_thread(self._clean_and_chunk, document, index)
                    for index, document in enumerate(documents)
                )
            )
        )

    def _clean_and_chunk(self, document: ScrapedDocument, index: int) -> ProcessedSource:
        cleaned = self._cleaner.clean_document(document)
        chunked = self._chunker.chunk_or_empty(ChunkInput.from_cleaned(cleaned, index))
        return ProcessedSource(document=document, cleaned=cleaned, chunked=chunked)

    @staticmethod
    def _report_degraded_sources(
        sources: List[ProcessedSource], callbacks: ProgressCallbacks
    ) -> None:
        for source in sources:
            if source.cleaned.used_fallback:
                callbacks.error(
                    f"Cleaning failed for {source.document.url}, using raw content",
                    PipelineStage.CLEANING.value,
                )
            if source.chunked.chunking_strategy == FAILED_CHUNKING_STRATEGY:
                callbacks.error(
                    f"Chunking failed for {source.document.url}",
                    PipelineStage.CHUNKING.value,
                )

    @staticmethod
    def _assemble(
        query: str,
        urls: List[str],
        failed: List[ScrapedDocument],
        sources: List[ProcessedSource],
        total_chunks: int,
        scoring: RelevanceScoringResult,
        processing_time_ms: int,
    ) -> ProcessingResult:
        source_metadata = [
            SourceMetadata(
                url=source.document.url,
                title=source.document.title,
                original_word_count=source.document.word_count,
                cleaned_word_count=source.cleaned.word_count,
                total_chunks=source.chunked.total_chunks,
                average_chunk_size=source.chunked.average_chunk_size,
                scraping_time_ms=source.document.elapsed_time_ms,
                cleaning_time_ms=source.cleaned.processing_time_ms,
                chunking_time_ms=source.chunked.processing_time_ms,
                content_reduction=source.cleaned.reduction_percentage,
                cleaning_fallback=source.cleaned.used_fallback,
            )
            for source in sources
        ]
        ranked = scoring.ranked_chunks
        source_count = len(source_metadata)
        original_total = sum(meta.original_word_count for meta in source_metadata)
        cleaned_total = sum(meta.cleaned_word_count for meta in source_metadata)
        selected_words = sum(r.chunk.word_count for r in ranked)

        summary = ProcessingSummary(
            total_urls=len(urls),
            successful_urls=source_count,
            failed_urls=len(failed),
            total_chunks=total_chunks,
            selected_chunks=len(ranked),
            chunk_filtering_efficiency=_average(
                (total_chunks - len(ranked)) * 100, total_chunks
            ),
            original_total_words=original_total,
            cleaned_total_words=cleaned_total,
            final_selected_words=selected_words,
            average_original_words_per_url=_average(original_total, source_count),
            average_cleaned_words_per_url=_average(cleaned_total, source_count),
            average_chunks_per_url=(
                round(total_chunks / source_count, 1) if source_count else 0.0
            ),
            average_selected_chunk_size=_average(selected_words, len(ranked)),
            average_relevance_score=scoring.filtering_stats.average_relevance,
            average_content_reduction=_average(
                sum(meta.content_reduction for meta in source_metadata), source_count
            ),
            query_complexity=scoring.query_analysis.complexity,
            query_type=scoring.query_analysis.type,
            processing_time_ms=processing_time_ms,
        )

        if ranked:
            outcome = ProcessingOutcome.RANKED
        elif total_chunks:
            outcome = ProcessingOutcome.INSUFFICIENT_CONTENT
        else:
            outcome = ProcessingOutcome.NO_CONTENT

        return ProcessingResult(
            query=query,
            ranked_chunks=ranked,
            source_metadata=source_metadata,
            failed_urls=[
                FailedSource(url=document.url, error_message=document.error_message or "")
                for document in failed
            ],
            filtering_stats=scoring.filtering_stats,
            query_analysis=scoring.query_analysis,
            summary=summary,
            stage=PipelineStage.COMPLETE,
            outcome=outcome,
        )

    @staticmethod
    def _log_result(result: ProcessingResult) -> None:
        summary = result.summary
        if result.outcome == ProcessingOutcome.RANKED:
            logfire.info(
                "Content processing complete",
                successful_urls=summary.successful_urls,
                total_urls=summary.total_urls,
                selected_chunks=summary.selected_chunks,
                total_chunks=summary.total_chunks,
                final_selected_words=summary.final_selected_words,
                average_relevance=summary.average_relevance_score,
                processing_time_ms=summary.processing_time_ms,
            )
        else:
            logfire.warn(
                "Content processing found no relevant content",
                outcome=result.outcome.value,
                successful_urls=summary.successful_urls,
                total_urls=summary.total_urls,
                total_chunks=summary.total_chunks,
            )


# Factory function for dependency injection
def get_content_processor(
    settings: Settings | None = None, scorer: SemanticScorer | None = None
) -> ContentProcessor:
    """Get a content processor configured from settings."""
    return ContentProcessor.from_settings(settings, scorer=scorer)


async def process_content(
    urls: List[str],
    query: str,
    callbacks: ProgressCallbacks | None = None,
) -> ProcessingResult:
    """Process URLs for a query with the default configured pipeline."""
    return await get_content_processor().process(urls, query, callbacks)
