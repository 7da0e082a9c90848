"""Boundary-aware text chunking with overlap.

TextChunker splits a cleaned document into chunks sized for scoring and
summarization:

1. Preprocess: normalize whitespace, locate section headers and paragraph
   starts as word indices.
2. Boundaries: stride by the target size and search outward from each
   target for a section, then paragraph, then sentence boundary.
3. Materialize: extend each chunk by the overlap on both sides (one side
   for the first and last chunk) without exceeding the maximum size.
4. Post-validate: merge undersized chunks into a neighbour, split oversized
   ones, renumber.

Everything works on word indices, so the same input always yields the same
chunks.
"""

import asyncio
import re
import time
from bisect import bisect_left, bisect_right
from dataclasses import dataclass, replace
from enum import Enum
from typing import List, NamedTuple

import logfire

from research_pipeline.constants import (
    CHUNK_OVERLAP_WORDS,
    CHUNKING_STRATEGY,
    MAX_CHUNK_SIZE_WORDS,
    MAX_HEADER_LINE_CHARS,
    MAX_HEADER_WORDS,
    MIN_CHUNK_SIZE_WORDS,
    PARAGRAPH_SEARCH_WINDOW_WORDS,
    SECTION_SEARCH_WINDOW_WORDS,
    SENTENCE_SEARCH_WINDOW_WORDS,
    TARGET_CHUNK_SIZE_WORDS,
)
from research_pipeline.models.content_models import (
    ChunkedContent,
    ChunkingMethod,
    CleanedDocument,
    TextChunk,
)

FAILED_CHUNKING_STRATEGY = "failed"


class TextChunkingError(Exception):
    """Raised when chunking fails unexpectedly."""

    pass


class ChunkInput(NamedTuple):
    """One document to chunk.

    Attributes:
        content: Cleaned text.
        title: Source page title.
        url: Source page URL.
        source_index: Index of the source document within the request.
    """

    content: str
    title: str
    url: str
    source_index: int

    @classmethod
    def from_cleaned(cls, document: CleanedDocument, source_index: int) -> "ChunkInput":
        return cls(document.content, document.title, document.url, source_index)


class BoundaryKind(str, Enum):
    SECTION = "section"
    PARAGRAPH = "paragraph"
    SENTENCE = "sentence"
    WORD = "word"
    END = "end"


@dataclass(frozen=True)
class PreparedText:
    """Normalized text with word spans and structural boundaries.

    Attributes:
        text: Normalized text
        word_spans: (start, end) character offsets of each word
        section_starts: Sorted word indices where a section header line starts
        section_titles: Header text for each entry of section_starts
        paragraph_starts: Sorted word indices (> 0) where a paragraph starts
        sentence_ends: Sorted word indices i (> 0) where word i-1 ends a sentence
    """

    text: str
    word_spans: List[tuple[int, int]]
    section_starts: List[int]
    section_titles: List[str]
    paragraph_starts: List[int]
    sentence_ends: List[int]

    @property
    def word_count(self) -> int:
        return len(self.word_spans)

    def slice_text(self, start: int, end: int) -> str:
        """Original text of words [start, end), paragraph breaks included."""
        return self.text[self.word_spans[start][0] : self.word_spans[end - 1][1]]


@dataclass(frozen=True)
class _Span:
    """Word range of a chunk before it is materialized."""

    start: int
    end: int
    has_overlap: bool
    method: ChunkingMethod

    @property
    def word_count(self) -> int:
        return self.end - self.start


class TextChunker:
    """Split cleaned text into bounded, overlapping chunks at natural boundaries."""

    # Lines starting with these are sentences, not headers
    _NON_HEADER_START_RE = re.compile(
        r"^(?:The|A|An|This|That|These|Those|In|On|At|For|With|By)\b"
    )
    _SENTENCE_END_RE = re.compile(r"[.!?][\"')\]]*$")
    _WORD_RE = re.compile(r"\S+")

    def __init__(
        self,
        target_size: int = TARGET_CHUNK_SIZE_WORDS,
        min_size: int = MIN_CHUNK_SIZE_WORDS,
        max_size: int = MAX_CHUNK_SIZE_WORDS,
        overlap: int = CHUNK_OVERLAP_WORDS,
    ):
        """Initialize the chunker.

        Args:
            target_size: Preferred chunk size in words
            min_size: Smallest chunk (except a document's last) in words
            max_size: Largest chunk in words
            overlap: Words shared with each neighbouring chunk

        Raises:
            ValueError: If the sizes are inconsistent
        """
        if not 0 < min_size <= target_size <= max_size:
            raise ValueError("Chunk sizes must satisfy 0 < min <= target <= max")
        if overlap < 0:
            raise ValueError("Overlap must not be negative")
        self._target = target_size
        self._min = min_size
        self._max = max_size
        self._overlap = overlap

    def chunk(
        self, content: str, title: str = "", url: str = "", source_index: int = 0
    ) -> ChunkedContent:
        """Chunk one document.

        Args:
            content: Cleaned document text
            title: Source title copied onto each chunk
            url: Source URL copied onto each chunk
            source_index: Index of the document within the request, used in ids

        Returns:
            ChunkedContent; at least one chunk for any non-blank input

        Raises:
            TextChunkingError: If chunking fails unexpectedly
        """
        started = time.perf_counter()
        try:
            prepared = self.prepare(content)
            if prepared.word_count == 0:
                return ChunkedContent.empty(CHUNKING_STRATEGY, len(content))

            spans = self.materialize(prepared, self.find_boundaries(prepared))
            spans = self.enforce_size_bounds(spans)
            chunks = [
                self._build_chunk(prepared, span, position, title, url, source_index)
                for position, span in enumerate(spans, start=1)
            ]
        except Exception as e:
            logfire.error(
                "Text chunking failed",
                url=url,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise TextChunkingError(f"Text chunking failed: {e}") from e

        processing_time_ms = int((time.perf_counter() - started) * 1000)
        average = round(sum(c.word_count for c in chunks) / len(chunks))
        logfire.info(
            "Document chunked",
            url=url,
            words=prepared.word_count,
            chunks=len(chunks),
            average_chunk_size=average,
            processing_time_ms=processing_time_ms,
        )
        return ChunkedContent(
            chunks=chunks,
            total_chunks=len(chunks),
            average_chunk_size=average,
            chunking_strategy=CHUNKING_STRATEGY,
            processing_time_ms=processing_time_ms,
            original_length=len(content),
            total_chunked_length=sum(c.char_count for c in chunks),
        )

    def chunk_or_empty(self, item: ChunkInput) -> ChunkedContent:
        """Chunk one document, returning an empty "failed" result on error."""
        try:
            return self.chunk(item.content, item.title, item.url, item.source_index)
        except TextChunkingError:
            return ChunkedContent.empty(FAILED_CHUNKING_STRATEGY, len(item.content or ""))

    async def chunk_many(self, items: List[ChunkInput]) -> List[ChunkedContent]:
        """Chunk documents concurrently; results keep the input order."""
        return list(
            await asyncio.gather(
                *(asyncio.to_thread(self.chunk_or_empty, item) for item in items)
            )
        )

    # =========================================================================
    # Step 1: preprocessing
    # =========================================================================

    def prepare(self, content: str) -> PreparedText:
        """Normalize whitespace and index words, headers and paragraphs."""
        text = content.replace("\r\n", "\n").replace("\r", "\n")
        text = re.sub(r"[ \t\f\v]+", " ", text)
        text = re.sub(r" *\n *", "\n", text)
        text = re.sub(r"\n{3,}", "\n\n", text).strip()

        word_spans = [match.span() for match in self._WORD_RE.finditer(text)]

        line_starts: List[int] = [0] if word_spans else []
        paragraph_starts: List[int] = []
        sentence_ends: List[int] = []
        for index in range(1, len(word_spans)):
            gap = text[word_spans[index - 1][1] : word_spans[index][0]]
            if "\n" in gap:
                line_starts.append(index)
            if "\n\n" in gap:
                paragraph_starts.append(index)
            previous_word = text[word_spans[index - 1][0] : word_spans[index - 1][1]]
            if self._SENTENCE_END_RE.search(previous_word):
                sentence_ends.append(index)

        section_starts: List[int] = []
        section_titles: List[str] = []
        line_ends = line_starts[1:] + [len(word_spans)]
        for start, end in zip(line_starts, line_ends):
            line = text[word_spans[start][0] : word_spans[end - 1][1]]
            if self.is_section_header(line):
                section_starts.append(start)
                section_titles.append(line)

        return PreparedText(
            text=text,
            word_spans=word_spans,
            section_starts=section_starts,
            section_titles=section_titles,
            paragraph_starts=paragraph_starts,
            sentence_ends=sentence_ends,
        )

    def is_section_header(self, line: str) -> bool:
        """Short, capitalized line without terminal punctuation."""
        line = line.strip()
        return (
            0 < len(line) < MAX_HEADER_LINE_CHARS
            and line[0].isupper()
            and line[-1] not in ".!?"
            and len(line.split()) <= MAX_HEADER_WORDS
            and not self._NON_HEADER_START_RE.match(line)
        )

    # =========================================================================
    # Step 2: boundary selection
    # =========================================================================

    def find_boundaries(self, prepared: PreparedText) -> List[tuple[int, BoundaryKind]]:
        """Return the end index and boundary kind of each chunk core.

        The last entry is always (word_count, END) so no tail is lost.
        """
        total = prepared.word_count
        section_boundaries = [s for s in prepared.section_starts if s > 0]
        boundaries: List[tuple[int, BoundaryKind]] = []
        current = 0

        while total - current > self._target:
            target = current + self._target
            low = current + self._min
            high = min(current + self._max, total - 1)

            boundary, kind = target, BoundaryKind.WORD
            for positions, window, candidate_kind in (
                (section_boundaries, SECTION_SEARCH_WINDOW_WORDS, BoundaryKind.SECTION),
                (prepared.paragraph_starts, PARAGRAPH_SEARCH_WINDOW_WORDS, BoundaryKind.PARAGRAPH),
                (prepared.sentence_ends, SENTENCE_SEARCH_WINDOW_WORDS, BoundaryKind.SENTENCE),
            ):
                found = self._nearest(positions, target, window, low, high)
                if found is not None:
                    boundary, kind = found, candidate_kind
                    break

            boundary = max(low, min(boundary, current + self._max))
            boundaries.append((boundary, kind))
            current = boundary

        boundaries.append((total, BoundaryKind.END))
        return boundaries

    @staticmethod
    def _nearest(
        positions: List[int], target: int, window: int, low: int, high: int
    ) -> int | None:
        """Closest position to target within the window and [low, high]; earlier wins ties."""
        start = max(low, target - window)
        end = min(high, target + window)
        if start > end:
            return None
        candidates = positions[bisect_left(positions, start) : bisect_right(positions, end)]
        if not candidates:
            return None
        return min(candidates, key=lambda position: (abs(position - target), position))

    # =========================================================================
    # Step 3: materialization with overlap
    # =========================================================================

    def materialize(
        self, prepared: PreparedText, boundaries: List[tuple[int, BoundaryKind]]
    ) -> List[_Span]:
        """Turn core boundaries into word ranges extended by the overlap."""
        total = prepared.word_count
        spans: List[_Span] = []
        core_start = 0
        last = len(boundaries) - 1

        for index, (core_end, kind) in enumerate(boundaries):
            lead = min(self._overlap, core_start) if index > 0 else 0
            trail = min(self._overlap, total - core_end) if index < last else 0

            # Never let the overlap push a chunk past the maximum size
            excess = (core_end - core_start) + lead + trail - self._max
            if excess > 0:
                cut = min(trail, excess)
                trail -= cut
                lead -= min(lead, excess - cut)

            spans.append(
                _Span(
                    start=core_start - lead,
                    end=core_end + trail,
                    has_overlap=(lead + trail) > 0,
                    method=self._method_for(prepared, kind, core_end),
                )
            )
            core_start = core_end
        return spans

    def _method_for(
        self, prepared: PreparedText, kind: BoundaryKind, core_end: int
    ) -> ChunkingMethod:
        if kind in (BoundaryKind.SECTION, BoundaryKind.PARAGRAPH):
            return ChunkingMethod.PARAGRAPH_BOUNDARY
        if kind == BoundaryKind.SENTENCE:
            return ChunkingMethod.SENTENCE_BOUNDARY
        if kind == BoundaryKind.END:
            last_word = prepared.slice_text(core_end - 1, core_end)
            if self._SENTENCE_END_RE.search(last_word):
                return ChunkingMethod.SENTENCE_BOUNDARY
        return ChunkingMethod.WORD_BOUNDARY

    # =========================================================================
    # Step 4: post-validation
    # =========================================================================

    def enforce_size_bounds(self, spans: List[_Span]) -> List[_Span]:
        """Merge undersized spans into a neighbour and split oversized ones."""
        merged: List[_Span] = []
        pending = list(spans)
        while pending:
            span = pending.pop(0)
            if span.word_count < self._min and (merged or pending):
                if merged and span.end - merged[-1].start <= self._max:
                    previous = merged.pop()
                    pending.insert(0, self._merge(previous, span))
                    continue
                if pending and pending[0].end - span.start <= self._max:
                    pending[0] = self._merge(span, pending[0])
                    continue
                logfire.debug(
                    "Undersized chunk kept, merge would exceed max size",
                    words=span.word_count,
                )
            merged.append(span)

        result: List[_Span] = []
        for span in merged:
            result.extend(self.split_oversized(span))
        return result

    @staticmethod
    def _merge(first: _Span, second: _Span) -> _Span:
        # Word ranges may overlap; the union never repeats words
        return _Span(
            start=first.start,
            end=second.end,
            has_overlap=first.has_overlap or second.has_overlap,
            method=ChunkingMethod.MERGED,
        )

    def split_oversized(self, span: _Span) -> List[_Span]:
        """Split a span above the maximum into roughly equal halves, recursively."""
        if span.word_count <= self._max:
            return [span]
        middle = span.start + span.word_count // 2
        left = replace(span, end=middle, method=ChunkingMethod.SPLIT)
        right = replace(span, start=middle, method=ChunkingMethod.SPLIT)
        return self.split_oversized(left) + self.split_oversized(right)

    def _build_chunk(
        self,
        prepared: PreparedText,
        span: _Span,
        position: int,
        title: str,
        url: str,
        source_index: int,
    ) -> TextChunk:
        content = prepared.slice_text(span.start, span.end)
        return TextChunk(
            id=f"{source_index}-chunk-{position}",
            content=content,
            position=position,
            word_count=span.word_count,
            char_count=len(content),
            start_index=span.start,
            end_index=span.end,
            has_overlap=span.has_overlap,
            chunking_method=span.method,
            source_url=url,
            source_title=title,
            source_document_index=source_index,
            section=self._section_for(prepared, span.start),
        )

    @staticmethod
    def _section_for(prepared: PreparedText, start: int) -> str | None:
        index = bisect_right(prepared.section_starts, start) - 1
        return prepared.section_titles[index] if index >= 0 else None
