"""Models for cleaned documents and the chunks derived from them."""

from dataclasses import dataclass
from enum import Enum
from typing import List


class ChunkingMethod(str, Enum):
    """Boundary type that ended a chunk, or the post-validation step that produced it."""

    WORD_BOUNDARY = "word-boundary"
    SENTENCE_BOUNDARY = "sentence-boundary"
    PARAGRAPH_BOUNDARY = "paragraph-boundary"
    MERGED = "merged"
    SPLIT = "split"


@dataclass(frozen=True)
class CleanedDocument:
    """Cleaned text of one successfully scraped document."""

    url: str
    title: str
    content: str
    original_length: int
    cleaned_length: int
    reduction_percentage: int
    processing_time_ms: int
    used_fallback: bool = False

    @property
    def word_count(self) -> int:
        return len(self.content.split())


@dataclass(frozen=True)
class TextChunk:
    """A bounded span of a cleaned document.

    start_index and end_index are word offsets into the preprocessed
    document (end exclusive), overlap included.
    """

    id: str
    content: str
    position: int
    word_count: int
    char_count: int
    start_index: int
    end_index: int
    has_overlap: bool
    chunking_method: ChunkingMethod
    source_url: str
    source_title: str
    source_document_index: int
    section: str | None = None


@dataclass(frozen=True)
class ChunkedContent:
    """All chunks of one document with aggregate metadata."""

    chunks: List[TextChunk]
    total_chunks: int
    average_chunk_size: int
    chunking_strategy: str
    processing_time_ms: int
    original_length: int
    total_chunked_length: int

    @classmethod
    def empty(cls, strategy: str, original_length: int = 0) -> "ChunkedContent":
        return cls(
            chunks=[],
            total_chunks=0,
            average_chunk_size=0,
            chunking_strategy=strategy,
            processing_time_ms=0,
            original_length=original_length,
            total_chunked_length=0,
        )
