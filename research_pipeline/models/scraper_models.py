"""Models for scraper results: per-URL documents and web search hits."""

from dataclasses import dataclass

from pydantic import BaseModel, Field


@dataclass(frozen=True)
class ScrapedDocument:
    """Title and raw text extracted from one URL, or the reason it failed."""

    url: str
    title: str
    raw_content: str
    word_count: int
    elapsed_time_ms: int
    success: bool
    error_message: str | None = None

    @classmethod
    def succeeded(
        cls, url: str, title: str, raw_content: str, elapsed_time_ms: int
    ) -> "ScrapedDocument":
        """Build a successful document, counting words from the content."""
        return cls(
            url=url,
            title=title,
            raw_content=raw_content,
            word_count=len(raw_content.split()),
            elapsed_time_ms=elapsed_time_ms,
            success=True,
        )

    @classmethod
    def failed(cls, url: str, error: str, elapsed_time_ms: int = 0) -> "ScrapedDocument":
        """Build a failure result with an empty body."""
        return cls(
            url=url,
            title="",
            raw_content="",
            word_count=0,
            elapsed_time_ms=elapsed_time_ms,
            success=False,
            error_message=error,
        )


class SearchResult(BaseModel):
    """A single organic web search hit."""

    title: str = Field(default="", description="Result page title")
    snippet: str = Field(default="", description="Search engine snippet")
    link: str = Field(..., description="Result URL")
    position: int | None = Field(default=None, description="1-based result rank")
