"""Fake browsers, stub scorers and sample data shared by the test suite.

Nothing here starts Chromium or calls a model.
"""

import asyncio
from typing import Callable, Dict, List

from research_pipeline.models.content_models import ChunkingMethod, TextChunk
from research_pipeline.models.scoring_models import ChunkPreview, ChunkRelevanceScore

QUANTUM_SENTENCES = [
    "quantum computers store information in qubits that hold superposed states.",
    "superconducting qubits are cooled close to absolute zero inside dilution refrigerators.",
    "error correction codes spread one logical qubit across many physical qubits.",
    "the surface code tolerates noise when physical error rates stay below a threshold.",
    "researchers measure gate fidelity to track progress toward fault tolerant machines.",
    "entanglement links qubits so that measuring one constrains the state of another.",
    "trapped ion systems use laser pulses to drive gates between charged atoms.",
    "decoherence slowly destroys quantum information through contact with the environment.",
]

COOKING_SENTENCES = [
    "slowly brown the onions in butter until they turn sweet and golden.",
    "knead the dough for ten minutes so the gluten develops its structure.",
    "season the soup with salt and pepper before letting it simmer gently.",
    "roast the vegetables on a hot tray until their edges start to caramelize.",
    "whisk the eggs with sugar until the mixture becomes pale and thick.",
    "rest the cooked meat under foil so the juices settle back inside.",
]


def make_prose(sentences: List[str], word_target: int) -> str:
    """Cycle through sentences until the text holds at least word_target words."""
    parts: List[str] = []
    words = 0
    index = 0
    while words < word_target:
        sentence = sentences[index % len(sentences)]
        sentence = sentence[0].upper() + sentence[1:]
        parts.append(sentence)
        words += len(sentence.split())
        index += 1
    return " ".join(parts)


def make_words(count: int, prefix: str = "word") -> str:
    """Space-separated distinct tokens, no punctuation."""
    return " ".join(f"{prefix}{i}" for i in range(count))


def make_page_html(title: str, body: str) -> str:
    return (
        f"<html><head><title>{title}</title>"
        "<script>var tracker = 1;</script></head>"
        f"<body><nav>Home Blog Pricing</nav><article>{body}</article></body></html>"
    )


def make_chunk(
    position: int = 1,
    source_url: str = "https://a.example.com",
    content: str | None = None,
    source_index: int = 0,
    word_count: int | None = None,
) -> TextChunk:
    content = content if content is not None else make_words(50, prefix=f"c{position}w")
    words = word_count if word_count is not None else len(content.split())
    return TextChunk(
        id=f"{source_index}-chunk-{position}",
        content=content,
        position=position,
        word_count=words,
        char_count=len(content),
        start_index=0,
        end_index=words,
        has_overlap=False,
        chunking_method=ChunkingMethod.SENTENCE_BOUNDARY,
        source_url=source_url,
        source_title=f"Title of {source_url}",
        source_document_index=source_index,
    )


# =============================================================================
# Fake browsers
# =============================================================================


class FakePage:
    """Browser page serving HTML from a url -> html (or exception) map."""

    def __init__(self, site: Dict[str, object], goto_delay: float = 0.0):
        self.site = site
        self.goto_delay = goto_delay
        self.current_url: str | None = None
        self.visited: List[str] = []
        self.default_timeout: float | None = None
        self.closed = False
        self.close_error: Exception | None = None

    async def goto(self, url: str, wait_until: str | None = None, timeout: float | None = None):
        self.visited.append(url)
        if self.goto_delay:
            await asyncio.sleep(self.goto_delay)
        response = self.site.get(url)
        if isinstance(response, Exception):
            raise response
        if response is None:
            raise RuntimeError(f"net::ERR_NAME_NOT_RESOLVED at {url}")
        self.current_url = url
        return None

    async def content(self) -> str:
        return str(self.site.get(self.current_url, ""))

    async def title(self) -> str:
        # Forces the fetcher to fall back to the <title> element
        return ""

    def set_default_timeout(self, timeout: float) -> None:
        self.default_timeout = timeout

    def is_closed(self) -> bool:
        return self.closed

    async def close(self) -> None:
        if self.close_error is not None:
            raise self.close_error
        self.closed = True


class FakeBrowser:
    def __init__(
        self,
        site: Dict[str, object],
        failing_pages: int = 0,
        goto_delay: float = 0.0,
    ):
        self.site = site
        self.failing_pages = failing_pages
        self.goto_delay = goto_delay
        self.pages: List[FakePage] = []
        self.connected = True
        self.closed = False

    async def new_page(self) -> FakePage:
        if self.failing_pages > 0:
            self.failing_pages -= 1
            raise RuntimeError("Target page, context or browser has been closed")
        page = FakePage(self.site, goto_delay=self.goto_delay)
        self.pages.append(page)
        return page

    def is_connected(self) -> bool:
        return self.connected

    async def close(self) -> None:
        self.closed = True
        self.connected = False


class FakeLauncher:
    """BrowserLauncher that hands out FakeBrowsers.

    Args:
        site: url -> html (or exception) map served by every page
        fail_launches: Number of initial launch() calls that raise
        failing_pages: Per-browser count of new_page() calls that raise
        goto_delay: Seconds each navigation takes
    """

    def __init__(
        self,
        site: Dict[str, object] | None = None,
        fail_launches: int = 0,
        failing_pages: int = 0,
        goto_delay: float = 0.0,
    ):
        self.site = site or {}
        self.fail_launches = fail_launches
        self.failing_pages = failing_pages
        self.goto_delay = goto_delay
        self.browsers: List[FakeBrowser] = []
        self.launch_count = 0
        self.stop_count = 0

    async def launch(self) -> FakeBrowser:
        self.launch_count += 1
        if self.fail_launches > 0:
            self.fail_launches -= 1
            raise RuntimeError("Executable doesn't exist at /ms-playwright/chromium")
        browser = FakeBrowser(
            self.site, failing_pages=self.failing_pages, goto_delay=self.goto_delay
        )
        self.browsers.append(browser)
        return browser

    async def stop(self) -> None:
        self.stop_count += 1

    @property
    def all_pages(self) -> List[FakePage]:
        return [page for browser in self.browsers for page in browser.pages]


# =============================================================================
# Stub scorers
# =============================================================================


class StubScorer:
    """Deterministic SemanticScorer.

    score_fn maps a preview to (relevance, quality); every call is recorded.
    """

    def __init__(
        self,
        score_fn: Callable[[ChunkPreview], tuple[float, float]] | None = None,
    ):
        self.score_fn = score_fn or (lambda preview: (0.8, 0.8))
        self.calls: List[List[ChunkPreview]] = []

    async def score(self, query, analysis, previews):
        self.calls.append(list(previews))
        scores = []
        for preview in previews:
            relevance, quality = self.score_fn(preview)
            scores.append(
                ChunkRelevanceScore(
                    chunk_index=preview.chunk_index,
                    relevance_score=relevance,
                    quality_score=quality,
                    reasons=["stub"],
                    key_matches=[],
                )
            )
        return scores


class KeywordScorer(StubScorer):
    """High relevance for previews containing the keyword, near zero otherwise."""

    def __init__(self, keyword: str):
        super().__init__(
            lambda preview: (0.9, 0.8) if keyword in preview.preview.lower() else (0.05, 0.6)
        )


class FailingScorer:
    def __init__(self, error: Exception | None = None):
        self.error = error or RuntimeError("model endpoint unreachable")
        self.call_count = 0

    async def score(self, query, analysis, previews):
        self.call_count += 1
        raise self.error
