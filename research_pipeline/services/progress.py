"""Progress callbacks passed explicitly into a pipeline run.

The orchestrator hands a ProgressCallbacks instance to
ContentProcessor.process(), which passes it down to the scraper. Every hook
is optional. A hook that raises is logged and otherwise ignored, so progress
reporting can never break a run.
"""

from dataclasses import dataclass
from typing import Callable, List

import logfire


@dataclass
class ProgressCallbacks:
    """Optional stage-boundary hooks for external progress reporting."""

    on_scraping_start: Callable[[List[str]], None] | None = None
    on_scraping_progress: Callable[[int, int, str], None] | None = None
    on_processing_start: Callable[[int], None] | None = None
    on_analysis_start: Callable[[], None] | None = None
    on_error: Callable[[str, str], None] | None = None

    def scraping_start(self, urls: List[str]) -> None:
        self._emit("on_scraping_start", list(urls))

    def scraping_progress(self, completed: int, total: int, url: str) -> None:
        self._emit("on_scraping_progress", completed, total, url)

    def processing_start(self, document_count: int) -> None:
        self._emit("on_processing_start", document_count)

    def analysis_start(self) -> None:
        self._emit("on_analysis_start")

    def error(self, message: str, stage: str) -> None:
        self._emit("on_error", message, stage)

    def _emit(self, hook_name: str, *args: object) -> None:
        hook = getattr(self, hook_name)
        if hook is None:
            return
        try:
            hook(*args)
        except Exception as e:
            logfire.warn(
                "Progress callback failed",
                callback=hook_name,
                error=str(e),
                error_type=type(e).__name__,
            )

