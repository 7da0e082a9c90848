"""Shared pytest fixtures and configuration.

Fakes and sample-data builders live in tests/fakes.py; this module holds the
fixtures built from them:
1. Infrastructure: mock_logfire, respx_mock, test_settings
2. Fake browsers: fake_launcher_factory
3. Sample data: quantum_html, cooking_html, scraped_document
"""

import os
from contextlib import contextmanager
from unittest.mock import MagicMock, Mock

import pytest

os.environ.setdefault("LOGFIRE_IGNORE_NO_CONFIG", "1")

import respx

from fakes import (
    COOKING_SENTENCES,
    QUANTUM_SENTENCES,
    FakeLauncher,
    make_page_html,
    make_prose,
)
from research_pipeline.config import Settings, get_settings
from research_pipeline.models.scraper_models import ScrapedDocument

# Modules that log through a module-level `logfire` import
LOGFIRE_MODULES = (
    "research_pipeline.services.browser_manager",
    "research_pipeline.services.page_fetcher",
    "research_pipeline.services.content_cleaner",
    "research_pipeline.services.text_chunker",
    "research_pipeline.services.semantic_scorer",
    "research_pipeline.services.relevance_scorer",
    "research_pipeline.services.content_processor",
    "research_pipeline.services.progress",
    "research_pipeline.services.search_service",
    "research_pipeline.logging_config",
)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def test_settings() -> Settings:
    """Settings with fast timeouts and LLM scoring disabled."""
    return Settings(
        env="test",
        scoring_enabled=False,
        serper_api_key="test-serper-key",
        page_settle_seconds=0,
        scrape_timeout_seconds=2,
        navigation_timeout_seconds=2,
        scoring_timeout_seconds=2,
        logfire_token=None,
    )


@pytest.fixture
def respx_mock():
    """Respx mock fixture for HTTP mocking."""
    with respx.mock(assert_all_called=False) as router:
        yield router


@pytest.fixture
def mock_logfire(monkeypatch):
    """
    Mock Logfire for tests that assert on logging.

    Patches the module-level `logfire` name in every module that logs, and
    returns the mock so tests can inspect info/warn/error calls.
    """

    @contextmanager
    def mock_span(*args, **kwargs):
        yield MagicMock()

    mock_logfire_module = MagicMock()
    mock_logfire_module.info = Mock()
    mock_logfire_module.warn = Mock()
    mock_logfire_module.error = Mock()
    mock_logfire_module.debug = Mock()
    mock_logfire_module.span = mock_span
    mock_logfire_module.configure = Mock()
    mock_logfire_module.instrument_pydantic = Mock()
    mock_logfire_module.instrument_pydantic_ai = Mock()

    for module in LOGFIRE_MODULES:
        monkeypatch.setattr(f"{module}.logfire", mock_logfire_module)

    return mock_logfire_module


@pytest.fixture
def fake_launcher_factory():
    """Build a FakeLauncher; the last one built is kept on the factory."""

    def factory(**kwargs) -> FakeLauncher:
        launcher = FakeLauncher(**kwargs)
        factory.last = launcher
        return launcher

    factory.last = None
    return factory


@pytest.fixture
def quantum_html() -> str:
    return make_page_html("Quantum Error Correction", make_prose(QUANTUM_SENTENCES, 400))


@pytest.fixture
def cooking_html() -> str:
    return make_page_html("Weeknight Cooking", make_prose(COOKING_SENTENCES, 400))


@pytest.fixture
def scraped_document() -> ScrapedDocument:
    return ScrapedDocument.succeeded(
        url="https://quantum.example.com/intro",
        title="Quantum Error Correction",
        raw_content=make_prose(QUANTUM_SENTENCES, 300),
        elapsed_time_ms=120,
    )
