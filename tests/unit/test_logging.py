"""Tests for Logfire setup and structured logging from the pipeline."""

import pytest

from fakes import FakeLauncher, StubScorer, make_chunk
from research_pipeline.config import Settings
from research_pipeline.logging_config import mask_secret, setup_logfire
from research_pipeline.services.browser_manager import SharedBrowserManager
from research_pipeline.services.progress import ProgressCallbacks
from research_pipeline.services.relevance_scorer import RelevanceRanker


class TestSetupLogfire:
    def test_configures_environment_without_token(self, mock_logfire):
        setup_logfire(Settings(env="test", logfire_token=None))

        kwargs = mock_logfire.configure.call_args.kwargs
        assert kwargs["environment"] == "test"
        assert kwargs["send_to_logfire"] == "if-token-present"
        assert "token" not in kwargs
        mock_logfire.instrument_pydantic.assert_called_once()
        mock_logfire.instrument_pydantic_ai.assert_called_once()

    def test_passes_token_when_configured(self, mock_logfire):
        setup_logfire(Settings(env="prod", logfire_token="lf-token"))

        assert mock_logfire.configure.call_args.kwargs["token"] == "lf-token"

    def test_tolerates_missing_pydantic_ai_integration(self, mock_logfire):
        mock_logfire.instrument_pydantic_ai.side_effect = AttributeError

        setup_logfire(Settings(env="test"))

        mock_logfire.configure.assert_called_once()


@pytest.mark.parametrize(
    "value,expected",
    [
        (None, ""),
        ("", ""),
        ("abc", "***"),
        ("abcdefgh", "ab****gh"),
    ],
)
def test_mask_secret(value, expected):
    assert mask_secret(value) == expected


@pytest.mark.asyncio
async def test_browser_manager_logs_ready_pages(mock_logfire):
    manager = SharedBrowserManager(FakeLauncher(), max_pages=2)

    await manager.initialize(2)
    await manager.close_all()

    ready = [
        call for call in mock_logfire.info.call_args_list
        if call.args[0] == "Shared browser ready"
    ]
    assert ready[0].kwargs == {"pages": 2, "usable_pages": 2}


@pytest.mark.asyncio
async def test_ranker_logs_structured_summary(mock_logfire):
    ranker = RelevanceRanker(scorer=StubScorer(lambda preview: (0.9, 0.8)))

    await ranker.score_and_filter([make_chunk()], "What is a qubit")

    summary = [
        call for call in mock_logfire.info.call_args_list
        if call.args[0] == "Relevance ranking complete"
    ]
    assert len(summary) == 1
    assert summary[0].kwargs["returned"] == 1
    assert summary[0].kwargs["average_relevance"] == 0.9


def test_failing_progress_callback_is_logged(mock_logfire):
    def explode(count):
        raise RuntimeError("sink offline")

    ProgressCallbacks(on_processing_start=explode).processing_start(3)

    mock_logfire.warn.assert_called_once()
    assert mock_logfire.warn.call_args.kwargs["callback"] == "on_processing_start"
    assert mock_logfire.warn.call_args.kwargs["error"] == "sink offline"
