"""Centralized logging configuration with Pydantic Logfire integration."""

import logging
from typing import Any

import logfire

from research_pipeline.config import Settings, get_settings


def setup_logfire(settings: Settings | None = None) -> None:
    """
    Initialize and configure Pydantic Logfire for observability.

    Sets up:
    - Pydantic instrumentation (model validation logging)
    - PydanticAI instrumentation (semantic scoring calls)
    - Environment-aware configuration
    - Plain stdlib logging for modules that use logging.getLogger
    """
    settings = settings or get_settings()

    logfire_config: dict[str, Any] = {
        "environment": settings.env,
        # Without a token, log locally only
        "send_to_logfire": "if-token-present",
    }
    if settings.logfire_token:
        logfire_config["token"] = settings.logfire_token

    logfire.configure(**logfire_config)
    logfire.instrument_pydantic()

    try:
        logfire.instrument_pydantic_ai()
    except AttributeError:
        # Older logfire releases have no pydantic-ai integration
        pass

    # Console format for local runs; elsewhere Logfire carries the structure
    log_format = (
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        if settings.env == "local"
        else "%(message)s"
    )
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=log_format,
    )


def mask_secret(value: str | None, mask_char: str = "*") -> str:
    """
    Mask an API key or token before it is logged.

    Args:
        value: Value to mask
        mask_char: Character to use for masking

    Returns:
        Masked string
    """
    if not value:
        return ""

    if len(value) <= 4:
        return mask_char * len(value)

    # Show first 2 and last 2 characters, mask the rest
    return f"{value[:2]}{mask_char * (len(value) - 4)}{value[-2:]}"
