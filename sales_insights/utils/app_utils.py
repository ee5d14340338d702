"""
Utility functions for the Streamlit app.

This module provides helper functions for initializing the application components.
"""

import logging
from typing import Mapping, Optional

from sales_insights.api.query_service import QueryService
from sales_insights.core.config import Config, setup_logging, validate_config
from sales_insights.core.orchestrator import Orchestrator
from sales_insights.data.cache import InMemoryStore, RateLimiter, ResponseCache
from sales_insights.data.sources import CsvRecordSource, GoogleSheetsRecordSource, RecordSource
from sales_insights.llm.llm_provider import LLMProvider, LLMProviderFactory

logger = logging.getLogger(__name__)


def create_record_source(settings: Mapping[str, str]) -> RecordSource:
    """
    Create the record source selected by DATA_SOURCE.

    Args:
        settings: Output of validate_config

    Returns:
        RecordSource instance
    """
    if settings["DATA_SOURCE"] == "sheets":
        return GoogleSheetsRecordSource(
            spreadsheet_id=settings["SPREADSHEET_ID"],
            credentials_info={
                "project_id": settings["GOOGLE_PROJECT_ID"],
                "client_email": settings["GOOGLE_CLIENT_EMAIL"],
                "private_key": settings["GOOGLE_PRIVATE_KEY"],
            },
            sheet_range=Config.SHEET_RANGE,
            business_tz=Config.BUSINESS_TIMEZONE,
        )
    return CsvRecordSource(settings["SALES_DATA_PATH"], business_tz=Config.BUSINESS_TIMEZONE)


def create_llm_provider(settings: Mapping[str, str]) -> LLMProvider:
    """
    Create the LLM provider selected by LLM_PROVIDER.

    Args:
        settings: Output of validate_config

    Returns:
        LLMProvider instance
    """
    if settings["LLM_PROVIDER"] == "gemini":
        model, api_key = Config.GEMINI_MODEL, settings["GOOGLE_API_KEY"]
    else:
        model, api_key = Config.OPENAI_MODEL, settings["OPENAI_API_KEY"]

    return LLMProviderFactory.create_provider(
        settings["LLM_PROVIDER"],
        model=model,
        api_key=api_key,
        max_retries=Config.MAX_RETRIES,
        retry_delay=Config.GENERATION_RETRY_DELAY,
    )


def create_query_service(env: Optional[Mapping[str, str]] = None) -> QueryService:
    """
    Create and initialize a QueryService with all required components.

    Args:
        env: Settings to validate (defaults to the process environment)

    Returns:
        Initialized QueryService instance

    Raises:
        ConfigurationError: If required settings are missing
    """
    setup_logging()
    settings = validate_config(env)

    orchestrator = Orchestrator(
        llm_provider=create_llm_provider(settings),
        history_turns=Config.HISTORY_TURNS,
        temperature=Config.GENERATION_TEMPERATURE,
        max_tokens=Config.GENERATION_MAX_TOKENS,
    )

    store = InMemoryStore()
    service = QueryService(
        orchestrator=orchestrator,
        record_source=create_record_source(settings),
        aggregation_engine=orchestrator.aggregation_engine,
        cache=ResponseCache(store, ttl_seconds=Config.CACHE_TTL_SECONDS),
        rate_limiter=RateLimiter(
            store, limit=Config.RATE_LIMIT, window_seconds=Config.RATE_WINDOW_SECONDS
        ),
    )

    logger.info(
        f"QueryService created (provider={settings['LLM_PROVIDER']}, source={settings['DATA_SOURCE']})"
    )
    return service
