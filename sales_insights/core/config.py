"""Configuration module for the Sales Insights Assistant."""

import os
import logging
from typing import Dict, List, Mapping, Optional
from dotenv import load_dotenv

from sales_insights.core.exceptions import ConfigurationError

# Load environment variables
load_dotenv()


class Config:
    """Application configuration."""

    # LLM Provider
    LLM_PROVIDER: str = os.getenv("LLM_PROVIDER", "openai")

    # OpenAI Configuration
    OPENAI_API_KEY: Optional[str] = os.getenv("OPENAI_API_KEY")
    OPENAI_MODEL: str = os.getenv("OPENAI_MODEL", "gpt-4o-mini")

    # Google Gemini Configuration
    GOOGLE_API_KEY: Optional[str] = os.getenv("GOOGLE_API_KEY")
    GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-1.5-flash")

    # Generation
    MAX_RETRIES: int = int(os.getenv("MAX_RETRIES", "2"))
    GENERATION_RETRY_DELAY: float = float(os.getenv("GENERATION_RETRY_DELAY", "2.0"))
    GENERATION_TEMPERATURE: float = float(os.getenv("GENERATION_TEMPERATURE", "0.7"))
    GENERATION_MAX_TOKENS: int = int(os.getenv("GENERATION_MAX_TOKENS", "500"))
    HISTORY_TURNS: int = int(os.getenv("HISTORY_TURNS", "4"))

    # Record source
    DATA_SOURCE: str = os.getenv("DATA_SOURCE", "csv")
    SALES_DATA_PATH: Optional[str] = os.getenv("SALES_DATA_PATH")
    SPREADSHEET_ID: Optional[str] = os.getenv("SPREADSHEET_ID")
    SHEET_RANGE: str = os.getenv("SHEET_RANGE", "Sheet1!A1:I10001")
    GOOGLE_PROJECT_ID: Optional[str] = os.getenv("GOOGLE_PROJECT_ID")
    GOOGLE_CLIENT_EMAIL: Optional[str] = os.getenv("GOOGLE_CLIENT_EMAIL")
    GOOGLE_PRIVATE_KEY: Optional[str] = os.getenv("GOOGLE_PRIVATE_KEY")
    BUSINESS_TIMEZONE: str = os.getenv("BUSINESS_TIMEZONE", "UTC")

    # Application Configuration
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    CACHE_TTL_SECONDS: int = int(os.getenv("CACHE_TTL_SECONDS", "3600"))
    RATE_LIMIT: int = int(os.getenv("RATE_LIMIT", "10"))
    RATE_WINDOW_SECONDS: int = int(os.getenv("RATE_WINDOW_SECONDS", "3600"))


PROVIDER_KEYS = {
    "openai": "OPENAI_API_KEY",
    "gemini": "GOOGLE_API_KEY",
}

SOURCE_KEYS = {
    "csv": ["SALES_DATA_PATH"],
    "sheets": ["SPREADSHEET_ID", "GOOGLE_PROJECT_ID", "GOOGLE_CLIENT_EMAIL", "GOOGLE_PRIVATE_KEY"],
}


def validate_config(env: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """
    Validate the external configuration before any computation starts.

    Args:
        env: Mapping to read settings from. Defaults to os.environ.

    Returns:
        Dictionary of the validated settings, with the private key unescaped

    Raises:
        ConfigurationError: If keys are missing or malformed. The error lists
                            every missing key, not just the first.
    """
    env = os.environ if env is None else env

    provider = (env.get("LLM_PROVIDER") or "openai").lower()
    source = (env.get("DATA_SOURCE") or "csv").lower()

    if provider not in PROVIDER_KEYS:
        raise ConfigurationError(
            f"Unknown LLM_PROVIDER: {provider}. Supported: {', '.join(PROVIDER_KEYS)}"
        )
    if source not in SOURCE_KEYS:
        raise ConfigurationError(
            f"Unknown DATA_SOURCE: {source}. Supported: {', '.join(SOURCE_KEYS)}"
        )

    required: List[str] = [PROVIDER_KEYS[provider]] + SOURCE_KEYS[source]
    missing = [key for key in required if not env.get(key)]

    if missing:
        raise ConfigurationError(
            f"Missing required environment variables: {', '.join(missing)}",
            missing_keys=missing
        )

    settings = {key: env[key] for key in required}
    settings["LLM_PROVIDER"] = provider
    settings["DATA_SOURCE"] = source

    if source == "sheets":
        if "@" not in settings["GOOGLE_CLIENT_EMAIL"]:
            raise ConfigurationError("GOOGLE_CLIENT_EMAIL is not a valid email address")
        # Keys pasted into .env files usually carry literal "\n" and quotes
        settings["GOOGLE_PRIVATE_KEY"] = (
            settings["GOOGLE_PRIVATE_KEY"].replace("\\n", "\n").strip('"')
        )

    logging.getLogger(__name__).info(
        f"Configuration validated (provider={provider}, source={source})"
    )
    return settings


def setup_logging(log_level: Optional[str] = None) -> None:
    """
    Configure logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
                  If None, uses Config.LOG_LEVEL
    """
    level = log_level or Config.LOG_LEVEL

    # Convert string level to logging constant
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    logging.basicConfig(
        level=numeric_level,
        format=log_format,
        datefmt=date_format,
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler("sales_insights.log")
        ]
    )

    # Set specific loggers
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("googleapiclient").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured with level: {level}")
