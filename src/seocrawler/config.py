from dotenv import load_dotenv
from dataclasses import dataclass
from typing import Optional
from pathlib import Path
import json
import logging
import os

from seocrawler.constants import (
    DEFAULT_CONCURRENCY,
    DEFAULT_PAGE_BUDGET,
    DEFAULT_PATTERN_CAP,
    DEFAULT_STORAGE_BATCH_SIZE,
    DEFAULT_USER_AGENT,
    FALLBACK_USER_AGENT,
    NAVIGATION_TIMEOUT_SECONDS,
    PROBE_TIMEOUT_SECONDS,
    SETTLE_MAX_SECONDS,
    SETTLE_MIN_SECONDS,
    STATIC_FETCH_TIMEOUT_SECONDS,
)

load_dotenv()  # Loads variables from .env file

logger = logging.getLogger(__name__)


class Settings:
    """
    Manages application settings loaded from environment variables.
    """
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///seocrawler.db")
    QUEUE_DATABASE_URL = os.getenv("QUEUE_DATABASE_URL", DATABASE_URL)

    LLM_API_KEY = os.getenv("LLM_API_KEY")
    LLM_MODEL = os.getenv("LLM_MODEL", "gpt-4")
    LLM_PROVIDER = os.getenv("LLM_PROVIDER", "openai")
    USER_AGENT = os.getenv("USER_AGENT", DEFAULT_USER_AGENT)
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()


def _set_typed(instance, field_name: str, value) -> bool:
    """Set a dataclass field, converting value to the field's declared type.

    Returns:
        False if the value cannot be converted; the field is left unchanged
    """
    field_type = instance.__dataclass_fields__[field_name].type
    try:
        if field_type in (bool, "bool"):
            if isinstance(value, str):
                value = value.strip().lower() in ("1", "true", "yes", "on")
            else:
                value = bool(value)
        elif field_type in (int, "int"):
            if isinstance(value, bool):
                return False
            value = int(value)
        elif field_type in (float, "float"):
            if isinstance(value, bool):
                return False
            value = float(value)
        elif field_type in (str, "str"):
            if not isinstance(value, str):
                return False
        else:
            return False
    except (TypeError, ValueError):
        return False

    setattr(instance, field_name, value)
    return True


def _apply_env(instance, prefix: str) -> None:
    """Overwrite dataclass fields from prefixed environment variables.

    Values that fail type conversion are ignored and the default is kept.
    """
    for field_name in instance.__dataclass_fields__:
        env_value = os.getenv(f"{prefix}{field_name.upper()}")
        if env_value is not None:
            _set_typed(instance, field_name, env_value)


def _apply_file(instance, path: str, section: str) -> None:
    file_path = Path(path)
    if not file_path.exists():
        return

    with open(file_path, 'r') as f:
        config = json.load(f)

    values = config.get(section, config)
    for field_name in instance.__dataclass_fields__:
        if field_name in values:
            _set_typed(instance, field_name, values[field_name])


@dataclass
class CrawlConfig:
    """Configuration for a single crawl run."""

    page_budget: int = DEFAULT_PAGE_BUDGET
    concurrency: int = DEFAULT_CONCURRENCY
    pattern_cap: int = DEFAULT_PATTERN_CAP

    # Timeouts (seconds)
    static_timeout: float = STATIC_FETCH_TIMEOUT_SECONDS
    navigation_timeout: float = NAVIGATION_TIMEOUT_SECONDS
    probe_timeout: float = PROBE_TIMEOUT_SECONDS
    settle_min: float = SETTLE_MIN_SECONDS
    settle_max: float = SETTLE_MAX_SECONDS

    headless: bool = True
    user_agent: str = settings.USER_AGENT
    fallback_user_agent: str = FALLBACK_USER_AGENT
    check_robots: bool = True

    # Persistence
    storage_batch_size: int = DEFAULT_STORAGE_BATCH_SIZE

    @classmethod
    def from_env(cls) -> "CrawlConfig":
        """Load crawl configuration from environment variables.

        Environment variables are prefixed with SEO_CRAWL_
        e.g., SEO_CRAWL_PAGE_BUDGET=200

        Returns:
            CrawlConfig with values from environment
        """
        config = cls()
        _apply_env(config, "SEO_CRAWL_")
        return config

    @classmethod
    def from_options(cls, options: Optional[dict]) -> "CrawlConfig":
        """Build a config from environment defaults overridden by job options.

        Options come from JSON payloads, so values are converted to the field
        type; unknown keys and values that do not convert are ignored.
        """
        config = cls.from_env()
        for key, value in (options or {}).items():
            if key not in config.__dataclass_fields__ or value is None:
                continue
            if not _set_typed(config, key, value):
                logger.warning(f"Ignoring job option {key}={value!r}: cannot convert")
        return config

    def to_dict(self) -> dict:
        return {name: getattr(self, name) for name in self.__dataclass_fields__}


@dataclass
class ScoringConfig:
    """Heuristic constants for the quantitative scorer and the score blend."""

    start_score: int = 100

    # Title
    title_min: int = 30
    title_max: int = 65
    title_missing_penalty: int = 10
    title_long_penalty: int = 5
    title_short_penalty: int = 5

    # Meta description
    description_min: int = 70
    description_max: int = 160
    description_missing_penalty: int = 10
    description_long_penalty: int = 5
    description_short_penalty: int = 5

    # Headings
    missing_h1_penalty: int = 15
    multiple_h1_penalty: int = 10

    # Images
    image_alt_penalty: int = 2
    image_alt_penalty_cap: int = 10

    # Content
    thin_content_words: int = 300
    thin_content_penalty: int = 15

    # Structured data
    missing_structured_data_penalty: int = 10

    # Blend of quantitative and qualitative page scores
    quantitative_weight: float = 0.4
    qualitative_weight: float = 0.6

    # Score given to partial/fallback pages instead of a qualitative call
    degraded_page_score: int = 30

    # Score used when the qualitative scorer fails or has nothing to judge
    neutral_qualitative_score: int = 50

    @classmethod
    def from_env(cls) -> "ScoringConfig":
        """Load scoring constants from environment variables.

        Environment variables are prefixed with SEO_SCORE_
        e.g., SEO_SCORE_THIN_CONTENT_WORDS=250
        """
        config = cls()
        _apply_env(config, "SEO_SCORE_")
        return config

    @classmethod
    def from_file(cls, path: str) -> "ScoringConfig":
        """Load scoring constants from a JSON file with an optional 'scoring' section."""
        config = cls()
        _apply_file(config, path, "scoring")
        return config

    def to_dict(self) -> dict:
        return {name: getattr(self, name) for name in self.__dataclass_fields__}

    def save_to_file(self, path: str) -> None:
        with open(path, 'w') as f:
            json.dump({'scoring': self.to_dict()}, f, indent=2)

