from __future__ import annotations

from typing import Dict, Optional, Tuple

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from newsentiment.core.models import SourceConfig

# name -> (display name, default base url, search path, news path, priority, requests/hour, search param)
SOURCE_DEFAULTS: Dict[str, Tuple[str, str, str, Optional[str], int, int, str]] = {
    "moneycontrol": (
        "MoneyControl", "https://www.moneycontrol.com", "/search", "/news", 1, 100, "query",
    ),
    "economic_times": (
        "Economic Times", "https://economictimes.indiatimes.com", "/search", "/news", 2, 100, "q",
    ),
    "business_standard": (
        "Business Standard", "https://www.business-standard.com", "/search", "/news", 3, 100, "q",
    ),
    "nse": (
        "NSE India", "https://www.nseindia.com", "/search", "/news", 4, 50, "q",
    ),
    "bse": (
        "BSE India", "https://www.bseindia.com", "/search", "/news", 5, 50, "q",
    ),
}


class Settings(BaseSettings):
    """Engine settings with validation.

    Everything is read from environment variables (or a local ``.env``).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging
    log_level: str = "INFO"
    log_json: bool = False
    log_file: str = ""

    # Browser pool
    browser_pool_size: int = 3
    browser_headless: bool = True
    page_timeout_ms: int = 30000
    viewport_width: int = 1920
    viewport_height: int = 1080

    # Navigation
    nav_max_attempts: int = 3
    nav_retry_delay: float = 1.0  # seconds before the first retry
    nav_backoff_multiplier: float = 2.0
    nav_settle_ms: int = 2000
    selector_timeout_ms: int = 10000

    # Extraction / validation
    min_title_length: int = 10
    max_title_length: int = 200
    min_content_length: int = 100
    max_content_length: int = 10000
    require_title: bool = True
    require_content: bool = True
    require_url: bool = True
    require_date: bool = True  # warning only
    require_author: bool = False  # warning only

    # Sources
    enabled_sources: str = "moneycontrol,economic_times,business_standard,nse,bse"
    source_weights: str = ""  # e.g. "moneycontrol=1.0,bse=0.8"
    moneycontrol_base_url: str = ""
    economic_times_base_url: str = ""
    business_standard_base_url: str = ""
    nse_base_url: str = ""
    bse_base_url: str = ""
    rate_limit_window_seconds: int = 3600
    max_articles_per_source: int = 10
    news_limit: int = 20

    # Classifier
    huggingface_api_key: str = ""
    huggingface_base_url: str = "https://api-inference.huggingface.co"
    sentiment_model: str = "ProsusAI/finbert"
    classifier_timeout: float = 30.0
    classifier_request_delay: float = 1.0
    classifier_rate_limit_cooldown: float = 5.0
    classifier_max_attempts: int = 3
    classifier_max_chars: int = 500
    sentiment_min_text_length: int = 50
    classifier_failure_threshold: int = 5
    classifier_recovery_timeout: float = 60.0

    # Aggregation
    recency_decay_days: float = 7.0
    default_source_reliability: float = 1.0
    normalize_by_weight: bool = False
    positive_threshold: float = 0.6
    negative_threshold: float = 0.4

    # Duplicate detection
    dedupe_enabled: bool = False
    dedupe_title_similarity: float = 0.9

    # Collaborators
    redis_url: str = ""
    cache_ttl_seconds: int = 900
    store_path: str = ""

    @field_validator("browser_pool_size")
    @classmethod
    def pool_size_range(cls, v: int) -> int:
        if v < 1 or v > 10:
            raise ValueError(f"browser_pool_size must be in [1, 10], got {v}")
        return v

    @field_validator(
        "page_timeout_ms",
        "nav_max_attempts",
        "selector_timeout_ms",
        "rate_limit_window_seconds",
        "max_articles_per_source",
        "news_limit",
        "classifier_max_attempts",
        "classifier_max_chars",
        "sentiment_min_text_length",
        "classifier_failure_threshold",
    )
    @classmethod
    def must_be_positive_int(cls, v: int, info) -> int:
        if v < 1:
            raise ValueError(f"{info.field_name} must be >= 1, got {v}")
        return v

    @field_validator(
        "nav_retry_delay",
        "classifier_request_delay",
        "classifier_rate_limit_cooldown",
        "classifier_recovery_timeout",
    )
    @classmethod
    def must_be_non_negative(cls, v: float, info) -> float:
        if v < 0:
            raise ValueError(f"{info.field_name} must be >= 0, got {v}")
        return v

    @field_validator("nav_backoff_multiplier", "recency_decay_days", "classifier_timeout")
    @classmethod
    def must_be_positive_float(cls, v: float, info) -> float:
        if v <= 0:
            raise ValueError(f"{info.field_name} must be > 0, got {v}")
        return v

    @field_validator(
        "default_source_reliability",
        "positive_threshold",
        "negative_threshold",
        "dedupe_title_similarity",
    )
    @classmethod
    def unit_interval(cls, v: float, info) -> float:
        if not 0 <= v <= 1:
            raise ValueError(f"{info.field_name} must be in [0, 1], got {v}")
        return v

    @field_validator("enabled_sources")
    @classmethod
    def validate_sources(cls, v: str) -> str:
        for name in v.split(","):
            name = name.strip()
            if name and name not in SOURCE_DEFAULTS:
                raise ValueError(
                    f"Unknown source: {name}. Known: {', '.join(SOURCE_DEFAULTS)}"
                )
        return v

    @field_validator("source_weights")
    @classmethod
    def validate_weights(cls, v: str) -> str:
        for pair in v.split(","):
            pair = pair.strip()
            if not pair:
                continue
            name, sep, weight = pair.partition("=")
            if not sep or name.strip() not in SOURCE_DEFAULTS:
                raise ValueError(f"Invalid source weight: {pair}")
            try:
                value = float(weight)
            except ValueError:
                raise ValueError(f"Invalid source weight: {pair}") from None
            if not 0 <= value <= 1:
                raise ValueError(f"Source weight must be in [0, 1]: {pair}")
        return v

    @model_validator(mode="after")
    def validate_lengths(self) -> "Settings":
        if self.min_title_length >= self.max_title_length:
            raise ValueError(
                f"min_title_length ({self.min_title_length}) must be < "
                f"max_title_length ({self.max_title_length})"
            )
        if self.min_content_length >= self.max_content_length:
            raise ValueError(
                f"min_content_length ({self.min_content_length}) must be < "
                f"max_content_length ({self.max_content_length})"
            )
        if self.negative_threshold >= self.positive_threshold:
            raise ValueError(
                f"negative_threshold ({self.negative_threshold}) must be < "
                f"positive_threshold ({self.positive_threshold})"
            )
        return self

    @property
    def enabled_sources_list(self) -> list[str]:
        return [s.strip() for s in self.enabled_sources.split(",") if s.strip()]

    @property
    def source_weights_map(self) -> Dict[str, float]:
        weights = {}
        for pair in self.source_weights.split(","):
            name, sep, weight = pair.strip().partition("=")
            if sep:
                weights[name.strip()] = float(weight)
        return weights

    def source_configs(self) -> Tuple[SourceConfig, ...]:
        """Every known source, enabled flag set from ``enabled_sources``, priority ascending."""
        enabled = set(self.enabled_sources_list)
        weights = self.source_weights_map
        configs = []
        for name, (display, base_url, search_path, news_path, priority, per_hour, param) in SOURCE_DEFAULTS.items():
            base = (getattr(self, f"{name}_base_url") or base_url).rstrip("/")
            configs.append(
                SourceConfig(
                    name=name,
                    display_name=display,
                    base_url=base,
                    search_url=f"{base}{search_path}",
                    news_url=f"{base}{news_path}" if news_path else None,
                    priority=priority,
                    max_requests_per_hour=per_hour,
                    enabled=name in enabled,
                    reliability=weights.get(name, self.default_source_reliability),
                    search_param=param,
                )
            )
        return tuple(sorted(configs, key=lambda c: c.priority))

    def enabled_source_configs(self) -> Tuple[SourceConfig, ...]:
        return tuple(c for c in self.source_configs() if c.enabled)

    def validate_classifier_credentials(self) -> None:
        """Raise if the Hugging Face token is missing."""
        if not self.huggingface_api_key:
            raise ValueError("HUGGINGFACE_API_KEY must be set for model sentiment")


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Force reload settings from environment."""
    global _settings
    _settings = Settings()
    return _settings
