"""Configuration using pydantic-settings."""
from decimal import Decimal
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


SCRAPEOPS_HEADERS_URL = "https://headers.scrapeops.io/v1/browser-headers"
SCRAPEOPS_PROXY_URL = "https://proxy.scrapeops.io/v1"


class CrawlSettings(BaseSettings):
    """Crawler settings loaded from environment variables (``CRAWLER_*``)."""

    model_config = SettingsConfigDict(
        env_prefix="CRAWLER_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Seeds and normalization constants
    seed_urls: List[str] = ["https://www.chocolate.co.uk/collections/all"]
    site_origin: str = "https://www.chocolate.co.uk"
    conversion_rate: Decimal = Decimal("1.32")
    price_prefixes: List[str] = ["Sale priceFrom £", "Sale price£"]

    # Aggregator
    storage_queue_limit: int = Field(default=5, ge=1)
    mirror_timeout_seconds: float = Field(default=30.0, gt=0)

    # Fetch policy
    max_retries: int = Field(default=3, ge=1)
    anti_bot_check: bool = False
    anti_bot_markers: List[str] = ["<title>Robot or human?</title>"]
    accepted_statuses: List[int] = [200, 404]
    retry_base_delay_seconds: float = Field(default=0.5, ge=0)
    retry_max_delay_seconds: float = Field(default=10.0, ge=0)
    retry_multiplier: float = Field(default=2.0, ge=1)
    retry_jitter: bool = True

    # Browser
    browser_type: str = "chromium"
    headless: bool = True
    navigation_timeout_ms: int = Field(default=30_000, gt=0)
    wait_until: str = "domcontentloaded"

    # Dispatcher
    max_concurrency: Optional[int] = Field(default=None, ge=1)

    # Page selectors
    product_selector: str = "product-item"
    name_selector: str = ".product-item-meta__title"
    price_selector: str = ".price"
    next_page_selector: str = "a.pagination__nav-item:nth-child(4)"

    # Sinks
    csv_path: str = "chocolate.csv"
    json_path: Optional[str] = None
    database_url: Optional[str] = None
    database_table: str = "chocolate_products"
    s3_bucket: Optional[str] = None
    s3_key: Optional[str] = None
    s3_endpoint: Optional[str] = None
    s3_region: str = "us-east-1"
    s3_access_key: Optional[str] = None
    s3_secret_key: Optional[str] = None

    # Header rotation and proxy relay
    scrapeops_api_key: Optional[str] = None
    header_endpoint: str = SCRAPEOPS_HEADERS_URL
    header_count: int = Field(default=2, ge=1)
    header_timeout_seconds: float = Field(default=5.0, gt=0)
    proxy_relay_enabled: bool = False
    proxy_relay_endpoint: str = SCRAPEOPS_PROXY_URL

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = "data/logs/crawl.log"

    @field_validator("site_origin")
    @classmethod
    def _strip_origin(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value.startswith(("http://", "https://")):
            raise ValueError("site_origin must be an absolute http(s) URL")
        return value

    @field_validator("seed_urls")
    @classmethod
    def _require_seeds(cls, value: List[str]) -> List[str]:
        seeds = [url.strip() for url in value if url and url.strip()]
        if not seeds:
            raise ValueError("at least one seed URL is required")
        return seeds

    @field_validator("conversion_rate")
    @classmethod
    def _positive_rate(cls, value: Decimal) -> Decimal:
        if value < 0:
            raise ValueError("conversion_rate must be non-negative")
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()


@lru_cache
def get_settings() -> CrawlSettings:
    """
    Get cached settings instance.

    Returns:
        CrawlSettings: Crawler settings
    """
    return CrawlSettings()
