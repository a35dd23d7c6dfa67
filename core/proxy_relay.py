"""Anti-detection proxy relay (ScrapeOps-style) for page navigations."""

import logging
import os
from typing import Optional
from urllib.parse import urlencode

logger = logging.getLogger(__name__)

API_KEY_ENV = "SCRAPEOPS_API_KEY"


class ProxyRelay:
    """Rewrites a target URL so the navigation is tunneled through the relay.

    The relay fetches ``url`` on our behalf and returns the rendered
    response; the browser only ever talks to ``endpoint``.
    """

    def __init__(self, endpoint: str, api_key: Optional[str] = None) -> None:
        self.endpoint = endpoint.rstrip("?")
        self.api_key = self._resolve_api_key(api_key)

    @classmethod
    def from_settings(cls, settings) -> Optional["ProxyRelay"]:
        if not settings.proxy_relay_enabled:
            return None
        relay = cls(settings.proxy_relay_endpoint, settings.scrapeops_api_key)
        if not relay.api_key:
            logger.warning("Proxy relay enabled without an API key; navigating directly")
            return None
        return relay

    @staticmethod
    def _resolve_api_key(api_key: Optional[str]) -> str:
        if api_key:
            return api_key
        env_value = os.getenv(API_KEY_ENV, "")
        if env_value:
            return env_value
        logger.debug("API key for %s not provided; relay disabled", API_KEY_ENV)
        return ""

    def wrap(self, url: str) -> str:
        return f"{self.endpoint}?{urlencode({'api_key': self.api_key, 'url': url})}"
