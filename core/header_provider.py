"""
Browser header sets for page navigations.

Header sets come from the ScrapeOps browser-headers API when an API key
is configured. Any problem with that call (no key, timeout, HTTP error,
malformed or empty payload) falls back to a built-in pool, so callers
always receive at least one usable set.
"""

import asyncio
import logging
import random
from typing import Any, Dict, List, Optional

import httpx

from config.settings import SCRAPEOPS_HEADERS_URL
from core.types import Headers

logger = logging.getLogger(__name__)


FALLBACK_HEADERS: List[Headers] = [
    {
        "upgrade-insecure-requests": "1",
        "user-agent": (
            "Mozilla/5.0 (Windows NT 10.0; Windows; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/103.0.5060.114 Safari/537.36"
        ),
        "accept": (
            "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,"
            "image/webp,image/apng,*/*;q=0.8,application/signed-exchange;v=b3;q=0.9"
        ),
        "sec-ch-ua": '".Not/A)Brand";v="99", "Google Chrome";v="103", "Chromium";v="103"',
        "sec-ch-ua-mobile": "?0",
        "sec-ch-ua-platform": '"Windows"',
        "sec-fetch-site": "none",
        "sec-fetch-user": "?1",
        "accept-encoding": "gzip, deflate, br",
        "accept-language": "bg-BG,bg;q=0.9,en-US;q=0.8,en;q=0.7",
    },
    {
        "upgrade-insecure-requests": "1",
        "user-agent": (
            "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/103.0.5060.53 Safari/537.36"
        ),
        "accept": (
            "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,"
            "image/webp,image/apng,*/*;q=0.8,application/signed-exchange;v=b3;q=0.9"
        ),
        "sec-ch-ua": '".Not/A)Brand";v="99", "Google Chrome";v="103", "Chromium";v="103"',
        "sec-ch-ua-mobile": "?0",
        "sec-ch-ua-platform": '"Linux"',
        "sec-fetch-site": "none",
        "sec-fetch-user": "?1",
        "accept-encoding": "gzip, deflate, br",
        "accept-language": "fr-CH,fr;q=0.9,en-US;q=0.8,en;q=0.7",
    },
]


class HeaderProvider:
    """Fetches and caches rotated browser header sets."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        endpoint: str = SCRAPEOPS_HEADERS_URL,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self.endpoint = endpoint
        self.timeout = timeout
        self._transport = transport
        self._headers: List[Headers] = []
        self._load_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings) -> "HeaderProvider":
        return cls(
            api_key=settings.scrapeops_api_key,
            endpoint=settings.header_endpoint,
            timeout=settings.header_timeout_seconds,
        )

    async def get_headers(self, count: int = 2) -> List[Headers]:
        """Return ``count`` header sets or the fallback pool. Never raises."""
        if not self.api_key:
            logger.debug("No header API key configured, using fallback headers")
            return self._fallback()

        try:
            result = await self._request_headers(count)
        except httpx.HTTPError as exc:
            logger.warning(
                "Failed to fetch headers from %s, using fallback headers: %s",
                self.endpoint,
                exc,
            )
            return self._fallback()
        except ValueError as exc:
            logger.warning("Malformed header payload, using fallback headers: %s", exc)
            return self._fallback()
        except Exception as exc:
            logger.warning(
                "Header service call to %s failed, using fallback headers: %s",
                self.endpoint,
                exc,
            )
            return self._fallback()

        if not result:
            logger.warning("No headers from header service, using fallback headers")
            return self._fallback()

        self._headers = result
        return list(result)

    async def choose(self, count: int = 2) -> Headers:
        """Pick one header set at random, loading the pool on first use."""
        if not self._headers:
            async with self._load_lock:
                if not self._headers:
                    self._headers = await self.get_headers(count)
        return dict(random.choice(self._headers))

    async def _request_headers(self, count: int) -> List[Headers]:
        params = {"api_key": self.api_key, "num_results": count}
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            transport=self._transport,
        ) as client:
            response = await client.get(self.endpoint, params=params)
            response.raise_for_status()
            payload: Any = response.json()

        if not isinstance(payload, dict):
            raise ValueError("expected a JSON object")
        items = payload.get("result") or []
        if not isinstance(items, list):
            raise ValueError("'result' must be a list")
        return [self._coerce(item) for item in items if isinstance(item, dict)]

    @staticmethod
    def _coerce(item: Dict[str, Any]) -> Headers:
        return {str(key): str(value) for key, value in item.items() if value is not None}

    @staticmethod
    def _fallback() -> List[Headers]:
        return [dict(headers) for headers in FALLBACK_HEADERS]


__all__ = ["FALLBACK_HEADERS", "HeaderProvider"]
