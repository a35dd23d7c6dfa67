"""
Retrying page navigation with anti-bot detection.

``FetchPolicy.fetch`` never raises for network trouble: it returns the
navigation response on success and ``None`` when the page could not be
loaded (retries exhausted or an anti-bot challenge was served).
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence

from core.exponential_backoff import ExponentialBackoff
from core.proxy_relay import ProxyRelay
from core.types import Headers, PageLike, ResponseLike
from utils.error_handling import AntiBotChallengeError, FetchError

logger = logging.getLogger(__name__)

DEFAULT_ACCEPTED_STATUSES = (200, 404)
DEFAULT_ANTI_BOT_MARKERS = ("<title>Robot or human?</title>",)


@dataclass(frozen=True)
class FetchResult:
    """Response of one fetch and the number of navigations it used."""

    response: Optional[ResponseLike]
    attempts: int

    @property
    def retries(self) -> int:
        return max(self.attempts - 1, 0)


class FetchPolicy:
    """Navigates a page with bounded retries, backoff and challenge detection."""

    def __init__(
        self,
        backoff: Optional[ExponentialBackoff] = None,
        *,
        max_retries: int = 3,
        accepted_statuses: Iterable[int] = DEFAULT_ACCEPTED_STATUSES,
        anti_bot_check: bool = False,
        anti_bot_markers: Sequence[str] = DEFAULT_ANTI_BOT_MARKERS,
        relay: Optional[ProxyRelay] = None,
        wait_until: str = "domcontentloaded",
        timeout_ms: int = 30_000,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.backoff = backoff or ExponentialBackoff({"enabled": False})
        self.max_retries = max_retries
        self.accepted_statuses = frozenset(accepted_statuses)
        self.anti_bot_check = anti_bot_check
        self.anti_bot_markers = tuple(m.lower() for m in anti_bot_markers if m)
        self.relay = relay
        self.wait_until = wait_until
        self.timeout_ms = timeout_ms

    @classmethod
    def from_settings(
        cls, settings, relay: Optional[ProxyRelay] = None
    ) -> "FetchPolicy":
        return cls(
            ExponentialBackoff.from_settings(settings),
            max_retries=settings.max_retries,
            accepted_statuses=settings.accepted_statuses,
            anti_bot_check=settings.anti_bot_check,
            anti_bot_markers=settings.anti_bot_markers,
            relay=relay,
            wait_until=settings.wait_until,
            timeout_ms=settings.navigation_timeout_ms,
        )

    async def fetch(
        self,
        page: PageLike,
        url: str,
        *,
        max_retries: Optional[int] = None,
        anti_bot_check: Optional[bool] = None,
        headers: Optional[Headers] = None,
    ) -> Optional[ResponseLike]:
        """Load ``url`` into ``page`` and return the response or ``None``."""
        result = await self.fetch_with_attempts(
            page,
            url,
            max_retries=max_retries,
            anti_bot_check=anti_bot_check,
            headers=headers,
        )
        return result.response

    async def fetch_with_attempts(
        self,
        page: PageLike,
        url: str,
        *,
        max_retries: Optional[int] = None,
        anti_bot_check: Optional[bool] = None,
        headers: Optional[Headers] = None,
    ) -> FetchResult:
        """Load ``url`` into ``page``, reporting how many navigations it took.

        Makes at most ``max_retries`` navigations. Statuses outside the
        accepted set, a missing response and any exception raised by the
        navigation are retried. With the anti-bot check on, a 200 page
        carrying a challenge marker ends the fetch at once with no response.
        """
        retries = self.max_retries if max_retries is None else max_retries
        check = self.anti_bot_check if anti_bot_check is None else anti_bot_check
        target = url
        if self.relay is not None:
            target = self.relay.wrap(url)
            check = True

        for attempt in range(1, retries + 1):
            try:
                response = await self._navigate(page, target, url, attempt, headers)
                if check and response.status == 200:
                    await self._check_challenge(page, url)
            except AntiBotChallengeError as exc:
                logger.warning("%s (marker %r)", exc, exc.marker)
                return FetchResult(None, attempt)
            except Exception as exc:
                logger.warning("Failed to fetch %s, retrying...", url)
                logger.debug("Attempt %d/%d for %s failed: %s", attempt, retries, url, exc)
                if attempt < retries:
                    await self.backoff.wait_with_backoff(url, attempt - 1)
                continue

            logger.debug("Fetched %s in %d attempt(s)", url, attempt)
            return FetchResult(response, attempt)

        logger.error("Giving up on %s after %d attempts", url, retries)
        return FetchResult(None, retries)

    async def _navigate(
        self,
        page: PageLike,
        target: str,
        url: str,
        attempt: int,
        headers: Optional[Headers],
    ) -> ResponseLike:
        if headers:
            await page.set_extra_http_headers(headers)

        goto_kwargs: dict[str, Any] = {
            "wait_until": self.wait_until,
            "timeout": self.timeout_ms,
        }
        response = await page.goto(target, **goto_kwargs)
        if response is None:
            raise FetchError("No response received", url=url, attempt=attempt)
        if response.status not in self.accepted_statuses:
            raise FetchError(
                f"Unexpected status {response.status}",
                url=url,
                attempt=attempt,
                status=response.status,
            )
        return response

    async def _check_challenge(self, page: PageLike, url: str) -> None:
        content = (await page.content()).lower()
        for marker in self.anti_bot_markers:
            if marker in content:
                raise AntiBotChallengeError(url, marker)


__all__ = [
    "DEFAULT_ACCEPTED_STATUSES",
    "DEFAULT_ANTI_BOT_MARKERS",
    "FetchPolicy",
    "FetchResult",
]
