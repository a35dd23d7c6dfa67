"""
Exponential backoff with jitter for page navigation retries.
"""

import asyncio
import logging
import random
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ExponentialBackoff:
    """Exponential backoff with jitter between navigation attempts."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        config = config or {}
        self.config = config
        self.enabled = config.get("enabled", True)
        self.base_delay = float(config.get("base_delay_seconds", 0.5))
        self.max_delay = float(config.get("max_delay_seconds", 10.0))
        self.multiplier = float(config.get("multiplier", 2.0))
        self.jitter = config.get("jitter", True)

        self.total_delay = 0.0

    @classmethod
    def from_settings(cls, settings) -> "ExponentialBackoff":
        return cls(
            {
                "base_delay_seconds": settings.retry_base_delay_seconds,
                "max_delay_seconds": settings.retry_max_delay_seconds,
                "multiplier": settings.retry_multiplier,
                "jitter": settings.retry_jitter,
            }
        )

    def calculate_delay(self, attempt: int) -> float:
        """
        Calculate delay with exponential backoff and jitter.

        Args:
            attempt: Current attempt number (0-based)

        Returns:
            Delay in seconds
        """
        if not self.enabled or self.base_delay <= 0:
            return 0.0

        delay = min(self.base_delay * (self.multiplier**attempt), self.max_delay)

        # Add jitter to prevent thundering herd
        if self.jitter and delay > 0:
            jitter_factor = 0.1 + (random.random() * 0.4)  # 10-50% jitter
            delay = min(delay * (1 + jitter_factor), self.max_delay)

        return delay

    async def wait_with_backoff(self, identifier: str, attempt: int) -> float:
        """
        Calculate delay and wait asynchronously.

        Returns:
            Actual delay time waited
        """
        delay = self.calculate_delay(attempt)

        if delay > 0:
            self.total_delay += delay
            logger.debug("Waiting %.2fs before retry for %s", delay, identifier)
            await asyncio.sleep(delay)

        return delay
