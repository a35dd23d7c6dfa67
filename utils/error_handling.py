from typing import Any, Dict, Optional


# Custom Exception Classes
class ScraperError(Exception):
    """Base exception for all crawler errors"""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}


class ConfigurationError(ScraperError):
    """Configuration-related errors"""

    pass


class NetworkError(ScraperError):
    """Network and connectivity issues"""

    pass


class FetchError(NetworkError):
    """A single page navigation failed at the transport level"""

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        attempt: Optional[int] = None,
        status: Optional[int] = None,
    ):
        super().__init__(message, {"url": url, "attempt": attempt, "status": status})
        self.url = url
        self.attempt = attempt
        self.status = status


class AntiBotChallengeError(ScraperError):
    """Page content matched an anti-bot challenge marker"""

    def __init__(self, url: str, marker: str):
        super().__init__(
            f"Anti-bot challenge detected at {url}", {"url": url, "marker": marker}
        )
        self.url = url
        self.marker = marker


class SinkError(ScraperError):
    """A primary sink could not persist a batch"""

    def __init__(self, sink: str, message: str, *, batch_size: int = 0):
        super().__init__(
            f"Sink '{sink}' failed: {message}",
            {"sink": sink, "batch_size": batch_size},
        )
        self.sink = sink
        self.batch_size = batch_size


class PipelineClosedError(ScraperError):
    """Products were submitted after the pipeline stopped accepting them"""

    pass


class WorkerError(ScraperError):
    """Unexpected failure inside a crawl worker"""

    def __init__(self, seed_url: str, message: str, *, url: Optional[str] = None):
        super().__init__(message, {"seed_url": seed_url, "url": url})
        self.seed_url = seed_url
        self.url = url


def describe_error(error: BaseException) -> str:
    """Short ``Type: message`` string for summaries and log lines."""

    message = str(error)
    return f"{type(error).__name__}: {message}" if message else type(error).__name__
