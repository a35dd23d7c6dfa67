import logging
import os
from typing import Optional

from colorama import Fore, Style, init

init(autoreset=True)


CRAWLER_LOGGER_NAMES = ("core", "parsers", "utils", "database", "network", "scripts")


def setup_logger(
    name="crawler",
    level=logging.INFO,
    log_file: Optional[str] = "data/logs/crawl.log",
    console=True,
):
    """Setup logger with file and console handlers"""

    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Avoid duplicate handlers
    if logger.hasHandlers():
        logger.handlers.clear()

    # File handler
    if log_file:
        directory = os.path.dirname(log_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    # Console handler
    if console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_formatter = ColoredFormatter(
            "%(asctime)s - %(levelname_colored)s - %(message)s"
        )
        console_handler.setFormatter(console_formatter)
        logger.addHandler(console_handler)

    return logger


class ColoredFormatter(logging.Formatter):
    """Colored formatter for console output"""

    COLORS = {
        "DEBUG": Fore.CYAN,
        "INFO": Fore.BLUE,
        "WARNING": Fore.YELLOW,
        "ERROR": Fore.RED,
        "CRITICAL": Fore.MAGENTA + Style.BRIGHT,
    }

    def format(self, record):
        record.levelname_colored = (
            self.COLORS.get(record.levelname, Fore.WHITE)
            + record.levelname
            + Style.RESET_ALL
        )
        return super().format(record)


def configure_crawler_logging(
    level: str = "INFO",
    log_file: Optional[str] = "data/logs/crawl.log",
    console: bool = True,
) -> logging.Logger:
    """Route every crawler package logger through one set of handlers.

    Library modules log through ``logging.getLogger(__name__)``; this attaches
    the handlers to the top-level package loggers so CLI runs see worker
    lifecycle and flush events without each module configuring output.
    """

    numeric_level = getattr(logging, str(level).upper(), logging.INFO)
    root = setup_logger("crawler", numeric_level, log_file, console)

    for name in CRAWLER_LOGGER_NAMES:
        package_logger = logging.getLogger(name)
        package_logger.setLevel(numeric_level)
        package_logger.handlers = list(root.handlers)
        package_logger.propagate = False

    return root
