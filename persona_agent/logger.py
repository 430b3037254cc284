"""
Logging Setup

Console and file logging for the agent. Turn-level code logs through a
channel adapter so interleaved conversations can be told apart:

    12:00:01 │ INFO │ persona_agent.conversation.orchestrator │ [moon] Turn done in 2140ms

Usage:
    from persona_agent.logger import get_logger, channel_logger

    logger = get_logger(__name__)
    logger.info("Starting agent")

    log = channel_logger(logger, "moon")
    log.info("Turn started")   # -> "[moon] Turn started"
"""

import logging
import sys
from pathlib import Path
from typing import Any, MutableMapping, Optional, Tuple

CONSOLE_FORMAT = "%(asctime)s │ %(levelname)s │ %(name)s │ %(message)s"
PLAIN_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(funcName)s:%(lineno)d | %(message)s"

# Third-party loggers that flood DEBUG output during every turn
NOISY_LOGGERS = ("chromadb", "httpx", "httpcore", "urllib3", "aiohttp.access")


class ColoredFormatter(logging.Formatter):
    """Colours the level name for interactive terminals."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[1;31m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, self.RESET)
        record.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(record)


class ChannelAdapter(logging.LoggerAdapter):
    """Prefixes every message with the conversation channel it belongs to."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        return f"[{self.extra['channel']}] {msg}", kwargs


def _console_handler(level: int, use_colors: bool) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    if use_colors and sys.stdout.isatty():
        handler.setFormatter(ColoredFormatter(CONSOLE_FORMAT, datefmt="%H:%M:%S"))
    else:
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def _file_handler(level: int, log_file: str) -> logging.Handler:
    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    use_colors: bool = True
) -> None:
    """
    Replace the root logger's handlers with a console handler and, when
    ``log_file`` is given, a file handler.

    Args:
        level: Log level name; unknown names fall back to INFO
        log_file: Optional path of a log file (parent directories are created)
        use_colors: Colour level names when stdout is a terminal
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(numeric_level)
    root.handlers.clear()
    root.addHandler(_console_handler(numeric_level, use_colors))
    if log_file:
        root.addHandler(_file_handler(numeric_level, log_file))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))


def get_logger(name: str) -> logging.Logger:
    """Module logger; pass ``__name__``."""
    return logging.getLogger(name)


def channel_logger(logger: logging.Logger, channel_id: str) -> ChannelAdapter:
    """Wrap a module logger so turn-level lines carry the channel id."""
    return ChannelAdapter(logger, {"channel": channel_id})


_initialized = False


def init_logging() -> None:
    """Configure logging from settings once per process."""
    global _initialized
    if _initialized:
        return

    from persona_agent.config import settings
    setup_logging(level=settings.logging.level, log_file=settings.logging.file)
    _initialized = True
