"""
Logging for the Golden Host backend.

Every record carries a `conversation` field, the WhatsApp number the bot is
talking to, or `-` outside a conversation. Chatbot code logs through
`conversation_logger` so a single chat can be followed with grep.
"""

import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any, MutableMapping, Optional, Tuple, Union

from goldenhost.config import settings

LOG_FORMAT = "%(levelname)s | %(conversation)s | %(name)s:%(lineno)d | %(message)s"

COLORS = {
    "DEBUG": "\033[94m",
    "INFO": "\033[92m",
    "WARNING": "\033[93m",
    "ERROR": "\033[91m",
    "CRITICAL": "\033[1;91m",
    "RESET": "\033[0m",
}

AnyLogger = Union[logging.Logger, logging.LoggerAdapter]


class ConversationFilter(logging.Filter):
    """Fills in `conversation` for records logged outside a chat"""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "conversation"):
            record.conversation = "-"
        return True


class ColoredFormatter(logging.Formatter):
    """Colors the level name for terminal output"""

    def format(self, record):
        levelname = record.levelname
        if levelname in COLORS:
            record.levelname = f"{COLORS[levelname]}{levelname}{COLORS['RESET']}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


class ConversationLogger(logging.LoggerAdapter):
    """Tags every record with the conversation it belongs to"""

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> Tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**(kwargs.get("extra") or {}), **self.extra}
        return msg, kwargs


def conversation_logger(logger: logging.Logger, conversation_id: str) -> ConversationLogger:
    return ConversationLogger(logger, {"conversation": conversation_id})


def _error_file_handler(log_dir: Path, formatter: logging.Formatter) -> logging.Handler:
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = TimedRotatingFileHandler(
        log_dir / "errors.log", when="midnight", backupCount=14, encoding="utf-8"
    )
    handler.setLevel(logging.ERROR)
    handler.setFormatter(formatter)
    return handler


def setup_logger(
    name: str,
    level: Optional[Union[int, str]] = None,
    log_dir: Optional[Union[str, Path]] = None,
) -> logging.Logger:
    """
    Configure and return a logger with the project's handlers.

    Args:
        name: Logger name (typically __name__)
        level: Logging level; defaults to settings.LOG_LEVEL
        log_dir: Directory for the rotating error log; defaults to
            settings.LOG_DIR. An empty value disables the file.

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if level is None and not logger.level:
        level = settings.LOG_LEVEL
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    if level is not None:
        logger.setLevel(level)

    if logger.handlers:
        return logger

    conversation_filter = ConversationFilter()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(ColoredFormatter(LOG_FORMAT))
    console_handler.addFilter(conversation_filter)
    logger.addHandler(console_handler)

    if log_dir is None:
        log_dir = settings.LOG_DIR
    if log_dir:
        file_handler = _error_file_handler(Path(log_dir), logging.Formatter(LOG_FORMAT))
        file_handler.addFilter(conversation_filter)
        logger.addHandler(file_handler)

    return logger


def log_exception(logger: AnyLogger, message: str, exc: Optional[BaseException] = None) -> None:
    """
    Log an error with the full traceback of `exc`, or of the exception being
    handled when `exc` is None.
    """
    if exc is None:
        logger.exception(message)
        return
    logger.error(message, exc_info=(type(exc), exc, exc.__traceback__))
