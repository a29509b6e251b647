"""
ethgate Logging System
======================

A unified, thread-safe logging utility for the gateway. This module integrates
with the standard Python `logging` library and the `rich` library to provide
readable console output for proxied JSON-RPC traffic.

Usage:
    >>> from ethgate.logger import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("Gateway started")
"""

import logging
import logging.handlers
import re
import sys
import threading
import time
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.highlighter import RegexHighlighter
from rich.logging import RichHandler
from rich.theme import Theme

from .constants import (
    LOG_LEVEL,
    LOG_FORMAT,
    LOG_DATE_FORMAT,
    LOG_TO_FILE,
    LOG_MAX_FILE_SIZE,
    LOG_MAX_CONTENT_LENGTH,
    LOG_BACKUP_COUNT,
    LOG_CONSOLE_HIGHLIGHTING,
)


PROJECT_ROOT = Path(__file__).parent.parent
LOG_FILE_PATH = PROJECT_ROOT / "logs" / "ethgate.log"

# Third-party loggers that drown out proxy traffic at INFO
_NOISY_LIBRARIES = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "websockets": logging.WARNING,
    "uvicorn.access": logging.WARNING,
    "uvicorn": logging.ERROR,
    "uvicorn.error": logging.ERROR,
    "uvicorn.asgi": logging.ERROR,
}


class LogManager:
    """
    Manages logging configuration via the Singleton pattern.

    The logging subsystem is initialized exactly once. It sets up a 'Rich'
    console handler and, when enabled, a rotating file handler.

    Attributes:
        _instance (LogManager): The singleton instance.
        _lock (threading.Lock): Thread lock for atomic initialization.
    """

    _instance: Optional["LogManager"] = None
    _lock: threading.Lock = threading.Lock()


    def __new__(cls) -> "LogManager":
        """Creates or returns the existing singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance


    def __init__(self) -> None:
        if self._initialized:
            return
        self._configured = False
        self._initialized = True


    @staticmethod
    def validate_log_format(log_format: str) -> str:
        """
        Validates a logging format string by formatting a dummy record.

        Args:
            log_format (str): The logging format string.

        Returns:
            str: The validated format string, or the default `LOG_FORMAT` if it is unusable.
        """
        if not log_format:
            return str(LOG_FORMAT.default())
        try:
            formatter = logging.Formatter(fmt=str(log_format))
            record = logging.LogRecord(
                name="test", level=logging.INFO, pathname="", lineno=0,
                msg="test", args=(), exc_info=None,
            )
            formatter.format(record)
            return str(log_format)
        except (ValueError, KeyError, TypeError) as e:
            print(
                f"{time.strftime(str(LOG_DATE_FORMAT.default()))} - ethgate.logger - "
                f"Validation Error: {e}. Using default.",
                file=sys.stderr,
            )
            return str(LOG_FORMAT.default())


    def configure(
        self,
        log_level: Optional[str] = None,
        log_file: Optional[Path] = None,
        console_output: bool = True,
        file_output: Optional[bool] = None,
        force: bool = False,
    ) -> None:
        """
        Configures the root logger with console and file handlers.

        Args:
            log_level (Optional[str]): Logging level (DEBUG, INFO, etc.). Defaults to env var.
            log_file (Optional[Path]): Path to log file. Defaults to `logs/ethgate.log`.
            console_output (bool): Enable console logging. Defaults to True.
            file_output (Optional[bool]): Enable rotating file logging. Defaults to `LOG_TO_FILE`.
            force (bool): Reconfigure even if already configured (used once the
                runtime config, which may override the level, has been loaded).
        """
        with self._lock:
            if self._configured and not force:
                return

            level_str = log_level or LOG_LEVEL
            numeric_level = getattr(logging, str(level_str).upper(), logging.INFO)

            root_logger = logging.getLogger()
            root_logger.setLevel(numeric_level)

            for lib, level in _NOISY_LIBRARIES.items():
                logging.getLogger(lib).setLevel(level)

            root_logger.handlers.clear()

            log_format = self.validate_log_format(LOG_FORMAT)

            # Timestamps in UTC
            formatter = TerminalSafeFormatter(fmt=log_format, datefmt=str(LOG_DATE_FORMAT) + " UTC")
            formatter.converter = time.gmtime

            if console_output:
                if LOG_CONSOLE_HIGHLIGHTING:
                    theme = Theme(
                        {
                            "ethgate.arrow":          "bold yellow",
                            "ethgate.level_critical": "bold red reverse",
                            "ethgate.level_debug":    "bold dim",
                            "ethgate.level_error":    "bold red",
                            "ethgate.level_info":     "bold green",
                            "ethgate.level_warning":  "bold yellow",
                            "ethgate.logger_name":    "magenta",
                            "ethgate.http_method":    "bold white",
                            "ethgate.rpc_method":     "bold cyan",
                            "ethgate.hex":            "dim cyan",
                            "ethgate.status_error":   "bold red",
                            "ethgate.status_success": "bold green",
                            "ethgate.timestamp":      "bold cyan",
                            "ethgate.url":            "cyan",
                        }
                    )

                    console = Console(theme=theme, highlight=False)

                    rich_handler = RichHandler(
                        console=console,
                        highlighter=GatewayLogHighlighter(),
                        keywords=[],
                        rich_tracebacks=True,
                        omit_repeated_times=False,
                        show_path=False,
                        show_time=False,
                        show_level=False,
                        markup=False,
                    )
                    rich_handler.setLevel(numeric_level)
                    rich_handler.setFormatter(formatter)
                    root_logger.addHandler(rich_handler)
                else:
                    console_handler = logging.StreamHandler(sys.stdout)
                    console_handler.setLevel(numeric_level)
                    console_handler.setFormatter(formatter)
                    root_logger.addHandler(console_handler)

            if LOG_TO_FILE if file_output is None else file_output:
                log_file_path = log_file or LOG_FILE_PATH
                log_file_path.parent.mkdir(parents=True, exist_ok=True)

                file_handler = logging.handlers.RotatingFileHandler(
                    filename=str(log_file_path),
                    maxBytes=LOG_MAX_FILE_SIZE,
                    backupCount=LOG_BACKUP_COUNT,
                    encoding="utf-8",
                )
                file_handler.setLevel(numeric_level)
                file_handler.setFormatter(formatter)
                root_logger.addHandler(file_handler)

            self._configured = True


    def get_logger(self, name: str) -> logging.Logger:
        """
        Retrieves a configured logger instance for a specific module.

        Args:
            name (str): The name of the logger (typically `__name__`).

        Returns:
            logging.Logger: A configured standard Python logger.
        """
        if not self._configured:
            self.configure()
        return logging.getLogger(name)


    @property
    def is_configured(self) -> bool:
        """Returns True if the logging system has been successfully configured."""
        return self._configured


class TerminalSafeFormatter(logging.Formatter):
    """
    A formatter that strips ANSI escape sequences and control characters.

    Request bodies are logged verbatim; nothing they contain reaches the
    terminal unescaped.
    """

    _ansi_escape_re = re.compile(
        r"\x1b\[[0-?]*[ -/]*[@-~]"
        r"|\x1b[@-Z\\-_]"
    )
    # Control chars (0x00-0x1F) excluding Tab and Newline
    _control_chars_re = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
    _carriage_return_re = re.compile(r"\r")


    @classmethod
    def sanitize(cls, text: str) -> str:
        if not text:
            return text
        text = cls._ansi_escape_re.sub("", text)
        text = cls._carriage_return_re.sub("", text)
        text = cls._control_chars_re.sub("", text)
        return text


    def format(self, record: logging.LogRecord) -> str:
        return self.sanitize(super().format(record))


class GatewayLogHighlighter(RegexHighlighter):
    """Rich highlighter for proxy traffic: HTTP verbs, JSON-RPC methods, hashes."""

    base_style = "ethgate."
    highlights = [
        r"(?P<arrow>(\-\->)|(<--))",
        r"(?P<level_critical>\bCRITICAL\b)",
        r"(?P<level_debug>\bDEBUG\b)",
        r"(?P<level_error>\bERROR\b)",
        r"(?P<level_info>\bINFO\b)",
        r"(?P<level_warning>\bWARNING\b)",
        r"\-\s+\w+\s+-\s+(?P<logger_name>[\w.]+)(?=\s-\s)",
        r"(?P<http_method>\b(GET|POST|PUT|DELETE|PATCH|OPTIONS|HEAD)\b)",
        r"(?P<rpc_method>\b(eth|net|web3|debug|txpool)_[A-Za-z]+\b)",
        r"(?P<hex>\b0x[0-9a-fA-F]{8,}\b)",
        r"(?P<status_error>\bstatus=(4|5)\d{2}\b)",
        r"(?P<status_success>\bstatus=2\d{2}\b)",
        r"(?P<timestamp>^(.*?)UTC)",
        r"(?P<url>(https?|wss?)://\S+)",
    ]


def truncate_content(content: str, limit: int = LOG_MAX_CONTENT_LENGTH) -> str:
    """Shortens a request/response body for logging."""
    if len(content) <= limit:
        return content
    return content[:limit] + "...[TRUNCATED]"


_manager = LogManager()

def get_logger(name: str) -> logging.Logger:
    """
    Public accessor of the logging system.
    Delegates to the Singleton LogManager, ensuring configuration is applied.
    """
    return _manager.get_logger(name)


def configure_logging(log_level: Optional[str] = None, **kwargs) -> None:
    """Re-applies logging configuration, e.g. with the level from the loaded config."""
    _manager.configure(log_level=log_level, force=True, **kwargs)
