"""Logging setup for the autopilot process.

All components log under the ``autopilot`` logger. Records pass through a
redacting filter before they reach a handler, because agent output, git
errors and tracker responses can all carry credentials.
"""

from __future__ import annotations

import logging
import os
import re
from logging.handlers import RotatingFileHandler
from pathlib import Path

ROOT_LOGGER = "autopilot"

DEFAULT_LOG_DIR = "logs"
DEFAULT_LOG_FILE = "autopilot.log"
DEFAULT_MAX_BYTES = 10 * 1024 * 1024  # 10MB
DEFAULT_BACKUP_COUNT = 5
DEFAULT_LOG_LEVEL = "INFO"

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# httpx logs every request line at INFO, query strings included
NOISY_LOGGERS = ("httpx", "httpcore")

_SENSITIVE_PATTERNS = [
    (re.compile(r"ghp_[a-zA-Z0-9]{36}"), "[GITHUB_TOKEN]"),
    (re.compile(r"gho_[a-zA-Z0-9]{36}"), "[GITHUB_TOKEN]"),
    (re.compile(r"github_pat_[a-zA-Z0-9_]{82}"), "[GITHUB_TOKEN]"),
    (re.compile(r"lin_api_[a-zA-Z0-9]{40}"), "[LINEAR_API_KEY]"),
    (re.compile(r"sk-ant-[a-zA-Z0-9_-]{20,}"), "[ANTHROPIC_API_KEY]"),
    (re.compile(r"Bearer [a-zA-Z0-9._-]+"), "Bearer [REDACTED]"),
    (re.compile(r"token=[a-zA-Z0-9._-]+"), "token=[REDACTED]"),
]


def sanitize_for_log(text: str) -> str:
    """Replace credentials in text with placeholders like ``[GITHUB_TOKEN]``."""
    for pattern, replacement in _SENSITIVE_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def truncate_output(output: str, max_length: int = 5000) -> str:
    """Cut output to max_length characters, noting how much was dropped."""
    if len(output) <= max_length:
        return output
    return output[:max_length] + f"\n... [truncated, {len(output) - max_length} more chars]"


class RedactingFilter(logging.Filter):
    """Rewrites each record's message with credentials redacted."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = sanitize_for_log(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def _resolve_level(level: str | None) -> int:
    if level is None:
        level = os.environ.get("AUTOPILOT_LOG_LEVEL", DEFAULT_LOG_LEVEL)
    return getattr(logging, level.upper(), logging.INFO)


def setup_logging(
    log_dir: str | Path | None = None,
    log_file: str = DEFAULT_LOG_FILE,
    max_bytes: int = DEFAULT_MAX_BYTES,
    backup_count: int = DEFAULT_BACKUP_COUNT,
    level: str | None = None,
    console: bool = True,
) -> logging.Logger:
    """Configure the autopilot logger with a rotating log file.

    Safe to call more than once; earlier handlers are closed and replaced.

    Args:
        log_dir: Directory for log files. Falls back to $AUTOPILOT_LOG_DIR, then 'logs'.
        log_file: Log file name.
        max_bytes: Size at which the file is rotated.
        backup_count: Number of rotated files to keep.
        level: DEBUG, INFO, WARNING or ERROR. Falls back to $AUTOPILOT_LOG_LEVEL, then INFO.
        console: Whether to also log to stderr.

    Returns:
        The configured ``autopilot`` logger.
    """
    log_dir = Path(log_dir or os.environ.get("AUTOPILOT_LOG_DIR", DEFAULT_LOG_DIR))
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / log_file
    log_level = _resolve_level(level)

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(log_level)
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    handlers: list[logging.Handler] = [
        RotatingFileHandler(
            log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
    ]
    if console:
        handlers.append(logging.StreamHandler())

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    redactor = RedactingFilter()
    for handler in handlers:
        handler.setLevel(log_level)
        handler.setFormatter(formatter)
        handler.addFilter(redactor)
        logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    logger.info(
        "Autopilot logging initialized (level=%s, file=%s)",
        logging.getLevelName(log_level),
        log_path,
    )
    return logger
