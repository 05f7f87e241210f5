"""
Logging Configuration Module.

Provides centralized logging setup with rotating file handler.
Includes automatic masking of the credentials that travel on every
Nimbus request (bearer tokens, AuthenticationToken and UserID headers).
"""

import logging
import re
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union


# --- Constants ---
LOG_FILENAME = "nimbus_reports.log"
MAX_BYTES = 10 * 1024 * 1024  # 10 MB
BACKUP_COUNT = 5
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# --- Sensitive Data Patterns ---
SENSITIVE_PATTERNS = [
    # Key-value pairs with sensitive keys (password=xxx, AuthenticationToken: xxx, etc.)
    (
        re.compile(
            r"(password|secret|token|auth_token|authenticationtoken|app_token|"
            r"api_key|apikey|authorization|cookie|credential)"
            r"(['\"]?\s*[:=]\s*)['\"]?(?!Bearer\b)([^'\"\s&,}]+)['\"]?",
            re.IGNORECASE
        ),
        r"\1\2***"
    ),
    # Bearer tokens in headers
    (
        re.compile(r"(Bearer\s+)([A-Za-z0-9\-_\.=+/]+)", re.IGNORECASE),
        r"\1***"
    ),
    # UserID header value
    (
        re.compile(r"(UserID['\"]?\s*[:=]\s*)['\"]?(\d+)['\"]?"),
        r"\1***"
    ),
    # URL query parameters with sensitive names
    (
        re.compile(
            r"([?&])(token|key|secret|password|apptoken|authtoken)=([^&\s]+)",
            re.IGNORECASE
        ),
        r"\1\2=***"
    ),
]


class SensitiveDataFormatter(logging.Formatter):
    """
    Log formatter that masks sensitive data.

    Automatically detects and masks:
    - Passwords, tokens, secrets
    - Authorization headers (Bearer tokens)
    - Nimbus UserID header values
    - Sensitive URL query parameters
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record, masking any sensitive data."""
        masked_msg = super().format(record)
        for pattern, replacement in SENSITIVE_PATTERNS:
            masked_msg = pattern.sub(replacement, masked_msg)
        return masked_msg


def get_log_path(log_dir: Union[str, Path]) -> Path:
    """
    Get the path for log files, creating the directory if needed.

    Args:
        log_dir: Directory that holds the rotating log files.
    """
    logs_dir = Path(log_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)
    return logs_dir / LOG_FILENAME


def setup_logging(
    log_level: Union[int, str, None] = None,
    log_dir: Optional[Union[str, Path]] = None,
) -> None:
    """
    Configure application logging with rotation.

    Values not supplied are taken from NimbusSettings.

    Args:
        log_level: The logging level (name or number).
        log_dir: Directory for the rotating log file.
    """
    if log_level is None or log_dir is None:
        from nimbus_reports.core.config import get_settings

        settings = get_settings()
        log_level = log_level if log_level is not None else settings.log_level
        log_dir = log_dir if log_dir is not None else settings.log_dir

    if isinstance(log_level, str):
        log_level = logging.getLevelName(log_level.upper())

    log_file_path = get_log_path(log_dir)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Clear existing handlers to avoid duplicates
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    formatter = SensitiveDataFormatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    # --- File Handler (Rotating) ---
    file_handler = RotatingFileHandler(
        filename=str(log_file_path),
        maxBytes=MAX_BYTES,
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    file_handler.setLevel(log_level)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    # --- Console Handler ---
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    root_logger.info(f"Logging initialized. Log file: {log_file_path}")

    # Suppress noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
