"""Structured logging with credential and PII sanitization for Outlook Vault."""

import logging
import re
from typing import Any, Optional

from outlook_vault.lib.config.app_config import AppConfig


class PIISanitizer:
    """Sanitize personally identifiable information and secrets from log messages."""

    # Regex patterns for PII detection
    EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b")

    # hex(iv) ":" hex(ciphertext) as produced by the Cipher
    CIPHERTEXT_PATTERN = re.compile(r"\b[0-9a-fA-F]{32}:[0-9a-fA-F]{32,}\b")

    # password=..., "password": "..." and similar
    PASSWORD_PATTERN = re.compile(
        r"""(?i)(["']?password["']?\s*[:=]\s*)(["']?)[^\s,"'}]+(["']?)"""
    )

    @classmethod
    def sanitize_email(cls, text: str) -> str:
        """Replace email addresses with sanitized version."""
        return cls.EMAIL_PATTERN.sub(lambda m: f"***@{m.group(0).split('@')[1]}", text)

    @classmethod
    def sanitize_ciphertext(cls, text: str) -> str:
        """Replace credential ciphertext tokens with a placeholder."""
        return cls.CIPHERTEXT_PATTERN.sub("<ciphertext>", text)

    @classmethod
    def sanitize_password(cls, text: str) -> str:
        """Mask password values in key/value fragments."""
        return cls.PASSWORD_PATTERN.sub(r"\1\2***\3", text)

    @classmethod
    def sanitize(cls, text: str) -> str:
        """Apply all sanitization rules to text."""
        if not isinstance(text, str):
            text = str(text)

        text = cls.sanitize_password(text)
        text = cls.sanitize_ciphertext(text)
        text = cls.sanitize_email(text)

        return text


class SanitizingFormatter(logging.Formatter):
    """Custom formatter that sanitizes PII from log records."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with PII sanitization."""
        # Sanitize the message
        if isinstance(record.msg, str):
            record.msg = PIISanitizer.sanitize(record.msg)

        # Sanitize args if present
        if record.args:
            sanitized_args = tuple(
                PIISanitizer.sanitize(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )
            record.args = sanitized_args

        return super().format(record)


def setup_logger(
    name: str,
    level: Optional[str] = None,
    config: Optional[AppConfig] = None,
) -> logging.Logger:
    """
    Set up a logger with PII sanitization.

    Args:
        name: Logger name (usually __name__)
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        config: Application config supplying format and default level

    Returns:
        Configured logger instance
    """
    config = config or AppConfig.from_env()
    logger = logging.getLogger(name)

    # Set log level
    log_level = level or config.log_level
    logger.setLevel(getattr(logging, log_level.upper()))

    # Avoid adding handlers multiple times
    if logger.handlers:
        return logger

    # Create formatter with PII sanitization
    formatter = SanitizingFormatter(
        fmt=config.log_format,
        datefmt=config.log_date_format,
    )

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get or create a logger for the given module.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured logger instance
    """
    return setup_logger(name)


class StructuredLogger:
    """
    Structured logger for vault and gateway operations.

    Renders keyword fields as key=value pairs after the message, with
    automatic PII sanitization. Fields are per call; nothing is shared
    between requests. Callers pass hashed emails, never credentials.
    """

    def __init__(self, name: str):
        """
        Initialize structured logger.

        Args:
            name: Logger name
        """
        self.logger = get_logger(name)

    def _format_message(self, message: str, **kwargs: Any) -> str:
        """Format message with additional fields."""
        if kwargs:
            field_str = " | ".join(f"{k}={v}" for k, v in kwargs.items())
            return f"{message} | {field_str}"
        return message

    def debug(self, message: str, **kwargs: Any) -> None:
        """Log debug message with fields."""
        self.logger.debug(self._format_message(message, **kwargs))

    def info(self, message: str, **kwargs: Any) -> None:
        """Log info message with fields."""
        self.logger.info(self._format_message(message, **kwargs))

    def warning(self, message: str, **kwargs: Any) -> None:
        """Log warning message with fields."""
        self.logger.warning(self._format_message(message, **kwargs))

    def error(self, message: str, **kwargs: Any) -> None:
        """Log error message with fields."""
        self.logger.error(self._format_message(message, **kwargs))

    def log_remote_call(
        self,
        operation: str,
        user: str,
        status: str,
        duration_ms: Optional[float] = None,
    ) -> None:
        """Log one remote mailbox call with timing information."""
        self.info(
            "EWS call",
            operation=operation,
            user=user,
            status=status,
            duration_ms=f"{duration_ms:.2f}" if duration_ms is not None else None,
        )

    def log_calendar_change(self, action: str, user: str, calendar_count: int) -> None:
        """Log a calendar registry mutation."""
        self.info(
            "Calendar registry updated",
            action=action,
            user=user,
            calendars=calendar_count,
        )


# Module-level convenience function
def get_structured_logger(name: str) -> StructuredLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        StructuredLogger instance
    """
    return StructuredLogger(name)
