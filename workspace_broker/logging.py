"""Logging configuration using loguru.

Provides:
- Structured JSON logging for production (Cloud Logging compatible)
- Human-readable colored logging for development
- Audit logging for the account authorization flow

Secrets, setup tokens and OAuth tokens are never passed to these helpers.
"""

import json
import logging
import sys
import traceback
from typing import Any

from loguru import logger

SEVERITY = {"TRACE": "DEBUG", "SUCCESS": "INFO"}

# Never written to the JSON sink even if a caller passes them by mistake
REDACTED_FIELDS = frozenset(
    {"refresh_token", "access_token", "client_secret", "setup_token", "secret", "code", "state"}
)


def _context_fields(extra: dict[str, Any]) -> dict[str, Any]:
    """Flatten loguru's ``extra`` into top-level fields, redacting credentials.

    Call sites pass context as ``extra={...}``, which loguru stores under
    ``record["extra"]["extra"]``; those keys are lifted beside ``bind()`` keys.
    """
    fields: dict[str, Any] = {}
    for key, value in extra.items():
        if key == "extra" and isinstance(value, dict):
            fields.update(_context_fields(value))
        elif not key.startswith("_"):
            fields[key] = "[redacted]" if key in REDACTED_FIELDS else value
    return fields


def _cloud_logging_serializer(record: dict[str, Any]) -> str:
    """Render a record as one Cloud Logging JSON line."""
    level = record["level"]
    entry: dict[str, Any] = {
        **_context_fields(record["extra"]),
        "severity": SEVERITY.get(level.name, level.name),
        "message": record["message"],
        "time": record["time"].isoformat(),
        "logger": record["name"],
    }

    if level.no >= logging.ERROR:
        entry["logging.googleapis.com/sourceLocation"] = {
            "file": record["file"].path,
            "line": str(record["line"]),
            "function": record["function"],
        }

    exc = record["exception"]
    if exc is not None and exc.type is not None:
        # Error Reporting groups entries by the stack_trace field
        entry["error_type"] = exc.type.__name__
        entry["stack_trace"] = "".join(
            traceback.format_exception(exc.type, exc.value, exc.traceback)
        )

    return json.dumps(entry, default=str)


def _json_sink(message: Any) -> None:
    sys.stdout.write(_cloud_logging_serializer(message.record) + "\n")
    sys.stdout.flush()


def configure_logging(*, is_production: bool, log_level: str = "INFO") -> None:
    """Configure loguru for the application.

    Args:
        is_production: If True, output JSON for Cloud Logging. If False, use
            human-readable colored output for development.
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    logger.remove()

    if is_production:
        logger.add(
            _json_sink,
            level=log_level,
            format="{message}",  # Format is handled by the sink
            backtrace=False,
            diagnose=False,  # Don't include variable values in production
        )
    else:
        # stderr keeps stdout free for tool output
        logger.add(
            sys.stderr,
            level=log_level,
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
                "<level>{message}</level>"
                "{exception}"
            ),
            colorize=True,
            backtrace=True,
            diagnose=False,
        )

    _intercept_standard_logging(log_level)


class InterceptHandler(logging.Handler):
    """Route standard library log records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where the logged message originated
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _intercept_standard_logging(log_level: str) -> None:
    """Capture logs from uvicorn, googleapiclient and other libraries."""
    logging.basicConfig(handlers=[InterceptHandler()], level=log_level, force=True)

    for name in ["uvicorn", "uvicorn.error", "uvicorn.access", "googleapiclient"]:
        logging.getLogger(name).setLevel(log_level)
        logging.getLogger(name).handlers = [InterceptHandler()]

    # discovery cache warnings are noise with cache_discovery=False
    logging.getLogger("googleapiclient.discovery_cache").setLevel(logging.ERROR)


# =============================================================================
# Audit Logging
# =============================================================================


def audit_authorization_started(account: str) -> None:
    """Log when an account authorization flow is initiated."""
    logger.info(
        "Authorization flow started",
        extra={"audit_event": "authorization_started", "account": account},
    )


def audit_authorization_success(requested: str | None, confirmed: str) -> None:
    """Log a completed authorization."""
    logger.info(
        "Authorization successful",
        extra={
            "audit_event": "authorization_success",
            "requested_account": requested,
            "account": confirmed,
        },
    )


def audit_authorization_failed(account: str | None, reason: str) -> None:
    """Log a failed authorization attempt."""
    logger.warning(
        "Authorization failed",
        extra={"audit_event": "authorization_failed", "account": account, "reason": reason},
    )


def audit_account_rejected(account: str, reason: str) -> None:
    """Log an account refused by the allow-list."""
    logger.warning(
        "Account rejected",
        extra={"audit_event": "account_rejected", "account": account, "reason": reason},
    )


__all__ = [
    "logger",
    "configure_logging",
    "InterceptHandler",
    "audit_authorization_started",
    "audit_authorization_success",
    "audit_authorization_failed",
    "audit_account_rejected",
]
