"""
Centralized logging configuration for the booking backend.

This module configures loguru for structured logging with different
levels and formats for development vs production.
"""
import sys
from pathlib import Path
from typing import Optional
from loguru import logger


def configure_logging(
    log_level: str = "INFO",
    log_to_file: bool = True,
    log_dir: str = "logs",
    rotation: str = "100 MB",
    retention: str = "30 days",
    format_type: str = "detailed"
) -> None:
    """
    Configure loguru logging for the application.

    Args:
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_to_file: Whether to log to files in addition to console
        log_dir: Directory for log files
        rotation: When to rotate log files (e.g., "100 MB", "1 day")
        retention: How long to keep old log files
        format_type: "simple" for level and message only, anything else for the
            detailed format with tenant and user ids
    """
    logger.remove()

    if format_type == "simple":
        format_string = "<level>{level: <8}</level> | <level>{message}</level>"
    else:
        format_string = (
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
            "tenant={extra[tenant_id]} user={extra[user_id]} | "
            "<level>{message}</level>"
        )

    # Records logged outside an event still need the keys the format expects
    logger.configure(extra={"tenant_id": "-", "user_id": "-"})

    logger.add(
        sys.stderr,
        format=format_string,
        level=log_level,
        colorize=True,
        backtrace=True,
        diagnose=False
    )

    if log_to_file:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        logger.add(
            log_path / "booking_backend_{time:YYYY-MM-DD}.log",
            format=format_string,
            level=log_level,
            rotation=rotation,
            retention=retention,
            compression="zip",
            backtrace=True,
            diagnose=False
        )

        logger.add(
            log_path / "errors_{time:YYYY-MM-DD}.log",
            format=format_string,
            level="ERROR",
            rotation=rotation,
            retention=retention,
            compression="zip",
            backtrace=True,
            diagnose=False
        )

        # Booking audit trail
        logger.add(
            log_path / "bookings_{time:YYYY-MM-DD}.log",
            format=format_string,
            level="INFO",
            rotation="1 day",
            retention="1 year",
            compression="zip",
            filter=lambda record: "BOOKING" in record["extra"].get("category", "")
        )

        # Conversation steps, kept short; they only matter while debugging a flow
        logger.add(
            log_path / "conversations_{time:YYYY-MM-DD}.log",
            format=format_string,
            level="INFO",
            rotation="1 day",
            retention="7 days",
            compression="zip",
            filter=lambda record: record["extra"].get("category") == "CONVERSATION"
        )

    logger.info(
        f"Logging configured: level={log_level}, "
        f"file_logging={log_to_file}, "
        f"format={format_type}"
    )


def log_booking_event(
    event_type: str,
    tenant_id: Optional[str] = None,
    user_id: Optional[str] = None,
    booking_id: Optional[str] = None,
    details: Optional[dict] = None
) -> None:
    """
    Log a booking-related event for audit trail.

    Args:
        event_type: Type of event (e.g., "CREATED", "CONFLICT", "FAILED")
        tenant_id: Tenant the booking belongs to
        user_id: Chat platform user identifier
        booking_id: Booking id, when one exists
        details: Additional event details
    """
    details = details or {}

    logger.bind(category="BOOKING").info(
        f"BOOKING {event_type} | "
        f"tenant={tenant_id} | "
        f"user={user_id} | "
        f"booking_id={booking_id} | "
        f"details={details}"
    )


def log_conversation_event(
    event_type: str,
    tenant_id: Optional[str] = None,
    user_id: Optional[str] = None,
    state: Optional[str] = None,
    details: Optional[dict] = None
) -> None:
    """
    Log a conversation-related event.

    Args:
        event_type: Type of event (e.g., "TRANSITION", "IGNORED", "RESET")
        tenant_id: Tenant identifier
        user_id: Chat platform user identifier
        state: Conversation state after the event
        details: Additional event details
    """
    details = details or {}

    logger.bind(category="CONVERSATION").info(
        f"CONVERSATION {event_type} | "
        f"tenant={tenant_id} | "
        f"user={user_id} | "
        f"state={state} | "
        f"details={details}"
    )


class LogContext:
    """
    Context manager for adding context to all logs within a block.

    Example:
        with LogContext(tenant_id="t-1", user_id="U123"):
            logger.info("Processing event")
            # All logs within this block include tenant_id and user_id
    """

    def __init__(self, **context):
        self.context = context
        self.token = None

    def __enter__(self):
        self.token = logger.contextualize(**self.context)
        self.token.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.token:
            self.token.__exit__(exc_type, exc_val, exc_tb)


def init_logging(environment: str = "development", log_level: Optional[str] = None) -> None:
    """
    Initialize logging with environment-specific settings.

    Args:
        environment: Environment name ("development", "production", "test")
        log_level: Optional override of the environment's default level
    """
    if environment == "production":
        configure_logging(
            log_level=log_level or "INFO",
            log_to_file=True,
            format_type="detailed",
            rotation="100 MB",
            retention="90 days"
        )
    elif environment == "test":
        configure_logging(
            log_level=log_level or "WARNING",
            log_to_file=False,
            format_type="simple"
        )
    else:
        configure_logging(
            log_level=log_level or "DEBUG",
            log_to_file=True,
            format_type="detailed",
            rotation="50 MB",
            retention="7 days"
        )

    logger.info(f"Logging initialized for {environment} environment")
