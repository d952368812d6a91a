"""
Error handling module for the chat booking backend.

Main Components:
    - exceptions: Custom exception classes for all error scenarios
    - error_messages: User-facing message generation for chat replies
    - logging_config: loguru configuration and audit helpers
"""

from .exceptions import (
    BookingSystemError,
    BookingValidationError,
    SlotConflictError,
    DatabaseError,
    WriteConflictError,
    SystemBusyError,
    SessionStoreError,
    NotificationError,
    PushQuotaExceededError,
    InvalidCommandError,
)

from .error_messages import (
    get_error_message,
    format_date_friendly,
    format_time_friendly,
)

from .logging_config import (
    configure_logging,
    init_logging,
    log_booking_event,
    log_conversation_event,
    LogContext,
)

__all__ = [
    # Exceptions - Base
    "BookingSystemError",

    # Exceptions - Business Logic
    "BookingValidationError",
    "SlotConflictError",

    # Exceptions - Persistence
    "DatabaseError",
    "WriteConflictError",
    "SystemBusyError",
    "SessionStoreError",

    # Exceptions - Messaging
    "NotificationError",
    "PushQuotaExceededError",

    # Exceptions - Conversation
    "InvalidCommandError",

    # Error Messages
    "get_error_message",
    "format_date_friendly",
    "format_time_friendly",

    # Logging
    "configure_logging",
    "init_logging",
    "log_booking_event",
    "log_conversation_event",
    "LogContext",
]
