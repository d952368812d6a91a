"""
Custom Exception Classes for the chat booking backend.

This module defines exception classes for different error categories:
- Business Logic Errors (booking validation, slot conflicts)
- Technical Errors (database, session store, outbound messaging)
- Conversation Errors (malformed or unusable commands)

Each exception includes context for error recovery and logging.
"""

from typing import Optional, Any, Dict
from datetime import date, time


class BookingSystemError(Exception):
    """Base exception for all booking system errors."""

    def __init__(
        self,
        message: str,
        user_message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        recoverable: bool = True
    ):
        """
        Initialize booking system error.

        Args:
            message: Technical error message for logging
            user_message: User-friendly message for the chat reply
            context: Additional context for error recovery
            recoverable: Whether the conversation can continue from here
        """
        super().__init__(message)
        self.message = message
        self.user_message = user_message or message
        self.context = context or {}
        self.recoverable = recoverable


# ============================================================================
# Business Logic Errors
# ============================================================================

class BookingValidationError(BookingSystemError):
    """
    Raised when a booking request fails validation.

    Examples:
    - Past dates or past times on the current day
    - Non-positive service duration
    - A booking that would cross midnight
    """

    def __init__(
        self,
        message: str,
        user_message: Optional[str] = None,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs
    ):
        context = {
            "field": field,
            "value": value,
            **kwargs
        }
        super().__init__(message, user_message, context, recoverable=True)
        self.field = field
        self.value = value


class SlotConflictError(BookingValidationError):
    """Raised when the candidate interval overlaps an active booking for the staff member."""

    def __init__(
        self,
        staff_id: str,
        booking_date: date,
        start_time: time,
        end_time: time,
        conflicting_ids: Optional[list] = None,
        **kwargs
    ):
        message = (
            f"Slot conflict for staff={staff_id} on {booking_date} "
            f"{start_time}-{end_time}: {conflicting_ids or []}"
        )
        super().__init__(
            message=message,
            user_message="Sorry, that time has just been taken. Please pick another time.",
            field="time",
            value=start_time,
            staff_id=staff_id,
            booking_date=booking_date,
            conflicting_ids=conflicting_ids or [],
            **kwargs
        )
        self.staff_id = staff_id
        self.booking_date = booking_date
        self.start_time = start_time
        self.end_time = end_time
        self.conflicting_ids = conflicting_ids or []


# ============================================================================
# Technical Errors - Persistence
# ============================================================================

class DatabaseError(BookingSystemError):
    """
    Raised when booking storage fails.

    Examples:
    - Connection failures
    - Query failures
    - Unexpected constraint violations
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None,
        **kwargs
    ):
        context = {
            "operation": operation,
            "original_error": str(original_error) if original_error else None,
            **kwargs
        }
        super().__init__(
            message,
            user_message="Sorry, we could not save your booking. Please try again later or contact the shop.",
            context=context,
            recoverable=False
        )
        self.operation = operation
        self.original_error = original_error


class WriteConflictError(DatabaseError):
    """Raised when a concurrent writer touched the same staff day; safe to retry."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, operation="reserve_slot", **kwargs)


class SystemBusyError(DatabaseError):
    """Raised when write conflicts persist after the retry budget is exhausted."""

    def __init__(self, attempts: int, original_error: Optional[Exception] = None):
        super().__init__(
            f"Booking write conflict persisted after {attempts} attempts",
            operation="reserve_slot",
            original_error=original_error,
            attempts=attempts
        )
        self.user_message = "The system is busy right now. Please try again in a moment."
        self.attempts = attempts


class SessionStoreError(BookingSystemError):
    """Raised when the conversation session store is unreachable or busy."""

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            message,
            user_message="We are a little busy right now. Please try again in a moment.",
            context={
                "key": key,
                "original_error": str(original_error) if original_error else None,
            },
            recoverable=True
        )
        self.key = key
        self.original_error = original_error


# ============================================================================
# Technical Errors - Outbound Messaging
# ============================================================================

class NotificationError(BookingSystemError):
    """Base exception for outbound message delivery failures."""

    def __init__(
        self,
        message: str,
        channel: str = "unknown",
        original_error: Optional[Exception] = None,
        **kwargs
    ):
        context = {
            "channel": channel,
            "original_error": str(original_error) if original_error else None,
            **kwargs
        }
        super().__init__(message, context=context, recoverable=True)
        self.channel = channel
        self.original_error = original_error


class PushQuotaExceededError(NotificationError):
    """Raised when a tenant has no push budget left for the current month."""

    def __init__(self, tenant_id: str, quota: int):
        super().__init__(
            f"Push quota of {quota} exhausted for tenant {tenant_id}",
            channel="push",
            tenant_id=tenant_id,
            quota=quota
        )
        self.tenant_id = tenant_id
        self.quota = quota


# ============================================================================
# Conversation Errors
# ============================================================================

class InvalidCommandError(BookingSystemError):
    """Raised when a callback carries parameters that cannot be parsed."""

    def __init__(
        self,
        message: str,
        action: Optional[str] = None,
        params: Optional[Dict[str, str]] = None
    ):
        super().__init__(
            message,
            user_message="Sorry, I couldn't read that selection. Please use the menu.",
            context={"action": action, "params": params or {}},
            recoverable=True
        )
        self.action = action
        self.params = params or {}
