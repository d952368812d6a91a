"""
User-facing message generation for the chat booking flow.

Every reply the bot sends is plain text at this layer; rich menu rendering
happens in the messaging transport. Errors keep a friendly tone and always
tell the user what to do next.
"""
from datetime import date, time
from typing import Optional

from .exceptions import (
    BookingSystemError,
    SlotConflictError,
    BookingValidationError,
    DatabaseError,
    SessionStoreError,
    InvalidCommandError,
)


MENU_HINT = "Please use the menu buttons to continue."
IDLE_HINT = "Please use the menu to choose what you would like to do."
HELP_TEXT = (
    "Type \"book\" to make an appointment, \"cancel\" to stop the current booking, "
    "or \"help\" to see this message again."
)
WELCOME_TEXT = "Welcome! Tap \"Book now\" or type \"book\" to make an appointment."
GENERIC_FAILURE = "Sorry, something went wrong. Please try again later or contact the shop."


def format_date_friendly(date_obj: date) -> str:
    """
    Format date for chat messages.

    Args:
        date_obj: Date to format

    Returns:
        Date string like "2025-03-14 (Fri)"
    """
    return f"{date_obj.isoformat()} ({date_obj.strftime('%a')})"


def format_time_friendly(time_obj: time) -> str:
    """Format time as HH:MM."""
    return time_obj.strftime("%H:%M")


def format_staff(staff_name: Optional[str]) -> str:
    return staff_name or "Any available staff"


def get_error_message(error: Exception) -> str:
    """
    Get the user-facing message for an exception.

    Args:
        error: Exception raised while handling an event

    Returns:
        Message suitable for a chat reply
    """
    if isinstance(error, SlotConflictError):
        return (
            f"Sorry, {format_time_friendly(error.start_time)} on "
            f"{format_date_friendly(error.booking_date)} is no longer available. "
            "Please go back and pick another time."
        )
    if isinstance(error, BookingValidationError):
        return f"Booking failed: {error.user_message}"
    if isinstance(error, (DatabaseError, SessionStoreError, InvalidCommandError)):
        return error.user_message
    if isinstance(error, BookingSystemError):
        return error.user_message
    return GENERIC_FAILURE
