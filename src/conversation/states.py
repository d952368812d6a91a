"""
Conversation state definitions for the chat booking flow.

This module defines all possible states in the booking wizard.
"""

from enum import Enum


class ConversationState(str, Enum):
    """
    Enum representing all possible states in a booking conversation.

    The conversation flows linearly through these states:
    idle -> selecting_service -> selecting_date -> selecting_staff
    -> selecting_time -> inputting_note -> confirming_booking -> idle

    The date is fixed before the staff member so that only staff working
    that day need to be offered. Users can step back one state at a time.
    """

    IDLE = "IDLE"
    """No booking in progress."""

    SELECTING_SERVICE = "SELECTING_SERVICE"
    """Waiting for the user to pick a service."""

    SELECTING_DATE = "SELECTING_DATE"
    """Waiting for the user to pick a date."""

    SELECTING_STAFF = "SELECTING_STAFF"
    """Waiting for the user to pick a staff member, or leave it to the shop."""

    SELECTING_TIME = "SELECTING_TIME"
    """Waiting for the user to pick a start time."""

    INPUTTING_NOTE = "INPUTTING_NOTE"
    """Waiting for an optional free-text note."""

    CONFIRMING_BOOKING = "CONFIRMING_BOOKING"
    """Showing the summary and waiting for confirmation."""

    def __str__(self) -> str:
        """Return the string value of the state."""
        return self.value

    @classmethod
    def get_ordered_states(cls) -> list['ConversationState']:
        """
        Get the linear progression order of states.

        Returns:
            List of ConversationState in wizard order, IDLE first
        """
        return [
            cls.IDLE,
            cls.SELECTING_SERVICE,
            cls.SELECTING_DATE,
            cls.SELECTING_STAFF,
            cls.SELECTING_TIME,
            cls.INPUTTING_NOTE,
            cls.CONFIRMING_BOOKING,
        ]

    def step_index(self) -> int:
        """Position of this state in the wizard, IDLE being 0."""
        return self.get_ordered_states().index(self)

    def get_next_state(self) -> 'ConversationState':
        """
        Get the next state in linear progression.

        Returns:
            Next ConversationState in the flow. CONFIRMING_BOOKING wraps to IDLE.
        """
        ordered = self.get_ordered_states()
        return ordered[(ordered.index(self) + 1) % len(ordered)]
