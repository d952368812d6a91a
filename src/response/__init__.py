"""
Response Generation Module for the chat booking flow.

Main Components:
    - messages: OutboundMessage and PromptType
    - generator: Chooses the message for each conversation outcome
"""

from .messages import OutboundMessage, PromptType
from .generator import (
    prompt_for_state,
    respond_to_transition,
    booking_success_message,
    error_message,
    hint_message,
    help_message,
    welcome_message,
    main_menu,
    cancel_confirmation,
)

__all__ = [
    "OutboundMessage",
    "PromptType",
    "prompt_for_state",
    "respond_to_transition",
    "booking_success_message",
    "error_message",
    "hint_message",
    "help_message",
    "welcome_message",
    "main_menu",
    "cancel_confirmation",
]
