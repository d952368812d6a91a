"""
Outbound message model.

An OutboundMessage says *what* to show the user. Turning it into a rich
menu or carousel is the messaging transport's job; every message also
carries a plain-text rendering so a bare transport can still deliver it.
"""
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field


class PromptType(str, Enum):
    """Kinds of message the booking flow sends."""

    SERVICE_MENU = "SERVICE_MENU"
    DATE_MENU = "DATE_MENU"
    STAFF_MENU = "STAFF_MENU"
    TIME_MENU = "TIME_MENU"
    NOTE_PROMPT = "NOTE_PROMPT"
    CONFIRMATION = "CONFIRMATION"
    CANCEL_CONFIRM = "CANCEL_CONFIRM"
    BOOKING_SUCCESS = "BOOKING_SUCCESS"
    MAIN_MENU = "MAIN_MENU"
    HELP = "HELP"
    HINT = "HINT"
    ERROR = "ERROR"
    WELCOME = "WELCOME"

    def __str__(self) -> str:
        return self.value


class OutboundMessage(BaseModel):
    """
    A message to deliver to one chat user.

    Attributes:
        prompt: Kind of message, used by the transport to pick a template
        text: Plain-text rendering
        payload: Data the template needs (selected service, date, ...)
    """
    prompt: PromptType
    text: str = Field(..., min_length=1)
    payload: Dict[str, Any] = Field(default_factory=dict)
