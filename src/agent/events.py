"""
Inbound webhook payload models.

Only the fields the booking flow reads are modelled; everything else in the
platform's payload is ignored.
"""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, ConfigDict


class EventType(str, Enum):
    """Webhook event types the booking flow reacts to."""

    MESSAGE = "message"
    POSTBACK = "postback"
    FOLLOW = "follow"
    UNFOLLOW = "unfollow"


class _PlatformModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class EventSource(_PlatformModel):
    type: str = "user"
    user_id: Optional[str] = Field(None, alias="userId")


class EventMessage(_PlatformModel):
    id: Optional[str] = None
    type: str
    text: Optional[str] = None

    @property
    def is_text(self) -> bool:
        return self.type == "text" and self.text is not None


class EventPostback(_PlatformModel):
    data: str = ""


class InboundEvent(_PlatformModel):
    """
    One event from the webhook delivery.

    Attributes:
        type: Raw event type; unknown types are kept so they can be logged
        reply_token: Single-use token for a free reply, absent on some events
        source: Who triggered the event
        message: Present on message events
        postback: Present on postback events
        timestamp: Platform timestamp in milliseconds
    """
    type: str
    reply_token: Optional[str] = Field(None, alias="replyToken")
    source: EventSource = Field(default_factory=EventSource)
    message: Optional[EventMessage] = None
    postback: Optional[EventPostback] = None
    timestamp: Optional[int] = None

    @property
    def event_type(self) -> Optional[EventType]:
        """Known event type, or None for types the flow ignores."""
        try:
            return EventType(self.type)
        except ValueError:
            return None

    @property
    def user_id(self) -> Optional[str]:
        return self.source.user_id


class WebhookPayload(_PlatformModel):
    """Body of one webhook delivery."""
    destination: Optional[str] = None
    events: List[InboundEvent] = Field(default_factory=list)
