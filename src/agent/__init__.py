"""
Agent package - Webhook event handling for the chat booking flow.
"""
from .events import EventType, InboundEvent, WebhookPayload
from .keywords import match_keyword
from .dispatcher import EventDispatcher

__all__ = [
    "EventType",
    "InboundEvent",
    "WebhookPayload",
    "match_keyword",
    "EventDispatcher",
]
