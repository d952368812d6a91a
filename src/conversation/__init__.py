"""
Conversation package for managing booking conversation state and context.

This package provides:
- ConversationState: Enum for conversation states
- ConversationContext: Pydantic model for one user's booking session
- CommandType / Command: Decoded user intents and callback parsing
- ConversationStateMachine: Pure transition logic
- SessionStore: Redis persistence of contexts
"""

from .states import ConversationState
from .context import ConversationContext, STEP_FIELDS
from .commands import Command, CommandType, parse_callback_data, decode_postback
from .state_manager import ConversationStateMachine, TransitionOutcome, TransitionResult
from .session_store import SessionStore

__all__ = [
    "ConversationState",
    "ConversationContext",
    "STEP_FIELDS",
    "Command",
    "CommandType",
    "parse_callback_data",
    "decode_postback",
    "ConversationStateMachine",
    "TransitionOutcome",
    "TransitionResult",
    "SessionStore",
]
