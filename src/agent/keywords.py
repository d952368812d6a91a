"""
Global keyword matching for free-text messages.

Keywords work in every conversation state and win over any state-specific
handling of the text, including note input. Groups are checked in priority
order: booking, then cancel, then help.
"""
import re
from typing import Dict, Optional, Tuple

from conversation.commands import CommandType


BOOKING_KEYWORDS: Tuple[str, ...] = ("預約", "訂位", "預訂", "book", "booking")
CANCEL_KEYWORDS: Tuple[str, ...] = ("取消", "cancel")
HELP_KEYWORDS: Tuple[str, ...] = ("幫助", "help", "說明")

KEYWORD_PRIORITY: Tuple[Tuple[CommandType, Tuple[str, ...]], ...] = (
    (CommandType.START_BOOKING, BOOKING_KEYWORDS),
    (CommandType.CANCEL, CANCEL_KEYWORDS),
    (CommandType.HELP, HELP_KEYWORDS),
)


def _compile(keyword: str) -> "re.Pattern[str]":
    # CJK text has no word boundaries, so those keywords match as substrings
    if keyword.isascii():
        return re.compile(rf"\b{re.escape(keyword)}\b")
    return re.compile(re.escape(keyword))


_PATTERNS: Dict[str, "re.Pattern[str]"] = {
    keyword: _compile(keyword)
    for _, keywords in KEYWORD_PRIORITY
    for keyword in keywords
}


def match_keyword(text: Optional[str]) -> Optional[CommandType]:
    """
    Find the global command a free-text message asks for.

    Args:
        text: Message text as typed by the user

    Returns:
        START_BOOKING, CANCEL or HELP, or None if no keyword matches

    Examples:
        >>> match_keyword("I want to Book a haircut")
        <CommandType.START_BOOKING: 'start_booking'>
        >>> match_keyword("notebook") is None
        True
    """
    if not text:
        return None
    normalized = text.strip().lower()
    for command_type, keywords in KEYWORD_PRIORITY:
        if any(_PATTERNS[keyword].search(normalized) for keyword in keywords):
            return command_type
    return None
