"""
Tests for global keyword matching.
"""
import pytest

from agent.keywords import match_keyword
from conversation.commands import CommandType


@pytest.mark.parametrize("text,expected", [
    ("book", CommandType.START_BOOKING),
    ("  Booking  ", CommandType.START_BOOKING),
    ("我想預約", CommandType.START_BOOKING),
    ("cancel", CommandType.CANCEL),
    ("請幫我取消", CommandType.CANCEL),
    ("HELP", CommandType.HELP),
    ("說明", CommandType.HELP),
])
def test_matches(text, expected):
    assert match_keyword(text) == expected


@pytest.mark.parametrize("text", ["notebook", "cancellation fee?", "helpful staff", "", None])
def test_ascii_keywords_need_word_boundaries(text):
    assert match_keyword(text) is None


def test_booking_has_priority_over_cancel_and_help():
    assert match_keyword("help me cancel a booking") == CommandType.START_BOOKING


def test_cancel_has_priority_over_help():
    assert match_keyword("help cancel") == CommandType.CANCEL
