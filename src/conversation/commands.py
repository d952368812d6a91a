"""
Conversation commands and callback data parsing.

Structured callbacks arrive as ASCII ``key=value`` pairs joined by ``&``,
for example ``action=select_date&date=2025-03-14``. The reserved ``action``
key selects a CommandType from a fixed table; the remaining keys are
validated into a per-command parameter model.
"""

from dataclasses import dataclass
from datetime import date, time
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional, Type, Union

from pydantic import BaseModel, Field, ConfigDict, ValidationError, model_validator

from error_handling.exceptions import InvalidCommandError


class CommandType(str, Enum):
    """Closed set of things a user can ask the booking flow to do."""

    START_BOOKING = "start_booking"
    SELECT_SERVICE = "select_service"
    SELECT_DATE = "select_date"
    SELECT_STAFF = "select_staff"
    SELECT_TIME = "select_time"
    SUBMIT_NOTE = "submit_note"
    CONFIRM_BOOKING = "confirm_booking"
    CANCEL = "cancel"
    GO_BACK = "go_back"
    RESUME = "resume"
    HELP = "help"
    MAIN_MENU = "main_menu"
    ASK_CANCEL = "ask_cancel"
    UNRECOGNIZED_INPUT = "unrecognized_input"

    def __str__(self) -> str:
        return self.value


class _CallbackParams(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", str_strip_whitespace=True)

    @model_validator(mode="before")
    @classmethod
    def drop_blank_values(cls, data):
        """Blank callback values mean "not given"."""
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if not (isinstance(v, str) and not v.strip())}
        return data


class SelectServiceParams(_CallbackParams):
    service_id: str = Field(..., alias="serviceId", min_length=1)
    service_name: Optional[str] = Field(None, alias="serviceName")
    duration: int = Field(..., gt=0, description="Minutes")
    price: Optional[Decimal] = Field(None, ge=0)


class SelectDateParams(_CallbackParams):
    date: date


class SelectStaffParams(_CallbackParams):
    # Empty or missing staffId means "any available staff"
    staff_id: Optional[str] = Field(None, alias="staffId")
    staff_name: Optional[str] = Field(None, alias="staffName")


class SelectTimeParams(_CallbackParams):
    time: time


class SubmitNoteParams(_CallbackParams):
    note: Optional[str] = None


CommandParams = Union[
    SelectServiceParams,
    SelectDateParams,
    SelectStaffParams,
    SelectTimeParams,
    SubmitNoteParams,
]

# Parameter model required by each command, if any
PARAMS_MODELS: Dict[CommandType, Type[_CallbackParams]] = {
    CommandType.SELECT_SERVICE: SelectServiceParams,
    CommandType.SELECT_DATE: SelectDateParams,
    CommandType.SELECT_STAFF: SelectStaffParams,
    CommandType.SELECT_TIME: SelectTimeParams,
    CommandType.SUBMIT_NOTE: SubmitNoteParams,
}

# Callback action string -> command. Several legacy actions share a command.
ACTION_TABLE: Dict[str, CommandType] = {
    "start_booking": CommandType.START_BOOKING,
    "select_service": CommandType.SELECT_SERVICE,
    "select_date": CommandType.SELECT_DATE,
    "select_staff": CommandType.SELECT_STAFF,
    "select_time": CommandType.SELECT_TIME,
    "skip_note": CommandType.SUBMIT_NOTE,
    "submit_note": CommandType.SUBMIT_NOTE,
    "confirm_booking": CommandType.CONFIRM_BOOKING,
    "cancel_flow": CommandType.ASK_CANCEL,
    "cancel_booking": CommandType.CANCEL,
    "confirm_cancel_flow": CommandType.CANCEL,
    "cancel": CommandType.CANCEL,
    "go_back": CommandType.GO_BACK,
    "resume_booking": CommandType.RESUME,
    "help": CommandType.HELP,
    "main_menu": CommandType.MAIN_MENU,
}


@dataclass(frozen=True)
class Command:
    """
    A decoded user intent.

    Attributes:
        type: What the user asked for
        params: Validated parameters for commands that carry them
        action: Raw callback action or "text" for free text, for logging
    """
    type: CommandType
    params: Optional[CommandParams] = None
    action: Optional[str] = None

    @classmethod
    def simple(cls, command_type: CommandType, action: Optional[str] = None) -> "Command":
        return cls(type=command_type, action=action or command_type.value)

    @classmethod
    def note(cls, text: Optional[str], action: str = "text") -> "Command":
        return cls(
            type=CommandType.SUBMIT_NOTE,
            params=SubmitNoteParams(note=text),
            action=action,
        )


def parse_callback_data(data: str) -> Dict[str, str]:
    """
    Split callback data into a key/value dict.

    Pairs are separated by ``&``; each pair is split on its first ``=`` so
    values may themselves contain ``=``. Pairs without ``=`` are dropped.

    Args:
        data: Raw callback data string

    Returns:
        Dict of parameters, including ``action`` when present

    Examples:
        >>> parse_callback_data("action=select_date&date=2025-03-14")
        {'action': 'select_date', 'date': '2025-03-14'}
    """
    params: Dict[str, str] = {}
    if not data:
        return params
    for pair in data.split("&"):
        key, sep, value = pair.partition("=")
        if not sep or not key:
            continue
        params[key] = value
    return params


def build_command(action: str, params: Dict[str, str]) -> Optional[Command]:
    """
    Turn a callback action and its raw parameters into a Command.

    Args:
        action: Value of the reserved ``action`` key
        params: Remaining raw parameters

    Returns:
        Command, or None if the action is not in the dispatch table

    Raises:
        InvalidCommandError: If the parameters fail validation
    """
    command_type = ACTION_TABLE.get(action)
    if command_type is None:
        return None

    model = PARAMS_MODELS.get(command_type)
    if model is None:
        return Command.simple(command_type, action=action)

    # skip_note never carries a note even if the button did
    if action == "skip_note":
        return Command.note(None, action=action)

    try:
        parsed = model.model_validate(params)
    except ValidationError as e:
        raise InvalidCommandError(
            f"Invalid parameters for action '{action}': {e.errors(include_url=False)}",
            action=action,
            params=params,
        ) from e

    return Command(type=command_type, params=parsed, action=action)


def decode_postback(data: str) -> Optional[Command]:
    """
    Parse raw callback data into a Command.

    Args:
        data: Raw callback data string

    Returns:
        Command, or None when the action is missing or unknown

    Raises:
        InvalidCommandError: If a known action carries malformed parameters
    """
    params = parse_callback_data(data)
    action = params.pop("action", "")
    return build_command(action, params)
