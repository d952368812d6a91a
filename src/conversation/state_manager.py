"""
Conversation state machine for the chat booking flow.

This module provides the ConversationStateMachine class that decides:
- Whether a command is valid in the current state
- Which state comes next
- Which selections are invalidated by going forward or back

Transitions are pure: the machine never touches the session store, the
database or the messaging transport. It receives a context, returns a new
one, and leaves persistence and replies to the caller.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

from loguru import logger

from .states import ConversationState
from .context import ConversationContext
from .commands import (
    Command,
    CommandType,
    SelectServiceParams,
    SelectDateParams,
    SelectStaffParams,
    SelectTimeParams,
    SubmitNoteParams,
)


class TransitionOutcome(str, Enum):
    """What a transition did, so the caller knows what to persist and reply."""

    STARTED = "started"
    ADVANCED = "advanced"
    WENT_BACK = "went_back"
    CANCELLED = "cancelled"
    NEEDS_BOOKING = "needs_booking"
    INCOMPLETE = "incomplete"
    BOOKED = "booked"
    CONFLICT = "conflict"
    FAILED = "failed"
    STALE = "stale"
    REDISPLAY = "redisplay"
    IDLE_HINT = "idle_hint"
    TEXT_HINT = "text_hint"
    HELP = "help"
    MENU = "menu"
    CANCEL_PROMPT = "cancel_prompt"


@dataclass
class TransitionResult:
    """
    Result of applying one command to a context.

    Attributes:
        context: Context after the command (a copy, the input is never mutated)
        outcome: What happened
        previous_state: State before the command
        mutated: Whether the context must be written back
        cleared_fields: Selections invalidated by this transition
    """
    context: ConversationContext
    outcome: TransitionOutcome
    previous_state: ConversationState
    mutated: bool = False
    cleared_fields: List[str] = field(default_factory=list)

    @property
    def state(self) -> ConversationState:
        return self.context.state

    @property
    def ends_session(self) -> bool:
        """An IDLE context carries nothing worth keeping, so its key can be deleted."""
        return self.mutated and self.context.state == ConversationState.IDLE


# Command -> the only state in which it is accepted, for step commands
_STEP_COMMANDS: Dict[CommandType, ConversationState] = {
    CommandType.SELECT_SERVICE: ConversationState.SELECTING_SERVICE,
    CommandType.SELECT_DATE: ConversationState.SELECTING_DATE,
    CommandType.SELECT_STAFF: ConversationState.SELECTING_STAFF,
    CommandType.SELECT_TIME: ConversationState.SELECTING_TIME,
    CommandType.SUBMIT_NOTE: ConversationState.INPUTTING_NOTE,
    CommandType.CONFIRM_BOOKING: ConversationState.CONFIRMING_BOOKING,
}


class ConversationStateMachine:
    """
    Applies commands to conversation contexts.

    Rules:
    - start_booking, cancel, help and main_menu are accepted in every state
    - cancel_flow only asks for confirmation; confirm_cancel_flow cancels
    - step commands are accepted only in their own state; anywhere else they
      are stale and change nothing
    - selecting a step clears the selections of that step and all later ones
    - go_back restores the previous state and clears the selections of the
      restored step and all later ones
    - while IDLE, anything but a global command is answered with a menu hint
    """

    def __init__(self, note_max_length: int = 500, reset_on_conflict: bool = False):
        """
        Initialize the state machine.

        Args:
            note_max_length: Customer notes longer than this are truncated
            reset_on_conflict: Reset to IDLE on a slot conflict instead of
                staying at confirmation so the user can go back

        Raises:
            RuntimeError: If a CommandType has no transition handler
        """
        self.note_max_length = note_max_length
        self.reset_on_conflict = reset_on_conflict

        self._handlers: Dict[CommandType, Callable[[ConversationContext, Command], TransitionResult]] = {
            CommandType.START_BOOKING: self._start_booking,
            CommandType.SELECT_SERVICE: self._select_service,
            CommandType.SELECT_DATE: self._select_date,
            CommandType.SELECT_STAFF: self._select_staff,
            CommandType.SELECT_TIME: self._select_time,
            CommandType.SUBMIT_NOTE: self._submit_note,
            CommandType.CONFIRM_BOOKING: self._confirm_booking,
            CommandType.CANCEL: self._cancel,
            CommandType.GO_BACK: self._go_back,
            CommandType.RESUME: self._resume,
            CommandType.HELP: self._help,
            CommandType.MAIN_MENU: self._main_menu,
            CommandType.ASK_CANCEL: self._ask_cancel,
            CommandType.UNRECOGNIZED_INPUT: self._unrecognized_input,
        }
        missing = set(CommandType) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No transition handler for commands: {sorted(missing)}")

    def transition(self, context: ConversationContext, command: Command) -> TransitionResult:
        """
        Apply a command to a context.

        Args:
            context: Current context, left untouched
            command: Decoded command

        Returns:
            TransitionResult holding the new context and what happened
        """
        working = context.model_copy(deep=True)
        expected = _STEP_COMMANDS.get(command.type)

        if expected is not None and working.state != expected:
            result = self._not_accepted(working)
        else:
            result = self._handlers[command.type](working, command)

        if result.mutated:
            result.context.touch()

        logger.debug(
            f"Transition {command.type} ({command.action}): "
            f"{result.previous_state} -> {result.state} [{result.outcome}]"
            + (f" cleared={result.cleared_fields}" if result.cleared_fields else "")
        )
        return result

    def complete_booking(self, context: ConversationContext) -> TransitionResult:
        """
        Finish the conversation after a booking was created.

        Args:
            context: Context at CONFIRMING_BOOKING

        Returns:
            TransitionResult with a reset context
        """
        working = context.model_copy(deep=True)
        previous = working.state
        cleared = working.clear_selections()
        working.history = []
        working.state = ConversationState.IDLE
        working.touch()
        return TransitionResult(working, TransitionOutcome.BOOKED, previous, True, cleared)

    def fail_booking(self, context: ConversationContext, conflict: bool) -> TransitionResult:
        """
        Settle the conversation after booking creation failed.

        A slot conflict keeps the selections at confirmation unless
        reset_on_conflict is set; any other failure resets to IDLE.

        Args:
            context: Context at CONFIRMING_BOOKING
            conflict: Whether the failure was a slot conflict

        Returns:
            TransitionResult describing the settled context
        """
        if conflict and not self.reset_on_conflict:
            return TransitionResult(
                context.model_copy(deep=True), TransitionOutcome.CONFLICT, context.state
            )

        working = context.model_copy(deep=True)
        previous = working.state
        cleared = working.clear_selections()
        working.reset()
        outcome = TransitionOutcome.CONFLICT if conflict else TransitionOutcome.FAILED
        return TransitionResult(working, outcome, previous, True, cleared)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _start_booking(self, ctx: ConversationContext, command: Command) -> TransitionResult:
        previous = ctx.state
        cleared = ctx.clear_selections()
        ctx.history = []
        ctx.state = ConversationState.SELECTING_SERVICE
        return TransitionResult(ctx, TransitionOutcome.STARTED, previous, True, cleared)

    def _select_service(self, ctx: ConversationContext, command: Command) -> TransitionResult:
        params: SelectServiceParams = command.params
        cleared = self._enter_step(ctx, ConversationState.SELECTING_SERVICE)
        ctx.service_id = params.service_id
        ctx.service_name = params.service_name
        ctx.service_duration = params.duration
        ctx.service_price = params.price
        return self._advance(ctx, cleared)

    def _select_date(self, ctx: ConversationContext, command: Command) -> TransitionResult:
        params: SelectDateParams = command.params
        cleared = self._enter_step(ctx, ConversationState.SELECTING_DATE)
        ctx.booking_date = params.date
        return self._advance(ctx, cleared)

    def _select_staff(self, ctx: ConversationContext, command: Command) -> TransitionResult:
        params: SelectStaffParams = command.params
        cleared = self._enter_step(ctx, ConversationState.SELECTING_STAFF)
        ctx.staff_id = params.staff_id
        ctx.staff_name = params.staff_name if params.staff_id else None
        ctx.staff_selected = True
        return self._advance(ctx, cleared)

    def _select_time(self, ctx: ConversationContext, command: Command) -> TransitionResult:
        params: SelectTimeParams = command.params
        cleared = self._enter_step(ctx, ConversationState.SELECTING_TIME)
        ctx.start_time = params.time
        return self._advance(ctx, cleared)

    def _submit_note(self, ctx: ConversationContext, command: Command) -> TransitionResult:
        params: Optional[SubmitNoteParams] = command.params
        note = params.note if params else None
        if note:
            note = note.strip()[:self.note_max_length] or None
        ctx.customer_note = note
        return self._advance(ctx, [])

    def _confirm_booking(self, ctx: ConversationContext, command: Command) -> TransitionResult:
        if not ctx.is_complete():
            logger.warning(
                f"Confirmation with incomplete selections for tenant={ctx.tenant_id} "
                f"user={ctx.user_id}: missing {ctx.get_missing_required_fields()}"
            )
            previous = ctx.state
            cleared = ctx.clear_selections()
            ctx.reset()
            return TransitionResult(ctx, TransitionOutcome.INCOMPLETE, previous, True, cleared)
        return TransitionResult(ctx, TransitionOutcome.NEEDS_BOOKING, ctx.state)

    def _cancel(self, ctx: ConversationContext, command: Command) -> TransitionResult:
        previous = ctx.state
        cleared = ctx.clear_selections()
        ctx.reset()
        return TransitionResult(ctx, TransitionOutcome.CANCELLED, previous, True, cleared)

    def _go_back(self, ctx: ConversationContext, command: Command) -> TransitionResult:
        previous = ctx.state
        if previous == ConversationState.IDLE:
            return TransitionResult(ctx, TransitionOutcome.IDLE_HINT, previous)

        if not ctx.history:
            cleared = ctx.clear_selections()
            ctx.reset()
            return TransitionResult(ctx, TransitionOutcome.WENT_BACK, previous, True, cleared)

        restored = ctx.history.pop()
        cleared = ctx.clear_from_step(restored)
        ctx.state = restored
        return TransitionResult(ctx, TransitionOutcome.WENT_BACK, previous, True, cleared)

    def _resume(self, ctx: ConversationContext, command: Command) -> TransitionResult:
        if ctx.state == ConversationState.IDLE:
            return TransitionResult(ctx, TransitionOutcome.IDLE_HINT, ctx.state)
        return TransitionResult(ctx, TransitionOutcome.REDISPLAY, ctx.state)

    def _help(self, ctx: ConversationContext, command: Command) -> TransitionResult:
        return TransitionResult(ctx, TransitionOutcome.HELP, ctx.state)

    def _main_menu(self, ctx: ConversationContext, command: Command) -> TransitionResult:
        # The flow in progress is kept; resume_booking picks it up again
        return TransitionResult(ctx, TransitionOutcome.MENU, ctx.state)

    def _ask_cancel(self, ctx: ConversationContext, command: Command) -> TransitionResult:
        if ctx.state == ConversationState.IDLE:
            return TransitionResult(ctx, TransitionOutcome.IDLE_HINT, ctx.state)
        return TransitionResult(ctx, TransitionOutcome.CANCEL_PROMPT, ctx.state)

    def _unrecognized_input(self, ctx: ConversationContext, command: Command) -> TransitionResult:
        if ctx.state == ConversationState.IDLE:
            return TransitionResult(ctx, TransitionOutcome.IDLE_HINT, ctx.state)
        return TransitionResult(ctx, TransitionOutcome.TEXT_HINT, ctx.state)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _not_accepted(self, ctx: ConversationContext) -> TransitionResult:
        if ctx.state == ConversationState.IDLE:
            return TransitionResult(ctx, TransitionOutcome.IDLE_HINT, ctx.state)
        return TransitionResult(ctx, TransitionOutcome.STALE, ctx.state)

    @staticmethod
    def _enter_step(ctx: ConversationContext, step: ConversationState) -> List[str]:
        return ctx.clear_from_step(step)

    @staticmethod
    def _advance(ctx: ConversationContext, cleared: List[str]) -> TransitionResult:
        previous = ctx.state
        ctx.history.append(previous)
        ctx.state = previous.get_next_state()
        return TransitionResult(ctx, TransitionOutcome.ADVANCED, previous, True, cleared)
