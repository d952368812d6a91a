"""
Unit tests for ConversationStateMachine.

Tests cover:
- Forward progression through the wizard
- Invalidation of later selections when an earlier step changes
- Going back and restoring the previous step
- Cancel and start from every state
- Main menu and the cancel confirmation prompt leaving the context alone
- Stale commands and IDLE hints
"""
import pytest
from datetime import date, time, timedelta
from decimal import Decimal

from conversation.commands import (
    Command,
    CommandType,
    SelectServiceParams,
    SelectDateParams,
    SelectStaffParams,
    SelectTimeParams,
)
from conversation.context import ConversationContext
from conversation.state_manager import ConversationStateMachine, TransitionOutcome
from conversation.states import ConversationState


BOOK_DATE = date.today() + timedelta(days=3)


def select_service(service_id="svc-cut", duration=30):
    return Command(
        type=CommandType.SELECT_SERVICE,
        params=SelectServiceParams(service_id=service_id, service_name="Haircut", duration=duration, price=Decimal("500")),
        action="select_service",
    )


def select_date(day=BOOK_DATE):
    return Command(type=CommandType.SELECT_DATE, params=SelectDateParams(date=day), action="select_date")


def select_staff(staff_id="staff-amy", staff_name="Amy"):
    return Command(
        type=CommandType.SELECT_STAFF,
        params=SelectStaffParams(staff_id=staff_id, staff_name=staff_name),
        action="select_staff",
    )


def select_time(at=time(10, 0)):
    return Command(type=CommandType.SELECT_TIME, params=SelectTimeParams(time=at), action="select_time")


def run(machine, context, *commands):
    for command in commands:
        context = machine.transition(context, command).context
    return context


@pytest.fixture
def machine():
    return ConversationStateMachine(note_max_length=20)


@pytest.fixture
def idle():
    return ConversationContext.create("tenant-001", "U1")


@pytest.fixture
def at_confirmation(machine, idle):
    return run(
        machine, idle,
        Command.simple(CommandType.START_BOOKING),
        select_service(),
        select_date(),
        select_staff(),
        select_time(),
        Command.note("Window seat"),
    )


class TestForwardFlow:
    """Test linear progression through every step."""

    def test_start_booking_enters_service_selection(self, machine, idle):
        result = machine.transition(idle, Command.simple(CommandType.START_BOOKING))
        assert result.state == ConversationState.SELECTING_SERVICE
        assert result.outcome == TransitionOutcome.STARTED
        assert result.mutated

    def test_full_flow_reaches_confirmation(self, at_confirmation):
        assert at_confirmation.state == ConversationState.CONFIRMING_BOOKING
        assert at_confirmation.service_id == "svc-cut"
        assert at_confirmation.service_duration == 30
        assert at_confirmation.booking_date == BOOK_DATE
        assert at_confirmation.staff_id == "staff-amy"
        assert at_confirmation.start_time == time(10, 0)
        assert at_confirmation.customer_note == "Window seat"
        assert at_confirmation.history == [
            ConversationState.SELECTING_SERVICE,
            ConversationState.SELECTING_DATE,
            ConversationState.SELECTING_STAFF,
            ConversationState.SELECTING_TIME,
            ConversationState.INPUTTING_NOTE,
        ]

    def test_transition_does_not_mutate_input(self, machine, idle):
        machine.transition(idle, Command.simple(CommandType.START_BOOKING))
        assert idle.state == ConversationState.IDLE

    def test_unspecified_staff_is_explicit(self, machine, idle):
        context = run(
            machine, idle,
            Command.simple(CommandType.START_BOOKING),
            select_service(),
            select_date(),
            select_staff(staff_id=None, staff_name="Ignored"),
        )
        assert context.state == ConversationState.SELECTING_TIME
        assert context.staff_id is None
        assert context.staff_name is None
        assert context.staff_selected
        assert context.staff_unspecified

    def test_skip_note_leaves_note_empty(self, machine, idle):
        context = run(
            machine, idle,
            Command.simple(CommandType.START_BOOKING),
            select_service(), select_date(), select_staff(), select_time(),
            Command.note(None, action="skip_note"),
        )
        assert context.state == ConversationState.CONFIRMING_BOOKING
        assert context.customer_note is None

    def test_note_is_truncated(self, machine, idle):
        context = run(
            machine, idle,
            Command.simple(CommandType.START_BOOKING),
            select_service(), select_date(), select_staff(), select_time(),
            Command.note("x" * 50),
        )
        assert context.customer_note == "x" * 20

    def test_confirm_complete_context_needs_booking(self, machine, at_confirmation):
        result = machine.transition(at_confirmation, Command.simple(CommandType.CONFIRM_BOOKING))
        assert result.outcome == TransitionOutcome.NEEDS_BOOKING
        assert not result.mutated
        assert result.state == ConversationState.CONFIRMING_BOOKING


class TestInvalidation:
    """Test that changing an earlier step clears later selections."""

    def test_reselecting_service_clears_date_staff_and_time(self, machine, idle):
        context = run(
            machine, idle,
            Command.simple(CommandType.START_BOOKING),
            select_service(), select_date(), select_staff(), select_time(),
        )
        # back to SELECTING_SERVICE
        back = Command.simple(CommandType.GO_BACK)
        context = run(machine, context, back, back, back, back)
        assert context.state == ConversationState.SELECTING_SERVICE

        result = machine.transition(context, select_service(service_id="svc-color", duration=90))
        context = result.context
        assert context.state == ConversationState.SELECTING_DATE
        assert context.service_id == "svc-color"
        assert context.booking_date is None
        assert context.staff_id is None
        assert not context.staff_selected
        assert context.start_time is None

    def test_start_booking_clears_everything(self, machine, at_confirmation):
        result = machine.transition(at_confirmation, Command.simple(CommandType.START_BOOKING))
        context = result.context
        assert context.state == ConversationState.SELECTING_SERVICE
        assert context.history == []
        assert context.service_id is None
        assert context.booking_date is None
        assert context.customer_note is None
        assert "service_id" in result.cleared_fields


class TestGoBack:
    """Test backward navigation."""

    def test_back_from_time_to_staff_keeps_service_and_date(self, machine, idle):
        context = run(
            machine, idle,
            Command.simple(CommandType.START_BOOKING),
            select_service(), select_date(), select_staff(), select_time(),
        )
        # at INPUTTING_NOTE; one back lands on SELECTING_TIME
        context = run(machine, context, Command.simple(CommandType.GO_BACK))
        assert context.state == ConversationState.SELECTING_TIME
        assert context.start_time is None

        result = machine.transition(context, Command.simple(CommandType.GO_BACK))
        context = result.context
        assert result.outcome == TransitionOutcome.WENT_BACK
        assert context.state == ConversationState.SELECTING_STAFF
        assert context.service_id == "svc-cut"
        assert context.booking_date == BOOK_DATE
        assert context.start_time is None
        assert not context.staff_selected

    def test_back_from_confirmation_clears_note(self, machine, at_confirmation):
        result = machine.transition(at_confirmation, Command.simple(CommandType.GO_BACK))
        assert result.state == ConversationState.INPUTTING_NOTE
        assert result.context.customer_note is None
        assert result.context.start_time == time(10, 0)

    def test_back_with_empty_history_returns_to_idle(self, machine, idle):
        context = run(machine, idle, Command.simple(CommandType.START_BOOKING))
        result = machine.transition(context, Command.simple(CommandType.GO_BACK))
        assert result.state == ConversationState.IDLE
        assert result.ends_session

    def test_back_while_idle_is_a_hint(self, machine, idle):
        result = machine.transition(idle, Command.simple(CommandType.GO_BACK))
        assert result.outcome == TransitionOutcome.IDLE_HINT
        assert not result.mutated


class TestGlobalCommands:
    """Test commands accepted in every state."""

    @pytest.mark.parametrize("steps", range(0, 7))
    def test_cancel_from_any_state_returns_to_idle(self, machine, idle, steps):
        commands = [
            Command.simple(CommandType.START_BOOKING),
            select_service(), select_date(), select_staff(), select_time(),
            Command.note("hi"),
        ][:steps]
        context = run(machine, idle, *commands)

        result = machine.transition(context, Command.simple(CommandType.CANCEL))
        assert result.outcome == TransitionOutcome.CANCELLED
        assert result.state == ConversationState.IDLE
        assert result.context.history == []
        assert result.context.service_id is None
        assert result.ends_session

    def test_help_changes_nothing(self, machine, at_confirmation):
        result = machine.transition(at_confirmation, Command.simple(CommandType.HELP))
        assert result.outcome == TransitionOutcome.HELP
        assert not result.mutated
        assert result.context == at_confirmation

    @pytest.mark.parametrize("fixture", ["idle", "at_confirmation"])
    def test_main_menu_changes_nothing(self, machine, request, fixture):
        context = request.getfixturevalue(fixture)
        result = machine.transition(context, Command.simple(CommandType.MAIN_MENU))
        assert result.outcome == TransitionOutcome.MENU
        assert not result.mutated
        assert result.context == context

    def test_cancel_flow_asks_without_cancelling(self, machine, at_confirmation):
        result = machine.transition(at_confirmation, Command.simple(CommandType.ASK_CANCEL))
        assert result.outcome == TransitionOutcome.CANCEL_PROMPT
        assert not result.mutated
        assert result.context == at_confirmation
        assert result.state == ConversationState.CONFIRMING_BOOKING

    def test_cancel_flow_while_idle_is_a_hint(self, machine, idle):
        result = machine.transition(idle, Command.simple(CommandType.ASK_CANCEL))
        assert result.outcome == TransitionOutcome.IDLE_HINT
        assert not result.mutated


class TestStaleAndIdle:
    """Test commands that arrive in the wrong state."""

    def test_step_command_while_idle_is_a_hint(self, machine, idle):
        result = machine.transition(idle, select_date())
        assert result.outcome == TransitionOutcome.IDLE_HINT
        assert not result.mutated
        assert result.state == ConversationState.IDLE

    def test_old_button_is_stale(self, machine, idle):
        context = run(machine, idle, Command.simple(CommandType.START_BOOKING), select_service(), select_date())
        result = machine.transition(context, select_service(service_id="svc-other"))
        assert result.outcome == TransitionOutcome.STALE
        assert not result.mutated
        assert result.context.service_id == "svc-cut"
        assert result.state == ConversationState.SELECTING_STAFF

    def test_unrecognized_text_outside_idle(self, machine, idle):
        context = run(machine, idle, Command.simple(CommandType.START_BOOKING))
        result = machine.transition(context, Command.simple(CommandType.UNRECOGNIZED_INPUT))
        assert result.outcome == TransitionOutcome.TEXT_HINT
        assert not result.mutated

    def test_resume_redisplays_current_step(self, machine, at_confirmation):
        result = machine.transition(at_confirmation, Command.simple(CommandType.RESUME))
        assert result.outcome == TransitionOutcome.REDISPLAY
        assert result.state == ConversationState.CONFIRMING_BOOKING


class TestConfirmation:
    """Test confirmation and booking settlement."""

    def test_incomplete_confirmation_resets(self, machine, at_confirmation):
        broken = at_confirmation.model_copy(update={"start_time": None})
        result = machine.transition(broken, Command.simple(CommandType.CONFIRM_BOOKING))
        assert result.outcome == TransitionOutcome.INCOMPLETE
        assert result.state == ConversationState.IDLE
        assert result.ends_session

    def test_complete_booking_resets(self, machine, at_confirmation):
        result = machine.complete_booking(at_confirmation)
        assert result.outcome == TransitionOutcome.BOOKED
        assert result.state == ConversationState.IDLE
        assert result.context.service_id is None

    def test_conflict_keeps_selections(self, machine, at_confirmation):
        result = machine.fail_booking(at_confirmation, conflict=True)
        assert result.outcome == TransitionOutcome.CONFLICT
        assert result.state == ConversationState.CONFIRMING_BOOKING
        assert result.context.start_time == time(10, 0)
        assert not result.mutated

        # the user can step back and pick another time
        back = machine.transition(result.context, Command.simple(CommandType.GO_BACK))
        back = machine.transition(back.context, Command.simple(CommandType.GO_BACK))
        assert back.state == ConversationState.SELECTING_TIME

    def test_conflict_resets_when_configured(self, at_confirmation):
        machine = ConversationStateMachine(reset_on_conflict=True)
        result = machine.fail_booking(at_confirmation, conflict=True)
        assert result.outcome == TransitionOutcome.CONFLICT
        assert result.state == ConversationState.IDLE
        assert result.ends_session

    def test_other_failure_resets(self, machine, at_confirmation):
        result = machine.fail_booking(at_confirmation, conflict=False)
        assert result.outcome == TransitionOutcome.FAILED
        assert result.state == ConversationState.IDLE


def test_every_command_has_a_handler():
    machine = ConversationStateMachine()
    assert set(machine._handlers) == set(CommandType)
