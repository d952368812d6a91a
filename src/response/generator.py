"""
Response Generator - Picks the message to send after each conversation step.

Responses are derived only from the conversation context and the outcome of
the transition, so the same state always produces the same prompt.
"""
from typing import Any, Dict, Optional

from conversation.context import ConversationContext
from conversation.states import ConversationState
from conversation.state_manager import TransitionOutcome, TransitionResult
from error_handling.error_messages import (
    MENU_HINT,
    IDLE_HINT,
    HELP_TEXT,
    WELCOME_TEXT,
    format_date_friendly,
    format_time_friendly,
    format_staff,
    get_error_message,
)
from models.database import Booking
from .messages import OutboundMessage, PromptType


def _selection_payload(context: ConversationContext) -> Dict[str, Any]:
    """
    Collect the selections made so far for menu templates.

    Args:
        context: Conversation context

    Returns:
        Dict of JSON-friendly values, only for selections that are set
    """
    payload: Dict[str, Any] = {}
    if context.service_id:
        payload["serviceId"] = context.service_id
        payload["serviceName"] = context.service_name
        payload["duration"] = context.service_duration
    if context.booking_date:
        payload["date"] = context.booking_date.isoformat()
    if context.staff_selected:
        payload["staffId"] = context.staff_id or ""
        payload["staffName"] = context.staff_name
    if context.start_time:
        payload["time"] = context.start_time.strftime("%H:%M")
    return payload


def _format_booking_details(context: ConversationContext) -> str:
    """
    Format the selections as a multi-line summary.

    Args:
        context: Conversation context with every selection made

    Returns:
        Summary text
    """
    details = [f"Service: {context.service_name or context.service_id}"]
    if context.booking_date:
        details.append(f"Date: {format_date_friendly(context.booking_date)}")
    details.append(f"Staff: {format_staff(context.staff_name if context.staff_id else None)}")
    if context.start_time:
        details.append(f"Time: {format_time_friendly(context.start_time)}")
    if context.service_price is not None:
        details.append(f"Price: {context.service_price}")
    if context.customer_note:
        details.append(f"Note: {context.customer_note}")
    return "\n".join(details)


def main_menu(text: str = "What would you like to do?", resumable: bool = False) -> OutboundMessage:
    payload = {"resumable": True} if resumable else {}
    return OutboundMessage(prompt=PromptType.MAIN_MENU, text=text, payload=payload)


def cancel_confirmation(context: ConversationContext) -> OutboundMessage:
    """Ask before throwing away the selections made so far."""
    return OutboundMessage(
        prompt=PromptType.CANCEL_CONFIRM,
        text="Cancel this booking? The choices you made so far will be lost.",
        payload={**_selection_payload(context), "state": context.state.value}
    )


def welcome_message() -> OutboundMessage:
    return OutboundMessage(prompt=PromptType.WELCOME, text=WELCOME_TEXT)


def help_message() -> OutboundMessage:
    return OutboundMessage(prompt=PromptType.HELP, text=HELP_TEXT)


def hint_message(context: ConversationContext) -> OutboundMessage:
    """Hint for input the current state cannot use."""
    text = IDLE_HINT if context.state == ConversationState.IDLE else MENU_HINT
    return OutboundMessage(prompt=PromptType.HINT, text=text, payload={"state": context.state.value})


def error_message(error: Exception) -> OutboundMessage:
    return OutboundMessage(prompt=PromptType.ERROR, text=get_error_message(error))


def prompt_for_state(context: ConversationContext) -> OutboundMessage:
    """
    Build the prompt that asks for the current step's input.

    Args:
        context: Conversation context

    Returns:
        OutboundMessage for the step the user is on
    """
    state = context.state
    payload = _selection_payload(context)

    if state == ConversationState.SELECTING_SERVICE:
        return OutboundMessage(
            prompt=PromptType.SERVICE_MENU,
            text="Which service would you like to book?",
            payload=payload
        )

    if state == ConversationState.SELECTING_DATE:
        return OutboundMessage(
            prompt=PromptType.DATE_MENU,
            text=f"You chose {context.service_name or context.service_id}. Which date works for you?",
            payload=payload
        )

    if state == ConversationState.SELECTING_STAFF:
        return OutboundMessage(
            prompt=PromptType.STAFF_MENU,
            text=(
                f"Who would you like to see on {format_date_friendly(context.booking_date)}? "
                "You can also leave it to us."
            ),
            payload=payload
        )

    if state == ConversationState.SELECTING_TIME:
        return OutboundMessage(
            prompt=PromptType.TIME_MENU,
            text=f"Please pick a start time with {format_staff(context.staff_name if context.staff_id else None)}.",
            payload=payload
        )

    if state == ConversationState.INPUTTING_NOTE:
        return OutboundMessage(
            prompt=PromptType.NOTE_PROMPT,
            text="Anything the shop should know? Type a note, or tap \"Skip\".",
            payload=payload
        )

    if state == ConversationState.CONFIRMING_BOOKING:
        return OutboundMessage(
            prompt=PromptType.CONFIRMATION,
            text=f"Please confirm your booking:\n{_format_booking_details(context)}",
            payload=payload
        )

    return main_menu()


def respond_to_transition(result: TransitionResult) -> Optional[OutboundMessage]:
    """
    Pick the reply for a transition that needed no booking work.

    Args:
        result: Result of ConversationStateMachine.transition()

    Returns:
        OutboundMessage, or None when the caller must decide (NEEDS_BOOKING)
    """
    outcome = result.outcome
    context = result.context

    if outcome in (
        TransitionOutcome.STARTED,
        TransitionOutcome.ADVANCED,
        TransitionOutcome.WENT_BACK,
        TransitionOutcome.REDISPLAY,
        TransitionOutcome.STALE,
    ):
        return prompt_for_state(context)

    if outcome == TransitionOutcome.CANCELLED:
        return main_menu("Your booking has been cancelled. Anything else we can do for you?")

    if outcome == TransitionOutcome.INCOMPLETE:
        return OutboundMessage(
            prompt=PromptType.ERROR,
            text="Your booking information is incomplete. Please start the booking again."
        )

    if outcome in (TransitionOutcome.IDLE_HINT, TransitionOutcome.TEXT_HINT):
        return hint_message(context)

    if outcome == TransitionOutcome.HELP:
        return help_message()

    if outcome == TransitionOutcome.MENU:
        if context.state == ConversationState.IDLE:
            return main_menu()
        return main_menu(
            "What would you like to do? Your booking in progress is kept until you cancel it.",
            resumable=True
        )

    if outcome == TransitionOutcome.CANCEL_PROMPT:
        return cancel_confirmation(context)

    return None


def booking_success_message(booking: Booking, context: ConversationContext) -> OutboundMessage:
    """
    Confirmation sent after a booking is created.

    Args:
        booking: Persisted booking
        context: Context the booking was created from, for display names

    Returns:
        BOOKING_SUCCESS message
    """
    text = (
        "Your booking request has been received!\n"
        f"Service: {context.service_name or booking.service_id}\n"
        f"Date: {format_date_friendly(booking.booking_date)}\n"
        f"Time: {format_time_friendly(booking.start_time)} - {format_time_friendly(booking.end_time)}\n"
        f"Staff: {format_staff(context.staff_name if booking.staff_id else None)}\n"
        "The shop will confirm it shortly."
    )
    return OutboundMessage(
        prompt=PromptType.BOOKING_SUCCESS,
        text=text,
        payload={"bookingId": booking.id, "status": booking.status.value}
    )
