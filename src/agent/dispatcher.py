"""
Event Dispatcher - Main coordination logic for the chat booking flow.

This module provides the EventDispatcher class that turns each webhook event
into at most one conversation step:

1. Decode the event into a Command (keywords, callback data, note text)
2. Under the per-user lock: read the context once, apply the command,
   create the booking on confirmation, write the context back at most once
3. Outside the lock: send at most one reply
"""
from typing import Callable, ContextManager, Dict, Optional, Tuple

from loguru import logger
from sqlalchemy.orm import Session

from conversation.commands import Command, CommandType, decode_postback
from conversation.context import ConversationContext
from conversation.session_store import SessionStore
from conversation.state_manager import (
    ConversationStateMachine,
    TransitionOutcome,
    TransitionResult,
)
from conversation.states import ConversationState
from error_handling.exceptions import BookingSystemError, SessionStoreError, SlotConflictError
from error_handling.error_messages import GENERIC_FAILURE
from error_handling.logging_config import LogContext, log_booking_event, log_conversation_event
from models.database import get_db_session
from models.schemas import BookingCreate
from response.generator import (
    booking_success_message,
    error_message,
    respond_to_transition,
    welcome_message,
)
from response.messages import OutboundMessage, PromptType
from services.booking_service import BookingService
from services.customer_directory import CustomerDirectory
from services.responder import Responder
from .events import EventType, InboundEvent, WebhookPayload
from .keywords import match_keyword


CommandHandler = Callable[[ConversationContext, Command], Tuple[TransitionResult, Optional[OutboundMessage]]]
Decision = Callable[[ConversationContext], Optional[Command]]


class EventDispatcher:
    """
    Routes webhook events through the conversation state machine.

    The tenant id is passed explicitly to every step; nothing here reads it
    from ambient state.
    """

    def __init__(
        self,
        session_store: SessionStore,
        state_machine: ConversationStateMachine,
        responder: Responder,
        db_session_factory: Callable[[], ContextManager[Session]] = get_db_session,
        booking_service_factory: Optional[Callable[[Session], BookingService]] = None,
        customer_directory_factory: Callable[[Session], CustomerDirectory] = CustomerDirectory
    ):
        """
        Initialize the dispatcher.

        Args:
            session_store: Conversation context storage
            state_machine: Transition logic
            responder: Outbound message delivery
            db_session_factory: Context manager factory yielding a database session
            booking_service_factory: Builds a BookingService for a session
            customer_directory_factory: Builds a CustomerDirectory for a session

        Raises:
            RuntimeError: If a CommandType has no handler
        """
        self.session_store = session_store
        self.state_machine = state_machine
        self.responder = responder
        self.db_session_factory = db_session_factory
        self.booking_service_factory = booking_service_factory or BookingService
        self.customer_directory_factory = customer_directory_factory

        self._event_handlers = {
            EventType.MESSAGE: self._on_message,
            EventType.POSTBACK: self._on_postback,
            EventType.FOLLOW: self._on_follow,
            EventType.UNFOLLOW: self._on_unfollow,
        }

        self._command_handlers: Dict[CommandType, CommandHandler] = {
            CommandType.START_BOOKING: self._apply_transition,
            CommandType.SELECT_SERVICE: self._apply_transition,
            CommandType.SELECT_DATE: self._apply_transition,
            CommandType.SELECT_STAFF: self._apply_transition,
            CommandType.SELECT_TIME: self._apply_transition,
            CommandType.SUBMIT_NOTE: self._apply_transition,
            CommandType.CONFIRM_BOOKING: self._confirm_booking,
            CommandType.CANCEL: self._apply_transition,
            CommandType.GO_BACK: self._apply_transition,
            CommandType.RESUME: self._apply_transition,
            CommandType.HELP: self._apply_transition,
            CommandType.MAIN_MENU: self._apply_transition,
            CommandType.ASK_CANCEL: self._apply_transition,
            CommandType.UNRECOGNIZED_INPUT: self._apply_transition,
        }
        missing = set(CommandType) - set(self._command_handlers)
        if missing:
            raise RuntimeError(f"EventDispatcher has no handler for commands: {sorted(missing)}")

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def handle_payload(self, tenant_id: str, payload: WebhookPayload) -> None:
        """
        Process every event of one webhook delivery, in order.

        A failing event is logged and never stops the rest of the delivery.

        Args:
            tenant_id: Tenant the webhook was delivered for
            payload: Parsed webhook body
        """
        logger.info(f"Webhook for tenant={tenant_id} with {len(payload.events)} event(s)")
        for event in payload.events:
            try:
                self.handle_event(tenant_id, event)
            except Exception as e:
                logger.exception(f"Unhandled error processing {event.type} event for tenant={tenant_id}: {e}")

    def handle_event(self, tenant_id: str, event: InboundEvent) -> Optional[OutboundMessage]:
        """
        Process one event and send its reply.

        Args:
            tenant_id: Tenant identifier
            event: Inbound event

        Returns:
            The message sent, or None if the event needed no reply
        """
        user_id = event.user_id
        if not user_id:
            logger.warning(f"Ignoring {event.type} event without a user id for tenant={tenant_id}")
            return None

        with LogContext(tenant_id=tenant_id, user_id=user_id):
            handler = self._event_handlers.get(event.event_type)
            if handler is None:
                logger.debug(f"Ignoring unsupported event type '{event.type}'")
                return None

            try:
                message = handler(tenant_id, user_id, event)
            except BookingSystemError as e:
                logger.warning(f"{type(e).__name__} handling {event.type} event: {e.message}")
                message = error_message(e)

            if message is not None:
                self.responder.send(tenant_id, user_id, event.reply_token, message)
            return message

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def _on_message(self, tenant_id: str, user_id: str, event: InboundEvent) -> Optional[OutboundMessage]:
        message = event.message
        if message is None or not message.is_text:
            # Stickers, images and the like carry nothing the flow can use
            return self._process(
                tenant_id, user_id, lambda ctx: Command.simple(CommandType.UNRECOGNIZED_INPUT, action="non_text")
            )

        text = message.text
        keyword_command = match_keyword(text)

        def decide(context: ConversationContext) -> Command:
            if keyword_command is not None:
                return Command.simple(keyword_command, action="keyword")
            if context.state == ConversationState.INPUTTING_NOTE:
                return Command.note(text)
            return Command.simple(CommandType.UNRECOGNIZED_INPUT, action="text")

        return self._process(tenant_id, user_id, decide)

    def _on_postback(self, tenant_id: str, user_id: str, event: InboundEvent) -> Optional[OutboundMessage]:
        data = event.postback.data if event.postback else ""
        command = decode_postback(data)
        if command is None:
            logger.warning(f"Ignoring postback with unknown action: '{data}'")
            return None
        return self._process(tenant_id, user_id, lambda ctx: command)

    def _on_follow(self, tenant_id: str, user_id: str, event: InboundEvent) -> OutboundMessage:
        log_conversation_event("FOLLOW", tenant_id=tenant_id, user_id=user_id)
        return welcome_message()

    def _on_unfollow(self, tenant_id: str, user_id: str, event: InboundEvent) -> None:
        with self.session_store.lock(tenant_id, user_id):
            self.session_store.delete(tenant_id, user_id)
        log_conversation_event("UNFOLLOW", tenant_id=tenant_id, user_id=user_id)
        return None

    # ------------------------------------------------------------------
    # Conversation step
    # ------------------------------------------------------------------

    def _process(self, tenant_id: str, user_id: str, decide: Decision) -> Optional[OutboundMessage]:
        """
        Run one read-modify-write cycle under the per-user lock.

        Args:
            tenant_id: Tenant identifier
            user_id: Chat platform user identifier
            decide: Picks the command once the current context is known

        Returns:
            Message to send, or None
        """
        with self.session_store.lock(tenant_id, user_id):
            context = self.session_store.get_or_create(tenant_id, user_id)
            command = decide(context)
            if command is None:
                return None

            result, message = self._command_handlers[command.type](context, command)
            self._persist(result)

        log_conversation_event(
            result.outcome.value.upper(),
            tenant_id=tenant_id,
            user_id=user_id,
            state=result.state.value,
            details={"command": command.action, "from": result.previous_state.value}
        )
        return message

    def _persist(self, result: TransitionResult) -> None:
        if not result.mutated:
            return
        context = result.context
        try:
            if result.ends_session:
                self.session_store.delete(context.tenant_id, context.user_id)
            else:
                self.session_store.save(context)
        except SessionStoreError as e:
            if result.outcome != TransitionOutcome.BOOKED:
                raise
            # The booking exists; the stale session expires on its own
            logger.error(f"Booking created but session could not be cleared: {e.message}")

    def _apply_transition(
        self,
        context: ConversationContext,
        command: Command
    ) -> Tuple[TransitionResult, Optional[OutboundMessage]]:
        result = self.state_machine.transition(context, command)
        return result, respond_to_transition(result)

    def _confirm_booking(
        self,
        context: ConversationContext,
        command: Command
    ) -> Tuple[TransitionResult, Optional[OutboundMessage]]:
        """
        Create the booking for a confirmed conversation.

        The user always gets either the booking confirmation or a failure
        message. A slot conflict keeps the selections so the user can pick
        another time; every other failure resets the conversation.
        """
        result = self.state_machine.transition(context, command)
        if result.outcome != TransitionOutcome.NEEDS_BOOKING:
            return result, respond_to_transition(result)

        ctx = result.context
        try:
            with self.db_session_factory() as db:
                if not ctx.customer_id:
                    ctx.customer_id = self.customer_directory_factory(db).get_or_create_customer_id(
                        ctx.tenant_id, ctx.user_id
                    )
                booking = self.booking_service_factory(db).create_booking(
                    BookingCreate(
                        tenant_id=ctx.tenant_id,
                        customer_id=ctx.customer_id,
                        service_id=ctx.service_id,
                        service_name=ctx.service_name,
                        duration_minutes=ctx.service_duration,
                        staff_id=ctx.staff_id,
                        booking_date=ctx.booking_date,
                        start_time=ctx.start_time,
                        customer_note=ctx.customer_note,
                    )
                )
                message = booking_success_message(booking, ctx)
                booking_id = booking.id

        except SlotConflictError as e:
            log_booking_event(
                "CONFLICT",
                tenant_id=ctx.tenant_id,
                user_id=ctx.user_id,
                details={"staff_id": e.staff_id, "conflicting_ids": e.conflicting_ids}
            )
            return self.state_machine.fail_booking(ctx, conflict=True), error_message(e)

        except BookingSystemError as e:
            log_booking_event(
                "FAILED",
                tenant_id=ctx.tenant_id,
                user_id=ctx.user_id,
                details={"error": type(e).__name__, "reason": e.message}
            )
            return self.state_machine.fail_booking(ctx, conflict=False), error_message(e)

        except Exception as e:
            logger.exception(f"Unexpected error creating booking for user={ctx.user_id}: {e}")
            return (
                self.state_machine.fail_booking(ctx, conflict=False),
                OutboundMessage(prompt=PromptType.ERROR, text=GENERIC_FAILURE),
            )

        log_booking_event(
            "CONFIRMED_BY_USER",
            tenant_id=ctx.tenant_id,
            user_id=ctx.user_id,
            booking_id=booking_id
        )
        return self.state_machine.complete_booking(ctx), message
