"""
Main entry point for the chat booking backend.

Builds the FastAPI application, wires the conversation components together
and serves the webhook with uvicorn.
"""
import sys
from contextlib import asynccontextmanager
from typing import Optional

import redis
import uvicorn
from fastapi import FastAPI
from loguru import logger

from config import Settings, get_settings
from error_handling.logging_config import init_logging
from models.database import init_db, create_tables
from conversation.session_store import SessionStore
from conversation.state_manager import ConversationStateMachine
from services.booking_service import BookingService
from services.responder import Responder, HttpMessagingClient, RedisPushQuota
from agent.dispatcher import EventDispatcher
from api.webhook import router


def build_dispatcher(settings: Settings, redis_client: Optional["redis.Redis"] = None) -> EventDispatcher:
    """
    Wire the dispatcher and its collaborators from settings.

    Args:
        settings: Application settings
        redis_client: Redis client to use instead of connecting to REDIS_URL

    Returns:
        Ready EventDispatcher
    """
    if redis_client is None:
        redis_client = redis.Redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=3,
            socket_timeout=5,
        )

    session_store = SessionStore(
        redis_client,
        ttl_seconds=settings.session_ttl_seconds,
        key_prefix=settings.session_key_prefix,
        lock_timeout_seconds=settings.session_lock_timeout_seconds,
        lock_wait_seconds=settings.session_lock_wait_seconds,
    )
    state_machine = ConversationStateMachine(
        note_max_length=settings.note_max_length,
        reset_on_conflict=settings.reset_on_conflict,
    )
    responder = Responder(
        HttpMessagingClient(
            settings.messaging_api_base_url,
            settings.messaging_channel_token,
            timeout_seconds=settings.messaging_timeout_seconds,
        ),
        quota=RedisPushQuota(redis_client, settings.push_monthly_quota),
    )

    def booking_service_factory(db):
        return BookingService(
            db,
            retry_attempts=settings.booking_retry_attempts,
            retry_wait_seconds=settings.booking_retry_wait_seconds,
            buffer_minutes=settings.booking_buffer_minutes,
        )

    return EventDispatcher(
        session_store,
        state_machine,
        responder,
        booking_service_factory=booking_service_factory,
    )


def create_app(settings: Optional[Settings] = None, dispatcher: Optional[EventDispatcher] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        settings: Application settings, loaded from the environment if None
        dispatcher: Prebuilt dispatcher; when None one is built at startup

    Returns:
        FastAPI application
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "dispatcher", None) is None:
            init_db(settings.database_url)
            create_tables()
            app.state.dispatcher = build_dispatcher(settings)
            logger.info("Booking backend started")
        yield
        logger.info("Booking backend shutting down...")

    app = FastAPI(title="Chat Booking Backend", lifespan=lifespan)
    app.state.dispatcher = dispatcher
    app.include_router(router)
    return app


def main():
    """
    Main entry point: configure logging and serve the app.
    """
    settings = get_settings()
    init_logging(settings.app_env, settings.log_level)

    logger.info("=" * 80)
    logger.info("Chat Booking Backend")
    logger.info("=" * 80)

    try:
        uvicorn.run(create_app(settings), host="0.0.0.0", port=8000)
        return 0
    except KeyboardInterrupt:
        logger.info("Application interrupted by user")
        return 130
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return 3


if __name__ == "__main__":
    sys.exit(main())
