"""
Models package - SQLAlchemy ORM models and Pydantic schemas.
"""
from .database import (
    Base,
    Booking,
    BookingStatus,
    StaffDayLock,
    ChatCustomerLink,
    init_db,
    create_tables,
    get_db_session,
)

from .schemas import (
    BookingCreate,
)

__all__ = [
    # Database models
    "Base",
    "Booking",
    "BookingStatus",
    "StaffDayLock",
    "ChatCustomerLink",
    # Database utilities
    "init_db",
    "create_tables",
    "get_db_session",
    # Pydantic schemas
    "BookingCreate",
]
