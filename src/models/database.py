"""
SQLAlchemy database models and session management for the booking backend.
"""
import enum
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Generator, Optional
from loguru import logger

from sqlalchemy import (
    create_engine,
    Column,
    Integer,
    String,
    Text,
    Date,
    Time,
    DateTime,
    Enum,
    Index,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import declarative_base, Session, sessionmaker
from sqlalchemy.engine import Engine

# Create declarative base
Base = declarative_base()

# Database engine and session factory (initialized by init_db)
engine: Engine | None = None
SessionLocal: sessionmaker | None = None


class BookingStatus(str, enum.Enum):
    """Lifecycle of a booking. This subsystem only ever writes PENDING."""

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"

    @classmethod
    def inactive(cls) -> tuple["BookingStatus", ...]:
        """Statuses that no longer occupy a staff member's time."""
        return (cls.CANCELLED, cls.NO_SHOW)


# SQL fragment shared by the partial unique index on both dialects
_ACTIVE_BOOKING_CLAUSE = text("status NOT IN ('CANCELLED', 'NO_SHOW')")


def _new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Current UTC time as a naive datetime, for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Booking(Base):
    """
    Booking model representing one customer's reservation of a staff member's time.
    """
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=_new_id)
    tenant_id = Column(String(64), nullable=False)
    booking_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    # NULL means "any available staff"
    staff_id = Column(String(64), nullable=True)
    service_id = Column(String(64), nullable=False)
    service_name = Column(String(255), nullable=True)
    customer_id = Column(String(64), nullable=False)
    customer_note = Column(Text, nullable=True)
    status = Column(
        Enum(BookingStatus, name="booking_status", native_enum=False, length=16),
        nullable=False,
        default=BookingStatus.PENDING,
    )
    source = Column(String(32), nullable=False, default="LINE")
    created_at = Column(DateTime, nullable=False, default=utc_now)

    # Table constraints
    __table_args__ = (
        # Index for the per staff-day conflict query
        Index("ix_booking_tenant_staff_date", "tenant_id", "staff_id", "booking_date"),
        # Last line of defence against two active bookings starting together
        Index(
            "uq_booking_active_staff_start",
            "tenant_id", "staff_id", "booking_date", "start_time",
            unique=True,
            postgresql_where=_ACTIVE_BOOKING_CLAUSE,
            sqlite_where=_ACTIVE_BOOKING_CLAUSE,
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, tenant_id='{self.tenant_id}', date={self.booking_date}, "
            f"start={self.start_time}, end={self.end_time}, staff_id={self.staff_id}, "
            f"status='{self.status}')>"
        )


class StaffDayLock(Base):
    """
    One row per (tenant, staff, date), written to while a booking is reserved.

    Bumping ``version`` takes a row lock on PostgreSQL and the database write
    lock on SQLite, so check-then-insert for the same staff member on the
    same day cannot interleave on either backend.
    """
    __tablename__ = "staff_day_locks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(64), nullable=False)
    staff_id = Column(String(64), nullable=False)
    lock_date = Column(Date, nullable=False)
    version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utc_now)

    __table_args__ = (
        UniqueConstraint("tenant_id", "staff_id", "lock_date", name="uq_staff_day_lock"),
    )

    def __repr__(self) -> str:
        return (
            f"<StaffDayLock(tenant_id='{self.tenant_id}', staff_id='{self.staff_id}', "
            f"lock_date={self.lock_date})>"
        )


class ChatCustomerLink(Base):
    """
    Links a chat platform user of a tenant to the tenant's customer record.
    """
    __tablename__ = "chat_customer_links"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(64), nullable=False)
    chat_user_id = Column(String(64), nullable=False)
    customer_id = Column(String(64), nullable=False, default=_new_id)
    created_at = Column(DateTime, nullable=False, default=utc_now)

    __table_args__ = (
        UniqueConstraint("tenant_id", "chat_user_id", name="uq_chat_customer_link"),
    )

    def __repr__(self) -> str:
        return (
            f"<ChatCustomerLink(tenant_id='{self.tenant_id}', chat_user_id='{self.chat_user_id}', "
            f"customer_id='{self.customer_id}')>"
        )


def init_db(database_url: Optional[str] = None) -> Engine:
    """
    Initialize database engine and session factory.

    Args:
        database_url: Optional database connection string. If not provided,
                     DATABASE_URL from the application settings is used.

    Returns:
        SQLAlchemy Engine instance
    """
    global engine, SessionLocal

    if database_url is None:
        from config import get_settings
        database_url = get_settings().database_url

    engine_kwargs = {"echo": False, "pool_pre_ping": True}
    if database_url.startswith("sqlite"):
        # Sessions are used from background worker threads
        engine_kwargs["connect_args"] = {"check_same_thread": False}
    else:
        engine_kwargs.update(pool_size=5, max_overflow=10)

    engine = create_engine(database_url, **engine_kwargs)

    # Create session factory
    SessionLocal = sessionmaker(
        bind=engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )

    logger.info(f"Database initialized: {engine.url.render_as_string(hide_password=True)}")
    return engine


def create_tables() -> None:
    """
    Create all tables in the database.

    Raises:
        RuntimeError: If database engine is not initialized
    """
    if engine is None:
        raise RuntimeError("Database engine not initialized. Call init_db() first.")

    Base.metadata.create_all(bind=engine)


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """
    Context manager for database sessions with automatic cleanup.

    Yields:
        SQLAlchemy Session instance

    Example:
        with get_db_session() as session:
            booking = session.query(Booking).first()

    Raises:
        RuntimeError: If session factory is not initialized
    """
    if SessionLocal is None:
        raise RuntimeError("Session factory not initialized. Call init_db() first.")

    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
