"""
BookingService - Slot conflict checking and booking creation.

This service handles:
- Validation of a booking request (no past dates or times, positive duration)
- Overlap detection against a staff member's active bookings
- Atomic reservation: per staff-day write lock, conflict check and insert in
  one transaction
- Bounded retries when concurrent writers collide
"""
from datetime import date, time, datetime, timedelta
from typing import Callable, List, Optional, Tuple
from sqlalchemy.orm import Session
from sqlalchemy import and_
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from loguru import logger
from tenacity import (
    Retrying,
    stop_after_attempt,
    wait_fixed,
    retry_if_exception_type,
)

from models.database import Booking, BookingStatus, StaffDayLock
from models.schemas import BookingCreate
from error_handling.exceptions import (
    BookingValidationError,
    SlotConflictError,
    DatabaseError,
    WriteConflictError,
    SystemBusyError,
)
from error_handling.logging_config import log_booking_event


def intervals_overlap(
    existing_start: time,
    existing_end: time,
    candidate_start: time,
    candidate_end: time
) -> bool:
    """
    Check whether two half-open intervals [start, end) overlap.

    Touching boundaries do not overlap: a booking ending at 10:30 does not
    conflict with one starting at 10:30.

    Args:
        existing_start: Start of the stored booking
        existing_end: End of the stored booking
        candidate_start: Start of the requested booking
        candidate_end: End of the requested booking

    Returns:
        True if the intervals share any time
    """
    return existing_start < candidate_end and existing_end > candidate_start


def compute_end_time(booking_date: date, start_time: time, duration_minutes: int) -> time:
    """
    Add a service duration to a start time.

    Args:
        booking_date: Date of the booking
        start_time: Start time
        duration_minutes: Service duration in minutes

    Returns:
        End time on the same day

    Raises:
        BookingValidationError: If the booking would run past midnight
    """
    end = datetime.combine(booking_date, start_time) + timedelta(minutes=duration_minutes)
    if end.date() != booking_date:
        raise BookingValidationError(
            f"Booking starting {start_time} for {duration_minutes} minutes crosses midnight",
            user_message="That time is too late in the day for this service. Please pick an earlier time.",
            field="start_time",
            value=start_time
        )
    return end.time()


class BookingService:
    """
    Service class that encapsulates booking creation.

    This service is responsible for:
    - Validating booking requests
    - Refusing bookings that overlap a staff member's active bookings
    - Persisting new bookings as PENDING

    Bookings without a staff member are not conflict-checked.
    """

    def __init__(
        self,
        session: Session,
        retry_attempts: int = 3,
        retry_wait_seconds: float = 0.1,
        buffer_minutes: int = 0,
        clock: Callable[[], datetime] = datetime.now
    ):
        """
        Initialize the booking service with a database session.

        Args:
            session: SQLAlchemy database session
            retry_attempts: Attempts before a write conflict becomes SystemBusyError
            retry_wait_seconds: Pause between attempts
            buffer_minutes: Minutes added to the candidate end for conflict checks
            clock: Source of "now" in the shop's local time
        """
        self.session = session
        self.retry_attempts = retry_attempts
        self.retry_wait_seconds = retry_wait_seconds
        self.buffer_minutes = buffer_minutes
        self.clock = clock

    def validate_booking_request(
        self,
        booking_date: date,
        start_time: time,
        duration_minutes: int
    ) -> Tuple[bool, str]:
        """
        Validate a booking request against business rules.

        Validation rules:
        - Date cannot be in the past
        - On today's date, the start time cannot be in the past
        - Duration must be positive

        Args:
            booking_date: Requested date
            start_time: Requested start time
            duration_minutes: Service duration

        Returns:
            Tuple of (is_valid, error_message). If valid, error_message is empty string.
        """
        now = self.clock()

        if duration_minutes is None or duration_minutes <= 0:
            return False, "Service duration must be a positive number of minutes"

        if booking_date < now.date():
            return False, "Booking date cannot be in the past"

        if booking_date == now.date() and start_time < now.time().replace(microsecond=0):
            return False, "Booking time has already passed today"

        return True, ""

    def find_conflicts(
        self,
        tenant_id: str,
        staff_id: str,
        booking_date: date,
        start_time: time,
        end_time: time
    ) -> List[Booking]:
        """
        Load the staff member's active bookings that overlap [start_time, end_time).

        Args:
            tenant_id: Tenant identifier
            staff_id: Staff member to check
            booking_date: Date to check
            start_time: Candidate start
            end_time: Candidate end, buffer included

        Returns:
            Overlapping bookings, empty if the slot is free
        """
        return self.session.query(Booking).filter(
            and_(
                Booking.tenant_id == tenant_id,
                Booking.staff_id == staff_id,
                Booking.booking_date == booking_date,
                Booking.status.notin_(BookingStatus.inactive()),
                Booking.start_time < end_time,
                Booking.end_time > start_time,
            )
        ).order_by(Booking.start_time).all()

    def create_booking(self, booking_data: BookingCreate) -> Booking:
        """
        Create a new PENDING booking unless it overlaps an active one.

        Write conflicts with concurrent requests are retried; the conflict
        check runs again on every attempt.

        Args:
            booking_data: Booking request

        Returns:
            Created Booking instance

        Raises:
            BookingValidationError: If the request breaks a business rule
            SlotConflictError: If the staff member is already booked
            SystemBusyError: If write conflicts persist after all attempts
            DatabaseError: If the database fails otherwise
        """
        retryer = Retrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_fixed(self.retry_wait_seconds),
            retry=retry_if_exception_type(WriteConflictError),
            before_sleep=lambda state: logger.warning(
                f"Write conflict reserving slot for tenant={booking_data.tenant_id} "
                f"staff={booking_data.staff_id} on {booking_data.booking_date} "
                f"(attempt {state.attempt_number}/{self.retry_attempts}), retrying"
            ),
            reraise=True,
        )

        try:
            booking = retryer(self._reserve_slot, booking_data)
        except WriteConflictError as e:
            log_booking_event(
                "BUSY",
                tenant_id=booking_data.tenant_id,
                details={"staff_id": booking_data.staff_id, "attempts": self.retry_attempts}
            )
            raise SystemBusyError(self.retry_attempts, original_error=e) from e

        log_booking_event(
            "CREATED",
            tenant_id=booking.tenant_id,
            booking_id=booking.id,
            details={
                "staff_id": booking.staff_id,
                "date": booking.booking_date.isoformat(),
                "start": booking.start_time.isoformat(),
                "end": booking.end_time.isoformat(),
            }
        )
        return booking

    def _reserve_slot(self, booking_data: BookingCreate) -> Booking:
        """
        One attempt at reserving a slot, in a single transaction.

        Steps:
        1. Validate the request and compute the end time
        2. Write-lock the (tenant, staff, date) row, creating it if needed
        3. Check for overlapping active bookings
        4. Insert the booking and commit

        Raises:
            WriteConflictError: If a concurrent writer got in first; retryable
        """
        try:
            is_valid, error_msg = self.validate_booking_request(
                booking_data.booking_date,
                booking_data.start_time,
                booking_data.duration_minutes
            )
            if not is_valid:
                raise BookingValidationError(
                    error_msg,
                    user_message=error_msg,
                    field="booking_date",
                    value=booking_data.booking_date
                )

            end_time = compute_end_time(
                booking_data.booking_date,
                booking_data.start_time,
                booking_data.duration_minutes
            )

            if booking_data.staff_id is not None:
                self._lock_staff_day(
                    booking_data.tenant_id,
                    booking_data.staff_id,
                    booking_data.booking_date
                )
                check_end = self._buffered_end(booking_data.booking_date, end_time)
                conflicts = self.find_conflicts(
                    booking_data.tenant_id,
                    booking_data.staff_id,
                    booking_data.booking_date,
                    booking_data.start_time,
                    check_end
                )
                if conflicts:
                    raise SlotConflictError(
                        staff_id=booking_data.staff_id,
                        booking_date=booking_data.booking_date,
                        start_time=booking_data.start_time,
                        end_time=end_time,
                        conflicting_ids=[b.id for b in conflicts]
                    )
            else:
                logger.info(
                    f"Booking for tenant={booking_data.tenant_id} has no staff member; "
                    "skipping conflict check"
                )

            booking = Booking(
                tenant_id=booking_data.tenant_id,
                booking_date=booking_data.booking_date,
                start_time=booking_data.start_time,
                end_time=end_time,
                staff_id=booking_data.staff_id,
                service_id=booking_data.service_id,
                service_name=booking_data.service_name,
                customer_id=booking_data.customer_id,
                customer_note=booking_data.customer_note,
                status=BookingStatus.PENDING,
                source=booking_data.source
            )

            self.session.add(booking)

            # Commit transaction
            self.session.commit()

            return booking

        except IntegrityError as e:
            self.session.rollback()
            error_msg = str(e.orig) if hasattr(e, 'orig') else str(e)
            raise WriteConflictError(
                f"Concurrent booking write for staff={booking_data.staff_id} "
                f"on {booking_data.booking_date}: {error_msg}",
                original_error=e
            ) from e

        except OperationalError as e:
            self.session.rollback()
            if "locked" not in str(e.orig).lower():
                logger.error(f"Unexpected database error creating booking: {str(e)}")
                raise DatabaseError(
                    f"Unexpected database error creating booking: {str(e)}",
                    operation="create_booking",
                    original_error=e
                ) from e
            # SQLite gave up waiting for another writer's staff-day lock
            raise WriteConflictError(
                f"Timed out waiting for the staff-day lock of staff={booking_data.staff_id} "
                f"on {booking_data.booking_date}",
                original_error=e
            ) from e

        except BookingValidationError:
            self.session.rollback()
            raise

        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Unexpected database error creating booking: {str(e)}")
            raise DatabaseError(
                f"Unexpected database error creating booking: {str(e)}",
                operation="create_booking",
                original_error=e
            ) from e

    def _lock_staff_day(self, tenant_id: str, staff_id: str, booking_date: date) -> None:
        """
        Take the write lock that serializes bookings for one staff member on one day.

        The lock is an UPDATE of the staff-day row, held until commit or
        rollback: a row lock on PostgreSQL, the database write lock on SQLite.
        It must run before the conflict query so that query sees every
        booking committed by an earlier holder.

        The first booking of a staff day inserts the row instead; two first
        bookings racing each other collide on its unique constraint and the
        loser retries.
        """
        updated = self.session.query(StaffDayLock).filter(
            and_(
                StaffDayLock.tenant_id == tenant_id,
                StaffDayLock.staff_id == staff_id,
                StaffDayLock.lock_date == booking_date
            )
        ).update({StaffDayLock.version: StaffDayLock.version + 1}, synchronize_session=False)

        if not updated:
            self.session.add(StaffDayLock(
                tenant_id=tenant_id,
                staff_id=staff_id,
                lock_date=booking_date,
                version=0
            ))
            self.session.flush()

    def _buffered_end(self, booking_date: date, end_time: time) -> time:
        if not self.buffer_minutes:
            return end_time
        buffered = datetime.combine(booking_date, end_time) + timedelta(minutes=self.buffer_minutes)
        if buffered.date() != booking_date:
            return time.max
        return buffered.time()
