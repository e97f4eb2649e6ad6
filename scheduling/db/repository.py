"""
Database Repository Layer

Implements repository pattern for database operations.
Provides abstraction over SQLAlchemy for cleaner business logic.

Each operation opens its own short-lived session so no transaction spans
more than one scheduling step.
"""

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import AsyncIterator, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from scheduling.db.interfaces import occupancy_blocks
from scheduling.db.tables import AppointmentRow, SlotClaimRow, WaitlistRequestRow
from scheduling.models.domain import (
    Appointment,
    AppointmentStatus,
    TimeRange,
    WaitlistRequest,
    WaitlistStatus,
    as_utc,
    utcnow,
)
from scheduling.models.results import UpstreamUnavailable

logger = logging.getLogger(__name__)

# Longest appointment considered when searching for overlaps.
MAX_APPOINTMENT_SPAN = timedelta(hours=24)


class DatabaseError(UpstreamUnavailable):
    """Custom exception for database operations."""
    pass


class BaseRepository:
    """Base repository with common database operations."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """
        Initialize repository with a session factory.

        Args:
            session_factory: Factory producing AsyncSession instances
        """
        self.session_factory = session_factory

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """
        Run a unit of work in its own session and commit it.

        IntegrityError is re-raised untouched so callers can treat it as a
        lost conditional write. Any other database failure becomes
        DatabaseError.

        Raises:
            IntegrityError: If a uniqueness constraint rejected the write
            DatabaseError: If the operation failed for any other reason
        """
        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except IntegrityError:
            await session.rollback()
            raise
        except (SQLAlchemyError, OSError) as e:
            await session.rollback()
            logger.error(f"Database operation failed: {e}")
            raise DatabaseError(f"Database operation failed: {str(e)}") from e
        finally:
            await session.close()


def _to_appointment(row: AppointmentRow) -> Appointment:
    return Appointment(
        id=row.id,
        user_id=row.user_id,
        venue_id=row.venue_id,
        venue_name=row.venue_name,
        service_id=row.service_id,
        service_name=row.service_name,
        employee_id=row.employee_id,
        employee_name=row.employee_name,
        scheduled_at=as_utc(row.scheduled_at),
        duration_minutes=row.duration_minutes,
        price=Decimal(row.price),
        status=AppointmentStatus(row.status),
        notes=row.notes,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


def _to_waitlist_request(row: WaitlistRequestRow) -> WaitlistRequest:
    return WaitlistRequest(
        id=row.id,
        user_id=row.user_id,
        venue_id=row.venue_id,
        service_id=row.service_id,
        preferred_date=row.preferred_date,
        preferred_time_range=TimeRange(row.preferred_time_range),
        status=WaitlistStatus(row.status),
        created_at=as_utc(row.created_at),
        notified_at=as_utc(row.notified_at) if row.notified_at else None,
        appointment_id=row.appointment_id,
    )


class AppointmentRepository(BaseRepository):
    """Repository for appointment and slot-claim database operations."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        quantum_minutes: int = 5,
    ):
        super().__init__(session_factory)
        self.quantum_minutes = quantum_minutes

    async def get(self, appointment_id: str) -> Optional[Appointment]:
        """
        Get appointment details by ID.

        Args:
            appointment_id: Unique appointment identifier

        Returns:
            Appointment or None if not found
        """
        async with self.transaction() as session:
            row = await session.get(AppointmentRow, appointment_id)
            return _to_appointment(row) if row else None

    async def list_for_user(self, user_id: str) -> List[Appointment]:
        """
        Get all appointments for a user, ordered by scheduled time.

        Args:
            user_id: Opaque user identifier

        Returns:
            List of appointments
        """
        async with self.transaction() as session:
            result = await session.execute(
                select(AppointmentRow)
                .where(AppointmentRow.user_id == user_id)
                .order_by(AppointmentRow.scheduled_at)
            )
            return [_to_appointment(row) for row in result.scalars()]

    async def list_for_employee(
        self,
        venue_id: str,
        employee_id: str,
        start: datetime,
        end: datetime,
    ) -> List[Appointment]:
        """
        Get non-cancelled appointments of an employee overlapping [start, end).

        Args:
            venue_id: Venue ID
            employee_id: Employee ID
            start: Range start (aware)
            end: Range end (aware)

        Returns:
            Overlapping appointments ordered by scheduled time
        """
        async with self.transaction() as session:
            result = await session.execute(
                select(AppointmentRow)
                .where(
                    AppointmentRow.venue_id == venue_id,
                    AppointmentRow.employee_id == employee_id,
                    AppointmentRow.status != AppointmentStatus.CANCELLED.value,
                    AppointmentRow.scheduled_at < as_utc(end),
                    AppointmentRow.scheduled_at > as_utc(start) - MAX_APPOINTMENT_SPAN,
                )
                .order_by(AppointmentRow.scheduled_at)
            )
            appointments = [_to_appointment(row) for row in result.scalars()]
        return [a for a in appointments if a.ends_at > start]

    async def insert_if_free(self, appointment: Appointment) -> bool:
        """
        Claim the appointment's time and insert it in one transaction.

        Args:
            appointment: Appointment to persist

        Returns:
            True if stored, False if the employee's time was already claimed

        Raises:
            DatabaseError: If the write failed for another reason
        """
        blocks = occupancy_blocks(
            appointment.scheduled_at, appointment.ends_at, self.quantum_minutes
        )
        now = utcnow()
        try:
            async with self.transaction() as session:
                session.add_all(
                    [
                        SlotClaimRow(
                            venue_id=appointment.venue_id,
                            employee_id=appointment.employee_id,
                            block_start=block,
                            appointment_id=appointment.id,
                            interval_start=as_utc(appointment.scheduled_at),
                        )
                        for block in blocks
                    ]
                )
                session.add(
                    AppointmentRow(
                        id=appointment.id,
                        user_id=appointment.user_id,
                        venue_id=appointment.venue_id,
                        venue_name=appointment.venue_name,
                        service_id=appointment.service_id,
                        service_name=appointment.service_name,
                        employee_id=appointment.employee_id,
                        employee_name=appointment.employee_name,
                        scheduled_at=as_utc(appointment.scheduled_at),
                        duration_minutes=appointment.duration_minutes,
                        price=appointment.price,
                        status=appointment.status.value,
                        notes=appointment.notes,
                        created_at=appointment.created_at or now,
                        updated_at=appointment.updated_at or now,
                    )
                )
                await session.flush()
        except IntegrityError:
            logger.warning(
                f"Slot claim conflict for employee {appointment.employee_id} "
                f"at {appointment.scheduled_at.isoformat()}"
            )
            return False

        logger.info(
            f"Created appointment {appointment.id} for user {appointment.user_id} "
            f"at {appointment.scheduled_at.isoformat()}"
        )
        return True

    async def claim(
        self,
        appointment_id: str,
        venue_id: str,
        employee_id: str,
        start: datetime,
        end: datetime,
    ) -> bool:
        """
        Claim a time range for an existing appointment.

        Returns:
            True if every block is now held by the appointment
        """
        blocks = occupancy_blocks(start, end, self.quantum_minutes)
        try:
            async with self.transaction() as session:
                result = await session.execute(
                    select(SlotClaimRow)
                    .where(
                        SlotClaimRow.venue_id == venue_id,
                        SlotClaimRow.employee_id == employee_id,
                        SlotClaimRow.block_start.in_(blocks),
                    )
                    .with_for_update()
                )
                existing = {as_utc(row.block_start): row for row in result.scalars()}
                if any(row.appointment_id != appointment_id for row in existing.values()):
                    return False

                for block in blocks:
                    row = existing.get(block)
                    if row is None:
                        session.add(
                            SlotClaimRow(
                                venue_id=venue_id,
                                employee_id=employee_id,
                                block_start=block,
                                appointment_id=appointment_id,
                                interval_start=as_utc(start),
                            )
                        )
                    else:
                        row.interval_start = as_utc(start)
                await session.flush()
        except IntegrityError:
            logger.warning(f"Slot claim conflict for appointment {appointment_id}")
            return False
        return True

    async def release(self, appointment_id: str, start: datetime) -> None:
        async with self.transaction() as session:
            await session.execute(
                delete(SlotClaimRow).where(
                    SlotClaimRow.appointment_id == appointment_id,
                    SlotClaimRow.interval_start == as_utc(start),
                )
            )

    async def set_status(
        self,
        appointment_id: str,
        expected: AppointmentStatus,
        new: AppointmentStatus,
    ) -> bool:
        """
        Update appointment status if it still has the expected value.

        Cancelling also deletes the appointment's slot claims.

        Returns:
            True if update successful, False otherwise
        """
        async with self.transaction() as session:
            result = await session.execute(
                update(AppointmentRow)
                .where(
                    AppointmentRow.id == appointment_id,
                    AppointmentRow.status == expected.value,
                )
                .values(status=new.value, updated_at=utcnow())
            )
            if result.rowcount == 0:
                return False
            if new == AppointmentStatus.CANCELLED:
                await session.execute(
                    delete(SlotClaimRow).where(SlotClaimRow.appointment_id == appointment_id)
                )

        logger.info(f"Updated appointment {appointment_id} status to {new.value}")
        return True

    async def move(
        self,
        appointment_id: str,
        expected_start: datetime,
        new_start: datetime,
    ) -> bool:
        async with self.transaction() as session:
            result = await session.execute(
                update(AppointmentRow)
                .where(
                    AppointmentRow.id == appointment_id,
                    AppointmentRow.status == AppointmentStatus.UPCOMING.value,
                    AppointmentRow.scheduled_at == as_utc(expected_start),
                )
                .values(scheduled_at=as_utc(new_start), updated_at=utcnow())
            )
            return result.rowcount > 0


class WaitlistRepository(BaseRepository):
    """Repository for waitlist request database operations."""

    async def insert(self, request: WaitlistRequest) -> None:
        async with self.transaction() as session:
            session.add(
                WaitlistRequestRow(
                    id=request.id,
                    user_id=request.user_id,
                    venue_id=request.venue_id,
                    service_id=request.service_id,
                    preferred_date=request.preferred_date,
                    preferred_time_range=request.preferred_time_range.value,
                    status=request.status.value,
                    created_at=request.created_at or utcnow(),
                    notified_at=request.notified_at,
                    appointment_id=request.appointment_id,
                )
            )
        logger.info(f"Created waitlist request {request.id} for user {request.user_id}")

    async def get(self, request_id: str) -> Optional[WaitlistRequest]:
        async with self.transaction() as session:
            row = await session.get(WaitlistRequestRow, request_id)
            return _to_waitlist_request(row) if row else None

    async def list_for_user(self, user_id: str) -> List[WaitlistRequest]:
        async with self.transaction() as session:
            result = await session.execute(
                select(WaitlistRequestRow)
                .where(WaitlistRequestRow.user_id == user_id)
                .order_by(WaitlistRequestRow.preferred_date, WaitlistRequestRow.created_at)
            )
            return [_to_waitlist_request(row) for row in result.scalars()]

    async def list_by_status(self, status: WaitlistStatus) -> List[WaitlistRequest]:
        async with self.transaction() as session:
            result = await session.execute(
                select(WaitlistRequestRow)
                .where(WaitlistRequestRow.status == status.value)
                .order_by(WaitlistRequestRow.created_at)
            )
            return [_to_waitlist_request(row) for row in result.scalars()]

    async def list_for_date(
        self,
        venue_id: str,
        service_id: str,
        preferred_date: date,
    ) -> List[WaitlistRequest]:
        async with self.transaction() as session:
            result = await session.execute(
                select(WaitlistRequestRow)
                .where(
                    WaitlistRequestRow.venue_id == venue_id,
                    WaitlistRequestRow.service_id == service_id,
                    WaitlistRequestRow.preferred_date == preferred_date,
                )
                .order_by(WaitlistRequestRow.created_at)
            )
            return [_to_waitlist_request(row) for row in result.scalars()]

    async def set_status(
        self,
        request_id: str,
        expected: WaitlistStatus,
        new: WaitlistStatus,
        appointment_id: Optional[str] = None,
    ) -> bool:
        values = {"status": new.value}
        if appointment_id:
            values["appointment_id"] = appointment_id

        async with self.transaction() as session:
            result = await session.execute(
                update(WaitlistRequestRow)
                .where(
                    WaitlistRequestRow.id == request_id,
                    WaitlistRequestRow.status == expected.value,
                )
                .values(**values)
            )
            success = result.rowcount > 0

        if success:
            logger.info(f"Updated waitlist request {request_id} status to {new.value}")
        return success

    async def mark_notified(self, request_id: str, notified_at: datetime) -> None:
        async with self.transaction() as session:
            await session.execute(
                update(WaitlistRequestRow)
                .where(WaitlistRequestRow.id == request_id)
                .values(notified_at=as_utc(notified_at))
            )
