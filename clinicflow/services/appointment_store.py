"""Appointment store: the only component that mutates appointment rows.

Slot exclusivity is enforced by the ``uq_appointments_active_slot`` partial unique
index, so a write that loses a booking race is rejected by the database itself.
Status changes are compare-and-swap updates guarded on the expected current status.
Every call is bounded by ``STORE_TIMEOUT_SECONDS``; reads may be retried, writes never.
"""

from datetime import UTC, date, datetime
from typing import Any
from uuid import uuid4

import structlog
from sqlalchemy import and_, func, insert, select, update
from sqlalchemy.exc import IntegrityError

from clinicflow.core.exceptions import (
    NotFoundError,
    PolicyViolation,
    SchedulingConflict,
    ValidationError,
)
from clinicflow.models.appointments import appointments
from clinicflow.schemas.appointments import AppointmentStatus
from clinicflow.services.base_store import BoundedStore

logger = structlog.get_logger(__name__)

SLOT_INDEX_NAME = "uq_appointments_active_slot"
SLOT_TAKEN_MESSAGE = "This slot is already booked. Please choose another slot."


def new_appointment_id() -> str:
    """Generate a globally unique appointment id."""
    return f"apt_{uuid4().hex}"


def is_slot_violation(exc: IntegrityError) -> bool:
    """Whether an integrity error comes from the active-slot unique index."""
    message = str(exc.orig)
    return SLOT_INDEX_NAME in message or (
        "UNIQUE constraint failed" in message and "appointments.doctor_id" in message
    )


class AppointmentStore(BoundedStore):
    """Persistence operations for appointment records."""

    # Reads

    async def get(self, appointment_id: str) -> dict[str, Any] | None:
        """
        Get appointment by ID.

        Args:
            appointment_id: Appointment ID

        Returns:
            Appointment row or None
        """

        async def work() -> dict[str, Any] | None:
            return await self._fetch(appointment_id)

        return await self._read("get", work)

    async def find_active_in_slot(
        self,
        doctor_id: str,
        day: date,
        time: str,
        exclude_appointment_id: str | None = None,
    ) -> dict[str, Any] | None:
        """Find the scheduled appointment holding a slot, if any."""
        conditions = [
            appointments.c.doctor_id == doctor_id,
            appointments.c.date == day,
            appointments.c.time == time,
            appointments.c.status == AppointmentStatus.SCHEDULED.value,
        ]
        if exclude_appointment_id:
            conditions.append(appointments.c.id != exclude_appointment_id)

        async def work() -> dict[str, Any] | None:
            result = await self.db.execute(select(appointments).where(and_(*conditions)))
            row = result.mappings().first()
            return dict(row) if row else None

        return await self._read("find_active_in_slot", work)

    async def booked_times(self, doctor_id: str, day: date) -> set[str]:
        """Times already claimed by scheduled appointments of a doctor on a day."""

        async def work() -> set[str]:
            result = await self.db.execute(
                select(appointments.c.time).where(
                    appointments.c.doctor_id == doctor_id,
                    appointments.c.date == day,
                    appointments.c.status == AppointmentStatus.SCHEDULED.value,
                )
            )
            return set(result.scalars().all())

        return await self._read("booked_times", work)

    async def list_appointments(
        self,
        *,
        doctor_id: str | None = None,
        patient_id: str | None = None,
        status: AppointmentStatus | None = None,
        from_date: date | None = None,
        to_date: date | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[int, list[dict[str, Any]]]:
        """
        List appointments with filtering and pagination.

        Returns:
            Tuple of (total matching rows, rows on the requested page)
        """
        conditions = []
        if doctor_id:
            conditions.append(appointments.c.doctor_id == doctor_id)
        if patient_id:
            conditions.append(appointments.c.patient_id == patient_id)
        if status:
            conditions.append(appointments.c.status == status.value)
        if from_date:
            conditions.append(appointments.c.date >= from_date)
        if to_date:
            conditions.append(appointments.c.date <= to_date)

        async def work() -> tuple[int, list[dict[str, Any]]]:
            count_stmt = select(func.count()).select_from(appointments).where(*conditions)
            total = (await self.db.execute(count_stmt)).scalar() or 0

            stmt = (
                select(appointments)
                .where(*conditions)
                .order_by(appointments.c.date.asc(), appointments.c.time.asc())
                .limit(page_size)
                .offset((page - 1) * page_size)
            )
            result = await self.db.execute(stmt)
            return total, [dict(row) for row in result.mappings().all()]

        return await self._read("list_appointments", work)

    # Writes

    async def insert(self, values: dict[str, Any]) -> dict[str, Any]:
        """
        Insert a new appointment.

        Raises:
            SchedulingConflict: If the slot is already held by a scheduled appointment
        """
        row_values = self._new_row(values)

        async def work() -> dict[str, Any]:
            await self.db.execute(insert(appointments).values(**row_values))
            row = await self._fetch(row_values["id"])
            await self.db.commit()
            return row

        try:
            return await self._execute("insert", work)
        except IntegrityError as e:
            await self._rollback()
            raise self._integrity_failure(e) from e

    async def transition(
        self,
        appointment_id: str,
        expected: AppointmentStatus,
        values: dict[str, Any],
    ) -> dict[str, Any]:
        """
        Apply a status change only if the record is still in ``expected``.

        Raises:
            NotFoundError: If the appointment does not exist
            PolicyViolation: If the record is no longer in the expected status
        """

        async def work() -> dict[str, Any]:
            await self._compare_and_set(appointment_id, expected, values)
            row = await self._fetch(appointment_id)
            await self.db.commit()
            return row

        return await self._execute("transition", work)

    async def supersede(
        self,
        appointment_id: str,
        old_values: dict[str, Any],
        new_values: dict[str, Any],
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        """
        Retire a scheduled appointment and insert its successor atomically.

        The predecessor leaves the active set before the successor claims its slot,
        so a record may be moved onto the slot it currently holds.

        Returns:
            Tuple of (updated predecessor, inserted successor)
        """
        row_values = self._new_row(new_values)

        async def work() -> tuple[dict[str, Any], dict[str, Any]]:
            await self._compare_and_set(appointment_id, AppointmentStatus.SCHEDULED, old_values)
            await self.db.execute(insert(appointments).values(**row_values))
            old_row = await self._fetch(appointment_id)
            new_row = await self._fetch(row_values["id"])
            await self.db.commit()
            return old_row, new_row

        try:
            return await self._execute("supersede", work)
        except IntegrityError as e:
            await self._rollback()
            raise self._integrity_failure(e) from e

    # Internals

    @staticmethod
    def _new_row(values: dict[str, Any]) -> dict[str, Any]:
        now = datetime.now(UTC)
        return {
            "id": new_appointment_id(),
            "created_at": now,
            "updated_at": now,
            **values,
        }

    async def _fetch(self, appointment_id: str) -> dict[str, Any] | None:
        result = await self.db.execute(
            select(appointments).where(appointments.c.id == appointment_id)
        )
        row = result.mappings().first()
        return dict(row) if row else None

    async def _compare_and_set(
        self,
        appointment_id: str,
        expected: AppointmentStatus,
        values: dict[str, Any],
    ) -> None:
        stmt = (
            update(appointments)
            .where(
                appointments.c.id == appointment_id,
                appointments.c.status == expected.value,
            )
            .values(**values, updated_at=datetime.now(UTC))
        )
        result = await self.db.execute(stmt)
        if result.rowcount == 1:
            return

        current = await self._fetch(appointment_id)
        await self.db.rollback()
        if current is None:
            raise NotFoundError("Appointment not found")

        logger.info(
            "appointment_transition_rejected",
            appointment_id=appointment_id,
            expected=expected.value,
            current=current["status"],
        )
        raise PolicyViolation(f"Appointment is already {current['status']}")

    @staticmethod
    def _integrity_failure(exc: IntegrityError) -> Exception:
        if is_slot_violation(exc):
            logger.info("slot_claim_rejected_by_store")
            return SchedulingConflict(SLOT_TAKEN_MESSAGE)

        logger.error("appointment_constraint_violation", error=str(exc.orig))
        return ValidationError("Appointment rejected by store constraints")
