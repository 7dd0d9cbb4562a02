"""Slot availability checks and remediation suggestions.

The checker only reads. Its answers are advisory: the store's unique index has the
final word when two bookings race for the same slot.
"""

from datetime import date, datetime, timedelta

import structlog

from clinicflow.config import settings
from clinicflow.schemas.appointments import (
    AppointmentRef,
    AvailabilityResult,
    DoctorSummary,
    NextAvailableSlot,
)
from clinicflow.services.appointment_store import AppointmentStore
from clinicflow.services.directory_service import DirectoryService
from clinicflow.utils.scheduling import (
    appointment_datetime,
    clinic_now,
    generate_time_slots,
    time_to_minutes,
)

logger = structlog.get_logger(__name__)


class AvailabilityChecker:
    """Answers whether a doctor's slot is free and what to offer when it is not."""

    def __init__(
        self,
        store: AppointmentStore,
        directory: DirectoryService,
        horizon_days: int | None = None,
    ):
        """Initialize checker with its read sources."""
        self.store = store
        self.directory = directory
        self.horizon_days = horizon_days or settings.slot_search_horizon_days

    async def check_availability(
        self,
        doctor_id: str,
        day: date,
        time: str,
        exclude_appointment_id: str | None = None,
    ) -> AvailabilityResult:
        """
        Check whether a slot is free.

        Args:
            doctor_id: Doctor ID
            day: Appointment date
            time: Appointment time (``HH:MM``)
            exclude_appointment_id: Appointment to ignore, used when it is being moved

        Returns:
            Availability with a reference to the conflicting appointment, if any
        """
        conflict = await self.store.find_active_in_slot(
            doctor_id, day, time, exclude_appointment_id=exclude_appointment_id
        )
        if conflict is None:
            return AvailabilityResult(available=True)

        return AvailabilityResult(
            available=False,
            conflict=AppointmentRef.model_validate(conflict),
        )

    async def find_next_available_slot(
        self,
        doctor_id: str,
        day: date,
        time: str,
        now: datetime | None = None,
    ) -> NextAvailableSlot:
        """
        Scan forward from a requested slot for the doctor's first free one.

        The rest of the requested day is searched first, then whole days up to the
        search horizon. Slots that have already started are skipped.
        """
        now = now or clinic_now()
        after_minutes = time_to_minutes(time)

        for offset in range(self.horizon_days):
            current_day = day + timedelta(days=offset)
            booked = await self.store.booked_times(doctor_id, current_day)

            for slot in generate_time_slots():
                if offset == 0 and time_to_minutes(slot) <= after_minutes:
                    continue
                if appointment_datetime(current_day, slot) <= now:
                    continue
                if slot in booked:
                    continue

                if offset == 0:
                    message = f"Next available slot: {slot}"
                else:
                    message = f"Next available slot: {current_day.isoformat()} at {slot}"
                return NextAvailableSlot(
                    available_date=current_day,
                    available_time=slot,
                    message=message,
                )

        logger.info(
            "no_slot_within_horizon",
            doctor_id=doctor_id,
            date=day.isoformat(),
            horizon_days=self.horizon_days,
        )
        return NextAvailableSlot(
            message=f"No available slots in the next {self.horizon_days} days. "
            "Please try another doctor.",
        )

    async def list_free_slots(
        self,
        doctor_id: str,
        day: date,
        now: datetime | None = None,
    ) -> list[str]:
        """Free, not yet started slots of a doctor on one day."""
        now = now or clinic_now()
        booked = await self.store.booked_times(doctor_id, day)

        return [
            slot
            for slot in generate_time_slots()
            if slot not in booked and appointment_datetime(day, slot) > now
        ]

    async def suggest_alternative_doctors(
        self,
        specialization: str | None,
        exclude_doctor_id: str | None,
    ) -> list[DoctorSummary]:
        """Other active doctors sharing the specialization."""
        if not specialization:
            return []

        rows = await self.directory.find_doctors_by_specialization(
            specialization, exclude_doctor_id=exclude_doctor_id
        )
        return [DoctorSummary.model_validate(row) for row in rows]
