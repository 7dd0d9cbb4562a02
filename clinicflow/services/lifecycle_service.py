"""Appointment lifecycle orchestration.

State machine::

    [none]    --create(paid)--> scheduled
    scheduled --reschedule----> rescheduled  (old record; successor is a new scheduled record)
    scheduled --cancel--------> cancelled
    scheduled --complete------> completed
    scheduled --mark_no_show--> missed

Every status other than ``scheduled`` is terminal. Legality of a move is decided
only by ``ensure_transition``; the store re-checks it atomically when writing.
"""

from collections.abc import Callable
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

import structlog

from clinicflow.core.exceptions import (
    AuthorizationError,
    NotFoundError,
    PolicyViolation,
    SchedulingConflict,
    ValidationError,
)
from clinicflow.schemas.appointments import (
    ActorRole,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatus,
    PaymentStatus,
    RescheduleResponse,
)
from clinicflow.schemas.auth import Actor
from clinicflow.services.appointment_store import AppointmentStore
from clinicflow.services.availability_service import AvailabilityChecker
from clinicflow.services.directory_service import DirectoryService
from clinicflow.services.event_publisher import EventPublisher, LifecycleEvent, build_event
from clinicflow.utils.scheduling import (
    can_reschedule,
    clinic_now,
    has_started,
    normalize_time,
    parse_date,
    validate_appointment_data,
    validate_payment,
    validate_slot,
)

logger = structlog.get_logger(__name__)

ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.SCHEDULED: frozenset(
        {
            AppointmentStatus.RESCHEDULED,
            AppointmentStatus.CANCELLED,
            AppointmentStatus.COMPLETED,
            AppointmentStatus.MISSED,
        }
    ),
    AppointmentStatus.RESCHEDULED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.MISSED: frozenset(),
}

DEFAULT_CANCELLATION_REASON = "No reason provided"
RESCHEDULE_CANCELLATION_REASON = "Rescheduled"

# Snapshot, payment and booking fields carried from a record to its successor
CARRIED_FIELDS = (
    "doctor_id",
    "patient_id",
    "doctor_name",
    "doctor_email",
    "doctor_specialization",
    "patient_name",
    "patient_email",
    "patient_phone",
    "type",
    "notes",
    "payment_status",
    "payment_method",
    "payment_transaction_id",
    "payment_amount",
    "payment_currency",
    "paid_at",
)


def _fee(doctor: dict[str, Any]) -> Decimal | None:
    """Doctor consultation fee, which may come back from the cache as a string."""
    fee = doctor.get("consultation_fee")
    return Decimal(str(fee)) if fee is not None else None


def ensure_transition(current: AppointmentStatus | str, target: AppointmentStatus) -> None:
    """
    Reject a status change the state machine does not allow.

    Raises:
        PolicyViolation: If ``target`` is not reachable from ``current``
    """
    current = AppointmentStatus(current)
    if current.is_terminal:
        raise PolicyViolation(f"Appointment is already {current.value}")
    if target not in ALLOWED_TRANSITIONS[current]:
        raise PolicyViolation(f"Cannot change a {current.value} appointment to {target.value}")


class LifecycleManager:
    """Orchestrates create, reschedule, cancel, complete and no-show transitions."""

    def __init__(
        self,
        store: AppointmentStore,
        availability: AvailabilityChecker,
        directory: DirectoryService,
        publisher: EventPublisher,
        clock: Callable[[], datetime] = clinic_now,
    ):
        """Initialize manager with its collaborators."""
        self.store = store
        self.availability = availability
        self.directory = directory
        self.publisher = publisher
        self.clock = clock

    # Helpers

    async def _load(self, appointment_id: str) -> dict[str, Any]:
        appointment = await self.store.get(appointment_id)
        if appointment is None:
            raise NotFoundError("Appointment not found")
        return appointment

    @staticmethod
    def _authorize(appointment: dict[str, Any], actor_id: str, actor_role: ActorRole | str) -> None:
        """Only the patient or doctor named on the record (or an admin) may act on it."""
        role = ActorRole(actor_role)
        if role is ActorRole.ADMIN:
            return
        if role is ActorRole.PATIENT and appointment["patient_id"] == actor_id:
            return
        if role is ActorRole.DOCTOR and appointment["doctor_id"] == actor_id:
            return

        logger.warning(
            "authorization_denied",
            appointment_id=appointment["id"],
            actor_id=actor_id,
            actor_role=role.value,
        )
        raise AuthorizationError("You do not have permission to modify this appointment")

    @staticmethod
    def _authorize_doctor(appointment: dict[str, Any], doctor_id: str) -> None:
        if appointment["doctor_id"] != doctor_id:
            logger.warning(
                "authorization_denied",
                appointment_id=appointment["id"],
                actor_id=doctor_id,
                actor_role=ActorRole.DOCTOR.value,
            )
            raise AuthorizationError("Only the doctor on this appointment can do this")

    async def _conflict(
        self,
        doctor_id: str,
        day: Any,
        time: str,
        specialization: str | None,
        message: str | None = None,
    ) -> SchedulingConflict:
        """Build a conflict carrying a next-slot suggestion and alternative doctors."""
        next_slot = await self.availability.find_next_available_slot(
            doctor_id, day, time, now=self.clock()
        )
        alternatives = await self.availability.suggest_alternative_doctors(
            specialization, doctor_id
        )

        logger.info(
            "slot_conflict_detected",
            doctor_id=doctor_id,
            date=day.isoformat(),
            time=time,
            next_available=next_slot.available_time,
            alternatives=len(alternatives),
        )

        next_available = None
        if next_slot.available_time is not None:
            next_available = next_slot.model_dump(mode="json")

        remediation = {
            "next_available": next_available,
            "alternatives": [doctor.model_dump(mode="json") for doctor in alternatives],
        }
        if message:
            return SchedulingConflict(message, **remediation)
        return SchedulingConflict(**remediation)

    async def _publish(self, event_type: LifecycleEvent, appointment: dict[str, Any], **fields: Any) -> None:
        await self.publisher.publish(event_type.value, build_event(event_type, appointment, **fields))

    # Operations

    async def create_appointment(
        self,
        request: AppointmentCreate,
        patient_id: str,
    ) -> AppointmentResponse:
        """
        Book a paid appointment.

        Args:
            request: Booking request
            patient_id: Verified patient identity

        Returns:
            The new scheduled appointment

        Raises:
            ValidationError: Missing/malformed slot or unconfirmed payment
            NotFoundError: Unknown doctor
            SchedulingConflict: Slot already taken, with remediation
        """
        now = self.clock()

        result = validate_appointment_data(request.model_dump(), now=now)
        if not result.valid:
            raise ValidationError(result.error)

        payment = validate_payment(request.payment_status, request.payment_method, request.payment_id)
        if not payment.valid:
            raise ValidationError(payment.error)

        day = parse_date(request.date)
        time = normalize_time(request.time)

        doctor = await self.directory.get_doctor(request.doctor_id)
        if doctor is None or not doctor.get("is_active", True):
            raise NotFoundError("Doctor not found")
        specialization = request.specialization or doctor.get("specialization")

        availability = await self.availability.check_availability(request.doctor_id, day, time)
        if not availability.available:
            raise await self._conflict(request.doctor_id, day, time, specialization)

        patient = await self.directory.get_patient(patient_id) or {}

        values = {
            "doctor_id": request.doctor_id,
            "patient_id": patient_id,
            "doctor_name": doctor.get("full_name"),
            "doctor_email": doctor.get("email"),
            "doctor_specialization": doctor.get("specialization"),
            "patient_name": patient.get("full_name"),
            "patient_email": patient.get("email"),
            "patient_phone": patient.get("phone"),
            "date": day,
            "time": time,
            "type": request.type,
            "status": AppointmentStatus.SCHEDULED.value,
            "notes": request.notes,
            "payment_status": PaymentStatus.PAID.value,
            "payment_method": request.payment_method.lower(),
            "payment_transaction_id": request.payment_id,
            "payment_amount": (
                request.payment_amount if request.payment_amount is not None else _fee(doctor)
            ),
            "payment_currency": "INR",
            "paid_at": request.transaction_time or datetime.now(UTC),
        }

        try:
            appointment = await self.store.insert(values)
        except SchedulingConflict:
            # Lost the race after the pre-check passed
            raise await self._conflict(request.doctor_id, day, time, specialization)

        logger.info(
            "appointment_created",
            appointment_id=appointment["id"],
            doctor_id=appointment["doctor_id"],
            patient_id=patient_id,
            date=day.isoformat(),
            time=time,
        )
        await self._publish(
            LifecycleEvent.CREATED,
            appointment,
            type=appointment["type"],
            status=appointment["status"],
        )

        return AppointmentResponse.model_validate(appointment)

    async def reschedule(
        self,
        appointment_id: str,
        new_date: str | None,
        new_time: str | None,
        actor_id: str,
        actor_role: ActorRole | str,
    ) -> RescheduleResponse:
        """
        Move an appointment to a new slot.

        The existing record becomes ``rescheduled`` and a new ``scheduled`` record is
        created with provenance links back to it.

        Raises:
            NotFoundError: Unknown appointment
            AuthorizationError: Actor does not own the appointment
            ValidationError: Malformed or past target slot
            PolicyViolation: Record is terminal or inside the cutoff window
            SchedulingConflict: Target slot already taken
        """
        existing = await self._load(appointment_id)
        self._authorize(existing, actor_id, actor_role)
        role = ActorRole(actor_role)
        now = self.clock()

        slot = validate_slot(new_date, new_time, now=now)
        if not slot.valid:
            raise ValidationError(slot.error)

        check = can_reschedule(existing, now=now)
        if not check.allowed:
            raise PolicyViolation(check.reason)
        ensure_transition(existing["status"], AppointmentStatus.RESCHEDULED)

        day = parse_date(new_date)
        time = normalize_time(new_time)
        specialization = existing.get("doctor_specialization")

        availability = await self.availability.check_availability(
            existing["doctor_id"], day, time, exclude_appointment_id=appointment_id
        )
        if not availability.available:
            raise await self._conflict(
                existing["doctor_id"],
                day,
                time,
                specialization,
                message="The selected time slot is no longer available. Please choose another time.",
            )

        stamp = datetime.now(UTC)
        old_values = {
            "status": AppointmentStatus.RESCHEDULED.value,
            "cancelled_by": actor_id,
            "cancelled_by_role": role.value,
            "cancellation_reason": RESCHEDULE_CANCELLATION_REASON,
            "cancelled_at": stamp,
        }
        new_values = {field: existing[field] for field in CARRIED_FIELDS}
        new_values.update(
            {
                "date": day,
                "time": time,
                "status": AppointmentStatus.SCHEDULED.value,
                "original_appointment_id": existing["id"],
                "rescheduled_from": {
                    "appointment_id": existing["id"],
                    "original_date": existing["date"].isoformat(),
                    "original_time": existing["time"],
                    "rescheduled_at": stamp.isoformat(),
                    "rescheduled_by": actor_id,
                    "rescheduled_by_role": role.value,
                },
            }
        )

        try:
            old_row, new_row = await self.store.supersede(appointment_id, old_values, new_values)
        except SchedulingConflict:
            raise await self._conflict(existing["doctor_id"], day, time, specialization)

        logger.info(
            "appointment_rescheduled",
            appointment_id=appointment_id,
            new_appointment_id=new_row["id"],
            actor_role=role.value,
        )
        await self._publish(
            LifecycleEvent.RESCHEDULED,
            new_row,
            original_appointment_id=old_row["id"],
            new_appointment_id=new_row["id"],
            old_date=old_row["date"],
            old_time=old_row["time"],
            new_date=new_row["date"],
            new_time=new_row["time"],
            rescheduled_by=actor_id,
            rescheduled_by_role=role.value,
        )

        return RescheduleResponse(
            old_appointment=AppointmentResponse.model_validate(old_row),
            new_appointment=AppointmentResponse.model_validate(new_row),
        )

    async def cancel(
        self,
        appointment_id: str,
        reason: str | None,
        actor_id: str,
        actor_role: ActorRole | str,
    ) -> AppointmentResponse:
        """
        Cancel an appointment.

        Cancelling a record that is already terminal fails with PolicyViolation
        rather than succeeding silently.
        """
        appointment = await self._load(appointment_id)
        self._authorize(appointment, actor_id, actor_role)
        ensure_transition(appointment["status"], AppointmentStatus.CANCELLED)
        role = ActorRole(actor_role)
        reason = reason or DEFAULT_CANCELLATION_REASON

        updated = await self.store.transition(
            appointment_id,
            AppointmentStatus.SCHEDULED,
            {
                "status": AppointmentStatus.CANCELLED.value,
                "cancelled_by": actor_id,
                "cancelled_by_role": role.value,
                "cancellation_reason": reason,
                "cancelled_at": datetime.now(UTC),
            },
        )

        logger.info("appointment_cancelled", appointment_id=appointment_id, actor_role=role.value)
        await self._publish(
            LifecycleEvent.CANCELLED,
            updated,
            cancelled_by=actor_id,
            cancelled_by_role=role.value,
            reason=reason,
        )

        return AppointmentResponse.model_validate(updated)

    async def complete(self, appointment_id: str, doctor_id: str) -> AppointmentResponse:
        """Mark an appointment as completed by its doctor."""
        appointment = await self._load(appointment_id)
        self._authorize_doctor(appointment, doctor_id)
        ensure_transition(appointment["status"], AppointmentStatus.COMPLETED)

        stamp = datetime.now(UTC)
        updated = await self.store.transition(
            appointment_id,
            AppointmentStatus.SCHEDULED,
            {"status": AppointmentStatus.COMPLETED.value, "completed_at": stamp},
        )

        logger.info("appointment_completed", appointment_id=appointment_id)
        await self._publish(LifecycleEvent.COMPLETED, updated, completed_at=stamp)

        return AppointmentResponse.model_validate(updated)

    async def mark_no_show(self, appointment_id: str, doctor_id: str) -> AppointmentResponse:
        """
        Mark an appointment as missed.

        Only allowed once the scheduled time has passed.
        """
        appointment = await self._load(appointment_id)
        self._authorize_doctor(appointment, doctor_id)
        ensure_transition(appointment["status"], AppointmentStatus.MISSED)

        if not has_started(appointment, now=self.clock()):
            raise PolicyViolation("Cannot mark as no-show before the appointment time")

        stamp = datetime.now(UTC)
        updated = await self.store.transition(
            appointment_id,
            AppointmentStatus.SCHEDULED,
            {
                "status": AppointmentStatus.MISSED.value,
                "no_show_marked_at": stamp,
                "no_show_marked_by": doctor_id,
            },
        )

        logger.info("appointment_missed", appointment_id=appointment_id)
        await self._publish(LifecycleEvent.MISSED, updated, marked_at=stamp, marked_by=doctor_id)

        return AppointmentResponse.model_validate(updated)

    # Reads

    async def get_appointment(self, appointment_id: str, actor: Actor) -> AppointmentResponse:
        """Get one appointment visible to the actor."""
        appointment = await self._load(appointment_id)
        self._authorize(appointment, actor.id, actor.role)
        return AppointmentResponse.model_validate(appointment)

    async def list_appointments(
        self,
        actor: Actor,
        filters: AppointmentFilters,
    ) -> AppointmentListResponse:
        """List the actor's appointments (all of them for admins)."""
        party: dict[str, str] = {}
        if actor.role is ActorRole.PATIENT:
            party["patient_id"] = actor.id
        elif actor.role is ActorRole.DOCTOR:
            party["doctor_id"] = actor.id

        total, rows = await self.store.list_appointments(
            **party,
            status=filters.status,
            from_date=filters.from_date,
            to_date=filters.to_date,
            page=filters.page,
            page_size=filters.page_size,
        )

        return AppointmentListResponse(
            total=total,
            page=filters.page,
            page_size=filters.page_size,
            items=[AppointmentResponse.model_validate(row) for row in rows],
        )
