"""Appointment endpoints."""

from datetime import date

from fastapi import APIRouter, Query, status

from clinicflow.core.exceptions import ValidationError
from clinicflow.dependencies import Availability, CurrentActor, Lifecycle, require_role
from clinicflow.schemas.appointments import (
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatus,
    AvailabilityResponse,
    CancelRequest,
    RescheduleRequest,
    RescheduleResponse,
)
from clinicflow.utils.scheduling import clinic_now, normalize_time, parse_date, validate_slot

router = APIRouter()


@router.post(
    "/",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Appointments"],
    summary="Book appointment",
)
async def create_appointment(
    data: AppointmentCreate,
    actor: CurrentActor,
    lifecycle: Lifecycle,
) -> AppointmentResponse:
    """
    Book a paid appointment for the authenticated patient.

    A taken slot returns 409 with ``next_available`` and ``alternatives``.
    """
    require_role(actor, "patient")
    return await lifecycle.create_appointment(data, actor.id)


@router.get(
    "/",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="List appointments",
)
async def list_appointments(
    actor: CurrentActor,
    lifecycle: Lifecycle,
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
    from_date: date | None = Query(None),
    to_date: date | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> AppointmentListResponse:
    """
    List the caller's appointments.

    Patients see their own bookings, doctors see their schedule, admins see all.
    """
    filters = AppointmentFilters(
        status=status_filter,
        from_date=from_date,
        to_date=to_date,
        page=page,
        page_size=page_size,
    )
    return await lifecycle.list_appointments(actor, filters)


@router.get(
    "/availability",
    response_model=AvailabilityResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Check slot availability",
)
async def check_availability(
    actor: CurrentActor,
    availability: Availability,
    doctor_id: str = Query(...),
    date_value: str = Query(..., alias="date"),
    time_value: str = Query(..., alias="time"),
    specialization: str | None = Query(None),
) -> AvailabilityResponse:
    """
    Check whether a doctor's slot is free.

    When it is taken, the response carries the next free slot and doctors with the
    same specialization.
    """
    result = validate_slot(date_value, time_value, now=clinic_now())
    if not result.valid:
        raise ValidationError(result.error)

    day = parse_date(date_value)
    time = normalize_time(time_value)

    check = await availability.check_availability(doctor_id, day, time)
    if check.available:
        return AvailabilityResponse(doctor_id=doctor_id, date=day, time=time, available=True)

    if not specialization:
        doctor = await availability.directory.get_doctor(doctor_id)
        specialization = doctor.get("specialization") if doctor else None

    next_slot = await availability.find_next_available_slot(doctor_id, day, time)
    alternatives = await availability.suggest_alternative_doctors(specialization, doctor_id)

    return AvailabilityResponse(
        doctor_id=doctor_id,
        date=day,
        time=time,
        available=False,
        conflict_appointment_id=check.conflict.id if check.conflict else None,
        next_available=next_slot,
        alternatives=alternatives,
    )


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: str,
    actor: CurrentActor,
    lifecycle: Lifecycle,
) -> AppointmentResponse:
    """Get an appointment the caller is a party to."""
    return await lifecycle.get_appointment(appointment_id, actor)


@router.put(
    "/{appointment_id}/reschedule",
    response_model=RescheduleResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Reschedule appointment",
)
async def reschedule_appointment(
    appointment_id: str,
    data: RescheduleRequest,
    actor: CurrentActor,
    lifecycle: Lifecycle,
) -> RescheduleResponse:
    """
    Move an appointment to a new slot.

    The existing record is kept as ``rescheduled`` and a new record is returned
    alongside it.
    """
    return await lifecycle.reschedule(
        appointment_id, data.new_date, data.new_time, actor.id, actor.role
    )


@router.put(
    "/{appointment_id}/cancel",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Cancel appointment",
)
async def cancel_appointment(
    appointment_id: str,
    actor: CurrentActor,
    lifecycle: Lifecycle,
    data: CancelRequest | None = None,
) -> AppointmentResponse:
    """Cancel an appointment."""
    reason = data.reason if data else None
    return await lifecycle.cancel(appointment_id, reason, actor.id, actor.role)


@router.put(
    "/{appointment_id}/complete",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Mark appointment completed",
)
async def complete_appointment(
    appointment_id: str,
    actor: CurrentActor,
    lifecycle: Lifecycle,
) -> AppointmentResponse:
    """Mark an appointment as completed (doctor only)."""
    require_role(actor, "doctor")
    return await lifecycle.complete(appointment_id, actor.id)


@router.put(
    "/{appointment_id}/no-show",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Mark patient no-show",
)
async def mark_no_show(
    appointment_id: str,
    actor: CurrentActor,
    lifecycle: Lifecycle,
) -> AppointmentResponse:
    """Mark an appointment as missed once its time has passed (doctor only)."""
    require_role(actor, "doctor")
    return await lifecycle.mark_no_show(appointment_id, actor.id)
