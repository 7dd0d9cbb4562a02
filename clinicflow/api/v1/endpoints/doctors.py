"""Doctor schedule endpoints."""

from datetime import date

from fastapi import APIRouter, Query, status

from clinicflow.core.exceptions import NotFoundError
from clinicflow.dependencies import Availability, CurrentActor
from clinicflow.schemas.appointments import FreeSlotsResponse

router = APIRouter()


@router.get(
    "/{doctor_id}/slots",
    response_model=FreeSlotsResponse,
    status_code=status.HTTP_200_OK,
    tags=["Doctors"],
    summary="List free slots",
)
async def list_free_slots(
    doctor_id: str,
    actor: CurrentActor,
    availability: Availability,
    day: date = Query(..., alias="date"),
) -> FreeSlotsResponse:
    """
    List a doctor's free slots on a day.

    Args:
        doctor_id: Doctor ID
        actor: Authenticated caller
        availability: Availability checker
        day: Day to list

    Returns:
        Free ``HH:MM`` slots that have not started yet
    """
    doctor = await availability.directory.get_doctor(doctor_id)
    if doctor is None:
        raise NotFoundError("Doctor not found")

    slots = await availability.list_free_slots(doctor_id, day)
    return FreeSlotsResponse(doctor_id=doctor_id, date=day, slots=slots)
