"""FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.core.redis_client import CacheManager, get_redis_client
from clinicflow.core.security import decode_access_token
from clinicflow.database import get_db
from clinicflow.schemas.auth import Actor
from clinicflow.services.appointment_store import AppointmentStore
from clinicflow.services.availability_service import AvailabilityChecker
from clinicflow.services.directory_service import DirectoryService
from clinicflow.services.event_publisher import EventPublisher
from clinicflow.services.lifecycle_service import LifecycleManager

# Security
security = HTTPBearer()


def _credentials_error(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> Actor:
    """
    Extract the verified actor from a JWT.

    Args:
        credentials: Bearer token credentials

    Returns:
        Actor identity (``sub`` and ``role`` claims)

    Raises:
        HTTPException: If token is invalid, expired or lacks a usable role
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise _credentials_error()

    actor_id = payload.get("sub")
    if actor_id is None or not isinstance(actor_id, str):
        raise _credentials_error()

    try:
        return Actor(id=actor_id, role=payload.get("role"), email=payload.get("email"))
    except PydanticValidationError:
        raise _credentials_error("Invalid actor role")


def get_event_publisher() -> EventPublisher:
    """Get the lifecycle event publisher."""
    return EventPublisher(get_redis_client())


def get_cache_manager() -> CacheManager:
    """Get the Redis cache manager."""
    return CacheManager(get_redis_client())


# Type aliases for dependency injection
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
CurrentActor = Annotated[Actor, Depends(get_current_actor)]
Publisher = Annotated[EventPublisher, Depends(get_event_publisher)]
Cache = Annotated[CacheManager, Depends(get_cache_manager)]


def get_directory_service(db: DatabaseSession, cache: Cache) -> DirectoryService:
    """Get the doctor/patient directory."""
    return DirectoryService(db, cache)


Directory = Annotated[DirectoryService, Depends(get_directory_service)]


def get_availability_checker(db: DatabaseSession, directory: Directory) -> AvailabilityChecker:
    """Get the slot availability checker."""
    return AvailabilityChecker(AppointmentStore(db), directory)


Availability = Annotated[AvailabilityChecker, Depends(get_availability_checker)]


def get_lifecycle_manager(
    availability: Availability,
    directory: Directory,
    publisher: Publisher,
) -> LifecycleManager:
    """Get the appointment lifecycle manager."""
    return LifecycleManager(availability.store, availability, directory, publisher)


Lifecycle = Annotated[LifecycleManager, Depends(get_lifecycle_manager)]


def require_role(actor: Actor, *roles: str) -> None:
    """Reject actors whose role is not one of ``roles``."""
    if actor.role.value not in roles:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Only {' or '.join(roles)} accounts can perform this action",
        )
