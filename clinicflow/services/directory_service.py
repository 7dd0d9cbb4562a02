"""Read-only access to doctor and patient profiles."""

from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.config import settings
from clinicflow.core.redis_client import CacheManager
from clinicflow.models.doctors import doctors
from clinicflow.models.patients import patients
from clinicflow.services.base_store import BoundedStore

SUMMARY_COLUMNS = (
    doctors.c.id,
    doctors.c.full_name,
    doctors.c.specialization,
    doctors.c.experience_years,
    doctors.c.rating,
    doctors.c.image_url,
)


class DirectoryService(BoundedStore):
    """Profile lookups used for booking snapshots and suggestions."""

    def __init__(
        self,
        db: AsyncSession,
        cache_manager: CacheManager | None = None,
        timeout: float | None = None,
        read_retries: int | None = None,
    ):
        """Initialize service with database session and optional cache manager."""
        super().__init__(db, timeout=timeout, read_retries=read_retries)
        self.cache = cache_manager

    @staticmethod
    def _get_doctor_cache_key(doctor_id: str) -> str:
        """Generate cache key for doctor."""
        return f"doctor:{doctor_id}"

    @staticmethod
    def _get_alternatives_cache_key(
        specialization: str,
        exclude_doctor_id: str | None,
        limit: int,
    ) -> str:
        """Generate cache key for an alternative-doctor list."""
        return (
            f"doctor:alternatives:{specialization.lower()}:{exclude_doctor_id or '-'}:{limit}"
        )

    async def get_doctor(self, doctor_id: str) -> dict[str, Any] | None:
        """Get doctor by ID with caching."""
        if self.cache:
            cached = await self.cache.get_json(self._get_doctor_cache_key(doctor_id))
            if cached:
                return cached

        async def work() -> dict[str, Any] | None:
            result = await self.db.execute(select(doctors).where(doctors.c.id == doctor_id))
            doctor = result.mappings().first()
            return dict(doctor) if doctor else None

        doctor_dict = await self._read("get_doctor", work)
        if doctor_dict is None:
            return None

        if self.cache:
            await self.cache.set_json(
                self._get_doctor_cache_key(doctor_id),
                doctor_dict,
                ttl=settings.doctor_cache_ttl_seconds,
            )

        return doctor_dict

    async def get_patient(self, patient_id: str) -> dict[str, Any] | None:
        """Get patient profile by ID."""

        async def work() -> dict[str, Any] | None:
            result = await self.db.execute(select(patients).where(patients.c.id == patient_id))
            patient = result.mappings().first()
            return dict(patient) if patient else None

        return await self._read("get_patient", work)

    async def find_doctors_by_specialization(
        self,
        specialization: str,
        exclude_doctor_id: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """
        Find active doctors sharing a specialization.

        Args:
            specialization: Specialization to match
            exclude_doctor_id: Doctor to leave out (usually the one requested)
            limit: Maximum number of doctors to return

        Returns:
            Doctor summaries ordered by rating
        """
        limit = limit or settings.alternative_doctors_limit
        cache_key = self._get_alternatives_cache_key(specialization, exclude_doctor_id, limit)
        if self.cache:
            cached = await self.cache.get_json(cache_key)
            if cached is not None:
                return cached

        conditions = [
            doctors.c.specialization == specialization,
            doctors.c.is_active.is_(True),
        ]
        if exclude_doctor_id:
            conditions.append(doctors.c.id != exclude_doctor_id)

        query = (
            select(*SUMMARY_COLUMNS)
            .where(*conditions)
            .order_by(doctors.c.rating.desc(), doctors.c.full_name.asc())
            .limit(limit)
        )

        async def work() -> list[dict[str, Any]]:
            result = await self.db.execute(query)
            return [dict(row) for row in result.mappings().all()]

        rows = await self._read("find_doctors_by_specialization", work)

        if self.cache:
            await self.cache.set_json(cache_key, rows, ttl=settings.doctor_cache_ttl_seconds)

        return rows
