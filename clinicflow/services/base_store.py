"""Call policy shared by services that read or write the persistent store.

Every call runs under ``STORE_TIMEOUT_SECONDS``. Driver failures and timeouts surface
as ``TransientStoreError``; reads may be retried, writes never.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from clinicflow.config import settings
from clinicflow.core.exceptions import TransientStoreError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class BoundedStore:
    """Base for services that hold a database session."""

    def __init__(
        self,
        db: AsyncSession,
        timeout: float | None = None,
        read_retries: int | None = None,
    ):
        """Initialize with database session and call policy."""
        self.db = db
        self.timeout = settings.store_timeout_seconds if timeout is None else timeout
        self.read_retries = settings.store_read_retries if read_retries is None else read_retries

    async def _rollback(self) -> None:
        try:
            await self.db.rollback()
        except Exception as e:
            logger.warning("store_rollback_failed", error=str(e))

    async def _execute(self, operation: str, work: Callable[[], Awaitable[T]]) -> T:
        """Run one store call under the configured timeout."""
        try:
            return await asyncio.wait_for(work(), timeout=self.timeout)
        except asyncio.TimeoutError:
            await self._rollback()
            logger.error("store_timeout", operation=operation, timeout=self.timeout)
            raise TransientStoreError(
                f"Store timed out during {operation}; outcome unknown"
            ) from None
        except IntegrityError:
            raise
        except DBAPIError as e:
            await self._rollback()
            logger.error("store_error", operation=operation, error=str(e))
            raise TransientStoreError(f"Store failed during {operation}") from e

    async def _read(self, operation: str, work: Callable[[], Awaitable[T]]) -> T:
        """Run a read with limited retries on transient failures."""
        attempts = 1 + max(self.read_retries, 0)
        attempt = 1
        while True:
            try:
                return await self._execute(operation, work)
            except TransientStoreError as e:
                e.retryable = True
                if attempt >= attempts:
                    raise
                logger.warning(
                    "store_read_retry",
                    operation=operation,
                    attempt=attempt,
                    error=e.message,
                )
                attempt += 1
