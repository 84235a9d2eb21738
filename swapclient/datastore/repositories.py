"""
Local repositories - persisted mirror of list resources.
"""

import json
import time
from typing import Callable, TypeVar

from loguru import logger
from pydantic import BaseModel, ValidationError
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from swapclient.datastore.models import (
    RoscaEnrollmentCacheDB,
    RoscaPaymentCacheDB,
    RoscaPoolCacheDB,
    SyncTimestampDB,
)
from swapclient.models import RoscaEnrollment, RoscaPayment, RoscaPool

M = TypeVar("M", bound=BaseModel)

POOLS_SYNC_KEY = "rosca_pools_last_sync"
ENROLLMENTS_SYNC_PREFIX = "rosca_enrollments_last_sync_"


def _dump(model: BaseModel) -> str:
    return json.dumps(model.model_dump(by_alias=True, mode="json"), ensure_ascii=False)


def _load(model_cls: type[M], raw: str, row_id: str) -> M | None:
    try:
        return model_cls.model_validate(json.loads(raw))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.warning(f"Dropping unreadable cached {model_cls.__name__} {row_id}: {e}")
        return None


class SyncTimestampRepository:
    """Per-resource last-sync timestamps."""

    def __init__(self, session: AsyncSession, clock: Callable[[], float] = time.time):
        self.session = session
        self._clock = clock

    async def get(self, key: str) -> float | None:
        row = await self.session.get(SyncTimestampDB, key)
        return row.synced_at if row else None

    async def touch(self, key: str) -> float:
        now = self._clock()
        await self.session.merge(SyncTimestampDB(key=key, synced_at=now))
        return now

    async def clear(self, key: str) -> None:
        await self.session.execute(delete(SyncTimestampDB).where(SyncTimestampDB.key == key))


class RoscaRepository:
    """
    Local mirror for pools, enrollments (entity isolated) and payments.

    Usage:
        repo = RoscaRepository(get_session_factory())
        pools = await repo.get_pools()
        await repo.save_enrollments(enrollments, entity_id)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], float] = time.time,
    ):
        self._session_factory = session_factory
        self._clock = clock

    # Pools

    async def get_pools(self) -> list[RoscaPool]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(RoscaPoolCacheDB).order_by(RoscaPoolCacheDB.position)
            )
            rows = result.scalars().all()

        pools = [pool for row in rows if (pool := _load(RoscaPool, row.data, row.id))]
        logger.debug(f"Loaded {len(pools)} pools from local cache")
        return pools

    async def save_pools(self, pools: list[RoscaPool]) -> None:
        """Replace all cached pools. An empty list clears the cache."""
        async with self._session_factory() as session, session.begin():
            await session.execute(delete(RoscaPoolCacheDB))
            for position, pool in enumerate(pools):
                session.add(RoscaPoolCacheDB(id=pool.id, position=position, data=_dump(pool)))
            await SyncTimestampRepository(session, self._clock).touch(POOLS_SYNC_KEY)

        logger.info(f"Replaced local pools cache with {len(pools)} pools")

    async def get_pools_cache_timestamp(self) -> float | None:
        async with self._session_factory() as session:
            return await SyncTimestampRepository(session).get(POOLS_SYNC_KEY)

    async def clear_pools_cache_timestamp(self) -> None:
        async with self._session_factory() as session, session.begin():
            await SyncTimestampRepository(session).clear(POOLS_SYNC_KEY)
        logger.debug("Cleared pools cache timestamp")

    # Enrollments

    async def get_enrollments(self, entity_id: str) -> list[RoscaEnrollment]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(RoscaEnrollmentCacheDB)
                .where(RoscaEnrollmentCacheDB.entity_id == entity_id)
                .order_by(RoscaEnrollmentCacheDB.joined_at.desc())
            )
            rows = result.scalars().all()

        enrollments = [
            enrollment for row in rows if (enrollment := _load(RoscaEnrollment, row.data, row.id))
        ]
        logger.debug(f"Loaded {len(enrollments)} enrollments for entity {entity_id} from local cache")
        return enrollments

    async def get_enrollment_by_id(self, enrollment_id: str) -> RoscaEnrollment | None:
        async with self._session_factory() as session:
            row = await session.get(RoscaEnrollmentCacheDB, enrollment_id)
        return _load(RoscaEnrollment, row.data, row.id) if row else None

    async def save_enrollments(self, enrollments: list[RoscaEnrollment], entity_id: str) -> None:
        """Insert or replace enrollments for an entity."""
        if not enrollments:
            logger.debug("No enrollments to save")
            return

        async with self._session_factory() as session, session.begin():
            for enrollment in enrollments:
                await session.merge(
                    RoscaEnrollmentCacheDB(
                        id=enrollment.id,
                        entity_id=entity_id,
                        joined_at=enrollment.joined_at,
                        data=_dump(enrollment),
                    )
                )
            await SyncTimestampRepository(session, self._clock).touch(
                f"{ENROLLMENTS_SYNC_PREFIX}{entity_id}"
            )

        logger.info(f"Saved {len(enrollments)} enrollments for entity {entity_id}")

    async def get_enrollments_cache_timestamp(self, entity_id: str) -> float | None:
        async with self._session_factory() as session:
            return await SyncTimestampRepository(session).get(f"{ENROLLMENTS_SYNC_PREFIX}{entity_id}")

    async def clear_enrollments_cache_timestamp(self, entity_id: str) -> None:
        async with self._session_factory() as session, session.begin():
            await SyncTimestampRepository(session).clear(f"{ENROLLMENTS_SYNC_PREFIX}{entity_id}")
        logger.debug(f"Cleared enrollments cache timestamp for entity {entity_id}")

    async def clear_enrollments(self, entity_id: str) -> None:
        async with self._session_factory() as session, session.begin():
            await session.execute(
                delete(RoscaEnrollmentCacheDB).where(RoscaEnrollmentCacheDB.entity_id == entity_id)
            )
        logger.info(f"Cleared enrollments for entity {entity_id}")

    # Payments

    async def get_payments(self, enrollment_id: str) -> list[RoscaPayment]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(RoscaPaymentCacheDB)
                .where(RoscaPaymentCacheDB.enrollment_id == enrollment_id)
                .order_by(RoscaPaymentCacheDB.due_date.desc())
            )
            rows = result.scalars().all()
        return [payment for row in rows if (payment := _load(RoscaPayment, row.data, row.id))]

    async def save_payments(self, payments: list[RoscaPayment]) -> None:
        if not payments:
            return

        async with self._session_factory() as session, session.begin():
            for payment in payments:
                await session.merge(
                    RoscaPaymentCacheDB(
                        id=payment.id,
                        enrollment_id=payment.enrollment_id,
                        due_date=payment.due_date,
                        data=_dump(payment),
                    )
                )
        logger.debug(f"Saved {len(payments)} payments to local cache")
