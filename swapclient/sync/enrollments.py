"""
RoscaEnrollmentsService - the active entity's enrollments, payment history
and the join / pay mutations.

Enrollment lists are local-first and isolated per entity. Background syncs
are dropped when the active profile changes while they are pending.
"""

import math

from loguru import logger

from swapclient.datastore.repositories import RoscaRepository
from swapclient.models import (
    JoinPoolDto,
    MakePaymentDto,
    MakePaymentResponse,
    RoscaEnrollment,
    RoscaEnrollmentDetails,
    RoscaPayment,
)
from swapclient.services.client import ApiClient
from swapclient.settings import Settings, global_settings
from swapclient.sync import paths, query_keys
from swapclient.sync.local_first import LocalFirstReader, LocalFirstSource
from swapclient.sync.mutations import MutationOutcome, OptimisticMutation
from swapclient.sync.parsing import parse_api_object, parse_models
from swapclient.sync.profile import ProfileContext
from swapclient.sync.query_cache import QueryCache

DETAILS_STALE_TIME = 120
PAYMENTS_STALE_TIME = 120

_INVALID_IDS = {"", "undefined", "null"}


def apply_payment(enrollments: list[RoscaEnrollment], dto: MakePaymentDto) -> list[RoscaEnrollment]:
    """
    Optimistic estimate of a payment. Returns a new list; the input is untouched.

    The server decides the real periods covered and next due date.
    """
    updated = []
    for enrollment in enrollments:
        if enrollment.id == dto.enrollment_id:
            periods = 0
            if enrollment.contribution_amount > 0:
                periods = math.floor(dto.amount / enrollment.contribution_amount)
            enrollment = enrollment.model_copy(
                update={
                    "total_contributed": enrollment.total_contributed + dto.amount,
                    "contributions_count": enrollment.contributions_count + periods,
                }
            )
        updated.append(enrollment)
    return updated


class RoscaEnrollmentsService:
    """
    Usage:
        enrollments = RoscaEnrollmentsService(client, repository, queries, profiles)
        items = await enrollments.get_enrollments(profiles.entity_id)

        await enrollments.make_payment(MakePaymentDto(enrollment_id="e1", amount=50))
    """

    def __init__(
        self,
        client: ApiClient,
        repository: RoscaRepository,
        query_cache: QueryCache,
        profiles: ProfileContext,
        reader: LocalFirstReader | None = None,
        settings: Settings | None = None,
    ):
        self._client = client
        self._repository = repository
        self._queries = query_cache
        self._profiles = profiles
        self._reader = reader or LocalFirstReader(query_cache)
        self._settings = settings or global_settings

    @property
    def reader(self) -> LocalFirstReader:
        return self._reader

    # Queries

    async def get_enrollments(self, entity_id: str) -> list[RoscaEnrollment]:
        if (entity_id or "").strip() in _INVALID_IDS:
            logger.debug(f"Skipping enrollments: invalid entity id {entity_id!r}")
            return []
        if self._profiles.is_switching or self._profiles.entity_id is None:
            logger.debug("Skipping enrollments: no active profile or switch in progress")
            return []

        key = query_keys.rosca_enrollments_by_entity(entity_id)

        async def fetch_remote() -> list[RoscaEnrollment]:
            response = await self._client.get(paths.ENROLLMENTS, params={"entityId": entity_id})
            return parse_models(response.data, RoscaEnrollment, "rosca-enrollments")

        async def save_local(items: list[RoscaEnrollment]) -> None:
            await self._repository.save_enrollments(items, entity_id)

        source = LocalFirstSource(
            name="enrollments",
            key=key,
            load_local=lambda: self._repository.get_enrollments(entity_id),
            save_local=save_local,
            fetch_remote=fetch_remote,
            sync_delay=self._settings.enrollments_sync_delay_seconds,
            max_age=self._settings.enrollments_max_age_seconds,
            cache_timestamp=lambda: self._repository.get_enrollments_cache_timestamp(entity_id),
            can_apply=lambda: self._profiles.can_apply(entity_id),
        )

        # Fresh until invalidated; the background sync keeps it current
        return await self._queries.fetch_query(
            key, lambda: self._reader.read(source), stale_time=math.inf
        )

    async def get_enrollment_details(self, enrollment_id: str) -> RoscaEnrollmentDetails:
        if not enrollment_id or not enrollment_id.strip():
            raise ValueError("enrollment_id is required")

        async def load() -> RoscaEnrollmentDetails:
            logger.debug(f"Fetching enrollment details for: {enrollment_id}")
            response = await self._client.get(paths.enrollment_details(enrollment_id))
            return RoscaEnrollmentDetails.model_validate(
                parse_api_object(response.data, "rosca-enrollment")
            )

        return await self._queries.fetch_query(
            query_keys.rosca_enrollment_details(enrollment_id), load, stale_time=DETAILS_STALE_TIME
        )

    async def get_payment_history(self, enrollment_id: str) -> list[RoscaPayment]:
        if not enrollment_id or not enrollment_id.strip():
            raise ValueError("enrollment_id is required")

        key = query_keys.rosca_payments(enrollment_id)

        async def fetch_remote() -> list[RoscaPayment]:
            response = await self._client.get(paths.enrollment_payments(enrollment_id))
            return parse_models(response.data, RoscaPayment, "rosca-payments")

        source = LocalFirstSource(
            name="payments",
            key=key,
            load_local=lambda: self._repository.get_payments(enrollment_id),
            save_local=self._repository.save_payments,
            fetch_remote=fetch_remote,
            sync_delay=self._settings.enrollments_sync_delay_seconds,
        )
        return await self._queries.fetch_query(
            key, lambda: self._reader.read(source), stale_time=PAYMENTS_STALE_TIME
        )

    # Mutations

    async def join_pool(self, dto: JoinPoolDto) -> RoscaEnrollment:
        """Join a pool. The new enrollment is appended to the cached list."""
        entity_id = self._require_entity()
        logger.debug(f"Joining pool: {dto.pool_id}")

        try:
            response = await self._client.post(
                paths.ENROLLMENTS, json=dto.to_wire(exclude_none=True), params={"entityId": entity_id}
            )
        except Exception as e:
            logger.error(f"Failed to join pool {dto.pool_id}: {e}")
            raise
        enrollment = RoscaEnrollment.model_validate(parse_api_object(response.data, "rosca-join"))

        key = query_keys.rosca_enrollments_by_entity(entity_id)
        current = self._queries.get_query_data(key) or []
        self._queries.set_query_data(key, [*current, enrollment])

        try:
            await self._repository.save_enrollments([enrollment], entity_id)
        except Exception as e:
            logger.warning(f"Failed to save joined enrollment to local cache: {e}")

        # Member counts and available slots changed
        self._queries.invalidate(query_keys.rosca_pools())
        try:
            await self._repository.clear_pools_cache_timestamp()
        except Exception as e:
            logger.warning(f"Failed to clear pools cache timestamp: {e}")

        logger.debug("Updated enrollments and invalidated pools cache")
        return enrollment

    async def make_payment(self, dto: MakePaymentDto) -> MakePaymentResponse:
        """Pay with an optimistic update. Raises after rolling back on failure."""
        return await self._payment_mutation(self._require_entity()).mutate(dto)

    async def submit_payment(self, dto: MakePaymentDto) -> MutationOutcome:
        """Like make_payment, but returns Applied or RolledBack instead of raising."""
        return await self._payment_mutation(self._require_entity()).run(dto)

    def _payment_mutation(self, entity_id: str) -> OptimisticMutation[MakePaymentDto, MakePaymentResponse]:
        async def submit(dto: MakePaymentDto) -> MakePaymentResponse:
            logger.debug(f"Making payment for enrollment: {dto.enrollment_id}")
            response = await self._client.post(
                paths.PAYMENTS, json=dto.to_wire(exclude_none=True), params={"entityId": entity_id}
            )
            return MakePaymentResponse.model_validate(parse_api_object(response.data, "rosca-payment"))

        return OptimisticMutation(
            name="make_payment",
            query_cache=self._queries,
            key_fn=lambda dto: query_keys.rosca_enrollments_by_entity(entity_id),
            mutation_fn=submit,
            reducer=apply_payment,
            invalidates=lambda dto: [
                query_keys.rosca_enrollment_details(dto.enrollment_id),
                query_keys.rosca_payments(dto.enrollment_id),
                query_keys.balances_by_entity(entity_id),
            ],
        )

    def _require_entity(self) -> str:
        entity_id = self._profiles.entity_id
        if not entity_id:
            raise ValueError("No entity ID available")
        return entity_id
