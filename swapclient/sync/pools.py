"""
RoscaPoolsService - public pool listings (not entity scoped).

The default ("joinable") listing is local-first; other scopes always go
to the network and are never mirrored.
"""

from loguru import logger

from swapclient.datastore.repositories import RoscaRepository
from swapclient.models import RoscaFriend, RoscaPool, RoscaPoolDetails
from swapclient.services.client import ApiClient
from swapclient.settings import Settings, global_settings
from swapclient.sync import paths, query_keys
from swapclient.sync.local_first import LocalFirstReader, LocalFirstSource
from swapclient.sync.parsing import parse_api_object, parse_models
from swapclient.sync.query_cache import QueryCache

POOLS_STALE_TIME = 600
POOL_DETAILS_STALE_TIME = 300
FRIENDS_STALE_TIME = 120


def _require_id(value: str, name: str) -> str:
    if not value or not value.strip():
        raise ValueError(f"{name} is required")
    return value


class RoscaPoolsService:
    """
    Usage:
        pools = RoscaPoolsService(client, repository, queries)
        joinable = await pools.get_pools()
        upcoming = await pools.get_pools(scope="upcoming", months=3)
    """

    def __init__(
        self,
        client: ApiClient,
        repository: RoscaRepository,
        query_cache: QueryCache,
        reader: LocalFirstReader | None = None,
        settings: Settings | None = None,
    ):
        self._client = client
        self._repository = repository
        self._queries = query_cache
        self._reader = reader or LocalFirstReader(query_cache)
        self._settings = settings or global_settings

    @property
    def reader(self) -> LocalFirstReader:
        return self._reader

    async def get_pools(
        self,
        scope: str | None = None,
        months: int | None = None,
        sort: str | None = None,
    ) -> list[RoscaPool]:
        key = query_keys.rosca_pools(scope, months, sort)

        async def fetch_remote() -> list[RoscaPool]:
            params = {"scope": scope, "months": months, "sort": sort}
            response = await self._client.get(
                paths.POOLS, params={k: v for k, v in params.items() if v is not None}
            )
            return parse_models(response.data, RoscaPool, "rosca-pools")

        async def load() -> list[RoscaPool]:
            logger.debug(f"Fetching pools with scope: {scope or 'joinable'}")
            if scope not in (None, "joinable"):
                return await fetch_remote()
            return await self._reader.read(
                LocalFirstSource(
                    name="pools",
                    key=key,
                    load_local=self._repository.get_pools,
                    save_local=self._repository.save_pools,
                    fetch_remote=fetch_remote,
                    sync_delay=self._settings.pools_sync_delay_seconds,
                )
            )

        return await self._queries.fetch_query(key, load, stale_time=POOLS_STALE_TIME)

    async def get_pool_details(self, pool_id: str) -> RoscaPoolDetails:
        _require_id(pool_id, "pool_id")

        async def load() -> RoscaPoolDetails:
            logger.debug(f"Fetching pool details: {pool_id}")
            response = await self._client.get(paths.pool_details(pool_id))
            return RoscaPoolDetails.model_validate(parse_api_object(response.data, "rosca-pool"))

        return await self._queries.fetch_query(
            query_keys.rosca_pool_details(pool_id), load, stale_time=POOL_DETAILS_STALE_TIME
        )

    async def get_friends(self, enrollment_id: str, entity_id: str) -> list[RoscaFriend]:
        """Contacts enrolled in the same pool."""
        _require_id(enrollment_id, "enrollment_id")
        _require_id(entity_id, "entity_id")

        async def load() -> list[RoscaFriend]:
            response = await self._client.get(
                paths.enrollment_friends(enrollment_id), params={"entityId": entity_id}
            )
            return parse_models(response.data, RoscaFriend, "rosca-friends")

        return await self._queries.fetch_query(
            query_keys.rosca_friends(enrollment_id), load, stale_time=FRIENDS_STALE_TIME
        )
