"""
OptimisticMutation - cancel in-flight reads of the key, snapshot, apply a
pure reducer, call the network, roll back on error, invalidate related
queries on settle.

Outcomes are tagged:
- Applied: the network call succeeded; the optimistic value stays until
  the invalidated queries are refetched
- RolledBack: the network call failed; the snapshot was restored verbatim
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar, Union

from loguru import logger

from swapclient.sync.query_cache import QueryCache
from swapclient.sync.query_keys import QueryKey

V = TypeVar("V")
R = TypeVar("R")


@dataclass(frozen=True)
class Applied(Generic[R]):
    result: R
    snapshot: Any
    optimistic: Any


@dataclass(frozen=True)
class RolledBack:
    error: Exception
    snapshot: Any


MutationOutcome = Union[Applied[R], RolledBack]


class OptimisticMutation(Generic[V, R]):
    """
    Usage:
        make_payment = OptimisticMutation(
            name="make_payment",
            query_cache=queries,
            key_fn=lambda dto: query_keys.rosca_enrollments_by_entity(entity_id),
            mutation_fn=post_payment,
            reducer=apply_payment,
            invalidates=lambda dto: [...],
        )

        response = await make_payment.mutate(dto)   # raises after rollback
        outcome = await make_payment.run(dto)       # Applied | RolledBack
    """

    def __init__(
        self,
        name: str,
        query_cache: QueryCache,
        key_fn: Callable[[V], QueryKey],
        mutation_fn: Callable[[V], Awaitable[R]],
        reducer: Callable[[Any, V], Any] | None = None,
        invalidates: Callable[[V], list[QueryKey]] | None = None,
    ):
        self.name = name
        self._query_cache = query_cache
        self._key_fn = key_fn
        self._mutation_fn = mutation_fn
        self._reducer = reducer
        self._invalidates = invalidates

    async def run(self, variables: V) -> MutationOutcome:
        key = self._key_fn(variables)
        await self._query_cache.cancel_queries(key)
        snapshot = self._query_cache.get_query_data(key)
        optimistic = snapshot

        if snapshot is not None and self._reducer is not None:
            optimistic = self._reducer(snapshot, variables)
            self._query_cache.set_query_data(key, optimistic)
            logger.debug(f"[{self.name}] Optimistic update applied to {key}")

        try:
            result = await self._mutation_fn(variables)
        except Exception as e:
            logger.error(f"[{self.name}] Mutation failed: {e}")
            if snapshot is not None:
                self._query_cache.set_query_data(key, snapshot)
                logger.debug(f"[{self.name}] Rolled back {key}")
            return RolledBack(error=e, snapshot=snapshot)
        finally:
            self._settle(key, variables)

        return Applied(result=result, snapshot=snapshot, optimistic=optimistic)

    async def mutate(self, variables: V) -> R:
        outcome = await self.run(variables)
        if isinstance(outcome, RolledBack):
            raise outcome.error
        return outcome.result

    def _settle(self, key: QueryKey, variables: V) -> None:
        keys = [key]
        if self._invalidates is not None:
            keys.extend(self._invalidates(variables))
        for query_key in keys:
            self._query_cache.invalidate(query_key)
        logger.debug(f"[{self.name}] Invalidated {len(keys)} related queries")
