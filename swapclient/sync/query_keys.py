"""
Query keys for the in-memory query cache.

Keys are tuples; invalidating a key also invalidates every key it prefixes.
"""

QueryKey = tuple

ROSCA = ("rosca",)


def rosca_pools(scope: str | None = None, months: int | None = None, sort: str | None = None) -> QueryKey:
    if scope in (None, "joinable") and months is None and sort is None:
        return ("rosca", "pools")
    return ("rosca", "pools", "filtered", scope or "joinable", months, sort)


def rosca_pool_details(pool_id: str) -> QueryKey:
    return ("rosca", "pools", "details", pool_id)


def rosca_enrollments_by_entity(entity_id: str) -> QueryKey:
    return ("rosca", "enrollments", "entity", entity_id)


def rosca_enrollment_details(enrollment_id: str) -> QueryKey:
    return ("rosca", "enrollments", "details", enrollment_id)


def rosca_payments(enrollment_id: str) -> QueryKey:
    return ("rosca", "payments", enrollment_id)


def rosca_friends(enrollment_id: str) -> QueryKey:
    return ("rosca", "friends", enrollment_id)


def balances_by_entity(entity_id: str) -> QueryKey:
    return ("balances", "entity", entity_id)


def is_prefix(prefix: QueryKey, key: QueryKey) -> bool:
    return key[: len(prefix)] == prefix
