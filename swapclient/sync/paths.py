"""ROSCA API paths (relative to the API prefix)."""

POOLS = "/rosca/pools"
ENROLLMENTS = "/rosca/enrollments"
PAYMENTS = "/rosca/payments"


def pool_details(pool_id: str) -> str:
    return f"{POOLS}/{pool_id}"


def enrollment_details(enrollment_id: str) -> str:
    return f"{ENROLLMENTS}/{enrollment_id}"


def enrollment_payments(enrollment_id: str) -> str:
    return f"{ENROLLMENTS}/{enrollment_id}/payments"


def enrollment_friends(enrollment_id: str) -> str:
    return f"{ENROLLMENTS}/{enrollment_id}/friends"
