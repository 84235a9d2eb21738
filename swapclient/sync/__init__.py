"""
Local-first sync layer.

Provides:
- QueryCache: In-memory query results with subscribers and invalidation
- LocalFirstReader: Serve the local mirror, reconcile in the background
- OptimisticMutation: Snapshot, optimistic update, rollback, invalidation
- ProfileContext: Active profile and switch guard
- RoscaPoolsService / RoscaEnrollmentsService: ROSCA resources
"""

from swapclient.sync.query_cache import QueryCache, QueryState
from swapclient.sync.local_first import LocalFirstReader, LocalFirstSource
from swapclient.sync.mutations import Applied, OptimisticMutation, RolledBack
from swapclient.sync.parsing import parse_api_object, parse_api_response, parse_models
from swapclient.sync.profile import ActiveProfile, ProfileContext, ProfileEvent
from swapclient.sync.pools import RoscaPoolsService
from swapclient.sync.enrollments import RoscaEnrollmentsService, apply_payment

__all__ = [
    # Query cache
    "QueryCache",
    "QueryState",
    # Local-first
    "LocalFirstReader",
    "LocalFirstSource",
    # Mutations
    "Applied",
    "OptimisticMutation",
    "RolledBack",
    # Parsing
    "parse_api_object",
    "parse_api_response",
    "parse_models",
    # Profile
    "ActiveProfile",
    "ProfileContext",
    "ProfileEvent",
    # Services
    "RoscaPoolsService",
    "RoscaEnrollmentsService",
    "apply_payment",
]
