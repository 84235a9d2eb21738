"""
ProfileContext - the caller's active profile/entity and switch lifecycle.

Deferred work captures the entity id it was scheduled for and checks
is_entity_stale() / is_switching before applying results.
"""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Literal

from loguru import logger

if TYPE_CHECKING:
    from swapclient.services.client import ApiClient

ProfileType = Literal["personal", "business"]


class ProfileEvent(str, Enum):
    SWITCH_START = "SWITCH_START"
    SWITCH_COMPLETE = "SWITCH_COMPLETE"
    SWITCH_FAILED = "SWITCH_FAILED"


@dataclass(frozen=True)
class ActiveProfile:
    profile_id: str | None = None
    entity_id: str | None = None
    profile_type: ProfileType | None = None


ProfileEventHandler = Callable[[ProfileEvent, ActiveProfile], None]


class ProfileContext:
    """
    Usage:
        profiles = ProfileContext(client)
        profiles.initialize("profile-1", "entity-1", "personal")

        profiles.start_switch("profile-2", "entity-2")
        ...  # clear caches, swap tokens
        profiles.complete_switch("profile-2", "entity-2", "business")
    """

    def __init__(self, client: "ApiClient | None" = None):
        self._client = client
        self._active = ActiveProfile()
        self._switching = False
        self._handlers: dict[ProfileEvent, list[ProfileEventHandler]] = {}

    @property
    def current(self) -> ActiveProfile:
        return self._active

    @property
    def entity_id(self) -> str | None:
        return self._active.entity_id

    @property
    def is_switching(self) -> bool:
        return self._switching

    def initialize(self, profile_id: str, entity_id: str, profile_type: ProfileType) -> None:
        """Set the context on login or startup without switch events."""
        logger.debug(f"Initializing profile context: {profile_id} ({profile_type})")
        self._set_active(ActiveProfile(profile_id, entity_id, profile_type))
        self._switching = False

    def start_switch(self, new_profile_id: str, new_entity_id: str) -> None:
        logger.info(f"Profile switch starting: {self._active.profile_id} -> {new_profile_id}")
        self._switching = True
        self._emit(ProfileEvent.SWITCH_START, ActiveProfile(new_profile_id, new_entity_id))

    def complete_switch(self, profile_id: str, entity_id: str, profile_type: ProfileType) -> None:
        logger.info(f"Profile switch complete: {profile_id} ({profile_type})")
        self._set_active(ActiveProfile(profile_id, entity_id, profile_type))
        self._switching = False
        self._emit(ProfileEvent.SWITCH_COMPLETE, self._active)

    def fail_switch(self) -> None:
        logger.warning("Profile switch failed, restoring state")
        self._switching = False
        self._emit(ProfileEvent.SWITCH_FAILED, self._active)

    def clear(self) -> None:
        logger.debug("Clearing profile context (logout)")
        self._set_active(ActiveProfile())
        self._switching = False

    def is_profile_stale(self, profile_id: str) -> bool:
        current = self._active.profile_id
        return current is not None and current != profile_id

    def is_entity_stale(self, entity_id: str) -> bool:
        current = self._active.entity_id
        return current is not None and current != entity_id

    def can_apply(self, entity_id: str) -> bool:
        """True when results captured for entity_id may still be applied."""
        return not self._switching and not self.is_entity_stale(entity_id)

    def subscribe(self, kind: ProfileEvent, handler: ProfileEventHandler) -> Callable[[], None]:
        handlers = self._handlers.setdefault(kind, [])
        handlers.append(handler)

        def unsubscribe() -> None:
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def _set_active(self, active: ActiveProfile) -> None:
        self._active = active
        if self._client is not None:
            self._client.set_profile_id(active.profile_id)

    def _emit(self, kind: ProfileEvent, profile: ActiveProfile) -> None:
        for handler in list(self._handlers.get(kind, [])):
            try:
                handler(kind, profile)
            except Exception as e:
                logger.error(f"Error in profile event handler for {kind.value}: {e}")
