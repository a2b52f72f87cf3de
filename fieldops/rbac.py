"""
Role-Based Access Control – loading actor profiles and resolving scopes.
"""

import logging
from typing import Any, Callable, List, Optional

from fieldops.config import UNRESTRICTED_ROLE, USERS_PATH
from fieldops.models import NO_ACCESS, UNRESTRICTED, AccessScope, ActorProfile
from fieldops.store import RemoteStore, StoreError

logger = logging.getLogger(__name__)

FLAG_KEYS = ("allowedProgrammes", "partitionFlags")


def normalize_role(role: Any) -> str:
    """Trim, lower-case and collapse whitespace; non-strings become ''."""
    if not isinstance(role, str):
        return ""
    return " ".join(role.split()).lower()


def parse_profile(user_id: str, data: Any) -> Optional[ActorProfile]:
    """Build an ActorProfile from a stored user record, or None if unusable."""
    if not isinstance(data, dict):
        return None
    flags_raw = next((data[k] for k in FLAG_KEYS if k in data), None)
    flags = {}
    if isinstance(flags_raw, dict):
        # Only a literal true grants access; "true", 1 and the like do not.
        flags = {str(k): v is True for k, v in flags_raw.items()}
    elif flags_raw is not None:
        logger.warning("Ignoring malformed programme flags for user %s", user_id)
    role = data.get("role")
    return ActorProfile(
        user_id=str(user_id),
        role=str(role) if role is not None else None,
        programme_flags=flags,
    )


def resolve_scope(profile: Any) -> AccessScope:
    """Derive the AccessScope for a profile. Never raises; fails closed."""
    if isinstance(profile, dict):
        profile = parse_profile(profile.get("uid", ""), profile)
    if not isinstance(profile, ActorProfile):
        return NO_ACCESS

    if normalize_role(profile.role) == UNRESTRICTED_ROLE:
        return UNRESTRICTED

    flags = profile.programme_flags
    if not isinstance(flags, dict):
        logger.warning("Profile %s has no usable programme flags", profile.user_id)
        return NO_ACCESS
    return AccessScope(programmes=frozenset(str(k) for k, v in flags.items() if v is True))


async def load_actor_profile(store: RemoteStore, user_id: str) -> Optional[ActorProfile]:
    """Read ``users/<uid>``, falling back to a lookup on the ``uid`` field.

    Older user records were created under generated keys and only carry the
    actor id in a ``uid`` field. Store failures yield None.
    """
    if not user_id:
        return None
    try:
        data = await store.read(f"{USERS_PATH}/{user_id}")
        if data is None:
            matches = await store.read_where(USERS_PATH, "uid", user_id)
            data = next(iter(matches.values()), None)
    except StoreError as e:
        logger.warning("Could not load profile for %s: %s", user_id, e)
        return None
    return parse_profile(user_id, data)


class ActorSession:
    """The signed-in actor's profile and its single derived scope."""

    def __init__(self, store: RemoteStore, user_id: str):
        self.store = store
        self.user_id = user_id
        self.profile: Optional[ActorProfile] = None
        self.scope: AccessScope = NO_ACCESS
        self._listeners: List[Callable[[AccessScope], None]] = []

    def subscribe(self, listener: Callable[[AccessScope], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def apply_profile(self, profile: Optional[ActorProfile]) -> bool:
        """Adopt a (re-)read profile. Listeners fire only when the scope changes."""
        if profile == self.profile and self.profile is not None:
            return False
        self.profile = profile
        scope = resolve_scope(profile)
        if scope == self.scope:
            return False
        self.scope = scope
        for listener in list(self._listeners):
            listener(scope)
        return True

    async def reload(self) -> AccessScope:
        self.apply_profile(await load_actor_profile(self.store, self.user_id))
        return self.scope
