"""
Session lifecycle states.

A session is in exactly one of:
    Unauthenticated              no app key
    Authenticated(key)           signed in, no hub connection yet
    Connected(key, hub_config)   ready for storage operations

States are immutable; a transition replaces the whole object, so readers
never observe a key paired with another key's hub configuration.
"""
from dataclasses import dataclass, field
from typing import Optional, Union

from .models import HubConfig, UserData


@dataclass(frozen=True)
class Unauthenticated:
    pass


@dataclass(frozen=True)
class Authenticated:
    app_private_key: str = field(repr=False)


@dataclass(frozen=True)
class Connected:
    app_private_key: str = field(repr=False)
    hub_config: HubConfig = field(repr=False)


SessionState = Union[Unauthenticated, Authenticated, Connected]


def state_from_user_data(user_data: Optional[UserData]) -> SessionState:
    """Rebuild the state persisted in a session store."""
    if user_data is None or not user_data.app_private_key:
        return Unauthenticated()
    if user_data.gaia_hub_config is not None:
        return Connected(user_data.app_private_key, user_data.gaia_hub_config)
    return Authenticated(user_data.app_private_key)
