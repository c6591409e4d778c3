"""
Session stores — persistence of the session blob between app runs.

A store keeps one ``SessionData`` for the signed-in user. ``MemorySessionStore``
keeps it in process memory; ``FileSessionStore`` writes it as JSON to a file
readable only by the current user.

Security Note:
    The blob contains the app private key. Never log it.
"""
import os
import logging
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from .crypto.keys import generate_private_key
from .data import SessionData
from .exceptions import NotSignedIn
from .models import UserData

logger = logging.getLogger("gaia.session")


class SessionStore:
    """Base store; subclasses implement ``_load``, ``_save`` and ``_clear``."""

    def _load(self) -> Optional[SessionData]:
        raise NotImplementedError

    def _save(self, data: SessionData) -> None:
        raise NotImplementedError

    def _clear(self) -> None:
        raise NotImplementedError

    @property
    def session_data(self) -> SessionData:
        data = self._load()
        return data if data is not None else SessionData(new=True)

    @session_data.setter
    def session_data(self, data: SessionData) -> None:
        self._save(data)
        data.is_changed = False

    def delete_session_data(self) -> None:
        self._clear()

    def update_user_data(self, user_data: Optional[UserData]) -> None:
        """Replace the stored ``userData`` as a whole."""
        data = self.session_data
        data.user_data = user_data
        self.session_data = data

    def generate_and_store_transit_key(self) -> str:
        """Create the transit key for a new sign-in request and persist it."""
        key = generate_private_key()
        data = self.session_data
        data.transit_key = key
        self.session_data = data
        return key

    def get_transit_private_key(self) -> str:
        """
        Raises:
            NotSignedIn: If no sign-in request is pending.
        """
        key = self.session_data.transit_key
        if not key:
            raise NotSignedIn("No transit key found. Did the app request a sign-in?")
        return key


class MemorySessionStore(SessionStore):
    def __init__(self, data: Optional[Mapping[str, Any]] = None):
        self._data: Optional[bytes] = None
        if data is not None:
            self._save(SessionData(data=data))

    def _load(self) -> Optional[SessionData]:
        if self._data is None:
            return None
        return SessionData.decode(self._data)

    def _save(self, data: SessionData) -> None:
        self._data = data.encode()

    def _clear(self) -> None:
        self._data = None


class FileSessionStore(SessionStore):
    """Session persisted as a JSON file.

    Args:
        path: File location; parent directories are created on first save.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def _load(self) -> Optional[SessionData]:
        if not self.path.exists():
            return None
        try:
            return SessionData.decode(self.path.read_bytes())
        except RuntimeError as err:
            logger.error("Discarding unreadable session file %s: %s", self.path, err)
            return None

    def _save(self, data: SessionData) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as fp:
            fp.write(data.encode())
        os.replace(tmp, self.path)

    def _clear(self) -> None:
        self.path.unlink(missing_ok=True)
