import time
from typing import Any, Optional
from collections.abc import Iterator, Mapping, MutableMapping

import orjson
from pydantic import ValidationError

from .conf import CORE_NODE_KEY, TRANSIT_KEY, USER_DATA_KEY
from .models import UserData


class SessionData(MutableMapping[str, Any]):
    """Session dict-like object.

    Holds the JSON-serializable blob a ``SessionStore`` persists:
    ``userData`` (the signed-in user), ``transitKey`` (key for the pending
    sign-in) and ``core-node`` (naming node override), plus any other
    application keys.
    """

    def __init__(
        self,
        data: Optional[Mapping[str, Any]] = None,
        new: bool = False,
    ) -> None:
        self._data: dict[str, Any] = {}
        # If new, mark as changed so it gets saved
        self._changed = bool(new)
        self._new = new or not data
        now = int(time.time())
        created = data.get('created', None) if data else None
        self._created = now if self._new or created is None else created
        if data:
            self._data.update(data)
        self._data['created'] = self._created

    def __repr__(self) -> str:
        # values hold key material; only show key names
        return (
            f'<Gaia-Session [new:{self.new}, created:{self.created}] '
            f'keys={sorted(self._data.keys())}>'
        )

    # --- Properties ---

    @property
    def new(self) -> bool:
        return self._new

    @property
    def created(self) -> int:
        return self._created

    @property
    def empty(self) -> bool:
        return not any(key != 'created' for key in self._data)

    @property
    def is_changed(self) -> bool:
        return self._changed

    @is_changed.setter
    def is_changed(self, value: bool) -> None:
        self._changed = value

    def changed(self) -> None:
        self._changed = True

    @property
    def user_data(self) -> Optional[UserData]:
        """Signed-in user, or None if the blob holds no valid ``userData``."""
        raw = self._data.get(USER_DATA_KEY)
        if not isinstance(raw, dict):
            return None
        try:
            return UserData.model_validate(raw)
        except ValidationError:
            return None

    @user_data.setter
    def user_data(self, value: Optional[UserData]) -> None:
        if value is None:
            self._data.pop(USER_DATA_KEY, None)
        else:
            self._data[USER_DATA_KEY] = value.to_dict()
        self.changed()

    @property
    def transit_key(self) -> Optional[str]:
        return self._data.get(TRANSIT_KEY)

    @transit_key.setter
    def transit_key(self, value: Optional[str]) -> None:
        if value is None:
            self._data.pop(TRANSIT_KEY, None)
        else:
            self._data[TRANSIT_KEY] = value
        self.changed()

    @property
    def core_node(self) -> Optional[str]:
        return self._data.get(CORE_NODE_KEY)

    def session_data(self) -> dict:
        """Return the serializable data (for persistence)."""
        return self._data

    def invalidate(self) -> None:
        """Clear all session data."""
        self.changed()
        self._data = {'created': self._created}

    # --- Magic Methods ---

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._data[key] = value
        self.changed()

    def __delitem__(self, key: str) -> None:
        del self._data[key]
        self.changed()

    # --- Serialization ---

    def encode(self) -> bytes:
        """encode

            Encode the session blob as JSON.
        Raises:
            RuntimeError: Error converting data to json.

        Returns:
            bytes: json version of the data
        """
        try:
            return orjson.dumps(self._data)
        except TypeError as err:
            raise RuntimeError(err) from err

    @classmethod
    def decode(cls, raw: bytes) -> "SessionData":
        """decode.

            Rebuild a session from its JSON encoding.
        Raises:
            RuntimeError: Error converting data from json.
        """
        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError as err:
            raise RuntimeError(err) from err
        if not isinstance(data, dict):
            raise RuntimeError("Session data must be a JSON object")
        return cls(data=data)
