"""Gaia Session — authenticated, encrypted and signed access to a Gaia hub.

Security Note (Threat Model):
    The app private key is held in process memory and in the session store
    for the lifetime of the session. Envelopes protect files at rest on the
    hub; they do not protect against a compromised client or session store.
"""

from .version import __version__
from .config import SessionConfig
from .exceptions import GaiaError
from .models import (
    DeleteFileOptions,
    GetFileOptions,
    HubConfig,
    PutFileOptions,
    UserData,
)
from .result import ErrorCode, Result, ResultError
from .session import GaiaSession
from .store import FileSessionStore, MemorySessionStore, SessionStore
from .transport import AiohttpTransport, Response, Transport

__all__ = [
    "__version__",
    "AiohttpTransport",
    "DeleteFileOptions",
    "ErrorCode",
    "FileSessionStore",
    "GaiaError",
    "GaiaSession",
    "GetFileOptions",
    "HubConfig",
    "MemorySessionStore",
    "PutFileOptions",
    "Response",
    "Result",
    "ResultError",
    "SessionConfig",
    "SessionStore",
    "Transport",
    "UserData",
]
