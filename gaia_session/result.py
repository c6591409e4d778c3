"""
Result — value-or-error carrier returned by every public session operation.

Errors never escape a ``GaiaSession`` call as exceptions; they are converted
into a ``ResultError`` carrying a stable ``ErrorCode`` and the original
message, so callers can branch on the code instead of on exception types.
"""
from enum import Enum
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorCode(str, Enum):
    UNKNOWN_ERROR = "UnknownError"
    NETWORK_ERROR = "NetworkError"
    LOGIN_FAILED = "LoginFailedError"
    FAILED_DECRYPTION = "FailedDecryptionError"
    SIGNATURE_VERIFICATION = "SignatureVerificationError"
    SIGNATURE_UPLOAD = "SignatureUploadError"
    HUB_CONNECT = "HubConnectError"
    LIST_FILES = "ListFilesError"
    TOO_MANY_PAGES = "TooManyPagesError"
    MALFORMED_HUB_RESPONSE = "MalformedHubResponseError"
    NOT_SIGNED_IN = "NotSignedInError"


@dataclass(frozen=True)
class ResultError:
    code: ErrorCode
    message: str
    exception: Optional[BaseException] = None

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of an operation: either ``value`` or ``error``.

    A successful result may still carry ``value=None``; reading a file that
    does not exist on the hub is such a case.
    """

    value: Optional[T] = None
    error: Optional[ResultError] = None

    @property
    def has_errors(self) -> bool:
        return self.error is not None

    @property
    def has_value(self) -> bool:
        return self.error is None and self.value is not None

    def unwrap(self) -> Optional[T]:
        """Return the value, re-raising the original error if there is one."""
        if self.error is not None:
            if self.error.exception is not None:
                raise self.error.exception
            raise RuntimeError(str(self.error))
        return self.value
