"""
Gaia Session errors.

Every error raised inside the library derives from ``GaiaError`` and carries
the ``ErrorCode`` used when the session facade converts it into a ``Result``.
Verification failures always raise; they are never reported as "no value".
"""
from typing import Optional

from .result import ErrorCode


class GaiaError(Exception):
    """Base class for all Gaia Session errors."""

    code: ErrorCode = ErrorCode.UNKNOWN_ERROR

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class UnknownError(GaiaError):
    """Network or parse failure without a more specific meaning."""


class TransportError(GaiaError):
    """I/O failure talking to a remote endpoint (timeout, reset, DNS...).

    Distinct from a failure reported by the hub itself; safe to retry.
    """

    code = ErrorCode.NETWORK_ERROR
    retryable = True


class NotSignedIn(GaiaError):
    code = ErrorCode.NOT_SIGNED_IN


# ---------------------------------------------------------------------------
# Sign-in
# ---------------------------------------------------------------------------

class AuthError(GaiaError):
    code = ErrorCode.LOGIN_FAILED


class MalformedToken(AuthError):
    """Token is not three base64url JSON segments, or lacks required claims."""


class ExpiredToken(AuthError):
    pass


class DecryptionFailed(AuthError):
    """A secret embedded in the auth response could not be decrypted."""


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------

class CryptoError(GaiaError):
    code = ErrorCode.FAILED_DECRYPTION


class MalformedEnvelope(CryptoError):
    pass


class MacMismatch(CryptoError):
    pass


class InvalidSignature(GaiaError):
    code = ErrorCode.SIGNATURE_VERIFICATION


class UnexpectedSigner(InvalidSignature):
    """Signature is valid but was produced by a different identity."""

    def __init__(self, signer_address: str, expected_address: str):
        super().__init__(
            f"Unexpected signer address {signer_address} != {expected_address}"
        )
        self.signer_address = signer_address
        self.expected_address = expected_address


class InvalidTokenSignature(InvalidSignature, AuthError):
    code = ErrorCode.LOGIN_FAILED


class SignatureVerificationError(InvalidSignature):
    """Companion signature of an unencrypted file is missing or invalid."""

    def __init__(self, path: str, missing: bool):
        reason = (
            "Failed to obtain signature for file" if missing
            else "Invalid signature for file"
        )
        super().__init__(f"Failed to verify signature: {reason}: {path}")
        self.path = path
        self.missing = missing


# ---------------------------------------------------------------------------
# Hub
# ---------------------------------------------------------------------------

class HubConnectError(GaiaError):
    code = ErrorCode.HUB_CONNECT

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class SignatureUploadError(GaiaError):
    """Content was written but its companion signature was not."""

    code = ErrorCode.SIGNATURE_UPLOAD

    def __init__(self, path: str, public_url: str, reason: str):
        super().__init__(
            f"Content written to {public_url} but signature upload for "
            f"{path} failed: {reason}"
        )
        self.path = path
        self.public_url = public_url


class MalformedHubResponse(GaiaError):
    """The hub answered with a body that does not parse.

    When raised by a listing, ``entries_dispatched`` and ``page_index`` tell
    how far the listing got.
    """

    code = ErrorCode.MALFORMED_HUB_RESPONSE

    def __init__(
        self,
        message: str = "",
        entries_dispatched: Optional[int] = None,
        page_index: Optional[int] = None,
    ):
        super().__init__(message)
        self.entries_dispatched = entries_dispatched
        self.page_index = page_index


class ListError(GaiaError):
    """A list-files page request failed after ``entries_dispatched`` entries."""

    code = ErrorCode.LIST_FILES

    def __init__(
        self,
        message: str,
        entries_dispatched: int = 0,
        page_index: int = 0,
        status: Optional[int] = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.entries_dispatched = entries_dispatched
        self.page_index = page_index
        self.status = status
        self.retryable = retryable


class TooManyPages(ListError):
    code = ErrorCode.TOO_MANY_PAGES
