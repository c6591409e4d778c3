"""
GaiaSession — the public API of the library.

Provides:
- ``handle_pending_sign_in(token)`` — verify an auth response and sign in
- ``put_file`` / ``get_file`` / ``delete_file`` / ``get_file_url`` — storage
- ``list_files(callback)`` / ``iter_files()`` — bucket listing
- ``encrypt_content`` / ``decrypt_content`` — envelopes with the app key
- ``sign_user_out()`` — forget the user and its keys

Every public coroutine returns a ``Result``; errors are converted at this
boundary and never raised to the caller. ``iter_files()`` is the exception:
as an iterator it raises its errors where they happen.
"""
import asyncio
import logging
from typing import Any, AsyncIterator, Awaitable, Optional, TypeVar, Union

from .auth import AuthTokenVerifier
from .config import SessionConfig
from .crypto.envelope import decrypt_ecies, encrypt_ecies, parse_cipher_object
from .crypto.keys import public_key_hex
from .exceptions import GaiaError, NotSignedIn
from .hub import HubConnector
from .listing import FileLister, ListCallback
from .models import (
    CipherObject,
    Content,
    DeleteFileOptions,
    GetFileOptions,
    HubConfig,
    PutFileOptions,
    UserData,
    as_content,
)
from .naming import NameResolver
from .result import ErrorCode, Result, ResultError
from .state import (
    Authenticated,
    Connected,
    SessionState,
    Unauthenticated,
    state_from_user_data,
)
from .storage import FileStorage
from .store import SessionStore
from .transport import AiohttpTransport, Transport

logger = logging.getLogger("gaia.session")

T = TypeVar("T")


def _error_result(operation: str, err: Exception) -> Result:
    if isinstance(err, GaiaError):
        logger.error("%s failed: %s", operation, err)
        return Result(error=ResultError(err.code, err.message, err))
    logger.error("%s failed: %r", operation, err)
    return Result(error=ResultError(ErrorCode.UNKNOWN_ERROR, str(err) or repr(err), err))


def _content_value(content: Optional[Content]) -> Union[str, bytes, None]:
    return None if content is None else content.value


class GaiaSession:
    """Signed-in session of one user with one app.

    Args:
        session_store: Persists the session between runs.
        config: Session settings; defaults to ``SessionConfig()``.
        transport: HTTP transport; an ``AiohttpTransport`` is created and
            owned by the session if omitted.
        resolver: Name resolver for reading other users' files.
    """

    def __init__(
        self,
        session_store: SessionStore,
        config: Optional[SessionConfig] = None,
        transport: Optional[Transport] = None,
        resolver: Optional[NameResolver] = None,
    ):
        self.config = config or SessionConfig()
        self._store = session_store
        self._owns_transport = transport is None
        self._transport = transport or AiohttpTransport(timeout=self.config.request_timeout)
        session_data = session_store.session_data
        core_node = session_data.core_node or self.config.core_node
        self._resolver = resolver or NameResolver(self._transport, core_node)
        self._verifier = AuthTokenVerifier(self._transport, self.config.hub_url)
        self._connector = HubConnector(self._transport)
        self._storage = FileStorage(
            self._transport,
            self.get_or_set_local_gaia_hub_connection,
            self._require_app_private_key,
            resolver=self._resolver,
            app_domain=self.config.app_domain,
        )
        self._lister = FileLister(
            self._transport,
            self.get_or_set_local_gaia_hub_connection,
            max_pages=self.config.max_list_pages,
        )
        self._connect_lock = asyncio.Lock()
        self._state: SessionState = state_from_user_data(session_data.user_data)

    @property
    def state(self) -> SessionState:
        return self._state

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> Result[T]:
        try:
            return Result(value=await awaitable)
        except Exception as err:
            return _error_result(operation, err)

    # ------------------------------------------------------------------
    # Sign in / out
    # ------------------------------------------------------------------

    def generate_and_store_transit_key(self) -> str:
        """Create the transit key the identity provider encrypts secrets to."""
        return self._store.generate_and_store_transit_key()

    async def handle_pending_sign_in(self, auth_response: str) -> Result[UserData]:
        """Process the auth response that completes a pending sign-in.

        The token signature is verified before any claim is used; the app
        private key and core session token are decrypted with the transit
        key stored when the sign-in was requested.

        Args:
            auth_response: The auth response token.

        Returns:
            Result with the signed-in ``UserData``.
        """
        return await self._call("handlePendingSignIn", self._sign_in(auth_response))

    async def _sign_in(self, auth_response: str) -> UserData:
        transit_key = self._store.get_transit_private_key()
        user_data = await self._verifier.verify_and_decode(auth_response, transit_key)
        self._store.update_user_data(user_data)
        if user_data.app_private_key:
            self._state = Authenticated(user_data.app_private_key)
        else:
            self._state = Unauthenticated()
        logger.info("Signed in %s", user_data.username or user_data.identity_address)
        return user_data

    async def handle_unencrypted_sign_in(self, auth_response: str) -> Result[UserData]:
        """Verify an auth response carrying plaintext secrets.

        The user data is returned but neither persisted nor activated.
        """
        return await self._call(
            "handleUnencryptedSignIn",
            self._verifier.verify_and_decode_unencrypted(auth_response),
        )

    def is_user_signed_in(self) -> bool:
        user_data = self._store.session_data.user_data
        return user_data is not None and bool(user_data.app_private_key)

    def load_user_data(self) -> UserData:
        """
        Raises:
            NotSignedIn: If no user is signed in.
        """
        user_data = self._store.session_data.user_data
        if user_data is None:
            raise NotSignedIn("No user data found. Did the user sign in?")
        return user_data

    def sign_user_out(self) -> None:
        self._store.delete_session_data()
        self._state = Unauthenticated()
        logger.info("Signed out")

    def _require_app_private_key(self) -> str:
        state = self._state
        if isinstance(state, (Authenticated, Connected)):
            return state.app_private_key
        raise NotSignedIn("No app private key found. Did the user sign in?")

    # ------------------------------------------------------------------
    # Hub connection
    # ------------------------------------------------------------------

    async def get_or_set_local_gaia_hub_connection(self) -> HubConfig:
        """Return the cached hub configuration, connecting if there is none.

        Raises:
            NotSignedIn, HubConnectError.
        """
        state = self._state
        if isinstance(state, Connected):
            return state.hub_config
        return await self._connect(force=False)

    async def set_local_gaia_hub_connection(self) -> HubConfig:
        """Connect again and replace the cached hub configuration."""
        return await self._connect(force=True)

    async def _connect(self, force: bool) -> HubConfig:
        async with self._connect_lock:
            state = self._state
            if isinstance(state, Connected) and not force:
                # another caller connected while we waited
                return state.hub_config
            app_private_key = self._require_app_private_key()
            user_data = self.load_user_data()
            config = await self._connector.connect(
                user_data.hub_url,
                app_private_key,
                user_data.gaia_association_token,
            )
            if self._state is not state:
                # signed out or signed in again while the hub answered
                raise NotSignedIn("Session changed while connecting to the hub")
            self._store.update_user_data(
                user_data.model_copy(update={"gaia_hub_config": config})
            )
            self._state = Connected(app_private_key, config)
            return config

    async def get_app_bucket_url(
        self, hub_url: str, app_private_key: str
    ) -> Result[str]:
        return await self._call(
            "getAppBucketUrl",
            self._connector.get_app_bucket_url(hub_url, app_private_key),
        )

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    async def get_file(
        self, path: str, options: Optional[GetFileOptions] = None
    ) -> Result[Union[str, bytes]]:
        """Retrieve ``path`` from the app's bucket, or another user's.

        Returns:
            Result with ``str`` or ``bytes`` content; the value is None
            without an error when the file does not exist.
        """
        return await self._call("getFile", self._get_file(path, options))

    async def _get_file(self, path: str, options: Optional[GetFileOptions]):
        return _content_value(await self._storage.get_file(path, options))

    async def put_file(
        self,
        path: str,
        content: Union[str, bytes],
        options: Optional[PutFileOptions] = None,
    ) -> Result[str]:
        """Store ``content`` at ``path``.

        Returns:
            Result with the public URL of the file. A
            ``SignatureUploadError`` means the content was stored without
            its signature; ``put_signature`` repairs that.
        """
        return await self._call("putFile", self._storage.put_file(path, content, options))

    async def put_signature(
        self,
        path: str,
        content: Union[str, bytes],
        options: Optional[PutFileOptions] = None,
    ) -> Result[str]:
        return await self._call(
            "putSignature", self._storage.put_signature(path, content, options)
        )

    async def delete_file(
        self, path: str, options: Optional[DeleteFileOptions] = None
    ) -> Result[None]:
        """Delete ``path``. Deleting a file that does not exist succeeds."""
        return await self._call("deleteFile", self._storage.delete_file(path, options))

    async def get_file_url(
        self, path: str, options: Optional[GetFileOptions] = None
    ) -> Result[str]:
        return await self._call(
            "getFileUrl", self._storage.get_file_url(path, options or GetFileOptions())
        )

    async def lookup_profile(
        self, username: str, zone_file_lookup_url: Optional[str] = None
    ) -> Result[dict[str, Any]]:
        return await self._call(
            "lookupProfile", self._resolver.lookup_profile(username, zone_file_lookup_url)
        )

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    async def list_files(self, callback: ListCallback) -> Result[int]:
        """List the files in the app's bucket.

        Args:
            callback: Called with each file name; return True to continue
                or False to stop. Errors it raises end the listing and are
                returned in the Result.

        Returns:
            Result with the number of files passed to the callback.
        """
        return await self._call("listFiles", self._lister.list_files(callback))

    def iter_files(self) -> AsyncIterator[str]:
        """Lazily iterate over the file names of the app's bucket."""
        return self._lister.iter_files()

    # ------------------------------------------------------------------
    # Envelopes
    # ------------------------------------------------------------------

    def encrypt_content(
        self, content: Union[str, bytes], public_key: Optional[str] = None
    ) -> Result[CipherObject]:
        """Encrypt for ``public_key``, or for the app key if omitted."""
        try:
            key = public_key or public_key_hex(self._require_app_private_key())
            return Result(value=encrypt_ecies(key, as_content(content)))
        except Exception as err:
            return _error_result("encryptContent", err)

    def decrypt_content(
        self, cipher_object: str, private_key: Optional[str] = None
    ) -> Result[Union[str, bytes]]:
        """Decrypt a serialized ``CipherObject`` with ``private_key`` or the app key."""
        try:
            key = private_key or self._require_app_private_key()
            content = decrypt_ecies(key, parse_cipher_object(cipher_object))
            return Result(value=content.value)
        except Exception as err:
            return _error_result("decryptContent", err)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        if self._owns_transport and isinstance(self._transport, AiohttpTransport):
            await self._transport.close()

    async def __aenter__(self) -> "GaiaSession":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
