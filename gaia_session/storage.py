"""
Storage — get, put and delete files in a Gaia bucket.

Writes:
- encrypted files are stored as a ``CipherObject`` JSON document, wrapped
  in a ``SignedCipherObject`` when signing is requested (encrypt, then sign);
- signed plaintext files are stored as-is, followed by a detached
  ``<path>.sig`` companion. The two uploads are not atomic: a reader racing
  the write can see the content before its signature exists.

Reads verify before trusting anything: the signer must be the expected
bucket owner and the signature must check out before content is decrypted
or returned.
"""
import logging
from typing import Awaitable, Callable, Optional, Union

import orjson

from .conf import (
    CONTENT_TYPE_BINARY,
    CONTENT_TYPE_JSON,
    CONTENT_TYPE_TEXT,
    SIGNATURE_FILE_EXTENSION,
)
from .crypto.envelope import (
    decrypt_ecies,
    encrypt_ecies,
    parse_cipher_object,
    parse_signature_object,
    parse_signed_cipher_object,
    sign_content,
    sign_encrypted_content,
    verify_content,
    verify_signed_cipher,
)
from .crypto.keys import public_key_hex
from .exceptions import (
    GaiaError,
    InvalidSignature,
    MalformedEnvelope,
    SignatureUploadError,
    SignatureVerificationError,
    TransportError,
    UnexpectedSigner,
    UnknownError,
)
from .hub import auth_headers, delete_url, get_full_read_url, store_url
from .models import (
    Binary,
    Content,
    DeleteFileOptions,
    GetFileOptions,
    HubConfig,
    PutFileOptions,
    Text,
    as_content,
)
from .naming import NameResolver, get_gaia_address_from_url
from .transport import Response, Transport

logger = logging.getLogger("gaia.session.storage")

HubConfigProvider = Callable[[], Awaitable[HubConfig]]
KeyProvider = Callable[[], str]


def signature_path(path: str) -> str:
    return f"{path}{SIGNATURE_FILE_EXTENSION}"


def _is_text(content_type: Optional[str]) -> bool:
    if content_type is None:
        return True
    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type.startswith("text") or media_type == CONTENT_TYPE_JSON


class FileStorage:
    """File operations against the app bucket of the signed-in user.

    Args:
        transport: Transport for hub requests.
        hub_config: Coroutine function returning the current ``HubConfig``,
            connecting first if needed.
        app_private_key: Callable returning the app private key.
        resolver: Name resolver for reading other users' files.
        app_domain: Default app domain for reading other users' files.
    """

    def __init__(
        self,
        transport: Transport,
        hub_config: HubConfigProvider,
        app_private_key: KeyProvider,
        resolver: Optional[NameResolver] = None,
        app_domain: Optional[str] = None,
    ):
        self._transport = transport
        self._hub_config = hub_config
        self._app_private_key = app_private_key
        self._resolver = resolver
        self._app_domain = app_domain

    # ------------------------------------------------------------------
    # URLs
    # ------------------------------------------------------------------

    async def get_file_url(self, path: str, options: GetFileOptions) -> str:
        """Read URL of ``path``, in the local bucket or in another user's.

        Raises:
            UnknownError: If another user's bucket cannot be resolved.
        """
        if options.username is None:
            return get_full_read_url(path, await self._hub_config())
        app_domain = options.app or self._app_domain
        if not app_domain:
            raise UnknownError("An app domain is required to read another user's files")
        if self._resolver is None:
            raise UnknownError("No name resolver configured")
        read_url = await self._resolver.get_user_app_file_url(
            path, options.username, app_domain, options.zone_file_lookup_url
        )
        if read_url is None:
            raise UnknownError("Missing readURL")
        return read_url

    async def _expected_address(self, read_url: str, options: GetFileOptions) -> str:
        if options.username is None:
            return (await self._hub_config()).address
        address = get_gaia_address_from_url(read_url)
        if address is None:
            raise UnknownError(f"Could not determine the bucket address of {options.username}")
        return address

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_file(self, path: str, options: Optional[GetFileOptions] = None) -> Optional[Content]:
        """Fetch a file, verifying and decrypting as requested.

        Args:
            path: Path of the file in the bucket.
            options: Decrypt/verify settings and the user to read from.

        Returns:
            Text or Binary content, or None if the file does not exist.

        Raises:
            UnknownError: On a hub error status.
            SignatureVerificationError: If a companion signature is missing or invalid.
            UnexpectedSigner: If the file was signed by someone else.
            InvalidSignature, MacMismatch, MalformedEnvelope: On envelope failures.
        """
        options = options or GetFileOptions()
        logger.debug(
            "getFile: path=%s decrypt=%s verify=%s", path, options.decrypt, options.verify
        )
        read_url = await self.get_file_url(path, options)
        response = await self._transport.execute("GET", read_url)
        if response.status == 404:
            logger.debug("getFile: %s not found", path)
            return None
        if not response.ok:
            raise UnknownError(
                f"Error when loading from Gaia hub, status: {response.status}"
            )

        if options.decrypt:
            if options.verify:
                expected = await self._expected_address(read_url, options)
                signed = parse_signed_cipher_object(response.body)
                cipher = verify_signed_cipher(signed, expected)
            else:
                cipher = parse_cipher_object(response.body)
            return decrypt_ecies(self._app_private_key(), cipher)

        content = self._decode_body(response)
        if options.verify:
            expected = await self._expected_address(read_url, options)
            await self._verify_companion(path, response.body, expected, options)
        return content

    def _decode_body(self, response: Response) -> Content:
        if _is_text(response.content_type):
            return Text(response.text())
        return Binary(response.body)

    async def _verify_companion(
        self, path: str, body: bytes, expected_address: str, options: GetFileOptions
    ) -> None:
        try:
            sig_url = await self.get_file_url(signature_path(path), options)
            sig_response = await self._transport.execute("GET", sig_url)
        except (TransportError, UnknownError) as err:
            raise SignatureVerificationError(path, missing=True) from err
        if not sig_response.ok:
            raise SignatureVerificationError(path, missing=True)
        try:
            signature = parse_signature_object(sig_response.body)
            verify_content(signature, body, expected_address)
        except UnexpectedSigner:
            raise
        except (MalformedEnvelope, InvalidSignature) as err:
            raise SignatureVerificationError(path, missing=False) from err

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _sign_key(self, options: PutFileOptions) -> str:
        if isinstance(options.sign, str):
            return options.sign
        return self._app_private_key()

    async def _upload(
        self, path: str, body: bytes, content_type: str, config: HubConfig
    ) -> str:
        response = await self._transport.execute(
            "POST",
            store_url(path, config),
            headers=auth_headers(config, content_type),
            body=body,
        )
        if not response.ok:
            raise UnknownError(
                f"Error when uploading to Gaia hub, status: {response.status}"
            )
        try:
            public_url = response.json().get("publicURL")
        except (orjson.JSONDecodeError, AttributeError) as err:
            raise UnknownError(f"invalid response from putFile: {err}") from err
        if not public_url:
            raise UnknownError("invalid response from putFile: missing publicURL")
        return public_url

    async def put_file(
        self,
        path: str,
        content: Union[str, bytes, Content],
        options: Optional[PutFileOptions] = None,
    ) -> str:
        """Store ``content`` at ``path``.

        Args:
            path: Destination path in the bucket.
            content: Text or binary content.
            options: Encryption, signing and content type settings.

        Returns:
            Public URL of the stored file.

        Raises:
            UnknownError: If the hub rejects the upload.
            SignatureUploadError: If the content was stored but its
                ``.sig`` companion was not.
        """
        options = options or PutFileOptions()
        logger.debug(
            "putFile: path=%s encrypt=%s sign=%s",
            path, options.should_encrypt, options.should_sign,
        )
        config = await self._hub_config()
        content = as_content(content)

        if options.should_encrypt:
            public_key = options.encryption_key or public_key_hex(self._app_private_key())
            cipher_json = encrypt_ecies(public_key, content).to_json()
            if options.should_sign:
                signed = sign_encrypted_content(cipher_json, self._sign_key(options))
                body = signed.to_json_bytes()
            else:
                body = cipher_json.encode("utf-8")
            content_type = CONTENT_TYPE_JSON
        else:
            body = content.to_bytes()
            content_type = options.content_type or (
                CONTENT_TYPE_TEXT if isinstance(content, Text) else CONTENT_TYPE_BINARY
            )

        public_url = await self._upload(path, body, content_type, config)

        if options.should_sign and not options.should_encrypt:
            try:
                await self._upload_signature(path, body, self._sign_key(options), config)
            except GaiaError as err:
                logger.error("putFile: signature upload failed for %s: %s", path, err)
                raise SignatureUploadError(path, public_url, str(err)) from err
        return public_url

    async def _upload_signature(
        self, path: str, body: bytes, sign_key: str, config: HubConfig
    ) -> str:
        signature = sign_content(body, sign_key)
        return await self._upload(
            signature_path(path), signature.to_json_bytes(), CONTENT_TYPE_JSON, config
        )

    async def put_signature(
        self,
        path: str,
        content: Union[str, bytes, Content],
        options: Optional[PutFileOptions] = None,
    ) -> str:
        """Upload only the ``.sig`` companion for plaintext already at ``path``.

        Repairs the state left by a ``SignatureUploadError``.

        Returns:
            Public URL of the signature file.
        """
        options = options or PutFileOptions(encrypt=False, sign=True)
        config = await self._hub_config()
        body = as_content(content).to_bytes()
        return await self._upload_signature(path, body, self._sign_key(options), config)

    # ------------------------------------------------------------------
    # Deletes
    # ------------------------------------------------------------------

    async def _delete(self, path: str, config: HubConfig) -> None:
        response = await self._transport.execute(
            "DELETE", delete_url(path, config), headers=auth_headers(config)
        )
        if response.status == 404:
            logger.warning("deleteFile: %s does not exist", path)
            return
        if not response.ok:
            raise UnknownError(
                f"Error when deleting from Gaia hub, status: {response.status}"
            )

    async def delete_file(self, path: str, options: Optional[DeleteFileOptions] = None) -> None:
        """Delete ``path``; deleting a missing file succeeds.

        Args:
            path: Path of the file in the bucket.
            options: ``was_signed`` also removes the ``.sig`` companion.
        """
        options = options or DeleteFileOptions()
        logger.debug("deleteFile: path=%s was_signed=%s", path, options.was_signed)
        config = await self._hub_config()
        await self._delete(path, config)
        if options.was_signed:
            await self._delete(signature_path(path), config)
