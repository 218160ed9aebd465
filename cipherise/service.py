"""Service: a relying party registered with the Cipherise server.

The Service owns the RSA private key generated by Client.create_service()
and the server session token. It signs and verifies key-binding
signatures, wraps every authenticated request in the session refresh
logic, seals and opens payload envelopes, and starts enrollments and
authentications.

Key-binding signatures
    SHA-256 over, in order: the server URL (lowercased), the service id,
    the username (lowercased), the device id, the device public key as PEM
    plus a newline, and the authentication level as a decimal string. The
    digest is RSA-signed with the service key. A recorded signature cannot
    be replayed against another server, service, user, device, key or
    level.

Payload envelope
    Compact JSON, AES-256-CFB under a fresh key and IV, data = ciphertext
    followed by the IV. The AES key is RSA-encrypted to the recipient and
    the encrypted key is signed with the sender's key. All three parts are
    hex encoded.
"""

import asyncio
import json
import logging
import secrets
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

from cryptography.hazmat.primitives.asymmetric import rsa

from .authentication import AuthenticationLevel
from .common.errors import (
    PayloadDataLengthExceededError,
    PayloadSignatureError,
    ProtocolError,
    SessionExpiredError,
    SignatureMismatchError,
)
from .common.logger import PrefixLogger
from .common.protocol import (
    AppChallengeResponse,
    AuthenticationStartResponse,
    DeviceRecord,
    EnrollUserResponse,
    OkResponse,
    SessionChallengeResponse,
    SessionResponse,
    UserDevicesResponse,
    parse_response,
)
from .common.utils import hexd, hexe, sha256_digest
from .common.version import SERIALIZED_VERSION
from .crypto import aes
from .crypto.pki import decrypt_pkcs1, encrypt_pkcs1, export_private_der, export_public_pem
from .crypto.sign import sign_bytes, verify_bytes
from .device import Device
from .enrollment import Enrollment
from .payload import PayloadEnvelope
from .push_authentication import PushAuth
from .storage.codec import decode_record, encode_record, object_to_public_key_map
from .wave_authentication import WaveAuth

if TYPE_CHECKING:
    from .client import Client
    from .web_client import WebClient

CHALLENGE_SIZE = 16

_FORCE_REFRESH = object()


class Service:
    HEADER = "CiphSrvc"

    def __init__(
        self,
        id: str,
        client: "Client",
        web_client: "WebClient",
        key: rsa.RSAPrivateKey,
        session_id: Optional[str],
        base_logger: logging.Logger,
    ):
        """Not for direct use; see Client.create_service() and Client.deserialize_service()."""
        self.id = id
        self.client = client
        self.web_client = web_client
        self.key = key
        self.session_id = session_id
        self.base_logger = base_logger
        self.logger = PrefixLogger(f"Service(id: {id})", base_logger)
        # Created on first refresh so it binds to the loop that uses it
        self._refresh_lock: Optional[asyncio.Lock] = None

    # ------------------------------------------------------------------
    # Service operations
    # ------------------------------------------------------------------

    async def revoke(self) -> bool:
        """Revoke this service so it cannot be used any further."""
        self.logger.info("Revoking service")
        try:
            data = await self.post_uri("sp/revoke-service", {})
            return parse_response(OkResponse, data, "revoking service").ok
        except Exception as e:
            self.logger.error("Failed to revoke service: %s", e)
            raise

    # ------------------------------------------------------------------
    # User operations
    # ------------------------------------------------------------------

    async def get_user_devices(self, username: str) -> List[Device]:
        """Return the devices enrolled by `username` whose key signatures verify.

        A device is returned only if it lists at least one signature, every
        key level is signed and every signature verifies. An empty list
        means the user has not enrolled.

        Raises:
            SignatureMismatchError: If the server lists devices but none verify
        """
        self.logger.info('Retrieving devices for "%s"', username)
        try:
            data = await self.get_uri(f"sp/user-devices/{username}")
            response = parse_response(UserDevicesResponse, data, "retrieving user devices")

            devices: List[Device] = []
            for record in response.devices:
                self.logger.verbose('"%s" device: %s', username, record.model_dump_json(by_alias=True))
                device = self._verified_device(username, record)
                if device is not None:
                    devices.append(device)

            self.logger.verbose('"%s": List of verified devices: %s', username, devices)

            if response.devices and not devices:
                self.logger.warning('"%s": No verified devices found; user may need to re-enrol', username)
                raise SignatureMismatchError("Mismatching key signatures")

            return devices
        except Exception as e:
            self.logger.error('Failed to retrieve devices for "%s": %s', username, e)
            raise

    def _verified_device(self, username: str, record: DeviceRecord) -> Optional[Device]:
        """Build a Device from a listing entry, or None if any of its keys is not bound to `username`.

        Every key level must carry a signature and every signature must
        name a key level; a device with no signatures is never trusted.
        """
        try:
            public_keys = object_to_public_key_map(record.public_keys)
            signatures = {int(level): hexd(signature) for level, signature in record.signatures.items()}
        except ValueError as e:
            raise ProtocolError(f"Malformed device {record.device_id!r}: {e}") from e

        if not signatures or set(signatures) != set(public_keys):
            self.logger.verbose('"%s": device %s has unsigned key levels', username, record.device_id)
            return None

        for level, signature in signatures.items():
            self.logger.verbose('"%s" remote signature: %s', username, hexe(signature))
            if not self.verify_signature(signature, username, record.device_id, public_keys[level], level):
                return None

        return Device(record.device_id, record.friendly_name, public_keys)

    async def user_enrolled(self, username: str) -> bool:
        """Return whether `username` has enrolled to this service."""
        return len(await self.get_user_devices(username)) > 0

    async def revoke_user(self, username: str, devices: Optional[List[Device]] = None) -> None:
        """Revoke a user, or only the given devices of that user."""
        self.logger.info('Revoking user "%s"', username)
        request: Dict[str, Any] = {"username": username}
        if devices:
            request["deviceIds"] = [device.id for device in devices]

        try:
            await self.post_uri("sp/revoke-user/", request)
        except Exception as e:
            self.logger.error('Failed to revoke user "%s", error: %s', username, e)
            raise
        self.logger.debug('Successfully revoked user "%s"', username)

    # ------------------------------------------------------------------
    # Enrollment and authentication
    # ------------------------------------------------------------------

    async def enroll_user(self, username: str) -> Enrollment:
        """Start an enrollment for `username`."""
        self.logger.info("Enrolling %s", username)
        try:
            data = await self.post_uri("sp/enrol-user/", {"username": username})
            response = parse_response(EnrollUserResponse, data, "starting enrollment")
        except Exception as e:
            self.logger.error('Failed to enrol "%s", error: %s', username, e)
            raise

        self.logger.debug(
            "Enrollment initiated (WaveCodeUrl: %s, validateUrl: %s)",
            response.wave_code_url,
            response.validate_url,
        )
        return Enrollment(
            self,
            self.base_logger,
            response.log_id,
            response.wave_code_url,
            response.direct_enrol_url,
            response.status_url,
            response.validate_url,
            username,
        )

    async def push_auth(
        self,
        username: str,
        device: Device,
        authentication_message: str,
        branding_message: str,
        notification_message: str,
        auth_level: Union[AuthenticationLevel, int],
    ) -> PushAuth:
        """Send an authentication to one of the user's devices.

        The device is notified straight away and the app's challenge to
        this service is solved before returning.
        """
        auth_level = int(auth_level)
        self.logger.info('Authenticating "%s" on device "%s" (id: %s)', username, device.name, device.id)
        self.logger.debug(
            'Parameters: authenticationMessage "%s", notificationMessage: "%s", '
            'brandingMessage: "%s", authLevel: %d',
            authentication_message,
            notification_message,
            branding_message,
            auth_level,
        )

        challenge = secrets.token_bytes(CHALLENGE_SIZE)
        request = {
            "authenticationChallenge": hexe(challenge),
            "authenticationLevel": auth_level,
            "authenticationMessage": authentication_message,
            "brandingMessage": branding_message,
            "deviceId": device.id,
            "interaction": "Push",
            "notificationMessage": notification_message,
            "payloadRequired": False,
            "type": "Authentication",
            "username": username,
        }

        try:
            data = await self.post_uri("sp/authentication", request)
            response = parse_response(AuthenticationStartResponse, data, "starting push authentication")
            if not response.app_challenge_url:
                raise ProtocolError("Push authentication response is missing the app challenge URL")

            challenge_data = await self.get_url(response.app_challenge_url)
            app_challenge = parse_response(AppChallengeResponse, challenge_data, "retrieving app challenge")
            solution = self.sign(hexd(app_challenge.app_challenge))

            await self.post_url(
                response.assertion_url,
                {
                    "appChallengeSolution": hexe(solution),
                    "authenticationChallenge": hexe(challenge),
                    "authenticationLevel": auth_level,
                    "waitForAppSolution": False,
                },
            )
        except Exception as e:
            self.logger.error(
                'Failed to initiate authentication for "%s" on device "%s" (id: %s), error: %s',
                username,
                device.name,
                device.id,
                e,
            )
            raise

        return PushAuth(
            self,
            self.base_logger,
            response.log_id,
            challenge,
            auth_level,
            username,
            device,
            response.status_url,
            response.assertion_url,
            None,
        )

    async def wave_auth(
        self,
        authentication_message: str,
        branding_message: str,
        auth_level: Union[AuthenticationLevel, int],
    ) -> WaveAuth:
        """Start an authentication presented as a WaveCode to an as yet unknown user."""
        auth_level = int(auth_level)
        self.logger.info(
            'Wave authenticating with authMessage "%s", brandMessage: "%s", authLevel: %d',
            authentication_message,
            branding_message,
            auth_level,
        )

        challenge = secrets.token_bytes(CHALLENGE_SIZE)
        request = {
            "authenticationChallenge": hexe(challenge),
            "authenticationLevel": auth_level,
            "authenticationMessage": authentication_message,
            "brandingMessage": branding_message,
            "interaction": "Wave",
            "payloadRequired": False,
            "type": "Authentication",
        }

        try:
            data = await self.post_uri("sp/authentication", request)
            response = parse_response(AuthenticationStartResponse, data, "starting wave authentication")
        except Exception as e:
            self.logger.error("Failed to initiate wave authentication, error: %s", e)
            raise

        self.logger.verbose("Retrieved wave authentication data: `%s`", json.dumps(data))
        return WaveAuth(
            self,
            self.base_logger,
            response.log_id,
            challenge,
            auth_level,
            response.initiator_url or "",
            response.wave_code_url or "",
            response.status_url,
            response.assertion_url,
            response.app_challenge_url,
            None,
        )

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def serialize(self) -> bytes:
        """Serialize this service, including its private key and session token."""
        return encode_record([
            Service.HEADER,
            SERIALIZED_VERSION,
            self.id,
            export_private_der(self.key),
            None,
            self.session_id,
        ])

    def deserialize_enrollment(self, data: bytes) -> Enrollment:
        arr = decode_record(data, "enrollment", Enrollment.HEADER, (11,), SERIALIZED_VERSION)
        return Enrollment(
            self,
            self.base_logger,
            log_id=arr[2],
            wave_code_url=arr[3],
            direct_enrol_url=arr[4],
            status_url=arr[5],
            validate_url=arr[6],
            username=arr[7],
            confirmation_url=arr[8],
            device_id=arr[9],
            public_keys=object_to_public_key_map(arr[10]),
        )

    def deserialize_push_auth(self, data: bytes) -> PushAuth:
        arr = decode_record(data, "PushAuth", PushAuth.HEADER, (10,), SERIALIZED_VERSION)
        return PushAuth(
            self,
            self.base_logger,
            arr[2],
            bytes(arr[3]),
            arr[4],
            arr[5],
            Device.deserialize(arr[6]),
            arr[7],
            arr[8],
            arr[9],
        )

    def deserialize_wave_auth(self, data: bytes) -> WaveAuth:
        arr = decode_record(data, "WaveAuth", WaveAuth.HEADER, (11,), SERIALIZED_VERSION)
        return WaveAuth(
            self,
            self.base_logger,
            arr[2],
            bytes(arr[3]),
            arr[4],
            arr[5],
            arr[6],
            arr[7],
            arr[8],
            arr[9],
            arr[10],
        )

    # ------------------------------------------------------------------
    # Access helpers
    # ------------------------------------------------------------------
    # Each request carries the session token and is attempted twice. A
    # session error refreshes the session and tries again; any other error
    # propagates. If both attempts hit a session error the result is None.

    async def _with_session(self, send: Callable[[Optional[str]], Awaitable[Any]]) -> Any:
        for _ in range(2):
            token = self.session_id
            try:
                return await send(token or None)
            except SessionExpiredError:
                await self.refresh_session(token)
        # TODO: raise SessionExpiredError here once no caller depends on the None result.
        return None

    async def post_url(self, url: str, form: Any) -> Any:
        return await self._with_session(lambda token: self.web_client.post_url(url, form, token))

    async def post_uri(self, uri: str, form: Any) -> Any:
        return await self._with_session(lambda token: self.web_client.post_uri(uri, form, token))

    async def get_url(self, url: str) -> Any:
        return await self._with_session(lambda token: self.web_client.get_url(url, token))

    async def get_uri(self, uri: str) -> Any:
        return await self._with_session(lambda token: self.web_client.get_uri(uri, token))

    async def refresh_session(self, stale_token: Any = _FORCE_REFRESH) -> None:
        """Solve a server challenge with the service key to obtain a new session token.

        `stale_token` is the token (possibly None) a failed request was sent
        with; if another caller has already replaced it the refresh is
        skipped, so concurrent callers share one refresh. Without it the
        refresh always runs.
        """
        if self._refresh_lock is None:
            self._refresh_lock = asyncio.Lock()

        async with self._refresh_lock:
            if stale_token is not _FORCE_REFRESH and self.session_id != stale_token:
                return

            self.logger.info("Authenticating")
            try:
                data = await self.web_client.get_uri(f"sp/authenticate-service/{self.id}", None)
                challenge = parse_response(SessionChallengeResponse, data, "retrieving session challenge")
                solution = self.sign(hexd(challenge.sp_auth_challenge))

                data = await self.web_client.post_uri(
                    "sp/authenticate-service/",
                    {
                        "authToken": challenge.auth_token,
                        "spAuthChallengeSolution": hexe(solution),
                    },
                    None,
                )
                session = parse_response(SessionResponse, data, "authenticating service")
            except Exception as e:
                self.logger.error("Failed to authenticate service, error: %s", e)
                raise

            self.session_id = session.session_id
            self.logger.info("Successfully authenticated, session id: %s", self.session_id)

    # ------------------------------------------------------------------
    # Signatures
    # ------------------------------------------------------------------

    def sign(self, data: bytes) -> bytes:
        """Sign arbitrary bytes with the service's private key."""
        return sign_bytes(self.key, data)

    def calculate_signature_data(
        self,
        username: str,
        device_id: str,
        public_key: rsa.RSAPublicKey,
        public_key_level: int,
    ) -> bytes:
        """Digest binding server, service, user, device, device key and level together."""
        return sha256_digest(
            self.web_client.url.lower(),
            self.id,
            username.lower(),
            device_id,
            export_public_pem(public_key) + "\n",
            str(int(public_key_level)),
        )

    def calculate_signature(
        self,
        username: str,
        device_id: str,
        public_key: rsa.RSAPublicKey,
        public_key_level: int,
    ) -> bytes:
        signature = self.sign(self.calculate_signature_data(username, device_id, public_key, public_key_level))
        self.logger.verbose(
            "Calculated signature with values %s, result == %s",
            json.dumps({
                "authLevel": str(public_key_level),
                "deviceId": device_id,
                "publicKey": export_public_pem(public_key),
                "serviceId": self.id,
                "username": username,
            }),
            hexe(signature),
        )
        return signature

    def verify_signature(
        self,
        signature: bytes,
        username: str,
        device_id: str,
        public_key: rsa.RSAPublicKey,
        public_key_level: int,
    ) -> bool:
        """Check a signature made by calculate_signature() for the same inputs."""
        data = self.calculate_signature_data(username, device_id, public_key, public_key_level)
        return verify_bytes(self.key.public_key(), data, signature)

    # ------------------------------------------------------------------
    # Payload envelope
    # ------------------------------------------------------------------

    async def encrypt_payload_data(self, recipient_public_key: rsa.RSAPublicKey, payload: Any) -> PayloadEnvelope:
        """Seal a JSON-serializable value for `recipient_public_key`.

        Raises:
            PayloadDataLengthExceededError: If the hex encoded data would not
                fit in the server's maximum payload size
        """
        plaintext = json.dumps(payload, separators=(",", ":")).encode("utf-8")
        key = aes.generate_key()
        iv = aes.generate_iv()
        encrypted_data_with_iv = aes.encrypt_aes_cfb(key, iv, plaintext) + iv

        payload_size = await self.client.get_payload_size()
        if len(encrypted_data_with_iv) * 2 >= payload_size:
            raise PayloadDataLengthExceededError(
                f"Payload data length limit exceeded: length {len(encrypted_data_with_iv)}, but max {payload_size}"
            )

        encrypted_key = encrypt_pkcs1(recipient_public_key, key)
        signature = self.sign(encrypted_key)

        return PayloadEnvelope(
            data=hexe(encrypted_data_with_iv),
            key=hexe(encrypted_key),
            signature=hexe(signature),
        )

    def decrypt_payload_json(
        self,
        sender_public_key: rsa.RSAPublicKey,
        envelope: Union[PayloadEnvelope, Mapping[str, str]],
    ) -> Any:
        """Open a payload envelope sealed by the holder of `sender_public_key`.

        Raises:
            PayloadSignatureError: If the encrypted key was not signed by the sender
            ProtocolError: If the envelope is malformed or does not decrypt to JSON
        """
        if not isinstance(envelope, PayloadEnvelope):
            envelope = parse_response(PayloadEnvelope, envelope, "reading payload")

        try:
            encrypted_data_with_iv = hexd(envelope.data)
            encrypted_key = hexd(envelope.key)
            signature = hexd(envelope.signature)
        except ValueError as e:
            raise ProtocolError("Payload is not hex encoded") from e

        if not verify_bytes(sender_public_key, encrypted_key, signature):
            raise PayloadSignatureError("Failed payload signature verification")

        try:
            key = decrypt_pkcs1(self.key, encrypted_key)
        except ValueError as e:
            raise ProtocolError("Failed to decrypt payload key") from e

        iv_bound = len(encrypted_data_with_iv) - aes.IV_SIZE
        if iv_bound <= 0:
            raise ProtocolError("Data field insufficiently long for both data and IV")

        try:
            data = aes.decrypt_aes_cfb(key, encrypted_data_with_iv[iv_bound:], encrypted_data_with_iv[:iv_bound])
            return json.loads(data.decode("utf-8"))
        except ValueError as e:
            raise ProtocolError(f"Failed to decrypt payload: {e}") from e

    # ------------------------------------------------------------------
    # Equality
    # ------------------------------------------------------------------

    def __eq__(self, other):
        if not isinstance(other, Service):
            return NotImplemented
        return (
            self.id == other.id
            and self.web_client.url == other.web_client.url
            and export_private_der(self.key) == export_private_der(other.key)
        )

    __hash__ = None

    def __repr__(self):
        return f"Service(id={self.id!r}, url={self.web_client.url!r})"
