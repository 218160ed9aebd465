"""Enrollment: binding a username to a device's public keys.

Lifecycle:
    Service.enroll_user() -> display wave_code_url -> validate() blocks
    until the device scans it and returns an identicon URL -> the user
    compares identicons -> confirm(True/False).

validate() fills in the device id, public keys and confirmation URL
exactly once; confirm() needs them.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

from cryptography.hazmat.primitives.asymmetric import rsa

from .common.errors import EnrollmentFailedError, PreconditionError, ProtocolError
from .common.logger import PrefixLogger
from .common.protocol import (
    ConfirmResponse,
    DecryptedPayload,
    EnrollmentStatusResponse,
    ValidateResponse,
    parse_response,
)
from .common.utils import hexe
from .common.version import SERIALIZED_VERSION
from .payload import PayloadRequest, PayloadResponse
from .storage.codec import encode_record, object_to_public_key_map, public_key_map_to_object

if TYPE_CHECKING:
    from .service import Service

# Payloads are always sealed to the level 1 key
PAYLOAD_KEY_LEVEL = 1


class EnrollmentState(Enum):
    INITIALISED = "initialised"
    SCANNED = "scanned"
    VALIDATED = "validated"
    CONFIRMED = "confirm"
    FAILED = "failed"
    UNKNOWN = "unknown"  # should never occur


@dataclass
class EnrollmentResult:
    success: bool = True
    # Present only when payload actions were requested
    payload: Optional[PayloadResponse] = None


class Enrollment:
    HEADER = "CiphEnrl"

    def __init__(
        self,
        service: "Service",
        base_logger: logging.Logger,
        log_id: str,
        wave_code_url: str,
        direct_enrol_url: str,
        status_url: str,
        validate_url: str,
        username: str,
        public_keys: Optional[Mapping[int, rsa.RSAPublicKey]] = None,
        device_id: str = "",
        confirmation_url: str = "",
    ):
        """Not for direct use; see Service.enroll_user().

        `direct_enrol_url` is for users enrolling on the device that runs the
        app: show it as a button, prefixed with `cipherise://?directEnrolURL=`.
        """
        self.service = service
        self.logger = PrefixLogger(log_id, base_logger)
        self.log_id = log_id
        self.wave_code_url = wave_code_url
        self.direct_enrol_url = direct_enrol_url
        self.status_url = status_url
        self.validate_url = validate_url
        self.username = username
        self.public_keys: Dict[int, rsa.RSAPublicKey] = dict(sorted((public_keys or {}).items()))
        self.device_id = device_id or ""
        self.confirmation_url = confirmation_url or ""

    async def get_state(self) -> EnrollmentState:
        """Short-poll the server for the enrollment state."""
        data = await self.service.get_url(self.status_url)
        response = parse_response(EnrollmentStatusResponse, data, "retrieving enrollment state")
        try:
            return EnrollmentState(response.status)
        except ValueError:
            return EnrollmentState.UNKNOWN

    async def validate(self) -> str:
        """Wait for the user to scan the WaveCode and return an identicon URL to display.

        Raises:
            EnrollmentFailedError: If the server reports a failure reason
            PreconditionError: If the enrollment was already validated
        """
        if self.confirmation_url:
            raise PreconditionError("Enrollment has already been validated")

        self.logger.debug("Waiting for validation response")
        try:
            data = await self.service.get_url(self.validate_url)
            response = parse_response(ValidateResponse, data, "validating enrollment")
            if response.fail_reason:
                raise EnrollmentFailedError(response.fail_reason)
            if not response.confirmation_url or not response.device_id or not response.identicon_url:
                raise ProtocolError("Validation response is missing device details")
            public_keys = object_to_public_key_map(response.public_keys)
        except Exception as e:
            self.logger.error("Failed to retrieve validation response, error: %s", e)
            raise

        self.logger.verbose("Retrieved identicon URL: %s", response.identicon_url)
        self.logger.verbose(
            "Retrieved device details: %s",
            json.dumps({"id": response.device_id, "keys": response.public_keys}),
        )

        self.public_keys = public_keys
        self.device_id = response.device_id
        self.confirmation_url = response.confirmation_url
        return response.identicon_url

    async def confirm(self, success: bool, payload: Optional[PayloadRequest] = None) -> EnrollmentResult:
        """Complete the enrollment with the user's decision.

        Args:
            success: Whether the user approved, i.e. the identicon shown
                matched the one on the device
            payload: Optional values to store on the device; only `set` is used

        Raises:
            PreconditionError: If validate() has not completed
        """
        if not self.confirmation_url:
            self.logger.warning("Confirm was called without a valid confirmation URL")
            raise PreconditionError("Expected confirmation URL. Has `validate` been called?")

        signatures = {
            str(level): hexe(self.service.calculate_signature(self.username, self.device_id, key, level))
            for level, key in self.public_keys.items()
        }

        request: Dict[str, Any] = {
            "confirm": "confirm" if success else "reject",
            "signatures": signatures,
        }

        # A rejected enrollment stores nothing on the device.
        with_payload = success and payload is not None and payload.has_set()
        if with_payload:
            payload_key = self._payload_key()
            envelope = await self.service.encrypt_payload_data(payload_key, {"set": payload.set})
            request["payload"] = envelope.model_dump()

        self.logger.debug("Enrolling with request: `%s`", json.dumps(request))
        data = await self.service.post_url(self.confirmation_url, request)
        response = parse_response(ConfirmResponse, data, "confirming enrollment")
        self.logger.verbose("Finished enrollment, response: %s", json.dumps(data))

        # Check that the device actually stored the payload.
        payload_response: Optional[PayloadResponse] = None
        if with_payload:
            if response.payload is None:
                raise ProtocolError("Confirmation response is missing the payload acknowledgement")
            decrypted = parse_response(
                DecryptedPayload,
                self.service.decrypt_payload_json(payload_key, response.payload),
                "reading payload response",
            )
            stored = bool(decrypted.set_response)
            success = success and stored

            if response.payload_verify_url:
                await self.service.post_url(response.payload_verify_url, {"verified": success})

            payload_response = PayloadResponse(set=stored)

        return EnrollmentResult(success=success, payload=payload_response)

    def _payload_key(self) -> rsa.RSAPublicKey:
        key = self.public_keys.get(PAYLOAD_KEY_LEVEL)
        if key is None:
            raise ProtocolError("Device has no level 1 key to seal the payload to")
        return key

    def serialize(self) -> bytes:
        return encode_record([
            Enrollment.HEADER,
            SERIALIZED_VERSION,
            self.log_id,
            self.wave_code_url,
            self.direct_enrol_url,
            self.status_url,
            self.validate_url,
            self.username,
            self.confirmation_url,
            self.device_id,
            public_key_map_to_object(self.public_keys),
        ])

    def __eq__(self, other):
        if not isinstance(other, Enrollment):
            return NotImplemented
        return (
            self.service == other.service
            and self.log_id == other.log_id
            and self.wave_code_url == other.wave_code_url
            and self.direct_enrol_url == other.direct_enrol_url
            and self.status_url == other.status_url
            and self.validate_url == other.validate_url
            and self.username == other.username
            and public_key_map_to_object(self.public_keys) == public_key_map_to_object(other.public_keys)
            and self.device_id == other.device_id
            and self.confirmation_url == other.confirmation_url
        )

    __hash__ = None
