"""Shared authentication state machine.

PushAuth and WaveAuth run the same challenge/response cycle and differ
only in how the device's assertion is fetched. AuthenticationSession
holds the common state and logic; an AssertionSource supplies the
variant-specific fetch:

- PlainAssertion: GET the assertion URL (PushAuth; the app challenge was
  already solved when the authentication was started)
- ChallengeExchangeAssertion: solve the app's challenge if bidirectional,
  then POST the service challenge and wait for the app (WaveAuth)
"""

import logging
from enum import Enum, IntEnum
from typing import TYPE_CHECKING, Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from .common.errors import PreconditionError, ProtocolError, SignatureMismatchError
from .common.protocol import (
    AppChallengeResponse,
    AssertionResponse,
    AuthenticationStatusResponse,
    DecryptedPayload,
    PayloadExchangeResponse,
    parse_response,
)
from .common.utils import hexd, hexe
from .crypto.pki import load_public_pem
from .crypto.sign import verify_bytes
from .payload import PayloadRequest, PayloadResponse

if TYPE_CHECKING:
    from .service import Service


class AuthenticationLevel(IntEnum):
    """Strength of an authentication; higher levels ask more of the user."""
    # App only needs to be open
    NOTIFICATION = 1
    # User approves, cancels or reports
    APPROVAL = 2
    # Biometric input; elevated to OneTiCK on devices without the hardware
    BIOMETRIC = 3
    # One Time Cognitive Keyboard challenge
    ONETICK = 4


class Authenticated(Enum):
    """Final outcome of an authentication."""
    SUCCESS = "success"
    FAILURE = "failure"
    REPORT = "report"
    CANCEL = "cancel"


class AuthenticationState(Enum):
    """Lifecycle state of an authentication, as reported by get_state()."""
    INITIALISED = "initialised"
    SCANNED = "scanned"  # WaveAuth only
    PENDING_SP_SOLUTION = "pending sp solution"  # never returned by get_state()
    PENDING_APP_SOLUTION = "pending app solution"
    DONE = "done"
    NOT_FOUND = "not found"


class AuthenticationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    outcome: Authenticated
    username: Optional[str] = None
    payload: PayloadResponse = Field(default_factory=PayloadResponse)


class AssertionSource:
    """How an authentication fetches the device's assertion."""

    async def retrieve(self, session: "AuthenticationSession") -> Any:
        raise NotImplementedError


class PlainAssertion(AssertionSource):
    async def retrieve(self, session: "AuthenticationSession") -> Any:
        return await session.service.get_url(session.assertion_url)


class ChallengeExchangeAssertion(AssertionSource):
    def __init__(self, app_challenge_url: Optional[str]):
        # None when the authentication is not bidirectional
        self.app_challenge_url = app_challenge_url

    async def retrieve(self, session: "AuthenticationSession") -> Any:
        service = session.service
        request: Dict[str, Any] = {}
        if self.app_challenge_url:
            data = await service.get_url(self.app_challenge_url)
            app_challenge = parse_response(AppChallengeResponse, data, "retrieving app challenge")
            request["appChallengeSolution"] = hexe(service.sign(hexd(app_challenge.app_challenge)))

        request["authenticationLevel"] = session.level
        request["authenticationChallenge"] = hexe(session.challenge)
        request["waitForAppSolution"] = True

        return await service.post_url(session.assertion_url, request)


class AuthenticationSession:
    def __init__(
        self,
        service: "Service",
        logger: logging.LoggerAdapter,
        log_id: str,
        challenge: bytes,
        level: int,
        status_url: str,
        assertion_url: str,
        verify_url: Optional[str],
        source: AssertionSource,
        pending_sp_state: AuthenticationState,
    ):
        self.service = service
        self.logger = logger
        self.log_id = log_id
        self.challenge = bytes(challenge)
        self.level = int(level)
        self.status_url = status_url
        self.assertion_url = assertion_url
        self.verify_url = verify_url
        self.source = source
        # What PENDING_SP_SOLUTION is reported as to callers
        self.pending_sp_state = pending_sp_state

    async def get_state(self) -> AuthenticationState:
        data = await self.service.get_url(self.status_url)
        response = parse_response(AuthenticationStatusResponse, data, "retrieving authentication state")
        try:
            state = AuthenticationState(response.status_text)
        except ValueError:
            raise ProtocolError(
                f"Unexpected status {response.status_text} for authentication ({self.log_id})"
            ) from None

        if state is AuthenticationState.PENDING_SP_SOLUTION:
            return self.pending_sp_state
        return state

    async def authenticate(self, payload: Optional[PayloadRequest] = None) -> AuthenticationResult:
        """Wait for the device's answer and verify it.

        Raises:
            SignatureMismatchError: If the device key is not bound to the user
        """
        data = await self.source.retrieve(self)
        assertion = parse_response(AssertionResponse, data, "retrieving authentication assertion")
        self.verify_url = assertion.verify_url

        username = assertion.username
        payload_response = PayloadResponse()
        outcome = assertion.outcome

        if outcome == "cancelled":
            await self.accept(False, outcome)
            return AuthenticationResult(outcome=Authenticated.CANCEL, username=username, payload=payload_response)

        if outcome == "reported":
            await self.accept(False, outcome)
            return AuthenticationResult(outcome=Authenticated.REPORT, username=username, payload=payload_response)

        if outcome != "true":
            await self.accept(False)
            return AuthenticationResult(outcome=Authenticated.FAILURE, username=username, payload=payload_response)

        missing = [
            name
            for name, value in (
                ("username", assertion.username),
                ("deviceId", assertion.device_id),
                ("publicKey", assertion.public_key),
                ("publicKeyLevel", assertion.public_key_level),
                ("keySignature", assertion.key_signature),
                ("authenticationSolution", assertion.solution),
            )
            if value is None
        ]
        if missing:
            reason = f"Assertion is missing {', '.join(missing)}"
            await self.accept(False, reason)
            raise ProtocolError(reason)

        try:
            public_key = load_public_pem(assertion.public_key)
            key_signature = hexd(assertion.key_signature)
            solution = hexd(assertion.solution)
        except ValueError as e:
            await self.accept(False, "Malformed assertion")
            raise ProtocolError(f"Malformed assertion: {e}") from e

        valid_signature = self.service.verify_signature(
            key_signature,
            assertion.username,
            assertion.device_id,
            public_key,
            assertion.public_key_level,
        )
        if not valid_signature:
            reason = f"Mismatching key signatures for `{username}`; re-authentication may be necessary"
            self.logger.warning(reason)
            await self.accept(False, reason)
            raise SignatureMismatchError(reason)

        authenticated = verify_bytes(public_key, self.challenge, solution)

        payload_valid = True
        if payload is not None:
            if not assertion.payload_url:
                await self.accept(False, "Missing payload URL")
                raise ProtocolError("Assertion is missing payloadURL")

            envelope = await self.service.encrypt_payload_data(
                public_key, {"get": payload.get, "set": payload.set}
            )
            data = await self.service.post_url(
                assertion.payload_url, {"payload": envelope.model_dump()}
            )
            exchange = parse_response(PayloadExchangeResponse, data, "exchanging payload")
            decrypted = parse_response(
                DecryptedPayload,
                self.service.decrypt_payload_json(public_key, exchange.payload),
                "reading payload response",
            )

            if payload.has_set():
                payload_response.set = bool(decrypted.set_response)
            payload_response.get = {**payload_response.get, **decrypted.get_response}

            payload_valid = not payload.has_set() or payload_response.set

        await self.accept(authenticated and payload_valid)

        result = Authenticated.SUCCESS if authenticated and payload_valid else Authenticated.FAILURE
        self.logger.info("Authentication for %s finished: %s", username, result.value)
        return AuthenticationResult(outcome=result, username=username, payload=payload_response)

    async def accept(self, accepted: bool, fail_reason: Optional[str] = None) -> Any:
        """Tell the app whether the authentication was accepted."""
        if not self.verify_url:
            raise PreconditionError(
                "Expected authentication verification URL. Has `authenticate` been called?"
            )

        request: Dict[str, Any] = {"verified": accepted}
        if fail_reason is not None:
            request["failReason"] = fail_reason
        return await self.service.post_url(self.verify_url, request)
