"""WaveAuth: an authentication presented as a WaveCode.

The user scans the WaveCode (or follows the initiator URL on the device
itself) and is unknown until the authentication completes. Suited to
logging in. Start one with Service.wave_auth(); restore one with
Service.deserialize_wave_auth().
"""

import logging
from typing import TYPE_CHECKING, Optional

from .authentication import (
    AuthenticationResult,
    AuthenticationSession,
    AuthenticationState,
    ChallengeExchangeAssertion,
)
from .common.logger import PrefixLogger
from .common.version import SERIALIZED_VERSION
from .payload import PayloadRequest
from .storage.codec import encode_record

if TYPE_CHECKING:
    from .service import Service


class WaveAuth:
    HEADER = "CiphUsrW"

    def __init__(
        self,
        service: "Service",
        base_logger: logging.Logger,
        log_id: str,
        challenge: bytes,
        level: int,
        initiator_url: str,
        wave_code_url: str,
        status_url: str,
        assertion_url: str,
        app_challenge_url: Optional[str],
        verify_url: Optional[str],
    ):
        # Direct authentication link, for when the app runs on the same device
        self.initiator_url = initiator_url
        # Image URL of the WaveCode to display
        self.wave_code_url = wave_code_url
        self.app_challenge_url = app_challenge_url or None
        self._session = AuthenticationSession(
            service,
            PrefixLogger(log_id, base_logger),
            log_id,
            challenge,
            level,
            status_url,
            assertion_url,
            verify_url,
            ChallengeExchangeAssertion(self.app_challenge_url),
            pending_sp_state=AuthenticationState.SCANNED,
        )

    @property
    def service(self) -> "Service":
        return self._session.service

    @property
    def log_id(self) -> str:
        return self._session.log_id

    @property
    def status_url(self) -> str:
        return self._session.status_url

    @property
    def level(self) -> int:
        return self._session.level

    @property
    def verify_url(self) -> Optional[str]:
        return self._session.verify_url

    async def get_state(self) -> AuthenticationState:
        """Return the current state without blocking, e.g. to poll before authenticate()."""
        return await self._session.get_state()

    async def get_status(self) -> AuthenticationState:
        """Deprecated alias of get_state()."""
        return await self.get_state()

    async def authenticate(self, payload: Optional[PayloadRequest] = None) -> AuthenticationResult:
        """Wait for a user to scan and answer the WaveCode, then return the verified result."""
        return await self._session.authenticate(payload)

    def serialize(self) -> bytes:
        s = self._session
        return encode_record([
            WaveAuth.HEADER,
            SERIALIZED_VERSION,
            s.log_id,
            s.challenge,
            s.level,
            self.initiator_url,
            self.wave_code_url,
            s.status_url,
            s.assertion_url,
            self.app_challenge_url,
            s.verify_url or None,
        ])

    def __eq__(self, other):
        if not isinstance(other, WaveAuth):
            return NotImplemented
        a, b = self._session, other._session
        return (
            a.service == b.service
            and a.log_id == b.log_id
            and a.challenge == b.challenge
            and a.level == b.level
            and self.initiator_url == other.initiator_url
            and self.wave_code_url == other.wave_code_url
            and a.status_url == b.status_url
            and a.assertion_url == b.assertion_url
            and self.app_challenge_url == other.app_challenge_url
            and a.verify_url == b.verify_url
        )

    __hash__ = None
