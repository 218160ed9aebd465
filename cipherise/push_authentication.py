"""PushAuth: an authentication sent to a particular user's device.

Useful when the user and their device are already known but must assert
their identity again, e.g. before an action needing elevated permission.
Start one with Service.push_auth(); restore one with
Service.deserialize_push_auth().
"""

import logging
from typing import TYPE_CHECKING, Optional

from .authentication import (
    AuthenticationResult,
    AuthenticationSession,
    AuthenticationState,
    PlainAssertion,
)
from .common.logger import PrefixLogger
from .common.version import SERIALIZED_VERSION
from .device import Device
from .payload import PayloadRequest
from .storage.codec import encode_record

if TYPE_CHECKING:
    from .service import Service


class PushAuth:
    HEADER = "CiphUsrP"

    def __init__(
        self,
        service: "Service",
        base_logger: logging.Logger,
        log_id: str,
        challenge: bytes,
        level: int,
        username: str,
        device: Device,
        status_url: str,
        assertion_url: str,
        verify_url: Optional[str],
    ):
        self.username = username
        self.device = device
        self._session = AuthenticationSession(
            service,
            PrefixLogger(log_id, base_logger),
            log_id,
            challenge,
            level,
            status_url,
            assertion_url,
            verify_url,
            PlainAssertion(),
            pending_sp_state=AuthenticationState.INITIALISED,
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
        """Retrieve the current state of the authentication."""
        return await self._session.get_state()

    async def get_status(self) -> AuthenticationState:
        """Deprecated alias of get_state()."""
        return await self.get_state()

    async def authenticate(self, payload: Optional[PayloadRequest] = None) -> AuthenticationResult:
        """Wait for the user to respond, then return the verified result.

        Blocks until the user acts; poll get_state() first for a
        non-blocking workflow.
        """
        return await self._session.authenticate(payload)

    def serialize(self) -> bytes:
        s = self._session
        return encode_record([
            PushAuth.HEADER,
            SERIALIZED_VERSION,
            s.log_id,
            s.challenge,
            s.level,
            self.username,
            self.device.serialize(),
            s.status_url,
            s.assertion_url,
            s.verify_url or None,
        ])

    def __eq__(self, other):
        if not isinstance(other, PushAuth):
            return NotImplemented
        a, b = self._session, other._session
        return (
            a.service == b.service
            and a.log_id == b.log_id
            and a.challenge == b.challenge
            and a.level == b.level
            and self.username == other.username
            and self.device == other.device
            and a.status_url == b.status_url
            and a.assertion_url == b.assertion_url
            and a.verify_url == b.verify_url
        )

    __hash__ = None
