"""Pydantic models for the JSON bodies returned by the Cipherise server.

Every response is parsed into one of these models where it is received,
so a missing or malformed field surfaces as a ProtocolError instead of
travelling through the SDK as None.

Field names follow the server's camelCase spelling via aliases; unknown
fields are ignored so that newer servers remain compatible.
"""

from typing import Any, Dict, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel, Field, ValidationError
from pydantic.config import ConfigDict

from ..payload import PayloadEnvelope
from .errors import ProtocolError


class Message(BaseModel):
    """Base class for all server responses."""
    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        str_strip_whitespace=True,
    )


M = TypeVar("M", bound=Message)


def parse_response(model: Type[M], data: Any, what: str) -> M:
    """Validate `data` against `model`, raising ProtocolError on mismatch."""
    if data is None:
        raise ProtocolError(f"Empty response while {what}")
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise ProtocolError(f"Malformed response while {what}: {e}") from e


# ---------------------------------------------------------------------------
# Server and service management
# ---------------------------------------------------------------------------


class ServerInfoResponse(Message):
    product_type: str = Field(alias="productType")
    server_version: str = Field(alias="serverVersion")
    build_version: Union[int, str] = Field(default=0, alias="buildVersion")
    app_min_version: str = Field(default="0.0.0", alias="appMinVersion")
    payload_size: Optional[int] = Field(default=None, alias="payloadSize")


class CreateServiceResponse(Message):
    service_id: str = Field(alias="serviceId")


class OkResponse(Message):
    ok: bool = False


class SessionChallengeResponse(Message):
    """GET sp/authenticate-service/{id}"""
    sp_auth_challenge: str = Field(alias="spAuthChallenge")
    auth_token: str = Field(alias="authToken")


class SessionResponse(Message):
    """POST sp/authenticate-service/"""
    session_id: str = Field(alias="sessionId")


# ---------------------------------------------------------------------------
# Users and devices
# ---------------------------------------------------------------------------


class DeviceRecord(Message):
    device_id: str = Field(alias="deviceId")
    friendly_name: str = Field(default="", alias="friendlyName")
    # level -> PEM and level -> hex signature; JSON object keys are strings
    public_keys: Dict[str, str] = Field(default_factory=dict, alias="publicKeys")
    signatures: Dict[str, str] = Field(default_factory=dict)


class UserDevicesResponse(Message):
    devices: List[DeviceRecord] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Enrollment
# ---------------------------------------------------------------------------


class EnrollUserResponse(Message):
    log_id: str = Field(alias="logId")
    wave_code_url: str = Field(alias="qrCodeURL")
    direct_enrol_url: str = Field(default="", alias="directEnrolURL")
    status_url: str = Field(alias="statusURL")
    validate_url: str = Field(alias="validateURL")


class EnrollmentStatusResponse(Message):
    status: Optional[str] = Field(default=None, alias="QREnrolStatus")


class ValidateResponse(Message):
    fail_reason: Optional[str] = Field(default=None, alias="failReason")
    identicon_url: Optional[str] = Field(default=None, alias="identiconURL")
    device_id: Optional[str] = Field(default=None, alias="deviceId")
    public_keys: Dict[str, str] = Field(default_factory=dict, alias="publicKeys")
    confirmation_url: Optional[str] = Field(default=None, alias="confirmationURL")


class ConfirmResponse(Message):
    payload: Optional[PayloadEnvelope] = None
    payload_verify_url: Optional[str] = Field(default=None, alias="payloadVerifyURL")


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


class AuthenticationStartResponse(Message):
    log_id: str = Field(alias="logId")
    status_url: str = Field(alias="statusURL")
    assertion_url: str = Field(alias="challengeExchangeURL")
    app_challenge_url: Optional[str] = Field(default=None, alias="appAuthenticationURL")
    # Wave only
    initiator_url: Optional[str] = Field(default=None, alias="directURL")
    wave_code_url: Optional[str] = Field(default=None, alias="qrURL")


class AppChallengeResponse(Message):
    app_challenge: str = Field(alias="appChallenge")


class AuthenticationStatusResponse(Message):
    status_text: Optional[str] = Field(default=None, alias="statusText")


class AssertionResponse(Message):
    verify_url: Optional[str] = Field(default=None, alias="verifyAuthenticationURL")
    username: Optional[str] = None
    authenticated: Union[bool, str, None] = None
    device_id: Optional[str] = Field(default=None, alias="deviceId")
    public_key: Optional[str] = Field(default=None, alias="publicKey")
    public_key_level: Optional[int] = Field(default=None, alias="publicKeyLevel")
    key_signature: Optional[str] = Field(default=None, alias="keySignature")
    solution: Optional[str] = Field(default=None, alias="authenticationSolution")
    payload_url: Optional[str] = Field(default=None, alias="payloadURL")

    @property
    def outcome(self) -> str:
        """The device's verdict as text: "true", "cancelled", "reported", ..."""
        if isinstance(self.authenticated, bool):
            return "true" if self.authenticated else "false"
        return self.authenticated or ""


class PayloadExchangeResponse(Message):
    payload: PayloadEnvelope


class DecryptedPayload(Message):
    """Plaintext body of a payload envelope sent by the device."""
    get_response: Dict[str, str] = Field(default_factory=dict, alias="getResponse")
    set_response: Optional[bool] = Field(default=None, alias="setResponse")
