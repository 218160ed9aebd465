"""Payload request/response models.

During certain operations the device can store or retrieve data that has
been provided by the service. PayloadRequest asks the device to do so;
PayloadResponse reports what happened. PayloadEnvelope is the encrypted
wire form of either, as produced by Service.encrypt_payload_data.

Not every action is available everywhere: `get` has nothing to return
during enrollment, so only `set` is sent there.
"""

from typing import Callable, Dict, List

from pydantic import BaseModel, ConfigDict, Field


class PayloadRequest(BaseModel):
    """Identifiers to fetch (`get`) and values to store (`set`) on the device."""
    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    get: List[str] = Field(default_factory=list)
    set: Dict[str, str] = Field(default_factory=dict)

    def has_set(self) -> bool:
        return len(self.set) > 0


class PayloadResponse(BaseModel):
    """Result of payload actions.

    `get` holds the values retrieved from the device (empty if none were
    requested). `set` is True only if a set action was requested and the
    device confirmed it.
    """
    model_config = ConfigDict(validate_assignment=True)

    get: Dict[str, str] = Field(default_factory=dict)
    set: bool = False


class PayloadEnvelope(BaseModel):
    """Hex encoded hybrid RSA/AES envelope: ciphertext||IV, encrypted key, signature."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    data: str
    key: str
    signature: str


class PayloadRequestBuilder:
    """Helper to construct a PayloadRequest.

        request = PayloadRequestBuilder.build(
            lambda b: b.with_get(["email"]).with_set({"token": "abc"})
        )
    """

    def __init__(self):
        self._request = PayloadRequest()

    @staticmethod
    def build(f: Callable[["PayloadRequestBuilder"], object]) -> PayloadRequest:
        builder = PayloadRequestBuilder()
        f(builder)
        return builder._request

    def with_get(self, get: List[str]) -> "PayloadRequestBuilder":
        self._request.get = list(get)
        return self

    def with_set(self, set: Dict[str, str]) -> "PayloadRequestBuilder":
        self._request.set = dict(set)
        return self
