"""Cipherise client: server compatibility checks and Service creation.

A Client is bound to one Cipherise server. It creates new services (each
with a freshly generated RSA keypair) or restores previously serialized
ones. Everything else happens on the Service.

    async with Client("https://cipherise.example.com") as client:
        service = await client.create_service("Example")
        blob = service.serialize()
"""

import logging
from typing import Optional

import httpx

from .common.config import get_settings
from .common.errors import DeserializationError, IncompatibleServerError, ProtocolError
from .common.logger import PrefixLogger, get_logger
from .common.protocol import CreateServiceResponse, ServerInfoResponse, parse_response
from .common.version import MINIMUM_SERVER_MAJOR, SERIALIZED_VERSION
from .crypto.pki import export_public_pem, generate_private_key, load_private_der
from .server_information import ServerInformation
from .service import Service
from .storage.codec import decode_record
from .web_client import WebClient

PRODUCT_TYPE = "CS"


class Client:
    def __init__(
        self,
        url: str,
        logger: Optional[logging.Logger] = None,
        validate_server_version: Optional[bool] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        web_client: Optional[WebClient] = None,
    ):
        """Create a client for the Cipherise server at `url`.

        Args:
            url: The URL of the Cipherise server
            logger: Logger for SDK messages (default: the "cipherise" logger)
            validate_server_version: Check the server before creating or
                restoring services (default: CIPHERISE_VALIDATE_SERVER_VERSION)
            http_client: Optional httpx.AsyncClient to send requests with
            web_client: Optional pre-built transport (mainly for tests)

        Raises:
            ValueError: If the URL is empty
        """
        settings = get_settings()
        self.base_logger = logger or get_logger()
        self.logger = PrefixLogger("Client", self.base_logger)
        self.validate_server_version = (
            settings.validate_server_version if validate_server_version is None else validate_server_version
        )
        self.web_client = web_client or WebClient(
            url,
            PrefixLogger("CWC", self.base_logger),
            http_client=http_client,
        )
        self._payload_size: Optional[int] = None

    @property
    def url(self) -> str:
        return self.web_client.url

    async def aclose(self) -> None:
        await self.web_client.aclose()

    async def __aenter__(self) -> "Client":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def server_information(self) -> ServerInformation:
        """Retrieve information about the server and check that this SDK supports it.

        Raises:
            IncompatibleServerError: If the server is not a Cipherise server,
                or is older than the minimum supported major version
        """
        data = await self.web_client.get_uri("info", None)
        response = parse_response(ServerInfoResponse, data, "retrieving server information")

        if response.product_type != PRODUCT_TYPE:
            raise IncompatibleServerError(
                f"Expected Cipherise server, but product type is '{response.product_type}'"
            )

        try:
            major = int(response.server_version.split(".")[0], 10)
        except ValueError as e:
            raise ProtocolError(f"Unparseable server version '{response.server_version}'") from e
        if major < MINIMUM_SERVER_MAJOR:
            raise IncompatibleServerError(
                f"This version of the SDK does not support Cipherise servers older than version "
                f"{MINIMUM_SERVER_MAJOR}.x.x. Please either upgrade your Cipherise server or "
                f"downgrade your SDK, as appropriate."
            )

        try:
            info = ServerInformation.from_response(response)
        except ValueError as e:
            raise ProtocolError(f"Malformed server information: {e}") from e
        self._payload_size = info.max_payload_size
        self.logger.debug("Server version %s, max payload size %d", info.server_version, info.max_payload_size)
        return info

    async def get_payload_size(self) -> int:
        """Return the negotiated maximum payload size, asking the server if needed."""
        if self._payload_size is None:
            await self.server_information()
        return self._payload_size

    async def create_service(self, service_name: str) -> Service:
        """Register a new service provider with the server.

        Args:
            service_name: The display name for this service provider

        Returns:
            A Service owning a freshly generated private key
        """
        if self.validate_server_version:
            await self.server_information()

        self.logger.info('Creating new service "%s"', service_name)
        key = generate_private_key()

        try:
            data = await self.web_client.post_uri(
                "sp/create-service",
                {
                    "friendlyName": service_name,
                    "publicKey": export_public_pem(key),
                },
                None,
            )
            response = parse_response(CreateServiceResponse, data, "creating service")
        except Exception as e:
            self.logger.error('Failed to create new service "%s", error: %s', service_name, e)
            raise

        self.logger.info("Successfully created service (id: %s, name: '%s')", response.service_id, service_name)
        return Service(response.service_id, self, self.web_client, key, None, self.base_logger)

    def deserialize_service(self, data: bytes) -> Service:
        """Restore a Service from Service.serialize() output.

        Accepts both the current versioned format and the older unversioned
        one. The legacy signature key slot is ignored.

        Raises:
            DeserializationError: If the buffer is not a serialized service
        """
        arr = decode_record(data, "service", Service.HEADER, (5, 6))

        if len(arr) == 5:
            service_id, key_der, session_id = arr[1], arr[2], arr[4]
        else:
            if arr[1] != SERIALIZED_VERSION:
                raise DeserializationError("Attempted to deserialize service, but wrong version")
            service_id, key_der, session_id = arr[2], arr[3], arr[5]

        try:
            key = load_private_der(key_der)
        except (ValueError, TypeError) as e:
            raise DeserializationError("Attempted to deserialize service, but private key was invalid") from e

        return Service(service_id, self, self.web_client, key, session_id, self.base_logger)

    async def deserialize_service_async(self, data: bytes) -> Service:
        """Like deserialize_service(), but checks the server first when configured to."""
        if self.validate_server_version:
            await self.server_information()
        return self.deserialize_service(data)
