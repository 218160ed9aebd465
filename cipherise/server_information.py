"""Information reported by the Cipherise server's info endpoint."""

from dataclasses import dataclass

from .common.protocol import ServerInfoResponse
from .common.version import Version

DEFAULT_PAYLOAD_SIZE = 4000


@dataclass(frozen=True)
class ServerInformation:
    """Server version details. Only created by Client.server_information()."""
    server_version: Version
    build_version: int
    app_min_version: Version
    max_payload_size: int

    @classmethod
    def from_response(cls, response: ServerInfoResponse) -> "ServerInformation":
        try:
            build_version = int(response.build_version)
        except ValueError:
            build_version = 0
        return cls(
            server_version=Version.from_string(response.server_version),
            build_version=build_version,
            app_min_version=Version.from_string(response.app_min_version),
            max_payload_size=response.payload_size or DEFAULT_PAYLOAD_SIZE,
        )
