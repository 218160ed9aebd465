"""
Tests for Client: server checks, service creation and restoring services.
"""

import msgpack
import pytest

from cipherise.client import Client
from cipherise.common.errors import DeserializationError, IncompatibleServerError, TransportError
from cipherise.crypto.pki import export_private_der, load_public_pem
from cipherise.service import Service

from conftest import BASE_URL, SERVER_INFO, FakeWebClient


@pytest.mark.asyncio
async def test_server_information(client) -> None:
    info = await client.server_information()
    assert str(info.server_version) == "6.2.0"
    assert info.build_version == 1234
    assert str(info.app_min_version) == "6.0.0"
    assert info.max_payload_size == 4000
    assert await client.get_payload_size() == 4000


@pytest.mark.asyncio
async def test_payload_size_is_fetched_lazily() -> None:
    web = FakeWebClient()
    web.route("GET", "info", dict(SERVER_INFO, payloadSize=9000))
    client = Client(BASE_URL, validate_server_version=False, web_client=web)

    assert await client.get_payload_size() == 9000
    assert await client.get_payload_size() == 9000
    assert len(web.calls_to("GET", "info")) == 1


@pytest.mark.asyncio
async def test_rejects_other_products() -> None:
    web = FakeWebClient()
    web.route("GET", "info", dict(SERVER_INFO, productType="XX"))
    client = Client(BASE_URL, web_client=web)
    with pytest.raises(IncompatibleServerError, match="product type is 'XX'"):
        await client.server_information()


@pytest.mark.asyncio
async def test_rejects_old_servers() -> None:
    web = FakeWebClient()
    web.route("GET", "info", dict(SERVER_INFO, serverVersion="5.9.9"))
    client = Client(BASE_URL, validate_server_version=True, web_client=web)
    with pytest.raises(IncompatibleServerError):
        await client.create_service("Example")
    assert not web.calls_to("POST", "sp/create-service")


@pytest.mark.asyncio
async def test_create_service_registers_public_key() -> None:
    web = FakeWebClient()
    web.route("GET", "info", SERVER_INFO)
    web.route("POST", "sp/create-service", {"serviceId": "svc-42"})
    client = Client(BASE_URL, validate_server_version=True, web_client=web)

    service = await client.create_service("Example")

    assert service.id == "svc-42"
    assert service.session_id is None
    call = web.calls_to("POST", "sp/create-service")[0]
    assert call["form"]["friendlyName"] == "Example"
    assert call["session_id"] is None
    registered = load_public_pem(call["form"]["publicKey"])
    assert registered.public_numbers() == service.key.public_key().public_numbers()
    assert service.key.key_size == 1024


@pytest.mark.asyncio
async def test_create_service_propagates_errors() -> None:
    web = FakeWebClient()
    web.route("POST", "sp/create-service", TransportError("boom"))
    client = Client(BASE_URL, validate_server_version=False, web_client=web)
    with pytest.raises(TransportError, match="boom"):
        await client.create_service("Example")


def test_url_is_normalised() -> None:
    client = Client("  https://cipherise.example.com///  ", validate_server_version=False)
    assert client.url == "https://cipherise.example.com/"
    with pytest.raises(ValueError):
        Client("", validate_server_version=False)


def test_service_roundtrip(client, service) -> None:
    service.session_id = "token-9"
    restored = client.deserialize_service(service.serialize())
    assert restored == service
    assert restored.session_id == "token-9"


def test_service_wire_layout(service) -> None:
    arr = msgpack.unpackb(service.serialize(), raw=False)
    assert arr == ["CiphSrvc", "6.0.0", "svc-1", export_private_der(service.key), None, "token-0"]


def test_legacy_service_format(client, service_key) -> None:
    legacy = msgpack.packb(
        ["CiphSrvc", "svc-old", export_private_der(service_key), b"old signature key", None],
        use_bin_type=True,
    )
    restored = client.deserialize_service(legacy)
    assert restored.id == "svc-old"
    assert restored.session_id is None
    assert export_private_der(restored.key) == export_private_der(service_key)


def test_service_deserialize_errors(client, service_key) -> None:
    der = export_private_der(service_key)
    with pytest.raises(DeserializationError, match="wrong version"):
        client.deserialize_service(msgpack.packb(["CiphSrvc", "5.0.0", "id", der, None, None]))
    with pytest.raises(DeserializationError, match="incorrect number of components"):
        client.deserialize_service(msgpack.packb(["CiphSrvc", "id"]))
    with pytest.raises(DeserializationError, match="header not found"):
        client.deserialize_service(msgpack.packb(["CiphDvce", "6.0.0", "id", der, None, None]))
    with pytest.raises(DeserializationError, match="private key was invalid"):
        client.deserialize_service(msgpack.packb(["CiphSrvc", "6.0.0", "id", b"junk", None, None]))


def test_service_equality_ignores_session(client, web, service, service_key, other_key) -> None:
    same = Service("svc-1", client, web, service_key, "another-token", service.base_logger)
    assert same == service
    assert Service("svc-2", client, web, service_key, None, service.base_logger) != service
    assert Service("svc-1", client, web, other_key, None, service.base_logger) != service


@pytest.mark.asyncio
async def test_deserialize_service_async_checks_server(service) -> None:
    web = FakeWebClient()
    web.route("GET", "info", dict(SERVER_INFO, productType="nope"))
    client = Client(BASE_URL, validate_server_version=True, web_client=web)
    with pytest.raises(IncompatibleServerError):
        await client.deserialize_service_async(service.serialize())
