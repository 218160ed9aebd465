"""
Shared fixtures: RSA keys, a scripted transport and a service bound to it.

FakeWebClient stands in for cipherise.web_client.WebClient. Responses are
queued per (method, url); an Exception is raised instead of returned, and a
callable is called with the request body. The last queued response is
reused once the queue is down to one entry.
"""

import asyncio
import json
import logging
from collections import defaultdict, deque

import pytest

from cipherise.client import Client
from cipherise.common.utils import hexd, hexe
from cipherise.crypto import aes
from cipherise.crypto.pki import decrypt_pkcs1, encrypt_pkcs1, generate_private_key
from cipherise.crypto.sign import sign_bytes
from cipherise.service import Service

BASE_URL = "https://cipherise.example.com/"

SERVER_INFO = {
    "productType": "CS",
    "serverVersion": "6.2.0",
    "buildVersion": "1234",
    "appMinVersion": "6.0.0",
}


class FakeWebClient:
    def __init__(self, url=BASE_URL):
        self.url = url
        self.routes = defaultdict(deque)
        self.calls = []

    def route(self, method, url, *responses):
        if not url.startswith("http"):
            url = self.url + url
        self.routes[(method, url)].extend(responses)

    def calls_to(self, method, url):
        if not url.startswith("http"):
            url = self.url + url
        return [c for c in self.calls if c["method"] == method and c["url"] == url]

    async def _dispatch(self, method, url, form, session_id):
        # Yield like a real request so concurrent callers interleave
        await asyncio.sleep(0)
        self.calls.append({"method": method, "url": url, "form": form, "session_id": session_id})
        queue = self.routes.get((method, url))
        if not queue:
            raise AssertionError(f"unexpected request {method} {url}")
        response = queue.popleft() if len(queue) > 1 else queue[0]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(form)
        # Simulate the JSON round trip so callers cannot share objects with tests
        return json.loads(json.dumps(response))

    async def get_url(self, url, session_id):
        return await self._dispatch("GET", url, None, session_id)

    async def post_url(self, url, form, session_id):
        return await self._dispatch("POST", url, form, session_id)

    async def get_uri(self, uri, session_id):
        return await self.get_url(self.url + uri, session_id)

    async def post_uri(self, uri, form, session_id):
        return await self.post_url(self.url + uri, form, session_id)

    async def aclose(self):
        pass


@pytest.fixture(scope="session")
def service_key():
    return generate_private_key()


@pytest.fixture(scope="session")
def device_key():
    return generate_private_key()


@pytest.fixture(scope="session")
def other_key():
    return generate_private_key()


@pytest.fixture
def web():
    fake = FakeWebClient()
    fake.route("GET", "info", SERVER_INFO)
    return fake


@pytest.fixture
def client(web):
    return Client(BASE_URL, validate_server_version=False, web_client=web)


@pytest.fixture
def service(client, web, service_key):
    return Service("svc-1", client, web, service_key, "token-0", logging.getLogger("cipherise.tests"))


# ---------------------------------------------------------------------------
# Device-side helpers
# ---------------------------------------------------------------------------


def device_open(device_key, envelope):
    """Decrypt an envelope the service sealed to the device."""
    data = hexd(envelope["data"])
    key = decrypt_pkcs1(device_key, hexd(envelope["key"]))
    plaintext = aes.decrypt_aes_cfb(key, data[-16:], data[:-16])
    return json.loads(plaintext)


def device_seal(device_key, service_public_key, obj):
    """Seal `obj` from the device to the service."""
    key = aes.generate_key()
    iv = aes.generate_iv()
    data = aes.encrypt_aes_cfb(key, iv, json.dumps(obj).encode("utf-8")) + iv
    encrypted_key = encrypt_pkcs1(service_public_key, key)
    return {
        "data": hexe(data),
        "key": hexe(encrypted_key),
        "signature": hexe(sign_bytes(device_key, encrypted_key)),
    }
