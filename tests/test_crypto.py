"""
Tests for the RSA and AES helpers.
"""

import pytest
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding

from cipherise.crypto import aes
from cipherise.crypto.pki import (
    decrypt_pkcs1,
    encrypt_pkcs1,
    export_private_der,
    export_public_pem,
    load_private_der,
    load_public_pem,
)
from cipherise.crypto.sign import sign_bytes, verify_bytes


def test_public_pem_has_no_trailing_newline(device_key) -> None:
    pem = export_public_pem(device_key)
    assert pem.startswith("-----BEGIN PUBLIC KEY-----\n")
    assert pem.endswith("-----END PUBLIC KEY-----")

    # Keys with the newline (as produced by other tools) load the same way.
    assert export_public_pem(load_public_pem(pem + "\n")) == pem


def test_private_der_roundtrip(service_key) -> None:
    der = export_private_der(service_key)
    assert export_private_der(load_private_der(der)) == der


def test_load_private_der_rejects_garbage() -> None:
    with pytest.raises(ValueError):
        load_private_der(b"not a key")


def test_sign_and_verify(service_key, other_key) -> None:
    signature = sign_bytes(service_key, b"hello")
    assert verify_bytes(service_key.public_key(), b"hello", signature)
    assert not verify_bytes(service_key.public_key(), b"hellO", signature)
    assert not verify_bytes(other_key.public_key(), b"hello", signature)


def test_signing_is_bytes_only(service_key) -> None:
    with pytest.raises(TypeError):
        sign_bytes(service_key, "hello")
    # Other SDKs verify with plain PKCS#1 v1.5 / SHA-256
    service_key.public_key().verify(
        sign_bytes(service_key, b"challenge"), b"challenge", padding.PKCS1v15(), hashes.SHA256()
    )


def test_pkcs1_encryption(device_key) -> None:
    secret = aes.generate_key()
    encrypted = encrypt_pkcs1(device_key.public_key(), secret)
    assert decrypt_pkcs1(device_key, encrypted) == secret


def test_aes_cfb_keeps_length_and_roundtrips() -> None:
    key, iv = aes.generate_key(), aes.generate_iv()
    plaintext = b'{"a":"b"}'
    ciphertext = aes.encrypt_aes_cfb(key, iv, plaintext)
    assert len(ciphertext) == len(plaintext)
    assert aes.decrypt_aes_cfb(key, iv, ciphertext) == plaintext


def test_aes_rejects_short_key() -> None:
    with pytest.raises(ValueError):
        aes.encrypt_aes_cfb(b"short", aes.generate_iv(), b"x")
