"""RSA key helpers.

This module provides functions to create, import and export RSA keys in
the formats exchanged with the Cipherise server:
- generate_private_key(): Fresh 1024-bit RSA keypair
- export_private_der() / load_private_der(): PKCS#1 DER private keys
- export_public_pem() / load_public_pem(): SubjectPublicKeyInfo PEM
- encrypt_pkcs1() / decrypt_pkcs1(): RSAES-PKCS1-v1_5

Public PEM strings carry no trailing newline. Keys received from the
server or from older serialized sessions are accepted with or without it.
"""

from typing import Union

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa


KEY_BITS = 1024
PUBLIC_EXPONENT = 65537


def generate_private_key(bits: int = KEY_BITS) -> rsa.RSAPrivateKey:
    """Generate a new RSA private key."""
    return rsa.generate_private_key(public_exponent=PUBLIC_EXPONENT, key_size=bits)


def export_private_der(key: rsa.RSAPrivateKey) -> bytes:
    """Export a private key as PKCS#1 DER."""
    return key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )


def load_private_der(data: bytes) -> rsa.RSAPrivateKey:
    """Load a PKCS#1 DER private key.

    Raises:
        ValueError: If the data is not an RSA private key
    """
    key = serialization.load_der_private_key(bytes(data), password=None)
    if not isinstance(key, rsa.RSAPrivateKey):
        raise ValueError("expected an RSA private key")
    return key


def export_public_pem(key: Union[rsa.RSAPublicKey, rsa.RSAPrivateKey]) -> str:
    """Export the public half of `key` as SubjectPublicKeyInfo PEM (no trailing newline)."""
    if isinstance(key, rsa.RSAPrivateKey):
        key = key.public_key()
    pem = key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return pem.decode("ascii").rstrip("\n")


def load_public_pem(pem: Union[str, bytes]) -> rsa.RSAPublicKey:
    """Load a SubjectPublicKeyInfo PEM public key.

    Raises:
        ValueError: If the data is not an RSA public key
    """
    if isinstance(pem, str):
        pem = pem.encode("ascii")
    key = serialization.load_pem_public_key(pem.strip() + b"\n")
    if not isinstance(key, rsa.RSAPublicKey):
        raise ValueError("expected an RSA public key")
    return key


def encrypt_pkcs1(key: rsa.RSAPublicKey, data: bytes) -> bytes:
    """Encrypt `data` to `key` using RSAES-PKCS1-v1_5."""
    return key.encrypt(data, padding.PKCS1v15())


def decrypt_pkcs1(key: rsa.RSAPrivateKey, data: bytes) -> bytes:
    """Decrypt RSAES-PKCS1-v1_5 `data` with `key`."""
    return key.decrypt(data, padding.PKCS1v15())
