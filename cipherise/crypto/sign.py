"""RSA signatures exchanged with the Cipherise server and devices.

Three things are signed in the protocol, always RSASSA-PKCS1-v1_5 over
SHA-256 and always on raw bytes:
- key-binding digests (service key, see Service.calculate_signature_data)
- challenges: the server's session challenge and an app's challenge are
  signed by the service; the service's challenge is signed by the device
- the RSA-encrypted AES key of a payload envelope, signed by its sender

Hex encoding for the wire happens in the callers.
"""

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa


def sign_bytes(key: rsa.RSAPrivateKey, data: bytes) -> bytes:
    """Return the PKCS#1 v1.5 / SHA-256 signature of `data`."""
    return key.sign(bytes(data), padding.PKCS1v15(), hashes.SHA256())


def verify_bytes(key: rsa.RSAPublicKey, data: bytes, signature: bytes) -> bool:
    """Check `signature` over `data` against `key`.

    A bad signature is an expected outcome here (a forged device, a wrong
    challenge solution), so it is reported as False rather than raised.
    """
    try:
        key.verify(bytes(signature), bytes(data), padding.PKCS1v15(), hashes.SHA256())
    except InvalidSignature:
        return False
    return True
